# Copyright 2026 Google LLC
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""Serialization helpers for saving and restoring a World as JSON.

Everything is converted to plain dicts and lists. Templates and the
chatbase are content, not state, and are passed back in on load.
"""

from __future__ import annotations

import dataclasses
import json
import logging
from pathlib import Path
from typing import Any

from npc_dialogue.config import DEFAULT_SEED
from npc_dialogue.dialogue.response_selector import UsageTracker
from npc_dialogue.dialogue.templates import TemplateLibrary
from npc_dialogue.models.behavior import BehavioralState, NPCBehaviorState
from npc_dialogue.models.memory import MemoryEvent, MemoryKind, NPCMemory
from npc_dialogue.models.npc import (
    DEFAULT_AGGRESSION,
    DEFAULT_CURIOSITY,
    DEFAULT_LOYALTY,
    DEFAULT_MOOD_VOLATILITY,
    DEFAULT_SOCIABILITY,
    BehavioralArchetype,
    NPCCategory,
    NPCIdentity,
    NPCPersonality,
)
from npc_dialogue.models.relationship import (
    MoodType,
    ObservedStatChange,
    Relationship,
    RelationshipEvent,
    RelationshipEventKind,
    RelationshipStats,
)
from npc_dialogue.models.situation import SituationContext
from npc_dialogue.models.topic import ConversationThread, Topic, TopicCategory
from npc_dialogue.search.chatbase_lookup import ChatbaseLookupEngine
from npc_dialogue.simulation.memory_engine import MemoryStore
from npc_dialogue.simulation.relationship_engine import RelationshipStore
from npc_dialogue.world.knowledge import KnowledgeBase
from npc_dialogue.world.mythology import PlayerMythology
from npc_dialogue.world.registry import World

logger = logging.getLogger(__name__)

FORMAT_VERSION = 1


# --- NPCs ---


def serialize_npc(npc: NPCPersonality) -> dict[str, Any]:
    return {
        "slug": npc.slug,
        "name": npc.name,
        "category": npc.category.value,
        "title": npc.identity.title,
        "archetype": npc.archetype.value,
        "default_mood": npc.default_mood.value,
        "sociability": npc.sociability,
        "aggression": npc.aggression,
        "loyalty": npc.loyalty,
        "curiosity": npc.curiosity,
        "mood_volatility": npc.mood_volatility,
        "pool_weights": dict(npc.pool_weights),
    }


def deserialize_npc(data: dict[str, Any]) -> NPCPersonality:
    return NPCPersonality(
        identity=NPCIdentity(
            slug=data["slug"],
            name=data["name"],
            category=NPCCategory(data.get("category", NPCCategory.TRAVELERS.value)),
            title=data.get("title", ""),
        ),
        archetype=BehavioralArchetype(data.get("archetype", BehavioralArchetype.DIPLOMAT.value)),
        default_mood=MoodType(data.get("default_mood", MoodType.NEUTRAL.value)),
        sociability=data.get("sociability", DEFAULT_SOCIABILITY),
        aggression=data.get("aggression", DEFAULT_AGGRESSION),
        loyalty=data.get("loyalty", DEFAULT_LOYALTY),
        curiosity=data.get("curiosity", DEFAULT_CURIOSITY),
        mood_volatility=data.get("mood_volatility", DEFAULT_MOOD_VOLATILITY),
        pool_weights=dict(data.get("pool_weights", {})),
    )


# --- Relationships ---


def serialize_relationship(rel: Relationship) -> dict[str, Any]:
    return {
        "owner_id": rel.owner_id,
        "target_id": rel.target_id,
        "stats": rel.stats.to_dict(),
        "history": [
            {
                "kind": e.kind.value,
                "turn": e.turn,
                "details": e.details,
                "changes": [dataclasses.asdict(c) for c in e.changes],
            }
            for e in rel.history
        ],
        "last_interaction": rel.last_interaction,
        "interaction_count": rel.interaction_count,
    }


def deserialize_relationship(data: dict[str, Any]) -> Relationship:
    return Relationship(
        owner_id=data["owner_id"],
        target_id=data["target_id"],
        stats=RelationshipStats.from_dict(data.get("stats", {})),
        history=tuple(
            RelationshipEvent(
                kind=RelationshipEventKind(e["kind"]),
                turn=e["turn"],
                details=e.get("details", ""),
                changes=tuple(ObservedStatChange(**c) for c in e.get("changes", [])),
            )
            for e in data.get("history", [])
        ),
        last_interaction=data.get("last_interaction", 0),
        interaction_count=data.get("interaction_count", 0),
    )


# --- Memories ---


def serialize_memory(memory: NPCMemory) -> dict[str, Any]:
    return {
        "owner_id": memory.owner_id,
        "capacity": memory.capacity,
        "total_recorded": memory.total_recorded,
        "events": [
            {
                "event_id": e.event_id,
                "kind": e.kind.value,
                "turn": e.turn,
                "magnitude": e.magnitude,
                "valence": e.valence,
                "counterpart_id": e.counterpart_id,
                "details": e.details,
            }
            for e in memory.events
        ],
    }


def deserialize_memory(data: dict[str, Any]) -> NPCMemory:
    events = tuple(
        MemoryEvent(
            event_id=e["event_id"],
            kind=MemoryKind(e["kind"]),
            turn=e["turn"],
            magnitude=e["magnitude"],
            valence=e["valence"],
            counterpart_id=e.get("counterpart_id"),
            details=e.get("details", ""),
        )
        for e in data.get("events", [])
    )
    capacity = max(0, int(data.get("capacity", len(events))))
    return NPCMemory(
        owner_id=data["owner_id"],
        events=events[len(events) - capacity :] if len(events) > capacity else events,
        capacity=capacity,
        total_recorded=data.get("total_recorded", len(events)),
    )


# --- Threads and behavior ---


def serialize_thread(thread: ConversationThread) -> dict[str, Any]:
    return {
        "thread_id": thread.thread_id,
        "participants": list(thread.participants),
        "topics": [
            {
                "topic_id": t.topic_id,
                "category": t.category.value,
                "subject": t.subject,
                "initiator": t.initiator,
                "participants": sorted(t.participants),
                "depth": t.depth,
                "exhaustion": t.exhaustion,
                "last_mentioned": t.last_mentioned,
            }
            for t in thread.topics
        ],
        "active_topic": thread.active_topic,
        "turn_count": thread.turn_count,
        "momentum": thread.momentum,
        "tension": thread.tension,
        "affinity": [
            [owner, [[c.value, w] for c, w in prefs]] for owner, prefs in thread.affinity
        ],
    }


def deserialize_thread(data: dict[str, Any]) -> ConversationThread:
    return ConversationThread(
        thread_id=data["thread_id"],
        participants=tuple(data.get("participants", [])),
        topics=tuple(
            Topic(
                topic_id=t["topic_id"],
                category=TopicCategory(t["category"]),
                subject=t["subject"],
                initiator=t["initiator"],
                participants=frozenset(t.get("participants", [])),
                depth=t.get("depth", 0),
                exhaustion=t.get("exhaustion", 0.0),
                last_mentioned=t.get("last_mentioned", 0),
            )
            for t in data.get("topics", [])
        ),
        active_topic=data.get("active_topic"),
        turn_count=data.get("turn_count", 0),
        momentum=data.get("momentum", 0.5),
        tension=data.get("tension", 0.0),
        affinity=tuple(
            (owner, tuple((TopicCategory(c), float(w)) for c, w in prefs))
            for owner, prefs in data.get("affinity", [])
        ),
    )


def serialize_behavior(state: NPCBehaviorState) -> dict[str, Any]:
    return {
        "current": state.current.value,
        "previous": state.previous.value if state.previous is not None else None,
        "turns_in_state": state.turns_in_state,
    }


def deserialize_behavior(data: dict[str, Any]) -> NPCBehaviorState:
    previous = data.get("previous")
    return NPCBehaviorState(
        current=BehavioralState(data.get("current", BehavioralState.IDLE.value)),
        previous=BehavioralState(previous) if previous else None,
        turns_in_state=data.get("turns_in_state", 0),
    )


# --- World ---


def serialize_world(world: World) -> dict[str, Any]:
    """Create a JSON-serializable snapshot of the whole dialogue state.

    Objectives are not stored; NPCs get their archetype defaults back on
    load.
    """
    return {
        "version": FORMAT_VERSION,
        "seed": world.seed,
        "turn": world.turn,
        "npcs": [serialize_npc(n) for n in world.repository],
        "relationships": [serialize_relationship(r) for r in world.relationships],
        "memories": [serialize_memory(m) for m in world.memories],
        "usage": world.usage.to_dict(),
        "behaviors": {npc: serialize_behavior(b) for npc, b in world.behaviors.items()},
        "threads": [serialize_thread(t) for t in world.threads.values()],
        "recent_events": dict(world.recent_events),
        "mythology": world.mythology.to_dict(),
        "knowledge": world.knowledge.to_dict(),
        "situation": world.situation.to_dict(),
        "caught_moods": {
            npc: [mood.value, intensity] for npc, (mood, intensity) in world.caught_moods.items()
        },
    }


def _section(data: dict[str, Any], key: str, kind: type, default: Any) -> Any:
    value = data.get(key, default)
    if not isinstance(value, kind):
        raise TypeError(f"'{key}' must be a {kind.__name__}, got {type(value).__name__}")
    return value


def load_world(
    data: dict[str, Any],
    library: TemplateLibrary | None = None,
    chatbase: ChatbaseLookupEngine | None = None,
) -> World:
    """Rebuild a World from a dict produced by serialize_world.

    Raises:
        KeyError, ValueError, TypeError, AttributeError: If the data is malformed.
    """
    if not isinstance(data, dict):
        raise TypeError(f"World data must be an object, got {type(data).__name__}")
    world = World(seed=str(data.get("seed", DEFAULT_SEED)), library=library, chatbase=chatbase)
    for npc_data in _section(data, "npcs", list, []):
        world.add_npc(deserialize_npc(npc_data))
    world.turn = int(data.get("turn", 0))
    world.relationships = RelationshipStore(
        {
            (r.owner_id, r.target_id): r
            for r in (
                deserialize_relationship(d) for d in _section(data, "relationships", list, [])
            )
        }
    )
    world.memories = MemoryStore(
        {
            m.owner_id: m
            for m in (deserialize_memory(d) for d in _section(data, "memories", list, []))
        }
    )
    world.usage = UsageTracker.from_dict(_section(data, "usage", dict, {}))
    world.behaviors.update(
        {
            npc: deserialize_behavior(b)
            for npc, b in _section(data, "behaviors", dict, {}).items()
        }
    )
    for thread_data in _section(data, "threads", list, []):
        thread = deserialize_thread(thread_data)
        world.threads[thread.thread_id] = thread
    world.recent_events = dict(_section(data, "recent_events", dict, {}))
    if "mythology" in data:
        world.mythology = PlayerMythology.from_dict(_section(data, "mythology", dict, {}))
        for npc in world.repository:
            world.mythology.register_npc(npc.slug, npc.archetype)
    if "knowledge" in data:
        world.knowledge = KnowledgeBase.from_dict(_section(data, "knowledge", dict, {}))
    if "situation" in data:
        world.situation = SituationContext.from_dict(_section(data, "situation", dict, {}))
    world.caught_moods = {
        npc: (MoodType(mood), float(intensity))
        for npc, (mood, intensity) in _section(data, "caught_moods", dict, {}).items()
    }
    return world


def save_world_file(world: World, path: str | Path) -> None:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(serialize_world(world), indent=2), encoding="utf-8")
    logger.info("Saved world (turn %d) to %s", world.turn, path)


def load_world_file(
    path: str | Path,
    library: TemplateLibrary | None = None,
    chatbase: ChatbaseLookupEngine | None = None,
    seed: str = DEFAULT_SEED,
) -> World:
    """Load a saved world, or start a neutral one if that fails.

    A missing, unreadable or malformed file is logged and replaced by an
    empty world with the given seed.
    """
    path = Path(path)
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        return load_world(data, library=library, chatbase=chatbase)
    except FileNotFoundError:
        logger.warning("No saved world at %s; starting a new one.", path)
    except (OSError, ValueError, KeyError, TypeError, AttributeError):
        logger.warning("Could not load world from %s; starting a new one.", path, exc_info=True)
    return World(seed=seed, library=library, chatbase=chatbase)
