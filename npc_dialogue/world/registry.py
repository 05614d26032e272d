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

"""In-process world state: NPC registry plus the live dialogue state.

The stores themselves are immutable; the World swaps in the new stores a
selection returns. For singleplayer this lives in-process next to the
API handlers, guarded by an asyncio lock.
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterator
from typing import Any

from npc_dialogue.config import DEFAULT_SEED, MAX_NPCS, SEARCH_SAFETY_BUDGET_MS
from npc_dialogue.dialogue.conversation_thread import start_thread
from npc_dialogue.dialogue.response_selector import (
    ResponseSelector,
    SelectionResult,
    UsageTracker,
)
from npc_dialogue.dialogue.templates import TemplateLibrary
from npc_dialogue.models.behavior import NPCBehaviorState
from npc_dialogue.models.npc import NPCCategory, NPCPersonality
from npc_dialogue.models.relationship import MoodType
from npc_dialogue.models.situation import SituationContext
from npc_dialogue.models.topic import ConversationThread
from npc_dialogue.search.chatbase_lookup import ChatbaseLookupEngine
from npc_dialogue.search.conversation_search import ConversationSearch, SearchConfig
from npc_dialogue.search.goals import NPCObjectives, default_objectives
from npc_dialogue.simulation.memory_engine import MemoryStore
from npc_dialogue.simulation.relationship_engine import RelationshipEngine, RelationshipStore
from npc_dialogue.world.knowledge import KnowledgeBase
from npc_dialogue.world.mythology import PlayerMythology

PLAYER_ID = "player"

# Searches stop on iterations or expansions, so a seed replays the same decision
WORLD_SEARCH_CONFIG = SearchConfig(time_budget_ms=SEARCH_SAFETY_BUDGET_MS)


class NPCRepository:
    """Registered NPC personalities, keyed by slug.

    Args:
        max_npcs: Maximum number of NPCs allowed.
    """

    def __init__(self, max_npcs: int = MAX_NPCS):
        self._npcs: dict[str, NPCPersonality] = {}
        self._max_npcs = max_npcs

    def add(self, npc: NPCPersonality) -> None:
        """Register an NPC.

        Raises:
            ValueError: If the slug is taken, reserved, or the limit is reached.
        """
        if len(self._npcs) >= self._max_npcs:
            raise ValueError(f"Maximum NPC count ({self._max_npcs}) reached.")
        if npc.slug == PLAYER_ID:
            raise ValueError(f"NPC slug {PLAYER_ID!r} is reserved.")
        if npc.slug in self._npcs:
            raise ValueError(f"NPC with slug {npc.slug!r} already exists.")
        self._npcs[npc.slug] = npc

    def get(self, slug: str) -> NPCPersonality | None:
        return self._npcs.get(slug)

    def require(self, slug: str) -> NPCPersonality:
        """Get an NPC by slug.

        Raises:
            KeyError: If no such NPC is registered.
        """
        npc = self._npcs.get(slug)
        if npc is None:
            raise KeyError(slug)
        return npc

    def list(self, category: NPCCategory | None = None) -> list[NPCPersonality]:
        npcs = list(self._npcs.values())
        if category is not None:
            npcs = [n for n in npcs if n.category is category]
        return npcs

    def remove(self, slug: str) -> bool:
        if slug in self._npcs:
            del self._npcs[slug]
            return True
        return False

    def names(self) -> dict[str, str]:
        """slug -> display name, for NPC mention detection."""
        return {slug: npc.name for slug, npc in self._npcs.items()}

    def __len__(self) -> int:
        return len(self._npcs)

    def __contains__(self, slug: object) -> bool:
        return slug in self._npcs

    def __iter__(self) -> Iterator[NPCPersonality]:
        return iter(list(self._npcs.values()))


def thread_key(a: str, b: str) -> str:
    """Order-independent id for the conversation between two parties."""
    return ":".join(sorted((a, b)))


class World:
    """Live dialogue state shared by interactions and the autonomous loop.

    Args:
        seed: World seed. Every random choice derives from it.
        library: Authored templates.
        chatbase: Precomputed line index, if one was loaded.
        search: Conversation search for high-stakes turns.
        max_npcs: Registry limit.
        knowledge: Facts NPCs can learn and pass on.
        situation: Game circumstances applied to every turn unless a
            turn brings its own.
    """

    def __init__(
        self,
        seed: str = DEFAULT_SEED,
        library: TemplateLibrary | None = None,
        chatbase: ChatbaseLookupEngine | None = None,
        search: ConversationSearch | None = None,
        max_npcs: int = MAX_NPCS,
        knowledge: KnowledgeBase | None = None,
        situation: SituationContext | None = None,
    ):
        self.seed = seed
        self.turn = 0
        self.repository = NPCRepository(max_npcs)
        self.library = library if library is not None else TemplateLibrary()
        self.chatbase = chatbase
        self.relationship_engine = RelationshipEngine()
        self.selector = ResponseSelector(
            self.library,
            chatbase=chatbase,
            search=(
                search
                if search is not None
                else ConversationSearch(WORLD_SEARCH_CONFIG, library=self.library)
            ),
            relationship_engine=self.relationship_engine,
        )
        self.relationships = RelationshipStore()
        self.memories = MemoryStore()
        self.usage = UsageTracker()
        self.behaviors: dict[str, NPCBehaviorState] = {}
        self.threads: dict[str, ConversationThread] = {}
        self.objectives: dict[str, NPCObjectives] = {}
        # Game event tag per NPC, consumed by its next spoken turn
        self.recent_events: dict[str, str] = {}
        self.mythology = PlayerMythology(seed)
        self.knowledge = knowledge if knowledge is not None else KnowledgeBase()
        self.situation = situation if situation is not None else SituationContext()
        # Moods picked up from talking NPCs: slug -> (mood, intensity)
        self.caught_moods: dict[str, tuple[MoodType, float]] = {}
        self.lock = asyncio.Lock()

    # --- NPCs ---

    def add_npc(self, npc: NPCPersonality, objectives: NPCObjectives | None = None) -> None:
        """Register an NPC and give it a behavioral state and goals.

        Raises:
            ValueError: See NPCRepository.add.
        """
        self.repository.add(npc)
        self.behaviors.setdefault(npc.slug, NPCBehaviorState())
        self.objectives[npc.slug] = (
            objectives if objectives is not None else default_objectives(npc.archetype)
        )
        self.mythology.register_npc(npc.slug, npc.archetype)

    def remove_npc(self, slug: str) -> bool:
        removed = self.repository.remove(slug)
        if removed:
            self.behaviors.pop(slug, None)
            self.objectives.pop(slug, None)
            self.caught_moods.pop(slug, None)
            self.knowledge.forget(slug)
        return removed

    def objectives_for(self, slug: str) -> NPCObjectives | None:
        return self.objectives.get(slug)

    # --- Threads ---

    def thread_for(self, a: str, b: str) -> ConversationThread:
        """Ongoing thread between two parties, opened on first use."""
        key = thread_key(a, b)
        thread = self.threads.get(key)
        if thread is None:
            participants = []
            for slug in sorted((a, b)):
                npc = self.repository.get(slug)
                category = npc.category if npc is not None else NPCCategory.TRAVELERS
                participants.append((slug, category))
            thread = start_thread(key, participants)
            self.threads[key] = thread
        return thread

    def end_thread(self, a: str, b: str) -> bool:
        return self.threads.pop(thread_key(a, b), None) is not None

    # --- State updates ---

    def apply_selection(self, speaker: str, listener: str, result: SelectionResult) -> None:
        """Adopt the state a selection produced and advance the turn."""
        self.relationships = result.relationships
        self.memories = result.memories
        self.usage = result.usage
        self.behaviors.update(result.behaviors)
        self.threads[thread_key(speaker, listener)] = result.thread
        self.turn += 1

    def decay_relationships(self) -> int:
        """Pull every relationship toward neutral. Returns stats changed."""
        self.relationships, changes = self.relationship_engine.decay(self.relationships, self.turn)
        return len(changes)

    # --- Serialization ---

    def snapshot(self) -> dict[str, Any]:
        """JSON-serializable dump of the whole dialogue state."""
        from npc_dialogue.world.persistence import serialize_world

        return serialize_world(self)

    @classmethod
    def from_snapshot(
        cls,
        data: dict[str, Any],
        library: TemplateLibrary | None = None,
        chatbase: ChatbaseLookupEngine | None = None,
    ) -> World:
        """Rebuild a world from a dict produced by snapshot()."""
        from npc_dialogue.world.persistence import load_world

        return load_world(data, library=library, chatbase=chatbase)
