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

"""Dialogue API routes for the game client.

REST endpoints for NPC registration, spoken turns, game events, the
autonomous simulation, the relationship dashboard and world save/load.
"""

from __future__ import annotations

import logging
from collections import Counter
from typing import Any

from fastapi import APIRouter, HTTPException, Query

from npc_dialogue.config import MAX_STORED_EVENTS, WORLD_STATE_PATH
from npc_dialogue.models.npc import NPCPersonality
from npc_dialogue.models.relationship import MoodContext, ObservedStatChange
from npc_dialogue.simulation.memory_engine import (
    get_most_memorable_event,
    get_opinion,
    has_trauma_bond,
)
from npc_dialogue.simulation.personality import situational_price, situational_tension
from npc_dialogue.simulation.relationship_engine import derive_mood, disposition
from npc_dialogue.world.autonomous import AutonomousSimulation, Storyline, summarize_batch
from npc_dialogue.world.interaction import (
    GameEvent,
    InteractionEngine,
    InteractionTurn,
    apply_game_event,
)
from npc_dialogue.world.knowledge import KnowledgePiece
from npc_dialogue.world.persistence import load_world, save_world_file
from npc_dialogue.world.registry import World
from npc_dialogue.world.tick_runner import TickRunner

from .schemas import (
    AddTemplatesResponse,
    BatchRequest,
    BatchResponse,
    ChatbaseStatsResponse,
    CreateNPCRequest,
    DashboardResponse,
    FirstMeetingResponse,
    GameEventRequest,
    GameEventResponse,
    InteractionResponse,
    InteractRequest,
    InterestingEventResponse,
    KnowledgeResponse,
    KnowledgeSpec,
    NPCResponse,
    RelationshipSummary,
    SituationSpec,
    StatChangeResponse,
    StorylineResponse,
    TemplateSpec,
    TickRunnerStatusResponse,
    WorldStatusResponse,
)

logger = logging.getLogger(__name__)

RECENT_CHANGES_SHOWN = 10

# Module-level singletons (set during app startup)
_world: World | None = None
_simulation: AutonomousSimulation | None = None
_tick_runner: TickRunner | None = None


def get_world() -> World:
    """Get the world singleton.

    Raises:
        RuntimeError: If the world is not initialized.
    """
    if _world is None:
        raise RuntimeError("World not initialized.")
    return _world


def set_world(world: World | None) -> None:
    """Set the world singleton. Any autonomous loop follows the new world."""
    global _world
    _world = world
    if _simulation is not None and world is not None:
        _simulation.rebind(world)


def get_simulation() -> AutonomousSimulation:
    """Autonomous loop for the current world, created on first use."""
    global _simulation
    world = get_world()
    if _simulation is None:
        _simulation = AutonomousSimulation(world)
    elif _simulation.world is not world:
        _simulation.rebind(world)
    return _simulation


def set_simulation(simulation: AutonomousSimulation | None) -> None:
    global _simulation
    _simulation = simulation


def get_tick_runner() -> TickRunner | None:
    """Get the tick runner singleton (may be None)."""
    return _tick_runner


def set_tick_runner(runner: TickRunner | None) -> None:
    global _tick_runner
    _tick_runner = runner


dialogue_router = APIRouter(tags=["dialogue"])


# --- Converters ---


def _npc_to_response(world: World, npc: NPCPersonality) -> NPCResponse:
    behavior = world.behaviors.get(npc.slug)
    return NPCResponse(
        slug=npc.slug,
        name=npc.name,
        category=npc.category.value,
        archetype=npc.archetype.value,
        behavior=behavior.current.value if behavior is not None else "idle",
        default_mood=npc.default_mood.value,
    )


def _change_to_response(change: ObservedStatChange) -> StatChangeResponse:
    return StatChangeResponse(
        turn=change.turn,
        source_id=change.source_id,
        target_id=change.target_id,
        stat=change.stat,
        previous=change.previous,
        new=change.new,
        change=change.change,
        reason=change.reason,
        clamped=change.clamped,
    )


def _turn_to_response(turn: InteractionTurn) -> InteractionResponse:
    meeting = None
    if turn.first_meeting is not None:
        meeting = FirstMeetingResponse(
            line_refs=list(turn.first_meeting.line_refs),
            theory=turn.first_meeting.theory,
            suggested_mood=turn.first_meeting.suggested_mood.value,
            tension=turn.first_meeting.tension,
        )
    return InteractionResponse(
        turn_number=turn.turn_number,
        speaker=turn.speaker,
        listener=turn.listener,
        intent=turn.intent.value if turn.intent is not None else None,
        pool=turn.pool.value,
        response_id=turn.response_id,
        template_id=turn.template_id,
        text=turn.text,
        source=turn.source.value,
        confidence=turn.confidence,
        mood=turn.mood.value,
        stat_changes=[_change_to_response(c) for c in turn.stat_changes],
        memories_recorded=len(turn.memory_events),
        first_meeting=meeting,
        caught_mood=turn.caught_mood.value if turn.caught_mood is not None else None,
        shared_fact=turn.shared_fact,
    )


def _storyline_to_response(storyline: Storyline) -> StorylineResponse:
    return StorylineResponse(
        storyline_id=storyline.storyline_id,
        kind=storyline.kind.value,
        title=storyline.title,
        primary=list(storyline.primary),
        start_turn=storyline.start_turn,
        last_activity=storyline.last_activity,
        events=list(storyline.events),
        status=storyline.status.value,
        tension=storyline.tension,
        momentum=storyline.momentum,
    )


def _runner_status(runner: TickRunner | None) -> TickRunnerStatusResponse:
    if runner is None:
        return TickRunnerStatusResponse(running=False, ticks_completed=0, interval_seconds=0.0)
    return TickRunnerStatusResponse(
        running=runner.running,
        ticks_completed=runner.ticks_completed,
        interval_seconds=runner.interval_seconds,
    )


# --- NPC Endpoints ---


@dialogue_router.post("/npc", response_model=NPCResponse, status_code=201)
def create_npc(req: CreateNPCRequest) -> NPCResponse:
    """Register a new NPC."""
    world = get_world()
    npc = req.to_personality()
    try:
        world.add_npc(npc)
    except ValueError as e:
        raise HTTPException(status_code=409, detail=str(e)) from e
    return _npc_to_response(world, npc)


@dialogue_router.get("/npcs", response_model=list[NPCResponse])
def list_npcs() -> list[NPCResponse]:
    world = get_world()
    return [_npc_to_response(world, n) for n in world.repository.list()]


@dialogue_router.delete("/npc/{slug}")
def delete_npc(slug: str) -> dict[str, str]:
    """Remove an NPC. Relationships and memories about it are kept."""
    world = get_world()
    if not world.remove_npc(slug):
        raise HTTPException(status_code=404, detail=f"NPC {slug!r} not found.")
    return {"status": "deleted", "slug": slug}


@dialogue_router.get("/npc/{slug}/dashboard", response_model=DashboardResponse)
def npc_dashboard(slug: str) -> DashboardResponse:
    """Relationship dashboard: how this NPC sees everyone it has met."""
    world = get_world()
    npc = world.repository.get(slug)
    if npc is None:
        raise HTTPException(status_code=404, detail=f"NPC {slug!r} not found.")

    memory = world.memories.get(slug)
    context = MoodContext(
        default_mood=npc.default_mood,
        tension_bonus=situational_tension(world.situation),
    )
    relationships = []
    changes: list[ObservedStatChange] = []
    for rel in world.relationships.for_owner(slug):
        relationships.append(
            RelationshipSummary(
                target=rel.target_id,
                stats=rel.stats.to_dict(),
                mood=derive_mood(rel.stats, context).value,
                disposition=disposition(rel.stats).value,
                price_modifier=situational_price(rel.stats, world.situation),
                opinion=get_opinion(memory, rel.target_id, now=world.turn),
                trauma_bond=has_trauma_bond(memory, rel.target_id),
                interaction_count=rel.interaction_count,
            )
        )
        for event in rel.history:
            changes.extend(event.changes)
    changes.sort(key=lambda c: c.turn)

    behavior = world.behaviors.get(slug)
    memorable = get_most_memorable_event(memory)
    beliefs = world.mythology.beliefs_of(slug)
    return DashboardResponse(
        slug=slug,
        name=npc.name,
        behavior=behavior.current.value if behavior is not None else "idle",
        previous_behavior=(
            behavior.previous.value if behavior is not None and behavior.previous else None
        ),
        turns_in_state=behavior.turns_in_state if behavior is not None else 0,
        relationships=relationships,
        recent_changes=[_change_to_response(c) for c in changes[-RECENT_CHANGES_SHOWN:]],
        memory_count=len(memory),
        memory_kinds=dict(Counter(e.kind.value for e in memory.events)),
        most_memorable=memorable.kind.value if memorable is not None else None,
        player_expectation=beliefs.expectation,
        player_theories=[t.short_form for t in beliefs.theories],
    )


# --- Template Endpoints ---


@dialogue_router.post("/templates", response_model=AddTemplatesResponse, status_code=201)
def add_templates(templates: list[TemplateSpec]) -> AddTemplatesResponse:
    """Add (or replace, by id) response templates."""
    world = get_world()
    for spec in templates:
        world.library.add(spec.to_template())
    logger.info("Added %d templates (library size %d)", len(templates), len(world.library))
    return AddTemplatesResponse(added=len(templates), total=len(world.library))


# --- Knowledge Endpoints ---


def _piece_to_response(world: World, piece: KnowledgePiece) -> KnowledgeResponse:
    return KnowledgeResponse(
        fact_id=piece.fact_id,
        content=piece.content,
        category=piece.category.value,
        secrecy=piece.secrecy.value,
        short_form=piece.short_form,
        known_by=world.knowledge.holders(piece.fact_id),
    )


@dialogue_router.post("/knowledge", response_model=KnowledgeResponse, status_code=201)
def add_knowledge(spec: KnowledgeSpec) -> KnowledgeResponse:
    """Register a fact and teach it to its initial holders."""
    world = get_world()
    missing = [slug for slug in spec.known_by if slug not in world.repository]
    if missing:
        raise HTTPException(status_code=404, detail=f"NPC {missing[0]!r} not found.")
    piece = spec.to_piece()
    world.knowledge.add(piece)
    for slug in spec.known_by:
        world.knowledge.teach(slug, piece.fact_id)
    return _piece_to_response(world, piece)


@dialogue_router.get("/npc/{slug}/knowledge", response_model=list[KnowledgeResponse])
def npc_knowledge(slug: str) -> list[KnowledgeResponse]:
    world = get_world()
    if slug not in world.repository:
        raise HTTPException(status_code=404, detail=f"NPC {slug!r} not found.")
    return [_piece_to_response(world, p) for p in world.knowledge.facts_of(slug)]


# --- Dialogue Endpoints ---


@dialogue_router.post("/interact", response_model=InteractionResponse)
async def interact(req: InteractRequest) -> InteractionResponse:
    """Have an NPC say one line, to the player or to another NPC."""
    world = get_world()
    async with world.lock:
        try:
            turn = InteractionEngine(world).run_turn(
                req.speaker,
                req.listener,
                player_text=req.player_text,
                pool=req.pool,
                mood_override=req.mood_override,
                situation=req.situation.to_context() if req.situation is not None else None,
            )
        except KeyError as e:
            raise HTTPException(status_code=404, detail=f"NPC {e.args[0]!r} not found.") from e
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e)) from e
    return _turn_to_response(turn)


@dialogue_router.post("/events", response_model=GameEventResponse, status_code=201)
async def submit_event(req: GameEventRequest) -> GameEventResponse:
    """Feed a game event (combat, purchase, death, ...) into the dialogue state."""
    world = get_world()
    event = GameEvent(
        kind=req.kind,
        actor=req.actor,
        target=req.target,
        witnesses=tuple(req.witnesses),
        magnitude=req.magnitude,
        details=req.details,
    )
    async with world.lock:
        outcome = apply_game_event(world, event)
    return GameEventResponse(
        kind=req.kind.value,
        memories_recorded=len(outcome.memory_events),
        stat_changes=[_change_to_response(c) for c in outcome.stat_changes],
        transitions={npc: s.current.value for npc, s in outcome.transitions.items()},
        player_theories=outcome.player_theories,
    )


# --- Simulation Endpoints ---


@dialogue_router.post("/simulation/batch", response_model=BatchResponse)
async def run_batch(req: BatchRequest) -> BatchResponse:
    """Run a batch of autonomous NPC-to-NPC cycles."""
    simulation = get_simulation()
    batch = await simulation.run_batch_async(req.cycles)
    return BatchResponse(
        cycles_run=batch.cycles_run,
        turns=len(batch.turns),
        events=[InterestingEventResponse(**e.to_dict()) for e in batch.events],
        anomalies=[a.description for a in batch.anomalies],
        active_storylines=[_storyline_to_response(s) for s in batch.active_storylines],
        summary=summarize_batch(batch),
    )


@dialogue_router.get("/simulation/storylines", response_model=list[StorylineResponse])
def list_storylines(include_closed: bool = False) -> list[StorylineResponse]:
    simulation = get_simulation()
    if include_closed:
        storylines = list(simulation.storylines.values())
    else:
        storylines = simulation.active_storylines()
    return [_storyline_to_response(s) for s in storylines]


@dialogue_router.get("/simulation/events", response_model=list[InterestingEventResponse])
def recent_events(
    count: int = Query(10, ge=1, le=MAX_STORED_EVENTS),
) -> list[InterestingEventResponse]:
    simulation = get_simulation()
    return [InterestingEventResponse(**e.to_dict()) for e in simulation.recent_events(count)]


@dialogue_router.get("/chatbase/stats", response_model=ChatbaseStatsResponse)
def chatbase_stats() -> ChatbaseStatsResponse:
    world = get_world()
    if world.chatbase is None:
        return ChatbaseStatsResponse(
            enabled=False,
            entries=0,
            npcs=0,
            lookups=0,
            hits=0,
            exact_hits=0,
            fuzzy_hits=0,
            misses=0,
            hit_rate=0.0,
        )
    return ChatbaseStatsResponse(**world.chatbase.stats())


# --- Tick Runner Endpoints ---


@dialogue_router.post("/tick-runner/start")
async def start_tick_runner() -> TickRunnerStatusResponse:
    """Start the background autonomous loop."""
    runner = get_tick_runner()
    if runner is None:
        raise HTTPException(status_code=503, detail="Tick runner not configured.")
    if runner.running:
        raise HTTPException(status_code=409, detail="Tick runner already running.")
    await runner.start()
    return _runner_status(runner)


@dialogue_router.post("/tick-runner/stop")
async def stop_tick_runner() -> TickRunnerStatusResponse:
    runner = get_tick_runner()
    if runner is None:
        raise HTTPException(status_code=503, detail="Tick runner not configured.")
    await runner.stop()
    return _runner_status(runner)


@dialogue_router.get("/tick-runner/status", response_model=TickRunnerStatusResponse)
def tick_runner_status() -> TickRunnerStatusResponse:
    return _runner_status(get_tick_runner())


# --- World State Endpoints ---


@dialogue_router.get("/world", response_model=WorldStatusResponse)
def world_status() -> WorldStatusResponse:
    world = get_world()
    return WorldStatusResponse(
        seed=world.seed,
        turn=world.turn,
        npc_count=len(world.repository),
        templates=len(world.library),
        myth_status=world.mythology.status.value,
    )


@dialogue_router.get("/world/situation", response_model=SituationSpec)
def get_situation() -> SituationSpec:
    return SituationSpec.from_context(get_world().situation)


@dialogue_router.put("/world/situation", response_model=SituationSpec)
async def set_situation(req: SituationSpec) -> SituationSpec:
    """Report where the player is, what they carry and the chosen heat."""
    world = get_world()
    async with world.lock:
        world.situation = req.to_context()
    logger.info("Situation now domain=%r heat=%d", world.situation.domain, world.situation.heat)
    return SituationSpec.from_context(world.situation)


@dialogue_router.get("/world/snapshot")
def get_snapshot() -> dict[str, Any]:
    """Full JSON snapshot of the dialogue state."""
    return get_world().snapshot()


@dialogue_router.post("/world/restore")
async def restore_snapshot(data: dict[str, Any]) -> dict[str, str]:
    """Replace the world with one rebuilt from a snapshot.

    Templates and the chatbase carry over from the current world.
    """
    world = get_world()
    async with world.lock:
        try:
            restored = load_world(data, library=world.library, chatbase=world.chatbase)
        except (KeyError, ValueError, TypeError, AttributeError) as e:
            raise HTTPException(status_code=400, detail=f"Invalid snapshot: {e}") from e
        set_world(restored)
    logger.info("World restored at turn %d with %d NPCs", restored.turn, len(restored.repository))
    return {"status": "restored", "npc_count": str(len(restored.repository))}


@dialogue_router.post("/world/save")
async def save_world() -> dict[str, str]:
    """Write the world to the configured state file."""
    if not WORLD_STATE_PATH:
        raise HTTPException(status_code=503, detail="No world state path configured.")
    world = get_world()
    async with world.lock:
        save_world_file(world, WORLD_STATE_PATH)
    return {"status": "saved", "turn": str(world.turn)}
