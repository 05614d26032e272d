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

"""Autonomous NPC-to-NPC simulation.

Each cycle picks a speaker and a listener, runs one turn through the
normal selection pipeline and scores how interesting it was. Interesting
turns are kept as events and grouped into storylines:

  emerging --3 events--> active --big event while tense--> climax
  climax --5 quiet turns--> resolved
  any --momentum gone after 20 quiet turns--> abandoned

Now and then the pair talks about the player, spreading rumors through
the player mythology.

The loop keeps only bookkeeping (events, storylines, anomalies). All
dialogue state lives in the World, so a loop can be rebuilt around a
restored world at any time.
"""

from __future__ import annotations

import asyncio
import enum
import logging
import time
from collections import Counter, deque
from dataclasses import dataclass, field
from typing import Any

from npc_dialogue.config import (
    CYCLES_PER_BATCH,
    INTEREST_THRESHOLD,
    LARGE_STAT_SWING,
    LOOP_DETECTION_WINDOW,
    MAX_STORED_EVENTS,
    MYTH_EVOLVE_EVERY_CYCLES,
    PLAYER_MYTH_FREQUENCY,
    STORYLINE_DECAY_TURNS,
    STORYLINE_MIN_SCORE,
    STUCK_STATE_THRESHOLD,
    YIELD_EVERY_CYCLES,
)
from npc_dialogue.core.rng import SeededRng, create_rng
from npc_dialogue.models.memory import MemoryKind
from npc_dialogue.models.relationship import STAT_NAMES
from npc_dialogue.models.templates import TemplatePool
from npc_dialogue.search.goals import evaluate_state
from npc_dialogue.search.snapshot import SimulationSnapshot, build_snapshot, next_pool
from npc_dialogue.world.interaction import InteractionEngine, InteractionTurn
from npc_dialogue.world.registry import World

logger = logging.getLogger(__name__)


class InterestType(enum.Enum):
    FIRST_MEETING = "first_meeting"
    SECRET_REVEALED = "secret_revealed"
    ALLIANCE_FORMED = "alliance_formed"
    BETRAYAL = "betrayal"
    HIGH_TENSION = "high_tension"
    BEHAVIORAL_SHIFT = "behavioral_shift"
    PLAYER_DISCUSSED = "player_discussed"
    CONFLICT_STARTED = "conflict_started"
    KNOWLEDGE_TRANSFER = "knowledge_transfer"
    RELATIONSHIP_MILESTONE = "relationship_milestone"
    RARE_EVENT = "rare_event"
    OBJECTIVE_COMPLETED = "objective_completed"


IT = InterestType

INTEREST_SCORES: dict[InterestType, int] = {
    IT.FIRST_MEETING: 30,
    IT.SECRET_REVEALED: 50,
    IT.ALLIANCE_FORMED: 40,
    IT.BETRAYAL: 60,
    IT.HIGH_TENSION: 35,
    IT.BEHAVIORAL_SHIFT: 25,
    IT.PLAYER_DISCUSSED: 40,
    IT.CONFLICT_STARTED: 35,
    IT.KNOWLEDGE_TRANSFER: 25,
    IT.RELATIONSHIP_MILESTONE: 35,
    IT.RARE_EVENT: 30,
    IT.OBJECTIVE_COMPLETED: 30,
}

_RARE_MEMORIES = frozenset(
    {
        MemoryKind.RESCUE,
        MemoryKind.ALLIANCE,
        MemoryKind.GIFT,
        MemoryKind.DEATH,
        MemoryKind.WITNESSED_DEATH,
    }
)
_CONFLICT_POOLS = frozenset({TemplatePool.THREAT, TemplatePool.NPC_CONFLICT})
_LORE_POOLS = frozenset({TemplatePool.LORE, TemplatePool.NPC_LORE})
_HIGH_TENSION = 0.7
_PEAK_TENSION = 0.8
_PEAK_TENSION_BONUS = 15
_SECRET_DEPTH = 5
_MAX_INTEREST = 100


class StorylineType(enum.Enum):
    RIVALRY = "rivalry"
    ALLIANCE = "alliance"
    MYSTERY = "mystery"
    TRAGEDY = "tragedy"
    CONSPIRACY = "conspiracy"


class StorylineStatus(enum.Enum):
    EMERGING = "emerging"
    ACTIVE = "active"
    CLIMAX = "climax"
    RESOLVED = "resolved"
    ABANDONED = "abandoned"


_STORYLINE_TYPES: dict[InterestType, StorylineType] = {
    IT.CONFLICT_STARTED: StorylineType.RIVALRY,
    IT.HIGH_TENSION: StorylineType.RIVALRY,
    IT.ALLIANCE_FORMED: StorylineType.ALLIANCE,
    IT.SECRET_REVEALED: StorylineType.MYSTERY,
    IT.BETRAYAL: StorylineType.TRAGEDY,
    IT.PLAYER_DISCUSSED: StorylineType.CONSPIRACY,
}


class AnomalyType(enum.Enum):
    STUCK_STATE = "stuck_state"
    CONVERSATION_LOOP = "conversation_loop"
    RELATIONSHIP_PARADOX = "relationship_paradox"
    EXTREME_STATS = "extreme_stats"


@dataclass(frozen=True)
class AutonomousConfig:
    cycles_per_batch: int = CYCLES_PER_BATCH
    interest_threshold: int = INTEREST_THRESHOLD
    max_stored_events: int = MAX_STORED_EVENTS
    large_stat_swing: float = LARGE_STAT_SWING
    player_myth_frequency: float = PLAYER_MYTH_FREQUENCY
    storyline_min_score: int = STORYLINE_MIN_SCORE
    storyline_decay_turns: int = STORYLINE_DECAY_TURNS
    storyline_decay_rate: float = 0.1
    stuck_state_threshold: int = STUCK_STATE_THRESHOLD
    loop_detection_window: int = LOOP_DETECTION_WINDOW
    myth_evolve_every: int = MYTH_EVOLVE_EVERY_CYCLES
    yield_every: int = YIELD_EVERY_CYCLES


@dataclass(frozen=True)
class InterestingEvent:
    """A turn worth remembering.

    Attributes:
        event_id: "event:{turn}:{speaker}".
        turn: Turn the line was spoken at.
        speaker: Speaking NPC.
        listener: Addressed NPC.
        kind: Primary interest type (first tag).
        tags: Every interest type the turn matched.
        description: One-line summary.
        response_id: Line that was spoken.
        interest_score: 0-100.
        tension: Thread tension after the turn.
    """

    event_id: str
    turn: int
    speaker: str
    listener: str
    kind: InterestType
    tags: tuple[InterestType, ...]
    description: str
    response_id: str
    interest_score: int
    tension: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "event_id": self.event_id,
            "turn": self.turn,
            "speaker": self.speaker,
            "listener": self.listener,
            "kind": self.kind.value,
            "tags": [t.value for t in self.tags],
            "description": self.description,
            "response_id": self.response_id,
            "interest_score": self.interest_score,
            "tension": self.tension,
        }


@dataclass
class Storyline:
    storyline_id: str
    kind: StorylineType
    title: str
    primary: list[str]
    start_turn: int
    last_activity: int
    events: list[str] = field(default_factory=list)
    status: StorylineStatus = StorylineStatus.EMERGING
    tension: float = 0.3
    momentum: float = 0.5

    @property
    def active(self) -> bool:
        return self.status not in (StorylineStatus.RESOLVED, StorylineStatus.ABANDONED)

    def to_dict(self) -> dict[str, Any]:
        return {
            "storyline_id": self.storyline_id,
            "kind": self.kind.value,
            "title": self.title,
            "primary": list(self.primary),
            "start_turn": self.start_turn,
            "last_activity": self.last_activity,
            "events": list(self.events),
            "status": self.status.value,
            "tension": self.tension,
            "momentum": self.momentum,
        }


@dataclass(frozen=True)
class BehaviorAnomaly:
    kind: AnomalyType
    npc: str
    description: str
    turn: int
    severity: str = "low"


@dataclass(frozen=True)
class CycleResult:
    turn: InteractionTurn | None = None
    event: InterestingEvent | None = None
    anomaly: BehaviorAnomaly | None = None


@dataclass(frozen=True)
class BatchResult:
    cycles_run: int
    turns: tuple[InteractionTurn, ...]
    events: tuple[InterestingEvent, ...]
    anomalies: tuple[BehaviorAnomaly, ...]
    active_storylines: tuple[Storyline, ...]
    elapsed_ms: float = 0.0


def _title(kind: StorylineType, people: list[str]) -> str:
    first = people[0]
    second = people[1] if len(people) > 1 else "?"
    if kind is StorylineType.RIVALRY:
        return f"The {first}-{second} Rivalry"
    if kind is StorylineType.ALLIANCE:
        return f"The {first}-{second} Alliance"
    if kind is StorylineType.TRAGEDY:
        return f"The Fall of {first}"
    if kind is StorylineType.CONSPIRACY:
        return f"The Conspiracy of {first}"
    return "The Mystery Unfolds"


def _describe(kind: InterestType, speaker: str, listener: str) -> str:
    return {
        IT.FIRST_MEETING: f"{speaker} and {listener} had their first real conversation",
        IT.SECRET_REVEALED: f"{speaker} revealed a secret to {listener}",
        IT.ALLIANCE_FORMED: f"{speaker} formed an alliance with {listener}",
        IT.BETRAYAL: f"{speaker} betrayed {listener}",
        IT.HIGH_TENSION: f"Tension peaked during {speaker}'s confrontation",
        IT.BEHAVIORAL_SHIFT: f"{speaker} changed behavior while talking to {listener}",
        IT.PLAYER_DISCUSSED: f"{speaker} told {listener} about the player",
        IT.CONFLICT_STARTED: f"{speaker} started a conflict with {listener}",
        IT.KNOWLEDGE_TRANSFER: f"{speaker} shared knowledge with {listener}",
        IT.RELATIONSHIP_MILESTONE: f"{speaker} and {listener} reached a relationship milestone",
        IT.RARE_EVENT: f"{speaker} and {listener} shared a memorable moment",
        IT.OBJECTIVE_COMPLETED: f"{speaker} got what they wanted from {listener}",
    }[kind]


class AutonomousSimulation:
    """Drives NPC-to-NPC turns with no player present.

    Args:
        world: World to run against. The loop holds no dialogue state.
        config: Loop tuning.
    """

    def __init__(self, world: World, config: AutonomousConfig | None = None):
        self.world = world
        self.config = config or AutonomousConfig()
        self.interaction = InteractionEngine(world)
        self.events: list[InterestingEvent] = []
        self.storylines: dict[str, Storyline] = {}
        self.anomalies: list[BehaviorAnomaly] = []
        self.total_cycles = 0
        self._recent_lines: deque[tuple[str, str]] = deque(
            maxlen=self.config.loop_detection_window
        )

    # --- Running ---

    def run_cycle(self) -> CycleResult:
        """One autonomous turn. Returns an empty result with fewer than two NPCs."""
        world = self.world
        rng = create_rng(f"{world.seed}:autonomous:{world.turn}")
        pair = self._pick_pair(rng)
        self.total_cycles += 1
        if pair is None:
            return CycleResult()
        speaker, listener = pair

        first_meeting = not world.relationships.has(listener, speaker)
        before = self._snapshot(speaker, listener)
        pool = next_pool(before, speaker, rng)
        turn = self.interaction.run_turn(speaker, listener, pool=pool)
        after = self._snapshot(speaker, listener)

        tags = self._classify(turn, before, after, first_meeting)
        event = self._score(turn, tags, after.thread.tension)
        myth_event = self._discuss_player(speaker, listener, turn.turn_number, rng, after)
        event = event or myth_event
        if event is not None:
            self._keep(event)
            self._update_storylines(event)
        self._decay_storylines(world.turn)
        anomaly = self._detect_anomaly(turn)
        if anomaly is not None:
            self.anomalies.append(anomaly)
            del self.anomalies[: -self.config.max_stored_events]
            logger.warning("Anomaly %s: %s", anomaly.kind.value, anomaly.description)
        if self.config.myth_evolve_every and self.total_cycles % self.config.myth_evolve_every == 0:
            world.mythology.evolve(world.turn)
        return CycleResult(turn=turn, event=event, anomaly=anomaly)

    def run_batch(self, cycles: int | None = None) -> BatchResult:
        """Run a bounded number of cycles back to back."""
        count = self.config.cycles_per_batch if cycles is None else max(0, cycles)
        start = time.perf_counter()
        results = [self.run_cycle() for _ in range(count)]
        return self._batch(results, start)

    async def run_batch_async(self, cycles: int | None = None) -> BatchResult:
        """Like run_batch, but holds the world lock in short stretches and
        yields to the event loop every few cycles."""
        count = self.config.cycles_per_batch if cycles is None else max(0, cycles)
        step = max(1, self.config.yield_every)
        start = time.perf_counter()
        results: list[CycleResult] = []
        while len(results) < count:
            async with self.world.lock:
                for _ in range(min(step, count - len(results))):
                    results.append(self.run_cycle())
            await asyncio.sleep(0)
        return self._batch(results, start)

    def _batch(self, results: list[CycleResult], start: float) -> BatchResult:
        batch = BatchResult(
            cycles_run=len(results),
            turns=tuple(r.turn for r in results if r.turn is not None),
            events=tuple(r.event for r in results if r.event is not None),
            anomalies=tuple(r.anomaly for r in results if r.anomaly is not None),
            active_storylines=tuple(self.active_storylines()),
            elapsed_ms=(time.perf_counter() - start) * 1000.0,
        )
        logger.info(
            "Autonomous batch: %d cycles, %d events, %d anomalies",
            batch.cycles_run,
            len(batch.events),
            len(batch.anomalies),
        )
        return batch

    # --- Pair and pool selection ---

    def _pick_pair(self, rng: SeededRng) -> tuple[str, str] | None:
        npcs = self.world.repository.list()
        if len(npcs) < 2:
            return None
        speaker = rng.weighted([(n, max(0.05, n.sociability)) for n in npcs], "speaker")
        if speaker is None:
            return None
        relationships = self.world.relationships
        weighted = []
        for other in npcs:
            if other.slug == speaker.slug:
                continue
            stats = relationships.stats(speaker.slug, other.slug)
            weighted.append((other.slug, max(1.0, stats.familiarity + stats.trust + 50.0)))
        listener = rng.weighted(weighted, "listener")
        if listener is None:
            return None
        return speaker.slug, listener

    def _snapshot(self, speaker: str, listener: str) -> SimulationSnapshot:
        world = self.world
        moods = {}
        personalities = {}
        for slug in (speaker, listener):
            npc = world.repository.get(slug)
            if npc is not None:
                moods[slug] = npc.default_mood
                personalities[slug] = npc
        return build_snapshot(
            (speaker, listener),
            world.relationships,
            world.thread_for(speaker, listener),
            world.seed,
            behaviors=world.behaviors,
            default_moods=moods,
            personalities=personalities,
            situation=world.situation,
        )

    # --- Interest ---

    def _classify(
        self,
        turn: InteractionTurn,
        before: SimulationSnapshot,
        after: SimulationSnapshot,
        first_meeting: bool,
    ) -> list[InterestType]:
        tags: list[InterestType] = []
        tension = after.thread.tension
        if turn.pool in _CONFLICT_POOLS:
            if tension > _HIGH_TENSION:
                tags.append(IT.HIGH_TENSION)
            tags.append(IT.CONFLICT_STARTED)
        if turn.pool is TemplatePool.NPC_ALLIANCE:
            tags.append(IT.ALLIANCE_FORMED)
        if turn.shared_fact is not None:
            tags.append(IT.KNOWLEDGE_TRANSFER)
        if turn.pool in _LORE_POOLS:
            active = after.thread.get_active_topic()
            if active is not None and active.depth >= _SECRET_DEPTH:
                tags.append(IT.SECRET_REVEALED)
        kinds = {m.kind for m in turn.memory_events}
        if MemoryKind.BETRAYAL in kinds:
            tags.append(IT.BETRAYAL)
        if kinds & _RARE_MEMORIES:
            tags.append(IT.RARE_EVENT)
        behavior = after.behavior(turn.speaker)
        if behavior.turns_in_state == 0 and behavior.previous is not None:
            tags.append(IT.BEHAVIORAL_SHIFT)
        if any(abs(c.change) >= self.config.large_stat_swing for c in turn.stat_changes):
            tags.append(IT.RELATIONSHIP_MILESTONE)
        if first_meeting:
            tags.append(IT.FIRST_MEETING)
        objectives = self.world.objectives_for(turn.speaker)
        if objectives is not None:
            was = set(evaluate_state(before, turn.speaker, objectives, before).achieved)
            now = set(evaluate_state(after, turn.speaker, objectives, before).achieved)
            if now - was:
                tags.append(IT.OBJECTIVE_COMPLETED)
        return tags

    def _score(
        self, turn: InteractionTurn, tags: list[InterestType], tension: float
    ) -> InterestingEvent | None:
        if not tags:
            return None
        score = sum(INTEREST_SCORES[t] for t in tags)
        if tension > _PEAK_TENSION:
            score += _PEAK_TENSION_BONUS
        score = min(_MAX_INTEREST, score)
        if score < self.config.interest_threshold:
            return None
        return InterestingEvent(
            event_id=f"event:{turn.turn_number}:{turn.speaker}",
            turn=turn.turn_number,
            speaker=turn.speaker,
            listener=turn.listener,
            kind=tags[0],
            tags=tuple(tags),
            description=_describe(tags[0], turn.speaker, turn.listener),
            response_id=turn.response_id,
            interest_score=score,
            tension=tension,
        )

    def _discuss_player(
        self,
        speaker: str,
        listener: str,
        turn: int,
        rng: SeededRng,
        state: SimulationSnapshot,
    ) -> InterestingEvent | None:
        if rng.random("myth") >= self.config.player_myth_frequency:
            return None
        spread = self.world.mythology.spread_rumor(speaker, listener, turn)
        if spread is None:
            return None
        score = INTEREST_SCORES[IT.PLAYER_DISCUSSED]
        if score < self.config.interest_threshold:
            return None
        return InterestingEvent(
            event_id=f"event:{turn}:{speaker}:player",
            turn=turn,
            speaker=speaker,
            listener=listener,
            kind=IT.PLAYER_DISCUSSED,
            tags=(IT.PLAYER_DISCUSSED,),
            description=f'{speaker} told {listener} "{spread.theory.short_form}"',
            response_id="",
            interest_score=score,
            tension=state.thread.tension,
        )

    def _keep(self, event: InterestingEvent) -> None:
        self.events.append(event)
        overflow = len(self.events) - self.config.max_stored_events
        if overflow > 0:
            del self.events[:overflow]

    # --- Storylines ---

    def _update_storylines(self, event: InterestingEvent) -> None:
        people = [event.speaker, event.listener]
        related = [
            s for s in self.storylines.values() if s.active and any(p in s.primary for p in people)
        ]
        for storyline in related:
            storyline.events.append(event.event_id)
            storyline.last_activity = event.turn
            storyline.momentum = min(1.0, storyline.momentum + 0.1)
            storyline.tension = max(storyline.tension, event.tension)
            if event.interest_score > 50 and storyline.tension > _HIGH_TENSION:
                storyline.status = StorylineStatus.CLIMAX
            elif storyline.status is StorylineStatus.EMERGING and len(storyline.events) >= 3:
                storyline.status = StorylineStatus.ACTIVE
        if related or event.interest_score < self.config.storyline_min_score:
            return
        kind = next((_STORYLINE_TYPES[t] for t in event.tags if t in _STORYLINE_TYPES), None)
        if kind is None:
            return
        storyline = Storyline(
            storyline_id=f"storyline:{event.event_id}",
            kind=kind,
            title=_title(kind, people),
            primary=people,
            start_turn=event.turn,
            last_activity=event.turn,
            events=[event.event_id],
            tension=max(0.3, event.tension),
        )
        self.storylines[storyline.storyline_id] = storyline
        logger.info("New storyline: %s", storyline.title)

    def _decay_storylines(self, current_turn: int) -> None:
        for storyline in self.storylines.values():
            if not storyline.active:
                continue
            idle = current_turn - storyline.last_activity
            if storyline.status is StorylineStatus.CLIMAX and idle > 5:
                storyline.status = StorylineStatus.RESOLVED
                continue
            if idle > self.config.storyline_decay_turns:
                storyline.momentum -= self.config.storyline_decay_rate
                if storyline.momentum <= 0:
                    storyline.momentum = 0.0
                    storyline.status = StorylineStatus.ABANDONED

    def active_storylines(self) -> list[Storyline]:
        return [s for s in self.storylines.values() if s.active]

    # --- Anomalies ---

    def _detect_anomaly(self, turn: InteractionTurn) -> BehaviorAnomaly | None:
        world = self.world
        speaker = turn.speaker
        now = turn.turn_number

        behavior = world.behaviors.get(speaker)
        if behavior is not None and behavior.turns_in_state >= self.config.stuck_state_threshold:
            return BehaviorAnomaly(
                AnomalyType.STUCK_STATE,
                speaker,
                f"{speaker} stuck in {behavior.current.value} for "
                f"{behavior.turns_in_state} turns",
                now,
                "high" if behavior.turns_in_state > 25 else "medium",
            )

        line = (speaker, turn.response_id)
        self._recent_lines.append(line)
        repeats = self._recent_lines.count(line)
        if repeats >= 3:
            return BehaviorAnomaly(
                AnomalyType.CONVERSATION_LOOP,
                speaker,
                f"{speaker} said {turn.response_id} {repeats} times recently",
                now,
                "medium",
            )

        for rel in world.relationships.for_owner(speaker):
            stats = rel.stats
            if stats.trust > 60 and stats.fear > 60:
                return BehaviorAnomaly(
                    AnomalyType.RELATIONSHIP_PARADOX,
                    speaker,
                    f"{speaker} both trusts ({stats.trust:g}) and fears "
                    f"({stats.fear:g}) {rel.target_id}",
                    now,
                )
            extremes = [s for s in STAT_NAMES if abs(stats.get(s)) >= 95]
            if len(extremes) >= 3:
                return BehaviorAnomaly(
                    AnomalyType.EXTREME_STATS,
                    speaker,
                    f"{speaker} has {len(extremes)} extreme stats toward {rel.target_id}",
                    now,
                )
        return None

    # --- Queries ---

    def recent_events(self, count: int = 10) -> list[InterestingEvent]:
        """Newest `count` events, oldest first. Empty for a non-positive count."""
        if count <= 0:
            return []
        return self.events[-count:]

    def reset(self) -> None:
        """Drop bookkeeping. The world is left untouched."""
        self.events.clear()
        self.storylines.clear()
        self.anomalies.clear()
        self._recent_lines.clear()
        self.total_cycles = 0

    def rebind(self, world: World) -> None:
        """Point the loop at another world (e.g. after a restore) and reset."""
        self.world = world
        self.interaction = InteractionEngine(world)
        self.reset()


def summarize_batch(batch: BatchResult) -> dict[str, Any]:
    """Compact, JSON-friendly overview of a batch."""
    sources = Counter(t.source.value for t in batch.turns)
    pools = Counter(t.pool.value for t in batch.turns)
    top = max(batch.events, key=lambda e: e.interest_score, default=None)
    return {
        "cycles": batch.cycles_run,
        "turns": len(batch.turns),
        "sources": dict(sources),
        "pools": dict(pools),
        "events": len(batch.events),
        "top_event": top.description if top is not None else None,
        "anomalies": [a.kind.value for a in batch.anomalies],
        "active_storylines": [s.title for s in batch.active_storylines],
        "elapsed_ms": round(batch.elapsed_ms, 2),
    }
