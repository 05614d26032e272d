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

"""Memory engine - bounded event logs, derived opinions, trauma bonds.

Eviction:
  When a log exceeds capacity, the event with the lowest priority is
  dropped. The incoming event competes like any other.

    priority = magnitude * MEMORY_MAGNITUDE_WEIGHT - age * MEMORY_AGE_WEIGHT

  where age is measured in turns from the newest event. Ties drop the
  older event.

Opinion (never stored):
    opinion = sum(valence * magnitude * 2 * 0.5 ** (age / half_life))
  over events with the counterpart, clamped to [-100, 100].

Trauma bond:
  Walking the counterpart's events oldest first, negative events of
  magnitude >= TRAUMA_BOND_MIN_MAGNITUDE accumulate weight. Once the
  weight reaches TRAUMA_BOND_NEGATIVE_WEIGHT, any later positive event
  of qualifying magnitude from the same counterpart forms the bond.
"""

from __future__ import annotations

import math
from collections.abc import Iterator, Mapping
from dataclasses import replace

import numpy as np

from npc_dialogue.config import (
    MEMORY_AGE_WEIGHT,
    MEMORY_CAPACITY,
    MEMORY_MAGNITUDE_WEIGHT,
    OPINION_RECENCY_HALF_LIFE,
    TRAUMA_BOND_MIN_MAGNITUDE,
    TRAUMA_BOND_NEGATIVE_WEIGHT,
)
from npc_dialogue.models.memory import MemoryEvent, MemoryKind, NPCMemory, make_event

_OPINION_SCALE = 2.0
_CONFLICT_KINDS = frozenset({MemoryKind.CONFLICT, MemoryKind.BETRAYAL, MemoryKind.INSULT})


def eviction_priority(event: MemoryEvent, newest_turn: int) -> float:
    age = max(0, newest_turn - event.turn)
    return event.magnitude * MEMORY_MAGNITUDE_WEIGHT - age * MEMORY_AGE_WEIGHT


def add_event(memory: NPCMemory, event: MemoryEvent) -> NPCMemory:
    """Append an event, evicting the lowest-priority ones past capacity.

    Args:
        memory: Current log (not mutated).
        event: Event to append.

    Returns:
        New log with at most `memory.capacity` events.
    """
    events = memory.events + (event,)
    capacity = max(0, memory.capacity)
    if len(events) > capacity:
        newest = max(e.turn for e in events)
        # Sort key puts the first victims first: low priority, then older.
        ranked = sorted(
            range(len(events)),
            key=lambda i: (eviction_priority(events[i], newest), events[i].turn, i),
        )
        evicted = set(ranked[: len(events) - capacity])
        events = tuple(e for i, e in enumerate(events) if i not in evicted)
    return replace(memory, events=events, total_recorded=memory.total_recorded + 1)


def events_with(memory: NPCMemory, counterpart_id: str) -> list[MemoryEvent]:
    return [e for e in memory.events if e.counterpart_id == counterpart_id]


def get_opinion(
    memory: NPCMemory,
    counterpart_id: str,
    now: int | None = None,
) -> float:
    """Opinion of a counterpart in [-100, 100], recomputed from events.

    Args:
        memory: The owner's log.
        counterpart_id: Who the opinion is about.
        now: Reference turn for recency; defaults to the newest event.
    """
    relevant = events_with(memory, counterpart_id)
    if not relevant:
        return 0.0
    reference = now if now is not None else max(e.turn for e in memory.events)
    ages = np.array([max(0, reference - e.turn) for e in relevant], dtype=np.float64)
    signed = np.array([e.valence * e.magnitude for e in relevant], dtype=np.float64)
    decay = np.power(0.5, ages / OPINION_RECENCY_HALF_LIFE)
    total = float(np.sum(signed * decay)) * _OPINION_SCALE
    return float(np.clip(total, -100.0, 100.0))


def update_opinion(
    memory: NPCMemory,
    counterpart_id: str,
    delta: float,
    turn: int,
    details: str = "",
) -> NPCMemory:
    """Shift an opinion by logging a praise or insult event.

    The opinion itself stays derived; this only adds the event whose
    contribution approximates `delta`.
    """
    if not math.isfinite(delta) or delta == 0:
        return memory
    kind = MemoryKind.PRAISE if delta > 0 else MemoryKind.INSULT
    magnitude = max(1, min(10, math.ceil(abs(delta) / _OPINION_SCALE)))
    event = make_event(
        memory.owner_id,
        kind,
        turn,
        counterpart_id=counterpart_id,
        magnitude=magnitude,
        details=details or "opinion shift",
        seq=memory.total_recorded,
    )
    return add_event(memory, event)


def trauma_bond_strength(memory: NPCMemory, counterpart_id: str) -> int:
    """Negative weight accumulated before the bond formed, or 0 if none."""
    negative = 0
    for event in events_with(memory, counterpart_id):
        if event.magnitude < TRAUMA_BOND_MIN_MAGNITUDE:
            continue
        if event.valence < 0:
            negative += event.magnitude
        elif event.valence > 0 and negative >= TRAUMA_BOND_NEGATIVE_WEIGHT:
            return negative
    return 0


def has_trauma_bond(memory: NPCMemory, counterpart_id: str) -> bool:
    """Whether heavy harm from the counterpart was later followed by help."""
    return trauma_bond_strength(memory, counterpart_id) > 0


def strongest_trauma_bond(memory: NPCMemory) -> tuple[str, int] | None:
    counterparts = sorted({e.counterpart_id for e in memory.events if e.counterpart_id})
    best: tuple[str, int] | None = None
    for other in counterparts:
        strength = trauma_bond_strength(memory, other)
        if strength and (best is None or strength > best[1]):
            best = (other, strength)
    return best


def get_most_memorable_event(memory: NPCMemory) -> MemoryEvent | None:
    """Highest-magnitude event; the most recent one wins ties."""
    if not memory.events:
        return None
    return max(memory.events, key=lambda e: (e.magnitude, e.turn))


def recent_events_with(
    memory: NPCMemory,
    counterpart_id: str,
    limit: int = 5,
) -> list[MemoryEvent]:
    """Events with a counterpart, newest first."""
    return list(reversed(events_with(memory, counterpart_id)))[:limit]


def has_recent_conflict(
    memory: NPCMemory,
    counterpart_id: str | None = None,
    within_turns: int = 10,
    now: int | None = None,
) -> bool:
    if not memory.events:
        return False
    reference = now if now is not None else max(e.turn for e in memory.events)
    for event in memory.events:
        if event.kind not in _CONFLICT_KINDS:
            continue
        if counterpart_id is not None and event.counterpart_id != counterpart_id:
            continue
        if reference - event.turn <= within_turns:
            return True
    return False


def memory_variables(memory: NPCMemory, counterpart_id: str | None = None) -> dict[str, str]:
    """Values for {{variable}} substitution in template text."""
    variables: dict[str, str] = {
        "deaths_witnessed": str(
            sum(1 for e in memory.events if e.kind is MemoryKind.WITNESSED_DEATH)
        ),
    }
    memorable = get_most_memorable_event(memory)
    if memorable is not None:
        variables["memorable_event"] = memorable.kind.value
        if memorable.counterpart_id:
            variables["memorable_npc"] = memorable.counterpart_id
    bond = strongest_trauma_bond(memory)
    if bond is not None:
        variables["trauma_bond_npc"] = bond[0]
    if counterpart_id is not None:
        variables["opinion"] = str(int(round(get_opinion(memory, counterpart_id))))
        conflicts = [
            e for e in events_with(memory, counterpart_id) if e.kind in _CONFLICT_KINDS
        ]
        if conflicts:
            variables["last_conflict_turn"] = str(conflicts[-1].turn)
    return variables


class MemoryStore:
    """Immutable map of owner_id -> NPCMemory with lazy empty defaults."""

    def __init__(
        self,
        memories: Mapping[str, NPCMemory] | None = None,
        capacity: int = MEMORY_CAPACITY,
    ):
        self._items: dict[str, NPCMemory] = dict(memories or {})
        self.capacity = capacity

    def get(self, owner_id: str) -> NPCMemory:
        memory = self._items.get(owner_id)
        if memory is None:
            return NPCMemory(owner_id=owner_id, capacity=self.capacity)
        return memory

    def with_memory(self, memory: NPCMemory) -> MemoryStore:
        items = dict(self._items)
        items[memory.owner_id] = memory
        return MemoryStore(items, self.capacity)

    def __iter__(self) -> Iterator[NPCMemory]:
        return iter(self._items.values())

    def __len__(self) -> int:
        return len(self._items)


class MemoryEngine:
    """Records interaction outcomes into a MemoryStore."""

    def record(
        self,
        store: MemoryStore,
        owner_id: str,
        kind: MemoryKind,
        turn: int,
        counterpart_id: str | None = None,
        magnitude: int | None = None,
        details: str = "",
    ) -> tuple[MemoryStore, MemoryEvent]:
        """Append one event to an NPC's log.

        Returns:
            (new store, the event that was appended).
        """
        memory = store.get(owner_id)
        event = make_event(
            owner_id,
            kind,
            turn,
            counterpart_id=counterpart_id,
            magnitude=magnitude,
            details=details,
            seq=memory.total_recorded,
        )
        return store.with_memory(add_event(memory, event)), event

    def record_mutual(
        self,
        store: MemoryStore,
        npc_a: str,
        npc_b: str,
        kind: MemoryKind,
        turn: int,
        magnitude: int | None = None,
        details: str = "",
    ) -> tuple[MemoryStore, list[MemoryEvent]]:
        """Append the same kind of event to both participants' logs."""
        store, event_a = self.record(store, npc_a, kind, turn, npc_b, magnitude, details)
        store, event_b = self.record(store, npc_b, kind, turn, npc_a, magnitude, details)
        return store, [event_a, event_b]
