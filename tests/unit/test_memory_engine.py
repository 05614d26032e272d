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

"""Tests for NPC memory: eviction, opinions and trauma bonds."""

import pytest

from npc_dialogue.models.memory import MemoryKind, NPCMemory, make_event
from npc_dialogue.simulation.memory_engine import (
    MemoryEngine,
    MemoryStore,
    add_event,
    get_most_memorable_event,
    get_opinion,
    has_recent_conflict,
    has_trauma_bond,
    memory_variables,
    recent_events_with,
    strongest_trauma_bond,
    trauma_bond_strength,
    update_opinion,
)


def _make_memory(*events, capacity: int = 30) -> NPCMemory:
    memory = NPCMemory(owner_id="mr-bones", capacity=capacity)
    for i, (kind, turn, counterpart) in enumerate(events):
        memory = add_event(memory, make_event("mr-bones", kind, turn, counterpart, seq=i))
    return memory


def test_make_event_fills_profile_and_clamps():
    """make_event should fill the kind profile and clamp input."""
    event = make_event("a", MemoryKind.BETRAYAL, 4, "b", seq=2)
    assert event.event_id == "a:4:2"
    assert event.magnitude == 9
    assert event.valence == -1
    clamped = make_event("a", MemoryKind.GIFT, 1, magnitude=50, details="x" * 500)
    assert clamped.magnitude == 10
    assert len(clamped.details) == 200


class TestEviction:
    def test_capacity_respected(self):
        """A memory should never hold more than its capacity."""
        memory = _make_memory(
            *[(MemoryKind.CONVERSATION, t, "b") for t in range(10)], capacity=4
        )
        assert len(memory) == 4
        assert memory.total_recorded == 10

    def test_low_priority_event_evicted_first(self):
        """Low-priority events should be evicted before conflicts."""
        memory = _make_memory(
            (MemoryKind.CONVERSATION, 0, "b"),
            (MemoryKind.CONFLICT, 1, "b"),
            (MemoryKind.CONVERSATION, 2, "b"),
            (MemoryKind.CONFLICT, 3, "b"),
            capacity=3,
        )
        assert [e.turn for e in memory.events] == [1, 2, 3]

    def test_important_old_event_survives(self):
        """An old betrayal should outlast recent small talk."""
        memory = _make_memory(
            (MemoryKind.BETRAYAL, 0, "b"),
            *[(MemoryKind.CONVERSATION, t, "c") for t in range(1, 6)],
            capacity=3,
        )
        assert memory.events[0].kind is MemoryKind.BETRAYAL

    def test_zero_capacity_keeps_nothing(self):
        """A zero-capacity memory should record but keep nothing."""
        memory = _make_memory((MemoryKind.GIFT, 0, "b"), capacity=0)
        assert len(memory) == 0
        assert memory.total_recorded == 1


class TestOpinion:
    def test_no_events_is_neutral(self):
        """Opinion without events should be zero."""
        assert get_opinion(_make_memory(), "b") == 0.0

    def test_positive_event_raises_opinion(self):
        """A gift should raise opinion."""
        memory = _make_memory((MemoryKind.GIFT, 0, "b"))
        assert get_opinion(memory, "b", now=0) == pytest.approx(8.0)

    def test_recency_halves_weight(self):
        """Events fifty turns old should count half."""
        memory = _make_memory((MemoryKind.GIFT, 0, "b"))
        assert get_opinion(memory, "b", now=50) == pytest.approx(4.0)

    def test_clamped(self):
        """Opinion should be clamped to -100."""
        memory = _make_memory(*[(MemoryKind.BETRAYAL, t, "b") for t in range(20)])
        assert get_opinion(memory, "b") == -100.0

    def test_only_counterpart_events_count(self):
        """Opinion should only use events with that counterpart."""
        memory = _make_memory((MemoryKind.GIFT, 0, "b"), (MemoryKind.CONFLICT, 0, "c"))
        assert get_opinion(memory, "b", now=0) > 0
        assert get_opinion(memory, "c", now=0) < 0

    def test_update_opinion_logs_event(self):
        memory = update_opinion(_make_memory(), "b", 10.0, turn=2)
        assert memory.events[-1].kind is MemoryKind.PRAISE
        assert memory.events[-1].magnitude == 5
        assert get_opinion(memory, "b", now=2) == pytest.approx(10.0)
        assert update_opinion(memory, "b", 0.0, turn=3) is memory


class TestTraumaBond:
    def test_repeated_conflict_then_rescue_forms_bond(self):
        """Harm followed by rescue should form a trauma bond."""
        memory = _make_memory(
            *[(MemoryKind.CONFLICT, t, "b") for t in range(10)],
            (MemoryKind.RESCUE, 10, "b"),
        )
        assert has_trauma_bond(memory, "b")
        assert trauma_bond_strength(memory, "b") == 70

    def test_rescue_before_harm_is_no_bond(self):
        """A rescue before the harm should not form a bond."""
        memory = _make_memory(
            (MemoryKind.RESCUE, 0, "b"),
            *[(MemoryKind.CONFLICT, t, "b") for t in range(1, 11)],
        )
        assert not has_trauma_bond(memory, "b")

    def test_minor_harm_does_not_count(self):
        """Insults alone should not form a bond."""
        memory = _make_memory(
            *[(MemoryKind.INSULT, t, "b") for t in range(20)],
            (MemoryKind.RESCUE, 20, "b"),
        )
        assert not has_trauma_bond(memory, "b")

    def test_strongest_bond(self):
        """The strongest bond should be reported with its strength."""
        memory = _make_memory(
            *[(MemoryKind.CONFLICT, t, "b") for t in range(5)],
            (MemoryKind.RESCUE, 5, "b"),
            *[(MemoryKind.BETRAYAL, t, "c") for t in range(6, 12)],
            (MemoryKind.RESCUE, 12, "c"),
        )
        assert strongest_trauma_bond(memory) == ("c", 54)


def test_most_memorable_prefers_recent_on_tie():
    """Ties in memorability should go to the newer event."""
    memory = _make_memory((MemoryKind.CONFLICT, 0, "b"), (MemoryKind.CONFLICT, 5, "c"))
    assert get_most_memorable_event(memory).turn == 5
    assert get_most_memorable_event(_make_memory()) is None


def test_recent_events_with_newest_first():
    """Recent events should be listed newest first."""
    memory = _make_memory(*[(MemoryKind.CONVERSATION, t, "b") for t in range(8)])
    assert [e.turn for e in recent_events_with(memory, "b", limit=3)] == [7, 6, 5]


def test_has_recent_conflict():
    """Recent conflict should respect the window and counterpart."""
    memory = _make_memory((MemoryKind.CONFLICT, 2, "b"), (MemoryKind.CONVERSATION, 20, "b"))
    assert has_recent_conflict(memory, "b", within_turns=5, now=4)
    assert not has_recent_conflict(memory, "b", within_turns=5)
    assert not has_recent_conflict(memory, "c", within_turns=50)


def test_memory_variables():
    """Memory variables should expose counts and the memorable event."""
    memory = _make_memory((MemoryKind.WITNESSED_DEATH, 1, "b"), (MemoryKind.CONFLICT, 3, "b"))
    variables = memory_variables(memory, "b")
    assert variables["deaths_witnessed"] == "1"
    assert variables["memorable_event"] == "conflict"
    assert variables["last_conflict_turn"] == "3"
    assert "opinion" in variables


class TestMemoryEngine:
    def test_record_mutual(self):
        """Mutual records should land in both NPCs' logs."""
        engine = MemoryEngine()
        store, events = engine.record_mutual(
            MemoryStore(), "a", "b", MemoryKind.CONVERSATION, turn=1
        )
        assert len(store.get("a")) == 1
        assert len(store.get("b")) == 1
        assert events[0].counterpart_id == "b"
        assert events[1].counterpart_id == "a"

    def test_store_is_not_mutated(self):
        """Recording should return a new store and leave the old one alone."""
        engine = MemoryEngine()
        original = MemoryStore()
        engine.record(original, "a", MemoryKind.GIFT, 1, "b")
        assert len(original) == 0
        assert len(original.get("a")) == 0

    def test_store_capacity_applies_to_new_logs(self):
        engine = MemoryEngine()
        store = MemoryStore(capacity=2)
        for turn in range(5):
            store, _ = engine.record(store, "a", MemoryKind.CONVERSATION, turn, "b")
        assert len(store.get("a")) == 2
