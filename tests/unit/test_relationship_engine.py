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

"""Tests for the relationship engine."""

import math

import pytest

from npc_dialogue.config import MAX_RELATIONSHIP_HISTORY
from npc_dialogue.models.relationship import (
    Disposition,
    MoodContext,
    MoodTrend,
    MoodType,
    Relationship,
    RelationshipEventKind,
    RelationshipStats,
)
from npc_dialogue.simulation.relationship_engine import (
    RelationshipEngine,
    RelationshipStore,
    clamp_stat,
    decay_toward_neutral,
    derive_mood,
    derive_mood_state,
    disposition,
    modify_stat,
    price_modifier,
    record_event,
    would_initiate_conversation,
)


def _make_rel(**stats) -> Relationship:
    return Relationship(owner_id="a", target_id="b", stats=RelationshipStats(**stats))


class TestModifyStat:
    def test_applies_delta(self):
        """modify_stat should apply the delta and describe the change."""
        rel, change = modify_stat(_make_rel(), "respect", 15.0, "praise", turn=3)
        assert rel.stats.respect == 15.0
        assert change.previous == 0.0
        assert change.new == 15.0
        assert change.change == 15.0
        assert change.turn == 3
        assert change.source_id == "a"
        assert change.target_id == "b"
        assert not change.clamped

    def test_clamps_and_reports(self):
        """Overflowing changes should be clamped and flagged."""
        rel, change = modify_stat(_make_rel(familiarity=95.0), "familiarity", 10.0)
        assert rel.stats.familiarity == 100.0
        assert change.change == 5.0
        assert change.requested == 10.0
        assert change.clamped

    def test_fully_clamped_change_still_recorded(self):
        """A change clamped to nothing should still be recorded."""
        rel, change = modify_stat(_make_rel(fear=0.0), "fear", -10.0)
        assert rel.stats.fear == 0.0
        assert change.change == 0.0
        assert change.clamped

    def test_does_not_mutate_input(self):
        """modify_stat should leave the input relationship alone."""
        original = _make_rel(trust=5.0)
        modify_stat(original, "trust", 20.0)
        assert original.stats.trust == 5.0

    def test_non_finite_delta_counts_as_zero(self):
        """A NaN delta should be treated as zero."""
        rel, change = modify_stat(_make_rel(trust=5.0), "trust", math.nan)
        assert rel.stats.trust == 5.0
        assert change.requested == 0.0

    def test_unknown_stat_raises(self):
        """An unknown stat should raise KeyError."""
        with pytest.raises(KeyError):
            modify_stat(_make_rel(), "charisma", 1.0)


def test_clamp_stat_non_finite_becomes_zero():
    """clamp_stat should bound values and zero out infinities."""
    assert clamp_stat("respect", math.inf) == 0.0
    assert clamp_stat("respect", 500.0) == 100.0
    assert clamp_stat("debt", -5000.0) == -1000.0


def test_record_event_bounds_history():
    """History should keep only the newest entries."""
    rel = _make_rel()
    for turn in range(MAX_RELATIONSHIP_HISTORY + 5):
        rel = record_event(rel, RelationshipEventKind.CONVERSATION, turn)
    assert len(rel.history) == MAX_RELATIONSHIP_HISTORY
    assert rel.history[0].turn == MAX_RELATIONSHIP_HISTORY + 4
    assert rel.interaction_count == MAX_RELATIONSHIP_HISTORY + 5
    assert rel.last_interaction == MAX_RELATIONSHIP_HISTORY + 4


class TestMood:
    def test_fresh_relationship_is_curious(self):
        """A fresh relationship should read as curious."""
        assert derive_mood(RelationshipStats()) is MoodType.CURIOUS

    def test_threatening_when_disrespected_and_unafraid(self):
        """Contempt without fear should read as threatening."""
        assert derive_mood(RelationshipStats(respect=-60.0)) is MoodType.THREATENING

    def test_fearful(self):
        """High fear should read as fearful."""
        assert derive_mood(RelationshipStats(fear=80.0)) is MoodType.FEARFUL

    def test_generous(self):
        """Respect, trust and familiarity together should read as generous."""
        stats = RelationshipStats(respect=70.0, trust=60.0, familiarity=50.0)
        assert derive_mood(stats) is MoodType.GENEROUS

    def test_override_wins(self):
        """An override should beat the stats."""
        ctx = MoodContext(override=MoodType.SAD)
        assert derive_mood(RelationshipStats(fear=90.0), ctx) is MoodType.SAD

    def test_default_mood_when_nothing_matches(self):
        """The default mood should apply when no rule matches."""
        stats = RelationshipStats(fear=55.0)
        ctx = MoodContext(default_mood=MoodType.SAD)
        assert derive_mood(stats, ctx) is MoodType.SAD

    def test_recent_event_shifts_mood(self):
        """A recent combat should tip the mood to fear."""
        stats = RelationshipStats(fear=55.0)
        ctx = MoodContext(recent_event="combat_start")
        assert derive_mood(stats, ctx) is MoodType.FEARFUL

    def test_mood_state_intensity_and_trend(self):
        """Mood state should report intensity and trend."""
        state = derive_mood_state(RelationshipStats(respect=40.0, trust=30.0, familiarity=50.0))
        assert state.current is MoodType.PLEASED
        assert state.intensity == 50.0
        assert state.trending is MoodTrend.IMPROVING


def test_disposition_bands():
    """Disposition should follow respect and trust bands."""
    assert disposition(RelationshipStats(respect=-50.0, trust=-50.0)) is Disposition.HOSTILE
    assert disposition(RelationshipStats(respect=-40.0)) is Disposition.UNFRIENDLY
    assert disposition(RelationshipStats()) is Disposition.NEUTRAL
    assert disposition(RelationshipStats(respect=50.0)) is Disposition.FRIENDLY
    assert disposition(RelationshipStats(respect=50.0, trust=50.0)) is Disposition.ALLIED


def test_price_modifier_range():
    """Price modifiers should range from 0.7 to 1.3."""
    assert price_modifier(RelationshipStats()) == pytest.approx(1.0)
    assert price_modifier(RelationshipStats(respect=100.0, trust=100.0)) == pytest.approx(0.7)
    assert price_modifier(RelationshipStats(respect=-100.0, trust=-100.0)) == pytest.approx(1.3)


def test_would_initiate_conversation():
    """Familiar NPCs should start talks and frightened ones should not."""
    assert would_initiate_conversation(RelationshipStats(familiarity=60.0), 0.2)
    assert not would_initiate_conversation(RelationshipStats(fear=60.0), 0.2)


def test_decay_toward_neutral():
    """Decay should move stats toward zero without overshooting."""
    rel, changes = decay_toward_neutral(_make_rel(respect=10.0, trust=-0.5), rate=1.0)
    assert rel.stats.respect == 9.0
    assert rel.stats.trust == 0.0
    assert len(changes) == 2


class TestRelationshipEngine:
    def test_missing_pair_reads_neutral(self):
        """A missing pair should read as neutral stats."""
        store = RelationshipStore()
        assert store.stats("x", "y") == RelationshipStats()
        assert not store.has("x", "y")

    def test_apply_deltas_records_event(self):
        """Applying deltas should log one event for the owner only."""
        engine = RelationshipEngine()
        store, changes = engine.apply_deltas(
            RelationshipStore(),
            "a",
            "b",
            {"respect": 10.0, "fear": 5.0},
            turn=4,
            kind=RelationshipEventKind.PRAISED,
        )
        rel = store.get("a", "b")
        assert rel.stats.respect == 10.0
        assert rel.stats.fear == 5.0
        assert rel.history[0].kind is RelationshipEventKind.PRAISED
        assert len(rel.history[0].changes) == 2
        assert len(changes) == 2
        assert not store.has("b", "a")

    def test_store_is_not_mutated(self):
        """Applying deltas should not change the original store."""
        engine = RelationshipEngine()
        original = RelationshipStore()
        engine.apply_deltas(original, "a", "b", {"trust": 5.0}, turn=1)
        assert len(original) == 0

    def test_conversation_is_symmetric(self):
        """Conversations should warm both sides equally."""
        engine = RelationshipEngine()
        store, changes = engine.apply_conversation(RelationshipStore(), "a", "b", turn=1)
        for owner, target in (("a", "b"), ("b", "a")):
            stats = store.stats(owner, target)
            assert stats.familiarity == 2.0
            assert stats.trust == 1.0
        assert len(changes) == 4

    def test_decay_only_touches_changed(self):
        """Decay should only report stats that moved."""
        engine = RelationshipEngine(decay_rate=2.0)
        store, _ = engine.apply_deltas(RelationshipStore(), "a", "b", {"respect": 5.0}, 1)
        store, _ = engine.apply_deltas(store, "c", "d", {"respect": 0.0}, 1)
        store, changes = engine.decay(store, turn=2)
        assert store.stats("a", "b").respect == 3.0
        assert len(changes) == 1

    def test_for_owner(self):
        engine = RelationshipEngine()
        store, _ = engine.apply_conversation(RelationshipStore(), "a", "b", 1)
        store, _ = engine.apply_conversation(store, "a", "c", 2)
        assert {r.target_id for r in store.for_owner("a")} == {"b", "c"}
