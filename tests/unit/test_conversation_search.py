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

"""Tests for simulation snapshots and the bounded conversation search."""

import itertools

import pytest

from npc_dialogue.core.rng import create_rng
from npc_dialogue.dialogue.templates import TemplateLibrary, generic_template
from npc_dialogue.models.behavior import BehavioralState
from npc_dialogue.models.npc import BehavioralArchetype
from npc_dialogue.models.relationship import MoodType, Relationship, RelationshipStats
from npc_dialogue.models.templates import ResponseTemplate, TemplateEffects, TemplatePool
from npc_dialogue.models.topic import ConversationThread, TopicCategory
from npc_dialogue.search.conversation_search import ConversationSearch, SearchConfig
from npc_dialogue.search.goals import GoalType, NPCGoal, NPCObjectives, default_objectives
from npc_dialogue.search.snapshot import (
    Move,
    SimulationSnapshot,
    build_snapshot,
    generate_moves,
    is_terminal,
    simulate_turn,
    state_key,
)
from npc_dialogue.simulation.relationship_engine import RelationshipStore


def _make_snapshot(seed="seed") -> SimulationSnapshot:
    return build_snapshot(("a", "b"), RelationshipStore(), ConversationThread("a:b"), seed)


def _make_candidates(count=4, pool=TemplatePool.NPC_REACTION) -> list[ResponseTemplate]:
    return [ResponseTemplate(template_id=f"line-{i}", pool=pool) for i in range(count)]


def _search(**config) -> ConversationSearch:
    config.setdefault("time_budget_ms", None)
    return ConversationSearch(SearchConfig(**config))


class TestSnapshot:
    def test_build_copies_participant_pairs_only(self):
        """Snapshots should copy only pairs among participants."""
        store = RelationshipStore().with_relationships(
            [
                Relationship("a", "b", RelationshipStats(trust=20.0)),
                Relationship("a", "c", RelationshipStats(trust=90.0)),
                Relationship("c", "a", RelationshipStats(fear=40.0)),
            ]
        )
        snapshot = build_snapshot(
            ("a", "b"),
            store,
            ConversationThread("a:b"),
            "s",
            default_moods={"a": MoodType.PLEASED, "c": MoodType.ANGRY},
        )
        assert set(snapshot.relationships) == {("a", "b"), ("b", "a")}
        assert snapshot.stats("a", "b").trust == 20.0
        assert snapshot.stats("b", "a") == RelationshipStats()
        assert dict(snapshot.default_moods) == {"a": MoodType.PLEASED}

    def test_simulate_turn_leaves_input_untouched(self):
        """Simulating a turn should return a new state with every effect applied."""
        state = _make_snapshot()
        threat = generic_template(TemplatePool.THREAT)
        after = simulate_turn(state, Move("a", "b", threat))

        assert state.relationships[("b", "a")] == RelationshipStats()
        assert state.cursor == 0
        assert not state.moods
        assert state.thread.turn_count == 0

        listener_view = after.stats("b", "a")
        assert listener_view.fear == 5.0
        assert listener_view.respect == -3.0
        assert listener_view.tension == 10.0
        assert listener_view.familiarity == 2.0
        assert after.stats("a", "b").familiarity == 1.0
        assert after.moods["a"] == (MoodType.ANGRY, 70.0)
        assert after.behavior("a").current is BehavioralState.AGGRESSIVE
        assert after.behavior("b").current is BehavioralState.THREATENED
        assert after.thread.get_active_topic().category is TopicCategory.THREAT
        assert after.thread.tension == pytest.approx(0.15)
        assert after.thread.momentum == pytest.approx(0.59)
        assert after.cursor == 1
        assert after.last_speaker == "a"
        assert threat.template_id in after.used_templates

    def test_non_reciprocal_template(self):
        """Non-reciprocal lines should only move the listener's view."""
        template = ResponseTemplate(
            template_id="cold",
            pool=TemplatePool.NPC_REACTION,
            effects=TemplateEffects(reciprocal=False),
        )
        after = simulate_turn(_make_snapshot(), Move("a", "b", template))
        assert after.stats("a", "b").familiarity == 0.0
        assert after.stats("b", "a").familiarity == 2.0

    def test_generate_moves_skips_used_and_limits(self):
        """Move generation should skip spoken lines and respect the limit."""
        state = simulate_turn(_make_snapshot(), Move("a", "b", _make_candidates(1)[0]))
        moves = generate_moves(state, "a", "b", _make_candidates(5), 3, create_rng("m"))
        assert len(moves) == 3
        assert "line-0" not in {m.template.template_id for m in moves}

    def test_terminal_conditions(self):
        """Depth, loneliness and stalled momentum should end a future."""
        state = _make_snapshot()
        assert not is_terminal(state, 0, 4)
        assert is_terminal(state, 4, 4)
        lonely = build_snapshot(("a",), RelationshipStore(), ConversationThread("a"), "s")
        assert is_terminal(lonely, 0, 4)
        stalled = SimulationSnapshot(
            participants=("a", "b"), thread=ConversationThread("a:b", momentum=0.05)
        )
        assert is_terminal(stalled, 0, 4)

    def test_state_key_is_hashable_and_tracks_cursor(self):
        """State keys should be hashable and change as turns pass."""
        state = _make_snapshot()
        after = simulate_turn(state, Move("a", "b", _make_candidates(1)[0]))
        assert hash(state_key(state)) is not None
        assert state_key(state) != state_key(after)

    def test_equivalent_moves_share_a_key(self):
        """Lines with identical effects should lead to the same state key."""
        first, second = _make_candidates(2)
        state = _make_snapshot()
        via_first = simulate_turn(state, Move("a", "b", first))
        via_second = simulate_turn(state, Move("a", "b", second))
        assert via_first.used_templates != via_second.used_templates
        assert state_key(via_first) == state_key(via_second)

    def test_key_tracks_relationships(self):
        """Different stat outcomes should give different keys."""
        scary = ResponseTemplate(
            template_id="scary",
            pool=TemplatePool.NPC_REACTION,
            effects=TemplateEffects(listener_deltas=(("fear", 10.0),)),
        )
        state = _make_snapshot()
        plain = simulate_turn(state, Move("a", "b", _make_candidates(1)[0]))
        assert state_key(simulate_turn(state, Move("a", "b", scary))) != state_key(plain)


class TestConversationSearch:
    def test_no_candidates(self):
        """Searching with no candidates should return no move."""
        result = _search().search(
            _make_snapshot(), "a", "b", default_objectives(BehavioralArchetype.SAGE), []
        )
        assert result.move is None
        assert result.template is None
        assert result.stats.stopped_by == "no_candidates"

    def test_single_candidate_is_returned(self):
        """A lone candidate should be chosen."""
        only = _make_candidates(1)[0]
        result = _search(max_iterations=10).search(
            _make_snapshot(), "a", "b", default_objectives(BehavioralArchetype.SAGE), [only]
        )
        assert result.template is only

    def test_iteration_budget(self):
        """The iteration budget should stop the search."""
        result = _search(max_iterations=5).search(
            _make_snapshot(),
            "a",
            "b",
            default_objectives(BehavioralArchetype.MERCHANT),
            _make_candidates(),
        )
        assert result.stats.iterations == 5
        assert result.stats.stopped_by == "iterations"
        assert result.stats.expansions <= 5
        assert result.move is not None

    def test_expansion_budget(self):
        """The expansion budget should stop the search."""
        result = _search(max_iterations=100, max_expansions=3).search(
            _make_snapshot(),
            "a",
            "b",
            default_objectives(BehavioralArchetype.MERCHANT),
            _make_candidates(),
        )
        assert result.stats.stopped_by == "expansions"
        assert result.stats.expansions == 3
        assert result.stats.iterations == 3

    def test_time_budget_uses_injected_clock(self):
        """The time budget should read the injected clock."""
        ticks = itertools.count()
        search = ConversationSearch(
            SearchConfig(time_budget_ms=100.0), clock=lambda: float(next(ticks))
        )
        result = search.search(
            _make_snapshot(),
            "a",
            "b",
            default_objectives(BehavioralArchetype.MERCHANT),
            _make_candidates(),
        )
        assert result.stats.stopped_by == "time"
        assert result.stats.iterations == 0
        assert result.move is not None

    def test_depth_is_bounded(self):
        """Simulated futures should not exceed the depth limit."""
        result = _search(max_iterations=40, max_depth=2).search(
            _make_snapshot(),
            "a",
            "b",
            default_objectives(BehavioralArchetype.TRICKSTER),
            _make_candidates(),
        )
        assert result.stats.max_depth_reached <= 2

    def test_deterministic_without_time_budget(self):
        """Without a time budget the same seed should give the same answer."""
        library = TemplateLibrary(_make_candidates(6))
        objectives = default_objectives(BehavioralArchetype.PREDATOR)
        runs = [
            ConversationSearch(SearchConfig(time_budget_ms=None, max_iterations=50), library).search(
                _make_snapshot("fixed"), "a", "b", objectives, _make_candidates()
            )
            for _ in range(2)
        ]
        assert runs[0].template.template_id == runs[1].template.template_id
        assert runs[0].score == runs[1].score
        assert runs[0].alternatives == runs[1].alternatives

    def test_search_follows_goals(self):
        """The search should pick the line that serves the speaker's goals."""
        scary = ResponseTemplate(
            template_id="scary",
            pool=TemplatePool.NPC_CONFLICT,
            effects=TemplateEffects(listener_deltas=(("fear", 40.0),)),
        )
        kind = ResponseTemplate(
            template_id="kind",
            pool=TemplatePool.NPC_ALLIANCE,
            effects=TemplateEffects(listener_deltas=(("trust", 10.0),)),
        )
        objectives = NPCObjectives(primary=(NPCGoal(GoalType.MAXIMIZE_FEAR, 100),))
        result = _search(max_iterations=60).search(
            _make_snapshot(), "a", "b", objectives, [kind, scary]
        )
        assert result.template.template_id == "scary"
        assert [alt[0] for alt in result.alternatives] == ["kind"]

    def test_snapshot_not_mutated(self):
        """Searching should leave the starting snapshot untouched."""
        snapshot = _make_snapshot()
        _search(max_iterations=20).search(
            snapshot, "a", "b", default_objectives(BehavioralArchetype.WARRIOR), _make_candidates()
        )
        assert snapshot.cursor == 0
        assert not snapshot.used_templates
        assert snapshot.relationships[("a", "b")] == RelationshipStats()

    def test_transposed_states_are_scored_once(self):
        """Futures that reach the same state should reuse its score."""
        result = _search(max_iterations=20, max_depth=2).search(
            _make_snapshot(),
            "a",
            "b",
            default_objectives(BehavioralArchetype.MERCHANT),
            _make_candidates(),
        )
        assert result.stats.transposition_hits > 0
        assert result.stats.transposition_hits < result.stats.iterations
