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

"""Tests for the response selection pipeline."""

import pytest

from npc_dialogue.dialogue.response_selector import (
    ResponseSelector,
    ResponseSource,
    SelectionRequest,
    UsageTracker,
    explain_selection,
    is_high_stakes,
    selection_weight,
)
from npc_dialogue.dialogue.templates import TemplateLibrary
from npc_dialogue.models.behavior import BehavioralState
from npc_dialogue.models.memory import MemoryKind
from npc_dialogue.models.npc import NPCCategory, NPCIdentity, NPCPersonality
from npc_dialogue.models.relationship import MoodType, Relationship, RelationshipStats
from npc_dialogue.models.situation import SituationContext
from npc_dialogue.models.templates import (
    Comparison,
    ConditionKind,
    ResponseTemplate,
    TemplateCondition,
    TemplateEffects,
    TemplatePool,
    Tone,
)
from npc_dialogue.search.chatbase import ChatbaseEntry, ChatbaseMetrics
from npc_dialogue.search.chatbase_lookup import ChatbaseLookupEngine
from npc_dialogue.search.conversation_search import ConversationSearch, SearchConfig
from npc_dialogue.simulation.memory_engine import MemoryStore
from npc_dialogue.simulation.relationship_engine import RelationshipStore


def _make_npc(slug="mr-bones", category=NPCCategory.TRAVELERS) -> NPCPersonality:
    return NPCPersonality(NPCIdentity(slug, slug.replace("-", " ").title(), category))


def _make_request(**kwargs) -> SelectionRequest:
    kwargs.setdefault("speaker", _make_npc())
    kwargs.setdefault("listener", "zara")
    kwargs.setdefault("pool", TemplatePool.GREETING)
    kwargs.setdefault("seed", "test")
    return SelectionRequest(**kwargs)


def _template(template_id, pool=TemplatePool.GREETING, **kwargs) -> ResponseTemplate:
    return ResponseTemplate(template_id=template_id, pool=pool, **kwargs)


class TestNeutralGreeting:
    def test_fallback_applies_conversation_deltas(self):
        """An empty library should fall back and still warm both sides."""
        selector = ResponseSelector(TemplateLibrary())
        request = _make_request()
        result = selector.select(request)

        assert result.source is ResponseSource.FALLBACK
        assert result.template_id == "generic.greeting"
        assert result.confidence == 0.0
        for owner, target in (("zara", "mr-bones"), ("mr-bones", "zara")):
            stats = result.relationships.stats(owner, target)
            assert stats.familiarity == 2.0
            assert stats.trust == 1.0
        assert len(result.stat_changes) == 4
        assert len(result.memories.get("mr-bones").events) == 1
        assert len(result.memories.get("zara").events) == 1
        assert result.memory_events[0].kind is MemoryKind.CONVERSATION

    def test_inputs_are_not_mutated(self):
        """Selecting should leave the request's stores alone."""
        request = _make_request()
        ResponseSelector(TemplateLibrary()).select(request)
        assert len(request.relationships) == 0
        assert len(request.memories) == 0
        assert not request.usage.recent
        assert not request.behaviors

    def test_thread_and_usage_advance(self):
        """Selecting should advance the thread, usage and behavior."""
        result = ResponseSelector(TemplateLibrary()).select(_make_request())
        assert result.thread.thread_id == "mr-bones:zara"
        assert result.thread.turn_count == 1
        assert result.usage.times_recently_used("mr-bones", "generic.greeting") == 1
        assert result.behaviors["mr-bones"].current is BehavioralState.ENGAGED


class TestFiltering:
    def test_single_authored_template_is_random_pick(self):
        """A lone authored template should be picked at full confidence."""
        library = TemplateLibrary([_template("hello")])
        result = ResponseSelector(library).select(_make_request())
        assert result.source is ResponseSource.RANDOM
        assert result.template_id == "hello"
        assert result.confidence == pytest.approx(1.0)

    def test_mood_filter(self):
        """Templates for another mood should be filtered out."""
        library = TemplateLibrary(
            [_template("happy", mood=MoodType.PLEASED), _template("any")]
        )
        for turn in range(10):
            result = ResponseSelector(library).select(
                _make_request(mood_override=MoodType.ANGRY, turn=turn)
            )
            assert result.template_id == "any"
            assert result.mood is MoodType.ANGRY

    def test_mood_relaxed_when_nothing_matches(self):
        """The mood filter should relax when nothing else fits."""
        library = TemplateLibrary([_template("happy", mood=MoodType.PLEASED)])
        result = ResponseSelector(library).select(_make_request(mood_override=MoodType.ANGRY))
        assert result.template_id == "happy"

    def test_relationship_condition(self):
        """Unmet relationship conditions should exclude a template."""
        trusted = _template(
            "trusted",
            conditions=(
                TemplateCondition(ConditionKind.RELATIONSHIP, Comparison.GTE, 50, target="trust"),
            ),
        )
        library = TemplateLibrary([trusted, _template("plain")])
        result = ResponseSelector(library).select(_make_request())
        assert result.template_id == "plain"
        assert result.candidates == 1

    def test_cooldown(self):
        """Templates on cooldown should be skipped."""
        library = TemplateLibrary([_template("slow", cooldown_turns=5), _template("fast")])
        usage = UsageTracker().record("mr-bones", "slow", turn=3)
        result = ResponseSelector(library).select(_make_request(usage=usage, turn=5))
        assert result.template_id == "fast"

    def test_once_per_conversation(self):
        """Once-per-conversation templates should not repeat in a thread."""
        library = TemplateLibrary([_template("once", once_per_conversation=True)])
        usage = UsageTracker().record("mr-bones", "once", turn=0, thread_id="mr-bones:zara")
        result = ResponseSelector(library).select(_make_request(usage=usage, turn=50))
        assert result.source is ResponseSource.FALLBACK

    def test_target_npc(self):
        """Templates aimed at another NPC should be skipped."""
        library = TemplateLibrary([_template("for-ash", target_npc="ash"), _template("other")])
        result = ResponseSelector(library).select(_make_request())
        assert result.template_id == "other"


def test_same_request_same_line():
    """Identical requests should pick the same line."""
    library = TemplateLibrary([_template(f"t{i}") for i in range(6)])
    first = ResponseSelector(library).select(_make_request(turn=7))
    second = ResponseSelector(library).select(_make_request(turn=7))
    assert first.template_id == second.template_id


def test_text_substitution():
    """Template text should have the listener's name filled in."""
    library = TemplateLibrary([_template("named", text="Well met, {{listener}}.")])
    result = ResponseSelector(library).select(
        _make_request(listener_personality=_make_npc("zara"))
    )
    assert result.text == "Well met, Zara."


class TestChatbaseTier:
    def _engine(self, interest, mood=MoodType.NEUTRAL) -> ChatbaseLookupEngine:
        engine = ChatbaseLookupEngine()
        engine.index_entries(
            [
                ChatbaseEntry(
                    id="cb-1",
                    speaker="mr-bones",
                    pool="greeting",
                    mood=mood,
                    response_ids=["hello"],
                    metrics=ChatbaseMetrics(interest_score=interest),
                )
            ]
        )
        return engine

    def test_confident_hit_is_used(self):
        """A confident chatbase hit should supply the line."""
        engine = self._engine(90.0)
        library = TemplateLibrary([_template("hello"), _template("other")])
        result = ResponseSelector(library, chatbase=engine).select(
            _make_request(mood_override=MoodType.NEUTRAL)
        )
        assert result.source is ResponseSource.CHATBASE
        assert result.response_id == "hello"
        assert result.template_id == "hello"
        assert result.confidence == pytest.approx(0.9)
        assert engine.hit_count("cb-1") == 1

    def test_weak_hit_falls_through(self):
        """A weak chatbase hit should fall through to random choice."""
        engine = self._engine(60.0, mood=MoodType.PLEASED)
        library = TemplateLibrary([_template("other")])
        result = ResponseSelector(library, chatbase=engine).select(
            _make_request(mood_override=MoodType.GENEROUS)
        )
        assert result.chatbase.hit
        assert result.source is ResponseSource.RANDOM
        assert engine.hit_count("cb-1") == 0


class TestHighStakes:
    def test_strategic_pool_uses_search(self):
        """Strategic pools should be decided by search."""
        library = TemplateLibrary(
            [_template("t1", pool=TemplatePool.THREAT), _template("t2", pool=TemplatePool.THREAT)]
        )
        search = ConversationSearch(SearchConfig(time_budget_ms=None, max_iterations=20), library)
        result = ResponseSelector(library, search=search).select(
            _make_request(pool=TemplatePool.THREAT)
        )
        assert result.high_stakes
        assert result.source is ResponseSource.SEARCH
        assert result.template_id in {"t1", "t2"}
        assert 0.0 <= result.confidence <= 1.0
        assert result.search.stats.iterations == 20

    def test_without_search_engine_falls_back_to_random(self):
        """Without a search engine high stakes should pick at random."""
        library = TemplateLibrary(
            [_template("t1", pool=TemplatePool.THREAT), _template("t2", pool=TemplatePool.THREAT)]
        )
        result = ResponseSelector(library).select(_make_request(pool=TemplatePool.THREAT))
        assert result.high_stakes
        assert result.source is ResponseSource.RANDOM

    def test_rules(self):
        """High stakes should follow confidence, pool and participant rules."""
        npc = _make_npc()
        god = _make_npc("ash", NPCCategory.PANTHEON)
        assert not is_high_stakes(npc, TemplatePool.GREETING, 0.9, True, 1)
        assert is_high_stakes(npc, TemplatePool.GREETING, 0.5, False, 2)
        assert is_high_stakes(npc, TemplatePool.GREETING, 0.0, True, 2)
        assert is_high_stakes(god, TemplatePool.GREETING, 0.0, False, 2)
        assert not is_high_stakes(npc, TemplatePool.GREETING, 0.1, False, 5)


def test_selection_weight_penalizes_recent_use():
    """Recent use should cut weight and mood or tension fit should raise it."""
    template = _template("t", weight=2.0, mood_bonus=MoodType.ANGRY, tension_range=(0.4, 0.6))
    assert selection_weight(template, MoodType.NEUTRAL, 0.0, 0) == pytest.approx(2.0)
    assert selection_weight(template, MoodType.NEUTRAL, 0.0, 1) == pytest.approx(0.5)
    assert selection_weight(template, MoodType.ANGRY, 0.5, 0) == pytest.approx(2.0 * 1.5 * 1.3)


def test_usage_tracker_window_and_round_trip():
    """The usage window should slide and survive a round trip."""
    usage = UsageTracker(window=2)
    for i, template_id in enumerate(["a", "b", "c"]):
        usage = usage.record("npc", template_id, i, "th")
    assert usage.recent["npc"] == ("b", "c")
    assert usage.used_in_conversation("th", "a")
    assert UsageTracker.from_dict(usage.to_dict()) == usage


def test_explain_selection_mentions_source():
    result = ResponseSelector(TemplateLibrary()).select(
        _make_request(memories=MemoryStore(), relationships=RelationshipStore())
    )
    summary = explain_selection(result)
    assert "generic.greeting" in summary
    assert "fallback" in summary


def test_selection_weight_applies_bias():
    """A temperament bias should scale the weight, never below zero."""
    template = _template("t", weight=2.0)
    assert selection_weight(template, MoodType.NEUTRAL, 0.0, 0, bias=1.5) == pytest.approx(3.0)
    assert selection_weight(template, MoodType.NEUTRAL, 0.0, 0, bias=-1.0) == 0.0


class TestPersonalityAndSituation:
    @pytest.mark.parametrize("aggression, snarl_share", [(1.0, 1.7 / 2.7), (0.0, 0.7 / 1.7)])
    def test_aggression_weights_hostile_tones(self, aggression, snarl_share):
        """Aggressive speakers should favor aggressive lines."""
        speaker = NPCPersonality(
            NPCIdentity("mr-bones", "Mr Bones", NPCCategory.TRAVELERS), aggression=aggression
        )
        library = TemplateLibrary(
            [_template("snarl", tone=Tone.AGGRESSIVE), _template("smile", tone=Tone.FRIENDLY)]
        )
        result = ResponseSelector(library).select(_make_request(speaker=speaker))
        expected = snarl_share if result.template_id == "snarl" else 1.0 - snarl_share
        assert result.source is ResponseSource.RANDOM
        assert result.confidence == pytest.approx(expected)

    def test_situation_flags_reach_conditions(self):
        """Situation values should be readable by context conditions."""
        hot = _template(
            "hot",
            conditions=(TemplateCondition(ConditionKind.CONTEXT, Comparison.GTE, 5, target="heat"),),
        )
        library = TemplateLibrary([hot])
        cold = ResponseSelector(library).select(_make_request())
        heated = ResponseSelector(library).select(
            _make_request(situation=SituationContext(heat=6))
        )
        assert cold.template_id == "generic.greeting"
        assert heated.template_id == "hot"

    def test_explicit_flags_beat_situation(self):
        """Caller flags should win over situation flags with the same name."""
        market = _template(
            "market",
            conditions=(
                TemplateCondition(ConditionKind.CONTEXT, Comparison.EQ, "market", target="domain"),
            ),
        )
        result = ResponseSelector(TemplateLibrary([market])).select(
            _make_request(flags={"domain": "arena"}, situation=SituationContext(domain="market"))
        )
        assert result.template_id == "generic.greeting"

    def test_heat_sours_mood(self):
        """Heat should push a tense relationship into anger."""
        relationships = RelationshipStore().with_relationships(
            [Relationship("mr-bones", "zara", RelationshipStats(tension=60.0, respect=-10.0))]
        )
        calm = ResponseSelector(TemplateLibrary()).select(
            _make_request(relationships=relationships)
        )
        heated = ResponseSelector(TemplateLibrary()).select(
            _make_request(relationships=relationships, situation=SituationContext(heat=10))
        )
        assert calm.mood is not MoodType.ANGRY
        assert heated.mood is MoodType.ANGRY

    def test_loyal_listener_shrugs_off_insults(self):
        """A loyal listener should lose less trust to the same line."""
        insult = _template(
            "insult", effects=TemplateEffects(listener_deltas=(("trust", -10.0),))
        )
        trust = {}
        for loyalty in (0.0, 1.0):
            listener = NPCPersonality(
                NPCIdentity("zara", "Zara", NPCCategory.SHOP), loyalty=loyalty
            )
            result = ResponseSelector(TemplateLibrary([insult])).select(
                _make_request(listener_personality=listener)
            )
            trust[loyalty] = result.relationships.stats("zara", "mr-bones").trust
        assert trust[1.0] == pytest.approx(-4.0)
        assert trust[0.0] == pytest.approx(-16.0)
