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

"""Tests for player mythology: theories, rumors and first meetings."""

import pytest

from npc_dialogue.models.npc import BehavioralArchetype
from npc_dialogue.models.relationship import MoodType
from npc_dialogue.world.mythology import (
    MythStatus,
    PlayerEventContext,
    PlayerEventType,
    PlayerMythology,
    PlayerTheory,
    Sentiment,
    belief_chance,
    overall_sentiment,
    theory_template,
)

A = BehavioralArchetype


def _make_theory(short_form="They're capable", sentiment=Sentiment.POSITIVE, believers=("a",)):
    return PlayerTheory(
        origin_npc=believers[0] if believers else "a",
        short_form=short_form,
        sentiment=sentiment,
        confidence=0.6,
        event=PlayerEventType.BOSS_DEFEATED,
        believers=list(believers),
    )


def _make_myth(**archetypes) -> PlayerMythology:
    myth = PlayerMythology("test")
    for npc, archetype in archetypes.items():
        myth.register_npc(npc, archetype)
    return myth


class TestTheoryTemplates:
    def test_own_template(self):
        """An archetype with its own template should use it."""
        assert theory_template(A.MERCHANT, PlayerEventType.BARGAIN_MADE) == (
            "They're a deal-maker",
            Sentiment.POSITIVE,
        )

    def test_falls_back_to_diplomat(self):
        """Missing templates should fall back to the diplomat's."""
        assert theory_template(A.WARRIOR, PlayerEventType.NPC_HELPED) == (
            "They build bridges",
            Sentiment.POSITIVE,
        )

    def test_no_template(self):
        """Events with no template anywhere should yield None."""
        assert theory_template(A.WARRIOR, PlayerEventType.ROOM_CLEARED) is None


def test_belief_chance_is_clamped():
    """Belief chance should stay between 0.1 and 0.9."""
    sure = _make_theory()
    sure.confidence = 1.0
    assert belief_chance(A.PREY, sure) == 0.9
    doubtful = _make_theory(sentiment=Sentiment.NEGATIVE)
    doubtful.confidence = 0.0
    assert belief_chance(A.SAGE, doubtful) == 0.1


def test_overall_sentiment_needs_clear_lead():
    """Overall sentiment should need a lead of two."""
    pos = _make_theory(sentiment=Sentiment.POSITIVE)
    neg = _make_theory(sentiment=Sentiment.NEGATIVE)
    assert overall_sentiment([pos]) is Sentiment.NEUTRAL
    assert overall_sentiment([pos, pos]) is Sentiment.POSITIVE
    assert overall_sentiment([neg, neg, pos]) is Sentiment.NEUTRAL
    assert overall_sentiment([neg, neg, neg, pos]) is Sentiment.NEGATIVE


class TestStatus:
    def test_starts_unknown(self):
        """A new mythology should be unknown."""
        assert PlayerMythology().status is MythStatus.UNKNOWN

    def test_two_facts_make_a_rumor(self):
        """Two facts should make the player rumored."""
        myth = _make_myth()
        myth.record_player_event(PlayerEventType.ROOM_CLEARED, PlayerEventContext(turn=1, room_index=1))
        assert myth.status is MythStatus.UNKNOWN
        myth.record_player_event(PlayerEventType.ROOM_CLEARED, PlayerEventContext(turn=2, room_index=2))
        assert myth.status is MythStatus.RUMORED

    def test_duplicate_fact_counted_once(self):
        """Repeated facts should be counted once."""
        myth = _make_myth()
        for turn in range(3):
            myth.record_player_event(
                PlayerEventType.RELIC_OBTAINED, PlayerEventContext(turn=turn)
            )
        assert myth.known_facts == ["Obtained a relic"]
        assert myth.status is MythStatus.UNKNOWN

    def test_legend_needs_facts_and_believers(self):
        """Legend status should need both facts and believers."""
        myth = _make_myth()
        myth.theories.append(_make_theory(believers=tuple(f"n{i}" for i in range(8))))
        for room in range(5):
            myth.record_player_event(
                PlayerEventType.ROOM_CLEARED, PlayerEventContext(turn=room, room_index=room)
            )
        assert myth.status is MythStatus.LEGEND


class TestTheories:
    def test_witnesses_form_theories_deterministically(self):
        """Witness theories should be identical across runs."""
        witnesses = tuple(f"t{i}" for i in range(20))
        results = []
        for _ in range(2):
            myth = _make_myth(**{w: A.TRICKSTER for w in witnesses})
            myth.record_player_event(
                PlayerEventType.BOSS_DEFEATED,
                PlayerEventContext(turn=3, location="the-crypt", witnesses=witnesses),
            )
            results.append(myth.to_dict())
        assert results[0] == results[1]
        theories = results[0]["theories"]
        assert len(theories) == 1
        assert theories[0]["short_form"] == "They break the rules"
        assert 1 <= len(theories[0]["believers"]) <= 20
        assert "Defeated the boss of the-crypt" in results[0]["known_facts"]

    def test_spread_rumor(self):
        """A rumor should reach the listener once."""
        myth = _make_myth(a=A.DIPLOMAT, b=A.PREY)
        myth.theories.append(_make_theory())
        result = myth.spread_rumor("a", "b", turn=4)
        theory = myth.theories[0]
        assert result.theory is theory
        assert ("b" in theory.believers) is result.believed
        assert ("b" in theory.doubters) is not result.believed
        assert myth.rumor_sources["They're capable"] == ["a"]
        if result.believed:
            assert myth.beliefs_of("b").expectation == pytest.approx(60.0)
        assert myth.spread_rumor("a", "b", turn=5) is None

    def test_spread_needs_a_believer(self):
        """Only believers should spread a rumor."""
        myth = _make_myth()
        myth.theories.append(_make_theory(believers=("c",)))
        assert myth.spread_rumor("a", "b", turn=1) is None

    def test_evolve_keeps_confidence_bounded(self):
        myth = _make_myth()
        myth.theories.append(_make_theory())
        for turn in range(50):
            myth.evolve(turn, rate=1.0)
        assert 0.1 <= myth.theories[0].confidence <= 1.0


class TestFirstMeeting:
    def test_stranger(self):
        """An NPC who has heard nothing should meet the player curious."""
        meeting = _make_myth(d=A.DIPLOMAT).first_meeting("d")
        assert meeting.line_refs == ()
        assert meeting.theory is None
        assert meeting.suggested_mood is MoodType.CURIOUS
        assert meeting.stat_modifiers == {"familiarity": 0.0}
        assert meeting.tension == pytest.approx(0.4)

    def test_positive_reputation(self):
        """Good theories should make the first meeting warm."""
        myth = _make_myth(m=A.MERCHANT)
        myth.theories.append(_make_theory("a", believers=("m",)))
        myth.theories.append(_make_theory("b", believers=("m",)))
        meeting = myth.first_meeting("m")
        assert meeting.suggested_mood is MoodType.PLEASED
        assert "myth.theory.heard" in meeting.line_refs
        assert meeting.theory == "a"
        assert meeting.stat_modifiers == {"familiarity": 10.0, "trust": 10.0, "respect": 5.0}

    def test_skeptic_doubts_bad_news(self):
        """A skeptic should doubt bad rumors and fear less."""
        myth = _make_myth(p=A.PREDATOR)
        myth.theories.append(_make_theory("bad", Sentiment.NEGATIVE, believers=("p",)))
        meeting = myth.first_meeting("p")
        assert "myth.theory.doubtful" in meeting.line_refs
        assert meeting.stat_modifiers["fear"] == -10.0

    def test_high_expectation(self):
        myth = _make_myth(w=A.WARRIOR)
        myth.expectations["w"] = 80.0
        meeting = myth.first_meeting("w")
        assert meeting.line_refs[0] == "myth.action.eager.warrior"
        assert meeting.tension == pytest.approx(0.6)
        assert meeting.stat_modifiers["respect"] == 10.0


def test_round_trip():
    """Mythology should survive to_dict and from_dict."""
    myth = _make_myth(a=A.SAGE)
    myth.theories.append(_make_theory())
    myth.known_facts.append("Obtained a relic")
    myth.expectations["a"] = 70.0
    restored = PlayerMythology.from_dict(myth.to_dict())
    assert restored.to_dict() == myth.to_dict()
    assert restored.archetype_of("a") is A.SAGE
