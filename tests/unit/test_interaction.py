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

"""Tests for spoken turns and the game event bridge."""

import pytest

from npc_dialogue.config import MOOD_CONTAGION_FADE, MOOD_CONTAGION_THRESHOLD
from npc_dialogue.dialogue.intent_detector import Intent
from npc_dialogue.models.behavior import BehavioralState
from npc_dialogue.models.memory import MemoryKind
from npc_dialogue.models.npc import (
    BehavioralArchetype,
    NPCCategory,
    NPCIdentity,
    NPCPersonality,
)
from npc_dialogue.models.relationship import MoodType
from npc_dialogue.models.situation import SituationContext
from npc_dialogue.models.templates import (
    Comparison,
    ConditionKind,
    ResponseTemplate,
    TemplateCondition,
    TemplatePool,
)
from npc_dialogue.world.interaction import (
    GameEvent,
    GameEventKind,
    InteractionEngine,
    apply_game_event,
)
from npc_dialogue.world.registry import PLAYER_ID, World


def _make_world(*slugs, archetype=BehavioralArchetype.DIPLOMAT) -> World:
    world = World(seed="interaction")
    for slug in slugs:
        world.add_npc(
            NPCPersonality(NPCIdentity(slug, slug.title(), NPCCategory.TRAVELERS), archetype=archetype)
        )
    return world


def _owner(event) -> str:
    return event.event_id.split(":")[0]


class TestRunTurn:
    def test_player_greeting(self):
        """A player greeting should open with the greeting pool and a first meeting."""
        world = _make_world("zara")
        turn = InteractionEngine(world).run_turn("zara", player_text="hello there")
        assert turn.intent is Intent.GREETING
        assert turn.pool is TemplatePool.GREETING
        assert turn.turn_number == 0
        assert turn.first_meeting is not None
        assert world.turn == 1
        assert world.relationships.stats(PLAYER_ID, "zara").familiarity == 2.0
        assert len(world.memories.get("zara").events) == 1

    def test_first_meeting_only_once(self):
        """The first-meeting reaction should happen only once."""
        world = _make_world("zara")
        engine = InteractionEngine(world)
        engine.run_turn("zara", player_text="hello")
        second = engine.run_turn("zara", player_text="tell me about the gods")
        assert second.first_meeting is None
        assert second.pool is TemplatePool.LORE
        assert second.turn_number == 1

    def test_npc_to_npc_ambient_pools(self):
        """NPCs should greet first and then react to each other."""
        world = _make_world("a", "b")
        engine = InteractionEngine(world)
        first = engine.run_turn("a", "b")
        second = engine.run_turn("b", "a")
        assert first.pool is TemplatePool.NPC_GREETING
        assert second.pool is TemplatePool.NPC_REACTION
        assert first.first_meeting is None

    def test_explicit_pool_skips_intent(self):
        """An explicit pool should bypass intent detection."""
        world = _make_world("zara")
        turn = InteractionEngine(world).run_turn(
            "zara", player_text="hello", pool=TemplatePool.HINT
        )
        assert turn.intent is None
        assert turn.pool is TemplatePool.HINT

    def test_unknown_speaker(self):
        """An unknown speaker should raise KeyError."""
        with pytest.raises(KeyError):
            InteractionEngine(_make_world()).run_turn("ghost")

    def test_unknown_listener(self):
        """An unknown listener should raise KeyError."""
        with pytest.raises(KeyError):
            InteractionEngine(_make_world("a")).run_turn("a", "ghost")

    def test_self_talk(self):
        """An NPC talking to itself should raise ValueError."""
        with pytest.raises(ValueError):
            InteractionEngine(_make_world("a")).run_turn("a", "a")

    def test_recent_event_is_consumed(self):
        """A speaker's recent event should be cleared once they talk."""
        world = _make_world("a", "b")
        apply_game_event(world, GameEvent(GameEventKind.GIFT, actor="a", target="b"))
        assert world.recent_events["b"] == "gift"
        InteractionEngine(world).run_turn("b", "a")
        assert "b" not in world.recent_events


class TestMoodContagion:
    def test_angry_speaker_spreads_to_listener(self):
        """An angry NPC should leave its listener a little angry."""
        world = _make_world("a", "b")
        turn = InteractionEngine(world).run_turn("a", "b", mood_override=MoodType.ANGRY)
        assert turn.mood is MoodType.ANGRY
        assert turn.caught_mood is MoodType.ANGRY
        mood, intensity = world.caught_moods["b"]
        assert mood is MoodType.ANGRY
        assert 0.0 < intensity < MOOD_CONTAGION_THRESHOLD

    def test_player_catches_nothing(self):
        """Moods should only spread between NPCs."""
        world = _make_world("a")
        turn = InteractionEngine(world).run_turn("a", mood_override=MoodType.ANGRY)
        assert turn.caught_mood is None
        assert world.caught_moods == {}

    def test_strong_caught_mood_takes_hold(self):
        """A strong caught mood should color the next line and then fade."""
        world = _make_world("a", "b")
        world.caught_moods["b"] = (MoodType.SCARED, 40.0)
        turn = InteractionEngine(world).run_turn("b", "a")
        assert turn.mood is MoodType.SCARED
        assert world.caught_moods["b"] == (MoodType.SCARED, 40.0 - MOOD_CONTAGION_FADE)

    def test_weak_caught_mood_only_fades(self):
        """A weak caught mood should fade without changing the line."""
        world = _make_world("a", "b")
        world.caught_moods["b"] = (MoodType.SCARED, 20.0)
        turn = InteractionEngine(world).run_turn("b", "a")
        assert turn.mood is not MoodType.SCARED
        assert world.caught_moods["b"] == (MoodType.SCARED, 20.0 - MOOD_CONTAGION_FADE)

    def test_spent_caught_mood_is_dropped(self):
        """A caught mood should be forgotten once it fades out."""
        world = _make_world("a", "b")
        world.caught_moods["b"] = (MoodType.SCARED, MOOD_CONTAGION_FADE / 2)
        InteractionEngine(world).run_turn("b", "a")
        assert "b" not in world.caught_moods

    def test_scripted_mood_wins(self):
        """An explicit mood override should beat a caught mood."""
        world = _make_world("a", "b")
        world.caught_moods["b"] = (MoodType.SCARED, 90.0)
        turn = InteractionEngine(world).run_turn("b", "a", mood_override=MoodType.PLEASED)
        assert turn.mood is MoodType.PLEASED


def _market_world() -> World:
    world = _make_world("zara")
    world.library.add(
        ResponseTemplate(
            "zara.market",
            TemplatePool.GREETING,
            npc_slug="zara",
            conditions=(
                TemplateCondition(ConditionKind.CONTEXT, Comparison.EQ, "market", target="domain"),
            ),
        )
    )
    return world


class TestSituation:
    def test_situation_reaches_context_conditions(self):
        """Per-turn situation should feed template context conditions."""
        world = _market_world()
        turn = InteractionEngine(world).run_turn(
            "zara", pool=TemplatePool.GREETING, situation=SituationContext(domain="market")
        )
        assert turn.template_id == "zara.market"

    def test_world_situation_is_the_default(self):
        """Without a per-turn situation the world's should apply."""
        world = _market_world()
        world.situation = SituationContext(domain="market")
        turn = InteractionEngine(world).run_turn("zara", pool=TemplatePool.GREETING)
        assert turn.template_id == "zara.market"

    def test_other_domain_filters_template(self):
        """A template for another domain should not be used."""
        world = _market_world()
        turn = InteractionEngine(world).run_turn(
            "zara", pool=TemplatePool.GREETING, situation=SituationContext(domain="arena")
        )
        assert turn.template_id != "zara.market"


class TestGameEvents:
    def test_combat_start(self):
        """Combat should frighten both fighters and alert witnesses."""
        world = _make_world("a", "b", "c")
        outcome = apply_game_event(
            world, GameEvent(GameEventKind.COMBAT_START, actor="a", target="b", witnesses=("c",))
        )
        b_view = world.relationships.stats("b", "a")
        assert b_view.fear == 20.0
        assert b_view.tension == 30.0
        assert b_view.respect == -5.0
        assert world.relationships.stats("a", "b").fear == 20.0
        assert world.relationships.stats("c", "a").fear == 10.0
        assert {_owner(e) for e in outcome.memory_events} == {"a", "b"}
        assert all(e.kind is MemoryKind.CONFLICT for e in outcome.memory_events)
        assert {npc: s.current for npc, s in outcome.transitions.items()} == {
            "a": BehavioralState.ALERT,
            "b": BehavioralState.ALERT,
            "c": BehavioralState.ALERT,
        }
        assert world.recent_events == {"a": "combat_start", "b": "combat_start", "c": "combat_start"}
        assert world.turn == 1

    def test_death_with_witness(self):
        """A witnessed death should leave the witness mourning."""
        world = _make_world("a", "b", "c")
        outcome = apply_game_event(
            world, GameEvent(GameEventKind.DEATH, actor="a", target="b", witnesses=("c",))
        )
        kinds = {(_owner(e), e.kind) for e in outcome.memory_events}
        assert kinds == {("a", MemoryKind.DEATH), ("c", MemoryKind.WITNESSED_DEATH)}
        assert world.relationships.stats("c", "b").fear == 15.0
        assert world.behaviors["c"].current is BehavioralState.MOURNING

    def test_insult_is_one_sided(self):
        world = _make_world("a", "b")
        outcome = apply_game_event(world, GameEvent(GameEventKind.INSULT, actor="a", target="b"))
        assert [_owner(e) for e in outcome.memory_events] == ["b"]
        assert world.relationships.stats("b", "a").respect == -20.0

    def test_betrayal_from_player_feeds_mythology(self):
        """A player betrayal should cut trust and enter the myth."""
        world = _make_world("a")
        apply_game_event(world, GameEvent(GameEventKind.BETRAYAL, actor=PLAYER_ID, target="a"))
        assert world.relationships.stats("a", PLAYER_ID).trust == -30.0
        assert "Betrayed a" in world.mythology.known_facts
        assert world.behaviors["a"].current is BehavioralState.SUSPICIOUS

    def test_player_gift(self):
        """A player gift should build trust and enter the myth."""
        world = _make_world("a")
        outcome = apply_game_event(
            world, GameEvent(GameEventKind.GIFT, actor=PLAYER_ID, target="a", magnitude=6)
        )
        memory = outcome.memory_events[0]
        assert memory.kind is MemoryKind.GIFT
        assert memory.counterpart_id == PLAYER_ID
        assert memory.magnitude == 6
        assert world.relationships.stats("a", PLAYER_ID).trust == 8.0
        assert "Helped a" in world.mythology.known_facts

    def test_unknown_participants_are_skipped(self):
        """Events naming unknown NPCs should change nothing."""
        world = _make_world("a")
        outcome = apply_game_event(
            world, GameEvent(GameEventKind.RESCUE, actor="ghost", target="phantom", witnesses=("x",))
        )
        assert outcome.memory_events == []
        assert outcome.stat_changes == []
        assert world.recent_events == {}
