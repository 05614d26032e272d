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

"""Tests for the knowledge store and fact spreading between NPCs."""

import pytest

from npc_dialogue.core.rng import create_rng
from npc_dialogue.models.npc import (
    BehavioralArchetype,
    NPCCategory,
    NPCIdentity,
    NPCPersonality,
)
from npc_dialogue.models.templates import TemplatePool
from npc_dialogue.search.goals import GoalType, NPCGoal, NPCObjectives
from npc_dialogue.world.autonomous import AutonomousSimulation, InterestType
from npc_dialogue.world.interaction import InteractionEngine
from npc_dialogue.world.knowledge import (
    KnowledgeBase,
    KnowledgeCategory,
    KnowledgePiece,
    Secrecy,
    share_willingness,
)
from npc_dialogue.world.registry import World


def _fact(fact_id="f1", **kwargs) -> KnowledgePiece:
    kwargs.setdefault("spread_chance", 1.0)
    return KnowledgePiece(fact_id, f"content of {fact_id}", **kwargs)


def _make_world(*pieces) -> World:
    world = World(seed="knowledge", knowledge=KnowledgeBase(pieces))
    for slug in ("a", "b"):
        world.add_npc(
            NPCPersonality(
                NPCIdentity(slug, slug.title(), NPCCategory.WANDERERS),
                archetype=BehavioralArchetype.SAGE,
            )
        )
    return world


class TestKnowledgeBase:
    def test_teach_and_query(self):
        """Taught facts should be known; unknown ids should be refused."""
        base = KnowledgeBase([_fact("f1", related_npcs=("c",)), _fact("f2")])
        assert base.teach("a", "f1")
        assert not base.teach("a", "f1")
        assert not base.teach("a", "missing")
        base.teach("b", "f1")
        base.teach("b", "f2")
        assert base.knows("a", "f1")
        assert [p.fact_id for p in base.shared("a", "b")] == ["f1"]
        assert [p.fact_id for p in base.exclusive("b", ["a"])] == ["f2"]
        assert [p.fact_id for p in base.about("b", "c")] == ["f1"]
        assert base.holders("f1") == ["a", "b"]

    def test_capacity_forgets_oldest(self):
        """Learning past capacity should drop the oldest fact."""
        base = KnowledgeBase([_fact(f"f{i}") for i in range(4)], capacity=2)
        for i in range(4):
            base.teach("a", f"f{i}")
        assert [p.fact_id for p in base.facts_of("a")] == ["f2", "f3"]

    def test_forget(self):
        """Forgetting an NPC should clear what it knew."""
        base = KnowledgeBase([_fact()])
        base.teach("a", "f1")
        base.forget("a")
        assert base.facts_of("a") == []

    def test_dict_round_trip(self):
        """The store should survive to_dict and from_dict."""
        base = KnowledgeBase(
            [_fact("f1", category=KnowledgeCategory.SECRET, secrecy=Secrecy.RARE)], capacity=7
        )
        base.teach("a", "f1")
        restored = KnowledgeBase.from_dict(base.to_dict())
        assert restored.capacity == 7
        assert restored.get("f1") == base.get("f1")
        assert restored.knows("a", "f1")


class TestPassOn:
    def test_newest_eligible_fact_moves(self):
        """The speaker's newest fact the listener lacks should be passed on."""
        base = KnowledgeBase([_fact("old"), _fact("new")])
        base.teach("a", "old")
        base.teach("a", "new")
        piece = base.pass_on("a", "b", trust=0.0, rng=create_rng("p"))
        assert piece.fact_id == "new"
        assert base.knows("b", "new")
        assert not base.knows("b", "old")

    def test_forbidden_never_spreads(self):
        """Forbidden facts should stay with their holder."""
        base = KnowledgeBase([_fact(secrecy=Secrecy.FORBIDDEN)])
        base.teach("a", "f1")
        assert base.pass_on("a", "b", trust=100.0, rng=create_rng("p")) is None
        assert not base.knows("b", "f1")

    def test_trust_requirement(self):
        """A listener below the trust requirement should not hear the fact."""
        base = KnowledgeBase([_fact(requires_trust=40.0)])
        base.teach("a", "f1")
        assert base.pass_on("a", "b", trust=39.0, rng=create_rng("p")) is None
        assert base.pass_on("a", "b", trust=40.0, rng=create_rng("p")).fact_id == "f1"

    def test_zero_chance(self):
        """A fact that never spreads should stay put."""
        base = KnowledgeBase([_fact(spread_chance=0.0)])
        base.teach("a", "f1")
        assert base.pass_on("a", "b", trust=0.0, rng=create_rng("p")) is None

    def test_nothing_new_to_tell(self):
        """A listener who already knows everything should hear nothing."""
        base = KnowledgeBase([_fact()])
        base.teach("a", "f1")
        base.teach("b", "f1")
        assert base.pass_on("a", "b", trust=0.0, rng=create_rng("p")) is None


@pytest.mark.parametrize(
    "goals, expected",
    [
        ((), 1.0),
        ((NPCGoal(GoalType.SHARE_KNOWLEDGE, 80),), 1.8),
        ((NPCGoal(GoalType.HIDE_KNOWLEDGE, 60),), 0.4),
    ],
)
def test_share_willingness(goals, expected):
    """Share goals should raise willingness and hide goals lower it."""
    assert share_willingness(NPCObjectives(primary=goals)) == pytest.approx(expected)


def test_secondary_goals_count_half():
    """Secondary goals should weigh half as much as primary ones."""
    objectives = NPCObjectives(secondary=(NPCGoal(GoalType.HIDE_KNOWLEDGE, 60),))
    assert share_willingness(objectives) == pytest.approx(0.7)
    assert share_willingness(None) == 1.0


class TestSpreadingInConversation:
    def test_gossip_shares_a_fact(self):
        """An NPC gossiping should pass a fact on to its listener."""
        world = _make_world(_fact())
        world.knowledge.teach("a", "f1")
        turn = InteractionEngine(world).run_turn("a", "b", pool=TemplatePool.NPC_GOSSIP)
        assert turn.shared_fact == "f1"
        assert world.knowledge.knows("b", "f1")

    def test_other_pools_share_nothing(self):
        """Ordinary reactions should not move facts."""
        world = _make_world(_fact())
        world.knowledge.teach("a", "f1")
        turn = InteractionEngine(world).run_turn("a", "b", pool=TemplatePool.NPC_REACTION)
        assert turn.shared_fact is None
        assert not world.knowledge.knows("b", "f1")

    def test_guarded_fact_needs_trust(self):
        """Strangers should not hear facts that need trust."""
        world = _make_world(_fact(requires_trust=50.0))
        world.knowledge.teach("a", "f1")
        turn = InteractionEngine(world).run_turn("a", "b", pool=TemplatePool.NPC_LORE)
        assert turn.shared_fact is None

    def test_player_never_learns(self):
        """Talking to the player should not touch the knowledge store."""
        world = _make_world(_fact())
        world.knowledge.teach("a", "f1")
        turn = InteractionEngine(world).run_turn("a", pool=TemplatePool.NPC_GOSSIP)
        assert turn.shared_fact is None
        assert world.knowledge.holders("f1") == ["a"]

    def test_removed_npc_forgets(self):
        """Removing an NPC should drop what it knew."""
        world = _make_world(_fact())
        world.knowledge.teach("b", "f1")
        world.remove_npc("b")
        assert world.knowledge.holders("f1") == []

    def test_autonomous_tags_knowledge_transfer(self):
        """A shared fact should be tagged as a knowledge transfer."""
        world = _make_world(*(_fact(f"f{i}", requires_trust=-100.0) for i in range(30)))
        for i in range(30):
            world.knowledge.teach("a" if i % 2 else "b", f"f{i}")
        simulation = AutonomousSimulation(world)
        batch = simulation.run_batch(40)
        shared = [t for t in batch.turns if t.shared_fact is not None]
        assert shared
        assert all(t.pool in (TemplatePool.NPC_GOSSIP, TemplatePool.NPC_LORE) for t in shared)
        tagged = [e for e in simulation.events if InterestType.KNOWLEDGE_TRANSFER in e.tags]
        assert {e.turn for e in tagged} <= {t.turn_number for t in shared}
