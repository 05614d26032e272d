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

"""NPC conversational goals and state evaluation.

Goals express what an NPC wants from a conversation. The search engine
scores every simulated future by how far it advances the evaluating
NPC's goals, combined with risk, narrative value, opportunity cost and
conversational flow:

  total = goal * 0.40 + risk * 0.20 + narrative * 0.15
        + opportunity * 0.15 + flow * 0.10

Each component is on a roughly [-100, 100] scale. Goal progress per goal
is in [0, 1]; the weighted mean is mapped to [-100, 100].
Primary and situational goals count at full priority, secondary at half.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field

import numpy as np

from npc_dialogue.config import (
    FLOW_WEIGHT,
    GOAL_WEIGHT,
    NARRATIVE_WEIGHT,
    OPPORTUNITY_WEIGHT,
    RISK_WEIGHT,
)
from npc_dialogue.models.behavior import BehavioralState
from npc_dialogue.models.npc import BehavioralArchetype
from npc_dialogue.models.topic import TopicCategory
from npc_dialogue.search.snapshot import SimulationSnapshot, snapshot_mood


class GoalType(enum.Enum):
    MAXIMIZE_RESPECT = "maximize_respect"
    MAXIMIZE_TRUST = "maximize_trust"
    MAXIMIZE_FEAR = "maximize_fear"
    MINIMIZE_FEAR = "minimize_fear"
    MAXIMIZE_FAMILIARITY = "maximize_familiarity"
    EXTRACT_DEBT = "extract_debt"
    MAINTAIN_MYSTERY = "maintain_mystery"
    CONTROL_CONVERSATION = "control_conversation"
    PROVOKE_CONFLICT = "provoke_conflict"
    RESOLVE_CONFLICT = "resolve_conflict"
    DEEPEN_TOPIC = "deepen_topic"
    CHANGE_TOPIC = "change_topic"
    INCREASE_TENSION = "increase_tension"
    DECREASE_TENSION = "decrease_tension"
    CREATE_ALLIANCE = "create_alliance"
    PROTECT_ALLY = "protect_ally"
    SHARE_KNOWLEDGE = "share_knowledge"
    HIDE_KNOWLEDGE = "hide_knowledge"
    EXTRACT_INFORMATION = "extract_information"
    ENTERTAIN_SELF = "entertain_self"
    END_CONVERSATION = "end_conversation"


class GoalConditionKind(enum.Enum):
    RELATIONSHIP = "relationship"
    MOOD = "mood"
    BEHAVIOR = "behavior"
    TENSION = "tension"
    TURN = "turn"


@dataclass(frozen=True)
class GoalCondition:
    """Predicate gating a goal.

    Attributes:
        kind: What is inspected.
        comparison: gt, lt, gte, lte, eq, neq.
        value: Threshold or enum value to compare against.
        stat: Relationship stat name (RELATIONSHIP only).
        target_npc: Other side for RELATIONSHIP; defaults to the goal's target.
    """

    kind: GoalConditionKind
    comparison: str
    value: float | str
    stat: str = ""
    target_npc: str | None = None


@dataclass(frozen=True)
class NPCGoal:
    goal_type: GoalType
    priority: float
    target_npc: str | None = None
    active_when: tuple[GoalCondition, ...] = ()


@dataclass(frozen=True)
class NPCObjectives:
    """Goals an NPC brings to a conversation.

    Attributes:
        primary: Core drives, full weight.
        secondary: Nice-to-haves, half weight.
        situational: Goals set by recent events, full weight. An active
            situational goal marks the turn as high-stakes.
        archetype: Archetype the defaults came from.
    """

    primary: tuple[NPCGoal, ...] = ()
    secondary: tuple[NPCGoal, ...] = ()
    situational: tuple[NPCGoal, ...] = ()
    archetype: BehavioralArchetype = BehavioralArchetype.DIPLOMAT


@dataclass(frozen=True)
class EvaluationWeights:
    goal: float = GOAL_WEIGHT
    risk: float = RISK_WEIGHT
    narrative: float = NARRATIVE_WEIGHT
    opportunity: float = OPPORTUNITY_WEIGHT
    flow: float = FLOW_WEIGHT


@dataclass(frozen=True)
class Evaluation:
    total: float
    breakdown: dict[str, float] = field(default_factory=dict)
    achieved: tuple[str, ...] = ()
    risked: tuple[str, ...] = ()


G = GoalType


def _goals(*pairs: tuple[GoalType, float]) -> tuple[NPCGoal, ...]:
    return tuple(NPCGoal(goal_type, priority) for goal_type, priority in pairs)


ARCHETYPE_GOALS: dict[BehavioralArchetype, tuple[tuple[NPCGoal, ...], tuple[NPCGoal, ...]]] = {
    BehavioralArchetype.PREDATOR: (
        _goals((G.MAXIMIZE_FEAR, 80), (G.CONTROL_CONVERSATION, 70), (G.MAINTAIN_MYSTERY, 60)),
        _goals((G.MAXIMIZE_RESPECT, 50), (G.PROVOKE_CONFLICT, 40)),
    ),
    BehavioralArchetype.PREY: (
        _goals((G.MINIMIZE_FEAR, 90), (G.DECREASE_TENSION, 70)),
        _goals((G.CREATE_ALLIANCE, 60), (G.EXTRACT_INFORMATION, 50)),
    ),
    BehavioralArchetype.MERCHANT: (
        _goals((G.MAXIMIZE_TRUST, 80), (G.EXTRACT_DEBT, 70), (G.MAXIMIZE_FAMILIARITY, 60)),
        _goals((G.SHARE_KNOWLEDGE, 40), (G.CREATE_ALLIANCE, 30)),
    ),
    BehavioralArchetype.SAGE: (
        _goals((G.SHARE_KNOWLEDGE, 80), (G.MAINTAIN_MYSTERY, 70), (G.DEEPEN_TOPIC, 60)),
        _goals((G.MAXIMIZE_RESPECT, 50), (G.EXTRACT_INFORMATION, 40)),
    ),
    BehavioralArchetype.WARRIOR: (
        _goals((G.MAXIMIZE_RESPECT, 80), (G.MAXIMIZE_FEAR, 60)),
        _goals((G.PROTECT_ALLY, 70), (G.CONTROL_CONVERSATION, 40)),
    ),
    BehavioralArchetype.DIPLOMAT: (
        _goals((G.DECREASE_TENSION, 80), (G.CREATE_ALLIANCE, 70), (G.RESOLVE_CONFLICT, 60)),
        _goals((G.MAXIMIZE_TRUST, 50), (G.MAXIMIZE_FAMILIARITY, 40)),
    ),
    BehavioralArchetype.TRICKSTER: (
        _goals((G.ENTERTAIN_SELF, 80), (G.PROVOKE_CONFLICT, 60), (G.CHANGE_TOPIC, 50)),
        _goals((G.SHARE_KNOWLEDGE, 40), (G.INCREASE_TENSION, 30)),
    ),
    BehavioralArchetype.OPPORTUNIST: (
        _goals((G.EXTRACT_DEBT, 80), (G.EXTRACT_INFORMATION, 70)),
        _goals((G.MAXIMIZE_TRUST, 50),),
    ),
    BehavioralArchetype.GUARDIAN: (
        _goals((G.PROTECT_ALLY, 90), (G.DECREASE_TENSION, 60)),
        (
            NPCGoal(
                G.MAXIMIZE_FEAR,
                50,
                active_when=(GoalCondition(GoalConditionKind.TENSION, "gt", 0.5),),
            ),
            NPCGoal(G.HIDE_KNOWLEDGE, 40),
        ),
    ),
    BehavioralArchetype.LOYALIST: (
        _goals((G.PROTECT_ALLY, 80), (G.MAXIMIZE_TRUST, 70)),
        _goals((G.SHARE_KNOWLEDGE, 50), (G.RESOLVE_CONFLICT, 40)),
    ),
}


def default_objectives(archetype: BehavioralArchetype) -> NPCObjectives:
    primary, secondary = ARCHETYPE_GOALS[archetype]
    return NPCObjectives(primary=primary, secondary=secondary, archetype=archetype)


def _normalize(value: float, low: float, high: float) -> float:
    return float(np.clip((value - low) / (high - low), 0.0, 1.0))


def _compare(actual: float | str, comparison: str, expected: float | str) -> bool:
    if comparison == "eq":
        return actual == expected
    if comparison == "neq":
        return actual != expected
    if isinstance(actual, str) or isinstance(expected, str):
        return False
    if comparison == "gt":
        return actual > expected
    if comparison == "lt":
        return actual < expected
    if comparison == "gte":
        return actual >= expected
    if comparison == "lte":
        return actual <= expected
    return False


def _condition_holds(
    condition: GoalCondition,
    state: SimulationSnapshot,
    npc: str,
    goal_target: str | None,
) -> bool:
    kind = condition.kind
    if kind is GoalConditionKind.RELATIONSHIP:
        target = condition.target_npc or goal_target
        if target is None:
            return False
        return _compare(state.stats(npc, target).get(condition.stat), condition.comparison, condition.value)
    if kind is GoalConditionKind.MOOD:
        return _compare(snapshot_mood(state, npc).value, condition.comparison, condition.value)
    if kind is GoalConditionKind.BEHAVIOR:
        return _compare(state.behavior(npc).current.value, condition.comparison, condition.value)
    if kind is GoalConditionKind.TENSION:
        return _compare(state.thread.tension, condition.comparison, condition.value)
    if kind is GoalConditionKind.TURN:
        return _compare(state.thread.turn_count, condition.comparison, condition.value)
    return True


def is_goal_active(goal: NPCGoal, state: SimulationSnapshot, npc: str) -> bool:
    return all(_condition_holds(c, state, npc, goal.target_npc) for c in goal.active_when)


def has_active_situational_goal(
    objectives: NPCObjectives | None,
    state: SimulationSnapshot,
    npc: str,
) -> bool:
    if objectives is None:
        return False
    return any(is_goal_active(g, state, npc) for g in objectives.situational)


def _average_stat(state: SimulationSnapshot, npc: str, stat: str) -> float:
    values = [s.get(stat) for (owner, _), s in state.relationships.items() if owner == npc]
    return float(np.mean(values)) if values else 0.0


def _average_stat_toward(state: SimulationSnapshot, npc: str, stat: str) -> float:
    values = [
        s.get(stat)
        for (owner, target), s in state.relationships.items()
        if target == npc and owner != npc
    ]
    return float(np.mean(values)) if values else 0.0


def _own_view(state: SimulationSnapshot, npc: str, target: str | None, stat: str) -> float:
    if target is not None:
        return _normalize(state.stats(npc, target).get(stat), -100.0, 100.0)
    return _normalize(_average_stat(state, npc, stat), -100.0, 100.0)


def _others_view(state: SimulationSnapshot, npc: str, target: str | None, stat: str) -> float:
    if target is not None:
        return _normalize(state.stats(target, npc).get(stat), 0.0, 100.0)
    return _normalize(_average_stat_toward(state, npc, stat), 0.0, 100.0)


def evaluate_goal_progress(goal: NPCGoal, state: SimulationSnapshot, npc: str) -> float:
    """Progress toward one goal in [0, 1]."""
    thread = state.thread
    active = thread.get_active_topic()
    target = goal.target_npc
    g = goal.goal_type
    if g is G.MAXIMIZE_RESPECT:
        return _own_view(state, npc, target, "respect")
    if g is G.MAXIMIZE_TRUST:
        return _own_view(state, npc, target, "trust")
    if g is G.MAXIMIZE_FAMILIARITY:
        return _own_view(state, npc, target, "familiarity")
    if g is G.MAXIMIZE_FEAR:
        return _others_view(state, npc, target, "fear")
    if g is G.MINIMIZE_FEAR:
        return 1.0 - _own_view(state, npc, target, "fear")
    if g is G.EXTRACT_DEBT:
        return _others_view(state, npc, target, "debt")
    if g is G.MAINTAIN_MYSTERY:
        return 1.0 - _normalize(_average_stat_toward(state, npc, "familiarity"), 0.0, 100.0)
    if g is G.CONTROL_CONVERSATION:
        if active is None:
            return 0.0
        score = 0.4 if active.initiator == npc else 0.0
        score += 0.3 if npc in active.participants else 0.0
        return min(1.0, score + thread.momentum * 0.3)
    if g in (G.PROVOKE_CONFLICT, G.INCREASE_TENSION):
        return thread.tension
    if g in (G.RESOLVE_CONFLICT, G.DECREASE_TENSION):
        return 1.0 - thread.tension
    if g is G.DEEPEN_TOPIC:
        return _normalize(active.depth, 0.0, 10.0) if active else 0.0
    if g is G.CHANGE_TOPIC:
        recent = thread.topics[-3:]
        return _normalize(len({t.subject for t in recent}), 1.0, 3.0)
    if g is G.ENTERTAIN_SELF:
        variety = len({t.category for t in thread.topics[-5:]}) / 5.0
        return max(thread.tension, variety)
    if g is G.CREATE_ALLIANCE:
        if target is None:
            return _normalize(
                (_average_stat(state, npc, "trust") + _average_stat(state, npc, "familiarity")) / 2,
                0.0,
                100.0,
            )
        stats = state.stats(npc, target)
        return _normalize((stats.trust + stats.familiarity) / 2, 0.0, 100.0)
    if g is G.PROTECT_ALLY:
        if target is None:
            return 0.5
        return 1.0 - _normalize(state.stats(target, npc).fear, 0.0, 100.0)
    if g is G.SHARE_KNOWLEDGE:
        gossip = [t for t in thread.topics if t.category in (TopicCategory.GOSSIP, TopicCategory.LORE)]
        return min(1.0, 0.5 + gossip[0].depth * 0.05) if gossip else 0.0
    if g is G.HIDE_KNOWLEDGE:
        revealed = [t for t in thread.topics if t.category is TopicCategory.LORE and t.initiator == npc]
        return 0.5 if revealed else 1.0
    if g is G.EXTRACT_INFORMATION:
        lore = [t for t in thread.topics if t.category is TopicCategory.LORE and t.initiator != npc]
        return _normalize(sum(t.depth for t in lore), 0.0, 20.0)
    if g is G.END_CONVERSATION:
        return 1.0 - thread.momentum
    return 0.5


def _risk(state: SimulationSnapshot, npc: str) -> float:
    risk = 0.0
    if state.thread.tension > 0.7:
        if any(
            state.stats(npc, other).respect < -30 for other in state.participants if other != npc
        ):
            risk += 0.4
    if _average_stat(state, npc, "trust") < -30:
        risk += 0.3
    if _average_stat(state, npc, "fear") > 50:
        risk += 0.2
    if state.behavior(npc).current in (BehavioralState.FLEEING, BehavioralState.THREATENED):
        risk += 0.3
    return float(np.clip(risk, 0.0, 1.0))


def _narrative(state: SimulationSnapshot) -> float:
    recent = state.thread.topics[-5:]
    value = _normalize(len({t.category for t in recent}), 1.0, 5.0) * 0.25
    if recent:
        value += _normalize(float(np.mean([t.depth for t in recent])), 0.0, 10.0) * 0.25
    value += (1.0 - abs(state.thread.tension - 0.5) * 2.0) * 0.25
    if any(t.category is TopicCategory.LORE or "secret" in t.subject for t in recent):
        value += 0.25
    return float(np.clip(value, 0.0, 1.0))


def _opportunity_cost(state: SimulationSnapshot, origin: SimulationSnapshot) -> float:
    cost = 0.0
    momentum_loss = origin.thread.momentum - state.thread.momentum
    if momentum_loss > 0.2:
        cost += momentum_loss * 0.3
    active = state.thread.get_active_topic()
    if active is not None and active.exhaustion > 0.8 and active.depth < 3:
        cost += 0.3
    if state.thread.tension < 0.3 < origin.thread.tension:
        cost += 0.2
    return float(np.clip(cost, 0.0, 1.0))


def _flow(state: SimulationSnapshot) -> float:
    flow = 0.5 + state.thread.momentum * 0.3
    active = state.thread.get_active_topic()
    if active is not None:
        flow += (1.0 - active.exhaustion) * 0.2
    if 2 <= len(state.participants) <= 4:
        flow += 0.1
    return float(np.clip(flow, 0.0, 1.0))


def evaluate_state(
    state: SimulationSnapshot,
    npc: str,
    objectives: NPCObjectives,
    origin: SimulationSnapshot,
    weights: EvaluationWeights = EvaluationWeights(),
) -> Evaluation:
    """Score a simulated state from one NPC's point of view.

    Args:
        state: State reached after simulated turns.
        npc: Evaluating NPC.
        objectives: That NPC's goals.
        origin: State the search started from (for opportunity cost).
        weights: Component weights.

    Returns:
        Evaluation with total clamped to [-1000, 1000].
    """
    weighted_sum = 0.0
    total_priority = 0.0
    achieved: list[str] = []
    risked: list[str] = []
    tiers = (
        (objectives.primary, 1.0, True),
        (objectives.secondary, 0.5, False),
        (objectives.situational, 1.0, True),
    )
    for goals, factor, track_risk in tiers:
        for goal in goals:
            if not is_goal_active(goal, state, npc):
                continue
            progress = evaluate_goal_progress(goal, state, npc)
            weighted_sum += progress * goal.priority * factor
            total_priority += goal.priority * factor
            if progress > 0.7:
                achieved.append(goal.goal_type.value)
            if track_risk and progress < 0.3:
                risked.append(goal.goal_type.value)

    goal_score = (weighted_sum / total_priority) * 200.0 - 100.0 if total_priority > 0 else 0.0
    components = np.array(
        [
            goal_score,
            -_risk(state, npc) * 100.0,
            _narrative(state) * 100.0,
            -_opportunity_cost(state, origin) * 100.0,
            _flow(state) * 100.0,
        ]
    )
    factors = np.array(
        [weights.goal, weights.risk, weights.narrative, weights.opportunity, weights.flow]
    )
    total = float(np.clip(np.dot(components, factors), -1000.0, 1000.0))
    names = ("goal_alignment", "risk", "narrative", "opportunity_cost", "flow")
    return Evaluation(
        total=total,
        breakdown={name: float(v) for name, v in zip(names, components)},
        achieved=tuple(achieved),
        risked=tuple(risked),
    )
