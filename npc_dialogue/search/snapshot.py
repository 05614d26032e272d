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

"""Self-contained conversation state for hypothetical turns.

A SimulationSnapshot carries only what one more turn needs: the
participants, the stats between them, tone-driven mood overrides,
behavioral states, the thread, personalities, the game situation and an
RNG cursor. Its mappings are built fresh from the live stores and never
mutated afterwards; simulate_turn copies the (small) mappings it changes
and shares the frozen leaves, so a simulated future never touches live
state.

Per simulated turn:
  - listener's view of the speaker gets the template's deltas, with
    trust losses scaled by the listener's loyalty, plus a small
    familiarity bump; the speaker gets half of it back
  - the speaker's tone sets a mood override and shifts its intensity,
    scaled by the speaker's mood volatility
  - momentum moves by POOL_MOMENTUM[pool] * 0.2 minus a flat decay
  - threatening/aggressive tones add tension, friendly/helpful remove it
  - both sides' behavioral states take the pool's triggers
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field, replace

from npc_dialogue.core.rng import SeededRng, create_rng
from npc_dialogue.dialogue.conversation_thread import POOL_TOPICS, contribute
from npc_dialogue.dialogue.templates import listener_deltas, template_tone
from npc_dialogue.models.behavior import BehavioralState, BehaviorTrigger, NPCBehaviorState
from npc_dialogue.models.npc import NPCPersonality
from npc_dialogue.models.relationship import MoodContext, MoodType, RelationshipStats
from npc_dialogue.models.situation import SituationContext
from npc_dialogue.models.templates import ResponseTemplate, TemplatePool, Tone
from npc_dialogue.models.topic import ConversationThread
from npc_dialogue.simulation.personality import (
    pool_bias,
    shield_trust,
    situational_tension,
    tone_bias,
    volatility_scale,
)
from npc_dialogue.simulation.relationship_engine import RelationshipStore, clamp_stat, derive_mood

_MOMENTUM_DECAY = 0.05
_MOMENTUM_SCALE = 0.2
_TERMINAL_MOMENTUM = 0.1
_TURN_FAMILIARITY = 2.0

# tone -> (mood override, intensity change)
TONE_MOODS: dict[Tone, tuple[MoodType, float]] = {
    Tone.AGGRESSIVE: (MoodType.ANGRY, 15.0),
    Tone.THREATENING: (MoodType.ANGRY, 20.0),
    Tone.FRIENDLY: (MoodType.PLEASED, 10.0),
    Tone.MYSTERIOUS: (MoodType.NEUTRAL, -5.0),
    Tone.CURIOUS: (MoodType.CURIOUS, 10.0),
    Tone.DISMISSIVE: (MoodType.ANNOYED, 5.0),
    Tone.HELPFUL: (MoodType.PLEASED, 10.0),
    Tone.FEARFUL: (MoodType.SCARED, 15.0),
    Tone.SAD: (MoodType.SAD, 10.0),
}

TONE_TENSION: dict[Tone, float] = {
    Tone.THREATENING: 0.15,
    Tone.AGGRESSIVE: 0.15,
    Tone.FRIENDLY: -0.05,
    Tone.HELPFUL: -0.05,
}

POOL_MOMENTUM: dict[TemplatePool, float] = {
    TemplatePool.GREETING: 0.6,
    TemplatePool.NPC_GREETING: 0.6,
    TemplatePool.IDLE: -0.1,
    TemplatePool.FAREWELL: -0.5,
    TemplatePool.REACTION: 0.2,
    TemplatePool.SALES_PITCH: 0.3,
    TemplatePool.BARGAIN: 0.4,
    TemplatePool.HINT: 0.5,
    TemplatePool.LORE: 0.6,
    TemplatePool.THREAT: 0.7,
    TemplatePool.CHALLENGE: 0.5,
    TemplatePool.NPC_REACTION: 0.4,
    TemplatePool.NPC_GOSSIP: 0.3,
    TemplatePool.NPC_LORE: 0.5,
    TemplatePool.NPC_CONFLICT: 0.8,
    TemplatePool.NPC_ALLIANCE: 0.5,
    TemplatePool.PLAYER_INTERRUPT: 0.2,
}

# pool -> (speaker trigger, listener trigger)
POOL_TRIGGERS: dict[TemplatePool, tuple[BehaviorTrigger | None, BehaviorTrigger | None]] = {
    TemplatePool.GREETING: (BehaviorTrigger.CONVERSATION_STARTED, BehaviorTrigger.CONVERSATION_STARTED),
    TemplatePool.NPC_GREETING: (BehaviorTrigger.CONVERSATION_STARTED, BehaviorTrigger.CONVERSATION_STARTED),
    TemplatePool.FAREWELL: (BehaviorTrigger.CONVERSATION_ENDED, BehaviorTrigger.CONVERSATION_ENDED),
    TemplatePool.THREAT: (BehaviorTrigger.PROVOKED, BehaviorTrigger.THREATENED),
    TemplatePool.NPC_CONFLICT: (BehaviorTrigger.PROVOKED, BehaviorTrigger.INSULTED),
    TemplatePool.CHALLENGE: (None, BehaviorTrigger.INSULTED),
    TemplatePool.SALES_PITCH: (BehaviorTrigger.TRADE_OFFERED, BehaviorTrigger.TRADE_OFFERED),
    TemplatePool.BARGAIN: (BehaviorTrigger.TRADE_OFFERED, BehaviorTrigger.TRADE_OFFERED),
    TemplatePool.NPC_ALLIANCE: (None, BehaviorTrigger.PRAISED),
    TemplatePool.NPC_GOSSIP: (None, BehaviorTrigger.SECRET_SHARED),
    TemplatePool.NPC_LORE: (None, BehaviorTrigger.SECRET_SHARED),
}

_NPC_POOLS = (
    TemplatePool.NPC_REACTION,
    TemplatePool.NPC_GOSSIP,
    TemplatePool.NPC_LORE,
    TemplatePool.NPC_CONFLICT,
    TemplatePool.NPC_ALLIANCE,
    TemplatePool.NPC_GREETING,
)


@dataclass(frozen=True)
class Move:
    """One conversational move: who says which template to whom."""

    speaker: str
    listener: str
    template: ResponseTemplate


@dataclass(frozen=True)
class SimulationSnapshot:
    """Everything needed to simulate further turns without live state.

    Attributes:
        participants: NPCs in the conversation.
        relationships: (owner, target) -> stats among participants.
        moods: Tone-driven mood overrides with intensity, per NPC.
        behaviors: Behavioral state per NPC.
        thread: Conversation thread.
        used_templates: Template ids already spoken in this future.
        last_speaker: Who spoke last.
        seed: Base seed of the decision being searched.
        cursor: Simulated turns since the snapshot was taken.
        default_moods: Fallback mood per NPC.
        personalities: Traits per NPC; missing NPCs act with default traits.
        situation: Game circumstances; None is a neutral situation.
    """

    participants: tuple[str, ...]
    relationships: Mapping[tuple[str, str], RelationshipStats] = field(default_factory=dict)
    moods: Mapping[str, tuple[MoodType, float]] = field(default_factory=dict)
    behaviors: Mapping[str, NPCBehaviorState] = field(default_factory=dict)
    thread: ConversationThread = field(default_factory=lambda: ConversationThread("sim"))
    used_templates: frozenset[str] = frozenset()
    last_speaker: str | None = None
    seed: str = ""
    cursor: int = 0
    default_moods: Mapping[str, MoodType] = field(default_factory=dict)
    personalities: Mapping[str, NPCPersonality] = field(default_factory=dict)
    situation: SituationContext | None = None

    def stats(self, owner: str, target: str) -> RelationshipStats:
        return self.relationships.get((owner, target)) or RelationshipStats()

    def behavior(self, npc: str) -> NPCBehaviorState:
        return self.behaviors.get(npc) or NPCBehaviorState()

    def personality(self, npc: str) -> NPCPersonality | None:
        return self.personalities.get(npc)

    def rng(self, purpose: str) -> SeededRng:
        """Generator for this point of the simulated future."""
        return create_rng(f"{self.seed}:sim:{self.cursor}:{purpose}")


def _counterpart(state: SimulationSnapshot, npc: str) -> str | None:
    if state.last_speaker and state.last_speaker != npc:
        return state.last_speaker
    for other in state.participants:
        if other != npc:
            return other
    return None


def snapshot_mood(state: SimulationSnapshot, npc: str) -> MoodType:
    """Current mood: tone override if present, else derived from stats."""
    override = state.moods.get(npc)
    if override is not None:
        return override[0]
    other = _counterpart(state, npc)
    stats = state.stats(npc, other) if other else RelationshipStats()
    context = MoodContext(
        default_mood=state.default_moods.get(npc, MoodType.NEUTRAL),
        tension_bonus=situational_tension(state.situation),
    )
    return derive_mood(stats, context)


def _apply_deltas(
    relationships: dict[tuple[str, str], RelationshipStats],
    owner: str,
    target: str,
    deltas: Sequence[tuple[str, float]],
) -> None:
    stats = relationships.get((owner, target)) or RelationshipStats()
    for stat, delta in deltas:
        stats = stats.with_stat(stat, clamp_stat(stat, stats.get(stat) + delta))
    relationships[(owner, target)] = stats


def simulate_turn(state: SimulationSnapshot, move: Move) -> SimulationSnapshot:
    """Apply one move to a copy of the state. The input is untouched."""
    template = move.template
    tone = template_tone(template)

    relationships = dict(state.relationships)
    deltas = list(listener_deltas(template))
    familiarity = _TURN_FAMILIARITY + sum(d for s, d in deltas if s == "familiarity")
    deltas = [(s, d) for s, d in deltas if s != "familiarity"] + [("familiarity", familiarity)]
    listener = state.personality(move.listener)
    if listener is not None:
        deltas = list(shield_trust(listener.loyalty, deltas))
    _apply_deltas(relationships, move.listener, move.speaker, deltas)
    if template.effects.reciprocal:
        _apply_deltas(relationships, move.speaker, move.listener, [("familiarity", familiarity / 2)])

    moods = dict(state.moods)
    if tone in TONE_MOODS:
        mood, shift = TONE_MOODS[tone]
        shift *= volatility_scale(state.personality(move.speaker))
        _, intensity = moods.get(move.speaker, (mood, 50.0))
        moods[move.speaker] = (mood, float(min(100.0, max(0.0, intensity + shift))))

    behaviors = dict(state.behaviors)
    speaker_trigger, listener_trigger = POOL_TRIGGERS.get(template.pool, (None, None))
    for npc, trigger in ((move.speaker, speaker_trigger), (move.listener, listener_trigger)):
        current = behaviors.get(npc) or NPCBehaviorState()
        behaviors[npc] = current.apply(trigger) if trigger else replace(
            current, turns_in_state=current.turns_in_state + 1
        )

    category = template.category or POOL_TOPICS.get(template.pool)
    momentum_delta = POOL_MOMENTUM.get(template.pool, 0.0) * _MOMENTUM_SCALE - _MOMENTUM_DECAY
    thread = state.thread
    if category is not None:
        thread = contribute(
            thread,
            move.speaker,
            category,
            tension_delta=TONE_TENSION.get(tone, 0.0),
            momentum_delta=momentum_delta,
        )

    return replace(
        state,
        relationships=relationships,
        moods=moods,
        behaviors=behaviors,
        thread=thread,
        used_templates=state.used_templates | {template.template_id},
        last_speaker=move.speaker,
        cursor=state.cursor + 1,
    )


def next_speaker(state: SimulationSnapshot, rng: SeededRng) -> str | None:
    """Weighted pick of who talks next."""
    if not state.participants:
        return None
    active = state.thread.get_active_topic()
    weighted: list[tuple[str, float]] = []
    for npc in state.participants:
        weight = 1.0
        if npc == state.last_speaker:
            weight *= 0.3
        if active is not None and npc in active.participants:
            weight *= 1.5
        mood = snapshot_mood(state, npc)
        if mood in (MoodType.ANGRY, MoodType.CURIOUS):
            weight *= 1.3
        elif mood in (MoodType.SCARED, MoodType.SAD):
            weight *= 0.7
        behavior = state.behavior(npc).current
        if behavior in (BehavioralState.AGGRESSIVE, BehavioralState.ENGAGED):
            weight *= 1.4
        elif behavior in (BehavioralState.FLEEING, BehavioralState.IDLE):
            weight *= 0.6
        weighted.append((npc, max(0.1, weight)))
    return rng.weighted(weighted, "speaker")


def next_pool(state: SimulationSnapshot, speaker: str, rng: SeededRng) -> TemplatePool:
    """Weighted pick of the pool an NPC answers from in ambient talk."""
    weights = {
        TemplatePool.NPC_REACTION: 1.0,
        TemplatePool.NPC_GOSSIP: 0.8,
        TemplatePool.NPC_LORE: 0.5,
        TemplatePool.NPC_CONFLICT: 0.3,
        TemplatePool.NPC_ALLIANCE: 0.4,
        TemplatePool.NPC_GREETING: 0.6 if state.thread.turn_count == 0 else 0.05,
    }
    if state.thread.tension > 0.5:
        weights[TemplatePool.NPC_CONFLICT] *= 2.5
        weights[TemplatePool.NPC_ALLIANCE] *= 0.5
    mood = snapshot_mood(state, speaker)
    if mood in (MoodType.ANGRY, MoodType.THREATENING, MoodType.ANNOYED):
        weights[TemplatePool.NPC_CONFLICT] *= 2.0
    elif mood in (MoodType.PLEASED, MoodType.GENEROUS, MoodType.GRATEFUL):
        weights[TemplatePool.NPC_ALLIANCE] *= 2.0
    behavior = state.behavior(speaker).current
    if behavior is BehavioralState.AGGRESSIVE:
        weights[TemplatePool.NPC_CONFLICT] *= 2.0
    elif behavior is BehavioralState.FRIENDLY:
        weights[TemplatePool.NPC_ALLIANCE] *= 1.5
    elif behavior is BehavioralState.SCHEMING:
        weights[TemplatePool.NPC_GOSSIP] *= 1.5
    personality = state.personality(speaker)
    for p in _NPC_POOLS:
        weights[p] *= pool_bias(personality, state.situation, p)
    pool = rng.weighted([(p, weights[p]) for p in _NPC_POOLS], "pool")
    return pool or TemplatePool.NPC_REACTION


def score_move(state: SimulationSnapshot, move: Move, rng: SeededRng) -> float:
    """Heuristic prior used to order and cap candidate moves."""
    template = move.template
    weight = max(template.weight, 0.01) * tone_bias(
        state.personality(move.speaker), template_tone(template)
    )
    if template.mood_bonus is not None and template.mood_bonus is snapshot_mood(state, move.speaker):
        weight *= 1.5
    if template.tension_range is not None:
        low, high = template.tension_range
        if low <= state.thread.tension <= high:
            weight *= 1.3
    active = state.thread.get_active_topic()
    if active is not None and template.category is active.category:
        weight *= 1.4
    return weight * (0.9 + 0.2 * rng.random("move-jitter"))


def generate_moves(
    state: SimulationSnapshot,
    speaker: str,
    listener: str,
    templates: Sequence[ResponseTemplate],
    limit: int,
    rng: SeededRng,
) -> list[Move]:
    """Best `limit` unused templates as moves, highest prior first."""
    scored: list[tuple[float, str, Move]] = []
    for template in templates:
        if template.template_id in state.used_templates:
            continue
        move = Move(speaker, listener, template)
        scored.append((score_move(state, move, rng), template.template_id, move))
    scored.sort(key=lambda item: (-item[0], item[1]))
    return [move for _, _, move in scored[: max(0, limit)]]


def is_terminal(state: SimulationSnapshot, depth: int, max_depth: int) -> bool:
    if depth >= max_depth:
        return True
    if len(state.participants) < 2:
        return True
    if state.thread.momentum < _TERMINAL_MOMENTUM:
        return True
    return False


def state_key(state: SimulationSnapshot) -> tuple:
    """Hashable summary of everything an evaluation reads.

    Two move orders that reach the same stats, moods, behaviors and
    thread shape share a key, so the search scores that state once.
    """
    thread = state.thread
    return (
        tuple(
            sorted(
                (owner, target, tuple(round(v, 1) for v in stats.to_dict().values()))
                for (owner, target), stats in state.relationships.items()
            )
        ),
        tuple(sorted((npc, mood.value, round(i)) for npc, (mood, i) in state.moods.items())),
        tuple(sorted((npc, b.current.value) for npc, b in state.behaviors.items())),
        thread.active_topic,
        tuple(sorted((t.category.value, t.initiator, t.depth) for t in thread.topics)),
        round(thread.momentum, 2),
        round(thread.tension, 2),
        state.last_speaker,
        state.cursor,
    )


def build_snapshot(
    participants: Sequence[str],
    relationships: RelationshipStore,
    thread: ConversationThread,
    seed: str,
    behaviors: Mapping[str, NPCBehaviorState] | None = None,
    default_moods: Mapping[str, MoodType] | None = None,
    used_templates: Sequence[str] = (),
    last_speaker: str | None = None,
    personalities: Mapping[str, NPCPersonality] | None = None,
    situation: SituationContext | None = None,
) -> SimulationSnapshot:
    """Copy the live state between participants into a fresh snapshot.

    Only participant pairs are copied, so the cost depends on the number
    of people in the conversation, not on the size of the world.
    """
    people = tuple(participants)
    pairs = {
        (owner, target): relationships.stats(owner, target)
        for owner in people
        for target in people
        if owner != target
    }
    return SimulationSnapshot(
        participants=people,
        relationships=pairs,
        behaviors={npc: b for npc, b in (behaviors or {}).items() if npc in people},
        thread=thread,
        used_templates=frozenset(used_templates),
        last_speaker=last_speaker,
        seed=seed,
        default_moods={npc: m for npc, m in (default_moods or {}).items() if npc in people},
        personalities={npc: p for npc, p in (personalities or {}).items() if npc in people},
        situation=situation,
    )
