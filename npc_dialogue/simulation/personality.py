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

"""Personality traits and game situation as weights on dialogue choices.

Every bias is a multiplier that is exactly 1.0 for an NPC whose traits sit
at their defaults in a neutral situation, so authored weights keep their
meaning until a trait or the situation moves.

  - pool_weights: direct per-pool multipliers on ambient pool choice
  - aggression: scales hostile pools and aggressive/threatening tones
  - curiosity: scales lore and gossip pools and curious/mysterious tones
  - loyalty: shields (or, below 0.5, amplifies) trust losses
  - mood_volatility: scales tone-driven mood shifts and mood contagion
  - domain tint, heat and player gold: situational pool multipliers
"""

from __future__ import annotations

from collections.abc import Sequence

from npc_dialogue.config import (
    HEAT_CONFLICT_PER_POINT,
    HEAT_PRICE_PER_POINT,
    HEAT_TENSION_PER_POINT,
    LOYALTY_TRUST_SHIELD,
    MOOD_CONTAGION_RATE,
    PRICE_MODIFIER_MAX,
    PRICE_MODIFIER_MIN,
    TRAIT_POOL_SPREAD,
    WEALTHY_PLAYER_GOLD,
)
from npc_dialogue.models.npc import (
    DEFAULT_AGGRESSION,
    DEFAULT_CURIOSITY,
    DEFAULT_LOYALTY,
    DEFAULT_MOOD_VOLATILITY,
    NPCPersonality,
)
from npc_dialogue.models.relationship import MoodType, RelationshipStats
from npc_dialogue.models.situation import SituationContext
from npc_dialogue.models.templates import TemplatePool, Tone
from npc_dialogue.simulation.relationship_engine import price_modifier

HOSTILE_POOLS = frozenset(
    {TemplatePool.THREAT, TemplatePool.CHALLENGE, TemplatePool.NPC_CONFLICT}
)
INQUISITIVE_POOLS = frozenset(
    {TemplatePool.LORE, TemplatePool.HINT, TemplatePool.NPC_LORE, TemplatePool.NPC_GOSSIP}
)
COMMERCE_POOLS = frozenset({TemplatePool.SALES_PITCH, TemplatePool.BARGAIN})

_HOSTILE_TONES = frozenset({Tone.AGGRESSIVE, Tone.THREATENING})
_INQUISITIVE_TONES = frozenset({Tone.CURIOUS, Tone.MYSTERIOUS})
_WEALTH_BONUS = 1.5

# Moods that spread to listeners; neutral carries nothing
CONTAGIOUS_MOODS: dict[MoodType, float] = {
    MoodType.PLEASED: 0.6,
    MoodType.ANNOYED: 0.7,
    MoodType.AMUSED: 0.8,
    MoodType.THREATENING: 0.5,
    MoodType.ANGRY: 0.7,
    MoodType.SCARED: 0.6,
    MoodType.FEARFUL: 0.6,
    MoodType.CRYPTIC: 0.3,
    MoodType.SAD: 0.4,
    MoodType.CURIOUS: 0.5,
    MoodType.GENEROUS: 0.4,
    MoodType.GRATEFUL: 0.4,
}


def _trait_scale(value: float, neutral: float) -> float:
    return max(0.0, 1.0 + TRAIT_POOL_SPREAD * (value - neutral))


def pool_bias(
    personality: NPCPersonality | None,
    situation: SituationContext | None,
    pool: TemplatePool,
) -> float:
    """Multiplier on an ambient pool's weight for this speaker and situation."""
    weight = 1.0
    if personality is not None:
        weight *= max(0.0, personality.pool_weights.get(pool.value, 1.0))
        if pool in HOSTILE_POOLS:
            weight *= _trait_scale(personality.aggression, DEFAULT_AGGRESSION)
        elif pool in INQUISITIVE_POOLS:
            weight *= _trait_scale(personality.curiosity, DEFAULT_CURIOSITY)
    if situation is not None:
        weight *= situation.tint(pool)
        if pool in HOSTILE_POOLS:
            weight *= 1.0 + situation.heat * HEAT_CONFLICT_PER_POINT
        elif pool in COMMERCE_POOLS and situation.player_gold >= WEALTHY_PLAYER_GOLD:
            weight *= _WEALTH_BONUS
    return weight


def tone_bias(personality: NPCPersonality | None, tone: Tone) -> float:
    """Multiplier on a template's selection weight from the speaker's temperament."""
    if personality is None:
        return 1.0
    if tone in _HOSTILE_TONES:
        return _trait_scale(personality.aggression, DEFAULT_AGGRESSION)
    if tone in _INQUISITIVE_TONES:
        return _trait_scale(personality.curiosity, DEFAULT_CURIOSITY)
    return 1.0


def shield_trust(
    loyalty: float, deltas: Sequence[tuple[str, float]]
) -> tuple[tuple[str, float], ...]:
    """Scale trust losses by loyalty. Gains and other stats pass through."""
    factor = max(0.0, 1.0 - LOYALTY_TRUST_SHIELD * (loyalty - DEFAULT_LOYALTY) * 2.0)
    return tuple(
        (stat, delta * factor if stat == "trust" and delta < 0 else delta)
        for stat, delta in deltas
    )


def volatility_scale(personality: NPCPersonality | None) -> float:
    if personality is None:
        return 1.0
    return max(0.0, 1.0 + personality.mood_volatility - DEFAULT_MOOD_VOLATILITY)


def situational_tension(situation: SituationContext | None) -> float:
    """Tension bonus for mood derivation."""
    return situation.heat * HEAT_TENSION_PER_POINT if situation is not None else 0.0


def situational_price(stats: RelationshipStats, situation: SituationContext | None) -> float:
    """Relationship price modifier, raised by heat, clamped to the price range."""
    base = price_modifier(stats)
    if situation is None:
        return base
    modifier = base * (1.0 + situation.heat * HEAT_PRICE_PER_POINT)
    return max(PRICE_MODIFIER_MIN, min(PRICE_MODIFIER_MAX, modifier))


def catch_mood(
    current: tuple[MoodType, float] | None,
    source: MoodType,
    source_intensity: float,
    listener: NPCPersonality | None,
    familiarity: float = 0.0,
) -> tuple[MoodType, float] | None:
    """The listener's caught mood after hearing a speaker in `source` mood.

    Returns the new (mood, intensity), or `current` unchanged when the
    source mood does not spread. A matching mood is reinforced; a
    different one takes over only when the incoming push outweighs it.
    """
    contagiousness = CONTAGIOUS_MOODS.get(source)
    if contagiousness is None:
        return current
    closeness = 1.0 + max(0.0, min(100.0, familiarity)) / 200.0
    push = (
        source_intensity
        * MOOD_CONTAGION_RATE
        * contagiousness
        * closeness
        * volatility_scale(listener)
    )
    if push <= 0.0:
        return current
    if current is None:
        return source, min(100.0, push)
    mood, intensity = current
    if mood is source:
        return mood, min(100.0, intensity + push)
    if push > intensity:
        return source, min(100.0, push)
    return mood, max(0.0, intensity - push)
