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

"""NPC identity and personality descriptors.

Identity is fixed once an NPC exists. Personality carries the traits the
dialogue pipeline reads: default mood, behavioral archetype (which picks
conversational goals), and a handful of 0-1 trait scalars.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field

from npc_dialogue.models.relationship import MoodType

DEFAULT_SOCIABILITY = 0.5
DEFAULT_AGGRESSION = 0.3
DEFAULT_LOYALTY = 0.5
DEFAULT_CURIOSITY = 0.5
DEFAULT_MOOD_VOLATILITY = 0.5


class NPCCategory(enum.Enum):
    """Social role of an NPC."""

    TRAVELERS = "travelers"
    WANDERERS = "wanderers"
    PANTHEON = "pantheon"
    SHOP = "shop"


class BehavioralArchetype(enum.Enum):
    """Broad behavior family. Drives default conversational objectives."""

    PREDATOR = "predator"
    PREY = "prey"
    MERCHANT = "merchant"
    SAGE = "sage"
    WARRIOR = "warrior"
    DIPLOMAT = "diplomat"
    TRICKSTER = "trickster"
    OPPORTUNIST = "opportunist"
    GUARDIAN = "guardian"
    LOYALIST = "loyalist"


@dataclass(frozen=True)
class NPCIdentity:
    """Stable identity of an NPC.

    Attributes:
        slug: Unique id, e.g. "mr-bones".
        name: Display name.
        category: Social role.
        title: Optional epithet shown alongside the name.
    """

    slug: str
    name: str
    category: NPCCategory = NPCCategory.TRAVELERS
    title: str = ""


@dataclass
class NPCPersonality:
    """Everything the dialogue pipeline needs to know about an NPC.

    Trait scalars are in [0, 1].

    Attributes:
        identity: Who this is.
        archetype: Behavior family (selects default goals).
        default_mood: Mood shown when no stat threshold fires.
        sociability: Willingness to start conversations.
        aggression: Bias toward hostile pools and tones.
        loyalty: Resistance to trust loss.
        curiosity: Bias toward lore, gossip and curious tones.
        mood_volatility: How strongly tone and company shift mood intensity.
        pool_weights: Per-pool multipliers (keyed by pool value) for
            ambient pool choice.
    """

    identity: NPCIdentity
    archetype: BehavioralArchetype = BehavioralArchetype.DIPLOMAT
    default_mood: MoodType = MoodType.NEUTRAL
    sociability: float = DEFAULT_SOCIABILITY
    aggression: float = DEFAULT_AGGRESSION
    loyalty: float = DEFAULT_LOYALTY
    curiosity: float = DEFAULT_CURIOSITY
    mood_volatility: float = DEFAULT_MOOD_VOLATILITY
    pool_weights: dict[str, float] = field(default_factory=dict)

    @property
    def slug(self) -> str:
        return self.identity.slug

    @property
    def name(self) -> str:
        return self.identity.name

    @property
    def category(self) -> NPCCategory:
        return self.identity.category
