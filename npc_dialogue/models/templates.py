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

"""Response template records.

Templates reference their line content by id (text_ref). The optional
`text` pattern is only used for {{variable}} substitution when a content
layer has supplied one.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass

from npc_dialogue.models.memory import MemoryKind
from npc_dialogue.models.relationship import MoodType
from npc_dialogue.models.topic import TopicCategory


class TemplatePool(enum.Enum):
    """Conversational purpose of a template."""

    GREETING = "greeting"
    FAREWELL = "farewell"
    IDLE = "idle"
    SALES_PITCH = "sales_pitch"
    BARGAIN = "bargain"
    THREAT = "threat"
    CHALLENGE = "challenge"
    HINT = "hint"
    LORE = "lore"
    REACTION = "reaction"
    NPC_GREETING = "npc_greeting"
    NPC_REACTION = "npc_reaction"
    NPC_GOSSIP = "npc_gossip"
    NPC_LORE = "npc_lore"
    NPC_CONFLICT = "npc_conflict"
    NPC_ALLIANCE = "npc_alliance"
    PLAYER_INTERRUPT = "player_interrupt"


class Tone(enum.Enum):
    NEUTRAL = "neutral"
    AGGRESSIVE = "aggressive"
    THREATENING = "threatening"
    FRIENDLY = "friendly"
    MYSTERIOUS = "mysterious"
    CURIOUS = "curious"
    DISMISSIVE = "dismissive"
    HELPFUL = "helpful"
    FEARFUL = "fearful"
    SAD = "sad"


class ConditionKind(enum.Enum):
    MOOD = "mood"
    RELATIONSHIP = "relationship"
    MEMORY = "memory"
    BEHAVIOR = "behavior"
    CONTEXT = "context"
    RANDOM = "random"


class Comparison(enum.Enum):
    GT = "gt"
    LT = "lt"
    EQ = "eq"
    NEQ = "neq"
    GTE = "gte"
    LTE = "lte"
    HAS = "has"
    LACKS = "lacks"


@dataclass(frozen=True)
class TemplateCondition:
    """Applicability predicate.

    `target` names what is compared: a stat for RELATIONSHIP, one of
    "opinion", "trauma_bond", "recent_conflict" for MEMORY, a context
    flag for CONTEXT. MOOD and BEHAVIOR compare enum values by name;
    RANDOM passes with probability `value`.
    """

    kind: ConditionKind
    comparison: Comparison
    value: float | str | bool = 0.0
    target: str = ""


@dataclass(frozen=True)
class TemplateEffects:
    """Stat changes a template causes when spoken.

    Attributes:
        listener_deltas: Changes to how the listener sees the speaker.
        reciprocal: Also nudge the speaker's familiarity with the
            listener by half the listener's familiarity delta.
        memory_kind: Memory event appended to both participants.
    """

    listener_deltas: tuple[tuple[str, float], ...] = ()
    reciprocal: bool = True
    memory_kind: MemoryKind = MemoryKind.CONVERSATION


@dataclass(frozen=True)
class ResponseTemplate:
    """A selectable line.

    Attributes:
        template_id: Unique id.
        pool: Conversational purpose.
        text_ref: Id of the line in the content layer.
        npc_slug: Owning NPC, or "" for templates any NPC may use.
        mood: Required speaker mood; None accepts any mood.
        weight: Base selection weight.
        conditions: All must hold for the template to be eligible.
        cooldown_turns: Turns before the same NPC may reuse it.
        once_per_conversation: Never reused within one thread.
        effects: Stat and memory consequences.
        tone: Emotional register (drives simulated mood shifts).
        category: Topic the line belongs to, if any.
        mood_bonus: Weight boost when the speaker is in this mood.
        tension_range: Weight boost when thread tension lies inside.
        target_npc: Only usable when addressing this NPC.
        text: Optional pattern with {{variable}} placeholders.
    """

    template_id: str
    pool: TemplatePool
    text_ref: str = ""
    npc_slug: str = ""
    mood: MoodType | None = None
    weight: float = 1.0
    conditions: tuple[TemplateCondition, ...] = ()
    cooldown_turns: int = 0
    once_per_conversation: bool = False
    effects: TemplateEffects = TemplateEffects()
    tone: Tone = Tone.NEUTRAL
    category: TopicCategory | None = None
    mood_bonus: MoodType | None = None
    tension_range: tuple[float, float] | None = None
    target_npc: str | None = None
    text: str = ""

    @property
    def ref(self) -> str:
        return self.text_ref or self.template_id
