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

"""Pydantic request/response schemas for the dialogue API."""

from __future__ import annotations

from pydantic import BaseModel, Field

from npc_dialogue.config import MAX_HEAT
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
    TemplateEffects,
    TemplatePool,
    Tone,
)
from npc_dialogue.models.topic import TopicCategory
from npc_dialogue.world.interaction import GameEventKind
from npc_dialogue.world.knowledge import KnowledgeCategory, KnowledgePiece, Secrecy


class CreateNPCRequest(BaseModel):
    """Request to register a new NPC."""

    slug: str = Field(min_length=1, max_length=64)
    name: str = Field(min_length=1)
    category: NPCCategory = NPCCategory.TRAVELERS
    title: str = ""
    archetype: BehavioralArchetype = BehavioralArchetype.DIPLOMAT
    default_mood: MoodType = MoodType.NEUTRAL
    sociability: float = Field(default=0.5, ge=0.0, le=1.0)
    aggression: float = Field(default=0.3, ge=0.0, le=1.0)
    loyalty: float = Field(default=0.5, ge=0.0, le=1.0)
    curiosity: float = Field(default=0.5, ge=0.0, le=1.0)
    mood_volatility: float = Field(default=0.5, ge=0.0, le=1.0)
    pool_weights: dict[str, float] = Field(
        default_factory=dict,
        description="Per-pool multipliers for ambient pool choice.",
    )

    def to_personality(self) -> NPCPersonality:
        return NPCPersonality(
            identity=NPCIdentity(self.slug, self.name, self.category, self.title),
            archetype=self.archetype,
            default_mood=self.default_mood,
            sociability=self.sociability,
            aggression=self.aggression,
            loyalty=self.loyalty,
            curiosity=self.curiosity,
            mood_volatility=self.mood_volatility,
            pool_weights=dict(self.pool_weights),
        )


class NPCResponse(BaseModel):
    slug: str
    name: str
    category: str
    archetype: str
    behavior: str
    default_mood: str


class TemplateConditionSpec(BaseModel):
    kind: ConditionKind
    comparison: Comparison
    value: float | str | bool = 0.0
    target: str = ""


class TemplateSpec(BaseModel):
    """A response template as authored in the content layer."""

    template_id: str = Field(min_length=1)
    pool: TemplatePool
    text_ref: str = ""
    npc_slug: str = ""
    mood: MoodType | None = None
    weight: float = Field(default=1.0, ge=0.0)
    conditions: list[TemplateConditionSpec] = Field(default_factory=list)
    cooldown_turns: int = Field(default=0, ge=0)
    once_per_conversation: bool = False
    listener_deltas: dict[str, float] = Field(default_factory=dict)
    reciprocal: bool = True
    memory_kind: MemoryKind = MemoryKind.CONVERSATION
    tone: Tone = Tone.NEUTRAL
    category: TopicCategory | None = None
    mood_bonus: MoodType | None = None
    tension_range: tuple[float, float] | None = None
    target_npc: str | None = None
    text: str = ""

    def to_template(self) -> ResponseTemplate:
        return ResponseTemplate(
            template_id=self.template_id,
            pool=self.pool,
            text_ref=self.text_ref,
            npc_slug=self.npc_slug,
            mood=self.mood,
            weight=self.weight,
            conditions=tuple(
                TemplateCondition(c.kind, c.comparison, c.value, c.target)
                for c in self.conditions
            ),
            cooldown_turns=self.cooldown_turns,
            once_per_conversation=self.once_per_conversation,
            effects=TemplateEffects(
                listener_deltas=tuple(self.listener_deltas.items()),
                reciprocal=self.reciprocal,
                memory_kind=self.memory_kind,
            ),
            tone=self.tone,
            category=self.category,
            mood_bonus=self.mood_bonus,
            tension_range=self.tension_range,
            target_npc=self.target_npc,
            text=self.text,
        )


class AddTemplatesResponse(BaseModel):
    added: int
    total: int


class StatChangeResponse(BaseModel):
    turn: int
    source_id: str
    target_id: str
    stat: str
    previous: float
    new: float
    change: float
    reason: str
    clamped: bool


class FirstMeetingResponse(BaseModel):
    line_refs: list[str]
    theory: str | None
    suggested_mood: str
    tension: float


class SituationSpec(BaseModel):
    """Game circumstances: where the player is and what they carry."""

    domain: str = Field(default="", max_length=64)
    player_gold: int = Field(default=0, ge=0)
    heat: int = Field(default=0, ge=0, le=MAX_HEAT)
    pool_tint: dict[TemplatePool, float] = Field(default_factory=dict)

    def to_context(self) -> SituationContext:
        return SituationContext(
            domain=self.domain,
            player_gold=self.player_gold,
            heat=self.heat,
            pool_tint=dict(self.pool_tint),
        )

    @classmethod
    def from_context(cls, situation: SituationContext) -> SituationSpec:
        return cls(
            domain=situation.domain,
            player_gold=situation.player_gold,
            heat=situation.heat,
            pool_tint=dict(situation.pool_tint),
        )


class InteractRequest(BaseModel):
    """Ask an NPC to speak. Without text or pool, the NPC opens or idles.

    `situation` applies to this turn only; the world's situation otherwise.
    """

    speaker: str
    listener: str = "player"
    player_text: str | None = Field(default=None, max_length=2000)
    pool: TemplatePool | None = None
    mood_override: MoodType | None = None
    situation: SituationSpec | None = None


class InteractionResponse(BaseModel):
    turn_number: int
    speaker: str
    listener: str
    intent: str | None
    pool: str
    response_id: str
    template_id: str
    text: str
    source: str
    confidence: float
    mood: str
    stat_changes: list[StatChangeResponse]
    memories_recorded: int
    first_meeting: FirstMeetingResponse | None = None
    caught_mood: str | None = None
    shared_fact: str | None = None


class KnowledgeSpec(BaseModel):
    """A fact to register, optionally known by some NPCs from the start."""

    fact_id: str = Field(min_length=1, max_length=128)
    content: str = Field(min_length=1)
    category: KnowledgeCategory = KnowledgeCategory.LORE
    secrecy: Secrecy = Secrecy.COMMON
    short_form: str = ""
    spread_chance: float = Field(default=0.5, ge=0.0, le=1.0)
    requires_trust: float = Field(default=0.0, ge=-100.0, le=100.0)
    related_npcs: list[str] = Field(default_factory=list)
    known_by: list[str] = Field(default_factory=list)

    def to_piece(self) -> KnowledgePiece:
        return KnowledgePiece(
            fact_id=self.fact_id,
            content=self.content,
            category=self.category,
            secrecy=self.secrecy,
            short_form=self.short_form,
            spread_chance=self.spread_chance,
            requires_trust=self.requires_trust,
            related_npcs=tuple(self.related_npcs),
        )


class KnowledgeResponse(BaseModel):
    fact_id: str
    content: str
    category: str
    secrecy: str
    short_form: str
    known_by: list[str]


class GameEventRequest(BaseModel):
    """Event reported by the game engine."""

    kind: GameEventKind
    actor: str
    target: str | None = None
    witnesses: list[str] = Field(default_factory=list)
    magnitude: int | None = Field(default=None, ge=1, le=10)
    details: str = Field(default="", max_length=200)


class GameEventResponse(BaseModel):
    kind: str
    memories_recorded: int
    stat_changes: list[StatChangeResponse]
    transitions: dict[str, str]
    player_theories: int


class RelationshipSummary(BaseModel):
    target: str
    stats: dict[str, float]
    mood: str
    disposition: str
    price_modifier: float
    opinion: float
    trauma_bond: bool
    interaction_count: int


class DashboardResponse(BaseModel):
    """Everything the relationship dashboard shows for one NPC."""

    slug: str
    name: str
    behavior: str
    previous_behavior: str | None
    turns_in_state: int
    relationships: list[RelationshipSummary]
    recent_changes: list[StatChangeResponse]
    memory_count: int
    memory_kinds: dict[str, int]
    most_memorable: str | None
    player_expectation: float
    player_theories: list[str]


class BatchRequest(BaseModel):
    cycles: int = Field(default=20, ge=1, le=1000)


class InterestingEventResponse(BaseModel):
    event_id: str
    turn: int
    speaker: str
    listener: str
    kind: str
    tags: list[str]
    description: str
    response_id: str
    interest_score: int
    tension: float


class StorylineResponse(BaseModel):
    storyline_id: str
    kind: str
    title: str
    primary: list[str]
    start_turn: int
    last_activity: int
    events: list[str]
    status: str
    tension: float
    momentum: float


class BatchResponse(BaseModel):
    cycles_run: int
    turns: int
    events: list[InterestingEventResponse]
    anomalies: list[str]
    active_storylines: list[StorylineResponse]
    summary: dict


class ChatbaseStatsResponse(BaseModel):
    enabled: bool
    entries: int
    npcs: int
    lookups: int
    hits: int
    exact_hits: int
    fuzzy_hits: int
    misses: int
    hit_rate: float


class TickRunnerStatusResponse(BaseModel):
    running: bool
    ticks_completed: int
    interval_seconds: float


class WorldStatusResponse(BaseModel):
    seed: str
    turn: int
    npc_count: int
    templates: int
    myth_status: str
