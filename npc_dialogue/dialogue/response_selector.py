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

"""Response selection pipeline.

Four sources, tried in order:
  1. CHATBASE - precomputed line for the quantized context ($0, O(1))
  2. SEARCH   - conversation search over the filtered candidates,
                only when the turn is high-stakes
  3. RANDOM   - weighted draw with a diversity penalty
  4. FALLBACK - the pool's generic template; always available

A turn is high-stakes when thread tension is at least HIGH_STAKES_TENSION,
the speaker has an active situational goal, the pool is strategic, or the
speaker belongs to the pantheon, and there are at least two candidates to
choose between.

Selection never mutates its inputs. The result carries the new
relationship store, memory store, usage tracker, thread and behavioral
states for the caller to keep.
"""

from __future__ import annotations

import enum
import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field, replace

import numpy as np

from npc_dialogue.config import DIVERSITY_PENALTY, HIGH_STAKES_TENSION, RECENT_USAGE_WINDOW
from npc_dialogue.core.rng import SeededRng, conversation_seed, create_rng
from npc_dialogue.dialogue.conversation_thread import POOL_TOPICS, contribute, start_thread
from npc_dialogue.dialogue.templates import (
    TemplateLibrary,
    generic_template,
    listener_deltas,
    memory_kind,
    substitute_variables,
    template_tone,
)
from npc_dialogue.models.behavior import NPCBehaviorState
from npc_dialogue.models.memory import MemoryEvent, MemoryKind, NPCMemory
from npc_dialogue.models.npc import NPCCategory, NPCPersonality
from npc_dialogue.models.relationship import (
    STAT_NAMES,
    MoodContext,
    MoodType,
    ObservedStatChange,
    RelationshipEventKind,
    RelationshipStats,
)
from npc_dialogue.models.templates import (
    Comparison,
    ConditionKind,
    ResponseTemplate,
    TemplateCondition,
    TemplatePool,
)
from npc_dialogue.models.situation import SituationContext
from npc_dialogue.models.topic import ConversationThread
from npc_dialogue.search.chatbase import ChatbaseContext
from npc_dialogue.search.chatbase_lookup import ChatbaseLookupEngine, ChatbaseLookupResult
from npc_dialogue.search.conversation_search import ConversationSearch, SearchResult
from npc_dialogue.search.goals import NPCObjectives, default_objectives, has_active_situational_goal
from npc_dialogue.search.snapshot import (
    POOL_MOMENTUM,
    POOL_TRIGGERS,
    TONE_TENSION,
    build_snapshot,
)
from npc_dialogue.simulation.memory_engine import (
    MemoryEngine,
    MemoryStore,
    get_opinion,
    has_recent_conflict,
    has_trauma_bond,
    memory_variables,
)
from npc_dialogue.simulation.personality import shield_trust, situational_tension, tone_bias
from npc_dialogue.simulation.relationship_engine import (
    RelationshipEngine,
    RelationshipStore,
    derive_mood,
)

logger = logging.getLogger(__name__)

# Pools where a wrong line is costly enough to plan ahead
STRATEGIC_POOLS = frozenset(
    {
        TemplatePool.THREAT,
        TemplatePool.CHALLENGE,
        TemplatePool.BARGAIN,
        TemplatePool.NPC_CONFLICT,
        TemplatePool.NPC_ALLIANCE,
    }
)

MEMORY_TO_RELATIONSHIP_EVENT: dict[MemoryKind, RelationshipEventKind] = {
    MemoryKind.CONVERSATION: RelationshipEventKind.CONVERSATION,
    MemoryKind.CONFLICT: RelationshipEventKind.INSULTED,
    MemoryKind.INSULT: RelationshipEventKind.INSULTED,
    MemoryKind.PRAISE: RelationshipEventKind.PRAISED,
    MemoryKind.GIFT: RelationshipEventKind.GIFTED,
    MemoryKind.TRADE: RelationshipEventKind.TRADED,
    MemoryKind.ALLIANCE: RelationshipEventKind.HELPED,
    MemoryKind.RESCUE: RelationshipEventKind.HELPED,
    MemoryKind.BETRAYAL: RelationshipEventKind.BETRAYED,
    MemoryKind.DEATH: RelationshipEventKind.WITNESSED_DEATH,
    MemoryKind.WITNESSED_DEATH: RelationshipEventKind.WITNESSED_DEATH,
}

_MOOD_BONUS = 1.5
_TENSION_BONUS = 1.3
_MOMENTUM_SCALE = 0.2
_MOMENTUM_DECAY = 0.05


class ResponseSource(enum.Enum):
    CHATBASE = "chatbase"
    SEARCH = "search"
    RANDOM = "random"
    FALLBACK = "fallback"


@dataclass(frozen=True)
class UsageTracker:
    """Which templates each NPC has used, and when.

    Attributes:
        window: How many recent templates are remembered per NPC.
        recent: NPC -> most recent template ids, oldest first.
        last_used: NPC -> template id -> turn of last use (for cooldowns).
        conversation_uses: Thread id -> template ids spoken in that thread.
    """

    window: int = RECENT_USAGE_WINDOW
    recent: Mapping[str, tuple[str, ...]] = field(default_factory=dict)
    last_used: Mapping[str, Mapping[str, int]] = field(default_factory=dict)
    conversation_uses: Mapping[str, frozenset[str]] = field(default_factory=dict)

    def times_recently_used(self, npc: str, template_id: str) -> int:
        return self.recent.get(npc, ()).count(template_id)

    def last_used_turn(self, npc: str, template_id: str) -> int | None:
        return self.last_used.get(npc, {}).get(template_id)

    def on_cooldown(self, npc: str, template: ResponseTemplate, turn: int) -> bool:
        if template.cooldown_turns <= 0:
            return False
        last = self.last_used_turn(npc, template.template_id)
        return last is not None and turn - last < template.cooldown_turns

    def used_in_conversation(self, thread_id: str, template_id: str) -> bool:
        return template_id in self.conversation_uses.get(thread_id, frozenset())

    def record(
        self,
        npc: str,
        template_id: str,
        turn: int,
        thread_id: str | None = None,
    ) -> UsageTracker:
        recent = dict(self.recent)
        recent[npc] = (recent.get(npc, ()) + (template_id,))[-self.window :]
        last_used = dict(self.last_used)
        per_npc = dict(last_used.get(npc, {}))
        per_npc[template_id] = turn
        last_used[npc] = per_npc
        conversation_uses = dict(self.conversation_uses)
        if thread_id is not None:
            conversation_uses[thread_id] = conversation_uses.get(thread_id, frozenset()) | {template_id}
        return replace(self, recent=recent, last_used=last_used, conversation_uses=conversation_uses)

    def to_dict(self) -> dict:
        return {
            "window": self.window,
            "recent": {npc: list(ids) for npc, ids in self.recent.items()},
            "last_used": {npc: dict(turns) for npc, turns in self.last_used.items()},
            "conversation_uses": {t: sorted(ids) for t, ids in self.conversation_uses.items()},
        }

    @classmethod
    def from_dict(cls, data: Mapping) -> UsageTracker:
        return cls(
            window=int(data.get("window", RECENT_USAGE_WINDOW)),
            recent={npc: tuple(ids) for npc, ids in data.get("recent", {}).items()},
            last_used={
                npc: {tid: int(turn) for tid, turn in turns.items()}
                for npc, turns in data.get("last_used", {}).items()
            },
            conversation_uses={
                t: frozenset(ids) for t, ids in data.get("conversation_uses", {}).items()
            },
        )


@dataclass(frozen=True)
class SelectionRequest:
    """Everything one selection needs.

    Attributes:
        speaker: NPC choosing a line.
        listener: Slug of who is addressed ("player" for the player).
        pool: Requested template pool.
        turn: Global turn index, used for cooldowns and event records.
        seed: World seed; combined with participants and turn.
        relationships: Current relationship store.
        memories: Current memory store.
        usage: Current usage tracker.
        thread: Ongoing thread, or None to open one.
        behaviors: Behavioral state per NPC.
        objectives: Speaker goals; archetype defaults when None.
        listener_personality: Listener, when it is an NPC.
        mood_override: Scripted mood for the speaker.
        recent_event: Game event tag in play (e.g. "combat_start").
        player_present: Whether the player is part of the exchange.
        flags: Values for CONTEXT conditions. The situation's domain,
            player_gold and heat are added unless already set.
        situation: Game circumstances; None is a neutral situation.
    """

    speaker: NPCPersonality
    listener: str
    pool: TemplatePool
    turn: int = 0
    seed: str = ""
    relationships: RelationshipStore = field(default_factory=RelationshipStore)
    memories: MemoryStore = field(default_factory=MemoryStore)
    usage: UsageTracker = field(default_factory=UsageTracker)
    thread: ConversationThread | None = None
    behaviors: Mapping[str, NPCBehaviorState] = field(default_factory=dict)
    objectives: NPCObjectives | None = None
    listener_personality: NPCPersonality | None = None
    mood_override: MoodType | None = None
    recent_event: str | None = None
    player_present: bool = False
    flags: Mapping[str, object] = field(default_factory=dict)
    situation: SituationContext | None = None


@dataclass(frozen=True)
class SelectionResult:
    """A chosen line plus the state it leaves behind."""

    template: ResponseTemplate
    response_id: str
    text: str
    source: ResponseSource
    confidence: float
    mood: MoodType
    pool: TemplatePool
    relationships: RelationshipStore
    memories: MemoryStore
    usage: UsageTracker
    thread: ConversationThread
    behaviors: Mapping[str, NPCBehaviorState]
    stat_changes: tuple[ObservedStatChange, ...] = ()
    memory_events: tuple[MemoryEvent, ...] = ()
    candidates: int = 0
    high_stakes: bool = False
    chatbase: ChatbaseLookupResult | None = None
    search: SearchResult | None = None

    @property
    def template_id(self) -> str:
        return self.template.template_id


# --- Conditions ---


@dataclass(frozen=True)
class _ConditionContext:
    mood: MoodType
    stats: RelationshipStats
    memory: NPCMemory
    listener: str
    behavior: NPCBehaviorState
    flags: Mapping[str, object]


def _plain(value: object) -> object:
    return value.value if isinstance(value, enum.Enum) else value


def _compare(actual: object, comparison: Comparison, expected: object) -> bool:
    actual, expected = _plain(actual), _plain(expected)
    if comparison is Comparison.HAS:
        return bool(actual)
    if comparison is Comparison.LACKS:
        return not actual
    if comparison is Comparison.EQ:
        return actual == expected
    if comparison is Comparison.NEQ:
        return actual != expected
    try:
        a, b = float(actual), float(expected)
    except (TypeError, ValueError):
        return False
    if comparison is Comparison.GT:
        return a > b
    if comparison is Comparison.GTE:
        return a >= b
    if comparison is Comparison.LT:
        return a < b
    return a <= b


def _memory_value(target: str, ctx: _ConditionContext) -> object:
    if target == "opinion":
        return get_opinion(ctx.memory, ctx.listener)
    if target == "trauma_bond":
        return has_trauma_bond(ctx.memory, ctx.listener)
    if target == "recent_conflict":
        return has_recent_conflict(ctx.memory, ctx.listener)
    # Any other target counts events of that kind with the listener
    return sum(
        1 for e in ctx.memory.events if e.kind.value == target and e.counterpart_id == ctx.listener
    )


def condition_holds(condition: TemplateCondition, ctx: _ConditionContext, rng: SeededRng) -> bool:
    kind = condition.kind
    if kind is ConditionKind.MOOD:
        return _compare(ctx.mood, condition.comparison, condition.value)
    if kind is ConditionKind.RELATIONSHIP:
        if condition.target not in STAT_NAMES:
            return False
        return _compare(ctx.stats.get(condition.target), condition.comparison, condition.value)
    if kind is ConditionKind.MEMORY:
        return _compare(_memory_value(condition.target, ctx), condition.comparison, condition.value)
    if kind is ConditionKind.BEHAVIOR:
        return _compare(ctx.behavior.current, condition.comparison, condition.value)
    if kind is ConditionKind.CONTEXT:
        return _compare(ctx.flags.get(condition.target), condition.comparison, condition.value)
    try:
        chance = float(condition.value)
    except (TypeError, ValueError):
        return False
    return rng.random("condition") < chance


def filter_candidates(
    templates: Sequence[ResponseTemplate],
    ctx: _ConditionContext,
    usage: UsageTracker,
    speaker: str,
    turn: int,
    thread_id: str,
    rng: SeededRng,
    ignore_mood: bool = False,
) -> list[ResponseTemplate]:
    """Templates whose mood, target, cooldown and conditions all allow them."""
    eligible: list[ResponseTemplate] = []
    for template in templates:
        if not ignore_mood and template.mood is not None and template.mood is not ctx.mood:
            continue
        if template.target_npc is not None and template.target_npc != ctx.listener:
            continue
        if usage.on_cooldown(speaker, template, turn):
            continue
        if template.once_per_conversation and usage.used_in_conversation(thread_id, template.template_id):
            continue
        if not all(condition_holds(c, ctx, rng) for c in template.conditions):
            continue
        eligible.append(template)
    return eligible


def selection_weight(
    template: ResponseTemplate,
    mood: MoodType,
    tension: float,
    times_recently_used: int,
    bias: float = 1.0,
) -> float:
    weight = max(0.0, template.weight) * max(0.0, bias) * DIVERSITY_PENALTY**times_recently_used
    if template.mood_bonus is not None and template.mood_bonus is mood:
        weight *= _MOOD_BONUS
    if template.tension_range is not None:
        low, high = template.tension_range
        if low <= tension <= high:
            weight *= _TENSION_BONUS
    return weight


def is_high_stakes(
    speaker: NPCPersonality,
    pool: TemplatePool,
    tension: float,
    situational_goal: bool,
    candidate_count: int,
) -> bool:
    if candidate_count < 2:
        return False
    return (
        tension >= HIGH_STAKES_TENSION
        or situational_goal
        or pool in STRATEGIC_POOLS
        or speaker.category is NPCCategory.PANTHEON
    )


def _merge_deltas(*groups: Sequence[tuple[str, float]]) -> tuple[tuple[str, float], ...]:
    merged: dict[str, float] = {}
    for group in groups:
        for stat, delta in group:
            merged[stat] = merged.get(stat, 0.0) + delta
    return tuple(merged.items())


class ResponseSelector:
    """Chooses a line for a speaker and applies its consequences.

    Args:
        library: Authored templates.
        chatbase: Precomputed line index; None skips the chatbase tier.
        search: Conversation search for high-stakes turns; None skips it.
        relationship_engine: Applies stat changes.
        memory_engine: Records memory events.
        min_confidence: Chatbase hits below this fall through. Defaults
            to the chatbase engine's configured threshold.
    """

    def __init__(
        self,
        library: TemplateLibrary,
        chatbase: ChatbaseLookupEngine | None = None,
        search: ConversationSearch | None = None,
        relationship_engine: RelationshipEngine | None = None,
        memory_engine: MemoryEngine | None = None,
        min_confidence: float | None = None,
    ):
        self.library = library
        self.chatbase = chatbase
        self.search = search
        self.relationship_engine = (
            relationship_engine if relationship_engine is not None else RelationshipEngine()
        )
        self.memory_engine = memory_engine if memory_engine is not None else MemoryEngine()
        if min_confidence is None:
            min_confidence = chatbase.config.min_confidence if chatbase is not None else 1.0
        self.min_confidence = min_confidence

    def select(self, request: SelectionRequest) -> SelectionResult:
        """Run the pipeline for one turn.

        Args:
            request: Speaker, listener, pool and the current state.

        Returns:
            SelectionResult. Never raises for an empty pool; the generic
            template is used instead.
        """
        speaker = request.speaker
        slug = speaker.slug
        listener = request.listener
        pool = request.pool
        seed = conversation_seed((slug, listener), request.turn, request.seed)
        rng = create_rng(seed)

        thread = request.thread or self._open_thread(request)
        stats = request.relationships.stats(slug, listener)
        mood = derive_mood(
            stats,
            MoodContext(
                default_mood=speaker.default_mood,
                override=request.mood_override,
                tension_bonus=situational_tension(request.situation),
                recent_event=request.recent_event,
            ),
        )
        behavior = request.behaviors.get(slug) or NPCBehaviorState()
        flags = dict(request.flags)
        if request.situation is not None:
            for key, value in request.situation.flags().items():
                flags.setdefault(key, value)
        ctx = _ConditionContext(
            mood=mood,
            stats=stats,
            memory=request.memories.get(slug),
            listener=listener,
            behavior=behavior,
            flags=flags,
        )

        pool_templates = self.library.for_pool(slug, pool)
        candidates = filter_candidates(
            pool_templates, ctx, request.usage, slug, request.turn, thread.thread_id, rng
        )
        if not candidates and pool_templates:
            candidates = filter_candidates(
                pool_templates,
                ctx,
                request.usage,
                slug,
                request.turn,
                thread.thread_id,
                rng,
                ignore_mood=True,
            )

        source = ResponseSource.FALLBACK
        confidence = 0.0
        template: ResponseTemplate | None = None
        response_id: str | None = None
        chatbase_result: ChatbaseLookupResult | None = None
        search_result: SearchResult | None = None
        high_stakes = False

        # 1. Chatbase
        if self.chatbase is not None and self.chatbase.enabled:
            active = thread.get_active_topic()
            chatbase_result = self.chatbase.lookup(
                ChatbaseContext(
                    npc=slug,
                    pool=pool.value,
                    mood=mood,
                    respect=stats.respect,
                    trust=stats.trust,
                    familiarity=stats.familiarity,
                    topic_depth=active.depth if active else 0,
                    tension=thread.tension,
                    seed=seed,
                    behavior=behavior.current.value,
                    listener=listener,
                    player_present=request.player_present,
                    recent_event=request.recent_event,
                )
            )
            if chatbase_result.hit and chatbase_result.confidence >= self.min_confidence:
                response_id = chatbase_result.response_id
                template = self.library.get(response_id) or generic_template(pool)
                source = ResponseSource.CHATBASE
                confidence = chatbase_result.confidence
                self.chatbase.record_hit(chatbase_result.entry.id)

        # 2. Search
        if template is None:
            objectives = request.objectives or default_objectives(speaker.archetype)
            snapshot = build_snapshot(
                (slug, listener),
                request.relationships,
                thread,
                seed,
                behaviors=request.behaviors,
                default_moods=self._default_moods(request),
                used_templates=sorted(request.usage.conversation_uses.get(thread.thread_id, ())),
                personalities=self._personalities(request),
                situation=request.situation,
            )
            high_stakes = is_high_stakes(
                speaker,
                pool,
                thread.tension,
                has_active_situational_goal(objectives, snapshot, slug),
                len(candidates),
            )
            if high_stakes and self.search is not None:
                search_result = self.search.search(snapshot, slug, listener, objectives, candidates)
                if search_result.move is not None:
                    template = search_result.move.template
                    source = ResponseSource.SEARCH
                    confidence = float(np.clip((search_result.score + 100.0) / 200.0, 0.0, 1.0))

        # 3. Weighted random
        if template is None and candidates:
            weighted = [
                (
                    t,
                    selection_weight(
                        t,
                        mood,
                        thread.tension,
                        request.usage.times_recently_used(slug, t.template_id),
                        tone_bias(speaker, template_tone(t)),
                    ),
                )
                for t in candidates
            ]
            total = sum(w for _, w in weighted)
            template = rng.weighted(weighted, "select")
            source = ResponseSource.RANDOM
            chosen_weight = next(w for t, w in weighted if t is template)
            confidence = chosen_weight / total if total > 0 else 1.0 / len(weighted)

        # 4. Generic
        if template is None:
            template = generic_template(pool)
            source = ResponseSource.FALLBACK
            confidence = 0.0

        result = self._apply(
            request,
            template,
            response_id or template.ref,
            source,
            confidence,
            mood,
            thread,
        )
        result = replace(
            result,
            candidates=len(candidates),
            high_stakes=high_stakes,
            chatbase=chatbase_result,
            search=search_result,
        )
        logger.debug(
            "%s -> %s [%s]: %s via %s (%.2f)",
            slug,
            listener,
            pool.value,
            result.template_id,
            source.value,
            confidence,
        )
        return result

    def _open_thread(self, request: SelectionRequest) -> ConversationThread:
        participants = [(request.speaker.slug, request.speaker.category)]
        if request.listener_personality is not None:
            participants.append((request.listener, request.listener_personality.category))
        return start_thread(f"{request.speaker.slug}:{request.listener}", participants)

    def _default_moods(self, request: SelectionRequest) -> dict[str, MoodType]:
        moods = {request.speaker.slug: request.speaker.default_mood}
        if request.listener_personality is not None:
            moods[request.listener] = request.listener_personality.default_mood
        return moods

    def _personalities(self, request: SelectionRequest) -> dict[str, NPCPersonality]:
        people = {request.speaker.slug: request.speaker}
        if request.listener_personality is not None:
            people[request.listener] = request.listener_personality
        return people

    def _apply(
        self,
        request: SelectionRequest,
        template: ResponseTemplate,
        response_id: str,
        source: ResponseSource,
        confidence: float,
        mood: MoodType,
        thread: ConversationThread,
    ) -> SelectionResult:
        """Turn a chosen template into stat changes, memories and usage."""
        slug = request.speaker.slug
        listener = request.listener
        turn = request.turn
        engine = self.relationship_engine

        template_deltas = listener_deltas(template)
        base: list[tuple[str, float]] = [("familiarity", engine.familiarity_delta)]
        if not template_deltas:
            base.append(("trust", engine.trust_delta))
        kind = memory_kind(template)
        event_kind = MEMORY_TO_RELATIONSHIP_EVENT.get(kind, RelationshipEventKind.CONVERSATION)
        reason = f"{template.pool.value}: {template.template_id}"

        deltas = _merge_deltas(base, template_deltas)
        if request.listener_personality is not None:
            deltas = shield_trust(request.listener_personality.loyalty, deltas)
        relationships, changes = engine.apply_deltas(
            request.relationships,
            listener,
            slug,
            deltas,
            turn,
            event_kind,
            reason,
        )
        if template.effects.reciprocal:
            relationships, back = engine.apply_deltas(
                relationships, slug, listener, tuple(base), turn, event_kind, reason
            )
            changes = changes + back

        memories, events = self.memory_engine.record_mutual(
            request.memories, slug, listener, kind, turn, details=template.ref
        )

        tone = template_tone(template)
        category = template.category or POOL_TOPICS.get(template.pool)
        if category is not None:
            thread = contribute(
                thread,
                slug,
                category,
                tension_delta=TONE_TENSION.get(tone, 0.0),
                momentum_delta=POOL_MOMENTUM.get(template.pool, 0.0) * _MOMENTUM_SCALE
                - _MOMENTUM_DECAY,
            )

        behaviors = dict(request.behaviors)
        speaker_trigger, listener_trigger = POOL_TRIGGERS.get(template.pool, (None, None))
        for npc, trigger in ((slug, speaker_trigger), (listener, listener_trigger)):
            current = behaviors.get(npc) or NPCBehaviorState()
            behaviors[npc] = current.apply(trigger) if trigger else replace(
                current, turns_in_state=current.turns_in_state + 1
            )

        usage = request.usage.record(slug, template.template_id, turn, thread.thread_id)

        variables = {
            "speaker": request.speaker.name,
            "listener": (
                request.listener_personality.name if request.listener_personality else listener
            ),
            "mood": mood.value,
            **memory_variables(memories.get(slug), listener),
        }
        text = substitute_variables(template.text, variables) if template.text else ""

        return SelectionResult(
            template=template,
            response_id=response_id,
            text=text,
            source=source,
            confidence=confidence,
            mood=mood,
            pool=request.pool,
            relationships=relationships,
            memories=memories,
            usage=usage,
            thread=thread,
            behaviors=behaviors,
            stat_changes=tuple(changes),
            memory_events=tuple(events),
        )


def explain_selection(result: SelectionResult) -> str:
    """Human-readable summary of why a line was picked."""
    lines = [
        f"{result.template_id} ({result.pool.value}) via {result.source.value}, "
        f"confidence {result.confidence:.2f}, mood {result.mood.value}",
        f"candidates after filtering: {result.candidates}"
        + (", high-stakes" if result.high_stakes else ""),
    ]
    if result.chatbase is not None:
        cb = result.chatbase
        if cb.hit:
            lines.append(f"chatbase {cb.tier.value} hit {cb.entry.id} at {cb.confidence:.2f}")
        else:
            lines.append(f"chatbase miss for {cb.key}")
    if result.search is not None:
        stats = result.search.stats
        lines.append(
            f"search: {stats.iterations} iterations, {stats.expansions} nodes, "
            f"{stats.transposition_hits} reused scores, stopped by {stats.stopped_by}"
        )
    for change in result.stat_changes:
        marker = " (clamped)" if change.clamped else ""
        lines.append(
            f"{change.source_id} -> {change.target_id} {change.stat}: "
            f"{change.previous:g} -> {change.new:g}{marker}"
        )
    return "\n".join(lines)
