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

"""Relationship engine - pure transforms over relationship records.

Every stat change goes through modify_stat, which clamps to the stat's
bounds and returns an ObservedStatChange even when the clamp swallowed
the whole delta. Nothing mutates a Relationship in place.

Mood is derived, never stored:
  1. An explicit override in the MoodContext wins.
  2. Situational modifiers (recent game event, tension bonus) shift a
     copy of the stat vector.
  3. A priority-ordered threshold table picks the first matching mood.
  4. Otherwise the context's default mood.

Disposition score:
  respect + trust - fear
  < -80 hostile, < -30 unfriendly, < 30 neutral, < 80 friendly, else allied
"""

from __future__ import annotations

import math
from collections.abc import Callable, Iterator, Mapping
from dataclasses import replace

import numpy as np

from npc_dialogue.config import (
    CONVERSATION_FAMILIARITY_DELTA,
    CONVERSATION_TRUST_DELTA,
    MAX_RELATIONSHIP_HISTORY,
    PRICE_MODIFIER_MAX,
    PRICE_MODIFIER_MIN,
    RELATIONSHIP_DECAY_RATE,
)
from npc_dialogue.models.relationship import (
    STAT_BOUNDS,
    STAT_NAMES,
    Disposition,
    MoodContext,
    MoodState,
    MoodTrend,
    MoodType,
    ObservedStatChange,
    Relationship,
    RelationshipEvent,
    RelationshipEventKind,
    RelationshipStats,
)

_LOWER = np.array([STAT_BOUNDS[s][0] for s in STAT_NAMES], dtype=np.float64)
_UPPER = np.array([STAT_BOUNDS[s][1] for s in STAT_NAMES], dtype=np.float64)
_INDEX = {name: i for i, name in enumerate(STAT_NAMES)}

# Stat shifts applied while a game event is fresh.
EVENT_MODIFIERS: dict[str, dict[str, float]] = {
    "combat_start": {"fear": 20.0, "tension": 30.0},
    "purchase": {"respect": 10.0, "trust": 5.0},
    "death": {"fear": 15.0, "tension": 20.0},
    "gift": {"trust": 15.0, "respect": 10.0},
    "insult": {"respect": -20.0, "tension": 15.0},
}

_MoodRule = tuple[MoodType, Callable[[dict[str, float]], bool]]

# Checked top to bottom; the first match wins.
MOOD_RULES: tuple[_MoodRule, ...] = (
    (MoodType.THREATENING, lambda s: s["respect"] < -50 and s["fear"] < 30),
    (MoodType.ANGRY, lambda s: s["tension"] >= 80 and s["respect"] < 0),
    (MoodType.FEARFUL, lambda s: s["fear"] > 70),
    (MoodType.GENEROUS, lambda s: s["respect"] > 60 and s["trust"] > 50),
    (MoodType.PLEASED, lambda s: s["respect"] > 30 and s["familiarity"] > 40),
    (MoodType.ANNOYED, lambda s: s["respect"] < -20 or s["trust"] < -30),
    (MoodType.CURIOUS, lambda s: s["familiarity"] < 20 and s["fear"] < 30),
    (MoodType.AMUSED, lambda s: s["familiarity"] > 60 and abs(s["respect"]) < 30),
    (MoodType.CRYPTIC, lambda s: s["trust"] < 0 and s["familiarity"] > 30),
)


def clamp_stat(stat: str, value: float) -> float:
    """Clamp a value to a stat's bounds. Non-finite values become 0."""
    if not math.isfinite(value):
        value = 0.0
    low, high = STAT_BOUNDS[stat]
    return float(np.clip(value, low, high))


def modify_stat(
    relationship: Relationship,
    stat: str,
    delta: float,
    reason: str = "",
    turn: int | None = None,
) -> tuple[Relationship, ObservedStatChange]:
    """Apply a delta to one stat.

    Args:
        relationship: Record to change (not mutated).
        stat: One of STAT_NAMES.
        delta: Requested change. Non-finite deltas count as 0.
        reason: Short cause, copied into the change record.
        turn: Turn index; defaults to the relationship's last interaction.

    Returns:
        (new relationship, change record). The record is produced even
        when the change is zero or fully clamped.

    Raises:
        KeyError: If `stat` is not a relationship stat.
    """
    if stat not in STAT_BOUNDS:
        raise KeyError(f"Unknown relationship stat {stat!r}.")
    previous = relationship.stats.get(stat)
    if not math.isfinite(previous):
        previous = 0.0
    requested = delta if math.isfinite(delta) else 0.0
    new_value = clamp_stat(stat, previous + requested)
    change = new_value - previous
    observed = ObservedStatChange(
        turn=relationship.last_interaction if turn is None else turn,
        source_id=relationship.owner_id,
        target_id=relationship.target_id,
        stat=stat,
        previous=previous,
        new=new_value,
        change=change,
        requested=requested,
        reason=reason,
        clamped=not math.isclose(change, requested, abs_tol=1e-9),
    )
    updated = replace(relationship, stats=relationship.stats.with_stat(stat, new_value))
    return updated, observed


def modify_stats(
    relationship: Relationship,
    deltas: Mapping[str, float] | tuple[tuple[str, float], ...],
    reason: str = "",
    turn: int | None = None,
) -> tuple[Relationship, list[ObservedStatChange]]:
    """Apply several deltas in order. See modify_stat."""
    items = deltas.items() if isinstance(deltas, Mapping) else deltas
    changes: list[ObservedStatChange] = []
    for stat, delta in items:
        relationship, change = modify_stat(relationship, stat, delta, reason, turn)
        changes.append(change)
    return relationship, changes


def record_event(
    relationship: Relationship,
    kind: RelationshipEventKind,
    turn: int,
    details: str = "",
    changes: tuple[ObservedStatChange, ...] | list[ObservedStatChange] = (),
) -> Relationship:
    """Prepend an event to the bounded history and bump the counters."""
    event = RelationshipEvent(kind=kind, turn=turn, details=details, changes=tuple(changes))
    history = (event,) + relationship.history[: MAX_RELATIONSHIP_HISTORY - 1]
    return replace(
        relationship,
        history=history,
        last_interaction=turn,
        interaction_count=relationship.interaction_count + 1,
    )


def _situational_stats(stats: RelationshipStats, context: MoodContext) -> dict[str, float]:
    vec = stats.as_vector()
    vec = np.nan_to_num(vec, nan=0.0, posinf=0.0, neginf=0.0)
    mods = EVENT_MODIFIERS.get(context.recent_event or "", {})
    for stat, amount in mods.items():
        vec[_INDEX[stat]] += amount
    if context.tension_bonus:
        vec[_INDEX["tension"]] += context.tension_bonus
    vec = np.clip(vec, _LOWER, _UPPER)
    return {name: float(vec[i]) for i, name in enumerate(STAT_NAMES)}


def derive_mood(stats: RelationshipStats, context: MoodContext | None = None) -> MoodType:
    """Pure mood derivation from stats plus situational context."""
    context = context or MoodContext()
    if context.override is not None:
        return context.override
    values = _situational_stats(stats, context)
    for mood, rule in MOOD_RULES:
        if rule(values):
            return mood
    return context.default_mood


def derive_mood_state(
    stats: RelationshipStats,
    context: MoodContext | None = None,
) -> MoodState:
    """Mood plus intensity (0-100) and trend."""
    context = context or MoodContext()
    values = _situational_stats(stats, context)
    magnitudes = np.abs(
        np.array(
            [values["respect"], values["trust"], values["fear"], values["familiarity"]]
        )
    )
    intensity = float(min(100.0, np.max(magnitudes)))
    balance = values["respect"] + values["trust"]
    if balance > 20:
        trend = MoodTrend.IMPROVING
    elif balance < -20:
        trend = MoodTrend.DECLINING
    else:
        trend = MoodTrend.STABLE
    return MoodState(current=derive_mood(stats, context), intensity=intensity, trending=trend)


def disposition(stats: RelationshipStats) -> Disposition:
    score = stats.respect + stats.trust - stats.fear
    if score < -80:
        return Disposition.HOSTILE
    if score < -30:
        return Disposition.UNFRIENDLY
    if score < 30:
        return Disposition.NEUTRAL
    if score < 80:
        return Disposition.FRIENDLY
    return Disposition.ALLIED


def price_modifier(stats: RelationshipStats) -> float:
    """Price multiplier for commerce. Good standing means a discount.

    Returns:
        1 - ((respect + trust) / 200) * 0.3, clamped to [0.5, 1.5].
    """
    raw = 1.0 - ((stats.respect + stats.trust) / 200.0) * 0.3
    return float(np.clip(raw, PRICE_MODIFIER_MIN, PRICE_MODIFIER_MAX))


def would_initiate_conversation(stats: RelationshipStats, sociability: float) -> bool:
    willingness = stats.familiarity + stats.trust - stats.fear
    return willingness > 50.0 - sociability * 100.0


def decay_toward_neutral(
    relationship: Relationship,
    rate: float = RELATIONSHIP_DECAY_RATE,
    turn: int | None = None,
) -> tuple[Relationship, list[ObservedStatChange]]:
    """Move every stat toward its neutral point by at most `rate`.

    Neutral is 0 for signed stats and the lower bound (also 0) for the
    non-negative ones. Stats already at neutral produce no change record.
    """
    changes: list[ObservedStatChange] = []
    for stat in STAT_NAMES:
        value = relationship.stats.get(stat)
        if value == 0.0:
            continue
        step = -min(rate, abs(value)) if value > 0 else min(rate, abs(value))
        relationship, change = modify_stat(relationship, stat, step, "decay", turn)
        changes.append(change)
    return relationship, changes


class RelationshipStore:
    """Immutable map of (owner_id, target_id) -> Relationship.

    Missing pairs read as a fresh neutral relationship; nothing is
    stored until a changed record is put back with `with_relationship`.
    """

    def __init__(
        self,
        relationships: Mapping[tuple[str, str], Relationship] | None = None,
    ):
        self._items: dict[tuple[str, str], Relationship] = dict(relationships or {})

    def get(self, owner_id: str, target_id: str) -> Relationship:
        rel = self._items.get((owner_id, target_id))
        if rel is None:
            return Relationship(owner_id=owner_id, target_id=target_id)
        return rel

    def stats(self, owner_id: str, target_id: str) -> RelationshipStats:
        return self.get(owner_id, target_id).stats

    def has(self, owner_id: str, target_id: str) -> bool:
        return (owner_id, target_id) in self._items

    def with_relationship(self, relationship: Relationship) -> RelationshipStore:
        return self.with_relationships([relationship])

    def with_relationships(self, relationships: list[Relationship]) -> RelationshipStore:
        items = dict(self._items)
        for rel in relationships:
            items[(rel.owner_id, rel.target_id)] = rel
        return RelationshipStore(items)

    def for_owner(self, owner_id: str) -> list[Relationship]:
        return [rel for (owner, _), rel in self._items.items() if owner == owner_id]

    def __iter__(self) -> Iterator[Relationship]:
        return iter(self._items.values())

    def __len__(self) -> int:
        return len(self._items)


class RelationshipEngine:
    """Applies interaction outcomes to a RelationshipStore.

    Args:
        decay_rate: Stat points moved toward neutral per decay pass.
        familiarity_delta: Familiarity gained per ordinary conversation.
        trust_delta: Trust gained per ordinary conversation.
    """

    def __init__(
        self,
        decay_rate: float = RELATIONSHIP_DECAY_RATE,
        familiarity_delta: float = CONVERSATION_FAMILIARITY_DELTA,
        trust_delta: float = CONVERSATION_TRUST_DELTA,
    ):
        self.decay_rate = decay_rate
        self.familiarity_delta = familiarity_delta
        self.trust_delta = trust_delta

    def apply_deltas(
        self,
        store: RelationshipStore,
        owner_id: str,
        target_id: str,
        deltas: Mapping[str, float] | tuple[tuple[str, float], ...],
        turn: int,
        kind: RelationshipEventKind = RelationshipEventKind.CONVERSATION,
        reason: str = "",
    ) -> tuple[RelationshipStore, list[ObservedStatChange]]:
        """Change how owner sees target and log one event for it.

        Args:
            store: Current store (not mutated).
            owner_id: NPC whose view changes.
            target_id: NPC the view is about.
            deltas: Stat deltas, applied in order.
            turn: Turn index for the event and change records.
            kind: Relationship event kind to log.
            reason: Cause shown on the dashboard.

        Returns:
            (new store, change records).
        """
        rel = store.get(owner_id, target_id)
        rel, changes = modify_stats(rel, deltas, reason or kind.value, turn)
        rel = record_event(rel, kind, turn, reason, changes)
        return store.with_relationship(rel), changes

    def apply_conversation(
        self,
        store: RelationshipStore,
        npc_a: str,
        npc_b: str,
        turn: int,
    ) -> tuple[RelationshipStore, list[ObservedStatChange]]:
        """Symmetric small familiarity and trust gain for a plain exchange."""
        deltas = (("familiarity", self.familiarity_delta), ("trust", self.trust_delta))
        store, changes_a = self.apply_deltas(store, npc_a, npc_b, deltas, turn)
        store, changes_b = self.apply_deltas(store, npc_b, npc_a, deltas, turn)
        return store, changes_a + changes_b

    def decay(
        self,
        store: RelationshipStore,
        turn: int,
    ) -> tuple[RelationshipStore, list[ObservedStatChange]]:
        """Decay every stored relationship toward neutral."""
        all_changes: list[ObservedStatChange] = []
        updated: list[Relationship] = []
        for rel in store:
            decayed, changes = decay_toward_neutral(rel, self.decay_rate, turn)
            if changes:
                updated.append(decayed)
                all_changes.extend(changes)
        return store.with_relationships(updated), all_changes
