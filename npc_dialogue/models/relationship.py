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

"""Relationship records between a pair of NPCs.

A Relationship is owned by one NPC and describes how it sees another.
All records here are frozen; changes go through the pure functions in
npc_dialogue.simulation.relationship_engine, which return new records.

Stats and their bounds:
  respect      [-100, 100]
  familiarity  [0, 100]
  trust        [-100, 100]
  fear         [0, 100]
  debt         [-1000, 1000]   positive = the other side owes the owner
  tension      [0, 100]
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field, replace

import numpy as np

STAT_BOUNDS: dict[str, tuple[float, float]] = {
    "respect": (-100.0, 100.0),
    "familiarity": (0.0, 100.0),
    "trust": (-100.0, 100.0),
    "fear": (0.0, 100.0),
    "debt": (-1000.0, 1000.0),
    "tension": (0.0, 100.0),
}

STAT_NAMES = tuple(STAT_BOUNDS)


class MoodType(enum.Enum):
    """Closed set of moods an NPC can present."""

    NEUTRAL = "neutral"
    PLEASED = "pleased"
    ANNOYED = "annoyed"
    AMUSED = "amused"
    THREATENING = "threatening"
    GENEROUS = "generous"
    CRYPTIC = "cryptic"
    FEARFUL = "fearful"
    CURIOUS = "curious"
    ANGRY = "angry"
    SCARED = "scared"
    SAD = "sad"
    GRATEFUL = "grateful"


class MoodTrend(enum.Enum):
    IMPROVING = "improving"
    STABLE = "stable"
    DECLINING = "declining"


class Disposition(enum.Enum):
    HOSTILE = "hostile"
    UNFRIENDLY = "unfriendly"
    NEUTRAL = "neutral"
    FRIENDLY = "friendly"
    ALLIED = "allied"


class RelationshipEventKind(enum.Enum):
    HELPED = "helped"
    BETRAYED = "betrayed"
    TRADED = "traded"
    DEFEATED = "defeated"
    SPARED = "spared"
    GIFTED = "gifted"
    INSULTED = "insulted"
    PRAISED = "praised"
    WITNESSED_DEATH = "witnessed_death"
    SHARED_DANGER = "shared_danger"
    CONVERSATION = "conversation"


@dataclass(frozen=True)
class RelationshipStats:
    """Bounded numeric view one NPC holds of another."""

    respect: float = 0.0
    familiarity: float = 0.0
    trust: float = 0.0
    fear: float = 0.0
    debt: float = 0.0
    tension: float = 0.0

    def get(self, stat: str) -> float:
        return getattr(self, stat)

    def with_stat(self, stat: str, value: float) -> RelationshipStats:
        return replace(self, **{stat: value})

    def as_vector(self) -> np.ndarray:
        """Stats as a float64 vector in STAT_NAMES order."""
        return np.array([getattr(self, s) for s in STAT_NAMES], dtype=np.float64)

    def to_dict(self) -> dict[str, float]:
        return {s: getattr(self, s) for s in STAT_NAMES}

    @classmethod
    def from_dict(cls, data: dict[str, float]) -> RelationshipStats:
        return cls(**{s: float(data.get(s, 0.0)) for s in STAT_NAMES})


@dataclass(frozen=True)
class ObservedStatChange:
    """Record of one stat mutation, shown on the relationship dashboard.

    Attributes:
        turn: Turn index at which the change happened.
        source_id: NPC whose view changed.
        target_id: NPC the view is about.
        stat: Stat name.
        previous: Value before the change.
        new: Value after clamping.
        change: new - previous (the change that actually landed).
        requested: Delta the caller asked for.
        reason: Short free-text cause.
        clamped: True when bounds cut the requested delta.
    """

    turn: int
    source_id: str
    target_id: str
    stat: str
    previous: float
    new: float
    change: float
    requested: float
    reason: str = ""
    clamped: bool = False


@dataclass(frozen=True)
class RelationshipEvent:
    kind: RelationshipEventKind
    turn: int
    details: str = ""
    changes: tuple[ObservedStatChange, ...] = ()


@dataclass(frozen=True)
class Relationship:
    """How owner_id sees target_id.

    Attributes:
        owner_id: NPC holding this view.
        target_id: NPC being viewed.
        stats: Current bounded stats.
        history: Most recent events first, capped in length.
        last_interaction: Turn of the last recorded event.
        interaction_count: Total events ever recorded.
    """

    owner_id: str
    target_id: str
    stats: RelationshipStats = field(default_factory=RelationshipStats)
    history: tuple[RelationshipEvent, ...] = ()
    last_interaction: int = 0
    interaction_count: int = 0


@dataclass(frozen=True)
class MoodContext:
    """Situational input to mood derivation.

    Attributes:
        default_mood: Mood used when no threshold fires.
        override: Forces this mood regardless of stats (scripted events).
        tension_bonus: Added to the tension stat before thresholds.
        recent_event: Game event tag, e.g. "combat_start" or "purchase".
    """

    default_mood: MoodType = MoodType.NEUTRAL
    override: MoodType | None = None
    tension_bonus: float = 0.0
    recent_event: str | None = None


@dataclass(frozen=True)
class MoodState:
    current: MoodType
    intensity: float
    trending: MoodTrend
