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

"""Chatbase schema and context quantization.

The chatbase is a precomputed dialogue index, built offline and read-only
at runtime. Continuous conversation state is reduced to a handful of
coarse buckets so that similar situations land on the same key:

  mood          hostile / negative / neutral / positive / generous
  respect       hate < -60 <= dislike < -20 <= neutral < 20 <= like < 60 <= revere
  trust         betrayed / wary / neutral / trusted / confidant (same cut points)
  familiarity   stranger < 25 <= acquaintance < 50 <= familiar < 75 <= friend
  topic depth   shallow < 4 <= medium < 7 <= deep
  tension       calm < .25 <= mild < .5 <= tense < .75 <= volatile

On-disk layout:

  <root>/manifest.json        ChatbaseManifest
  <root>/npcs/<slug>.json     ChatbaseNPCFile
"""

from __future__ import annotations

from dataclasses import dataclass

from pydantic import BaseModel, Field

from npc_dialogue.models.relationship import MoodType

MOOD_BUCKETS = ("hostile", "negative", "neutral", "positive", "generous")
RELATIONSHIP_BUCKETS = ("hate", "dislike", "neutral", "like", "revere")
TRUST_BUCKETS = ("betrayed", "wary", "neutral", "trusted", "confidant")
FAMILIARITY_BUCKETS = ("stranger", "acquaintance", "familiar", "friend")
DEPTH_BUCKETS = ("shallow", "medium", "deep")
TENSION_BUCKETS = ("calm", "mild", "tense", "volatile")

_MOOD_TO_BUCKET: dict[MoodType, str] = {
    MoodType.THREATENING: "hostile",
    MoodType.ANGRY: "hostile",
    MoodType.ANNOYED: "negative",
    MoodType.FEARFUL: "negative",
    MoodType.SCARED: "negative",
    MoodType.SAD: "negative",
    MoodType.NEUTRAL: "neutral",
    MoodType.CURIOUS: "neutral",
    MoodType.CRYPTIC: "neutral",
    MoodType.PLEASED: "positive",
    MoodType.AMUSED: "positive",
    MoodType.GRATEFUL: "positive",
    MoodType.GENEROUS: "generous",
}

# Buckets that stand in for each other on a fuzzy lookup
_MOOD_GROUPS: tuple[frozenset[str], ...] = (
    frozenset({"hostile", "negative"}),
    frozenset({"positive", "generous"}),
)


# --- Schema ---


class ChatbaseTriggers(BaseModel):
    """Conditions an entry needs before it can be served. Unset means any."""

    player_present: bool | None = None
    min_respect: float | None = Field(default=None, ge=-100, le=100)
    max_respect: float | None = Field(default=None, ge=-100, le=100)
    min_trust: float | None = Field(default=None, ge=-100, le=100)
    max_trust: float | None = Field(default=None, ge=-100, le=100)
    min_familiarity: float | None = Field(default=None, ge=0, le=100)
    recent_event: str | None = None
    behavior: list[str] | None = Field(
        default=None,
        description="Behavioral states (by value) the speaker must be in.",
    )
    target: str | None = Field(
        default=None,
        description="Listener slug, or 'player'.",
    )


class ChatbaseMetrics(BaseModel):
    """Quality data attached to an entry when the index is built."""

    interest_score: float = Field(default=50.0, ge=0.0, le=100.0)
    source: str = "manual"
    hit_count: int = Field(default=0, ge=0)
    is_canonical: bool = False


class ChatbaseContextBuckets(BaseModel):
    """Explicit buckets an entry was authored for.

    An entry with every bucket set is also indexed under its full context
    key and can be served as an exact hit.
    """

    respect: str | None = None
    trust: str | None = None
    familiarity: str | None = None
    topic_depth: str | None = None
    tension: str | None = None

    def complete(self) -> bool:
        return None not in (
            self.respect,
            self.trust,
            self.familiarity,
            self.topic_depth,
            self.tension,
        )


class ChatbaseEntry(BaseModel):
    """One indexed line: who says it, in which pool and mood, and what it resolves to."""

    id: str
    speaker: str
    pool: str
    mood: MoodType = MoodType.NEUTRAL
    response_ids: list[str] = Field(min_length=1)
    context: ChatbaseContextBuckets = Field(default_factory=ChatbaseContextBuckets)
    triggers: ChatbaseTriggers | None = None
    metrics: ChatbaseMetrics = Field(default_factory=ChatbaseMetrics)

    @property
    def mood_bucket(self) -> str:
        return quantize_mood(self.mood)


class ManifestNPC(BaseModel):
    slug: str
    file: str | None = None
    entry_count: int = 0


class ChatbaseManifest(BaseModel):
    version: str = "1"
    created_at: str = ""
    npcs: list[ManifestNPC] = Field(default_factory=list)
    stats: dict[str, float] = Field(default_factory=dict)


class ChatbaseNPCFile(BaseModel):
    npc: str
    entries: list[ChatbaseEntry] = Field(default_factory=list)


# --- Quantizers ---


def quantize_mood(mood: MoodType) -> str:
    return _MOOD_TO_BUCKET.get(mood, "neutral")


def _bucket(value: float, cuts: tuple[float, ...], names: tuple[str, ...]) -> str:
    for cut, name in zip(cuts, names):
        if value < cut:
            return name
    return names[-1]


def quantize_relationship(value: float) -> str:
    return _bucket(value, (-60, -20, 20, 60), RELATIONSHIP_BUCKETS)


def quantize_trust(value: float) -> str:
    return _bucket(value, (-60, -20, 20, 60), TRUST_BUCKETS)


def quantize_familiarity(value: float) -> str:
    return _bucket(value, (25, 50, 75), FAMILIARITY_BUCKETS)


def quantize_topic_depth(depth: int) -> str:
    return _bucket(depth, (4, 7), DEPTH_BUCKETS)


def quantize_tension(tension: float) -> str:
    """Bucket thread tension, which lives on a 0-1 scale."""
    return _bucket(tension, (0.25, 0.5, 0.75), TENSION_BUCKETS)


def moods_compatible(entry_bucket: str, target_bucket: str) -> bool:
    """Whether an entry authored in one mood bucket may serve another.

    Same buckets always match; hostile/negative and positive/generous
    pair up; neutral goes with anything.
    """
    if entry_bucket == target_bucket:
        return True
    if "neutral" in (entry_bucket, target_bucket):
        return True
    return any(entry_bucket in g and target_bucket in g for g in _MOOD_GROUPS)


# --- Context ---


@dataclass(frozen=True)
class ChatbaseContext:
    """Raw conversation state for one lookup, before quantization.

    Attributes:
        npc: Speaker slug.
        pool: Template pool being requested (by value).
        mood: Speaker's current mood.
        respect: Speaker's respect toward the listener.
        trust: Speaker's trust toward the listener.
        familiarity: Speaker's familiarity with the listener.
        topic_depth: Depth of the thread's active topic.
        tension: Thread tension, 0-1.
        seed: Conversation seed; the same seed and key pick the same entry.
        behavior: Speaker's behavioral state (by value).
        listener: Listener slug, or "player".
        player_present: Whether the player is part of the exchange.
        recent_event: Most recent event kind the speaker remembers.
    """

    npc: str
    pool: str
    mood: MoodType = MoodType.NEUTRAL
    respect: float = 0.0
    trust: float = 0.0
    familiarity: float = 0.0
    topic_depth: int = 0
    tension: float = 0.0
    seed: str = ""
    behavior: str = "idle"
    listener: str | None = None
    player_present: bool = False
    recent_event: str | None = None

    def key(self) -> ChatbaseContextKey:
        return ChatbaseContextKey(
            npc=self.npc,
            pool=self.pool,
            mood=quantize_mood(self.mood),
            respect=quantize_relationship(self.respect),
            trust=quantize_trust(self.trust),
            familiarity=quantize_familiarity(self.familiarity),
            topic_depth=quantize_topic_depth(self.topic_depth),
            tension=quantize_tension(self.tension),
        )


@dataclass(frozen=True)
class ChatbaseContextKey:
    """Quantized lookup key. Equal keys mean "the same situation"."""

    npc: str
    pool: str
    mood: str
    respect: str
    trust: str
    familiarity: str
    topic_depth: str
    tension: str

    def as_string(self) -> str:
        return "|".join(
            (
                self.npc,
                self.pool,
                self.mood,
                self.respect,
                self.trust,
                self.familiarity,
                self.topic_depth,
                self.tension,
            )
        )

    @property
    def mood_key(self) -> str:
        return f"{self.npc}|{self.pool}|{self.mood}"

    @property
    def pool_key(self) -> str:
        return f"{self.npc}|{self.pool}"


def entry_keys(entry: ChatbaseEntry) -> tuple[str | None, str, str]:
    """(full key or None, speaker|pool|mood, speaker|pool) for indexing."""
    mood = entry.mood_bucket
    full = None
    ctx = entry.context
    if ctx.complete():
        full = ChatbaseContextKey(
            npc=entry.speaker,
            pool=entry.pool,
            mood=mood,
            respect=ctx.respect,
            trust=ctx.trust,
            familiarity=ctx.familiarity,
            topic_depth=ctx.topic_depth,
            tension=ctx.tension,
        ).as_string()
    return full, f"{entry.speaker}|{entry.pool}|{mood}", f"{entry.speaker}|{entry.pool}"
