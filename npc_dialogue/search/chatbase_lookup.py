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

"""Constant-time retrieval of pre-authored lines from the chatbase.

Lookup walks four tiers and stops at the first that still has entries
after trigger filtering:

  exact   full context key                       confidence = interest / 100
  mood    speaker|pool|mood bucket               confidence = interest / 100
  fuzzy   speaker|pool, mood-compatible entries  x fuzzy scale
  loose   speaker|pool, any mood                 x loose scale

A miss is a normal result. The index is built once and never changes
afterwards; hit counts live in a separate counter.
"""

from __future__ import annotations

import enum
import logging
from collections import Counter, defaultdict
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path

from pydantic import ValidationError

from npc_dialogue.config import (
    CHATBASE_ENABLED,
    CHATBASE_FUZZY_CONFIDENCE_SCALE,
    CHATBASE_HIGH_INTEREST,
    CHATBASE_LOOSE_CONFIDENCE_SCALE,
    CHATBASE_MAX_ALTERNATIVES,
    CHATBASE_MAX_ENTRIES,
    CHATBASE_MIN_CONFIDENCE,
    CHATBASE_MIN_HITS_FOR_RETENTION,
)
from npc_dialogue.core.rng import create_rng
from npc_dialogue.search.chatbase import (
    ChatbaseContext,
    ChatbaseEntry,
    ChatbaseManifest,
    ChatbaseNPCFile,
    ChatbaseTriggers,
    entry_keys,
    moods_compatible,
)

logger = logging.getLogger(__name__)


class LookupTier(enum.Enum):
    EXACT = "exact"
    MOOD = "mood"
    FUZZY = "fuzzy"
    LOOSE = "loose"
    MISS = "miss"


@dataclass(frozen=True)
class ChatbaseConfig:
    enabled: bool = CHATBASE_ENABLED
    min_confidence: float = CHATBASE_MIN_CONFIDENCE
    fuzzy_scale: float = CHATBASE_FUZZY_CONFIDENCE_SCALE
    loose_scale: float = CHATBASE_LOOSE_CONFIDENCE_SCALE
    max_alternatives: int = CHATBASE_MAX_ALTERNATIVES
    max_entries: int = CHATBASE_MAX_ENTRIES
    min_hits_for_retention: int = CHATBASE_MIN_HITS_FOR_RETENTION


@dataclass(frozen=True)
class ChatbaseLookupResult:
    """Outcome of one lookup.

    Attributes:
        hit: Whether an entry was found.
        entry: The chosen entry, or None on a miss.
        response_id: Which of the entry's response ids was picked.
        confidence: 0-1; 0 on a miss.
        key: Full context key string used for the lookup.
        tier: Index tier that produced the hit.
        alternatives: Ids of other entries that were eligible.
    """

    hit: bool
    entry: ChatbaseEntry | None = None
    response_id: str | None = None
    confidence: float = 0.0
    key: str = ""
    tier: LookupTier = LookupTier.MISS
    alternatives: tuple[str, ...] = ()

    @property
    def fuzzy(self) -> bool:
        return self.tier in (LookupTier.FUZZY, LookupTier.LOOSE)


def triggers_match(triggers: ChatbaseTriggers | None, context: ChatbaseContext) -> bool:
    """Whether every set trigger condition holds for the context."""
    if triggers is None:
        return True
    if triggers.player_present is not None and triggers.player_present != context.player_present:
        return False
    if triggers.min_respect is not None and context.respect < triggers.min_respect:
        return False
    if triggers.max_respect is not None and context.respect > triggers.max_respect:
        return False
    if triggers.min_trust is not None and context.trust < triggers.min_trust:
        return False
    if triggers.max_trust is not None and context.trust > triggers.max_trust:
        return False
    if triggers.min_familiarity is not None and context.familiarity < triggers.min_familiarity:
        return False
    if triggers.recent_event is not None and triggers.recent_event != context.recent_event:
        return False
    if triggers.behavior is not None and context.behavior not in triggers.behavior:
        return False
    if triggers.target is not None and triggers.target != context.listener:
        return False
    return True


class ChatbaseLookupEngine:
    """Read-only index over chatbase entries.

    Args:
        path: Chatbase root directory; None means nothing to load.
        config: Lookup tuning.
    """

    def __init__(self, path: str | Path | None = None, config: ChatbaseConfig | None = None):
        self._path = Path(path) if path is not None else None
        self.config = config or ChatbaseConfig()
        self._manifest: ChatbaseManifest | None = None
        self._entries: dict[str, ChatbaseEntry] = {}
        self._index: dict[str, list[ChatbaseEntry]] = {}
        self._hits: Counter[str] = Counter()
        self._lookups = 0
        self._tier_counts: Counter[LookupTier] = Counter()

    @property
    def enabled(self) -> bool:
        return self.config.enabled and bool(self._entries)

    @property
    def manifest(self) -> ChatbaseManifest | None:
        return self._manifest

    def __len__(self) -> int:
        return len(self._entries)

    # --- Loading ---

    def load(self) -> bool:
        """Read manifest.json and every listed NPC file.

        Any failure leaves the engine empty (and therefore disabled) with a
        warning in the log; the conversation pipeline then simply misses.

        Returns:
            True if the chatbase loaded.
        """
        if self._path is None:
            return False
        manifest_path = self._path / "manifest.json"
        try:
            manifest = ChatbaseManifest.model_validate_json(manifest_path.read_text("utf-8"))
            entries: list[ChatbaseEntry] = []
            for npc in manifest.npcs:
                npc_path = self._path / "npcs" / (npc.file or f"{npc.slug}.json")
                if not npc_path.exists():
                    logger.warning("Chatbase file for %s missing at %s", npc.slug, npc_path)
                    continue
                npc_file = ChatbaseNPCFile.model_validate_json(npc_path.read_text("utf-8"))
                entries.extend(npc_file.entries)
        except (OSError, ValueError, ValidationError):
            logger.warning("Chatbase at %s could not be loaded; lookups disabled", self._path, exc_info=True)
            self._manifest = None
            self._entries = {}
            self._index = {}
            return False

        self._manifest = manifest
        self.index_entries(entries)
        logger.info("Chatbase loaded: %d entries for %d NPCs", len(self._entries), len(manifest.npcs))
        return True

    def index_entries(self, entries: Iterable[ChatbaseEntry]) -> None:
        """Build the index from entries already in memory.

        Later entries with a duplicate id replace earlier ones. Entries past
        `max_entries` are dropped.
        """
        by_id: dict[str, ChatbaseEntry] = {}
        for entry in entries:
            if entry.id not in by_id and len(by_id) >= self.config.max_entries:
                logger.warning("Chatbase entry limit %d reached; dropping the rest", self.config.max_entries)
                break
            by_id[entry.id] = entry

        index: dict[str, list[ChatbaseEntry]] = defaultdict(list)
        for entry in by_id.values():
            full, mood_key, pool_key = entry_keys(entry)
            if full is not None:
                index[full].append(entry)
            index[mood_key].append(entry)
            index[pool_key].append(entry)
        self._entries = by_id
        self._index = dict(index)

    # --- Lookup ---

    def lookup(self, context: ChatbaseContext) -> ChatbaseLookupResult:
        """Find an entry for the context, or report a clean miss."""
        key = context.key()
        key_str = key.as_string()
        self._lookups += 1
        if not self.enabled:
            self._tier_counts[LookupTier.MISS] += 1
            return ChatbaseLookupResult(hit=False, key=key_str)

        def eligible(candidates: list[ChatbaseEntry]) -> list[ChatbaseEntry]:
            return [e for e in candidates if triggers_match(e.triggers, context)]

        by_pool = self._index.get(key.pool_key, [])
        tiers = (
            (LookupTier.EXACT, self._index.get(key_str, []), 1.0),
            (LookupTier.MOOD, self._index.get(key.mood_key, []), 1.0),
            (
                LookupTier.FUZZY,
                [e for e in by_pool if moods_compatible(e.mood_bucket, key.mood)],
                self.config.fuzzy_scale,
            ),
            (LookupTier.LOOSE, by_pool, self.config.loose_scale),
        )
        for tier, candidates, scale in tiers:
            entries = eligible(candidates)
            if entries:
                self._tier_counts[tier] += 1
                return self._select(entries, context.seed, key_str, tier, scale)

        self._tier_counts[LookupTier.MISS] += 1
        return ChatbaseLookupResult(hit=False, key=key_str)

    def _select(
        self,
        entries: list[ChatbaseEntry],
        seed: str,
        key: str,
        tier: LookupTier,
        scale: float,
    ) -> ChatbaseLookupResult:
        rng = create_rng(f"chatbase-{seed}-{key}")
        entry = rng.weighted([(e, e.metrics.interest_score) for e in entries], "select")
        response_id = rng.choice(entry.response_ids, "response")
        alternatives = tuple(e.id for e in entries if e.id != entry.id)[: self.config.max_alternatives]
        return ChatbaseLookupResult(
            hit=True,
            entry=entry,
            response_id=response_id,
            confidence=min(1.0, entry.metrics.interest_score / 100.0 * scale),
            key=key,
            tier=tier,
            alternatives=alternatives,
        )

    # --- Usage bookkeeping ---

    def record_hit(self, entry_id: str) -> None:
        if entry_id in self._entries:
            self._hits[entry_id] += 1

    def hit_count(self, entry_id: str) -> int:
        entry = self._entries.get(entry_id)
        if entry is None:
            return 0
        return entry.metrics.hit_count + self._hits[entry_id]

    def stats(self) -> dict[str, float]:
        hits = sum(n for tier, n in self._tier_counts.items() if tier is not LookupTier.MISS)
        return {
            "enabled": self.enabled,
            "entries": len(self._entries),
            "npcs": len({e.speaker for e in self._entries.values()}),
            "lookups": self._lookups,
            "hits": hits,
            "exact_hits": self._tier_counts[LookupTier.EXACT] + self._tier_counts[LookupTier.MOOD],
            "fuzzy_hits": self._tier_counts[LookupTier.FUZZY] + self._tier_counts[LookupTier.LOOSE],
            "misses": self._tier_counts[LookupTier.MISS],
            "hit_rate": hits / self._lookups if self._lookups else 0.0,
        }

    def reset_stats(self) -> None:
        self._lookups = 0
        self._tier_counts.clear()

    def pruned(self) -> ChatbaseLookupEngine:
        """A new engine without rarely used, unremarkable entries.

        Canonical entries, entries with enough hits, and high-interest
        entries are kept. This engine is left untouched.
        """
        keep = [
            e
            for e in self._entries.values()
            if e.metrics.is_canonical
            or self.hit_count(e.id) >= self.config.min_hits_for_retention
            or e.metrics.interest_score >= CHATBASE_HIGH_INTEREST
        ]
        engine = ChatbaseLookupEngine(self._path, self.config)
        engine._manifest = self._manifest
        engine.index_entries(keep)
        engine._hits = Counter({e.id: self._hits[e.id] for e in keep if self._hits[e.id]})
        logger.info("Chatbase pruned %d of %d entries", len(self._entries) - len(keep), len(self._entries))
        return engine

    def sample_entries(self, npc: str, count: int = 10) -> list[ChatbaseEntry]:
        """Up to `count` entries for review, spread across pools then moods."""
        entries = [e for e in self._entries.values() if e.speaker == npc]
        samples: list[ChatbaseEntry] = []
        seen_pools: set[str] = set()
        seen_moods: set[str] = set()
        for entry in entries:
            if len(samples) < count and entry.pool not in seen_pools:
                samples.append(entry)
                seen_pools.add(entry.pool)
                seen_moods.add(entry.mood.value)
        for entry in entries:
            if len(samples) < count and entry.mood.value not in seen_moods and entry not in samples:
                samples.append(entry)
                seen_moods.add(entry.mood.value)
        rest = sorted(
            (e for e in entries if e not in samples),
            key=lambda e: -e.metrics.interest_score,
        )
        samples.extend(rest[: max(0, count - len(samples))])
        return samples

    def export_npc_file(self, npc: str) -> str:
        """JSON for one NPC's entries in the on-disk format."""
        npc_file = ChatbaseNPCFile(
            npc=npc,
            entries=[e for e in self._entries.values() if e.speaker == npc],
        )
        return npc_file.model_dump_json(indent=2)
