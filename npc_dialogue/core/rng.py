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

"""Seeded, namespaced random source.

Every component that needs randomness draws from a SeededRng so that a
fixed seed and a fixed call sequence reproduce the same simulation.

Seeds are hashed with 32-bit FNV-1a and fed to mulberry32. Both are
implemented over Python ints masked to 32 bits, so output is identical
on every platform.

Namespaces:
  rng.random("combat") and rng.random("dialogue") draw from two
  independent sub-streams seeded from hash(f"{seed}:{namespace}").
  Drawing from one never shifts the other, whatever the call order.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import TypeVar

from npc_dialogue.config import MAX_SEED_LENGTH

T = TypeVar("T")

_MASK32 = 0xFFFFFFFF
_FNV_OFFSET = 2166136261
_FNV_PRIME = 16777619
_MULBERRY_INCREMENT = 0x6D2B79F5
_TWO_POW_32 = 4294967296.0


def _imul(a: int, b: int) -> int:
    return (a * b) & _MASK32


def hash_seed(seed: str) -> int:
    """Hash a seed string to a non-zero unsigned 32-bit int (FNV-1a).

    Hashes UTF-16 code units so non-ASCII seeds match other runtimes
    that index strings that way.
    """
    text = str(seed)[:MAX_SEED_LENGTH]
    units = text.encode("utf-16-le", errors="surrogatepass")
    h = _FNV_OFFSET
    for i in range(0, len(units), 2):
        h ^= units[i] | (units[i + 1] << 8)
        h = _imul(h, _FNV_PRIME)
    return h or 1


class _Mulberry32:
    """Single mulberry32 stream. Holds one 32-bit int of state."""

    __slots__ = ("state",)

    def __init__(self, state: int):
        self.state = state & _MASK32

    def next(self) -> float:
        self.state = (self.state + _MULBERRY_INCREMENT) & _MASK32
        t = self.state
        t = _imul(t ^ (t >> 15), t | 1)
        t ^= (t + _imul(t ^ (t >> 7), t | 61)) & _MASK32
        return ((t ^ (t >> 14)) & _MASK32) / _TWO_POW_32


class SeededRng:
    """Deterministic random source with independent namespaced sub-streams.

    Args:
        seed: Any string. Truncated to MAX_SEED_LENGTH characters.
    """

    def __init__(self, seed: str):
        self.seed = str(seed)[:MAX_SEED_LENGTH]
        self._default = _Mulberry32(hash_seed(self.seed))
        self._streams: dict[str, _Mulberry32] = {}

    def _stream(self, namespace: str | None) -> _Mulberry32:
        if namespace is None:
            return self._default
        stream = self._streams.get(namespace)
        if stream is None:
            stream = _Mulberry32(hash_seed(f"{self.seed}:{namespace}"))
            self._streams[namespace] = stream
        return stream

    def random(self, namespace: str | None = None) -> float:
        """Uniform draw in [0, 1)."""
        return self._stream(namespace).next()

    def randint(self, low: int, high: int, namespace: str | None = None) -> int:
        """Integer draw in [low, high], both ends inclusive."""
        return int(self.random(namespace) * (high - low + 1)) + low

    def choice(self, items: Sequence[T], namespace: str | None = None) -> T | None:
        """Uniform choice. Returns None for an empty sequence."""
        if not items:
            return None
        return items[int(self.random(namespace) * len(items))]

    def weighted(
        self,
        items: Sequence[tuple[T, float]],
        namespace: str | None = None,
    ) -> T | None:
        """Weighted choice over (item, weight) pairs.

        Never raises: an empty sequence gives None and a non-positive
        total weight gives the first item.
        """
        if not items:
            return None
        total = sum(max(0.0, w) for _, w in items)
        if total <= 0:
            return items[0][0]
        roll = self.random(namespace) * total
        for item, weight in items:
            roll -= max(0.0, weight)
            if roll <= 0:
                return item
        return items[-1][0]

    def shuffle(self, items: Sequence[T], namespace: str | None = None) -> list[T]:
        """Return a shuffled copy (Fisher-Yates, walking from the end)."""
        result = list(items)
        for i in range(len(result) - 1, 0, -1):
            j = int(self.random(namespace) * (i + 1))
            result[i], result[j] = result[j], result[i]
        return result

    def roll(self, namespace: str, sides: int = 6) -> int:
        """Die roll in [1, sides] on a namespaced stream."""
        return self.randint(1, sides, namespace)

    def roll_index(self, namespace: str, length: int) -> int:
        """Index in [0, length) on a namespaced stream; 0 for empty."""
        if length <= 0:
            return 0
        return int(self.random(namespace) * length)

    def copy(self) -> SeededRng:
        """Independent copy positioned at the same point of every stream."""
        clone = SeededRng.__new__(SeededRng)
        clone.seed = self.seed
        clone._default = _Mulberry32(self._default.state)
        clone._streams = {
            ns: _Mulberry32(stream.state) for ns, stream in self._streams.items()
        }
        return clone


def create_rng(seed: str) -> SeededRng:
    """Create a generator for a seed."""
    return SeededRng(seed)


def conversation_seed(participants: Sequence[str], turn: int, base_seed: str) -> str:
    """Seed for one conversation turn, independent of participant order."""
    return f"{base_seed}:{':'.join(sorted(participants))}:{turn}"
