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

"""Per-NPC episodic memory records."""

from __future__ import annotations

import enum
from dataclasses import dataclass

from npc_dialogue.config import MAX_MEMORY_DETAILS, MEMORY_CAPACITY


class MemoryKind(enum.Enum):
    CONVERSATION = "conversation"
    CONFLICT = "conflict"
    GIFT = "gift"
    BETRAYAL = "betrayal"
    RESCUE = "rescue"
    TRADE = "trade"
    ALLIANCE = "alliance"
    DEATH = "death"
    WITNESSED_DEATH = "witnessed_death"
    INSULT = "insult"
    PRAISE = "praise"


# (default magnitude 1-10, valence -1/0/+1)
KIND_PROFILE: dict[MemoryKind, tuple[int, int]] = {
    MemoryKind.CONVERSATION: (2, 0),
    MemoryKind.CONFLICT: (7, -1),
    MemoryKind.GIFT: (4, 1),
    MemoryKind.BETRAYAL: (9, -1),
    MemoryKind.RESCUE: (8, 1),
    MemoryKind.TRADE: (3, 0),
    MemoryKind.ALLIANCE: (6, 1),
    MemoryKind.DEATH: (8, -1),
    MemoryKind.WITNESSED_DEATH: (6, -1),
    MemoryKind.INSULT: (4, -1),
    MemoryKind.PRAISE: (3, 1),
}


@dataclass(frozen=True)
class MemoryEvent:
    """A single remembered event.

    Attributes:
        event_id: Deterministic id ("{owner}:{turn}:{seq}").
        kind: What happened.
        turn: Turn index at which it happened.
        magnitude: Importance in [1, 10].
        valence: -1 negative, 0 neutral, +1 positive for the owner.
        counterpart_id: The other party, if any.
        details: Short free text (truncated).
    """

    event_id: str
    kind: MemoryKind
    turn: int
    magnitude: int
    valence: int
    counterpart_id: str | None = None
    details: str = ""


def make_event(
    owner_id: str,
    kind: MemoryKind,
    turn: int,
    counterpart_id: str | None = None,
    magnitude: int | None = None,
    valence: int | None = None,
    details: str = "",
    seq: int = 0,
) -> MemoryEvent:
    """Build a MemoryEvent, filling magnitude and valence from the kind."""
    default_magnitude, default_valence = KIND_PROFILE[kind]
    mag = default_magnitude if magnitude is None else magnitude
    return MemoryEvent(
        event_id=f"{owner_id}:{turn}:{seq}",
        kind=kind,
        turn=turn,
        magnitude=max(1, min(10, int(mag))),
        valence=default_valence if valence is None else max(-1, min(1, valence)),
        counterpart_id=counterpart_id,
        details=details[:MAX_MEMORY_DETAILS],
    )


@dataclass(frozen=True)
class NPCMemory:
    """Capacity-bounded event log, oldest first.

    Attributes:
        owner_id: NPC that remembers.
        events: Retained events in insertion order.
        capacity: Maximum number of retained events.
        total_recorded: Events ever added, including evicted ones.
    """

    owner_id: str
    events: tuple[MemoryEvent, ...] = ()
    capacity: int = MEMORY_CAPACITY
    total_recorded: int = 0

    def __len__(self) -> int:
        return len(self.events)
