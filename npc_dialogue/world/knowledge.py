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

"""Facts NPCs know and pass on to each other.

A fact is authored once in the KnowledgeBase and taught to the NPCs that
start out knowing it. Gossip and lore turns between NPCs may carry one
fact from speaker to listener: the listener's trust in the speaker must
reach the fact's requirement, and the speaker's share/hide goals tilt
the fact's spread chance.
"""

from __future__ import annotations

import enum
import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from npc_dialogue.config import MAX_KNOWN_FACTS
from npc_dialogue.core.rng import SeededRng
from npc_dialogue.search.goals import GoalType, NPCObjectives

logger = logging.getLogger(__name__)


class KnowledgeCategory(enum.Enum):
    LORE = "lore"
    RUMOR = "rumor"
    SECRET = "secret"
    WEAKNESS = "weakness"
    PLAN = "plan"
    RELATIONSHIP = "relationship"


class Secrecy(enum.Enum):
    PUBLIC = "public"
    COMMON = "common"
    UNCOMMON = "uncommon"
    RARE = "rare"
    SECRET = "secret"
    FORBIDDEN = "forbidden"


@dataclass(frozen=True)
class KnowledgePiece:
    """One fact that can travel between NPCs.

    Attributes:
        fact_id: Unique id.
        content: Full text of the fact.
        category: Kind of fact.
        secrecy: How guarded it is. Forbidden facts never spread.
        short_form: Phrase used when the fact comes up in dialogue.
        spread_chance: 0-1 chance of being passed on when eligible.
        requires_trust: Listener trust in the speaker needed to hear it.
        related_npcs: NPCs the fact is about.
    """

    fact_id: str
    content: str
    category: KnowledgeCategory = KnowledgeCategory.LORE
    secrecy: Secrecy = Secrecy.COMMON
    short_form: str = ""
    spread_chance: float = 0.5
    requires_trust: float = 0.0
    related_npcs: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "fact_id": self.fact_id,
            "content": self.content,
            "category": self.category.value,
            "secrecy": self.secrecy.value,
            "short_form": self.short_form,
            "spread_chance": self.spread_chance,
            "requires_trust": self.requires_trust,
            "related_npcs": list(self.related_npcs),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> KnowledgePiece:
        return cls(
            fact_id=data["fact_id"],
            content=data["content"],
            category=KnowledgeCategory(data.get("category", KnowledgeCategory.LORE.value)),
            secrecy=Secrecy(data.get("secrecy", Secrecy.COMMON.value)),
            short_form=data.get("short_form", ""),
            spread_chance=float(data.get("spread_chance", 0.5)),
            requires_trust=float(data.get("requires_trust", 0.0)),
            related_npcs=tuple(data.get("related_npcs", ())),
        )


def share_willingness(objectives: NPCObjectives | None) -> float:
    """Multiplier on spread chance from share/hide goal priorities."""
    if objectives is None:
        return 1.0
    share = hide = 0.0
    for tier, scale in (
        (objectives.primary, 1.0),
        (objectives.secondary, 0.5),
        (objectives.situational, 1.0),
    ):
        for goal in tier:
            if goal.goal_type is GoalType.SHARE_KNOWLEDGE:
                share = max(share, goal.priority * scale)
            elif goal.goal_type is GoalType.HIDE_KNOWLEDGE:
                hide = max(hide, goal.priority * scale)
    return max(0.0, 1.0 + (share - hide) / 100.0)


class KnowledgeBase:
    """Authored facts plus who knows which of them.

    Args:
        pieces: Initial facts. Duplicate ids replace earlier ones.
        capacity: Facts retained per NPC; the oldest are forgotten first.
    """

    def __init__(self, pieces: Iterable[KnowledgePiece] = (), capacity: int = MAX_KNOWN_FACTS):
        self.capacity = capacity
        self.pieces: dict[str, KnowledgePiece] = {}
        self.known: dict[str, list[str]] = {}
        for piece in pieces:
            self.add(piece)

    def add(self, piece: KnowledgePiece) -> None:
        self.pieces[piece.fact_id] = piece

    def get(self, fact_id: str) -> KnowledgePiece | None:
        return self.pieces.get(fact_id)

    def teach(self, npc: str, fact_id: str) -> bool:
        """Give an NPC a fact. False if unknown or already known."""
        if fact_id not in self.pieces or self.knows(npc, fact_id):
            return False
        facts = self.known.setdefault(npc, [])
        facts.append(fact_id)
        if len(facts) > self.capacity:
            del facts[: len(facts) - max(0, self.capacity)]
        return True

    def knows(self, npc: str, fact_id: str) -> bool:
        return fact_id in self.known.get(npc, ())

    def facts_of(self, npc: str) -> list[KnowledgePiece]:
        return [self.pieces[f] for f in self.known.get(npc, ()) if f in self.pieces]

    def shared(self, a: str, b: str) -> list[KnowledgePiece]:
        other = set(self.known.get(b, ()))
        return [p for p in self.facts_of(a) if p.fact_id in other]

    def exclusive(self, npc: str, others: Iterable[str]) -> list[KnowledgePiece]:
        theirs = {f for o in others for f in self.known.get(o, ())}
        return [p for p in self.facts_of(npc) if p.fact_id not in theirs]

    def holders(self, fact_id: str) -> list[str]:
        return sorted(npc for npc, facts in self.known.items() if fact_id in facts)

    def about(self, npc: str, subject: str) -> list[KnowledgePiece]:
        """Facts `npc` knows that concern `subject`."""
        return [p for p in self.facts_of(npc) if subject in p.related_npcs]

    def forget(self, npc: str) -> None:
        self.known.pop(npc, None)

    def pass_on(
        self,
        speaker: str,
        listener: str,
        trust: float,
        rng: SeededRng,
        willingness: float = 1.0,
    ) -> KnowledgePiece | None:
        """Maybe move one fact the listener lacks from speaker to listener.

        Only the newest eligible fact is tried. Forbidden facts, and facts
        whose trust requirement the listener does not meet, are skipped.

        Returns:
            The fact passed on, or None.
        """
        for piece in reversed(self.facts_of(speaker)):
            if piece.secrecy is Secrecy.FORBIDDEN or self.knows(listener, piece.fact_id):
                continue
            if trust < piece.requires_trust:
                continue
            chance = min(1.0, piece.spread_chance * willingness)
            if rng.random(f"fact:{piece.fact_id}") < chance:
                self.teach(listener, piece.fact_id)
                logger.debug("%s told %s about %s", speaker, listener, piece.fact_id)
                return piece
            return None
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "capacity": self.capacity,
            "pieces": [p.to_dict() for p in self.pieces.values()],
            "known": {npc: list(facts) for npc, facts in self.known.items()},
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> KnowledgeBase:
        base = cls(
            (KnowledgePiece.from_dict(p) for p in data.get("pieces", [])),
            capacity=int(data.get("capacity", MAX_KNOWN_FACTS)),
        )
        for npc, facts in data.get("known", {}).items():
            for fact_id in facts:
                base.teach(npc, fact_id)
        return base
