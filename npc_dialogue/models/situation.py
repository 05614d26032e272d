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

"""Game-side circumstances a conversation happens in.

The game reports where the player is and what they carry; the dialogue
pipeline reads it for pool choice, mood and prices.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from npc_dialogue.config import MAX_HEAT
from npc_dialogue.models.templates import TemplatePool

P = TemplatePool

# domain -> pool multipliers for ambient pool choice
DOMAIN_POOL_TINTS: dict[str, dict[TemplatePool, float]] = {
    "market": {P.SALES_PITCH: 1.6, P.BARGAIN: 1.6, P.NPC_GOSSIP: 1.3, P.NPC_CONFLICT: 0.7},
    "arena": {P.THREAT: 1.6, P.CHALLENGE: 1.6, P.NPC_CONFLICT: 1.8, P.NPC_ALLIANCE: 0.7},
    "archive": {P.LORE: 1.6, P.HINT: 1.4, P.NPC_LORE: 1.8, P.NPC_CONFLICT: 0.6},
    "sanctuary": {P.NPC_ALLIANCE: 1.6, P.NPC_GREETING: 1.3, P.THREAT: 0.5, P.NPC_CONFLICT: 0.5},
    "wilds": {P.THREAT: 1.3, P.NPC_REACTION: 1.3, P.SALES_PITCH: 0.6},
}


@dataclass(frozen=True)
class SituationContext:
    """Where and under what pressure a conversation takes place.

    Attributes:
        domain: Area slug, e.g. "market". Unknown domains apply no tint.
        player_gold: Gold the player carries.
        heat: Difficulty the player has opted into, 0 to MAX_HEAT.
        pool_tint: Extra pool multipliers layered on the domain's.
    """

    domain: str = ""
    player_gold: int = 0
    heat: int = 0
    pool_tint: Mapping[TemplatePool, float] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "heat", max(0, min(MAX_HEAT, int(self.heat))))
        object.__setattr__(self, "player_gold", max(0, int(self.player_gold)))

    def tint(self, pool: TemplatePool) -> float:
        base = DOMAIN_POOL_TINTS.get(self.domain, {}).get(pool, 1.0)
        return base * max(0.0, self.pool_tint.get(pool, 1.0))

    def flags(self) -> dict[str, object]:
        """Values exposed to context conditions on templates."""
        return {"domain": self.domain, "player_gold": self.player_gold, "heat": self.heat}

    def to_dict(self) -> dict[str, Any]:
        return {
            "domain": self.domain,
            "player_gold": self.player_gold,
            "heat": self.heat,
            "pool_tint": {p.value: w for p, w in self.pool_tint.items()},
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> SituationContext:
        return cls(
            domain=str(data.get("domain", "")),
            player_gold=data.get("player_gold", 0),
            heat=data.get("heat", 0),
            pool_tint={TemplatePool(p): float(w) for p, w in data.get("pool_tint", {}).items()},
        )
