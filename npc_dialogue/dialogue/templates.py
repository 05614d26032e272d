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

"""Template library and generic fallbacks.

The library indexes authored templates by (npc_slug, pool). Templates
with an empty npc_slug are shared by every NPC. Each pool also has one
generic template that is always available, so selection can never come
back empty-handed.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable, Mapping

from npc_dialogue.models.memory import MemoryKind
from npc_dialogue.models.templates import ResponseTemplate, TemplatePool, Tone

# Fallback lines when nothing authored applies
_GENERIC_TEXT: dict[TemplatePool, str] = {
    TemplatePool.GREETING: "Hello there.",
    TemplatePool.FAREWELL: "Stay safe out there.",
    TemplatePool.IDLE: "Hmm.",
    TemplatePool.SALES_PITCH: "Take a look, if you like.",
    TemplatePool.BARGAIN: "That's my price.",
    TemplatePool.THREAT: "Watch yourself.",
    TemplatePool.CHALLENGE: "Not today.",
    TemplatePool.HINT: "Keep your eyes open.",
    TemplatePool.LORE: "That's an old story.",
    TemplatePool.REACTION: "I see.",
    TemplatePool.NPC_GREETING: "{{listener}}.",
    TemplatePool.NPC_REACTION: "...",
    TemplatePool.NPC_GOSSIP: "Have you heard anything new?",
    TemplatePool.NPC_LORE: "Some things are better left buried.",
    TemplatePool.NPC_CONFLICT: "Careful, {{listener}}.",
    TemplatePool.NPC_ALLIANCE: "We should stick together.",
    TemplatePool.PLAYER_INTERRUPT: "Oh. You're here.",
}

GENERIC_TEMPLATES: dict[TemplatePool, ResponseTemplate] = {
    pool: ResponseTemplate(
        template_id=f"generic.{pool.value}",
        pool=pool,
        text_ref=f"generic.{pool.value}",
        weight=0.1,
        text=text,
    )
    for pool, text in _GENERIC_TEXT.items()
}

# Listener-side stat changes for pools whose templates declare none
POOL_DELTAS: dict[TemplatePool, tuple[tuple[str, float], ...]] = {
    TemplatePool.THREAT: (("fear", 5.0), ("respect", -3.0), ("tension", 10.0)),
    TemplatePool.NPC_CONFLICT: (("respect", -5.0), ("trust", -5.0), ("tension", 15.0)),
    TemplatePool.CHALLENGE: (("respect", 2.0), ("tension", 5.0)),
    TemplatePool.NPC_ALLIANCE: (("trust", 5.0), ("respect", 3.0)),
    TemplatePool.LORE: (("respect", 2.0),),
    TemplatePool.NPC_LORE: (("respect", 2.0),),
    TemplatePool.NPC_GOSSIP: (("trust", 1.0),),
}

# Memory kind logged for pools whose templates leave the default
POOL_MEMORY_KINDS: dict[TemplatePool, MemoryKind] = {
    TemplatePool.THREAT: MemoryKind.INSULT,
    TemplatePool.NPC_CONFLICT: MemoryKind.CONFLICT,
    TemplatePool.CHALLENGE: MemoryKind.CONFLICT,
    TemplatePool.NPC_ALLIANCE: MemoryKind.ALLIANCE,
    TemplatePool.BARGAIN: MemoryKind.TRADE,
    TemplatePool.SALES_PITCH: MemoryKind.TRADE,
}

# Default register for generic templates, used by simulated turns
POOL_TONES: dict[TemplatePool, Tone] = {
    TemplatePool.THREAT: Tone.THREATENING,
    TemplatePool.NPC_CONFLICT: Tone.AGGRESSIVE,
    TemplatePool.CHALLENGE: Tone.AGGRESSIVE,
    TemplatePool.NPC_ALLIANCE: Tone.FRIENDLY,
    TemplatePool.GREETING: Tone.FRIENDLY,
    TemplatePool.NPC_GREETING: Tone.FRIENDLY,
    TemplatePool.HINT: Tone.HELPFUL,
    TemplatePool.LORE: Tone.MYSTERIOUS,
    TemplatePool.NPC_LORE: Tone.MYSTERIOUS,
    TemplatePool.NPC_GOSSIP: Tone.CURIOUS,
}


def listener_deltas(template: ResponseTemplate) -> tuple[tuple[str, float], ...]:
    return template.effects.listener_deltas or POOL_DELTAS.get(template.pool, ())


def memory_kind(template: ResponseTemplate) -> MemoryKind:
    kind = template.effects.memory_kind
    if kind is MemoryKind.CONVERSATION:
        return POOL_MEMORY_KINDS.get(template.pool, kind)
    return kind


def template_tone(template: ResponseTemplate) -> Tone:
    if template.tone is Tone.NEUTRAL:
        return POOL_TONES.get(template.pool, Tone.NEUTRAL)
    return template.tone


def substitute_variables(text: str, variables: Mapping[str, str]) -> str:
    """Replace {{name}} placeholders in one left-to-right scan.

    Unknown names are left in place. An unterminated "{{" is copied
    through unchanged.
    """
    out: list[str] = []
    i = 0
    n = len(text)
    while i < n:
        start = text.find("{{", i)
        if start < 0:
            out.append(text[i:])
            break
        end = text.find("}}", start + 2)
        if end < 0:
            out.append(text[i:])
            break
        out.append(text[i:start])
        name = text[start + 2 : end].strip()
        out.append(variables.get(name, text[start : end + 2]))
        i = end + 2
    return "".join(out)


class TemplateLibrary:
    """Authored templates indexed by (npc_slug, pool).

    Args:
        templates: Initial templates. Duplicate ids replace earlier ones.
    """

    def __init__(self, templates: Iterable[ResponseTemplate] = ()):
        self._by_id: dict[str, ResponseTemplate] = {}
        self._index: dict[tuple[str, TemplatePool], list[str]] = defaultdict(list)
        for template in templates:
            self.add(template)

    def add(self, template: ResponseTemplate) -> None:
        key = (template.npc_slug, template.pool)
        if template.template_id in self._by_id:
            old = self._by_id[template.template_id]
            self._index[(old.npc_slug, old.pool)].remove(old.template_id)
        self._by_id[template.template_id] = template
        self._index[key].append(template.template_id)

    def get(self, template_id: str) -> ResponseTemplate | None:
        if template_id.startswith("generic."):
            try:
                return GENERIC_TEMPLATES[TemplatePool(template_id[len("generic.") :])]
            except ValueError:
                return None
        return self._by_id.get(template_id)

    def for_pool(self, npc_slug: str, pool: TemplatePool) -> list[ResponseTemplate]:
        """NPC-specific templates first, then shared ones, in insertion order."""
        ids = self._index.get((npc_slug, pool), []) + self._index.get(("", pool), [])
        return [self._by_id[i] for i in ids]

    def for_npc(self, npc_slug: str) -> list[ResponseTemplate]:
        return [t for t in self._by_id.values() if t.npc_slug in (npc_slug, "")]

    def __len__(self) -> int:
        return len(self._by_id)


def generic_template(pool: TemplatePool) -> ResponseTemplate:
    """The always-available fallback for a pool."""
    return GENERIC_TEMPLATES[pool]
