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

"""Tests for the template library and variable substitution."""

from npc_dialogue.dialogue.templates import (
    GENERIC_TEMPLATES,
    TemplateLibrary,
    generic_template,
    listener_deltas,
    memory_kind,
    substitute_variables,
    template_tone,
)
from npc_dialogue.models.memory import MemoryKind
from npc_dialogue.models.templates import (
    ResponseTemplate,
    TemplateEffects,
    TemplatePool,
    Tone,
)


def _make_template(template_id: str, pool=TemplatePool.GREETING, **kwargs) -> ResponseTemplate:
    return ResponseTemplate(template_id=template_id, pool=pool, **kwargs)


class TestTemplateLibrary:
    def test_npc_specific_before_shared(self):
        """An NPC's own templates should come before shared ones."""
        library = TemplateLibrary(
            [_make_template("shared"), _make_template("own", npc_slug="mr-bones")]
        )
        ids = [t.template_id for t in library.for_pool("mr-bones", TemplatePool.GREETING)]
        assert ids == ["own", "shared"]
        ids = [t.template_id for t in library.for_pool("zara", TemplatePool.GREETING)]
        assert ids == ["shared"]

    def test_duplicate_id_replaces(self):
        """Adding a duplicate id should replace the old template."""
        library = TemplateLibrary()
        library.add(_make_template("t1", pool=TemplatePool.GREETING))
        library.add(_make_template("t1", pool=TemplatePool.FAREWELL))
        assert len(library) == 1
        assert library.for_pool("", TemplatePool.GREETING) == []
        assert library.get("t1").pool is TemplatePool.FAREWELL

    def test_get_generic(self):
        """Generic templates should be found by id."""
        library = TemplateLibrary()
        assert library.get("generic.lore") is GENERIC_TEMPLATES[TemplatePool.LORE]
        assert library.get("generic.nonsense") is None
        assert library.get("missing") is None

    def test_for_npc(self):
        """for_npc should return own and shared templates only."""
        library = TemplateLibrary(
            [
                _make_template("a", npc_slug="zara"),
                _make_template("b", npc_slug="mr-bones"),
                _make_template("c"),
            ]
        )
        assert {t.template_id for t in library.for_npc("zara")} == {"a", "c"}


def test_every_pool_has_generic():
    """Every pool should have a generic template."""
    for pool in TemplatePool:
        assert generic_template(pool).pool is pool


def test_pool_defaults_fill_effects():
    """Pool defaults should fill in missing effects."""
    threat = _make_template("t", pool=TemplatePool.THREAT)
    assert dict(listener_deltas(threat))["fear"] == 5.0
    assert memory_kind(threat) is MemoryKind.INSULT
    assert template_tone(threat) is Tone.THREATENING


def test_authored_effects_win():
    """Authored effects should override pool defaults."""
    template = _make_template(
        "t",
        pool=TemplatePool.THREAT,
        effects=TemplateEffects(listener_deltas=(("trust", 4.0),), memory_kind=MemoryKind.GIFT),
        tone=Tone.SAD,
    )
    assert listener_deltas(template) == (("trust", 4.0),)
    assert memory_kind(template) is MemoryKind.GIFT
    assert template_tone(template) is Tone.SAD


class TestSubstituteVariables:
    def test_replaces_known(self):
        """Known variables should be replaced."""
        assert substitute_variables("Hi {{name}}!", {"name": "Zara"}) == "Hi Zara!"

    def test_keeps_unknown(self):
        """Unknown variables should be left as written."""
        assert substitute_variables("Hi {{who}}", {}) == "Hi {{who}}"

    def test_unterminated_is_copied(self):
        """An unterminated variable should be copied as text."""
        assert substitute_variables("Hi {{name", {"name": "x"}) == "Hi {{name"

    def test_no_recursive_expansion(self):
        """Substituted values should not be expanded again."""
        assert substitute_variables("{{a}}", {"a": "{{b}}", "b": "no"}) == "{{b}}"

    def test_whitespace_in_name(self):
        assert substitute_variables("{{ name }}", {"name": "x"}) == "x"
