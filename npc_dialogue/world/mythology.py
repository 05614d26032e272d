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

"""Player mythology: what NPCs believe about the player before meeting them.

Witnesses of player events may form a theory. Theories spread NPC to NPC
through rumors; each listener believes or doubts according to archetype.
Facts and believers together raise the player's myth status:

  unknown -> rumored (2 facts or 3 theories)
          -> legend (5 facts, 8 believers)
          -> prophecy (10 facts, 15 believers)

First meetings are shaped by what the NPC believes: a suggested mood,
starting stat modifiers and line references for the content layer.
"""

from __future__ import annotations

import enum
import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

import numpy as np

from npc_dialogue.config import MYTH_DEFAULT_EXPECTATION, MYTH_EVOLUTION_RATE
from npc_dialogue.core.rng import create_rng
from npc_dialogue.models.npc import BehavioralArchetype
from npc_dialogue.models.relationship import MoodType

logger = logging.getLogger(__name__)

A = BehavioralArchetype


class MythStatus(enum.Enum):
    UNKNOWN = "unknown"
    RUMORED = "rumored"
    LEGEND = "legend"
    PROPHECY = "prophecy"


class Sentiment(enum.Enum):
    POSITIVE = "positive"
    NEGATIVE = "negative"
    NEUTRAL = "neutral"


class PlayerEventType(enum.Enum):
    ROOM_CLEARED = "room_cleared"
    BOSS_DEFEATED = "boss_defeated"
    DEATH = "death"
    RELIC_OBTAINED = "relic_obtained"
    NPC_HELPED = "npc_helped"
    NPC_BETRAYED = "npc_betrayed"
    BARGAIN_MADE = "bargain_made"
    SECRET_LEARNED = "secret_learned"
    DOMAIN_ENTERED = "domain_entered"


E = PlayerEventType
_POS, _NEG, _NEU = Sentiment.POSITIVE, Sentiment.NEGATIVE, Sentiment.NEUTRAL

# archetype -> event -> (short form, sentiment). Archetypes without an
# entry for an event reason like a diplomat.
THEORY_TEMPLATES: dict[BehavioralArchetype, dict[PlayerEventType, tuple[str, Sentiment]]] = {
    A.PREDATOR: {
        E.ROOM_CLEARED: ("They kill without mercy", _NEU),
        E.BOSS_DEFEATED: ("They're a threat", _NEG),
        E.DEATH: ("They can be killed", _POS),
        E.RELIC_OBTAINED: ("They grow stronger", _NEU),
        E.NPC_HELPED: ("They make allies", _NEG),
        E.NPC_BETRAYED: ("They cannot be trusted", _POS),
    },
    A.SAGE: {
        E.ROOM_CLEARED: ("They're methodical", _NEU),
        E.BOSS_DEFEATED: ("They understand the pattern", _POS),
        E.DEATH: ("They learn from failure", _NEU),
        E.RELIC_OBTAINED: ("They seek understanding", _POS),
        E.NPC_HELPED: ("They value connection", _POS),
        E.NPC_BETRAYED: ("They pursue their own truth", _NEU),
        E.BARGAIN_MADE: ("They negotiate fate", _NEU),
        E.SECRET_LEARNED: ("They uncover truth", _POS),
        E.DOMAIN_ENTERED: ("They walk the path", _NEU),
    },
    A.MERCHANT: {
        E.ROOM_CLEARED: ("They have spending power", _POS),
        E.BOSS_DEFEATED: ("They're a valuable client", _POS),
        E.DEATH: ("They need better equipment", _POS),
        E.RELIC_OBTAINED: ("They have rare goods", _POS),
        E.NPC_BETRAYED: ("They play hardball", _NEU),
        E.BARGAIN_MADE: ("They're a deal-maker", _POS),
    },
    A.TRICKSTER: {
        E.ROOM_CLEARED: ("They stir up trouble", _POS),
        E.BOSS_DEFEATED: ("They break the rules", _POS),
        E.DEATH: ("The punchline fell flat", _POS),
        E.NPC_HELPED: ("They play favorites", _NEU),
        E.NPC_BETRAYED: ("They're unpredictable", _POS),
        E.SECRET_LEARNED: ("They collect secrets", _POS),
    },
    A.DIPLOMAT: {
        E.BOSS_DEFEATED: ("They're capable", _POS),
        E.DEATH: ("They struggle", _NEU),
        E.NPC_HELPED: ("They build bridges", _POS),
        E.NPC_BETRAYED: ("They make enemies", _NEG),
    },
}

# Chance that a witness forms a theory at all
THEORY_CHANCE: dict[BehavioralArchetype, float] = {
    A.PREDATOR: 0.4,
    A.PREY: 0.2,
    A.MERCHANT: 0.35,
    A.SAGE: 0.5,
    A.WARRIOR: 0.25,
    A.DIPLOMAT: 0.3,
    A.TRICKSTER: 0.6,
    A.OPPORTUNIST: 0.45,
    A.GUARDIAN: 0.25,
    A.LOYALIST: 0.2,
}

# Added to a theory's confidence when a listener decides whether to believe it
BELIEF_MODIFIERS: dict[BehavioralArchetype, float] = {
    A.PREDATOR: -0.1,
    A.PREY: 0.2,
    A.MERCHANT: 0.0,
    A.SAGE: -0.2,
    A.WARRIOR: -0.05,
    A.DIPLOMAT: 0.1,
    A.TRICKSTER: -0.15,
    A.OPPORTUNIST: 0.15,
    A.GUARDIAN: 0.0,
    A.LOYALIST: 0.1,
}

_SENTIMENT_BELIEF = {_POS: 0.1, _NEG: -0.05, _NEU: 0.0}
_EXPECTATION_GAIN = {_POS: 10.0, _NEG: 5.0, _NEU: 3.0}
_SKEPTICS = frozenset({A.SAGE, A.PREDATOR, A.TRICKSTER})
_SUSPECT_CONFIDENCE = 0.8

# (facts, believers) needed per status, checked highest first
_STATUS_THRESHOLDS = (
    (MythStatus.PROPHECY, 10, 15),
    (MythStatus.LEGEND, 5, 8),
)
_RUMORED_FACTS = 2
_RUMORED_THEORIES = 3


@dataclass
class PlayerTheory:
    """One belief about the player, shared by everyone who believes it."""

    origin_npc: str
    short_form: str
    sentiment: Sentiment
    confidence: float
    event: PlayerEventType
    believers: list[str] = field(default_factory=list)
    doubters: list[str] = field(default_factory=list)
    spread_turn: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "origin_npc": self.origin_npc,
            "short_form": self.short_form,
            "sentiment": self.sentiment.value,
            "confidence": self.confidence,
            "event": self.event.value,
            "believers": list(self.believers),
            "doubters": list(self.doubters),
            "spread_turn": self.spread_turn,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> PlayerTheory:
        return cls(
            origin_npc=data["origin_npc"],
            short_form=data["short_form"],
            sentiment=Sentiment(data["sentiment"]),
            confidence=float(data["confidence"]),
            event=PlayerEventType(data["event"]),
            believers=list(data.get("believers", [])),
            doubters=list(data.get("doubters", [])),
            spread_turn=int(data.get("spread_turn", 0)),
        )


@dataclass(frozen=True)
class PlayerEventContext:
    """Where and around whom a player event happened.

    Attributes:
        turn: Global turn index.
        location: Domain or room name, if any.
        room_index: Room number for room_cleared.
        npc: NPC involved (helped, betrayed, bargained with).
        witnesses: NPCs who saw it and may form a theory.
    """

    turn: int
    location: str = ""
    room_index: int = 0
    npc: str = ""
    witnesses: tuple[str, ...] = ()


@dataclass(frozen=True)
class NPCPlayerBeliefs:
    npc: str
    theories: tuple[PlayerTheory, ...]
    doubts: tuple[PlayerTheory, ...]
    expectation: float
    sentiment: Sentiment
    known_facts: tuple[str, ...]
    status: MythStatus


@dataclass(frozen=True)
class SpreadResult:
    theory: PlayerTheory
    believed: bool
    from_npc: str
    to_npc: str


@dataclass(frozen=True)
class FirstMeeting:
    """How an NPC should open its first exchange with the player.

    Attributes:
        npc: NPC slug.
        line_refs: Content-layer ids, in speaking order
            (action, expectation, theory reference).
        theory: Short form of the theory the NPC brings up, if any.
        suggested_mood: Mood to present with.
        stat_modifiers: Starting stat deltas toward the player.
        tension: Suggested starting thread tension, 0-1.
    """

    npc: str
    line_refs: tuple[str, ...]
    theory: str | None
    suggested_mood: MoodType
    stat_modifiers: dict[str, float]
    tension: float


def _fact(event_type: PlayerEventType, ctx: PlayerEventContext) -> str:
    if event_type is E.ROOM_CLEARED:
        return f"Cleared room {ctx.room_index}"
    if event_type is E.BOSS_DEFEATED:
        return f"Defeated the boss of {ctx.location}"
    if event_type is E.DEATH:
        return f"Died in {ctx.location}"
    if event_type is E.RELIC_OBTAINED:
        return "Obtained a relic"
    if event_type is E.NPC_HELPED:
        return f"Helped {ctx.npc}"
    if event_type is E.NPC_BETRAYED:
        return f"Betrayed {ctx.npc}"
    if event_type is E.BARGAIN_MADE:
        return f"Made a bargain with {ctx.npc}"
    if event_type is E.SECRET_LEARNED:
        return "Learned a secret"
    return f"Entered {ctx.location}"


def theory_template(
    archetype: BehavioralArchetype, event_type: PlayerEventType
) -> tuple[str, Sentiment] | None:
    """The theory an archetype draws from an event, or None if it draws none."""
    own = THEORY_TEMPLATES.get(archetype, {})
    return own.get(event_type) or THEORY_TEMPLATES[A.DIPLOMAT].get(event_type)


def belief_chance(archetype: BehavioralArchetype, theory: PlayerTheory) -> float:
    chance = theory.confidence + BELIEF_MODIFIERS.get(archetype, 0.0)
    chance += _SENTIMENT_BELIEF[theory.sentiment]
    return float(np.clip(chance, 0.1, 0.9))


def overall_sentiment(theories: Sequence[PlayerTheory]) -> Sentiment:
    """Positive or negative only when one side leads by more than one."""
    positive = sum(1 for t in theories if t.sentiment is _POS)
    negative = sum(1 for t in theories if t.sentiment is _NEG)
    if positive > negative + 1:
        return _POS
    if negative > positive + 1:
        return _NEG
    return _NEU


class PlayerMythology:
    """Shared record of what the world believes about the player.

    Args:
        seed: Seed for every random draw; the same events in the same
            order produce the same mythology.
    """

    def __init__(self, seed: str = "myth"):
        self.seed = seed
        self.status = MythStatus.UNKNOWN
        self.theories: list[PlayerTheory] = []
        self.expectations: dict[str, float] = {}
        self.rumor_sources: dict[str, list[str]] = {}
        self.known_facts: list[str] = []
        self.suspected_traits: list[str] = []
        self._archetypes: dict[str, BehavioralArchetype] = {}

    def register_npc(self, npc: str, archetype: BehavioralArchetype) -> None:
        self._archetypes[npc] = archetype

    def archetype_of(self, npc: str) -> BehavioralArchetype:
        return self._archetypes.get(npc, A.DIPLOMAT)

    # --- Events and rumors ---

    def record_player_event(
        self, event_type: PlayerEventType, context: PlayerEventContext
    ) -> list[PlayerTheory]:
        """Add the event as a fact and let each witness maybe form a theory.

        Returns:
            Theories created or reinforced by this event.
        """
        fact = _fact(event_type, context)
        if fact not in self.known_facts:
            self.known_facts.append(fact)
        touched: list[PlayerTheory] = []
        for witness in context.witnesses:
            theory = self._maybe_theorize(witness, event_type, context.turn)
            if theory is not None:
                touched.append(theory)
        self._update_status()
        return touched

    def _maybe_theorize(
        self, npc: str, event_type: PlayerEventType, turn: int
    ) -> PlayerTheory | None:
        archetype = self.archetype_of(npc)
        rng = create_rng(f"{self.seed}:theory:{npc}:{turn}")
        if rng.random("chance") > THEORY_CHANCE.get(archetype, 0.3):
            return None
        template = theory_template(archetype, event_type)
        if template is None:
            return None
        short_form, sentiment = template
        existing = self._theory(short_form)
        if existing is not None:
            existing.confidence = min(1.0, existing.confidence + 0.1)
            if npc not in existing.believers:
                existing.believers.append(npc)
            theory = existing
        else:
            theory = PlayerTheory(
                origin_npc=npc,
                short_form=short_form,
                sentiment=sentiment,
                confidence=0.5 + rng.random("confidence") * 0.3,
                event=event_type,
                believers=[npc],
                spread_turn=turn,
            )
            self.theories.append(theory)
        if theory.confidence >= _SUSPECT_CONFIDENCE and short_form not in self.suspected_traits:
            self.suspected_traits.append(short_form)
        return theory

    def spread_rumor(self, from_npc: str, to_npc: str, turn: int) -> SpreadResult | None:
        """Pass one theory from a believer to someone who hasn't judged it.

        Returns:
            SpreadResult, or None when the speaker has nothing new to tell.
        """
        sharable = [
            t
            for t in self.theories
            if from_npc in t.believers and to_npc not in t.believers and to_npc not in t.doubters
        ]
        if not sharable:
            return None
        rng = create_rng(f"{self.seed}:spread:{turn}")
        theory = sharable[rng.roll_index("pick", len(sharable))]
        believed = rng.random("believe") < belief_chance(self.archetype_of(to_npc), theory)
        if believed:
            theory.believers.append(to_npc)
        else:
            theory.doubters.append(to_npc)
        self.rumor_sources.setdefault(theory.short_form, []).append(from_npc)
        if believed:
            current = self.expectations.get(to_npc, MYTH_DEFAULT_EXPECTATION)
            self.expectations[to_npc] = float(
                np.clip(current + _EXPECTATION_GAIN[theory.sentiment], 0.0, 100.0)
            )
        self._update_status()
        logger.debug(
            "Rumor %r: %s -> %s (%s)",
            theory.short_form,
            from_npc,
            to_npc,
            "believed" if believed else "doubted",
        )
        return SpreadResult(theory, believed, from_npc, to_npc)

    def evolve(self, turn: int, rate: float = MYTH_EVOLUTION_RATE) -> None:
        """Let theory confidence drift and occasionally confirm suspicions."""
        rng = create_rng(f"{self.seed}:evolve:{turn}")
        for theory in self.theories:
            drift = (rng.random("drift") - 0.5) * rate
            theory.confidence = float(np.clip(theory.confidence + drift, 0.1, 1.0))
        for trait in self.suspected_traits:
            confirmed = f"Confirmed: {trait}"
            if rng.random(f"trait:{trait}") < rate * 0.5 and confirmed not in self.known_facts:
                self.known_facts.append(confirmed)
        self._update_status()

    # --- Queries ---

    def beliefs_of(self, npc: str) -> NPCPlayerBeliefs:
        believed = tuple(t for t in self.theories if npc in t.believers)
        return NPCPlayerBeliefs(
            npc=npc,
            theories=believed,
            doubts=tuple(t for t in self.theories if npc in t.doubters),
            expectation=self.expectations.get(npc, MYTH_DEFAULT_EXPECTATION),
            sentiment=overall_sentiment(believed),
            known_facts=tuple(self.known_facts),
            status=self.status,
        )

    def first_meeting(self, npc: str) -> FirstMeeting:
        """Suggestions for the NPC's first exchange with the player."""
        beliefs = self.beliefs_of(npc)
        archetype = self.archetype_of(npc)
        refs: list[str] = []
        if beliefs.expectation > 70:
            refs.append(f"myth.action.eager.{archetype.value}")
        elif beliefs.expectation < 30:
            refs.append(f"myth.action.dismissive.{archetype.value}")
        if beliefs.status in (MythStatus.LEGEND, MythStatus.PROPHECY):
            refs.append(f"myth.expectation.legend.{archetype.value}")
        elif beliefs.status is MythStatus.RUMORED:
            refs.append(f"myth.expectation.rumored.{archetype.value}")

        theory = beliefs.theories[0] if beliefs.theories else None
        if theory is not None and theory.sentiment is not _NEU:
            if theory.sentiment is _POS:
                refs.append("myth.theory.heard")
            elif archetype in _SKEPTICS:
                refs.append("myth.theory.doubtful")
            else:
                refs.append("myth.theory.worried")

        if beliefs.expectation > 70:
            tension = 0.6
        elif beliefs.expectation < 30:
            tension = 0.3
        else:
            tension = 0.4
        return FirstMeeting(
            npc=npc,
            line_refs=tuple(refs),
            theory=theory.short_form if theory is not None else None,
            suggested_mood=_suggested_mood(beliefs.sentiment, archetype),
            stat_modifiers=_stat_modifiers(beliefs, archetype),
            tension=tension,
        )

    def _theory(self, short_form: str) -> PlayerTheory | None:
        for theory in self.theories:
            if theory.short_form == short_form:
                return theory
        return None

    def _update_status(self) -> None:
        facts = len(self.known_facts)
        believers = sum(len(t.believers) for t in self.theories)
        previous = self.status
        self.status = MythStatus.UNKNOWN
        for status, min_facts, min_believers in _STATUS_THRESHOLDS:
            if facts >= min_facts and believers >= min_believers:
                self.status = status
                break
        else:
            if facts >= _RUMORED_FACTS or len(self.theories) >= _RUMORED_THEORIES:
                self.status = MythStatus.RUMORED
        if self.status is not previous:
            logger.info("Player myth status: %s -> %s", previous.value, self.status.value)

    # --- Serialization ---

    def to_dict(self) -> dict[str, Any]:
        return {
            "seed": self.seed,
            "status": self.status.value,
            "theories": [t.to_dict() for t in self.theories],
            "expectations": dict(self.expectations),
            "rumor_sources": {k: list(v) for k, v in self.rumor_sources.items()},
            "known_facts": list(self.known_facts),
            "suspected_traits": list(self.suspected_traits),
            "archetypes": {npc: a.value for npc, a in self._archetypes.items()},
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> PlayerMythology:
        myth = cls(data.get("seed", "myth"))
        myth.status = MythStatus(data.get("status", MythStatus.UNKNOWN.value))
        myth.theories = [PlayerTheory.from_dict(t) for t in data.get("theories", [])]
        myth.expectations = {k: float(v) for k, v in data.get("expectations", {}).items()}
        myth.rumor_sources = {k: list(v) for k, v in data.get("rumor_sources", {}).items()}
        myth.known_facts = list(data.get("known_facts", []))
        myth.suspected_traits = list(data.get("suspected_traits", []))
        myth._archetypes = {
            npc: BehavioralArchetype(a) for npc, a in data.get("archetypes", {}).items()
        }
        return myth


def _suggested_mood(sentiment: Sentiment, archetype: BehavioralArchetype) -> MoodType:
    if sentiment is _POS:
        if archetype is A.TRICKSTER:
            return MoodType.CURIOUS
        if archetype is A.MERCHANT:
            return MoodType.PLEASED
        return MoodType.NEUTRAL
    if sentiment is _NEG:
        return {
            A.PREDATOR: MoodType.ANNOYED,
            A.PREY: MoodType.SCARED,
            A.WARRIOR: MoodType.ANGRY,
        }.get(archetype, MoodType.NEUTRAL)
    return MoodType.CURIOUS


def _stat_modifiers(beliefs: NPCPlayerBeliefs, archetype: BehavioralArchetype) -> dict[str, float]:
    mods: dict[str, float] = {"familiarity": float(min(30, len(beliefs.theories) * 5))}
    if beliefs.sentiment is _POS:
        mods["trust"] = 10.0
        mods["respect"] = 5.0
    elif beliefs.sentiment is _NEG:
        mods["trust"] = -10.0
        mods["fear"] = 15.0
    if beliefs.expectation > 70:
        mods["respect"] = mods.get("respect", 0.0) + 10.0
    if archetype is A.PREDATOR:
        mods["fear"] = mods.get("fear", 0.0) - 10.0
    elif archetype is A.PREY:
        mods["fear"] = mods.get("fear", 0.0) + 10.0
    return mods
