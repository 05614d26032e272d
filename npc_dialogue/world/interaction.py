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

"""Turn execution and the game event bridge.

run_turn is the one entry point for a spoken turn, whether the player
typed something or two NPCs are talking. apply_game_event turns engine
events (combat, purchases, deaths, gifts, rescues) into memories, stat
changes and behavior transitions.
"""

from __future__ import annotations

import enum
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field

from npc_dialogue.dialogue.intent_detector import Intent, detect_intent, intent_to_pool
from npc_dialogue.config import MOOD_CONTAGION_FADE, MOOD_CONTAGION_THRESHOLD, SPOKEN_MOOD_INTENSITY
from npc_dialogue.core.rng import create_rng
from npc_dialogue.dialogue.response_selector import ResponseSource, SelectionRequest, SelectionResult
from npc_dialogue.dialogue.templates import template_tone
from npc_dialogue.models.behavior import BehaviorTrigger, NPCBehaviorState
from npc_dialogue.models.memory import MemoryEvent, MemoryKind
from npc_dialogue.models.npc import NPCPersonality
from npc_dialogue.models.relationship import (
    MoodType,
    ObservedStatChange,
    RelationshipEventKind,
)
from npc_dialogue.models.situation import SituationContext
from npc_dialogue.models.templates import TemplatePool
from npc_dialogue.search.snapshot import TONE_MOODS
from npc_dialogue.simulation.personality import catch_mood, volatility_scale
from npc_dialogue.simulation.relationship_engine import EVENT_MODIFIERS
from npc_dialogue.world.knowledge import share_willingness
from npc_dialogue.world.mythology import (
    FirstMeeting,
    PlayerEventContext,
    PlayerEventType,
)
from npc_dialogue.world.registry import PLAYER_ID, World

logger = logging.getLogger(__name__)

# Pools whose lines can carry a fact from one NPC to another
KNOWLEDGE_POOLS = frozenset({TemplatePool.NPC_GOSSIP, TemplatePool.NPC_LORE})


@dataclass(frozen=True)
class InteractionTurn:
    """What one spoken turn produced. This is the shape handed to the game.

    Attributes:
        turn_number: Global turn index the line was spoken at.
        speaker: NPC slug.
        listener: NPC slug or "player".
        intent: Detected player intent, when the turn answered player text.
        pool: Template pool the line came from.
        response_id: Content-layer id of the line.
        template_id: Template that was selected.
        text: Rendered text when the template carries a pattern.
        source: Which selection tier produced the line.
        confidence: Selection confidence, 0-1.
        mood: Speaker mood at selection time.
        stat_changes: Relationship changes caused by the line.
        memory_events: Memories recorded for both parties.
        first_meeting: Mythology suggestions when this was the speaker's
            first exchange with the player.
        caught_mood: Mood the listening NPC now carries from this line.
        shared_fact: Id of the fact the line passed to the listener.
    """

    turn_number: int
    speaker: str
    listener: str
    intent: Intent | None
    pool: TemplatePool
    response_id: str
    template_id: str
    text: str
    source: ResponseSource
    confidence: float
    mood: MoodType
    stat_changes: tuple[ObservedStatChange, ...] = ()
    memory_events: tuple[MemoryEvent, ...] = ()
    first_meeting: FirstMeeting | None = None
    caught_mood: MoodType | None = None
    shared_fact: str | None = None


class InteractionEngine:
    """Runs spoken turns against a World.

    Args:
        world: The world to read from and update.
    """

    def __init__(self, world: World):
        self.world = world

    def run_turn(
        self,
        speaker: str,
        listener: str = PLAYER_ID,
        player_text: str | None = None,
        pool: TemplatePool | None = None,
        mood_override: MoodType | None = None,
        flags: Mapping[str, object] | None = None,
        situation: SituationContext | None = None,
    ) -> InteractionTurn:
        """Have `speaker` say one line to `listener` and apply its effects.

        Args:
            speaker: NPC slug.
            listener: NPC slug, or "player".
            player_text: What the player said, if anything. Its intent picks
                the pool unless `pool` is given.
            pool: Explicit pool; skips intent detection.
            mood_override: Scripted mood for the speaker.
            flags: Values for context conditions on templates.
            situation: Game circumstances for this turn; the world's
                current situation when None.

        Returns:
            The InteractionTurn.

        Raises:
            KeyError: If speaker or listener is not registered.
            ValueError: If speaker and listener are the same.
        """
        world = self.world
        npc = world.repository.require(speaker)
        listener_npc = None
        if listener != PLAYER_ID:
            listener_npc = world.repository.require(listener)
        if speaker == listener:
            raise ValueError("An NPC cannot talk to itself.")

        thread = world.thread_for(speaker, listener)
        flags = dict(flags or {})
        intent = None
        if pool is None and player_text is not None:
            match = detect_intent(player_text, world.repository.names())
            intent = match.intent
            pool = intent_to_pool(match.intent, npc_target=listener != PLAYER_ID)
            if match.target_npc is not None:
                flags.setdefault("mentioned_npc", match.target_npc)
        if pool is None:
            pool = _ambient_pool(listener, thread.turn_count)

        first_meeting = None
        if listener == PLAYER_ID and not world.relationships.has(speaker, PLAYER_ID):
            first_meeting = self._first_meeting(speaker)
            if mood_override is None and first_meeting.suggested_mood is not MoodType.NEUTRAL:
                mood_override = first_meeting.suggested_mood
        caught = self._fade_caught_mood(speaker)
        if mood_override is None:
            mood_override = caught

        turn_number = world.turn
        request = SelectionRequest(
            speaker=npc,
            listener=listener,
            pool=pool,
            turn=turn_number,
            seed=world.seed,
            relationships=world.relationships,
            memories=world.memories,
            usage=world.usage,
            thread=thread,
            behaviors=world.behaviors,
            objectives=world.objectives_for(speaker),
            listener_personality=listener_npc,
            mood_override=mood_override,
            recent_event=world.recent_events.pop(speaker, None),
            player_present=listener == PLAYER_ID,
            flags=flags,
            situation=situation if situation is not None else world.situation,
        )
        result = world.selector.select(request)
        world.apply_selection(speaker, listener, result)
        caught_mood = shared_fact = None
        if listener_npc is not None:
            caught_mood = self._spread_mood(npc, listener_npc, result)
            if result.pool in KNOWLEDGE_POOLS:
                shared_fact = self._share_fact(speaker, listener, turn_number)
        return InteractionTurn(
            turn_number=turn_number,
            speaker=speaker,
            listener=listener,
            intent=intent,
            pool=result.pool,
            response_id=result.response_id,
            template_id=result.template_id,
            text=result.text,
            source=result.source,
            confidence=result.confidence,
            mood=result.mood,
            stat_changes=result.stat_changes,
            memory_events=result.memory_events,
            first_meeting=first_meeting,
            caught_mood=caught_mood,
            shared_fact=shared_fact,
        )

    def _fade_caught_mood(self, speaker: str) -> MoodType | None:
        """The speaker's caught mood if still strong enough; fades it either way."""
        caught = self.world.caught_moods.get(speaker)
        if caught is None:
            return None
        mood, intensity = caught
        remaining = intensity - MOOD_CONTAGION_FADE
        if remaining > 0:
            self.world.caught_moods[speaker] = (mood, remaining)
        else:
            del self.world.caught_moods[speaker]
        return mood if intensity >= MOOD_CONTAGION_THRESHOLD else None

    def _spread_mood(
        self, speaker: NPCPersonality, listener: NPCPersonality, result: SelectionResult
    ) -> MoodType | None:
        world = self.world
        intensity = SPOKEN_MOOD_INTENSITY
        toned = TONE_MOODS.get(template_tone(result.template))
        if toned is not None and toned[0] is result.mood:
            intensity += toned[1] * volatility_scale(speaker)
        familiarity = world.relationships.stats(listener.slug, speaker.slug).familiarity
        caught = catch_mood(
            world.caught_moods.get(listener.slug), result.mood, intensity, listener, familiarity
        )
        if caught is None or caught[1] <= 0:
            world.caught_moods.pop(listener.slug, None)
            return None
        world.caught_moods[listener.slug] = caught
        return caught[0]

    def _share_fact(self, speaker: str, listener: str, turn_number: int) -> str | None:
        world = self.world
        piece = world.knowledge.pass_on(
            speaker,
            listener,
            trust=world.relationships.stats(listener, speaker).trust,
            rng=create_rng(f"{world.seed}:knowledge:{turn_number}:{speaker}:{listener}"),
            willingness=share_willingness(world.objectives_for(speaker)),
        )
        return piece.fact_id if piece is not None else None

    def _first_meeting(self, speaker: str) -> FirstMeeting:
        """Seed the speaker's view of the player from what it has heard."""
        world = self.world
        meeting = world.mythology.first_meeting(speaker)
        deltas = tuple((stat, v) for stat, v in meeting.stat_modifiers.items() if v)
        if deltas:
            world.relationships, _ = world.relationship_engine.apply_deltas(
                world.relationships,
                speaker,
                PLAYER_ID,
                deltas,
                world.turn,
                RelationshipEventKind.CONVERSATION,
                "first meeting: reputation",
            )
        return meeting


def _ambient_pool(listener: str, turn_count: int) -> TemplatePool:
    if listener == PLAYER_ID:
        return TemplatePool.GREETING if turn_count == 0 else TemplatePool.IDLE
    return TemplatePool.NPC_GREETING if turn_count == 0 else TemplatePool.NPC_REACTION


# --- Game event bridge ---


class GameEventKind(enum.Enum):
    COMBAT_START = "combat_start"
    PURCHASE = "purchase"
    DEATH = "death"
    GIFT = "gift"
    RESCUE = "rescue"
    INSULT = "insult"
    BETRAYAL = "betrayal"


@dataclass(frozen=True)
class GameEvent:
    """An event reported by the game engine.

    Attributes:
        kind: What happened.
        actor: Who did it (NPC slug or "player"). For deaths, who died.
        target: Who it was done to. For deaths, the killer, if known.
        witnesses: Others who saw it.
        magnitude: Memory magnitude override, 1-10.
        details: Short free text stored with the memories.
    """

    kind: GameEventKind
    actor: str
    target: str | None = None
    witnesses: tuple[str, ...] = ()
    magnitude: int | None = None
    details: str = ""


@dataclass
class GameEventOutcome:
    memory_events: list[MemoryEvent] = field(default_factory=list)
    stat_changes: list[ObservedStatChange] = field(default_factory=list)
    transitions: dict[str, NPCBehaviorState] = field(default_factory=dict)
    player_theories: int = 0


@dataclass(frozen=True)
class _EventRule:
    memory: MemoryKind
    relationship: RelationshipEventKind
    # How the target comes to see the actor
    target_deltas: tuple[tuple[str, float], ...]
    # How the actor comes to see the target
    actor_deltas: tuple[tuple[str, float], ...] = ()
    target_trigger: BehaviorTrigger | None = None
    actor_trigger: BehaviorTrigger | None = None
    # How witnesses come to see the actor
    witness_deltas: tuple[tuple[str, float], ...] = ()
    witness_trigger: BehaviorTrigger | None = None
    mutual: bool = True
    player_event: PlayerEventType | None = None


def _modifiers(tag: str) -> tuple[tuple[str, float], ...]:
    return tuple(EVENT_MODIFIERS[tag].items())


K = GameEventKind
B = BehaviorTrigger

EVENT_RULES: dict[GameEventKind, _EventRule] = {
    K.COMBAT_START: _EventRule(
        memory=MemoryKind.CONFLICT,
        relationship=RelationshipEventKind.SHARED_DANGER,
        target_deltas=_modifiers("combat_start") + (("respect", -5.0),),
        actor_deltas=_modifiers("combat_start"),
        target_trigger=B.COMBAT_STARTED,
        actor_trigger=B.COMBAT_STARTED,
        witness_deltas=(("fear", 10.0),),
        witness_trigger=B.COMBAT_STARTED,
    ),
    K.PURCHASE: _EventRule(
        memory=MemoryKind.TRADE,
        relationship=RelationshipEventKind.TRADED,
        target_deltas=_modifiers("purchase"),
        actor_deltas=(("trust", 2.0),),
        target_trigger=B.TRADE_OFFERED,
        actor_trigger=B.TRADE_OFFERED,
        player_event=PlayerEventType.BARGAIN_MADE,
    ),
    K.GIFT: _EventRule(
        memory=MemoryKind.GIFT,
        relationship=RelationshipEventKind.GIFTED,
        target_deltas=(("trust", 8.0), ("respect", 3.0)),
        target_trigger=B.PRAISED,
        player_event=PlayerEventType.NPC_HELPED,
    ),
    K.RESCUE: _EventRule(
        memory=MemoryKind.RESCUE,
        relationship=RelationshipEventKind.HELPED,
        target_deltas=(("trust", 15.0), ("respect", 10.0), ("fear", -5.0)),
        target_trigger=B.RESCUED,
        witness_deltas=(("respect", 5.0),),
        player_event=PlayerEventType.NPC_HELPED,
    ),
    K.INSULT: _EventRule(
        memory=MemoryKind.INSULT,
        relationship=RelationshipEventKind.INSULTED,
        target_deltas=_modifiers("insult"),
        target_trigger=B.INSULTED,
        mutual=False,
    ),
    K.BETRAYAL: _EventRule(
        memory=MemoryKind.BETRAYAL,
        relationship=RelationshipEventKind.BETRAYED,
        target_deltas=(("trust", -30.0), ("respect", -10.0), ("tension", 20.0)),
        target_trigger=B.BETRAYED,
        witness_deltas=(("trust", -10.0),),
        mutual=False,
        player_event=PlayerEventType.NPC_BETRAYED,
    ),
}


def apply_game_event(world: World, event: GameEvent) -> GameEventOutcome:
    """Record a game event in memories, relationships and behaviors.

    Unknown participants are skipped; the player never gets memories or
    behavior of their own, but NPCs do form views of the player.

    Returns:
        GameEventOutcome listing what changed.
    """
    outcome = GameEventOutcome()
    if event.kind is K.DEATH:
        _apply_death(world, event, outcome)
    else:
        _apply_rule(world, event, EVENT_RULES[event.kind], outcome)
    for npc in {event.actor, event.target, *event.witnesses}:
        if npc is not None and npc in world.repository:
            world.recent_events[npc] = event.kind.value
    logger.info(
        "Game event %s by %s: %d memories, %d stat changes",
        event.kind.value,
        event.actor,
        len(outcome.memory_events),
        len(outcome.stat_changes),
    )
    world.turn += 1
    return outcome


def _known(world: World, npc: str | None) -> bool:
    return npc is not None and npc in world.repository


def _trigger(world: World, npc: str, trigger: BehaviorTrigger, outcome: GameEventOutcome) -> None:
    current = world.behaviors.get(npc) or NPCBehaviorState()
    nxt = current.apply(trigger)
    world.behaviors[npc] = nxt
    if nxt.current is not current.current:
        outcome.transitions[npc] = nxt


def _remember(
    world: World,
    owner: str,
    kind: MemoryKind,
    counterpart: str | None,
    event: GameEvent,
    outcome: GameEventOutcome,
) -> None:
    world.memories, memory = world.selector.memory_engine.record(
        world.memories, owner, kind, world.turn, counterpart, event.magnitude, event.details
    )
    outcome.memory_events.append(memory)


def _shift(
    world: World,
    owner: str,
    target: str,
    deltas: tuple[tuple[str, float], ...],
    kind: RelationshipEventKind,
    event: GameEvent,
    outcome: GameEventOutcome,
) -> None:
    if not deltas:
        return
    world.relationships, changes = world.relationship_engine.apply_deltas(
        world.relationships,
        owner,
        target,
        deltas,
        world.turn,
        kind,
        f"{event.kind.value}: {event.details}" if event.details else event.kind.value,
    )
    outcome.stat_changes.extend(changes)


def _apply_rule(
    world: World, event: GameEvent, rule: _EventRule, outcome: GameEventOutcome
) -> None:
    actor, target = event.actor, event.target
    if _known(world, target):
        _remember(world, target, rule.memory, actor, event, outcome)
        _shift(world, target, actor, rule.target_deltas, rule.relationship, event, outcome)
        if rule.target_trigger is not None:
            _trigger(world, target, rule.target_trigger, outcome)
    if _known(world, actor) and target is not None:
        if rule.mutual:
            _remember(world, actor, rule.memory, target, event, outcome)
        _shift(world, actor, target, rule.actor_deltas, rule.relationship, event, outcome)
        if rule.actor_trigger is not None:
            _trigger(world, actor, rule.actor_trigger, outcome)
    for witness in event.witnesses:
        if not _known(world, witness) or witness in (actor, target):
            continue
        _shift(world, witness, actor, rule.witness_deltas, rule.relationship, event, outcome)
        if rule.witness_trigger is not None:
            _trigger(world, witness, rule.witness_trigger, outcome)

    if actor == PLAYER_ID and rule.player_event is not None:
        witnesses = tuple(n for n in (target, *event.witnesses) if _known(world, n))
        theories = world.mythology.record_player_event(
            rule.player_event,
            PlayerEventContext(turn=world.turn, npc=target or "", witnesses=witnesses),
        )
        outcome.player_theories = len(theories)


def _apply_death(world: World, event: GameEvent, outcome: GameEventOutcome) -> None:
    """`actor` died; `target`, when set, is who killed them."""
    deceased, killer = event.actor, event.target
    if _known(world, deceased):
        _remember(world, deceased, MemoryKind.DEATH, killer, event, outcome)
    for witness in event.witnesses:
        if not _known(world, witness) or witness == deceased:
            continue
        _remember(world, witness, MemoryKind.WITNESSED_DEATH, deceased, event, outcome)
        if killer is not None and witness != killer:
            _shift(
                world,
                witness,
                killer,
                _modifiers("death"),
                RelationshipEventKind.WITNESSED_DEATH,
                event,
                outcome,
            )
        _trigger(world, witness, B.DEATH_WITNESSED, outcome)
    if deceased == PLAYER_ID:
        witnesses = tuple(n for n in event.witnesses if _known(world, n))
        theories = world.mythology.record_player_event(
            PlayerEventType.DEATH,
            PlayerEventContext(turn=world.turn, location=event.details, witnesses=witnesses),
        )
        outcome.player_theories = len(theories)
