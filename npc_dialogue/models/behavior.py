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

"""Behavioral state machine.

Every valid move between states is an entry in TRANSITIONS, keyed by
(state, trigger). A trigger with no entry for the current state leaves
the state unchanged.

The table is built in two layers:
  1. Global rules: a trigger that sends every state to the same place
     (e.g. witnessing a death always leads to mourning).
  2. Specific rules: (state, trigger) pairs that override the global
     layer or add moves the global layer doesn't cover.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass


class BehavioralState(enum.Enum):
    IDLE = "idle"
    ALERT = "alert"
    ENGAGED = "engaged"
    TRADING = "trading"
    THREATENED = "threatened"
    AGGRESSIVE = "aggressive"
    FLEEING = "fleeing"
    GUARDED = "guarded"
    CAUTIOUS = "cautious"
    FRIENDLY = "friendly"
    SCHEMING = "scheming"
    DISTRESSED = "distressed"
    CELEBRATING = "celebrating"
    MOURNING = "mourning"
    SUSPICIOUS = "suspicious"


class BehaviorTrigger(enum.Enum):
    CONVERSATION_STARTED = "conversation_started"
    CONVERSATION_ENDED = "conversation_ended"
    THREATENED = "threatened"
    PROVOKED = "provoked"
    INSULTED = "insulted"
    PRAISED = "praised"
    TRADE_OFFERED = "trade_offered"
    SECRET_SHARED = "secret_shared"
    COMBAT_STARTED = "combat_started"
    RESCUED = "rescued"
    BETRAYED = "betrayed"
    DEATH_WITNESSED = "death_witnessed"
    CALM = "calm"


S = BehavioralState
B = BehaviorTrigger

_GLOBAL_RULES: dict[BehaviorTrigger, BehavioralState] = {
    B.DEATH_WITNESSED: S.MOURNING,
    B.BETRAYED: S.SUSPICIOUS,
    B.RESCUED: S.FRIENDLY,
    B.COMBAT_STARTED: S.ALERT,
    B.THREATENED: S.THREATENED,
    B.PROVOKED: S.AGGRESSIVE,
    B.CALM: S.IDLE,
}

_SPECIFIC_RULES: dict[tuple[BehavioralState, BehaviorTrigger], BehavioralState] = {
    # Opening a conversation
    (S.IDLE, B.CONVERSATION_STARTED): S.ENGAGED,
    (S.FRIENDLY, B.CONVERSATION_STARTED): S.ENGAGED,
    (S.CELEBRATING, B.CONVERSATION_STARTED): S.ENGAGED,
    (S.ALERT, B.CONVERSATION_STARTED): S.GUARDED,
    (S.SUSPICIOUS, B.CONVERSATION_STARTED): S.GUARDED,
    (S.CAUTIOUS, B.CONVERSATION_STARTED): S.GUARDED,
    # Closing a conversation
    (S.ENGAGED, B.CONVERSATION_ENDED): S.IDLE,
    (S.TRADING, B.CONVERSATION_ENDED): S.IDLE,
    (S.FRIENDLY, B.CONVERSATION_ENDED): S.IDLE,
    (S.CAUTIOUS, B.CONVERSATION_ENDED): S.IDLE,
    (S.SCHEMING, B.CONVERSATION_ENDED): S.IDLE,
    (S.GUARDED, B.CONVERSATION_ENDED): S.ALERT,
    (S.AGGRESSIVE, B.CONVERSATION_ENDED): S.ALERT,
    (S.THREATENED, B.CONVERSATION_ENDED): S.ALERT,
    # Commerce
    (S.IDLE, B.TRADE_OFFERED): S.TRADING,
    (S.ENGAGED, B.TRADE_OFFERED): S.TRADING,
    (S.FRIENDLY, B.TRADE_OFFERED): S.TRADING,
    (S.GUARDED, B.TRADE_OFFERED): S.CAUTIOUS,
    (S.SUSPICIOUS, B.TRADE_OFFERED): S.CAUTIOUS,
    # Insults
    (S.ENGAGED, B.INSULTED): S.GUARDED,
    (S.TRADING, B.INSULTED): S.GUARDED,
    (S.FRIENDLY, B.INSULTED): S.SUSPICIOUS,
    (S.GUARDED, B.INSULTED): S.AGGRESSIVE,
    (S.CAUTIOUS, B.INSULTED): S.AGGRESSIVE,
    (S.THREATENED, B.INSULTED): S.AGGRESSIVE,
    (S.MOURNING, B.INSULTED): S.DISTRESSED,
    # Praise
    (S.ENGAGED, B.PRAISED): S.FRIENDLY,
    (S.IDLE, B.PRAISED): S.FRIENDLY,
    (S.GUARDED, B.PRAISED): S.ENGAGED,
    (S.CAUTIOUS, B.PRAISED): S.ENGAGED,
    (S.SUSPICIOUS, B.PRAISED): S.CAUTIOUS,
    (S.DISTRESSED, B.PRAISED): S.CAUTIOUS,
    # Secrets
    (S.ENGAGED, B.SECRET_SHARED): S.SCHEMING,
    (S.FRIENDLY, B.SECRET_SHARED): S.SCHEMING,
    (S.IDLE, B.SECRET_SHARED): S.ENGAGED,
    # Escalation
    (S.THREATENED, B.THREATENED): S.FLEEING,
    (S.DISTRESSED, B.THREATENED): S.FLEEING,
    (S.AGGRESSIVE, B.THREATENED): S.AGGRESSIVE,
    (S.THREATENED, B.COMBAT_STARTED): S.FLEEING,
    (S.DISTRESSED, B.COMBAT_STARTED): S.FLEEING,
    (S.AGGRESSIVE, B.COMBAT_STARTED): S.AGGRESSIVE,
    (S.GUARDED, B.COMBAT_STARTED): S.AGGRESSIVE,
    (S.FLEEING, B.PROVOKED): S.FLEEING,
    (S.FLEEING, B.THREATENED): S.FLEEING,
    # Relief
    (S.FRIENDLY, B.RESCUED): S.CELEBRATING,
    (S.DISTRESSED, B.RESCUED): S.CELEBRATING,
    (S.FLEEING, B.RESCUED): S.DISTRESSED,
    (S.FLEEING, B.CALM): S.ALERT,
    (S.AGGRESSIVE, B.CALM): S.ALERT,
    (S.MOURNING, B.CALM): S.DISTRESSED,
    (S.DISTRESSED, B.CALM): S.IDLE,
}


def _build_table() -> dict[tuple[BehavioralState, BehaviorTrigger], BehavioralState]:
    table: dict[tuple[BehavioralState, BehaviorTrigger], BehavioralState] = {}
    for trigger, target in _GLOBAL_RULES.items():
        for state in BehavioralState:
            if state is not target:
                table[(state, trigger)] = target
    table.update(_SPECIFIC_RULES)
    # Self-loops carry no information.
    return {key: dst for key, dst in table.items() if key[0] is not dst}


TRANSITIONS = _build_table()


def transition(state: BehavioralState, trigger: BehaviorTrigger) -> BehavioralState:
    """Next state for a trigger; unchanged when the table has no entry."""
    return TRANSITIONS.get((state, trigger), state)


def valid_transitions(
    state: BehavioralState,
) -> dict[BehaviorTrigger, BehavioralState]:
    """All triggers that move `state`, with their destinations."""
    return {
        trigger: dst for (src, trigger), dst in TRANSITIONS.items() if src is state
    }


@dataclass(frozen=True)
class NPCBehaviorState:
    """Current behavioral state of one NPC.

    Attributes:
        current: Active state.
        previous: State before the last transition.
        turns_in_state: Turns spent in `current` since entering it.
    """

    current: BehavioralState = BehavioralState.IDLE
    previous: BehavioralState | None = None
    turns_in_state: int = 0

    def apply(self, trigger: BehaviorTrigger) -> NPCBehaviorState:
        nxt = transition(self.current, trigger)
        if nxt is self.current:
            return NPCBehaviorState(self.current, self.previous, self.turns_in_state + 1)
        return NPCBehaviorState(nxt, self.current, 0)
