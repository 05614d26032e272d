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

"""Tests for the behavioral state machine."""

from npc_dialogue.models.behavior import (
    TRANSITIONS,
    BehavioralState,
    BehaviorTrigger,
    NPCBehaviorState,
    transition,
    valid_transitions,
)

S = BehavioralState
B = BehaviorTrigger


def test_conversation_opens_and_closes():
    """Starting and ending a conversation should toggle engagement."""
    assert transition(S.IDLE, B.CONVERSATION_STARTED) is S.ENGAGED
    assert transition(S.ENGAGED, B.CONVERSATION_ENDED) is S.IDLE


def test_global_rule_applies_from_any_state():
    """Witnessing a death should cause mourning from any state."""
    for state in BehavioralState:
        assert transition(state, B.DEATH_WITNESSED) is S.MOURNING


def test_specific_rule_overrides_global():
    """A state-specific rule should win over the global one."""
    assert transition(S.THREATENED, B.THREATENED) is S.FLEEING
    assert transition(S.FRIENDLY, B.RESCUED) is S.CELEBRATING
    assert transition(S.IDLE, B.RESCUED) is S.FRIENDLY


def test_unknown_pair_leaves_state():
    """Triggers with no rule should leave the state alone."""
    assert transition(S.MOURNING, B.TRADE_OFFERED) is S.MOURNING


def test_table_has_no_self_loops():
    """No transition should lead back to its own state."""
    assert all(src is not dst for (src, _), dst in TRANSITIONS.items())


def test_valid_transitions():
    """Listed transitions should match the table."""
    moves = valid_transitions(S.IDLE)
    assert moves[B.TRADE_OFFERED] is S.TRADING
    assert B.CONVERSATION_ENDED not in moves


def test_npc_state_tracks_previous_and_turns():
    """Applying triggers should track the previous state and time in state."""
    state = NPCBehaviorState()
    state = state.apply(B.CONVERSATION_STARTED)
    assert state.current is S.ENGAGED
    assert state.previous is S.IDLE
    assert state.turns_in_state == 0

    state = state.apply(B.CONVERSATION_STARTED)
    assert state.current is S.ENGAGED
    assert state.turns_in_state == 1

    state = state.apply(B.INSULTED)
    assert state.current is S.GUARDED
    assert state.previous is S.ENGAGED
    assert state.turns_in_state == 0
