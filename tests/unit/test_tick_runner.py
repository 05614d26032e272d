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

"""Tests for TickRunner."""

from __future__ import annotations

import asyncio

import pytest

from npc_dialogue.models.npc import NPCIdentity, NPCPersonality
from npc_dialogue.world.autonomous import AutonomousSimulation
from npc_dialogue.world.registry import World
from npc_dialogue.world.tick_runner import TickRunner


def _make_simulation(*slugs) -> AutonomousSimulation:
    world = World(seed="ticks")
    for slug in slugs:
        world.add_npc(NPCPersonality(NPCIdentity(slug, slug.title())))
    return AutonomousSimulation(world)


@pytest.mark.asyncio
async def test_start_and_stop():
    """The runner should tick in the background until stopped."""
    runner = TickRunner(_make_simulation(), interval_seconds=0.05, cycles_per_tick=1)

    assert not runner.running
    await runner.start()
    assert runner.running

    await asyncio.sleep(0.15)
    await runner.stop()

    assert not runner.running
    assert runner.ticks_completed >= 1


@pytest.mark.asyncio
async def test_npcs_keep_talking():
    """Background ticks should advance the world."""
    simulation = _make_simulation("a", "b")

    runner = TickRunner(simulation, interval_seconds=0.05, cycles_per_tick=2)
    await runner.start()
    await asyncio.sleep(0.15)
    await runner.stop()

    assert simulation.world.turn >= 2
    assert simulation.total_cycles >= 2


@pytest.mark.asyncio
async def test_start_twice_raises():
    """Starting a running runner should raise."""
    runner = TickRunner(_make_simulation(), interval_seconds=0.1)

    await runner.start()
    with pytest.raises(RuntimeError, match="already running"):
        await runner.start()
    await runner.stop()


@pytest.mark.asyncio
async def test_stop_when_not_running_is_safe():
    runner = TickRunner(_make_simulation(), interval_seconds=0.1)
    await runner.stop()  # Should not raise


@pytest.mark.asyncio
async def test_properties():
    """The runner should expose its configuration."""
    runner = TickRunner(_make_simulation(), interval_seconds=3.0, cycles_per_tick=7)

    assert runner.interval_seconds == 3.0
    assert runner.cycles_per_tick == 7
    assert runner.ticks_completed == 0
    assert not runner.running


@pytest.mark.asyncio
async def test_manual_tick_decays_relationships():
    """A manual tick should run cycles and then decay."""
    simulation = _make_simulation("a", "b")
    runner = TickRunner(simulation, interval_seconds=60.0, cycles_per_tick=3)

    batch = await runner.tick()

    assert batch.cycles_run == 3
    assert runner.last_batch is batch
    assert runner.ticks_completed == 1
    assert not runner.running
    # Familiarity gained in conversation is pulled back by one decay step
    gained = sum(
        c.change
        for t in batch.turns
        for c in t.stat_changes
        if c.stat == "familiarity" and (c.source_id, c.target_id) == ("a", "b")
    )
    assert simulation.world.relationships.stats("a", "b").familiarity <= gained
