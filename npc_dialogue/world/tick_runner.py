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

"""Background runner for the autonomous simulation.

Optional push-based loop that keeps NPCs talking between player
requests. Coexists with pull-based batches (POST /simulation/batch).
"""

from __future__ import annotations

import asyncio
import logging

from npc_dialogue.config import BACKGROUND_TICK_CYCLES, BACKGROUND_TICK_INTERVAL_SECONDS
from npc_dialogue.world.autonomous import AutonomousSimulation, BatchResult

logger = logging.getLogger(__name__)


class TickRunner:
    """Drives an AutonomousSimulation from an asyncio task.

    Each tick runs a short batch of NPC-to-NPC cycles and then pulls
    every relationship one step toward neutral. Both steps take the
    world lock, so request handlers can interleave between them.

    Args:
        simulation: Autonomous loop to drive.
        interval_seconds: Real seconds between ticks.
        cycles_per_tick: Autonomous cycles per tick.
    """

    def __init__(
        self,
        simulation: AutonomousSimulation,
        interval_seconds: float = BACKGROUND_TICK_INTERVAL_SECONDS,
        cycles_per_tick: int = BACKGROUND_TICK_CYCLES,
    ):
        self._simulation = simulation
        self._interval_seconds = interval_seconds
        self._cycles_per_tick = cycles_per_tick
        self._task: asyncio.Task | None = None
        self._ticks_completed = 0
        self._last_batch: BatchResult | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def ticks_completed(self) -> int:
        """Ticks completed since the last start."""
        return self._ticks_completed

    @property
    def interval_seconds(self) -> float:
        return self._interval_seconds

    @property
    def cycles_per_tick(self) -> int:
        return self._cycles_per_tick

    @property
    def last_batch(self) -> BatchResult | None:
        return self._last_batch

    async def tick(self) -> BatchResult:
        """Run one batch plus a decay pass, outside of the timer."""
        batch = await self._simulation.run_batch_async(self._cycles_per_tick)
        world = self._simulation.world
        async with world.lock:
            decayed = world.decay_relationships()
        self._last_batch = batch
        self._ticks_completed += 1
        logger.debug(
            "Tick %d: %d turns, %d events, %d stats decayed",
            self._ticks_completed,
            len(batch.turns),
            len(batch.events),
            decayed,
        )
        return batch

    async def start(self) -> None:
        """Start the loop.

        Raises:
            RuntimeError: If already running.
        """
        if self.running:
            raise RuntimeError("Tick runner is already running.")
        self._ticks_completed = 0
        self._task = asyncio.create_task(self._run())
        logger.info(
            "Tick runner started: every %.1fs, %d cycles per tick",
            self._interval_seconds,
            self._cycles_per_tick,
        )

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("Tick runner stopped after %d ticks.", self._ticks_completed)

    async def _run(self) -> None:
        while True:
            try:
                await self.tick()
            except Exception:
                logger.exception("Autonomous tick failed")
            await asyncio.sleep(self._interval_seconds)
