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

import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from pydantic import TypeAdapter

from npc_dialogue.api.routes import (
    dialogue_router,
    set_simulation,
    set_tick_runner,
    set_world,
)
from npc_dialogue.api.schemas import TemplateSpec
from npc_dialogue.config import (
    APP_NAME,
    BACKGROUND_TICK_CYCLES,
    BACKGROUND_TICK_ENABLED,
    BACKGROUND_TICK_INTERVAL_SECONDS,
    CHATBASE_PATH,
    DEFAULT_SEED,
    TEMPLATES_PATH,
    WORLD_STATE_PATH,
)
from npc_dialogue.dialogue.templates import TemplateLibrary
from npc_dialogue.search.chatbase_lookup import ChatbaseLookupEngine
from npc_dialogue.world.autonomous import AutonomousSimulation
from npc_dialogue.world.persistence import load_world_file, save_world_file
from npc_dialogue.world.registry import World
from npc_dialogue.world.tick_runner import TickRunner

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO"),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)
allow_origins = (
    os.getenv("ALLOW_ORIGINS", "").split(",") if os.getenv("ALLOW_ORIGINS") else None
)


def load_template_library(path: str | None) -> TemplateLibrary:
    """Templates from a JSON list, or an empty library."""
    if not path:
        return TemplateLibrary()
    specs = TypeAdapter(list[TemplateSpec]).validate_json(Path(path).read_bytes())
    logger.info("Loaded %d templates from %s", len(specs), path)
    return TemplateLibrary(s.to_template() for s in specs)


def load_chatbase(path: str | None) -> ChatbaseLookupEngine | None:
    if not path:
        return None
    engine = ChatbaseLookupEngine(path)
    if not engine.load():
        logger.warning("Chatbase at %s unavailable; continuing without it.", path)
    return engine


def build_world() -> World:
    library = load_template_library(TEMPLATES_PATH)
    chatbase = load_chatbase(CHATBASE_PATH)
    seed = os.getenv("NPC_DIALOGUE_SEED", DEFAULT_SEED)
    if WORLD_STATE_PATH:
        return load_world_file(WORLD_STATE_PATH, library=library, chatbase=chatbase, seed=seed)
    return World(seed=seed, library=library, chatbase=chatbase)


# Initialize world, autonomous loop and tick runner
_world = build_world()
_simulation = AutonomousSimulation(_world)
_tick_runner = TickRunner(
    _simulation,
    interval_seconds=BACKGROUND_TICK_INTERVAL_SECONDS,
    cycles_per_tick=BACKGROUND_TICK_CYCLES,
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage world state and background tick runner lifecycle."""
    set_world(_world)
    set_simulation(_simulation)
    set_tick_runner(_tick_runner)

    if BACKGROUND_TICK_ENABLED:
        await _tick_runner.start()
        logger.info("Background tick runner started on startup.")

    yield

    if _tick_runner.running:
        await _tick_runner.stop()
        logger.info("Background tick runner stopped on shutdown.")
    if WORLD_STATE_PATH:
        save_world_file(_simulation.world, WORLD_STATE_PATH)


app = FastAPI(
    title=APP_NAME,
    description="Deterministic NPC dialogue engine",
    lifespan=lifespan,
)
if allow_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allow_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

# Mount dialogue API
app.include_router(dialogue_router, prefix="/api/chat")


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


# Main execution
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
