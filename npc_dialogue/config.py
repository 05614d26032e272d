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

import os

# App Configuration
APP_NAME = "npc_dialogue"
DEFAULT_SEED = "npc-dialogue"

# Deterministic RNG
MAX_SEED_LENGTH = 1000  # Longer seeds are truncated before hashing

# World Configuration
MAX_NPCS = 1000

# Relationship Model
MAX_RELATIONSHIP_HISTORY = 20  # Events kept per relationship
RELATIONSHIP_DECAY_RATE = 1.0  # Stat points moved toward neutral per decay pass
CONVERSATION_FAMILIARITY_DELTA = 2.0  # Familiarity gained per ordinary conversation
CONVERSATION_TRUST_DELTA = 1.0  # Trust gained per ordinary conversation
PRICE_MODIFIER_MIN = 0.5
PRICE_MODIFIER_MAX = 1.5

# Memory Model
MEMORY_CAPACITY = 30  # Max events retained per NPC
MEMORY_MAGNITUDE_WEIGHT = 10.0  # Eviction priority per point of magnitude
MEMORY_AGE_WEIGHT = 1.0  # Eviction priority lost per turn of age
OPINION_RECENCY_HALF_LIFE = 50.0  # Turns for an event's opinion weight to halve
TRAUMA_BOND_MIN_MAGNITUDE = 5  # Events below this magnitude don't count toward bonds
TRAUMA_BOND_NEGATIVE_WEIGHT = 30  # Accumulated negative magnitude needed before a bond can form
MAX_MEMORY_DETAILS = 200  # Characters kept from a memory's free-text details

# Intent Detector
MAX_INTENT_INPUT = 500  # Characters considered; the rest is ignored
MAX_INTENT_TOKENS = 64  # Tokens considered after tokenization

# Response Selector
RECENT_USAGE_WINDOW = 3  # Templates remembered per NPC for diversity weighting
DIVERSITY_PENALTY = 0.25  # Weight multiplier per recent use of a template
HIGH_STAKES_TENSION = 0.5  # Thread tension at which search is preferred over random

# Personality Traits
TRAIT_POOL_SPREAD = 1.0  # Pool multiplier change per unit of trait away from its default
LOYALTY_TRUST_SHIELD = 0.6  # Share of a trust loss a fully loyal NPC shrugs off
MOOD_CONTAGION_RATE = 0.3  # Share of the speaker's mood intensity passed to the listener
MOOD_CONTAGION_THRESHOLD = 25.0  # Caught intensity at which the mood overrides stat-derived mood
MOOD_CONTAGION_FADE = 10.0  # Caught intensity lost each time the NPC speaks
SPOKEN_MOOD_INTENSITY = 50.0  # Intensity of the mood a line is spoken in, before tone

# Situational Context
MAX_HEAT = 10
HEAT_TENSION_PER_POINT = 3.0  # Added to the tension stat before mood thresholds
HEAT_CONFLICT_PER_POINT = 0.1  # Hostile pool weight gained per heat point
HEAT_PRICE_PER_POINT = 0.02  # Price multiplier added per heat point
WEALTHY_PLAYER_GOLD = 500  # At or above this, commerce pools are favored

# Knowledge
MAX_KNOWN_FACTS = 50  # Facts retained per NPC

# Chatbase
CHATBASE_ENABLED = True
CHATBASE_MIN_CONFIDENCE = 0.7  # Hits below this confidence fall through to search
CHATBASE_FUZZY_CONFIDENCE_SCALE = 0.8  # Confidence multiplier for mood-compatible hits
CHATBASE_LOOSE_CONFIDENCE_SCALE = 0.5  # Confidence multiplier for any-mood hits
CHATBASE_HIGH_INTEREST = 80  # Entries at or above this survive pruning regardless of hits
CHATBASE_PATH = os.environ.get("NPC_DIALOGUE_CHATBASE_PATH")  # Directory holding manifest.json
CHATBASE_MAX_ALTERNATIVES = 3
CHATBASE_MIN_HITS_FOR_RETENTION = 3
CHATBASE_MAX_ENTRIES = 10000

# Conversation Search
SEARCH_MAX_ITERATIONS = 200  # Playouts per decision
SEARCH_MAX_EXPANSIONS = 120  # Tree nodes created per decision
SEARCH_MAX_DEPTH = 4  # Simulated turns below the root
SEARCH_TIME_BUDGET_MS = 100.0  # Wall-clock budget per decision
SEARCH_SAFETY_BUDGET_MS = 5000.0  # Wall-clock cap for world searches; node budgets bind first
SEARCH_EXPLORATION_CONSTANT = 1.4142135623730951  # UCB1 exploration term (sqrt 2)
SEARCH_MAX_CANDIDATES = (8, 6, 5, 4, 3)  # Moves generated per depth level
SEARCH_TIE_EPSILON = 0.01  # Mean scores within this are treated as tied
GOAL_WEIGHT = 0.40
RISK_WEIGHT = 0.20
NARRATIVE_WEIGHT = 0.15
OPPORTUNITY_WEIGHT = 0.15
FLOW_WEIGHT = 0.10

# Conversation Threading
MAX_TOPIC_HISTORY = 12  # Topics retained per thread
MAX_TOPIC_DEPTH = 10
TOPIC_EXHAUSTION_STEP = 0.1
INITIAL_MOMENTUM = 0.5

# Autonomous Simulation
CYCLES_PER_BATCH = 20
INTEREST_THRESHOLD = 30  # Minimum interest score for a turn to be retained
MAX_STORED_EVENTS = 100  # Interesting events retained by the loop
LARGE_STAT_SWING = 10.0  # Absolute change in one turn counted as a large swing
PLAYER_MYTH_FREQUENCY = 0.15  # Chance per cycle that NPCs discuss the player
STORYLINE_MIN_SCORE = 40  # Interest needed to open a storyline
STORYLINE_DECAY_TURNS = 20  # Idle turns before a storyline fades
STUCK_STATE_THRESHOLD = 15  # Turns in one behavioral state before flagged
LOOP_DETECTION_WINDOW = 10  # Recent turns scanned for repeated exchanges
YIELD_EVERY_CYCLES = 5  # Async batches yield control after this many cycles

# Player Mythology
MYTH_DEFAULT_EXPECTATION = 50.0  # Expectation an NPC holds before hearing any rumor
MYTH_EVOLUTION_RATE = 0.1  # Confidence drift per evolution pass
MYTH_EVOLVE_EVERY_CYCLES = 10  # Autonomous cycles between evolution passes

# Persistence
WORLD_STATE_PATH = os.environ.get("NPC_DIALOGUE_STATE_PATH")  # Saved world snapshot, loaded at startup
TEMPLATES_PATH = os.environ.get("NPC_DIALOGUE_TEMPLATES_PATH")  # JSON list of response templates

# Background Tick Configuration
BACKGROUND_TICK_ENABLED = False  # Disabled by default (pull-based only)
BACKGROUND_TICK_INTERVAL_SECONDS = 5.0  # Real seconds between auto-ticks
BACKGROUND_TICK_CYCLES = 5  # Simulation cycles per auto-tick
