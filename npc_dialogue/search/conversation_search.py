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

"""Bounded Monte-Carlo tree search over conversational moves.

One decision = one ephemeral tree, discarded when search() returns.

  loop until a budget runs out:
    select        descend by UCB1 while nodes are fully expanded
    expand        add one untried move as a child (simulate_turn)
    rollout       random playout to max_depth, then evaluate_state;
                  playouts ending in an already-scored state (same
                  state_key) reuse that score
    backpropagate add the score to every node on the path

Budgets (whichever is hit first):
  max_iterations  playouts
  max_expansions  nodes created
  max_depth       simulated turns below the root
  time_budget_ms  wall clock (None disables it for reproducible runs)

The final move is the root child with the highest mean score; means
within tie_epsilon of the best are tied and one is drawn with the RNG.
Running out of budget is a normal exit and returns the best move so far.
"""

from __future__ import annotations

import logging
import math
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field

from npc_dialogue.config import (
    SEARCH_EXPLORATION_CONSTANT,
    SEARCH_MAX_CANDIDATES,
    SEARCH_MAX_DEPTH,
    SEARCH_MAX_EXPANSIONS,
    SEARCH_MAX_ITERATIONS,
    SEARCH_TIE_EPSILON,
    SEARCH_TIME_BUDGET_MS,
)
from npc_dialogue.core.rng import SeededRng, create_rng
from npc_dialogue.dialogue.templates import TemplateLibrary, generic_template
from npc_dialogue.models.templates import ResponseTemplate
from npc_dialogue.search.goals import EvaluationWeights, NPCObjectives, evaluate_state
from npc_dialogue.search.snapshot import (
    Move,
    SimulationSnapshot,
    generate_moves,
    is_terminal,
    next_pool,
    next_speaker,
    simulate_turn,
    state_key,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SearchConfig:
    """Budgets and tuning for one search decision."""

    max_iterations: int = SEARCH_MAX_ITERATIONS
    max_expansions: int = SEARCH_MAX_EXPANSIONS
    max_depth: int = SEARCH_MAX_DEPTH
    time_budget_ms: float | None = SEARCH_TIME_BUDGET_MS
    exploration: float = SEARCH_EXPLORATION_CONSTANT
    max_candidates: tuple[int, ...] = SEARCH_MAX_CANDIDATES
    tie_epsilon: float = SEARCH_TIE_EPSILON
    weights: EvaluationWeights = EvaluationWeights()

    def candidates_at(self, depth: int) -> int:
        if not self.max_candidates:
            return 1
        return self.max_candidates[min(depth, len(self.max_candidates) - 1)]


@dataclass
class SearchNode:
    """Tree node. Owns its children; `snapshot` is the state after `move`."""

    snapshot: SimulationSnapshot
    depth: int = 0
    move: Move | None = None
    parent: SearchNode | None = None
    children: list[SearchNode] = field(default_factory=list)
    untried: list[Move] = field(default_factory=list)
    visits: int = 0
    total_score: float = 0.0

    @property
    def mean(self) -> float:
        return self.total_score / self.visits if self.visits else 0.0

    def fully_expanded(self) -> bool:
        return not self.untried


@dataclass(frozen=True)
class SearchStats:
    iterations: int = 0
    expansions: int = 0
    max_depth_reached: int = 0
    elapsed_ms: float = 0.0
    stopped_by: str = ""
    transposition_hits: int = 0


@dataclass(frozen=True)
class SearchResult:
    """Outcome of one decision.

    Attributes:
        move: Chosen move, or None when there were no candidates.
        score: Mean evaluation of the chosen move.
        alternatives: (template_id, mean score, visits) of the other root moves.
        stats: Budget accounting.
    """

    move: Move | None
    score: float = 0.0
    alternatives: tuple[tuple[str, float, int], ...] = ()
    stats: SearchStats = SearchStats()

    @property
    def template(self) -> ResponseTemplate | None:
        return self.move.template if self.move else None


@dataclass
class _SearchContext:
    evaluator: str
    objectives: NPCObjectives
    origin: SimulationSnapshot
    library: TemplateLibrary | None
    config: SearchConfig
    rng: SeededRng
    expansions: int = 0
    deepest: int = 0
    evaluations: dict[tuple, float] = field(default_factory=dict)
    transposition_hits: int = 0


def ucb_score(child: SearchNode, parent_visits: int, exploration: float) -> float:
    """UCB1 over scaled means. Unvisited children come first."""
    if child.visits == 0:
        return math.inf
    return _scale(child.mean) + exploration * math.sqrt(math.log(parent_visits) / child.visits)


def _scale(score: float) -> float:
    # Evaluations live in roughly [-100, 100]; UCB wants [0, 1]-ish values.
    return (score + 100.0) / 200.0


def _moves_for(state: SimulationSnapshot, depth: int, ctx: _SearchContext) -> list[Move]:
    if is_terminal(state, depth, ctx.config.max_depth):
        return []
    rng = state.rng("moves")
    speaker = next_speaker(state, rng)
    if speaker is None:
        return []
    listener = next((p for p in state.participants if p != speaker), None)
    if listener is None:
        return []
    pool = next_pool(state, speaker, rng)
    templates: list[ResponseTemplate] = []
    if ctx.library is not None:
        templates = ctx.library.for_pool(speaker, pool)
    templates = list(templates) + [generic_template(pool)]
    return generate_moves(state, speaker, listener, templates, ctx.config.candidates_at(depth), rng)


def select(node: SearchNode, exploration: float) -> SearchNode:
    """Descend by UCB1 to the first node that still has untried moves."""
    while node.fully_expanded() and node.children:
        parent_visits = max(1, node.visits)
        best_index = max(
            range(len(node.children)),
            key=lambda i: (ucb_score(node.children[i], parent_visits, exploration), -i),
        )
        node = node.children[best_index]
    return node


def expand(node: SearchNode, ctx: _SearchContext) -> SearchNode:
    """Turn the next untried move into a child. Leaves are returned as-is."""
    if not node.untried:
        return node
    move = node.untried.pop(0)
    state = simulate_turn(node.snapshot, move)
    child = SearchNode(snapshot=state, depth=node.depth + 1, move=move, parent=node)
    child.untried = _moves_for(state, child.depth, ctx)
    node.children.append(child)
    ctx.expansions += 1
    ctx.deepest = max(ctx.deepest, child.depth)
    return child


def rollout(node: SearchNode, ctx: _SearchContext) -> float:
    """Random playout from a node, scored for the evaluating NPC."""
    state = node.snapshot
    depth = node.depth
    while not is_terminal(state, depth, ctx.config.max_depth):
        moves = _moves_for(state, depth, ctx)
        if not moves:
            break
        move = ctx.rng.choice(moves, "rollout")
        state = simulate_turn(state, move)
        depth += 1
    ctx.deepest = max(ctx.deepest, depth)
    key = state_key(state)
    score = ctx.evaluations.get(key)
    if score is None:
        score = evaluate_state(
            state, ctx.evaluator, ctx.objectives, ctx.origin, ctx.config.weights
        ).total
        ctx.evaluations[key] = score
    else:
        ctx.transposition_hits += 1
    return score


def backpropagate(node: SearchNode | None, score: float) -> None:
    while node is not None:
        node.visits += 1
        node.total_score += score
        node = node.parent


class ConversationSearch:
    """Chooses among candidate templates by simulating where they lead.

    Args:
        config: Budgets and tuning.
        library: Templates available to simulated follow-up turns.
        clock: Seconds-returning clock, injectable for tests.
    """

    def __init__(
        self,
        config: SearchConfig | None = None,
        library: TemplateLibrary | None = None,
        clock: Callable[[], float] = time.perf_counter,
    ):
        self.config = config or SearchConfig()
        self.library = library
        self._clock = clock

    def search(
        self,
        snapshot: SimulationSnapshot,
        speaker: str,
        listener: str,
        objectives: NPCObjectives,
        candidates: Sequence[ResponseTemplate],
    ) -> SearchResult:
        """Pick the candidate whose simulated futures score best for `speaker`.

        Args:
            snapshot: Starting state (never mutated).
            speaker: NPC choosing a line; also the evaluator.
            listener: NPC being addressed.
            objectives: Speaker's goals.
            candidates: Already-filtered templates for the first move.

        Returns:
            SearchResult; `move` is None only when there are no candidates.
        """
        config = self.config
        started = self._clock()
        rng = create_rng(f"{snapshot.seed}:search:{speaker}:{snapshot.cursor}")
        ctx = _SearchContext(
            evaluator=speaker,
            objectives=objectives,
            origin=snapshot,
            library=self.library,
            config=config,
            rng=rng,
        )
        root = SearchNode(snapshot=snapshot)
        root.untried = generate_moves(
            snapshot, speaker, listener, candidates, config.candidates_at(0), rng
        )
        if not root.untried:
            return SearchResult(move=None, stats=SearchStats(stopped_by="no_candidates"))

        iterations = 0
        stopped_by = "iterations"
        while True:
            if iterations >= config.max_iterations:
                stopped_by = "iterations"
                break
            if ctx.expansions >= config.max_expansions:
                stopped_by = "expansions"
                break
            if config.time_budget_ms is not None:
                if (self._clock() - started) * 1000.0 >= config.time_budget_ms:
                    stopped_by = "time"
                    break
            leaf = select(root, config.exploration)
            node = expand(leaf, ctx)
            score = rollout(node, ctx)
            backpropagate(node, score)
            iterations += 1

        elapsed_ms = (self._clock() - started) * 1000.0
        stats = SearchStats(
            iterations=iterations,
            expansions=ctx.expansions,
            max_depth_reached=ctx.deepest,
            elapsed_ms=elapsed_ms,
            stopped_by=stopped_by,
            transposition_hits=ctx.transposition_hits,
        )
        result = self._best(root, rng, stats)
        logger.debug(
            "Search for %s: %d iterations, %d nodes, depth %d, stopped by %s",
            speaker,
            iterations,
            ctx.expansions,
            ctx.deepest,
            stopped_by,
        )
        return result

    def _best(self, root: SearchNode, rng: SeededRng, stats: SearchStats) -> SearchResult:
        visited = [c for c in root.children if c.visits > 0]
        if not visited:
            # Budget ran out before any playout: fall back to the best prior.
            move = root.untried[0] if root.untried else root.children[0].move
            return SearchResult(move=move, stats=stats)
        best_mean = max(c.mean for c in visited)
        tied = sorted(
            (c for c in visited if best_mean - c.mean <= self.config.tie_epsilon),
            key=lambda c: c.move.template.template_id,
        )
        chosen = tied[0] if len(tied) == 1 else rng.choice(tied, "tie-break")
        alternatives = tuple(
            (c.move.template.template_id, c.mean, c.visits)
            for c in sorted(visited, key=lambda c: (-c.mean, c.move.template.template_id))
            if c is not chosen
        )
        return SearchResult(move=chosen.move, score=chosen.mean, alternatives=alternatives, stats=stats)
