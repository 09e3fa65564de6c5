"""
Generation loop for Kickpad
Evolves a population of drum voice genomes towards the target waveform.

Each generation:
- checks for cancellation
- scores every genome
- updates the global best, convergence and stagnation tracking
- breeds the next population (elitism, tournament selection,
  uniform crossover, mutation)

Progress is published as immutable RunSnapshot objects. The loop is the
only writer; readers just take the latest snapshot reference.
"""

import math
import threading
import time
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Callable, List, Optional, Sequence, Tuple

import numpy as np

from .config import OptimizerConfig
from .fitness import FitnessEvaluator
from .genome import Genome, random_population
from .operators import mutate, tournament_select, uniform_crossover


class RunState(Enum):
    IDLE = "idle"
    RUNNING = "running"
    CONVERGED = "converged"
    STAGNANT = "stagnant"
    CANCELLED = "cancelled"
    EXHAUSTED = "exhausted"

    @property
    def is_terminal(self) -> bool:
        return self not in (RunState.IDLE, RunState.RUNNING)


@dataclass(frozen=True)
class RunSnapshot:
    """Complete, read-only view of a run at one point in time."""
    state: RunState = RunState.IDLE
    generation: int = 0
    best_score: float = math.inf
    best_genome: Optional[Genome] = None
    reason: str = ""
    stagnation: int = 0
    generation_best_score: float = math.inf
    history: Tuple[float, ...] = field(default=(), repr=False)
    elapsed: float = 0.0

    @property
    def is_terminal(self) -> bool:
        return self.state.is_terminal


class CancellationToken:
    """Cooperative stop request, checked by the loop between generations."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self):
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


class GenerationLoop:
    """
    Runs one search to a terminal state.

    Usage:
        loop = GenerationLoop(evaluator, config, publish=print)
        result = loop.run()
        result.best_genome, result.reason
    """

    def __init__(self,
                 evaluator: FitnessEvaluator,
                 config: OptimizerConfig,
                 token: Optional[CancellationToken] = None,
                 publish: Optional[Callable[[RunSnapshot], None]] = None,
                 rng: Optional[np.random.Generator] = None,
                 initial_population: Optional[Sequence[Genome]] = None):
        self.evaluator = evaluator
        self.config = config
        self.token = token or CancellationToken()
        self._publish = publish
        self.rng = rng if rng is not None else np.random.default_rng(config.seed)
        self._initial_population = list(initial_population) if initial_population else None

        self.snapshot = RunSnapshot()
        self.population: List[Genome] = []

    # ============== Publishing ==============

    def publish(self, snapshot: RunSnapshot):
        self.snapshot = snapshot
        if self._publish is not None:
            self._publish(snapshot)

    def _log(self, message: str):
        if self.config.verbose:
            print(f"[GA] {message}")

    # ============== Population ==============

    def initial_population(self) -> List[Genome]:
        cfg = self.config
        if self._initial_population is not None:
            if len(self._initial_population) != cfg.population_size:
                raise ValueError(
                    f"Initial population has {len(self._initial_population)} genomes, "
                    f"expected {cfg.population_size}")
            return list(self._initial_population)
        template = Genome(
            **{spec.name: spec.min_val for spec in cfg.bounds},
            sample_rate=cfg.sample_rate,
            bit_depth=cfg.bit_depth,
            channels=cfg.channels,
            sound_type=cfg.sound_type,
        )
        return random_population(self.rng, cfg.population_size, cfg.bounds,
                                 cfg.waveform_mode, template=template)

    def next_population(self, population: Sequence[Genome], scores: Sequence[float]) -> List[Genome]:
        """Elites first, then mutated children of tournament winners."""
        cfg = self.config
        ranked = np.argsort(np.asarray(scores, dtype=np.float64), kind='stable')
        new_population = [population[i] for i in ranked[:cfg.elite_count]]

        while len(new_population) < cfg.population_size:
            parent_a = tournament_select(self.rng, population, scores, cfg.tournament_size)
            parent_b = tournament_select(self.rng, population, scores, cfg.tournament_size)
            child_a, child_b = uniform_crossover(self.rng, parent_a, parent_b, cfg.bounds)
            child_a = mutate(self.rng, child_a, cfg.mutation_rate, cfg.bounds, cfg.waveform_mode)
            child_b = mutate(self.rng, child_b, cfg.mutation_rate, cfg.bounds, cfg.waveform_mode)
            new_population.append(child_a)
            new_population.append(child_b)

        return new_population[:cfg.population_size]

    # ============== Main loop ==============

    def _finish(self, state: RunState, reason: str, **changes) -> RunSnapshot:
        snapshot = replace(self.snapshot, state=state, reason=reason,
                           elapsed=time.monotonic() - self._start_time, **changes)
        self._log(reason)
        self.publish(snapshot)
        return snapshot

    def run(self) -> RunSnapshot:
        cfg = self.config
        self._start_time = time.monotonic()
        self.publish(RunSnapshot(state=RunState.RUNNING, reason="Training started..."))
        self._log(f"Training started: population={cfg.population_size}, "
                  f"max_generations={cfg.max_generations}, waveforms={cfg.waveform_mode.value}")

        self.population = self.initial_population()
        best_genome: Optional[Genome] = None
        best_score = math.inf
        stagnation = 0
        history: List[float] = []

        for generation in range(cfg.max_generations):
            if self.token.cancelled:
                return self._finish(RunState.CANCELLED, "Training canceled.")

            scores = self.evaluator.evaluate_population(self.population, cfg.workers)
            gen_index = int(np.argmin(scores))
            gen_best = scores[gen_index]

            if gen_best < best_score:
                best_score = gen_best
                best_genome = self.population[gen_index]
                stagnation = 0
                self.publish(replace(
                    self.snapshot, generation=generation, best_score=best_score,
                    best_genome=best_genome, stagnation=stagnation,
                    generation_best_score=gen_best,
                    elapsed=time.monotonic() - self._start_time))
                self._log(f"Generation {generation}: Best fitness = {best_score:.6f}")
                if best_score < cfg.convergence_threshold:
                    history.append(best_score)
                    return self._finish(
                        RunState.CONVERGED,
                        f"Global optimum found at generation {generation}!",
                        history=tuple(history))
            else:
                stagnation += 1
                if stagnation >= cfg.max_stagnation:
                    history.append(best_score)
                    return self._finish(
                        RunState.STAGNANT,
                        f"Training stopped due to no improvement in {cfg.max_stagnation} generations.",
                        generation=generation, stagnation=stagnation,
                        generation_best_score=gen_best, history=tuple(history))

            history.append(best_score)

            if self.token.cancelled:
                return self._finish(
                    RunState.CANCELLED, "Training canceled.",
                    generation=generation, stagnation=stagnation,
                    generation_best_score=gen_best, history=tuple(history))

            if generation + 1 >= cfg.max_generations:
                return self._finish(
                    RunState.EXHAUSTED,
                    f"Reached the maximum of {cfg.max_generations} generations.",
                    generation=generation, stagnation=stagnation,
                    generation_best_score=gen_best, history=tuple(history))

            self.population = self.next_population(self.population, scores)
            self.publish(replace(
                self.snapshot, generation=generation, best_score=best_score,
                best_genome=best_genome, stagnation=stagnation,
                generation_best_score=gen_best, history=tuple(history),
                reason=f"Generation {generation}: Best fitness = {best_score:f}",
                elapsed=time.monotonic() - self._start_time))

        # max_generations >= 1, so the loop always returns from inside
        raise RuntimeError("Generation loop ended without a terminal state")
