"""
Genetic operators for Kickpad
Tournament selection, uniform crossover and multiplicative mutation.
All randomness comes from the numpy Generator passed in.
"""

from typing import Sequence, Tuple

import numpy as np

from .genome import ALL_GENES, DISCRETE_GENE, BoundsTable, Genome, WaveformMode, clamp_genome


MUTATION_FACTOR_MIN = 0.8
MUTATION_FACTOR_MAX = 1.2


def tournament_select(rng: np.random.Generator,
                      population: Sequence[Genome],
                      scores: Sequence[float],
                      tournament_size: int) -> Genome:
    """
    Best of `tournament_size` draws with replacement.
    On equal scores the earliest draw wins.
    """
    if not population:
        raise ValueError("Cannot select from an empty population")
    if len(population) != len(scores):
        raise ValueError("Population and scores must have the same length")

    best_index = int(rng.integers(len(population)))
    best_score = scores[best_index]
    for _ in range(1, tournament_size):
        index = int(rng.integers(len(population)))
        if scores[index] < best_score:
            best_index = index
            best_score = scores[index]
    return population[best_index]


def uniform_crossover(rng: np.random.Generator,
                      parent_a: Genome,
                      parent_b: Genome,
                      bounds: BoundsTable) -> Tuple[Genome, Genome]:
    """
    Children start as clones of their parents; each gene is swapped
    between them on an independent coin flip.
    """
    genes_a = {}
    genes_b = {}
    for name in ALL_GENES:
        if rng.random() < 0.5:
            genes_a[name] = getattr(parent_b, name)
            genes_b[name] = getattr(parent_a, name)
    child_a = clamp_genome(parent_a.with_genes(**genes_a), bounds)
    child_b = clamp_genome(parent_b.with_genes(**genes_b), bounds)
    return child_a, child_b


def mutate(rng: np.random.Generator,
           genome: Genome,
           mutation_rate: float,
           bounds: BoundsTable,
           waveform_mode: WaveformMode = WaveformMode.EXTENDED) -> Genome:
    """
    Scale each continuous gene by a factor in [0.8, 1.2] with probability
    `mutation_rate`, then clamp. The waveform gene is redrawn from the
    mode's categories with the same probability.
    """
    changes = {}
    for spec in bounds:
        if rng.random() < mutation_rate:
            factor = rng.uniform(MUTATION_FACTOR_MIN, MUTATION_FACTOR_MAX)
            changes[spec.name] = spec.clamp(getattr(genome, spec.name) * factor)
    if rng.random() < mutation_rate:
        changes[DISCRETE_GENE] = int(rng.integers(waveform_mode.categories))
    return clamp_genome(genome.with_genes(**changes), bounds)
