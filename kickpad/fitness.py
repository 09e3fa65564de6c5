"""
Fitness evaluation for Kickpad
Scores a genome's rendering against the target waveform using a blend of
time-domain and magnitude-spectrum error, plus a duration penalty.
Lower is better; a genome that fails to render scores +inf.
"""

import math
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, List, Optional, Sequence, Union

import numpy as np

from .audio import (PolyphaseResampler, Resampler, Synthesizer, TargetWaveform,
                    as_synthesizer, to_mono)
from .genome import Genome


TIME_WEIGHT = 0.5
FREQ_WEIGHT = 0.5
DURATION_PENALTY_SCALE = 1000.0


def next_power_of_two(n: int) -> int:
    if n <= 0:
        return 1
    return 1 << (int(n) - 1).bit_length()


def time_mse(rendered: np.ndarray, target: np.ndarray) -> float:
    """Mean squared error over the overlapping length (no padding)."""
    n = min(len(rendered), len(target))
    if n == 0:
        return math.inf
    diff = rendered[:n] - target[:n]
    return float(np.mean(diff * diff))


def spectral_mse(rendered: np.ndarray, target: np.ndarray) -> float:
    """
    Mean squared error between magnitude spectra.

    Both buffers are cut to their overlapping length and zero-padded to
    the next power of two before the FFT.
    """
    n = min(len(rendered), len(target))
    if n == 0:
        return math.inf
    size = next_power_of_two(n)
    mag_rendered = np.abs(np.fft.fft(rendered[:n], n=size))
    mag_target = np.abs(np.fft.fft(target[:n], n=size))
    diff = mag_rendered - mag_target
    return float(np.mean(diff * diff))


def duration_penalty(expected_duration: float, min_duration: float, max_duration: float) -> float:
    if expected_duration < min_duration:
        return (min_duration - expected_duration) * DURATION_PENALTY_SCALE
    if expected_duration > max_duration:
        return (expected_duration - max_duration) * DURATION_PENALTY_SCALE
    return 0.0


class FitnessEvaluator:
    """
    Scores genomes against one target for the length of a run.

    The target is resampled to the working rate once, here, and reused
    for every evaluation.
    """

    def __init__(self,
                 synthesizer: Union[Synthesizer, Callable[[Genome], np.ndarray]],
                 target: TargetWaveform,
                 sample_rate: int,
                 resampler: Optional[Resampler] = None,
                 min_duration: float = 0.1,
                 max_duration: float = 2.0):
        self.synthesizer = as_synthesizer(synthesizer)
        self.resampler = resampler or PolyphaseResampler()
        self.sample_rate = sample_rate
        self.min_duration = min_duration
        self.max_duration = max_duration
        self.target = target.resampled(sample_rate, self.resampler)

    def render(self, genome: Genome) -> Optional[np.ndarray]:
        """Mono render at the working rate; None when rendering or resampling fails."""
        try:
            samples = self.synthesizer.render(genome)
            if samples is None:
                return None
            samples = to_mono(samples)
            if len(samples) == 0:
                return None
            if genome.sample_rate != self.sample_rate:
                samples = np.asarray(
                    self.resampler.resample(samples, genome.sample_rate, self.sample_rate),
                    dtype=np.float64)
        except Exception:
            return None
        return samples

    def evaluate(self, genome: Genome) -> float:
        rendered = self.render(genome)
        if rendered is None:
            return math.inf

        target = self.target.samples
        score = TIME_WEIGHT * time_mse(rendered, target) + FREQ_WEIGHT * spectral_mse(rendered, target)
        score += duration_penalty(genome.expected_duration, self.min_duration, self.max_duration)
        if not math.isfinite(score):
            return math.inf
        return score

    def evaluate_population(self, population: Sequence[Genome], workers: int = 1) -> List[float]:
        """Score every genome, keeping population order."""
        if workers <= 1 or len(population) < 2:
            return [self.evaluate(genome) for genome in population]
        with ThreadPoolExecutor(max_workers=workers) as executor:
            return list(executor.map(self.evaluate, population))
