"""
Kickpad
Evolutionary search for drum synthesizer settings that match a reference sample
"""

__version__ = "1.5.4"
__author__ = "Python Implementation"

from .genome import (Genome, GeneSpec, BoundsTable, WaveformType, WaveformMode,
                     SoundType, random_genome, clamp_genome)
from .audio import (Synthesizer, Resampler, WaveformLoader, SynthesisError,
                    TargetWaveform, PolyphaseResampler, WavFileLoader, load_synthesizer)
from .config import OptimizerConfig, ConfigStore
from .fitness import FitnessEvaluator
from .operators import tournament_select, uniform_crossover, mutate
from .optimizer import RunState, RunSnapshot, CancellationToken, GenerationLoop
from .controller import RunController, StartResult

__all__ = [
    'Genome',
    'GeneSpec',
    'BoundsTable',
    'WaveformType',
    'WaveformMode',
    'SoundType',
    'random_genome',
    'clamp_genome',
    'Synthesizer',
    'Resampler',
    'WaveformLoader',
    'SynthesisError',
    'TargetWaveform',
    'PolyphaseResampler',
    'WavFileLoader',
    'load_synthesizer',
    'OptimizerConfig',
    'ConfigStore',
    'FitnessEvaluator',
    'tournament_select',
    'uniform_crossover',
    'mutate',
    'RunState',
    'RunSnapshot',
    'CancellationToken',
    'GenerationLoop',
    'RunController',
    'StartResult',
]
