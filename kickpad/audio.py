"""
Audio collaborators for Kickpad
Interfaces for the renderer, resampler and waveform loader the optimizer
consumes, plus scipy-backed defaults for resampling and WAV loading.
"""

import importlib
import math
import os
from dataclasses import dataclass
from typing import Callable, Optional, Protocol, Tuple, Union, runtime_checkable

import numpy as np
from scipy import signal
from scipy.io import wavfile

from .genome import Genome


class SynthesisError(RuntimeError):
    """Raised by a renderer that cannot produce audio for a genome."""


def to_mono(samples: np.ndarray) -> np.ndarray:
    """Average a (frames, channels) buffer down to one channel."""
    samples = np.asarray(samples, dtype=np.float64)
    if samples.ndim > 1:
        samples = np.mean(samples, axis=1)
    return samples.ravel()


@runtime_checkable
class Synthesizer(Protocol):
    def render(self, genome: Genome) -> np.ndarray:
        ...


@runtime_checkable
class Resampler(Protocol):
    def resample(self, samples: np.ndarray, from_rate: int, to_rate: int) -> np.ndarray:
        ...


@runtime_checkable
class WaveformLoader(Protocol):
    def load(self, path: str) -> Tuple[np.ndarray, int]:
        ...


@dataclass(frozen=True, eq=False)
class TargetWaveform:
    """Reference sound the search tries to match. Read-only for a run."""
    samples: np.ndarray
    sample_rate: int

    def __post_init__(self):
        samples = np.array(self.samples, dtype=np.float64).ravel()
        samples.flags.writeable = False
        object.__setattr__(self, 'samples', samples)

    def __len__(self) -> int:
        return len(self.samples)

    @property
    def is_empty(self) -> bool:
        return len(self.samples) == 0

    @property
    def duration(self) -> float:
        return len(self.samples) / self.sample_rate if self.sample_rate else 0.0

    def normalized(self) -> 'TargetWaveform':
        """Scale to full scale peak (no-op on silence)."""
        peak = float(np.max(np.abs(self.samples))) if len(self.samples) else 0.0
        if peak <= 0.0:
            return self
        return TargetWaveform(self.samples / peak, self.sample_rate)

    def resampled(self, to_rate: int, resampler: 'Resampler') -> 'TargetWaveform':
        if to_rate == self.sample_rate:
            return self
        return TargetWaveform(resampler.resample(self.samples, self.sample_rate, to_rate), to_rate)


class PolyphaseResampler:
    """Rational-ratio resampling via scipy's polyphase filter."""

    def resample(self, samples: np.ndarray, from_rate: int, to_rate: int) -> np.ndarray:
        samples = np.asarray(samples, dtype=np.float64)
        if from_rate == to_rate or len(samples) == 0:
            return samples
        if from_rate <= 0 or to_rate <= 0:
            raise ValueError(f"Sample rates must be positive, got {from_rate} -> {to_rate}")
        gcd = math.gcd(from_rate, to_rate)
        up = to_rate // gcd
        down = from_rate // gcd
        return signal.resample_poly(samples, up, down)


class WavFileLoader:
    """Decode a WAV file to mono float64 samples in [-1, 1]."""

    def load(self, path: str) -> Tuple[np.ndarray, int]:
        if not path:
            raise ValueError("No .wav file path provided")
        if not os.path.isfile(path):
            raise FileNotFoundError(f"WAV file not found: {path}")
        try:
            sr, audio = wavfile.read(path)
        except ValueError as e:
            raise ValueError(f"Failed to decode .wav file {path}: {e}") from e

        if audio.dtype == np.uint8:
            # 8-bit PCM is unsigned, centered on 128
            audio = (audio.astype(np.float64) - 128.0) / 128.0
        elif audio.dtype.kind == 'i':
            audio = audio.astype(np.float64) / np.iinfo(audio.dtype).max
        else:
            audio = audio.astype(np.float64)

        return np.clip(to_mono(audio), -1.0, 1.0), int(sr)

    def load_target(self, path: str, normalize: bool = True) -> TargetWaveform:
        samples, sr = self.load(path)
        target = TargetWaveform(samples, sr)
        return target.normalized() if normalize else target


class FunctionSynthesizer:
    """Adapt a plain `render(genome)` callable to the Synthesizer interface."""

    def __init__(self, render_fn: Callable[[Genome], np.ndarray]):
        self._render_fn = render_fn

    def render(self, genome: Genome) -> np.ndarray:
        return self._render_fn(genome)


def as_synthesizer(obj: Union[Synthesizer, Callable[[Genome], np.ndarray]]) -> Synthesizer:
    if isinstance(obj, Synthesizer):
        return obj
    if callable(obj):
        return FunctionSynthesizer(obj)
    raise TypeError(f"Expected a renderer or a callable, got {type(obj).__name__}")


def load_synthesizer(spec: str, factory_args: Optional[dict] = None) -> Synthesizer:
    """
    Import a renderer from a 'module:attribute' string.

    A class attribute is instantiated (with `factory_args`), a callable
    is wrapped, an object with `render` is used as is.
    """
    module_name, sep, attr = spec.partition(':')
    if not sep or not module_name or not attr:
        raise ValueError(f"Synthesizer must be given as 'module:attribute', got '{spec}'")
    module = importlib.import_module(module_name)
    try:
        obj = getattr(module, attr)
    except AttributeError as e:
        raise ValueError(f"Module '{module_name}' has no attribute '{attr}'") from e
    if isinstance(obj, type):
        obj = obj(**(factory_args or {}))
    return as_synthesizer(obj)
