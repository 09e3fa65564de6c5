"""
Genome for Kickpad
Drum voice parameter set under evolutionary search, plus the bounds table
that drives clamping, random initialization and mutation.
"""

from dataclasses import dataclass, field, fields, replace
from enum import Enum
from typing import Dict, Iterator, List, Mapping, Optional, Tuple

import numpy as np


class WaveformType(Enum):
    SINE = 0
    TRIANGLE = 1
    SAWTOOTH = 2
    SQUARE = 3
    NOISE_WHITE = 4
    NOISE_PINK = 5
    NOISE_BROWN = 6


class WaveformMode(Enum):
    BASIC = "basic"        # Sine and triangle only
    EXTENDED = "extended"  # All seven waveform categories

    @property
    def categories(self) -> int:
        return 2 if self is WaveformMode.BASIC else len(WaveformType)


class SoundType(Enum):
    KICK = 0
    CLAP = 1
    SNARE = 2
    CLOSED_HH = 3
    OPEN_HH = 4
    RIMSHOT = 5
    TOM = 6
    PERCUSSION = 7
    RIDE = 8
    CRASH = 9
    BASS = 10
    XYLOPHONE = 11
    LEAD = 12


# Continuous genes, in genome order
CONTINUOUS_GENES: Tuple[str, ...] = (
    'attack', 'decay', 'sustain', 'release', 'drive',
    'filter_cutoff', 'sweep', 'pitch_decay', 'noise_amount',
)
DISCRETE_GENE = 'waveform'
ALL_GENES: Tuple[str, ...] = CONTINUOUS_GENES + (DISCRETE_GENE,)


@dataclass(frozen=True)
class GeneSpec:
    name: str
    min_val: float
    max_val: float

    def __post_init__(self):
        if not np.isfinite(self.min_val) or not np.isfinite(self.max_val):
            raise ValueError(f"Bounds for '{self.name}' must be finite")
        if self.min_val > self.max_val:
            raise ValueError(
                f"Bounds for '{self.name}' are inverted: [{self.min_val}, {self.max_val}]")

    def clamp(self, value: float) -> float:
        return float(np.clip(value, self.min_val, self.max_val))

    def contains(self, value: float) -> bool:
        return self.min_val <= value <= self.max_val


class BoundsTable:
    """
    Mapping from continuous gene name to its closed [min, max] range.
    Every continuous gene must have an entry.
    """

    def __init__(self, specs: Mapping[str, Tuple[float, float]]):
        missing = [name for name in CONTINUOUS_GENES if name not in specs]
        if missing:
            raise ValueError(f"Bounds table is missing genes: {', '.join(missing)}")
        unknown = [name for name in specs if name not in CONTINUOUS_GENES]
        if unknown:
            raise ValueError(f"Bounds table has unknown genes: {', '.join(unknown)}")
        self._specs: Dict[str, GeneSpec] = {
            name: GeneSpec(name, float(specs[name][0]), float(specs[name][1]))
            for name in CONTINUOUS_GENES
        }

    @classmethod
    def default(cls) -> 'BoundsTable':
        return cls(DEFAULT_BOUNDS)

    def __getitem__(self, name: str) -> GeneSpec:
        return self._specs[name]

    def __iter__(self) -> Iterator[GeneSpec]:
        return iter(self._specs.values())

    def __len__(self) -> int:
        return len(self._specs)

    def __eq__(self, other) -> bool:
        if not isinstance(other, BoundsTable):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def to_dict(self) -> Dict[str, List[float]]:
        return {spec.name: [spec.min_val, spec.max_val] for spec in self}


DEFAULT_BOUNDS: Dict[str, Tuple[float, float]] = {
    'attack': (0.05, 0.5),
    'decay': (0.05, 0.5),
    'sustain': (0.1, 1.0),
    'release': (0.05, 1.0),
    'drive': (0.0, 1.0),
    'filter_cutoff': (500.0, 10000.0),
    'sweep': (0.1, 2.0),
    'pitch_decay': (0.1, 1.5),
    'noise_amount': (0.0, 1.0),
}


@dataclass(frozen=True)
class Genome:
    """
    A candidate drum voice.

    The first ten fields are the evolved genes. The rest is context that
    travels with the genome so a renderer can produce audio at the run's
    working format.
    """
    attack: float
    decay: float
    sustain: float
    release: float
    drive: float
    filter_cutoff: float
    sweep: float
    pitch_decay: float
    noise_amount: float
    waveform: int = WaveformType.SINE.value
    sample_rate: int = field(default=44100, compare=False)
    bit_depth: int = field(default=16, compare=False)
    channels: int = field(default=1, compare=False)
    sound_type: SoundType = field(default=SoundType.KICK, compare=False)

    @property
    def waveform_type(self) -> WaveformType:
        return WaveformType(self.waveform)

    @property
    def expected_duration(self) -> float:
        # Sustain is a level, not a time
        return self.attack + self.decay + self.release

    def genes(self) -> Dict[str, float]:
        return {name: getattr(self, name) for name in ALL_GENES}

    def with_genes(self, **genes) -> 'Genome':
        return replace(self, **genes)

    def to_dict(self) -> Dict:
        data = {f.name: getattr(self, f.name) for f in fields(self)}
        data['sound_type'] = self.sound_type.name
        return data

    @classmethod
    def from_dict(cls, data: Mapping) -> 'Genome':
        values = dict(data)
        sound_type = values.get('sound_type', SoundType.KICK)
        if isinstance(sound_type, str):
            values['sound_type'] = SoundType[sound_type]
        return cls(**values)


def clamp_genome(genome: Genome, bounds: BoundsTable) -> Genome:
    """Return a copy with every continuous gene clamped to its bound."""
    clamped = {spec.name: spec.clamp(getattr(genome, spec.name)) for spec in bounds}
    return replace(genome, **clamped)


def within_bounds(genome: Genome, bounds: BoundsTable) -> bool:
    return all(spec.contains(getattr(genome, spec.name)) for spec in bounds)


def random_genome(rng: np.random.Generator,
                  bounds: BoundsTable,
                  waveform_mode: WaveformMode = WaveformMode.EXTENDED,
                  sample_rate: int = 44100,
                  bit_depth: int = 16,
                  channels: int = 1,
                  sound_type: SoundType = SoundType.KICK) -> Genome:
    """Draw every continuous gene uniformly inside its bound."""
    genes = {spec.name: float(rng.uniform(spec.min_val, spec.max_val)) for spec in bounds}
    return Genome(
        waveform=int(rng.integers(waveform_mode.categories)),
        sample_rate=sample_rate,
        bit_depth=bit_depth,
        channels=channels,
        sound_type=sound_type,
        **genes,
    )


def random_population(rng: np.random.Generator,
                      size: int,
                      bounds: BoundsTable,
                      waveform_mode: WaveformMode = WaveformMode.EXTENDED,
                      template: Optional[Genome] = None) -> List[Genome]:
    """
    Build an initial population.

    Context fields (sample rate, bit depth, channels, sound type) are
    copied from `template` when given.
    """
    context = {}
    if template is not None:
        context = dict(
            sample_rate=template.sample_rate,
            bit_depth=template.bit_depth,
            channels=template.channels,
            sound_type=template.sound_type,
        )
    return [random_genome(rng, bounds, waveform_mode, **context) for _ in range(size)]
