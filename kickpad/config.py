"""
Configuration for Kickpad
Optimizer settings with defaults, validation and persistent storage.
Settings are stored as JSON in the platform-appropriate config location.
"""

import json
import os
from dataclasses import dataclass, field, fields
from typing import Any, Dict, Mapping, Optional

from platformdirs import user_config_dir

from .genome import DEFAULT_BOUNDS, BoundsTable, SoundType, WaveformMode


SAMPLE_RATES = (44100, 48000, 96000, 192000)
BIT_DEPTHS = (16, 24)


@dataclass
class OptimizerConfig:
    """
    Settings for one search run.

    Defaults match the original kickpad trainer: 100 genomes, tournament
    of 5, 10 elites, 5% mutation, at most 1000 generations and a stop
    after 10 generations without improvement.
    """
    population_size: int = 100
    tournament_size: int = 5
    elite_count: int = 10
    mutation_rate: float = 0.05
    max_generations: int = 1000
    max_stagnation: int = 10
    convergence_threshold: float = 1e-3
    waveform_mode: WaveformMode = WaveformMode.EXTENDED
    sample_rate: int = 44100
    bit_depth: int = 16
    channels: int = 1
    sound_type: SoundType = SoundType.KICK
    bounds: BoundsTable = field(default_factory=BoundsTable.default)
    min_duration: float = 0.1   # seconds
    max_duration: float = 2.0   # seconds
    workers: int = 1            # 1 = evaluate serially
    seed: Optional[int] = None
    verbose: bool = False

    def __post_init__(self):
        if isinstance(self.waveform_mode, str):
            self.waveform_mode = WaveformMode(self.waveform_mode)
        if isinstance(self.sound_type, str):
            self.sound_type = SoundType[self.sound_type]
        if isinstance(self.bounds, Mapping):
            merged = dict(DEFAULT_BOUNDS)
            merged.update(self.bounds)
            self.bounds = BoundsTable(merged)
        self.validate()

    def validate(self):
        if self.population_size < 2:
            raise ValueError(f"population_size must be at least 2, got {self.population_size}")
        if self.elite_count < 0:
            raise ValueError(f"elite_count must be >= 0, got {self.elite_count}")
        if 2 * self.elite_count > self.population_size:
            raise ValueError(
                f"population_size ({self.population_size}) must be at least twice "
                f"elite_count ({self.elite_count})")
        if self.tournament_size < 1:
            raise ValueError(f"tournament_size must be >= 1, got {self.tournament_size}")
        if not 0.0 <= self.mutation_rate <= 1.0:
            raise ValueError(f"mutation_rate must be in [0, 1], got {self.mutation_rate}")
        if self.max_generations < 1:
            raise ValueError(f"max_generations must be >= 1, got {self.max_generations}")
        if self.max_stagnation < 1:
            raise ValueError(f"max_stagnation must be >= 1, got {self.max_stagnation}")
        if self.convergence_threshold < 0:
            raise ValueError(
                f"convergence_threshold must be >= 0, got {self.convergence_threshold}")
        if self.sample_rate not in SAMPLE_RATES:
            raise ValueError(
                f"sample_rate must be one of {', '.join(map(str, SAMPLE_RATES))}, got {self.sample_rate}")
        if self.bit_depth not in BIT_DEPTHS:
            raise ValueError(f"bit_depth must be 16 or 24, got {self.bit_depth}")
        if self.channels < 1:
            raise ValueError(f"channels must be >= 1, got {self.channels}")
        if not 0.0 <= self.min_duration <= self.max_duration:
            raise ValueError(
                f"Duration window is invalid: [{self.min_duration}, {self.max_duration}]")
        if self.workers < 1:
            raise ValueError(f"workers must be >= 1, got {self.workers}")

    def to_dict(self) -> Dict[str, Any]:
        data = {f.name: getattr(self, f.name) for f in fields(self)}
        data['waveform_mode'] = self.waveform_mode.value
        data['sound_type'] = self.sound_type.name
        data['bounds'] = self.bounds.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'OptimizerConfig':
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f"Unknown config keys: {', '.join(unknown)}")
        return cls(**dict(data))

    def replace(self, **changes) -> 'OptimizerConfig':
        data = self.to_dict()
        data.update(changes)
        return OptimizerConfig.from_dict(data)


class ConfigStore:
    """
    Persists an OptimizerConfig as JSON.
    Loaded values are merged over the defaults so older files keep working.
    """

    APP_NAME = "Kickpad"
    APP_AUTHOR = "Kickpad"
    CONFIG_FILENAME = "optimizer.json"

    def __init__(self, path: Optional[str] = None):
        if path is None:
            config_dir = user_config_dir(self.APP_NAME, self.APP_AUTHOR)
            path = os.path.join(config_dir, self.CONFIG_FILENAME)
        self.path = path

    def exists(self) -> bool:
        return os.path.exists(self.path)

    def load(self) -> OptimizerConfig:
        """Load the stored config, or the defaults when nothing is stored."""
        if not self.exists():
            return OptimizerConfig()
        with open(self.path, 'r', encoding='utf-8') as f:
            try:
                stored = json.load(f)
            except json.JSONDecodeError as e:
                raise ValueError(f"Invalid config file {self.path}: {e}") from e
        if not isinstance(stored, dict):
            raise ValueError(f"Invalid config file {self.path}: expected a JSON object")
        data = OptimizerConfig().to_dict()
        data.update(stored)
        return OptimizerConfig.from_dict(data)

    def save(self, config: OptimizerConfig):
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(self.path, 'w', encoding='utf-8') as f:
            json.dump(config.to_dict(), f, indent=2)
