"""
Command-line fitting tool tests

Runs tools/ga_fit.py end to end with a tiny renderer module written
to a temporary directory.
"""

import json
import os
import sys

import numpy as np
import pytest
from scipy.io import wavfile

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from kickpad.audio import TargetWaveform
from kickpad.config import OptimizerConfig
from kickpad.controller import RunController
from tools.ga_fit import config_overrides, build_parser, main, run_fit


RENDERER_SOURCE = '''
import numpy as np
import pytest

def render(genome):
    t = np.arange(2048) / genome.sample_rate
    freq = 40.0 + genome.filter_cutoff / 40.0
    return np.sin(2 * np.pi * freq * t) * np.exp(-t / genome.decay)
'''


def write_target(path, sample_rate=44100):
    t = np.arange(2048) / sample_rate
    audio = 0.5 * np.sin(2 * np.pi * 120 * t) * np.exp(-t / 0.2)
    wavfile.write(path, sample_rate, (audio * 32767).astype(np.int16))


class TestArguments:
    """Test mapping of command-line flags to config overrides"""

    def test_only_given_flags_override(self):
        args = build_parser().parse_args(["--target", "x.wav", "--synth", "m:f", "--population", "20"])
        assert config_overrides(args) == {"population_size": 20}

    def test_basic_waveforms_flag(self):
        args = build_parser().parse_args(["--target", "x.wav", "--synth", "m:f", "--basic-waveforms"])
        assert config_overrides(args)["waveform_mode"] == "basic"


class TestFitRun:
    """Test a complete short run"""

    def test_fit_writes_best_genome(self, tmp_path, monkeypatch, capsys):
        (tmp_path / "tiny_voice.py").write_text(RENDERER_SOURCE, encoding="utf-8")
        monkeypatch.syspath_prepend(str(tmp_path))
        target = str(tmp_path / "target.wav")
        write_target(target)
        out = str(tmp_path / "fitted.json")
        config_path = str(tmp_path / "optimizer.json")

        code = main([
            "--target", target, "--synth", "tiny_voice:render",
            "--population", "10", "--elite", "2", "--generations", "3",
            "--seed", "1", "--config", config_path, "--save-config",
            "--out", out, "--poll", "0.01", "--quiet",
        ])

        assert code == 0
        with open(out, "r", encoding="utf-8") as f:
            data = json.load(f)
        assert data["state"] in ("exhausted", "stagnant", "converged")
        assert set(["attack", "decay", "waveform", "filter_cutoff"]) <= set(data["params"])
        with open(config_path, "r", encoding="utf-8") as f:
            assert json.load(f)["population_size"] == 10
        assert "Best fitness" in capsys.readouterr().out

    def test_missing_target(self, tmp_path, capsys):
        code = main(["--target", str(tmp_path / "none.wav"), "--synth", "os.path:basename",
                     "--config", str(tmp_path / "cfg.json")])
        assert code == 1
        assert "[Target]" in capsys.readouterr().err

    def test_invalid_config(self, tmp_path, capsys):
        code = main(["--target", "x.wav", "--synth", "m:f", "--population", "4", "--elite", "3",
                     "--config", str(tmp_path / "cfg.json")])
        assert code == 2
        assert "[Config]" in capsys.readouterr().err

    def test_crashed_run_reported(self):
        """A loop that dies mid-run ends the poll instead of spinning on idle"""
        def sink(snapshot):
            if snapshot.generation >= 1:
                raise RuntimeError("progress sink failed")

        t = np.arange(512) / 44100
        target = TargetWaveform(np.sin(2 * np.pi * 110 * t), 44100)
        config = OptimizerConfig(population_size=8, elite_count=1, max_generations=50,
                                 max_stagnation=50, seed=1)
        controller = RunController(lambda g: np.zeros(512), on_progress=sink)
        try:
            with pytest.raises(RuntimeError, match="Training failed"):
                run_fit(controller, target, config, poll=0.01, quiet=True)
        finally:
            controller.shutdown()
        assert controller.last_result.best_genome is not None
