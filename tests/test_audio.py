"""
Audio collaborator tests

WAV loading, resampling, target waveform handling and renderer import.
"""

import os
import sys

import numpy as np
import pytest
from scipy.io import wavfile

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from kickpad.audio import (FunctionSynthesizer, PolyphaseResampler, Synthesizer,
                           TargetWaveform, WavFileLoader, load_synthesizer)


SAMPLE_RATE = 44100


class TestWavFileLoader:
    """Test decoding WAV files"""

    def test_int16_scaled_to_unit_range(self, tmp_path):
        path = str(tmp_path / "kick.wav")
        data = np.array([0, 16383, 32767, -32767], dtype=np.int16)
        wavfile.write(path, SAMPLE_RATE, data)

        samples, sr = WavFileLoader().load(path)
        assert sr == SAMPLE_RATE
        assert samples.dtype == np.float64
        assert samples[2] == pytest.approx(1.0)
        assert samples[3] == pytest.approx(-1.0)
        assert samples[1] == pytest.approx(0.5, abs=1e-4)

    def test_stereo_mixed_to_mono(self, tmp_path):
        path = str(tmp_path / "stereo.wav")
        data = np.array([[1.0, 0.0], [0.5, 0.5], [-1.0, 0.0]], dtype=np.float32)
        wavfile.write(path, 48000, data)

        samples, sr = WavFileLoader().load(path)
        assert sr == 48000
        assert samples.ndim == 1
        np.testing.assert_allclose(samples, [0.5, 0.5, -0.5])

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            WavFileLoader().load(str(tmp_path / "nope.wav"))

    def test_empty_path(self):
        with pytest.raises(ValueError):
            WavFileLoader().load("")

    def test_not_a_wav(self, tmp_path):
        path = tmp_path / "bogus.wav"
        path.write_bytes(b"definitely not RIFF data")
        with pytest.raises(ValueError):
            WavFileLoader().load(str(path))

    def test_load_target_normalizes(self, tmp_path):
        path = str(tmp_path / "quiet.wav")
        wavfile.write(path, SAMPLE_RATE, np.array([0.0, 0.25, -0.125], dtype=np.float32))
        target = WavFileLoader().load_target(path)
        assert np.max(np.abs(target.samples)) == pytest.approx(1.0)
        raw = WavFileLoader().load_target(path, normalize=False)
        assert np.max(np.abs(raw.samples)) == pytest.approx(0.25)


class TestTargetWaveform:
    """Test the read-only target buffer"""

    def test_samples_are_read_only(self):
        target = TargetWaveform(np.ones(8), SAMPLE_RATE)
        with pytest.raises(ValueError):
            target.samples[0] = 0.0

    def test_source_array_is_copied(self):
        source = np.ones(8)
        target = TargetWaveform(source, SAMPLE_RATE)
        source[0] = 5.0
        assert target.samples[0] == 1.0

    def test_empty_and_duration(self):
        assert TargetWaveform(np.array([]), SAMPLE_RATE).is_empty
        assert TargetWaveform(np.zeros(22050), SAMPLE_RATE).duration == pytest.approx(0.5)

    def test_normalizing_silence_is_noop(self):
        target = TargetWaveform(np.zeros(4), SAMPLE_RATE)
        assert target.normalized() is target


class TestPolyphaseResampler:
    """Test rate conversion"""

    def test_same_rate_unchanged(self):
        x = np.arange(10, dtype=np.float64)
        np.testing.assert_array_equal(PolyphaseResampler().resample(x, SAMPLE_RATE, SAMPLE_RATE), x)

    def test_length_follows_ratio(self):
        x = np.zeros(44100)
        assert len(PolyphaseResampler().resample(x, 44100, 48000)) == 48000
        assert len(PolyphaseResampler().resample(x, 44100, 88200)) == 88200

    def test_tone_frequency_preserved(self):
        t = np.arange(44100) / 44100
        tone = np.sin(2 * np.pi * 440 * t)
        resampled = PolyphaseResampler().resample(tone, 44100, 96000)
        spectrum = np.abs(np.fft.rfft(resampled))
        peak_hz = np.argmax(spectrum) * 96000 / len(resampled)
        assert abs(peak_hz - 440) < 2


class TestLoadSynthesizer:
    """Test importing a renderer by name"""

    def test_callable_is_wrapped(self):
        synth = load_synthesizer("os.path:basename")
        assert isinstance(synth, FunctionSynthesizer)
        assert isinstance(synth, Synthesizer)

    def test_bad_spec(self):
        with pytest.raises(ValueError):
            load_synthesizer("no_colon_here")

    def test_missing_attribute(self):
        with pytest.raises(ValueError):
            load_synthesizer("os.path:not_a_function")

    def test_missing_module(self):
        with pytest.raises(ImportError):
            load_synthesizer("kickpad_missing_module:render")
