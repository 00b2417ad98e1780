"""Pytest configuration and shared fixtures."""

import numpy as np
import pytest

from mixscope.config import AnalysisConfig
from mixscope.core.frame import AudioFrame

# Default sample rate for test audio
TEST_SR = 22050
BIN_COUNT = 1024


@pytest.fixture
def sample_rate() -> int:
    """Default sample rate for tests."""
    return TEST_SR


@pytest.fixture
def config() -> AnalysisConfig:
    """Analysis config matching the test sample rate."""
    return AnalysisConfig(sample_rate=TEST_SR)


@pytest.fixture
def pure_sine(sample_rate: int) -> tuple[np.ndarray, int]:
    """
    Generate a pure 440Hz sine wave (A4 note).

    Returns:
        Tuple of (audio_signal, sample_rate).
    """
    duration = 2.0  # 2 seconds
    t = np.linspace(0, duration, int(sample_rate * duration), endpoint=False)
    frequency = 440.0  # A4
    y = 0.5 * np.sin(2 * np.pi * frequency * t)
    return y.astype(np.float32), sample_rate


@pytest.fixture
def white_noise(sample_rate: int) -> tuple[np.ndarray, int]:
    """
    Generate white noise.

    Returns:
        Tuple of (audio_signal, sample_rate).
    """
    np.random.seed(42)  # Reproducible
    duration = 2.0
    samples = int(sample_rate * duration)
    y = np.random.randn(samples).astype(np.float32) * 0.3
    return y, sample_rate


@pytest.fixture
def mixed_signal(sample_rate: int) -> tuple[np.ndarray, int]:
    """
    Generate a chord with clicks at 120 BPM.

    Returns:
        Tuple of (audio_signal, sample_rate).
    """
    duration = 2.0
    t = np.linspace(0, duration, int(sample_rate * duration), endpoint=False)

    # Harmonic: chord (C major: C4, E4, G4)
    harmonic = (
        0.2 * np.sin(2 * np.pi * 261.63 * t) +  # C4
        0.2 * np.sin(2 * np.pi * 329.63 * t) +  # E4
        0.2 * np.sin(2 * np.pi * 392.00 * t)    # G4
    )

    # Percussive: clicks at 120 BPM
    bpm = 120
    samples_per_beat = int(sample_rate * 60 / bpm)
    total_samples = len(t)
    percussive = np.zeros(total_samples)

    click_duration = int(sample_rate * 0.01)
    for beat_start in range(0, total_samples, samples_per_beat):
        click_end = min(beat_start + click_duration, total_samples)
        click_samples = click_end - beat_start
        decay = np.exp(-np.linspace(0, 5, click_samples))
        percussive[beat_start:click_end] = 0.5 * decay

    y = (harmonic + percussive).astype(np.float32)
    return y, sample_rate


@pytest.fixture
def stereo_signal(mixed_signal) -> tuple[np.ndarray, int]:
    """
    Mixed signal panned right, with noise only on the left channel.

    Returns:
        Tuple of (audio_signal shaped (2, n), sample_rate).
    """
    y, sr = mixed_signal
    rng = np.random.default_rng(7)
    left = 0.3 * y + 0.05 * rng.standard_normal(len(y))
    right = 0.9 * y
    return np.stack([left, right]).astype(np.float32), sr


@pytest.fixture
def temp_audio_file(tmp_path, mixed_signal):
    """Create a temporary audio file for testing file I/O."""
    import soundfile as sf

    y, sr = mixed_signal
    audio_path = tmp_path / "test_audio.wav"
    sf.write(audio_path, y, sr)
    return audio_path


@pytest.fixture
def temp_stereo_file(tmp_path, stereo_signal):
    """Create a temporary two-channel audio file."""
    import soundfile as sf

    y, sr = stereo_signal
    audio_path = tmp_path / "test_stereo.wav"
    sf.write(audio_path, y.T, sr)
    return audio_path


@pytest.fixture
def make_frame():
    """Factory for AudioFrames built from float buffers."""

    def _make(
        frequency=None,
        time=None,
        left=None,
        right=None,
        sample_rate: int = TEST_SR,
    ) -> AudioFrame:
        if frequency is None:
            frequency = np.zeros(BIN_COUNT)
        if time is None:
            time = np.zeros(BIN_COUNT * 2)
        stereo = left is not None or right is not None
        return AudioFrame.from_float(
            frequency=np.broadcast_to(frequency, (BIN_COUNT,)).astype(float),
            time=np.asarray(time, dtype=float),
            sample_rate=sample_rate,
            frequency_left=None if not stereo else np.broadcast_to(left, (BIN_COUNT,)).astype(float),
            frequency_right=None if not stereo else np.broadcast_to(right, (BIN_COUNT,)).astype(float),
            time_left=None if not stereo else np.asarray(time, dtype=float),
            time_right=None if not stereo else np.asarray(time, dtype=float),
        )

    return _make
