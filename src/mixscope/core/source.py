"""
Spectral buffer sources.

A source hands the pipeline one AudioFrame per tick. The buffers follow
browser AnalyserNode conventions: Blackman-windowed magnitude spectrum in
decibels scaled to bytes, and a byte waveform centred on 128. Sources
walk in-memory arrays or audio files loaded with librosa.
"""

from pathlib import Path
from typing import Protocol, Union, runtime_checkable

import librosa
import numpy as np
import structlog
from scipy.signal import get_window

from mixscope.config import AnalysisConfig
from mixscope.core.frame import AudioFrame

logger = structlog.get_logger()


class CaptureError(RuntimeError):
    """Audio capture could not be acquired."""


@runtime_checkable
class SpectralBufferSource(Protocol):
    """Anything that can produce one AudioFrame per tick."""

    sample_rate: int
    channels: int

    def read(self) -> AudioFrame | None:
        """Next frame, or None once the source is exhausted."""
        ...


class AnalyserNode:
    """
    Emulation of a Web Audio AnalyserNode.

    Keeps per-bin smoothing state between calls, so one instance must be
    used per channel.
    """

    def __init__(self, config: AnalysisConfig | None = None):
        self.config = config or AnalysisConfig()
        self.fft_size = self.config.fft_size
        self._window = get_window("blackman", self.fft_size)
        self._smoothed = np.zeros(self.config.bin_count)

    def reset(self) -> None:
        self._smoothed = np.zeros(self.config.bin_count)

    def _fit(self, block: np.ndarray) -> np.ndarray:
        block = np.asarray(block, dtype=np.float64)
        if len(block) >= self.fft_size:
            return block[-self.fft_size:]
        return np.pad(block, (self.fft_size - len(block), 0))

    def byte_frequency(self, block: np.ndarray) -> np.ndarray:
        """
        Smoothed magnitude spectrum of the most recent fft_size samples.

        Args:
            block: Time-domain samples in [-1, 1]; left-padded with
                   silence if shorter than fft_size.

        Returns:
            uint8 array of length fft_size / 2.
        """
        cfg = self.config
        x = self._fit(block) * self._window
        spectrum = np.abs(np.fft.rfft(x))[: cfg.bin_count] / self.fft_size

        tau = cfg.analyser_smoothing
        self._smoothed = tau * self._smoothed + (1.0 - tau) * spectrum

        with np.errstate(divide="ignore"):
            db = 20.0 * np.log10(self._smoothed)
        scale = 255.0 / (cfg.max_decibels - cfg.min_decibels)
        scaled = np.floor(scale * (db - cfg.min_decibels))
        return np.clip(np.nan_to_num(scaled, neginf=0.0), 0, 255).astype(np.uint8)

    def byte_time(self, block: np.ndarray) -> np.ndarray:
        """Most recent fft_size samples as bytes centred on 128."""
        x = self._fit(block)
        return np.clip(np.floor(128.0 * (1.0 + x)), 0, 255).astype(np.uint8)


class ArrayBufferSource:
    """
    Walks an in-memory signal one tick at a time.

    Each read advances by sample_rate / target_fps samples and analyses the
    fft_size samples ending at the new position. Stereo input feeds a left,
    a right and a merged (averaged) analyser.
    """

    def __init__(
        self,
        samples: np.ndarray,
        sample_rate: int,
        config: AnalysisConfig | None = None,
    ):
        """
        Initialize the source.

        Args:
            samples: Signal shaped (n,), (2, n) or (n, 2).
            sample_rate: Sample rate of the signal.
            config: Analysis configuration.

        Raises:
            CaptureError: If the signal is empty or has more than 2 channels.
        """
        self.config = config or AnalysisConfig()
        self.sample_rate = int(sample_rate)
        self._signal = self._as_channels(np.asarray(samples, dtype=np.float64))
        self.channels = self._signal.shape[0]
        self.hop_length = self.config.compute_hop_length(self.sample_rate)
        self._position = 0

        self._merged = AnalyserNode(self.config)
        self._left = AnalyserNode(self.config) if self.channels == 2 else None
        self._right = AnalyserNode(self.config) if self.channels == 2 else None

    @staticmethod
    def _as_channels(samples: np.ndarray) -> np.ndarray:
        if samples.ndim == 1:
            samples = samples[np.newaxis, :]
        elif samples.ndim == 2:
            # (n, channels) layout, as written by soundfile
            if samples.shape[0] not in (1, 2) and samples.shape[1] in (1, 2):
                samples = samples.T
        else:
            raise CaptureError(f"Unsupported signal shape: {samples.shape}")

        if samples.shape[0] > 2:
            raise CaptureError(f"Unsupported channel count: {samples.shape[0]}")
        if samples.shape[1] == 0:
            raise CaptureError("Audio source contains no samples")
        return samples

    @property
    def n_samples(self) -> int:
        return self._signal.shape[1]

    @property
    def duration(self) -> float:
        return self.n_samples / self.sample_rate

    @property
    def n_frames(self) -> int:
        """Number of ticks this source will produce."""
        return -(-self.n_samples // self.hop_length)

    @property
    def exhausted(self) -> bool:
        return self._position >= self.n_samples

    def rewind(self) -> None:
        self._position = 0
        for node in (self._merged, self._left, self._right):
            if node is not None:
                node.reset()

    def read(self) -> AudioFrame | None:
        """Analyse the next tick; None once the signal has been consumed."""
        if self.exhausted:
            return None

        end = min(self._position + self.hop_length, self.n_samples)
        start = max(0, end - self.config.fft_size)
        self._position = end

        block = self._signal[:, start:end]
        merged = block.mean(axis=0)

        if self.channels == 1:
            return AudioFrame.from_bytes(
                frequency=self._merged.byte_frequency(merged),
                time=self._merged.byte_time(merged),
                sample_rate=self.sample_rate,
            )

        return AudioFrame.from_bytes(
            frequency=self._merged.byte_frequency(merged),
            time=self._merged.byte_time(merged),
            sample_rate=self.sample_rate,
            frequency_left=self._left.byte_frequency(block[0]),
            frequency_right=self._right.byte_frequency(block[1]),
            time_left=self._left.byte_time(block[0]),
            time_right=self._right.byte_time(block[1]),
        )

    def close(self) -> None:
        self._position = self.n_samples


class FileBufferSource(ArrayBufferSource):
    """ArrayBufferSource over an audio file (wav, mp3, flac)."""

    def __init__(
        self,
        audio_path: Union[str, Path],
        config: AnalysisConfig | None = None,
        sample_rate: int | None = None,
        mono: bool = False,
    ):
        """
        Load an audio file.

        Args:
            audio_path: Path to the audio file.
            config: Analysis configuration.
            sample_rate: Target sample rate. None preserves the file's rate.
            mono: Downmix to a single channel if True.

        Raises:
            CaptureError: If the file is missing, unreadable or has more
                          than 2 channels.
        """
        self.path = Path(audio_path)
        if not self.path.exists():
            raise CaptureError(f"Audio file not found: {self.path}")

        try:
            y, sr = librosa.load(self.path, sr=sample_rate, mono=mono)
        except Exception as e:
            raise CaptureError(f"Could not read audio file {self.path}: {e}") from e

        super().__init__(y, sr, config)
        logger.info(
            "capture.file_loaded",
            path=str(self.path),
            channels=self.channels,
            sample_rate=self.sample_rate,
            duration=round(self.duration, 3),
        )
