"""
Per-tick audio buffers.

An AudioFrame is what a capture source hands the extractor on every tick:
a merged magnitude spectrum, a merged waveform, and per-channel copies of
both while capture is stereo.
"""

from dataclasses import dataclass

import numpy as np


@dataclass
class AudioFrame:
    """Normalized spectral and time-domain buffers for one tick."""

    frequency: np.ndarray  # magnitudes in [0, 1], length fft_size / 2
    time: np.ndarray       # samples in [-1, 1], length fft_size
    sample_rate: int
    channels: int = 1

    # Stereo only
    frequency_left: np.ndarray | None = None
    frequency_right: np.ndarray | None = None
    time_left: np.ndarray | None = None
    time_right: np.ndarray | None = None

    def __post_init__(self):
        if self.channels not in (1, 2):
            raise ValueError(f"Unsupported channel count: {self.channels}")
        if self.channels == 2 and (
            self.frequency_left is None
            or self.frequency_right is None
            or self.time_left is None
            or self.time_right is None
        ):
            raise ValueError("Stereo frame requires left and right buffers")

    @property
    def is_stereo(self) -> bool:
        return self.channels == 2

    @property
    def bin_count(self) -> int:
        return len(self.frequency)

    @property
    def nyquist(self) -> float:
        return self.sample_rate / 2.0

    @classmethod
    def from_bytes(
        cls,
        frequency: np.ndarray,
        time: np.ndarray,
        sample_rate: int,
        frequency_left: np.ndarray | None = None,
        frequency_right: np.ndarray | None = None,
        time_left: np.ndarray | None = None,
        time_right: np.ndarray | None = None,
    ) -> "AudioFrame":
        """
        Build a frame from analyser-style byte buffers.

        Frequency bytes are 0..255 and map to 0..1; time bytes are centred
        on 128 and map to -1..1. Passing any left/right buffer makes the
        frame stereo.
        """

        def freq(buf):
            return None if buf is None else np.asarray(buf, dtype=np.float64) / 255.0

        def wave(buf):
            return None if buf is None else (np.asarray(buf, dtype=np.float64) - 128.0) / 128.0

        stereo = any(
            b is not None for b in (frequency_left, frequency_right, time_left, time_right)
        )
        return cls(
            frequency=freq(frequency),
            time=wave(time),
            sample_rate=sample_rate,
            channels=2 if stereo else 1,
            frequency_left=freq(frequency_left),
            frequency_right=freq(frequency_right),
            time_left=wave(time_left),
            time_right=wave(time_right),
        )

    @classmethod
    def from_float(
        cls,
        frequency: np.ndarray,
        time: np.ndarray,
        sample_rate: int,
        frequency_left: np.ndarray | None = None,
        frequency_right: np.ndarray | None = None,
        time_left: np.ndarray | None = None,
        time_right: np.ndarray | None = None,
    ) -> "AudioFrame":
        """Build a frame from buffers already scaled to [0, 1] / [-1, 1]."""

        def arr(buf):
            return None if buf is None else np.asarray(buf, dtype=np.float64)

        stereo = any(
            b is not None for b in (frequency_left, frequency_right, time_left, time_right)
        )
        return cls(
            frequency=arr(frequency),
            time=arr(time),
            sample_rate=sample_rate,
            channels=2 if stereo else 1,
            frequency_left=arr(frequency_left),
            frequency_right=arr(frequency_right),
            time_left=arr(time_left),
            time_right=arr(time_right),
        )
