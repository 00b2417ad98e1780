"""
Feature extraction module for mix analysis.

Computes perceptual mix-quality metrics from one tick of spectral and
time-domain data: loudness, spectral balance, harshness, mud, dynamic
compression, transient collision, stereo phase risk, width and pan.
"""

import numpy as np

from mixscope.core.frame import AudioFrame
from mixscope.core.metrics import MetricSet

# Band edges in Hz: low = [20, 250), mid = [250, 4000), high = [4000, nyquist]
BAND_EDGES_HZ = (20.0, 250.0, 4000.0)

# Ratios and correlations are zeroed below this energy
RATIO_FLOOR = 0.01

# Spectral flux scale, in byte units per bin
COLLISION_SCALE = 50.0

# Bins quieter than this (in byte units) count as empty
EMPTY_BIN_THRESHOLD = 10.0

IDEAL_LOW_RATIO = 0.35


def _clamp(value: float, lo: float = 0.0, hi: float = 1.0) -> float:
    return float(min(hi, max(lo, value)))


class FeatureExtractor:
    """
    Computes one raw MetricSet per tick.

    The only state kept between calls is the previous merged spectrum,
    used for transient collision.
    """

    def __init__(self):
        self._prev_frequency: np.ndarray | None = None

    def reset(self) -> None:
        """Forget the previous spectrum (capture restart)."""
        self._prev_frequency = None

    def band_bins(self, bin_count: int, sample_rate: float) -> tuple[int, int, int]:
        """
        Bin index of each band edge.

        Args:
            bin_count: Number of frequency bins.
            sample_rate: Capture sample rate.

        Returns:
            Tuple of bin indices for 20 Hz, 250 Hz and 4 kHz.
        """
        nyquist = sample_rate / 2.0
        low, mid, high = (int(np.floor(f / nyquist * bin_count)) for f in BAND_EDGES_HZ)
        return low, mid, high

    def _band_slices(self, bin_count: int, sample_rate: float) -> tuple[slice, slice, slice]:
        b20, b250, b4000 = self.band_bins(bin_count, sample_rate)
        return slice(b20, b250), slice(b250, b4000), slice(b4000, bin_count)

    def amplitude(self, time: np.ndarray) -> float:
        """RMS of the waveform, doubled and clamped to 1."""
        if len(time) == 0:
            return 0.0
        rms = float(np.sqrt(np.mean(np.square(time))))
        return min(1.0, rms * 2.0)

    def band_energy(self, frequency: np.ndarray, sample_rate: float) -> np.ndarray:
        """Mean magnitude of the low, mid and high bands."""
        out = np.zeros(3)
        for i, band in enumerate(self._band_slices(len(frequency), sample_rate)):
            values = frequency[band]
            if len(values) > 0:
                out[i] = min(1.0, float(np.mean(values)))
        return out

    @staticmethod
    def _ratio(part: float, total: float) -> float:
        return part / total if total > RATIO_FLOOR else 0.0

    def harshness(self, bands: np.ndarray) -> float:
        high = bands[2]
        ratio = self._ratio(high, float(np.sum(bands)))
        return min(1.0, (high * 0.6 + ratio * 0.4) * 1.3)

    def mud(self, bands: np.ndarray) -> float:
        mid = bands[1]
        ratio = self._ratio(mid, float(np.sum(bands)))
        return min(1.0, (mid * 0.5 + ratio * 0.5) * 1.2)

    def compression(self, time: np.ndarray, amplitude: float) -> float:
        """
        Inverse crest factor.

        A peak-to-RMS ratio of 10 or more reads as fully dynamic (0); a
        waveform whose peak equals its RMS reads as fully squashed (close to 1).

        Args:
            time: Waveform in [-1, 1].
            amplitude: Output of amplitude() for the same waveform.
        """
        peak = float(np.max(np.abs(time))) if len(time) else 0.0
        crest = peak / amplitude if amplitude > RATIO_FLOOR else 1.0
        return 1.0 - _clamp(crest / 10.0)

    def collision(self, frequency: np.ndarray) -> float:
        """Positive spectral flux against the previous tick; 0 on the first tick."""
        prev = self._prev_frequency
        self._prev_frequency = frequency.copy()
        if prev is None or len(prev) != len(frequency) or len(frequency) == 0:
            return 0.0

        rise = np.clip(frequency - prev, 0.0, None) * 255.0
        return min(1.0, float(np.sum(rise)) / (len(frequency) * COLLISION_SCALE))

    def low_imbalance(self, bands: np.ndarray) -> float:
        ratio = self._ratio(bands[0], float(np.sum(bands)))
        return min(1.0, abs(ratio - IDEAL_LOW_RATIO) * 2.0)

    def emptiness(self, frequency: np.ndarray) -> float:
        if len(frequency) == 0:
            return 0.0
        return float(np.mean(frequency * 255.0 < EMPTY_BIN_THRESHOLD))

    @staticmethod
    def _decorrelation(left: np.ndarray, right: np.ndarray) -> float:
        denom = float(np.sqrt(np.sum(left * left) * np.sum(right * right)))
        correlation = float(np.sum(left * right)) / denom if denom > RATIO_FLOOR else 0.0
        return _clamp(1.0 - correlation)

    def phase_risk(self, left: np.ndarray, right: np.ndarray) -> float:
        """1 - spectral correlation of the two channels."""
        return self._decorrelation(left, right)

    def stereo_width(
        self,
        left: np.ndarray,
        right: np.ndarray,
        sample_rate: float,
    ) -> np.ndarray:
        """Per-band decorrelation of the two channels."""
        bands = self._band_slices(len(left), sample_rate)
        return np.array([self._decorrelation(left[b], right[b]) for b in bands])

    def pan_position(
        self,
        left: np.ndarray,
        right: np.ndarray,
        sample_rate: float,
    ) -> np.ndarray:
        """Per-band balance, -1 hard left to 1 hard right."""
        out = np.zeros(3)
        for i, band in enumerate(self._band_slices(len(left), sample_rate)):
            sum_l = float(np.sum(left[band]))
            sum_r = float(np.sum(right[band]))
            total = sum_l + sum_r
            if total > RATIO_FLOOR:
                out[i] = _clamp((sum_r - sum_l) / total, -1.0, 1.0)
        return out

    def coherence(
        self,
        amplitude: float,
        harshness: float,
        mud: float,
        compression: float,
        collision: float,
        phase_risk: float,
    ) -> float:
        """Overall mix cleanliness, boosted slightly for clean audible signals."""
        value = _clamp(
            1.0
            - (
                mud * 0.25
                + harshness * 0.25
                + compression * 0.2
                + collision * 0.2
                + phase_risk * 0.1
            )
        )
        if amplitude > 0.1 and mud < 0.3 and harshness < 0.3:
            value = min(1.0, value + (1.0 - value) * 0.2)
        return value

    def extract(self, frame: AudioFrame) -> MetricSet:
        """
        Compute the raw metric set for one tick.

        Args:
            frame: Normalized buffers for this tick.

        Returns:
            MetricSet with stereo fields populated only for stereo frames.
        """
        sr = frame.sample_rate
        frequency = np.nan_to_num(np.asarray(frame.frequency, dtype=np.float64))
        time = np.nan_to_num(np.asarray(frame.time, dtype=np.float64))

        amplitude = self.amplitude(time)
        bands = self.band_energy(frequency, sr)
        harshness = self.harshness(bands)
        mud = self.mud(bands)
        compression = self.compression(time, amplitude)
        collision = self.collision(frequency)

        phase_risk = None
        stereo_width = None
        pan_position = None
        if frame.is_stereo:
            left = np.nan_to_num(np.asarray(frame.frequency_left, dtype=np.float64))
            right = np.nan_to_num(np.asarray(frame.frequency_right, dtype=np.float64))
            phase_risk = self.phase_risk(left, right)
            stereo_width = self.stereo_width(left, right, sr)
            pan_position = self.pan_position(left, right, sr)

        coherence = self.coherence(
            amplitude,
            harshness,
            mud,
            compression,
            collision,
            phase_risk or 0.0,
        )

        return MetricSet(
            amplitude=amplitude,
            band_energy=bands,
            harshness=harshness,
            mud=mud,
            compression=compression,
            collision=collision,
            low_imbalance=self.low_imbalance(bands),
            emptiness=self.emptiness(frequency),
            coherence=coherence,
            phase_risk=phase_risk,
            stereo_width=stereo_width,
            pan_position=pan_position,
        )
