"""
Analysis configuration.

Holds every tunable of the per-tick pipeline in one place so that the
extractor, smoother, normalizer and buffer sources agree on the same
resolution and timing.
"""

from dataclasses import dataclass


@dataclass
class AnalysisConfig:
    """Tunables shared by the whole feature-extraction pipeline."""

    # Analysis resolution
    fft_size: int = 2048
    sample_rate: int = 44100
    target_fps: int = 60

    # Temporal smoothing (EMA retain factor, one value for every metric)
    smoothing_factor: float = 0.75

    # Adaptive min/max normalization
    history_window: int = 1800  # ~30 s at 60 Hz
    min_history: int = 10       # cold-start guard
    bounds_retain: float = 0.99
    bounds_epsilon: float = 0.001

    # AnalyserNode emulation (buffer source side)
    analyser_smoothing: float = 0.8
    min_decibels: float = -100.0
    max_decibels: float = -30.0

    @property
    def bin_count(self) -> int:
        """Number of frequency bins produced per tick."""
        return self.fft_size // 2

    def compute_hop_length(self, sr: int | None = None) -> int:
        """
        Samples to advance per tick to hit the target frame rate.

        Args:
            sr: Sample rate. Defaults to the configured rate.

        Returns:
            Hop length in samples.
        """
        fps = self.target_fps or 60
        return max(1, int((sr or self.sample_rate) / fps))
