"""Tests for the smoothing and normalization module."""

import numpy as np
import pytest

from mixscope.config import AnalysisConfig
from mixscope.core.metrics import MetricSet
from mixscope.core.polisher import AdaptiveNormalizer, TemporalSmoother, ema


def stereo_set(value: float = 0.5, pan: float = 0.0) -> MetricSet:
    return MetricSet(
        amplitude=value,
        band_energy=np.full(3, value),
        phase_risk=value,
        stereo_width=np.full(3, value),
        pan_position=np.full(3, pan),
    )


class TestTemporalSmoother:
    """Tests for exponential smoothing of metric sets."""

    def test_first_update_snaps(self):
        smoother = TemporalSmoother(0.75)
        result = smoother.update(MetricSet(amplitude=0.8, harshness=0.4))

        assert result.amplitude == 0.8
        assert result.harshness == 0.4

    def test_ema_step(self):
        """s <- s * f + r * (1 - f)"""
        smoother = TemporalSmoother(0.75)
        smoother.update(MetricSet(amplitude=0.0, band_energy=np.zeros(3)))
        result = smoother.update(MetricSet(amplitude=1.0, band_energy=np.ones(3)))

        assert result.amplitude == pytest.approx(0.25)
        assert np.allclose(result.band_energy, 0.25)

    @pytest.mark.parametrize("factor", [0.0, 0.3, 0.75, 0.99])
    def test_converges_without_overshoot(self, factor):
        """Repeated steps toward a constant approach it monotonically."""
        value = 0.0
        previous = value
        for _ in range(2000):
            value = ema(value, 1.0, factor)
            assert previous - 1e-12 <= value <= 1.0 + 1e-12
            previous = value

        assert value == pytest.approx(1.0, abs=1e-6)

    def test_invalid_factor_rejected(self):
        with pytest.raises(ValueError):
            TemporalSmoother(1.0)

    def test_reset_snaps_again(self):
        smoother = TemporalSmoother(0.75)
        smoother.update(MetricSet(amplitude=0.0))
        smoother.reset()
        result = smoother.update(MetricSet(amplitude=1.0))

        assert result.amplitude == 1.0

    def test_absent_stereo_stays_absent(self):
        smoother = TemporalSmoother(0.5)
        smoother.update(MetricSet(amplitude=0.2))
        result = smoother.update(MetricSet(amplitude=0.4))

        assert result.phase_risk is None
        assert result.stereo_width is None
        assert result.pan_position is None

    def test_stereo_field_snaps_on_first_appearance(self):
        smoother = TemporalSmoother(0.5)
        smoother.update(MetricSet(amplitude=0.0))
        result = smoother.update(stereo_set(0.8, pan=-0.6))

        assert result.amplitude == pytest.approx(0.4)
        assert result.phase_risk == 0.8
        assert np.allclose(result.stereo_width, 0.8)
        assert np.allclose(result.pan_position, -0.6)

    def test_returned_set_is_a_copy(self):
        smoother = TemporalSmoother(0.5)
        result = smoother.update(MetricSet(band_energy=np.ones(3)))
        result.band_energy[0] = 42.0

        assert smoother.smoothed.band_energy[0] == 1.0


class TestAdaptiveNormalizer:
    """Tests for adaptive min/max normalization."""

    @pytest.fixture
    def normalizer(self):
        return AdaptiveNormalizer(AnalysisConfig())

    def test_initial_bounds(self, normalizer):
        assert normalizer.bounds("amplitude") == (0.0, 1.0)
        assert normalizer.bounds("band_energy", 2) == (0.0, 1.0)

    def test_cold_start_uses_initial_bounds(self, normalizer):
        """Before ten ticks the bounds stay [0, 1]."""
        for _ in range(9):
            result = normalizer.update(MetricSet(amplitude=0.3))

        assert result.amplitude == pytest.approx(0.3)
        assert normalizer.bounds("amplitude") == (0.0, 1.0)

    def test_constant_input_normalizes_to_half(self, normalizer):
        for _ in range(10):
            result = normalizer.update(MetricSet(amplitude=0.3, band_energy=np.full(3, 0.8)))

        assert result.amplitude == 0.5
        assert np.allclose(result.band_energy, 0.5)

    def test_constant_input_stays_at_half(self, normalizer):
        for _ in range(500):
            result = normalizer.update(MetricSet(harshness=0.7))

        assert result.harshness == 0.5

    def test_bounds_drift_one_percent(self, normalizer):
        values = np.linspace(0.2, 0.6, 10)
        for v in values:
            normalizer.update(MetricSet(amplitude=float(v)))

        lo, hi = normalizer.bounds("amplitude")
        assert lo == pytest.approx(0.0 * 0.99 + 0.2 * 0.01)
        assert hi == pytest.approx(1.0 * 0.99 + 0.6 * 0.01)

    def test_rising_input_tracked(self, normalizer):
        """The tracked max eventually exceeds the 90th percentile of recent values."""
        values = np.linspace(0.0, 3.0, 3000)
        for v in values:
            normalizer.update(MetricSet(amplitude=float(v)))

        recent = values[-normalizer.config.history_window:]
        _, hi = normalizer.bounds("amplitude")
        assert hi > np.percentile(recent, 90)

    def test_min_below_max_always(self, normalizer):
        rng = np.random.default_rng(0)
        for v in rng.random(300):
            normalizer.update(MetricSet(mud=float(v)))
            lo, hi = normalizer.bounds("mud")
            assert lo < hi

    def test_output_clamped(self, normalizer):
        for i in range(20):
            normalizer.update(MetricSet(collision=0.1 + 0.01 * i))
        result = normalizer.update(MetricSet(collision=5.0))

        assert result.collision == 1.0

    def test_history_capped(self):
        normalizer = AdaptiveNormalizer(AnalysisConfig(history_window=50))
        for i in range(120):
            normalizer.update(MetricSet(amplitude=i / 120))

        assert normalizer.history_length("amplitude") == 50

    def test_pan_remapped(self, normalizer):
        """Centre pan reads as 0.5 while bounds are still [0, 1]."""
        result = normalizer.update(stereo_set(pan=0.0))

        assert np.allclose(result.pan_position, 0.5)

    def test_hard_left_pan(self, normalizer):
        result = normalizer.update(stereo_set(pan=-1.0))

        assert np.allclose(result.pan_position, 0.0)

    def test_mono_skips_stereo_fields(self, normalizer):
        result = normalizer.update(MetricSet(amplitude=0.5))

        assert result.phase_risk is None
        assert result.pan_position is None
        assert normalizer.history_length("phase_risk") == 0

    def test_reset(self, normalizer):
        for v in np.linspace(0.2, 0.3, 30):
            normalizer.update(MetricSet(amplitude=float(v)))
        normalizer.reset()

        assert normalizer.bounds("amplitude") == (0.0, 1.0)
        assert normalizer.history_length("amplitude") == 0

    def test_all_outputs_in_unit_range(self, normalizer):
        rng = np.random.default_rng(1)
        for _ in range(100):
            result = normalizer.update(stereo_set(float(rng.random()), pan=float(rng.uniform(-1, 1))))

        for value in result.flat().values():
            assert 0.0 <= value <= 1.0
