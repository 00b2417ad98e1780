"""
Signal smoothing and normalization module.

Turns raw per-tick metrics into smoothed metrics that do not flicker, and
smoothed metrics into normalized 0..1 values relative to what this
particular signal has recently done.
"""

from collections import deque
from dataclasses import dataclass, field

import numpy as np

from mixscope.config import AnalysisConfig
from mixscope.core.metrics import BIPOLAR_FIELDS, MetricSet

_VECTOR_FIELDS = ("band_energy", "stereo_width", "pan_position")


def ema(current: float, target: float, factor: float) -> float:
    """One exponential moving average step; factor is the share retained."""
    return current * factor + target * (1.0 - factor)


class TemporalSmoother:
    """
    Exponential smoothing of a whole MetricSet with a single factor.

    The first update after reset() snaps to the raw values. A stereo field
    seen for the first time mid-session is snapped as well.
    """

    def __init__(self, factor: float = 0.75):
        """
        Initialize the smoother.

        Args:
            factor: Share of the previous value retained each tick, in [0, 1).
        """
        if not 0.0 <= factor < 1.0:
            raise ValueError(f"Smoothing factor must be in [0, 1), got {factor}")
        self.factor = factor
        self._state: MetricSet | None = None

    @property
    def smoothed(self) -> MetricSet | None:
        """The persisted smoothed set, or None before the first update."""
        return self._state

    def reset(self) -> None:
        self._state = None

    def update(self, raw: MetricSet) -> MetricSet:
        """
        Blend a raw set into the smoothed state.

        Args:
            raw: This tick's raw metrics.

        Returns:
            A copy of the updated smoothed set.
        """
        if self._state is None:
            self._state = raw.copy()
            return self._state.copy()

        state = self._state
        for name in MetricSet.field_names():
            target = getattr(raw, name)
            current = getattr(state, name)

            if target is None:
                # Absent in this channel mode
                setattr(state, name, None)
                continue
            if current is None:
                setattr(state, name, np.copy(target) if name in _VECTOR_FIELDS else target)
                continue

            if name in _VECTOR_FIELDS:
                setattr(state, name, ema(np.asarray(current), np.asarray(target), self.factor))
            else:
                setattr(state, name, ema(float(current), float(target), self.factor))

        return state.copy()


@dataclass
class MinMaxBounds:
    """Slowly adapting range of one metric component."""

    min: float = 0.0
    max: float = 1.0
    history: deque = field(default_factory=lambda: deque(maxlen=1800))

    def window_spread(self) -> float:
        if not self.history:
            return 0.0
        return max(self.history) - min(self.history)


class AdaptiveNormalizer:
    """
    Maps smoothed metrics to 0..1 against adaptive per-component bounds.

    Each scalar metric and each band component keeps its own history window.
    Once the cold-start guard is met, the persisted bounds drift a small
    fraction of the way toward the window's extremes every tick.
    """

    def __init__(self, config: AnalysisConfig | None = None):
        self.config = config or AnalysisConfig()
        self._bounds: dict[tuple[str, int | None], MinMaxBounds] = {}

    def reset(self) -> None:
        """Forget all history and return bounds to [0, 1]."""
        self._bounds.clear()

    def _get(self, key: tuple[str, int | None]) -> MinMaxBounds:
        bounds = self._bounds.get(key)
        if bounds is None:
            bounds = MinMaxBounds(history=deque(maxlen=self.config.history_window))
            self._bounds[key] = bounds
        return bounds

    def bounds(self, name: str, index: int | None = None) -> tuple[float, float]:
        """
        Current (min, max) of one metric component.

        Args:
            name: MetricSet field name.
            index: Band index for vector fields.

        Returns:
            Copy of the bounds; (0.0, 1.0) if the component was never seen.
        """
        bounds = self._bounds.get((name, index))
        if bounds is None:
            return 0.0, 1.0
        return bounds.min, bounds.max

    def history_length(self, name: str, index: int | None = None) -> int:
        bounds = self._bounds.get((name, index))
        return 0 if bounds is None else len(bounds.history)

    def _track(self, bounds: MinMaxBounds, value: float) -> None:
        cfg = self.config
        bounds.history.append(value)
        if len(bounds.history) < cfg.min_history:
            return

        window_min = min(bounds.history)
        window_max = max(bounds.history)
        keep = cfg.bounds_retain
        bounds.min = bounds.min * keep + window_min * (1.0 - keep)
        bounds.max = bounds.max * keep + window_max * (1.0 - keep)
        if bounds.min >= bounds.max:
            bounds.max = bounds.min + cfg.bounds_epsilon

    def _normalize(self, bounds: MinMaxBounds, value: float) -> float:
        cfg = self.config
        if bounds.max <= bounds.min:
            return 0.5
        # Flat signal: nothing to scale against
        if (
            len(bounds.history) >= cfg.min_history
            and bounds.window_spread() <= cfg.bounds_epsilon
        ):
            return 0.5
        return float(np.clip((value - bounds.min) / (bounds.max - bounds.min), 0.0, 1.0))

    def _step(self, name: str, index: int | None, value: float) -> float:
        if name in BIPOLAR_FIELDS:
            value = (value + 1.0) / 2.0
        bounds = self._get((name, index))
        self._track(bounds, value)
        return self._normalize(bounds, value)

    def update(self, smoothed: MetricSet) -> MetricSet:
        """
        Record one smoothed set and return its normalized counterpart.

        Absent stereo fields are skipped and stay absent. Pan components
        come back in 0..1 with 0.5 at centre.

        Args:
            smoothed: The current smoothed metrics.

        Returns:
            A new MetricSet with every present component in [0, 1].
        """
        out = MetricSet()
        for name in MetricSet.field_names():
            value = getattr(smoothed, name)
            if value is None:
                continue
            if name in _VECTOR_FIELDS:
                vec = np.asarray(value, dtype=np.float64)
                setattr(
                    out,
                    name,
                    np.array([self._step(name, i, float(v)) for i, v in enumerate(vec)]),
                )
            else:
                setattr(out, name, self._step(name, None, float(value)))
        return out
