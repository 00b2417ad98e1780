"""
Metric identifiers and the MetricSet container.

A MetricSet carries one tick's worth of mix-quality metrics. Three live
instances exist per session: raw (this tick), smoothed (persisted) and
normalized (derived from smoothed plus the adaptive bounds).
"""

from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any

import numpy as np

from mixscope.params import to_snake


class MetricId(str, Enum):
    """Closed set of metrics a modulation slot may read."""

    RMS = "rms"
    BASS = "bass"
    MID = "mid"
    HIGH = "high"
    PRESENCE = "presence"
    HARSHNESS = "harshness"
    MUD = "mud"
    COMPRESSION = "compression"
    COLLISION = "collision"
    COHERENCE = "coherence"
    STEREO_WIDTH = "stereo_width"
    PHASE_RISK = "phase_risk"
    LOW_IMBALANCE = "low_imbalance"
    EMPTINESS = "emptiness"
    PAN_POSITION = "pan_position"

    @classmethod
    def parse(cls, name: "str | MetricId") -> "MetricId":
        """
        Resolve a metric name written in snake_case or camelCase.

        Raises:
            ValueError: If the name is not a known metric.
        """
        if isinstance(name, cls):
            return name
        try:
            return cls(name)
        except ValueError:
            pass
        try:
            return cls(to_snake(str(name)))
        except ValueError:
            raise ValueError(f"Unknown audio metric: {name!r}") from None

    @property
    def label(self) -> str:
        return METRIC_LABELS[self]

    @property
    def stereo_only(self) -> bool:
        return self in STEREO_METRICS


METRIC_LABELS: dict[MetricId, str] = {
    MetricId.RMS: "RMS Level",
    MetricId.BASS: "Bass",
    MetricId.MID: "Mid",
    MetricId.HIGH: "High",
    MetricId.PRESENCE: "Presence",
    MetricId.HARSHNESS: "Harshness",
    MetricId.MUD: "Mud",
    MetricId.COMPRESSION: "Compression",
    MetricId.COLLISION: "Collision",
    MetricId.COHERENCE: "Coherence",
    MetricId.STEREO_WIDTH: "Stereo Width",
    MetricId.PHASE_RISK: "Phase Risk",
    MetricId.LOW_IMBALANCE: "Low Imbalance",
    MetricId.EMPTINESS: "Emptiness",
    MetricId.PAN_POSITION: "Pan Position",
}

STEREO_METRICS = frozenset(
    {MetricId.STEREO_WIDTH, MetricId.PHASE_RISK, MetricId.PAN_POSITION}
)

# MetricSet fields that only exist while capture is stereo
STEREO_FIELDS = ("phase_risk", "stereo_width", "pan_position")

# Fields whose natural range is -1..1
BIPOLAR_FIELDS = ("pan_position",)

BAND_NAMES = ("low", "mid", "high")


def _zeros3() -> np.ndarray:
    return np.zeros(3, dtype=np.float64)


@dataclass
class MetricSet:
    """
    One tick of mix-quality metrics.

    Scalars are floats, band-split metrics are arrays of shape (3,)
    ordered low/mid/high. Stereo-only fields are None while capture is mono.
    """

    amplitude: float = 0.0
    band_energy: np.ndarray = field(default_factory=_zeros3)
    harshness: float = 0.0
    mud: float = 0.0
    compression: float = 0.0
    collision: float = 0.0
    low_imbalance: float = 0.0
    emptiness: float = 0.0
    coherence: float = 1.0

    # Stereo only
    phase_risk: float | None = None
    stereo_width: np.ndarray | None = None
    pan_position: np.ndarray | None = None  # -1 (left) .. 1 (right) per band

    @classmethod
    def neutral(cls) -> "MetricSet":
        """Placeholder substituted while capture is disabled."""
        return cls(
            amplitude=0.5,
            band_energy=np.full(3, 0.5),
            coherence=1.0,
            phase_risk=0.0,
            stereo_width=_zeros3(),
            pan_position=_zeros3(),
        )

    @classmethod
    def field_names(cls) -> tuple[str, ...]:
        return tuple(f.name for f in fields(cls))

    @property
    def is_stereo(self) -> bool:
        return self.phase_risk is not None

    def copy(self) -> "MetricSet":
        values = {}
        for name in self.field_names():
            value = getattr(self, name)
            values[name] = value.copy() if isinstance(value, np.ndarray) else value
        return MetricSet(**values)

    def value(self, metric: MetricId) -> float | None:
        """
        Flat scalar view of one metric, as read by modulation slots.

        Pan is remapped from -1..1 to 0..1 so that 0.5 is centre.

        Returns:
            The metric value, or None if it is absent for this channel mode.
        """
        band = self.band_energy
        if metric is MetricId.RMS:
            return float(self.amplitude)
        if metric is MetricId.BASS:
            return float(band[0])
        if metric is MetricId.MID:
            return float(band[1])
        if metric is MetricId.HIGH:
            return float(band[2])
        if metric is MetricId.PRESENCE:
            return float((band[1] + band[2]) / 2.0)
        if metric is MetricId.STEREO_WIDTH:
            if self.stereo_width is None:
                return None
            return float(np.mean(self.stereo_width))
        if metric is MetricId.PAN_POSITION:
            if self.pan_position is None:
                return None
            return float((np.mean(self.pan_position) + 1.0) / 2.0)
        if metric is MetricId.PHASE_RISK:
            return None if self.phase_risk is None else float(self.phase_risk)
        if metric is MetricId.HARSHNESS:
            return float(self.harshness)
        if metric is MetricId.MUD:
            return float(self.mud)
        if metric is MetricId.COMPRESSION:
            return float(self.compression)
        if metric is MetricId.COLLISION:
            return float(self.collision)
        if metric is MetricId.COHERENCE:
            return float(self.coherence)
        if metric is MetricId.LOW_IMBALANCE:
            return float(self.low_imbalance)
        if metric is MetricId.EMPTINESS:
            return float(self.emptiness)
        raise ValueError(f"Unhandled metric: {metric!r}")

    def flat(self) -> dict[str, float]:
        """Every metric present in this set, keyed by MetricId value."""
        out = {}
        for metric in MetricId:
            value = self.value(metric)
            if value is not None:
                out[metric.value] = value
        return out

    def to_dict(self) -> dict[str, Any]:
        """Structured form with band vectors as lists; absent fields omitted."""
        out: dict[str, Any] = {}
        for name in self.field_names():
            value = getattr(self, name)
            if value is None:
                continue
            if isinstance(value, np.ndarray):
                out[name] = [float(v) for v in value]
            else:
                out[name] = float(value)
        return out
