"""
Modulation slot model.

A visual parameter carries a ParameterModulation: an enabled flag and an
ordered list of slots, each reading one audio metric and shaping it into
an additive offset. Also holds the factories used to build default
configuration and to upgrade the older one-source-per-parameter format.
"""

from dataclasses import asdict, dataclass, field, replace
from typing import Any

from mixscope.core.metrics import MetricId
from mixscope.params import ALL_MAPPABLE_PARAMS, PARAM_RANGES


@dataclass
class ModulationSlot:
    """One metric-to-offset route and its shaping controls."""

    source: MetricId
    amount: float = 0.5       # input gain, 0..1
    curve: float = 1.0        # power exponent, > 0
    invert: bool = False
    smoothing: float = 0.5    # EMA retain factor, 0..1
    multiplier: float = 1.0
    offset: float = 0.0
    range_min: float = 0.0
    range_max: float = 1.0
    muted: bool = False
    solo: bool = False
    locked: bool = False      # protected from randomization

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["source"] = self.source.value
        return data


@dataclass
class ParameterModulation:
    """All modulation routed into one visual parameter."""

    enabled: bool = False
    slots: list[ModulationSlot] = field(default_factory=list)

    def copy(self) -> "ParameterModulation":
        return ParameterModulation(
            enabled=self.enabled,
            slots=[replace(slot) for slot in self.slots],
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "enabled": self.enabled,
            "slots": [slot.to_dict() for slot in self.slots],
        }


# Default metric driving each parameter
DEFAULT_AUDIO_SOURCES: dict[str, MetricId] = {
    "spikiness": MetricId.COLLISION,
    "spike_frequency": MetricId.RMS,
    "spike_sharpness": MetricId.HARSHNESS,
    "hue": MetricId.MID,
    "scale": MetricId.COMPRESSION,
    "expansion_factor": MetricId.BASS,
    "fade_amount": MetricId.MUD,
    "hue_shift_amount": MetricId.PHASE_RISK,
    "rotation": MetricId.STEREO_WIDTH,
    "fill_size": MetricId.RMS,
    "fill_opacity": MetricId.COHERENCE,
    "blend_opacity": MetricId.MUD,
    "auto_rotation_speed": MetricId.HIGH,
    "noise_amount": MetricId.HARSHNESS,
    "noise_rate": MetricId.PRESENCE,
    "blur_amount": MetricId.MUD,
    "blur_rate": MetricId.BASS,
    "jiggle_amount": MetricId.RMS,
}

ENABLED_BY_DEFAULT = ("scale", "spikiness", "fill_size")


def default_source(param: str) -> MetricId:
    return DEFAULT_AUDIO_SOURCES.get(param, MetricId.RMS)


def natural_range(param: str | None) -> tuple[float, float]:
    """Output range a fresh slot gets for a parameter; [0, 1] if unknown."""
    rng = PARAM_RANGES.get(param) if param else None
    if rng is None:
        return 0.0, 1.0
    return rng.min, rng.max


def create_default_slot(
    source: MetricId | str = MetricId.RMS,
    param: str | None = None,
) -> ModulationSlot:
    """
    Build a slot with default shaping.

    Args:
        source: Metric the slot reads.
        param: Target parameter; when given, the output range is the
               parameter's natural range instead of [0, 1].
    """
    range_min, range_max = natural_range(param)
    return ModulationSlot(
        source=MetricId.parse(source),
        range_min=range_min,
        range_max=range_max,
    )


def create_default_modulation(param: str | None = None) -> ParameterModulation:
    """Disabled modulation with a single default slot."""
    source = default_source(param) if param else MetricId.RMS
    return ParameterModulation(enabled=False, slots=[create_default_slot(source, param)])


def create_default_mappings() -> dict[str, ParameterModulation]:
    """One slot per mappable parameter; a few parameters start enabled."""
    mappings = {}
    for param in ALL_MAPPABLE_PARAMS:
        modulation = create_default_modulation(param)
        modulation.enabled = param in ENABLED_BY_DEFAULT
        mappings[param] = modulation
    return mappings


def normalize_slot(slot: ModulationSlot) -> ModulationSlot:
    """Return a copy with shaping fields coerced into their valid domains."""
    return replace(
        slot,
        source=MetricId.parse(slot.source),
        amount=min(1.0, max(0.0, float(slot.amount))),
        curve=float(slot.curve) if slot.curve > 0 else 1.0,
        smoothing=min(0.99, max(0.0, float(slot.smoothing))),
        multiplier=float(slot.multiplier),
        offset=float(slot.offset),
        range_min=float(slot.range_min),
        range_max=float(slot.range_max),
        invert=bool(slot.invert),
        muted=bool(slot.muted),
        solo=bool(slot.solo),
        locked=bool(slot.locked),
    )


def is_legacy_mapping(entry: dict[str, Any]) -> bool:
    """True for the older flat format: one source and a sensitivity, no slots."""
    return "slots" not in entry and ("sensitivity" in entry or "source" in entry)


def migrate_legacy_mapping(entry: dict[str, Any], param: str) -> ParameterModulation:
    """
    Upgrade one flat mapping to a single-slot ParameterModulation.

    Sensitivity becomes amount, the curve is linear and the output range
    is the parameter's natural range. Multiplier and offset carry over.

    Args:
        entry: Legacy mapping with keys such as source, sensitivity,
               smoothing, invert, multiplier, offset and enabled.
        param: Parameter the mapping targets.
    """
    range_min, range_max = natural_range(param)
    slot = ModulationSlot(
        source=MetricId.parse(entry.get("source", default_source(param))),
        amount=float(entry.get("sensitivity", 0.5)),
        curve=1.0,
        invert=bool(entry.get("invert", False)),
        smoothing=float(entry.get("smoothing", 0.5)),
        multiplier=float(entry.get("multiplier", 1.0)),
        offset=float(entry.get("offset", 0.0)),
        range_min=range_min,
        range_max=range_max,
    )
    return ParameterModulation(
        enabled=bool(entry.get("enabled", False)),
        slots=[normalize_slot(slot)],
    )


def migrate_legacy_mappings(
    entries: dict[str, dict[str, Any]],
) -> dict[str, ParameterModulation]:
    """Upgrade every legacy entry of a flat mapping table."""
    return {param: migrate_legacy_mapping(entry, param) for param, entry in entries.items()}
