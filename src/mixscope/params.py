"""
Visual parameter registry.

Defaults and natural ranges for every visual parameter the modulation
router can target. The renderer owns the live values; this module only
describes them so that slot ranges, legacy upgrades and clamping agree.
"""

import re
from dataclasses import dataclass


@dataclass(frozen=True)
class ParamRange:
    """Valid range of a visual parameter."""

    min: float
    max: float
    step: float
    default: float


PARAM_RANGES: dict[str, ParamRange] = {
    # Shape
    "spikiness": ParamRange(0.0, 1.0, 0.01, 0.5),
    "spike_frequency": ParamRange(2.0, 20.0, 0.1, 6.0),
    "spike_sharpness": ParamRange(0.0, 1.0, 0.01, 0.5),
    "scale": ParamRange(0.1, 2.0, 0.01, 0.5),
    "rotation": ParamRange(0.0, 360.0, 1.0, 0.0),
    "auto_rotation_speed": ParamRange(-180.0, 180.0, 1.0, 0.0),
    "hue": ParamRange(0.0, 360.0, 1.0, 180.0),
    "blend_opacity": ParamRange(0.0, 1.0, 0.01, 1.0),
    "fill_size": ParamRange(0.0, 1.0, 0.01, 0.0),
    "fill_opacity": ParamRange(0.0, 1.0, 0.01, 0.0),
    # Dilation / emanation
    "expansion_factor": ParamRange(1.001, 1.02, 0.001, 1.003),
    "fade_amount": ParamRange(0.0, 5.0, 0.1, 2.0),
    "hue_shift_amount": ParamRange(0.0, 0.5, 0.01, 0.1),
    "noise_amount": ParamRange(0.0, 1.0, 0.01, 0.0),
    "noise_rate": ParamRange(0.0, 2.0, 0.1, 0.0),
    "blur_amount": ParamRange(0.0, 1.0, 0.01, 0.0),
    "blur_rate": ParamRange(0.0, 2.0, 0.1, 0.0),
    "jiggle_amount": ParamRange(0.0, 1.0, 0.01, 0.0),
    "emanation_rate": ParamRange(2.0, 200.0, 1.0, 30.0),
}

ALL_MAPPABLE_PARAMS: tuple[str, ...] = tuple(PARAM_RANGES)

_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")


def to_snake(name: str) -> str:
    """Convert a camelCase identifier to snake_case."""
    return _CAMEL_BOUNDARY.sub("_", name).lower()


def resolve_param_name(name: str) -> str:
    """
    Resolve a parameter name written in snake_case or camelCase.

    Raises:
        ValueError: If the name is not a known visual parameter.
    """
    key = name if name in PARAM_RANGES else to_snake(name)
    if key not in PARAM_RANGES:
        raise ValueError(f"Unknown visual parameter: {name!r}")
    return key


def clamp_param(name: str, value: float) -> float:
    """Clamp a value to a parameter's valid range."""
    rng = PARAM_RANGES[name]
    return max(rng.min, min(rng.max, value))


def create_default_params() -> dict[str, float]:
    """Return a fresh mapping of every parameter to its default value."""
    return {name: rng.default for name, rng in PARAM_RANGES.items()}
