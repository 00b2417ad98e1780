"""
Validation models for modulation configuration.

Every external payload (imported JSON, direct slot edits) passes through
these pydantic models before it may touch router state. Keys are accepted
in snake_case or camelCase.
"""

import json
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from mixscope.core.metrics import MetricId
from mixscope.modulation.slots import (
    ModulationSlot,
    ParameterModulation,
    is_legacy_mapping,
    migrate_legacy_mapping,
)
from mixscope.params import resolve_param_name


class ModulationConfigError(ValueError):
    """A modulation payload failed validation."""


class _Payload(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        allow_inf_nan=False,
        extra="forbid",
    )


class SlotPayload(_Payload):
    source: MetricId = Field(
        validation_alias=AliasChoices("source", "sourceMetric", "source_metric"),
    )
    amount: float = Field(0.5, ge=0.0, le=1.0)
    curve: float = Field(1.0, gt=0.0)
    invert: bool = False
    smoothing: float = Field(0.5, ge=0.0, lt=1.0)
    multiplier: float = 1.0
    offset: float = 0.0
    range_min: float = 0.0
    range_max: float = 1.0
    muted: bool = False
    solo: bool = False
    locked: bool = False

    @field_validator("source", mode="before")
    @classmethod
    def _parse_source(cls, value: Any) -> MetricId:
        return MetricId.parse(value)

    def to_slot(self) -> ModulationSlot:
        return ModulationSlot(**self.model_dump())


class ModulationPayload(_Payload):
    enabled: bool = False
    slots: list[SlotPayload] = Field(default_factory=list)

    def to_modulation(self) -> ParameterModulation:
        return ParameterModulation(
            enabled=self.enabled,
            slots=[slot.to_slot() for slot in self.slots],
        )


class LegacyMappingPayload(_Payload):
    """Older flat format: one source per parameter."""

    # Old exports carry keys (minValue, maxValue, ...) that have no slot field
    model_config = ConfigDict(extra="ignore")

    enabled: bool = False
    source: MetricId | None = None
    sensitivity: float = Field(0.5, ge=0.0)  # clamped to 1 on upgrade
    smoothing: float = Field(0.5, ge=0.0, lt=1.0)
    multiplier: float = 1.0
    offset: float = 0.0
    invert: bool = False

    @field_validator("source", mode="before")
    @classmethod
    def _parse_source(cls, value: Any) -> MetricId | None:
        return None if value is None else MetricId.parse(value)


def validate_slot(data: ModulationSlot | dict[str, Any]) -> ModulationSlot:
    """
    Validate a slot, returning a fresh ModulationSlot.

    Raises:
        pydantic.ValidationError: On an unknown metric or out-of-range
            field (a ValueError subclass).
    """
    if isinstance(data, ModulationSlot):
        data = data.to_dict()
    return SlotPayload.model_validate(data).to_slot()


def _validate_entry(param: str, entry: Any) -> ParameterModulation:
    if isinstance(entry, ParameterModulation):
        entry = entry.to_dict()
    if not isinstance(entry, dict):
        raise ModulationConfigError(f"Mapping for {param!r} must be an object")

    if is_legacy_mapping(entry):
        legacy = LegacyMappingPayload.model_validate(entry)
        return migrate_legacy_mapping(legacy.model_dump(exclude_none=True), param)
    return ModulationPayload.model_validate(entry).to_modulation()


def parse_mappings(payload: str | dict[str, Any]) -> dict[str, ParameterModulation]:
    """
    Validate a whole mapping table.

    Accepts a JSON string or an already-decoded mapping of parameter name
    to modulation entry. Each entry may be in the slot format or the older
    flat format, which is upgraded.

    Args:
        payload: JSON text or dict.

    Returns:
        Parameter name (snake_case) to validated ParameterModulation.

    Raises:
        ModulationConfigError: If anything in the payload is invalid.
    """
    if isinstance(payload, (str, bytes)):
        try:
            payload = json.loads(payload)
        except json.JSONDecodeError as e:
            raise ModulationConfigError(f"Invalid JSON: {e}") from e

    if not isinstance(payload, dict):
        raise ModulationConfigError("Mappings payload must be an object")

    parsed: dict[str, ParameterModulation] = {}
    for name, entry in payload.items():
        try:
            param = resolve_param_name(str(name))
            modulation = _validate_entry(param, entry)
        except ModulationConfigError:
            raise
        except (ValidationError, ValueError, TypeError) as e:
            raise ModulationConfigError(f"Invalid mapping for {name!r}: {e}") from e

        parsed[param] = modulation
    return parsed
