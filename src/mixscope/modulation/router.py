"""
Modulation router.

Routes smoothed audio metrics through per-parameter slot lists and
produces one additive offset per enabled visual parameter each tick.
"""

import json
from dataclasses import replace
from typing import Any, NamedTuple

import numpy as np
import structlog

from mixscope.core.metrics import METRIC_LABELS, MetricId, MetricSet
from mixscope.modulation.schema import ModulationConfigError, parse_mappings, validate_slot
from mixscope.modulation.slots import (
    ModulationSlot,
    ParameterModulation,
    create_default_mappings,
    create_default_modulation,
    create_default_slot,
    default_source,
    natural_range,
)
from mixscope.params import (
    ALL_MAPPABLE_PARAMS,
    PARAM_RANGES,
    ParamRange,
    resolve_param_name,
    to_snake,
)

logger = structlog.get_logger()


class ActiveRoute(NamedTuple):
    """A slot on an enabled parameter."""

    param: str
    slot_index: int
    slot: ModulationSlot


class ModulationRouter:
    """
    Multi-slot modulation matrix.

    Each slot shapes its metric in a fixed order: amount, clamp, power
    curve, inversion, temporal smoothing, linear transform with clamp, and
    finally scaling into the slot's output range. Included slot outputs on
    a parameter are summed into that parameter's delta.

    Smoothing accumulators are keyed by (parameter, slot index) and kept in
    step with slot insertion and removal.
    """

    def __init__(self, mappings: dict[str, ParameterModulation] | None = None):
        """
        Initialize the router.

        Args:
            mappings: Initial configuration. Defaults to one slot per
                      mappable parameter with a few parameters enabled.
        """
        self._mappings: dict[str, ParameterModulation] = {}
        self._accumulators: dict[tuple[str, int], float] = {}
        self._enabled = True
        if mappings is None:
            self._mappings = create_default_mappings()
        else:
            self.set_mappings(mappings)

    # ------------------------------------------------------------------
    # Per-tick evaluation
    # ------------------------------------------------------------------

    def _shape(self, param: str, index: int, slot: ModulationSlot, value: float) -> float:
        v = min(1.0, max(0.0, value * slot.amount))
        if slot.curve != 1.0:
            v = v ** slot.curve
        if slot.invert:
            v = 1.0 - v

        key = (param, index)
        prev = self._accumulators.get(key)
        if prev is not None:
            v = prev * slot.smoothing + v * (1.0 - slot.smoothing)
        self._accumulators[key] = v

        v = min(1.0, max(0.0, v * slot.multiplier + slot.offset))
        return slot.range_min + v * (slot.range_max - slot.range_min)

    @staticmethod
    def _included(modulation: ParameterModulation) -> list[tuple[int, ModulationSlot]]:
        slots = list(enumerate(modulation.slots))
        if any(slot.solo for _, slot in slots):
            return [(i, slot) for i, slot in slots if slot.solo]
        return [(i, slot) for i, slot in slots if not slot.muted]

    def compute_deltas(self, metrics: MetricSet | None) -> dict[str, float]:
        """
        Offsets for every enabled parameter.

        Args:
            metrics: Smoothed metrics for this tick.

        Returns:
            Parameter name to summed slot output; empty if the router is
            disabled or no metrics are available.
        """
        if not self._enabled or metrics is None:
            return {}

        deltas = {}
        for param, modulation in self._mappings.items():
            if not modulation.enabled:
                continue
            total = 0.0
            for index, slot in self._included(modulation):
                value = metrics.value(slot.source)
                if value is None or not np.isfinite(value):
                    continue
                total += self._shape(param, index, slot, value)
            deltas[param] = total
        return deltas

    def apply_mappings(
        self,
        base_params: dict[str, float],
        metrics: MetricSet | None,
        ranges: dict[str, ParamRange] = PARAM_RANGES,
    ) -> dict[str, float]:
        """
        Evaluate this tick's deltas and add them to base parameter values.

        Advances slot smoothing, so call it at most once per tick. To reuse
        deltas already computed this tick, use apply_deltas().

        Args:
            base_params: Current visual parameter values.
            metrics: Smoothed metrics for this tick.
            ranges: Ranges to clamp modulated parameters into.

        Returns:
            Values for the modulated parameters only.
        """
        return self.apply_deltas(base_params, self.compute_deltas(metrics), ranges)

    @staticmethod
    def apply_deltas(
        base_params: dict[str, float],
        deltas: dict[str, float],
        ranges: dict[str, ParamRange] = PARAM_RANGES,
    ) -> dict[str, float]:
        """
        Add precomputed deltas to base values, clamped to each parameter's range.

        A parameter missing from base_params starts from its default.

        Returns:
            Values for the parameters present in deltas only.
        """
        result = {}
        for param, delta in deltas.items():
            rng = ranges.get(param)
            base = base_params.get(param, rng.default if rng else 0.0)
            value = base + delta
            if rng is not None:
                value = max(rng.min, min(rng.max, value))
            result[param] = value
        return result

    # ------------------------------------------------------------------
    # Global state
    # ------------------------------------------------------------------

    @property
    def enabled(self) -> bool:
        return self._enabled

    def set_enabled(self, enabled: bool) -> None:
        self._enabled = bool(enabled)

    def reset_smoothing(self) -> None:
        """Forget every slot accumulator."""
        self._accumulators.clear()

    def _clear_accumulators(self, param: str) -> None:
        for key in [k for k in self._accumulators if k[0] == param]:
            del self._accumulators[key]

    def accumulator(self, param: str, index: int) -> float | None:
        return self._accumulators.get((resolve_param_name(param), index))

    # ------------------------------------------------------------------
    # Parameter-level configuration
    # ------------------------------------------------------------------

    def get_modulation(self, param: str) -> ParameterModulation | None:
        modulation = self._mappings.get(resolve_param_name(param))
        return None if modulation is None else modulation.copy()

    def set_modulation(self, param: str, modulation: ParameterModulation | dict[str, Any]) -> None:
        """
        Replace one parameter's modulation.

        Raises:
            ValueError: If the modulation does not validate.
        """
        param = resolve_param_name(param)
        validated = parse_mappings({param: modulation})[param]
        self._mappings[param] = validated
        self._clear_accumulators(param)

    def update_modulation(
        self,
        param: str,
        enabled: bool | None = None,
        slots: list[ModulationSlot] | None = None,
    ) -> None:
        """Change the enabled flag and/or slot list of one parameter."""
        param = resolve_param_name(param)
        current = self._mappings.get(param) or create_default_modulation(param)
        if slots is not None:
            current = ParameterModulation(
                enabled=current.enabled,
                slots=[validate_slot(slot) for slot in slots],
            )
            self._clear_accumulators(param)
        if enabled is not None:
            current.enabled = bool(enabled)
        self._mappings[param] = current

    def is_parameter_enabled(self, param: str) -> bool:
        modulation = self._mappings.get(resolve_param_name(param))
        return modulation is not None and modulation.enabled

    # ------------------------------------------------------------------
    # Slot-level configuration
    # ------------------------------------------------------------------

    def get_slot(self, param: str, index: int) -> ModulationSlot | None:
        modulation = self._mappings.get(resolve_param_name(param))
        if modulation is None or not 0 <= index < len(modulation.slots):
            return None
        return replace(modulation.slots[index])

    def get_primary_slot(self, param: str) -> ModulationSlot | None:
        return self.get_slot(param, 0)

    def get_slot_count(self, param: str) -> int:
        modulation = self._mappings.get(resolve_param_name(param))
        return 0 if modulation is None else len(modulation.slots)

    def _new_slot(self, param: str, slot: ModulationSlot | None) -> ModulationSlot:
        if slot is None:
            return create_default_slot(default_source(param), param)
        return validate_slot(slot)

    def add_slot(self, param: str, slot: ModulationSlot | None = None) -> int:
        """
        Append a slot, creating the parameter's default entry first if needed.

        Returns:
            Index of the new slot.
        """
        param = resolve_param_name(param)
        new_slot = self._new_slot(param, slot)
        modulation = self._mappings.setdefault(param, create_default_modulation(param))
        modulation.slots.append(new_slot)
        return len(modulation.slots) - 1

    def insert_slot(self, param: str, index: int, slot: ModulationSlot | None = None) -> int:
        """
        Insert a slot at index, shifting later slots and their accumulators up.

        Returns:
            Index the slot ended up at.
        """
        param = resolve_param_name(param)
        new_slot = self._new_slot(param, slot)
        modulation = self._mappings.setdefault(param, create_default_modulation(param))
        index = max(0, min(index, len(modulation.slots)))

        moved = sorted(
            (k for k in self._accumulators if k[0] == param and k[1] >= index),
            key=lambda k: k[1],
            reverse=True,
        )
        for key in moved:
            self._accumulators[(param, key[1] + 1)] = self._accumulators.pop(key)

        modulation.slots.insert(index, new_slot)
        return index

    def remove_slot(self, param: str, index: int) -> bool:
        """
        Remove a slot; the parameter is disabled when its last slot goes.

        Returns:
            False if there was no such slot.
        """
        param = resolve_param_name(param)
        modulation = self._mappings.get(param)
        if modulation is None or not 0 <= index < len(modulation.slots):
            return False

        del modulation.slots[index]
        self._accumulators.pop((param, index), None)
        moved = sorted(
            (k for k in self._accumulators if k[0] == param and k[1] > index),
            key=lambda k: k[1],
        )
        for key in moved:
            self._accumulators[(param, key[1] - 1)] = self._accumulators.pop(key)

        if not modulation.slots:
            modulation.enabled = False
        return True

    def update_slot(self, param: str, index: int, **changes: Any) -> bool:
        """
        Change fields of one slot.

        Field names may be snake_case or camelCase. The result is validated
        before it replaces the slot.

        Returns:
            False if there was no such slot.

        Raises:
            ValueError: On an unknown metric or out-of-range value.
        """
        param = resolve_param_name(param)
        modulation = self._mappings.get(param)
        if modulation is None or not 0 <= index < len(modulation.slots):
            return False
        data = modulation.slots[index].to_dict()
        for key, value in changes.items():
            key = to_snake(key)
            data["source" if key == "source_metric" else key] = value
        modulation.slots[index] = validate_slot(data)
        return True

    def update_primary_slot(self, param: str, **changes: Any) -> bool:
        param = resolve_param_name(param)
        if self.get_slot_count(param) == 0:
            self.add_slot(param)
        return self.update_slot(param, 0, **changes)

    def get_active_routes(self) -> list[ActiveRoute]:
        """Every slot on an enabled parameter, in parameter then slot order."""
        return [
            ActiveRoute(param, index, replace(slot))
            for param, modulation in self._mappings.items()
            if modulation.enabled
            for index, slot in enumerate(modulation.slots)
        ]

    # ------------------------------------------------------------------
    # Whole-table configuration
    # ------------------------------------------------------------------

    def get_mappings(self) -> dict[str, ParameterModulation]:
        return {param: modulation.copy() for param, modulation in self._mappings.items()}

    def set_mappings(self, mappings: dict[str, ParameterModulation | dict[str, Any]]) -> None:
        """
        Replace the whole table.

        Raises:
            ValueError: If any entry does not validate.
        """
        self._mappings = parse_mappings(mappings)
        self.reset_smoothing()

    def to_dict(self) -> dict[str, Any]:
        return {param: modulation.to_dict() for param, modulation in self._mappings.items()}

    def export_mappings(self, indent: int = 2) -> str:
        """Serialize the table to JSON."""
        return json.dumps(self.to_dict(), indent=indent)

    def import_mappings(self, payload: str | dict[str, Any]) -> bool:
        """
        Merge a serialized table into the current one.

        The payload is validated in full before anything changes. Entries in
        the older flat format are upgraded. Imported entries replace existing
        ones and start with fresh smoothing; other parameters are untouched.

        Args:
            payload: JSON text or decoded dict.

        Returns:
            True on success, False if the payload was rejected.
        """
        try:
            parsed = parse_mappings(payload)
        except ModulationConfigError as e:
            logger.warning("modulation.import_rejected", error=str(e))
            return False

        for param, modulation in parsed.items():
            self._mappings[param] = modulation
            self._clear_accumulators(param)
        logger.info("modulation.imported", parameters=len(parsed))
        return True

    # ------------------------------------------------------------------
    # Randomization
    # ------------------------------------------------------------------

    @staticmethod
    def _random_shaping(rng: np.random.Generator, param: str) -> dict[str, Any]:
        range_min, range_max = natural_range(param)
        return {
            "amount": 0.2 + rng.random() * 0.8,
            "smoothing": 0.3 + rng.random() * 0.6,
            "invert": bool(rng.random() > 0.7),
            "curve": 0.5 + rng.random() * 2.5,
            "range_min": range_min,
            "range_max": range_max,
        }

    def randomize_mappings(self, rng: np.random.Generator | None = None) -> None:
        """
        Re-roll source, shaping and enabled state of every unlocked slot.

        Locked slots are left alone; a parameter whose slots are all locked
        keeps its enabled flag.
        """
        rng = rng or np.random.default_rng()
        metrics = self.available_metrics()
        for param in ALL_MAPPABLE_PARAMS:
            modulation = self._mappings.get(param)
            if modulation is None:
                continue
            if any(not slot.locked for slot in modulation.slots):
                modulation.enabled = bool(rng.random() < 0.4)
            for index, slot in enumerate(modulation.slots):
                if slot.locked:
                    continue
                source = metrics[int(rng.integers(len(metrics)))]
                self.update_slot(param, index, source=source, **self._random_shaping(rng, param))

    def randomize_values(self, rng: np.random.Generator | None = None) -> None:
        """Re-roll shaping of unlocked slots on enabled parameters, keeping sources."""
        rng = rng or np.random.default_rng()
        for param in ALL_MAPPABLE_PARAMS:
            modulation = self._mappings.get(param)
            if modulation is None or not modulation.enabled:
                continue
            for index, slot in enumerate(modulation.slots):
                if not slot.locked:
                    self.update_slot(param, index, **self._random_shaping(rng, param))

    # ------------------------------------------------------------------
    # Metric catalogue
    # ------------------------------------------------------------------

    @staticmethod
    def available_metrics() -> list[MetricId]:
        return list(MetricId)

    @staticmethod
    def metric_label(metric: MetricId | str) -> str:
        return METRIC_LABELS[MetricId.parse(metric)]
