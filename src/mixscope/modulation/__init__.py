"""Audio-to-visual modulation matrix."""

from mixscope.modulation.router import ActiveRoute, ModulationRouter
from mixscope.modulation.schema import ModulationConfigError, parse_mappings
from mixscope.modulation.slots import (
    DEFAULT_AUDIO_SOURCES,
    ModulationSlot,
    ParameterModulation,
    create_default_modulation,
    create_default_slot,
    migrate_legacy_mappings,
)

__all__ = [
    "ActiveRoute",
    "DEFAULT_AUDIO_SOURCES",
    "ModulationConfigError",
    "ModulationRouter",
    "ModulationSlot",
    "ParameterModulation",
    "create_default_modulation",
    "create_default_slot",
    "migrate_legacy_mappings",
    "parse_mappings",
]
