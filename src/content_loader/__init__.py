"""Content loading module: hostile templates, weapons and spells."""

from src.content_loader.action_catalog import (
    ActionCatalog,
    parse_weapon,
    parse_spell,
    get_action_catalog,
    reset_action_catalog,
)
from src.content_loader.hostile_registry import (
    HostileRegistry,
    HostileTemplate,
    get_hostile_registry,
    reset_hostile_registry,
)

__all__ = [
    # Actions
    "ActionCatalog",
    "parse_weapon",
    "parse_spell",
    "get_action_catalog",
    "reset_action_catalog",
    # Hostiles
    "HostileRegistry",
    "HostileTemplate",
    "get_hostile_registry",
    "reset_hostile_registry",
]
