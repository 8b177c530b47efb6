"""
Hostile template registry for Grid Skirmish.

Provides lookup of hostile templates by type key (e.g. "goblin") and
instantiation of independent Combatant records from a template.
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from src.combat.errors import TemplateNotFoundError
from src.content_loader.action_catalog import ActionCatalog, get_action_catalog, parse_weapon
from src.data_models import (
    Combatant,
    CombatantKind,
    SpellSlotPool,
    Team,
    WeaponDefinition,
)

logger = logging.getLogger(__name__)


@dataclass
class HostileTemplate:
    """Static stat block every instance of a hostile type is spawned from."""

    template_key: str
    name: str
    hp_max: int
    armor_class: int = 10
    level: int = 1
    ability_scores: dict[str, int] = field(default_factory=dict)
    attacks: list[WeaponDefinition] = field(default_factory=list)
    spell_ids: list[str] = field(default_factory=list)
    spell_slots: dict[int, int] = field(default_factory=dict)
    spellcasting_ability: Optional[str] = None
    xp_value: int = 0

    @property
    def difficulty(self) -> int:
        """Rough threat rating: max HP plus armor class."""
        return self.hp_max + self.armor_class


class HostileRegistry:
    """
    In-memory registry of hostile templates.

    Usage:
        registry = HostileRegistry.create_default()
        template = registry.get_template("goblin")
        goblin = registry.create_combatant("goblin", "enemy:goblin:0", "Goblin 1")
    """

    def __init__(self, catalog: Optional[ActionCatalog] = None):
        self._templates: dict[str, HostileTemplate] = {}
        self._catalog = catalog
        self._load_stats = {
            "files_loaded": 0,
            "templates_loaded": 0,
            "errors": [],
        }

    @property
    def catalog(self) -> ActionCatalog:
        if self._catalog is None:
            self._catalog = get_action_catalog()
        return self._catalog

    @classmethod
    def create_default(cls, catalog: Optional[ActionCatalog] = None) -> "HostileRegistry":
        """Create a registry loaded with the built-in hostile templates."""
        from src.content_loader.content_data import HOSTILE_ITEMS

        registry = cls(catalog)
        registry.load_items(HOSTILE_ITEMS)
        return registry

    def load_items(self, items: list[dict[str, Any]], source: str = "builtin") -> int:
        """
        Parse and register raw template records.

        Records that fail to parse are logged and skipped.

        Returns:
            Number of templates registered
        """
        loaded = 0
        for item in items:
            try:
                template = self._parse_template(item)
            except (KeyError, TypeError, ValueError) as e:
                error = f"Error parsing hostile {item.get('name', '?')} from {source}: {e}"
                logger.warning(error)
                self._load_stats["errors"].append(error)
                continue
            self.add_template(template)
            loaded += 1
        self._load_stats["templates_loaded"] += loaded
        return loaded

    def load_from_file(self, file_path: Path) -> int:
        """Load templates from a JSON file of the form {"items": [...]}."""
        try:
            with open(file_path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            error = f"Invalid JSON in {file_path}: {e}"
            logger.error(error)
            self._load_stats["errors"].append(error)
            return 0

        self._load_stats["files_loaded"] += 1
        return self.load_items(data.get("items", []), source=str(file_path))

    def _parse_template(self, item: dict[str, Any]) -> HostileTemplate:
        """Parse a template record into a HostileTemplate."""
        name = item["name"]
        template_key = item.get("template_key", name.lower().replace(" ", "_"))
        hp_max = int(item.get("hp_max", item.get("maxHP", 10)))
        if hp_max < 1:
            raise ValueError(f"hp_max must be positive, got {hp_max}")

        return HostileTemplate(
            template_key=template_key,
            name=name,
            hp_max=hp_max,
            armor_class=int(item.get("armor_class", item.get("ac", 10))),
            level=int(item.get("level", 1)),
            ability_scores=dict(item.get("ability_scores", {})),
            attacks=[parse_weapon(a) for a in item.get("attacks", [])],
            spell_ids=list(item.get("spells", [])),
            spell_slots={int(k): int(v) for k, v in item.get("spell_slots", {}).items()},
            spellcasting_ability=item.get("spellcasting_ability"),
            xp_value=int(item.get("xp_value", 0)),
        )

    def add_template(self, template: HostileTemplate) -> None:
        if template.template_key in self._templates:
            logger.warning(f"Duplicate template_key '{template.template_key}' replaced")
        self._templates[template.template_key] = template

    def get_template(self, template_key: str) -> HostileTemplate:
        """
        Look up a template by its type key.

        Raises:
            TemplateNotFoundError: If no template has that key
        """
        template = self._templates.get(template_key)
        if template is None:
            raise TemplateNotFoundError(template_key)
        return template

    def create_combatant(self, template_key: str, combatant_id: str, name: Optional[str] = None) -> Combatant:
        """
        Instantiate an independent hostile combatant from a template.

        Every instance gets its own HP pool, ability scores and slot pools.

        Raises:
            TemplateNotFoundError: If no template has that key
        """
        template = self.get_template(template_key)
        return Combatant(
            combatant_id=combatant_id,
            name=name or template.name,
            kind=CombatantKind.HOSTILE,
            team=Team.HOSTILE,
            hp_current=template.hp_max,
            hp_max=template.hp_max,
            armor_class=template.armor_class,
            ability_scores=dict(template.ability_scores),
            level=template.level,
            weapons=list(template.attacks),
            spells=self.catalog.resolve_spells(template.spell_ids),
            spell_slots={
                level: SpellSlotPool(level=level, total=count, available=count)
                for level, count in template.spell_slots.items()
            },
            spellcasting_ability=template.spellcasting_ability,
            template_key=template.template_key,
            xp_value=template.xp_value,
        )

    def get_all_template_keys(self) -> list[str]:
        return list(self._templates.keys())

    def get_all_templates(self) -> list[HostileTemplate]:
        return list(self._templates.values())

    def get_load_stats(self) -> dict[str, Any]:
        return dict(self._load_stats)

    def __len__(self) -> int:
        return len(self._templates)

    def __contains__(self, template_key: str) -> bool:
        return template_key in self._templates


# Module-level singleton for convenience
_default_registry: Optional[HostileRegistry] = None


def get_hostile_registry() -> HostileRegistry:
    """
    Get the default HostileRegistry singleton.

    Creates and loads the registry on first call.
    """
    global _default_registry
    if _default_registry is None:
        _default_registry = HostileRegistry.create_default()
    return _default_registry


def reset_hostile_registry() -> None:
    """Reset the default registry singleton (useful for testing)."""
    global _default_registry
    _default_registry = None
