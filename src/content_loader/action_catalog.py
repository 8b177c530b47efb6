"""
Weapon and spell catalog for Grid Skirmish.

Static definitions that combatants' actions are built from. Character
snapshots and hostile templates refer to weapons and spells by id; the
catalog resolves those ids into WeaponDefinition and SpellDefinition records.
"""

import json
import logging
from pathlib import Path
from typing import Any, Iterable, Optional

from src.data_models import (
    DEFAULT_SPELL_RANGE,
    MELEE_RANGE,
    DamageSpec,
    SpellDefinition,
    TargetType,
    WeaponDefinition,
)

logger = logging.getLogger(__name__)


def parse_weapon(item: dict[str, Any]) -> WeaponDefinition:
    """Parse a weapon record into a WeaponDefinition."""
    weapon_id = item.get("weapon_id", item.get("name", "unknown").lower().replace(" ", "_"))
    attack_bonus = item.get("attack_bonus")
    return WeaponDefinition(
        weapon_id=weapon_id,
        name=item.get("name", weapon_id),
        damage=DamageSpec.from_value(item.get("damage", "1d4")),
        range=int(item.get("range", MELEE_RANGE)),
        ability=item.get("ability", "STR"),
        finesse=bool(item.get("finesse", False)),
        attack_bonus=int(attack_bonus) if attack_bonus is not None else None,
    )


def parse_spell(item: dict[str, Any]) -> SpellDefinition:
    """Parse a spell record into a SpellDefinition."""
    spell_id = item.get("spell_id", item.get("name", "unknown").lower().replace(" ", "_"))
    area = bool(item.get("area_of_effect", False))
    default_targets = TargetType.AREA if area else TargetType.ENEMY
    return SpellDefinition(
        spell_id=spell_id,
        name=item.get("name", spell_id),
        level=int(item.get("level", 0)),
        damage=DamageSpec.from_value(item.get("damage")),
        healing=DamageSpec.from_value(item.get("healing")),
        range=int(item.get("range", DEFAULT_SPELL_RANGE)),
        projectiles=max(1, int(item.get("projectiles", 1))),
        requires_attack_roll=bool(item.get("requires_attack_roll", False)),
        area_of_effect=area,
        area_radius=int(item.get("area_radius", 0)),
        valid_targets=TargetType(item.get("valid_targets", default_targets)),
        status_effect=item.get("status_effect"),
        status_duration=int(item.get("status_duration", 0)),
        description=item.get("description", ""),
    )


class ActionCatalog:
    """
    In-memory catalog of weapon and spell definitions.

    Usage:
        catalog = ActionCatalog.create_default()
        sword = catalog.get_weapon("longsword")
        spells = catalog.resolve_spells(["fire_bolt", "magic_missile"])
    """

    def __init__(self):
        self._weapons: dict[str, WeaponDefinition] = {}
        self._spells: dict[str, SpellDefinition] = {}

    @classmethod
    def create_default(cls) -> "ActionCatalog":
        """Create a catalog loaded with the built-in weapons and spells."""
        from src.content_loader.content_data import SPELL_ITEMS, WEAPON_ITEMS

        catalog = cls()
        catalog.load_items(weapons=WEAPON_ITEMS, spells=SPELL_ITEMS)
        return catalog

    def load_items(
        self,
        weapons: Iterable[dict[str, Any]] = (),
        spells: Iterable[dict[str, Any]] = (),
    ) -> int:
        """
        Add raw weapon and spell records.

        Returns:
            Number of definitions added
        """
        added = 0
        for item in weapons:
            weapon = parse_weapon(item)
            self.add_weapon(weapon)
            added += 1
        for item in spells:
            spell = parse_spell(item)
            self.add_spell(spell)
            added += 1
        return added

    def load_from_file(self, file_path: Path) -> int:
        """
        Load a JSON file of the form {"weapons": [...], "spells": [...]}.

        Returns:
            Number of definitions added
        """
        with open(file_path, "r", encoding="utf-8") as f:
            data = json.load(f)
        added = self.load_items(weapons=data.get("weapons", []), spells=data.get("spells", []))
        logger.info(f"Loaded {added} action definitions from {file_path}")
        return added

    def add_weapon(self, weapon: WeaponDefinition) -> None:
        if weapon.weapon_id in self._weapons:
            logger.warning(f"Duplicate weapon_id '{weapon.weapon_id}' replaced")
        self._weapons[weapon.weapon_id] = weapon

    def add_spell(self, spell: SpellDefinition) -> None:
        if spell.spell_id in self._spells:
            logger.warning(f"Duplicate spell_id '{spell.spell_id}' replaced")
        self._spells[spell.spell_id] = spell

    def get_weapon(self, weapon_id: str) -> Optional[WeaponDefinition]:
        return self._weapons.get(weapon_id)

    def get_spell(self, spell_id: str) -> Optional[SpellDefinition]:
        return self._spells.get(spell_id)

    def resolve_weapons(self, weapon_ids: Iterable[str]) -> list[WeaponDefinition]:
        """Resolve weapon ids in order, skipping unknown ids with a warning."""
        weapons = []
        for weapon_id in weapon_ids:
            weapon = self._weapons.get(weapon_id)
            if weapon is None:
                logger.warning(f"Unknown weapon '{weapon_id}' ignored")
                continue
            weapons.append(weapon)
        return weapons

    def resolve_spells(self, spell_ids: Iterable[str]) -> list[SpellDefinition]:
        """Resolve spell ids in order, skipping unknown ids with a warning."""
        spells = []
        for spell_id in spell_ids:
            spell = self._spells.get(spell_id)
            if spell is None:
                logger.warning(f"Unknown spell '{spell_id}' ignored")
                continue
            spells.append(spell)
        return spells

    def get_all_weapon_ids(self) -> list[str]:
        return list(self._weapons.keys())

    def get_all_spell_ids(self) -> list[str]:
        return list(self._spells.keys())

    def __len__(self) -> int:
        return len(self._weapons) + len(self._spells)


# Module-level singleton for convenience
_default_catalog: Optional[ActionCatalog] = None


def get_action_catalog() -> ActionCatalog:
    """Get the default ActionCatalog singleton, loading built-in content on first call."""
    global _default_catalog
    if _default_catalog is None:
        _default_catalog = ActionCatalog.create_default()
    return _default_catalog


def reset_action_catalog() -> None:
    """Reset the default catalog singleton (useful for testing)."""
    global _default_catalog
    _default_catalog = None
