"""
Built-in content for Grid Skirmish.

Raw records in the same shape as the JSON content files the registries load
({"items": [...]}), so the bundled data goes through the same parsing path
as external data.

Weapon ability "STR" uses strength for attack and damage; finesse weapons
use the better of STR and DEX. Monster attacks carry a fixed attack_bonus.
"""

WEAPON_ITEMS: list[dict] = [
    {"weapon_id": "dagger", "name": "Dagger", "damage": "1d4", "range": 1, "finesse": True},
    {"weapon_id": "shortsword", "name": "Shortsword", "damage": "1d6", "range": 1, "finesse": True},
    {"weapon_id": "longsword", "name": "Longsword", "damage": "1d8", "range": 1},
    {"weapon_id": "rapier", "name": "Rapier", "damage": "1d8", "range": 1, "finesse": True},
    {"weapon_id": "mace", "name": "Mace", "damage": "1d6", "range": 1},
    {"weapon_id": "quarterstaff", "name": "Quarterstaff", "damage": "1d6", "range": 1},
    {"weapon_id": "greataxe", "name": "Greataxe", "damage": "1d12", "range": 1},
    {"weapon_id": "shortbow", "name": "Shortbow", "damage": "1d6", "range": 8, "ability": "DEX"},
    {"weapon_id": "longbow", "name": "Longbow", "damage": "1d8", "range": 10, "ability": "DEX"},
    {"weapon_id": "light_crossbow", "name": "Light Crossbow", "damage": "1d8", "range": 8, "ability": "DEX"},
    {"weapon_id": "unarmed", "name": "Unarmed Strike", "damage": "1", "range": 1},
]


SPELL_ITEMS: list[dict] = [
    {
        "spell_id": "fire_bolt",
        "name": "Fire Bolt",
        "level": 0,
        "damage": {"dice": "1d10", "type": "fire"},
        "range": 8,
        "requires_attack_roll": True,
        "valid_targets": "enemy",
        "description": "A mote of fire hurled at one creature.",
    },
    {
        "spell_id": "ray_of_frost",
        "name": "Ray of Frost",
        "level": 0,
        "damage": {"dice": "1d8", "type": "cold"},
        "range": 6,
        "requires_attack_roll": True,
        "valid_targets": "enemy",
    },
    {
        "spell_id": "sacred_flame",
        "name": "Sacred Flame",
        "level": 0,
        "damage": {"dice": "1d8", "type": "radiant"},
        "range": 6,
        "requires_attack_roll": False,
        "valid_targets": "enemy",
    },
    {
        "spell_id": "magic_missile",
        "name": "Magic Missile",
        "level": 1,
        "damage": {"dice": "1d4", "bonus": 1, "type": "force"},
        "range": 8,
        "projectiles": 3,
        "requires_attack_roll": False,
        "valid_targets": "enemy",
        "description": "Three darts of force, each striking a different creature.",
    },
    {
        "spell_id": "guiding_bolt",
        "name": "Guiding Bolt",
        "level": 1,
        "damage": {"dice": "4d6", "type": "radiant"},
        "range": 8,
        "requires_attack_roll": True,
        "valid_targets": "enemy",
    },
    {
        "spell_id": "cure_wounds",
        "name": "Cure Wounds",
        "level": 1,
        "healing": {"dice": "1d8", "bonus": 3},
        "range": 1,
        "valid_targets": "ally",
    },
    {
        "spell_id": "healing_word",
        "name": "Healing Word",
        "level": 1,
        "healing": {"dice": "1d4", "bonus": 3},
        "range": 6,
        "valid_targets": "ally",
    },
    {
        "spell_id": "shield_of_faith",
        "name": "Shield of Faith",
        "level": 1,
        "range": 0,
        "valid_targets": "self",
        "status_effect": "shielded",
        "status_duration": 10,
    },
    {
        "spell_id": "sleep",
        "name": "Sleep",
        "level": 1,
        "range": 6,
        "area_of_effect": True,
        "area_radius": 1,
        "valid_targets": "area",
        "status_effect": "unconscious",
        "status_duration": 2,
    },
    {
        "spell_id": "burning_hands",
        "name": "Burning Hands",
        "level": 1,
        "damage": {"dice": "3d6", "type": "fire"},
        "range": 3,
        "area_of_effect": True,
        "area_radius": 1,
        "valid_targets": "area",
    },
    {
        "spell_id": "hold_person",
        "name": "Hold Person",
        "level": 2,
        "range": 6,
        "valid_targets": "enemy",
        "status_effect": "paralyzed",
        "status_duration": 1,
    },
    {
        "spell_id": "fireball",
        "name": "Fireball",
        "level": 3,
        "damage": {"dice": "8d6", "type": "fire"},
        "range": 8,
        "area_of_effect": True,
        "area_radius": 2,
        "valid_targets": "area",
    },
]


HOSTILE_ITEMS: list[dict] = [
    {
        "template_key": "goblin",
        "name": "Goblin",
        "hp_max": 7,
        "armor_class": 12,
        "ability_scores": {"STR": 8, "DEX": 14, "CON": 10, "INT": 10, "WIS": 8, "CHA": 8},
        "attacks": [
            {"weapon_id": "scimitar", "name": "Scimitar", "damage": "1d6+2", "range": 1, "attack_bonus": 4},
            {"weapon_id": "goblin_shortbow", "name": "Shortbow", "damage": "1d6+2", "range": 8, "attack_bonus": 4},
        ],
        "xp_value": 50,
    },
    {
        "template_key": "orc",
        "name": "Orc",
        "hp_max": 15,
        "armor_class": 13,
        "ability_scores": {"STR": 16, "DEX": 12, "CON": 16, "INT": 7, "WIS": 11, "CHA": 10},
        "attacks": [
            {"weapon_id": "orc_greataxe", "name": "Greataxe", "damage": "1d12+3", "range": 1, "attack_bonus": 5},
        ],
        "xp_value": 100,
    },
    {
        "template_key": "wolf",
        "name": "Wolf",
        "hp_max": 11,
        "armor_class": 13,
        "ability_scores": {"STR": 12, "DEX": 15, "CON": 12, "INT": 3, "WIS": 12, "CHA": 6},
        "attacks": [
            {"weapon_id": "bite", "name": "Bite", "damage": "2d4+2", "range": 1, "attack_bonus": 4},
        ],
        "xp_value": 50,
    },
    {
        "template_key": "skeleton",
        "name": "Skeleton",
        "hp_max": 13,
        "armor_class": 13,
        "ability_scores": {"STR": 10, "DEX": 14, "CON": 15, "INT": 6, "WIS": 8, "CHA": 5},
        "attacks": [
            {"weapon_id": "skeleton_shortsword", "name": "Shortsword", "damage": "1d6+2", "range": 1, "attack_bonus": 4},
            {"weapon_id": "skeleton_shortbow", "name": "Shortbow", "damage": "1d6+2", "range": 8, "attack_bonus": 4},
        ],
        "xp_value": 50,
    },
    {
        "template_key": "bandit",
        "name": "Bandit",
        "hp_max": 11,
        "armor_class": 12,
        "ability_scores": {"STR": 11, "DEX": 12, "CON": 12, "INT": 10, "WIS": 10, "CHA": 10},
        "attacks": [
            {"weapon_id": "bandit_scimitar", "name": "Scimitar", "damage": "1d6+1", "range": 1, "attack_bonus": 3},
            {"weapon_id": "bandit_crossbow", "name": "Light Crossbow", "damage": "1d8+1", "range": 8, "attack_bonus": 3},
        ],
        "xp_value": 25,
    },
    {
        "template_key": "cultist",
        "name": "Cultist",
        "hp_max": 9,
        "armor_class": 12,
        "ability_scores": {"STR": 11, "DEX": 12, "CON": 10, "INT": 10, "WIS": 11, "CHA": 10},
        "attacks": [
            {"weapon_id": "cultist_dagger", "name": "Sacrificial Dagger", "damage": "1d4+1", "range": 1, "attack_bonus": 3},
        ],
        "spells": ["sacred_flame"],
        "spellcasting_ability": "WIS",
        "xp_value": 25,
    },
    {
        "template_key": "ogre",
        "name": "Ogre",
        "hp_max": 59,
        "armor_class": 11,
        "level": 5,
        "ability_scores": {"STR": 19, "DEX": 8, "CON": 16, "INT": 5, "WIS": 7, "CHA": 7},
        "attacks": [
            {"weapon_id": "greatclub", "name": "Greatclub", "damage": "2d8+4", "range": 1, "attack_bonus": 6},
        ],
        "xp_value": 450,
    },
    {
        "template_key": "chimera",
        "name": "Chimera",
        "hp_max": 114,
        "armor_class": 14,
        "level": 6,
        "ability_scores": {"STR": 19, "DEX": 11, "CON": 19, "INT": 3, "WIS": 14, "CHA": 10},
        "attacks": [
            {"weapon_id": "chimera_bite", "name": "Bite", "damage": "2d6+4", "range": 1, "attack_bonus": 7},
            {"weapon_id": "chimera_claws", "name": "Claws", "damage": "2d6+4", "range": 1, "attack_bonus": 7},
        ],
        "xp_value": 2300,
    },
]
