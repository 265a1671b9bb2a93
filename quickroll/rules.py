"""
Game rule tables.

Lookups for the display name and ability association of abilities,
skills and tools. A miss raises UnknownIdentifierError.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Mapping, Optional, Tuple

from .errors import UnknownIdentifierError


class ItemType(str, Enum):
    """Item kinds that can be quick rolled."""

    WEAPON = "weapon"
    SPELL = "spell"
    EQUIPMENT = "equipment"
    FEATURE = "feat"
    TOOL = "tool"
    CONSUMABLE = "consumable"


ABILITIES: Dict[str, str] = {
    "str": "Strength",
    "dex": "Dexterity",
    "con": "Constitution",
    "int": "Intelligence",
    "wis": "Wisdom",
    "cha": "Charisma",
}

SKILLS: Dict[str, Tuple[str, str]] = {
    "acr": ("Acrobatics", "dex"),
    "ani": ("Animal Handling", "wis"),
    "arc": ("Arcana", "int"),
    "ath": ("Athletics", "str"),
    "dec": ("Deception", "cha"),
    "his": ("History", "int"),
    "ins": ("Insight", "wis"),
    "itm": ("Intimidation", "cha"),
    "inv": ("Investigation", "int"),
    "med": ("Medicine", "wis"),
    "nat": ("Nature", "int"),
    "prc": ("Perception", "wis"),
    "prf": ("Performance", "cha"),
    "per": ("Persuasion", "cha"),
    "rel": ("Religion", "int"),
    "slt": ("Sleight of Hand", "dex"),
    "ste": ("Stealth", "dex"),
    "sur": ("Survival", "wis"),
}

TOOLS: Dict[str, Tuple[str, str]] = {
    "alchemist": ("Alchemist's Supplies", "int"),
    "brewer": ("Brewer's Supplies", "int"),
    "cartographer": ("Cartographer's Tools", "wis"),
    "disg": ("Disguise Kit", "cha"),
    "forg": ("Forgery Kit", "dex"),
    "herb": ("Herbalism Kit", "int"),
    "navg": ("Navigator's Tools", "wis"),
    "pois": ("Poisoner's Kit", "int"),
    "smith": ("Smith's Tools", "str"),
    "thief": ("Thieves' Tools", "dex"),
}


@dataclass(frozen=True)
class RuleEntry:
    """A resolved rule table entry."""

    identifier: str
    label: str
    ability: Optional[str] = None

    @property
    def ability_label(self) -> Optional[str]:
        return ABILITIES.get(self.ability) if self.ability else None


class GameRules:
    """
    Read-only lookup over ability, skill and tool tables.

    Tables default to the standard ones and can be replaced for testing or
    for homebrew rule sets.
    """

    def __init__(
        self,
        abilities: Optional[Mapping[str, str]] = None,
        skills: Optional[Mapping[str, Tuple[str, str]]] = None,
        tools: Optional[Mapping[str, Tuple[str, str]]] = None,
    ):
        self.abilities = dict(abilities if abilities is not None else ABILITIES)
        self.skills = dict(skills if skills is not None else SKILLS)
        self.tools = dict(tools if tools is not None else TOOLS)

    def ability(self, identifier: str) -> RuleEntry:
        if identifier not in self.abilities:
            raise UnknownIdentifierError("ability", identifier)
        return RuleEntry(identifier, self.abilities[identifier], identifier)

    def skill(self, identifier: str) -> RuleEntry:
        if identifier not in self.skills:
            raise UnknownIdentifierError("skill", identifier)
        label, ability = self.skills[identifier]
        return RuleEntry(identifier, label, ability)

    def tool(self, identifier: str) -> RuleEntry:
        if identifier not in self.tools:
            raise UnknownIdentifierError("tool", identifier)
        label, ability = self.tools[identifier]
        return RuleEntry(identifier, label, ability)
