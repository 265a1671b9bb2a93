"""
Roll subjects: the actors and items a quick roll is made for.

These are plain records handed in by the caller (the plugin builds them
from request payloads). The core only reads them.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from .config import ItemRollFlags
from .rules import ItemType

# Action types that make an attack roll
ATTACK_ACTION_TYPES = frozenset({"mwak", "rwak", "msak", "rsak"})
MELEE_WEAPON_ATTACK = "mwak"


@dataclass(frozen=True)
class SubjectRef:
    """Identifiers persisted with a quick roll."""

    actor_id: Optional[str] = None
    item_id: Optional[str] = None
    token_id: Optional[str] = None


@dataclass
class Actor:
    """
    A character or creature that rolls.

    Bonuses are the final values added to a d20 roll; anything missing
    falls back to the ability modifier, then to 0.

    Attributes:
        id: Actor identifier
        name: Display name
        abilities: Ability modifier per ability id
        skills: Total skill bonus per skill id
        saves: Total save bonus per ability id
        tools: Total tool bonus per tool id
        elven_accuracy: Advantage rolls use three dice
        melee_critical_damage_dice: Extra dice on melee weapon crits
        token_id: Token the actor was rolled from, if any
    """

    id: str
    name: str = ""
    abilities: Dict[str, int] = field(default_factory=dict)
    skills: Dict[str, int] = field(default_factory=dict)
    saves: Dict[str, int] = field(default_factory=dict)
    tools: Dict[str, int] = field(default_factory=dict)
    elven_accuracy: bool = False
    melee_critical_damage_dice: int = 0
    token_id: Optional[str] = None

    @property
    def subject_ref(self) -> SubjectRef:
        return SubjectRef(actor_id=self.id, token_id=self.token_id)

    def ability_mod(self, ability: str) -> int:
        return self.abilities.get(ability, 0)

    def skill_bonus(self, skill: str, ability: Optional[str] = None) -> int:
        if skill in self.skills:
            return self.skills[skill]
        return self.ability_mod(ability) if ability else 0

    def save_bonus(self, ability: str) -> int:
        return self.saves.get(ability, self.ability_mod(ability))

    def tool_bonus(self, tool: str, ability: Optional[str] = None) -> int:
        if tool in self.tools:
            return self.tools[tool]
        return self.ability_mod(ability) if ability else 0

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Actor":
        return cls(
            id=str(data["id"]),
            name=data.get("name", ""),
            abilities=dict(data.get("abilities", {})),
            skills=dict(data.get("skills", {})),
            saves=dict(data.get("saves", {})),
            tools=dict(data.get("tools", {})),
            elven_accuracy=bool(data.get("elven_accuracy", False)),
            melee_critical_damage_dice=int(data.get("melee_critical_damage_dice", 0)),
            token_id=data.get("token_id"),
        )


@dataclass(frozen=True)
class DamagePart:
    formula: str
    damage_type: str = ""


@dataclass(frozen=True)
class SaveInfo:
    ability: str
    dc: int


@dataclass
class Item:
    """
    An item, spell or feature owned by an actor.

    Attributes:
        id: Item identifier
        name: Display name
        type: Item kind
        actor: Owning actor
        description: Description text
        flavor: Chat flavor text
        action_type: Action type (mwak, rwak, msak, rsak, save, heal, util, ...)
        attack_bonus: Total attack bonus
        critical_threshold: Attack crit threshold override
        critical_damage: Extra formula added to the first damage part on a crit
        damage_parts: Damage formulas in order
        versatile: Versatile damage formula replacing the first part
        save: Saving throw the item calls for
        check_ability: Ability used for tool checks
        tool_id: Tool identifier for tool checks
        other_formula: Secondary formula rolled as extra damage
        properties: Labels shown in the footer
        flags: Quick roll toggles
    """

    id: str
    name: str
    type: ItemType
    actor: Actor
    description: str = ""
    flavor: str = ""
    action_type: Optional[str] = None
    attack_bonus: int = 0
    critical_threshold: Optional[int] = None
    critical_damage: str = ""
    damage_parts: List[DamagePart] = field(default_factory=list)
    versatile: str = ""
    save: Optional[SaveInfo] = None
    check_ability: Optional[str] = None
    tool_id: Optional[str] = None
    other_formula: str = ""
    properties: List[str] = field(default_factory=list)
    flags: Optional[ItemRollFlags] = None

    def __post_init__(self):
        self.type = ItemType(self.type)
        if self.flags is None:
            self.flags = ItemRollFlags.defaults(self.type)

    @property
    def subject_ref(self) -> SubjectRef:
        return SubjectRef(actor_id=self.actor.id, item_id=self.id, token_id=self.actor.token_id)

    @property
    def has_attack(self) -> bool:
        return self.action_type in ATTACK_ACTION_TYPES

    @property
    def has_damage(self) -> bool:
        return bool(self.damage_parts)

    @property
    def has_save(self) -> bool:
        return self.save is not None

    @property
    def is_melee_weapon_attack(self) -> bool:
        return self.action_type == MELEE_WEAPON_ATTACK

    @classmethod
    def from_dict(
        cls,
        data: Mapping[str, Any],
        actor: Actor,
        default_flags: Optional[ItemRollFlags] = None,
    ) -> "Item":
        """
        Build an item from a request payload.

        Items without their own flags use default_flags (when given) for
        their kind.

        Raises:
            ConfigError: If the item's quick roll flags are invalid
        """
        item_type = ItemType(data.get("type", ItemType.FEATURE.value))
        save = data.get("save")
        return cls(
            id=str(data["id"]),
            name=data.get("name", ""),
            type=item_type,
            actor=actor,
            description=data.get("description", ""),
            flavor=data.get("flavor", ""),
            action_type=data.get("action_type"),
            attack_bonus=int(data.get("attack_bonus", 0)),
            critical_threshold=data.get("critical_threshold"),
            critical_damage=data.get("critical_damage", ""),
            damage_parts=[
                DamagePart(p[0], p[1] if len(p) > 1 else "")
                if isinstance(p, (list, tuple))
                else DamagePart(p["formula"], p.get("damage_type", ""))
                for p in data.get("damage_parts", [])
            ],
            versatile=data.get("versatile", ""),
            save=SaveInfo(save["ability"], int(save["dc"])) if save else None,
            check_ability=data.get("check_ability"),
            tool_id=data.get("tool_id"),
            other_formula=data.get("other_formula", ""),
            properties=list(data.get("properties", [])),
            flags=(
                default_flags
                if "flags" not in data and default_flags is not None
                else ItemRollFlags.from_dict(item_type, data.get("flags"))
            ),
        )
