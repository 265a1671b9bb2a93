"""
Quick roll fields.

A field is one independently rendered part of a card: a header, a check,
a damage roll and so on. Fields are immutable; changing one means
replacing it in the quick roll's field list.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterator, Mapping, Optional, Tuple

from .dice import Roll

logger = logging.getLogger(__name__)


class FieldType(str, Enum):
    HEADER = "header"
    DESCRIPTION = "description"
    SAVE = "save"
    CHECK = "check"
    ATTACK = "attack"
    DAMAGE = "damage"
    MANUAL_DAMAGE = "manual-damage"
    FOOTER = "footer"
    BLANK = "blank"


# Fields holding a d20 roll that can become a multi roll
MULTI_ROLL_FIELDS = frozenset({FieldType.CHECK, FieldType.ATTACK})

# Payload keys that hold Roll objects
ROLL_KEYS: Tuple[str, ...] = ("roll", "base_roll", "crit_roll")


@dataclass(frozen=True)
class Field:
    """
    One entry of a quick roll.

    Attributes:
        kind: Field type
        data: Field payload (titles, rolls, labels)
    """

    kind: FieldType
    data: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "kind", FieldType(self.kind))
        object.__setattr__(self, "data", dict(self.data))

    def get(self, key: str, default: Any = None) -> Any:
        return self.data.get(key, default)

    def with_data(self, **changes) -> "Field":
        return Field(self.kind, {**self.data, **changes})

    def rolls(self) -> Iterator[Tuple[str, Roll]]:
        """Yield (key, roll) for every roll held by this field."""
        for key in ROLL_KEYS:
            value = self.data.get(key)
            if isinstance(value, Roll):
                yield key, value

    def to_flag(self) -> Dict[str, Any]:
        """Flatten for persistence, reducing rolls to their formula."""
        data = {
            key: value.formula if isinstance(value, Roll) else value
            for key, value in self.data.items()
        }
        return {"type": self.kind.value, "data": data}

    @classmethod
    def from_flag(
        cls, entry: Mapping[str, Any], rolls: Optional[Mapping[str, Roll]] = None
    ) -> "Field":
        """
        Rebuild a field from its persisted entry.

        Args:
            entry: Persisted field entry ({"type", "data"})
            rolls: Roll data for this field keyed by payload key

        Returns:
            Field with each formula swapped for its Roll (None when the
            roll data is missing)
        """
        rolls = rolls or {}
        data = dict(entry.get("data", {}))

        for key in ROLL_KEYS:
            if key not in data:
                continue
            if key in rolls:
                data[key] = rolls[key]
            else:
                if data[key] is not None:
                    logger.warning("No roll data for '%s' (%s), leaving it unset", key, data[key])
                data[key] = None

        return cls(FieldType(entry["type"]), data)


def header(title: str, subtitle: str = "") -> Field:
    return Field(FieldType.HEADER, {"title": title, "subtitle": subtitle})


def description(content: str, is_flavor: bool = False) -> Field:
    return Field(FieldType.DESCRIPTION, {"content": content, "is_flavor": is_flavor})


def check(title: str, roll: Roll, roll_type: str = "check") -> Field:
    return Field(FieldType.CHECK, {"title": title, "roll": roll, "roll_type": roll_type})


def attack(title: str, roll: Roll) -> Field:
    return Field(FieldType.ATTACK, {"title": title, "roll": roll})


def save(label: str, ability: str, dc: int) -> Field:
    return Field(FieldType.SAVE, {"label": label, "ability": ability, "dc": dc})


def damage(
    title: str,
    base_roll: Roll,
    crit_roll: Optional[Roll] = None,
    damage_type: str = "",
    is_versatile: bool = False,
) -> Field:
    return Field(
        FieldType.DAMAGE,
        {
            "title": title,
            "damage_type": damage_type,
            "base_roll": base_roll,
            "crit_roll": crit_roll,
            "is_versatile": is_versatile,
        },
    )


def manual_damage(title: str = "Damage") -> Field:
    return Field(FieldType.MANUAL_DAMAGE, {"title": title})


def footer(properties) -> Field:
    return Field(FieldType.FOOTER, {"properties": list(properties)})


def blank() -> Field:
    return Field(FieldType.BLANK, {})
