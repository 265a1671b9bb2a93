"""
Quick roll settings and per-item roll toggles.

Settings are read-only during an operation and polled each time they are
needed. Item toggles use an explicit table of recognised keys per item
kind; anything else is rejected when the configuration is loaded.
"""

from dataclasses import asdict, dataclass, field, fields, replace
from enum import IntEnum
from typing import Any, Dict, Mapping, Optional, Tuple

from .errors import ConfigError
from .rules import ItemType


class ManualDamageMode(IntEnum):
    """When damage is rolled by a follow-up action instead of immediately."""

    AUTO = 0
    ATTACK_ONLY = 1
    ALWAYS = 2


@dataclass(frozen=True)
class Settings:
    """Recognised quick roll settings."""

    enable_skill_quick_roll: bool = True
    enable_ability_quick_roll: bool = True
    enable_tool_quick_roll: bool = True
    enable_item_quick_roll: bool = True
    always_roll_multi: bool = False
    manual_damage_mode: ManualDamageMode = ManualDamageMode.AUTO
    show_ability_on_skill_title: bool = False
    d20_icons_enabled: bool = True
    critical_damage_modifiers: bool = False
    critical_damage_max_dice: bool = False
    confirm_retro_adv: bool = False
    confirm_retro_crit: bool = False

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "Settings":
        """
        Build settings from a config mapping.

        Raises:
            ConfigError: On unknown keys or values of the wrong type
        """
        data = dict(data or {})
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigError(f"Unknown settings: {', '.join(unknown)}")

        values: Dict[str, Any] = {}
        for name, value in data.items():
            if name == "manual_damage_mode":
                try:
                    values[name] = ManualDamageMode(value)
                except ValueError:
                    raise ConfigError(f"Invalid manual_damage_mode: {value!r}") from None
            elif not isinstance(value, bool):
                raise ConfigError(f"Setting '{name}' must be a boolean, got {value!r}")
            else:
                values[name] = value

        return cls(**values)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["manual_damage_mode"] = int(self.manual_damage_mode)
        return data


class SettingsStore:
    """
    Holds the current settings.

    Callers ask for a value by name every time they need it rather than
    keeping a copy, so changes apply to the next operation.
    """

    def __init__(self, settings: Optional[Settings] = None):
        self._settings = settings or Settings()

    @property
    def settings(self) -> Settings:
        return self._settings

    def get(self, name: str) -> Any:
        if name not in {f.name for f in fields(Settings)}:
            raise ConfigError(f"Unknown setting: '{name}'")
        return getattr(self._settings, name)

    def update(self, **changes) -> None:
        merged = {**self._settings.to_dict(), **changes}
        self._settings = Settings.from_dict(merged)


@dataclass(frozen=True)
class RollToggle:
    """A quick roll toggle with a normal and an alternate-roll value."""

    value: bool = True
    alt_value: bool = True

    def resolve(self, alt: bool = False) -> bool:
        return self.alt_value if alt else self.value

    @classmethod
    def parse(cls, key: str, raw: Any) -> "RollToggle":
        if isinstance(raw, bool):
            return cls(raw, raw)
        if isinstance(raw, Mapping):
            value = raw.get("value", True)
            alt_value = raw.get("alt_value", value)
            if isinstance(value, bool) and isinstance(alt_value, bool):
                return cls(value, alt_value)
        raise ConfigError(f"Invalid toggle for '{key}': {raw!r}")


def _t(value: bool, alt_value: bool) -> RollToggle:
    return RollToggle(value, alt_value)


ITEM_FLAG_DEFAULTS: Dict[ItemType, Dict[str, RollToggle]] = {
    ItemType.WEAPON: {
        "quick_desc": _t(False, False),
        "quick_flavor": _t(True, True),
        "quick_footer": _t(True, True),
        "quick_attack": _t(True, True),
        "quick_save": _t(True, True),
        "quick_check": _t(True, True),
        "quick_versatile": _t(False, True),
        "quick_other": _t(True, True),
    },
    ItemType.SPELL: {
        "quick_desc": _t(True, True),
        "quick_flavor": _t(True, True),
        "quick_footer": _t(True, True),
        "quick_attack": _t(True, True),
        "quick_versatile": _t(False, False),
        "quick_save": _t(True, True),
        "quick_other": _t(True, True),
    },
    ItemType.EQUIPMENT: {
        "quick_desc": _t(True, True),
        "quick_flavor": _t(True, True),
        "quick_footer": _t(True, True),
        "quick_attack": _t(True, True),
        "quick_save": _t(True, True),
        "quick_other": _t(True, True),
    },
    ItemType.FEATURE: {
        "quick_desc": _t(True, True),
        "quick_flavor": _t(True, True),
        "quick_footer": _t(True, True),
        "quick_attack": _t(True, True),
        "quick_save": _t(True, True),
        "quick_other": _t(True, True),
    },
    ItemType.TOOL: {
        "quick_desc": _t(False, False),
        "quick_flavor": _t(True, True),
        "quick_footer": _t(True, True),
        "quick_check": _t(True, True),
    },
    ItemType.CONSUMABLE: {
        "quick_desc": _t(True, True),
        "quick_flavor": _t(True, True),
        "quick_footer": _t(True, True),
        "quick_attack": _t(True, True),
        "quick_save": _t(True, True),
        "quick_other": _t(True, True),
    },
}

# Item kinds that carry per-part damage toggles
DAMAGE_ITEM_TYPES = frozenset(
    {ItemType.WEAPON, ItemType.SPELL, ItemType.EQUIPMENT, ItemType.FEATURE, ItemType.CONSUMABLE}
)


@dataclass(frozen=True)
class ItemRollFlags:
    """
    Quick roll toggles for one item.

    Attributes:
        item_type: Kind of item the toggles belong to
        toggles: Toggle per recognised key for that kind
        quick_damage: Toggle per damage part (missing parts default to on)
    """

    item_type: ItemType
    toggles: Mapping[str, RollToggle] = field(default_factory=dict)
    quick_damage: Tuple[RollToggle, ...] = ()

    @classmethod
    def defaults(cls, item_type: ItemType) -> "ItemRollFlags":
        return cls(ItemType(item_type), dict(ITEM_FLAG_DEFAULTS[ItemType(item_type)]))

    @classmethod
    def from_dict(cls, item_type: ItemType, data: Optional[Mapping[str, Any]]) -> "ItemRollFlags":
        """
        Load toggles for an item, merged over the defaults for its kind.

        Raises:
            ConfigError: On keys not recognised for the item kind or bad values
        """
        try:
            item_type = ItemType(item_type)
        except ValueError:
            raise ConfigError(f"Unknown item type: {item_type!r}") from None

        flags = cls.defaults(item_type)
        toggles = dict(flags.toggles)
        quick_damage: Tuple[RollToggle, ...] = ()

        for key, raw in (data or {}).items():
            if key == "quick_damage" and item_type in DAMAGE_ITEM_TYPES:
                if not isinstance(raw, (list, tuple)):
                    raise ConfigError(f"quick_damage must be a list, got {raw!r}")
                quick_damage = tuple(RollToggle.parse(key, r) for r in raw)
            elif key in toggles:
                toggles[key] = RollToggle.parse(key, raw)
            else:
                raise ConfigError(f"Unrecognised flag '{key}' for item type '{item_type.value}'")

        return replace(flags, toggles=toggles, quick_damage=quick_damage)

    def enabled(self, key: str, alt: bool = False) -> bool:
        toggle = self.toggles.get(key)
        return toggle.resolve(alt) if toggle else False

    def damage_enabled(self, index: int, alt: bool = False) -> bool:
        if index < len(self.quick_damage):
            return self.quick_damage[index].resolve(alt)
        return True

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            key: {"value": t.value, "alt_value": t.alt_value} for key, t in self.toggles.items()
        }
        if self.quick_damage:
            data["quick_damage"] = [
                {"value": t.value, "alt_value": t.alt_value} for t in self.quick_damage
            ]
        return data
