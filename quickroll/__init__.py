"""Quick roll cards for tabletop dice rolls."""
from .actions import RollActions, d20_formula
from .config import ItemRollFlags, ManualDamageMode, RollToggle, Settings, SettingsStore
from .errors import (
    ConfigError,
    FormulaError,
    IndexOutOfRangeError,
    InvalidTargetStateError,
    NullRollError,
    QuickRollError,
    TypeMismatchError,
    UnknownIdentifierError,
)
from .fields import Field, FieldType
from .notifications import Notification, Notifications
from .quick_roll import QuickRoll, QuickRollParams
from .render import FieldMetadata, Renderer, TextRenderer
from .rules import GameRules, ItemType
from .subjects import Actor, DamagePart, Item, SaveInfo, SubjectRef

__version__ = "1.0.0"

__all__ = [
    'RollActions', 'd20_formula',
    'ItemRollFlags', 'ManualDamageMode', 'RollToggle', 'Settings', 'SettingsStore',
    'ConfigError', 'FormulaError', 'IndexOutOfRangeError', 'InvalidTargetStateError',
    'NullRollError', 'QuickRollError', 'TypeMismatchError', 'UnknownIdentifierError',
    'Field', 'FieldType',
    'Notification', 'Notifications',
    'QuickRoll', 'QuickRollParams',
    'FieldMetadata', 'Renderer', 'TextRenderer',
    'GameRules', 'ItemType',
    'Actor', 'DamagePart', 'Item', 'SaveInfo', 'SubjectRef',
]
