"""
Quick Roll Plugin

Post quick roll cards to chat and update them with follow-up actions.

Commands:
    quickroll.command.skill|ability|save|tool|damage|item

Actions on a posted card:
    quickroll.action.upgrade|crit|reroll|damage
"""

from .plugin import QuickRollPlugin, parse_roll_state

__all__ = ["QuickRollPlugin", "parse_roll_state"]
__version__ = "1.0.0"
