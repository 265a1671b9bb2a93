"""
quickroll/errors.py

Quick roll exceptions.

Every error in this hierarchy is recoverable at the call boundary: the
boundary logs it, notifies the user and returns None (or the unchanged
input) instead of letting it escape into unrelated call stacks.
"""


class QuickRollError(Exception):
    """Base exception for quick roll errors."""
    pass


class InvalidTargetStateError(QuickRollError):
    """
    Requested roll state is not valid for the operation.

    Raised when:
    - Upgrading to a state other than advantage or disadvantage
    - Rerolling a die result that was already rerolled
    - Targeting a field of the wrong type for an action
    """
    pass


class IndexOutOfRangeError(QuickRollError, IndexError):
    """Target index is beyond the available results, terms or fields."""
    pass


class UnknownIdentifierError(QuickRollError, KeyError):
    """
    Ability, skill or tool identifier not found in the rule tables.
    """

    def __init__(self, kind: str, identifier: str):
        self.kind = kind
        self.identifier = identifier
        super().__init__(kind, identifier)

    def __str__(self) -> str:
        return f"Unknown {self.kind} identifier: '{self.identifier}'"


class NullRollError(QuickRollError):
    """An operation received no roll where one was required."""
    pass


class TypeMismatchError(QuickRollError, TypeError):
    """Subject passed to an actor or item operation is the wrong kind."""
    pass


class FormulaError(QuickRollError, ValueError):
    """Dice formula is malformed or exceeds configured limits."""
    pass


class ConfigError(QuickRollError):
    """Configuration invalid or contains unrecognised keys."""
    pass
