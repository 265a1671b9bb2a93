"""
Critical and fumble classification.

Pure functions over a die term or a whole roll. Calling them twice on the
same input always yields the same output, which is what makes re-rendering
a card safe.
"""

from dataclasses import dataclass
from enum import Enum
from typing import NamedTuple, Optional

from .terms import Die, Roll, RollOptions


class CritType(Enum):
    """Types of critical results."""

    NONE = "none"
    SUCCESS = "success"
    FAILURE = "failure"
    MIXED = "mixed"


class CritCount(NamedTuple):
    crit: int
    fumble: int


@dataclass(frozen=True)
class CritOptions:
    """
    Thresholds for classification.

    Attributes:
        crit_threshold: Overrides the die's own threshold (default: faces)
        fumble_threshold: Overrides the die's own threshold (default: 1)
        target_value: Face target; at or above counts as crit, below as fumble
        ignore_discarded: Skip results dropped by keep-highest/keep-lowest
    """

    crit_threshold: Optional[int] = None
    fumble_threshold: Optional[int] = None
    target_value: Optional[int] = None
    ignore_discarded: bool = False

    @classmethod
    def from_roll_options(
        cls, options: RollOptions, ignore_discarded: bool = False
    ) -> "CritOptions":
        return cls(
            crit_threshold=options.critical_threshold,
            fumble_threshold=options.fumble_threshold,
            target_value=options.target_value,
            ignore_discarded=ignore_discarded,
        )


def classify_die(die: Die, options: Optional[CritOptions] = None) -> CritCount:
    """
    Count crits and fumbles on a die term.

    Rerolled results never count. A result counts as a crit when it reaches
    the target value OR the crit threshold, so with a target set a value
    below the crit threshold can still be a crit. Otherwise it counts as a
    fumble when it is below the target OR at/below the fumble threshold.
    Terms with one face or fewer never count.

    Args:
        die: Die term to inspect
        options: Thresholds (defaults to the die's own)

    Returns:
        CritCount(crit, fumble)
    """
    options = options or CritOptions()
    crit = 0
    fumble = 0

    if die is None or die.faces <= 1:
        return CritCount(0, 0)

    crit_threshold = _first_set(options.crit_threshold, die.critical, die.faces)
    fumble_threshold = _first_set(options.fumble_threshold, die.fumble, 1)
    target = options.target_value

    for result in die.results:
        if result.rerolled or (result.discarded and options.ignore_discarded):
            continue

        if (target is not None and result.value >= target) or result.value >= crit_threshold:
            crit += 1
        elif (target is not None and result.value < target) or result.value <= fumble_threshold:
            fumble += 1

    return CritCount(crit, fumble)


def reduce_counts(counts: CritCount) -> CritType:
    """Reduce crit/fumble counts to a single classification."""
    if counts.crit > 0 and counts.fumble > 0:
        return CritType.MIXED
    if counts.crit > 0:
        return CritType.SUCCESS
    if counts.fumble > 0:
        return CritType.FAILURE
    return CritType.NONE


def crit_type_for_die(die: Die, options: Optional[CritOptions] = None) -> CritType:
    return reduce_counts(classify_die(die, options))


def classify_roll(roll: Roll, options: Optional[CritOptions] = None) -> CritType:
    """
    Classify a whole roll across all of its die terms.

    Args:
        roll: Roll to classify
        options: Thresholds (defaults to the roll's own options)

    Returns:
        CritType for the roll
    """
    if options is None:
        options = CritOptions.from_roll_options(roll.options)

    crit = 0
    fumble = 0
    for die in roll.dice:
        counts = classify_die(die, options)
        crit += counts.crit
        fumble += counts.fumble

    return reduce_counts(CritCount(crit, fumble))


def _first_set(*values):
    for value in values:
        if value is not None:
            return value
    return None
