"""
Multi-die enforcement and advantage/disadvantage upgrades.

A plain d20 roll can be turned into a multi-die roll after the fact:
the dice already rolled are kept and only the missing dice are requested
from the evaluator. An upgrade then applies keep-highest or keep-lowest
over whatever results are live at that point.
"""

import logging
from dataclasses import dataclass, replace
from enum import Enum

from ..errors import InvalidTargetStateError, NullRollError
from .classifier import CritOptions, CritType, classify_roll
from .evaluator import DiceEvaluator
from .terms import KEEP_HIGHEST, KEEP_LOWEST, Die, Roll, keep_results, keep_token

logger = logging.getLogger(__name__)


class RollState(Enum):
    """Display state of a check roll."""

    ADVANTAGE = KEEP_HIGHEST
    DISADVANTAGE = KEEP_LOWEST
    DUAL = "dual"
    SINGLE = "single"


@dataclass(frozen=True)
class MultiDiePolicy:
    """
    When and how to enforce a multi-die roll.

    Attributes:
        force: Enforcement is required (otherwise rolls pass through)
        wanted_count: Dice of the matched face count that must be present
        base_faces: Face count of the term to augment
    """

    force: bool = False
    wanted_count: int = 2
    base_faces: int = 20

    def __post_init__(self):
        if self.wanted_count not in (2, 3):
            raise ValueError(f"wanted_count must be 2 or 3, got {self.wanted_count}")

    @classmethod
    def for_roll(cls, roll: Roll, force: bool = True, base_faces: int = 20) -> "MultiDiePolicy":
        """Policy for a roll, rolling three dice for elven accuracy unless it has disadvantage."""
        elven = roll.options.elven_accuracy and not roll.has_disadvantage
        return cls(
            force=force,
            wanted_count=3 if elven else 2,
            base_faces=base_faces,
        )


@dataclass(frozen=True)
class MultiRollOutcome:
    """Enforced roll plus the classification computed from it."""

    roll: Roll
    crit_type: CritType
    is_multi_roll: bool

    @property
    def is_crit(self) -> bool:
        return self.crit_type in (CritType.SUCCESS, CritType.MIXED)

    @property
    def is_fumble(self) -> bool:
        return self.crit_type in (CritType.FAILURE, CritType.MIXED)


async def ensure_multi_die(
    roll: Roll, policy: MultiDiePolicy, evaluator: DiceEvaluator
) -> Roll:
    """
    Guarantee the wanted number of same-type dice on a roll.

    The original results are kept; only the missing dice are rolled and
    spliced into a new die term that replaces the original one.

    Args:
        roll: Roll to enforce
        policy: Enforcement policy
        evaluator: Source of additional dice

    Returns:
        The augmented roll, or the input roll when nothing needs adding

    Raises:
        NullRollError: If roll is None
    """
    if roll is None:
        raise NullRollError("Cannot enforce a multi roll on a missing roll")

    if not policy.force:
        return roll

    index = roll.find_die(policy.base_faces)
    if index is None:
        logger.debug("No d%d term in '%s', skipping enforcement", policy.base_faces, roll.formula)
        return roll

    base: Die = roll.terms[index]
    missing = policy.wanted_count - base.count
    if missing <= 0:
        return roll

    extra = await evaluator.evaluate(f"{missing}d{base.faces}{''.join(base.modifiers)}")
    extra_results = extra.dice[0].results if extra.dice else ()

    results = base.results + tuple(extra_results)
    keep = base.keep
    if keep:
        results = keep_results(results, keep[0], keep[1])

    forced = replace(base, count=policy.wanted_count, results=results)
    logger.debug(
        "Enforced multi roll: %s -> %s (%d new results)",
        base.formula, forced.formula, len(extra_results),
    )
    return roll.replace_term(index, forced)


async def enforce_multi_roll(
    roll: Roll, policy: MultiDiePolicy, evaluator: DiceEvaluator
) -> MultiRollOutcome:
    """
    Enforce a multi-die roll and classify the result.

    Classification ignores discarded results and is computed from the
    enforced roll rather than from the roll's own advantage state.
    """
    enforced = await ensure_multi_die(roll, policy, evaluator)
    crit_type = classify_roll(
        enforced, CritOptions.from_roll_options(enforced.options, ignore_discarded=True)
    )

    index = enforced.find_die(policy.base_faces)
    live = len(enforced.terms[index].live_results) if index is not None else 0

    return MultiRollOutcome(
        roll=enforced,
        crit_type=crit_type,
        is_multi_roll=live >= 2,
    )


def apply_keep(die: Die, state: RollState) -> Die:
    """
    Apply keep-highest/keep-lowest to a die and record the modifier token.

    Any existing keep token is replaced. Rerolled results are never
    discarded or selected.
    """
    if state not in (RollState.ADVANTAGE, RollState.DISADVANTAGE):
        raise InvalidTargetStateError(f"Cannot keep results for roll state '{state}'")

    modifiers = tuple(m for m in die.modifiers if keep_token(m) is None)
    return replace(
        die,
        results=keep_results(die.results, state.value, 1),
        modifiers=modifiers + (state.value,),
    )


async def upgrade_roll(roll: Roll, state: RollState, evaluator: DiceEvaluator) -> Roll:
    """
    Upgrade a roll to advantage or disadvantage.

    Args:
        roll: Roll to upgrade
        state: RollState.ADVANTAGE or RollState.DISADVANTAGE
        evaluator: Source of additional dice

    Returns:
        The upgraded roll

    Raises:
        NullRollError: If roll is None
        InvalidTargetStateError: If state is not advantage/disadvantage or
            the roll has no d20 to upgrade
    """
    if roll is None:
        raise NullRollError("Cannot upgrade a missing roll")

    if state not in (RollState.ADVANTAGE, RollState.DISADVANTAGE):
        raise InvalidTargetStateError(f"Cannot upgrade a roll to state '{state}'")

    if state is RollState.DISADVANTAGE:
        roll = roll.with_options(elven_accuracy=False)

    upgraded = await ensure_multi_die(roll, MultiDiePolicy.for_roll(roll, force=True), evaluator)

    index = upgraded.find_die(20)
    if index is None:
        raise InvalidTargetStateError(f"Roll '{roll.formula}' has no d20 to upgrade")

    kept = apply_keep(upgraded.terms[index], state)
    logger.debug("Upgraded '%s' to %s", roll.formula, state.name.lower())

    return upgraded.replace_term(index, kept).with_options(
        advantage_mode=1 if state is RollState.ADVANTAGE else -1
    )
