"""
Single-die rerolls.

A rerolled result stays in the sequence, retired from totals, and its
replacement is inserted right after it so the history reads in order.
"""

import logging
from dataclasses import replace

from ..errors import IndexOutOfRangeError, InvalidTargetStateError, NullRollError
from .evaluator import DiceEvaluator
from .terms import Die, DieResult, Roll, keep_results

logger = logging.getLogger(__name__)


async def reroll_die(die: Die, target_index: int, evaluator: DiceEvaluator) -> Die:
    """
    Reroll one result of a die term.

    Args:
        die: Die term holding the result
        target_index: Index into die.results
        evaluator: Source of the fresh result

    Returns:
        New Die with the original marked rerolled and its replacement after it

    Raises:
        NullRollError: If die is None
        IndexOutOfRangeError: If target_index is outside die.results
        InvalidTargetStateError: If the result was already rerolled
    """
    if die is None:
        raise NullRollError("Cannot reroll a die on a missing roll")

    if target_index < 0 or target_index >= len(die.results):
        raise IndexOutOfRangeError(
            f"Die result {target_index} out of range (term has {len(die.results)} results)"
        )

    original = die.results[target_index]
    if original.rerolled:
        raise InvalidTargetStateError(f"Die result {target_index} has already been rerolled")

    fresh = await evaluator.evaluate_single_die(die.faces)

    results = list(die.results)
    results[target_index] = replace(original, rerolled=True, active=False)
    results.insert(target_index + 1, DieResult(fresh.value))

    keep = die.keep
    if keep:
        results = list(keep_results(results, keep[0], keep[1]))

    logger.debug("Rerolled d%d result %d: %d -> %d", die.faces, target_index, original.value, fresh.value)
    return replace(die, results=tuple(results))


async def reroll_roll_die(
    roll: Roll, part: int, target_index: int, evaluator: DiceEvaluator
) -> Roll:
    """
    Reroll one result of the part-th die term of a roll.

    Raises:
        NullRollError: If roll is None
        IndexOutOfRangeError: If there is no such die term or result
    """
    if roll is None:
        raise NullRollError("Cannot reroll a die on a missing roll")

    index = roll.die_term_index(part)
    if index is None:
        raise IndexOutOfRangeError(f"Die term {part} out of range in '{roll.formula}'")

    return roll.replace_term(index, await reroll_die(roll.terms[index], target_index, evaluator))
