"""
Critical damage synthesis.

Builds the extra "critical" roll that is added on top of a base damage
roll when an attack crits.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional

from ..errors import NullRollError
from .evaluator import DiceEvaluator
from .formula import parse_formula
from .terms import Die, NumericTerm, OperatorTerm, Roll, Term, format_terms, simplify_terms

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CriticalPolicy:
    """
    Rule choices for critical damage.

    Attributes:
        multiply_numeric: Flat bonuses are doubled too (kept in the crit roll)
        critical_bonus_dice: Extra dice of the first die's faces on group 0
        critical_bonus_formula: Extra formula appended on group 0
        powerful_critical: Crit dice roll their maximum face
    """

    multiply_numeric: bool = False
    critical_bonus_dice: int = 0
    critical_bonus_formula: str = ""
    powerful_critical: bool = False


async def synthesize_critical(
    base_roll: Roll,
    group_index: int,
    policy: CriticalPolicy,
    evaluator: DiceEvaluator,
) -> Roll:
    """
    Build the critical variant of a damage roll.

    Every term of the base roll is duplicated with fresh dice. Flat numeric
    terms are dropped unless policy.multiply_numeric is set. Bonus dice and
    the bonus formula only apply to the first damage group.

    Args:
        base_roll: Base damage roll (never modified)
        group_index: Position of this damage group among the card's damage
        policy: Critical rule choices
        evaluator: Evaluator for the new dice

    Returns:
        A new, independent Roll

    Raises:
        NullRollError: If base_roll is None
        FormulaError: If the bonus formula is invalid
    """
    if base_roll is None:
        raise NullRollError("Cannot build a critical roll from a missing roll")

    terms: List[Term] = [
        t.unevaluated() if isinstance(t, Die) else t
        for t in base_roll.terms
        if policy.multiply_numeric or not isinstance(t, NumericTerm)
    ]

    first_die: Optional[Die] = next((t for t in terms if isinstance(t, Die)), None)

    if group_index == 0:
        if policy.critical_bonus_dice > 0 and first_die is not None:
            terms += [OperatorTerm("+"), Die(policy.critical_bonus_dice, first_die.faces)]

        if policy.critical_bonus_formula:
            terms += [OperatorTerm("+"), *parse_formula(policy.critical_bonus_formula)]

    terms = list(simplify_terms(terms))
    if not terms:
        return Roll((), base_roll.options)

    formula = format_terms(terms)
    logger.debug("Critical roll for '%s' (group %d): %s", base_roll.formula, group_index, formula)

    return await evaluator.evaluate(
        formula, options=base_roll.options, maximize=policy.powerful_critical
    )
