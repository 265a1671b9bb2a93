"""
quickroll/dice

Dice term algebra.

This module provides:
- Term model: DieResult, Die, OperatorTerm, NumericTerm, RollOptions, Roll
- FormulaParser: Formula text to unevaluated terms
- DiceEvaluator / RandomDiceEvaluator: Produce rolled results
- Classification: classify_die, classify_roll, CritType
- Enforcement: ensure_multi_die, enforce_multi_roll, upgrade_roll
- Rerolls: reroll_die, reroll_roll_die
- Critical damage: synthesize_critical
"""

from .classifier import (
    CritCount,
    CritOptions,
    CritType,
    classify_die,
    classify_roll,
    crit_type_for_die,
    reduce_counts,
)
from .critical import CriticalPolicy, synthesize_critical
from .enforcement import (
    MultiDiePolicy,
    MultiRollOutcome,
    RollState,
    apply_keep,
    enforce_multi_roll,
    ensure_multi_die,
    upgrade_roll,
)
from .evaluator import DiceEvaluator, RandomDiceEvaluator
from .formula import FormulaParser, parse_formula
from .reroll import reroll_die, reroll_roll_die
from .terms import (
    KEEP_HIGHEST,
    KEEP_LOWEST,
    Die,
    DieResult,
    NumericTerm,
    OperatorTerm,
    Roll,
    RollOptions,
    Term,
    format_terms,
    keep_results,
    simplify_terms,
)

__all__ = [
    "KEEP_HIGHEST",
    "KEEP_LOWEST",
    "Die",
    "DieResult",
    "NumericTerm",
    "OperatorTerm",
    "Roll",
    "RollOptions",
    "Term",
    "format_terms",
    "keep_results",
    "simplify_terms",
    "FormulaParser",
    "parse_formula",
    "DiceEvaluator",
    "RandomDiceEvaluator",
    "CritCount",
    "CritOptions",
    "CritType",
    "classify_die",
    "classify_roll",
    "crit_type_for_die",
    "reduce_counts",
    "MultiDiePolicy",
    "MultiRollOutcome",
    "RollState",
    "apply_keep",
    "enforce_multi_roll",
    "ensure_multi_die",
    "upgrade_roll",
    "reroll_die",
    "reroll_roll_die",
    "CriticalPolicy",
    "synthesize_critical",
]
