"""
Dice evaluation.

This module provides:
- DiceEvaluator: Abstract async interface for producing rolled results
- RandomDiceEvaluator: Evaluator backed by a random.Random instance

Evaluation is the only part of the dice algebra allowed to suspend.
Everything else (classification, enforcement bookkeeping, rerolls and
critical synthesis) is synchronous around these calls.
"""

import logging
import random
from abc import ABC, abstractmethod
from dataclasses import replace
from typing import List, Optional

from .formula import FormulaParser
from .terms import Die, DieResult, Roll, RollOptions, Term, keep_results

logger = logging.getLogger(__name__)


class DiceEvaluator(ABC):
    """
    Abstract interface for dice evaluation.

    Implementations may suspend (e.g. to animate dice or to call out to a
    remote roller) but must return fully populated results.
    """

    @abstractmethod
    async def evaluate(
        self,
        formula: str,
        options: Optional[RollOptions] = None,
        maximize: bool = False,
    ) -> Roll:
        """
        Evaluate a formula into a roll.

        Args:
            formula: Dice formula (e.g., "1d20 + 5")
            options: Roll options to attach to the result
            maximize: Force every die to its highest face

        Returns:
            Evaluated Roll

        Raises:
            FormulaError: If the formula is invalid
        """

    @abstractmethod
    async def evaluate_single_die(self, faces: int) -> DieResult:
        """
        Roll one die.

        Args:
            faces: Faces of the die

        Returns:
            A fresh, active DieResult
        """


class RandomDiceEvaluator(DiceEvaluator):
    """
    Evaluate dice with a configurable random number generator.

    Uses an injectable rng for testability.
    """

    def __init__(
        self,
        rng: Optional[random.Random] = None,
        parser: Optional[FormulaParser] = None,
    ):
        """
        Initialize evaluator.

        Args:
            rng: Random number generator (defaults to system RNG)
            parser: Formula parser (defaults to FormulaParser with default limits)
        """
        self.rng = rng or random.Random()
        self.parser = parser or FormulaParser()

    async def evaluate(
        self,
        formula: str,
        options: Optional[RollOptions] = None,
        maximize: bool = False,
    ) -> Roll:
        terms = self.parser.parse(formula)
        evaluated: List[Term] = [
            self._roll_die(t, maximize) if isinstance(t, Die) else t for t in terms
        ]
        roll = Roll(tuple(evaluated), options or RollOptions())
        logger.debug("Evaluated '%s' -> %d", roll.formula, roll.total)
        return roll

    async def evaluate_single_die(self, faces: int) -> DieResult:
        return DieResult(self.rng.randint(1, faces))

    def _roll_die(self, die: Die, maximize: bool) -> Die:
        values = [
            die.faces if maximize else self.rng.randint(1, die.faces)
            for _ in range(die.count)
        ]

        for token in die.modifiers:
            if token.startswith("min"):
                floor = int(token[3:])
                values = [max(v, floor) for v in values]
            elif token.startswith("max"):
                ceiling = int(token[3:])
                values = [min(v, ceiling) for v in values]

        results = tuple(DieResult(v) for v in values)

        keep = die.keep
        if keep:
            results = keep_results(results, keep[0], keep[1])

        return replace(die, results=results)
