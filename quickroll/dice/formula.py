"""
Dice formula parsing.

Supports: [count]d<faces>[modifiers], integer constants, "+" and "-".

Modifiers:
    kh[n]   keep highest n (default 1)
    kl[n]   keep lowest n (default 1)
    min<n>  results below n count as n
    max<n>  results above n count as n

Examples:
    "1d20 + 5"       -> [1d20, +, 5]
    "2d20kh+3"       -> [2d20kh, +, 3]
    "d8 - 1 + 1d4"   -> [1d8, -, 1, +, 1d4]
"""

import re
from typing import List, Tuple

from ..errors import FormulaError
from .terms import Die, NumericTerm, OperatorTerm, Term

_DIE = re.compile(
    r"(?P<count>\d*)d(?P<faces>\d+)(?P<mods>(?:k[hl]\d*|min\d+|max\d+)*)",
    re.IGNORECASE,
)
_NUMBER = re.compile(r"\d+")
_MODIFIER = re.compile(r"k[hl]\d*|min\d+|max\d+", re.IGNORECASE)


class FormulaParser:
    """
    Parse and validate dice formulas into unevaluated terms.

    Limits (configurable):
        - max_dice: Maximum number of dice in a single term (default 100)
        - max_faces: Maximum faces per die (default 1000)
    """

    DEFAULT_MAX_DICE = 100
    DEFAULT_MAX_FACES = 1000

    def __init__(
        self,
        max_dice: int = DEFAULT_MAX_DICE,
        max_faces: int = DEFAULT_MAX_FACES,
    ):
        self.max_dice = max_dice
        self.max_faces = max_faces

    def parse(self, formula: str) -> Tuple[Term, ...]:
        """
        Parse a formula into terms.

        Args:
            formula: Dice formula (e.g., "2d6 + 3")

        Returns:
            Tuple of unevaluated terms

        Raises:
            FormulaError: If the formula is empty, malformed or over limits
        """
        if not formula or not formula.strip():
            raise FormulaError("Dice formula cannot be empty")

        text = "".join(formula.split())
        terms: List[Term] = []
        i = 0

        while i < len(text):
            if text[i] in "+-":
                if terms and isinstance(terms[-1], OperatorTerm):
                    raise FormulaError(f"Invalid dice formula: '{formula}'")
                terms.append(OperatorTerm(text[i]))
                i += 1
                continue

            if terms and not isinstance(terms[-1], OperatorTerm):
                raise FormulaError(f"Invalid dice formula: '{formula}'")

            match = _DIE.match(text, i)
            if match:
                terms.append(self._build_die(match))
                i = match.end()
                continue

            match = _NUMBER.match(text, i)
            if match:
                terms.append(NumericTerm(int(match.group(0))))
                i = match.end()
                continue

            raise FormulaError(f"Invalid dice formula: '{formula}'")

        if isinstance(terms[-1], OperatorTerm):
            raise FormulaError(f"Dangling operator in dice formula: '{formula}'")

        return tuple(terms)

    def _build_die(self, match: "re.Match") -> Die:
        count = int(match.group("count")) if match.group("count") else 1
        faces = int(match.group("faces"))
        modifiers = tuple(m.lower() for m in _MODIFIER.findall(match.group("mods")))

        if count < 1:
            raise FormulaError("Must roll at least 1 die")
        if count > self.max_dice:
            raise FormulaError(f"Maximum {self.max_dice} dice allowed")
        if faces < 1:
            raise FormulaError("Dice must have at least 1 face")
        if faces > self.max_faces:
            raise FormulaError(f"Maximum {self.max_faces} faces allowed")

        return Die(count=count, faces=faces, modifiers=modifiers)


def parse_formula(formula: str) -> Tuple[Term, ...]:
    """Parse a formula with default limits."""
    return FormulaParser().parse(formula)
