"""
Dice term model.

This module provides:
- DieResult: One rolled outcome of a die
- Die: A die term (count, faces, results, modifiers)
- OperatorTerm / NumericTerm: "+"/"-" and flat bonuses
- RollOptions: Thresholds and roll-wide options
- Roll: An ordered sequence of terms with a cached total

Terms are immutable. Operations that change a roll (enforcement, upgrade,
reroll) build a new Die and a new Roll around it, so one roll can be
referenced from several fields without aliasing.
"""

import re
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

KEEP_HIGHEST = "kh"
KEEP_LOWEST = "kl"

_KEEP_TOKEN = re.compile(r"^(kh|kl)(\d*)$")


@dataclass(frozen=True)
class DieResult:
    """
    Result of a single die.

    Attributes:
        value: Face value rolled
        active: Whether the value counts towards the total
        discarded: Dropped by keep-highest/keep-lowest but still displayed
        rerolled: Superseded by the result inserted right after it
    """

    value: int
    active: bool = True
    discarded: bool = False
    rerolled: bool = False

    def to_data(self) -> Dict[str, Any]:
        return {
            "value": self.value,
            "active": self.active,
            "discarded": self.discarded,
            "rerolled": self.rerolled,
        }

    @classmethod
    def from_data(cls, data: Dict[str, Any]) -> "DieResult":
        return cls(
            value=int(data["value"]),
            active=bool(data.get("active", True)),
            discarded=bool(data.get("discarded", False)),
            rerolled=bool(data.get("rerolled", False)),
        )


def keep_token(token: str) -> Optional[Tuple[str, int]]:
    """
    Parse a keep modifier token.

    Args:
        token: Modifier token (e.g., "kh", "kl2")

    Returns:
        Tuple of (mode, count) or None if the token is not a keep token
    """
    match = _KEEP_TOKEN.match(token)
    if not match:
        return None
    return match.group(1), int(match.group(2) or 1)


def keep_results(
    results: Iterable[DieResult], mode: str, count: int = 1
) -> Tuple[DieResult, ...]:
    """
    Apply keep-highest or keep-lowest selection over a result sequence.

    Rerolled results are excluded from the candidate pool and returned
    untouched. Ties keep the earliest result in sequence order.

    Args:
        results: Current results of a die term
        mode: KEEP_HIGHEST or KEEP_LOWEST
        count: Number of results to keep

    Returns:
        New result tuple with non-selected candidates discarded
    """
    results = list(results)
    candidates = [i for i, r in enumerate(results) if not r.rerolled]
    ordered = sorted(
        candidates,
        key=lambda i: -results[i].value if mode == KEEP_HIGHEST else results[i].value,
    )
    selected = set(ordered[:count])

    for i in candidates:
        if i in selected:
            results[i] = replace(results[i], active=True, discarded=False)
        else:
            results[i] = replace(results[i], active=False, discarded=True)

    return tuple(results)


@dataclass(frozen=True)
class Die:
    """
    A die term such as 2d20kh.

    Attributes:
        count: Number of dice the term was declared with
        faces: Faces per die
        results: Rolled results in sequence order (empty until evaluated)
        modifiers: Modifier tokens in formula order (e.g., "kh", "min10")
        critical: Per-term critical threshold override
        fumble: Per-term fumble threshold override
    """

    count: int
    faces: int
    results: Tuple[DieResult, ...] = ()
    modifiers: Tuple[str, ...] = ()
    critical: Optional[int] = None
    fumble: Optional[int] = None

    def __post_init__(self):
        object.__setattr__(self, "results", tuple(self.results))
        object.__setattr__(self, "modifiers", tuple(self.modifiers))

    @property
    def evaluated(self) -> bool:
        return len(self.results) > 0

    @property
    def total(self) -> int:
        return sum(r.value for r in self.results if r.active)

    @property
    def active_results(self) -> Tuple[DieResult, ...]:
        return tuple(r for r in self.results if r.active)

    @property
    def live_results(self) -> Tuple[DieResult, ...]:
        """Results that have not been superseded by a reroll."""
        return tuple(r for r in self.results if not r.rerolled)

    @property
    def keep(self) -> Optional[Tuple[str, int]]:
        """The (mode, count) keep modifier on this term, if any."""
        for token in self.modifiers:
            parsed = keep_token(token)
            if parsed:
                return parsed
        return None

    @property
    def formula(self) -> str:
        return f"{self.count}d{self.faces}{''.join(self.modifiers)}"

    def with_results(self, results: Iterable[DieResult]) -> "Die":
        return replace(self, results=tuple(results))

    def unevaluated(self) -> "Die":
        return replace(self, results=())

    def to_data(self) -> Dict[str, Any]:
        return {
            "class": "Die",
            "count": self.count,
            "faces": self.faces,
            "results": [r.to_data() for r in self.results],
            "modifiers": list(self.modifiers),
            "critical": self.critical,
            "fumble": self.fumble,
        }


@dataclass(frozen=True)
class OperatorTerm:
    """An arithmetic operator between two operands."""

    operator: str

    def __post_init__(self):
        if self.operator not in ("+", "-"):
            raise ValueError(f"Unsupported operator: '{self.operator}'")

    @property
    def formula(self) -> str:
        return self.operator

    def to_data(self) -> Dict[str, Any]:
        return {"class": "OperatorTerm", "operator": self.operator}


@dataclass(frozen=True)
class NumericTerm:
    """A flat numeric bonus."""

    value: int

    @property
    def total(self) -> int:
        return self.value

    @property
    def formula(self) -> str:
        return str(self.value)

    def to_data(self) -> Dict[str, Any]:
        return {"class": "NumericTerm", "value": self.value}


Term = Union[Die, OperatorTerm, NumericTerm]


def term_from_data(data: Dict[str, Any]) -> Term:
    """Rebuild a term from its serialized form."""
    kind = data.get("class")
    if kind == "Die":
        return Die(
            count=int(data["count"]),
            faces=int(data["faces"]),
            results=tuple(DieResult.from_data(r) for r in data.get("results", [])),
            modifiers=tuple(data.get("modifiers", [])),
            critical=data.get("critical"),
            fumble=data.get("fumble"),
        )
    if kind == "OperatorTerm":
        return OperatorTerm(data["operator"])
    if kind == "NumericTerm":
        return NumericTerm(int(data["value"]))
    raise ValueError(f"Unknown term class: {kind!r}")


def simplify_terms(terms: Iterable[Term]) -> Tuple[Term, ...]:
    """
    Collapse dangling operators in a term sequence.

    Consecutive operators are merged into one, a leading "+" is dropped
    and trailing operators are stripped.

    Examples:
        [+, 1d6, +, -, 2]  -> [1d6, -, 2]
        [1d6, +]           -> [1d6]
    """
    simplified: List[Term] = []
    pending: Optional[str] = None

    for term in terms:
        if isinstance(term, OperatorTerm):
            if pending is None:
                pending = term.operator
            else:
                pending = "-" if (pending == "-") != (term.operator == "-") else "+"
            continue

        if pending is not None and (simplified or pending == "-"):
            simplified.append(OperatorTerm(pending))
        pending = None
        simplified.append(term)

    return tuple(simplified)


def format_terms(terms: Iterable[Term]) -> str:
    return " ".join(t.formula for t in terms)


def _evaluate_total(terms: Tuple[Term, ...]) -> int:
    total = 0
    sign = 1

    for term in terms:
        if isinstance(term, OperatorTerm):
            if term.operator == "-":
                sign = -sign
            continue
        total += sign * term.total
        sign = 1

    return total


@dataclass(frozen=True)
class RollOptions:
    """
    Roll-wide options.

    Attributes:
        critical_threshold: Face value at or above which a die crits
        fumble_threshold: Face value at or below which a die fumbles
        target_value: Face value target for challenge checks; a result at or
            above it counts as a crit and one below it as a fumble
        dc: Total needed to pass, used for the pass/fail mark only
        elven_accuracy: Advantage rolls three dice instead of two
        advantage_mode: 1 advantage, -1 disadvantage, 0 normal
    """

    critical_threshold: Optional[int] = None
    fumble_threshold: Optional[int] = None
    target_value: Optional[int] = None
    dc: Optional[int] = None
    elven_accuracy: bool = False
    advantage_mode: int = 0

    def to_data(self) -> Dict[str, Any]:
        return {
            "critical_threshold": self.critical_threshold,
            "fumble_threshold": self.fumble_threshold,
            "target_value": self.target_value,
            "dc": self.dc,
            "elven_accuracy": self.elven_accuracy,
            "advantage_mode": self.advantage_mode,
        }

    @classmethod
    def from_data(cls, data: Optional[Dict[str, Any]]) -> "RollOptions":
        data = data or {}
        return cls(
            critical_threshold=data.get("critical_threshold"),
            fumble_threshold=data.get("fumble_threshold"),
            target_value=data.get("target_value"),
            dc=data.get("dc"),
            elven_accuracy=bool(data.get("elven_accuracy", False)),
            advantage_mode=int(data.get("advantage_mode", 0)),
        )


@dataclass(frozen=True)
class Roll:
    """
    An evaluated roll: ordered terms plus a cached total.

    Example:
        >>> roll = Roll((Die(1, 20, (DieResult(17),)), OperatorTerm("+"), NumericTerm(5)))
        >>> roll.total
        22
        >>> roll.formula
        '1d20 + 5'
    """

    terms: Tuple[Term, ...]
    options: RollOptions = field(default_factory=RollOptions)
    total: int = field(init=False)

    def __post_init__(self):
        object.__setattr__(self, "terms", tuple(self.terms))
        object.__setattr__(self, "total", _evaluate_total(self.terms))

    @property
    def formula(self) -> str:
        return format_terms(self.terms)

    @property
    def dice(self) -> Tuple[Die, ...]:
        return tuple(t for t in self.terms if isinstance(t, Die))

    @property
    def has_advantage(self) -> bool:
        return self._keep_mode(20) == KEEP_HIGHEST

    @property
    def has_disadvantage(self) -> bool:
        return self._keep_mode(20) == KEEP_LOWEST

    def _keep_mode(self, faces: int) -> Optional[str]:
        index = self.find_die(faces)
        if index is None:
            return None
        keep = self.terms[index].keep
        return keep[0] if keep else None

    def find_die(self, faces: int) -> Optional[int]:
        """Index of the first die term with the given face count."""
        for i, term in enumerate(self.terms):
            if isinstance(term, Die) and term.faces == faces:
                return i
        return None

    def die_term_index(self, part: int) -> Optional[int]:
        """Index in terms of the part-th die term."""
        die_indexes = [i for i, t in enumerate(self.terms) if isinstance(t, Die)]
        if 0 <= part < len(die_indexes):
            return die_indexes[part]
        return None

    def replace_term(self, index: int, term: Term) -> "Roll":
        terms = list(self.terms)
        terms[index] = term
        return replace(self, terms=tuple(terms))

    def with_options(self, **changes) -> "Roll":
        return replace(self, options=replace(self.options, **changes))

    def to_data(self) -> Dict[str, Any]:
        return {
            "formula": self.formula,
            "total": self.total,
            "terms": [t.to_data() for t in self.terms],
            "options": self.options.to_data(),
        }

    @classmethod
    def from_data(cls, data: Dict[str, Any]) -> "Roll":
        return cls(
            terms=tuple(term_from_data(t) for t in data.get("terms", [])),
            options=RollOptions.from_data(data.get("options")),
        )
