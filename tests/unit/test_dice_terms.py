"""
Unit tests for the dice term model, formula parser and evaluator.

Test Coverage:
- Formula parsing and validation limits
- Roll totals and formatting
- Keep-highest/keep-lowest selection
- Operator simplification
- Random evaluation with min/max modifiers and maximize
"""

import pytest

from quickroll.dice import (
    KEEP_HIGHEST,
    KEEP_LOWEST,
    Die,
    DieResult,
    FormulaParser,
    NumericTerm,
    OperatorTerm,
    Roll,
    RollOptions,
    keep_results,
    parse_formula,
    simplify_terms,
)
from quickroll.errors import FormulaError, QuickRollError


# =============================================================================
# Formula Parsing
# =============================================================================


class TestFormulaParser:
    """Tests for FormulaParser."""

    def test_parse_die_with_bonus(self):
        """Test simple die plus flat bonus."""
        terms = parse_formula("1d20 + 5")
        assert terms == (Die(1, 20), OperatorTerm("+"), NumericTerm(5))

    def test_parse_keep_modifier(self):
        """Test keep modifier is recorded on the die."""
        terms = parse_formula("2d20kh+3")
        assert terms[0].modifiers == ("kh",)
        assert terms[0].keep == (KEEP_HIGHEST, 1)

    def test_parse_implicit_count(self):
        """Test count defaults to 1."""
        terms = parse_formula("d8 - 1")
        assert terms[0] == Die(1, 8)
        assert terms[1] == OperatorTerm("-")

    def test_parse_multiple_dice(self):
        """Test several die terms in one formula."""
        terms = parse_formula("2d6 + 1d4 + 2")
        assert [t.formula for t in terms] == ["2d6", "+", "1d4", "+", "2"]

    def test_parse_case_insensitive(self):
        """Test uppercase notation."""
        assert parse_formula("2D20KL")[0] == Die(2, 20, modifiers=("kl",))

    @pytest.mark.parametrize("formula", ["", "   ", "abc", "1d20 +", "1d20 ++ 5", "2d"])
    def test_invalid_formula(self, formula):
        """Test malformed formulas raise FormulaError."""
        with pytest.raises(FormulaError):
            parse_formula(formula)

    def test_zero_dice(self):
        """Test zero dice is rejected."""
        with pytest.raises(FormulaError, match="at least 1 die"):
            parse_formula("0d6")

    def test_too_many_dice(self):
        """Test dice limit."""
        with pytest.raises(FormulaError, match="Maximum 100 dice"):
            parse_formula("101d6")

    def test_too_many_faces(self):
        """Test faces limit."""
        with pytest.raises(FormulaError, match="Maximum 1000 faces"):
            parse_formula("1d1001")

    def test_custom_limits(self):
        """Test configured limits apply."""
        parser = FormulaParser(max_dice=5, max_faces=20)
        with pytest.raises(FormulaError):
            parser.parse("6d6")
        with pytest.raises(FormulaError):
            parser.parse("1d100")

    def test_formula_error_hierarchy(self):
        """Test FormulaError is both a quick roll error and a ValueError."""
        with pytest.raises(QuickRollError):
            parse_formula("nope")
        with pytest.raises(ValueError):
            parse_formula("nope")


# =============================================================================
# Roll Model
# =============================================================================


class TestRoll:
    """Tests for Roll totals and helpers."""

    def test_total_with_bonus(self):
        roll = Roll((Die(1, 20, (DieResult(17),)), OperatorTerm("+"), NumericTerm(5)))
        assert roll.total == 22
        assert roll.formula == "1d20 + 5"

    def test_total_with_subtraction(self):
        roll = Roll((NumericTerm(10), OperatorTerm("-"), NumericTerm(3)))
        assert roll.total == 7

    def test_leading_minus(self):
        roll = Roll((OperatorTerm("-"), NumericTerm(3)))
        assert roll.total == -3

    def test_inactive_results_excluded(self):
        die = Die(2, 20, (DieResult(15), DieResult(8, active=False, discarded=True)), ("kh",))
        roll = Roll((die,))
        assert roll.total == 15
        assert roll.has_advantage is True
        assert roll.has_disadvantage is False

    def test_find_die_and_part_index(self):
        roll = Roll((Die(1, 6), OperatorTerm("+"), Die(1, 20)))
        assert roll.find_die(20) == 2
        assert roll.find_die(12) is None
        assert roll.die_term_index(0) == 0
        assert roll.die_term_index(1) == 2
        assert roll.die_term_index(2) is None

    def test_replace_term_leaves_original(self):
        roll = Roll((Die(1, 6, (DieResult(2),)),))
        changed = roll.replace_term(0, Die(1, 6, (DieResult(5),)))
        assert roll.total == 2
        assert changed.total == 5

    def test_with_options(self):
        roll = Roll((NumericTerm(1),), RollOptions(dc=12))
        changed = roll.with_options(advantage_mode=1)
        assert changed.options.dc == 12
        assert changed.options.advantage_mode == 1
        assert roll.options.advantage_mode == 0

    def test_serialization_preserves_results(self):
        """Test a roll survives to_data/from_data intact."""
        die = Die(
            3,
            20,
            (DieResult(4, active=False, rerolled=True), DieResult(19), DieResult(7, active=False, discarded=True)),
            ("kh",),
            critical=19,
        )
        roll = Roll((die, OperatorTerm("-"), NumericTerm(1)), RollOptions(dc=15, elven_accuracy=True))

        restored = Roll.from_data(roll.to_data())

        assert restored == roll
        assert restored.total == 18

    def test_unknown_term_class(self):
        with pytest.raises(ValueError):
            Roll.from_data({"terms": [{"class": "Pool"}]})

    def test_invalid_operator(self):
        with pytest.raises(ValueError):
            OperatorTerm("*")


# =============================================================================
# Keep Selection
# =============================================================================


class TestKeepResults:
    """Tests for keep_results."""

    def test_keep_highest(self):
        results = keep_results([DieResult(5), DieResult(17)], KEEP_HIGHEST)
        assert [r.active for r in results] == [False, True]
        assert results[0].discarded is True

    def test_keep_lowest(self):
        results = keep_results([DieResult(5), DieResult(12), DieResult(3)], KEEP_LOWEST)
        assert [r.active for r in results] == [False, False, True]

    def test_ties_keep_earliest(self):
        results = keep_results([DieResult(5), DieResult(12), DieResult(12)], KEEP_HIGHEST)
        assert [r.active for r in results] == [False, True, False]

    def test_rerolled_results_untouched(self):
        original = DieResult(20, active=False, rerolled=True)
        results = keep_results([original, DieResult(3), DieResult(8)], KEEP_HIGHEST)

        assert results[0] == original
        assert results[1].discarded is True
        assert results[2].active is True


# =============================================================================
# Simplification
# =============================================================================


class TestSimplifyTerms:
    """Tests for simplify_terms."""

    def test_leading_and_double_operators(self):
        terms = [OperatorTerm("+"), Die(1, 6), OperatorTerm("+"), OperatorTerm("-"), NumericTerm(2)]
        assert simplify_terms(terms) == (Die(1, 6), OperatorTerm("-"), NumericTerm(2))

    def test_trailing_operator(self):
        assert simplify_terms([Die(1, 6), OperatorTerm("+")]) == (Die(1, 6),)

    def test_leading_minus_kept(self):
        assert simplify_terms([OperatorTerm("-"), NumericTerm(2)]) == (OperatorTerm("-"), NumericTerm(2))

    def test_double_minus_becomes_plus(self):
        terms = [Die(1, 6), OperatorTerm("-"), OperatorTerm("-"), NumericTerm(2)]
        assert simplify_terms(terms) == (Die(1, 6), OperatorTerm("+"), NumericTerm(2))


# =============================================================================
# Evaluation
# =============================================================================


class TestRandomDiceEvaluator:
    """Tests for RandomDiceEvaluator."""

    @pytest.mark.asyncio
    async def test_evaluate_uses_rng(self, evaluator, rng):
        rng.queue(15, 4)
        roll = await evaluator.evaluate("2d20kh + 3")

        die = roll.dice[0]
        assert [r.value for r in die.results] == [15, 4]
        assert [r.active for r in die.results] == [True, False]
        assert roll.total == 18

    @pytest.mark.asyncio
    async def test_evaluate_attaches_options(self, evaluator):
        options = RollOptions(dc=12)
        roll = await evaluator.evaluate("1d20", options)
        assert roll.options is options

    @pytest.mark.asyncio
    async def test_maximize(self, evaluator, rng):
        roll = await evaluator.evaluate("2d6 + 1", maximize=True)
        assert roll.total == 13
        assert rng.calls == 0

    @pytest.mark.asyncio
    async def test_min_and_max_modifiers(self, evaluator, rng):
        rng.queue(3, 19)
        low = await evaluator.evaluate("1d20min10")
        high = await evaluator.evaluate("1d20max15")
        assert low.total == 10
        assert high.total == 15

    @pytest.mark.asyncio
    async def test_single_die(self, evaluator, rng):
        rng.queue(6)
        result = await evaluator.evaluate_single_die(8)
        assert result == DieResult(6)

    @pytest.mark.asyncio
    async def test_invalid_formula(self, evaluator):
        with pytest.raises(FormulaError):
            await evaluator.evaluate("1d")
