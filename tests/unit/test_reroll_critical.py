"""
Unit tests for single-die rerolls and critical damage synthesis.
"""

import pytest

from quickroll.dice import (
    CriticalPolicy,
    Die,
    DieResult,
    NumericTerm,
    Roll,
    RollOptions,
    reroll_die,
    reroll_roll_die,
    synthesize_critical,
)
from quickroll.errors import FormulaError, IndexOutOfRangeError, InvalidTargetStateError, NullRollError


# =============================================================================
# Rerolls
# =============================================================================


class TestRerollDie:
    """Tests for reroll_die."""

    @pytest.mark.asyncio
    async def test_replacement_follows_original(self, evaluator, rng):
        rng.queue(5)
        die = Die(1, 6, (DieResult(2),))

        rerolled = await reroll_die(die, 0, evaluator)

        assert rerolled.results == (DieResult(2, active=False, rerolled=True), DieResult(5))
        assert rerolled.total == 5
        assert die.total == 2

    @pytest.mark.asyncio
    async def test_keep_reapplied(self, evaluator, rng):
        rng.queue(3)
        die = Die(2, 20, (DieResult(15), DieResult(8, active=False, discarded=True)), ("kh",))

        rerolled = await reroll_die(die, 0, evaluator)

        assert [r.value for r in rerolled.results] == [15, 3, 8]
        assert [r.active for r in rerolled.results] == [False, False, True]
        assert rerolled.results[0].rerolled is True
        assert rerolled.results[1].discarded is True
        assert rerolled.total == 8

    @pytest.mark.asyncio
    @pytest.mark.parametrize("index", [-1, 1, 5])
    async def test_index_out_of_range(self, evaluator, index):
        with pytest.raises(IndexOutOfRangeError):
            await reroll_die(Die(1, 6, (DieResult(2),)), index, evaluator)

    @pytest.mark.asyncio
    async def test_out_of_range_is_index_error(self, evaluator):
        with pytest.raises(IndexError):
            await reroll_die(Die(1, 6, (DieResult(2),)), 3, evaluator)

    @pytest.mark.asyncio
    async def test_already_rerolled(self, evaluator):
        die = Die(1, 6, (DieResult(2, active=False, rerolled=True), DieResult(4)))
        with pytest.raises(InvalidTargetStateError):
            await reroll_die(die, 0, evaluator)

    @pytest.mark.asyncio
    async def test_null_die(self, evaluator):
        with pytest.raises(NullRollError):
            await reroll_die(None, 0, evaluator)

    @pytest.mark.asyncio
    async def test_reroll_part(self, evaluator, rng):
        rng.queue(6, 1, 4)
        roll = await evaluator.evaluate("1d6 + 1d4")

        rerolled = await reroll_roll_die(roll, 1, 0, evaluator)

        assert rerolled.terms[0] == roll.terms[0]
        assert [r.value for r in rerolled.terms[2].results] == [1, 4]
        assert rerolled.total == 10
        assert roll.total == 7

    @pytest.mark.asyncio
    async def test_reroll_missing_part(self, evaluator):
        roll = await evaluator.evaluate("1d6 + 2")
        with pytest.raises(IndexOutOfRangeError):
            await reroll_roll_die(roll, 1, 0, evaluator)


# =============================================================================
# Critical Damage
# =============================================================================


class TestSynthesizeCritical:
    """Tests for synthesize_critical."""

    @pytest.mark.asyncio
    async def test_numeric_terms_dropped(self, evaluator, rng):
        rng.queue(2, 3, 4, 5)
        base = await evaluator.evaluate("2d6 + 3")

        crit = await synthesize_critical(base, 0, CriticalPolicy(), evaluator)

        assert crit.formula == "2d6"
        assert crit.total == 9
        assert base.total == 8

    @pytest.mark.asyncio
    async def test_multiply_numeric(self, evaluator):
        base = await evaluator.evaluate("2d6 + 3")
        crit = await synthesize_critical(base, 0, CriticalPolicy(multiply_numeric=True), evaluator)
        assert crit.formula == "2d6 + 3"

    @pytest.mark.asyncio
    async def test_subtraction_stripped(self, evaluator):
        base = await evaluator.evaluate("1d6 - 2")
        crit = await synthesize_critical(base, 0, CriticalPolicy(), evaluator)
        assert crit.formula == "1d6"

    @pytest.mark.asyncio
    async def test_bonus_dice_first_group_only(self, evaluator):
        base = await evaluator.evaluate("2d6 + 3")
        policy = CriticalPolicy(critical_bonus_dice=1)

        first = await synthesize_critical(base, 0, policy, evaluator)
        second = await synthesize_critical(base, 1, policy, evaluator)

        assert first.formula == "2d6 + 1d6"
        assert second.formula == "2d6"

    @pytest.mark.asyncio
    async def test_bonus_formula_first_group_only(self, evaluator):
        base = await evaluator.evaluate("1d8")
        policy = CriticalPolicy(critical_bonus_formula="1d8 + 2")

        assert (await synthesize_critical(base, 0, policy, evaluator)).formula == "1d8 + 1d8 + 2"
        assert (await synthesize_critical(base, 2, policy, evaluator)).formula == "1d8"

    @pytest.mark.asyncio
    async def test_powerful_critical(self, evaluator, rng):
        base = await evaluator.evaluate("2d6")
        calls = rng.calls

        crit = await synthesize_critical(base, 0, CriticalPolicy(powerful_critical=True), evaluator)

        assert crit.total == 12
        assert rng.calls == calls

    @pytest.mark.asyncio
    async def test_numeric_only_base(self, evaluator):
        base = Roll((NumericTerm(5),), RollOptions(dc=10))
        crit = await synthesize_critical(base, 0, CriticalPolicy(), evaluator)

        assert crit.terms == ()
        assert crit.total == 0
        assert crit.options == base.options

    @pytest.mark.asyncio
    async def test_options_preserved(self, evaluator):
        base = await evaluator.evaluate("1d8", RollOptions(critical_threshold=19))
        crit = await synthesize_critical(base, 0, CriticalPolicy(), evaluator)
        assert crit.options.critical_threshold == 19

    @pytest.mark.asyncio
    async def test_invalid_bonus_formula(self, evaluator):
        base = await evaluator.evaluate("1d8")
        with pytest.raises(FormulaError):
            await synthesize_critical(base, 0, CriticalPolicy(critical_bonus_formula="bad"), evaluator)

    @pytest.mark.asyncio
    async def test_null_base(self, evaluator):
        with pytest.raises(NullRollError):
            await synthesize_critical(None, 0, CriticalPolicy(), evaluator)
