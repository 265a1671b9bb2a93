"""
Unit tests for quick roll fields and the text renderer.
"""

import pytest

from quickroll import Field, FieldMetadata, FieldType, TextRenderer
from quickroll import fields
from quickroll.dice import CritType, Die, DieResult, NumericTerm, OperatorTerm, Roll, RollOptions, RollState
from quickroll.render import multi_roll_entries


# =============================================================================
# Fields
# =============================================================================


class TestField:
    """Tests for Field."""

    def test_kind_coerced(self):
        assert Field("check").kind is FieldType.CHECK

    def test_with_data_returns_new_field(self, make_d20):
        original = fields.check("Stealth", make_d20([10]))
        changed = original.with_data(title="Sneak")

        assert changed.get("title") == "Sneak"
        assert original.get("title") == "Stealth"
        assert changed.get("roll") is original.get("roll")

    def test_rolls(self, make_d20):
        base = make_d20([4])
        field = fields.damage("Damage", base, None, "fire")
        assert list(field.rolls()) == [("base_roll", base)]

    def test_to_flag_reduces_rolls(self, make_d20):
        field = fields.check("Stealth", make_d20([10], bonus=7), "skill")
        flag = field.to_flag()

        assert flag == {
            "type": "check",
            "data": {"title": "Stealth", "roll": "1d20 + 7", "roll_type": "skill"},
        }

    def test_from_flag_pairs_rolls(self, make_d20):
        roll = make_d20([10], bonus=7)
        field = fields.check("Stealth", roll, "skill")

        restored = Field.from_flag(field.to_flag(), {"roll": roll})

        assert restored == field

    def test_from_flag_missing_roll(self, make_d20):
        field = fields.damage("Damage", make_d20([4]))
        restored = Field.from_flag(field.to_flag(), {})

        assert restored.get("base_roll") is None
        assert restored.get("crit_roll") is None

    def test_factories(self):
        assert fields.header("Longsword", "weapon").kind is FieldType.HEADER
        assert fields.save("Dexterity Save", "dex", 15).get("dc") == 15
        assert fields.manual_damage().kind is FieldType.MANUAL_DAMAGE
        assert fields.footer(("V", "S")).get("properties") == ["V", "S"]
        assert fields.blank().data == {}


# =============================================================================
# Multi Roll Entries
# =============================================================================


class TestMultiRollEntries:
    """Tests for multi_roll_entries."""

    def test_entry_per_die(self, make_d20):
        entries = multi_roll_entries(make_d20([15, 8], bonus=5, keep="kh"))

        assert [e.values for e in entries] == [(15,), (8,)]
        assert [e.total for e in entries] == [20, 13]
        assert [e.ignored for e in entries] == [False, True]
        assert entries[0].d20_result == 15

    def test_reroll_chain_grouped(self):
        die = Die(1, 20, (DieResult(3, active=False, rerolled=True), DieResult(20)))
        entries = multi_roll_entries(Roll((die, OperatorTerm("+"), NumericTerm(2))))

        assert len(entries) == 1
        assert entries[0].values == (3, 20)
        assert entries[0].total == 22
        assert entries[0].crit_type == CritType.SUCCESS

    def test_pass_fail_uses_dc_only(self, make_d20):
        """The DC drives the pass mark but not the crit classification."""
        entries = multi_roll_entries(make_d20([12, 9], bonus=3, dc=14))

        assert [e.passed for e in entries] == [True, False]
        assert [e.crit_type for e in entries] == [CritType.NONE, CritType.NONE]

    def test_roll_thresholds(self, make_d20):
        entries = multi_roll_entries(make_d20([19], critical_threshold=19))
        assert entries[0].crit_type == CritType.SUCCESS

    def test_icons_disabled(self, make_d20):
        assert multi_roll_entries(make_d20([10]), d20_icons=False)[0].d20_result is None

    def test_no_d20(self):
        assert multi_roll_entries(Roll((Die(1, 6, (DieResult(3),)),))) == []


# =============================================================================
# Text Renderer
# =============================================================================


class TestTextRenderer:
    """Tests for TextRenderer."""

    @pytest.fixture
    def renderer(self):
        return TextRenderer()

    @pytest.mark.asyncio
    async def test_header(self, renderer):
        text = await renderer.render_field(fields.header("Longsword", "weapon"), FieldMetadata(0))
        assert text == "**Longsword** (weapon)"

    @pytest.mark.asyncio
    async def test_flavor(self, renderer):
        text = await renderer.render_field(fields.description("Shiny", is_flavor=True), FieldMetadata(0))
        assert text == "_Shiny_"

    @pytest.mark.asyncio
    async def test_check(self, renderer, make_d20):
        field = fields.check("Stealth", make_d20([12], bonus=5, dc=15))
        text = await renderer.render_field(field, FieldMetadata(1))
        assert text == "🎲 Stealth\n  [12] + 5 = 17 ✅"

    @pytest.mark.asyncio
    async def test_advantage_check(self, renderer, make_d20):
        field = fields.attack("Attack", make_d20([20, 8], bonus=5, keep="kh"))
        metadata = FieldMetadata(1, is_multi_roll=True, roll_state=RollState.ADVANTAGE)

        text = await renderer.render_field(field, metadata)

        assert text.splitlines() == [
            "⚔️ Attack (advantage)",
            "  [20] + 5 = 25 💥",
            "  ~~[8] + 5 = 13~~",
        ]

    @pytest.mark.asyncio
    async def test_fumble_mark(self, renderer, make_d20):
        text = await renderer.render_field(fields.check("Stealth", make_d20([1])), FieldMetadata(1))
        assert text.endswith("[1] = 1 💀")

    @pytest.mark.asyncio
    async def test_damage_with_crit(self, renderer):
        base = Roll((Die(1, 8, (DieResult(6),)), OperatorTerm("+"), NumericTerm(3)))
        crit = Roll((Die(1, 8, (DieResult(5),)),))
        field = fields.damage("Damage", base, crit, "slashing")

        text = await renderer.render_field(field, FieldMetadata(2))

        assert text.splitlines() == [
            "🗡️ Damage: [6] + 3 = 9 slashing",
            "  💥 Critical: [5] = 5 slashing",
            "  Total: 14 slashing",
        ]

    @pytest.mark.asyncio
    async def test_damage_shows_rerolled(self, renderer):
        base = Roll((Die(1, 6, (DieResult(1, active=False, rerolled=True), DieResult(4))),))
        text = await renderer.render_field(fields.damage("Damage", base), FieldMetadata(0))
        assert text == "🗡️ Damage: [~~1~~, 4] = 4"

    @pytest.mark.asyncio
    async def test_manual_damage_and_footer(self, renderer):
        assert await renderer.render_field(fields.manual_damage(), FieldMetadata(0)) == "⚔️ Damage: not rolled"
        assert await renderer.render_field(fields.footer(["V", "S"]), FieldMetadata(0)) == "V • S"

    @pytest.mark.asyncio
    async def test_save(self, renderer):
        text = await renderer.render_field(fields.save("Dexterity Save", "dex", 15), FieldMetadata(0))
        assert text == "🛡️ Dexterity Save DC 15"

    @pytest.mark.asyncio
    async def test_render_card_skips_empty(self, renderer):
        card = await renderer.render_card(["**A**", "", "B"], FieldMetadata(-1))
        assert card == "**A**\nB"

    @pytest.mark.asyncio
    async def test_options_unused_without_dc(self, renderer):
        roll = Roll((Die(1, 20, (DieResult(10),)),), RollOptions())
        text = await renderer.render_field(fields.check("Stealth", roll), FieldMetadata(0))
        assert "✅" not in text and "❌" not in text
