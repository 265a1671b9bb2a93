"""
Roll flows.

Each flow builds a quick roll for an actor or item: it evaluates the
dice, enforces multi rolls, adds critical damage where needed and renders
the card once. Errors are logged, reported to the notification sink and
turned into a None result; no partial card is returned.
"""

import logging
from typing import List, Optional

from . import fields
from .config import ManualDamageMode, SettingsStore
from .dice import CriticalPolicy, DiceEvaluator, RollOptions, synthesize_critical
from .errors import QuickRollError, TypeMismatchError
from .fields import Field
from .notifications import Notifications
from .quick_roll import QuickRoll, QuickRollParams
from .render import Renderer, TextRenderer
from .rules import GameRules, ItemType
from .subjects import Actor, Item

logger = logging.getLogger(__name__)


def d20_formula(bonus: int = 0, advantage_mode: int = 0, elven_accuracy: bool = False) -> str:
    """
    Build a d20 formula.

    Examples:
        >>> d20_formula(5)
        '1d20 + 5'
        >>> d20_formula(-1, advantage_mode=1, elven_accuracy=True)
        '3d20kh - 1'
        >>> d20_formula(advantage_mode=-1)
        '2d20kl'
    """
    if advantage_mode > 0:
        dice = "3d20kh" if elven_accuracy else "2d20kh"
    elif advantage_mode < 0:
        dice = "2d20kl"
    else:
        dice = "1d20"

    if bonus > 0:
        return f"{dice} + {bonus}"
    if bonus < 0:
        return f"{dice} - {abs(bonus)}"
    return dice


class RollActions:
    """
    Builds quick rolls for actors and items.

    Settings are read from the settings store on every call.
    """

    def __init__(
        self,
        evaluator: DiceEvaluator,
        settings: Optional[SettingsStore] = None,
        rules: Optional[GameRules] = None,
        renderer: Optional[Renderer] = None,
        notifications: Optional[Notifications] = None,
    ):
        self.evaluator = evaluator
        self.settings = settings or SettingsStore()
        self.rules = rules or GameRules()
        self.renderer = renderer
        self.notifications = notifications or Notifications()

    # =========================================================================
    # Helpers
    # =========================================================================

    def _fail(self, action: str, error: QuickRollError) -> None:
        logger.error("%s failed: %s", action, error)
        self.notifications.error(str(error))
        return None

    def _renderer(self) -> Renderer:
        return self.renderer or TextRenderer(d20_icons=self.settings.get("d20_icons_enabled"))

    def _new_quick_roll(self, origin, params: QuickRollParams, field_list: List[Field]) -> QuickRoll:
        return QuickRoll(
            origin,
            params,
            field_list,
            renderer=self._renderer(),
            notifications=self.notifications,
        )

    def _params(self, advantage_mode: int, elven_accuracy: bool = False, **extra) -> QuickRollParams:
        return QuickRollParams(
            has_advantage=advantage_mode > 0,
            has_disadvantage=advantage_mode < 0,
            force_multi_roll=self.settings.get("always_roll_multi"),
            elven_accuracy=elven_accuracy,
            **extra,
        )

    @staticmethod
    def _require_actor(actor) -> Actor:
        if not isinstance(actor, Actor):
            raise TypeMismatchError(f"Expected an Actor, got {type(actor).__name__}")
        return actor

    @staticmethod
    def _require_item(item) -> Item:
        if not isinstance(item, Item):
            raise TypeMismatchError(f"Expected an Item, got {type(item).__name__}")
        return item

    def critical_policy(self, item: Optional[Item] = None) -> CriticalPolicy:
        """Critical damage rules for an item (or for ad-hoc damage when None)."""
        bonus_dice = 0
        bonus_formula = ""
        if item is not None:
            if item.is_melee_weapon_attack:
                bonus_dice = item.actor.melee_critical_damage_dice
            bonus_formula = item.critical_damage

        return CriticalPolicy(
            multiply_numeric=self.settings.get("critical_damage_modifiers"),
            critical_bonus_dice=bonus_dice,
            critical_bonus_formula=bonus_formula,
            powerful_critical=self.settings.get("critical_damage_max_dice"),
        )

    def _uses_manual_damage(self, item: Item) -> bool:
        mode = ManualDamageMode(self.settings.get("manual_damage_mode"))
        if mode is ManualDamageMode.ALWAYS:
            return True
        return mode is ManualDamageMode.ATTACK_ONLY and item.has_attack

    # =========================================================================
    # Actor rolls
    # =========================================================================

    async def _actor_check(
        self,
        actor: Actor,
        title: str,
        bonus: int,
        roll_type: str,
        advantage_mode: int,
        dc: Optional[int],
    ) -> Optional[QuickRoll]:
        formula = d20_formula(bonus, advantage_mode, actor.elven_accuracy)
        roll = await self.evaluator.evaluate(
            formula,
            RollOptions(dc=dc, elven_accuracy=actor.elven_accuracy, advantage_mode=advantage_mode),
        )

        quick_roll = self._new_quick_roll(
            actor,
            self._params(advantage_mode, actor.elven_accuracy),
            [fields.header(title), fields.check(title, roll, roll_type)],
        )

        if not await quick_roll.ensure_multi_roll(self.evaluator):
            return None

        await quick_roll.render()
        logger.info("%s rolled %s", actor.name or actor.id, title)
        return quick_roll

    async def roll_skill(
        self, actor: Actor, skill_id: str, advantage_mode: int = 0, dc: Optional[int] = None
    ) -> Optional[QuickRoll]:
        """
        Roll a skill check.

        Args:
            actor: Rolling actor
            skill_id: Skill identifier (e.g., "ste")
            advantage_mode: 1 advantage, -1 disadvantage, 0 normal
            dc: Optional DC for the pass/fail mark

        Returns:
            Rendered QuickRoll, or None on error
        """
        try:
            actor = self._require_actor(actor)
            skill = self.rules.skill(skill_id)
        except QuickRollError as e:
            return self._fail("Skill roll", e)

        title = skill.label
        if self.settings.get("show_ability_on_skill_title") and skill.ability_label:
            title = f"{title} ({skill.ability_label})"

        return await self._actor_check(
            actor, title, actor.skill_bonus(skill_id, skill.ability), "skill", advantage_mode, dc
        )

    async def roll_ability_test(
        self, actor: Actor, ability: str, advantage_mode: int = 0, dc: Optional[int] = None
    ) -> Optional[QuickRoll]:
        try:
            actor = self._require_actor(actor)
            entry = self.rules.ability(ability)
        except QuickRollError as e:
            return self._fail("Ability test", e)

        return await self._actor_check(
            actor, f"{entry.label} Check", actor.ability_mod(ability), "ability", advantage_mode, dc
        )

    async def roll_ability_save(
        self, actor: Actor, ability: str, advantage_mode: int = 0, dc: Optional[int] = None
    ) -> Optional[QuickRoll]:
        try:
            actor = self._require_actor(actor)
            entry = self.rules.ability(ability)
        except QuickRollError as e:
            return self._fail("Ability save", e)

        return await self._actor_check(
            actor, f"{entry.label} Save", actor.save_bonus(ability), "save", advantage_mode, dc
        )

    async def roll_tool(
        self, actor: Actor, tool_id: str, advantage_mode: int = 0, dc: Optional[int] = None
    ) -> Optional[QuickRoll]:
        try:
            actor = self._require_actor(actor)
            tool = self.rules.tool(tool_id)
        except QuickRollError as e:
            return self._fail("Tool check", e)

        return await self._actor_check(
            actor, tool.label, actor.tool_bonus(tool_id, tool.ability), "tool", advantage_mode, dc
        )

    async def roll_damage(
        self,
        actor: Actor,
        formula: str,
        damage_type: str = "",
        title: str = "Damage",
        is_crit: bool = False,
    ) -> Optional[QuickRoll]:
        """Roll ad-hoc damage, with critical damage when is_crit is set."""
        try:
            actor = self._require_actor(actor)
            base = await self.evaluator.evaluate(formula)
            crit = None
            if is_crit:
                crit = await synthesize_critical(base, 0, self.critical_policy(), self.evaluator)
        except QuickRollError as e:
            return self._fail("Damage roll", e)

        quick_roll = self._new_quick_roll(
            actor,
            QuickRollParams(is_crit=is_crit),
            [fields.header(title), fields.damage(title, base, crit, damage_type)],
        )
        await quick_roll.render()
        return quick_roll

    # =========================================================================
    # Item rolls
    # =========================================================================

    async def damage_fields(
        self, item: Item, params: QuickRollParams, alt: bool = False
    ) -> List[Field]:
        """
        Roll an item's damage parts into damage fields.

        Each enabled part becomes one field; crit rolls are added when the
        card is a crit, with crit bonuses on the first part only. The item's
        other formula becomes an extra damage field.

        Raises:
            FormulaError: If a damage formula is invalid
        """
        result: List[Field] = []
        policy = self.critical_policy(item)

        for index, part in enumerate(item.damage_parts):
            if not item.flags.damage_enabled(index, alt):
                continue

            versatile = index == 0 and params.is_versatile and bool(item.versatile)
            base = await self.evaluator.evaluate(item.versatile if versatile else part.formula)
            crit = None
            if params.is_crit:
                # Crit bonuses go to the first damage field actually rolled
                crit = await synthesize_critical(base, len(result), policy, self.evaluator)

            result.append(
                fields.damage(
                    "Versatile" if versatile else "Damage",
                    base,
                    crit,
                    part.damage_type,
                    is_versatile=versatile,
                )
            )

        if item.other_formula and item.flags.enabled("quick_other", alt):
            other = await self.evaluator.evaluate(item.other_formula)
            result.append(fields.damage("Other", other, None, "other"))

        return result

    async def roll_item(
        self,
        item: Item,
        advantage_mode: int = 0,
        alt: bool = False,
        versatile: Optional[bool] = None,
        slot_level: Optional[int] = None,
    ) -> Optional[QuickRoll]:
        """
        Roll an item card.

        Field order: header, flavor, description, save, attack, damage (or
        the manual damage placeholder), tool check, footer. Which fields
        appear is controlled by the item's quick roll toggles.

        Args:
            item: Item to roll
            advantage_mode: 1 advantage, -1 disadvantage, 0 normal
            alt: Use the alternate toggle values
            versatile: Roll versatile damage (defaults to the item toggle)
            slot_level: Spell slot level, kept with the card

        Returns:
            Rendered QuickRoll, or None on error
        """
        try:
            item = self._require_item(item)
        except QuickRollError as e:
            return self._fail("Item roll", e)

        flags = item.flags
        actor = item.actor
        params = self._params(
            advantage_mode,
            actor.elven_accuracy,
            is_alt_roll=alt,
            is_versatile=flags.enabled("quick_versatile", alt) if versatile is None else versatile,
            slot_level=slot_level,
        )

        field_list: List[Field] = [fields.header(item.name, item.type.value)]
        if item.flavor and flags.enabled("quick_flavor", alt):
            field_list.append(fields.description(item.flavor, is_flavor=True))
        if item.description and flags.enabled("quick_desc", alt):
            field_list.append(fields.description(item.description))
        if item.has_save and flags.enabled("quick_save", alt):
            label = self.rules.abilities.get(item.save.ability, item.save.ability)
            field_list.append(fields.save(f"{label} Save", item.save.ability, item.save.dc))

        try:
            if item.has_attack and flags.enabled("quick_attack", alt):
                roll = await self.evaluator.evaluate(
                    d20_formula(item.attack_bonus, advantage_mode, actor.elven_accuracy),
                    RollOptions(
                        critical_threshold=item.critical_threshold,
                        elven_accuracy=actor.elven_accuracy,
                        advantage_mode=advantage_mode,
                    ),
                )
                field_list.append(fields.attack("Attack", roll))

            damage_at = len(field_list)

            if item.type is ItemType.TOOL and flags.enabled("quick_check", alt):
                ability = item.check_ability
                bonus = actor.tool_bonus(item.tool_id, ability) if item.tool_id else actor.ability_mod(ability or "")
                roll = await self.evaluator.evaluate(
                    d20_formula(bonus, advantage_mode, actor.elven_accuracy),
                    RollOptions(elven_accuracy=actor.elven_accuracy, advantage_mode=advantage_mode),
                )
                field_list.append(fields.check(item.name, roll, "item"))

            if item.properties and flags.enabled("quick_footer", alt):
                field_list.append(fields.footer(item.properties))

            quick_roll = self._new_quick_roll(item, params, field_list)
            if not await quick_roll.ensure_multi_roll(self.evaluator):
                return None

            if item.has_damage or item.other_formula:
                if item.has_damage and self._uses_manual_damage(item):
                    quick_roll.insert_fields(damage_at, [fields.manual_damage()])
                else:
                    quick_roll.insert_fields(damage_at, await self.damage_fields(item, quick_roll.params, alt))
        except QuickRollError as e:
            return self._fail("Item roll", e)

        await quick_roll.render()
        logger.info("%s rolled item %s", actor.name or actor.id, item.name)
        return quick_roll

    async def upgrade_to_damage_roll(self, quick_roll: QuickRoll, field_index: int) -> bool:
        """
        Roll the damage behind a manual damage placeholder.

        Returns:
            True on success, False (card unchanged) otherwise
        """
        item = quick_roll.item
        if item is None:
            self._fail("Damage roll", TypeMismatchError("Manual damage needs the card's item"))
            return False

        return await quick_roll.upgrade_to_damage_roll(
            field_index,
            lambda: self.damage_fields(item, quick_roll.params, quick_roll.params.is_alt_roll),
        )
