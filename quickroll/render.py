"""
Field rendering.

This module provides:
- FieldMetadata: Card-wide data handed to the renderer with every field
- Renderer: Abstract async renderer interface
- MultiRollEntry / multi_roll_entries: Per-d20 display entries of a check
- TextRenderer: Plain chat-text renderer

The quick roll never looks inside a rendered fragment; any renderer that
returns strings can be plugged in.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from typing import List, Optional, Sequence, Tuple

from .dice import CritOptions, CritType, Die, DieResult, Roll, RollState, crit_type_for_die
from .fields import Field, FieldType
from .subjects import Actor, Item


@dataclass(frozen=True)
class FieldMetadata:
    """
    Card-wide metadata merged with each field's payload.

    Attributes:
        id: Position of the field on the card
        item: Item the card was rolled for, if any
        actor: Actor the card was rolled for, if any
        is_crit: Card is a critical hit
        is_fumble: Card is a fumble
        is_multi_roll: Checks show several d20 results
        roll_state: Current advantage state of the card
    """

    id: int
    item: Optional[Item] = None
    actor: Optional[Actor] = None
    is_crit: bool = False
    is_fumble: bool = False
    is_multi_roll: bool = False
    roll_state: RollState = RollState.SINGLE


class Renderer(ABC):
    """Abstract interface for turning fields into display fragments."""

    @abstractmethod
    async def render_field(self, field: Field, metadata: FieldMetadata) -> str:
        """Render one field to a display fragment."""

    @abstractmethod
    async def render_card(self, fragments: Sequence[str], metadata: FieldMetadata) -> str:
        """Combine rendered fragments into a full card."""


@dataclass(frozen=True)
class MultiRollEntry:
    """
    One d20 of a check, with any reroll chain grouped together.

    Attributes:
        values: Face values in the chain, oldest first
        total: Final die value plus the roll's bonus terms
        crit_type: Classification of the chain
        ignored: Dropped by keep-highest/keep-lowest
        d20_result: Face value for a d20 icon (None when icons are off)
        passed: Whether the total meets the roll's DC (None without a DC)
    """

    values: Tuple[int, ...]
    total: int
    crit_type: CritType
    ignored: bool = False
    d20_result: Optional[int] = None
    passed: Optional[bool] = None


def multi_roll_entries(roll: Roll, d20_icons: bool = True) -> List[MultiRollEntry]:
    """
    Split a check roll into one entry per d20 result.

    A rerolled result is grouped with the result(s) that replaced it.
    Entries are classified with the roll's own thresholds; the DC only
    drives the pass/fail mark.
    """
    index = roll.find_die(20)
    if index is None:
        return []

    d20: Die = roll.terms[index]
    bonus = roll.total - d20.total
    options = roll.options

    crit_options = CritOptions(
        crit_threshold=options.critical_threshold,
        fumble_threshold=options.fumble_threshold,
        target_value=options.target_value,
    )

    entries: List[MultiRollEntry] = []
    results = d20.results
    i = 0
    while i < len(results):
        chain: List[DieResult] = [results[i]]
        while chain[-1].rerolled and i + 1 < len(results):
            i += 1
            chain.append(results[i])
        i += 1

        final = chain[-1]
        total = final.value + bonus
        entries.append(
            MultiRollEntry(
                values=tuple(r.value for r in chain),
                total=total,
                crit_type=crit_type_for_die(replace(d20, count=1, results=tuple(chain)), crit_options),
                ignored=any(r.discarded for r in chain),
                d20_result=final.value if d20_icons else None,
                passed=None if options.dc is None else total >= options.dc,
            )
        )

    return entries


_CRIT_MARKS = {
    CritType.SUCCESS: " 💥",
    CritType.FAILURE: " 💀",
    CritType.MIXED: " 💥💀",
    CritType.NONE: "",
}


class TextRenderer(Renderer):
    """
    Render fields as chat text.

    Examples:
        🎲 Stealth (Dexterity)
          [12] + 5 = 17
          ~~[3] + 5 = 8~~
        🗡️ Longsword: [6] + 3 = 9 slashing
    """

    def __init__(self, d20_icons: bool = True):
        self.d20_icons = d20_icons

    async def render_field(self, field: Field, metadata: FieldMetadata) -> str:
        kind = field.kind

        if kind is FieldType.HEADER:
            subtitle = field.get("subtitle")
            return f"**{field.get('title', '')}**" + (f" ({subtitle})" if subtitle else "")

        if kind is FieldType.DESCRIPTION:
            content = field.get("content", "")
            return f"_{content}_" if field.get("is_flavor") and content else content

        if kind in (FieldType.CHECK, FieldType.ATTACK):
            return self._render_multi_roll(field, metadata)

        if kind is FieldType.SAVE:
            return f"🛡️ {field.get('label', '')} DC {field.get('dc')}"

        if kind is FieldType.DAMAGE:
            return self._render_damage(field)

        if kind is FieldType.MANUAL_DAMAGE:
            return f"⚔️ {field.get('title', 'Damage')}: not rolled"

        if kind is FieldType.FOOTER:
            return " • ".join(field.get("properties", []))

        return ""

    async def render_card(self, fragments: Sequence[str], metadata: FieldMetadata) -> str:
        return "\n".join(f for f in fragments if f)

    def _render_multi_roll(self, field: Field, metadata: FieldMetadata) -> str:
        roll: Optional[Roll] = field.get("roll")
        title = field.get("title", "")
        icon = "⚔️" if field.kind is FieldType.ATTACK else "🎲"

        if roll is None:
            return f"{icon} {title}"

        state = metadata.roll_state
        if state in (RollState.ADVANTAGE, RollState.DISADVANTAGE):
            title += " (advantage)" if state is RollState.ADVANTAGE else " (disadvantage)"

        lines = [f"{icon} {title}"]
        for entry in multi_roll_entries(roll, self.d20_icons):
            chain = " → ".join(str(v) for v in entry.values)
            text = f"[{chain}]{self._format_bonus(entry.total - entry.values[-1])} = {entry.total}"
            if entry.ignored:
                text = f"~~{text}~~"
            text += _CRIT_MARKS[entry.crit_type]
            if entry.passed is not None:
                text += " ✅" if entry.passed else " ❌"
            lines.append(f"  {text}")

        return "\n".join(lines)

    def _render_damage(self, field: Field) -> str:
        base: Optional[Roll] = field.get("base_roll")
        crit: Optional[Roll] = field.get("crit_roll")
        damage_type = field.get("damage_type")
        suffix = f" {damage_type}" if damage_type else ""

        if base is None:
            return f"🗡️ {field.get('title', 'Damage')}"

        text = f"🗡️ {field.get('title', 'Damage')}: {self._format_roll(base)}{suffix}"
        if crit is not None and crit.terms:
            text += f"\n  💥 Critical: {self._format_roll(crit)}{suffix}"
            text += f"\n  Total: {base.total + crit.total}{suffix}"
        return text

    @staticmethod
    def _format_bonus(bonus: int) -> str:
        if bonus > 0:
            return f" + {bonus}"
        if bonus < 0:
            return f" - {abs(bonus)}"
        return ""

    @staticmethod
    def _format_roll(roll: Roll) -> str:
        parts = []
        for term in roll.terms:
            if isinstance(term, Die):
                shown = [
                    f"~~{r.value}~~" if (r.rerolled or r.discarded) else str(r.value)
                    for r in term.results
                ]
                parts.append(f"[{', '.join(shown)}]")
            else:
                parts.append(term.formula)
        return f"{' '.join(parts)} = {roll.total}"
