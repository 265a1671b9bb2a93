"""
Quick roll aggregate.

A QuickRoll owns an ordered list of fields, renders them to a card once,
and flattens itself into the flag record persisted with a chat message.
A persisted quick roll can be rehydrated to apply follow-up actions
(advantage upgrades, crits, rerolls, manual damage) without replaying the
original roll.

Lifecycle:
    QuickRoll(origin) -> fields appended -> render() -> to_message(store)
    QuickRoll.from_message(message) -> action -> save(store)
"""

import logging
from dataclasses import asdict, dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple, Union

from .dice import (
    CriticalPolicy,
    CritOptions,
    CritType,
    DiceEvaluator,
    MultiDiePolicy,
    Roll,
    RollState,
    classify_roll,
    enforce_multi_roll,
    reroll_roll_die,
    synthesize_critical,
    upgrade_roll,
)
from .errors import (
    IndexOutOfRangeError,
    InvalidTargetStateError,
    NullRollError,
    QuickRollError,
    TypeMismatchError,
)
from .fields import MULTI_ROLL_FIELDS, Field, FieldType
from .notifications import Notifications
from .render import FieldMetadata, Renderer, TextRenderer
from .subjects import Actor, Item, SubjectRef

logger = logging.getLogger(__name__)

Origin = Union[Actor, Item, None]


@dataclass
class QuickRollParams:
    """
    Card-wide roll parameters, persisted with the card.

    The cross-cutting flags (is_crit, is_fumble, is_multi_roll) are set from
    multi-roll enforcement rather than from the rolls' own advantage state.
    """

    is_crit: bool = False
    is_fumble: bool = False
    is_multi_roll: bool = False
    has_advantage: bool = False
    has_disadvantage: bool = False
    force_crit: bool = False
    force_fumble: bool = False
    force_multi_roll: bool = False
    elven_accuracy: bool = False
    is_alt_roll: bool = False
    is_versatile: bool = False
    slot_level: Optional[int] = None

    def __post_init__(self):
        self.is_crit = self.force_crit or self.is_crit
        self.is_fumble = self.force_fumble or self.is_fumble
        self.is_multi_roll = self.force_multi_roll or self.is_multi_roll

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "QuickRollParams":
        data = data or {}
        known = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
        return cls(**known)


class QuickRoll:
    """
    Composite roll made of ordered fields.

    Attributes:
        item: Item the roll was made for (None for actor rolls)
        actor: Actor the roll was made for
        params: Card-wide parameters
        fields: Fields in render order
        properties: Labels persisted with the card
        templates: Rendered fragments, one per field (None until rendered)
        processed: Whether fields have been rendered since the last change
        message_id: Id of the persisted message, once there is one
    """

    VERSION = "1.0.0"

    def __init__(
        self,
        origin: Origin = None,
        params: Optional[QuickRollParams] = None,
        fields: Optional[Sequence[Field]] = None,
        renderer: Optional[Renderer] = None,
        notifications: Optional[Notifications] = None,
        properties: Optional[Sequence[str]] = None,
    ):
        """
        Initialize a quick roll.

        Args:
            origin: Actor or Item the roll is for
            params: Card-wide parameters
            fields: Initial fields in render order
            renderer: Field renderer (defaults to TextRenderer)
            notifications: Sink for user-visible errors
            properties: Labels persisted with the card

        Raises:
            TypeMismatchError: If origin is neither an Actor nor an Item
        """
        self.item: Optional[Item] = None
        self.actor: Optional[Actor] = None
        # Persisted identifiers of a rehydrated quick roll
        self._ref: Optional[SubjectRef] = None

        if origin is not None:
            if isinstance(origin, Item):
                self.item = origin
                self.actor = origin.actor
            elif isinstance(origin, Actor):
                self.actor = origin
            else:
                raise TypeMismatchError(
                    f"Quick roll origin must be an Actor or Item, got {type(origin).__name__}"
                )

        self.params = params or QuickRollParams()
        self.fields: List[Field] = list(fields or [])
        self.properties: List[str] = list(
            properties if properties is not None else (self.item.properties if self.item else [])
        )
        self.renderer = renderer or TextRenderer()
        self.notifications = notifications or Notifications()

        self.templates: Optional[Tuple[str, ...]] = None
        self.processed = False
        self.message_id: Optional[int] = None
        self._card: Optional[str] = None

    # =========================================================================
    # State
    # =========================================================================

    @property
    def subject_ref(self) -> SubjectRef:
        if self._ref is not None:
            return self._ref
        if self.item is not None:
            return self.item.subject_ref
        if self.actor is not None:
            return self.actor.subject_ref
        return SubjectRef()

    @property
    def is_crit(self) -> bool:
        return self.params.is_crit

    @property
    def is_fumble(self) -> bool:
        return self.params.is_fumble

    @property
    def is_multi_roll(self) -> bool:
        return self.params.is_multi_roll

    @property
    def current_roll_state(self) -> RollState:
        if self.params.has_advantage:
            return RollState.ADVANTAGE
        if self.params.has_disadvantage:
            return RollState.DISADVANTAGE
        if self.params.is_multi_roll:
            return RollState.DUAL
        return RollState.SINGLE

    @property
    def has_rolled_crit(self) -> bool:
        """True when every damage field already has a crit roll."""
        return all(f.get("crit_roll") is not None for f in self.damage_fields())

    @property
    def damage_total(self) -> int:
        total = 0
        for f in self.damage_fields():
            for key in ("base_roll", "crit_roll"):
                roll = f.get(key)
                if roll is not None:
                    total += roll.total
        return total

    def damage_fields(self) -> List[Field]:
        return [f for f in self.fields if f.kind is FieldType.DAMAGE]

    def add_field(self, field: Field) -> None:
        self.fields.append(field)
        self._invalidate()

    def insert_fields(self, index: int, fields: Sequence[Field]) -> None:
        self.fields[index:index] = list(fields)
        self._invalidate()

    def _invalidate(self) -> None:
        self.processed = False
        self._card = None

    # =========================================================================
    # Rendering
    # =========================================================================

    def _metadata(self, index: int) -> FieldMetadata:
        return FieldMetadata(
            id=index,
            item=self.item,
            actor=self.actor,
            is_crit=self.params.is_crit,
            is_fumble=self.params.is_fumble,
            is_multi_roll=self.params.is_multi_roll,
            roll_state=self.current_roll_state,
        )

    async def render(self) -> Tuple[str, ...]:
        """
        Render every field once, in order.

        A second call returns the cached fragments without touching the
        renderer again. Fragments are only stored once every field has
        rendered, so a renderer failure leaves the quick roll unrendered.

        Returns:
            One fragment per field
        """
        if self.processed and self.templates is not None:
            return self.templates

        fragments: List[str] = []
        for index, f in enumerate(self.fields):
            fragments.append(await self.renderer.render_field(f, self._metadata(index)))

        self.templates = tuple(fragments)
        self._card = None
        self.processed = True
        logger.debug("Rendered %d fields", len(fragments))
        return self.templates

    async def render_card(self) -> str:
        """Render the full card content (fields rendered at most once)."""
        templates = await self.render()
        if self._card is None:
            self._card = await self.renderer.render_card(templates, self._metadata(-1))
        return self._card

    # =========================================================================
    # Persistence
    # =========================================================================

    def to_flags(self) -> Dict[str, Any]:
        """
        Flatten into the persisted flag record.

        Rolls inside fields are reduced to their formula; see to_rolls()
        for the full roll data.
        """
        ref = self.subject_ref
        return {
            "version": self.VERSION,
            "actor_id": ref.actor_id,
            "item_id": ref.item_id,
            "token_id": ref.token_id,
            "is_crit": self.params.is_crit,
            "is_fumble": self.params.is_fumble,
            "properties": list(self.properties),
            "params": self.params.to_dict(),
            "fields": [f.to_flag() for f in self.fields],
            "can_popout": True,
        }

    def to_rolls(self) -> Dict[str, Dict[str, Any]]:
        """Full roll data keyed by "<field index>:<payload key>"."""
        return {
            f"{index}:{key}": roll.to_data()
            for index, f in enumerate(self.fields)
            for key, roll in f.rolls()
        }

    async def to_message(self, store, user: Optional[str] = None, create_message: bool = True):
        """
        Render and persist as a new chat message.

        Args:
            store: Message store
            user: User posting the card
            create_message: Only build the message data when False

        Returns:
            The created ChatMessage, or the message data dict when
            create_message is False
        """
        data = {
            "user": user,
            "speaker": self.actor.name if self.actor else None,
            "content": await self.render_card(),
            "flags": self.to_flags(),
            "rolls": self.to_rolls(),
        }

        if not create_message:
            return data

        message = await store.create_message(**data)
        self.message_id = message.id
        logger.info("Created quick roll message %s", message.id)
        return message

    async def to_message_update(self) -> Dict[str, Any]:
        """Complete update for the persisted message (content, flags and rolls)."""
        return {
            "content": await self.render_card(),
            "flags": self.to_flags(),
            "rolls": self.to_rolls(),
        }

    async def save(self, store):
        """
        Write the full record back to the persisted message.

        Raises:
            NullRollError: If the quick roll has never been persisted
        """
        if self.message_id is None:
            raise NullRollError("Quick roll has no message to update")
        update = await self.to_message_update()
        message = await store.update_message(self.message_id, **update)
        logger.info("Updated quick roll message %s", self.message_id)
        return message

    @classmethod
    async def from_message(
        cls,
        message,
        resolve_actor: Optional[Callable[[str], Awaitable[Optional[Actor]]]] = None,
        resolve_item: Optional[Callable[[Actor, str], Awaitable[Optional[Item]]]] = None,
        renderer: Optional[Renderer] = None,
        notifications: Optional[Notifications] = None,
    ) -> "QuickRoll":
        """
        Rehydrate a quick roll from a persisted message.

        Fields are rebuilt from the flag record and paired with the stored
        roll data. Nothing is re-rolled or re-classified.

        Args:
            message: Persisted ChatMessage
            resolve_actor: Looks up the actor by id
            resolve_item: Looks up an actor's item by id
            renderer: Field renderer
            notifications: Sink for user-visible errors
        """
        flags = message.get_flags()
        stored_rolls = message.get_rolls()

        fields = []
        for index, entry in enumerate(flags.get("fields", [])):
            rolls = {}
            for key, data in stored_rolls.items():
                field_index, _, roll_key = key.partition(":")
                if field_index == str(index):
                    rolls[roll_key] = Roll.from_data(data)
            fields.append(Field.from_flag(entry, rolls))

        quick_roll = cls(
            None,
            QuickRollParams.from_dict(flags.get("params")),
            fields,
            renderer=renderer,
            notifications=notifications,
            properties=flags.get("properties", []),
        )
        quick_roll.message_id = message.id
        quick_roll._ref = SubjectRef(
            actor_id=flags.get("actor_id"),
            item_id=flags.get("item_id"),
            token_id=flags.get("token_id"),
        )

        actor_id = flags.get("actor_id")
        if actor_id and resolve_actor:
            quick_roll.actor = await resolve_actor(actor_id)

        item_id = flags.get("item_id")
        if item_id and quick_roll.actor and resolve_item:
            quick_roll.item = await resolve_item(quick_roll.actor, item_id)

        if flags.get("version") != cls.VERSION:
            logger.warning(
                "Message %s has quick roll version %s (current %s)",
                message.id, flags.get("version"), cls.VERSION,
            )

        return quick_roll

    # =========================================================================
    # Actions
    # =========================================================================

    def _fail(self, action: str, error: QuickRollError) -> bool:
        logger.error("Quick roll %s failed: %s", action, error)
        self.notifications.error(str(error))
        return False

    def _target_field(self, index: int, *kinds: FieldType) -> Field:
        if index < 0 or index >= len(self.fields):
            raise IndexOutOfRangeError(f"Field {index} out of range (card has {len(self.fields)})")
        target = self.fields[index]
        if kinds and target.kind not in kinds:
            raise InvalidTargetStateError(f"Incorrect field type for this action: '{target.kind.value}'")
        return target

    def _classify_checks(self, fields: Sequence[Field]) -> Tuple[bool, bool]:
        """Crit/fumble over every check and attack field, ignoring discarded dice."""
        crit = fumble = False
        for f in fields:
            roll = f.get("roll") if f.kind in MULTI_ROLL_FIELDS else None
            if roll is None:
                continue
            crit_type = classify_roll(roll, CritOptions.from_roll_options(roll.options, ignore_discarded=True))
            crit = crit or crit_type in (CritType.SUCCESS, CritType.MIXED)
            fumble = fumble or crit_type in (CritType.FAILURE, CritType.MIXED)
        return crit, fumble

    async def ensure_multi_roll(self, evaluator: DiceEvaluator, force: Optional[bool] = None) -> bool:
        """
        Enforce multi rolls on every check and attack field.

        The card's is_crit, is_fumble and is_multi_roll flags are taken from
        the enforcement results.

        Args:
            evaluator: Source of the extra dice
            force: Force enforcement (defaults to params.force_multi_roll)

        Returns:
            True on success, False if a field had no roll
        """
        force = self.params.force_multi_roll if force is None else force
        fields = list(self.fields)
        crit = fumble = multi = False

        try:
            for index, f in enumerate(fields):
                if f.kind not in MULTI_ROLL_FIELDS:
                    continue
                roll = f.get("roll")
                if roll is None:
                    raise NullRollError(f"Field {index} has no roll to enforce")

                # Rolls made with advantage/disadvantage already have their dice
                native = roll.has_advantage or roll.has_disadvantage
                policy = MultiDiePolicy.for_roll(roll, force=force and not native)
                outcome = await enforce_multi_roll(roll, policy, evaluator)
                fields[index] = f.with_data(roll=outcome.roll)
                crit = crit or outcome.is_crit
                fumble = fumble or outcome.is_fumble
                multi = multi or outcome.is_multi_roll
        except QuickRollError as e:
            return self._fail("multi roll enforcement", e)

        self.fields = fields
        self.params.is_crit = self.params.force_crit or crit
        self.params.is_fumble = self.params.force_fumble or fumble
        self.params.is_multi_roll = self.params.force_multi_roll or multi
        self._invalidate()
        return True

    async def upgrade_to_multi_roll(
        self, field_index: int, state: RollState, evaluator: DiceEvaluator
    ) -> bool:
        """
        Upgrade a check or attack field to advantage or disadvantage.

        Args:
            field_index: Index of the field to upgrade
            state: RollState.ADVANTAGE or RollState.DISADVANTAGE
            evaluator: Source of the extra dice

        Returns:
            True on success, False (card unchanged) otherwise
        """
        try:
            target = self._target_field(field_index, *MULTI_ROLL_FIELDS)
            upgraded = await upgrade_roll(target.get("roll"), state, evaluator)
        except QuickRollError as e:
            return self._fail("upgrade", e)

        fields = list(self.fields)
        fields[field_index] = target.with_data(roll=upgraded)
        crit, fumble = self._classify_checks(fields)

        self.fields = fields
        self.params.is_multi_roll = True
        self.params.has_advantage = state is RollState.ADVANTAGE
        self.params.has_disadvantage = state is RollState.DISADVANTAGE
        self.params.is_crit = self.params.force_crit or crit
        self.params.is_fumble = self.params.force_fumble or fumble
        self._invalidate()
        logger.debug("Field %d upgraded to %s", field_index, state.name.lower())
        return True

    async def upgrade_to_crit(
        self,
        field_index: int,
        evaluator: DiceEvaluator,
        policy: Optional[CriticalPolicy] = None,
    ) -> bool:
        """
        Add a critical roll to a damage field that has none yet.

        Critical bonuses only apply to the first damage field on the card.

        Returns:
            True on success, False (card unchanged) otherwise
        """
        try:
            target = self._target_field(field_index, FieldType.DAMAGE)
            base = target.get("base_roll")
            if base is None:
                raise NullRollError(f"Damage field {field_index} has no base roll")
            if target.get("crit_roll") is not None:
                raise InvalidTargetStateError(f"Damage field {field_index} already has a critical roll")

            group_index = [i for i, f in enumerate(self.fields) if f.kind is FieldType.DAMAGE].index(field_index)
            crit_roll = await synthesize_critical(base, group_index, policy or CriticalPolicy(), evaluator)
        except QuickRollError as e:
            return self._fail("critical upgrade", e)

        self.fields[field_index] = target.with_data(crit_roll=crit_roll)
        self._invalidate()
        return True

    async def reroll_die(
        self,
        field_index: int,
        roll_index: int,
        part: int,
        die_index: int,
        evaluator: DiceEvaluator,
    ) -> bool:
        """
        Reroll one die on a field.

        For damage fields roll_index selects the base (0) or crit (1) roll
        and die_index is the result within the part-th die term. For check
        and attack fields roll_index counts the active d20 results and
        die_index is ignored.

        Returns:
            True on success, False (card unchanged) otherwise
        """
        try:
            target = self._target_field(
                field_index, FieldType.DAMAGE, FieldType.CHECK, FieldType.ATTACK
            )

            if target.kind is FieldType.DAMAGE:
                key = "base_roll" if roll_index == 0 else "crit_roll"
                roll = target.get(key)
                if roll is None:
                    raise NullRollError(f"Damage field {field_index} has no {key.replace('_', ' ')}")
            else:
                key = "roll"
                roll = target.get(key)
                if roll is None:
                    raise NullRollError(f"Field {field_index} has no roll")
                term_index = roll.die_term_index(part)
                if term_index is None:
                    raise IndexOutOfRangeError(f"Die term {part} out of range in '{roll.formula}'")
                results = roll.terms[term_index].results
                active = [i for i, r in enumerate(results) if r.active]
                if roll_index < 0 or roll_index >= len(active):
                    raise IndexOutOfRangeError(
                        f"Roll {roll_index} out of range ({len(active)} active results)"
                    )
                die_index = active[roll_index]

            rerolled = await reroll_roll_die(roll, part, die_index, evaluator)
        except QuickRollError as e:
            return self._fail("reroll", e)

        self.fields[field_index] = target.with_data(**{key: rerolled})
        if target.kind in MULTI_ROLL_FIELDS:
            crit, fumble = self._classify_checks(self.fields)
            self.params.is_crit = self.params.force_crit or crit
            self.params.is_fumble = self.params.force_fumble or fumble
        self._invalidate()
        return True

    async def upgrade_to_damage_roll(
        self, field_index: int, damage_fields: Callable[[], Awaitable[Sequence[Field]]]
    ) -> bool:
        """
        Replace a manual damage placeholder with rolled damage fields.

        Args:
            field_index: Index of the MANUAL_DAMAGE field
            damage_fields: Produces the rolled damage fields

        Returns:
            True on success, False (card unchanged) otherwise
        """
        try:
            self._target_field(field_index, FieldType.MANUAL_DAMAGE)
            new_fields = list(await damage_fields())
        except QuickRollError as e:
            return self._fail("damage roll", e)

        self.fields[field_index:field_index + 1] = new_fields
        self._invalidate()
        logger.debug("Manual damage at field %d rolled into %d fields", field_index, len(new_fields))
        return True
