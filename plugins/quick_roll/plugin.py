"""
Quick Roll Plugin

Rolls checks, saves and item cards as quick roll chat cards and applies
follow-up actions (advantage, crits, rerolls, manual damage) to cards
that were already posted.

This plugin runs as a separate process and communicates entirely via NATS.

NATS Subjects:
    Subscribe:
        quickroll.command.skill   - Roll a skill check
        quickroll.command.ability - Roll an ability test
        quickroll.command.save    - Roll an ability save
        quickroll.command.tool    - Roll a tool check
        quickroll.command.damage  - Roll ad-hoc damage
        quickroll.command.item    - Roll an item card
        quickroll.action.upgrade  - Upgrade a card's check to advantage/disadvantage
        quickroll.action.crit     - Add critical damage to a damage field
        quickroll.action.reroll   - Reroll one die on a card
        quickroll.action.damage   - Roll manual damage on a card
    Publish:
        quickroll.event.rolled  - Event emitted after a card is posted
        quickroll.event.updated - Event emitted after a card is updated
"""

import asyncio
import json
import logging
from collections import OrderedDict
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from nats.aio.client import Client as NATS

from common.config import QuickRollConfig
from common.database import MessageStore
from quickroll import (
    Actor,
    GameRules,
    Item,
    ItemType,
    Notifications,
    QuickRoll,
    QuickRollError,
    RollActions,
    SettingsStore,
    TextRenderer,
)
from quickroll.dice import DiceEvaluator, FormulaParser, RandomDiceEvaluator, RollState
from quickroll.errors import InvalidTargetStateError

logger = logging.getLogger(__name__)

_ROLL_STATES = {
    "advantage": RollState.ADVANTAGE,
    "kh": RollState.ADVANTAGE,
    "disadvantage": RollState.DISADVANTAGE,
    "kl": RollState.DISADVANTAGE,
    "dual": RollState.DUAL,
    "single": RollState.SINGLE,
}


def parse_roll_state(value: str) -> RollState:
    """
    Parse a roll state name.

    Raises:
        InvalidTargetStateError: If the name is not a roll state
    """
    state = _ROLL_STATES.get(str(value).lower())
    if state is None:
        raise InvalidTargetStateError(f"Unknown roll state: '{value}'")
    return state


class QuickRollPlugin:
    """
    Quick roll cards for tabletop dice rolls.

    This plugin communicates entirely via NATS messaging:
    - Subscribes to command subjects that create cards
    - Subscribes to action subjects that update posted cards
    - Publishes events for analytics
    - Uses request/reply pattern for command responses

    Follow-up actions on the same card are serialised with a per-message
    lock, and every update writes back the card's complete record.
    """

    # Plugin metadata
    NAMESPACE = "quick-roll"
    VERSION = "1.0.0"
    DESCRIPTION = "Quick roll chat cards for checks, saves and items"

    # NATS subjects
    SUBJECT_SKILL = "quickroll.command.skill"
    SUBJECT_ABILITY = "quickroll.command.ability"
    SUBJECT_SAVE = "quickroll.command.save"
    SUBJECT_TOOL = "quickroll.command.tool"
    SUBJECT_DAMAGE = "quickroll.command.damage"
    SUBJECT_ITEM = "quickroll.command.item"
    SUBJECT_UPGRADE = "quickroll.action.upgrade"
    SUBJECT_CRIT = "quickroll.action.crit"
    SUBJECT_REROLL = "quickroll.action.reroll"
    SUBJECT_MANUAL_DAMAGE = "quickroll.action.damage"
    EVENT_ROLLED = "quickroll.event.rolled"
    EVENT_UPDATED = "quickroll.event.updated"

    # Setting that enables each command (None = always enabled)
    COMMAND_SETTINGS = {
        "skill": "enable_skill_quick_roll",
        "ability": "enable_ability_quick_roll",
        "save": "enable_ability_quick_roll",
        "tool": "enable_tool_quick_roll",
        "item": "enable_item_quick_roll",
        "damage": None,
    }

    # Actors and items remembered for rehydrating cards (least recently used evicted)
    MAX_CACHED_SUBJECTS = 1000

    def __init__(
        self,
        nats_client: NATS,
        store: MessageStore,
        config: Optional[QuickRollConfig] = None,
        evaluator: Optional[DiceEvaluator] = None,
        rules: Optional[GameRules] = None,
        cache_size: int = MAX_CACHED_SUBJECTS,
    ):
        """
        Initialize quick roll plugin.

        Args:
            nats_client: Connected NATS client for messaging
            store: Message store for posted cards
            config: Service configuration
            evaluator: Dice evaluator (defaults to a random evaluator
                with the configured limits)
            rules: Game rule tables
            cache_size: Most actors (and items) kept for rehydration
        """
        self.nats = nats_client
        self.store = store
        self.config = config or QuickRollConfig()
        self.logger = logging.getLogger(f"{__name__}.{self.NAMESPACE}")
        self._initialized = False
        self._subscriptions: List[Any] = []

        self.settings = SettingsStore(self.config.settings)
        self.rules = rules or GameRules()
        self.emit_events = self.config.emit_events
        self.evaluator = evaluator or RandomDiceEvaluator(
            parser=FormulaParser(max_dice=self.config.max_dice, max_faces=self.config.max_faces)
        )

        # Subjects seen in commands, used to rehydrate cards for actions
        self.cache_size = cache_size
        self._actors: "OrderedDict[str, Actor]" = OrderedDict()
        self._items: "OrderedDict[Tuple[str, str], Item]" = OrderedDict()

        # Per-card locks, dropped once no action holds or waits on them
        self._locks: Dict[int, asyncio.Lock] = {}
        self._lock_users: Dict[int, int] = {}

    async def initialize(self) -> None:
        """
        Initialize plugin and subscribe to NATS subjects.
        """
        self.logger.info(f"Initializing {self.NAMESPACE} plugin v{self.VERSION}")

        handlers = {
            self.SUBJECT_SKILL: self._handle_skill,
            self.SUBJECT_ABILITY: self._handle_ability,
            self.SUBJECT_SAVE: self._handle_save,
            self.SUBJECT_TOOL: self._handle_tool,
            self.SUBJECT_DAMAGE: self._handle_damage,
            self.SUBJECT_ITEM: self._handle_item,
            self.SUBJECT_UPGRADE: self._handle_upgrade,
            self.SUBJECT_CRIT: self._handle_crit,
            self.SUBJECT_REROLL: self._handle_reroll,
            self.SUBJECT_MANUAL_DAMAGE: self._handle_manual_damage,
        }

        for subject, handler in handlers.items():
            sub = await self.nats.subscribe(subject, cb=handler)
            self._subscriptions.append(sub)

        self._initialized = True
        self.logger.info(f"Plugin initialized. Subscribed to: {', '.join(handlers)}")

    async def shutdown(self) -> None:
        """
        Shutdown plugin and cleanup subscriptions.
        """
        self.logger.info(f"Shutting down {self.NAMESPACE} plugin")

        for sub in self._subscriptions:
            try:
                await sub.unsubscribe()
            except Exception as e:
                self.logger.warning(f"Error unsubscribing: {e}")

        self._subscriptions.clear()
        self._initialized = False
        self.logger.info("Plugin shutdown complete")

    # =========================================================================
    # NATS Handlers
    # =========================================================================

    async def _handle_skill(self, msg) -> None:
        await self._handle(msg, self._process_command, "skill")

    async def _handle_ability(self, msg) -> None:
        await self._handle(msg, self._process_command, "ability")

    async def _handle_save(self, msg) -> None:
        await self._handle(msg, self._process_command, "save")

    async def _handle_tool(self, msg) -> None:
        await self._handle(msg, self._process_command, "tool")

    async def _handle_damage(self, msg) -> None:
        await self._handle(msg, self._process_command, "damage")

    async def _handle_item(self, msg) -> None:
        await self._handle(msg, self._process_command, "item")

    async def _handle_upgrade(self, msg) -> None:
        await self._handle(msg, self._process_action, "upgrade")

    async def _handle_crit(self, msg) -> None:
        await self._handle(msg, self._process_action, "crit")

    async def _handle_reroll(self, msg) -> None:
        await self._handle(msg, self._process_action, "reroll")

    async def _handle_manual_damage(self, msg) -> None:
        await self._handle(msg, self._process_action, "damage")

    async def _handle(self, msg, process, kind: str) -> None:
        """
        Decode a request, process it and reply.

        Expected message format:
            {"user": "string", ...command or action fields}

        Response format:
            {"success": true, "result": {...}, "notifications": [...]}
            {"success": false, "error": "...", "notifications": [...]}
        """
        try:
            data = json.loads(msg.data.decode())
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            self.logger.error(f"Invalid message format: {e}")
            if msg.reply:
                await self._respond(msg, {"success": False, "error": "Invalid message format"})
            return

        try:
            response = await process(kind, data)
        except QuickRollError as e:
            self.logger.debug(f"Rejected {kind} request: {e}")
            response = {"success": False, "error": f"❌ {e}"}
        except (KeyError, TypeError, ValueError) as e:
            self.logger.debug(f"Invalid {kind} request: {e}")
            response = {"success": False, "error": f"❌ Invalid request: {e}"}
        except Exception as e:
            self.logger.error(f"Error processing {kind} request: {e}", exc_info=True)
            response = {"success": False, "error": "❌ Could not complete the roll"}

        if msg.reply:
            await self._respond(msg, response)

    async def _respond(self, msg, data: Dict[str, Any]) -> None:
        """Send JSON response to NATS message."""
        try:
            await msg.respond(json.dumps(data).encode())
        except Exception as e:
            self.logger.error(f"Error sending response: {e}")

    # =========================================================================
    # Core Logic
    # =========================================================================

    def _actions(self, notifications: Notifications) -> RollActions:
        return RollActions(
            self.evaluator,
            settings=self.settings,
            rules=self.rules,
            notifications=notifications,
        )

    @asynccontextmanager
    async def _card_lock(self, message_id: int):
        """Serialise actions on one card."""
        lock = self._locks.setdefault(message_id, asyncio.Lock())
        self._lock_users[message_id] = self._lock_users.get(message_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[message_id] -= 1
            if not self._lock_users[message_id]:
                del self._lock_users[message_id]
                del self._locks[message_id]

    def _remember(self, cache: OrderedDict, key, value) -> None:
        cache[key] = value
        cache.move_to_end(key)
        while len(cache) > self.cache_size:
            cache.popitem(last=False)

    @staticmethod
    def _recall(cache: OrderedDict, key):
        value = cache.get(key)
        if value is not None:
            cache.move_to_end(key)
        return value

    async def _resolve_actor(self, actor_id: str) -> Optional[Actor]:
        return self._recall(self._actors, actor_id)

    async def _resolve_item(self, actor: Actor, item_id: str) -> Optional[Item]:
        return self._recall(self._items, (actor.id, item_id))

    def _register(self, data: Dict[str, Any]) -> Tuple[Optional[Actor], Optional[Item]]:
        """Build (and remember) the actor and item carried by a request."""
        actor = None
        item = None

        if "actor" in data:
            actor = Actor.from_dict(data["actor"])
            self._remember(self._actors, actor.id, actor)

        if "item" in data and actor is not None:
            item_data = data["item"]
            item_type = ItemType(item_data.get("type", ItemType.FEATURE.value))
            item = Item.from_dict(item_data, actor, self.config.item_flags.get(item_type))
            self._remember(self._items, (actor.id, item.id), item)

        return actor, item

    @staticmethod
    def _failure(notifications: Notifications, default: str) -> Dict[str, Any]:
        pending = [n.to_dict() for n in notifications.drain()]
        error = pending[-1]["message"] if pending else default
        return {"success": False, "error": f"❌ {error}", "notifications": pending}

    async def _process_command(self, kind: str, data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Build and post a new card.

        Args:
            kind: Command kind (skill, ability, save, tool, damage, item)
            data: Request payload

        Returns:
            Response dict with success status and result or error
        """
        setting = self.COMMAND_SETTINGS[kind]
        if setting and not self.settings.get(setting):
            return {"success": False, "error": f"❌ {kind.capitalize()} quick rolls are disabled"}

        notifications = Notifications()
        actions = self._actions(notifications)

        actor, item = self._register(data)
        advantage_mode = int(data.get("advantage_mode", 0))
        dc = data.get("dc")

        if kind == "skill":
            quick_roll = await actions.roll_skill(actor, data["skill"], advantage_mode, dc)
        elif kind == "ability":
            quick_roll = await actions.roll_ability_test(actor, data["ability"], advantage_mode, dc)
        elif kind == "save":
            quick_roll = await actions.roll_ability_save(actor, data["ability"], advantage_mode, dc)
        elif kind == "tool":
            quick_roll = await actions.roll_tool(actor, data["tool"], advantage_mode, dc)
        elif kind == "damage":
            quick_roll = await actions.roll_damage(
                actor,
                data["formula"],
                damage_type=data.get("damage_type", ""),
                title=data.get("title", "Damage"),
                is_crit=bool(data.get("is_crit", False)),
            )
        else:
            quick_roll = await actions.roll_item(
                item,
                advantage_mode,
                alt=bool(data.get("alt", False)),
                versatile=data.get("versatile"),
                slot_level=data.get("slot_level"),
            )

        if quick_roll is None:
            return self._failure(notifications, "Roll failed")

        message = await quick_roll.to_message(self.store, user=data.get("user"))

        if self.emit_events:
            await self._emit_event(self.EVENT_ROLLED, data.get("user"), quick_roll, kind)

        return {
            "success": True,
            "result": {
                "message_id": message.id,
                "content": message.content,
                "flags": message.get_flags(),
            },
            "notifications": [n.to_dict() for n in notifications.drain()],
        }

    async def _process_action(self, action: str, data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Apply a follow-up action to a posted card.

        The card is rehydrated from its stored record, changed, re-rendered
        and written back in full while holding the card's lock.

        Args:
            action: Action kind (upgrade, crit, reroll, damage)
            data: Request payload (message_id, field and action arguments)

        Returns:
            Response dict with success status and result or error
        """
        message_id = int(data["message_id"])
        field_index = int(data["field"])

        if action == "upgrade" and self.settings.get("confirm_retro_adv") and not data.get("confirmed"):
            return {"success": False, "confirm": True, "error": "Confirm the advantage change"}
        if action == "crit" and self.settings.get("confirm_retro_crit") and not data.get("confirmed"):
            return {"success": False, "confirm": True, "error": "Confirm the critical upgrade"}

        notifications = Notifications()
        actions = self._actions(notifications)
        self._register(data)

        async with self._card_lock(message_id):
            message = await self.store.get_message(message_id)
            if message is None:
                return {"success": False, "error": f"❌ Message {message_id} not found"}

            quick_roll = await QuickRoll.from_message(
                message,
                resolve_actor=self._resolve_actor,
                resolve_item=self._resolve_item,
                renderer=TextRenderer(d20_icons=self.settings.get("d20_icons_enabled")),
                notifications=notifications,
            )

            if action == "upgrade":
                try:
                    state = parse_roll_state(data.get("state", ""))
                except QuickRollError as e:
                    notifications.error(str(e))
                    return self._failure(notifications, "Upgrade failed")
                ok = await quick_roll.upgrade_to_multi_roll(field_index, state, self.evaluator)
            elif action == "crit":
                ok = await quick_roll.upgrade_to_crit(
                    field_index, self.evaluator, actions.critical_policy(quick_roll.item)
                )
            elif action == "reroll":
                ok = await quick_roll.reroll_die(
                    field_index,
                    int(data.get("roll", 0)),
                    int(data.get("part", 0)),
                    int(data.get("die", 0)),
                    self.evaluator,
                )
            else:
                ok = await actions.upgrade_to_damage_roll(quick_roll, field_index)

            if not ok:
                return self._failure(notifications, f"{action.capitalize()} failed")

            message = await quick_roll.save(self.store)

        if self.emit_events:
            await self._emit_event(self.EVENT_UPDATED, data.get("user"), quick_roll, action)

        return {
            "success": True,
            "result": {
                "message_id": message.id,
                "content": message.content,
                "flags": message.get_flags(),
            },
            "notifications": [n.to_dict() for n in notifications.drain()],
        }

    # =========================================================================
    # Event Emission
    # =========================================================================

    async def _emit_event(self, subject: str, user: Optional[str], quick_roll: QuickRoll, kind: str) -> None:
        """
        Emit a rolled/updated event for analytics.

        Args:
            subject: Event subject
            user: User who rolled
            quick_roll: The card
            kind: Command or action kind
        """
        ref = quick_roll.subject_ref
        event_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "user": user,
            "kind": kind,
            "message_id": quick_roll.message_id,
            "actor_id": ref.actor_id,
            "item_id": ref.item_id,
            "is_crit": quick_roll.is_crit,
            "is_fumble": quick_roll.is_fumble,
            "is_multi_roll": quick_roll.is_multi_roll,
        }

        try:
            await self.nats.publish(subject, json.dumps(event_data).encode())
        except Exception as e:
            self.logger.debug(f"Could not publish event: {e}")
