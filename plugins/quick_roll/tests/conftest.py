"""Pytest configuration and fixtures for quick-roll plugin tests."""

import json

import pytest
from unittest.mock import AsyncMock, MagicMock

from common.config import parse_config
from common.database import MessageStore
from plugins.quick_roll import QuickRollPlugin
from quickroll.dice import RandomDiceEvaluator
from tests.fixtures.dice import SequenceRandom


@pytest.fixture
def rng():
    return SequenceRandom()


@pytest.fixture
def mock_nats():
    """Create mock NATS client for testing."""
    nats = AsyncMock()
    nats.subscribe = AsyncMock(return_value=MagicMock())
    nats.publish = AsyncMock()
    return nats


@pytest.fixture
async def store(tmp_path):
    store = MessageStore(str(tmp_path / "cards.db"))
    await store.connect()
    yield store
    await store.close()


@pytest.fixture
def plugin_config():
    """Default plugin configuration."""
    return parse_config({
        "settings": {},
        "dice": {"max_dice": 20, "max_faces": 100},
        "emit_events": True,
    })


@pytest.fixture
def plugin(mock_nats, store, plugin_config, rng):
    """Create plugin instance with mock NATS client and deterministic dice."""
    return QuickRollPlugin(
        mock_nats,
        store,
        plugin_config,
        evaluator=RandomDiceEvaluator(rng=rng),
    )


@pytest.fixture
def actor_data():
    return {
        "id": "actor-1",
        "name": "Vex",
        "abilities": {"dex": 4, "str": 1},
        "skills": {"ste": 7},
        "melee_critical_damage_dice": 1,
    }


@pytest.fixture
def weapon_data():
    return {
        "id": "item-sword",
        "name": "Longsword",
        "type": "weapon",
        "action_type": "mwak",
        "attack_bonus": 5,
        "damage_parts": [["1d8 + 3", "slashing"]],
        "properties": ["Versatile"],
    }


@pytest.fixture
def make_msg():
    """Create mock NATS message."""

    def _make(data, reply="test.reply"):
        msg = MagicMock()
        msg.data = data if isinstance(data, bytes) else json.dumps(data).encode()
        msg.reply = reply
        msg.respond = AsyncMock()
        return msg

    return _make


@pytest.fixture
def response():
    """Decode the JSON response sent to a mock message."""

    def _response(msg):
        msg.respond.assert_called_once()
        return json.loads(msg.respond.call_args[0][0])

    return _response
