"""
Global pytest configuration and fixtures for quick roll tests

Provides:
- Deterministic dice (queued rng values)
- Sample actors and items
- Message store backed by a temporary SQLite file
"""

import pytest

from common.database import MessageStore
from quickroll import Actor, DamagePart, Item, ItemType, SaveInfo
from quickroll.dice import (
    Die,
    DieResult,
    NumericTerm,
    OperatorTerm,
    RandomDiceEvaluator,
    Roll,
    RollOptions,
    keep_results,
)
from tests.fixtures.dice import SequenceRandom


# ============================================================================
# Pytest Configuration
# ============================================================================

def pytest_configure(config):
    """Configure pytest with custom settings"""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "plugin: Plugin tests")


# ============================================================================
# Dice
# ============================================================================

@pytest.fixture
def rng():
    """Queue-driven rng; tests push the faces they want rolled."""
    return SequenceRandom()


@pytest.fixture
def evaluator(rng):
    """Evaluator rolling from the queued rng."""
    return RandomDiceEvaluator(rng=rng)


@pytest.fixture
def make_d20():
    """
    Build an evaluated d20 roll.

    Usage:
        make_d20([15, 8], bonus=5, keep="kh")
    """

    def _make(values, bonus=0, keep=None, **options):
        results = [DieResult(v) for v in values]
        die = Die(len(values), 20, tuple(results), (keep,) if keep else ())
        if keep:
            die = die.with_results(keep_results(die.results, keep))
        terms = [die]
        if bonus:
            terms += [OperatorTerm("+" if bonus > 0 else "-"), NumericTerm(abs(bonus))]
        return Roll(tuple(terms), RollOptions(**options))

    return _make


# ============================================================================
# Subjects
# ============================================================================

@pytest.fixture
def actor():
    """A rogue with proficiency in stealth and thieves' tools."""
    return Actor(
        id="actor-1",
        name="Vex",
        abilities={"str": 1, "dex": 4, "con": 2, "int": 0, "wis": 1, "cha": -1},
        skills={"ste": 7, "prc": 3},
        saves={"dex": 6},
        tools={"thief": 7},
    )


@pytest.fixture
def weapon(actor):
    """A melee weapon with versatile damage."""
    return Item(
        id="item-sword",
        name="Longsword",
        type=ItemType.WEAPON,
        actor=actor,
        description="A trusty blade.",
        action_type="mwak",
        attack_bonus=5,
        damage_parts=[DamagePart("1d8 + 3", "slashing")],
        versatile="1d10 + 3",
        properties=["Versatile"],
    )


@pytest.fixture
def fireball(actor):
    """A save spell with no attack roll."""
    return Item(
        id="item-fireball",
        name="Fireball",
        type=ItemType.SPELL,
        actor=actor,
        description="A bright streak flashes to a point you choose.",
        action_type="save",
        damage_parts=[DamagePart("8d6", "fire")],
        save=SaveInfo("dex", 15),
        properties=["V", "S", "M"],
    )


@pytest.fixture
def thieves_tools(actor):
    return Item(
        id="item-tools",
        name="Thieves' Tools",
        type=ItemType.TOOL,
        actor=actor,
        check_ability="dex",
        tool_id="thief",
    )


# ============================================================================
# Persistence
# ============================================================================

@pytest.fixture
async def store(tmp_path):
    """Message store on a temporary SQLite database."""
    store = MessageStore(str(tmp_path / "quickroll.db"))
    await store.connect()
    yield store
    await store.close()
