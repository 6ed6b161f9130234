"""
Shared fixtures for the dw_rules test suite.

Provides an in-memory plugin store, scripted dice and character builders.
"""

import os
import random
import sys

import pytest

# Add the project root to the Python path
project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, project_root)

from dw_rules.core.config import RulesConfig
from dw_rules.core.dice_engine import DiceRoller
from dw_rules.core.document_store import StoreDocumentAdapter
from dw_rules.core.models import Character


class MemoryStore:
    """In-memory stand-in for the host plugin store."""

    def __init__(self):
        self.data = {}
        self.fail_writes = False

    async def get(self, user_key=None, store_key=""):
        return self.data.get((user_key, store_key))

    async def set(self, user_key=None, store_key="", value=""):
        if self.fail_writes:
            raise RuntimeError("store is read-only")
        self.data[(user_key, store_key)] = value


class ScriptedRandom(random.Random):
    """Returns queued values from randint, clamped to the requested range."""

    def __init__(self, values):
        super().__init__(0)
        self.values = list(values)

    def randint(self, a, b):
        value = self.values.pop(0)
        return max(a, min(b, value))


def make_character(**overrides):
    """Build a character document with sensible defaults."""
    data = {
        "id": "hero",
        "name": "Aria",
        "attributes": {
            "level": {"value": 1},
            "xp": {"value": 0},
            "hp": {"value": 20, "max": 20},
            "ac": {"value": 0},
            "damage": {"value": ""},
        },
        "abilities": {
            "str": {"value": 2},
            "int": {"value": 0},
            "wis": {"value": 1},
            "cha": {"value": -1},
        },
        "details": {"class": "The Fighter"},
        "items": [],
    }
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(data.get(key), dict):
            data[key] = {**data[key], **value}
        else:
            data[key] = value
    return Character.from_dict(data)


@pytest.fixture
def rules_config():
    """Default rules configuration."""
    return RulesConfig()


@pytest.fixture
def memory_store():
    """Fresh in-memory plugin store."""
    return MemoryStore()


@pytest.fixture
def documents(memory_store, rules_config):
    """Document adapter over the in-memory store."""
    return StoreDocumentAdapter(memory_store, chat_key="test", config=rules_config)


@pytest.fixture
def scripted_roller():
    """Factory for a roller that returns fixed die faces."""
    def _make(*values, config=None):
        return DiceRoller(rng=ScriptedRandom(values), config=config)
    return _make


@pytest.fixture
def character():
    """A fresh level 1 fighter."""
    return make_character()
