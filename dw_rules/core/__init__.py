"""
Dungeon World Rules Core

This package contains the rules-computation modules: ability derivation,
dice and check resolution, damage mitigation and character progression.
"""

from .abilities import effective_modifier, derive_abilities
from .config import RulesConfig
from .damage import DamageCalculator, DamageOptions, DamageResult
from .dice_engine import DiceParser, DiceRoller, DiceResult
from .document_store import DocumentStore, StoreDocumentAdapter
from .errors import (
    InvalidSelection,
    MalformedFormula,
    MalformedTagPayload,
    MissingClassDefinition,
    PersistenceFailure,
    RulesEngineError,
)
from .models import Character, ClassDefinition, UpdatePatch
from .progression import CandidateSet, CommitResult, LevelUpState, ProgressionEngine, Selections
from .rolls import Outcome, RollResolver, RollResult

__all__ = [
    "effective_modifier",
    "derive_abilities",
    "RulesConfig",
    "DamageCalculator",
    "DamageOptions",
    "DamageResult",
    "DiceParser",
    "DiceRoller",
    "DiceResult",
    "DocumentStore",
    "StoreDocumentAdapter",
    "InvalidSelection",
    "MalformedFormula",
    "MalformedTagPayload",
    "MissingClassDefinition",
    "PersistenceFailure",
    "RulesEngineError",
    "Character",
    "ClassDefinition",
    "UpdatePatch",
    "CandidateSet",
    "CommitResult",
    "LevelUpState",
    "ProgressionEngine",
    "Selections",
    "Outcome",
    "RollResolver",
    "RollResult",
]
