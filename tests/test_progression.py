"""
Unit and integration tests for the level-up pipeline.
"""

import asyncio

import pytest

from conftest import make_character

from dw_rules.core.config import RulesConfig
from dw_rules.core.document_store import StoreDocumentAdapter
from dw_rules.core.errors import InvalidSelection, MissingClassDefinition, PersistenceFailure
from dw_rules.core.models import Move
from dw_rules.core.progression import (
    LevelUpState,
    ProgressionEngine,
    Selections,
    group_moves,
    is_eligible,
    merge_move_pools,
    xp_required,
)


class PersistFailingDocuments(StoreDocumentAdapter):
    """Adapter whose field updates are rejected after items were created."""

    async def persist(self, entity_id, update):
        raise PersistenceFailure("更新", entity_id)


def _owned(*names):
    return [{"type": "move", "id": name, "name": name, "move_type": "advanced"} for name in names]


def _setup(documents, config=None, **overrides):
    asyncio.run(documents.save_character(make_character(**overrides)))
    return ProgressionEngine(documents, config=config or RulesConfig())


class TestExperience:
    """Test experience thresholds and eligibility."""

    def test_default_formula(self):
        character = make_character(attributes={"level": {"value": 3}})
        assert xp_required(character) == 10

    def test_integer_formula(self):
        assert xp_required(make_character(), RulesConfig(XP_FORMULA="9")) == 9
        assert xp_required(make_character(), RulesConfig(XP_FORMULA="-3")) == 0

    def test_malformed_formula_falls_back(self):
        character = make_character(attributes={"level": {"value": 2}})
        assert xp_required(character, RulesConfig(XP_FORMULA="@bogus+1")) == 9

    def test_first_level_up_always_eligible(self, character):
        assert is_eligible(character, 8)

    def test_not_eligible_after_starting_moves(self):
        character = make_character(items=[{"type": "move", "name": "着甲", "move_type": "starting"}])
        assert not is_eligible(character, 8)

    def test_max_level(self):
        character = make_character(attributes={"level": {"value": 10}, "xp": {"value": 100}})
        assert not is_eligible(character, 17)

    def test_level_up_state(self, documents):
        engine = _setup(documents, attributes={"level": {"value": 3}, "xp": {"value": 5}})
        character = asyncio.run(documents.read_character("hero"))

        assert engine.level_up_state(character) == LevelUpState.NOT_ELIGIBLE


class TestMovePools:
    """Test merging and grouping of move pools."""

    def test_intrinsic_wins_on_name(self):
        intrinsic = [Move(id="a", name="A", description="class")]
        library = [Move(name="A", description="library"), Move(name="B Move")]
        merged = merge_move_pools(intrinsic, library)

        assert [m.name for m in merged] == ["A", "B Move"]
        assert merged[0].description == "class"
        assert merged[1].id == "b-move"

    def test_grouping_puts_ungrouped_last(self):
        moves = [Move(name="x"), Move(name="y", move_group="b"), Move(name="z", move_group="a")]
        groups = group_moves(moves)

        assert list(groups) == ["a", "b", ""]


class TestComputeCandidates:
    """Test candidate computation."""

    def test_first_level_up(self, documents):
        engine = _setup(documents)
        candidates = asyncio.run(engine.compute_candidates("hero"))

        assert candidates.working_level == 1
        assert {m.id for m in candidates.starting_moves} == {"bend-bars-lift-gates", "armored", "signature-weapon"}
        assert list(candidates.starting_move_groups) == ["武器", ""]
        assert candidates.advanced_moves_2 == []
        assert [r.key for r in candidates.races] == ["human", "dwarf", "elf"]
        assert list(candidates.equipment_groups) == ["armor", "gear"]
        assert candidates.ability_scores == [2, 1, 1, 0, 0, -1]
        assert candidates.blurb

    def test_ability_scores_array(self, documents):
        engine = _setup(documents, RulesConfig(NO_ABILITY_SCORES=False))
        candidates = asyncio.run(engine.compute_candidates("hero"))

        assert candidates.ability_scores == [16, 15, 13, 12, 9, 8]

    def test_advanced_moves_use_next_level(self, documents):
        engine = _setup(
            documents,
            RulesConfig(XP_FORMULA="9"),
            attributes={"level": {"value": 3}, "xp": {"value": 12}},
        )
        candidates = asyncio.run(engine.compute_candidates("hero"))

        assert candidates.working_level == 4
        assert candidates.eligible
        assert candidates.starting_moves == []
        assert [m.id for m in candidates.advanced_moves_2] == ["merciless", "armor-mastery"]
        assert candidates.equipment == []
        assert candidates.ability_scores is None

    def test_prerequisite_move(self, documents):
        engine = _setup(
            documents,
            attributes={"level": {"value": 3}, "xp": {"value": 12}},
            items=_owned("招牌武器"),
        )
        candidates = asyncio.run(engine.compute_candidates("hero"))

        assert "heirloom" in [m.id for m in candidates.advanced_moves_2]

    def test_level_six_band(self, documents):
        engine = _setup(
            documents,
            attributes={"level": {"value": 5}, "xp": {"value": 20}},
            items=_owned("冷酷无情"),
        )
        candidates = asyncio.run(engine.compute_candidates("hero"))

        assert [m.id for m in candidates.advanced_moves_2] == ["armor-mastery"]
        assert [m.id for m in candidates.advanced_moves_6] == ["bloodthirsty"]

    def test_race_not_offered_when_set(self, documents):
        engine = _setup(documents, details={"race": {"value": "人类", "description": "战斗加值"}})
        candidates = asyncio.run(engine.compute_candidates("hero"))

        assert candidates.races == []
        assert candidates.alignments

    def test_missing_class(self, documents):
        engine = _setup(documents, details={"class": "The Bard"})
        with pytest.raises(MissingClassDefinition):
            asyncio.run(engine.compute_candidates("hero"))

    def test_library_moves(self, documents):
        engine = _setup(documents)
        asyncio.run(documents.import_library("the-fighter-moves", [
            {"name": "掰栏举门", "description": "库版本", "move_type": "starting"},
            {"id": "lib-move", "name": "库招式", "move_type": "starting"},
        ]))
        candidates = asyncio.run(engine.compute_candidates("hero"))

        assert candidates.find_move("lib-move") is not None
        assert candidates.find_move("bend-bars-lift-gates").description != "库版本"

    def test_library_disabled(self, documents):
        engine = _setup(documents, RulesConfig(DISABLE_BUILTIN_LIBRARY=True))
        asyncio.run(documents.import_library("the-fighter-moves", [{"id": "lib-move", "name": "库招式"}]))
        candidates = asyncio.run(engine.compute_candidates("hero"))

        assert candidates.find_move("lib-move") is None

    def test_prefixed_library(self, documents):
        engine = _setup(documents, RulesConfig(COMPENDIUM_PREFIX="Homebrew"))
        asyncio.run(documents.import_library("homebrew-the-fighter-moves", [{"id": "hb", "name": "自制招式"}]))
        candidates = asyncio.run(engine.compute_candidates("hero"))

        assert candidates.find_move("hb") is not None

    def test_equipment_references(self, documents):
        engine = _setup(documents)
        asyncio.run(documents.save_document({"id": "sword-doc", "type": "equipment", "name": "长剑"}))
        asyncio.run(documents.import_class({
            "name": "The Fighter",
            "equipment": {
                "weapon": {"label": "武器", "items": ["sword-doc", "missing-doc", {"name": "Short Bow"}]},
            },
        }))
        candidates = asyncio.run(engine.compute_candidates("hero"))

        assert [e.id for e in candidates.equipment] == ["sword-doc", "weapon.short-bow"]


class TestCommit:
    """Test applying level-up selections."""

    def test_first_level_up(self, documents):
        engine = _setup(documents)
        candidates = asyncio.run(engine.compute_candidates("hero"))
        selections = Selections(
            move_ids=["bend-bars-lift-gates", "armored", "armored"],
            equipment_ids=["fighter-chainmail"],
            race="human",
            alignment="good",
            ability_values={"str": 2, "int": 1, "wis": 0, "cha": -1},
        )
        result = asyncio.run(engine.commit(candidates, selections))
        character = asyncio.run(documents.read_character("hero"))

        assert len(result.bond_ids) == 4
        assert len(result.move_ids) == 2
        assert len(result.equipment_ids) == 1
        assert result.level == 1
        assert candidates.state == LevelUpState.COMMITTED

        assert [item.type for item in character.items] == ["bond"] * 4 + ["move"] * 2 + ["equipment"]
        assert character.details.race.value == "人类"
        assert character.details.alignment.value == "善良"
        assert character.abilities["int"].value == 1
        assert character.attributes.damage.value == "d10"
        assert character.flags["levelup"] is False
        assert character.level == 1

    def test_level_up_spends_experience(self, documents):
        engine = _setup(
            documents,
            RulesConfig(XP_FORMULA="9"),
            attributes={"level": {"value": 3}, "xp": {"value": 12}},
        )
        candidates = asyncio.run(engine.compute_candidates("hero"))
        result = asyncio.run(engine.commit(candidates, Selections(move_ids=["merciless"], ability_increases=["str"])))
        character = asyncio.run(documents.read_character("hero"))

        assert (result.level, result.xp) == (4, 3)
        assert character.level == 4
        assert character.xp == 3
        assert character.abilities["str"].value == 3
        assert result.bond_ids == []
        assert [m.name for m in character.moves] == ["冷酷无情"]

    def test_invalid_move_creates_nothing(self, documents):
        engine = _setup(documents)
        candidates = asyncio.run(engine.compute_candidates("hero"))

        with pytest.raises(InvalidSelection):
            asyncio.run(engine.commit(candidates, Selections(move_ids=["nope"])))
        assert asyncio.run(documents.read_character("hero")).items == []

    def test_invalid_race(self, documents):
        engine = _setup(documents)
        candidates = asyncio.run(engine.compute_candidates("hero"))

        with pytest.raises(InvalidSelection):
            engine.build_patch(candidates, Selections(race="orc"))

    def test_ability_value_outside_array(self, documents):
        engine = _setup(documents)
        candidates = asyncio.run(engine.compute_candidates("hero"))

        with pytest.raises(InvalidSelection):
            engine.build_patch(candidates, Selections(ability_values={"str": 3}))

    def test_ability_increase_disabled(self, documents):
        engine = _setup(documents, RulesConfig(NO_ABILITY_INCREASE=True))
        candidates = asyncio.run(engine.compute_candidates("hero"))

        with pytest.raises(InvalidSelection):
            engine.build_patch(candidates, Selections(ability_increases=["str"]))

    def test_ability_above_ceiling(self, documents):
        engine = _setup(
            documents,
            RulesConfig(NO_ABILITY_SCORES=False),
            abilities={"str": {"value": 18}},
        )
        candidates = asyncio.run(engine.compute_candidates("hero"))

        assert candidates.find_ability("str").disabled
        with pytest.raises(InvalidSelection):
            engine.build_patch(candidates, Selections(ability_increases=["str"]))

    def test_store_failure(self, documents, memory_store):
        engine = _setup(documents)
        candidates = asyncio.run(engine.compute_candidates("hero"))
        memory_store.fail_writes = True

        with pytest.raises(PersistenceFailure):
            asyncio.run(engine.commit(candidates, Selections(move_ids=["armored"])))
        assert candidates.state != LevelUpState.COMMITTED

    def test_field_update_failure_keeps_created_items(self, memory_store):
        documents = PersistFailingDocuments(memory_store, chat_key="test")
        engine = _setup(
            documents,
            RulesConfig(XP_FORMULA="9"),
            attributes={"level": {"value": 3}, "xp": {"value": 12}},
        )
        candidates = asyncio.run(engine.compute_candidates("hero"))

        with pytest.raises(PersistenceFailure):
            asyncio.run(engine.commit(candidates, Selections(move_ids=["merciless"])))
        character = asyncio.run(documents.read_character("hero"))

        assert [m.name for m in character.moves] == ["冷酷无情"]
        assert (character.level, character.xp) == (3, 12)
        assert candidates.state != LevelUpState.COMMITTED


class TestUnsluggableMoveNames:
    """Test library moves whose names have no ASCII slug."""

    def test_merge_assigns_unique_ids(self):
        merged = merge_move_pools([Move(id="move-2", name="A")], [Move(name="盾墙"), Move(name="战吼")])
        ids = [m.id for m in merged]

        assert all(ids)
        assert len(set(ids)) == 3

    def test_chinese_library_move_can_be_committed(self, documents):
        engine = _setup(documents)
        asyncio.run(documents.import_library("the-fighter-moves", [
            {"name": "盾墙", "move_type": "starting"},
            {"name": "战吼", "move_type": "starting"},
        ]))
        candidates = asyncio.run(engine.compute_candidates("hero"))
        ids = {m.name: m.id for m in candidates.moves if m.name in ("盾墙", "战吼")}

        assert all(ids.values())
        assert ids["盾墙"] != ids["战吼"]

        asyncio.run(engine.commit(candidates, Selections(move_ids=[ids["战吼"]])))
        character = asyncio.run(documents.read_character("hero"))

        assert [m.name for m in character.moves] == ["战吼"]
