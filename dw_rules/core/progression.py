"""
角色成长模块

升级分为两个阶段：compute_candidates 读取角色与职业数据并计算可选项（不修改任何状态），
commit 根据玩家的选择批量创建物品并更新角色字段。
"""

import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Optional, Set, Tuple

from .abilities import derive_abilities, roll_data
from .config import RulesConfig, config as default_config
from .dice_engine import DiceRoller
from .document_store import DocumentStore
from .errors import InvalidSelection, MalformedFormula, MissingClassDefinition
from .game_data import builtin_translations, clean_class
from .models import Character, ClassDefinition, Descriptor, Equipment, Move, UpdatePatch

logger = logging.getLogger(__name__)

# 没有分组的初始招式排在最后
UNGROUPED = ""
BOND_SLOTS = 6


class LevelUpState(str, Enum):
    NOT_ELIGIBLE = "not_eligible"
    ELIGIBLE = "eligible"
    SELECTION_PENDING = "selection_pending"
    COMMITTED = "committed"


# ============ 经验与资格 ============

def xp_required(character: Character, config: Optional[RulesConfig] = None, roller: Optional[DiceRoller] = None) -> int:
    """升级所需经验，公式无效时退回 等级+7"""
    config = config or default_config
    formula = str(config.XP_FORMULA).strip()
    if formula.lstrip("-").isdigit():
        return max(int(formula), 0)

    roller = roller or DiceRoller(config=config)
    try:
        total = roller.roll_expression(formula, roll_data(character, config)).total
    except MalformedFormula as e:
        logger.warning("invalid xp formula %r: %s", formula, e)
        total = character.level + 7
    return max(total, 0)


def is_eligible(character: Character, required: int, config: Optional[RulesConfig] = None) -> bool:
    """
    是否可以升级

    经验足够且未满级时可升级；1级且还没有任何初始招式的角色总是可以完成首次升级。
    """
    config = config or default_config
    if character.xp >= required and character.level < config.MAX_LEVEL:
        return True
    return character.level == 1 and not character.starting_moves


def working_level(character: Character) -> int:
    """用于筛选招式的等级，已有经验时按下一级计算"""
    if character.xp > 0:
        return character.level + 1
    return character.level


# ============ 招式筛选 ============

def _with_id(move: Move, position: int, taken: Set[str]) -> Move:
    """补全招式ID，名称无法转为slug时按池中位置编号，保证池内唯一"""
    move_id = move.id or clean_class(move.name) or f"move-{position}"
    base, suffix = move_id, 2
    while move_id in taken:
        move_id = f"{base}-{suffix}"
        suffix += 1
    taken.add(move_id)
    if move_id == move.id:
        return move
    return move.model_copy(update={"id": move_id})


def merge_move_pools(intrinsic: Iterable[Move], library: Iterable[Move]) -> List[Move]:
    """合并招式池，同名时保留职业自带的版本"""
    merged: List[Move] = []
    names: Set[str] = set()
    taken: Set[str] = set()
    for move in list(intrinsic) + list(library):
        if move.name in names:
            continue
        merged.append(_with_id(move, len(merged) + 1, taken))
        names.add(move.name)
    return merged


def is_move_available(move: Move, character: Character, level: int) -> bool:
    if move.requires_level > level:
        return False
    if character.owns_move(move.name):
        return False
    return not move.requires_move or character.owns_move(move.requires_move)


def filter_eligible_moves(moves: Iterable[Move], character: Character, level: int) -> List[Move]:
    return [move for move in moves if is_move_available(move, character, level)]


def group_moves(moves: Iterable[Move]) -> "OrderedDict[str, List[Move]]":
    """按 move_group 分组，组名排序，无分组的放在最后"""
    groups: Dict[str, List[Move]] = {}
    for move in moves:
        groups.setdefault(move.move_group or UNGROUPED, []).append(move)
    ordered = sorted(groups, key=lambda name: (name == UNGROUPED, name))
    return OrderedDict((name, groups[name]) for name in ordered)


def partition_moves(moves: List[Move], level: int) -> Tuple[List[Move], List[Move], List[Move]]:
    """划分为初始、2-5级、6级以上三档"""
    starting = [m for m in moves if m.requires_level < 2] if level < 2 else []
    advanced_2 = [m for m in moves if 2 <= m.requires_level < 6]
    advanced_6 = [m for m in moves if m.requires_level >= 6]
    return starting, advanced_2, advanced_6


# ============ 候选集合 ============

@dataclass(frozen=True)
class Choice:
    """种族或阵营选项"""
    key: str
    label: str
    description: str = ""


@dataclass(frozen=True)
class AbilityOption:
    key: str
    label: str
    value: int
    mod: int
    disabled: bool = False


@dataclass
class CandidateSet:
    """升级候选集合"""
    character: Character
    class_definition: ClassDefinition
    class_slug: str
    xp_required: int
    working_level: int
    eligible: bool
    moves: List[Move] = field(default_factory=list)
    starting_moves: List[Move] = field(default_factory=list)
    starting_move_groups: Dict[str, List[Move]] = field(default_factory=dict)
    advanced_moves_2: List[Move] = field(default_factory=list)
    advanced_moves_6: List[Move] = field(default_factory=list)
    races: List[Choice] = field(default_factory=list)
    alignments: List[Choice] = field(default_factory=list)
    equipment_groups: Dict[str, List[Equipment]] = field(default_factory=dict)
    equipment: List[Equipment] = field(default_factory=list)
    ability_scores: Optional[List[int]] = None
    ability_mods_only: bool = True
    ability_options: List[AbilityOption] = field(default_factory=list)
    no_ability_increase: bool = False
    state: LevelUpState = LevelUpState.SELECTION_PENDING

    @property
    def blurb(self) -> Optional[str]:
        return self.class_definition.description or None

    def find_move(self, move_id: str) -> Optional[Move]:
        return next((m for m in self.moves if m.id == move_id), None)

    def find_equipment(self, equipment_id: str) -> Optional[Equipment]:
        return next((e for e in self.equipment if e.id == equipment_id), None)

    def find_ability(self, key: str) -> Optional[AbilityOption]:
        return next((a for a in self.ability_options if a.key == key), None)


@dataclass
class Selections:
    """玩家在升级时的选择"""
    move_ids: List[str] = field(default_factory=list)
    equipment_ids: List[str] = field(default_factory=list)
    race: Optional[str] = None
    alignment: Optional[str] = None
    ability_values: Dict[str, int] = field(default_factory=dict)
    ability_increases: List[str] = field(default_factory=list)


@dataclass
class CommitResult:
    patch: UpdatePatch
    bond_ids: List[str] = field(default_factory=list)
    move_ids: List[str] = field(default_factory=list)
    equipment_ids: List[str] = field(default_factory=list)
    level: int = 1
    xp: int = 0
    state: LevelUpState = LevelUpState.COMMITTED


def _unique(values: Iterable[str]) -> List[str]:
    return list(OrderedDict.fromkeys(values))


def _choose(options: List[Choice], key: Optional[str], kind: str) -> Optional[Descriptor]:
    if not key:
        return None
    choice = next((c for c in options if c.key == key), None)
    if choice is None:
        raise InvalidSelection(f"无效的{kind}选择: {key}")
    return Descriptor(value=choice.label, description=choice.description)


class ProgressionEngine:
    """角色升级引擎"""

    def __init__(self, store: DocumentStore, config: Optional[RulesConfig] = None, roller: Optional[DiceRoller] = None):
        self.store = store
        self.config = (config or default_config).with_translations(builtin_translations())
        self.roller = roller or DiceRoller(config=self.config)

    def level_up_state(self, character: Character) -> LevelUpState:
        required = xp_required(character, self.config, self.roller)
        if is_eligible(character, required, self.config):
            return LevelUpState.ELIGIBLE
        return LevelUpState.NOT_ELIGIBLE

    # ============ 第一阶段：计算候选 ============

    async def compute_candidates(self, character_id: str) -> CandidateSet:
        """计算升级可选项，不修改任何状态"""
        character = await self.store.read_character(character_id)
        class_definition = await self.store.read_class(character.char_class)
        if class_definition is None:
            raise MissingClassDefinition(character.char_class)

        slug = clean_class(character.char_class)
        level = working_level(character)
        required = xp_required(character, self.config, self.roller)

        library = [
            Move.model_validate(entry)
            for entry in await self.store.fetch_library(slug)
            if entry.get("type", "move") == "move"
        ]
        pool = merge_move_pools(class_definition.moves, library)
        moves = filter_eligible_moves(pool, character, level)
        starting, advanced_2, advanced_6 = partition_moves(moves, level)

        candidates = CandidateSet(
            character=character,
            class_definition=class_definition,
            class_slug=slug,
            xp_required=required,
            working_level=level,
            eligible=is_eligible(character, required, self.config),
            moves=moves,
            starting_moves=starting,
            starting_move_groups=group_moves(starting),
            advanced_moves_2=advanced_2,
            advanced_moves_6=advanced_6,
            ability_mods_only=self.config.NO_ABILITY_SCORES,
            no_ability_increase=self.config.NO_ABILITY_INCREASE,
        )

        # 已经设定的种族与阵营不再提供选择
        if not character.details.race.is_set:
            candidates.races = [
                Choice(key, option.label, option.description)
                for key, option in class_definition.races.items()
            ]
        if not character.details.alignment.is_set:
            candidates.alignments = [
                Choice(key, option.label, option.description)
                for key, option in class_definition.alignments.items()
            ]

        if character.xp == 0:
            candidates.equipment_groups = await self._expand_equipment(class_definition)
            candidates.equipment = [e for items in candidates.equipment_groups.values() for e in items]
            if self.config.NO_ABILITY_SCORES:
                candidates.ability_scores = list(self.config.STARTING_ABILITY_MODS)
            else:
                candidates.ability_scores = list(self.config.STARTING_ABILITY_SCORES)

        candidates.ability_options = [
            AbilityOption(
                key=ability.key,
                label=ability.label,
                value=ability.value,
                mod=ability.mod,
                disabled=ability.value > self.config.ABILITY_CEILING,
            )
            for ability in derive_abilities(character, self.config).values()
        ]

        logger.info(
            "level-up candidates for %s (%s, working level %d): %d moves",
            character.name, class_definition.name, level, len(moves),
        )
        return candidates

    async def _expand_equipment(self, class_definition: ClassDefinition) -> Dict[str, List[Equipment]]:
        """把装备组展开为具体的装备记录"""
        groups: Dict[str, List[Equipment]] = {}
        for group_key, group in class_definition.equipment.items():
            items = []
            for index, entry in enumerate(group.items):
                if isinstance(entry, str):
                    data = await self.store.read(entry)
                    if data is None:
                        logger.warning("equipment %s referenced by %s not found", entry, class_definition.name)
                        continue
                    data = dict(data, id=data.get("id") or entry)
                else:
                    data = dict(entry)
                    data.setdefault("id", f"{group_key}.{clean_class(data.get('name', '')) or index}")
                data["type"] = "equipment"
                items.append(Equipment.model_validate(data))
            groups[group_key] = items
        return groups

    # ============ 第二阶段：提交 ============

    def build_patch(self, candidates: CandidateSet, selections: Selections) -> UpdatePatch:
        """根据选择生成字段更新，选择无效时抛出 InvalidSelection"""
        character = candidates.character
        patch = UpdatePatch(levelup=False)
        patch.race = _choose(candidates.races, selections.race, "种族")
        patch.alignment = _choose(candidates.alignments, selections.alignment, "阵营")

        for key, value in selections.ability_values.items():
            if candidates.ability_scores is None or candidates.find_ability(key) is None:
                raise InvalidSelection(f"不能设定属性: {key}")
            if int(value) not in candidates.ability_scores:
                raise InvalidSelection(f"属性值 {value} 不在可选范围内")
            patch.abilities[key] = int(value)

        for key in selections.ability_increases:
            option = candidates.find_ability(key)
            if candidates.no_ability_increase or option is None or option.disabled:
                raise InvalidSelection(f"不能提升属性: {key}")
            patch.abilities[key] = patch.abilities.get(key, option.value) + 1

        if character.xp > 0:
            patch.xp = max(character.xp - candidates.xp_required, 0)
            patch.level = character.level + 1

        if candidates.class_definition.damage:
            patch.damage = candidates.class_definition.damage
        return patch

    def default_bonds(self, class_slug: str) -> List[dict]:
        """首次升级时生成的默认羁绊"""
        bonds = []
        for index in range(1, BOND_SLOTS + 1):
            key = f"DW.{class_slug}.Bond{index}"
            text = self.config.localize(key)
            if text and text != key:
                bonds.append({"name": text, "type": "bond"})
        return bonds

    def _materialize(self, candidates: CandidateSet, selections: Selections) -> Tuple[List[dict], List[dict]]:
        moves = []
        for move_id in _unique(selections.move_ids):
            move = candidates.find_move(move_id)
            if move is None:
                raise InvalidSelection(f"无效的招式选择: {move_id}")
            moves.append(move.model_dump(by_alias=True, exclude={"id"}))

        equipment = []
        for equipment_id in _unique(selections.equipment_ids):
            item = candidates.find_equipment(equipment_id)
            if item is None:
                raise InvalidSelection(f"无效的装备选择: {equipment_id}")
            equipment.append(item.model_dump(by_alias=True, exclude={"id"}))
        return moves, equipment

    async def commit(self, candidates: CandidateSet, selections: Selections) -> CommitResult:
        """
        应用升级选择

        各步骤之间不是原子的：创建物品后更新字段失败时，新物品会保留而等级与经验不变。
        """
        character = candidates.character
        patch = self.build_patch(candidates, selections)
        move_records, equipment_records = self._materialize(candidates, selections)

        result = CommitResult(
            patch=patch,
            level=patch.level if patch.level is not None else character.level,
            xp=patch.xp if patch.xp is not None else character.xp,
        )

        if character.xp == 0:
            bonds = self.default_bonds(candidates.class_slug)
            if bonds:
                result.bond_ids = await self.store.create(character.id, bonds)

        if move_records:
            result.move_ids = await self.store.create(character.id, move_records)
        if equipment_records:
            result.equipment_ids = await self.store.create(character.id, equipment_records)

        await self.store.persist(character.id, patch)
        candidates.state = LevelUpState.COMMITTED

        logger.info("level-up committed for %s: level %d, xp %d", character.name, result.level, result.xp)
        return result
