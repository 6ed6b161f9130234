"""
规则数据模型

角色、物品与职业定义均为纯数据记录，由存储中的JSON通过Pydantic模型解析。
"""

from dataclasses import dataclass, field
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


ABILITY_KEYS = ("str", "int", "wis", "cha")

ABILITY_LABELS = {
    "str": "力量",
    "int": "智力",
    "wis": "感知",
    "cha": "魅力",
}


class _Record(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")


# ============ 物品 ============

class ItemBase(_Record):
    id: str = ""
    name: str = ""
    description: str = ""
    tags: str = ""
    tags_string: str = ""


class Move(ItemBase):
    """招式"""
    type: Literal["move"] = "move"
    char_class: str = Field(default="", alias="class")
    requires_level: int = 1
    requires_move: Optional[str] = None
    move_group: Optional[str] = None
    move_type: str = ""
    # 检定方式：属性键、BOND 或骰子表达式
    roll_formula: Optional[str] = None
    roll_mod: int = 0


class Equipment(ItemBase):
    """装备"""
    type: Literal["equipment"] = "equipment"
    quantity: int = 1
    equipped: bool = False
    uses: int = 0
    weight: int = 0


class Bond(ItemBase):
    """羁绊，名称即文本"""
    type: Literal["bond"] = "bond"


Item = Annotated[Union[Move, Equipment, Bond], Field(discriminator="type")]


# ============ 角色 ============

class ValueField(_Record):
    value: int = 0


class Experience(_Record):
    value: int = 0
    max: Optional[int] = None


class HitPoints(_Record):
    value: int = 0
    max: int = 0


class DamageDie(_Record):
    value: str = ""


class Attributes(_Record):
    level: ValueField = Field(default_factory=lambda: ValueField(value=1))
    xp: Experience = Field(default_factory=Experience)
    hp: HitPoints = Field(default_factory=HitPoints)
    ac: ValueField = Field(default_factory=ValueField)
    damage: DamageDie = Field(default_factory=DamageDie)


class Ability(_Record):
    value: int = 0
    debility: bool = False


class Descriptor(_Record):
    """种族或阵营的选择结果"""
    value: str = ""
    description: str = ""

    @property
    def is_set(self) -> bool:
        return bool(self.value) and bool(self.description)


class Details(_Record):
    char_class: str = Field(default="", alias="class")
    race: Descriptor = Field(default_factory=Descriptor)
    alignment: Descriptor = Field(default_factory=Descriptor)


class Character(_Record):
    """角色文档快照"""
    id: str = ""
    name: str = "未命名角色"
    type: str = "character"
    attributes: Attributes = Field(default_factory=Attributes)
    abilities: Dict[str, Ability] = Field(
        default_factory=lambda: {key: Ability() for key in ABILITY_KEYS}
    )
    details: Details = Field(default_factory=Details)
    items: List[Item] = Field(default_factory=list)
    flags: Dict[str, Any] = Field(default_factory=dict)

    @property
    def level(self) -> int:
        return self.attributes.level.value or 1

    @property
    def xp(self) -> int:
        return self.attributes.xp.value

    @property
    def hp(self) -> HitPoints:
        return self.attributes.hp

    @property
    def armor(self) -> int:
        return self.attributes.ac.value

    @property
    def char_class(self) -> str:
        return self.details.char_class

    @property
    def moves(self) -> List[Move]:
        return [item for item in self.items if isinstance(item, Move)]

    @property
    def starting_moves(self) -> List[Move]:
        return [move for move in self.moves if move.move_type == "starting"]

    @property
    def roll_mode(self) -> str:
        return self.flags.get("roll_mode") or "def"

    def owns_move(self, name: Optional[str]) -> bool:
        """按名称精确匹配判断是否已拥有招式"""
        return any(move.name == name for move in self.moves)

    def to_dict(self) -> dict:
        return self.model_dump(by_alias=True)

    @classmethod
    def from_dict(cls, data: dict) -> "Character":
        return cls.model_validate(data)


# ============ 职业定义 ============

class ClassOption(_Record):
    label: str = ""
    description: str = ""


class EquipmentGroup(_Record):
    """初始装备组，条目可以是完整记录或物品ID引用"""
    label: str = ""
    description: str = ""
    items: List[Union[str, Dict[str, Any]]] = Field(default_factory=list)


class ClassDefinition(_Record):
    """职业规则数据"""
    id: str = ""
    name: str
    description: str = ""
    races: Dict[str, ClassOption] = Field(default_factory=dict)
    alignments: Dict[str, ClassOption] = Field(default_factory=dict)
    equipment: Dict[str, EquipmentGroup] = Field(default_factory=dict)
    damage: Optional[str] = None
    hp: Optional[int] = None
    moves: List[Move] = Field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict) -> "ClassDefinition":
        return cls.model_validate(data)


# ============ 更新补丁 ============

@dataclass
class UpdatePatch:
    """
    角色字段更新补丁

    只在存储适配层转换为点分路径，如 attributes.xp.value。
    """
    race: Optional[Descriptor] = None
    alignment: Optional[Descriptor] = None
    abilities: Dict[str, int] = field(default_factory=dict)
    xp: Optional[int] = None
    level: Optional[int] = None
    hp: Optional[int] = None
    damage: Optional[str] = None
    levelup: Optional[bool] = None

    def is_empty(self) -> bool:
        return not self.to_field_paths()

    def to_field_paths(self) -> Dict[str, Any]:
        """转换为点分字段路径"""
        paths: Dict[str, Any] = {}
        if self.race is not None:
            paths["details.race"] = {"value": self.race.value, "description": self.race.description}
        if self.alignment is not None:
            paths["details.alignment"] = {"value": self.alignment.value, "description": self.alignment.description}
        for key, value in self.abilities.items():
            paths[f"abilities.{key}.value"] = value
        if self.xp is not None:
            paths["attributes.xp.value"] = self.xp
        if self.level is not None:
            paths["attributes.level.value"] = self.level
        if self.hp is not None:
            paths["attributes.hp.value"] = self.hp
        if self.damage is not None:
            paths["attributes.damage.value"] = self.damage
        if self.levelup is not None:
            paths["flags.levelup"] = self.levelup
        return paths
