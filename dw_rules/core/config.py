"""
规则引擎配置模块

所有引擎调用都接收一个不可变的 RulesConfig，而不是在逻辑中查询全局设置。
"""

from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Mapping, Tuple


def _frozen(mapping: dict) -> Mapping[str, str]:
    return MappingProxyType(dict(mapping))


DEFAULT_DEBILITY_LABELS = {
    "str": "虚弱",
    "int": "迟钝",
    "wis": "困惑",
    "cha": "伤疤",
}


@dataclass(frozen=True)
class RulesConfig:
    """规则配置"""
    MAX_DICE_COUNT: int = 100
    MAX_DICE_SIDES: int = 1000
    # 关闭虚弱减值
    DISABLE_DEBILITY: bool = False
    DEBILITY_LABELS: Mapping[str, str] = field(default_factory=lambda: _frozen(DEFAULT_DEBILITY_LABELS))
    # 升级所需经验公式，整数或骰子表达式
    XP_FORMULA: str = "@level+7"
    MAX_LEVEL: int = 10
    # 只使用调整值而不是完整属性值
    NO_ABILITY_SCORES: bool = True
    NO_ABILITY_INCREASE: bool = False
    ABILITY_CEILING: int = 17
    STARTING_ABILITY_SCORES: Tuple[int, ...] = (16, 15, 13, 12, 9, 8)
    STARTING_ABILITY_MODS: Tuple[int, ...] = (2, 1, 1, 0, 0, -1)
    DISABLE_BUILTIN_LIBRARY: bool = False
    COMPENDIUM_PREFIX: str = ""
    # 本地化文本表，键如 DW.the-fighter.Bond1
    TRANSLATIONS: Mapping[str, str] = field(default_factory=lambda: _frozen({}))

    def localize(self, key: str) -> str:
        """查找本地化文本，未找到时原样返回键"""
        return self.TRANSLATIONS.get(key, key)

    def debility_label(self, ability: str) -> str:
        return self.DEBILITY_LABELS.get(ability, "")

    def with_translations(self, translations: Mapping[str, str]) -> "RulesConfig":
        """返回合并了额外本地化文本的新配置"""
        merged = dict(translations)
        merged.update(self.TRANSLATIONS)
        return replace(self, TRANSLATIONS=_frozen(merged))


# 默认配置实例
config = RulesConfig()
