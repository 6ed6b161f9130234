"""
属性推导模块

根据属性值与虚弱标记计算实际调整值。
"""

from dataclasses import dataclass
from typing import Dict, Optional

from .config import RulesConfig, config as default_config
from .models import ABILITY_KEYS, ABILITY_LABELS, Character


def effective_modifier(score: int, has_debility: bool, debility_disabled: bool) -> int:
    """有虚弱且未关闭虚弱规则时调整值减一"""
    if has_debility and not debility_disabled:
        return score - 1
    return score


@dataclass(frozen=True)
class DerivedAbility:
    """推导后的属性"""
    key: str
    label: str
    value: int
    mod: int
    debility: bool
    debility_label: str

    def roll_label(self) -> str:
        """检定标题，如 力量 (虚弱)"""
        if self.debility and self.debility_label:
            return f"{self.label} ({self.debility_label})"
        return self.label


def derive_abilities(character: Character, config: Optional[RulesConfig] = None) -> Dict[str, DerivedAbility]:
    config = config or default_config
    derived = {}
    for key, ability in character.abilities.items():
        derived[key] = DerivedAbility(
            key=key,
            label=ABILITY_LABELS.get(key, key.upper()),
            value=ability.value,
            mod=effective_modifier(ability.value, ability.debility, config.DISABLE_DEBILITY),
            debility=ability.debility,
            debility_label=config.debility_label(key),
        )
    return derived


def roll_data(character: Character, config: Optional[RulesConfig] = None) -> Dict[str, int]:
    """
    生成公式引用表

    用于替换表达式中的 @level、@str 等引用。
    """
    data = {
        "level": character.level,
        "xp": character.xp,
        "hp": character.hp.value,
        "armor": character.armor,
        "ac": character.armor,
    }
    for key in ABILITY_KEYS:
        data[key] = 0
    for key, ability in derive_abilities(character, config).items():
        data[key] = ability.mod
    return data
