"""
指令参数解析

把聊天指令中的纯文本参数转换为引擎调用所需的结构。
"""

import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from .damage import DamageOptions
from .progression import Selections

# 伤害指令关键字别名
DAMAGE_KEYWORDS = {
    "full": ["full", "普通"],
    "half": ["half", "减半"],
    "double": ["double", "加倍"],
    "heal": ["heal", "治疗"],
    "ignore": ["ignore", "无视护甲"],
    "pierce": ["pierce", "piercing", "穿透"],
    "bonus": ["bonus", "加值"],
}

MODIFIER_PATTERN = re.compile(r"^[+-]\d+$")


def _keyword(token: str) -> Optional[str]:
    token = token.lower()
    for keyword, aliases in DAMAGE_KEYWORDS.items():
        if token in aliases:
            return keyword
    return None


def _int(token: str, what: str) -> int:
    try:
        return int(token)
    except ValueError:
        raise ValueError(f"{what}必须是整数: {token}")


@dataclass
class RollRequest:
    spec: str = ""
    modifier_bonus: int = 0
    bond: Optional[str] = None
    move_name: Optional[str] = None
    mode: Optional[str] = None


def parse_roll_args(text: str) -> RollRequest:
    """
    解析检定参数

    支持: "2d6+3"、"str +1"、"bond 2"、"move 砍杀"、末尾可加 adv/dis。
    """
    tokens = (text or "").split()
    if not tokens:
        raise ValueError("请输入检定方式，如: str、2d6+1、bond 2、move <招式名>")

    request = RollRequest()
    if tokens[-1].lower() in ("adv", "dis", "def"):
        request.mode = tokens.pop().lower()

    if tokens and tokens[0].lower() == "move":
        request.move_name = " ".join(tokens[1:]).strip()
        if not request.move_name:
            raise ValueError("请指定招式名称")
        return request

    while len(tokens) > 1 and MODIFIER_PATTERN.match(tokens[-1]):
        request.modifier_bonus += int(tokens.pop())

    if not tokens:
        raise ValueError("请输入检定方式")
    request.spec = tokens[0]
    if request.spec.lower() == "bond":
        request.spec = "BOND"
        if len(tokens) > 1:
            request.bond = tokens[1]
    elif len(tokens) > 1:
        # 骰子表达式中带空格的情况，如 "2d6 + 3"
        request.spec = "".join(tokens)
    return request


def parse_damage_args(text: str) -> Tuple[int, DamageOptions]:
    """解析伤害参数，如 "8 half pierce 2 bonus 1"、"5 heal"、"10 ignore" """
    tokens = (text or "").split()
    if not tokens:
        raise ValueError("请输入伤害数值，如: 8 half pierce 2")

    amount = _int(tokens[0], "伤害")
    op = "full"
    ignore_armor = False
    piercing = 0
    bonus = 0

    index = 1
    while index < len(tokens):
        keyword = _keyword(tokens[index])
        if keyword in ("full", "half", "double", "heal"):
            op = keyword
        elif keyword == "ignore":
            ignore_armor = True
        elif keyword in ("pierce", "bonus"):
            if index + 1 >= len(tokens):
                raise ValueError(f"{tokens[index]} 需要一个数值")
            index += 1
            value = _int(tokens[index], tokens[index - 1])
            if keyword == "pierce":
                piercing = value
            else:
                bonus = value
        else:
            raise ValueError(f"未知参数: {tokens[index]}")
        index += 1

    return amount, DamageOptions.from_args(op, ignore_armor, piercing, bonus)


def _split_list(value: str) -> List[str]:
    return [part.strip() for part in value.split(",") if part.strip()]


def _parse_ability_values(value: str) -> Dict[str, int]:
    result = {}
    for entry in _split_list(value):
        key, sep, number = entry.partition(":")
        if not sep:
            raise ValueError(f"属性设定格式应为 属性:数值，如 str:2，收到: {entry}")
        result[key.strip().lower()] = _int(number.strip(), "属性值")
    return result


def parse_selection_args(text: str) -> Selections:
    """
    解析升级选择

    格式: moves=id1,id2 equip=id race=key align=key set=str:2,wis:1 inc=cha
    """
    selections = Selections()
    for token in (text or "").split():
        name, sep, value = token.partition("=")
        if not sep:
            raise ValueError(f"参数格式应为 名称=值，收到: {token}")
        name = name.lower()
        if name in ("moves", "move"):
            selections.move_ids.extend(_split_list(value))
        elif name in ("equip", "equipment"):
            selections.equipment_ids.extend(_split_list(value))
        elif name == "race":
            selections.race = value
        elif name in ("align", "alignment"):
            selections.alignment = value
        elif name == "set":
            selections.ability_values.update(_parse_ability_values(value))
        elif name == "inc":
            selections.ability_increases.extend(key.lower() for key in _split_list(value))
        else:
            raise ValueError(f"未知参数: {name}")
    return selections
