"""
检定解析模块

把招式、属性或羁绊检定转换为骰子表达式，投掷后按 2d6 检定划分结果等级。
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Union

from .abilities import derive_abilities, roll_data
from .config import RulesConfig, config as default_config
from .dice_engine import DiceParser, DiceResult, DiceRoller, DiceTerm
from .errors import MalformedFormula
from .models import Character

logger = logging.getLogger(__name__)

BOND_FORMULA = "BOND"


class Outcome(str, Enum):
    FAILURE = "failure"
    PARTIAL = "partial"
    SUCCESS = "success"

    @property
    def label(self) -> str:
        return {"failure": "失败", "partial": "部分成功", "success": "成功"}[self.value]


def classify(total: int) -> Outcome:
    """2d6 检定结果等级"""
    if total < 7:
        return Outcome.FAILURE
    elif total < 10:
        return Outcome.PARTIAL
    return Outcome.SUCCESS


def is_standard_check(terms: List[DiceTerm]) -> bool:
    """是否为标准的 2d6±N 检定"""
    if len(terms) != 1:
        return False
    term = terms[0]
    return term.sign > 0 and term.count == 2 and term.sides == 6 and not term.keep


@dataclass
class RollResult:
    """检定结果"""
    formula: str
    dice: DiceResult
    tier: Optional[Outcome] = None
    title: str = ""

    @property
    def total(self) -> int:
        return self.dice.total

    def format_result(self) -> str:
        text = self.dice.format_result()
        if self.tier is not None:
            text += f"（{self.tier.label}）"
        if self.title:
            text = f"{self.title}: {text}"
        return text


def _signed(value: int) -> str:
    return f"{value:+d}"


class RollResolver:
    """检定解析器"""

    def __init__(self, roller: Optional[DiceRoller] = None, config: Optional[RulesConfig] = None):
        self.config = config or default_config
        self.roller = roller or DiceRoller(config=self.config)

    def build_formula(
        self,
        formula_spec: str,
        modifier_bonus: Optional[int] = None,
        character: Optional[Character] = None,
        bond: Union[int, str, None] = None,
    ) -> str:
        """根据检定方式生成骰子表达式"""
        spec = str(formula_spec or "").strip()
        if not spec:
            raise MalformedFormula(spec, "缺少检定方式")

        # 直接给出的骰子表达式
        if spec.upper() != BOND_FORMULA and DiceParser.has_dice(spec):
            return spec

        if spec.upper() == BOND_FORMULA:
            formula = f"2d6+{bond}" if bond not in (None, "", 0, "0") else "2d6"
        else:
            if character is None:
                raise MalformedFormula(spec, "属性检定需要角色数据")
            abilities = derive_abilities(character, self.config)
            ability = abilities.get(spec.lower())
            if ability is None:
                raise MalformedFormula(spec, "未知属性")
            formula = f"2d6{_signed(ability.mod)}"

        if modifier_bonus:
            formula += _signed(int(modifier_bonus))
        return formula

    def resolve(
        self,
        formula_spec: str,
        modifier_bonus: Optional[int] = None,
        character: Optional[Character] = None,
        bond: Union[int, str, None] = None,
        mode: Optional[str] = None,
        title: str = "",
    ) -> RollResult:
        """投掷并划分结果等级"""
        formula = self.build_formula(formula_spec, modifier_bonus, character, bond)
        data = roll_data(character, self.config) if character is not None else {}

        if mode is None and character is not None:
            mode = character.roll_mode
        if mode == "adv":
            dice = self.roller.roll_advantage(formula, data)
        elif mode == "dis":
            dice = self.roller.roll_disadvantage(formula, data)
        else:
            dice = self.roller.roll_expression(formula, data)

        tier = classify(dice.total) if is_standard_check(dice.terms) else None
        logger.debug("roll %s -> %s (%s)", formula, dice.total, tier)
        return RollResult(formula=formula, dice=dice, tier=tier, title=title)

    def roll_ability(self, character: Character, ability: str, modifier_bonus: Optional[int] = None) -> RollResult:
        """属性检定"""
        derived = derive_abilities(character, self.config).get(ability.lower())
        title = derived.roll_label() if derived else ability
        return self.resolve(ability, modifier_bonus, character=character, title=title)

    def roll_move(self, character: Character, move_name: str, bond: Union[int, str, None] = None) -> RollResult:
        """使用角色已拥有的招式进行检定"""
        move = next((m for m in character.moves if m.name == move_name), None)
        if move is None or not move.roll_formula:
            raise MalformedFormula(move_name, "招式不存在或不需要检定")
        return self.resolve(move.roll_formula, move.roll_mod, character=character, bond=bond, title=move.name)
