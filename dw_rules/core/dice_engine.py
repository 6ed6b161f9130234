"""
骰子引擎模块

提供骰子表达式解析和投掷功能。随机源由调用方注入，测试中可用固定种子复现结果。
"""

import random
import re
from typing import Dict, List, NamedTuple, Optional, Tuple

from .config import RulesConfig, config as default_config
from .errors import MalformedFormula


class DiceTerm(NamedTuple):
    """单个骰子项，如 2d6、-1d4、4d6k3"""
    sign: int
    count: int
    sides: int
    keep: int = 0
    keep_lowest: bool = False

    def __str__(self):
        text = f"{self.count}d{self.sides}"
        if self.keep:
            text += f"k{'l' if self.keep_lowest else ''}{self.keep}"
        return text if self.sign > 0 else f"-{text}"


class DiceResult:
    """骰子结果类"""

    def __init__(self, expression: str, terms: List[DiceTerm], groups: List[List[int]], modifier: int = 0):
        self.expression = expression
        self.terms = terms
        # 每个骰子项保留下来的点数
        self.groups = groups
        self.modifier = modifier
        self.total = sum(term.sign * sum(rolls) for term, rolls in zip(terms, groups)) + modifier

    @property
    def rolls(self) -> List[int]:
        return [roll for rolls in self.groups for roll in rolls]

    def format_result(self, show_details: bool = True) -> str:
        """格式化骰子结果"""
        if not show_details:
            return f"结果: {self.total}"

        parts = []
        for term, rolls in zip(self.terms, self.groups):
            roll_str = f"[{', '.join(map(str, rolls))}]"
            if parts or term.sign < 0:
                roll_str = f"{'+' if term.sign > 0 else '-'}{roll_str}"
            parts.append(roll_str)
        if self.modifier != 0 or not parts:
            parts.append(f"{'+' if self.modifier >= 0 and parts else ''}{self.modifier}")
        return f"{self.expression} = {''.join(parts)} = {self.total}"


class DiceParser:
    """骰子表达式解析器"""

    DICE_PATTERN = re.compile(r'(\d*)d(\d+)', re.IGNORECASE)
    TERM_PATTERN = re.compile(r'^(\d*)d(\d+)(?:k([hl]?)(\d+))?$')
    REFERENCE_PATTERN = re.compile(r'@([a-z_][a-z0-9_]*)', re.IGNORECASE)

    @staticmethod
    def has_dice(expression: str) -> bool:
        return bool(DiceParser.DICE_PATTERN.search(expression or ""))

    @staticmethod
    def substitute_references(expression: str, data: Dict[str, int]) -> str:
        """替换 @level 之类的引用"""
        def _replace(match):
            name = match.group(1).lower()
            if name not in data:
                raise MalformedFormula(expression, f"未知引用 @{name}")
            return str(data[name])

        return DiceParser.REFERENCE_PATTERN.sub(_replace, expression)

    @staticmethod
    def parse_term(part: str, sign: int, expression: str, config: RulesConfig) -> DiceTerm:
        """解析单个骰子项"""
        match = DiceParser.TERM_PATTERN.match(part)
        if not match:
            raise MalformedFormula(expression, f"无效的骰子项 {part}")

        count = int(match.group(1)) if match.group(1) else 1
        sides = int(match.group(2))
        keep = int(match.group(4)) if match.group(4) else 0
        keep_lowest = match.group(3) == 'l'

        if count <= 0 or sides <= 0:
            raise MalformedFormula(expression, "骰子数量和面数必须大于0")
        if count > config.MAX_DICE_COUNT:
            raise MalformedFormula(expression, f"骰子数量不能超过{config.MAX_DICE_COUNT}个")
        if sides > config.MAX_DICE_SIDES:
            raise MalformedFormula(expression, f"骰子面数不能超过{config.MAX_DICE_SIDES}")
        if keep > count:
            raise MalformedFormula(expression, f"保留数量({keep})不能超过骰子数量({count})")

        return DiceTerm(sign, count, sides, keep, keep_lowest)

    @staticmethod
    def parse_expression(expression: str, config: Optional[RulesConfig] = None) -> Tuple[List[DiceTerm], int]:
        """解析骰子表达式，返回(骰子项列表, 固定修正值)"""
        config = config or default_config
        normalized = (expression or "").replace(" ", "").lower()
        if not normalized:
            raise MalformedFormula(expression, "空的骰子表达式")

        parts = re.split(r'([+-])', normalized)
        terms: List[DiceTerm] = []
        modifier = 0
        sign = 1
        pending_sign = False

        for part in parts:
            if part == '+':
                pending_sign = True
            elif part == '-':
                # 连续符号合并，如 +-1
                sign = -sign
                pending_sign = True
            elif part:
                if part.isdigit():
                    modifier += sign * int(part)
                else:
                    terms.append(DiceParser.parse_term(part, sign, expression, config))
                sign = 1
                pending_sign = False

        if pending_sign:
            raise MalformedFormula(expression, "表达式以运算符结尾")
        return terms, modifier


class DiceRoller:
    """骰子投掷器"""

    def __init__(self, rng: Optional[random.Random] = None, config: Optional[RulesConfig] = None):
        self.rng = rng or random.Random()
        self.config = config or default_config

    def roll_dice(self, dice_count: int, dice_sides: int, keep_count: int = 0, keep_lowest: bool = False) -> List[int]:
        """投掷指定数量和面数的骰子，可选择保留最高(或最低)的N个"""
        if dice_count <= 0:
            return []

        rolls = [self.rng.randint(1, dice_sides) for _ in range(dice_count)]

        if 0 < keep_count < dice_count:
            rolls.sort(reverse=not keep_lowest)
            rolls = rolls[:keep_count]

        return rolls

    def roll_expression(self, expression: str, data: Optional[Dict[str, int]] = None) -> DiceResult:
        """投掷骰子表达式"""
        formula = DiceParser.substitute_references(expression, data or {})
        terms, modifier = DiceParser.parse_expression(formula, self.config)
        groups = [self.roll_dice(term.count, term.sides, term.keep, term.keep_lowest) for term in terms]
        return DiceResult(expression=formula, terms=terms, groups=groups, modifier=modifier)

    def roll_advantage(self, expression: str, data: Optional[Dict[str, int]] = None) -> DiceResult:
        """优势掷骰（取较高值）"""
        result1 = self.roll_expression(expression, data)
        result2 = self.roll_expression(expression, data)

        if result1.total >= result2.total:
            return result1
        else:
            return result2

    def roll_disadvantage(self, expression: str, data: Optional[Dict[str, int]] = None) -> DiceResult:
        """劣势掷骰（取较低值）"""
        result1 = self.roll_expression(expression, data)
        result2 = self.roll_expression(expression, data)

        if result1.total <= result2.total:
            return result1
        else:
            return result2
