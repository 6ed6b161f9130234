"""
伤害计算模块

伤害或治疗经过护甲减免流程后作用于生命值。本模块不修改任何状态，持久化由调用方负责。
"""

from dataclasses import dataclass
from typing import Any, Optional

from .models import HitPoints

OPERATIONS = ("full", "half", "double", "heal")


def _to_int(value: Any, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


@dataclass(frozen=True)
class DamageOptions:
    op: str = "full"
    ignore_armor: bool = False
    piercing: int = 0
    dmg_bonus: int = 0

    @classmethod
    def from_args(cls, op: str = "full", ignore_armor: Any = False, piercing: Any = 0, dmg_bonus: Any = 0) -> "DamageOptions":
        """规范化原始参数，无效的穿透值按0处理"""
        op = (op or "full").lower()
        if op not in OPERATIONS:
            raise ValueError(f"未知的伤害类型: {op}")
        return cls(
            op=op,
            ignore_armor=bool(ignore_armor),
            piercing=max(_to_int(piercing), 0),
            dmg_bonus=_to_int(dmg_bonus),
        )


@dataclass(frozen=True)
class Mitigation:
    reduced: int = 0
    piercing_used: int = 0


@dataclass(frozen=True)
class DamageResult:
    """伤害结算结果"""
    old_value: int
    new_value: int
    max_value: int
    amount: int
    mitigation: Mitigation
    op: str

    @property
    def changed(self) -> bool:
        return self.new_value != self.old_value

    @property
    def delta(self) -> int:
        return self.new_value - self.old_value

    def describe(self) -> str:
        """生成叙述文本"""
        if not self.changed:
            return f"生命值未变化 ({self.new_value}/{self.max_value})"

        lines = [f"生命值 {self.delta:+d} ({self.old_value} → {self.new_value}/{self.max_value})"]
        if self.delta < 0 and self.mitigation.reduced:
            lines.append(f"🛡️ 护甲减免了 {self.mitigation.reduced} 点伤害")
            if self.mitigation.piercing_used > 0:
                lines.append(f"🗡️ {self.mitigation.piercing_used} 点穿透无视了护甲")
        return "\n".join(lines)


class DamageCalculator:
    """伤害计算器"""

    @staticmethod
    def scale(amount: int, op: str) -> int:
        if op == "half":
            return amount // 2
        elif op == "double":
            return amount * 2
        return amount

    @staticmethod
    def mitigate(armor: int, options: DamageOptions) -> Mitigation:
        """计算护甲减免"""
        if options.op == "heal":
            return Mitigation()
        if options.ignore_armor:
            return Mitigation(reduced=0, piercing_used=armor)
        piercing = max(options.piercing, 0)
        return Mitigation(reduced=max(armor - piercing, 0), piercing_used=piercing)

    @staticmethod
    def apply(hp: HitPoints, armor: int, amount: int, options: Optional[DamageOptions] = None) -> DamageResult:
        """结算伤害或治疗"""
        options = options or DamageOptions()
        amount = _to_int(amount)

        if options.op != "heal":
            amount += options.dmg_bonus

        amount = DamageCalculator.scale(amount, options.op)

        mitigation = DamageCalculator.mitigate(armor, options)
        if options.op != "heal":
            amount = max(amount - mitigation.reduced, 0)

        new_value = hp.value + amount if options.op == "heal" else hp.value - amount
        # 生命值只有上限，没有下限
        if new_value > hp.max:
            new_value = hp.max

        return DamageResult(
            old_value=hp.value,
            new_value=new_value,
            max_value=hp.max,
            amount=amount,
            mitigation=mitigation,
            op=options.op,
        )
