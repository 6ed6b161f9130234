"""
规则引擎异常定义
"""

from typing import Optional


class RulesEngineError(Exception):
    """规则引擎异常基类"""


class MissingClassDefinition(RulesEngineError):
    """角色职业找不到对应的职业定义"""

    def __init__(self, class_name: str):
        self.class_name = class_name
        super().__init__(f"找不到职业定义: {class_name or '(未设定)'}")


class MalformedFormula(RulesEngineError, ValueError):
    """骰子表达式无法解析"""

    def __init__(self, formula: str, reason: str = ""):
        self.formula = formula
        self.reason = reason
        message = f"无法解析的骰子表达式: {formula}"
        if reason:
            message += f" ({reason})"
        super().__init__(message)


class MalformedTagPayload(RulesEngineError, ValueError):
    """标签数据结构解析失败"""


class PersistenceFailure(RulesEngineError):
    """文档存储拒绝了读取、写入或创建请求"""

    def __init__(self, operation: str, entity_id: str, cause: Optional[Exception] = None):
        self.operation = operation
        self.entity_id = entity_id
        self.cause = cause
        message = f"存储{operation}失败: {entity_id}"
        if cause is not None:
            message += f" ({cause})"
        super().__init__(message)


class InvalidSelection(RulesEngineError, ValueError):
    """升级选择不在候选集合中"""
