"""
物品标签处理

标签以JSON数组保存，元素形如 {"value": "近战"}。
"""

import json
import logging
from typing import Any, Dict, Iterable, List

from .errors import MalformedTagPayload

logger = logging.getLogger(__name__)


def _decode(raw: str) -> List[Any]:
    try:
        data = json.loads(raw)
    except (TypeError, ValueError) as e:
        raise MalformedTagPayload(f"标签数据无法解析: {raw!r}") from e
    if not isinstance(data, list):
        raise MalformedTagPayload(f"标签数据不是列表: {raw!r}")
    return data


def parse_tag_payload(raw: str) -> List[Any]:
    """解析标签数据，结构无效时把原始值当作单个标签"""
    if not raw:
        return []
    try:
        return _decode(raw)
    except MalformedTagPayload as e:
        logger.warning("%s", e)
        return [raw]


def tag_values(tags: Iterable[Any]) -> List[str]:
    values = []
    for tag in tags:
        if isinstance(tag, dict):
            values.append(str(tag.get("value", "")))
        else:
            values.append(str(tag))
    return values


def tag_update(raw: str) -> Dict[str, str]:
    """生成物品标签字段的更新"""
    return {
        "tags": raw,
        "tags_string": ", ".join(tag_values(parse_tag_payload(raw))),
    }


def build_tag_whitelist(names: Iterable[str]) -> List[str]:
    """标签候选列表，忽略大小写去重后排序"""
    seen = []
    for name in names:
        lowered = (name or "").lower()
        if lowered and lowered not in seen:
            seen.append(lowered)
    return sorted(seen)
