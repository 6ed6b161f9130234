"""
内置游戏数据

职业定义与羁绊模板以JSON形式随包发布。
"""

import copy
import json
import os
import re
from functools import lru_cache
from typing import Any, Dict, Optional

DATA_DIR = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "data")


def clean_class(name: str) -> str:
    """职业名转为slug，如 "The Fighter" -> "the-fighter" """
    slug = (name or "").strip().lower()
    slug = re.sub(r"[^a-z0-9\s]", "", slug)
    slug = re.sub(r"[\s_]", "-", slug)
    slug = re.sub(r"[\s-]+", "-", slug)
    return slug


def _load_json_file(filename: str) -> Any:
    path = os.path.join(DATA_DIR, filename)
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


@lru_cache(maxsize=None)
def builtin_classes() -> Dict[str, Dict[str, Any]]:
    """按slug索引的内置职业定义"""
    classes = _load_json_file("classes.json")
    return {clean_class(data["name"]): data for data in classes}


@lru_cache(maxsize=None)
def builtin_translations() -> Dict[str, str]:
    """内置本地化文本（羁绊模板等）"""
    return dict(_load_json_file("translations.json"))


def find_builtin_class(slug: str) -> Optional[Dict[str, Any]]:
    data = builtin_classes().get(slug)
    return copy.deepcopy(data) if data is not None else None
