"""
文档存储模块

引擎只依赖 DocumentStore 接口；StoreDocumentAdapter 基于宿主插件的键值存储实现该接口，
文档以JSON保存，字段更新使用点分路径合并。
"""

import copy
import json
import logging
import uuid
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Mapping, Optional, Union

from .config import RulesConfig, config as default_config
from .errors import PersistenceFailure
from .game_data import clean_class, find_builtin_class
from .models import Character, ClassDefinition, UpdatePatch

logger = logging.getLogger(__name__)

CLASS_PREFIX = "class."


def class_document_id(class_name: str) -> str:
    return f"{CLASS_PREFIX}{clean_class(class_name)}"


def event_scope(group_id, user_id) -> str:
    """指令事件的存储作用域：群聊用群号，私聊用用户ID"""
    return str(group_id or user_id)


def chat_key_scope(chat_key: str) -> str:
    """
    把宿主的会话键转换为存储作用域

    如 "group_123456"、"onebot_v11-private_10001" 取末尾的ID，与 event_scope 的结果一致。
    """
    return str(chat_key or "").rsplit("_", 1)[-1]


def set_field_path(document: Dict[str, Any], path: str, value: Any) -> None:
    """按点分路径写入字段，中间层不存在时自动创建"""
    keys = path.split(".")
    target = document
    for key in keys[:-1]:
        child = target.get(key)
        if not isinstance(child, dict):
            child = {}
            target[key] = child
        target = child
    target[keys[-1]] = copy.deepcopy(value)


def merge_field_paths(document: Dict[str, Any], update: Mapping[str, Any]) -> Dict[str, Any]:
    """合并稀疏更新，不影响无关字段"""
    for path, value in update.items():
        set_field_path(document, path, value)
    return document


class DocumentStore(ABC):
    """宿主提供的文档读写能力"""

    @abstractmethod
    async def read(self, entity_id: str) -> Optional[Dict[str, Any]]:
        """读取角色、物品或职业定义"""

    @abstractmethod
    async def fetch_library(self, class_slug: str) -> List[Dict[str, Any]]:
        """读取职业的外部招式库"""

    @abstractmethod
    async def persist(self, entity_id: str, update: Union[UpdatePatch, Mapping[str, Any]]) -> bool:
        """应用稀疏字段更新"""

    @abstractmethod
    async def create(self, parent_id: str, records: List[Dict[str, Any]]) -> List[str]:
        """在父文档下批量创建物品"""

    async def read_character(self, character_id: str) -> Character:
        data = await self.read(character_id)
        if data is None:
            raise PersistenceFailure("读取", character_id)
        if not data.get("id"):
            data = dict(data, id=character_id)
        return Character.from_dict(data)

    async def read_class(self, class_name: str) -> Optional[ClassDefinition]:
        if not (class_name or "").strip():
            return None
        data = await self.read(class_document_id(class_name))
        if data is None:
            return None
        return ClassDefinition.from_dict(data)


class StoreDocumentAdapter(DocumentStore):
    """基于插件键值存储的文档适配器"""

    def __init__(self, store, chat_key: str = "global", config: Optional[RulesConfig] = None):
        self.store = store
        self.chat_key = chat_key
        self.config = config or default_config

    # ============ 存储键 ============

    def _document_key(self, entity_id: str) -> str:
        return f"dw.{self.chat_key}.documents.{entity_id}"

    @staticmethod
    def _class_key(slug: str) -> str:
        return f"dw.classes.{slug}"

    @staticmethod
    def _library_key(pack: str) -> str:
        return f"dw.library.{pack}"

    def _key_for(self, entity_id: str) -> str:
        if entity_id.startswith(CLASS_PREFIX):
            return self._class_key(entity_id[len(CLASS_PREFIX):])
        return self._document_key(entity_id)

    # ============ 底层读写 ============

    async def _get_json(self, store_key: str, entity_id: str) -> Any:
        try:
            raw = await self.store.get(store_key=store_key)
        except Exception as e:
            raise PersistenceFailure("读取", entity_id, e) from e
        if not raw:
            return None
        try:
            return json.loads(raw)
        except (TypeError, ValueError) as e:
            raise PersistenceFailure("读取", entity_id, e) from e

    async def _set_json(self, store_key: str, entity_id: str, value: Any) -> None:
        try:
            await self.store.set(store_key=store_key, value=json.dumps(value, ensure_ascii=False))
        except Exception as e:
            raise PersistenceFailure("写入", entity_id, e) from e

    # ============ DocumentStore 接口 ============

    async def read(self, entity_id: str) -> Optional[Dict[str, Any]]:
        data = await self._get_json(self._key_for(entity_id), entity_id)
        if data is None and entity_id.startswith(CLASS_PREFIX):
            # 存储中没有时使用内置职业数据
            data = find_builtin_class(entity_id[len(CLASS_PREFIX):])
        return data

    async def fetch_library(self, class_slug: str) -> List[Dict[str, Any]]:
        packs = []
        if not self.config.DISABLE_BUILTIN_LIBRARY:
            packs.append(f"{class_slug}-moves")
        if self.config.COMPENDIUM_PREFIX:
            packs.append(f"{self.config.COMPENDIUM_PREFIX.lower()}-{class_slug}-moves")

        moves: List[Dict[str, Any]] = []
        for pack in packs:
            entries = await self._get_json(self._library_key(pack), pack)
            if entries:
                moves.extend(entries)
        return moves

    async def persist(self, entity_id: str, update: Union[UpdatePatch, Mapping[str, Any]]) -> bool:
        if isinstance(update, UpdatePatch):
            update = update.to_field_paths()
        if not update:
            return False

        document = await self.read(entity_id)
        if document is None:
            raise PersistenceFailure("更新", entity_id)
        merge_field_paths(document, update)
        await self._set_json(self._key_for(entity_id), entity_id, document)
        logger.debug("persisted %s: %s", entity_id, sorted(update))
        return True

    async def create(self, parent_id: str, records: List[Dict[str, Any]]) -> List[str]:
        if not records:
            return []

        document = await self.read(parent_id)
        if document is None:
            raise PersistenceFailure("创建", parent_id)

        items = document.setdefault("items", [])
        new_ids = []
        for record in records:
            item = copy.deepcopy(record)
            item["id"] = uuid.uuid4().hex
            items.append(item)
            new_ids.append(item["id"])

        await self._set_json(self._document_key(parent_id), parent_id, document)
        return new_ids

    async def update_item(self, parent_id: str, item_id: str, update: Mapping[str, Any]) -> bool:
        """更新父文档中的单个物品"""
        document = await self.read(parent_id)
        if document is None:
            raise PersistenceFailure("更新", parent_id)
        item = next((i for i in document.get("items", []) if i.get("id") == item_id), None)
        if item is None:
            raise PersistenceFailure("更新", f"{parent_id}/{item_id}")
        merge_field_paths(item, update)
        await self._set_json(self._document_key(parent_id), parent_id, document)
        return True

    # ============ 导入与角色管理 ============

    async def save_document(self, document: Dict[str, Any]) -> str:
        """保存完整文档，没有ID时自动生成"""
        document = copy.deepcopy(document)
        entity_id = document.get("id") or uuid.uuid4().hex
        document["id"] = entity_id
        await self._set_json(self._document_key(entity_id), entity_id, document)
        return entity_id

    async def save_character(self, character: Character) -> str:
        return await self.save_document(character.to_dict())

    async def import_class(self, definition: Dict[str, Any]) -> str:
        """导入职业定义，覆盖同名内置数据"""
        parsed = ClassDefinition.from_dict(definition)
        slug = clean_class(parsed.name)
        await self._set_json(self._class_key(slug), slug, parsed.model_dump(by_alias=True))
        return class_document_id(parsed.name)

    async def import_library(self, pack: str, moves: List[Dict[str, Any]]) -> None:
        await self._set_json(self._library_key(pack), pack, list(moves))

    async def get_active_character_id(self, user_id: str) -> Optional[str]:
        """获取当前激活的角色ID"""
        try:
            return await self.store.get(user_key=user_id, store_key=f"active_character.{self.chat_key}") or None
        except Exception as e:
            raise PersistenceFailure("读取", user_id, e) from e

    async def set_active_character_id(self, user_id: str, character_id: str) -> None:
        """设置当前激活的角色ID"""
        try:
            await self.store.set(user_key=user_id, store_key=f"active_character.{self.chat_key}", value=character_id)
        except Exception as e:
            raise PersistenceFailure("写入", user_id, e) from e
