"""
提示词注入模块

让AI主持人了解可用的规则指令以及当前角色的状态。
"""

import logging

from .abilities import derive_abilities
from .document_store import chat_key_scope
from .errors import RulesEngineError
from .progression import LevelUpState, ProgressionEngine, xp_required

logger = logging.getLogger(__name__)


async def inject_rules_system_prompt(_ctx) -> str:
    """规则系统基础提示词注入"""

    prompt_parts = [
        "# 地下城世界规则助手",
        "",
        "你是一个熟悉《地下城世界》(Dungeon World) 规则的游戏主持人助手。",
        "",
        "## 可用的规则指令:",
        "• **检定**: `dwr <属性|骰子表达式|bond 数值|move 招式名> [+调整] [adv/dis]`",
        "• **伤害与治疗**: `dwdmg <数值> [half/double/heal] [pierce N] [ignore] [bonus N]`",
        "• **升级**: `dwlv` 查看可选项，`dwlvok` 提交选择",
        "",
        "## 检定结果:",
        "• 10+ 完全成功；7-9 部分成功，伴随代价或抉择；6- 失败，由主持人做出行动",
    ]

    return "\n".join(prompt_parts)


async def inject_character_state_prompt(_ctx, documents, engine: ProgressionEngine) -> str:
    """
    当前角色状态提示词注入
    提供等级、经验、生命值和能否升级等信息
    """

    try:
        character_id = await documents.get_active_character_id(_ctx.user_id)
        if not character_id:
            return ""
        character = await documents.read_character(character_id)
    except RulesEngineError as e:
        logger.warning("character state prompt unavailable: %s", e)
        return ""

    required = xp_required(character, engine.config, engine.roller)
    abilities = derive_abilities(character, engine.config)
    ability_text = ", ".join(f"{a.label}{a.mod:+d}" for a in abilities.values())

    prompt_parts = [
        "# 当前角色状态",
        "",
        f"## {character.name} ({character.char_class or '未设定职业'})",
        f"• 等级: {character.level}  经验: {character.xp}/{required}",
        f"• 生命值: {character.hp.value}/{character.hp.max}  护甲: {character.armor}",
        f"• 属性调整: {ability_text}",
    ]
    if engine.level_up_state(character) == LevelUpState.ELIGIBLE:
        prompt_parts.append("• 角色可以升级，提醒玩家使用 dwlv 指令")

    return "\n".join(prompt_parts)


def register_prompt_injections(plugin, documents_factory, engine_factory):
    """注册所有提示词注入方法"""

    @plugin.mount_prompt_inject_method(
        name="dw_rules_awareness",
        description="注入地下城世界规则指令说明"
    )
    async def _inject_rules_system_prompt(_ctx) -> str:
        return await inject_rules_system_prompt(_ctx)

    @plugin.mount_prompt_inject_method(
        name="dw_character_state",
        description="注入当前角色的等级、生命值与升级状态"
    )
    async def _inject_character_state_prompt(_ctx) -> str:
        documents = documents_factory(chat_key_scope(_ctx.chat_key))
        return await inject_character_state_prompt(_ctx, documents, engine_factory(documents))
