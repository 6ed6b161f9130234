"""
Dungeon World Rules Plugin - Main Plugin File

Chat commands for move checks, damage and the two-phase level-up, backed by the plugin store.
"""

import logging
from typing import Dict, Tuple

from nonebot.adapters.onebot.v11 import Message, MessageEvent
from nonebot.matcher import Matcher
from nonebot.params import CommandArg
from pydantic import Field

from nekro_agent.adapters.onebot_v11.matchers.command import (
    finish_with,
    on_command,
)
from nekro_agent.api.plugin import ConfigBase, NekroPlugin

# 导入核心模块
from .core.command_args import parse_damage_args, parse_roll_args, parse_selection_args
from .core.config import RulesConfig
from .core.damage import DamageCalculator
from .core.document_store import StoreDocumentAdapter, event_scope
from .core.errors import InvalidSelection, MalformedFormula, MissingClassDefinition, RulesEngineError
from .core.models import ABILITY_KEYS, Character, UpdatePatch
from .core.progression import CandidateSet, LevelUpState, ProgressionEngine, xp_required
from .core.prompt_injection import register_prompt_injections
from .core.rolls import RollResolver
from .core.tags import tag_update

# 创建插件实例
plugin = NekroPlugin(
    name="地下城世界规则",
    module_name="dw_rules",
    description="地下城世界规则引擎：2d6招式检定、护甲减伤与角色升级",
    version="1.0.0",
    author="Dirac",
    url="https://github.com/nekro-agent/dw-rules-plugin",
    support_adapter=["onebot_v11", "discord"],
)


@plugin.mount_config()
class DungeonWorldConfig(ConfigBase):
    """地下城世界规则配置"""

    MAX_DICE_COUNT: int = Field(
        default=100,
        title="单次最大骰子数量",
        description="单次掷骰允许的最大骰子数量",
    )
    MAX_DICE_SIDES: int = Field(
        default=1000,
        title="骰子最大面数",
        description="骰子允许的最大面数",
    )
    DISABLE_DEBILITY: bool = Field(
        default=False,
        title="关闭虚弱减值",
        description="开启后虚弱状态不再使属性调整值减一",
    )
    XP_FORMULA: str = Field(
        default="@level+7",
        title="升级经验公式",
        description="整数或表达式，可引用 @level",
    )
    NO_ABILITY_SCORES: bool = Field(
        default=True,
        title="只使用属性调整值",
        description="升级时提供调整值数组而不是完整属性值",
    )
    NO_ABILITY_INCREASE: bool = Field(
        default=False,
        title="关闭升级属性提升",
        description="升级时不提供属性+1选项",
    )
    DISABLE_BUILTIN_LIBRARY: bool = Field(
        default=False,
        title="关闭内置招式库",
        description="升级时不读取内置的职业招式库",
    )
    COMPENDIUM_PREFIX: str = Field(
        default="",
        title="附加招式库前缀",
        description="额外招式库的名称前缀，如 homebrew",
    )

    def to_rules_config(self) -> RulesConfig:
        return RulesConfig(
            MAX_DICE_COUNT=self.MAX_DICE_COUNT,
            MAX_DICE_SIDES=self.MAX_DICE_SIDES,
            DISABLE_DEBILITY=self.DISABLE_DEBILITY,
            XP_FORMULA=self.XP_FORMULA,
            NO_ABILITY_SCORES=self.NO_ABILITY_SCORES,
            NO_ABILITY_INCREASE=self.NO_ABILITY_INCREASE,
            DISABLE_BUILTIN_LIBRARY=self.DISABLE_BUILTIN_LIBRARY,
            COMPENDIUM_PREFIX=self.COMPENDIUM_PREFIX,
        )


# 获取配置和存储
config = plugin.get_config(DungeonWorldConfig)
rules_config = config.to_rules_config()
store = plugin.store

logger = logging.getLogger(__name__)

resolver = RollResolver(config=rules_config)

# 等待提交的升级选择，键为 (用户, 会话)
pending_level_ups: Dict[Tuple[str, str], CandidateSet] = {}


def _chat_key(event: MessageEvent) -> str:
    return event_scope(getattr(event, "group_id", None), event.user_id)


def _documents(chat_key: str) -> StoreDocumentAdapter:
    return StoreDocumentAdapter(store, chat_key=chat_key, config=rules_config)


def _engine(documents: StoreDocumentAdapter) -> ProgressionEngine:
    return ProgressionEngine(documents, config=rules_config, roller=resolver.roller)


async def _active_character(event: MessageEvent) -> Tuple[StoreDocumentAdapter, Character]:
    documents = _documents(_chat_key(event))
    character_id = await documents.get_active_character_id(str(event.user_id))
    if not character_id:
        raise InvalidSelection("还没有角色，请先使用 dwchar new <名称> <职业> 创建")
    return documents, await documents.read_character(character_id)


# 注册提示词注入
register_prompt_injections(plugin, _documents, _engine)


# ============ 检定 ============

@on_command("dwr", priority=5, block=True).handle()
async def handle_move_roll(matcher: Matcher, event: MessageEvent, args: Message = CommandArg()):
    """招式/属性检定"""
    try:
        request = parse_roll_args(args.extract_plain_text())
        documents = _documents(_chat_key(event))
        character = None
        character_id = await documents.get_active_character_id(str(event.user_id))
        if character_id:
            character = await documents.read_character(character_id)

        if request.move_name:
            if character is None:
                raise InvalidSelection("招式检定需要先创建角色")
            result = resolver.roll_move(character, request.move_name, bond=request.bond)
        else:
            result = resolver.resolve(
                request.spec,
                request.modifier_bonus,
                character=character,
                bond=request.bond,
                mode=request.mode,
                title=request.spec if request.spec.lower() in ABILITY_KEYS else "",
            )
        response = f"🎲 {result.format_result()}"
    except MalformedFormula as e:
        # 表达式无效时不回复结果
        logger.warning("malformed roll formula: %s", e)
        return
    except (RulesEngineError, ValueError) as e:
        response = f"❌ {str(e)}"

    await finish_with(matcher, response)


# ============ 伤害 ============

@on_command("dwdmg", aliases={"dmg"}, priority=5, block=True).handle()
async def handle_damage(matcher: Matcher, event: MessageEvent, args: Message = CommandArg()):
    """对当前角色结算伤害或治疗"""
    try:
        amount, options = parse_damage_args(args.extract_plain_text())
        documents, character = await _active_character(event)
        result = DamageCalculator.apply(character.hp, character.armor, amount, options)
        if result.changed:
            await documents.persist(character.id, UpdatePatch(hp=result.new_value))
        response = f"⚔️ {character.name} {result.describe()}"
    except (RulesEngineError, ValueError) as e:
        response = f"❌ {str(e)}"

    await finish_with(matcher, response)


# ============ 角色 ============

@on_command("dwchar", priority=5, block=True).handle()
async def handle_character(matcher: Matcher, event: MessageEvent, args: Message = CommandArg()):
    """角色管理"""
    command = args.extract_plain_text().strip()
    user_id = str(event.user_id)
    documents = _documents(_chat_key(event))

    try:
        if command.startswith("new "):
            parts = command[4:].strip().split(" ", 1)
            if len(parts) < 2:
                raise InvalidSelection("用法: dwchar new <名称> <职业>")
            name, class_name = parts[0], parts[1].strip()
            class_definition = await documents.read_class(class_name)
            if class_definition is None:
                raise MissingClassDefinition(class_name)

            character = Character(name=name)
            character.details.char_class = class_definition.name
            if class_definition.hp:
                character.attributes.hp.value = class_definition.hp
                character.attributes.hp.max = class_definition.hp
            character_id = await documents.save_character(character)
            await documents.set_active_character_id(user_id, character_id)
            response = f"✅ 已创建角色: {name} ({class_definition.name})，使用 dwlv 完成首次升级"

        elif command.startswith("use "):
            character_id = command[4:].strip()
            character = await documents.read_character(character_id)
            await documents.set_active_character_id(user_id, character_id)
            response = f"✅ 当前角色: {character.name}"

        else:
            _, character = await _active_character(event)
            required = xp_required(character, rules_config, resolver.roller)
            response = (
                f"📋 {character.name} ({character.char_class})\n"
                f"等级 {character.level}  经验 {character.xp}/{required}\n"
                f"生命值 {character.hp.value}/{character.hp.max}  护甲 {character.armor}"
            )
    except RulesEngineError as e:
        response = f"❌ {str(e)}"

    await finish_with(matcher, response)


@on_command("dwtag", priority=5, block=True).handle()
async def handle_item_tags(matcher: Matcher, event: MessageEvent, args: Message = CommandArg()):
    """设置物品标签，如: dwtag 长剑 [{"value":"近战"}]"""
    parts = args.extract_plain_text().strip().split(" ", 1)
    if len(parts) < 2:
        await finish_with(matcher, "用法: dwtag <物品名> <标签JSON>")

    try:
        documents, character = await _active_character(event)
        item = next((i for i in character.items if i.name == parts[0]), None)
        if item is None:
            raise InvalidSelection(f"找不到物品: {parts[0]}")
        update = tag_update(parts[1])
        await documents.update_item(character.id, item.id, update)
        response = f"🏷️ {item.name}: {update['tags_string']}"
    except RulesEngineError as e:
        response = f"❌ {str(e)}"

    await finish_with(matcher, response)


# ============ 升级 ============

def _format_candidates(candidates: CandidateSet) -> str:
    lines = [f"📈 {candidates.character.name} 升级 (筛选等级 {candidates.working_level})"]
    if candidates.blurb:
        lines.append(candidates.blurb)

    for group, moves in candidates.starting_move_groups.items():
        lines.append(f"【初始招式{' · ' + group if group else ''}】")
        lines.extend(f"  {m.id}: {m.name}" for m in moves)
    for title, moves in (("2-5级进阶招式", candidates.advanced_moves_2), ("6-10级进阶招式", candidates.advanced_moves_6)):
        if moves:
            lines.append(f"【{title}】")
            lines.extend(f"  {m.id}: {m.name}" for m in moves)

    if candidates.races:
        lines.append("【种族】 " + ", ".join(f"{r.key}={r.label}" for r in candidates.races))
    if candidates.alignments:
        lines.append("【阵营】 " + ", ".join(f"{a.key}={a.label}" for a in candidates.alignments))
    for group, items in candidates.equipment_groups.items():
        lines.append(f"【装备 · {group}】 " + ", ".join(f"{e.id}={e.name}" for e in items))
    if candidates.ability_scores:
        lines.append(f"【属性】 可分配: {candidates.ability_scores}")
    if not candidates.no_ability_increase:
        increasable = [a.key for a in candidates.ability_options if not a.disabled]
        lines.append(f"【属性提升】 可选: {', '.join(increasable)}")

    lines.append("提交: dwlvok moves=id1,id2 equip=id race=key align=key set=str:2 inc=cha")
    return "\n".join(lines)


@on_command("dwlv", aliases={"levelup"}, priority=5, block=True).handle()
async def handle_level_up(matcher: Matcher, event: MessageEvent):
    """计算升级可选项"""
    try:
        documents, character = await _active_character(event)
        engine = _engine(documents)
        if engine.level_up_state(character) != LevelUpState.ELIGIBLE:
            raise InvalidSelection("经验不足，暂时无法升级")
        candidates = await engine.compute_candidates(character.id)
        pending_level_ups[(str(event.user_id), _chat_key(event))] = candidates
        response = _format_candidates(candidates)
    except MissingClassDefinition:
        response = "⚠️ 找不到角色职业的规则数据，无法升级"
    except RulesEngineError as e:
        response = f"❌ {str(e)}"

    await finish_with(matcher, response)


@on_command("dwlvok", priority=5, block=True).handle()
async def handle_level_up_commit(matcher: Matcher, event: MessageEvent, args: Message = CommandArg()):
    """提交升级选择"""
    key = (str(event.user_id), _chat_key(event))
    candidates = pending_level_ups.get(key)
    if candidates is None:
        await finish_with(matcher, "请先使用 dwlv 查看升级选项")

    try:
        selections = parse_selection_args(args.extract_plain_text())
        documents = _documents(_chat_key(event))
        result = await _engine(documents).commit(candidates, selections)
        pending_level_ups.pop(key, None)
        created = len(result.move_ids) + len(result.equipment_ids) + len(result.bond_ids)
        response = f"✅ 升级完成: 等级 {result.level}，经验 {result.xp}，新增 {created} 个物品"
    except (RulesEngineError, ValueError) as e:
        response = f"❌ {str(e)}"

    await finish_with(matcher, response)


@on_command("dwhelp", priority=5, block=True).handle()
async def handle_help(matcher: Matcher, event: MessageEvent):
    """帮助信息"""
    help_text = """🎲 地下城世界规则 v1.0.0

🎯 检定:
• dwr <属性> [+调整] - 属性检定 (如: dwr str +1)
• dwr <表达式> - 掷骰 (如: dwr 1d10+2)
• dwr bond <数值> - 羁绊检定
• dwr move <招式名> - 招式检定

⚔️ 伤害:
• dwdmg <数值> [half/double/heal] [pierce N] [ignore] [bonus N]

📋 角色:
• dwchar new <名称> <职业> / dwchar use <ID> / dwchar
• dwtag <物品名> <标签JSON>

📈 升级:
• dwlv - 查看可选项
• dwlvok moves=... equip=... race=... align=... set=... inc=..."""

    await finish_with(matcher, help_text)


# ============ 清理方法 ============

@plugin.mount_cleanup_method()
async def clean_up():
    """清理插件资源"""
    pending_level_ups.clear()
