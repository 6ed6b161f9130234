"""
Dungeon World Rules Plugin for Nekro Agent

A Dungeon World rules engine: 2d6 move checks, armor-mitigated damage,
and the level-up pipeline for characters kept in the plugin store.

Author: Dirac
Version: 1.0.0
"""

__version__ = "1.0.0"
__author__ = "Dirac"
__description__ = "Dungeon World rules engine for Nekro Agent"

__all__ = ["plugin"]


def __getattr__(name):
    # 宿主加载插件时才导入 nekro_agent
    if name == "plugin":
        from .plugin import plugin
        return plugin
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
