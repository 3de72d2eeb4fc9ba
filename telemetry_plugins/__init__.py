"""
Базовые классы и интерфейсы для плагинов метрик.
"""

from .base_plugin import BasePlugin, PluginMetadata

__all__ = [
    "BasePlugin",
    "PluginMetadata",
]
