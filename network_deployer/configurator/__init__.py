"""
Подготовка и применение конфигурации.

- ConfigPusher: применение команд через Netmiko (с повтором подключения)
- TemplateRenderer: рендеринг Jinja2 шаблонов (StrictUndefined)
"""

from .base import ConfigPusher, ConfigResult, PushErrorType, find_error_marker
from .templates import TemplateRenderer

__all__ = [
    "ConfigPusher",
    "ConfigResult",
    "PushErrorType",
    "find_error_marker",
    "TemplateRenderer",
]
