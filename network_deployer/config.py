"""
Загрузчик конфигурации из config.yaml.

Порядок: значения по умолчанию -> YAML -> переменные окружения.
Результат валидируется схемой AppConfig (pydantic).

Доступ к настройкам через точку:
    config.rollout.halt_threshold
    config.backup.root
    config.timeouts.post_rollback
"""

import os
import logging
from typing import Any, Optional

import yaml

from .core.config_schema import AppConfig, DEFAULT_BATCH_SIZES, validate_config
from .core.exceptions import ConfigError

logger = logging.getLogger(__name__)

# Где искать config.yaml, если путь не указан
SEARCH_PATHS = ("config.yaml", "config.yml", ".network_deployer.yaml")

# Переменные окружения -> (секция, ключ)
ENV_OVERRIDES = {
    "DEPLOYER_BACKUP_DIR": ("backup", "root"),
    "DEPLOYER_TEMPLATES_DIR": ("templates", "dir"),
    "DEPLOYER_OUTPUT_DIR": ("output", "output_folder"),
    "DEPLOYER_INVENTORY": (None, "inventory_file"),
}


class ConfigSection:
    """Секция конфигурации с доступом через точку."""

    def __init__(self, data: dict = None):
        self._data = data or {}

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_"):
            return super().__getattribute__(name)
        value = self._data.get(name)
        if isinstance(value, dict):
            return ConfigSection(value)
        return value

    def get(self, key: str, default: Any = None) -> Any:
        return self._data.get(key, default)

    def __repr__(self) -> str:
        return f"ConfigSection({self._data})"


class Config:
    """
    Главный класс конфигурации.

    Пример:
        config.rollout.halt_threshold  # 0.2
        config.backup.root             # "backups"
        config.settings                # AppConfig (валидированный)
    """

    def __init__(self, config_file: Optional[str] = None):
        self.config_file: Optional[str] = None
        self._settings: Optional[AppConfig] = None
        self._data = self._get_defaults()
        self._load_yaml(config_file)
        self._load_env()

    def _get_defaults(self) -> dict:
        """Значения по умолчанию."""
        return {
            "output": {
                "output_folder": "reports",
                "text_report": True,
                "json_indent": 2,
            },
            "connection": {
                "transport": "system",
                "conn_timeout": 10,
                "read_timeout": 30,
                "max_retries": 0,
                "retry_delay": 5,
            },
            "timeouts": {
                "reachability": 30,
                "apply": 120,
                "verify": 60,
                "post_rollback": 120,
            },
            "rollout": {
                "batch_sizes": dict(DEFAULT_BATCH_SIZES),
                "halt_threshold": 0.2,
                "max_retries": 0,
                "retry_delay": 0.0,
                "auto_rollback": True,
            },
            "backup": {
                "root": "backups",
                "kinds": ["running", "startup"],
            },
            "templates": {
                "dir": "templates",
                "by_role": {},
            },
            "logging": {
                "level": "INFO",
                "json_format": False,
                "console": True,
                "file_path": None,
                "rotation": "size",
                "run_log": True,
            },
            "debug": False,
            "inventory_file": "inventory.yaml",
        }

    def _load_yaml(self, config_file: Optional[str] = None) -> None:
        """
        Загружает настройки из YAML файла.

        Raises:
            ConfigError: Файл указан явно и не найден, или YAML некорректен
        """
        if config_file and not os.path.exists(config_file):
            raise ConfigError("Файл конфигурации не найден", config_file=config_file)

        if not config_file:
            for path in SEARCH_PATHS:
                if os.path.exists(path):
                    config_file = path
                    break

        if not config_file:
            return

        try:
            with open(config_file, "r", encoding="utf-8") as f:
                yaml_data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Некорректный YAML: {e}", config_file=config_file) from e

        if not isinstance(yaml_data, dict):
            raise ConfigError("Ожидается словарь на верхнем уровне", config_file=config_file)

        self._merge_dict(self._data, yaml_data)
        self.config_file = config_file
        logger.debug(f"Конфигурация загружена из {config_file}")

    def _load_env(self) -> None:
        """Переопределения из переменных окружения."""
        for env_name, (section, key) in ENV_OVERRIDES.items():
            value = os.getenv(env_name)
            if not value:
                continue
            if section:
                self._data[section][key] = value
            else:
                self._data[key] = value
            logger.debug(f"{env_name} переопределяет {section or ''}.{key}".lstrip("."))

    def _merge_dict(self, base: dict, override: dict) -> None:
        """Рекурсивно мержит словари."""
        for key, value in override.items():
            if key in base and isinstance(base[key], dict) and isinstance(value, dict):
                self._merge_dict(base[key], value)
            else:
                base[key] = value

    @property
    def settings(self) -> AppConfig:
        """
        Валидированная конфигурация.

        Raises:
            ConfigError: При ошибке валидации
        """
        if self._settings is None:
            self._settings = validate_config(self._data, self.config_file)
        return self._settings

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_"):
            return super().__getattribute__(name)
        value = self._data.get(name)
        if isinstance(value, dict):
            return ConfigSection(value)
        return value

    def reload(self, config_file: Optional[str] = None) -> None:
        """Перезагружает конфигурацию."""
        self.config_file = None
        self._settings = None
        self._data = self._get_defaults()
        self._load_yaml(config_file)
        self._load_env()


def load_config(config_file: Optional[str] = None) -> Config:
    """
    Загружает и валидирует конфигурацию.

    Args:
        config_file: Путь к YAML файлу (опционально)

    Returns:
        Config: Объект конфигурации

    Raises:
        ConfigError: Файл не найден, некорректен или не прошёл валидацию
    """
    cfg = Config(config_file)
    cfg.settings
    return cfg
