"""
Pydantic схемы для валидации config.yaml.

Ошибки валидации выбрасывают ConfigError.

Пример использования:
    from network_deployer.core.config_schema import validate_config

    config_dict = yaml.safe_load(open("config.yaml"))
    validated = validate_config(config_dict)  # raises ConfigError on failure
"""

from typing import Dict, List, Optional
from pydantic import BaseModel, Field, field_validator
from pydantic_core import PydanticCustomError

from .exceptions import ConfigError
from .models import Operation, SnapshotKind

# Размер батча по умолчанию для каждой операции
DEFAULT_BATCH_SIZES: Dict[str, int] = {
    Operation.BACKUP.value: 10,
    Operation.ENFORCE_COMPLIANCE.value: 10,
    Operation.DEPLOY_TEMPLATES.value: 10,
    Operation.BULK_UPDATE.value: 20,
    Operation.ROLLBACK.value: 5,
}


class OutputConfig(BaseModel):
    """Настройки отчётов."""
    output_folder: str = "reports"
    text_report: bool = True
    json_indent: int = Field(default=2, ge=0, le=8)


class ConnectionConfig(BaseModel):
    """Настройки подключения (Scrapli для чтения, Netmiko для записи)."""
    transport: str = Field(default="system", pattern="^(system|ssh2|paramiko|telnet)$")
    conn_timeout: int = Field(default=10, ge=1, le=300)
    read_timeout: int = Field(default=30, ge=1, le=600)
    max_retries: int = Field(default=0, ge=0, le=10)
    retry_delay: int = Field(default=5, ge=0, le=60)


class TimeoutsConfig(BaseModel):
    """Таймауты фаз выполнения (секунды)."""
    reachability: int = Field(default=30, ge=1, le=600)
    apply: int = Field(default=120, ge=1, le=3600)
    verify: int = Field(default=60, ge=1, le=3600)
    post_rollback: int = Field(default=120, ge=1, le=3600)


class RolloutConfig(BaseModel):
    """Настройки выката батчами."""
    batch_sizes: Dict[str, int] = Field(default_factory=lambda: dict(DEFAULT_BATCH_SIZES))
    halt_threshold: float = Field(default=0.2, ge=0.0, le=1.0)
    max_retries: int = Field(default=0, ge=0, le=10)
    retry_delay: float = Field(default=0.0, ge=0.0, le=300.0)
    auto_rollback: bool = True

    @field_validator("batch_sizes")
    @classmethod
    def validate_batch_sizes(cls, v: Dict[str, int]) -> Dict[str, int]:
        """Ключи — операции, значения — положительные числа."""
        known = {op.value for op in Operation}
        for name, size in v.items():
            if name not in known:
                raise PydanticCustomError(
                    "unknown_operation",
                    "Неизвестная операция в batch_sizes: {name}",
                    {"name": name},
                )
            if size <= 0:
                raise PydanticCustomError(
                    "invalid_batch_size",
                    "batch_size для {name} должен быть > 0",
                    {"name": name},
                )
        return {**DEFAULT_BATCH_SIZES, **v}


class BackupConfig(BaseModel):
    """Настройки хранилища бэкапов."""
    root: str = "backups"
    kinds: List[str] = Field(
        default_factory=lambda: [SnapshotKind.RUNNING.value, SnapshotKind.STARTUP.value]
    )

    @field_validator("kinds")
    @classmethod
    def validate_kinds(cls, v: List[str]) -> List[str]:
        """running обязателен: откат восстанавливает running-config."""
        known = {k.value for k in SnapshotKind}
        unknown = [k for k in v if k not in known]
        if unknown:
            raise PydanticCustomError(
                "unknown_kind",
                "Неизвестный тип конфигурации: {kinds}",
                {"kinds": ", ".join(unknown)},
            )
        if SnapshotKind.RUNNING.value not in v:
            raise PydanticCustomError(
                "running_required",
                "backup.kinds должен содержать running",
            )
        return v


class TemplatesConfig(BaseModel):
    """Настройки шаблонов Jinja2."""
    dir: str = "templates"
    by_role: Dict[str, str] = Field(default_factory=dict)


class LoggingConfig(BaseModel):
    """Настройки логирования."""
    level: str = Field(default="INFO", pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$")
    json_format: bool = False
    console: bool = True
    file_path: Optional[str] = None
    rotation: str = Field(default="size", pattern="^(size|time|none)$")
    max_bytes: int = Field(default=10 * 1024 * 1024, ge=1024)
    backup_count: int = Field(default=5, ge=1, le=100)
    when: str = "midnight"
    interval: int = Field(default=1, ge=1)
    run_log: bool = True


class AppConfig(BaseModel):
    """Полная конфигурация приложения."""
    output: OutputConfig = Field(default_factory=OutputConfig)
    connection: ConnectionConfig = Field(default_factory=ConnectionConfig)
    timeouts: TimeoutsConfig = Field(default_factory=TimeoutsConfig)
    rollout: RolloutConfig = Field(default_factory=RolloutConfig)
    backup: BackupConfig = Field(default_factory=BackupConfig)
    templates: TemplatesConfig = Field(default_factory=TemplatesConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    debug: bool = False
    inventory_file: str = "inventory.yaml"

    def batch_size_for(self, operation: Operation) -> int:
        """Размер батча для операции."""
        return self.rollout.batch_sizes.get(
            operation.value, DEFAULT_BATCH_SIZES[operation.value]
        )


def validate_config(config_dict: dict, config_file: Optional[str] = None) -> AppConfig:
    """
    Валидирует словарь конфигурации.

    Args:
        config_dict: Словарь из YAML
        config_file: Путь к файлу (для сообщения об ошибке)

    Returns:
        AppConfig: Валидированная конфигурация

    Raises:
        ConfigError: При ошибке валидации
    """
    try:
        return AppConfig(**config_dict)
    except Exception as e:
        # Первая ошибка Pydantic в читаемом виде
        error_msg = str(e)
        key = None
        if hasattr(e, "errors"):
            errors = e.errors()
            if errors:
                first_error = errors[0]
                key = ".".join(str(x) for x in first_error.get("loc", []))
                msg = first_error.get("msg", "Unknown error")
                error_msg = f"{key}: {msg}"

        raise ConfigError(
            message=f"Ошибка валидации конфигурации: {error_msg}",
            config_file=config_file or "config.yaml",
            key=key,
        ) from e


def get_default_config() -> AppConfig:
    """Конфигурация по умолчанию."""
    return AppConfig()
