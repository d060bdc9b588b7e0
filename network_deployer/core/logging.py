"""
Структурированное логирование для Network Deployer.

Каждое сообщение о работе с устройством несёт поля контекста:
run_id, device, operation, batch, state. Оператор по логу запуска
должен однозначно восстановить, что произошло с каждым устройством.

Два формата:
- human: для консоли и run.log
- json: для ELK/Loki

Пример использования:
    from network_deployer.core.logging import get_logger

    logger = get_logger(__name__)
    log = logger.bind(device="core-router-nyc-01", operation="bulk-update")
    log.info("Бэкап снят", state="backing_up")

Формат human:
    2025-01-15 10:30:15 - INFO     - [2025-01-15T10-30-00] Бэкап снят
    (device=core-router-nyc-01, operation=bulk-update, state=backing_up)
"""

import json
import logging
import logging.handlers
import sys
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Optional, Dict, Any, List
from dataclasses import dataclass

from .context import RunContextFilter, get_current_context


class RotationType(str, Enum):
    """Тип ротации логов."""
    SIZE = "size"
    TIME = "time"
    NONE = "none"


# Поля контекста, которые выводятся в human-формате (в этом порядке)
CONTEXT_FIELDS = ("device", "operation", "batch", "state", "attempt")


@dataclass
class LogConfig:
    """
    Конфигурация логирования.

    Attributes:
        level: Уровень логирования
        json_format: JSON формат для файла (консоль всегда human)
        console: Выводить в консоль
        file_path: Путь к общему файлу логов (None = без файла)
        rotation: Тип ротации (size, time, none)
        max_bytes: Макс размер файла для size-ротации
        backup_count: Количество backup файлов
        when: Интервал для time-ротации (S, M, H, D, midnight)
        interval: Частота ротации для time
    """
    level: int = logging.INFO
    json_format: bool = False
    console: bool = True
    file_path: Optional[str] = None
    rotation: RotationType = RotationType.SIZE
    max_bytes: int = 10 * 1024 * 1024  # 10 MB
    backup_count: int = 5
    when: str = "midnight"
    interval: int = 1

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LogConfig":
        """Создаёт конфигурацию из словаря (секция logging config.yaml)."""
        rotation = data.get("rotation", "size")
        if isinstance(rotation, str):
            rotation = RotationType(rotation)

        level = data.get("level", "INFO")
        if isinstance(level, str):
            level = getattr(logging, level.upper(), logging.INFO)

        return cls(
            level=level,
            json_format=data.get("json_format", False),
            console=data.get("console", True),
            file_path=data.get("file_path"),
            rotation=rotation,
            max_bytes=data.get("max_bytes", 10 * 1024 * 1024),
            backup_count=data.get("backup_count", 5),
            when=data.get("when", "midnight"),
            interval=data.get("interval", 1),
        )


class JSONFormatter(logging.Formatter):
    """
    JSON форматтер: одна запись — одна строка JSON.

    Стандартные поля: timestamp, level, message, logger.
    Поля контекста и любые extra добавляются как есть.
    """

    # Атрибуты logging.LogRecord, которые не попадают в JSON
    RESERVED_ATTRS = {
        "args", "asctime", "created", "exc_info", "exc_text",
        "filename", "funcName", "levelname", "levelno", "lineno",
        "module", "msecs", "msg", "name", "pathname", "process",
        "processName", "relativeCreated", "stack_info", "thread",
        "threadName", "taskName", "message",
    }

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "message": record.getMessage(),
            "logger": record.name,
        }

        for key, value in record.__dict__.items():
            if key in self.RESERVED_ATTRS or key.startswith("_"):
                continue
            if value is not None:
                log_data[key] = value

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, ensure_ascii=False, default=str)


class HumanFormatter(logging.Formatter):
    """
    Human-readable форматтер.

    Формат: TIMESTAMP - LEVEL - [run_id] MESSAGE (device=X, operation=Y)
    """

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.fromtimestamp(record.created).strftime("%Y-%m-%d %H:%M:%S")
        level = record.levelname.ljust(8)
        message = record.getMessage()

        run_id = getattr(record, "run_id", None)
        prefix = f"[{run_id}] " if run_id else ""

        extras = []
        for attr in CONTEXT_FIELDS:
            value = getattr(record, attr, None)
            if value is not None and value != "":
                extras.append(f"{attr}={value}")
        extra_str = f" ({', '.join(extras)})" if extras else ""

        result = f"{timestamp} - {level} - {prefix}{message}{extra_str}"

        if record.exc_info:
            result += "\n" + self.formatException(record.exc_info)

        return result


class StructuredLogger:
    """
    Обёртка над logging.Logger с именованными полями контекста.

    Вместо:
        logger.info(f"{device}: применение конфигурации")
    Пишем:
        logger.info("Применение конфигурации", device=device, state="applying")
    """

    def __init__(self, name: str, default_extra: Optional[Dict[str, Any]] = None):
        self._logger = logging.getLogger(name)
        self._default_extra = default_extra or {}

    def _log(
        self,
        level: int,
        message: str,
        exc_info: bool = False,
        **kwargs: Any,
    ) -> None:
        extra = {**self._default_extra, **kwargs}

        # run_id из текущего контекста запуска, если не передан явно
        if "run_id" not in extra:
            ctx = get_current_context()
            if ctx:
                extra["run_id"] = ctx.run_id

        self._logger.log(level, message, exc_info=exc_info, extra=extra)

    def debug(self, message: str, **kwargs: Any) -> None:
        self._log(logging.DEBUG, message, **kwargs)

    def info(self, message: str, **kwargs: Any) -> None:
        self._log(logging.INFO, message, **kwargs)

    def warning(self, message: str, **kwargs: Any) -> None:
        self._log(logging.WARNING, message, **kwargs)

    def error(self, message: str, exc_info: bool = False, **kwargs: Any) -> None:
        self._log(logging.ERROR, message, exc_info=exc_info, **kwargs)

    def critical(self, message: str, exc_info: bool = False, **kwargs: Any) -> None:
        self._log(logging.CRITICAL, message, exc_info=exc_info, **kwargs)

    def exception(self, message: str, **kwargs: Any) -> None:
        """ERROR с traceback."""
        self._log(logging.ERROR, message, exc_info=True, **kwargs)

    def bind(self, **kwargs: Any) -> "StructuredLogger":
        """
        Новый логгер с дополнительными полями по умолчанию.

        Example:
            log = logger.bind(device="sw1", operation="backup")
            log.info("Подключено")  # device и operation добавятся сами
        """
        return StructuredLogger(
            self._logger.name,
            default_extra={**self._default_extra, **kwargs},
        )

    def isEnabledFor(self, level: int) -> bool:
        return self._logger.isEnabledFor(level)


_loggers: Dict[str, StructuredLogger] = {}


def get_logger(name: str) -> StructuredLogger:
    """
    Получает или создаёт StructuredLogger.

    Args:
        name: Имя логгера (обычно __name__)

    Returns:
        StructuredLogger: Логгер
    """
    if name not in _loggers:
        _loggers[name] = StructuredLogger(name)
    return _loggers[name]


def _create_file_handler(
    file_path: str,
    rotation: RotationType,
    max_bytes: int,
    backup_count: int,
    when: str,
    interval: int,
) -> logging.Handler:
    """
    Создаёт file handler с нужной ротацией.

    Returns:
        logging.Handler: Handler (директория создаётся при необходимости)
    """
    log_path = Path(file_path)
    log_path.parent.mkdir(parents=True, exist_ok=True)

    if rotation == RotationType.SIZE:
        return logging.handlers.RotatingFileHandler(
            filename=file_path,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
    elif rotation == RotationType.TIME:
        return logging.handlers.TimedRotatingFileHandler(
            filename=file_path,
            when=when,
            interval=interval,
            backupCount=backup_count,
            encoding="utf-8",
        )
    else:
        return logging.FileHandler(file_path, encoding="utf-8")


def setup_logging_from_config(config: LogConfig) -> None:
    """
    Настраивает корневой логгер из LogConfig.

    Существующие handlers удаляются.

    Args:
        config: Настройки логирования
    """
    formatter = JSONFormatter() if config.json_format else HumanFormatter()

    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handlers: List[logging.Handler] = []

    if config.console:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(config.level)
        console_handler.setFormatter(HumanFormatter())  # Консоль всегда human
        handlers.append(console_handler)

    if config.file_path:
        file_handler = _create_file_handler(
            file_path=config.file_path,
            rotation=config.rotation,
            max_bytes=config.max_bytes,
            backup_count=config.backup_count,
            when=config.when,
            interval=config.interval,
        )
        file_handler.setLevel(config.level)
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    for handler in handlers:
        handler.addFilter(RunContextFilter())
        root_logger.addHandler(handler)

    root_logger.setLevel(config.level)


def setup_logging(json_format: bool = False, level: int = logging.INFO) -> None:
    """Упрощённая настройка: только консоль."""
    setup_logging_from_config(
        LogConfig(level=level, json_format=json_format, console=True)
    )


def add_run_log_handler(
    file_path: Path,
    level: int = logging.DEBUG,
    json_format: bool = False,
) -> logging.Handler:
    """
    Добавляет handler лога конкретного запуска (reports/run_<id>/run.log).

    Ротации нет: один файл на запуск.

    Args:
        file_path: Путь к run.log
        level: Уровень (по умолчанию DEBUG: полный след запуска)
        json_format: JSON вместо human

    Returns:
        logging.Handler: Handler (для remove_run_log_handler)
    """
    handler = _create_file_handler(
        file_path=str(file_path),
        rotation=RotationType.NONE,
        max_bytes=0,
        backup_count=0,
        when="midnight",
        interval=1,
    )
    handler.setLevel(level)
    handler.setFormatter(JSONFormatter() if json_format else HumanFormatter())
    handler.addFilter(RunContextFilter())

    root_logger = logging.getLogger()
    root_logger.addHandler(handler)
    if root_logger.level > level or root_logger.level == logging.NOTSET:
        root_logger.setLevel(level)
    return handler


def remove_run_log_handler(handler: logging.Handler) -> None:
    """Закрывает и отключает handler лога запуска."""
    logging.getLogger().removeHandler(handler)
    handler.close()
