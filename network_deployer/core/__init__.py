"""
Core модули Network Deployer.

Содержит базовые классы:
- Device, инвентарь и выбор целей
- ConnectionManager: SSH подключения через Scrapli
- CredentialsManager: учётные данные
- RunContext: контекст запуска (run_id, папка вывода)
- Structured Logging: JSON/Human-readable логирование
- Модели запросов, итогов и отчётов
- pipeline: батчевый выкат, бэкап и откат
"""

from .device import Device
from .connection import ConnectionManager
from .credentials import CredentialsManager, Credentials
from .context import (
    RunContext,
    get_current_context,
    set_current_context,
    RunContextFilter,
)
from .logging import (
    get_logger,
    setup_logging,
    setup_logging_from_config,
    add_run_log_handler,
    remove_run_log_handler,
    StructuredLogger,
    JSONFormatter,
    HumanFormatter,
    LogConfig,
    RotationType,
)
from .exceptions import (
    DeployerError,
    DeviceError,
    UnreachableError,
    AuthenticationError,
    DriverRejectedError,
    DriverTimeoutError,
    CommandError,
    VerificationMismatchError,
    BackupError,
    NoSuchBackupError,
    IntegrityViolationError,
    RollbackFailedError,
    TemplateError,
    UndefinedVariableError,
    ConfigError,
    format_error_for_log,
)
from .inventory import load_inventory, select_targets
from .models import (
    SnapshotKind,
    SnapshotPurpose,
    Operation,
    OutcomeStatus,
    FailureReason,
    ExecutorState,
    SnapshotRef,
    ConfigSnapshot,
    VerificationCheck,
    VerificationResult,
    TemplateSpec,
    StepFilter,
    ChangePolicy,
    ChangeRequest,
    ChangeOutcome,
    RunReport,
    RunPlan,
)

__all__ = [
    # Device & Connection
    "Device",
    "ConnectionManager",
    "CredentialsManager",
    "Credentials",
    # Context
    "RunContext",
    "get_current_context",
    "set_current_context",
    "RunContextFilter",
    # Structured Logging
    "get_logger",
    "setup_logging",
    "setup_logging_from_config",
    "add_run_log_handler",
    "remove_run_log_handler",
    "StructuredLogger",
    "JSONFormatter",
    "HumanFormatter",
    "LogConfig",
    "RotationType",
    # Exceptions
    "DeployerError",
    "DeviceError",
    "UnreachableError",
    "AuthenticationError",
    "DriverRejectedError",
    "DriverTimeoutError",
    "CommandError",
    "VerificationMismatchError",
    "BackupError",
    "NoSuchBackupError",
    "IntegrityViolationError",
    "RollbackFailedError",
    "TemplateError",
    "UndefinedVariableError",
    "ConfigError",
    "format_error_for_log",
    # Inventory
    "load_inventory",
    "select_targets",
    # Data Models
    "SnapshotKind",
    "SnapshotPurpose",
    "Operation",
    "OutcomeStatus",
    "FailureReason",
    "ExecutorState",
    "SnapshotRef",
    "ConfigSnapshot",
    "VerificationCheck",
    "VerificationResult",
    "TemplateSpec",
    "StepFilter",
    "ChangePolicy",
    "ChangeRequest",
    "ChangeOutcome",
    "RunReport",
    "RunPlan",
]
