"""
Типизированные исключения для Network Deployer.

Иерархия:
    DeployerError (базовый)
    ├── DeviceError (ошибки на стороне устройства)
    │   ├── UnreachableError (устройство не ответило за таймаут)
    │   ├── AuthenticationError (авторизация)
    │   ├── DriverRejectedError (устройство отвергло конфигурацию)
    │   ├── DriverTimeoutError (таймаут операции)
    │   ├── CommandError (выполнение команды)
    │   └── VerificationMismatchError (проверка после изменения не прошла)
    ├── BackupError (хранилище бэкапов)
    │   ├── NoSuchBackupError (точка восстановления не найдена)
    │   └── IntegrityViolationError (checksum не совпадает)
    ├── RollbackFailedError (откат сам не удался)
    ├── TemplateError (рендеринг шаблонов)
    │   └── UndefinedVariableError (переменная не определена)
    └── ConfigError (конфигурация)

Все ошибки по одному устройству перехватываются ChangeExecutor и попадают
в ChangeOutcome. Наружу (на уровень запуска) они не пробрасываются.

Пример использования:
    from network_deployer.core.exceptions import UnreachableError

    try:
        session = driver.connect(device, timeout=30)
    except UnreachableError as e:
        logger.warning(f"{e.device}: {e.message}")
"""

from typing import Optional


class DeployerError(Exception):
    """
    Базовое исключение для всех ошибок Network Deployer.

    Attributes:
        message: Описание ошибки
        details: Дополнительные детали (dict)
    """

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            details_str = ", ".join(f"{k}={v!r}" for k, v in self.details.items())
            return f"{self.message} ({details_str})"
        return self.message

    def to_dict(self) -> dict:
        """Сериализация для логов/отчётов."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
        }


# === Device Errors ===

class DeviceError(DeployerError):
    """
    Ошибка при работе с устройством.

    Attributes:
        device: Имя или адрес устройства
        message: Описание ошибки
    """

    def __init__(
        self,
        message: str,
        device: Optional[str] = None,
        details: Optional[dict] = None,
    ):
        self.device = device
        details = details or {}
        if device:
            details["device"] = device
        super().__init__(message, details)


class UnreachableError(DeviceError):
    """
    Устройство не ответило (ping/connect) за отведённое время.

    Пример:
        raise UnreachableError("Connection refused", device="10.0.0.1", port=22)
    """

    def __init__(
        self,
        message: str,
        device: Optional[str] = None,
        port: int = 22,
        details: Optional[dict] = None,
    ):
        details = details or {}
        details["port"] = port
        super().__init__(message, device, details)


class AuthenticationError(DeviceError):
    """
    Ошибка аутентификации (неверный логин/пароль).

    Пример:
        raise AuthenticationError("Invalid credentials", device="10.0.0.1")
    """
    pass


class DriverRejectedError(DeviceError):
    """
    Устройство отвергло конфигурацию.

    Attributes:
        output: Вывод устройства (если есть)
    """

    def __init__(
        self,
        message: str,
        device: Optional[str] = None,
        output: Optional[str] = None,
        details: Optional[dict] = None,
    ):
        self.output = output
        details = details or {}
        if output:
            details["output"] = output[:200]  # Ограничиваем размер
        super().__init__(message, device, details)


class DriverTimeoutError(DeviceError):
    """
    Таймаут при подключении или выполнении операции.

    Attributes:
        timeout_seconds: Значение таймаута

    Пример:
        raise DriverTimeoutError("Command timeout", device="sw1", timeout_seconds=60)
    """

    def __init__(
        self,
        message: str,
        device: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        details: Optional[dict] = None,
    ):
        self.timeout_seconds = timeout_seconds
        details = details or {}
        if timeout_seconds:
            details["timeout_seconds"] = timeout_seconds
        super().__init__(message, device, details)


class CommandError(DeviceError):
    """
    Ошибка выполнения команды на устройстве.

    Attributes:
        command: Команда которая вызвала ошибку
        output: Вывод устройства (если есть)

    Пример:
        raise CommandError("Invalid input", device="sw1", command="show xyz")
    """

    def __init__(
        self,
        message: str,
        device: Optional[str] = None,
        command: Optional[str] = None,
        output: Optional[str] = None,
        details: Optional[dict] = None,
    ):
        self.command = command
        self.output = output
        details = details or {}
        if command:
            details["command"] = command
        if output:
            details["output"] = output[:200]
        super().__init__(message, device, details)


class VerificationMismatchError(DeviceError):
    """
    Устройство приняло конфигурацию, но проверка после изменения не прошла.

    Обрабатывается так же, как DriverRejectedError.

    Attributes:
        failed_checks: Команды, проверка которых не прошла
    """

    def __init__(
        self,
        message: str,
        device: Optional[str] = None,
        failed_checks: Optional[list] = None,
        details: Optional[dict] = None,
    ):
        self.failed_checks = failed_checks or []
        details = details or {}
        if self.failed_checks:
            details["failed_checks"] = self.failed_checks
        super().__init__(message, device, details)


# === Backup Errors ===

class BackupError(DeployerError):
    """
    Ошибка хранилища бэкапов.

    Attributes:
        device: Имя устройства
    """

    def __init__(
        self,
        message: str,
        device: Optional[str] = None,
        details: Optional[dict] = None,
    ):
        self.device = device
        details = details or {}
        if device:
            details["device"] = device
        super().__init__(message, details)


class NoSuchBackupError(BackupError):
    """
    Запрошенная точка восстановления не существует.

    Attributes:
        selector: Селектор (latest / дата / timestamp)

    Пример:
        raise NoSuchBackupError("No backup", device="sw1", selector="2024-01-01")
    """

    def __init__(
        self,
        message: str,
        device: Optional[str] = None,
        selector: Optional[str] = None,
        details: Optional[dict] = None,
    ):
        self.selector = selector
        details = details or {}
        if selector:
            details["selector"] = selector
        super().__init__(message, device, details)


class IntegrityViolationError(BackupError):
    """
    Содержимое снапшота не совпадает с сохранённой контрольной суммой.

    Никогда не исправляется автоматически.

    Attributes:
        expected: Checksum из манифеста
        actual: Пересчитанный checksum (None если файл отсутствует)
    """

    def __init__(
        self,
        message: str,
        device: Optional[str] = None,
        expected: Optional[str] = None,
        actual: Optional[str] = None,
        details: Optional[dict] = None,
    ):
        self.expected = expected
        self.actual = actual
        details = details or {}
        if expected:
            details["expected"] = expected
        if actual:
            details["actual"] = actual
        super().__init__(message, device, details)


# === Rollback Errors ===

class RollbackFailedError(DeployerError):
    """
    Откат на предыдущую конфигурацию не удался.

    Устройство может находиться в несогласованном состоянии,
    требуется ручное вмешательство.
    """

    def __init__(
        self,
        message: str,
        device: Optional[str] = None,
        details: Optional[dict] = None,
    ):
        self.device = device
        details = details or {}
        if device:
            details["device"] = device
        super().__init__(message, details)


# === Template Errors ===

class TemplateError(DeployerError):
    """
    Ошибка рендеринга шаблона.

    Attributes:
        template_id: Идентификатор шаблона
    """

    def __init__(
        self,
        message: str,
        template_id: Optional[str] = None,
        details: Optional[dict] = None,
    ):
        self.template_id = template_id
        details = details or {}
        if template_id:
            details["template_id"] = template_id
        super().__init__(message, details)


class UndefinedVariableError(TemplateError):
    """
    В шаблоне используется переменная, которой нет в контексте.

    Пример:
        raise UndefinedVariableError("'ntp_servers' is undefined", template_id="ntp.j2")
    """
    pass


# === Config Errors ===

class ConfigError(DeployerError):
    """
    Ошибка конфигурации.

    Attributes:
        config_file: Путь к файлу конфигурации
        key: Ключ конфигурации с ошибкой

    Пример:
        raise ConfigError("Missing required field", config_file="config.yaml", key="backup.root")
    """

    def __init__(
        self,
        message: str,
        config_file: Optional[str] = None,
        key: Optional[str] = None,
        details: Optional[dict] = None,
    ):
        self.config_file = config_file
        self.key = key
        details = details or {}
        if config_file:
            details["config_file"] = config_file
        if key:
            details["key"] = key
        super().__init__(message, details)


# === Utility Functions ===

def format_error_for_log(error: Exception) -> str:
    """
    Форматирует ошибку для вывода в лог.

    Args:
        error: Исключение

    Returns:
        str: Отформатированная строка ошибки
    """
    if isinstance(error, DeployerError):
        return str(error)
    return f"{error.__class__.__name__}: {error}"
