"""
Модуль SSH подключений через Scrapli.

ConnectionManager используется драйвером для чтения с устройства:
- открытие сессии с таймаутом достижимости
- show-команды (конфигурация, проверки, версия)
- маппинг ошибок Scrapli в типизированные исключения

Запись конфигурации идёт через Netmiko (configurator/base.py).

Пример использования:
    manager = ConnectionManager(transport="system")
    with manager.connect(device, credentials, timeout=30) as conn:
        output = manager.send_command(conn, "show running-config", device=device.name)
"""

import logging
import re
from contextlib import contextmanager
from typing import Optional, Generator, Any, Dict

from scrapli import Scrapli
from scrapli.exceptions import (
    ScrapliTimeout,
    ScrapliAuthenticationFailed,
    ScrapliConnectionError,
)

from .constants import get_scrapli_platform
from .device import Device
from .credentials import Credentials
from .exceptions import (
    UnreachableError,
    AuthenticationError,
    DriverTimeoutError,
    CommandError,
)

logger = logging.getLogger(__name__)


class ConnectionManager:
    """
    Менеджер SSH подключений через Scrapli.

    Attributes:
        timeout_socket: Таймаут сокета по умолчанию (секунды)
        timeout_transport: Таймаут транспорта по умолчанию (секунды)
        timeout_ops: Таймаут операций по умолчанию (секунды)
        transport: Тип транспорта (system, ssh2, paramiko, telnet)

    Example:
        manager = ConnectionManager(timeout_socket=15)
        conn = manager.open(device, creds, timeout=30)
        try:
            result = manager.send_command(conn, "show version")
        finally:
            manager.close(conn)
    """

    def __init__(
        self,
        timeout_socket: int = 15,
        timeout_transport: int = 30,
        timeout_ops: int = 60,
        transport: str = "system",
    ):
        self.timeout_socket = timeout_socket
        self.timeout_transport = timeout_transport
        self.timeout_ops = timeout_ops
        self.transport = transport

    def _build_connection_params(
        self,
        device: Device,
        credentials: Credentials,
        timeout: Optional[float] = None,
    ) -> Dict[str, Any]:
        """
        Параметры подключения для Scrapli.

        Args:
            device: Устройство
            credentials: Учётные данные
            timeout: Таймаут достижимости (перекрывает socket/transport)

        Returns:
            Dict: Параметры для Scrapli(**params)
        """
        params = {
            "host": device.host,
            "auth_username": credentials.username,
            "auth_password": credentials.password,
            "platform": get_scrapli_platform(device.platform),
            "transport": self.transport,
            "auth_strict_key": False,
            "timeout_socket": timeout or self.timeout_socket,
            "timeout_transport": timeout or self.timeout_transport,
            "timeout_ops": self.timeout_ops,
        }

        if credentials.secret:
            params["auth_secondary"] = credentials.secret

        if device.port and device.port != 22:
            params["port"] = device.port

        return params

    def open(
        self,
        device: Device,
        credentials: Credentials,
        timeout: Optional[float] = None,
    ) -> Scrapli:
        """
        Открывает подключение к устройству.

        Args:
            device: Устройство
            credentials: Учётные данные
            timeout: Таймаут достижимости (секунды)

        Returns:
            Scrapli: Открытое подключение

        Raises:
            UnreachableError: Устройство не ответило или соединение разорвано
            AuthenticationError: Ошибка аутентификации
        """
        params = self._build_connection_params(device, credentials, timeout)

        logger.debug(f"Подключение к {device.display_name}...")
        connection = Scrapli(**params)
        try:
            connection.open()

        except ScrapliAuthenticationFailed as e:
            raise AuthenticationError(
                f"Ошибка аутентификации: {e}",
                device=device.name,
            ) from e

        except ScrapliTimeout as e:
            raise UnreachableError(
                f"Таймаут подключения: {e}",
                device=device.name,
                port=device.port,
            ) from e

        except (ScrapliConnectionError, OSError) as e:
            raise UnreachableError(
                f"Ошибка подключения: {e}",
                device=device.name,
                port=device.port,
            ) from e

        logger.debug(f"Подключено к {device.display_name}")
        return connection

    def close(self, connection: Scrapli, device_name: str = "") -> None:
        """Закрывает подключение. Ошибки закрытия только логируются."""
        try:
            connection.close()
        except (ScrapliConnectionError, OSError) as e:
            logger.debug(f"{device_name}: ошибка при закрытии сессии: {e}")

    @contextmanager
    def connect(
        self,
        device: Device,
        credentials: Credentials,
        timeout: Optional[float] = None,
    ) -> Generator[Scrapli, None, None]:
        """
        Контекстный менеджер подключения.

        Yields:
            Scrapli: Активное подключение
        """
        connection = self.open(device, credentials, timeout)
        try:
            yield connection
        finally:
            self.close(connection, device.name)

    @staticmethod
    def get_hostname(connection: Scrapli) -> str:
        """
        Hostname устройства из prompt.

        Returns:
            str: Hostname или "Unknown"
        """
        try:
            prompt = connection.get_prompt()
        except (ScrapliTimeout, ScrapliConnectionError) as e:
            logger.warning(f"Не удалось получить hostname: {e}")
            return "Unknown"
        hostname = re.sub(r"[#>$\s]+$", "", prompt).strip()
        return hostname or "Unknown"

    def send_command(
        self,
        connection: Scrapli,
        command: str,
        timeout: Optional[float] = None,
        device: str = "",
    ) -> str:
        """
        Выполняет show-команду.

        Args:
            connection: Активное подключение
            command: Команда
            timeout: Таймаут выполнения (секунды)
            device: Имя устройства (для ошибок)

        Returns:
            str: Вывод команды

        Raises:
            DriverTimeoutError: Команда не завершилась за timeout
            CommandError: Устройство вернуло ошибку
            UnreachableError: Соединение потеряно
        """
        logger.debug(f"{device}: выполнение команды: {command}")

        try:
            if timeout:
                response = connection.send_command(command, timeout_ops=timeout)
            else:
                response = connection.send_command(command)
        except ScrapliTimeout as e:
            raise DriverTimeoutError(
                f"Таймаут команды '{command}': {e}",
                device=device,
                timeout_seconds=timeout or self.timeout_ops,
            ) from e
        except ScrapliConnectionError as e:
            raise UnreachableError(
                f"Соединение потеряно: {e}",
                device=device,
            ) from e

        if response.failed:
            raise CommandError(
                "Устройство вернуло ошибку",
                device=device,
                command=command,
                output=response.result,
            )

        return response.result
