"""
Применение конфигурации на устройстве через Netmiko.

ConfigPusher отправляет набор команд в config-режим и сохраняет
конфигурацию. Повторяются только ошибки подключения: после того как
команды ушли на устройство, повтор не выполняется.

Пример использования:
    pusher = ConfigPusher(credentials, max_retries=1)

    result = pusher.push_config(device, [
        "ntp server 10.10.0.1",
        "ntp server 10.10.0.2",
    ])
    if not result.success:
        print(result.error_type, result.error)
"""

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import List, Dict, Any, Optional

from netmiko import ConnectHandler
from netmiko.exceptions import (
    NetmikoTimeoutException,
    NetmikoAuthenticationException,
    ReadTimeout,
)

from ..core.device import Device
from ..core.credentials import Credentials
from ..core.constants import CONFIG_ERROR_MARKERS, get_netmiko_platform

logger = logging.getLogger(__name__)


class PushErrorType(str, Enum):
    """Категория ошибки применения."""
    TIMEOUT = "timeout"            # Подключение не установлено за timeout
    AUTH = "auth"                  # Неверные учётные данные
    REJECTED = "rejected"          # Устройство отвергло команды
    READ_TIMEOUT = "read_timeout"  # Команды отправлены, ответа нет
    ERROR = "error"                # Прочее


@dataclass
class ConfigResult:
    """Результат применения конфигурации."""
    success: bool
    device: str
    commands_sent: int
    output: str = ""
    error: str = ""
    error_type: Optional[PushErrorType] = None
    attempts: int = 1


def find_error_marker(output: str) -> Optional[str]:
    """
    Ищет в выводе config-режима маркер ошибки.

    Returns:
        str или None: Строка вывода с ошибкой
    """
    for line in output.splitlines():
        for marker in CONFIG_ERROR_MARKERS:
            if marker.lower() in line.lower():
                return line.strip()
    return None


class ConfigPusher:
    """
    Применение конфигурационных команд через Netmiko.

    Attributes:
        credentials: Учётные данные
        timeout: Таймаут подключения (секунды)
        read_timeout: Таймаут ожидания вывода команд (секунды)
        save_config: Сохранять конфигурацию после изменений
        max_retries: Повторы при ошибке подключения
        retry_delay: Пауза между повторами (секунды)

    Example:
        pusher = ConfigPusher(credentials)

        # Только показать команды
        result = pusher.push_config(device, commands, dry_run=True)

        # Применить
        result = pusher.push_config(device, commands)
    """

    def __init__(
        self,
        credentials: Credentials,
        timeout: int = 30,
        read_timeout: int = 120,
        save_config: bool = True,
        max_retries: int = 0,
        retry_delay: float = 5,
    ):
        self.credentials = credentials
        self.timeout = timeout
        self.read_timeout = read_timeout
        self.save_config = save_config
        self.max_retries = max_retries
        self.retry_delay = retry_delay

    def _build_connection_params(self, device: Device) -> Dict[str, Any]:
        """Параметры подключения для Netmiko."""
        params = {
            "device_type": get_netmiko_platform(device.platform),
            "host": device.host,
            "username": self.credentials.username,
            "password": self.credentials.password,
            "timeout": self.timeout,
        }

        if self.credentials.secret:
            params["secret"] = self.credentials.secret

        if device.port and device.port != 22:
            params["port"] = device.port

        return params

    def _connect(self, device: Device):
        """
        Подключение с повторами.

        Returns:
            tuple: (ConnectHandler или None, ConfigResult с ошибкой или None, attempts)
        """
        params = self._build_connection_params(device)
        attempts = self.max_retries + 1
        last_error: Optional[ConfigResult] = None

        for attempt in range(1, attempts + 1):
            try:
                logger.debug(f"{device.name}: подключение Netmiko (попытка {attempt}/{attempts})")
                return ConnectHandler(**params), None, attempt

            except NetmikoAuthenticationException as e:
                # Повтор не поможет
                return None, ConfigResult(
                    success=False,
                    device=device.name,
                    commands_sent=0,
                    error=f"Ошибка аутентификации: {e}",
                    error_type=PushErrorType.AUTH,
                    attempts=attempt,
                ), attempt

            except NetmikoTimeoutException as e:
                last_error = ConfigResult(
                    success=False,
                    device=device.name,
                    commands_sent=0,
                    error=f"Таймаут подключения: {e}",
                    error_type=PushErrorType.TIMEOUT,
                    attempts=attempt,
                )

            except Exception as e:
                last_error = ConfigResult(
                    success=False,
                    device=device.name,
                    commands_sent=0,
                    error=f"Ошибка подключения: {e}",
                    error_type=PushErrorType.TIMEOUT,
                    attempts=attempt,
                )

            if attempt < attempts:
                logger.warning(
                    f"{device.name}: {last_error.error}, повтор через {self.retry_delay}с "
                    f"({attempt}/{self.max_retries})"
                )
                time.sleep(self.retry_delay)

        logger.error(f"{device.name}: {last_error.error}")
        return None, last_error, attempts

    def push_config(
        self,
        device: Device,
        commands: List[str],
        dry_run: bool = False,
    ) -> ConfigResult:
        """
        Применяет конфигурационные команды на устройстве.

        Args:
            device: Устройство
            commands: Конфигурационные команды
            dry_run: Только показать команды

        Returns:
            ConfigResult: Результат применения
        """
        if not commands:
            return ConfigResult(
                success=True,
                device=device.name,
                commands_sent=0,
                output="Нет команд для применения",
            )

        if dry_run:
            logger.info(f"[DRY RUN] {device.name}: {len(commands)} команд")
            for cmd in commands:
                logger.debug(f"  {cmd}")
            return ConfigResult(
                success=True,
                device=device.name,
                commands_sent=len(commands),
                output="[DRY RUN] Команды не применены",
            )

        conn, error, attempts = self._connect(device)
        if error:
            return error

        try:
            with conn as handle:
                if self.credentials.secret:
                    handle.enable()

                output = handle.send_config_set(commands, read_timeout=self.read_timeout)

                bad_line = find_error_marker(output)
                if bad_line:
                    logger.error(f"{device.name}: устройство отвергло конфигурацию: {bad_line}")
                    return ConfigResult(
                        success=False,
                        device=device.name,
                        commands_sent=len(commands),
                        output=output,
                        error=f"Конфигурация отвергнута: {bad_line}",
                        error_type=PushErrorType.REJECTED,
                        attempts=attempts,
                    )

                if self.save_config:
                    save_output = handle.save_config()
                    output += f"\n{save_output}"

                logger.info(f"{device.name}: применено {len(commands)} команд")
                return ConfigResult(
                    success=True,
                    device=device.name,
                    commands_sent=len(commands),
                    output=output,
                    attempts=attempts,
                )

        except ReadTimeout as e:
            logger.error(f"{device.name}: нет ответа после отправки команд: {e}")
            return ConfigResult(
                success=False,
                device=device.name,
                commands_sent=len(commands),
                error=f"Таймаут ожидания вывода: {e}",
                error_type=PushErrorType.READ_TIMEOUT,
                attempts=attempts,
            )

        except Exception as e:
            logger.error(f"{device.name}: ошибка применения: {e}")
            return ConfigResult(
                success=False,
                device=device.name,
                commands_sent=len(commands),
                error=f"Ошибка: {e}",
                error_type=PushErrorType.ERROR,
                attempts=attempts,
            )
