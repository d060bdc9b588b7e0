"""
SSH драйвер: Scrapli для чтения, Netmiko для записи.

Чтение (конфигурация, проверки, версия) идёт через открытую сессию
Scrapli. Применение конфигурации — через ConfigPusher (Netmiko),
который открывает своё подключение.
Вывод show version и списка интерфейсов для сведений снапшота
разбирается шаблонами NTC Templates.

Ограничение replace: на CLI-платформах полная замена выполняется
отправкой всех строк снапшота в config-режим. Строки, добавленные
после снапшота и отсутствующие в нём, не удаляются.
"""

import logging
from typing import Any, Dict, List, Optional, Sequence

from ntc_templates.parse import parse_output

from .base import DeviceDriver, DriverSession
from ..configurator.base import ConfigPusher, PushErrorType
from ..core.connection import ConnectionManager
from ..core.constants import (
    CONFIG_NOISE_PREFIXES,
    DEFAULT_INTERFACE_COMMAND,
    DEFAULT_VERSION_COMMAND,
    INTERFACE_COMMANDS,
    VERSION_COMMANDS,
    get_config_command,
    get_ntc_platform,
)
from ..core.credentials import Credentials
from ..core.device import Device
from ..core.exceptions import (
    AuthenticationError,
    CommandError,
    DeviceError,
    DriverRejectedError,
    DriverTimeoutError,
    UnreachableError,
)
from ..core.models import SnapshotKind

logger = logging.getLogger(__name__)

# Поле сведений -> возможные имена колонок шаблонов NTC для разных платформ
DEVICE_INFO_FIELDS: Dict[str, Sequence[str]] = {
    "version": ("version", "software_version", "os", "junos_version"),
    "hardware": ("hardware", "platform", "model", "chassis"),
    "serial": ("serial", "serial_number", "sn"),
    "uptime": ("uptime", "uptime_string"),
}

INTERFACE_FIELDS: Dict[str, Sequence[str]] = {
    "name": ("interface", "intf", "port"),
    "status": ("status", "link_status", "link"),
    "ip_address": ("ip_address", "ipaddr", "local"),
}


def _first_value(row: Dict[str, Any], aliases: Sequence[str]) -> Any:
    """Первое непустое значение из колонок-синонимов (списки -> первый элемент)."""
    for alias in aliases:
        value = row.get(alias)
        if isinstance(value, list):
            value = value[0] if value else None
        if value:
            return value
    return None


def prepare_commands(payload: str, replace: bool = False) -> List[str]:
    """
    Превращает текст конфигурации в список команд config-режима.

    Пустые строки отбрасываются. Для replace дополнительно отбрасываются
    комментарии '!' и служебные строки вывода show running-config.

    Args:
        payload: Текст конфигурации
        replace: Текст — снапшот running-config

    Returns:
        List[str]: Команды
    """
    commands = []
    for line in payload.splitlines():
        stripped = line.strip()
        if not stripped:
            continue
        if replace:
            if stripped.startswith("!"):
                continue
            if stripped.startswith(CONFIG_NOISE_PREFIXES) and not line.startswith(" "):
                continue
        commands.append(line.rstrip())
    return commands


class SSHDriver(DeviceDriver):
    """
    Драйвер для CLI-устройств по SSH.

    Attributes:
        credentials: Учётные данные
        manager: ConnectionManager (Scrapli)
        pusher: ConfigPusher (Netmiko)

    Example:
        driver = SSHDriver(credentials, transport="system")
        with driver.session(device, timeout=30) as s:
            print(driver.get_config(s, SnapshotKind.RUNNING))
    """

    name = "ssh"

    def __init__(
        self,
        credentials: Credentials,
        transport: str = "system",
        conn_timeout: int = 10,
        read_timeout: int = 30,
        apply_timeout: int = 120,
        save_config: bool = True,
        max_retries: int = 0,
        retry_delay: float = 5,
    ):
        self.credentials = credentials
        self.manager = ConnectionManager(
            timeout_socket=conn_timeout,
            timeout_transport=conn_timeout,
            timeout_ops=read_timeout,
            transport=transport,
        )
        self.pusher = ConfigPusher(
            credentials,
            timeout=conn_timeout,
            read_timeout=apply_timeout,
            save_config=save_config,
            max_retries=max_retries,
            retry_delay=retry_delay,
        )

    def connect(self, device: Device, timeout: Optional[float] = None) -> DriverSession:
        handle = self.manager.open(device, self.credentials, timeout=timeout)
        return DriverSession(device=device, handle=handle)

    def get_config(self, session: DriverSession, kind: SnapshotKind) -> Optional[str]:
        command = get_config_command(
            session.device.platform, startup=(kind == SnapshotKind.STARTUP)
        )
        if command is None:
            logger.debug(f"{session.device.name}: платформа не поддерживает {kind.value}-config")
            return None
        return self.manager.send_command(
            session.handle, command, device=session.device.name
        )

    def apply(self, session: DriverSession, payload: str, replace: bool = False) -> str:
        device = session.device
        commands = prepare_commands(payload, replace=replace)
        result = self.pusher.push_config(device, commands)

        if result.success:
            return result.output

        if result.error_type == PushErrorType.AUTH:
            raise AuthenticationError(result.error, device=device.name)
        if result.error_type == PushErrorType.TIMEOUT:
            raise UnreachableError(result.error, device=device.name, port=device.port)
        if result.error_type == PushErrorType.READ_TIMEOUT:
            raise DriverTimeoutError(
                result.error,
                device=device.name,
                timeout_seconds=self.pusher.read_timeout,
            )
        if result.error_type == PushErrorType.REJECTED:
            raise DriverRejectedError(result.error, device=device.name, output=result.output)
        raise DeviceError(result.error, device=device.name)

    def run_command(
        self,
        session: DriverSession,
        command: str,
        timeout: Optional[float] = None,
    ) -> str:
        return self.manager.send_command(
            session.handle, command, timeout=timeout, device=session.device.name
        )

    def get_device_info(self, session: DriverSession) -> Dict[str, Any]:
        """
        Сведения об устройстве: hostname, версия ПО, модель, интерфейсы.

        Вывод show version и списка интерфейсов разбирается NTC Templates.
        Если команда или разбор не удались, возвращаются частичные сведения.
        """
        device = session.device
        info: Dict[str, Any] = {
            "platform": device.platform,
            "hostname": self.manager.get_hostname(session.handle),
        }

        command = VERSION_COMMANDS.get(device.platform, DEFAULT_VERSION_COMMAND)
        rows = self._parse_command(session, command)
        if rows:
            parsed = rows[0]
            for key, aliases in DEVICE_INFO_FIELDS.items():
                value = _first_value(parsed, aliases)
                if value:
                    info[key] = value

        command = INTERFACE_COMMANDS.get(device.platform, DEFAULT_INTERFACE_COMMAND)
        rows = self._parse_command(session, command)
        if rows:
            info["interfaces"] = [
                {key: _first_value(row, aliases) for key, aliases in INTERFACE_FIELDS.items()}
                for row in rows
            ]
        return info

    def _parse_command(self, session: DriverSession, command: str) -> List[Dict[str, Any]]:
        """Выполняет show-команду и разбирает вывод через NTC Templates."""
        device = session.device
        try:
            output = self.manager.send_command(session.handle, command, device=device.name)
        except (CommandError, DriverTimeoutError) as e:
            logger.warning(f"{device.name}: не удалось выполнить '{command}': {e}")
            return []
        if not output or not output.strip():
            return []

        ntc_platform = get_ntc_platform(device.platform)
        try:
            parsed = parse_output(platform=ntc_platform, command=command, data=output)
        except Exception as e:
            logger.warning(f"{device.name}: ошибка парсинга {ntc_platform}/{command}: {e}")
            return []

        # Нормализуем структуру (всегда список)
        if isinstance(parsed, dict):
            parsed = [parsed]
        return [
            {str(k).lower(): v for k, v in row.items()}
            for row in parsed or []
            if isinstance(row, dict)
        ]

    def close(self, session: DriverSession) -> None:
        if session.handle is not None:
            self.manager.close(session.handle, session.device.name)
