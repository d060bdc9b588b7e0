"""
Интерфейс драйвера устройства.

Ядро оркестрации работает с устройствами только через DeviceDriver.
Реализация для SSH (Scrapli + Netmiko) — drivers/ssh.py,
тестовая — tests/conftest.py (FakeDriver).

Ошибки драйвера:
- UnreachableError: устройство не ответило за timeout
- AuthenticationError: неверные учётные данные
- DriverRejectedError: устройство отвергло конфигурацию
- DriverTimeoutError: операция не завершилась за timeout
- CommandError: show-команда вернула ошибку

Реализация обязана быть потокобезопасной: один экземпляр драйвера
используется параллельно для всех устройств батча.
"""

from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Generator, Optional

from ..core.device import Device
from ..core.models import SnapshotKind


@dataclass
class DriverSession:
    """
    Открытая сессия с устройством.

    Attributes:
        device: Устройство
        handle: Объект подключения реализации (Scrapli, ...)
        opened_at: Время открытия
    """
    device: Device
    handle: Any = None
    opened_at: datetime = field(default_factory=datetime.now)


class DeviceDriver(ABC):
    """Абстрактный драйвер устройства."""

    name = "base"

    @abstractmethod
    def connect(self, device: Device, timeout: Optional[float] = None) -> DriverSession:
        """
        Открывает сессию.

        Args:
            device: Устройство
            timeout: Таймаут достижимости (секунды)

        Returns:
            DriverSession: Открытая сессия

        Raises:
            UnreachableError: Устройство не ответило за timeout
            AuthenticationError: Ошибка аутентификации
        """

    @abstractmethod
    def get_config(self, session: DriverSession, kind: SnapshotKind) -> Optional[str]:
        """
        Текущая конфигурация устройства как есть.

        Returns:
            str или None: Текст (None если у платформы нет такого типа)
        """

    @abstractmethod
    def apply(self, session: DriverSession, payload: str, replace: bool = False) -> str:
        """
        Применяет конфигурацию.

        Args:
            session: Открытая сессия
            payload: Текст конфигурации
            replace: Полная замена (восстановление снапшота) вместо merge

        Returns:
            str: Вывод устройства

        Raises:
            DriverRejectedError: Устройство отвергло конфигурацию
            DriverTimeoutError: Нет ответа за timeout
        """

    @abstractmethod
    def run_command(
        self,
        session: DriverSession,
        command: str,
        timeout: Optional[float] = None,
    ) -> str:
        """Выполняет show-команду и возвращает вывод."""

    def get_device_info(self, session: DriverSession) -> Dict[str, Any]:
        """Сведения об устройстве для снапшота (версия ПО и т.п.)."""
        return {}

    @abstractmethod
    def close(self, session: DriverSession) -> None:
        """Закрывает сессию. Не выбрасывает исключений."""

    @contextmanager
    def session(
        self,
        device: Device,
        timeout: Optional[float] = None,
    ) -> Generator[DriverSession, None, None]:
        """
        Сессия как контекстный менеджер.

        Example:
            with driver.session(device, timeout=30) as s:
                text = driver.get_config(s, SnapshotKind.RUNNING)
        """
        session = self.connect(device, timeout)
        try:
            yield session
        finally:
            self.close(session)
