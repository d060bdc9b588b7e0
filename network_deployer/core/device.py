"""
Модуль представления сетевого устройства.

Device — запись инвентаря, только для чтения:
- Идентичность (name — hostname, host — адрес управления)
- Роль (core/edge/access/...)
- Группы (location, device_type и т.д.)
- Возможности (reachable, applied_version)
- Переменные для шаблонов (vars)

Ядро оркестрации никогда не изменяет Device. Состояние выполнения
живёт в ChangeOutcome.

Пример использования:
    device = Device(
        name="core-router-nyc-01",
        host="10.0.0.1",
        platform="cisco_iosxe",
        role="core",
        groups={"location": "nyc", "device_type": "router"},
    )
"""

import logging
from dataclasses import dataclass, field
from typing import Optional, Dict, Any, List

from .constants import DEFAULT_PLATFORM, get_vendor_by_platform

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Device:
    """
    Представление сетевого устройства.

    Attributes:
        name: Hostname устройства (ключ идентичности)
        host: IP-адрес или DNS-имя для подключения
        platform: Платформа (cisco_iosxe, arista_eos, juniper_junos, ...)
        role: Роль устройства (core, edge, access, ...)
        groups: Принадлежность к группам {"location": "nyc", ...}
        port: SSH порт
        vars: Переменные устройства для шаблонов
        reachable: Подсказка инвентаря о доступности
        applied_version: Версия применённой конфигурации (если известна)

    Example:
        device = Device(name="sw1", host="10.0.0.1")
        print(device.vendor)  # "cisco"
    """

    name: str
    host: str
    platform: str = DEFAULT_PLATFORM
    role: Optional[str] = None
    groups: Dict[str, str] = field(default_factory=dict)
    port: int = 22
    vars: Dict[str, Any] = field(default_factory=dict)
    reachable: bool = True
    applied_version: Optional[str] = None

    @property
    def vendor(self) -> str:
        """Вендор по платформе."""
        return get_vendor_by_platform(self.platform)

    @property
    def display_name(self) -> str:
        """Отображаемое имя устройства."""
        if self.name != self.host:
            return f"{self.name} ({self.host})"
        return self.name

    def group_values(self) -> List[str]:
        """Значения всех групп и роль — для выбора целей."""
        values = [str(v) for v in self.groups.values()]
        if self.role:
            values.append(self.role)
        return values

    def template_context(self) -> Dict[str, Any]:
        """
        Контекст устройства для рендеринга шаблонов.

        Returns:
            Dict: {"device": {...}, **vars}
        """
        return {
            "device": {
                "name": self.name,
                "host": self.host,
                "platform": self.platform,
                "role": self.role,
                "groups": dict(self.groups),
            },
            **self.vars,
        }

    def __str__(self) -> str:
        return self.display_name

    @classmethod
    def from_dict(cls, data: dict) -> "Device":
        """
        Создаёт Device из словаря (запись inventory.yaml).

        Args:
            data: Словарь с параметрами устройства

        Returns:
            Device: Экземпляр устройства

        Raises:
            ValueError: Если нет ни name, ни host
        """
        name = data.get("name") or data.get("hostname") or data.get("host")
        host = data.get("host") or data.get("ip") or name
        if not name:
            raise ValueError("Устройство без 'name' и 'host'")

        platform = data.get("platform")
        if not platform:
            logger.debug(f"{name}: platform не указан, используется '{DEFAULT_PLATFORM}'")
            platform = DEFAULT_PLATFORM

        return cls(
            name=name,
            host=host,
            platform=platform,
            role=data.get("role"),
            groups=dict(data.get("groups") or {}),
            port=int(data.get("port", 22)),
            vars=dict(data.get("vars") or {}),
            reachable=bool(data.get("reachable", True)),
            applied_version=data.get("applied_version"),
        )
