"""
Константы: маппинг платформ и команды по вендорам.

Scrapli (чтение), Netmiko (применение конфигурации), NTC Templates (разбор вывода).
"""

from typing import Dict, List, Tuple

DEFAULT_PLATFORM = "cisco_iosxe"

# =============================================================================
# МАППИНГ ПЛАТФОРМ
# =============================================================================

# Маппинг платформ для Scrapli
SCRAPLI_PLATFORM_MAP: Dict[str, str] = {
    # Cisco
    "cisco_ios": "cisco_iosxe",
    "cisco_iosxe": "cisco_iosxe",
    "cisco_nxos": "cisco_nxos",
    "cisco_iosxr": "cisco_iosxr",
    # Arista
    "arista_eos": "arista_eos",
    # Juniper
    "juniper_junos": "juniper_junos",
    "juniper": "juniper_junos",
    # QTech (используем generic для совместимости)
    "qtech": "cisco_iosxe",
    "qtech_qsw": "cisco_iosxe",
}

# Маппинг для Netmiko (используется в ConfigPusher)
# Netmiko не знает cisco_iosxe - использует cisco_ios для IOS/IOS-XE
NETMIKO_PLATFORM_MAP: Dict[str, str] = {
    "cisco_iosxe": "cisco_ios",
    "cisco_ios": "cisco_ios",
    "cisco_nxos": "cisco_nxos",
    "cisco_iosxr": "cisco_xr",
    "arista_eos": "arista_eos",
    "juniper_junos": "juniper_junos",
    "juniper": "juniper_junos",
    "qtech": "cisco_ios",
    "qtech_qsw": "cisco_ios",
}

# Маппинг для NTC Templates (разбор вывода show-команд)
NTC_PLATFORM_MAP: Dict[str, str] = {
    "cisco_iosxe": "cisco_ios",
    "cisco_ios": "cisco_ios",
    "cisco_nxos": "cisco_nxos",
    "cisco_iosxr": "cisco_xr",
    "arista_eos": "arista_eos",
    "juniper_junos": "juniper_junos",
    "qtech": "cisco_ios",
    "qtech_qsw": "cisco_ios",
}

# Маппинг вендоров по платформе
VENDOR_MAP: Dict[str, List[str]] = {
    "cisco": [
        "cisco_ios",
        "cisco_iosxe",
        "cisco_iosxr",
        "cisco_nxos",
    ],
    "arista": ["arista_eos"],
    "juniper": ["juniper", "juniper_junos"],
    "qtech": ["qtech", "qtech_qsw"],
}

# =============================================================================
# КОМАНДЫ
# =============================================================================

# Команды для получения конфигурации: platform -> (running, startup)
# None означает, что у платформы нет отдельной startup-конфигурации
CONFIG_COMMANDS: Dict[str, Tuple[str, object]] = {
    "cisco_ios": ("show running-config", "show startup-config"),
    "cisco_iosxe": ("show running-config", "show startup-config"),
    "cisco_nxos": ("show running-config", "show startup-config"),
    "cisco_iosxr": ("show running-config", None),
    "arista_eos": ("show running-config", "show startup-config"),
    "juniper_junos": ("show configuration | display set", None),
    "juniper": ("show configuration | display set", None),
    "qtech": ("show running-config", "show startup-config"),
    "qtech_qsw": ("show running-config", "show startup-config"),
}

DEFAULT_CONFIG_COMMANDS = ("show running-config", "show startup-config")

# Команда для сведений об устройстве (версия ПО)
VERSION_COMMANDS: Dict[str, str] = {
    "juniper_junos": "show version",
    "juniper": "show version",
}

DEFAULT_VERSION_COMMAND = "show version"

# Команда для списка интерфейсов (сведения снапшота)
INTERFACE_COMMANDS: Dict[str, str] = {
    "cisco_nxos": "show interface brief",
    "juniper_junos": "show interfaces terse",
    "juniper": "show interfaces terse",
}

DEFAULT_INTERFACE_COMMAND = "show ip interface brief"

# Маркеры ошибок в выводе config-режима.
# Если вывод содержит один из них, устройство отвергло конфигурацию.
CONFIG_ERROR_MARKERS: List[str] = [
    "% Invalid input",
    "% Incomplete command",
    "% Ambiguous command",
    "% Unknown command",
    "% Error",
    "syntax error",
    "error: configuration check-out failed",
]

# Строки из вывода "show running-config", которые нельзя отправлять обратно
# в config-режим при восстановлении
CONFIG_NOISE_PREFIXES: Tuple[str, ...] = (
    "Building configuration",
    "Current configuration",
    "Last configuration change",
    "NVRAM config last updated",
    "!Time:",
    "!Command:",
    "version ",
    "end",
)


def get_vendor_by_platform(platform: str) -> str:
    """
    Определяет вендора по платформе.

    Args:
        platform: Платформа устройства (cisco_ios, arista_eos, etc.)

    Returns:
        str: Название вендора
    """
    if not platform:
        return "unknown"

    platform_lower = platform.lower()
    for vendor, platforms in VENDOR_MAP.items():
        if platform_lower in platforms:
            return vendor

    # Пробуем извлечь из platform
    return platform.split("_")[0]


def get_scrapli_platform(platform: str) -> str:
    """
    Преобразует платформу устройства в драйвер Scrapli.

    Args:
        platform: Платформа устройства

    Returns:
        str: Драйвер для Scrapli
    """
    if not platform:
        return "cisco_iosxe"
    return SCRAPLI_PLATFORM_MAP.get(platform.lower(), "cisco_iosxe")


def get_ntc_platform(platform: str) -> str:
    """
    Преобразует платформу устройства в формат NTC Templates.

    Args:
        platform: Платформа устройства

    Returns:
        str: Платформа для NTC Templates
    """
    if not platform:
        return "cisco_ios"

    # Сначала пробуем прямое соответствие
    if platform.lower() in NTC_PLATFORM_MAP:
        return NTC_PLATFORM_MAP[platform.lower()]

    # Пробуем через Scrapli платформу
    return NTC_PLATFORM_MAP.get(get_scrapli_platform(platform), "cisco_ios")


def get_netmiko_platform(platform: str) -> str:
    """
    Преобразует платформу устройства в device_type Netmiko.

    Args:
        platform: Платформа устройства

    Returns:
        str: device_type для ConnectHandler
    """
    if not platform:
        return "cisco_ios"
    return NETMIKO_PLATFORM_MAP.get(platform.lower(), platform.lower())


def get_config_command(platform: str, startup: bool = False):
    """
    Команда получения конфигурации для платформы.

    Args:
        platform: Платформа устройства
        startup: True — startup-config, False — running-config

    Returns:
        str или None: Команда (None если у платформы нет startup-config)
    """
    running, startup_cmd = CONFIG_COMMANDS.get(
        (platform or "").lower(), DEFAULT_CONFIG_COMMANDS
    )
    return startup_cmd if startup else running
