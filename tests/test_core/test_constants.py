"""
Тесты маппинга платформ и команд в core/constants.py.

Тестируем:
- платформа -> драйвер Scrapli / device_type Netmiko / платформа NTC Templates
- платформа -> вендор
- команды получения running/startup конфигурации
"""

import pytest

from network_deployer.core.constants import (
    get_config_command,
    get_netmiko_platform,
    get_ntc_platform,
    get_scrapli_platform,
    get_vendor_by_platform,
)


class TestPlatformMapping:
    """Маппинг платформ для Scrapli и Netmiko."""

    @pytest.mark.parametrize("platform,expected", [
        ("cisco_iosxe", "cisco_iosxe"),
        ("cisco_ios", "cisco_iosxe"),
        ("CISCO_NXOS", "cisco_nxos"),
        ("juniper", "juniper_junos"),
        ("qtech", "cisco_iosxe"),
        ("unknown_os", "cisco_iosxe"),
        ("", "cisco_iosxe"),
    ])
    def test_scrapli(self, platform, expected):
        assert get_scrapli_platform(platform) == expected

    @pytest.mark.parametrize("platform,expected", [
        ("cisco_iosxe", "cisco_ios"),
        ("cisco_iosxr", "cisco_xr"),
        ("arista_eos", "arista_eos"),
        ("qtech_qsw", "cisco_ios"),
        # Неизвестная платформа передаётся Netmiko как есть
        ("hp_procurve", "hp_procurve"),
        ("", "cisco_ios"),
    ])
    def test_netmiko(self, platform, expected):
        assert get_netmiko_platform(platform) == expected


class TestVendor:

    @pytest.mark.parametrize("platform,expected", [
        ("cisco_iosxe", "cisco"),
        ("arista_eos", "arista"),
        ("juniper", "juniper"),
        ("huawei_vrp", "huawei"),
        ("", "unknown"),
    ])
    def test_vendor(self, platform, expected):
        assert get_vendor_by_platform(platform) == expected


class TestConfigCommands:

    def test_running_and_startup(self):
        assert get_config_command("cisco_iosxe") == "show running-config"
        assert get_config_command("cisco_iosxe", startup=True) == "show startup-config"

    def test_platform_without_startup(self):
        assert get_config_command("cisco_iosxr", startup=True) is None
        assert get_config_command("juniper_junos") == "show configuration | display set"

    def test_unknown_platform_defaults(self):
        assert get_config_command("mikrotik_routeros") == "show running-config"
        assert get_config_command(None, startup=True) == "show startup-config"


class TestNtcPlatform:
    """Платформа -> платформа NTC Templates."""

    @pytest.mark.parametrize("platform,expected", [
        ("cisco_iosxe", "cisco_ios"),
        ("cisco_iosxr", "cisco_xr"),
        ("CISCO_NXOS", "cisco_nxos"),
        # Через драйвер Scrapli
        ("juniper", "juniper_junos"),
        ("unknown_os", "cisco_ios"),
        ("", "cisco_ios"),
    ])
    def test_ntc(self, platform, expected):
        assert get_ntc_platform(platform) == expected
