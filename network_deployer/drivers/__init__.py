"""
Драйверы устройств.

- DeviceDriver: интерфейс, через который ядро работает с устройствами
- SSHDriver: Scrapli (чтение) + Netmiko (применение)
"""

from .base import DeviceDriver, DriverSession
from .ssh import SSHDriver, prepare_commands

__all__ = ["DeviceDriver", "DriverSession", "SSHDriver", "prepare_commands"]
