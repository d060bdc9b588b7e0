"""
Инвентарь устройств.

Формат inventory.yaml:

    devices:
      - name: core-router-nyc-01
        host: 10.0.0.1
        platform: cisco_iosxe
        role: core
        groups:
          location: nyc
        vars:
          ntp_server: 10.10.0.1

Выбор целей (--target):
- all: все устройства
- имя устройства: core-router-nyc-01
- значение группы или роль: nyc, core
- список через запятую: nyc,tokyo
"""

import logging
from pathlib import Path
from typing import List, Sequence, Union

import yaml

from .device import Device
from .exceptions import ConfigError

logger = logging.getLogger(__name__)

ALL_TARGETS = "all"


def load_inventory(path: Union[str, Path]) -> List[Device]:
    """
    Загружает устройства из YAML.

    Args:
        path: Путь к inventory.yaml

    Returns:
        List[Device]: Устройства в порядке файла

    Raises:
        ConfigError: Файл не найден, некорректный YAML, повторяющиеся имена
    """
    path = Path(path)
    if not path.exists():
        raise ConfigError(f"Файл инвентаря не найден: {path}", config_file=str(path))

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Ошибка парсинга YAML: {e}", config_file=str(path)) from e

    if isinstance(data, list):
        entries = data
    elif isinstance(data, dict):
        entries = data.get("devices") or []
    else:
        raise ConfigError(
            f"Ожидался список устройств, получен {type(data).__name__}",
            config_file=str(path),
        )

    devices: List[Device] = []
    seen = set()
    for idx, entry in enumerate(entries):
        if not isinstance(entry, dict):
            raise ConfigError(
                f"Элемент #{idx}: ожидался dict, получен {type(entry).__name__}",
                config_file=str(path),
            )
        try:
            device = Device.from_dict(entry)
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Элемент #{idx}: {e}", config_file=str(path)) from e

        if device.name in seen:
            raise ConfigError(
                f"Устройство {device.name} указано дважды",
                config_file=str(path),
            )
        seen.add(device.name)
        devices.append(device)

    logger.info(f"Загружено устройств: {len(devices)}")
    return devices


def select_targets(devices: Sequence[Device], selector: str) -> List[Device]:
    """
    Выбирает устройства по селектору.

    Порядок результата совпадает с порядком инвентаря.

    Raises:
        ConfigError: Часть селектора не совпала ни с одним устройством
    """
    selector = (selector or ALL_TARGETS).strip()
    if selector == ALL_TARGETS:
        return list(devices)

    wanted = [part.strip() for part in selector.split(",") if part.strip()]
    matched = set()
    for part in wanted:
        hits = {
            d.name for d in devices
            if d.name == part or part in d.group_values()
        }
        if not hits:
            raise ConfigError(f"Цель '{part}' не совпала ни с одним устройством")
        matched |= hits

    return [d for d in devices if d.name in matched]
