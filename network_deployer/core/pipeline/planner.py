"""
BatchPlanner — разбиение устройств на батчи.

Батчи выполняются строго последовательно, устройства внутри батча —
параллельно. Порядок батчей и устройств совпадает с входным: оператор
следит за ходом выката по номеру батча.
"""

from dataclasses import dataclass
from typing import List, Sequence, Tuple

from ..device import Device


@dataclass(frozen=True)
class Batch:
    """
    Батч устройств.

    Attributes:
        index: Номер батча (с 1)
        devices: Устройства батча
    """
    index: int
    devices: Tuple[Device, ...]

    def __len__(self) -> int:
        return len(self.devices)

    @property
    def device_names(self) -> List[str]:
        return [d.name for d in self.devices]


class BatchPlanner:
    """
    Разбиение набора устройств на упорядоченные батчи.

    Example:
        batches = BatchPlanner().plan(devices, batch_size=10)
        # 23 устройства -> батчи по 10, 10, 3
    """

    def plan(self, devices: Sequence[Device], batch_size: int) -> List[Batch]:
        """
        Args:
            devices: Устройства (порядок сохраняется)
            batch_size: Размер батча (> 0)

        Returns:
            List[Batch]: Батчи; все полные, кроме, возможно, последнего

        Raises:
            ValueError: batch_size <= 0 или повторяющиеся устройства
        """
        if batch_size <= 0:
            raise ValueError(f"batch_size должен быть > 0, получен {batch_size}")

        seen = set()
        for device in devices:
            if device.name in seen:
                raise ValueError(f"Устройство {device.name} указано дважды")
            seen.add(device.name)

        devices = list(devices)
        return [
            Batch(index=number, devices=tuple(devices[start:start + batch_size]))
            for number, start in enumerate(range(0, len(devices), batch_size), 1)
        ]
