"""
Pytest configuration и общие fixtures для тестов.

Предоставляет переиспользуемые fixtures:
- FakeDriver: потокобезопасный драйвер в памяти (сценарии ошибок по устройствам)
- make_devices: генерация устройств для батчей
- store: BackupStore во временной папке
- executor / orchestrator: собранный конвейер поверх FakeDriver
"""

import threading
from collections import defaultdict
from typing import Dict, Iterable, List, Optional

import pytest

from network_deployer.backup import BackupStore
from network_deployer.configurator import TemplateRenderer
from network_deployer.core.device import Device
from network_deployer.core.exceptions import (
    CommandError,
    DriverRejectedError,
    UnreachableError,
)
from network_deployer.core.models import SnapshotKind
from network_deployer.core.pipeline import ChangeExecutor, FleetOrchestrator
from network_deployer.drivers import DeviceDriver, DriverSession


def default_config(name: str) -> str:
    return f"hostname {name}\n!\ninterface Loopback0\n ip address 10.255.0.1 255.255.255.255\n!\n"


class FakeDriver(DeviceDriver):
    """
    Драйвер в памяти.

    Running-config хранится по имени устройства; apply (merge) дописывает
    payload в конец, apply с replace заменяет конфигурацию целиком.
    show-команды возвращают running-config, если вывод не задан явно.

    Attributes:
        unreachable: Устройства, к которым нельзя подключиться
        flaky: {device: N} — первые N подключений неуспешны
        reject: Устройства, отвергающие изменения (apply без replace)
        rollback_fails: Устройства, отвергающие восстановление (apply с replace)
        command_outputs: {(device, command): output}
        no_startup: Устройства без startup-config
    """

    name = "fake"

    def __init__(
        self,
        configs: Optional[Dict[str, str]] = None,
        unreachable: Iterable[str] = (),
        flaky: Optional[Dict[str, int]] = None,
        reject: Iterable[str] = (),
        rollback_fails: Iterable[str] = (),
        command_outputs: Optional[Dict[tuple, str]] = None,
        no_startup: Iterable[str] = (),
    ):
        self._lock = threading.Lock()
        self.configs: Dict[str, str] = dict(configs or {})
        self.unreachable = set(unreachable)
        self.flaky = dict(flaky or {})
        self.reject = set(reject)
        self.rollback_fails = set(rollback_fails)
        self.command_outputs = dict(command_outputs or {})
        self.no_startup = set(no_startup)
        self.calls: List[tuple] = []
        self.applied: Dict[str, List[tuple]] = defaultdict(list)
        self.open_sessions = 0
        self.max_open_sessions = 0

    def _record(self, device: str, action: str, detail=None) -> None:
        with self._lock:
            self.calls.append((device, action, detail))

    def running(self, name: str) -> str:
        with self._lock:
            return self.configs.setdefault(name, default_config(name))

    def actions(self, device: str) -> List[str]:
        with self._lock:
            return [action for d, action, _ in self.calls if d == device]

    def connect(self, device: Device, timeout: Optional[float] = None) -> DriverSession:
        self._record(device.name, "connect", timeout)
        with self._lock:
            if self.flaky.get(device.name, 0) > 0:
                self.flaky[device.name] -= 1
                raise UnreachableError("Connection timed out", device=device.name)
        if device.name in self.unreachable:
            raise UnreachableError("Connection timed out", device=device.name)
        with self._lock:
            self.open_sessions += 1
            self.max_open_sessions = max(self.max_open_sessions, self.open_sessions)
        return DriverSession(device=device, handle=object())

    def get_config(self, session: DriverSession, kind: SnapshotKind) -> Optional[str]:
        name = session.device.name
        self._record(name, "get_config", kind.value)
        if kind == SnapshotKind.STARTUP:
            return None if name in self.no_startup else self.running(name)
        return self.running(name)

    def apply(self, session: DriverSession, payload: str, replace: bool = False) -> str:
        name = session.device.name
        self._record(name, "apply", replace)
        if replace and name in self.rollback_fails:
            raise DriverRejectedError("% Invalid input detected", device=name)
        if not replace and name in self.reject:
            raise DriverRejectedError("% Invalid input detected", device=name)
        current = self.running(name)
        with self._lock:
            self.applied[name].append((payload, replace))
            self.configs[name] = payload if replace else current + payload
        return ""

    def run_command(
        self,
        session: DriverSession,
        command: str,
        timeout: Optional[float] = None,
    ) -> str:
        name = session.device.name
        self._record(name, "run_command", command)
        key = (name, command)
        if key in self.command_outputs:
            output = self.command_outputs[key]
            if isinstance(output, Exception):
                raise output
            return output
        if command.startswith("show running-config"):
            return self.running(name)
        raise CommandError("% Invalid input detected", device=name, command=command)

    def get_device_info(self, session: DriverSession):
        return {"hostname": session.device.name, "version": "17.9.4"}

    def close(self, session: DriverSession) -> None:
        self._record(session.device.name, "close")
        with self._lock:
            self.open_sessions -= 1


@pytest.fixture
def make_devices():
    """Генерирует устройства: make_devices(23, prefix="sw")."""
    def _make(count: int, prefix: str = "sw", **kwargs) -> List[Device]:
        return [
            Device(name=f"{prefix}-{i:02d}", host=f"10.0.{i // 250}.{i % 250 + 1}", **kwargs)
            for i in range(1, count + 1)
        ]
    return _make


@pytest.fixture
def driver():
    return FakeDriver()


@pytest.fixture
def store(tmp_path) -> BackupStore:
    return BackupStore(tmp_path / "backups")


@pytest.fixture
def templates_dir(tmp_path):
    path = tmp_path / "templates"
    path.mkdir()
    (path / "ntp.j2").write_text(
        "{% for server in ntp_servers %}ntp server {{ server }}\n{% endfor %}",
        encoding="utf-8",
    )
    (path / "banner.j2").write_text(
        "banner motd ^{{ device.name }} ({{ site }})^\n",
        encoding="utf-8",
    )
    return path


@pytest.fixture
def renderer(templates_dir) -> TemplateRenderer:
    return TemplateRenderer(templates_dir)


@pytest.fixture
def executor(driver, store, renderer) -> ChangeExecutor:
    return ChangeExecutor(driver, store, renderer=renderer)


@pytest.fixture
def orchestrator(executor) -> FleetOrchestrator:
    return FleetOrchestrator(executor, halt_threshold=0.2)
