"""
Хранилище снапшотов конфигурации.

Структура каталога:
    backups/
    ├── 2025-01-15/
    │   ├── core-router-nyc-01.running.103015123456.cfg
    │   ├── core-router-nyc-01.startup.103015123456.cfg
    │   ├── core-router-nyc-01.103015123456.info.json
    │   ├── manifest.jsonl
    │   └── SHA256SUMS
    └── 2025-01-16/
        └── ...

manifest.jsonl — одна JSON-строка на снапшот (device, timestamp, kind,
checksum, purpose, file). SHA256SUMS проверяется стандартной утилитой:
    cd backups/2025-01-15 && sha256sum -c SHA256SUMS

Порядок записи снапшота:
1. Файл конфигурации: временный файл, fsync, rename
2. Файл сведений об устройстве
3. Строка в SHA256SUMS
4. Строка в manifest.jsonl — точка фиксации

Снапшот существует только после записи в манифест. Файл без строки
в манифесте (сбой между шагами) list() и resolve() не видят.

Пример использования:
    store = BackupStore("backups")
    snapshot = store.backup(device, driver)
    refs = store.list(device.name)
    restore = store.resolve(device.name, "2025-01-15")
"""

import hashlib
import json
import logging
import os
import re
import tempfile
import threading
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple, Union

from ..core.device import Device
from ..core.exceptions import (
    BackupError,
    DeviceError,
    IntegrityViolationError,
    NoSuchBackupError,
)
from ..core.models import (
    ConfigSnapshot,
    SnapshotKind,
    SnapshotPurpose,
    SnapshotRef,
    sha256_hex,
)

logger = logging.getLogger(__name__)

MANIFEST_FILE = "manifest.jsonl"
CHECKSUM_FILE = "SHA256SUMS"
LATEST = "latest"

DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
DAY_DIR_FORMAT = "%Y-%m-%d"
FILE_TIME_FORMAT = "%H%M%S%f"


def safe_name(name: str) -> str:
    """Имя устройства, безопасное для имени файла."""
    return re.sub(r"[^\w\-.]", "_", name)


def _fsync_append(path: Path, line: str) -> None:
    """
    Дописывает строку в файл и сбрасывает на диск.

    Если предыдущая запись оборвалась без перевода строки, сначала
    закрывает её: иначе новая строка склеится с обрывком.
    """
    broken_tail = False
    if path.exists() and path.stat().st_size > 0:
        with open(path, "rb") as f:
            f.seek(-1, os.SEEK_END)
            broken_tail = f.read(1) != b"\n"
    with open(path, "a", encoding="utf-8") as f:
        if broken_tail:
            f.write("\n")
        f.write(line)
        f.flush()
        os.fsync(f.fileno())


def _file_checksum(path: Path) -> str:
    """SHA-256 по байтам файла (совпадает с sha256_hex исходного текста)."""
    return hashlib.sha256(path.read_bytes()).hexdigest()


def _atomic_write_text(path: Path, content: str) -> None:
    """Запись через временный файл в том же каталоге и rename."""
    with tempfile.NamedTemporaryFile(
        "w",
        encoding="utf-8",
        newline="",
        delete=False,
        dir=str(path.parent),
        prefix=f".{path.name}.",
        suffix=".tmp",
    ) as tmp:
        tmp.write(content)
        tmp.flush()
        os.fsync(tmp.fileno())
        tmp_path = tmp.name
    os.replace(tmp_path, path)


@dataclass(frozen=True)
class IntegrityIssue:
    """Проблема целостности, найденная audit()."""
    ref: SnapshotRef
    problem: str  # "missing" | "mismatch"
    actual: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "device": self.ref.device,
            "timestamp": self.ref.timestamp.isoformat(),
            "kind": self.ref.kind.value,
            "path": self.ref.path,
            "problem": self.problem,
            "expected": self.ref.checksum,
            "actual": self.actual,
        }


class BackupStore:
    """
    Хранилище снапшотов с контрольными суммами.

    Единственный ресурс, общий для параллельных ChangeExecutor:
    запись снапшота выполняется под блокировкой хранилища.

    Attributes:
        root: Корневой каталог
        connect_timeout: Таймаут подключения для backup() без сессии
    """

    def __init__(self, root: Union[str, Path] = "backups", connect_timeout: float = 30):
        self.root = Path(root)
        self.connect_timeout = connect_timeout
        self._lock = threading.RLock()
        # (device, kind) -> последний выданный timestamp
        self._last_timestamps: Dict[Tuple[str, SnapshotKind], datetime] = {}

    # =========================================================================
    # ЗАПИСЬ
    # =========================================================================

    def backup(
        self,
        device: Device,
        driver,
        session=None,
        purpose: SnapshotPurpose = SnapshotPurpose.MANUAL,
        kinds: Sequence[SnapshotKind] = (SnapshotKind.RUNNING, SnapshotKind.STARTUP),
    ) -> ConfigSnapshot:
        """
        Снимает конфигурацию с устройства и сохраняет снапшот.

        Повторов нет: политика повторов принадлежит вызывающему.

        Args:
            device: Устройство
            driver: DeviceDriver
            session: Открытая сессия (None — откроется и закроется здесь)
            purpose: Назначение снапшота
            kinds: Какие типы конфигурации снимать (running обязателен)

        Returns:
            ConfigSnapshot: Снапшот running-config

        Raises:
            UnreachableError: Устройство недоступно
            DeviceError: Ошибка драйвера
            BackupError: Пустая конфигурация или ошибка записи
        """
        own_session = session is None
        if own_session:
            session = driver.connect(device, timeout=self.connect_timeout)

        try:
            running = driver.get_config(session, SnapshotKind.RUNNING)
            if not running or not running.strip():
                raise BackupError("Устройство вернуло пустую running-config", device=device.name)

            try:
                device_info = driver.get_device_info(session)
            except DeviceError as e:
                logger.warning(f"{device.name}: сведения об устройстве не получены: {e}")
                device_info = {}

            snapshot = self.save(
                device.name,
                SnapshotKind.RUNNING,
                running,
                purpose=purpose,
                device_info=device_info,
            )

            if SnapshotKind.STARTUP in kinds:
                self._backup_startup(device, driver, session, purpose, snapshot.timestamp)

        finally:
            if own_session:
                driver.close(session)

        logger.info(
            f"{device.name}: снапшот {snapshot.purpose.value} сохранён "
            f"({snapshot.path}, sha256={snapshot.checksum[:12]})"
        )
        return snapshot

    def _backup_startup(
        self,
        device: Device,
        driver,
        session,
        purpose: SnapshotPurpose,
        timestamp: datetime,
    ) -> Optional[ConfigSnapshot]:
        """startup-config: без неё бэкап считается успешным."""
        try:
            startup = driver.get_config(session, SnapshotKind.STARTUP)
        except DeviceError as e:
            logger.warning(f"{device.name}: startup-config не получен: {e}")
            return None

        if not startup:
            logger.debug(f"{device.name}: startup-config отсутствует, пропускаем")
            return None

        return self.save(
            device.name,
            SnapshotKind.STARTUP,
            startup,
            purpose=purpose,
            timestamp=timestamp,
        )

    def save(
        self,
        device_name: str,
        kind: SnapshotKind,
        content: str,
        purpose: SnapshotPurpose = SnapshotPurpose.MANUAL,
        device_info: Optional[Dict[str, Any]] = None,
        timestamp: Optional[datetime] = None,
    ) -> ConfigSnapshot:
        """
        Сохраняет снапшот.

        Args:
            device_name: Имя устройства
            kind: running / startup
            content: Текст конфигурации
            purpose: Назначение
            device_info: Сведения об устройстве
            timestamp: Время снапшота (по умолчанию сейчас)

        Returns:
            ConfigSnapshot: Сохранённый снапшот

        Raises:
            BackupError: Ошибка записи на диск
        """
        checksum = sha256_hex(content)

        with self._lock:
            ts = self._next_timestamp(device_name, kind, timestamp or datetime.now())
            day_dir = self.root / ts.strftime(DAY_DIR_FORMAT)
            stamp = ts.strftime(FILE_TIME_FORMAT)
            base = safe_name(device_name)
            file_name = f"{base}.{kind.value}.{stamp}.cfg"

            entry = {
                "device": device_name,
                "timestamp": ts.isoformat(),
                "kind": kind.value,
                "checksum": checksum,
                "purpose": purpose.value,
                "file": file_name,
            }

            try:
                day_dir.mkdir(parents=True, exist_ok=True)
                _atomic_write_text(day_dir / file_name, content)
                if device_info:
                    _atomic_write_text(
                        day_dir / f"{base}.{stamp}.info.json",
                        json.dumps(device_info, indent=2, ensure_ascii=False, default=str),
                    )
                _fsync_append(day_dir / CHECKSUM_FILE, f"{checksum}  {file_name}\n")
                _fsync_append(
                    day_dir / MANIFEST_FILE,
                    json.dumps(entry, ensure_ascii=False) + "\n",
                )
            except OSError as e:
                raise BackupError(f"Ошибка записи снапшота: {e}", device=device_name) from e

        logger.debug(f"{device_name}: записан {kind.value} снапшот {day_dir.name}/{file_name}")
        return ConfigSnapshot(
            device=device_name,
            timestamp=ts,
            kind=kind,
            content=content,
            checksum=checksum,
            purpose=purpose,
            device_info=dict(device_info or {}),
            path=f"{day_dir.name}/{file_name}",
        )

    def _next_timestamp(self, device_name: str, kind: SnapshotKind, ts: datetime) -> datetime:
        """Уникальный timestamp для (device, kind) в пределах процесса."""
        key = (device_name, kind)
        last = self._last_timestamps.get(key)
        if last is not None and ts <= last:
            ts = last + timedelta(microseconds=1)
        self._last_timestamps[key] = ts
        return ts

    # =========================================================================
    # ЧТЕНИЕ
    # =========================================================================

    def _day_dirs(self) -> List[Path]:
        if not self.root.is_dir():
            return []
        return sorted(
            p for p in self.root.iterdir() if p.is_dir() and DATE_RE.match(p.name)
        )

    def _iter_manifest(self, day_dir: Path) -> Iterator[SnapshotRef]:
        """Записи манифеста каталога. Повреждённые строки пропускаются."""
        manifest = day_dir / MANIFEST_FILE
        if not manifest.exists():
            return

        with open(manifest, "r", encoding="utf-8") as f:
            for lineno, line in enumerate(f, 1):
                line = line.strip()
                if not line:
                    continue
                try:
                    entry = json.loads(line)
                    yield SnapshotRef(
                        device=entry["device"],
                        timestamp=datetime.fromisoformat(entry["timestamp"]),
                        kind=SnapshotKind(entry["kind"]),
                        checksum=entry["checksum"],
                        purpose=SnapshotPurpose(entry.get("purpose", SnapshotPurpose.MANUAL.value)),
                        path=f"{day_dir.name}/{entry['file']}",
                    )
                except (ValueError, KeyError, TypeError) as e:
                    logger.warning(f"{manifest}:{lineno}: повреждённая запись манифеста пропущена ({e})")

    def list(
        self,
        device_name: Optional[str] = None,
        kind: Optional[SnapshotKind] = SnapshotKind.RUNNING,
        include_safety: bool = True,
    ) -> List[SnapshotRef]:
        """
        Снапшоты из манифестов, от новых к старым.

        Args:
            device_name: Имя устройства (None — все)
            kind: Тип конфигурации (None — все)
            include_safety: Включать safety-снапшоты

        Returns:
            List[SnapshotRef]: Метаданные снапшотов
        """
        with self._lock:
            refs = [
                ref
                for day_dir in self._day_dirs()
                for ref in self._iter_manifest(day_dir)
                if (device_name is None or ref.device == device_name)
                and (kind is None or ref.kind == kind)
                and (include_safety or ref.purpose != SnapshotPurpose.SAFETY)
            ]
        refs.sort(key=lambda r: r.timestamp, reverse=True)
        return refs

    def resolve(
        self,
        device_name: str,
        selector: str = LATEST,
        kind: SnapshotKind = SnapshotKind.RUNNING,
    ) -> ConfigSnapshot:
        """
        Находит точку восстановления.

        Safety-снапшоты не являются точками восстановления: повторный
        откат с тем же селектором восстанавливает ту же конфигурацию.

        Args:
            device_name: Имя устройства
            selector: "latest", дата YYYY-MM-DD (последний снапшот за день)
                или ISO timestamp (точное совпадение)
            kind: Тип конфигурации

        Returns:
            ConfigSnapshot: Снапшот с содержимым

        Raises:
            NoSuchBackupError: Снапшот не найден
            IntegrityViolationError: Содержимое не совпадает с checksum
        """
        selector = (selector or LATEST).strip()
        candidates = self.list(device_name, kind=kind, include_safety=False)

        if selector.lower() == LATEST:
            matches = candidates
        elif DATE_RE.match(selector):
            try:
                day = date.fromisoformat(selector)
            except ValueError as e:
                raise NoSuchBackupError(
                    f"Некорректная дата: {selector}", device=device_name, selector=selector
                ) from e
            matches = [r for r in candidates if r.timestamp.date() == day]
        else:
            try:
                exact = datetime.fromisoformat(selector)
            except ValueError as e:
                raise NoSuchBackupError(
                    f"Некорректный селектор: {selector}", device=device_name, selector=selector
                ) from e
            matches = [r for r in candidates if r.timestamp == exact]

        if not matches:
            raise NoSuchBackupError(
                "Нет снапшота для восстановления",
                device=device_name,
                selector=selector,
            )

        return self.load(matches[0])

    def load(self, ref: SnapshotRef) -> ConfigSnapshot:
        """
        Загружает содержимое снапшота с проверкой checksum.

        Raises:
            IntegrityViolationError: Файл отсутствует или изменён
        """
        file_path = self.root / ref.path
        try:
            data = file_path.read_bytes()
        except FileNotFoundError as e:
            raise IntegrityViolationError(
                f"Файл снапшота отсутствует: {ref.path}",
                device=ref.device,
                expected=ref.checksum,
            ) from e

        actual = hashlib.sha256(data).hexdigest()
        if actual != ref.checksum:
            logger.error(f"{ref.device}: checksum не совпадает для {ref.path}")
            raise IntegrityViolationError(
                f"Checksum не совпадает: {ref.path}",
                device=ref.device,
                expected=ref.checksum,
                actual=actual,
            )

        try:
            content = data.decode("utf-8")
        except UnicodeDecodeError as e:
            raise IntegrityViolationError(
                f"Снапшот не является текстом UTF-8: {ref.path}",
                device=ref.device,
                expected=ref.checksum,
                actual=actual,
            ) from e

        return ConfigSnapshot(
            device=ref.device,
            timestamp=ref.timestamp,
            kind=ref.kind,
            content=content,
            checksum=ref.checksum,
            purpose=ref.purpose,
            device_info=self._load_device_info(ref),
            path=ref.path,
        )

    def _load_device_info(self, ref: SnapshotRef) -> Dict[str, Any]:
        info_path = (
            self.root
            / ref.timestamp.strftime(DAY_DIR_FORMAT)
            / f"{safe_name(ref.device)}.{ref.timestamp.strftime(FILE_TIME_FORMAT)}.info.json"
        )
        if not info_path.exists():
            return {}
        try:
            return json.loads(info_path.read_text(encoding="utf-8"))
        except ValueError as e:
            logger.warning(f"{ref.device}: повреждён файл сведений {info_path.name}: {e}")
            return {}

    # =========================================================================
    # ЦЕЛОСТНОСТЬ
    # =========================================================================

    def _actual_checksum(self, ref: Union[SnapshotRef, ConfigSnapshot]) -> Optional[str]:
        try:
            return _file_checksum(self.root / ref.path)
        except FileNotFoundError:
            return None

    def verify_integrity(self, snapshot: Union[SnapshotRef, ConfigSnapshot]) -> bool:
        """
        Пересчитывает checksum сохранённого файла и сравнивает.

        Returns:
            bool: True если файл на месте и не изменён
        """
        return self._actual_checksum(snapshot) == snapshot.checksum

    def audit(self, device_name: Optional[str] = None) -> List[IntegrityIssue]:
        """
        Проверяет все снапшоты из манифестов. Ничего не исправляет.

        Args:
            device_name: Только это устройство (None — все)

        Returns:
            List[IntegrityIssue]: Найденные проблемы
        """
        issues = []
        refs = self.list(device_name, kind=None)
        for ref in refs:
            actual = self._actual_checksum(ref)
            if actual is None:
                issues.append(IntegrityIssue(ref=ref, problem="missing"))
            elif actual != ref.checksum:
                issues.append(IntegrityIssue(ref=ref, problem="mismatch", actual=actual))

        if issues:
            logger.error(f"Проверка целостности: {len(issues)} проблем из {len(refs)} снапшотов")
        else:
            logger.info(f"Проверка целостности: {len(refs)} снапшотов в порядке")
        return issues
