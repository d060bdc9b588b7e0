"""
Модели данных Network Deployer.

Типизированные dataclasses для всего, что проходит через оркестратор:
- ConfigSnapshot / SnapshotRef: снапшоты конфигурации и записи манифеста
- ChangeRequest / ChangePolicy: что применить, куда и по каким правилам
- ChangeOutcome: итог по одному устройству (ровно один на запуск)
- RunReport: итог запуска целиком
- RunPlan: план для dry-run

Все модели, которые пересекают границы потоков, неизменяемые (frozen).

Использование:
    from network_deployer.core.models import ChangeRequest, Operation

    request = ChangeRequest(
        operation=Operation.BULK_UPDATE,
        devices=devices,
        payload="ntp server 10.10.0.1",
        batch_size=20,
    )
"""

import hashlib
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Optional, List, Dict, Any, Tuple, Mapping, Iterable, Sequence

from .device import Device


class SnapshotKind(str, Enum):
    """Тип конфигурации в снапшоте."""
    RUNNING = "running"
    STARTUP = "startup"


class SnapshotPurpose(str, Enum):
    """Зачем был сделан снапшот."""
    PRE_CHANGE = "pre-change"    # Перед изменением (update)
    SAFETY = "safety"            # Перед восстановлением (rollback)
    MANUAL = "manual"            # Операция backup


class Operation(str, Enum):
    """Операция запуска."""
    ENFORCE_COMPLIANCE = "enforce-compliance"
    DEPLOY_TEMPLATES = "deploy-templates"
    BULK_UPDATE = "bulk-update"
    BACKUP = "backup"
    ROLLBACK = "rollback"


class OutcomeStatus(str, Enum):
    """Итоговый статус устройства в запуске."""
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED_UNREACHABLE = "skipped-unreachable"
    ROLLED_BACK = "rolled-back"
    SKIPPED_NOT_ATTEMPTED = "skipped-not-attempted"


class FailureReason(str, Enum):
    """Причина неуспешного итога."""
    UNREACHABLE = "Unreachable"
    DRIVER_REJECTED = "DriverRejected"
    TIMEOUT = "Timeout"
    VERIFICATION_MISMATCH = "VerificationMismatch"
    NO_SUCH_BACKUP = "NoSuchBackup"
    ROLLBACK_FAILED = "RollbackFailed"
    INTEGRITY_VIOLATION = "IntegrityViolation"
    BACKUP_FAILED = "BackupFailed"
    UNDEFINED_VARIABLE = "UndefinedVariable"
    TEMPLATE_ERROR = "TemplateError"
    DRIVER_ERROR = "DriverError"
    HALTED = "Halted"
    INTERNAL_ERROR = "InternalError"


class ExecutorState(str, Enum):
    """Состояния ChangeExecutor."""
    PENDING = "pending"
    RENDERING = "rendering"
    CHECKING_REACHABILITY = "checking_reachability"
    CHECKING_COMPLIANCE = "checking_compliance"
    BACKING_UP = "backing_up"
    APPLYING = "applying"
    VERIFYING = "verifying"
    ROLLING_BACK = "rolling_back"
    # Терминальные
    SUCCEEDED = "succeeded"
    SKIPPED_UNREACHABLE = "skipped_unreachable"
    FAILED = "failed"
    ROLLED_BACK = "rolled_back"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATES


TERMINAL_STATES = frozenset({
    ExecutorState.SUCCEEDED,
    ExecutorState.SKIPPED_UNREACHABLE,
    ExecutorState.FAILED,
    ExecutorState.ROLLED_BACK,
})


def sha256_hex(content: str) -> str:
    """SHA-256 от текста конфигурации (utf-8)."""
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


# =============================================================================
# СНАПШОТЫ
# =============================================================================


@dataclass(frozen=True)
class SnapshotRef:
    """
    Запись манифеста: метаданные снапшота без содержимого.

    Attributes:
        device: Имя устройства
        timestamp: Время снятия
        kind: running / startup
        checksum: SHA-256 содержимого
        purpose: pre-change / safety / manual
        path: Путь к файлу относительно корня хранилища
    """
    device: str
    timestamp: datetime
    kind: SnapshotKind
    checksum: str
    purpose: SnapshotPurpose = SnapshotPurpose.MANUAL
    path: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "device": self.device,
            "timestamp": self.timestamp.isoformat(),
            "kind": self.kind.value,
            "checksum": self.checksum,
            "purpose": self.purpose.value,
            "path": self.path,
        }


@dataclass(frozen=True)
class ConfigSnapshot:
    """
    Неизменяемый снапшот конфигурации устройства.

    Attributes:
        device: Имя устройства
        timestamp: Время снятия
        kind: running / startup
        content: Текст конфигурации как есть
        checksum: SHA-256 содержимого
        purpose: pre-change / safety / manual
        device_info: Версия ПО, список интерфейсов и т.п.
        path: Путь к файлу относительно корня хранилища
    """
    device: str
    timestamp: datetime
    kind: SnapshotKind
    content: str
    checksum: str
    purpose: SnapshotPurpose = SnapshotPurpose.MANUAL
    device_info: Mapping[str, Any] = field(default_factory=dict)
    path: str = ""

    @property
    def ref(self) -> SnapshotRef:
        """Ссылка на снапшот (для ChangeOutcome и манифеста)."""
        return SnapshotRef(
            device=self.device,
            timestamp=self.timestamp,
            kind=self.kind,
            checksum=self.checksum,
            purpose=self.purpose,
            path=self.path,
        )

    def content_matches(self) -> bool:
        """Совпадает ли содержимое в памяти с checksum."""
        return sha256_hex(self.content) == self.checksum


# =============================================================================
# ПРОВЕРКИ
# =============================================================================


@dataclass(frozen=True)
class VerificationCheck:
    """
    Команда проверки и ожидаемый шаблон.

    Attributes:
        command: Команда на устройстве
        expect: Регулярное выражение (re.search по выводу)
        negate: True — шаблон НЕ должен встречаться
        description: Описание для отчёта
    """
    command: str
    expect: str
    negate: bool = False
    description: str = ""

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "VerificationCheck":
        return cls(
            command=data["command"],
            expect=data.get("expect", ""),
            negate=bool(data.get("negate", False)),
            description=data.get("description", ""),
        )


@dataclass(frozen=True)
class VerificationResult:
    """Результат одной проверки."""
    command: str
    expect: str
    passed: bool
    output: str = ""
    error: str = ""

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "command": self.command,
            "expect": self.expect,
            "passed": self.passed,
        }
        if self.output:
            data["output"] = self.output
        if self.error:
            data["error"] = self.error
        return data


# =============================================================================
# ЗАПРОС НА ИЗМЕНЕНИЕ
# =============================================================================


@dataclass(frozen=True)
class TemplateSpec:
    """
    Шаблон для рендеринга конфигурации по устройствам.

    Attributes:
        template_id: Шаблон по умолчанию (файл в каталоге шаблонов)
        by_role: Шаблон по роли устройства {"core": "core.j2"}
        variables: Общие переменные (переменные устройства имеют приоритет)
        source: Текст шаблона (baseline-файл) вместо template_id
    """
    template_id: str = ""
    by_role: Mapping[str, str] = field(default_factory=dict)
    variables: Mapping[str, Any] = field(default_factory=dict)
    source: Optional[str] = None

    def template_for(self, device: Device) -> str:
        """Шаблон для конкретного устройства."""
        if device.role and device.role in self.by_role:
            return self.by_role[device.role]
        return self.template_id

    def variables_for(self, device: Device) -> Dict[str, Any]:
        """Общие переменные + контекст устройства."""
        return {**self.variables, **device.template_context()}


# Теги шагов, которые можно включать/пропускать через --tags/--skip-tags
STEP_TAGS = ("backup", "safety", "compliance", "verify", "rollback")

# Шаги, которые нельзя пропустить
MANDATORY_TAGS = ("backup", "safety")


@dataclass(frozen=True)
class StepFilter:
    """
    Фильтр шагов по тегам (--tags / --skip-tags).

    Пустой tags — все шаги включены.
    """
    tags: Tuple[str, ...] = ()
    skip_tags: Tuple[str, ...] = ()

    def enabled(self, tag: str) -> bool:
        if tag in MANDATORY_TAGS:
            return True
        if tag in self.skip_tags:
            return False
        if self.tags:
            return tag in self.tags
        return True


@dataclass(frozen=True)
class ChangePolicy:
    """
    Правила выполнения изменения на устройстве.

    Attributes:
        auto_rollback: Откатывать при ошибке apply/verify (если есть бэкап)
        verify: Запускать проверки после apply
        replace: Полная замена конфигурации вместо merge
        skip_if_compliant: Не менять устройство, если проверки уже проходят
        backup_purpose: Пометка снапшота, снятого перед изменением
        escalate_on_failure: Ошибка apply/verify требует ручного вмешательства
            (восстановление из бэкапа: откатывать уже некуда)
    """
    auto_rollback: bool = True
    verify: bool = True
    replace: bool = False
    skip_if_compliant: bool = False
    backup_purpose: SnapshotPurpose = SnapshotPurpose.PRE_CHANGE
    escalate_on_failure: bool = False

    @classmethod
    def for_operation(
        cls,
        operation: Operation,
        steps: Optional[StepFilter] = None,
        auto_rollback: bool = True,
    ) -> "ChangePolicy":
        """
        Политика по умолчанию для операции.

        Откат отката не выполняется никогда: неудачное восстановление
        помечается как требующее ручного вмешательства.

        Args:
            operation: Операция
            steps: Фильтр шагов по тегам
            auto_rollback: Разрешён ли авто-откат конфигурацией

        Returns:
            ChangePolicy: Политика
        """
        steps = steps or StepFilter()
        verify = steps.enabled("verify")

        if operation == Operation.ROLLBACK:
            return cls(
                auto_rollback=False,
                verify=verify,
                replace=True,
                backup_purpose=SnapshotPurpose.SAFETY,
                escalate_on_failure=True,
            )
        if operation == Operation.BACKUP:
            return cls(
                auto_rollback=False,
                verify=False,
                backup_purpose=SnapshotPurpose.MANUAL,
            )
        return cls(
            auto_rollback=auto_rollback and steps.enabled("rollback"),
            verify=verify,
            skip_if_compliant=(
                operation == Operation.ENFORCE_COMPLIANCE
                and steps.enabled("compliance")
            ),
        )


@dataclass(frozen=True)
class ChangeRequest:
    """
    Запрос на изменение: создаётся один раз на запуск.

    Источник конфигурации — одно из:
    - payload: один текст для всех устройств
    - payloads: текст по имени устройства
    - template: рендеринг по устройствам

    Attributes:
        operation: Операция
        devices: Целевые устройства (порядок сохраняется)
        batch_size: Размер батча
        checks: Проверки после применения
        policy: Правила выполнения
        restore_points: Точки восстановления по устройствам (rollback)
        description: Описание для отчёта
    """
    operation: Operation
    devices: Tuple[Device, ...]
    payload: Optional[str] = None
    payloads: Mapping[str, str] = field(default_factory=dict)
    template: Optional[TemplateSpec] = None
    batch_size: int = 10
    checks: Tuple[VerificationCheck, ...] = ()
    policy: ChangePolicy = field(default_factory=ChangePolicy)
    restore_points: Mapping[str, SnapshotRef] = field(default_factory=dict)
    description: str = ""

    def __post_init__(self):
        object.__setattr__(self, "devices", tuple(self.devices))
        object.__setattr__(self, "checks", tuple(self.checks))
        object.__setattr__(self, "payloads", MappingProxyType(dict(self.payloads)))
        object.__setattr__(
            self, "restore_points", MappingProxyType(dict(self.restore_points))
        )

        names = [d.name for d in self.devices]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise ValueError(f"Устройства указаны дважды: {', '.join(duplicates)}")

        if self.batch_size <= 0:
            raise ValueError(f"batch_size должен быть > 0, получен {self.batch_size}")

        has_payload = (
            self.payload is not None or bool(self.payloads) or self.template is not None
        )
        if self.operation != Operation.BACKUP and not has_payload:
            raise ValueError(
                f"Для операции {self.operation.value} нужна конфигурация "
                "(payload, payloads или template)"
            )

    @property
    def device_names(self) -> List[str]:
        return [d.name for d in self.devices]

    def payload_for(self, device: Device) -> Optional[str]:
        """Литеральная конфигурация для устройства (без шаблона)."""
        if device.name in self.payloads:
            return self.payloads[device.name]
        return self.payload

    def with_devices(self, devices: Iterable[Device]) -> "ChangeRequest":
        """Копия запроса с другим набором устройств."""
        return replace(self, devices=tuple(devices))


# =============================================================================
# ИТОГИ
# =============================================================================


@dataclass(frozen=True)
class StateTransition:
    """Переход состояния с отметкой времени."""
    state: ExecutorState
    at: datetime
    note: str = ""

    def to_dict(self) -> Dict[str, Any]:
        data = {"state": self.state.value, "at": self.at.isoformat()}
        if self.note:
            data["note"] = self.note
        return data


@dataclass(frozen=True)
class ChangeOutcome:
    """
    Итог по одному устройству.

    Создаётся ровно один раз на устройство за запуск и не изменяется.

    Attributes:
        device: Имя устройства
        status: Итоговый статус
        reason: Причина (для неуспешных)
        error: Текст ошибки
        backup_ref: Снапшот, снятый перед изменением в этом запуске
        restore_point: Снапшот, на который восстанавливали (rollback)
        verification: Результаты проверок
        rollback_attempted_and_failed: Откат был и не удался — нужен человек
        changed: Было ли применено изменение
        batch_index: Номер батча
        attempts: Количество попыток (с учётом retry)
        started_at / finished_at: Время
        states: Путь по состояниям
    """
    device: str
    status: OutcomeStatus
    reason: Optional[FailureReason] = None
    error: str = ""
    backup_ref: Optional[SnapshotRef] = None
    restore_point: Optional[SnapshotRef] = None
    verification: Tuple[VerificationResult, ...] = ()
    rollback_attempted_and_failed: bool = False
    changed: bool = False
    batch_index: Optional[int] = None
    attempts: int = 1
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    states: Tuple[StateTransition, ...] = ()

    @property
    def duration_seconds(self) -> Optional[float]:
        if self.started_at and self.finished_at:
            return (self.finished_at - self.started_at).total_seconds()
        return None

    @property
    def needs_manual_intervention(self) -> bool:
        return self.rollback_attempted_and_failed

    def visited(self, state: ExecutorState) -> bool:
        """Проходило ли устройство через состояние."""
        return any(t.state == state for t in self.states)

    @classmethod
    def not_attempted(
        cls,
        device: str,
        batch_index: Optional[int] = None,
        error: str = "",
    ) -> "ChangeOutcome":
        """Итог для устройства, до которого запуск не дошёл."""
        return cls(
            device=device,
            status=OutcomeStatus.SKIPPED_NOT_ATTEMPTED,
            reason=FailureReason.HALTED,
            error=error,
            batch_index=batch_index,
            attempts=0,
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "device": self.device,
            "status": self.status.value,
            "changed": self.changed,
            "attempts": self.attempts,
        }
        if self.reason:
            data["reason"] = self.reason.value
        if self.error:
            data["error"] = self.error
        if self.rollback_attempted_and_failed:
            data["rollback_attempted_and_failed"] = True
        if self.batch_index is not None:
            data["batch_index"] = self.batch_index
        if self.backup_ref:
            data["backup_ref"] = self.backup_ref.to_dict()
        if self.restore_point:
            data["restore_point"] = self.restore_point.to_dict()
        if self.verification:
            data["verification"] = [v.to_dict() for v in self.verification]
        if self.started_at:
            data["started_at"] = self.started_at.isoformat()
        if self.finished_at:
            data["finished_at"] = self.finished_at.isoformat()
        if self.duration_seconds is not None:
            data["duration_seconds"] = round(self.duration_seconds, 3)
        if self.states:
            data["states"] = [t.to_dict() for t in self.states]
        return data


@dataclass(frozen=True)
class RunReport:
    """
    Итог запуска: единственный источник правды о том, что произошло.

    Attributes:
        run_id: ID запуска
        operation: Операция
        outcomes: Итоги по устройствам (в порядке входного набора)
        started_at / finished_at: Время
        batch_count: Сколько батчей было запланировано
        batches_completed: Сколько батчей выполнено
        halted: Запуск остановлен досрочно
        halt_reason: Причина остановки
    """
    run_id: str
    operation: Operation
    outcomes: Tuple[ChangeOutcome, ...]
    started_at: datetime
    finished_at: datetime
    batch_count: int = 0
    batches_completed: int = 0
    halted: bool = False
    halt_reason: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "outcomes", tuple(self.outcomes))

    @property
    def counts(self) -> Dict[str, int]:
        """Количество устройств по статусам (все статусы, включая нули)."""
        counts = {status.value: 0 for status in OutcomeStatus}
        for outcome in self.outcomes:
            counts[outcome.status.value] += 1
        return counts

    @property
    def total(self) -> int:
        return len(self.outcomes)

    @property
    def elapsed_seconds(self) -> float:
        return (self.finished_at - self.started_at).total_seconds()

    @property
    def manual_intervention(self) -> List[ChangeOutcome]:
        """Устройства, где откат не удался."""
        return [o for o in self.outcomes if o.needs_manual_intervention]

    @property
    def success(self) -> bool:
        return not self.halted and all(
            o.status == OutcomeStatus.SUCCEEDED for o in self.outcomes
        )

    def outcome_for(self, device: str) -> Optional[ChangeOutcome]:
        for outcome in self.outcomes:
            if outcome.device == device:
                return outcome
        return None

    def by_status(self, status: OutcomeStatus) -> List[ChangeOutcome]:
        return [o for o in self.outcomes if o.status == status]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "run_id": self.run_id,
            "operation": self.operation.value,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat(),
            "elapsed_seconds": round(self.elapsed_seconds, 3),
            "total": self.total,
            "counts": self.counts,
            "batch_count": self.batch_count,
            "batches_completed": self.batches_completed,
            "halted": self.halted,
            "halt_reason": self.halt_reason,
            "manual_intervention": [o.device for o in self.manual_intervention],
            "devices": [o.to_dict() for o in self.outcomes],
        }

    @classmethod
    def merge(
        cls,
        base: "RunReport",
        extra: Sequence[ChangeOutcome],
        order: Sequence[str],
    ) -> "RunReport":
        """
        Объединяет отчёт с дополнительными итогами.

        Args:
            base: Отчёт оркестратора
            extra: Итоги, полученные вне оркестратора
            order: Порядок устройств во входном наборе

        Returns:
            RunReport: Новый отчёт
        """
        by_device = {o.device: o for o in base.outcomes}
        for outcome in extra:
            by_device[outcome.device] = outcome
        outcomes = [by_device[name] for name in order if name in by_device]
        return replace(base, outcomes=tuple(outcomes))


# =============================================================================
# DRY-RUN
# =============================================================================


@dataclass(frozen=True)
class PlannedDevice:
    """Устройство в плане dry-run."""
    device: str
    batch_index: int
    payload: Optional[str] = None
    error: str = ""

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"device": self.device, "batch_index": self.batch_index}
        if self.payload is not None:
            data["payload"] = self.payload
        if self.error:
            data["error"] = self.error
        return data


@dataclass(frozen=True)
class RunPlan:
    """План запуска без обращения к устройствам."""
    operation: Operation
    batch_size: int
    batches: Tuple[Tuple[PlannedDevice, ...], ...]

    @property
    def errors(self) -> List[PlannedDevice]:
        return [p for batch in self.batches for p in batch if p.error]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "operation": self.operation.value,
            "batch_size": self.batch_size,
            "batch_count": len(self.batches),
            "errors": len(self.errors),
            "batches": [[p.to_dict() for p in batch] for batch in self.batches],
        }
