"""
ChangeExecutor — автомат состояний изменения на одном устройстве.

    pending -> rendering -> checking_reachability -> [checking_compliance]
            -> backing_up -> applying -> verifying -> succeeded

Терминальные состояния: succeeded, skipped_unreachable, failed, rolled_back.

Правила:
- Недоступное устройство: skipped_unreachable, бэкап не снимается
- Ошибка бэкапа: failed, apply не выполняется (нет изменения без бэкапа)
- Ошибка apply или verify: rolling_back, если политика разрешает откат
  и бэкап этого запуска есть; иначе failed
- Откат не удался (любая ошибка в rolling_back): failed с
  rollback_attempted_and_failed (нужен человек)
- Ошибка apply или verify при восстановлении (escalate_on_failure):
  так же требует ручного вмешательства

execute() не выбрасывает исключений: любая ошибка по устройству
становится ChangeOutcome.
"""

import re
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Sequence, Tuple

from ..device import Device
from ..exceptions import (
    AuthenticationError,
    BackupError,
    DeployerError,
    DeviceError,
    DriverRejectedError,
    DriverTimeoutError,
    IntegrityViolationError,
    NoSuchBackupError,
    RollbackFailedError,
    TemplateError,
    UndefinedVariableError,
    UnreachableError,
    VerificationMismatchError,
    format_error_for_log,
)
from ..logging import get_logger, StructuredLogger
from ..models import (
    ChangeOutcome,
    ChangeRequest,
    ExecutorState,
    FailureReason,
    Operation,
    OutcomeStatus,
    SnapshotKind,
    SnapshotPurpose,
    SnapshotRef,
    StateTransition,
    VerificationCheck,
    VerificationResult,
)

logger = get_logger(__name__)

# Сколько символов вывода проверки сохранять в отчёте
MAX_OUTPUT_CHARS = 500


@dataclass(frozen=True)
class ExecutorTimeouts:
    """Таймауты фаз (секунды)."""
    reachability: float = 30
    verify: float = 60
    post_rollback: float = 120


def reason_for_error(error: Exception) -> FailureReason:
    """Причина в ChangeOutcome по типу исключения."""
    mapping = (
        (RollbackFailedError, FailureReason.ROLLBACK_FAILED),
        (UnreachableError, FailureReason.UNREACHABLE),
        (DriverRejectedError, FailureReason.DRIVER_REJECTED),
        (DriverTimeoutError, FailureReason.TIMEOUT),
        (VerificationMismatchError, FailureReason.VERIFICATION_MISMATCH),
        (IntegrityViolationError, FailureReason.INTEGRITY_VIOLATION),
        (NoSuchBackupError, FailureReason.NO_SUCH_BACKUP),
        (BackupError, FailureReason.BACKUP_FAILED),
        (UndefinedVariableError, FailureReason.UNDEFINED_VARIABLE),
        (TemplateError, FailureReason.TEMPLATE_ERROR),
        (DeviceError, FailureReason.DRIVER_ERROR),
    )
    for error_type, reason in mapping:
        if isinstance(error, error_type):
            return reason
    return FailureReason.INTERNAL_ERROR


class _DeviceRun:
    """Изменяемое состояние одного выполнения (живёт только внутри execute)."""

    def __init__(
        self,
        device: Device,
        request: ChangeRequest,
        log: StructuredLogger,
        batch_index: Optional[int],
        attempt: int,
    ):
        self.device = device
        self.request = request
        self.log = log
        self.batch_index = batch_index
        self.attempt = attempt
        self.started_at = datetime.now()
        self.states: List[StateTransition] = []
        self.state = ExecutorState.PENDING
        self.backup_ref: Optional[SnapshotRef] = None
        self.verification: Tuple[VerificationResult, ...] = ()
        self.changed = False
        self.enter(ExecutorState.PENDING)

    def enter(self, state: ExecutorState, note: str = "") -> None:
        self.state = state
        self.states.append(StateTransition(state=state, at=datetime.now(), note=note))
        self.log.debug(f"-> {state.value}" + (f" ({note})" if note else ""), state=state.value)

    def finish(
        self,
        status: OutcomeStatus,
        reason: Optional[FailureReason] = None,
        error: str = "",
        rollback_attempted_and_failed: bool = False,
    ) -> ChangeOutcome:
        terminal = {
            OutcomeStatus.SUCCEEDED: ExecutorState.SUCCEEDED,
            OutcomeStatus.SKIPPED_UNREACHABLE: ExecutorState.SKIPPED_UNREACHABLE,
            OutcomeStatus.FAILED: ExecutorState.FAILED,
            OutcomeStatus.ROLLED_BACK: ExecutorState.ROLLED_BACK,
        }[status]
        self.enter(terminal, note=reason.value if reason else "")

        return ChangeOutcome(
            device=self.device.name,
            status=status,
            reason=reason,
            error=error,
            backup_ref=self.backup_ref,
            restore_point=self.request.restore_points.get(self.device.name),
            verification=self.verification,
            rollback_attempted_and_failed=rollback_attempted_and_failed,
            changed=self.changed,
            batch_index=self.batch_index,
            attempts=self.attempt,
            started_at=self.started_at,
            finished_at=datetime.now(),
            states=tuple(self.states),
        )


class ChangeExecutor:
    """
    Выполняет ChangeRequest на одном устройстве.

    Один экземпляр используется всеми потоками батча: состояние
    выполнения хранится в _DeviceRun, а не в executor.

    Attributes:
        driver: DeviceDriver
        store: BackupStore
        renderer: TemplateRenderer (нужен только для запросов с шаблоном)
        timeouts: Таймауты фаз
        backup_kinds: Какие конфигурации снимать в бэкап

    Example:
        executor = ChangeExecutor(driver, store, renderer)
        outcome = executor.execute(device, request)
    """

    def __init__(
        self,
        driver,
        store,
        renderer=None,
        timeouts: Optional[ExecutorTimeouts] = None,
        backup_kinds: Sequence[SnapshotKind] = (SnapshotKind.RUNNING, SnapshotKind.STARTUP),
    ):
        self.driver = driver
        self.store = store
        self.renderer = renderer
        self.timeouts = timeouts or ExecutorTimeouts()
        self.backup_kinds = tuple(backup_kinds)

    def render_payload(self, device: Device, request: ChangeRequest) -> str:
        """
        Конфигурация для устройства: шаблон или литеральный текст.

        Raises:
            UndefinedVariableError: Переменная шаблона не определена
            TemplateError: Нет шаблона/конфигурации или ошибка шаблона
        """
        spec = request.template
        if spec is not None:
            if self.renderer is None:
                raise TemplateError("Рендерер шаблонов не настроен", template_id=spec.template_id)
            variables = spec.variables_for(device)
            if spec.source is not None:
                payload = self.renderer.render_string(
                    spec.source, variables, template_id=spec.template_id or "<baseline>"
                )
            else:
                payload = self.renderer.render(spec.template_for(device), variables)
        else:
            payload = request.payload_for(device)

        if payload is None or not payload.strip():
            raise TemplateError(f"Нет конфигурации для устройства {device.name}")
        return payload

    def execute(
        self,
        device: Device,
        request: ChangeRequest,
        batch_index: Optional[int] = None,
        attempt: int = 1,
    ) -> ChangeOutcome:
        """
        Выполняет запрос на устройстве.

        Args:
            device: Устройство
            request: Запрос на изменение
            batch_index: Номер батча (для отчёта и логов)
            attempt: Номер попытки

        Returns:
            ChangeOutcome: Итог (ровно один)
        """
        log = logger.bind(
            device=device.name,
            operation=request.operation.value,
            batch=batch_index,
            attempt=attempt if attempt > 1 else None,
        )
        run = _DeviceRun(device, request, log, batch_index, attempt)

        try:
            return self._execute(run)
        except Exception as e:
            log.exception(f"Непредвиденная ошибка в состоянии {run.state.value}: {e}")
            return run.finish(
                OutcomeStatus.FAILED,
                reason=FailureReason.INTERNAL_ERROR,
                error=format_error_for_log(e),
            )

    def _execute(self, run: _DeviceRun) -> ChangeOutcome:
        device, request = run.device, run.request

        payload = None
        if request.operation != Operation.BACKUP:
            run.enter(ExecutorState.RENDERING)
            try:
                payload = self.render_payload(device, request)
            except TemplateError as e:
                run.log.error(f"Ошибка подготовки конфигурации: {e}")
                return run.finish(OutcomeStatus.FAILED, reason_for_error(e), str(e))

        run.enter(ExecutorState.CHECKING_REACHABILITY)
        try:
            session = self.driver.connect(device, timeout=self.timeouts.reachability)
        except (UnreachableError, DriverTimeoutError) as e:
            run.log.warning(f"Устройство недоступно: {e}")
            return run.finish(
                OutcomeStatus.SKIPPED_UNREACHABLE, FailureReason.UNREACHABLE, str(e)
            )
        except DeviceError as e:
            run.log.error(f"Ошибка подключения: {e}")
            return run.finish(OutcomeStatus.FAILED, reason_for_error(e), str(e))

        try:
            return self._run_session(run, session, payload)
        finally:
            self.driver.close(session)

    def _run_session(self, run: _DeviceRun, session, payload: Optional[str]) -> ChangeOutcome:
        device, request = run.device, run.request
        policy = request.policy

        if request.operation == Operation.BACKUP:
            run.enter(ExecutorState.BACKING_UP)
            error = self._backup(run, session, SnapshotPurpose.MANUAL)
            if error:
                return run.finish(OutcomeStatus.FAILED, FailureReason.BACKUP_FAILED, error)
            return run.finish(OutcomeStatus.SUCCEEDED)

        if policy.skip_if_compliant and request.checks:
            run.enter(ExecutorState.CHECKING_COMPLIANCE)
            results = self._verify(run, session, request.checks)
            if all(r.passed for r in results):
                run.verification = results
                run.log.info("Устройство уже соответствует, изменение не требуется")
                return run.finish(OutcomeStatus.SUCCEEDED)
            failed = sum(1 for r in results if not r.passed)
            run.log.info(f"Не соответствует: {failed}/{len(results)} проверок")

        run.enter(ExecutorState.BACKING_UP)
        error = self._backup(run, session, policy.backup_purpose)
        if error:
            return run.finish(OutcomeStatus.FAILED, FailureReason.BACKUP_FAILED, error)

        run.enter(ExecutorState.APPLYING)
        try:
            self.driver.apply(session, payload, replace=policy.replace)
            run.changed = True
            run.log.info("Конфигурация применена")
        except DeployerError as e:
            if not isinstance(e, (UnreachableError, AuthenticationError)):
                run.changed = True
            run.log.error(f"Ошибка применения: {e}")
            return self._fail_or_rollback(run, session, e)

        if policy.verify and request.checks:
            run.enter(ExecutorState.VERIFYING)
            run.verification = self._verify(run, session, request.checks)
            failed = [r.command for r in run.verification if not r.passed]
            if failed:
                error = VerificationMismatchError(
                    f"Проверка не прошла: {len(failed)}/{len(run.verification)}",
                    device=device.name,
                    failed_checks=failed,
                )
                run.log.error(str(error))
                return self._fail_or_rollback(run, session, error)

        return run.finish(OutcomeStatus.SUCCEEDED)

    def _backup(self, run: _DeviceRun, session, purpose: SnapshotPurpose) -> Optional[str]:
        """Снимает бэкап. Возвращает текст ошибки или None."""
        try:
            snapshot = self.store.backup(
                run.device,
                self.driver,
                session=session,
                purpose=purpose,
                kinds=self.backup_kinds,
            )
        except DeployerError as e:
            run.log.error(f"Бэкап не снят: {e}")
            return str(e)

        run.backup_ref = snapshot.ref
        return None

    def _verify(
        self,
        run: _DeviceRun,
        session,
        checks: Sequence[VerificationCheck],
    ) -> Tuple[VerificationResult, ...]:
        """Выполняет проверки. Ошибка или таймаут команды — проверка не прошла."""
        results = []
        for check in checks:
            try:
                output = self.driver.run_command(
                    session, check.command, timeout=self.timeouts.verify
                )
            except DeviceError as e:
                run.log.warning(f"Проверка '{check.command}': {e}")
                results.append(VerificationResult(
                    command=check.command,
                    expect=check.expect,
                    passed=False,
                    error=str(e),
                ))
                continue

            try:
                found = re.search(check.expect, output, re.MULTILINE) is not None
            except re.error as e:
                results.append(VerificationResult(
                    command=check.command,
                    expect=check.expect,
                    passed=False,
                    output=output[:MAX_OUTPUT_CHARS],
                    error=f"Некорректное выражение: {e}",
                ))
                continue

            passed = found != check.negate
            if not passed:
                run.log.warning(f"Проверка '{check.command}' не прошла (ожидалось: {check.expect})")
            results.append(VerificationResult(
                command=check.command,
                expect=check.expect,
                passed=passed,
                output=output[:MAX_OUTPUT_CHARS],
            ))
        return tuple(results)

    def _fail_or_rollback(self, run: _DeviceRun, session, error: DeployerError) -> ChangeOutcome:
        reason = reason_for_error(error)
        policy = run.request.policy
        if policy.auto_rollback and run.backup_ref is not None:
            return self._rollback(run, session, reason, str(error))
        if policy.escalate_on_failure:
            return self._manual_intervention(run, f"восстановление не удалось: {error}")
        return run.finish(OutcomeStatus.FAILED, reason, str(error))

    def _manual_intervention(self, run: _DeviceRun, error: str) -> ChangeOutcome:
        """Итог, который нельзя исправить автоматически."""
        failure = RollbackFailedError(error, device=run.device.name)
        run.log.critical(
            f"ТРЕБУЕТСЯ РУЧНОЕ ВМЕШАТЕЛЬСТВО: {error}",
            state=run.state.value,
        )
        return run.finish(
            OutcomeStatus.FAILED,
            reason_for_error(failure),
            failure.message,
            rollback_attempted_and_failed=True,
        )

    def _rollback(
        self,
        run: _DeviceRun,
        session,
        reason: FailureReason,
        error: str,
    ) -> ChangeOutcome:
        """Восстанавливает бэкап этого запуска и проверяет доступность."""
        device = run.device
        run.enter(ExecutorState.ROLLING_BACK, note=reason.value)
        run.log.warning(f"Откат на {run.backup_ref.path}")

        try:
            snapshot = self.store.load(run.backup_ref)
            self.driver.apply(session, snapshot.content, replace=True)
            with self.driver.session(device, timeout=self.timeouts.post_rollback):
                pass
        except Exception as e:
            # Изменение уже применено частично: любая ошибка здесь требует человека
            return self._manual_intervention(
                run, f"{error}; откат: {format_error_for_log(e)}"
            )

        run.log.info("Откат выполнен")
        return run.finish(OutcomeStatus.ROLLED_BACK, reason, error)
