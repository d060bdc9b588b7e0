"""
FleetOrchestrator — выкат изменения по всему набору устройств.

Батчи выполняются строго последовательно; устройства внутри батча —
параллельно (ThreadPoolExecutor на батч). Следующий батч не начинается,
пока каждое устройство текущего не дошло до терминального состояния.

После каждого батча считается накопленная доля ошибок:

    (failed + rolled-back) / attempted

attempted — устройства, до которых дошло изменение (без недоступных).
Доля выше halt_threshold останавливает запуск: оставшиеся устройства
получают статус skipped-not-attempted. Отчёт формируется всегда.
"""

import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import datetime
from typing import Callable, Dict, List, Optional

from ..context import get_current_context
from ..device import Device
from ..exceptions import TemplateError, format_error_for_log
from ..logging import get_logger
from ..models import (
    ChangeOutcome,
    ChangeRequest,
    FailureReason,
    Operation,
    OutcomeStatus,
    PlannedDevice,
    RunPlan,
    RunReport,
)
from .planner import Batch, BatchPlanner

logger = get_logger(__name__)

DEFAULT_HALT_THRESHOLD = 0.2

# Статусы, которые считаются ошибкой изменения
FAILURE_STATUSES = (OutcomeStatus.FAILED, OutcomeStatus.ROLLED_BACK)

# Статусы, при которых изменение не выполнялось
NOT_ATTEMPTED_STATUSES = (
    OutcomeStatus.SKIPPED_UNREACHABLE,
    OutcomeStatus.SKIPPED_NOT_ATTEMPTED,
)


def failure_rate(outcomes: List[ChangeOutcome]) -> float:
    """
    Доля ошибок среди устройств, до которых дошло изменение.

    Returns:
        float: 0.0 если попыток не было
    """
    attempted = [o for o in outcomes if o.status not in NOT_ATTEMPTED_STATUSES]
    if not attempted:
        return 0.0
    failed = sum(1 for o in attempted if o.status in FAILURE_STATUSES)
    return failed / len(attempted)


def is_retry_eligible(outcome: ChangeOutcome) -> bool:
    """Повторять можно только то, что не меняло устройство."""
    if outcome.status == OutcomeStatus.SKIPPED_UNREACHABLE:
        return True
    return (
        outcome.status == OutcomeStatus.FAILED
        and outcome.reason == FailureReason.BACKUP_FAILED
        and not outcome.changed
    )


class FleetOrchestrator:
    """
    Выполняет ChangeRequest по батчам и собирает RunReport.

    Единственный писатель отчёта: исполнители возвращают ChangeOutcome,
    оркестратор складывает их в отчёт в порядке входного набора.

    Attributes:
        executor: ChangeExecutor
        planner: BatchPlanner
        halt_threshold: Порог доли ошибок для остановки (0..1)
        max_retries: Повторы для недоступных устройств (по умолчанию 0)
        retry_delay: Пауза перед повтором (секунды)

    Example:
        orchestrator = FleetOrchestrator(executor, halt_threshold=0.2)
        report = orchestrator.run(request)
        print(report.counts)
    """

    def __init__(
        self,
        executor,
        planner: Optional[BatchPlanner] = None,
        halt_threshold: float = DEFAULT_HALT_THRESHOLD,
        max_retries: int = 0,
        retry_delay: float = 0,
        on_batch_start: Optional[Callable[[Batch, int], None]] = None,
        on_outcome: Optional[Callable[[ChangeOutcome], None]] = None,
    ):
        if not 0.0 <= halt_threshold <= 1.0:
            raise ValueError(f"halt_threshold должен быть в диапазоне 0..1, получен {halt_threshold}")
        self.executor = executor
        self.planner = planner or BatchPlanner()
        self.halt_threshold = halt_threshold
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.on_batch_start = on_batch_start
        self.on_outcome = on_outcome
        self._cancel = threading.Event()
        self._cancel_reason: Optional[str] = None

    def cancel(self, reason: str = "Отменено оператором") -> None:
        """
        Останавливает запуск: новые батчи не начинаются,
        текущий батч завершается полностью.
        """
        if not self._cancel.is_set():
            self._cancel_reason = reason
            self._cancel.set()
            logger.warning(f"Запрошена остановка: {reason}. Текущий батч будет завершён")

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    def run(self, request: ChangeRequest, run_id: Optional[str] = None) -> RunReport:
        """
        Выполняет запрос по всем батчам.

        Args:
            request: Запрос на изменение
            run_id: ID запуска (по умолчанию из RunContext или время)

        Returns:
            RunReport: Отчёт (всегда, в том числе при остановке)
        """
        # Остановка относится к одному запуску: повторный run начинается заново
        self._cancel.clear()
        self._cancel_reason = None

        started_at = datetime.now()
        run_id = run_id or self._run_id(started_at)
        batches = self.planner.plan(request.devices, request.batch_size)
        log = logger.bind(operation=request.operation.value, run_id=run_id)

        log.info(
            f"Запуск: {len(request.devices)} устройств, {len(batches)} батчей "
            f"по {request.batch_size}, порог остановки {self.halt_threshold:.0%}"
        )

        outcomes: Dict[str, ChangeOutcome] = {}
        completed = 0
        halt_reason: Optional[str] = None

        for batch in batches:
            if self._cancel.is_set():
                halt_reason = self._cancel_reason
                break

            self._notify(self.on_batch_start, batch, len(batches))
            log.info(
                f"Батч {batch.index}/{len(batches)}: {', '.join(batch.device_names)}",
                batch=batch.index,
            )

            for outcome in self._run_batch(batch, request):
                outcomes[outcome.device] = outcome
            completed += 1

            rate = failure_rate(list(outcomes.values()))
            log.info(
                f"Батч {batch.index} завершён, доля ошибок {rate:.0%}",
                batch=batch.index,
            )
            if rate > self.halt_threshold and batch.index < len(batches):
                halt_reason = (
                    f"Доля ошибок {rate:.0%} превысила порог {self.halt_threshold:.0%} "
                    f"после батча {batch.index}"
                )
                log.error(f"Остановка: {halt_reason}")
                break

        if halt_reason is None and self._cancel.is_set() and completed < len(batches):
            halt_reason = self._cancel_reason

        for batch in batches[completed:]:
            for device in batch.devices:
                outcomes[device.name] = ChangeOutcome.not_attempted(
                    device.name, batch_index=batch.index, error=halt_reason or ""
                )

        report = RunReport(
            run_id=run_id,
            operation=request.operation,
            outcomes=tuple(outcomes[d.name] for d in request.devices),
            started_at=started_at,
            finished_at=datetime.now(),
            batch_count=len(batches),
            batches_completed=completed,
            halted=halt_reason is not None,
            halt_reason=halt_reason,
        )

        log.info(f"Запуск завершён: {self._format_counts(report)}")
        if report.manual_intervention:
            log.critical(
                "Требуется ручное вмешательство: "
                + ", ".join(o.device for o in report.manual_intervention)
            )
        return report

    def _run_batch(self, batch: Batch, request: ChangeRequest) -> List[ChangeOutcome]:
        """
        Выполняет батч параллельно и ждёт завершения всех устройств.

        Returns:
            List[ChangeOutcome]: Итоги в порядке батча
        """
        results: Dict[str, ChangeOutcome] = {}

        with ThreadPoolExecutor(max_workers=len(batch)) as pool:
            futures = {
                pool.submit(self._execute_with_retry, device, request, batch.index): device
                for device in batch.devices
            }
            for future in as_completed(futures):
                device = futures[future]
                try:
                    outcome = future.result()
                except Exception as e:
                    logger.exception(
                        f"Исполнитель завершился с ошибкой: {e}",
                        device=device.name,
                        batch=batch.index,
                    )
                    outcome = ChangeOutcome(
                        device=device.name,
                        status=OutcomeStatus.FAILED,
                        reason=FailureReason.INTERNAL_ERROR,
                        error=format_error_for_log(e),
                        batch_index=batch.index,
                    )
                results[device.name] = outcome
                self._notify(self.on_outcome, outcome)

        return [results[d.name] for d in batch.devices]

    def _notify(self, callback: Optional[Callable[..., None]], *args) -> None:
        """Вызывает callback; его ошибка не прерывает запуск."""
        if callback is None:
            return
        try:
            callback(*args)
        except Exception as e:
            logger.exception(f"Ошибка в callback {getattr(callback, '__name__', callback)}: {e}")

    def _execute_with_retry(
        self,
        device: Device,
        request: ChangeRequest,
        batch_index: int,
    ) -> ChangeOutcome:
        """Выполнение с явным ограниченным повтором (до изменения устройства)."""
        attempt = 1
        outcome = self.executor.execute(device, request, batch_index=batch_index, attempt=attempt)

        while (
            attempt <= self.max_retries
            and is_retry_eligible(outcome)
            and not self._cancel.is_set()
        ):
            logger.warning(
                f"Повтор {attempt}/{self.max_retries} после {outcome.status.value}"
                + (f" ({outcome.reason.value})" if outcome.reason else ""),
                device=device.name,
                batch=batch_index,
            )
            if self.retry_delay:
                time.sleep(self.retry_delay)
            attempt += 1
            outcome = self.executor.execute(
                device, request, batch_index=batch_index, attempt=attempt
            )

        return outcome

    def plan(self, request: ChangeRequest) -> RunPlan:
        """
        План запуска без обращения к устройствам (dry-run).

        Конфигурация рендерится для каждого устройства; ошибка рендеринга
        попадает в план.
        """
        batches = self.planner.plan(request.devices, request.batch_size)
        planned = []
        for batch in batches:
            items = []
            for device in batch.devices:
                try:
                    payload = (
                        None if request.operation == Operation.BACKUP
                        else self.executor.render_payload(device, request)
                    )
                    items.append(PlannedDevice(device.name, batch.index, payload=payload))
                except TemplateError as e:
                    items.append(PlannedDevice(
                        device.name, batch.index, error=format_error_for_log(e)
                    ))
            planned.append(tuple(items))

        plan = RunPlan(
            operation=request.operation,
            batch_size=request.batch_size,
            batches=tuple(planned),
        )
        logger.info(
            f"[DRY RUN] {len(request.devices)} устройств, {len(batches)} батчей, "
            f"ошибок подготовки: {len(plan.errors)}",
            operation=request.operation.value,
        )
        return plan

    @staticmethod
    def _run_id(started_at: datetime) -> str:
        ctx = get_current_context()
        if ctx:
            return ctx.run_id
        return started_at.strftime("%Y-%m-%dT%H-%M-%S")

    @staticmethod
    def _format_counts(report: RunReport) -> str:
        parts = [f"{status}={count}" for status, count in report.counts.items() if count]
        if report.halted:
            parts.append("halted")
        return ", ".join(parts) or "нет устройств"
