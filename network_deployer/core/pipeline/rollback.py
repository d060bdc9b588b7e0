"""
RollbackCoordinator — восстановление конфигурации на точку восстановления.

Для каждого устройства:
1. Точка восстановления через BackupStore.resolve(device, selector).
   Нет снапшота или checksum не совпадает — устройство failed,
   запуск продолжается.
2. Запрос на восстановление: payload = содержимое снапшота, полная
   замена, бэкап перед восстановлением с пометкой safety, без авто-отката.
3. Выполнение через FleetOrchestrator (по умолчанию батчи по 5).

Safety-снапшоты не являются точками восстановления, поэтому повторный
откат с тем же селектором восстанавливает ту же конфигурацию.
"""

from dataclasses import replace
from datetime import datetime
from typing import Dict, List, Optional, Sequence

from ..device import Device
from ..exceptions import BackupError
from ..logging import get_logger
from ..models import (
    ChangeOutcome,
    ChangePolicy,
    ChangeRequest,
    ConfigSnapshot,
    ExecutorState,
    Operation,
    OutcomeStatus,
    PlannedDevice,
    RunPlan,
    RunReport,
    StateTransition,
    StepFilter,
    VerificationCheck,
)
from .executor import reason_for_error

logger = get_logger(__name__)

DEFAULT_ROLLBACK_BATCH_SIZE = 5


class RollbackCoordinator:
    """
    Откат набора устройств на точку восстановления.

    Attributes:
        orchestrator: FleetOrchestrator
        store: BackupStore
        default_batch_size: Размер батча по умолчанию

    Example:
        coordinator = RollbackCoordinator(orchestrator, store)
        report = coordinator.rollback(devices, selector="2024-01-01")
    """

    def __init__(self, orchestrator, store, default_batch_size: int = DEFAULT_ROLLBACK_BATCH_SIZE):
        self.orchestrator = orchestrator
        self.store = store
        self.default_batch_size = default_batch_size

    def _resolve_all(
        self,
        devices: Sequence[Device],
        selector: str,
    ):
        """
        Точки восстановления по устройствам.

        Returns:
            tuple: (resolved {name: ConfigSnapshot}, failures [ChangeOutcome])
        """
        resolved = {}
        failures: List[ChangeOutcome] = []

        for device in devices:
            started_at = datetime.now()
            try:
                snapshot = self.store.resolve(device.name, selector)
            except BackupError as e:
                reason = reason_for_error(e)
                logger.error(
                    f"Точка восстановления '{selector}' не найдена: {e}",
                    device=device.name,
                    operation=Operation.ROLLBACK.value,
                )
                finished_at = datetime.now()
                failures.append(ChangeOutcome(
                    device=device.name,
                    status=OutcomeStatus.FAILED,
                    reason=reason,
                    error=str(e),
                    attempts=0,
                    started_at=started_at,
                    finished_at=finished_at,
                    states=(
                        StateTransition(ExecutorState.PENDING, started_at),
                        StateTransition(ExecutorState.FAILED, finished_at, reason.value),
                    ),
                ))
                continue

            resolved[device.name] = snapshot
            logger.info(
                f"Точка восстановления: {snapshot.path} ({snapshot.timestamp.isoformat()})",
                device=device.name,
                operation=Operation.ROLLBACK.value,
            )

        return resolved, failures

    def build_request(
        self,
        devices: Sequence[Device],
        restore_points: Dict[str, ConfigSnapshot],
        batch_size: Optional[int] = None,
        checks: Sequence[VerificationCheck] = (),
        steps: Optional[StepFilter] = None,
    ) -> ChangeRequest:
        """Запрос на восстановление для устройств с найденной точкой."""
        return ChangeRequest(
            operation=Operation.ROLLBACK,
            devices=tuple(d for d in devices if d.name in restore_points),
            payloads={name: s.content for name, s in restore_points.items()},
            batch_size=batch_size or self.default_batch_size,
            checks=tuple(checks),
            policy=ChangePolicy.for_operation(Operation.ROLLBACK, steps),
            restore_points={name: s.ref for name, s in restore_points.items()},
            description="rollback",
        )

    def rollback(
        self,
        devices: Sequence[Device],
        selector: str = "latest",
        batch_size: Optional[int] = None,
        checks: Sequence[VerificationCheck] = (),
        steps: Optional[StepFilter] = None,
        run_id: Optional[str] = None,
    ) -> RunReport:
        """
        Откатывает устройства на точку восстановления.

        Args:
            devices: Устройства (порядок сохраняется в отчёте)
            selector: "latest", дата YYYY-MM-DD или ISO timestamp
            batch_size: Размер батча (по умолчанию 5)
            checks: Проверки после восстановления
            steps: Фильтр шагов (--tags/--skip-tags)
            run_id: ID запуска

        Returns:
            RunReport: Отчёт по всем устройствам
        """
        started_at = datetime.now()
        logger.info(
            f"Откат {len(devices)} устройств на '{selector}'",
            operation=Operation.ROLLBACK.value,
        )

        resolved, failures = self._resolve_all(devices, selector)
        order = [d.name for d in devices]

        if not resolved:
            return RunReport(
                run_id=run_id or started_at.strftime("%Y-%m-%dT%H-%M-%S"),
                operation=Operation.ROLLBACK,
                outcomes=tuple(failures),
                started_at=started_at,
                finished_at=datetime.now(),
            )

        request = self.build_request(devices, resolved, batch_size, checks, steps)
        report = self.orchestrator.run(request, run_id=run_id)
        return replace(RunReport.merge(report, failures, order), started_at=started_at)

    def plan(
        self,
        devices: Sequence[Device],
        selector: str = "latest",
        batch_size: Optional[int] = None,
    ) -> RunPlan:
        """
        План отката без обращения к устройствам (dry-run).

        Устройства без точки восстановления попадают в план с ошибкой.
        """
        resolved, failures = self._resolve_all(devices, selector)
        errors = {o.device: o.error for o in failures}
        size = batch_size or self.default_batch_size

        batches = []
        for batch in self.orchestrator.planner.plan(devices, size):
            items = []
            for device in batch.devices:
                snapshot = resolved.get(device.name)
                if snapshot is None:
                    items.append(PlannedDevice(device.name, batch.index, error=errors[device.name]))
                else:
                    items.append(PlannedDevice(device.name, batch.index, payload=snapshot.content))
            batches.append(tuple(items))

        return RunPlan(operation=Operation.ROLLBACK, batch_size=size, batches=tuple(batches))
