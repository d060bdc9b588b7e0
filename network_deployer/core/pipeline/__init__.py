"""
Pipeline module - батчевый выкат изменений с бэкапом и откатом.

Компоненты:
- BatchPlanner: разбиение устройств на батчи
- ChangeExecutor: изменение на одном устройстве (state machine)
- FleetOrchestrator: батчи последовательно, устройства параллельно
- RollbackCoordinator: восстановление на точку восстановления

Example:
    from network_deployer.core.pipeline import ChangeExecutor, FleetOrchestrator

    executor = ChangeExecutor(driver, store)
    orchestrator = FleetOrchestrator(executor, halt_threshold=0.2)
    report = orchestrator.run(request)
"""

from .planner import Batch, BatchPlanner
from .executor import ChangeExecutor, ExecutorTimeouts, reason_for_error
from .orchestrator import FleetOrchestrator, failure_rate, is_retry_eligible
from .rollback import RollbackCoordinator

__all__ = [
    "Batch",
    "BatchPlanner",
    "ChangeExecutor",
    "ExecutorTimeouts",
    "reason_for_error",
    "FleetOrchestrator",
    "failure_rate",
    "is_retry_eligible",
    "RollbackCoordinator",
]
