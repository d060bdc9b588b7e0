"""
Команда rollback.

Восстановление конфигурации на точку восстановления:
    network-deployer rollback --restore-point 2024-01-01 --devices sw1,sw2
"""

import logging

from ..utils import (
    EXIT_FAILED,
    EXIT_OK,
    build_driver,
    build_executor,
    build_orchestrator,
    build_store,
    cancel_on_sigint,
    exit_code_for,
    get_batch_size,
    get_step_filter,
    load_checks,
    load_targets,
    print_summary,
    write_reports,
)
from ...core.models import Operation
from ...core.pipeline import RollbackCoordinator

logger = logging.getLogger(__name__)


def cmd_rollback(args, ctx, settings) -> int:
    """Обработчик команды rollback."""
    devices = load_targets(args, settings, selector=args.devices)
    batch_size = get_batch_size(args, settings, Operation.ROLLBACK)
    store = build_store(settings)

    if args.dry_run:
        executor = build_executor(settings, None, store)
        coordinator = RollbackCoordinator(build_orchestrator(args, settings, executor), store)
        plan = coordinator.plan(devices, args.restore_point, batch_size)
        write_reports(plan, ctx, settings)
        for item in plan.errors:
            logger.error(f"  {item.device}: {item.error}")
        return EXIT_FAILED if plan.errors else EXIT_OK

    executor = build_executor(settings, build_driver(settings), store)
    orchestrator = build_orchestrator(args, settings, executor)
    coordinator = RollbackCoordinator(orchestrator, store)

    with cancel_on_sigint(orchestrator):
        report = coordinator.rollback(
            devices,
            selector=args.restore_point,
            batch_size=batch_size,
            checks=load_checks(args.checks),
            steps=get_step_filter(args),
            run_id=ctx.run_id,
        )

    write_reports(report, ctx, settings)
    print_summary(report)
    return exit_code_for(report)
