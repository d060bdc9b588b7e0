"""
Команды работы с бэкапами.

Команды: backup, list-backups, verify-backups
"""

import logging

from ..utils import (
    EXIT_FAILED,
    EXIT_OK,
    build_store,
    execute_request,
    get_batch_size,
    load_targets,
)
from ...core.models import ChangePolicy, ChangeRequest, Operation, SnapshotKind
from ...exporters import JSONExporter

logger = logging.getLogger(__name__)


def cmd_backup(args, ctx, settings) -> int:
    """Обработчик команды backup (снапшоты без изменений)."""
    operation = Operation.BACKUP
    devices = load_targets(args, settings)

    request = ChangeRequest(
        operation=operation,
        devices=devices,
        batch_size=get_batch_size(args, settings, operation),
        policy=ChangePolicy.for_operation(operation),
        description="backup",
    )
    return execute_request(args, ctx, settings, request)


def cmd_list_backups(args, ctx, settings) -> int:
    """Обработчик команды list-backups (только манифесты, без устройств)."""
    store = build_store(settings)
    kind = None if args.kind == "all" else SnapshotKind(args.kind)
    refs = store.list(args.device, kind=kind, include_safety=not args.no_safety)

    if not refs:
        logger.warning("Снапшоты не найдены")
        return EXIT_OK

    print(f"{'DEVICE':<30} {'TIMESTAMP':<28} {'KIND':<8} {'PURPOSE':<11} CHECKSUM")
    for ref in refs:
        print(
            f"{ref.device:<30} {ref.timestamp.isoformat():<28} "
            f"{ref.kind.value:<8} {ref.purpose.value:<11} {ref.checksum[:12]}"
        )
    logger.info(f"Всего снапшотов: {len(refs)}")
    return EXIT_OK


def cmd_verify_backups(args, ctx, settings) -> int:
    """Обработчик команды verify-backups (аудит целостности хранилища)."""
    store = build_store(settings)
    issues = store.audit(args.device)

    for issue in issues:
        logger.error(
            f"  {issue.ref.device} {issue.ref.timestamp.isoformat()} "
            f"{issue.ref.kind.value}: {issue.problem} ({issue.ref.path})"
        )

    JSONExporter(output_folder=ctx.ensure_output_dir()).export(
        {"issues": [i.to_dict() for i in issues]},
        "integrity",
    )
    return EXIT_FAILED if issues else EXIT_OK
