"""
CLI модуль network_deployer.

Структура:
- utils.py: общие утилиты (инвентарь, сборка компонентов, отчёты)
- commands/: обработчики команд
  - deploy.py: enforce-compliance, deploy-templates, bulk-update
  - backup.py: backup, list-backups, verify-backups
  - rollback.py: rollback

Примеры использования:
    python -m network_deployer backup --target all
    python -m network_deployer enforce-compliance --baseline ntp.yaml --target nyc
    python -m network_deployer bulk-update --config-file snmp.cfg --batch-size 10
    python -m network_deployer rollback --restore-point 2024-01-01 --devices sw1,sw2

Коды выхода: 0 — все устройства успешно, 1 — ошибки или остановка,
2 — ошибка конфигурации/аргументов, 3 — требуется ручное вмешательство.
"""

import argparse
import logging
from pathlib import Path
from typing import List, Optional

from .utils import EXIT_USAGE
from .commands import (
    cmd_enforce_compliance,
    cmd_deploy_templates,
    cmd_bulk_update,
    cmd_backup,
    cmd_list_backups,
    cmd_verify_backups,
    cmd_rollback,
)

logger = logging.getLogger(__name__)

COMMANDS = {
    "enforce-compliance": cmd_enforce_compliance,
    "deploy-templates": cmd_deploy_templates,
    "bulk-update": cmd_bulk_update,
    "backup": cmd_backup,
    "list-backups": cmd_list_backups,
    "verify-backups": cmd_verify_backups,
    "rollback": cmd_rollback,
}


def _add_run_options(parser: argparse.ArgumentParser, target: bool = True) -> None:
    """Общие аргументы команд, которые выполняются по батчам."""
    if target:
        parser.add_argument(
            "--target",
            "-t",
            default="all",
            help="Цели: all, имя устройства, группа или роль; список через запятую (default: all)",
        )
    parser.add_argument(
        "--tags",
        help="Выполнять только эти шаги (verify, rollback, compliance)",
    )
    parser.add_argument(
        "--skip-tags",
        help="Пропустить шаги (verify, rollback, compliance); backup пропустить нельзя",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Только план: рендеринг и батчи, без подключения к устройствам",
    )
    parser.add_argument(
        "--batch-size",
        type=int,
        default=None,
        help="Размер батча (по умолчанию из rollout.batch_sizes)",
    )
    parser.add_argument(
        "--halt-threshold",
        type=float,
        default=None,
        help="Порог доли ошибок для остановки, 0..1 (default: 0.2)",
    )


def setup_parser() -> argparse.ArgumentParser:
    """
    Создаёт парсер аргументов командной строки.

    Returns:
        ArgumentParser: Настроенный парсер
    """
    parser = argparse.ArgumentParser(
        prog="network-deployer",
        description="Батчевое применение конфигурации с бэкапом и откатом (Scrapli + Netmiko)",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Примеры:
  %(prog)s backup --target nyc
  %(prog)s enforce-compliance --baseline baselines/ntp.yaml --target core
  %(prog)s deploy-templates --template access.j2 --vars vars.yaml --dry-run
  %(prog)s bulk-update --config-file snmp.cfg --checks checks.yaml
  %(prog)s rollback --restore-point latest --devices sw1,sw2
        """,
    )

    # Общие аргументы
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Подробный вывод (DEBUG)",
    )
    parser.add_argument(
        "-c",
        "--config",
        default=None,
        help="Путь к файлу конфигурации YAML (default: config.yaml)",
    )
    parser.add_argument(
        "-i",
        "--inventory",
        default=None,
        help="Файл инвентаря YAML (default: inventory_file из config.yaml)",
    )
    parser.add_argument(
        "-o",
        "--output",
        default=None,
        help="Папка для отчётов (default: output.output_folder)",
    )

    subparsers = parser.add_subparsers(dest="command", help="Команды")

    # === ENFORCE-COMPLIANCE ===
    enforce_parser = subparsers.add_parser(
        "enforce-compliance", help="Привести устройства к baseline"
    )
    enforce_parser.add_argument(
        "--baseline",
        required=True,
        help="YAML baseline: config/template, variables, checks",
    )
    _add_run_options(enforce_parser)

    # === DEPLOY-TEMPLATES ===
    templates_parser = subparsers.add_parser(
        "deploy-templates", help="Рендеринг и применение шаблонов по устройствам"
    )
    templates_parser.add_argument(
        "--template",
        default=None,
        help="Шаблон Jinja2 (по умолчанию templates.by_role из config.yaml)",
    )
    templates_parser.add_argument("--vars", default=None, help="YAML с переменными шаблона")
    templates_parser.add_argument("--checks", default=None, help="YAML с проверками после применения")
    _add_run_options(templates_parser)

    # === BULK-UPDATE ===
    bulk_parser = subparsers.add_parser(
        "bulk-update", help="Одинаковый фрагмент конфигурации на все устройства"
    )
    bulk_parser.add_argument(
        "--config-file",
        required=True,
        help="Файл с командами конфигурации",
    )
    bulk_parser.add_argument("--checks", default=None, help="YAML с проверками после применения")
    _add_run_options(bulk_parser)

    # === BACKUP ===
    backup_parser = subparsers.add_parser("backup", help="Снять бэкап конфигурации")
    _add_run_options(backup_parser)

    # === ROLLBACK ===
    rollback_parser = subparsers.add_parser(
        "rollback", help="Восстановить конфигурацию на точку восстановления"
    )
    rollback_parser.add_argument(
        "--restore-point",
        default="latest",
        help="latest, дата YYYY-MM-DD или ISO timestamp (default: latest)",
    )
    rollback_parser.add_argument(
        "--devices",
        "--target",
        "-t",
        dest="devices",
        required=True,
        help="Устройства для отката (имена, группы; через запятую)",
    )
    rollback_parser.add_argument("--checks", default=None, help="YAML с проверками после восстановления")
    _add_run_options(rollback_parser, target=False)

    # === LIST-BACKUPS ===
    list_parser = subparsers.add_parser("list-backups", help="Список снапшотов")
    list_parser.add_argument("--device", default=None, help="Только это устройство")
    list_parser.add_argument(
        "--kind",
        choices=["running", "startup", "all"],
        default="running",
        help="Тип конфигурации (default: running)",
    )
    list_parser.add_argument(
        "--no-safety",
        action="store_true",
        help="Скрыть safety-снапшоты (снятые перед откатом)",
    )

    # === VERIFY-BACKUPS ===
    verify_parser = subparsers.add_parser(
        "verify-backups", help="Проверить целостность хранилища (SHA-256)"
    )
    verify_parser.add_argument("--device", default=None, help="Только это устройство")

    return parser


def _setup_logging(args, settings, ctx):
    """Логирование из config.yaml + run.log в папке запуска."""
    from ..core.logging import (
        LogConfig,
        add_run_log_handler,
        setup_logging_from_config,
    )

    log_config = LogConfig.from_dict(settings.logging.model_dump())
    # Приоритет: -v флаг > config.yaml
    if args.verbose:
        log_config.level = logging.DEBUG
    setup_logging_from_config(log_config)

    if settings.logging.run_log and args.command != "list-backups":
        return add_run_log_handler(
            ctx.get_output_path("run.log"),
            json_format=settings.logging.json_format,
        )
    return None


def main(argv: Optional[List[str]] = None) -> int:
    """
    Главная функция CLI.

    Returns:
        int: Код выхода
    """
    from ..config import load_config
    from ..core.context import RunContext, set_current_context
    from ..core.exceptions import DeployerError, format_error_for_log
    from ..core.logging import remove_run_log_handler, setup_logging

    parser = setup_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return EXIT_USAGE

    try:
        settings = load_config(args.config).settings
    except DeployerError as e:
        setup_logging()
        logger.error(format_error_for_log(e))
        return EXIT_USAGE

    dry_run = getattr(args, "dry_run", False)
    ctx = RunContext.create(
        dry_run=dry_run,
        triggered_by="cli",
        command=args.command,
        base_output_dir=Path(args.output or settings.output.output_folder),
    )
    set_current_context(ctx)

    run_log = _setup_logging(args, settings, ctx)
    logger.info(f"Run started (command={args.command}, dry_run={dry_run})")

    try:
        code = COMMANDS[args.command](args, ctx, settings)
    except DeployerError as e:
        logger.error(format_error_for_log(e))
        code = EXIT_USAGE
    finally:
        logger.info(f"Run completed: {ctx.run_id} (elapsed={ctx.elapsed_human})")
        if run_log is not None:
            remove_run_log_handler(run_log)
        set_current_context(None)

    return code


__all__ = [
    "COMMANDS",
    "setup_parser",
    "main",
]
