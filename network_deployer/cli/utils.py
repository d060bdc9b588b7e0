"""
Утилиты CLI.

Общие функции для всех команд CLI: загрузка целей и файлов,
сборка компонентов из конфигурации, отчёты, коды выхода.
"""

import logging
import signal
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

import yaml

from ..backup import BackupStore
from ..configurator import TemplateRenderer
from ..core.credentials import CredentialsManager
from ..core.device import Device
from ..core.exceptions import ConfigError
from ..core.inventory import load_inventory, select_targets
from ..core.models import (
    MANDATORY_TAGS,
    STEP_TAGS,
    Operation,
    OutcomeStatus,
    RunPlan,
    RunReport,
    SnapshotKind,
    StepFilter,
    VerificationCheck,
)
from ..core.pipeline import ChangeExecutor, ExecutorTimeouts, FleetOrchestrator
from ..drivers import SSHDriver
from ..exporters import JSONExporter, TextExporter

logger = logging.getLogger(__name__)

# Коды выхода
EXIT_OK = 0
EXIT_FAILED = 1
EXIT_USAGE = 2
EXIT_MANUAL_INTERVENTION = 3


def load_devices(args, settings) -> List[Device]:
    """
    Загружает инвентарь (-i или inventory_file из config.yaml).

    Raises:
        ConfigError: Файл не найден или содержит ошибки
    """
    inventory_file = getattr(args, "inventory", None) or settings.inventory_file
    return load_inventory(inventory_file)


def load_targets(args, settings, selector: Optional[str] = None) -> List[Device]:
    """
    Устройства, выбранные --target (или явным селектором).

    Raises:
        ConfigError: Инвентарь некорректен или селектор ничего не выбрал
    """
    devices = load_devices(args, settings)
    selector = selector or getattr(args, "target", None) or "all"
    targets = select_targets(devices, selector)
    logger.info(f"Выбрано устройств: {len(targets)} (--target {selector})")
    return targets


def read_yaml(filepath: Union[str, Path]) -> Any:
    """
    Читает YAML-файл.

    Raises:
        ConfigError: Файл не найден или некорректен
    """
    path = Path(filepath)
    if not path.exists():
        raise ConfigError(f"Файл не найден: {path}", config_file=str(path))
    try:
        with open(path, "r", encoding="utf-8") as f:
            return yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Ошибка парсинга YAML: {e}", config_file=str(path)) from e


def read_text(filepath: Union[str, Path]) -> str:
    """Читает текстовый файл (конфигурация для bulk-update)."""
    path = Path(filepath)
    if not path.exists():
        raise ConfigError(f"Файл не найден: {path}", config_file=str(path))
    return path.read_text(encoding="utf-8")


def parse_checks(data: Any, source: str = "") -> Tuple[VerificationCheck, ...]:
    """
    Проверки из YAML: список или {"checks": [...]}.

    Формат:
        checks:
          - command: show running-config | include ntp server
            expect: "ntp server 10.10.0.1"
          - command: show logging
            expect: "%SYS-"
            negate: true
    """
    if data is None:
        return ()
    if isinstance(data, dict):
        data = data.get("checks") or []
    if not isinstance(data, list):
        raise ConfigError("checks должен быть списком", config_file=source or None)

    checks = []
    for idx, item in enumerate(data):
        if not isinstance(item, dict) or "command" not in item or "expect" not in item:
            raise ConfigError(
                f"Проверка #{idx}: нужны поля 'command' и 'expect'",
                config_file=source or None,
            )
        checks.append(VerificationCheck.from_dict(item))
    return tuple(checks)


def load_checks(filepath: Optional[str]) -> Tuple[VerificationCheck, ...]:
    """Проверки из файла --checks (пусто, если файл не указан)."""
    if not filepath:
        return ()
    return parse_checks(read_yaml(filepath), source=filepath)


def load_vars(filepath: Optional[str]) -> Dict[str, Any]:
    """Переменные шаблона из файла --vars."""
    if not filepath:
        return {}
    data = read_yaml(filepath) or {}
    if not isinstance(data, dict):
        raise ConfigError("Файл переменных должен содержать словарь", config_file=filepath)
    return data


def parse_tags(value: Optional[str]) -> Tuple[str, ...]:
    """'verify,rollback' -> ("verify", "rollback")."""
    if not value:
        return ()
    tags = tuple(t.strip() for t in value.split(",") if t.strip())
    unknown = [t for t in tags if t not in STEP_TAGS]
    if unknown:
        raise ConfigError(
            f"Неизвестные теги: {', '.join(unknown)} (доступны: {', '.join(STEP_TAGS)})"
        )
    return tags


def get_step_filter(args) -> StepFilter:
    """StepFilter из --tags / --skip-tags."""
    tags = parse_tags(getattr(args, "tags", None))
    skip_tags = parse_tags(getattr(args, "skip_tags", None))
    for tag in skip_tags:
        if tag in MANDATORY_TAGS:
            logger.warning(f"Шаг '{tag}' нельзя пропустить, --skip-tags {tag} игнорируется")
    return StepFilter(tags=tags, skip_tags=skip_tags)


def get_batch_size(args, settings, operation: Operation) -> int:
    """--batch-size или значение из rollout.batch_sizes."""
    batch_size = getattr(args, "batch_size", None)
    if batch_size is not None:
        if batch_size <= 0:
            raise ConfigError(f"--batch-size должен быть > 0, получен {batch_size}")
        return batch_size
    return settings.batch_size_for(operation)


def get_credentials():
    """
    Получает учётные данные для подключения.

    Returns:
        Credentials: Объект с учётными данными
    """
    creds_manager = CredentialsManager()
    return creds_manager.get_credentials()


def build_store(settings) -> BackupStore:
    """Хранилище бэкапов из секции backup."""
    return BackupStore(settings.backup.root, connect_timeout=settings.timeouts.reachability)


def build_driver(settings, credentials=None) -> SSHDriver:
    """SSH драйвер из секций connection и timeouts."""
    conn = settings.connection
    return SSHDriver(
        credentials or get_credentials(),
        transport=conn.transport,
        conn_timeout=conn.conn_timeout,
        read_timeout=conn.read_timeout,
        apply_timeout=settings.timeouts.apply,
        max_retries=conn.max_retries,
        retry_delay=conn.retry_delay,
    )


def build_executor(settings, driver, store) -> ChangeExecutor:
    """ChangeExecutor с рендерером шаблонов и таймаутами из конфигурации."""
    timeouts = settings.timeouts
    return ChangeExecutor(
        driver,
        store,
        renderer=TemplateRenderer(settings.templates.dir),
        timeouts=ExecutorTimeouts(
            reachability=timeouts.reachability,
            verify=timeouts.verify,
            post_rollback=timeouts.post_rollback,
        ),
        backup_kinds=tuple(SnapshotKind(k) for k in settings.backup.kinds),
    )


def build_orchestrator(args, settings, executor) -> FleetOrchestrator:
    """FleetOrchestrator с порогом остановки из --halt-threshold или config.yaml."""
    halt_threshold = getattr(args, "halt_threshold", None)
    if halt_threshold is None:
        halt_threshold = settings.rollout.halt_threshold
    if not 0.0 <= halt_threshold <= 1.0:
        raise ConfigError(f"--halt-threshold должен быть в диапазоне 0..1, получен {halt_threshold}")
    return FleetOrchestrator(
        executor,
        halt_threshold=halt_threshold,
        max_retries=settings.rollout.max_retries,
        retry_delay=settings.rollout.retry_delay,
    )


@contextmanager
def cancel_on_sigint(orchestrator: FleetOrchestrator):
    """
    Первый Ctrl+C останавливает запуск после текущего батча,
    второй прерывает процесс.
    """
    previous = signal.getsignal(signal.SIGINT)

    def handler(signum, frame):
        orchestrator.cancel("Прервано оператором (SIGINT)")
        signal.signal(signal.SIGINT, signal.default_int_handler)

    signal.signal(signal.SIGINT, handler)
    try:
        yield orchestrator
    finally:
        signal.signal(signal.SIGINT, previous)


def write_reports(result: Union[RunReport, RunPlan], ctx, settings) -> None:
    """
    Сохраняет report.json/report.txt (или plan.json для dry-run)
    в папку запуска.
    """
    output_dir = ctx.ensure_output_dir()
    json_exporter = JSONExporter(output_folder=output_dir, indent=settings.output.json_indent)
    text_exporter = TextExporter(output_folder=output_dir)

    if isinstance(result, RunPlan):
        json_exporter.export_plan(result)
        if settings.output.text_report:
            text_exporter.export_plan(result)
        return

    json_exporter.export_report(result)
    if settings.output.text_report:
        text_exporter.export_report(result)
    ctx.save_summary(result.counts)


def print_summary(report: RunReport) -> None:
    """Короткий итог в лог."""
    logger.info("=== РЕЗУЛЬТАТЫ ===")
    for status, count in report.counts.items():
        if count:
            logger.info(f"{status}: {count}")
    if report.halted:
        logger.error(f"Запуск остановлен: {report.halt_reason}")
    for outcome in report.outcomes:
        if outcome.error and outcome.status != OutcomeStatus.SUCCEEDED:
            logger.error(f"  {outcome.device}: {outcome.status.value} ({outcome.error})")
    for outcome in report.manual_intervention:
        logger.critical(f"  ТРЕБУЕТСЯ РУЧНОЕ ВМЕШАТЕЛЬСТВО: {outcome.device}")


def exit_code_for(report: RunReport) -> int:
    """0 — все успешно, 1 — ошибки или остановка, 3 — нужен человек."""
    if report.manual_intervention:
        return EXIT_MANUAL_INTERVENTION
    if report.success:
        return EXIT_OK
    return EXIT_FAILED


def execute_request(args, ctx, settings, request) -> int:
    """
    Выполняет запрос через FleetOrchestrator (или строит план в dry-run)
    и сохраняет отчёты.

    Returns:
        int: Код выхода
    """
    store = build_store(settings)

    if getattr(args, "dry_run", False):
        # Без драйвера: в dry-run устройства не трогаются
        executor = build_executor(settings, None, store)
        plan = build_orchestrator(args, settings, executor).plan(request)
        write_reports(plan, ctx, settings)
        for item in plan.errors:
            logger.error(f"  {item.device}: {item.error}")
        return EXIT_FAILED if plan.errors else EXIT_OK

    executor = build_executor(settings, build_driver(settings), store)
    orchestrator = build_orchestrator(args, settings, executor)
    with cancel_on_sigint(orchestrator):
        report = orchestrator.run(request, run_id=ctx.run_id)

    write_reports(report, ctx, settings)
    print_summary(report)
    return exit_code_for(report)
