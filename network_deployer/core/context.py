"""
Контекст выполнения запуска.

RunContext создаётся один раз в CLI и доступен всем слоям:
- run_id попадает в каждую строку лога
- output_dir — папка отчётов запуска (reports/run_<id>/)

Пример использования:
    ctx = RunContext.create(command="bulk-update", dry_run=False)
    set_current_context(ctx)
    # report.json, report.txt, run.log сохраняются в reports/run_2025-03-14T12-30-22/
"""

import json
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Optional, Literal

logger = logging.getLogger(__name__)

TriggerSource = Literal["cli", "cron", "test"]


@dataclass
class RunContext:
    """
    Контекст выполнения операции.

    Attributes:
        run_id: Идентификатор запуска (timestamp или короткий UUID)
        started_at: Время начала
        dry_run: Режим плана без обращения к устройствам
        triggered_by: Источник запуска (cli/cron/test)
        command: Команда CLI
        output_dir: Папка отчётов запуска
        extra: Дополнительные данные
    """

    run_id: str
    started_at: datetime
    dry_run: bool = False
    triggered_by: TriggerSource = "cli"
    command: str = ""
    output_dir: Optional[Path] = None
    extra: dict = field(default_factory=dict)

    @classmethod
    def create(
        cls,
        dry_run: bool = False,
        triggered_by: TriggerSource = "cli",
        command: str = "",
        base_output_dir: Optional[Path] = None,
        use_timestamp_id: bool = True,
    ) -> "RunContext":
        """
        Создаёт новый контекст выполнения.

        Args:
            dry_run: Режим плана
            triggered_by: Источник запуска
            command: Название команды CLI
            base_output_dir: Базовая папка отчётов (default: reports/)
            use_timestamp_id: run_id из времени запуска вместо UUID

        Returns:
            RunContext: Новый контекст
        """
        started_at = datetime.now()

        if use_timestamp_id:
            # Формат: 2025-03-14T12-30-22
            run_id = started_at.strftime("%Y-%m-%dT%H-%M-%S")
        else:
            run_id = str(uuid.uuid4())[:8]

        if base_output_dir is None:
            base_output_dir = Path("reports")

        ctx = cls(
            run_id=run_id,
            started_at=started_at,
            dry_run=dry_run,
            triggered_by=triggered_by,
            command=command,
            output_dir=Path(base_output_dir) / f"run_{run_id}",
        )

        logger.debug(f"Создан RunContext: {ctx.run_id} (dry_run={dry_run})")
        return ctx

    def ensure_output_dir(self) -> Path:
        """Создаёт папку отчётов, если её нет."""
        if self.output_dir:
            self.output_dir.mkdir(parents=True, exist_ok=True)
            return self.output_dir
        raise ValueError("output_dir не задан")

    def get_output_path(self, filename: str) -> Path:
        """
        Полный путь для файла отчёта.

        Args:
            filename: Имя файла (например, "report.json")

        Returns:
            Path: reports/run_xxx/report.json
        """
        self.ensure_output_dir()
        return self.output_dir / filename

    @property
    def elapsed_seconds(self) -> float:
        return (datetime.now() - self.started_at).total_seconds()

    @property
    def elapsed_human(self) -> str:
        """Время выполнения в человекочитаемом формате."""
        elapsed = self.elapsed_seconds
        if elapsed < 60:
            return f"{elapsed:.1f}s"
        elif elapsed < 3600:
            return f"{int(elapsed // 60)}m {int(elapsed % 60)}s"
        return f"{int(elapsed // 3600)}h {int((elapsed % 3600) // 60)}m"

    def to_dict(self) -> dict:
        return {
            "run_id": self.run_id,
            "started_at": self.started_at.isoformat(),
            "dry_run": self.dry_run,
            "triggered_by": self.triggered_by,
            "command": self.command,
            "output_dir": str(self.output_dir) if self.output_dir else None,
            "elapsed_seconds": self.elapsed_seconds,
            "extra": self.extra,
        }

    def save_summary(self, stats: Optional[dict] = None) -> Path:
        """
        Сохраняет summary.json в папку отчётов.

        Args:
            stats: Счётчики по статусам и т.п.

        Returns:
            Path: Путь к summary.json
        """
        summary = self.to_dict()
        summary["completed_at"] = datetime.now().isoformat()
        if stats:
            summary["stats"] = stats

        summary_path = self.get_output_path("summary.json")
        with open(summary_path, "w", encoding="utf-8") as f:
            json.dump(summary, f, indent=2, ensure_ascii=False)

        logger.info(f"Summary сохранён: {summary_path}")
        return summary_path

    def __str__(self) -> str:
        dry = " [DRY-RUN]" if self.dry_run else ""
        return f"RunContext({self.run_id}{dry})"


# Глобальный контекст для случаев, когда его не прокидывают явно
_current_context: Optional[RunContext] = None


def get_current_context() -> Optional[RunContext]:
    """Текущий глобальный контекст."""
    return _current_context


def set_current_context(ctx: Optional[RunContext]) -> None:
    """Устанавливает текущий глобальный контекст."""
    global _current_context
    _current_context = ctx


class RunContextFilter(logging.Filter):
    """
    Добавляет run_id к записям обычных logging.getLogger логгеров.

    StructuredLogger добавляет run_id сам; фильтр нужен для остальных.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        if getattr(record, "run_id", None) is None:
            ctx = get_current_context()
            if ctx:
                record.run_id = ctx.run_id
        return True
