"""
Базовый класс экспортера отчётов.

Определяет интерфейс для всех экспортеров и общую логику.
Все экспортеры должны наследоваться от BaseExporter.

Пример создания кастомного экспортера:
    class HTMLExporter(BaseExporter):
        file_extension = ".html"

        def _write(self, data, file_path):
            # Логика записи в HTML
            pass
"""

import logging
from abc import ABC, abstractmethod
from datetime import date, datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional, Union

from ..core.models import RunPlan, RunReport

logger = logging.getLogger(__name__)

REPORT_FILENAME = "report"
PLAN_FILENAME = "plan"


class BaseExporter(ABC):
    """
    Абстрактный базовый класс для экспортеров.

    Attributes:
        output_folder: Папка для сохранения файлов (обычно папка запуска)
        encoding: Кодировка файлов

    Example:
        exporter = JSONExporter(output_folder="reports/2024-01-01T10-00-00")
        exporter.export_report(report)
    """

    # Расширение файла (переопределяется в наследниках)
    file_extension: str = ".txt"

    def __init__(
        self,
        output_folder: Union[str, Path] = "reports",
        encoding: str = "utf-8",
    ):
        self.output_folder = Path(output_folder)
        self.encoding = encoding

    def export_report(self, report: RunReport, filename: str = REPORT_FILENAME) -> Optional[Path]:
        """Сохраняет отчёт запуска."""
        return self.export(report, filename)

    def export_plan(self, plan: RunPlan, filename: str = PLAN_FILENAME) -> Optional[Path]:
        """Сохраняет план dry-run."""
        return self.export(plan, filename)

    def export(self, data: Any, filename: Optional[str] = None) -> Optional[Path]:
        """
        Экспортирует данные в файл.

        Args:
            data: RunReport, RunPlan или dict
            filename: Имя файла (без пути). Если None — генерируется автоматически

        Returns:
            Path: Путь к созданному файлу или None при ошибке
        """
        self._ensure_output_folder()

        if not filename:
            filename = self._generate_filename()
        if not filename.endswith(self.file_extension):
            filename += self.file_extension

        file_path = self.output_folder / filename

        try:
            self._write(data, file_path)
            logger.info(f"Отчёт сохранён: {file_path}")
            return file_path
        except (OSError, TypeError, ValueError) as e:
            logger.error(f"Ошибка экспорта в {file_path}: {e}")
            return None

    @abstractmethod
    def _write(self, data: Any, file_path: Path) -> None:
        """
        Записывает данные в файл.

        Args:
            data: Данные для записи
            file_path: Путь к файлу
        """

    def _ensure_output_folder(self) -> None:
        """Создаёт папку для отчётов если не существует."""
        if not self.output_folder.exists():
            self.output_folder.mkdir(parents=True, exist_ok=True)
            logger.info(f"Создана папка: {self.output_folder}")

    def _generate_filename(self) -> str:
        """Генерирует имя файла с текущей датой."""
        date_str = datetime.now().strftime("%Y-%m-%d_%H%M%S")
        return f"report_{date_str}"

    @staticmethod
    def _as_dict(data: Any) -> Dict[str, Any]:
        """RunReport / RunPlan / dict -> dict."""
        if hasattr(data, "to_dict"):
            return data.to_dict()
        return dict(data)


def _json_serializer(obj: Any) -> Any:
    """
    Сериализатор для нестандартных типов данных.

    Обрабатывает datetime, date, Enum, set и Path.
    """
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, (set, frozenset, tuple)):
        return list(obj)
    if isinstance(obj, Path):
        return str(obj)
    if hasattr(obj, "to_dict"):
        return obj.to_dict()

    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")
