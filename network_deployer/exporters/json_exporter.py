"""
JSON экспортер.

report.json — итог запуска: счётчики по статусам, причина остановки,
список устройств для ручного вмешательства, детали по каждому устройству.
plan.json — план dry-run.

Пример использования:
    exporter = JSONExporter(output_folder=ctx.output_dir)
    exporter.export_report(report)
"""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Optional, Union

from .base import BaseExporter, _json_serializer

logger = logging.getLogger(__name__)


class JSONExporter(BaseExporter):
    """
    Экспортер в JSON.

    Attributes:
        indent: Отступ для форматирования (None = компактный)
        ensure_ascii: Экранировать не-ASCII символы
        include_metadata: Добавить блок metadata (время генерации)

    Example:
        exporter = JSONExporter(indent=None)  # компактный JSON
    """

    file_extension = ".json"

    def __init__(
        self,
        output_folder: Union[str, Path] = "reports",
        encoding: str = "utf-8",
        indent: Optional[int] = 2,
        ensure_ascii: bool = False,
        include_metadata: bool = True,
    ):
        super().__init__(output_folder, encoding)
        self.indent = indent
        self.ensure_ascii = ensure_ascii
        self.include_metadata = include_metadata

    def _write(self, data: Any, file_path: Path) -> None:
        output = self._as_dict(data)
        if self.include_metadata:
            output = {
                "metadata": {"generated_at": datetime.now().isoformat()},
                **output,
            }

        with open(file_path, "w", encoding=self.encoding) as f:
            json.dump(
                output,
                f,
                indent=self.indent,
                ensure_ascii=self.ensure_ascii,
                default=_json_serializer,
            )

        logger.debug(f"JSON записан: {file_path.name}")
