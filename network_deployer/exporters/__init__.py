"""
Модули экспорта отчётов.

Поддерживаемые форматы:
- JSON (.json) - report.json / plan.json для автоматизации
- Text (.txt) - report.txt для оператора

Пример использования:
    from network_deployer.exporters import JSONExporter, TextExporter

    JSONExporter(output_folder=run_dir).export_report(report)
    TextExporter(output_folder=run_dir).export_report(report)
"""

from .base import BaseExporter
from .json_exporter import JSONExporter
from .text_exporter import TextExporter, MANUAL_INTERVENTION_HEADER

__all__ = ["BaseExporter", "JSONExporter", "TextExporter", "MANUAL_INTERVENTION_HEADER"]
