"""
Текстовый отчёт для оператора.

report.txt:
- шапка запуска (run_id, операция, счётчики, остановка)
- строки переходов состояний с отметкой времени, по устройствам
- отдельный блок MANUAL INTERVENTION REQUIRED, если откат не удался
"""

import logging
from pathlib import Path
from typing import Any, List

from ..core.models import ChangeOutcome, RunPlan, RunReport
from .base import BaseExporter

logger = logging.getLogger(__name__)

TIME_FORMAT = "%Y-%m-%d %H:%M:%S.%f"
MANUAL_INTERVENTION_HEADER = "MANUAL INTERVENTION REQUIRED"


def _ts(value) -> str:
    return value.strftime(TIME_FORMAT)[:-3] if value else "-"


class TextExporter(BaseExporter):
    """Экспортер отчёта в человекочитаемый текст."""

    file_extension = ".txt"

    def _write(self, data: Any, file_path: Path) -> None:
        if isinstance(data, RunReport):
            lines = self.render_report(data)
        elif isinstance(data, RunPlan):
            lines = self.render_plan(data)
        else:
            raise TypeError(f"TextExporter не поддерживает {type(data).__name__}")

        with open(file_path, "w", encoding=self.encoding) as f:
            f.write("\n".join(lines) + "\n")

    def render_report(self, report: RunReport) -> List[str]:
        counts = ", ".join(f"{status}={n}" for status, n in report.counts.items())
        lines = [
            f"Run: {report.run_id}",
            f"Operation: {report.operation.value}",
            f"Started: {_ts(report.started_at)}",
            f"Finished: {_ts(report.finished_at)}",
            f"Elapsed: {report.elapsed_seconds:.1f}s",
            f"Batches: {report.batches_completed}/{report.batch_count}",
            f"Devices: {report.total} ({counts})",
        ]
        if report.halted:
            lines.append(f"HALTED: {report.halt_reason}")
        lines.append("")

        for outcome in report.outcomes:
            lines.extend(self._outcome_lines(outcome))

        if report.manual_intervention:
            lines.append("")
            lines.append("=" * 60)
            lines.append(MANUAL_INTERVENTION_HEADER)
            lines.append("=" * 60)
            for outcome in report.manual_intervention:
                lines.append(f"{outcome.device}: {outcome.error}")
                if outcome.backup_ref:
                    lines.append(f"  restore from: {outcome.backup_ref.path}")

        return lines

    @staticmethod
    def _outcome_lines(outcome: ChangeOutcome) -> List[str]:
        lines = []
        for transition in outcome.states:
            note = f" ({transition.note})" if transition.note else ""
            lines.append(
                f"{_ts(transition.at)} {outcome.device} {transition.state.value}{note}"
            )

        summary = f"{_ts(outcome.finished_at)} {outcome.device} => {outcome.status.value}"
        if outcome.reason:
            summary += f" [{outcome.reason.value}]"
        if outcome.error:
            summary += f": {outcome.error}"
        lines.append(summary)
        return lines

    @staticmethod
    def render_plan(plan: RunPlan) -> List[str]:
        lines = [
            f"[DRY RUN] Operation: {plan.operation.value}",
            f"Batches: {len(plan.batches)} x {plan.batch_size}",
        ]
        for batch in plan.batches:
            for item in batch:
                lines.append("")
                lines.append(f"--- batch {item.batch_index}: {item.device} ---")
                if item.error:
                    lines.append(f"ERROR: {item.error}")
                elif item.payload is not None:
                    lines.append(item.payload.rstrip("\n"))
        return lines
