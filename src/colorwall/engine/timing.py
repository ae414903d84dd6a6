"""Timing observer: per-stage wall-clock time and localized failure counts."""

from __future__ import annotations

import logging
from pathlib import Path

from colorwall.engine.events import (
    Event,
    PipelineComplete,
    PipelineFailed,
    PipelineStart,
    ProjectorFailed,
    StageComplete,
)

logger = logging.getLogger(__name__)


class TimingObserver:
    """Builds a timing report for one calibration run.

    Each stage row shows its elapsed time, its share of the run and how many
    localized failures it recorded. The report is logged at INFO when the
    run ends and optionally written to *output_path*.

    Args:
        output_path: File receiving the report when the run ends.

    Example::

        observer = TimingObserver(output_path="/tmp/timing.txt")
        pipeline = CalibrationPipeline(stages, config, camera, plane, observers=[observer])
        pipeline.run()
        print(observer.report())
    """

    def __init__(self, output_path: str | Path | None = None) -> None:
        self._output_path = Path(output_path) if output_path is not None else None
        self.run_id = ""
        self.stage_times: dict[str, float] = {}
        self.stage_failures: dict[str, int] = {}
        self.total_time: float | None = None
        self.outcome: str | None = None

    @property
    def failure_count(self) -> int:
        return sum(self.stage_failures.values())

    def on_event(self, event: Event) -> None:
        if isinstance(event, PipelineStart):
            self.run_id = event.run_id
        elif isinstance(event, ProjectorFailed):
            self.stage_failures[event.stage_name] = (
                self.stage_failures.get(event.stage_name, 0) + 1
            )
        elif isinstance(event, StageComplete):
            self.stage_times[event.stage_name] = event.elapsed_seconds
        elif isinstance(event, (PipelineComplete, PipelineFailed)):
            self.total_time = event.elapsed_seconds
            self.outcome = "complete" if isinstance(event, PipelineComplete) else "failed"
            self._write()

    def _row(self, name: str, elapsed: float, total: float | None) -> str:
        share = f" ({elapsed / total * 100:5.1f}%)" if total else ""
        failures = self.stage_failures.get(name, 0)
        note = f"  [{failures} failed]" if failures else ""
        return f"  {name:<30s} {elapsed:8.2f}s{share}{note}"

    def report(self) -> str:
        """Return the multi-line timing report."""
        total = self.total_time if self.total_time and self.total_time > 0 else None
        lines = [f"Timing Report - run: {self.run_id}", "=" * 50]
        lines.extend(self._row(name, t, total) for name, t in self.stage_times.items())
        lines.append("-" * 50)
        lines.append(f"  {'TOTAL':<30s} " + (f"{total:8.2f}s" if total else "     N/A"))

        if self.stage_times:
            slowest = max(self.stage_times, key=self.stage_times.__getitem__)
            lines.append(f"  slowest stage: {slowest}")
        if self.failure_count:
            lines.append(f"  localized failures: {self.failure_count}")
        if self.outcome == "failed":
            lines.extend(["", "  ** Calibration FAILED - partial timing report **"])
        return "\n".join(lines)

    def _write(self) -> None:
        text = self.report()
        logger.info("\n%s", text)
        if self._output_path is None:
            return
        self._output_path.parent.mkdir(parents=True, exist_ok=True)
        self._output_path.write_text(text, encoding="utf-8")
