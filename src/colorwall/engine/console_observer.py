"""ConsoleObserver: prints calibration progress to stderr."""

from __future__ import annotations

import sys

from colorwall.engine.events import (
    Event,
    PipelineComplete,
    PipelineFailed,
    PipelineStart,
    ProjectorFailed,
    StageComplete,
    StageStart,
)


class ConsoleObserver:
    """Observer that prints human-readable stage progress to stderr.

    Stage lines use the format ``[3/8] RegionStage... done (4.2s)``.
    Localized failures are always printed; stage start lines only when
    *verbose* is set.

    Args:
        verbose: Also print a line when each stage starts.
        total_stages: Number of stages in the pipeline, for progress display.
    """

    def __init__(self, verbose: bool = False, total_stages: int = 8) -> None:
        self._verbose = verbose
        self._total_stages = total_stages
        self._output_dir = ""

    def _write(self, text: str) -> None:
        sys.stderr.write(text)
        sys.stderr.flush()

    def on_event(self, event: Event) -> None:
        if isinstance(event, PipelineStart):
            output_dir = getattr(event.config, "output_dir", None)
            if output_dir:
                self._output_dir = output_dir

        elif isinstance(event, StageStart) and self._verbose:
            self._write(
                f"[{event.stage_index + 1}/{self._total_stages}] {event.stage_name}...\n"
            )

        elif isinstance(event, StageComplete):
            self._write(
                f"[{event.stage_index + 1}/{self._total_stages}] "
                f"{event.stage_name}... done ({event.elapsed_seconds:.1f}s)\n"
            )

        elif isinstance(event, ProjectorFailed):
            where = event.projector or "all projectors"
            if event.channel is not None:
                where = f"{where} channel {event.channel}"
            self._write(f"  ! {event.stage_name}: {where}: {event.message}\n")

        elif isinstance(event, PipelineComplete):
            published = getattr(event.context, "published", None) or []
            self._write(
                f"\nCalibration complete: {len(published)} projector(s) published, "
                f"{self._output_dir} ({event.elapsed_seconds:.1f}s)\n"
            )

        elif isinstance(event, PipelineFailed):
            self._write(
                f"Calibration FAILED after {event.elapsed_seconds:.1f}s: {event.error}\n"
            )
