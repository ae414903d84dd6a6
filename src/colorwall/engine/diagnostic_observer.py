"""Diagnostic observer for capturing per-stage calibration state in memory."""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field

from colorwall.core.errors import CalibrationFailure
from colorwall.core.types import CalibrationParams
from colorwall.engine.events import Event, StageComplete

logger = logging.getLogger(__name__)


@dataclass
class StageSnapshot:
    """Copy of the calibration state right after a stage completed.

    Stages mutate ``CalibrationParams`` in place, so the snapshot holds deep
    copies: a later stage rescaling LUTs does not change an earlier snapshot.

    Subscript access (``snapshot["proj1"]``) returns that projector's params.

    Attributes:
        stage_name: Name of the stage that produced this snapshot.
        stage_index: Zero-based position in the pipeline sequence.
        elapsed_seconds: Wall-clock time for this stage.
        exposure: Shared exposure at that point, or None.
        params: Copies of every projector's params.
        failures: Localized failures recorded so far.
    """

    stage_name: str = ""
    stage_index: int = 0
    elapsed_seconds: float = 0.0
    exposure: float | None = None
    params: list[CalibrationParams] = field(default_factory=list)
    failures: list[CalibrationFailure] = field(default_factory=list)

    def __getitem__(self, projector: str) -> CalibrationParams:
        """Return the snapshot of *projector*.

        Raises:
            KeyError: If no projector has that name.
        """
        for params in self.params:
            if params.name == projector:
                return params
        raise KeyError(projector)


class DiagnosticObserver:
    """Captures calibration state after every stage for post-hoc analysis.

    Example::

        observer = DiagnosticObserver()
        pipeline = CalibrationPipeline(stages, config, camera, plane, observers=[observer])
        pipeline.run()

        region = observer.stages["RegionStage"]["proj1"].region
        luts_before = observer.stages["InversionStage"]["proj1"].luts
    """

    def __init__(self) -> None:
        self.stages: dict[str, StageSnapshot] = {}

    def on_event(self, event: Event) -> None:
        if not isinstance(event, StageComplete):
            return

        context = event.context
        if context is None:
            return

        self.stages[event.stage_name] = StageSnapshot(
            stage_name=event.stage_name,
            stage_index=event.stage_index,
            elapsed_seconds=event.elapsed_seconds,
            exposure=getattr(context, "exposure", None),
            params=copy.deepcopy(list(getattr(context, "params", []))),
            failures=list(getattr(context, "failures", [])),
        )
        logger.debug("Captured snapshot after %s", event.stage_name)
