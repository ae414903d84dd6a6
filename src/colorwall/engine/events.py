"""Typed event dataclasses for the colorwall pipeline event system.

Events use a 3-tier taxonomy:
- Pipeline lifecycle: PipelineStart, PipelineComplete, PipelineFailed
- Stage lifecycle: StageStart, StageComplete
- Projector-level: ProjectorFailed

All events are frozen dataclasses with an auto-populated timestamp field.
Events are the sole communication channel between the pipeline and observers;
observers react to events without mutating pipeline state.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field


@dataclass(frozen=True)
class Event:
    """Base class for all pipeline events.

    All concrete event types inherit from this class so that EventBus can
    match subscriptions by type hierarchy (subscribing to ``Event`` receives
    every event).

    Attributes:
        timestamp: Unix timestamp (seconds) at event construction time.
    """

    timestamp: float = field(default_factory=time.time)


# ---------------------------------------------------------------------------
# Pipeline lifecycle events
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PipelineStart(Event):
    """Emitted when the pipeline begins execution.

    Attributes:
        run_id: Unique identifier for this run (e.g. "run_20260225_143022").
        config: The calibration config. Typed as ``object`` to keep events
            free of config imports.
    """

    run_id: str = ""
    config: object = field(default=None, compare=False)


@dataclass(frozen=True)
class PipelineComplete(Event):
    """Emitted after all stages complete successfully.

    Attributes:
        run_id: Unique identifier for this run.
        elapsed_seconds: Wall-clock time for the entire run.
        context: Final ``CalibrationContext`` of the run.
    """

    run_id: str = ""
    elapsed_seconds: float = 0.0
    context: object = field(default=None, compare=False)


@dataclass(frozen=True)
class PipelineFailed(Event):
    """Emitted when the run terminates on an exception.

    Attributes:
        run_id: Unique identifier for this run.
        error: String representation of the exception.
        elapsed_seconds: Wall-clock time elapsed before failure.
    """

    run_id: str = ""
    error: str = ""
    elapsed_seconds: float = 0.0


# ---------------------------------------------------------------------------
# Stage lifecycle events
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class StageStart(Event):
    """Emitted immediately before a stage begins execution.

    Attributes:
        stage_name: Class name of the stage.
        stage_index: Zero-based position of the stage in the pipeline.
    """

    stage_name: str = ""
    stage_index: int = 0


@dataclass(frozen=True)
class StageComplete(Event):
    """Emitted after a stage finishes execution.

    Attributes:
        stage_name: Class name of the stage.
        stage_index: Zero-based position of the stage in the pipeline.
        elapsed_seconds: Wall-clock time for this stage.
        summary: Stage-specific metrics (e.g. ``{"failures": 1}``).
        context: ``CalibrationContext`` after the stage ran.
    """

    stage_name: str = ""
    stage_index: int = 0
    elapsed_seconds: float = 0.0
    summary: dict[str, object] = field(default_factory=dict)
    context: object = field(default=None, compare=False)


# ---------------------------------------------------------------------------
# Projector-level events
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ProjectorFailed(Event):
    """Emitted for each localized failure recorded by a stage.

    Attributes:
        stage_name: Stage that recorded the failure.
        projector: Affected projector, or None for wall-wide failures.
        channel: Affected channel index, when the failure is per channel.
        message: Description of the failure.
    """

    stage_name: str = ""
    projector: str | None = None
    channel: int | None = None
    message: str = ""


__all__ = [
    "Event",
    "PipelineComplete",
    "PipelineFailed",
    "PipelineStart",
    "ProjectorFailed",
    "StageComplete",
    "StageStart",
]
