"""Exception taxonomy and localized failure records for the calibration pipeline.

Run-aborting failures (camera not ready, capture, region detection,
non-convergence of the exposure or region searches) propagate as exceptions.
Localized failures (degenerate channel, singular mixing matrix, per-projector
equalization or publication problems) are recorded as
:class:`CalibrationFailure` entries on the pipeline context and the run
continues for everything else.
"""

from __future__ import annotations

from dataclasses import dataclass

__all__ = [
    "CalibrationError",
    "CalibrationFailure",
    "CalibrationInProgressError",
    "CameraNotReadyError",
    "CaptureError",
    "ConvergenceError",
    "DegenerateCurveError",
    "RegionDetectionError",
    "SingularMatrixError",
]


class CalibrationError(Exception):
    """Base class for every calibration pipeline error."""


class CameraNotReadyError(CalibrationError):
    """The calibration camera reported it is not ready before the run started."""


class CalibrationInProgressError(CalibrationError):
    """A calibration session is already active on this camera."""


class CaptureError(CalibrationError):
    """A single frame capture or decode failed."""


class RegionDetectionError(CalibrationError):
    """No projected region could be located for a projector."""


class DegenerateCurveError(CalibrationError):
    """A measured response curve has no usable dynamic range on a channel."""


class SingularMatrixError(CalibrationError):
    """The color mixing matrix of a projector cannot be inverted."""


class ConvergenceError(CalibrationError):
    """An iterative search hit its iteration cap without converging.

    Args:
        message: Human-readable description of the search that failed.
        best: Best value reached before giving up, when the search has a
            meaningful one (e.g. the white-balance target). ``None`` otherwise.
    """

    def __init__(self, message: str, best: object = None) -> None:
        super().__init__(message)
        self.best = best


@dataclass(frozen=True)
class CalibrationFailure:
    """A localized, non-fatal failure recorded during a run.

    Attributes:
        projector: Name of the affected projector, or ``None`` when the
            failure concerns all projectors (e.g. equalization convergence).
        stage: Name of the stage that recorded the failure.
        message: Description of what went wrong.
        channel: Channel index (0=R, 1=G, 2=B) for per-channel failures.
    """

    projector: str | None
    stage: str
    message: str
    channel: int | None = None
