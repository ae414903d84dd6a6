"""Exposure search: find the camera exposure giving a mid-gray reading.

The search meters a centred square covering 4% of the frame (side =
width / 5) and scales the exposure geometrically until the mean 8-bit
luminance falls in ``[target_min, target_max]``.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import numpy as np

from colorwall.core.errors import CaptureError, ConvergenceError
from colorwall.core.types import LUMINANCE_WEIGHTS

if TYPE_CHECKING:
    from colorwall.core.context import CalibrationContext
    from colorwall.io.camera import CalibrationCamera

__all__ = ["ExposureStage", "center_luminance", "find_exposure"]

logger = logging.getLogger(__name__)

# Minimum geometric step between two exposure attempts.
_MIN_STEP = 1.5


def center_luminance(frame: np.ndarray) -> float:
    """Mean perceptual luminance of the centred metering square.

    Args:
        frame: Decoded camera frame, shape (H, W, 3), 8-bit RGB values.

    Returns:
        Mean luminance on the 0-255 scale.

    Raises:
        ValueError: If *frame* is not an (H, W, 3) image or is too small to
            hold a metering square.
    """
    if frame.ndim != 3 or frame.shape[2] < 3:
        raise ValueError(f"Expected an (H, W, 3) frame, got shape {frame.shape}")
    height, width = frame.shape[:2]
    side = width // 5
    if side == 0:
        raise ValueError(f"Frame too small for exposure metering: {frame.shape}")

    y0 = height // 2 - side // 2
    x0 = width // 2 - side // 2
    roi = frame[max(0, y0) : y0 + side, max(0, x0) : x0 + side, :3].astype(np.float64)
    luminance = roi @ np.asarray(LUMINANCE_WEIGHTS)
    return float(luminance.mean())


def find_exposure(
    camera: CalibrationCamera,
    target_min: float = 100.0,
    target_max: float = 160.0,
    max_iterations: int = 32,
) -> float:
    """Iteratively adjust the exposure until the centre reads mid-gray.

    Args:
        camera: Acquired calibration camera. Its exposure is left at the
            returned value.
        target_min: Lower bound of the accepted mean luminance (8-bit scale).
        target_max: Upper bound of the accepted mean luminance (8-bit scale).
        max_iterations: Number of captures after which the search gives up.

    Returns:
        The exposure reported by the camera when the reading was in range.

    Raises:
        CaptureError: If any capture fails.
        ConvergenceError: If the reading is still out of range after
            *max_iterations* captures.
    """
    logger.info("Finding correct exposure time")
    for iteration in range(max_iterations):
        exposure = camera.get_exposure()
        if not camera.capture():
            raise CaptureError("Capture failed during exposure search")

        mean = center_luminance(camera.decode_last_capture())
        logger.info(
            "Exposure iteration %d: exposure %.6g, mean luminance %.1f",
            iteration,
            exposure,
            mean,
        )

        if mean < target_min:
            camera.set_exposure(exposure * max(_MIN_STEP, target_min / max(mean, 1.0)))
        elif mean > target_max:
            camera.set_exposure(exposure / max(_MIN_STEP, target_max / mean))
        else:
            return exposure

    raise ConvergenceError(
        f"Exposure search did not reach [{target_min}, {target_max}] "
        f"within {max_iterations} captures"
    )


class ExposureStage:
    """Stage 1: find one shared mid-gray exposure for the whole wall.

    All projectors hide their content and flash a neutral gray background
    while the camera meters the scene. Backgrounds go back to black and
    content visibility is restored before the stage returns.

    Args:
        target_min: Lower bound of the accepted mean luminance.
        target_max: Upper bound of the accepted mean luminance.
        flash_level: Gray level shown by every projector while metering.
        max_iterations: Exposure search iteration cap.
    """

    def __init__(
        self,
        target_min: float = 100.0,
        target_max: float = 160.0,
        flash_level: float = 0.7,
        max_iterations: int = 32,
    ) -> None:
        self._target_min = target_min
        self._target_max = target_max
        self._flash_level = flash_level
        self._max_iterations = max_iterations

    def run(self, context: CalibrationContext) -> CalibrationContext:
        """Meter the gray wall and store ``context.exposure``.

        Args:
            context: Calibration state with ``camera``, ``control`` and
                ``params`` set.

        Returns:
            The same context with ``exposure`` populated.
        """
        control = context.get("control")
        camera = context.get("camera")
        names = [p.name for p in context.params]

        level = self._flash_level
        for name in names:
            control.hide(name, True)
            control.flash_background(name, True)
            control.set_color(name, level, level, level)
        control.settle()

        exposure = find_exposure(
            camera,
            target_min=self._target_min,
            target_max=self._target_max,
            max_iterations=self._max_iterations,
        )
        logger.info("ExposureStage: exposure time %.6g", exposure)

        for name in names:
            control.set_black(name)
        for name in names:
            control.hide(name, False)
        control.settle()

        context.exposure = exposure
        return context
