"""Exposure bracketing, camera response recovery and HDR radiance assembly.

The camera response function (CRF) is an explicit artifact: it is estimated
once (Debevec-Malik, via OpenCV), persisted as ``.npz`` and passed into every
assembly call. Nothing here caches a CRF behind the caller's back.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

import cv2
import numpy as np

from colorwall.core.errors import CaptureError

if TYPE_CHECKING:
    from colorwall.core.context import CalibrationContext
    from colorwall.io.camera import CalibrationCamera

__all__ = [
    "CameraResponseFunction",
    "ResponseStage",
    "assemble_hdr",
    "capture_brackets",
    "capture_hdr",
    "estimate_crf",
    "load_crf",
    "save_crf",
]

logger = logging.getLogger(__name__)

_CODES = 256


# ---------------------------------------------------------------------------
# Camera response function
# ---------------------------------------------------------------------------


@dataclass(frozen=True, eq=False)
class CameraResponseFunction:
    """Per-channel inverse camera response.

    Attributes:
        response: Float array of shape (256, 3). ``response[z, c]`` is the
            relative radiance producing 8-bit code ``z`` on channel ``c`` at
            unit exposure. Monotone non-decreasing along axis 0.
    """

    response: np.ndarray

    def __post_init__(self) -> None:
        if self.response.shape != (_CODES, 3):
            raise ValueError(
                f"CRF response must have shape ({_CODES}, 3), got {self.response.shape}"
            )

    @classmethod
    def linear(cls) -> CameraResponseFunction:
        """Identity response: code ``z`` maps to radiance ``z / 255``."""
        ramp = np.arange(_CODES, dtype=np.float64) / (_CODES - 1)
        return cls(np.repeat(ramp[:, None], 3, axis=1))


def save_crf(crf: CameraResponseFunction, path: str | Path) -> None:
    """Save a CRF to a .npz file.

    Args:
        crf: The response function to save.
        path: Destination file path (should end in .npz).
    """
    np.savez(str(path), response=crf.response)


def load_crf(path: str | Path) -> CameraResponseFunction:
    """Load a CRF from a .npz file written by :func:`save_crf`."""
    data = np.load(str(path), allow_pickle=False)
    return CameraResponseFunction(np.asarray(data["response"], dtype=np.float64))


# ---------------------------------------------------------------------------
# Capture
# ---------------------------------------------------------------------------


def capture_brackets(
    camera: CalibrationCamera,
    n: int,
    step_stops: float,
    diagnostics_dir: Path | None = None,
) -> tuple[list[np.ndarray], list[float]]:
    """Capture *n* frames bracketed around the current exposure.

    The first exposure is ``n // 2`` steps of ``2**step_stops`` below the
    current one. Each following exposure multiplies the exposure actually
    applied by the camera by ``2**step_stops``.

    Args:
        camera: Acquired calibration camera.
        n: Number of brackets (>= 1).
        step_stops: Spacing between brackets, in stops.
        diagnostics_dir: When set, every bracket is also written there.

    Returns:
        Tuple ``(frames, exposures)``: decoded (H, W, 3) uint8 frames and the
        exposure actually used for each.

    Raises:
        CaptureError: If any capture fails. The starting exposure is restored
            before the error propagates.
    """
    if n < 1:
        raise ValueError(f"Bracket count must be >= 1, got {n}")

    factor = 2.0**step_stops
    base = camera.get_exposure()
    frames: list[np.ndarray] = []
    exposures: list[float] = []
    try:
        camera.set_exposure(base / factor ** (n // 2))
        for i in range(n):
            exposure = camera.get_exposure()
            if not camera.capture():
                raise CaptureError(f"Capture failed for bracket {i} (exposure {exposure:.6g})")
            frames.append(np.asarray(camera.decode_last_capture()))
            exposures.append(exposure)
            if diagnostics_dir is not None:
                camera.write_last_capture(diagnostics_dir / f"bracket_{i:02d}.png")
            if i + 1 < n:
                camera.set_exposure(exposure * factor)
    finally:
        camera.set_exposure(base)

    logger.debug("Captured %d brackets, exposures %s", n, exposures)
    return frames, exposures


def estimate_crf(
    frames: Sequence[np.ndarray], exposures: Sequence[float]
) -> CameraResponseFunction:
    """Recover the camera response from bracketed frames.

    Args:
        frames: At least two (H, W, 3) uint8 frames of a static scene.
        exposures: Exposure of each frame.

    Returns:
        A monotone CRF normalized so code 255 maps to radiance 1.

    Raises:
        ValueError: If fewer than two frames are given or counts differ.
    """
    if len(frames) < 2:
        raise ValueError(f"CRF estimation needs at least 2 frames, got {len(frames)}")
    if len(frames) != len(exposures):
        raise ValueError(
            f"Got {len(frames)} frames but {len(exposures)} exposure times"
        )

    images = [np.ascontiguousarray(f, dtype=np.uint8) for f in frames]
    times = np.asarray(exposures, dtype=np.float32)
    calibrate = cv2.createCalibrateDebevec()
    response = calibrate.process(images, times).reshape(_CODES, 3).astype(np.float64)

    response = np.nan_to_num(response, nan=0.0, posinf=0.0, neginf=0.0)
    response = np.clip(response, 1e-12, None)
    response = np.maximum.accumulate(response, axis=0)
    response = response / response[-1]
    logger.info("Estimated camera response from %d frames", len(images))
    return CameraResponseFunction(response)


def assemble_hdr(
    frames: Sequence[np.ndarray],
    exposures: Sequence[float],
    crf: CameraResponseFunction,
) -> np.ndarray:
    """Merge bracketed frames into one radiance image.

    Each code is weighted by ``exp(-16 (z/255 - 0.5)^2)``; clipped codes 0
    and 255 get zero weight. Pixels clipped in every bracket fall back to the
    unweighted mean over brackets.

    Args:
        frames: (H, W, 3) uint8 frames.
        exposures: Exposure of each frame.
        crf: Response used to linearize codes.

    Returns:
        Float32 radiance image of shape (H, W, 3), all values >= 0.
    """
    if not frames:
        raise ValueError("assemble_hdr needs at least one frame")

    channels = np.arange(3)
    numerator = np.zeros(frames[0].shape[:2] + (3,), dtype=np.float64)
    denominator = np.zeros_like(numerator)
    unweighted = np.zeros_like(numerator)

    for frame, exposure in zip(frames, exposures, strict=True):
        codes = np.asarray(frame)[..., :3].astype(np.intp)
        radiance = crf.response[codes, channels] / exposure
        z = codes / (_CODES - 1.0)
        weight = np.exp(-16.0 * (z - 0.5) ** 2)
        weight[(codes == 0) | (codes == _CODES - 1)] = 0.0
        numerator += weight * radiance
        denominator += weight
        unweighted += radiance

    unweighted /= len(frames)
    hdr = np.where(
        denominator > 0, numerator / np.where(denominator > 0, denominator, 1.0), unweighted
    )
    return np.clip(hdr, 0.0, None).astype(np.float32)


def capture_hdr(
    camera: CalibrationCamera,
    n: int,
    step_stops: float,
    crf: CameraResponseFunction,
    diagnostics_dir: Path | None = None,
) -> np.ndarray:
    """Capture brackets and assemble them into a radiance image.

    When *diagnostics_dir* is set, the brackets and the merged radiance image
    (``hdr.hdr``) are written there.

    Raises:
        CaptureError: If any bracket fails.
    """
    frames, exposures = capture_brackets(camera, n, step_stops, diagnostics_dir)
    hdr = assemble_hdr(frames, exposures, crf)
    if diagnostics_dir is not None:
        cv2.imwrite(str(diagnostics_dir / "hdr.hdr"), cv2.cvtColor(hdr, cv2.COLOR_RGB2BGR))
    return hdr


# ---------------------------------------------------------------------------
# Stage
# ---------------------------------------------------------------------------


class ResponseStage:
    """Stage 2: make sure ``context.crf`` holds a camera response function.

    Resolution order: a CRF already on the context, then the file at
    *crf_path*, then a fresh estimate from bracketed captures at the exposure
    found by the exposure stage. With ``force=True`` the last step always runs.
    A fresh estimate is saved to *crf_path* when one is configured.

    Args:
        crf_path: Optional ``.npz`` location of a persisted CRF.
        crf_images: Number of brackets used for estimation.
        crf_step: Bracket spacing for estimation, in stops.
        force: Ignore any existing CRF and re-estimate.
        diagnostics_dir: Optional directory for bracket images.
    """

    def __init__(
        self,
        crf_path: str | Path | None = None,
        crf_images: int = 9,
        crf_step: float = 0.33,
        force: bool = False,
        diagnostics_dir: Path | None = None,
    ) -> None:
        self._crf_path = Path(crf_path) if crf_path else None
        self._crf_images = crf_images
        self._crf_step = crf_step
        self._force = force
        self._diagnostics_dir = diagnostics_dir

    def run(self, context: CalibrationContext) -> CalibrationContext:
        if not self._force:
            if context.crf is not None:
                logger.info("ResponseStage: using provided camera response")
                return context
            if self._crf_path is not None and self._crf_path.exists():
                context.crf = load_crf(self._crf_path)
                logger.info("ResponseStage: loaded camera response from %s", self._crf_path)
                return context

        camera = context.get("camera")
        camera.set_exposure(context.get("exposure"))
        diag = None
        if self._diagnostics_dir is not None:
            diag = self._diagnostics_dir / "crf"
            diag.mkdir(parents=True, exist_ok=True)
        frames, exposures = capture_brackets(camera, self._crf_images, self._crf_step, diag)
        crf = estimate_crf(frames, exposures)

        if self._crf_path is not None:
            self._crf_path.parent.mkdir(parents=True, exist_ok=True)
            save_crf(crf, self._crf_path)
            logger.info("ResponseStage: saved camera response to %s", self._crf_path)

        context.crf = crf
        return context
