"""Projected-region detection from HDR difference images.

Detection works on the linear channel sum ``R + G + B`` of a radiance image.
Two strategies are available:

- ``bounding``: threshold bands ``[max / 2**(k+2), max / 2**k]`` (k grows by
  0.5) until the band's binary area reaches the minimum, then take a square
  around the band centroid.
- ``mask``: lower the threshold ``max / 2**(k+8)`` (k grows by 1) until the
  pixels above it reach the minimum area, and keep those pixels as the mask.
"""

from __future__ import annotations

import logging
import math
from pathlib import Path
from typing import TYPE_CHECKING

import cv2
import numpy as np

from colorwall.core.errors import ConvergenceError, RegionDetectionError
from colorwall.core.hdr import capture_hdr
from colorwall.core.types import BoundingRegion, MaskRegion, Region, RgbValue

if TYPE_CHECKING:
    from colorwall.core.context import CalibrationContext

__all__ = [
    "RegionStage",
    "detect_bounding_region",
    "detect_mask_region",
    "detect_region",
    "mean_in_region",
]

logger = logging.getLogger(__name__)

REGION_METHODS = ("mask", "bounding")


def _detection_luminance(image: np.ndarray | None) -> np.ndarray | None:
    """Channel-sum luminance of *image*, or None if it cannot be used."""
    if image is None:
        return None
    image = np.asarray(image)
    if image.ndim != 3 or image.shape[2] < 3 or image.shape[0] == 0 or image.shape[1] == 0:
        return None
    luminance = image[..., :3].astype(np.float64).sum(axis=2)
    if not np.all(np.isfinite(luminance)):
        return None
    if luminance.max() <= 0:
        return None
    return luminance


def detect_bounding_region(
    image: np.ndarray | None,
    minimum_area_fraction: float = 0.005,
    max_iterations: int = 32,
) -> BoundingRegion | None:
    """Locate a projection as a square around a luminance band centroid.

    Args:
        image: (H, W, 3) radiance difference image.
        minimum_area_fraction: Fraction of the frame the band must cover.
        max_iterations: Number of bands tried before giving up.

    Returns:
        The detected region, or None when *image* is missing or unusable
        (wrong shape, non-finite values, no positive pixel).

    Raises:
        ConvergenceError: If no band reaches the minimum area.
    """
    luminance = _detection_luminance(image)
    if luminance is None:
        return None

    peak = float(luminance.max())
    threshold = minimum_area_fraction * luminance.size
    for iteration in range(max_iterations):
        k = 0.5 * iteration
        upper = peak / 2.0**k
        lower = peak / 2.0 ** (k + 2)
        band = ((luminance >= lower) & (luminance <= upper)).astype(np.uint8)
        moments = cv2.moments(band, binaryImage=True)
        m00 = moments["m00"]
        if m00 > 0 and m00 >= threshold:
            region = BoundingRegion(
                center_x=moments["m10"] / m00,
                center_y=moments["m01"] / m00,
                half_size=math.sqrt(m00) / 2.0,
            )
            logger.debug("Bounding region %s after %d bands", region, iteration + 1)
            return region

    raise ConvergenceError(
        f"No luminance band covered {minimum_area_fraction:.3%} of the frame "
        f"within {max_iterations} iterations"
    )


def detect_mask_region(
    image: np.ndarray | None,
    minimum_area_fraction: float = 0.005,
    max_iterations: int = 32,
) -> MaskRegion | None:
    """Locate a projection as the set of pixels above a falling threshold.

    Args:
        image: (H, W, 3) radiance difference image.
        minimum_area_fraction: Fraction of the frame the mask must cover.
        max_iterations: Number of thresholds tried before giving up.

    Returns:
        The detected region, or None when *image* is missing or unusable.

    Raises:
        ConvergenceError: If no threshold yields the minimum area.
    """
    luminance = _detection_luminance(image)
    if luminance is None:
        return None

    peak = float(luminance.max())
    threshold = minimum_area_fraction * luminance.size
    for k in range(max_iterations):
        lower = peak / 2.0 ** (k + 8)
        mask = (luminance > lower) & (luminance <= peak)
        count = int(mask.sum())
        if count > 0 and count >= threshold:
            ys, xs = np.nonzero(mask)
            region = MaskRegion(mask=mask, centroid=(float(xs.mean()), float(ys.mean())))
            logger.debug(
                "Mask region of %d pixels centred at %s after %d thresholds",
                count,
                region.centroid,
                k + 1,
            )
            return region

    raise ConvergenceError(
        f"No threshold selected {minimum_area_fraction:.3%} of the frame "
        f"within {max_iterations} iterations"
    )


def detect_region(
    image: np.ndarray | None,
    method: str = "mask",
    minimum_area_fraction: float = 0.005,
    max_iterations: int = 32,
) -> Region | None:
    """Dispatch to :func:`detect_mask_region` or :func:`detect_bounding_region`."""
    if method == "mask":
        return detect_mask_region(image, minimum_area_fraction, max_iterations)
    if method == "bounding":
        return detect_bounding_region(image, minimum_area_fraction, max_iterations)
    raise ValueError(f"Unknown region method {method!r}; expected one of {REGION_METHODS}")


def mean_in_region(image: np.ndarray, region: Region) -> RgbValue:
    """Mean RGB of *image* over the pixels of *region*.

    Raises:
        RegionDetectionError: If the region holds no pixel of *image*.
    """
    mask = region.to_mask(image.shape[:2])
    if not mask.any():
        raise RegionDetectionError(f"Region {region!r} contains no pixels")
    return RgbValue.from_sequence(image[mask][:, :3].astype(np.float64).mean(axis=0))


class RegionStage:
    """Stage 3: detect each projector's region and measure its white point.

    For every projector, the camera captures the wall with only that
    projector white, then with every other projector white. The clipped
    difference ``self - others * detection_threshold_factor`` isolates the
    projector. A projector that cannot be located aborts the run.

    Args:
        method: ``"mask"`` or ``"bounding"``.
        detection_threshold_factor: Weight of the "others" frame.
        minimum_area_fraction: Minimum detected area as a fraction of the frame.
        images_per_hdr: Brackets per HDR capture.
        hdr_step: Bracket spacing, in stops.
        max_iterations: Detection iteration cap.
        diagnostics_dir: Optional directory for capture diagnostics.
    """

    def __init__(
        self,
        method: str = "mask",
        detection_threshold_factor: float = 1.0,
        minimum_area_fraction: float = 0.005,
        images_per_hdr: int = 1,
        hdr_step: float = 1.0,
        max_iterations: int = 32,
        diagnostics_dir: Path | None = None,
    ) -> None:
        if method not in REGION_METHODS:
            raise ValueError(f"Unknown region method {method!r}; expected one of {REGION_METHODS}")
        self._method = method
        self._factor = detection_threshold_factor
        self._minimum_area_fraction = minimum_area_fraction
        self._images_per_hdr = images_per_hdr
        self._hdr_step = hdr_step
        self._max_iterations = max_iterations
        self._diagnostics_dir = diagnostics_dir

    def _diag(self, name: str, label: str) -> Path | None:
        if self._diagnostics_dir is None:
            return None
        path = self._diagnostics_dir / "region" / name / label
        path.mkdir(parents=True, exist_ok=True)
        return path

    def run(self, context: CalibrationContext) -> CalibrationContext:
        camera = context.get("camera")
        control = context.get("control")
        crf = context.get("crf")
        exposure = context.get("exposure")
        names = [p.name for p in context.params]

        control.show_backgrounds(names)
        for params in context.params:
            others = [n for n in names if n != params.name]

            control.set_white(params.name)
            for name in others:
                control.set_black(name)
            control.settle()
            camera.set_exposure(exposure)
            own = capture_hdr(
                camera,
                self._images_per_hdr,
                self._hdr_step,
                crf,
                self._diag(params.name, "self"),
            )

            control.set_black(params.name)
            for name in others:
                control.set_white(name)
            control.settle()
            camera.set_exposure(exposure)
            rest = capture_hdr(
                camera,
                self._images_per_hdr,
                self._hdr_step,
                crf,
                self._diag(params.name, "others"),
            )

            for name in others:
                control.set_black(name)
            control.settle()

            difference = np.clip(own - rest * self._factor, 0.0, None)
            region = detect_region(
                difference,
                self._method,
                self._minimum_area_fraction,
                self._max_iterations,
            )
            if region is None:
                raise RegionDetectionError(
                    f"Could not detect the region of projector {params.name!r}"
                )

            params.region = region
            params.white_point = mean_in_region(own, region)
            logger.info(
                "RegionStage: projector %s centred at (%.1f, %.1f), white point %s",
                params.name,
                region.centroid[0],
                region.centroid[1],
                params.white_point,
            )

        return context
