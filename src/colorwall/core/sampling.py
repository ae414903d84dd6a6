"""Per-channel response sampling of every projector."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

import numpy as np

from colorwall.core.hdr import CameraResponseFunction, capture_hdr
from colorwall.core.region import mean_in_region
from colorwall.core.types import CHANNEL_NAMES, CalibrationParams, CurvePoint, RgbValue

if TYPE_CHECKING:
    from colorwall.core.context import CalibrationContext
    from colorwall.io.camera import CalibrationCamera
    from colorwall.io.control import ProjectorControl

__all__ = ["SamplingStage", "sample_levels", "sample_projector_curves"]

logger = logging.getLogger(__name__)


def sample_levels(color_samples: int) -> np.ndarray:
    """Evenly spaced input levels in [0, 1], both ends included."""
    if color_samples < 2:
        raise ValueError(f"Need at least 2 color samples, got {color_samples}")
    return np.linspace(0.0, 1.0, color_samples)


def sample_projector_curves(
    camera: CalibrationCamera,
    control: ProjectorControl,
    params: CalibrationParams,
    crf: CameraResponseFunction,
    exposure: float,
    color_samples: int = 5,
    images_per_hdr: int = 1,
    hdr_step: float = 1.0,
    diagnostics_dir: Path | None = None,
) -> CalibrationParams:
    """Measure the response of each channel of one projector.

    The projector shows pure channel ``c`` at each sampled level while every
    other projector stays black. The mean RGB over the projector's region is
    appended to ``params.curves[c]``. ``min_values`` and ``max_values`` take
    the channel's own reading at the first and last level.

    Args:
        camera: Acquired calibration camera.
        control: Projector command helper.
        params: Projector state with ``region`` set. Updated in place.
        crf: Camera response used for HDR assembly.
        exposure: Mid-gray exposure re-applied before every capture.
        color_samples: Number of levels per channel.
        images_per_hdr: Brackets per HDR capture.
        hdr_step: Bracket spacing, in stops.
        diagnostics_dir: Optional directory for capture diagnostics.

    Returns:
        The same *params*.

    Raises:
        CaptureError: If any capture fails.
        ValueError: If *params* has no region.
    """
    if params.region is None:
        raise ValueError(f"Projector {params.name!r} has no detected region")

    levels = sample_levels(color_samples)
    params.curves = [[], [], []]
    mins = [0.0, 0.0, 0.0]
    maxs = [0.0, 0.0, 0.0]

    for channel, channel_name in enumerate(CHANNEL_NAMES):
        for index, level in enumerate(levels):
            color = [0.0, 0.0, 0.0]
            color[channel] = float(level)
            control.set_color(params.name, *color)
            control.settle()
            camera.set_exposure(exposure)

            diag = None
            if diagnostics_dir is not None:
                diag = diagnostics_dir / "sampling" / params.name / f"{channel_name}_{index:02d}"
                diag.mkdir(parents=True, exist_ok=True)
            hdr = capture_hdr(camera, images_per_hdr, hdr_step, crf, diag)
            measured = mean_in_region(hdr, params.region)
            params.curves[channel].append(CurvePoint(float(level), measured))
            logger.info(
                "Projector %s %s level %.3f: measured (%.4f, %.4f, %.4f)",
                params.name,
                channel_name,
                level,
                measured.r,
                measured.g,
                measured.b,
            )

        control.set_black(params.name)
        control.settle()
        mins[channel] = params.curves[channel][0].measured[channel]
        maxs[channel] = params.curves[channel][-1].measured[channel]

    params.min_values = RgbValue.from_sequence(mins)
    params.max_values = RgbValue.from_sequence(maxs)
    return params


class SamplingStage:
    """Stage 4: sample every projector's per-channel response curves.

    Args:
        color_samples: Levels sampled per channel.
        images_per_hdr: Brackets per HDR capture.
        hdr_step: Bracket spacing, in stops.
        diagnostics_dir: Optional directory for capture diagnostics.
    """

    def __init__(
        self,
        color_samples: int = 5,
        images_per_hdr: int = 1,
        hdr_step: float = 1.0,
        diagnostics_dir: Path | None = None,
    ) -> None:
        self._color_samples = color_samples
        self._images_per_hdr = images_per_hdr
        self._hdr_step = hdr_step
        self._diagnostics_dir = diagnostics_dir

    def run(self, context: CalibrationContext) -> CalibrationContext:
        camera = context.get("camera")
        control = context.get("control")
        crf = context.get("crf")
        exposure = context.get("exposure")

        control.show_backgrounds([p.name for p in context.params])
        for params in context.params:
            sample_projector_curves(
                camera,
                control,
                params,
                crf,
                exposure,
                color_samples=self._color_samples,
                images_per_hdr=self._images_per_hdr,
                hdr_step=self._hdr_step,
                diagnostics_dir=self._diagnostics_dir,
            )
            logger.info(
                "SamplingStage: projector %s min %s max %s",
                params.name,
                params.min_values,
                params.max_values,
            )
        return context
