"""Response-curve inversion into 256-entry per-channel lookup tables.

Each measured curve maps input level -> camera reading. Inversion swaps the
axes: readings are normalized to [0, 1], near-duplicates are dropped, and an
interpolant from normalized output back to input level is sampled at
``i / 255``. Numeric failures stay inside this module and surface as
:class:`~colorwall.core.errors.DegenerateCurveError`.
"""

from __future__ import annotations

import logging

import numpy as np
from scipy.interpolate import Akima1DInterpolator, interp1d

from colorwall.core.errors import DegenerateCurveError
from colorwall.core.types import CHANNEL_NAMES, LUT_SIZE, CalibrationParams, Curve

__all__ = ["DUPLICATE_EPSILON", "identity_lut", "invert_channel", "invert_curves"]

logger = logging.getLogger(__name__)

DUPLICATE_EPSILON = 0.001
"""Minimum spacing between two kept normalized readings."""

# Akima needs enough points to beat plain linear interpolation.
_AKIMA_MIN_POINTS = 5


def identity_lut() -> np.ndarray:
    """The pass-through table ``i / 255``."""
    return np.arange(LUT_SIZE, dtype=np.float64) / (LUT_SIZE - 1)


def invert_channel(curve: Curve, channel: int) -> np.ndarray:
    """Invert one channel's response curve.

    Args:
        curve: Samples of the projector driven on *channel* alone.
        channel: Channel index (0, 1, 2) whose reading is inverted.

    Returns:
        Float64 array of shape (256,): input level producing normalized
        output ``i / 255``.

    Raises:
        DegenerateCurveError: If the readings do not span a positive range,
            fewer than two distinct readings remain, or the fit fails.
    """
    name = CHANNEL_NAMES[channel]
    points = sorted(curve, key=lambda p: p.measured[channel])
    if len(points) < 2:
        raise DegenerateCurveError(f"{name} curve has {len(points)} sample(s)")

    readings = np.array([p.measured[channel] for p in points], dtype=np.float64)
    levels = np.array([p.input_level for p in points], dtype=np.float64)
    if not np.all(np.isfinite(readings)):
        raise DegenerateCurveError(f"{name} curve has non-finite readings")

    offset = readings[0]
    span = readings[-1] - offset
    if span <= 0:
        raise DegenerateCurveError(f"{name} curve has no positive range ({span:.6g})")
    abscissa = (readings - offset) / span

    keep = [0]
    for i in range(1, len(abscissa)):
        if abscissa[i] - abscissa[keep[-1]] < DUPLICATE_EPSILON:
            logger.debug(
                "Dropping near-duplicate %s sample at level %.3f (%.6f)",
                name,
                levels[i],
                abscissa[i],
            )
            continue
        keep.append(i)
    if len(keep) < 2:
        raise DegenerateCurveError(f"{name} curve has fewer than 2 distinct readings")

    x = abscissa[keep].copy()
    y = levels[keep]
    x[0] = max(0.0, x[0]) - DUPLICATE_EPSILON
    x[-1] = min(1.0, x[-1]) + DUPLICATE_EPSILON

    targets = np.minimum(1.0, np.arange(LUT_SIZE, dtype=np.float64) / (LUT_SIZE - 1))
    try:
        if len(x) >= _AKIMA_MIN_POINTS:
            fit = Akima1DInterpolator(x, y)
        else:
            fit = interp1d(x, y, kind="linear")
        lut = np.asarray(fit(targets), dtype=np.float64)
    except (ValueError, np.linalg.LinAlgError, FloatingPointError) as exc:
        raise DegenerateCurveError(f"{name} curve fit failed: {exc}") from exc

    if lut.shape != (LUT_SIZE,) or not np.all(np.isfinite(lut)):
        raise DegenerateCurveError(f"{name} curve fit produced non-finite values")
    return lut


def invert_curves(params: CalibrationParams) -> dict[int, str]:
    """Fill ``params.luts`` from ``params.curves``.

    A channel that cannot be inverted gets :func:`identity_lut` and is added
    to ``params.degenerate_channels``.

    Returns:
        Mapping of degenerate channel index to the failure message.
    """
    luts = np.empty((LUT_SIZE, 3), dtype=np.float64)
    failures: dict[int, str] = {}
    for channel in range(3):
        try:
            luts[:, channel] = invert_channel(params.curves[channel], channel)
        except DegenerateCurveError as exc:
            logger.warning(
                "Projector %s %s channel is degenerate, using identity LUT: %s",
                params.name,
                CHANNEL_NAMES[channel],
                exc,
            )
            luts[:, channel] = identity_lut()
            params.degenerate_channels.add(channel)
            failures[channel] = str(exc)
    params.luts = luts
    return failures
