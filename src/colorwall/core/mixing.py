"""Channel cross-talk estimation and the correction matrix.

``A[j, i]`` is how much measured channel ``j`` moves when channel ``i`` is
driven, relative to channel ``j``'s own range. The published correction is
``inv(A)``.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import numpy as np

from colorwall.core.errors import DegenerateCurveError, SingularMatrixError
from colorwall.core.inversion import invert_curves
from colorwall.core.types import CHANNEL_NAMES, Curve

if TYPE_CHECKING:
    from colorwall.core.context import CalibrationContext

__all__ = ["MAX_CONDITION", "InversionStage", "build_mix_matrix", "solve_color_mix"]

logger = logging.getLogger(__name__)

MAX_CONDITION = 1e12
"""Condition number above which the mixing matrix is treated as singular."""


def build_mix_matrix(curves: list[Curve]) -> np.ndarray:
    """Relative cross-talk matrix from the second and last samples per channel.

    Args:
        curves: Three curves in capture order, curve ``i`` driven on channel i.

    Returns:
        The 3x3 matrix ``A`` (row = measured channel, column = driven channel).

    Raises:
        DegenerateCurveError: If a curve has fewer than two samples.
        SingularMatrixError: If a channel has no own range.
    """
    for i, curve in enumerate(curves):
        if len(curve) < 2:
            raise DegenerateCurveError(
                f"{CHANNEL_NAMES[i]} curve needs at least 2 samples, got {len(curve)}"
            )

    low = [curve[1].measured.as_array() for curve in curves]
    high = [curve[-1].measured.as_array() for curve in curves]
    delta = np.stack([high[i] - low[i] for i in range(3)], axis=1)

    own = np.diag(delta).copy()
    if np.any(own == 0) or not np.all(np.isfinite(own)):
        raise SingularMatrixError(f"Channel without own range: {own.tolist()}")
    return delta / own[:, None]


def solve_color_mix(curves: list[Curve]) -> np.ndarray:
    """Invert :func:`build_mix_matrix` into the published correction.

    Raises:
        SingularMatrixError: If the matrix has non-finite entries, cannot be
            inverted, or its condition number exceeds :data:`MAX_CONDITION`.
    """
    matrix = build_mix_matrix(curves)
    if not np.all(np.isfinite(matrix)):
        raise SingularMatrixError("Mixing matrix has non-finite entries")
    condition = np.linalg.cond(matrix)
    if not np.isfinite(condition) or condition > MAX_CONDITION:
        raise SingularMatrixError(f"Mixing matrix is ill-conditioned (cond={condition:.3g})")
    try:
        correction = np.linalg.inv(matrix)
    except np.linalg.LinAlgError as exc:
        raise SingularMatrixError(f"Mixing matrix is singular: {exc}") from exc
    return correction


class InversionStage:
    """Stage 5: invert every curve into LUTs and solve each mixing matrix.

    Degenerate channels and singular matrices are recorded on the context
    without stopping the run. A projector with a singular matrix keeps
    ``mix_matrix = None`` and is published without one.
    """

    def run(self, context: CalibrationContext) -> CalibrationContext:
        for params in context.params:
            for channel, message in invert_curves(params).items():
                context.record_failure(
                    "InversionStage", message, projector=params.name, channel=channel
                )

            try:
                params.mix_matrix = solve_color_mix(params.curves)
            except (SingularMatrixError, DegenerateCurveError) as exc:
                logger.warning(
                    "InversionStage: projector %s has no mixing matrix: %s", params.name, exc
                )
                params.mix_matrix = None
                context.record_failure("InversionStage", str(exc), projector=params.name)
            else:
                logger.info(
                    "InversionStage: projector %s mixing matrix %s",
                    params.name,
                    np.array2string(params.mix_matrix, precision=4),
                )
        return context
