"""Publication of calibration results to the projectors."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import numpy as np

if TYPE_CHECKING:
    from colorwall.core.context import CalibrationContext

__all__ = ["PublishStage"]

logger = logging.getLogger(__name__)


class PublishStage:
    """Stage 8: send LUTs, mixing matrices and neutral filters to projectors.

    LUT values are clipped to [0, 1] on the wire. The mixing matrix is only
    sent when it was solved. A projector that cannot be reached is recorded
    as failed without affecting the others.
    """

    def run(self, context: CalibrationContext) -> CalibrationContext:
        control = context.get("control")
        for params in context.active_params():
            if params.luts is None:
                continue
            try:
                control.publish_lut(params.name, np.clip(params.luts, 0.0, 1.0))
                if params.mix_matrix is not None:
                    control.publish_mix_matrix(params.name, params.mix_matrix)
                control.reset_filters(params.name)
            except Exception as exc:
                params.failed = True
                logger.warning(
                    "PublishStage: publication to projector %s failed: %s", params.name, exc
                )
                context.record_failure("PublishStage", str(exc), projector=params.name)
                continue
            context.published.append(params.name)
            logger.info("PublishStage: published calibration of projector %s", params.name)
        return context
