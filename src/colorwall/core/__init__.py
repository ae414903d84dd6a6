"""Core calibration computation: data types, stages and pipeline context."""

from colorwall.core.context import CalibrationContext, Stage
from colorwall.core.equalization import (
    EqualizationMethod,
    EqualizationStage,
    OverlapStage,
    equalize_white_balances,
)
from colorwall.core.errors import (
    CalibrationError,
    CalibrationFailure,
    CalibrationInProgressError,
    CameraNotReadyError,
    CaptureError,
    ConvergenceError,
    DegenerateCurveError,
    RegionDetectionError,
    SingularMatrixError,
)
from colorwall.core.exposure import ExposureStage, find_exposure
from colorwall.core.hdr import (
    CameraResponseFunction,
    ResponseStage,
    assemble_hdr,
    capture_hdr,
    estimate_crf,
    load_crf,
    save_crf,
)
from colorwall.core.inversion import invert_channel, invert_curves
from colorwall.core.mixing import InversionStage, solve_color_mix
from colorwall.core.publish import PublishStage
from colorwall.core.region import RegionStage, detect_bounding_region, detect_mask_region
from colorwall.core.sampling import SamplingStage, sample_projector_curves
from colorwall.core.types import (
    BoundingRegion,
    CalibrationParams,
    CurvePoint,
    MaskRegion,
    RgbValue,
)

__all__ = [
    "BoundingRegion",
    "CalibrationContext",
    "CalibrationError",
    "CalibrationFailure",
    "CalibrationInProgressError",
    "CalibrationParams",
    "CameraNotReadyError",
    "CameraResponseFunction",
    "CaptureError",
    "ConvergenceError",
    "CurvePoint",
    "DegenerateCurveError",
    "EqualizationMethod",
    "EqualizationStage",
    "ExposureStage",
    "InversionStage",
    "MaskRegion",
    "OverlapStage",
    "PublishStage",
    "RegionDetectionError",
    "RegionStage",
    "ResponseStage",
    "RgbValue",
    "SamplingStage",
    "SingularMatrixError",
    "Stage",
    "assemble_hdr",
    "capture_hdr",
    "detect_bounding_region",
    "detect_mask_region",
    "equalize_white_balances",
    "estimate_crf",
    "find_exposure",
    "invert_channel",
    "invert_curves",
    "load_crf",
    "sample_projector_curves",
    "save_crf",
    "solve_color_mix",
]
