"""Domain types shared by every calibration stage.

``RgbValue`` is the immutable color triple used for measurements, white points
and balances. ``CalibrationParams`` is the per-projector accumulator that each
stage mutates in place during a single run.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import NamedTuple

import numpy as np

__all__ = [
    "CHANNEL_NAMES",
    "LUMINANCE_WEIGHTS",
    "LUT_SIZE",
    "BoundingRegion",
    "CalibrationParams",
    "Curve",
    "CurvePoint",
    "MaskRegion",
    "Region",
    "RgbValue",
]

LUT_SIZE = 256
"""Number of entries in every inverted per-channel lookup table."""

LUMINANCE_WEIGHTS = (0.2126, 0.7152, 0.0722)
"""Perceptual (Rec. 709) weights used by :meth:`RgbValue.luminance`."""

CHANNEL_NAMES = ("red", "green", "blue")


@dataclass(frozen=True)
class RgbValue:
    """Immutable RGB triple with component-wise arithmetic.

    Binary operators accept another ``RgbValue`` (component-wise) or a plain
    number (applied to every component).

    Attributes:
        r: Red component.
        g: Green component.
        b: Blue component.
    """

    r: float = 0.0
    g: float = 0.0
    b: float = 0.0

    @classmethod
    def from_sequence(cls, values: Sequence[float] | np.ndarray) -> RgbValue:
        """Build an RgbValue from any 3-element sequence."""
        if len(values) != 3:
            raise ValueError(f"RgbValue needs 3 components, got {len(values)}")
        return cls(float(values[0]), float(values[1]), float(values[2]))

    def as_array(self) -> np.ndarray:
        """Return the components as a float64 array of shape (3,)."""
        return np.array([self.r, self.g, self.b], dtype=np.float64)

    def __getitem__(self, index: int) -> float:
        return (self.r, self.g, self.b)[index]

    def __iter__(self):
        return iter((self.r, self.g, self.b))

    def __len__(self) -> int:
        return 3

    def _combine(self, other: RgbValue | float, op) -> RgbValue:
        if isinstance(other, RgbValue):
            return RgbValue(op(self.r, other.r), op(self.g, other.g), op(self.b, other.b))
        return RgbValue(op(self.r, other), op(self.g, other), op(self.b, other))

    def __add__(self, other: RgbValue | float) -> RgbValue:
        return self._combine(other, lambda a, b: a + b)

    def __sub__(self, other: RgbValue | float) -> RgbValue:
        return self._combine(other, lambda a, b: a - b)

    def __mul__(self, other: RgbValue | float) -> RgbValue:
        return self._combine(other, lambda a, b: a * b)

    __rmul__ = __mul__

    def __truediv__(self, other: RgbValue | float) -> RgbValue:
        return self._combine(other, lambda a, b: a / b)

    def luminance(self) -> float:
        """Return the perceptually weighted luminance of this value."""
        wr, wg, wb = LUMINANCE_WEIGHTS
        return wr * self.r + wg * self.g + wb * self.b

    def normalize(self, reference: int | None = None) -> RgbValue:
        """Scale so the largest (or the *reference*) component equals 1.

        Args:
            reference: Channel index to normalize against. ``None`` uses the
                largest component.

        Returns:
            The normalized value. A zero reference component leaves the value
            unchanged.
        """
        divisor = max(self.r, self.g, self.b) if reference is None else self[reference]
        if divisor == 0:
            return self
        return self / divisor


class CurvePoint(NamedTuple):
    """One sample of a projector response curve.

    Attributes:
        input_level: Normalized level commanded to the projector, in [0, 1].
        measured: Mean RGB measured by the camera for that level.
    """

    input_level: float
    measured: RgbValue


Curve = list[CurvePoint]


@dataclass(frozen=True)
class BoundingRegion:
    """Square region around the centroid of a projection.

    Attributes:
        center_x: Centroid column, in pixels.
        center_y: Centroid row, in pixels.
        half_size: Half of the estimated side length, in pixels.
    """

    center_x: float
    center_y: float
    half_size: float

    @property
    def centroid(self) -> tuple[float, float]:
        return (self.center_x, self.center_y)

    def to_mask(self, shape: tuple[int, int]) -> np.ndarray:
        """Rasterize the square into a boolean mask of *shape* (H, W)."""
        height, width = shape
        x0 = max(0, int(round(self.center_x - self.half_size)))
        x1 = min(width, int(round(self.center_x + self.half_size)) + 1)
        y0 = max(0, int(round(self.center_y - self.half_size)))
        y1 = min(height, int(round(self.center_y + self.half_size)) + 1)
        mask = np.zeros((height, width), dtype=bool)
        mask[y0:y1, x0:x1] = True
        return mask


@dataclass(frozen=True, eq=False)
class MaskRegion:
    """Per-pixel membership mask of a projection.

    Attributes:
        mask: Boolean array of shape (H, W).
        centroid: Mean (x, y) of the member pixels, kept for diagnostics.
    """

    mask: np.ndarray
    centroid: tuple[float, float]

    @property
    def area(self) -> int:
        return int(self.mask.sum())

    def to_mask(self, shape: tuple[int, int]) -> np.ndarray:
        if self.mask.shape != tuple(shape):
            raise ValueError(
                f"Mask shape {self.mask.shape} does not match image shape {shape}"
            )
        return self.mask


Region = BoundingRegion | MaskRegion


@dataclass
class CalibrationParams:
    """Per-projector calibration state, mutated in place by each stage.

    Created at the start of a run and never shared across runs.

    Attributes:
        name: Projector identifier on the control plane.
        region: Detected projection region, set by the region stage.
        white_point: Camera-measured color when the projector shows full white.
        white_balance: White point normalized by its own green channel.
        curves: Raw response curves, one per channel.
        luts: Inverted lookup tables, shape (256, 3); column ``c`` holds the
            input level producing normalized output ``i / 255`` on channel c.
        min_values: Per-channel measured value at input level 0.
        max_values: Per-channel measured value at input level 1.
        mix_matrix: 3x3 cross-talk correction matrix, ``None`` until solved or
            when the mixing matrix was singular.
        degenerate_channels: Channels whose LUT fell back to the identity.
        failed: True once a localized stage excluded this projector.
    """

    name: str
    region: Region | None = None
    white_point: RgbValue | None = None
    white_balance: RgbValue | None = None
    curves: list[Curve] = field(default_factory=lambda: [[], [], []])
    luts: np.ndarray | None = None
    min_values: RgbValue | None = None
    max_values: RgbValue | None = None
    mix_matrix: np.ndarray | None = None
    degenerate_channels: set[int] = field(default_factory=set)
    failed: bool = False
