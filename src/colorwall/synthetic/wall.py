"""Deterministic synthetic projector wall.

Projectors are axis-aligned rectangles laid out side by side with a small
horizontal overlap. Each one emits, per channel ``c`` and input ``x``::

    gain * (black_level + slope * x[c] + crosstalk * slope * sum(x[d], d != c))

so responses are affine, channels leak into each other and projectors
differ in brightness by ``gain_step``. The radiance seen by the camera is the
sum of all emissions; pixels outside every projector are black.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

__all__ = ["SyntheticProjector", "SyntheticWall"]

# Gray range of the content shown while a projector is not hidden.
_CONTENT_RANGE = (0.1, 0.9)


@dataclass
class SyntheticProjector:
    """One simulated projector and its display state.

    Attributes:
        name: Object name on the simulated control plane.
        x0: First column covered (inclusive).
        x1: Last column covered (exclusive).
        y0: First row covered (inclusive).
        y1: Last row covered (exclusive).
        gain: Overall brightness factor.
        hidden: Content hidden; the background is shown instead.
        flash_background: Background color is shown while hidden.
        clear_color: Background RGB, or None for the default (black).
    """

    name: str
    x0: int
    x1: int
    y0: int
    y1: int
    gain: float = 1.0
    hidden: bool = False
    flash_background: bool = False
    clear_color: tuple[float, float, float] | None = None

    def displayed_input(self, width: int) -> np.ndarray:
        """Input levels shown over the projector footprint, shape (h, w, 3)."""
        h, w = self.y1 - self.y0, self.x1 - self.x0
        if self.hidden:
            color = self.clear_color if self.flash_background and self.clear_color else (0.0,) * 3
            return np.broadcast_to(np.asarray(color, dtype=np.float64), (h, w, 3))
        ramp = np.linspace(*_CONTENT_RANGE, w)
        return np.broadcast_to(ramp[None, :, None], (h, w, 3))


class SyntheticWall:
    """A row of overlapping simulated projectors seen by one camera.

    Args:
        projector_count: Number of projectors, named ``proj0``, ``proj1``, ...
        width: Camera frame width in pixels.
        height: Camera frame height in pixels.
        gain_step: Brightness drop between consecutive projectors.
        crosstalk: Fraction of a channel's drive leaking into the others.
        black_level: Emission at input level 0.
        slope: Emission gain per unit input level.

    Example::

        wall = SyntheticWall(projector_count=2)
        camera = SyntheticCamera(wall)
        plane = SyntheticControlPlane(wall)
    """

    def __init__(
        self,
        projector_count: int = 2,
        width: int = 160,
        height: int = 120,
        gain_step: float = 0.1,
        crosstalk: float = 0.05,
        black_level: float = 0.05,
        slope: float = 0.8,
    ) -> None:
        if projector_count < 1:
            raise ValueError(f"projector_count must be >= 1, got {projector_count}")
        self.width = width
        self.height = height
        self.crosstalk = crosstalk
        self.black_level = black_level
        self.slope = slope
        self.projectors = self._layout(projector_count, gain_step)

    @classmethod
    def from_config(cls, config: object) -> SyntheticWall:
        """Build a wall from any object carrying the constructor's fields."""
        return cls(
            projector_count=config.projector_count,
            width=config.width,
            height=config.height,
            gain_step=config.gain_step,
            crosstalk=config.crosstalk,
            black_level=config.black_level,
            slope=config.slope,
        )

    def _layout(self, count: int, gain_step: float) -> list[SyntheticProjector]:
        margin_x = self.width // 16
        margin_y = self.height // 8
        usable = self.width - 2 * margin_x
        overlap = max(1, usable // (7 * count))
        pw = (usable + (count - 1) * overlap) // count
        projectors = []
        for i in range(count):
            x0 = margin_x + i * (pw - overlap)
            projectors.append(
                SyntheticProjector(
                    name=f"proj{i}",
                    x0=x0,
                    x1=min(self.width, x0 + pw),
                    y0=margin_y,
                    y1=self.height - margin_y,
                    gain=max(0.1, 1.0 - i * gain_step),
                )
            )
        return projectors

    def projector(self, name: str) -> SyntheticProjector:
        """Return the projector called *name*.

        Raises:
            KeyError: If there is no such projector.
        """
        for p in self.projectors:
            if p.name == name:
                return p
        raise KeyError(name)

    def footprint(self, name: str) -> np.ndarray:
        """Boolean (H, W) mask of the pixels lit by projector *name*."""
        p = self.projector(name)
        mask = np.zeros((self.height, self.width), dtype=bool)
        mask[p.y0 : p.y1, p.x0 : p.x1] = True
        return mask

    def emission(self, projector: SyntheticProjector, levels: np.ndarray) -> np.ndarray:
        """Radiance emitted by *projector* for input *levels* (..., 3)."""
        levels = np.asarray(levels, dtype=np.float64)
        leak = levels.sum(axis=-1, keepdims=True) - levels
        return projector.gain * (
            self.black_level + self.slope * levels + self.crosstalk * self.slope * leak
        )

    def radiance(self) -> np.ndarray:
        """Scene radiance for the current display state, shape (H, W, 3)."""
        image = np.zeros((self.height, self.width, 3), dtype=np.float64)
        for p in self.projectors:
            levels = p.displayed_input(self.width)
            image[p.y0 : p.y1, p.x0 : p.x1] += self.emission(p, levels)
        return image
