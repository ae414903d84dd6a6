"""Control-plane contract and typed projector commands.

All commands are one-way and unacknowledged: the pipeline assumes a display
change is visible before the next capture. ``settle_seconds`` widens that
timing margin when a real rendering engine needs it.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from typing import Protocol, runtime_checkable

import numpy as np

__all__ = ["ControlPlane", "ProjectorControl"]

logger = logging.getLogger(__name__)


@runtime_checkable
class ControlPlane(Protocol):
    """Structural protocol for the attribute/messaging bus addressing projectors."""

    def list_objects_by_category(self, category: str) -> list[str]:
        """Return the names of all objects of *category*."""
        ...

    def send_fire_and_forget(self, object_name: str, attribute: str, *values: object) -> None:
        """Set *attribute* on *object_name*; no return value, no confirmation."""
        ...


class ProjectorControl:
    """Typed projector commands on top of a :class:`ControlPlane`.

    Args:
        plane: Control plane used to reach the projectors.
        settle_seconds: Wait applied by :meth:`settle` after display changes.
        neutral_brightness: Brightness reset value sent on publication.
        neutral_color_temperature: Color temperature reset value (Kelvin).
    """

    def __init__(
        self,
        plane: ControlPlane,
        settle_seconds: float = 0.0,
        neutral_brightness: float = 1.0,
        neutral_color_temperature: float = 6500.0,
    ) -> None:
        self._plane = plane
        self._settle_seconds = settle_seconds
        self._neutral_brightness = neutral_brightness
        self._neutral_color_temperature = neutral_color_temperature

    def discover(self, category: str) -> list[str]:
        """List projector names of *category* on the control plane."""
        names = [str(n) for n in self._plane.list_objects_by_category(category)]
        logger.info("Discovered %d projectors: %s", len(names), names)
        return names

    def settle(self) -> None:
        """Wait for display changes to take effect."""
        if self._settle_seconds > 0:
            time.sleep(self._settle_seconds)

    # -- display state -------------------------------------------------------

    def hide(self, name: str, hidden: bool) -> None:
        self._plane.send_fire_and_forget(name, "hide", int(hidden))

    def flash_background(self, name: str, enabled: bool) -> None:
        self._plane.send_fire_and_forget(name, "flashBG", int(enabled))

    def set_color(self, name: str, r: float, g: float, b: float) -> None:
        """Fill the projector background with an opaque color."""
        self._plane.send_fire_and_forget(name, "clearColor", r, g, b, 1.0)

    def set_black(self, name: str) -> None:
        self.set_color(name, 0.0, 0.0, 0.0)

    def set_white(self, name: str) -> None:
        self.set_color(name, 1.0, 1.0, 1.0)

    def reset_color(self, name: str) -> None:
        """Restore the default background color (no values)."""
        self._plane.send_fire_and_forget(name, "clearColor")

    def show_backgrounds(self, names: Sequence[str]) -> None:
        """Hide content and show a black flashed background on *names*."""
        for name in names:
            self.hide(name, True)
            self.flash_background(name, True)
            self.set_black(name)

    def restore(self, names: Sequence[str]) -> None:
        """Undo every calibration-only display override on *names*."""
        for name in names:
            self.hide(name, False)
            self.flash_background(name, False)
            self.reset_color(name)

    @contextmanager
    def calibration_display(self, names: Sequence[str]) -> Iterator[ProjectorControl]:
        """Scope in which projectors may be overridden for calibration.

        On exit, successful or not, content visibility, background flashing
        and background color are restored on every projector in *names*.
        """
        try:
            yield self
        finally:
            logger.info("Restoring display state of %d projectors", len(names))
            self.restore(names)

    # -- publication ---------------------------------------------------------

    def publish_lut(self, name: str, luts: np.ndarray) -> None:
        """Send a (256, 3) LUT flattened per level (r, g, b, r, g, b, ...) and enable it."""
        flat = [float(v) for v in np.asarray(luts, dtype=np.float64).reshape(-1)]
        self._plane.send_fire_and_forget(name, "colorLUT", flat)
        self._plane.send_fire_and_forget(name, "activateColorLUT", 1)

    def publish_mix_matrix(self, name: str, matrix: np.ndarray) -> None:
        """Send a 3x3 matrix as 9 row-major floats."""
        flat = [float(v) for v in np.asarray(matrix, dtype=np.float64).reshape(9)]
        self._plane.send_fire_and_forget(name, "colorMixMatrix", flat)

    def reset_filters(self, name: str) -> None:
        """Reset filters that would double-correct a calibrated projector."""
        self._plane.send_fire_and_forget(name, "brightness", self._neutral_brightness)
        self._plane.send_fire_and_forget(
            name, "colorTemperature", self._neutral_color_temperature
        )
