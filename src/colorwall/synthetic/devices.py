"""Simulated camera and control plane driving a :class:`SyntheticWall`."""

from __future__ import annotations

import logging
from pathlib import Path

import cv2
import numpy as np

from colorwall.core.hdr import CameraResponseFunction
from colorwall.synthetic.wall import SyntheticWall

__all__ = ["PUBLICATION_ATTRIBUTES", "SyntheticCamera", "SyntheticControlPlane"]

logger = logging.getLogger(__name__)

PUBLICATION_ATTRIBUTES = frozenset(
    {"colorLUT", "activateColorLUT", "colorMixMatrix", "brightness", "colorTemperature"}
)


class SyntheticCamera:
    """Linear 8-bit camera looking at a synthetic wall.

    A frame is ``clip(round(255 * radiance * exposure), 0, 255)``, so the
    camera response is exactly :meth:`CameraResponseFunction.linear`.

    Args:
        wall: The wall to image.
        exposure: Initial exposure.
        ready: Value returned by :meth:`is_ready`.
        fail_after: If set, every capture after this many successful ones
            fails.
    """

    def __init__(
        self,
        wall: SyntheticWall,
        exposure: float = 1.0,
        ready: bool = True,
        fail_after: int | None = None,
    ) -> None:
        self._wall = wall
        self._exposure = float(exposure)
        self._ready = ready
        self._fail_after = fail_after
        self._last: np.ndarray | None = None
        self.capture_count = 0
        self.open_count = 0
        self.close_count = 0

    @staticmethod
    def response() -> CameraResponseFunction:
        """The exact response of this camera."""
        return CameraResponseFunction.linear()

    def open(self) -> None:
        self.open_count += 1

    def close(self) -> None:
        self.close_count += 1

    def is_ready(self) -> bool:
        return self._ready

    def get_exposure(self) -> float:
        return self._exposure

    def set_exposure(self, value: float) -> None:
        if value <= 0:
            raise ValueError(f"Exposure must be positive, got {value}")
        self._exposure = float(value)

    def capture(self) -> bool:
        if self._fail_after is not None and self.capture_count >= self._fail_after:
            logger.debug("Synthetic capture %d failing on request", self.capture_count)
            return False
        codes = np.rint(255.0 * self._wall.radiance() * self._exposure)
        self._last = np.clip(codes, 0, 255).astype(np.uint8)
        self.capture_count += 1
        return True

    def decode_last_capture(self) -> np.ndarray:
        if self._last is None:
            raise RuntimeError("No frame captured yet")
        return self._last.copy()

    def write_last_capture(self, path: str | Path) -> None:
        if self._last is None:
            raise RuntimeError("No frame captured yet")
        cv2.imwrite(str(path), cv2.cvtColor(self._last, cv2.COLOR_RGB2BGR))


class SyntheticControlPlane:
    """Control plane that applies display attributes to a synthetic wall.

    Every message is appended to :attr:`sent` as ``(object, attribute,
    values)``. Publication attributes are only recorded.

    Args:
        wall: The wall whose projectors are addressed.
        category: Category under which the projectors are listed.
        reject_publication: Projector names for which publication attributes
            raise ``ConnectionError``, to simulate an unreachable projector.
    """

    def __init__(
        self,
        wall: SyntheticWall,
        category: str = "projector",
        reject_publication: set[str] | None = None,
    ) -> None:
        self._wall = wall
        self._category = category
        self._reject = set(reject_publication or ())
        self.sent: list[tuple[str, str, tuple]] = []

    def list_objects_by_category(self, category: str) -> list[str]:
        if category != self._category:
            return []
        return [p.name for p in self._wall.projectors]

    def send_fire_and_forget(self, object_name: str, attribute: str, *values: object) -> None:
        if attribute in PUBLICATION_ATTRIBUTES and object_name in self._reject:
            raise ConnectionError(f"Projector {object_name!r} is unreachable")
        self.sent.append((object_name, attribute, values))

        try:
            projector = self._wall.projector(object_name)
        except KeyError:
            logger.debug("Message %s for unknown object %s dropped", attribute, object_name)
            return

        if attribute == "hide":
            projector.hidden = bool(values[0])
        elif attribute == "flashBG":
            projector.flash_background = bool(values[0])
        elif attribute == "clearColor":
            if values:
                projector.clear_color = (float(values[0]), float(values[1]), float(values[2]))
            else:
                projector.clear_color = None

    def messages(self, object_name: str | None = None, attribute: str | None = None) -> list:
        """Recorded messages, optionally filtered by object and attribute."""
        return [
            m
            for m in self.sent
            if (object_name is None or m[0] == object_name)
            and (attribute is None or m[1] == attribute)
        ]
