"""Calibration camera contract and scoped, single-flight camera acquisition."""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Protocol, runtime_checkable

import numpy as np

from colorwall.core.errors import CalibrationInProgressError

__all__ = ["CalibrationCamera", "CameraSession"]

logger = logging.getLogger(__name__)


@runtime_checkable
class CalibrationCamera(Protocol):
    """Structural protocol for the camera driver consumed by the pipeline.

    The driver itself (device enumeration, transport) lives outside this
    package. Drivers may additionally expose ``open()`` and ``close()``; when
    present, :class:`CameraSession` calls them on acquisition and release.
    """

    def is_ready(self) -> bool:
        """Return True when the camera can capture."""
        ...

    def get_exposure(self) -> float:
        """Return the exposure actually applied by the camera, in seconds."""
        ...

    def set_exposure(self, value: float) -> None:
        """Request a new exposure; the device may round it."""
        ...

    def capture(self) -> bool:
        """Capture one frame; return False on failure."""
        ...

    def decode_last_capture(self) -> np.ndarray:
        """Return the last captured frame as an (H, W, 3) uint8 RGB array."""
        ...

    def write_last_capture(self, path: str | Path) -> None:
        """Write the last captured frame to *path*."""
        ...


# Ids of cameras currently inside a CameraSession.
_ACTIVE_CAMERAS: set[int] = set()
_ACTIVE_LOCK = threading.Lock()


class CameraSession:
    """Exclusive, scoped ownership of a calibration camera.

    Acquisition registers the camera in a process-wide single-flight guard and
    calls the driver's ``open()`` if it has one. Release happens on every exit
    path, including exceptions raised inside the ``with`` block.

    Example::

        with CameraSession(camera) as cam:
            cam.capture()

    Args:
        camera: The camera driver to own for the duration of the block.

    Raises:
        CalibrationInProgressError: On entry, if the same camera is already
            owned by another session.
    """

    def __init__(self, camera: CalibrationCamera) -> None:
        self._camera = camera
        self._acquired = False

    def __enter__(self) -> CalibrationCamera:
        key = id(self._camera)
        with _ACTIVE_LOCK:
            if key in _ACTIVE_CAMERAS:
                raise CalibrationInProgressError(
                    f"Camera {self._camera!r} is already in use by a calibration run"
                )
            _ACTIVE_CAMERAS.add(key)
        self._acquired = True

        opener = getattr(self._camera, "open", None)
        if callable(opener):
            try:
                opener()
            except Exception:
                self._release()
                raise
        logger.debug("Acquired calibration camera %r", self._camera)
        return self._camera

    def __exit__(self, exc_type: type[BaseException] | None, *exc: object) -> None:
        closer = getattr(self._camera, "close", None)
        try:
            if callable(closer):
                closer()
        except Exception:
            if exc_type is None:
                raise
            # The in-flight exception is the one the caller must see.
            logger.warning(
                "Closing camera %r failed while handling %s",
                self._camera,
                exc_type.__name__,
                exc_info=True,
            )
        finally:
            self._release()
            logger.debug("Released calibration camera %r", self._camera)

    def _release(self) -> None:
        if not self._acquired:
            return
        with _ACTIVE_LOCK:
            _ACTIVE_CAMERAS.discard(id(self._camera))
        self._acquired = False
