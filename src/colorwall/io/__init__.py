"""Camera and control-plane contracts consumed by the calibration pipeline."""

from colorwall.io.camera import CalibrationCamera, CameraSession
from colorwall.io.control import ControlPlane, ProjectorControl

__all__ = [
    "CalibrationCamera",
    "CameraSession",
    "ControlPlane",
    "ProjectorControl",
]
