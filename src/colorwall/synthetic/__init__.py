"""Synthetic projector wall for controlled testing of the calibration pipeline.

Provides a deterministic wall of overlapping projectors with known response,
cross-talk and brightness differences, plus a simulated camera and control
plane that drive it. Used by ``colorwall run --mode synthetic`` and the
end-to-end tests.
"""

from colorwall.synthetic.devices import (
    PUBLICATION_ATTRIBUTES,
    SyntheticCamera,
    SyntheticControlPlane,
)
from colorwall.synthetic.wall import SyntheticProjector, SyntheticWall

__all__ = [
    "PUBLICATION_ATTRIBUTES",
    "SyntheticCamera",
    "SyntheticControlPlane",
    "SyntheticProjector",
    "SyntheticWall",
]
