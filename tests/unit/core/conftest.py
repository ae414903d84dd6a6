"""Shared fixtures for core stage tests: a small synthetic wall and its devices."""

from __future__ import annotations

import pytest

from colorwall.core.context import CalibrationContext
from colorwall.core.hdr import CameraResponseFunction
from colorwall.core.types import CalibrationParams
from colorwall.io.control import ProjectorControl
from colorwall.synthetic import SyntheticCamera, SyntheticControlPlane, SyntheticWall


@pytest.fixture
def wall() -> SyntheticWall:
    """Default two-projector wall (proj0 x[10, 85), proj1 x[75, 150))."""
    return SyntheticWall(projector_count=2)


@pytest.fixture
def camera(wall: SyntheticWall) -> SyntheticCamera:
    return SyntheticCamera(wall)


@pytest.fixture
def plane(wall: SyntheticWall) -> SyntheticControlPlane:
    return SyntheticControlPlane(wall)


@pytest.fixture
def make_context(wall: SyntheticWall, camera: SyntheticCamera, plane: SyntheticControlPlane):
    """Factory for a context wired to the synthetic devices.

    Keyword arguments override context fields, e.g. ``make_context(exposure=0.5)``.
    """

    def _make(**fields) -> CalibrationContext:
        context = CalibrationContext(
            camera=camera,
            control=ProjectorControl(plane),
            params=[CalibrationParams(name=p.name) for p in wall.projectors],
        )
        for name, value in fields.items():
            setattr(context, name, value)
        return context

    return _make


@pytest.fixture
def linear_crf() -> CameraResponseFunction:
    return CameraResponseFunction.linear()
