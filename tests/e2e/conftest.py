"""Shared fixtures for colorwall end-to-end tests on the synthetic wall."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

import pytest

from colorwall.core.context import CalibrationContext
from colorwall.engine import CalibrationPipeline, build_stages, load_config
from colorwall.synthetic import SyntheticCamera, SyntheticControlPlane, SyntheticWall


@pytest.fixture
def run_synthetic(tmp_path: Path) -> Callable[..., tuple[CalibrationContext, SyntheticControlPlane]]:
    """Run the full calibration on a fresh default wall.

    Returns a callable taking an optional sub-directory name and camera
    keyword arguments; it returns the final context and the control plane
    so tests can inspect the messages that were sent.
    """

    def _run(
        subdir: str = "run", observers=None, **camera_kwargs
    ) -> tuple[CalibrationContext, SyntheticControlPlane]:
        config = load_config(
            run_id=subdir,
            cli_overrides={"mode": "synthetic", "output_dir": str(tmp_path / subdir)},
        )
        wall = SyntheticWall.from_config(config.synthetic)
        camera = SyntheticCamera(wall, **camera_kwargs)
        plane = SyntheticControlPlane(wall)
        pipeline = CalibrationPipeline(
            stages=build_stages(config),
            config=config,
            camera=camera,
            control_plane=plane,
            observers=observers,
            crf=camera.response(),
        )
        return pipeline.run(), plane

    return _run
