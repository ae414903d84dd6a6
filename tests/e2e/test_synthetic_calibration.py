"""End-to-end calibration of the default two-projector synthetic wall.

Runs all eight stages against the simulated camera and control plane, with
the camera response known in advance.

Run only these tests::

    pytest tests/e2e -m slow -v
"""

from __future__ import annotations

from pathlib import Path

import h5py
import numpy as np
import pytest

from colorwall.core.errors import CameraNotReadyError, CaptureError
from colorwall.engine import CalibrationPipeline, HDF5ExportObserver, build_stages, load_config
from colorwall.synthetic import SyntheticCamera, SyntheticControlPlane, SyntheticWall

pytestmark = pytest.mark.slow


def _restore_messages(name: str) -> list[tuple[str, str, tuple]]:
    return [(name, "hide", (0,)), (name, "flashBG", (0,)), (name, "clearColor", ())]


class TestSyntheticCalibration:
    """Full pipeline on a wall whose geometry and response are known."""

    def test_both_projectors_published(self, run_synthetic) -> None:
        context, plane = run_synthetic()

        assert context.failures == []
        assert context.published == ["proj0", "proj1"]
        assert context.exposure == pytest.approx(1.0 / 1.5)
        for name in ("proj0", "proj1"):
            assert len(plane.messages(name, "colorLUT")) == 1
            assert plane.messages(name, "activateColorLUT") == [(name, "activateColorLUT", (1,))]
            assert len(plane.messages(name, "colorMixMatrix")) == 1

    def test_projector_results_are_usable(self, run_synthetic) -> None:
        context, _ = run_synthetic()

        for params in context.params:
            assert not params.failed
            assert params.luts.shape == (256, 3)
            assert np.all(np.isfinite(params.luts))
            assert params.mix_matrix.shape == (3, 3)
            assert abs(np.linalg.det(params.mix_matrix)) > 1e-6
            for low, high in zip(params.min_values, params.max_values):
                assert low <= high

        low, high = context.common_range
        assert all(lo <= hi for lo, hi in zip(low, high))
        assert context.target_white_balance is not None

    def test_dimmer_projector_has_lower_white_point(self, run_synthetic) -> None:
        context, _ = run_synthetic()
        first, second = context.params
        assert first.white_point.luminance() > second.white_point.luminance()

    def test_display_state_restored(self, run_synthetic) -> None:
        _, plane = run_synthetic()
        assert plane.sent[-6:] == _restore_messages("proj0") + _restore_messages("proj1")

    def test_deterministic(self, run_synthetic) -> None:
        first, _ = run_synthetic("first")
        second, _ = run_synthetic("second")
        for a, b in zip(first.params, second.params):
            np.testing.assert_array_equal(a.luts, b.luts)
            np.testing.assert_array_equal(a.mix_matrix, b.mix_matrix)
        assert first.common_range == second.common_range

    def test_hdf5_artifact(self, run_synthetic, tmp_path: Path) -> None:
        output_dir = tmp_path / "h5"
        run_synthetic("h5", observers=[HDF5ExportObserver(output_dir=output_dir)])
        with h5py.File(output_dir / "calibration.h5", "r") as f:
            assert set(f["projectors"].keys()) == {"proj0", "proj1"}
            assert f["projectors/proj1/luts"].shape == (256, 3)


class TestSyntheticFailures:
    """Aborted runs leave the projectors as they were."""

    def _pipeline(self, tmp_path: Path, camera_kwargs: dict):
        config = load_config(
            run_id="fail",
            cli_overrides={"mode": "synthetic", "output_dir": str(tmp_path)},
        )
        wall = SyntheticWall.from_config(config.synthetic)
        camera = SyntheticCamera(wall, **camera_kwargs)
        plane = SyntheticControlPlane(wall)
        pipeline = CalibrationPipeline(
            stages=build_stages(config),
            config=config,
            camera=camera,
            control_plane=plane,
            crf=camera.response(),
        )
        return pipeline, wall, plane, camera

    def test_capture_failure_aborts_and_restores(self, tmp_path: Path) -> None:
        pipeline, wall, plane, camera = self._pipeline(tmp_path, {"fail_after": 5})
        with pytest.raises(CaptureError):
            pipeline.run()

        assert plane.messages(attribute="colorLUT") == []
        assert plane.sent[-6:] == _restore_messages("proj0") + _restore_messages("proj1")
        for projector in wall.projectors:
            assert not projector.hidden
            assert projector.clear_color is None
        assert camera.close_count == 1

    def test_camera_not_ready_sends_nothing(self, tmp_path: Path) -> None:
        pipeline, _, plane, _ = self._pipeline(tmp_path, {"ready": False})
        with pytest.raises(CameraNotReadyError):
            pipeline.run()
        assert plane.sent == []
