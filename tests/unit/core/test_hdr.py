"""Unit tests for bracketing, camera response estimation and HDR assembly."""

from __future__ import annotations

from pathlib import Path

import numpy as np
import pytest

from colorwall.core.errors import CaptureError
from colorwall.core.hdr import (
    CameraResponseFunction,
    ResponseStage,
    assemble_hdr,
    capture_brackets,
    capture_hdr,
    estimate_crf,
    load_crf,
    save_crf,
)

# ---------------------------------------------------------------------------
# Test helpers
# ---------------------------------------------------------------------------


class RecordingCamera:
    """Camera returning a constant frame and recording the exposures used."""

    def __init__(self, exposure: float = 1.0, fail_at: int | None = None) -> None:
        self.exposure = exposure
        self.fail_at = fail_at
        self.exposures: list[float] = []
        self.written: list[Path] = []

    def get_exposure(self) -> float:
        return self.exposure

    def set_exposure(self, value: float) -> None:
        self.exposure = value

    def capture(self) -> bool:
        if self.fail_at is not None and len(self.exposures) == self.fail_at:
            return False
        self.exposures.append(self.exposure)
        return True

    def decode_last_capture(self) -> np.ndarray:
        return np.full((4, 6, 3), 128, dtype=np.uint8)

    def write_last_capture(self, path: Path) -> None:
        self.written.append(path)


def _gradient_frames(exposures: list[float]) -> list[np.ndarray]:
    """Frames of a horizontal radiance gradient seen by a linear camera."""
    radiance = np.linspace(0.02, 1.0, 64)[None, :, None] * np.ones((48, 64, 3))
    radiance[..., 1] *= 0.8
    radiance[..., 2] *= 0.6
    return [
        np.clip(np.rint(255.0 * radiance * t), 0, 255).astype(np.uint8) for t in exposures
    ]


# ---------------------------------------------------------------------------
# CameraResponseFunction persistence
# ---------------------------------------------------------------------------


def test_linear_crf_maps_codes_to_unit_range() -> None:
    crf = CameraResponseFunction.linear()
    assert crf.response.shape == (256, 3)
    assert crf.response[0, 0] == 0.0
    assert crf.response[255, 2] == pytest.approx(1.0)


def test_crf_rejects_wrong_shape() -> None:
    with pytest.raises(ValueError, match="shape"):
        CameraResponseFunction(np.zeros((255, 3)))


def test_crf_save_and_load(tmp_path: Path) -> None:
    crf = CameraResponseFunction(np.linspace(0.0, 1.0, 768).reshape(256, 3))
    path = tmp_path / "crf.npz"
    save_crf(crf, path)
    loaded = load_crf(path)
    np.testing.assert_array_equal(loaded.response, crf.response)


# ---------------------------------------------------------------------------
# Bracketing
# ---------------------------------------------------------------------------


def test_brackets_are_centred_on_current_exposure() -> None:
    camera = RecordingCamera(exposure=1.0)
    frames, exposures = capture_brackets(camera, 3, 1.0)
    assert exposures == pytest.approx([0.5, 1.0, 2.0])
    assert len(frames) == 3
    assert camera.exposure == 1.0


def test_single_bracket_uses_current_exposure() -> None:
    camera = RecordingCamera(exposure=0.25)
    _, exposures = capture_brackets(camera, 1, 1.0)
    assert exposures == [0.25]


def test_failed_bracket_restores_exposure() -> None:
    camera = RecordingCamera(exposure=1.0, fail_at=1)
    with pytest.raises(CaptureError, match="bracket 1"):
        capture_brackets(camera, 3, 1.0)
    assert camera.exposure == 1.0


def test_brackets_written_to_diagnostics_dir(tmp_path: Path) -> None:
    camera = RecordingCamera()
    capture_brackets(camera, 2, 1.0, diagnostics_dir=tmp_path)
    assert camera.written == [tmp_path / "bracket_00.png", tmp_path / "bracket_01.png"]


def test_capture_hdr_writes_radiance_image(tmp_path: Path) -> None:
    hdr = capture_hdr(RecordingCamera(), 1, 1.0, CameraResponseFunction.linear(), tmp_path)
    assert hdr.shape == (4, 6, 3)
    assert (tmp_path / "hdr.hdr").exists()


# ---------------------------------------------------------------------------
# Assembly
# ---------------------------------------------------------------------------


def test_single_frame_is_linearized_and_divided_by_exposure() -> None:
    frame = np.full((2, 2, 3), 128, dtype=np.uint8)
    hdr = assemble_hdr([frame], [0.5], CameraResponseFunction.linear())
    assert hdr.dtype == np.float32
    np.testing.assert_allclose(hdr, 128.0 / 255.0 / 0.5, rtol=1e-6)


def test_clipped_codes_get_zero_weight() -> None:
    saturated = np.full((2, 2, 3), 255, dtype=np.uint8)
    mid = np.full((2, 2, 3), 128, dtype=np.uint8)
    hdr = assemble_hdr([saturated, mid], [1.0, 0.5], CameraResponseFunction.linear())
    np.testing.assert_allclose(hdr, 128.0 / 255.0 / 0.5, rtol=1e-6)


def test_pixels_clipped_everywhere_fall_back_to_mean() -> None:
    saturated = np.full((2, 2, 3), 255, dtype=np.uint8)
    hdr = assemble_hdr([saturated, saturated], [1.0, 2.0], CameraResponseFunction.linear())
    np.testing.assert_allclose(hdr, 0.75, rtol=1e-6)


def test_black_frames_assemble_to_zero() -> None:
    black = np.zeros((3, 3, 3), dtype=np.uint8)
    hdr = assemble_hdr([black, black], [1.0, 2.0], CameraResponseFunction.linear())
    assert np.all(hdr == 0.0)


def test_assemble_requires_a_frame() -> None:
    with pytest.raises(ValueError):
        assemble_hdr([], [], CameraResponseFunction.linear())


# ---------------------------------------------------------------------------
# Estimation
# ---------------------------------------------------------------------------


def test_estimated_crf_is_monotone_and_normalized() -> None:
    exposures = [0.25, 0.5, 1.0, 2.0, 4.0]
    crf = estimate_crf(_gradient_frames(exposures), exposures)
    assert crf.response.shape == (256, 3)
    assert np.all(np.diff(crf.response, axis=0) >= 0)
    np.testing.assert_allclose(crf.response[-1], 1.0)
    assert np.all(crf.response > 0)


def test_estimate_requires_two_frames() -> None:
    with pytest.raises(ValueError, match="at least 2"):
        estimate_crf(_gradient_frames([1.0]), [1.0])


def test_estimate_rejects_count_mismatch() -> None:
    with pytest.raises(ValueError):
        estimate_crf(_gradient_frames([1.0, 2.0]), [1.0])


# ---------------------------------------------------------------------------
# ResponseStage
# ---------------------------------------------------------------------------


def test_response_stage_keeps_provided_crf(make_context, camera, linear_crf) -> None:
    context = ResponseStage().run(make_context(crf=linear_crf))
    assert context.crf is linear_crf
    assert camera.capture_count == 0


def test_response_stage_loads_existing_file(make_context, camera, tmp_path: Path) -> None:
    path = tmp_path / "crf.npz"
    stored = CameraResponseFunction(np.linspace(0.0, 1.0, 768).reshape(256, 3))
    save_crf(stored, path)
    context = ResponseStage(crf_path=path).run(make_context())
    np.testing.assert_array_equal(context.crf.response, stored.response)
    assert camera.capture_count == 0


def test_forced_response_stage_estimates_and_saves(
    make_context, camera, linear_crf, tmp_path: Path
) -> None:
    path = tmp_path / "nested" / "crf.npz"
    stage = ResponseStage(crf_path=path, crf_images=5, crf_step=1.0, force=True)
    context = stage.run(make_context(crf=linear_crf, exposure=0.5))
    assert context.crf is not linear_crf
    assert path.exists()
    assert camera.capture_count == 5
    assert camera.get_exposure() == 0.5
