"""Unit tests for timing, console, diagnostic and HDF5 observers and the factory."""

from __future__ import annotations

from pathlib import Path

import h5py
import numpy as np
import pytest

from colorwall.core.context import CalibrationContext
from colorwall.core.types import BoundingRegion, CalibrationParams, CurvePoint, MaskRegion, RgbValue
from colorwall.engine import (
    ConsoleObserver,
    DiagnosticObserver,
    HDF5ExportObserver,
    PipelineComplete,
    PipelineFailed,
    PipelineStart,
    ProjectorFailed,
    StageComplete,
    StageStart,
    TimingObserver,
    build_observers,
    load_config,
)

# ---------------------------------------------------------------------------
# Test helpers
# ---------------------------------------------------------------------------


def _context() -> CalibrationContext:
    mask = np.zeros((8, 8), dtype=bool)
    mask[2:5, 2:6] = True
    first = CalibrationParams(
        name="proj0",
        region=MaskRegion(mask, (3.5, 3.0)),
        white_point=RgbValue(1.0, 1.0, 0.9),
        white_balance=RgbValue(1.0, 1.0, 0.9),
        curves=[
            [CurvePoint(0.0, RgbValue(0.1, 0.0, 0.0)), CurvePoint(1.0, RgbValue(0.9, 0.1, 0.0))],
            [],
            [],
        ],
        luts=np.tile(np.linspace(0.0, 1.0, 256)[:, None], (1, 3)),
        min_values=RgbValue(0.1, 0.1, 0.1),
        max_values=RgbValue(0.9, 0.9, 0.8),
        mix_matrix=np.eye(3),
    )
    second = CalibrationParams(
        name="proj1",
        region=BoundingRegion(10.0, 12.0, 4.0),
        degenerate_channels={2},
        failed=True,
    )
    context = CalibrationContext(
        params=[first, second],
        exposure=0.25,
        target_white_balance=RgbValue(1.0, 1.0, 0.9),
        common_range=((0.1, 0.1, 0.1, 0.1), (0.8, 0.8, 0.8, 0.8)),
        published=["proj0"],
    )
    context.record_failure("PublishStage", "unreachable", projector="proj1")
    return context


# ---------------------------------------------------------------------------
# TimingObserver
# ---------------------------------------------------------------------------


def test_timing_report_lists_stages_and_failures(tmp_path: Path) -> None:
    path = tmp_path / "timing.txt"
    observer = TimingObserver(output_path=path)
    observer.on_event(PipelineStart(run_id="run_t"))
    observer.on_event(StageComplete(stage_name="RegionStage", elapsed_seconds=2.0))
    observer.on_event(StageComplete(stage_name="SamplingStage", elapsed_seconds=6.0))
    observer.on_event(ProjectorFailed(stage_name="InversionStage", message="flat"))
    observer.on_event(PipelineComplete(run_id="run_t", elapsed_seconds=8.0))

    report = path.read_text()
    assert "Timing Report - run: run_t" in report
    assert "RegionStage" in report
    assert "75.0%" in report
    assert "TOTAL" in report
    assert "localized failures: 1" in report
    assert "FAILED" not in report


def test_timing_report_attributes_failures_to_stage() -> None:
    observer = TimingObserver()
    observer.on_event(ProjectorFailed(stage_name="InversionStage", projector="proj1"))
    observer.on_event(ProjectorFailed(stage_name="InversionStage", projector="proj0"))
    observer.on_event(StageComplete(stage_name="InversionStage", elapsed_seconds=3.0))
    observer.on_event(StageComplete(stage_name="OverlapStage", elapsed_seconds=1.0))
    observer.on_event(PipelineComplete(run_id="r", elapsed_seconds=4.0))

    report = observer.report()
    assert observer.failure_count == 2
    assert "[2 failed]" in report
    assert "slowest stage: InversionStage" in report
    assert observer.outcome == "complete"


def test_timing_report_marks_failed_run() -> None:
    observer = TimingObserver()
    observer.on_event(StageComplete(stage_name="ExposureStage", elapsed_seconds=1.0))
    observer.on_event(PipelineFailed(run_id="r", error="boom", elapsed_seconds=1.5))
    assert observer.total_time == 1.5
    assert "Calibration FAILED" in observer.report()


# ---------------------------------------------------------------------------
# ConsoleObserver
# ---------------------------------------------------------------------------


def test_console_progress(capsys: pytest.CaptureFixture[str]) -> None:
    observer = ConsoleObserver(total_stages=8)
    observer.on_event(StageStart(stage_name="RegionStage", stage_index=2))
    observer.on_event(
        StageComplete(stage_name="RegionStage", stage_index=2, elapsed_seconds=4.23)
    )
    observer.on_event(
        ProjectorFailed(stage_name="InversionStage", projector="proj1", channel=2, message="flat")
    )
    err = capsys.readouterr().err
    assert "[3/8] RegionStage... done (4.2s)" in err
    assert "  ! InversionStage: proj1 channel 2: flat" in err
    assert err.count("RegionStage") == 1


def test_console_verbose_prints_stage_start(capsys: pytest.CaptureFixture[str]) -> None:
    ConsoleObserver(verbose=True, total_stages=2).on_event(
        StageStart(stage_name="ExposureStage", stage_index=0)
    )
    assert "[1/2] ExposureStage...\n" in capsys.readouterr().err


def test_console_completion_and_failure(capsys: pytest.CaptureFixture[str]) -> None:
    observer = ConsoleObserver()
    observer.on_event(PipelineStart(run_id="r", config=load_config(run_id="r")))
    observer.on_event(PipelineComplete(run_id="r", elapsed_seconds=3.0, context=_context()))
    observer.on_event(PipelineFailed(run_id="r", error="camera lost", elapsed_seconds=1.0))
    err = capsys.readouterr().err
    assert "Calibration complete: 1 projector(s) published" in err
    assert "Calibration FAILED after 1.0s: camera lost" in err


# ---------------------------------------------------------------------------
# DiagnosticObserver
# ---------------------------------------------------------------------------


def test_snapshots_are_independent_of_later_mutation() -> None:
    context = _context()
    observer = DiagnosticObserver()
    observer.on_event(StageComplete(stage_name="InversionStage", stage_index=4, context=context))
    context.params[0].luts *= 0.5
    context.params[0].failed = True

    snapshot = observer.stages["InversionStage"]
    assert snapshot.exposure == 0.25
    assert snapshot["proj0"].luts[255, 0] == pytest.approx(1.0)
    assert not snapshot["proj0"].failed
    with pytest.raises(KeyError):
        snapshot["proj9"]


def test_diagnostic_ignores_other_events() -> None:
    observer = DiagnosticObserver()
    observer.on_event(StageStart(stage_name="RegionStage"))
    observer.on_event(StageComplete(stage_name="RegionStage"))
    assert observer.stages == {}


# ---------------------------------------------------------------------------
# HDF5ExportObserver
# ---------------------------------------------------------------------------


def test_hdf5_export_layout(tmp_path: Path) -> None:
    observer = HDF5ExportObserver(output_dir=tmp_path)
    observer.on_event(PipelineStart(run_id="run_h", config=load_config(run_id="run_h")))
    observer.on_event(PipelineComplete(run_id="run_h", elapsed_seconds=1.0, context=_context()))

    with h5py.File(tmp_path / "calibration.h5", "r") as f:
        assert f.attrs["run_id"] == "run_h"
        assert len(f.attrs["config_hash"]) == 32
        assert f.attrs["exposure"] == pytest.approx(0.25)
        np.testing.assert_allclose(f.attrs["common_range_max"], [0.8] * 4)
        assert [p.decode() if isinstance(p, bytes) else p for p in f.attrs["published"]] == [
            "proj0"
        ]

        first = f["projectors/proj0"]
        assert first["luts"].shape == (256, 3)
        np.testing.assert_array_equal(first["mix_matrix"][()], np.eye(3))
        assert first["curves/red"].shape == (2, 4)
        assert first["curves/green"].shape == (0, 4)
        assert first["region_mask"][()].sum() == 12
        np.testing.assert_allclose(first.attrs["white_point"], [1.0, 1.0, 0.9])
        assert not first.attrs["failed"]

        second = f["projectors/proj1"]
        assert "luts" not in second
        assert second.attrs["failed"]
        assert list(second.attrs["degenerate_channels"]) == [2]
        assert second.attrs["region_half_size"] == pytest.approx(4.0)

        failure = f["failures/0"]
        assert failure.attrs["stage"] == "PublishStage"
        assert failure.attrs["projector"] == "proj1"
        assert failure.attrs["channel"] == -1


def test_hdf5_skips_empty_context(tmp_path: Path) -> None:
    observer = HDF5ExportObserver(output_dir=tmp_path)
    observer.on_event(PipelineComplete(run_id="r", context=CalibrationContext()))
    assert not (tmp_path / "calibration.h5").exists()


# ---------------------------------------------------------------------------
# build_observers
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    ("mode", "expected"),
    [
        ("production", [ConsoleObserver, TimingObserver, HDF5ExportObserver]),
        ("synthetic", [ConsoleObserver, TimingObserver, HDF5ExportObserver]),
        (
            "diagnostic",
            [ConsoleObserver, TimingObserver, HDF5ExportObserver, DiagnosticObserver],
        ),
        ("benchmark", [ConsoleObserver, TimingObserver]),
        ("update-crf", [ConsoleObserver]),
    ],
)
def test_observers_per_mode(tmp_path: Path, mode: str, expected: list[type]) -> None:
    config = load_config(run_id="r", cli_overrides={"output_dir": str(tmp_path)})
    observers = build_observers(config, mode=mode, verbose=False, total_stages=8)
    assert [type(o) for o in observers] == expected


def test_extra_observers_are_additive_and_unique(tmp_path: Path) -> None:
    config = load_config(run_id="r", cli_overrides={"output_dir": str(tmp_path)})
    observers = build_observers(
        config,
        mode="benchmark",
        verbose=False,
        total_stages=8,
        extra_observers=("timing", "diagnostic"),
    )
    assert [type(o) for o in observers] == [ConsoleObserver, TimingObserver, DiagnosticObserver]


def test_unknown_extra_observer_rejected(tmp_path: Path) -> None:
    config = load_config(run_id="r", cli_overrides={"output_dir": str(tmp_path)})
    with pytest.raises(ValueError, match="Unknown observer"):
        build_observers(config, "production", False, 8, extra_observers=("overlay",))
