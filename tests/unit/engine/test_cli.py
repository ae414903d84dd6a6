"""Unit tests for the colorwall CLI."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock, patch

import click.testing
import pytest
import yaml

from colorwall.cli import cli


@pytest.fixture
def runner() -> click.testing.CliRunner:
    """Create a Click CliRunner for isolated CLI testing."""
    return click.testing.CliRunner()


@pytest.fixture
def config_file(tmp_path: Path) -> Path:
    path = tmp_path / "config.yaml"
    path.write_text(f"output_dir: {tmp_path / 'output'}\n")
    return path


@pytest.fixture
def mock_pipeline():
    """Mock CalibrationPipeline so no stage runs; yields the mocks."""
    instance = MagicMock()
    with patch("colorwall.cli.CalibrationPipeline", return_value=instance) as cls:
        yield {"CalibrationPipeline": cls, "instance": instance}


# ---------------------------------------------------------------------------
# Help
# ---------------------------------------------------------------------------


class TestCLIHelp:
    """Tests for CLI help and argument discovery."""

    def test_run_help_shows_options(self, runner: click.testing.CliRunner) -> None:
        result = runner.invoke(cli, ["run", "--help"])
        assert result.exit_code == 0
        for option in ("--config", "--mode", "--set", "--add-observer", "--verbose"):
            assert option in result.output

    def test_run_without_config_fails(self, runner: click.testing.CliRunner) -> None:
        assert runner.invoke(cli, ["run"]).exit_code != 0

    def test_commands_listed(self, runner: click.testing.CliRunner) -> None:
        result = runner.invoke(cli, ["--help"])
        for command in ("run", "update-crf", "init-config"):
            assert command in result.output


# ---------------------------------------------------------------------------
# run
# ---------------------------------------------------------------------------


class TestRun:
    """Tests for the run command wiring."""

    def test_synthetic_run_passes_known_response(
        self, runner: click.testing.CliRunner, config_file: Path, mock_pipeline: dict
    ) -> None:
        result = runner.invoke(cli, ["run", "-c", str(config_file), "-m", "synthetic"])
        assert result.exit_code == 0, result.output
        kwargs = mock_pipeline["CalibrationPipeline"].call_args.kwargs
        assert kwargs["crf"] is not None
        assert len(kwargs["stages"]) == 8
        assert kwargs["config"].mode == "synthetic"
        mock_pipeline["instance"].run.assert_called_once()

    def test_set_overrides_reach_config(
        self, runner: click.testing.CliRunner, config_file: Path, mock_pipeline: dict
    ) -> None:
        result = runner.invoke(
            cli,
            [
                "run",
                "-c",
                str(config_file),
                "-m",
                "synthetic",
                "--set",
                "region.method=bounding",
                "--set",
                "stop_after=sampling",
            ],
        )
        assert result.exit_code == 0, result.output
        kwargs = mock_pipeline["CalibrationPipeline"].call_args.kwargs
        assert kwargs["config"].region.method == "bounding"
        assert len(kwargs["stages"]) == 4

    def test_extra_observer_added(
        self, runner: click.testing.CliRunner, config_file: Path, mock_pipeline: dict
    ) -> None:
        runner.invoke(
            cli, ["run", "-c", str(config_file), "-m", "synthetic", "--add-observer", "diagnostic"]
        )
        observers = mock_pipeline["CalibrationPipeline"].call_args.kwargs["observers"]
        assert "DiagnosticObserver" in [type(o).__name__ for o in observers]

    def test_malformed_set_rejected(
        self, runner: click.testing.CliRunner, config_file: Path, mock_pipeline: dict
    ) -> None:
        result = runner.invoke(cli, ["run", "-c", str(config_file), "--set", "region.method"])
        assert result.exit_code != 0
        mock_pipeline["CalibrationPipeline"].assert_not_called()

    def test_invalid_config_value_rejected(
        self, runner: click.testing.CliRunner, config_file: Path, mock_pipeline: dict
    ) -> None:
        result = runner.invoke(
            cli, ["run", "-c", str(config_file), "--set", "region.method=convex"]
        )
        assert result.exit_code == 1
        assert "Invalid configuration" in result.output

    def test_production_mode_requires_factories(
        self, runner: click.testing.CliRunner, config_file: Path, mock_pipeline: dict
    ) -> None:
        result = runner.invoke(cli, ["run", "-c", str(config_file)])
        assert result.exit_code != 0
        assert "camera_factory" in result.output

    def test_production_mode_loads_factories(
        self, runner: click.testing.CliRunner, config_file: Path, mock_pipeline: dict
    ) -> None:
        result = runner.invoke(
            cli,
            [
                "run",
                "-c",
                str(config_file),
                "--set",
                "camera_factory=unittest.mock:MagicMock",
                "--set",
                "control_factory=unittest.mock:MagicMock",
            ],
        )
        assert result.exit_code == 0, result.output
        kwargs = mock_pipeline["CalibrationPipeline"].call_args.kwargs
        assert isinstance(kwargs["camera"], MagicMock)
        assert kwargs["crf"] is None

    def test_bad_factory_path_rejected(
        self, runner: click.testing.CliRunner, config_file: Path, mock_pipeline: dict
    ) -> None:
        result = runner.invoke(
            cli,
            [
                "run",
                "-c",
                str(config_file),
                "--set",
                "camera_factory=not_a_module_xyz:make",
                "--set",
                "control_factory=unittest.mock:MagicMock",
            ],
        )
        assert result.exit_code != 0
        assert "Cannot import" in result.output

    def test_run_failure_exit_one(
        self, runner: click.testing.CliRunner, config_file: Path, mock_pipeline: dict
    ) -> None:
        mock_pipeline["instance"].run.side_effect = RuntimeError("boom")
        result = runner.invoke(cli, ["run", "-c", str(config_file), "-m", "synthetic"])
        assert result.exit_code == 1


# ---------------------------------------------------------------------------
# update-crf
# ---------------------------------------------------------------------------


class TestUpdateCrf:
    """Tests for the update-crf command."""

    def test_requires_crf_path(
        self, runner: click.testing.CliRunner, config_file: Path, mock_pipeline: dict
    ) -> None:
        result = runner.invoke(cli, ["update-crf", "-c", str(config_file), "-m", "synthetic"])
        assert result.exit_code != 0
        assert "crf_path" in result.output

    def test_runs_crf_stages(
        self,
        runner: click.testing.CliRunner,
        config_file: Path,
        mock_pipeline: dict,
        tmp_path: Path,
    ) -> None:
        crf_path = tmp_path / "crf.npz"
        result = runner.invoke(
            cli,
            ["update-crf", "-c", str(config_file), "-m", "synthetic", "--set", f"crf_path={crf_path}"],
        )
        assert result.exit_code == 0, result.output
        assert f"Camera response written to {crf_path}" in result.output
        kwargs = mock_pipeline["CalibrationPipeline"].call_args.kwargs
        assert [type(s).__name__ for s in kwargs["stages"]] == ["ExposureStage", "ResponseStage"]


# ---------------------------------------------------------------------------
# init-config
# ---------------------------------------------------------------------------


class TestInitConfig:
    """Tests for the init-config command."""

    def test_writes_default_template(self, runner: click.testing.CliRunner, tmp_path: Path) -> None:
        output = tmp_path / "colorwall.yaml"
        result = runner.invoke(cli, ["init-config", "-o", str(output)])
        assert result.exit_code == 0
        data = yaml.safe_load(output.read_text())
        assert data["sampling"]["color_samples"] == 5
        assert data["region"]["method"] == "mask"

    def test_refuses_to_overwrite(self, runner: click.testing.CliRunner, tmp_path: Path) -> None:
        output = tmp_path / "colorwall.yaml"
        output.write_text("keep: me\n")
        result = runner.invoke(cli, ["init-config", "-o", str(output)])
        assert result.exit_code != 0
        assert output.read_text() == "keep: me\n"

    def test_force_overwrites(self, runner: click.testing.CliRunner, tmp_path: Path) -> None:
        output = tmp_path / "colorwall.yaml"
        output.write_text("keep: me\n")
        result = runner.invoke(cli, ["init-config", "-o", str(output), "--force"])
        assert result.exit_code == 0
        assert "sampling" in output.read_text()
