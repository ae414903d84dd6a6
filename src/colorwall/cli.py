"""colorwall CLI -- thin wrapper over CalibrationPipeline."""

from __future__ import annotations

import importlib
import logging
import sys
from pathlib import Path
from typing import Any

import click

from colorwall.engine import (
    CalibrationConfig,
    CalibrationPipeline,
    build_crf_stages,
    build_observers,
    build_stages,
    load_config,
    serialize_config,
)
from colorwall.engine.observer_factory import OBSERVER_NAMES
from colorwall.synthetic import SyntheticCamera, SyntheticControlPlane, SyntheticWall

_MODES = ["production", "diagnostic", "benchmark", "synthetic"]

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _parse_overrides(overrides: tuple[str, ...]) -> dict[str, Any]:
    """Parse ``key=val`` strings from ``--set`` into a dict."""
    cli_overrides: dict[str, Any] = {}
    for item in overrides:
        key, sep, value = item.partition("=")
        if not key or not sep:
            raise click.BadParameter(f"expected key=val, got {item!r}", param_hint="--set")
        cli_overrides[key.strip()] = value
    return cli_overrides


def _load_factory(path: str) -> Any:
    """Import ``"package.module:callable"`` and return the callable."""
    module_name, sep, attr = path.partition(":")
    if not sep or not module_name or not attr:
        raise click.ClickException(f"Factory {path!r} must look like 'module:callable'")
    try:
        module = importlib.import_module(module_name)
    except ImportError as exc:
        raise click.ClickException(f"Cannot import {module_name!r}: {exc}") from exc
    factory = getattr(module, attr, None)
    if not callable(factory):
        raise click.ClickException(f"{path!r} is not a callable")
    return factory


def _resolve_devices(config: CalibrationConfig) -> tuple[Any, Any, Any]:
    """Build ``(camera, control_plane, crf)`` for the configured mode.

    Synthetic mode drives a simulated wall whose camera response is known,
    so its CRF is passed in unless a CRF file or a recomputation is asked
    for. Other modes build devices from the configured factories.
    """
    if config.mode == "synthetic":
        wall = SyntheticWall.from_config(config.synthetic)
        camera = SyntheticCamera(wall)
        plane = SyntheticControlPlane(wall, category=config.control.projector_category)
        crf = None
        if not config.crf_path and not config.hdr.recompute_crf:
            crf = camera.response()
        return camera, plane, crf

    if not config.camera_factory or not config.control_factory:
        raise click.ClickException(
            "camera_factory and control_factory must be set outside synthetic mode"
        )
    camera = _load_factory(config.camera_factory)()
    plane = _load_factory(config.control_factory)()
    return camera, plane, None


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


# ---------------------------------------------------------------------------
# CLI definition
# ---------------------------------------------------------------------------


@click.group()
def cli() -> None:
    """colorwall -- camera-driven color calibration of multi-projector walls."""


@cli.command()
@click.option(
    "--config",
    "-c",
    required=True,
    type=click.Path(exists=True),
    help="Path to calibration config YAML.",
)
@click.option(
    "--mode",
    "-m",
    type=click.Choice(_MODES, case_sensitive=False),
    default="production",
    help="Execution mode preset.",
)
@click.option(
    "--set",
    "overrides",
    multiple=True,
    help="Config override as key=val (e.g. --set region.method=bounding).",
)
@click.option(
    "--add-observer",
    "extra_observers",
    multiple=True,
    type=click.Choice(list(OBSERVER_NAMES), case_sensitive=False),
    help="Add observer by name (additive).",
)
@click.option("--verbose", "-v", is_flag=True, default=False, help="Verbose output.")
def run(
    config: str,
    mode: str,
    overrides: tuple[str, ...],
    extra_observers: tuple[str, ...],
    verbose: bool,
) -> None:
    """Run a full calibration and publish the results."""
    _configure_logging(verbose)

    # 1. Parse --set overrides and inject mode
    cli_overrides = _parse_overrides(overrides)
    cli_overrides["mode"] = mode

    # 2. Load config
    try:
        calibration_config = load_config(yaml_path=config, cli_overrides=cli_overrides)
    except (ValueError, TypeError) as exc:
        raise click.ClickException(f"Invalid configuration: {exc}") from exc

    # 3. Build stages, observers and devices
    stages = build_stages(calibration_config)
    observers = build_observers(
        config=calibration_config,
        mode=mode,
        verbose=verbose,
        total_stages=len(stages),
        extra_observers=extra_observers,
    )
    camera, plane, crf = _resolve_devices(calibration_config)

    # 4. Create and run pipeline
    pipeline = CalibrationPipeline(
        stages=stages,
        config=calibration_config,
        camera=camera,
        control_plane=plane,
        observers=observers,
        crf=crf,
    )

    try:
        pipeline.run()
    except Exception as exc:
        sys.stderr.write(f"Error: {exc}\n")
        sys.exit(1)


@cli.command("update-crf")
@click.option(
    "--config",
    "-c",
    required=True,
    type=click.Path(exists=True),
    help="Path to calibration config YAML.",
)
@click.option(
    "--mode",
    "-m",
    type=click.Choice(_MODES, case_sensitive=False),
    default="production",
    help="Execution mode preset.",
)
@click.option(
    "--set",
    "overrides",
    multiple=True,
    help="Config override as key=val.",
)
@click.option("--verbose", "-v", is_flag=True, default=False, help="Verbose output.")
def update_crf(
    config: str, mode: str, overrides: tuple[str, ...], verbose: bool
) -> None:
    """Re-estimate the camera response and save it to crf_path."""
    _configure_logging(verbose)

    cli_overrides = _parse_overrides(overrides)
    cli_overrides["mode"] = mode
    try:
        calibration_config = load_config(yaml_path=config, cli_overrides=cli_overrides)
    except (ValueError, TypeError) as exc:
        raise click.ClickException(f"Invalid configuration: {exc}") from exc
    if not calibration_config.crf_path:
        raise click.ClickException("crf_path must be set to store the camera response")

    stages = build_crf_stages(calibration_config)
    observers = build_observers(
        config=calibration_config,
        mode="update-crf",
        verbose=verbose,
        total_stages=len(stages),
    )
    camera, plane, _ = _resolve_devices(calibration_config)
    pipeline = CalibrationPipeline(
        stages=stages,
        config=calibration_config,
        camera=camera,
        control_plane=plane,
        observers=observers,
    )

    try:
        pipeline.run()
    except Exception as exc:
        sys.stderr.write(f"Error: {exc}\n")
        sys.exit(1)
    click.echo(f"Camera response written to {calibration_config.crf_path}")


@cli.command("init-config")
@click.option(
    "--output",
    "-o",
    default="colorwall.yaml",
    type=click.Path(),
    help="Output file path (default: colorwall.yaml).",
)
@click.option(
    "--force",
    is_flag=True,
    default=False,
    help="Overwrite existing file.",
)
def init_config(output: str, force: bool) -> None:
    """Generate a default template YAML config file with all defaults."""
    output_path = Path(output)
    if output_path.exists() and not force:
        raise click.ClickException(
            f"'{output}' already exists. Use --force to overwrite."
        )
    output_path.write_text(serialize_config(CalibrationConfig()))
    click.echo(f"Config written to {output}")


def main() -> None:
    """Entry point for the ``colorwall`` console script."""
    cli()
