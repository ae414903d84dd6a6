"""Observer assembly factory for the colorwall pipeline engine.

Provides :func:`build_observers` to construct the observer list from a
:class:`~colorwall.engine.config.CalibrationConfig`, execution mode and
optional additive observer names.
"""

from __future__ import annotations

from pathlib import Path

from colorwall.engine.config import CalibrationConfig
from colorwall.engine.console_observer import ConsoleObserver
from colorwall.engine.diagnostic_observer import DiagnosticObserver
from colorwall.engine.hdf5_observer import HDF5ExportObserver
from colorwall.engine.observers import Observer
from colorwall.engine.timing import TimingObserver

__all__ = ["OBSERVER_NAMES", "build_observers"]

OBSERVER_NAMES = ("timing", "hdf5", "diagnostic", "console")


def _make_observer(
    name: str, config: CalibrationConfig, verbose: bool, total_stages: int
) -> Observer:
    output_dir = Path(config.output_dir)
    if name == "timing":
        return TimingObserver(output_path=output_dir / "timing.txt")
    if name == "hdf5":
        return HDF5ExportObserver(output_dir=output_dir)
    if name == "diagnostic":
        return DiagnosticObserver()
    if name == "console":
        return ConsoleObserver(verbose=verbose, total_stages=total_stages)
    raise ValueError(f"Unknown observer {name!r}; expected one of {OBSERVER_NAMES}")


def build_observers(
    config: CalibrationConfig,
    mode: str,
    verbose: bool,
    total_stages: int,
    extra_observers: tuple[str, ...] = (),
) -> list[Observer]:
    """Assemble the observer list based on execution mode and additive flags.

    Mode behaviour:
    - ``"production"`` / ``"synthetic"``: console, timing and HDF5 export.
    - ``"diagnostic"``: production observers plus in-memory snapshots.
    - ``"benchmark"``: console and timing only.
    - Any other mode: console only.

    Args:
        config: Calibration configuration (used for output paths).
        mode: Execution mode preset.
        verbose: Whether to enable verbose console output.
        total_stages: Number of stages, for console progress display.
        extra_observers: Additional observer names from ``--add-observer``.
            An observer already present is not added twice.

    Returns:
        List of configured observers for the pipeline.

    Raises:
        ValueError: If an extra observer name is unknown.
    """
    if mode in ("production", "synthetic"):
        names = ["console", "timing", "hdf5"]
    elif mode == "diagnostic":
        names = ["console", "timing", "hdf5", "diagnostic"]
    elif mode == "benchmark":
        names = ["console", "timing"]
    else:
        names = ["console"]

    for name in extra_observers:
        if name not in names:
            names.append(name)

    return [_make_observer(name, config, verbose, total_stages) for name in names]
