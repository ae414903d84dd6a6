"""CalibrationPipeline orchestrator: single canonical entrypoint for a run.

CalibrationPipeline acquires the camera, discovers the projectors, wires
Stage instances in order, emits lifecycle events via EventBus and writes the
serialized config as the first artifact before anything else happens.

The :func:`build_stages` factory is the canonical way to construct the eight
calibration stages from a :class:`~colorwall.engine.config.CalibrationConfig`.
"""

from __future__ import annotations

import logging
import time
from pathlib import Path

from colorwall.core.context import CalibrationContext, Stage
from colorwall.core.errors import CalibrationError, CameraNotReadyError
from colorwall.core.hdr import CameraResponseFunction
from colorwall.core.types import CalibrationParams
from colorwall.engine.config import CalibrationConfig, serialize_config
from colorwall.engine.events import (
    Event,
    PipelineComplete,
    PipelineFailed,
    PipelineStart,
    ProjectorFailed,
    StageComplete,
    StageStart,
)
from colorwall.engine.observers import EventBus, Observer
from colorwall.io.camera import CalibrationCamera, CameraSession
from colorwall.io.control import ControlPlane, ProjectorControl

__all__ = ["CalibrationPipeline", "build_crf_stages", "build_stages"]

logger = logging.getLogger(__name__)


class CalibrationPipeline:
    """Runs the calibration stages against one camera and one control plane.

    :meth:`run`:

    1. Creates the output directory and writes ``config.yaml``.
    2. Acquires the camera for the whole run and checks it is ready; a camera
       that is not ready fails the run before any projector command is sent.
    3. Discovers projectors and creates one
       :class:`~colorwall.core.types.CalibrationParams` per projector.
    4. Executes the stages inside the projector display override, so hide /
       background flash / background color are reset on every exit path.
    5. Emits lifecycle events (PipelineStart, StageStart, StageComplete,
       ProjectorFailed, PipelineComplete, PipelineFailed).

    Observers are purely additive: removing all of them yields the same
    calibration.

    Example::

        config = load_config(cli_overrides={"output_dir": "/tmp/cal"})
        pipeline = CalibrationPipeline(
            stages=build_stages(config),
            config=config,
            camera=camera,
            control_plane=plane,
            observers=[TimingObserver()],
        )
        context = pipeline.run()

    Args:
        stages: Ordered list of Stage instances to execute.
        config: Frozen config for this run.
        camera: Calibration camera driver.
        control_plane: Control plane reaching the projectors.
        observers: Optional observers, each subscribed to every event.
        crf: Optional camera response to use instead of loading or
            estimating one.
    """

    def __init__(
        self,
        stages: list[Stage],
        config: CalibrationConfig,
        camera: CalibrationCamera,
        control_plane: ControlPlane,
        observers: list[Observer] | None = None,
        crf: CameraResponseFunction | None = None,
    ) -> None:
        self._stages = list(stages)
        self._config = config
        self._camera = camera
        self._plane = control_plane
        self._crf = crf
        self._bus = EventBus()

        if observers:
            for observer in observers:
                self._bus.subscribe(Event, observer)

    def add_observer(self, observer: Observer, event_type: type[Event] = Event) -> None:
        """Subscribe *observer* to *event_type* events (default: all)."""
        self._bus.subscribe(event_type, observer)

    def remove_observer(self, observer: Observer, event_type: type[Event] = Event) -> None:
        """Unsubscribe *observer* from *event_type*; no-op if absent."""
        self._bus.unsubscribe(event_type, observer)

    def _make_control(self) -> ProjectorControl:
        control = self._config.control
        return ProjectorControl(
            self._plane,
            settle_seconds=control.settle_seconds,
            neutral_brightness=control.neutral_brightness,
            neutral_color_temperature=control.neutral_color_temperature,
        )

    def _run_stages(self, context: CalibrationContext) -> CalibrationContext:
        for i, stage in enumerate(self._stages):
            stage_name = type(stage).__name__
            self._bus.emit(StageStart(stage_name=stage_name, stage_index=i))
            known_failures = len(context.failures)
            stage_start = time.monotonic()

            context = stage.run(context)

            elapsed = time.monotonic() - stage_start
            context.stage_timing[stage_name] = elapsed
            new_failures = context.failures[known_failures:]
            for failure in new_failures:
                self._bus.emit(
                    ProjectorFailed(
                        stage_name=failure.stage,
                        projector=failure.projector,
                        channel=failure.channel,
                        message=failure.message,
                    )
                )
            self._bus.emit(
                StageComplete(
                    stage_name=stage_name,
                    stage_index=i,
                    elapsed_seconds=elapsed,
                    summary={
                        "failures": len(new_failures),
                        "active_projectors": len(context.active_params()),
                    },
                    context=context,
                )
            )
        return context

    def run(self) -> CalibrationContext:
        """Execute all stages in order and return the final context.

        Returns:
            The final :class:`CalibrationContext`.

        Raises:
            CameraNotReadyError: If the camera is not ready.
            CalibrationInProgressError: If the camera is already in a session.
            Exception: Any exception raised by a stage, re-raised after
                ``PipelineFailed`` and after display state was restored.
        """
        pipeline_start = time.monotonic()

        # --- 1. Output directory and config artifact ----------------------
        output_dir = Path(self._config.output_dir).expanduser()
        output_dir.mkdir(parents=True, exist_ok=True)
        (output_dir / "config.yaml").write_text(
            serialize_config(self._config), encoding="utf-8"
        )

        self._bus.emit(PipelineStart(run_id=self._config.run_id, config=self._config))

        try:
            with CameraSession(self._camera) as camera:
                # --- 2. Readiness, before any display change ---------------
                if not camera.is_ready():
                    raise CameraNotReadyError("Calibration camera is not ready")

                # --- 3. Projector discovery --------------------------------
                control = self._make_control()
                names = control.discover(self._config.control.projector_category)
                if not names:
                    raise CalibrationError(
                        "No projector found in category "
                        f"{self._config.control.projector_category!r}"
                    )
                context = CalibrationContext(
                    camera=camera,
                    control=control,
                    params=[CalibrationParams(name=name) for name in names],
                    crf=self._crf,
                )

                # --- 4. Stages under the display override ------------------
                with control.calibration_display(names):
                    context = self._run_stages(context)

        except Exception as exc:
            total_elapsed = time.monotonic() - pipeline_start
            logger.error("Calibration run %s failed: %s", self._config.run_id, exc)
            self._bus.emit(
                PipelineFailed(
                    run_id=self._config.run_id,
                    error=str(exc),
                    elapsed_seconds=total_elapsed,
                )
            )
            raise

        # --- 5. Completion --------------------------------------------------
        total_elapsed = time.monotonic() - pipeline_start
        logger.info(
            "Calibration run %s complete: %d published, %d localized failures",
            self._config.run_id,
            len(context.published),
            len(context.failures),
        )
        self._bus.emit(
            PipelineComplete(
                run_id=self._config.run_id,
                elapsed_seconds=total_elapsed,
                context=context,
            )
        )
        return context


# ---------------------------------------------------------------------------
# Stage factories
# ---------------------------------------------------------------------------


def _diagnostics_dir(config: CalibrationConfig) -> Path | None:
    if not config.diagnostics:
        return None
    path = Path(config.output_dir).expanduser() / "diagnostics"
    path.mkdir(parents=True, exist_ok=True)
    return path


def build_stages(config: CalibrationConfig) -> list[Stage]:
    """Construct the calibration stages from a :class:`CalibrationConfig`.

    Order: Exposure -> Response -> Region -> Sampling -> Inversion ->
    Equalization -> Overlap -> Publish. ``config.stop_after`` (a short
    stage name such as ``"region"``) truncates the list after that stage.

    Example::

        stages = build_stages(config)
        pipeline = CalibrationPipeline(stages, config, camera, plane)
        context = pipeline.run()

    Args:
        config: Frozen config providing every stage parameter.

    Returns:
        Ordered list of stage instances.

    Raises:
        ValueError: If ``config.stop_after`` names no stage.
    """
    from colorwall.core import (
        EqualizationStage,
        ExposureStage,
        InversionStage,
        OverlapStage,
        PublishStage,
        RegionStage,
        ResponseStage,
        SamplingStage,
    )

    diagnostics_dir = _diagnostics_dir(config)
    stages: list[tuple[str, Stage]] = [
        (
            "exposure",
            ExposureStage(
                target_min=config.exposure.target_min,
                target_max=config.exposure.target_max,
                flash_level=config.exposure.flash_level,
                max_iterations=config.exposure.max_iterations,
            ),
        ),
        (
            "response",
            ResponseStage(
                crf_path=config.crf_path or None,
                crf_images=config.hdr.crf_images,
                crf_step=config.hdr.crf_step,
                force=config.hdr.recompute_crf,
                diagnostics_dir=diagnostics_dir,
            ),
        ),
        (
            "region",
            RegionStage(
                method=config.region.method,
                detection_threshold_factor=config.region.detection_threshold_factor,
                minimum_area_fraction=config.region.minimum_area_fraction,
                images_per_hdr=config.region.images_per_hdr,
                hdr_step=config.hdr.step,
                max_iterations=config.region.max_iterations,
                diagnostics_dir=diagnostics_dir,
            ),
        ),
        (
            "sampling",
            SamplingStage(
                color_samples=config.sampling.color_samples,
                images_per_hdr=config.hdr.images_per_hdr,
                hdr_step=config.hdr.step,
                diagnostics_dir=diagnostics_dir,
            ),
        ),
        ("inversion", InversionStage()),
        (
            "equalization",
            EqualizationStage(
                method=config.equalization.method,
                max_iterations=config.equalization.max_iterations,
            ),
        ),
        ("overlap", OverlapStage()),
        ("publish", PublishStage()),
    ]

    if config.stop_after is None:
        return [stage for _, stage in stages]

    names = [name for name, _ in stages]
    if config.stop_after not in names:
        raise ValueError(
            f"Unknown stop_after stage {config.stop_after!r}. Valid values: {names}"
        )
    end = names.index(config.stop_after) + 1
    return [stage for _, stage in stages[:end]]


def build_crf_stages(config: CalibrationConfig) -> list[Stage]:
    """Stages that find the exposure and re-estimate the camera response.

    Used to refresh ``config.crf_path`` explicitly, independent of a full
    calibration.
    """
    from colorwall.core import ExposureStage, ResponseStage

    return [
        ExposureStage(
            target_min=config.exposure.target_min,
            target_max=config.exposure.target_max,
            flash_level=config.exposure.flash_level,
            max_iterations=config.exposure.max_iterations,
        ),
        ResponseStage(
            crf_path=config.crf_path or None,
            crf_images=config.hdr.crf_images,
            crf_step=config.hdr.crf_step,
            force=True,
            diagnostics_dir=_diagnostics_dir(config),
        ),
    ]
