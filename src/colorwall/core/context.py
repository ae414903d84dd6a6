"""Stage Protocol and CalibrationContext: core data contracts for the pipeline.

Defines the structural typing contract that all calibration stages must
satisfy, and the typed accumulator that flows data between stages.

These types live in core/ because they are pure data containers with no engine
logic, so stage modules never need to import from engine/.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable

from colorwall.core.errors import CalibrationFailure
from colorwall.core.types import CalibrationParams, RgbValue


@runtime_checkable
class Stage(Protocol):
    """Structural protocol for all calibration stages.

    Any class that implements a ``run(context: CalibrationContext) ->
    CalibrationContext`` method is a Stage; no inheritance required.

    Example::

        class MyStage:
            def run(self, context: CalibrationContext) -> CalibrationContext:
                context.exposure = 0.01
                return context
    """

    def run(self, context: CalibrationContext) -> CalibrationContext:
        """Execute this stage, read from context, populate output fields, return context.

        Args:
            context: Accumulated calibration state from prior stages.

        Returns:
            The same context object with this stage's output fields populated.
        """
        ...


@dataclass
class CalibrationContext:
    """Typed accumulator for inter-stage data flow in one calibration run.

    Resource fields (``camera``, ``control``) are set by the pipeline before
    the first stage runs. Output fields are None until the producing stage
    has run. Use :meth:`get` to retrieve a field with a clear error if the
    upstream stage has not yet executed.

    Stage data flow:

    1. Exposure     -> ``exposure``
    2. Response     -> ``crf``
    3. Region       -> ``params[*].region``, ``params[*].white_point``
    4. Sampling     -> ``params[*].curves``, ``min_values``, ``max_values``
    5. Inversion    -> ``params[*].luts``, ``params[*].mix_matrix``
    6. Equalization -> ``target_white_balance`` (LUTs rescaled in place)
    7. Overlap      -> ``common_range`` (LUTs rescaled in place)
    8. Publish      -> ``published``

    Attributes:
        camera: The acquired calibration camera (``io.camera.CalibrationCamera``).
        control: Projector command helper (``io.control.ProjectorControl``).
        params: One :class:`CalibrationParams` per projector, in discovery order.
        exposure: Shared mid-gray exposure found by the exposure stage.
        crf: Camera response function (``core.hdr.CameraResponseFunction``).
            May be supplied by the caller before the run.
        target_white_balance: Common white balance chosen by equalization.
        common_range: ``(mins, maxs)``, each a 4-tuple (R, G, B, luminance),
            of the range every projector can reach.
        published: Names of projectors that received their results.
        failures: Localized failures recorded so far.
        stage_timing: Wall-clock seconds per stage, keyed by stage class name.
    """

    camera: object = None
    control: object = None
    params: list[CalibrationParams] = field(default_factory=list)
    exposure: float | None = None
    crf: object = None
    target_white_balance: RgbValue | None = None
    common_range: tuple[tuple[float, ...], tuple[float, ...]] | None = None
    published: list[str] = field(default_factory=list)
    failures: list[CalibrationFailure] = field(default_factory=list)
    stage_timing: dict[str, float] = field(default_factory=dict)

    def get(self, field_name: str) -> object:
        """Return the value of a field, raising ValueError if it is None.

        Args:
            field_name: Name of the CalibrationContext field to retrieve.

        Returns:
            The field value (guaranteed non-None).

        Raises:
            ValueError: If the field is None, indicating the producing stage
                has not yet run.
            AttributeError: If ``field_name`` is not a valid field on this dataclass.
        """
        value = getattr(self, field_name)
        if value is None:
            raise ValueError(
                f"CalibrationContext.{field_name} is None; the stage that produces "
                f"'{field_name}' has not run yet. Check stage ordering."
            )
        return value

    def active_params(self) -> list[CalibrationParams]:
        """Projectors not yet excluded by a localized failure."""
        return [p for p in self.params if not p.failed]

    def record_failure(
        self,
        stage: str,
        message: str,
        projector: str | None = None,
        channel: int | None = None,
    ) -> CalibrationFailure:
        """Append a localized failure and return it."""
        failure = CalibrationFailure(
            projector=projector, stage=stage, message=message, channel=channel
        )
        self.failures.append(failure)
        return failure
