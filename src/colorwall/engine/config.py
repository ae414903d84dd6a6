"""Frozen dataclass config hierarchy for the colorwall calibration pipeline.

Loading precedence: defaults -> YAML file -> CLI overrides -> freeze.

The frozen guarantee prevents accidental mutation during a run. Full
serialized config is written as the first artifact of every run to ensure
reproducibility. Values coming from YAML or ``--set`` strings are coerced to
the declared field types and clamped to their documented minimums.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any

import yaml

from colorwall.core.equalization import EqualizationMethod
from colorwall.core.region import REGION_METHODS

__all__ = [
    "CalibrationConfig",
    "ControlConfig",
    "EqualizationConfig",
    "ExposureConfig",
    "HdrConfig",
    "RegionConfig",
    "SamplingConfig",
    "SyntheticConfig",
    "load_config",
    "serialize_config",
]

_TRUE_STRINGS = {"1", "true", "yes", "on"}
_FALSE_STRINGS = {"0", "false", "no", "off", ""}


def _to_bool(value: Any) -> bool:
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUE_STRINGS:
            return True
        if lowered in _FALSE_STRINGS:
            return False
        raise ValueError(f"Cannot interpret {value!r} as a boolean")
    return bool(value)


_COERCERS = {"int": int, "float": float, "bool": _to_bool, "str": str}


def _coerce_fields(instance: object) -> None:
    """Coerce every scalar field of a frozen dataclass to its declared type.

    Field annotations are strings (postponed evaluation), so the mapping is
    keyed by annotation text. ``X | None`` fields keep ``None`` as is.
    """
    for f in dataclasses.fields(instance):
        value = getattr(instance, f.name)
        type_name = str(f.type)
        if type_name.endswith(" | None"):
            if value is None or value == "None":
                object.__setattr__(instance, f.name, None)
                continue
            type_name = type_name[: -len(" | None")]
        coerce = _COERCERS.get(type_name)
        if coerce is None or type(value) is coerce:
            continue
        if coerce is int and isinstance(value, str):
            value = float(value)
        object.__setattr__(instance, f.name, coerce(value))


def _clamp(instance: object, name: str, minimum: float) -> None:
    value = getattr(instance, name)
    if value < minimum:
        object.__setattr__(instance, name, type(value)(minimum))


# ---------------------------------------------------------------------------
# Stage-specific config dataclasses
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ExposureConfig:
    """Config for the exposure search.

    Attributes:
        target_min: Lowest accepted mean centre luminance (8-bit scale).
        target_max: Highest accepted mean centre luminance (8-bit scale).
        flash_level: Gray level flashed by every projector while metering.
        max_iterations: Captures after which the search gives up.
    """

    target_min: float = 100.0
    target_max: float = 160.0
    flash_level: float = 0.7
    max_iterations: int = 32

    def __post_init__(self) -> None:
        _coerce_fields(self)
        _clamp(self, "max_iterations", 1)
        if self.target_min > self.target_max:
            raise ValueError(
                f"exposure.target_min ({self.target_min}) exceeds "
                f"exposure.target_max ({self.target_max})"
            )


@dataclass(frozen=True)
class HdrConfig:
    """Config for HDR bracketing and camera response estimation.

    Attributes:
        images_per_hdr: Brackets per HDR capture while sampling (>= 1).
        step: Bracket spacing in stops (>= 0.3).
        crf_images: Brackets used to estimate the camera response.
        crf_step: Bracket spacing in stops for response estimation.
        recompute_crf: Always re-estimate the response, ignoring any file.
    """

    images_per_hdr: int = 1
    step: float = 1.0
    crf_images: int = 9
    crf_step: float = 0.33
    recompute_crf: bool = False

    def __post_init__(self) -> None:
        _coerce_fields(self)
        _clamp(self, "images_per_hdr", 1)
        _clamp(self, "step", 0.3)
        _clamp(self, "crf_images", 2)


@dataclass(frozen=True)
class RegionConfig:
    """Config for projected-region detection.

    Attributes:
        method: ``"mask"`` (per-pixel) or ``"bounding"`` (square).
        detection_threshold_factor: Weight of the "others" frame (>= 0.5).
        minimum_area_fraction: Minimum detected area as a fraction of the frame.
        images_per_hdr: Brackets per HDR capture during detection.
        max_iterations: Threshold iterations before giving up.
    """

    method: str = "mask"
    detection_threshold_factor: float = 1.0
    minimum_area_fraction: float = 0.005
    images_per_hdr: int = 1
    max_iterations: int = 32

    def __post_init__(self) -> None:
        _coerce_fields(self)
        if self.method not in REGION_METHODS:
            raise ValueError(
                f"Unknown region.method {self.method!r}; expected one of {REGION_METHODS}"
            )
        _clamp(self, "detection_threshold_factor", 0.5)
        _clamp(self, "images_per_hdr", 1)
        _clamp(self, "max_iterations", 1)


@dataclass(frozen=True)
class SamplingConfig:
    """Config for response-curve sampling.

    Attributes:
        color_samples: Levels sampled per channel (>= 3).
    """

    color_samples: int = 5

    def __post_init__(self) -> None:
        _coerce_fields(self)
        _clamp(self, "color_samples", 3)


@dataclass(frozen=True)
class EqualizationConfig:
    """Config for white-balance equalization.

    Attributes:
        method: An :class:`~colorwall.core.equalization.EqualizationMethod`
            value.
        max_iterations: Iteration cap of the iterative strategy.
    """

    method: str = EqualizationMethod.MAXIMIZE_MIN_LUMINANCE.value
    max_iterations: int = 100

    def __post_init__(self) -> None:
        _coerce_fields(self)
        # Raises ValueError for unknown names; store the plain string value.
        object.__setattr__(self, "method", EqualizationMethod(self.method).value)
        _clamp(self, "max_iterations", 1)


@dataclass(frozen=True)
class ControlConfig:
    """Config for projector control.

    Attributes:
        projector_category: Control-plane category listing the projectors.
        settle_seconds: Wait after display changes before capturing.
        neutral_brightness: Brightness reset value sent on publication.
        neutral_color_temperature: Color temperature reset value (Kelvin).
    """

    projector_category: str = "projector"
    settle_seconds: float = 0.0
    neutral_brightness: float = 1.0
    neutral_color_temperature: float = 6500.0

    def __post_init__(self) -> None:
        _coerce_fields(self)
        _clamp(self, "settle_seconds", 0.0)


@dataclass(frozen=True)
class SyntheticConfig:
    """Config for the synthetic wall used in synthetic mode.

    Attributes:
        projector_count: Number of simulated projectors.
        width: Camera frame width in pixels.
        height: Camera frame height in pixels.
        gain_step: Brightness drop between consecutive projectors.
        crosstalk: Fraction of a channel's drive leaking into the others.
        black_level: Emission at input level 0.
        slope: Emission gain per unit input level.
    """

    projector_count: int = 2
    width: int = 160
    height: int = 120
    gain_step: float = 0.1
    crosstalk: float = 0.05
    black_level: float = 0.05
    slope: float = 0.8

    def __post_init__(self) -> None:
        _coerce_fields(self)
        _clamp(self, "projector_count", 1)


# ---------------------------------------------------------------------------
# Top-level config
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CalibrationConfig:
    """Top-level frozen config for a calibration run.

    Attributes:
        run_id: Unique run identifier (timestamp-based by default).
        output_dir: Root directory for run artifacts.
        mode: Execution mode preset (production, diagnostic, synthetic, benchmark).
        crf_path: ``.npz`` file holding the camera response; empty to keep it
            in memory only.
        diagnostics: Write bracket and HDR images under ``output_dir``.
        camera_factory: ``"module:callable"`` building the production camera.
        control_factory: ``"module:callable"`` building the control plane.
        stop_after: Short name of the last stage to run, e.g. ``"region"``
            (None = all stages). See :func:`~colorwall.engine.pipeline.build_stages`.
        exposure: Exposure search config.
        hdr: HDR capture config.
        region: Region detection config.
        sampling: Curve sampling config.
        equalization: White-balance equalization config.
        control: Projector control config.
        synthetic: Synthetic wall config.
    """

    run_id: str = dataclasses.field(default="")
    output_dir: str = dataclasses.field(default="")
    mode: str = "production"
    crf_path: str = ""
    diagnostics: bool = False
    camera_factory: str = ""
    control_factory: str = ""
    stop_after: str | None = None
    exposure: ExposureConfig = dataclasses.field(default_factory=ExposureConfig)
    hdr: HdrConfig = dataclasses.field(default_factory=HdrConfig)
    region: RegionConfig = dataclasses.field(default_factory=RegionConfig)
    sampling: SamplingConfig = dataclasses.field(default_factory=SamplingConfig)
    equalization: EqualizationConfig = dataclasses.field(
        default_factory=EqualizationConfig
    )
    control: ControlConfig = dataclasses.field(default_factory=ControlConfig)
    synthetic: SyntheticConfig = dataclasses.field(default_factory=SyntheticConfig)

    def __post_init__(self) -> None:
        _coerce_fields(self)


_SECTIONS: dict[str, type] = {
    "exposure": ExposureConfig,
    "hdr": HdrConfig,
    "region": RegionConfig,
    "sampling": SamplingConfig,
    "equalization": EqualizationConfig,
    "control": ControlConfig,
    "synthetic": SyntheticConfig,
}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _generate_run_id() -> str:
    """Generate a timestamp-based run identifier.

    Returns:
        Run ID string of the form "run_YYYYMMDD_HHMMSS".
    """
    return f"run_{datetime.now():%Y%m%d_%H%M%S}"


def _default_output_dir(run_id: str) -> str:
    """Return the default artifact output directory for a run."""
    return str(Path(f"~/colorwall/runs/{run_id}").expanduser())


def _apply_nested_overrides(
    flat: dict[str, Any], nested: dict[str, Any]
) -> dict[str, Any]:
    """Apply nested dict overrides onto a flat key->value mapping.

    CLI overrides may arrive as dot-notation keys ("region.method") or as
    nested dicts ({"region": {"method": "bounding"}}). This function flattens
    nested dicts to dot-notation before merging.

    Args:
        flat: Existing flat override dict (dot-notation keys).
        nested: Override source; may be nested or already flat.

    Returns:
        New flat dict combining both sources, nested taking precedence.
    """
    result = dict(flat)
    for key, value in nested.items():
        if isinstance(value, dict):
            for subkey, subvalue in value.items():
                result[f"{key}.{subkey}"] = subvalue
        else:
            result[key] = value
    return result


def _build_section_dict_from_dotted(
    flat: dict[str, Any],
) -> dict[str, dict[str, Any]]:
    """Convert dot-notation keys to a nested section->field mapping.

    For example, {"hdr.step": 0.5} becomes {"hdr": {"step": 0.5}}. Top-level
    keys (no dot) remain in a special "__top__" bucket.
    """
    nested: dict[str, Any] = {"__top__": {}}
    for key, value in flat.items():
        if "." in key:
            section, _, field_name = key.partition(".")
            nested.setdefault(section, {})[field_name] = value
        else:
            nested["__top__"][key] = value
    return nested


def _merge_layer(
    layers: dict[str, dict[str, Any]], source: dict[str, Any]
) -> None:
    """Merge one override source into the per-section kwargs in place.

    Raises:
        ValueError: If *source* names an unknown section.
    """
    nested = _build_section_dict_from_dotted(_apply_nested_overrides({}, source))
    for section, values in nested.items():
        if section not in layers:
            raise ValueError(
                f"Unknown config section {section!r}; expected one of {sorted(_SECTIONS)}"
            )
        layers[section].update(values)


# ---------------------------------------------------------------------------
# Public factory
# ---------------------------------------------------------------------------


def load_config(
    yaml_path: str | Path | None = None,
    *,
    cli_overrides: dict[str, Any] | None = None,
    run_id: str | None = None,
) -> CalibrationConfig:
    """Construct a frozen :class:`CalibrationConfig` using layered overrides.

    Loading precedence (lowest -> highest priority):

    1. Dataclass field defaults
    2. YAML file (*yaml_path*)
    3. CLI overrides (*cli_overrides*)
    4. Freeze

    CLI overrides may use dot-notation keys ("hdr.step") or nested dicts
    ({"hdr": {"step": 0.5}}); both forms work. YAML files use nested dicts.

    Args:
        yaml_path: Optional path to a YAML config file.
        cli_overrides: Optional dict of CLI overrides (highest precedence).
        run_id: Explicit run identifier. Auto-generated if not provided.

    Returns:
        Frozen :class:`CalibrationConfig` with all overrides applied.

    Raises:
        ValueError: On unknown sections, unknown method names or values that
            cannot be coerced.
        TypeError: On unknown fields.
    """
    # --- layer 1: defaults ------------------------------------------------
    layers: dict[str, dict[str, Any]] = {name: {} for name in _SECTIONS}
    layers["__top__"] = {}

    # --- layer 2: YAML overrides ------------------------------------------
    if yaml_path is not None:
        with Path(yaml_path).open() as fh:
            raw: dict[str, Any] = yaml.safe_load(fh) or {}
        _merge_layer(layers, raw)

    # --- layer 3: CLI overrides -------------------------------------------
    if cli_overrides is not None:
        _merge_layer(layers, cli_overrides)

    # --- layer 4: resolve run_id and output_dir ---------------------------
    top_kwargs = layers.pop("__top__")
    resolved_run_id = run_id or top_kwargs.pop("run_id", None) or _generate_run_id()
    top_kwargs.pop("run_id", None)
    resolved_output_dir = top_kwargs.pop("output_dir", None) or _default_output_dir(
        resolved_run_id
    )

    # --- construct & freeze -----------------------------------------------
    sections = {name: cls(**layers[name]) for name, cls in _SECTIONS.items()}
    return CalibrationConfig(
        run_id=resolved_run_id,
        output_dir=resolved_output_dir,
        **sections,
        **top_kwargs,
    )


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------


def serialize_config(config: CalibrationConfig) -> str:
    """Serialize *config* to a YAML string.

    Uses :func:`dataclasses.asdict` to convert the frozen hierarchy to a
    plain dict, then :func:`yaml.dump` to produce a human-readable YAML
    string. This YAML is written as the first run artifact by the pipeline.

    Args:
        config: Frozen calibration config to serialize.

    Returns:
        YAML string representation of the config.
    """
    return yaml.dump(
        dataclasses.asdict(config), default_flow_style=False, sort_keys=True
    )
