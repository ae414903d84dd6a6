"""colorwall pipeline engine.

Config hierarchy, event system, observers and the calibration pipeline
orchestrator.

Import boundary: engine/ may import from core/ and io/, but those packages
must never import from engine/. ``tools/import_boundary_checker.py`` checks
this.
"""

from colorwall.core.context import CalibrationContext, Stage
from colorwall.engine.config import (
    CalibrationConfig,
    ControlConfig,
    EqualizationConfig,
    ExposureConfig,
    HdrConfig,
    RegionConfig,
    SamplingConfig,
    SyntheticConfig,
    load_config,
    serialize_config,
)
from colorwall.engine.console_observer import ConsoleObserver
from colorwall.engine.diagnostic_observer import DiagnosticObserver, StageSnapshot
from colorwall.engine.events import (
    Event,
    PipelineComplete,
    PipelineFailed,
    PipelineStart,
    ProjectorFailed,
    StageComplete,
    StageStart,
)
from colorwall.engine.hdf5_observer import HDF5ExportObserver
from colorwall.engine.observer_factory import build_observers
from colorwall.engine.observers import EventBus, Observer
from colorwall.engine.pipeline import CalibrationPipeline, build_crf_stages, build_stages
from colorwall.engine.timing import TimingObserver

__all__ = [
    "CalibrationConfig",
    "CalibrationContext",
    "CalibrationPipeline",
    "ConsoleObserver",
    "ControlConfig",
    "DiagnosticObserver",
    "EqualizationConfig",
    "Event",
    "EventBus",
    "ExposureConfig",
    "HDF5ExportObserver",
    "HdrConfig",
    "Observer",
    "PipelineComplete",
    "PipelineFailed",
    "PipelineStart",
    "ProjectorFailed",
    "RegionConfig",
    "SamplingConfig",
    "Stage",
    "StageComplete",
    "StageSnapshot",
    "StageStart",
    "SyntheticConfig",
    "TimingObserver",
    "build_crf_stages",
    "build_observers",
    "build_stages",
    "load_config",
    "serialize_config",
]
