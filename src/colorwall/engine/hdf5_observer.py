"""HDF5 export observer writing the final calibration to ``calibration.h5``.

Layout::

    /                          attrs: run_id, run_timestamp, config_hash,
                               exposure, target_white_balance,
                               common_range_min, common_range_max, published
    /projectors/{name}/luts            float64 [256, 3]
    /projectors/{name}/mix_matrix      float64 [3, 3]  (only when solved)
    /projectors/{name}/curves/{channel} float64 [N, 4] (input_level, r, g, b)
    /projectors/{name}/region_mask     bool [H, W]     (mask regions only)
    /projectors/{name}                 attrs: white_point, white_balance,
                                       min_values, max_values, failed,
                                       degenerate_channels, region_centroid,
                                       region_half_size (bounding regions)
    /failures/{i}                      attrs: stage, projector, channel, message
"""

from __future__ import annotations

import hashlib
import logging
from datetime import UTC, datetime
from pathlib import Path

import h5py
import numpy as np

from colorwall.core.types import CHANNEL_NAMES, BoundingRegion, CalibrationParams, MaskRegion
from colorwall.engine.config import serialize_config
from colorwall.engine.events import Event, PipelineComplete, PipelineStart

logger = logging.getLogger(__name__)

OUTPUT_FILENAME = "calibration.h5"


class HDF5ExportObserver:
    """Writes every projector's calibration result to ``calibration.h5``.

    Subscribes to PipelineStart (to hash the config) and PipelineComplete
    (to write the file from the final context).

    Args:
        output_dir: Directory where ``calibration.h5`` will be written.

    Example::

        observer = HDF5ExportObserver(output_dir="/tmp/run_output")
        pipeline = CalibrationPipeline(stages, config, camera, plane, observers=[observer])
        pipeline.run()
    """

    def __init__(self, output_dir: str | Path) -> None:
        self._output_dir = Path(output_dir)
        self._config_hash = ""

    def on_event(self, event: Event) -> None:
        if isinstance(event, PipelineStart):
            self._capture_config(event)
        elif isinstance(event, PipelineComplete):
            self._write_hdf5(event)

    def _capture_config(self, event: PipelineStart) -> None:
        """Compute the MD5 hash of the serialized config."""
        if event.config is None:
            return
        try:
            config_str = serialize_config(event.config)  # type: ignore[arg-type]
        except Exception:
            logger.warning("Failed to compute config hash", exc_info=True)
            return
        self._config_hash = hashlib.md5(config_str.encode("utf-8")).hexdigest()

    def _write_hdf5(self, event: PipelineComplete) -> None:
        context = event.context
        if context is None:
            return
        params_list = getattr(context, "params", None)
        if not params_list:
            return

        self._output_dir.mkdir(parents=True, exist_ok=True)
        output_path = self._output_dir / OUTPUT_FILENAME

        with h5py.File(output_path, "w") as f:
            self._write_root_attrs(f, event, context)
            group = f.create_group("projectors")
            for params in params_list:
                self._write_projector(group.create_group(params.name), params)

            failures = f.create_group("failures")
            for i, failure in enumerate(getattr(context, "failures", [])):
                entry = failures.create_group(str(i))
                entry.attrs["stage"] = failure.stage
                entry.attrs["projector"] = failure.projector or ""
                entry.attrs["channel"] = -1 if failure.channel is None else failure.channel
                entry.attrs["message"] = failure.message

        logger.info("Wrote HDF5 output to %s", output_path)

    def _write_root_attrs(self, f: h5py.File, event: PipelineComplete, context: object) -> None:
        f.attrs["run_id"] = event.run_id
        f.attrs["run_timestamp"] = datetime.now(tz=UTC).isoformat()
        if self._config_hash:
            f.attrs["config_hash"] = self._config_hash

        exposure = getattr(context, "exposure", None)
        if exposure is not None:
            f.attrs["exposure"] = float(exposure)
        target = getattr(context, "target_white_balance", None)
        if target is not None:
            f.attrs["target_white_balance"] = target.as_array()
        common_range = getattr(context, "common_range", None)
        if common_range is not None:
            f.attrs["common_range_min"] = np.asarray(common_range[0], dtype=np.float64)
            f.attrs["common_range_max"] = np.asarray(common_range[1], dtype=np.float64)
        f.attrs["published"] = np.array(
            list(getattr(context, "published", [])), dtype=h5py.string_dtype()
        )

    def _write_projector(self, group: h5py.Group, params: CalibrationParams) -> None:
        group.attrs["failed"] = bool(params.failed)
        group.attrs["degenerate_channels"] = np.array(
            sorted(params.degenerate_channels), dtype=np.int64
        )
        for name in ("white_point", "white_balance", "min_values", "max_values"):
            value = getattr(params, name)
            if value is not None:
                group.attrs[name] = value.as_array()

        if params.luts is not None:
            group.create_dataset("luts", data=params.luts)
        if params.mix_matrix is not None:
            group.create_dataset("mix_matrix", data=params.mix_matrix)

        curves = group.create_group("curves")
        for channel, curve in enumerate(params.curves):
            rows = np.array(
                [[p.input_level, *p.measured] for p in curve], dtype=np.float64
            ).reshape(-1, 4)
            curves.create_dataset(CHANNEL_NAMES[channel], data=rows)

        region = params.region
        if region is not None:
            group.attrs["region_centroid"] = np.asarray(region.centroid, dtype=np.float64)
            if isinstance(region, BoundingRegion):
                group.attrs["region_half_size"] = float(region.half_size)
            elif isinstance(region, MaskRegion):
                group.create_dataset("region_mask", data=region.mask, compression="gzip")
