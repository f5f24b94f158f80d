"""End-to-end event extraction for one recording."""

from dataclasses import dataclass
from pathlib import Path
from typing import Any

import numpy as np
import xarray as xr

from fluorevents.classify import ChannelPartition, classify_channels
from fluorevents.config import AnalysisConfig
from fluorevents.events import EventRecord, derive_delta, detect_events
from fluorevents.filters import refine_active, remove_baseline
from fluorevents.logging import init_logger
from fluorevents.metrics import ChannelMetrics, compute_metrics
from fluorevents.traces import make_trace_matrix, validate_trace_matrix
from fluorevents.waveforms import WaveformSet, extract_waveforms

logger = init_logger(__name__)


@dataclass(frozen=True)
class PipelineResult:
    """Outputs of every stage for one recording."""

    raw: xr.DataArray
    baseline_corrected: xr.DataArray
    partition: ChannelPartition
    corrected: xr.DataArray
    events: EventRecord
    waveforms: WaveformSet
    metrics: ChannelMetrics

    def summary(self) -> dict[str, Any]:
        """Headline numbers for reporting."""
        table = self.metrics.table
        return {
            "n_channels": len(self.partition.channels),
            "n_active": len(self.partition.active),
            "n_inactive": len(self.partition.inactive),
            "threshold": self.partition.threshold,
            "delta": self.events.delta,
            "total_events": int(table["n_events"].sum()),
            "mean_firing_rate": float(table["firing_rate"].mean()),
            "n_waveforms": len(self.waveforms),
            "duration": self.metrics.duration,
            "time_unit": self.metrics.time_unit,
        }


class ActivityPipeline:
    """Runs the event extraction stages in order.

    Each stage method takes the previous stage's output and returns a new
    object; nothing is stored on the pipeline between calls::

        pipe = ActivityPipeline.from_yaml("config.yaml")
        result = pipe.run(matrix)

    or stage by stage::

        flat = pipe.remove_baseline(matrix)
        partition = pipe.classify(flat, matrix)
        corrected = pipe.correct(partition)
        events = pipe.detect(corrected)
        waveforms = pipe.extract_waveforms(corrected, events)
        metrics = pipe.compute_metrics(corrected, events)

    Parameters
    ----------
    cfg : AnalysisConfig
        Pipeline parameters. Defaults to :meth:`AnalysisConfig.default`.
    """

    def __init__(self, cfg: AnalysisConfig | None = None) -> None:
        self.cfg = cfg if cfg is not None else AnalysisConfig.default()

    @classmethod
    def from_yaml(
        cls, config: str | Path, override: dict[str, Any] | None = None
    ) -> "ActivityPipeline":
        """Create a pipeline from a config file, with optional overrides."""
        cfg = AnalysisConfig.from_yaml(config).with_overrides(override)
        return cls(cfg)

    def remove_baseline(self, matrix: xr.DataArray) -> xr.DataArray:
        """First-pass moving-average baseline removal on all channels."""
        return remove_baseline(matrix, self.cfg.baseline.window)

    def classify(self, baseline_corrected: xr.DataArray, raw: xr.DataArray) -> ChannelPartition:
        """Split channels into active and inactive sets."""
        return classify_channels(
            baseline_corrected,
            raw,
            edge_crop=self.cfg.edge_crop,
            mad_scale=self.cfg.classifier.mad_scale,
        )

    def correct(self, partition: ChannelPartition) -> xr.DataArray:
        """Refined correction of the raw active channels."""
        partition.require_active()
        ccfg = self.cfg.correction
        return refine_active(partition.raw_active, ccfg.clip_window, ccfg.correction_window)

    def delta(self, corrected: xr.DataArray) -> float:
        """Detection threshold: fixed from config, or derived from the noise floor."""
        dcfg = self.cfg.detection
        if dcfg.delta is not None:
            return dcfg.delta
        return derive_delta(corrected, dcfg.delta_multiplier)

    def detect(self, corrected: xr.DataArray, progress_bar: Any = None) -> EventRecord:
        """Peak/trough detection on every corrected channel."""
        return detect_events(
            corrected,
            self.delta(corrected),
            n_workers=self.cfg.n_workers,
            progress_bar=progress_bar,
        )

    def extract_waveforms(self, corrected: xr.DataArray, events: EventRecord) -> WaveformSet:
        """Windows around every detected maximum."""
        return extract_waveforms(corrected, events, self.cfg.waveform.length)

    def compute_metrics(self, corrected: xr.DataArray, events: EventRecord) -> ChannelMetrics:
        """Firing rates over the cropped duration, at the original sampling rate."""
        return compute_metrics(
            events,
            n_frames=corrected.sizes["frame"],
            fps=float(corrected.attrs["fps"]),
            time_unit=self.cfg.metrics.time_unit,
        )

    def run(self, matrix: xr.DataArray, progress_bar: Any = None) -> PipelineResult:
        """Run all stages on one trace matrix."""
        validate_trace_matrix(matrix)
        logger.info(
            "Running pipeline: %d channels, %d frames",
            matrix.sizes["channel"],
            matrix.sizes["frame"],
        )
        flat = self.remove_baseline(matrix)
        partition = self.classify(flat, matrix)
        corrected = self.correct(partition)
        events = self.detect(corrected, progress_bar=progress_bar)
        waveforms = self.extract_waveforms(corrected, events)
        metrics = self.compute_metrics(corrected, events)
        return PipelineResult(
            raw=matrix,
            baseline_corrected=flat,
            partition=partition,
            corrected=corrected,
            events=events,
            waveforms=waveforms,
            metrics=metrics,
        )


def run_pipeline(
    values: np.ndarray,
    duration: float,
    cfg: AnalysisConfig | None = None,
    channel_ids: list | None = None,
    n_background: int = 0,
) -> PipelineResult:
    """Build a trace matrix from a samples-by-channels array and run the pipeline."""
    matrix = make_trace_matrix(
        values, duration, channel_ids=channel_ids, n_background=n_background
    )
    return ActivityPipeline(cfg).run(matrix)
