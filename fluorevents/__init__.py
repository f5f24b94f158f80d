"""fluorevents - Event extraction from multi-channel fluorescence traces."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("fluorevents")
except PackageNotFoundError:
    __version__ = "0.0.0.dev0"

from fluorevents.classify import ChannelPartition, classify_channels
from fluorevents.config import AnalysisConfig
from fluorevents.errors import (
    EmptyPopulationError,
    FluorEventsError,
    InsufficientDataError,
    InvalidParameterError,
)
from fluorevents.events import ChannelEvents, EventRecord, PeakDetector, detect_events
from fluorevents.metrics import ChannelMetrics, compute_metrics
from fluorevents.pipeline import ActivityPipeline, PipelineResult, run_pipeline
from fluorevents.traces import make_trace_matrix
from fluorevents.waveforms import WaveformSet, extract_waveforms

__all__ = [
    "ActivityPipeline",
    "AnalysisConfig",
    "ChannelEvents",
    "ChannelMetrics",
    "ChannelPartition",
    "EmptyPopulationError",
    "EventRecord",
    "FluorEventsError",
    "InsufficientDataError",
    "InvalidParameterError",
    "PeakDetector",
    "PipelineResult",
    "WaveformSet",
    "classify_channels",
    "compute_metrics",
    "detect_events",
    "extract_waveforms",
    "make_trace_matrix",
    "run_pipeline",
    "__version__",
]
