"""Hysteresis peak/trough detection on corrected traces.

The detector keeps a running maximum and minimum and alternates between
two states. While seeking a maximum, a peak is confirmed once the signal
falls more than ``delta`` below the running maximum; while seeking a
minimum, a trough is confirmed once the signal rises more than ``delta``
above the running minimum. Maxima and minima therefore strictly
interleave, and wiggles smaller than ``delta`` never produce events.
"""

from collections.abc import Iterator, Mapping
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import numpy as np
import pandas as pd
import xarray as xr

from fluorevents.errors import InvalidParameterError
from fluorevents.logging import init_logger
from fluorevents.traces import validate_trace_matrix

logger = init_logger(__name__)


class SeekState(str, Enum):
    """What the detector is currently looking for."""

    MAX = "max"
    MIN = "min"


@dataclass(frozen=True)
class Extremum:
    """A confirmed peak or trough."""

    kind: SeekState
    index: int
    time: float
    value: float


class PeakDetector:
    """Online two-state extremum detector.

    Parameters
    ----------
    delta:
        Minimum deviation from the running extremum needed to confirm it.
    """

    def __init__(self, delta: float) -> None:
        if not np.isfinite(delta) or delta <= 0:
            raise InvalidParameterError(f"delta must be positive and finite, got {delta}")
        self.delta = float(delta)
        self.reset()

    def reset(self) -> None:
        """Return to the initial state (seeking a maximum, no candidates)."""
        self.state = SeekState.MAX
        self._max_value = -np.inf
        self._max_index = -1
        self._max_time = np.nan
        self._min_value = np.inf
        self._min_index = -1
        self._min_time = np.nan
        self._n_seen = 0

    def feed(self, time: float, value: float) -> Extremum | None:
        """Consume one sample and return the extremum it confirms, if any."""
        index = self._n_seen
        self._n_seen += 1

        if value > self._max_value:
            self._max_value, self._max_index, self._max_time = value, index, time
        if value < self._min_value:
            self._min_value, self._min_index, self._min_time = value, index, time

        if self.state is SeekState.MAX:
            if value < self._max_value - self.delta:
                found = Extremum(SeekState.MAX, self._max_index, self._max_time, self._max_value)
                self._min_value, self._min_index, self._min_time = value, index, time
                self.state = SeekState.MIN
                return found
        elif value > self._min_value + self.delta:
            found = Extremum(SeekState.MIN, self._min_index, self._min_time, self._min_value)
            self._max_value, self._max_index, self._max_time = value, index, time
            self.state = SeekState.MAX
            return found
        return None

    def scan(self, trace: np.ndarray, time: np.ndarray) -> Iterator[Extremum]:
        """Yield confirmed extrema of ``trace`` in time order."""
        y = np.asarray(trace, dtype=np.float64)
        t = np.asarray(time, dtype=np.float64)
        if y.ndim != 1 or y.shape != t.shape:
            raise InvalidParameterError(
                f"Trace and time vector lengths differ: {y.shape} vs {t.shape}"
            )
        self.reset()
        for ti, yi in zip(t, y):
            found = self.feed(float(ti), float(yi))
            if found is not None:
                yield found

    def run(self, trace: np.ndarray, time: np.ndarray) -> "ChannelEvents":
        """Detect all extrema of one trace."""
        return ChannelEvents.from_extrema(list(self.scan(trace, time)))


def _column(values: list, dtype: Any) -> np.ndarray:
    arr = np.asarray(values, dtype=dtype)
    arr.setflags(write=False)
    return arr


@dataclass(frozen=True)
class ChannelEvents:
    """Maxima and minima of one channel.

    ``*_index`` are positions into the scanned trace, ``*_frame`` the
    matching values of its time vector and ``*_value`` the amplitudes.
    """

    max_index: np.ndarray
    max_frame: np.ndarray
    max_value: np.ndarray
    min_index: np.ndarray
    min_frame: np.ndarray
    min_value: np.ndarray

    @classmethod
    def from_extrema(cls, extrema: list[Extremum]) -> "ChannelEvents":
        maxima = [e for e in extrema if e.kind is SeekState.MAX]
        minima = [e for e in extrema if e.kind is SeekState.MIN]
        return cls(
            max_index=_column([e.index for e in maxima], np.int64),
            max_frame=_column([e.time for e in maxima], np.float64),
            max_value=_column([e.value for e in maxima], np.float64),
            min_index=_column([e.index for e in minima], np.int64),
            min_frame=_column([e.time for e in minima], np.float64),
            min_value=_column([e.value for e in minima], np.float64),
        )

    @property
    def n_events(self) -> int:
        """Number of confirmed maxima."""
        return int(self.max_index.size)


@dataclass(frozen=True)
class EventRecord(Mapping):
    """Per-channel events detected on one corrected trace matrix."""

    channels: dict = field(default_factory=dict)
    delta: float = np.nan
    source_frame: np.ndarray | None = None

    def __getitem__(self, channel: Any) -> ChannelEvents:
        return self.channels[channel]

    def __iter__(self) -> Iterator:
        return iter(self.channels)

    def __len__(self) -> int:
        return len(self.channels)

    def to_dataframe(self) -> pd.DataFrame:
        """Long-format event table.

        Columns: ``channel``, ``kind`` (``"max"``/``"min"``), ``frame``
        (time since crop start), ``source_frame`` (time since recording
        start) and ``amplitude``.
        """
        rows = []
        for ch, ev in self.channels.items():
            for kind, idx, frames, values in (
                ("max", ev.max_index, ev.max_frame, ev.max_value),
                ("min", ev.min_index, ev.min_frame, ev.min_value),
            ):
                for i, fr, val in zip(idx, frames, values):
                    src = self.source_frame[i] if self.source_frame is not None else fr
                    rows.append(
                        {
                            "channel": ch,
                            "kind": kind,
                            "frame": float(fr),
                            "source_frame": float(src),
                            "amplitude": float(val),
                        }
                    )
        df = pd.DataFrame(rows, columns=["channel", "kind", "frame", "source_frame", "amplitude"])
        return df.sort_values(["channel", "frame"], kind="stable").reset_index(drop=True)


def derive_delta(corrected: xr.DataArray, multiplier: float = 2.0) -> float:
    """Detection threshold scaled to the noise floor of ``corrected``.

    Returns ``multiplier`` times the mean over channels of each channel's
    sample standard deviation.
    """
    if multiplier <= 0:
        raise InvalidParameterError(f"delta multiplier must be positive, got {multiplier}")
    if corrected.sizes["channel"] == 0:
        raise InvalidParameterError("Cannot derive delta from zero channels")
    sds = corrected.std(dim="frame", ddof=1)
    delta = float(multiplier * sds.mean())
    logger.debug("Derived delta=%.4g from mean channel SD %.4g", delta, float(sds.mean()))
    return delta


def detect_events(
    corrected: xr.DataArray,
    delta: float,
    n_workers: int = 1,
    progress_bar: Any = None,
) -> EventRecord:
    """Run the peak detector on every channel of ``corrected``.

    Parameters
    ----------
    corrected:
        Corrected traces with dims ``("channel", "frame")``.
    delta:
        Detection threshold shared by all channels.
    n_workers:
        Number of worker threads. ``1`` (default) scans channels
        sequentially.
    progress_bar:
        Progress bar wrapper, e.g. ``tqdm``.
    """
    validate_trace_matrix(corrected)
    if not np.isfinite(delta) or delta <= 0:
        raise InvalidParameterError(f"delta must be positive and finite, got {delta}")

    time = corrected.coords["frame"].values
    channels = list(corrected.coords["channel"].values)

    def _scan(ch: Any) -> ChannelEvents:
        return PeakDetector(delta).run(corrected.sel(channel=ch).values, time)

    results: dict[Any, ChannelEvents] = {}
    if n_workers > 1:
        with ThreadPoolExecutor(max_workers=n_workers) as executor:
            iterator = zip(channels, executor.map(_scan, channels))
            if progress_bar is not None:
                iterator = progress_bar(iterator, total=len(channels))
            for ch, ev in iterator:
                results[ch] = ev
    else:
        iterator = channels
        if progress_bar is not None:
            iterator = progress_bar(iterator)
        for ch in iterator:
            results[ch] = _scan(ch)

    source = None
    if "source_frame" in corrected.coords:
        source = corrected.coords["source_frame"].values.copy()
        source.setflags(write=False)

    logger.info(
        "Detected %d maxima across %d channels (delta=%.4g)",
        sum(ev.n_events for ev in results.values()),
        len(results),
        delta,
    )
    return EventRecord(channels=results, delta=float(delta), source_frame=source)
