"""Per-channel firing rate and inter-event interval statistics."""

from dataclasses import dataclass
from typing import Literal

import numpy as np
import pandas as pd

from fluorevents.errors import InvalidParameterError
from fluorevents.events import EventRecord
from fluorevents.logging import init_logger

logger = init_logger(__name__)

TimeUnit = Literal["s", "min"]

_SECONDS_PER_UNIT = {"s": 1.0, "min": 60.0}

MIN_EVENTS_FOR_IEI = 4


@dataclass(frozen=True)
class ChannelMetrics:
    """Metrics table plus the interval dispersion of well-sampled channels.

    ``table`` is indexed by channel with columns ``n_events``,
    ``firing_rate`` (events per ``time_unit``) and ``mean_amplitude``.
    ``iei_std`` only holds channels with at least four events.
    """

    table: pd.DataFrame
    iei_std: pd.Series
    duration: float
    time_unit: str


def _seconds_per_unit(time_unit: str) -> float:
    try:
        return _SECONDS_PER_UNIT[time_unit]
    except KeyError:
        raise InvalidParameterError(
            f"time_unit must be one of {sorted(_SECONDS_PER_UNIT)}, got {time_unit!r}"
        ) from None


def firing_rate(n_events: int, duration: float) -> float:
    """Events per unit time."""
    if duration <= 0:
        raise InvalidParameterError(f"duration must be positive, got {duration}")
    return n_events / duration


def iei_dispersion(event_times: np.ndarray) -> float | None:
    """Sample standard deviation of consecutive inter-event intervals.

    Returns ``None`` when fewer than four events are given.
    """
    t = np.asarray(event_times, dtype=np.float64)
    if t.size < MIN_EVENTS_FOR_IEI:
        return None
    return float(np.std(np.diff(t), ddof=1))


def compute_metrics(
    events: EventRecord,
    n_frames: int,
    fps: float,
    time_unit: TimeUnit = "s",
) -> ChannelMetrics:
    """Compute firing rate and interval dispersion for every channel.

    Parameters
    ----------
    events:
        Detected events.
    n_frames:
        Number of samples in the (cropped) traces the events came from.
    fps:
        Sampling rate of the original recording in samples per second.
    time_unit:
        ``"s"`` or ``"min"``; unit for both rates and intervals.
    """
    if n_frames <= 0:
        raise InvalidParameterError(f"n_frames must be positive, got {n_frames}")
    if fps <= 0:
        raise InvalidParameterError(f"fps must be positive, got {fps}")

    unit = _seconds_per_unit(time_unit)
    duration = n_frames / fps / unit

    rows = []
    iei: dict = {}
    for ch, ev in events.items():
        rows.append(
            {
                "channel": ch,
                "n_events": ev.n_events,
                "firing_rate": firing_rate(ev.n_events, duration),
                "mean_amplitude": float(ev.max_value.mean()) if ev.n_events else np.nan,
            }
        )
        dispersion = iei_dispersion(ev.max_frame / fps / unit)
        if dispersion is not None:
            iei[ch] = dispersion

    table = pd.DataFrame(rows, columns=["channel", "n_events", "firing_rate", "mean_amplitude"])
    table = table.set_index("channel")
    iei_std = pd.Series(iei, name="iei_std", dtype=np.float64)
    iei_std.index.name = "channel"

    logger.info(
        "Computed metrics for %d channels over %.4g %s (%d with IEI dispersion)",
        len(table),
        duration,
        time_unit,
        len(iei_std),
    )
    return ChannelMetrics(table=table, iei_std=iei_std, duration=duration, time_unit=time_unit)
