"""Fixed-width event windows for shape comparison."""

from dataclasses import dataclass

import numpy as np
import xarray as xr

from fluorevents.errors import EmptyPopulationError, InvalidParameterError
from fluorevents.events import EventRecord
from fluorevents.logging import init_logger

logger = init_logger(__name__)


@dataclass(frozen=True)
class WaveformSet:
    """Equal-length windows cut around detected maxima.

    ``windows`` has shape ``(n_windows, length)``; row ``k`` was cut from
    channel ``channels[k]`` around the maximum at ``frames[k]``.
    """

    windows: np.ndarray
    channels: tuple
    frames: np.ndarray
    n_skipped: int = 0

    @property
    def length(self) -> int:
        return int(self.windows.shape[1])

    def __len__(self) -> int:
        return int(self.windows.shape[0])

    def mean(self) -> np.ndarray:
        """Average event shape."""
        return self.windows.mean(axis=0)

    def offsets(self) -> np.ndarray:
        """Sample offsets of each window column relative to the peak."""
        half = self.length // 2
        return np.arange(-half + 1, half + 1)


def window_bounds(index: int, length: int) -> tuple[int, int]:
    """Slice bounds ``[start, stop)`` of the window for a peak at ``index``.

    The window spans ``index - length // 2 + 1`` to ``index + length // 2``
    inclusive.
    """
    half = length // 2
    return index - half + 1, index + half + 1


def extract_waveforms(
    corrected: xr.DataArray,
    events: EventRecord,
    length: int,
) -> WaveformSet:
    """Cut a ``length``-sample window around every detected maximum.

    Peaks whose window would run past either end of the trace are skipped.

    Parameters
    ----------
    corrected:
        The traces the events were detected on.
    events:
        Detected events; their positional indices address ``corrected``.
    length:
        Window length in samples. Must be positive and even.

    Raises
    ------
    EmptyPopulationError
        If no peak yields a complete window.
    """
    if length <= 0 or length % 2:
        raise InvalidParameterError(f"Waveform length must be a positive even number, got {length}")

    n_frames = corrected.sizes["frame"]
    windows: list[np.ndarray] = []
    channels: list = []
    frames: list[float] = []
    n_skipped = 0

    for ch, ev in events.items():
        trace = corrected.sel(channel=ch).values
        if trace.size != n_frames:
            raise InvalidParameterError(
                f"Channel {ch!r} has {trace.size} samples, expected {n_frames}"
            )
        for idx, fr in zip(ev.max_index, ev.max_frame):
            start, stop = window_bounds(int(idx), length)
            if start < 0 or stop > n_frames:
                n_skipped += 1
                continue
            windows.append(trace[start:stop])
            channels.append(ch)
            frames.append(float(fr))

    if not windows:
        raise EmptyPopulationError(
            f"No complete {length}-sample waveform windows "
            f"({n_skipped} peaks too close to the trace edges)"
        )

    if n_skipped:
        logger.debug("Skipped %d peaks too close to the trace edges", n_skipped)
    logger.info("Extracted %d waveform windows of %d samples", len(windows), length)

    stacked = np.vstack(windows)
    stacked.setflags(write=False)
    return WaveformSet(
        windows=stacked,
        channels=tuple(channels),
        frames=np.asarray(frames),
        n_skipped=n_skipped,
    )
