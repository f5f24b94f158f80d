"""Amplitude-based classification of channels into active and inactive sets."""

from dataclasses import dataclass

import numpy as np
import pandas as pd
import xarray as xr
from scipy.stats import median_abs_deviation

from fluorevents.errors import EmptyPopulationError, InvalidParameterError
from fluorevents.logging import init_logger
from fluorevents.traces import crop_frames, validate_trace_matrix

logger = init_logger(__name__)

NORMAL_MAD_SCALE = 1.4826


def robust_center(values: np.ndarray) -> float:
    """Median of ``values``."""
    arr = np.asarray(values, dtype=np.float64)
    if arr.size == 0:
        raise InvalidParameterError("robust_center needs at least one value")
    return float(np.median(arr))


def robust_spread(values: np.ndarray, scale: float = NORMAL_MAD_SCALE) -> float:
    """Median absolute deviation of ``values`` multiplied by ``scale``.

    The default scale makes the MAD a consistent estimator of the standard
    deviation for normally distributed data. Use ``scale=1.0`` for the raw MAD.
    """
    arr = np.asarray(values, dtype=np.float64)
    if arr.size == 0:
        raise InvalidParameterError("robust_spread needs at least one value")
    if scale <= 0:
        raise InvalidParameterError(f"MAD scale must be positive, got {scale}")
    return float(scale * median_abs_deviation(arr, scale=1.0))


@dataclass(frozen=True)
class ChannelPartition:
    """Active/inactive split of the channel set.

    ``active`` and ``inactive`` are disjoint and together hold every
    channel, in the order the channels appear in the trace matrix.
    ``raw_active`` and ``raw_inactive`` are the corresponding columns of
    the uncorrected traces, which the refined correction re-processes.
    """

    active: tuple
    inactive: tuple
    threshold: float
    center: float
    spread: float
    maxima: pd.Series
    raw_active: xr.DataArray
    raw_inactive: xr.DataArray

    @property
    def channels(self) -> tuple:
        """All channels, in trace-matrix order."""
        return tuple(self.maxima.index)

    def require_active(self) -> None:
        """Raise :class:`EmptyPopulationError` if no channel is active."""
        if not self.active:
            raise EmptyPopulationError(
                f"No active channels: all {len(self.inactive)} channel maxima are at or "
                f"below the threshold {self.threshold:.4g} "
                f"(median={self.center:.4g}, MAD={self.spread:.4g})"
            )


def classify_channels(
    corrected: xr.DataArray,
    raw: xr.DataArray,
    edge_crop: int = 0,
    mad_scale: float = NORMAL_MAD_SCALE,
) -> ChannelPartition:
    """Split channels by comparing each channel maximum to median + MAD.

    Parameters
    ----------
    corrected:
        Baseline-corrected traces, dims ``("channel", "frame")``.
    raw:
        Uncorrected traces with the same channels, used to build the raw
        active/inactive sub-matrices.
    edge_crop:
        Samples dropped from both ends of ``corrected`` before taking
        maxima, to skip the extrapolated edges.
    mad_scale:
        Scale factor applied to the median absolute deviation.

    Returns
    -------
    ChannelPartition
        A channel is active when its maximum is strictly greater than the
        threshold. The partition may have an empty active set; callers
        that need active channels use :meth:`ChannelPartition.require_active`.
    """
    validate_trace_matrix(corrected)
    validate_trace_matrix(raw)
    if list(corrected.coords["channel"].values) != list(raw.coords["channel"].values):
        raise InvalidParameterError("corrected and raw traces must have the same channels")

    cropped = crop_frames(corrected, edge_crop) if edge_crop else corrected
    maxima = cropped.max(dim="frame").to_series()

    center = robust_center(maxima.values)
    spread = robust_spread(maxima.values, scale=mad_scale)
    threshold = center + spread

    is_active = (maxima > threshold).to_numpy()
    active = tuple(maxima.index[is_active])
    inactive = tuple(maxima.index[~is_active])

    logger.info(
        "Classified %d active / %d inactive channels (threshold=%.4g)",
        len(active),
        len(inactive),
        threshold,
    )
    logger.debug("Channel maxima: median=%.4g, MAD=%.4g", center, spread)

    return ChannelPartition(
        active=active,
        inactive=inactive,
        threshold=threshold,
        center=center,
        spread=spread,
        maxima=maxima,
        raw_active=raw.sel(channel=list(active)),
        raw_inactive=raw.sel(channel=list(inactive)),
    )
