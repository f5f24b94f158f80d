"""Trace matrix construction, validation and cropping."""

from collections.abc import Sequence

import numpy as np
import xarray as xr

from fluorevents.errors import InvalidParameterError
from fluorevents.logging import init_logger

logger = init_logger(__name__)

DIMS = ("channel", "frame")


def make_trace_matrix(
    values: np.ndarray,
    duration: float,
    channel_ids: Sequence | None = None,
    n_background: int = 0,
) -> xr.DataArray:
    """Build a trace matrix from a samples-by-channels array.

    Parameters
    ----------
    values:
        2D array with one row per time sample and one column per channel,
        as supplied by the trace loader.
    duration:
        Total duration of the recording in seconds.
    channel_ids:
        Identifiers for the columns of ``values``. Defaults to ``1..n``.
    n_background:
        Number of trailing columns holding background ROIs. These are
        dropped from the channel set.

    Returns
    -------
    xr.DataArray
        DataArray with dims ``("channel", "frame")``. The ``frame``
        coordinate is the 1-based time vector. ``duration``, ``n_samples``
        and ``fps`` are stored as attributes.
    """
    arr = np.asarray(values, dtype=np.float64)
    if arr.ndim != 2:
        raise InvalidParameterError(f"Expected a 2D samples x channels array, got {arr.ndim}D")
    n_samples, n_columns = arr.shape
    if n_samples < 2:
        raise InvalidParameterError(f"Need at least 2 samples, got {n_samples}")
    if not duration > 0:
        raise InvalidParameterError(f"duration must be positive, got {duration}")
    if n_background < 0 or n_background >= n_columns:
        raise InvalidParameterError(
            f"n_background must be in [0, {n_columns - 1}] for {n_columns} columns, "
            f"got {n_background}"
        )

    if channel_ids is None:
        channel_ids = np.arange(1, n_columns + 1)
    channel_ids = list(channel_ids)
    if len(channel_ids) != n_columns:
        raise InvalidParameterError(
            f"Got {len(channel_ids)} channel ids for {n_columns} columns"
        )
    if len(set(channel_ids)) != len(channel_ids):
        raise InvalidParameterError("channel ids must be unique")

    n_channels = n_columns - n_background
    arr = arr[:, :n_channels]
    if not np.all(np.isfinite(arr)):
        raise InvalidParameterError("Trace values must be finite (found NaN or inf)")

    if n_background:
        logger.debug("Dropping %d background columns", n_background)

    return xr.DataArray(
        arr.T.copy(),
        dims=DIMS,
        coords={
            "channel": channel_ids[:n_channels],
            "frame": np.arange(1, n_samples + 1),
        },
        attrs={
            "duration": float(duration),
            "n_samples": int(n_samples),
            "fps": n_samples / float(duration),
        },
    )


def validate_trace_matrix(matrix: xr.DataArray) -> None:
    """Check that ``matrix`` has the layout produced by :func:`make_trace_matrix`."""
    if tuple(matrix.dims) != DIMS:
        raise InvalidParameterError(f"Expected dims {DIMS}, got {matrix.dims}")
    if "fps" not in matrix.attrs:
        raise InvalidParameterError("Trace matrix is missing the 'fps' attribute")
    frames = matrix.coords["frame"].values
    if frames.size > 1 and not np.all(np.diff(frames) > 0):
        raise InvalidParameterError("frame coordinate must be strictly increasing")


def crop_frames(matrix: xr.DataArray, n: int) -> xr.DataArray:
    """Drop ``n`` samples from both ends and re-index ``frame`` from 1.

    The original frame of every remaining sample is kept in the
    ``source_frame`` coordinate so that event positions can be mapped back
    onto the uncropped recording.
    """
    n_frames = matrix.sizes["frame"]
    if n < 0:
        raise InvalidParameterError(f"Crop size must be non-negative, got {n}")
    if 2 * n >= n_frames:
        raise InvalidParameterError(
            f"Cannot crop {n} samples from each end of a {n_frames}-sample trace"
        )

    if "source_frame" in matrix.coords:
        source = matrix.coords["source_frame"].values
    else:
        source = matrix.coords["frame"].values

    cropped = matrix.isel(frame=slice(n, n_frames - n))
    kept = cropped.sizes["frame"]
    return cropped.assign_coords(
        frame=np.arange(1, kept + 1),
        source_frame=("frame", source[n : n_frames - n]),
    )


def cropped_duration(matrix: xr.DataArray) -> float:
    """Duration in seconds covered by ``matrix`` at the original sampling rate."""
    return matrix.sizes["frame"] / float(matrix.attrs["fps"])
