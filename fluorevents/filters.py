"""Baseline removal for fluorescence traces.

Two corrections are provided:

* :func:`remove_baseline` subtracts a centered moving average whose
  undefined edges are filled by extrapolating a least-squares trend line.
* :func:`refine_active` re-processes raw traces of active channels with a
  clipped moving average, so large positive transients do not drag the
  baseline upwards, and then crops the extrapolated edges.
"""

from functools import partial

import numpy as np
import xarray as xr

from fluorevents.errors import EmptyPopulationError, InsufficientDataError, InvalidParameterError
from fluorevents.logging import init_logger
from fluorevents.traces import crop_frames, validate_trace_matrix

logger = init_logger(__name__)


def centered_moving_average(trace: np.ndarray, window: int) -> np.ndarray:
    """Centered moving average of width ``window``.

    The value at index ``i`` averages ``trace[i - window // 2 : i - window // 2 + window]``.
    The first and last ``window // 2`` samples, where that slice would run
    off the trace, are NaN.

    Parameters
    ----------
    trace:
        1D signal.
    window:
        Averaging width in samples, ``1 <= window <= len(trace)``.
    """
    y = np.asarray(trace, dtype=np.float64)
    n = y.size
    if window < 1 or window > n:
        raise InvalidParameterError(
            f"Moving-average window must be in [1, {n}] samples, got {window}"
        )

    half = window // 2
    out = np.full(n, np.nan)
    valid = np.convolve(y, np.ones(window) / window, mode="valid")
    # For even widths the valid part is one sample longer than n - 2 * half
    out[half : n - half] = valid[: n - 2 * half]
    return out


def extrapolate_edges(smoothed: np.ndarray, time: np.ndarray) -> np.ndarray:
    """Fill NaN samples of ``smoothed`` from a line fitted to the defined ones.

    Parameters
    ----------
    smoothed:
        1D moving average with NaN where it is undefined.
    time:
        Time vector of the same length, used as the regressor.

    Returns
    -------
    np.ndarray
        Copy of ``smoothed`` with every NaN replaced by the value of the
        least-squares line evaluated at the corresponding time.
    """
    y = np.asarray(smoothed, dtype=np.float64)
    t = np.asarray(time, dtype=np.float64)
    if y.shape != t.shape:
        raise InvalidParameterError(
            f"Trace and time vector lengths differ: {y.size} vs {t.size}"
        )

    good = ~np.isnan(y)
    n_good = int(good.sum())
    if n_good < 2:
        raise InsufficientDataError(
            f"Need at least 2 defined samples to fit an edge trend, got {n_good}"
        )
    if good.all():
        return y.copy()

    slope, intercept = np.polyfit(t[good], y[good], 1)
    out = y.copy()
    out[~good] = slope * t[~good] + intercept
    return out


def remove_baseline_1d(trace: np.ndarray, time: np.ndarray, window: int) -> np.ndarray:
    """Subtract an edge-extrapolated moving-average baseline from one trace."""
    y = np.asarray(trace, dtype=np.float64)
    baseline = extrapolate_edges(centered_moving_average(y, window), time)
    return y - baseline


def clipped_baseline_1d(trace: np.ndarray, window: int) -> np.ndarray:
    """Moving average that never sits above the raw trace.

    Edge samples, where the centered average is undefined, are copied from
    the raw trace.
    """
    y = np.asarray(trace, dtype=np.float64)
    smoothed = centered_moving_average(y, window)
    edges = np.isnan(smoothed)
    smoothed[edges] = y[edges]
    return np.minimum(y, smoothed)


def refine_trace_1d(
    trace: np.ndarray,
    time: np.ndarray,
    clip_window: int,
    correction_window: int,
) -> np.ndarray:
    """Two-pass baseline correction of one raw trace (full length, uncropped)."""
    y = np.asarray(trace, dtype=np.float64)
    clipped = clipped_baseline_1d(y, clip_window)
    baseline = extrapolate_edges(centered_moving_average(clipped, correction_window), time)
    return y - baseline


def _apply_per_channel(func, matrix: xr.DataArray) -> xr.DataArray:
    return xr.apply_ufunc(
        func,
        matrix,
        input_core_dims=[["frame"]],
        output_core_dims=[["frame"]],
        vectorize=True,
        keep_attrs=True,
        output_dtypes=[np.float64],
    )


def remove_baseline(matrix: xr.DataArray, window: int) -> xr.DataArray:
    """Remove slow trends from every channel of ``matrix``.

    Parameters
    ----------
    matrix:
        Trace matrix with dims ``("channel", "frame")``.
    window:
        Moving-average width in samples.

    Returns
    -------
    xr.DataArray
        Baseline-subtracted traces, same shape and coordinates as ``matrix``.
    """
    validate_trace_matrix(matrix)
    n_frames = matrix.sizes["frame"]
    if window < 1 or window > n_frames:
        raise InvalidParameterError(
            f"Baseline window must be in [1, {n_frames}] samples, got {window}"
        )

    time = matrix.coords["frame"].values
    out = _apply_per_channel(partial(remove_baseline_1d, time=time, window=window), matrix)
    logger.info(
        "Removed moving-average baseline (window=%d) from %d channels",
        window,
        matrix.sizes["channel"],
    )
    return out.assign_attrs(baseline_window=int(window))


def refine_active(
    raw_active: xr.DataArray,
    clip_window: int,
    correction_window: int,
) -> xr.DataArray:
    """Clip-and-rebaseline raw active traces, then crop the edges.

    Parameters
    ----------
    raw_active:
        Raw (uncorrected) traces of the active channels.
    clip_window:
        Width of the moving average used for the clipped baseline.
    correction_window:
        Width of the moving average over the clipped baseline. The same
        number of samples is cropped from both ends of the result.

    Returns
    -------
    xr.DataArray
        Corrected traces of length ``n_frames - 2 * correction_window`` with
        ``frame`` re-indexed from 1 and ``source_frame`` holding the
        original frame of each sample.
    """
    validate_trace_matrix(raw_active)
    if raw_active.sizes["channel"] == 0:
        raise EmptyPopulationError("refine_active needs at least one active channel")

    n_frames = raw_active.sizes["frame"]
    if clip_window < 1 or clip_window > n_frames:
        raise InvalidParameterError(
            f"Clip window must be in [1, {n_frames}] samples, got {clip_window}"
        )
    if correction_window < 1 or 2 * correction_window >= n_frames:
        raise InvalidParameterError(
            f"Correction window {correction_window} leaves no samples after cropping "
            f"a {n_frames}-sample trace"
        )

    time = raw_active.coords["frame"].values
    func = partial(
        refine_trace_1d,
        time=time,
        clip_window=clip_window,
        correction_window=correction_window,
    )
    corrected = crop_frames(_apply_per_channel(func, raw_active), correction_window)
    logger.info(
        "Refined %d active channels (clip=%d, correction=%d); %d frames after crop",
        raw_active.sizes["channel"],
        clip_window,
        correction_window,
        corrected.sizes["frame"],
    )
    return corrected.assign_attrs(
        clip_window=int(clip_window),
        correction_window=int(correction_window),
    )
