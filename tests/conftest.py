"""Shared test fixtures."""

import numpy as np
import pytest
import xarray as xr

from fluorevents.config import AnalysisConfig
from fluorevents.traces import make_trace_matrix

N_FRAMES = 1000
DURATION = 100.0


def burst_recording(n_frames: int = N_FRAMES, seed: int = 0) -> np.ndarray:
    """Samples x channels array: one sinusoidal burst on a ramp plus two noise channels.

    Channel 1 carries one full sine cycle of amplitude 10 between frames
    450 and 550 on top of a linear ramp. Channels 2 and 3 are uniform
    noise with amplitude below 1.
    """
    rng = np.random.RandomState(seed)
    t = np.arange(1, n_frames + 1, dtype=float)
    burst = np.where(
        (t >= 450) & (t <= 550),
        10.0 * np.sin(2 * np.pi * (t - 450) / 100.0),
        0.0,
    )
    ch1 = 0.01 * t + burst
    ch2 = rng.uniform(-0.4, 0.4, n_frames)
    ch3 = rng.uniform(-0.4, 0.4, n_frames)
    return np.column_stack([ch1, ch2, ch3])


@pytest.fixture
def burst_values() -> np.ndarray:
    """Raw samples x channels array for the burst scenario."""
    return burst_recording()


@pytest.fixture
def burst_matrix(burst_values: np.ndarray) -> xr.DataArray:
    """Trace matrix for the burst scenario (1000 frames, 100 s)."""
    return make_trace_matrix(burst_values, duration=DURATION)


@pytest.fixture
def zero_matrix() -> xr.DataArray:
    """Three all-zero channels."""
    return make_trace_matrix(np.zeros((N_FRAMES, 3)), duration=DURATION)


@pytest.fixture
def scenario_config() -> AnalysisConfig:
    """Parameters used for the burst scenario."""
    return AnalysisConfig(
        baseline={"window": 301},
        correction={"clip_window": 301, "correction_window": 301},
        detection={"delta_multiplier": 2.0},
        waveform={"length": 40},
    )
