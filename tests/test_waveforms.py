"""Tests for event waveform extraction."""

import numpy as np
import pytest

from fluorevents.errors import EmptyPopulationError, InvalidParameterError
from fluorevents.events import ChannelEvents, EventRecord, detect_events
from fluorevents.traces import make_trace_matrix
from fluorevents.waveforms import extract_waveforms, window_bounds


def _events(max_index: list[int]) -> ChannelEvents:
    idx = np.asarray(max_index, dtype=np.int64)
    empty = np.array([], dtype=np.int64)
    return ChannelEvents(
        max_index=idx,
        max_frame=idx + 1.0,
        max_value=np.ones(idx.size),
        min_index=empty,
        min_frame=empty.astype(float),
        min_value=empty.astype(float),
    )


@pytest.fixture
def ramp_matrix():
    values = np.column_stack([np.arange(100.0), -np.arange(100.0)])
    return make_trace_matrix(values, duration=10.0)


def test_window_bounds():
    assert window_bounds(50, 10) == (46, 56)


def test_boundary_peaks_skipped(ramp_matrix):
    record = EventRecord(channels={1: _events([2, 50, 97]), 2: _events([3, 94])})
    wf = extract_waveforms(ramp_matrix, record, length=10)

    assert len(wf) == 2
    assert wf.n_skipped == 3
    assert wf.channels == (1, 2)
    np.testing.assert_array_equal(wf.windows[0], np.arange(46.0, 56.0))
    np.testing.assert_array_equal(wf.windows[1], -np.arange(90.0, 100.0))
    np.testing.assert_array_equal(wf.frames, [51.0, 95.0])


def test_window_touching_both_ends(ramp_matrix):
    record = EventRecord(channels={1: _events([4, 94])})
    wf = extract_waveforms(ramp_matrix, record, length=10)
    assert len(wf) == 2
    np.testing.assert_array_equal(wf.windows[0], np.arange(0.0, 10.0))
    np.testing.assert_array_equal(wf.windows[1], np.arange(90.0, 100.0))


def test_all_windows_have_length():
    values = np.random.RandomState(5).randn(600, 3).cumsum(axis=0)
    m = make_trace_matrix(values, duration=60.0)
    record = detect_events(m, delta=2.0)
    wf = extract_waveforms(m, record, length=20)

    assert wf.windows.shape == (len(wf), 20)
    assert wf.mean().shape == (20,)
    np.testing.assert_array_equal(wf.offsets(), np.arange(-9, 11))
    # peak sits at offset 0
    for row, ch, fr in zip(wf.windows, wf.channels, wf.frames):
        assert row[9] == m.sel(channel=ch, frame=int(fr)).item()


def test_no_valid_windows(ramp_matrix):
    record = EventRecord(channels={1: _events([1, 98])})
    with pytest.raises(EmptyPopulationError):
        extract_waveforms(ramp_matrix, record, length=10)


@pytest.mark.parametrize("length", [0, -4, 7])
def test_invalid_length(ramp_matrix, length):
    record = EventRecord(channels={1: _events([50])})
    with pytest.raises(InvalidParameterError):
        extract_waveforms(ramp_matrix, record, length=length)
