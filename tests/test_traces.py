"""Tests for trace matrix construction and cropping."""

import numpy as np
import pytest

from fluorevents.errors import InvalidParameterError
from fluorevents.traces import crop_frames, cropped_duration, make_trace_matrix


def test_make_trace_matrix_layout() -> None:
    values = np.arange(20, dtype=float).reshape(10, 2)
    m = make_trace_matrix(values, duration=5.0, channel_ids=["a", "b"])

    assert m.dims == ("channel", "frame")
    assert list(m.coords["channel"].values) == ["a", "b"]
    np.testing.assert_array_equal(m.coords["frame"].values, np.arange(1, 11))
    np.testing.assert_array_equal(m.sel(channel="b").values, values[:, 1])
    assert m.attrs["fps"] == pytest.approx(2.0)
    assert m.attrs["n_samples"] == 10


def test_background_columns_dropped() -> None:
    values = np.ones((10, 4))
    m = make_trace_matrix(values, duration=1.0, n_background=1)
    assert m.sizes["channel"] == 3
    assert list(m.coords["channel"].values) == [1, 2, 3]


@pytest.mark.parametrize(
    "values, kwargs",
    [
        (np.ones(10), {}),
        (np.ones((1, 3)), {}),
        (np.ones((10, 2)), {"duration": 0.0}),
        (np.ones((10, 2)), {"n_background": 2}),
        (np.ones((10, 2)), {"channel_ids": [1, 1]}),
        (np.full((10, 2), np.nan), {}),
    ],
)
def test_make_trace_matrix_rejects(values, kwargs) -> None:
    kwargs = {"duration": 1.0, **kwargs}
    with pytest.raises(InvalidParameterError):
        make_trace_matrix(values, **kwargs)


def test_crop_keeps_source_frames() -> None:
    m = make_trace_matrix(np.random.RandomState(0).randn(20, 2), duration=2.0)
    cropped = crop_frames(m, 3)

    assert cropped.sizes["frame"] == 14
    np.testing.assert_array_equal(cropped.coords["frame"].values, np.arange(1, 15))
    np.testing.assert_array_equal(cropped.coords["source_frame"].values, np.arange(4, 18))
    np.testing.assert_array_equal(cropped.values, m.values[:, 3:17])
    assert cropped.attrs["fps"] == m.attrs["fps"]
    assert cropped_duration(cropped) == pytest.approx(1.4)


def test_crop_twice_maps_to_original() -> None:
    m = make_trace_matrix(np.zeros((20, 1)), duration=2.0)
    twice = crop_frames(crop_frames(m, 2), 3)
    np.testing.assert_array_equal(twice.coords["source_frame"].values, np.arange(6, 16))


def test_crop_too_large() -> None:
    m = make_trace_matrix(np.zeros((10, 1)), duration=1.0)
    with pytest.raises(InvalidParameterError):
        crop_frames(m, 5)
