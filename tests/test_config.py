"""Tests for config loading."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from fluorevents.config import AnalysisConfig, WaveformConfig


def test_default_config_loads() -> None:
    cfg = AnalysisConfig.default()
    assert cfg.baseline.window == 301
    assert cfg.correction.correction_window == 301
    assert cfg.detection.delta is None
    assert cfg.detection.delta_multiplier == 2.0
    assert cfg.metrics.time_unit == "s"
    assert cfg.edge_crop == 150


def test_config_from_yaml(tmp_path: Path) -> None:
    path = tmp_path / "cfg.yaml"
    path.write_text(
        """
baseline:
  window: 51
classifier:
  edge_crop: 10
detection:
  delta: 0.5
metrics:
  time_unit: min
"""
    )
    cfg = AnalysisConfig.from_yaml(path)
    assert cfg.baseline.window == 51
    assert cfg.edge_crop == 10
    assert cfg.detection.delta == 0.5
    assert cfg.metrics.time_unit == "min"
    # untouched sections keep their defaults
    assert cfg.waveform.length == 40


@pytest.mark.parametrize(
    "data",
    [
        {"baseline": {"window": 0}},
        {"detection": {"delta": -1.0}},
        {"detection": {"delta_multiplier": 0.0}},
        {"waveform": {"length": 41}},
        {"metrics": {"time_unit": "hours"}},
        {"n_workers": 0},
    ],
)
def test_invalid_values_rejected(data) -> None:
    with pytest.raises(ValidationError):
        AnalysisConfig(**data)


def test_waveform_length_must_be_even() -> None:
    with pytest.raises(ValidationError, match="even"):
        WaveformConfig(length=3)


def test_with_overrides_deep_merges() -> None:
    cfg = AnalysisConfig()
    new = cfg.with_overrides({"correction": {"clip_window": 101}, "n_workers": 4})
    assert new.correction.clip_window == 101
    assert new.correction.correction_window == 301
    assert new.n_workers == 4
    # original unchanged
    assert cfg.correction.clip_window == 301
    assert cfg.with_overrides(None) is cfg


def test_unknown_override_key_warns(caplog) -> None:
    cfg = AnalysisConfig()
    with caplog.at_level("WARNING", logger="fluorevents"):
        cfg.with_overrides({"detection": {"dleta": 1.0}})
    assert any("dleta" in r.getMessage() for r in caplog.records)
