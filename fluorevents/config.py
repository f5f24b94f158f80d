"""Configuration models for fluorevents, loaded from YAML."""

from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from fluorevents.logging import init_logger

logger = init_logger(__name__)

CONFIG_DIR = Path(__file__).parent / "config"


class BaselineConfig(BaseModel):
    """First-pass baseline removal applied to every channel."""

    window: int = Field(
        301,
        ge=1,
        description="Centered moving-average width in samples.",
    )


class ClassifierConfig(BaseModel):
    """Active/inactive channel classification."""

    mad_scale: float = Field(
        1.4826,
        gt=0.0,
        description=(
            "Scale applied to the median absolute deviation of channel maxima. "
            "1.4826 gives the normal-consistent MAD; 1.0 the raw MAD."
        ),
    )
    edge_crop: int | None = Field(
        None,
        ge=0,
        description=(
            "Samples dropped from both ends before taking channel maxima. "
            "If None, half the baseline window is used."
        ),
    )


class CorrectionConfig(BaseModel):
    """Clip-and-rebaseline correction of active channels."""

    clip_window: int = Field(
        301,
        ge=1,
        description="Moving-average width (samples) for the clipped baseline.",
    )
    correction_window: int = Field(
        301,
        ge=1,
        description=(
            "Moving-average width (samples) over the clipped baseline. "
            "The same number of samples is cropped from both ends of the output."
        ),
    )


class DetectionConfig(BaseModel):
    """Peak/trough detection."""

    delta_multiplier: float = Field(
        2.0,
        gt=0.0,
        description="delta = multiplier x mean per-channel SD of the corrected traces.",
    )
    delta: float | None = Field(
        None,
        gt=0.0,
        description="Fixed detection threshold. Overrides delta_multiplier when set.",
    )


class WaveformConfig(BaseModel):
    """Aligned event waveform extraction."""

    length: int = Field(
        40,
        gt=0,
        description="Window length in samples (must be even).",
    )

    @field_validator("length")
    @classmethod
    def _check_even(cls, v: int) -> int:
        if v % 2:
            raise ValueError(f"waveform length must be even, got {v}")
        return v


class MetricsConfig(BaseModel):
    """Firing rate and interval statistics."""

    time_unit: Literal["s", "min"] = Field(
        "s",
        description="Time unit for firing rates and inter-event intervals.",
    )


def _deep_merge(base: dict, override: dict) -> None:
    """Recursively merge *override* into *base* in place."""
    for key, val in override.items():
        if key in base and isinstance(base[key], dict) and isinstance(val, dict):
            _deep_merge(base[key], val)
        else:
            base[key] = val


def _validate_override_keys(
    model_cls: type[BaseModel],
    override: dict,
    path: str = "",
) -> None:
    """Warn on keys in *override* that don't match *model_cls* fields."""
    for key, val in override.items():
        if key not in model_cls.model_fields:
            logger.warning(
                "config override: unknown key '%s' (valid: %s)",
                f"{path}{key}",
                ", ".join(model_cls.model_fields),
            )
            continue
        if isinstance(val, dict):
            ann = model_cls.model_fields[key].annotation
            if isinstance(ann, type) and issubclass(ann, BaseModel):
                _validate_override_keys(ann, val, f"{path}{key}.")


class AnalysisConfig(BaseModel):
    """Top-level pipeline configuration."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    baseline: BaselineConfig = Field(default_factory=BaselineConfig)
    classifier: ClassifierConfig = Field(default_factory=ClassifierConfig)
    correction: CorrectionConfig = Field(default_factory=CorrectionConfig)
    detection: DetectionConfig = Field(default_factory=DetectionConfig)
    waveform: WaveformConfig = Field(default_factory=WaveformConfig)
    metrics: MetricsConfig = Field(default_factory=MetricsConfig)
    n_workers: int = Field(
        1,
        ge=1,
        description="Worker threads for per-channel event detection.",
    )

    @model_validator(mode="before")
    @classmethod
    def _warn_unknown_keys(cls, data: Any) -> Any:
        """Warn on unrecognised top-level keys (catches typos like ``baselin``)."""
        if isinstance(data, dict):
            for key in data:
                if key not in cls.model_fields:
                    logger.warning(
                        "AnalysisConfig: unknown key '%s' (valid: %s)",
                        key,
                        ", ".join(sorted(cls.model_fields)),
                    )
        return data

    @property
    def edge_crop(self) -> int:
        """Samples cropped before classification."""
        if self.classifier.edge_crop is not None:
            return self.classifier.edge_crop
        return self.baseline.window // 2

    @classmethod
    def from_yaml(cls, path: str | Path) -> "AnalysisConfig":
        """Load from a YAML file."""
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        return cls(**data)

    @classmethod
    def default(cls) -> "AnalysisConfig":
        """Load the bundled default configuration."""
        return cls.from_yaml(CONFIG_DIR / "default.yaml")

    def with_overrides(self, override: dict[str, Any] | None) -> "AnalysisConfig":
        """Create a new config with *override* deep-merged.

        Parameters
        ----------
        override:
            Nested dict mirroring the config structure, e.g.
            ``{"detection": {"delta_multiplier": 3.0}}``.

        Returns
        -------
        AnalysisConfig
            New config with overrides applied. Original is unchanged.
        """
        if not override:
            return self
        _validate_override_keys(type(self), override)
        for key, val in override.items():
            logger.info("Overriding %s = %s", key, val)
        base = self.model_dump()
        _deep_merge(base, override)
        return type(self)(**base)
