"""Crop profiles: agronomic reference ranges per crop.

Profiles ship as package data (``soilhealth/data/crop_profiles.json``) and are
parsed once per process into frozen pydantic models:

    {
        "crops": {
            "rice": {
                "moisture": {"optimal_min": 25, "optimal_max": 40,
                             "unit": "% VWC", "weight": 1.5},
                ...
            },
            ...
        },
        "reference_ranges": {...},
        "reference_issues": {...}
    }

``reference_ranges`` is the crop-agnostic "healthy soil" band used by the
weekly analysis and current-health checks; the crop entries drive the safety
score and cultivation timeline.
"""

from __future__ import annotations

import json
from functools import lru_cache
from importlib import resources

from pydantic import BaseModel, ConfigDict, Field, model_validator

from soilhealth.models.readings import SOIL_PARAMETERS

DEFAULT_CROP_TYPE = "general"


class ParameterRange(BaseModel):
    """Optimal band and score weight for one parameter of one crop."""

    model_config = ConfigDict(frozen=True)

    optimal_min: float
    optimal_max: float
    unit: str = ""
    weight: float = Field(default=1.0, gt=0)

    @model_validator(mode="after")
    def _validate_bounds(self) -> "ParameterRange":
        if self.optimal_min > self.optimal_max:
            raise ValueError("optimal_min must not exceed optimal_max")
        return self

    def contains(self, value: float) -> bool:
        return self.optimal_min <= value <= self.optimal_max

    def describe(self) -> str:
        return f"{self.optimal_min:g} - {self.optimal_max:g} {self.unit}".rstrip()


class CropProfile(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    parameters: dict[str, ParameterRange]

    @model_validator(mode="after")
    def _validate_parameters(self) -> "CropProfile":
        missing = [param for param in SOIL_PARAMETERS if param not in self.parameters]
        if missing:
            raise ValueError(f"crop profile {self.name!r} missing parameters: {', '.join(missing)}")
        return self

    def range_for(self, parameter: str) -> ParameterRange:
        return self.parameters[parameter]


class ReferenceRange(BaseModel):
    model_config = ConfigDict(frozen=True)

    min: float
    max: float
    unit: str = ""

    def describe(self) -> str:
        return f"{self.min:g} - {self.max:g} {self.unit}".rstrip()


class ReferenceIssue(BaseModel):
    model_config = ConfigDict(frozen=True)

    low: str
    high: str


class CropCatalog(BaseModel):
    """Everything loaded from the crop profile data file."""

    model_config = ConfigDict(frozen=True)

    crops: dict[str, CropProfile]
    reference_ranges: dict[str, ReferenceRange]
    reference_issues: dict[str, ReferenceIssue]

    @model_validator(mode="after")
    def _validate_catalog(self) -> "CropCatalog":
        if DEFAULT_CROP_TYPE not in self.crops:
            raise ValueError(f"crop catalog must define a {DEFAULT_CROP_TYPE!r} profile")
        return self

    def crop_types(self) -> list[str]:
        return list(self.crops)

    def get_profile(self, crop_type: str | None) -> CropProfile:
        """Case-insensitive lookup; unknown crops fall back to ``general``."""
        key = (crop_type or DEFAULT_CROP_TYPE).strip().lower()
        return self.crops.get(key) or self.crops[DEFAULT_CROP_TYPE]


def _parse_catalog(raw: dict) -> CropCatalog:
    crops = {
        name.lower(): CropProfile(name=name.lower(), parameters=parameters)
        for name, parameters in raw["crops"].items()
    }
    return CropCatalog(
        crops=crops,
        reference_ranges=raw["reference_ranges"],
        reference_issues=raw["reference_issues"],
    )


@lru_cache
def get_crop_catalog() -> CropCatalog:
    """Load and validate the packaged crop catalog (cached after first call)."""
    text = resources.files("soilhealth.data").joinpath("crop_profiles.json").read_text(encoding="utf-8")
    return _parse_catalog(json.loads(text))


def get_crop_profile(crop_type: str | None) -> CropProfile:
    return get_crop_catalog().get_profile(crop_type)
