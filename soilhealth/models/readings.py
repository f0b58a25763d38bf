"""Immutable soil reading and aggregate records.

Every record carries the eight soil parameters as ``float | None``.  ``None``
always means "no data" and is never conflated with ``0.0``, which is a legal
sensor value for several channels.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime

from soilhealth.models.enums import SoilParameterEnum

SOIL_PARAMETERS: tuple[str, ...] = tuple(param.value for param in SoilParameterEnum)


@dataclass(frozen=True, slots=True, kw_only=True)
class SoilValues:
    """The eight nullable soil parameters shared by all records."""

    temperature: float | None = None
    moisture: float | None = None
    ec: float | None = None
    ph: float | None = None
    nitrogen: float | None = None
    phosphorus: float | None = None
    potassium: float | None = None
    salinity: float | None = None

    def value(self, parameter: str) -> float | None:
        return getattr(self, parameter)

    def as_dict(self) -> dict[str, float | None]:
        return {param: getattr(self, param) for param in SOIL_PARAMETERS}

    def has_any_value(self) -> bool:
        return any(getattr(self, param) is not None for param in SOIL_PARAMETERS)


@dataclass(frozen=True, slots=True, kw_only=True)
class Reading(SoilValues):
    """One raw row from the time-series source."""

    time: datetime
    device: str
    location: str | None = None


@dataclass(frozen=True, slots=True, kw_only=True)
class DailyAverage(SoilValues):
    """Per-device (or reconciled farm-level) mean for one local calendar day."""

    date: date
    device: str
    device_count: int = 1


@dataclass(frozen=True, slots=True, kw_only=True)
class WeeklyAverage(SoilValues):
    """Mean over a fixed 7-day window anchored at the planting date."""

    week_number: int
    start_date: date
    end_date: date
    data_points: int
    device_count: int = 1
