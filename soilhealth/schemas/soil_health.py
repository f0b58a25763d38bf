"""Pydantic schemas for soil health, crop safety and cultivation history payloads."""

from __future__ import annotations

from datetime import date, datetime

from pydantic import BaseModel, Field, field_validator

from soilhealth.models.enums import (
	CultivationStatusEnum,
	NutrientAdviceEnum,
	ParameterGradeEnum,
	RangeDirectionEnum,
	ReferenceStatusEnum,
	SeverityEnum,
	SoilStatusEnum,
	WateringAdviceEnum,
)


def clean_device_ids(value: list[str]) -> list[str]:
	cleaned = [item.strip() for item in value if item and item.strip()]
	if not cleaned:
		raise ValueError("device_ids must contain at least one device id")
	return cleaned


# ── Crop safety score ───────────────────────────────────────────────────────


class ParameterScore(BaseModel):
	value: float | None = None
	score: float | None = None
	optimal_range: str
	weight: float
	grade: ParameterGradeEnum | None = None


class FlaggedParameter(BaseModel):
	parameter: str
	value: float
	score: float
	optimal_range: str
	severity: SeverityEnum
	direction: RangeDirectionEnum
	note: str


class SafetyScoreResult(BaseModel):
	crop_type: str
	score: float | None = None
	status_label: SoilStatusEnum | None = None
	parameter_scores: dict[str, ParameterScore] = Field(default_factory=dict)
	flagged_parameters: list[FlaggedParameter] = Field(default_factory=list)
	suggestions: list[str] = Field(default_factory=list)
	summary: str = ""

	@property
	def computable(self) -> bool:
		return self.score is not None


# ── Reference-range analysis ────────────────────────────────────────────────


class SoilAverages(BaseModel):
	temperature: float | None = None
	moisture: float | None = None
	ec: float | None = None
	ph: float | None = None
	nitrogen: float | None = None
	phosphorus: float | None = None
	potassium: float | None = None
	salinity: float | None = None


class HealthIssue(BaseModel):
	parameter: str
	value: float
	expected: str
	issue: str


class WeeklyAnalysis(BaseModel):
	watering_status: WateringAdviceEnum
	nutrient_level: NutrientAdviceEnum
	soil_status: ReferenceStatusEnum
	issues: list[str] = Field(default_factory=list)
	detailed_issues: list[HealthIssue] = Field(default_factory=list)
	summary: str


# ── Weekly summary ──────────────────────────────────────────────────────────


class WeeklySummaryRequest(BaseModel):
	farmer_id: str | None = None
	device_ids: list[str] = Field(min_length=1)
	location: str | None = None
	planting_date: date
	harvest_date: date | None = None

	@field_validator("device_ids")
	@classmethod
	def _strip_devices(cls, value: list[str]) -> list[str]:
		return clean_device_ids(value)


class WeeklySummaryWeek(BaseModel):
	week: int
	period: str
	start_date: date
	end_date: date
	data_points: int
	device_count: int
	averages: SoilAverages
	analysis: WeeklyAnalysis


class WeeklySummaryResponse(BaseModel):
	success: bool
	message: str | None = None
	farmer_id: str | None = None
	planting_date: date
	harvest_date: date | None = None
	total_weeks: int = 0
	sensor_device_count: int = 0
	weeks: list[WeeklySummaryWeek] = Field(default_factory=list)


# ── Current health ──────────────────────────────────────────────────────────


class CurrentHealthRequest(BaseModel):
	device_ids: list[str] = Field(min_length=1)
	location: str | None = None
	crop_type: str | None = None

	@field_validator("device_ids")
	@classmethod
	def _strip_devices(cls, value: list[str]) -> list[str]:
		return clean_device_ids(value)


class CurrentHealthResponse(BaseModel):
	success: bool
	message: str | None = None
	timestamp: datetime | None = None
	values: SoilAverages | None = None
	status_label: ReferenceStatusEnum | None = None
	device_count: int = 0
	issues: list[str] = Field(default_factory=list)
	flagged_parameters: list[HealthIssue] = Field(default_factory=list)


# ── Crop safety timeline ────────────────────────────────────────────────────


class CropSafetyRequest(WeeklySummaryRequest):
	crop_type: str | None = None


class CropSafetyWeek(BaseModel):
	week: int
	period: str
	start_date: date
	end_date: date
	data_points: int
	safety: SafetyScoreResult


class CropSafetyResponse(BaseModel):
	success: bool
	message: str | None = None
	farmer_id: str | None = None
	crop_type: str
	planting_date: date | None = None
	harvest_date: date | None = None
	average_safety_score: float | None = None
	total_weeks: int = 0
	weeks: list[CropSafetyWeek] = Field(default_factory=list)
	cached: bool = False
	generated_at: datetime | None = None


class CurrentCropSafetyResponse(BaseModel):
	success: bool
	message: str | None = None
	timestamp: datetime | None = None
	crop_type: str
	device_count: int = 0
	safety: SafetyScoreResult | None = None


# ── Cultivation history ─────────────────────────────────────────────────────


class CultivationHistoryRequest(BaseModel):
	device_ids: list[str] = Field(min_length=1)
	planting_date: date
	crop_type: str | None = None
	max_weeks: int | None = Field(default=None, ge=1, le=104)

	@field_validator("device_ids")
	@classmethod
	def _strip_devices(cls, value: list[str]) -> list[str]:
		return clean_device_ids(value)


class CultivationWeekEntry(BaseModel):
	week: int
	week_start: date
	week_end: date
	watering_status: CultivationStatusEnum
	nutrient_status: CultivationStatusEnum
	has_data: bool


class CultivationHistoryResponse(BaseModel):
	success: bool
	message: str | None = None
	entries: list[CultivationWeekEntry] = Field(default_factory=list)
	total_weeks: int = 0
	displayed_weeks: int = 0
	has_more: bool = False


# ── Reference data & cache ──────────────────────────────────────────────────


class CropTypesResponse(BaseModel):
	crop_types: list[str]
	count: int


class HealthRangesResponse(BaseModel):
	ranges: dict[str, dict[str, float | str]]
	issues: dict[str, dict[str, str]]


class CacheClearResponse(BaseModel):
	cleared_count: int
	cleared_at: datetime
