"""Reference-range checks shared by the weekly summary and current-health views."""

from __future__ import annotations

from soilhealth.models.crops import CropCatalog, get_crop_catalog
from soilhealth.models.enums import NutrientAdviceEnum, ReferenceStatusEnum, WateringAdviceEnum
from soilhealth.models.readings import SOIL_PARAMETERS, SoilValues, WeeklyAverage
from soilhealth.schemas.soil_health import HealthIssue, WeeklyAnalysis

DROUGHT_MOISTURE = 10.0
HEAT_STRESS_TEMPERATURE = 35.0
WATERLOGGED_MOISTURE = 40.0


def find_issues(values: SoilValues, catalog: CropCatalog | None = None) -> list[HealthIssue]:
	catalog = catalog or get_crop_catalog()
	issues: list[HealthIssue] = []
	for param in SOIL_PARAMETERS:
		value = values.value(param)
		if value is None:
			continue
		reference = catalog.reference_ranges[param]
		if value < reference.min:
			message = catalog.reference_issues[param].low
		elif value > reference.max:
			message = catalog.reference_issues[param].high
		else:
			continue
		issues.append(
			HealthIssue(parameter=param, value=round(value, 2), expected=reference.describe(), issue=message)
		)
	return issues


def watering_advice(values: SoilValues) -> WateringAdviceEnum:
	if values.moisture is None or values.temperature is None:
		return WateringAdviceEnum.pending
	if values.moisture < DROUGHT_MOISTURE or values.temperature > HEAT_STRESS_TEMPERATURE:
		return WateringAdviceEnum.needs_more_water
	if values.moisture > WATERLOGGED_MOISTURE:
		return WateringAdviceEnum.reduce_watering
	return WateringAdviceEnum.appropriate


def nutrient_advice(values: SoilValues, catalog: CropCatalog | None = None) -> NutrientAdviceEnum:
	catalog = catalog or get_crop_catalog()
	npk = {
		"nitrogen": values.nitrogen,
		"phosphorus": values.phosphorus,
		"potassium": values.potassium,
	}
	if any(value is None for value in npk.values()):
		return NutrientAdviceEnum.pending
	if any(value < catalog.reference_ranges[param].min for param, value in npk.items()):
		return NutrientAdviceEnum.low
	if any(value > catalog.reference_ranges[param].max for param, value in npk.items()):
		return NutrientAdviceEnum.high
	return NutrientAdviceEnum.appropriate


def analyze_week(week: WeeklyAverage, catalog: CropCatalog | None = None) -> WeeklyAnalysis:
	if week.data_points == 0:
		return WeeklyAnalysis(
			watering_status=WateringAdviceEnum.pending,
			nutrient_level=NutrientAdviceEnum.pending,
			soil_status=ReferenceStatusEnum.pending,
			issues=["No sensor data available for this week"],
			summary="Insufficient data to analyze soil health",
		)

	issues = find_issues(week, catalog)
	if not week.has_any_value():
		soil_status = ReferenceStatusEnum.pending
	elif issues:
		soil_status = ReferenceStatusEnum.not_healthy
	else:
		soil_status = ReferenceStatusEnum.healthy

	return WeeklyAnalysis(
		watering_status=watering_advice(week),
		nutrient_level=nutrient_advice(week, catalog),
		soil_status=soil_status,
		issues=[issue.issue for issue in issues],
		detailed_issues=issues,
		summary=(
			"All soil parameters are within healthy ranges"
			if not issues
			else f"{len(issues)} parameter(s) need attention"
		),
	)


def current_status(issues: list[HealthIssue]) -> ReferenceStatusEnum:
	return ReferenceStatusEnum.healthy if not issues else ReferenceStatusEnum.not_healthy
