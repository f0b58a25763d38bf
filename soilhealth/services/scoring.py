"""Crop safety scoring: weighted closeness of soil parameters to a crop's optimal band."""

from __future__ import annotations

import math
from collections.abc import Mapping

from soilhealth.models.crops import CropProfile, ParameterRange, get_crop_profile
from soilhealth.models.enums import (
	ParameterGradeEnum,
	RangeDirectionEnum,
	SeverityEnum,
	SoilParameterEnum,
	SoilStatusEnum,
)
from soilhealth.models.readings import SoilValues
from soilhealth.schemas.soil_health import FlaggedParameter, ParameterScore, SafetyScoreResult

MAX_SCORE = 10.0
MIN_SAFETY_SCORE = 1.0
FLAG_THRESHOLD = 7.0
CRITICAL_THRESHOLD = 4.0

# Order in which parameters are scored and reported.
SCORING_ORDER: tuple[str, ...] = (
	SoilParameterEnum.nitrogen.value,
	SoilParameterEnum.phosphorus.value,
	SoilParameterEnum.potassium.value,
	SoilParameterEnum.ph.value,
	SoilParameterEnum.ec.value,
	SoilParameterEnum.moisture.value,
	SoilParameterEnum.temperature.value,
	SoilParameterEnum.salinity.value,
)

# (parameter, direction) -> (note suffix, remediation suggestion)
REMEDIATION: dict[tuple[str, RangeDirectionEnum], tuple[str, str | None]] = {
	("nitrogen", RangeDirectionEnum.low): (
		"may cause weak growth and yellowing leaves",
		"Apply nitrogen-rich fertilizer (urea or ammonium sulfate)",
	),
	("nitrogen", RangeDirectionEnum.high): (
		"may cause soft plants and lodging risk",
		"Reduce nitrogen fertilizer application",
	),
	("phosphorus", RangeDirectionEnum.low): (
		"may cause poor root development and delayed flowering",
		"Apply phosphate fertilizer (superphosphate or DAP)",
	),
	("phosphorus", RangeDirectionEnum.high): (
		"may cause nutrient imbalances",
		"Reduce phosphate fertilizer and improve drainage",
	),
	("potassium", RangeDirectionEnum.low): (
		"may cause weak stems and poor disease resistance",
		"Apply potassium fertilizer (potash or KCl)",
	),
	("potassium", RangeDirectionEnum.high): (
		"may cause salt stress",
		"Reduce potassium application and increase irrigation to leach excess",
	),
	("ph", RangeDirectionEnum.low): (
		"acidic soil may limit nutrient availability",
		"Apply lime to raise pH",
	),
	("ph", RangeDirectionEnum.high): (
		"alkaline soil may limit micronutrient availability",
		"Apply sulfur or organic matter to lower pH",
	),
	("ec", RangeDirectionEnum.low): (
		"low soluble nutrient content",
		"Apply balanced fertilizer or compost to raise nutrient content",
	),
	("ec", RangeDirectionEnum.high): (
		"high salinity may prevent water uptake",
		"Improve drainage and leach salts with irrigation",
	),
	("moisture", RangeDirectionEnum.low): (
		"insufficient water may stress the crop",
		"Increase irrigation frequency",
	),
	("moisture", RangeDirectionEnum.high): (
		"waterlogged soil may cause root rot",
		"Improve drainage and reduce irrigation",
	),
	("temperature", RangeDirectionEnum.low): (
		"low temperature may slow root activity",
		"Consider mulching to regulate soil temperature",
	),
	("temperature", RangeDirectionEnum.high): (
		"high temperature may damage roots",
		"Apply mulch and ensure adequate irrigation",
	),
	("salinity", RangeDirectionEnum.low): (
		"minimal concern",
		None,
	),
	("salinity", RangeDirectionEnum.high): (
		"high salinity may prevent water uptake",
		"Improve drainage and leach salts with irrigation",
	),
}


def round1(value: float) -> float:
	"""Round half away from zero to one decimal place."""
	return math.floor(value * 10 + 0.5) / 10


def calculate_variable_score(value: float | None, optimal: ParameterRange) -> float | None:
	"""Score one parameter in [0, 10]; 10 inside the optimal band, linear decay outside.

	The score reaches 0 once the value is a full band-width away from the
	nearest bound.  ``None`` values are not scored.
	"""
	if value is None:
		return None
	if optimal.contains(value):
		return MAX_SCORE

	if value < optimal.optimal_min:
		distance = optimal.optimal_min - value
	else:
		distance = value - optimal.optimal_max

	tolerance = (optimal.optimal_max - optimal.optimal_min) / 2
	max_distance = tolerance * 2
	if max_distance <= 0:
		return 0.0
	score = max(0.0, MAX_SCORE - (distance / max_distance) * MAX_SCORE)
	return round1(score)


def status_for_score(score: float) -> SoilStatusEnum:
	if score >= 8:
		return SoilStatusEnum.healthy
	if score >= 6:
		return SoilStatusEnum.fair
	if score >= 4:
		return SoilStatusEnum.not_healthy
	return SoilStatusEnum.critical


def grade_for_score(score: float) -> ParameterGradeEnum:
	if score >= FLAG_THRESHOLD:
		return ParameterGradeEnum.good
	if score >= CRITICAL_THRESHOLD:
		return ParameterGradeEnum.fair
	return ParameterGradeEnum.poor


def _flag(parameter: str, value: float, score: float, optimal: ParameterRange) -> tuple[FlaggedParameter, str | None]:
	direction = RangeDirectionEnum.low if value < optimal.optimal_min else RangeDirectionEnum.high
	position = "below" if direction is RangeDirectionEnum.low else "above"
	note_suffix, suggestion = REMEDIATION[(parameter, direction)]
	flagged = FlaggedParameter(
		parameter=parameter,
		value=round(value, 2),
		score=score,
		optimal_range=optimal.describe(),
		severity=SeverityEnum.critical if score < CRITICAL_THRESHOLD else SeverityEnum.moderate,
		direction=direction,
		note=f"{parameter.capitalize()} is {position} optimal range - {note_suffix}",
	)
	return flagged, suggestion


def score_crop_safety(
	values: SoilValues | Mapping[str, float | None],
	crop: CropProfile | str | None = None,
) -> SafetyScoreResult:
	"""Score one aggregate record (a week, or a current snapshot) for a crop."""
	profile = crop if isinstance(crop, CropProfile) else get_crop_profile(crop)
	lookup = values.as_dict() if isinstance(values, SoilValues) else dict(values)

	total_weighted = 0.0
	total_weight = 0.0
	parameter_scores: dict[str, ParameterScore] = {}
	flagged: list[FlaggedParameter] = []
	suggestions: list[str] = []

	for param in SCORING_ORDER:
		optimal = profile.range_for(param)
		value = lookup.get(param)
		score = calculate_variable_score(value, optimal)
		if value is None or score is None:
			parameter_scores[param] = ParameterScore(optimal_range=optimal.describe(), weight=optimal.weight)
			continue

		total_weighted += score * optimal.weight
		total_weight += optimal.weight
		parameter_scores[param] = ParameterScore(
			value=round(value, 2),
			score=score,
			optimal_range=optimal.describe(),
			weight=optimal.weight,
			grade=grade_for_score(score),
		)

		if score < FLAG_THRESHOLD:
			issue, suggestion = _flag(param, value, score, optimal)
			flagged.append(issue)
			if suggestion is not None and suggestion not in suggestions:
				suggestions.append(suggestion)

	if total_weight == 0:
		return SafetyScoreResult(
			crop_type=profile.name,
			parameter_scores=parameter_scores,
			summary="Insufficient data to calculate crop safety score",
		)

	raw_score = total_weighted / total_weight
	safety_score = max(MIN_SAFETY_SCORE, min(MAX_SCORE, round1(raw_score)))
	return SafetyScoreResult(
		crop_type=profile.name,
		score=safety_score,
		status_label=status_for_score(safety_score),
		parameter_scores=parameter_scores,
		flagged_parameters=flagged,
		suggestions=suggestions,
		summary=(
			"All soil parameters are within optimal range for this crop"
			if not flagged
			else f"{len(flagged)} parameter(s) need attention"
		),
	)
