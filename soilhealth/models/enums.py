"""Enumerations shared by the aggregation, scoring and history components.

Values are the exact strings emitted in API payloads, so renaming a member
is a wire-format change.
"""

from enum import StrEnum

# ── Soil parameters ─────────────────────────────────────────────────────────


class SoilParameterEnum(StrEnum):
    """The eight soil/environment channels reported by every sensor."""

    temperature = "temperature"
    moisture = "moisture"
    ec = "ec"
    ph = "ph"
    nitrogen = "nitrogen"
    phosphorus = "phosphorus"
    potassium = "potassium"
    salinity = "salinity"


# ── Scoring ─────────────────────────────────────────────────────────────────


class SoilStatusEnum(StrEnum):
    """Overall status label derived from the crop safety score."""

    healthy = "Healthy"
    fair = "Fair"
    not_healthy = "Not Healthy"
    critical = "Critical"


class SeverityEnum(StrEnum):
    """Impact of a flagged parameter (score < 4 is critical)."""

    critical = "Critical"
    moderate = "Moderate"


class ParameterGradeEnum(StrEnum):
    good = "Good"
    fair = "Fair"
    poor = "Poor"


class RangeDirectionEnum(StrEnum):
    low = "low"
    high = "high"


# ── Cultivation history ─────────────────────────────────────────────────────


class CultivationStatusEnum(StrEnum):
    """Coarse weekly watering / nutrient label on the cultivation timeline."""

    appropriate = "appropriate"
    warning = "warning"
    critical = "critical"
    pending = "pending"


# ── Weekly reference analysis ───────────────────────────────────────────────


class WateringAdviceEnum(StrEnum):
    pending = "Pending"
    appropriate = "Appropriate"
    needs_more_water = "Needs More Water"
    reduce_watering = "Reduce Watering"


class NutrientAdviceEnum(StrEnum):
    pending = "Pending"
    appropriate = "Appropriate"
    low = "Low - Needs Fertilizer"
    high = "High - Reduce Fertilizer"


class ReferenceStatusEnum(StrEnum):
    pending = "Pending"
    healthy = "Healthy"
    not_healthy = "Not Healthy"
