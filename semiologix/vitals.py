import re
from enum import Enum
from typing import List, Sequence

from semiologix.schemas import AnamnesisData, Diagnosis


class VitalStatus(str, Enum):
    NORMAL = "normal"
    ATTENTION = "attention"
    ALTERED = "altered"
    UNKNOWN = "unknown"


def _parse_numeric(value: str) -> float | None:
    cleaned = re.sub(r"[^0-9.]", "", value.replace(",", ".", 1))
    match = re.match(r"\d*\.?\d+", cleaned)
    return float(match.group()) if match else None


def _blood_pressure(value: str) -> VitalStatus:
    parts = value.split("/")
    if len(parts) != 2:
        return VitalStatus.UNKNOWN
    systolic, diastolic = _parse_numeric(parts[0]), _parse_numeric(parts[1])
    if systolic is None or diastolic is None:
        return VitalStatus.UNKNOWN
    if systolic >= 140 or diastolic >= 90 or systolic < 90 or diastolic < 60:
        return VitalStatus.ALTERED
    if 130 <= systolic <= 139 or 80 <= diastolic <= 89:
        return VitalStatus.ATTENTION
    return VitalStatus.NORMAL


def _heart_rate(n: float) -> VitalStatus:
    if n < 50 or n > 120:
        return VitalStatus.ALTERED
    if n < 60 or n > 100:
        return VitalStatus.ATTENTION
    return VitalStatus.NORMAL


def _respiratory_rate(n: float) -> VitalStatus:
    if n < 12 or n > 25:
        return VitalStatus.ALTERED
    if n >= 21:
        return VitalStatus.ATTENTION
    return VitalStatus.NORMAL


def _temperature(n: float) -> VitalStatus:
    if n < 35.5 or n > 38.0:
        return VitalStatus.ALTERED
    if n >= 37.5:
        return VitalStatus.ATTENTION
    return VitalStatus.NORMAL


def _spo2(n: float) -> VitalStatus:
    if n < 90:
        return VitalStatus.ALTERED
    if n <= 94:
        return VitalStatus.ATTENTION
    return VitalStatus.NORMAL


_NUMERIC_RULES = {
    "FC": _heart_rate,
    "FR": _respiratory_rate,
    "Temp": _temperature,
    "SpO2": _spo2,
}


def classify_vital(label: str, value: str) -> VitalStatus:
    """Classify a vital sign (PA, FC, FR, Temp, SpO2) as entered in the form."""
    if not value or not value.strip():
        return VitalStatus.UNKNOWN
    if label == "PA":
        return _blood_pressure(value)
    rule = _NUMERIC_RULES.get(label)
    if rule is None:
        return VitalStatus.UNKNOWN
    number = _parse_numeric(value)
    if number is None:
        return VitalStatus.UNKNOWN
    return rule(number)


def vital_signs(data: AnamnesisData) -> dict:
    readings = {
        "PA": data.blood_pressure,
        "FC": data.heart_rate,
        "FR": data.respiratory_rate,
        "Temp": data.temperature,
        "SpO2": data.spo2,
    }
    return {
        label: {"value": value, "status": classify_vital(label, value).value}
        for label, value in readings.items()
    }


def probability_band(probability: int) -> str:
    if probability > 70:
        return "high"
    if probability > 40:
        return "moderate"
    return "low"


def top_diagnoses(ranked: Sequence[Diagnosis], limit: int = 3) -> List[Diagnosis]:
    return list(ranked[:limit])
