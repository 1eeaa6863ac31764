from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Dict, Literal, Mapping, Optional, Tuple

from property_weather_search.errors import ValidationError
from property_weather_search.models import (
    HUMIDITY_RANGE,
    TEMPERATURE_RANGE,
    WEATHER_CONDITIONS,
    SearchFilters,
)


FieldType = Literal["str", "float", "enum"]

DEFAULT_LIMIT = 20
MAX_LIMIT = 100


@dataclass(frozen=True)
class FieldDefinition:
    name: str
    attr: str
    type: FieldType
    ui_label: str
    bounds: Optional[Tuple[float, float]] = None
    unit: str = ""


# Query-string filters accepted by /get-properties.
FILTER_FIELDS: Dict[str, FieldDefinition] = {
    "searchText": FieldDefinition(
        name="searchText", attr="search_text", type="str", ui_label="Name"
    ),
    "city": FieldDefinition(name="city", attr="city", type="str", ui_label="City"),
    "state": FieldDefinition(name="state", attr="state", type="str", ui_label="State"),
    "tempMin": FieldDefinition(
        name="tempMin",
        attr="temp_min",
        type="float",
        ui_label="Temperature min",
        bounds=TEMPERATURE_RANGE,
        unit="°C",
    ),
    "tempMax": FieldDefinition(
        name="tempMax",
        attr="temp_max",
        type="float",
        ui_label="Temperature max",
        bounds=TEMPERATURE_RANGE,
        unit="°C",
    ),
    "humidityMin": FieldDefinition(
        name="humidityMin",
        attr="humidity_min",
        type="float",
        ui_label="Humidity min",
        bounds=HUMIDITY_RANGE,
        unit="%",
    ),
    "humidityMax": FieldDefinition(
        name="humidityMax",
        attr="humidity_max",
        type="float",
        ui_label="Humidity max",
        bounds=HUMIDITY_RANGE,
        unit="%",
    ),
    "weatherCondition": FieldDefinition(
        name="weatherCondition",
        attr="weather_condition",
        type="enum",
        ui_label="Weather condition",
    ),
}


def _blank(raw: Any) -> bool:
    return raw is None or (isinstance(raw, str) and not raw.strip())


def _coerce_float(field: FieldDefinition, raw: Any) -> float:
    try:
        value = float(str(raw).strip())
    except ValueError:
        raise ValidationError(f"{field.ui_label} must be a number")
    if math.isnan(value) or math.isinf(value):
        raise ValidationError(f"{field.ui_label} must be a number")
    if field.bounds is not None:
        lo, hi = field.bounds
        if value < lo or value > hi:
            raise ValidationError(
                f"{field.ui_label} must be between {lo}{field.unit} and {hi}{field.unit}"
            )
    return value


def _coerce_enum(field: FieldDefinition, raw: Any) -> str:
    value = str(raw).strip()
    if value not in WEATHER_CONDITIONS:
        raise ValidationError(
            "Invalid weather condition",
            payload={"validConditions": list(WEATHER_CONDITIONS)},
        )
    return value


def _coerce_int(name: str, raw: Any, default: int) -> int:
    if _blank(raw):
        return default
    try:
        return int(str(raw).strip())
    except ValueError:
        raise ValidationError(f"{name} must be an integer")


def parse_filters(params: Mapping[str, Any]) -> SearchFilters:
    """Translate query-string parameters into SearchFilters.

    Blank values are treated as absent. Raises ValidationError on the first
    out-of-range or malformed value.
    """

    values: Dict[str, Any] = {}
    for name, field in FILTER_FIELDS.items():
        raw = params.get(name)
        if _blank(raw):
            continue
        if field.type == "float":
            values[field.attr] = _coerce_float(field, raw)
        elif field.type == "enum":
            values[field.attr] = _coerce_enum(field, raw)
        else:
            values[field.attr] = str(raw).strip()

    limit = _coerce_int("limit", params.get("limit"), DEFAULT_LIMIT)
    offset = _coerce_int("offset", params.get("offset"), 0)
    values["limit"] = max(1, min(limit, MAX_LIMIT))
    values["offset"] = max(0, offset)
    return SearchFilters(**values)


def available_filters() -> Dict[str, Any]:
    return {
        "weatherConditions": list(WEATHER_CONDITIONS),
        "temperatureRange": {"min": TEMPERATURE_RANGE[0], "max": TEMPERATURE_RANGE[1]},
        "humidityRange": {"min": HUMIDITY_RANGE[0], "max": HUMIDITY_RANGE[1]},
    }
