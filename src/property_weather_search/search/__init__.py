from .engine import SearchEngine, matches_structural, matches_weather
from .filters import FILTER_FIELDS, available_filters, parse_filters

__all__ = [
    "FILTER_FIELDS",
    "SearchEngine",
    "available_filters",
    "matches_structural",
    "matches_weather",
    "parse_filters",
]
