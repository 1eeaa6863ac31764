"""Property search enriched with live weather conditions."""

__version__ = "1.0.0"
