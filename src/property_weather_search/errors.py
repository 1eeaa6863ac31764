from __future__ import annotations

from typing import Any, Dict, Optional


class PropertySearchError(Exception):
    """Base class for errors raised by the search pipeline."""


class ValidationError(PropertySearchError):
    """A search filter is out of range or not in its closed set (HTTP 400)."""

    def __init__(self, message: str, *, payload: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.payload = dict(payload or {})

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"error": self.message}
        body.update(self.payload)
        return body


class StoreUnavailable(PropertySearchError):
    """The property store could not be read while reloading the snapshot."""


class ProviderError(PropertySearchError):
    """The weather provider failed for one coordinate."""

    def __init__(self, message: str, *, lat: float, lng: float):
        super().__init__(message)
        self.lat = lat
        self.lng = lng


class CacheUnavailable(PropertySearchError):
    """The key-value cache backend could not be reached."""
