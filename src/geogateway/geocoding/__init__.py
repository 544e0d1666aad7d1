"""
Geocoding collaborator: provider payload models and the fixture/live
backends.
"""

from .client import (
    QueryType,
    GeocodingError,
    UpstreamError,
    PayloadError,
    Geocoder,
    FixtureGeocoder,
    LiveGeocoder,
    parse_payload,
    geocoder_from_config,
)
from .models import (
    Location,
    Geometry,
    GeocodeResult,
    GeocodeResponse,
    GeocodeOutcome,
    OutcomeKind,
)

__all__ = [
    "QueryType",
    "GeocodingError",
    "UpstreamError",
    "PayloadError",
    "Geocoder",
    "FixtureGeocoder",
    "LiveGeocoder",
    "parse_payload",
    "geocoder_from_config",

    "Location",
    "Geometry",
    "GeocodeResult",
    "GeocodeResponse",
    "GeocodeOutcome",
    "OutcomeKind",
]
