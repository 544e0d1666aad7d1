"""
Typed view of the geocoding provider's payload.

    {
      "results": [
        {
          "geometry": {
            "location": {"lat": 34.0522342, "lng": -118.2436849},
            "location_type": "APPROXIMATE"
          },
          "formatted_address": "Los Angeles, CA, USA"
        }
      ],
      "status": "OK"
    }

Only the fields above are kept. ``to_dict()`` re-serializes a result with
exactly these fields, whatever else the provider sent.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class PayloadShapeError(ValueError):
    """The payload is valid JSON but not the provider's shape."""


def _require(data: Any, key: str, kind: type, where: str) -> Any:
    if not isinstance(data, dict) or key not in data:
        raise PayloadShapeError(f"missing '{key}' in {where}")
    value = data[key]
    if kind is float and isinstance(value, int) and not isinstance(value, bool):
        value = float(value)
    if not isinstance(value, kind):
        raise PayloadShapeError(f"'{key}' in {where} is not {kind.__name__}")
    return value


@dataclass
class Location:
    lat: float
    lng: float

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Location":
        return cls(
            lat=_require(data, "lat", float, "location"),
            lng=_require(data, "lng", float, "location"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"lat": self.lat, "lng": self.lng}


@dataclass
class Geometry:
    location: Location
    location_type: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Geometry":
        return cls(
            location=Location.from_dict(_require(data, "location", dict, "geometry")),
            location_type=data.get("location_type", ""),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"location": self.location.to_dict(), "location_type": self.location_type}


@dataclass
class GeocodeResult:
    geometry: Geometry
    formatted_address: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GeocodeResult":
        return cls(
            geometry=Geometry.from_dict(_require(data, "geometry", dict, "result")),
            formatted_address=data.get("formatted_address", ""),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "geometry": self.geometry.to_dict(),
            "formatted_address": self.formatted_address,
        }


@dataclass
class GeocodeResponse:
    """A whole provider response: the result list and the status string."""

    results: List[GeocodeResult] = field(default_factory=list)
    status: str = ""

    @classmethod
    def from_dict(cls, data: Any) -> "GeocodeResponse":
        if not isinstance(data, dict):
            raise PayloadShapeError("payload is not a JSON object")

        raw_results = data.get("results", [])
        if not isinstance(raw_results, list):
            raise PayloadShapeError("'results' is not a list")

        return cls(
            results=[GeocodeResult.from_dict(item) for item in raw_results],
            status=str(data.get("status", "")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "results": [result.to_dict() for result in self.results],
            "status": self.status,
        }


class OutcomeKind(Enum):
    OK = "ok"
    EMPTY = "empty"
    ERROR = "error"


@dataclass
class GeocodeOutcome:
    """
    What a lookup produced: the first result, no results, or an error.

    Handlers branch on ``kind`` instead of indexing into ``results``.
    """

    kind: OutcomeKind
    result: Optional[GeocodeResult] = None
    status: str = ""
    error: Optional[Exception] = None

    @classmethod
    def from_response(cls, response: GeocodeResponse) -> "GeocodeOutcome":
        if not response.results:
            return cls(kind=OutcomeKind.EMPTY, status=response.status)
        return cls(kind=OutcomeKind.OK, result=response.results[0], status=response.status)

    @classmethod
    def failed(cls, error: Exception) -> "GeocodeOutcome":
        return cls(kind=OutcomeKind.ERROR, error=error)

    @property
    def ok(self) -> bool:
        return self.kind is OutcomeKind.OK
