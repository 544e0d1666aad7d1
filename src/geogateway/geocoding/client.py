"""
=============================================================================
GEOCODING CLIENT
=============================================================================

The collaborator behind the /geocode route. A lookup takes a query type
and a value and ends in a GeocodeOutcome; failures never escape as
exceptions past ``lookup()``.

    ┌─────────────────────────────────────────────────────────────────────┐
    │   lookup(QueryType.ADDRESS, "Los Angeles")                           │
    │        │                                                             │
    │        ▼                                                             │
    │   fetch()          FixtureGeocoder: read the payload file            │
    │        │           LiveGeocoder:    GET provider_url?address=...     │
    │        │                                   UpstreamError ──┐         │
    │        ▼                                                   │         │
    │   parse_payload()                          PayloadError ───┤         │
    │        │                                                   │         │
    │        ▼                                                   ▼         │
    │   OK (results[0])  |  EMPTY (no results)  |  ERROR (logged)          │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

import json
import logging
from abc import ABC, abstractmethod
from enum import Enum
from pathlib import Path
from typing import Optional, Union
from urllib.parse import urlencode

import requests

from .models import GeocodeOutcome, GeocodeResponse, PayloadShapeError
from ..config import GatewayConfig


logger = logging.getLogger(__name__)


# Provider statuses that mean the request itself failed, as opposed to
# ZERO_RESULTS which is an empty answer.
PROVIDER_ERROR_STATUSES = frozenset({
    "INVALID_REQUEST",
    "OVER_DAILY_LIMIT",
    "OVER_QUERY_LIMIT",
    "REQUEST_DENIED",
    "UNKNOWN_ERROR",
})


class QueryType(Enum):
    """Which provider parameter a lookup sets."""

    ADDRESS = "address"
    LATLNG = "latlng"


class GeocodingError(Exception):
    """Base class for lookup failures."""


class UpstreamError(GeocodingError):
    """
    The provider could not be reached or answered with an error.

    Attributes:
        status_code: HTTP status from the provider, if one was received.
    """

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class PayloadError(GeocodingError):
    """The provider's body is not a usable geocoding payload."""


def parse_payload(raw: Union[bytes, str]) -> GeocodeResponse:
    """
    Decode a provider body into a GeocodeResponse.

    Raises:
        PayloadError: If the body is not JSON or not the expected shape.
    """
    try:
        data = json.loads(raw)
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise PayloadError(f"Malformed provider payload: {e}") from e

    try:
        return GeocodeResponse.from_dict(data)
    except PayloadShapeError as e:
        raise PayloadError(f"Unexpected provider payload: {e}") from e


class Geocoder(ABC):
    """
    A geocoding backend. Subclasses only implement ``fetch()``.
    """

    @abstractmethod
    def fetch(self, query_type: QueryType, value: str) -> bytes:
        """
        Return the raw provider body for one query.

        Raises:
            UpstreamError: If no body could be obtained.
        """

    def geocode(self, query_type: QueryType, value: str) -> GeocodeResponse:
        """
        Fetch and decode. Raises GeocodingError subclasses.
        """
        response = parse_payload(self.fetch(query_type, value))

        if response.status in PROVIDER_ERROR_STATUSES:
            raise UpstreamError(f"Provider returned status {response.status}")

        return response

    def lookup(self, query_type: QueryType, value: str) -> GeocodeOutcome:
        """Geocode and reduce to an outcome. Never raises GeocodingError."""
        try:
            response = self.geocode(query_type, value)
        except GeocodingError as e:
            logger.error(f"Geocoding {query_type.value}={value!r} failed: {e}")
            return GeocodeOutcome.failed(e)

        outcome = GeocodeOutcome.from_response(response)
        if not outcome.ok:
            logger.info(f"No results for {query_type.value}={value!r} (status {outcome.status})")
        return outcome


class FixtureGeocoder(Geocoder):
    """
    Answers every query from a saved provider payload.

    The file is read on each call, so it can be swapped while the gateway
    runs. The query value is ignored: every address gets the same answer.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def fetch(self, query_type: QueryType, value: str) -> bytes:
        logger.debug(f"Serving {query_type.value}={value!r} from fixture {self.path}")
        try:
            return self.path.read_bytes()
        except OSError as e:
            raise UpstreamError(f"Cannot read fixture {self.path}: {e}") from e


class LiveGeocoder(Geocoder):
    """
    Calls the Google Geocoding API.

        GET https://maps.googleapis.com/maps/api/geocode/json?address=...&key=...
    """

    def __init__(self, api_key: str, base_url: str, timeout: float = 10.0):
        self.api_key = api_key
        self.base_url = base_url
        self.timeout = timeout

    def build_url(self, query_type: QueryType, value: str) -> str:
        query = urlencode({query_type.value: value, "key": self.api_key})
        return f"{self.base_url}?{query}"

    def _redacted(self, url: str) -> str:
        if not self.api_key:
            return url
        return url.replace(urlencode({"key": self.api_key}), "key=REDACTED")

    def fetch(self, query_type: QueryType, value: str) -> bytes:
        url = self.build_url(query_type, value)
        logger.info(f"About to call: {self._redacted(url)}")

        try:
            response = requests.get(url, timeout=self.timeout)
        except requests.exceptions.Timeout as e:
            raise UpstreamError(f"Provider timed out after {self.timeout}s") from e
        except requests.exceptions.RequestException as e:
            raise UpstreamError(f"Provider request failed: {e}") from e

        if response.status_code != 200:
            raise UpstreamError(
                f"Provider answered HTTP {response.status_code}",
                status_code=response.status_code,
            )

        return response.content


def geocoder_from_config(config: GatewayConfig) -> Geocoder:
    """Pick the backend named by ``config.geocode_mode``."""
    if config.geocode_mode == "live":
        if not config.google_api_key:
            logger.warning("GEOCODE_MODE is live but GOOGLE_API_KEY is empty")
        return LiveGeocoder(
            api_key=config.google_api_key,
            base_url=config.provider_url,
            timeout=config.provider_timeout,
        )

    return FixtureGeocoder(config.fixture_path)
