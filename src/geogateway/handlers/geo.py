"""
=============================================================================
GEOCODING HANDLERS
=============================================================================

The three routes of the gateway.

    ┌──────────────────────┬──────────────────────────────────────────────┐
    │ Route                │ Response                                      │
    ├──────────────────────┼──────────────────────────────────────────────┤
    │ /                    │ 200 text  "Server is up and running!\\n"     │
    │ /geocode/{address}   │ 200 JSON  first result of the lookup          │
    │                      │ 404 JSON  lookup found nothing                │
    │                      │ 502 JSON  provider failed                     │
    │ /geoloc/{lat},{lng}  │ 200 text  echo of the captured parameters     │
    └──────────────────────┴──────────────────────────────────────────────┘

No route restricts the method. Path values are passed through as strings,
unvalidated.

=============================================================================
"""

from ..geocoding.client import Geocoder, QueryType
from ..geocoding.models import OutcomeKind
from ..http.request import HTTPRequest
from ..http.response import HTTPResponse, ok, not_found, bad_gateway


LIVENESS_MESSAGE = "Server is up and running!\n"


class GeoHandlers:
    """
    Route handlers bound to one geocoding backend.

        handlers = GeoHandlers(FixtureGeocoder("data/LA.json"))
        router.add_route("/", handlers.home)
        router.add_route("/geocode/{address}", handlers.geocode)
        router.add_route("/geoloc/{lat},{lng}", handlers.geoloc)
    """

    def __init__(self, geocoder: Geocoder):
        self.geocoder = geocoder

    def home(self, request: HTTPRequest) -> HTTPResponse:
        return ok(LIVENESS_MESSAGE)

    def geocode(self, request: HTTPRequest) -> HTTPResponse:
        """
        Look up the address and return only the first result.

        Extra provider fields are dropped; the body is exactly
        ``{"geometry": {...}, "formatted_address": ...}``.
        """
        address = request.path_params.get("address", "")
        outcome = self.geocoder.lookup(QueryType.ADDRESS, address)

        if outcome.kind is OutcomeKind.OK:
            return ok(outcome.result.to_dict())

        if outcome.kind is OutcomeKind.EMPTY:
            return not_found("no results", status=outcome.status)

        return bad_gateway(str(outcome.error))

    def geoloc(self, request: HTTPRequest) -> HTTPResponse:
        """Echo the captured coordinates as text."""
        return ok(f"{request.path_params}\n")
