"""
Unit tests for the geocoding collaborator.
"""

import json
from unittest.mock import Mock, patch

import pytest
import requests

from geogateway.config import GatewayConfig
from geogateway.geocoding import (
    QueryType,
    GeocodingError,
    UpstreamError,
    PayloadError,
    FixtureGeocoder,
    LiveGeocoder,
    parse_payload,
    geocoder_from_config,
    GeocodeResponse,
    GeocodeOutcome,
    OutcomeKind,
)


PROVIDER_URL = "https://maps.googleapis.com/maps/api/geocode/json"


def provider_response(payload, status_code: int = 200) -> Mock:
    response = Mock()
    response.status_code = status_code
    response.content = json.dumps(payload).encode() if not isinstance(payload, bytes) else payload
    return response


def live_geocoder(api_key: str = "test-key") -> LiveGeocoder:
    return LiveGeocoder(api_key=api_key, base_url=PROVIDER_URL, timeout=3.0)


class TestQueryType:

    def test_values_are_provider_parameters(self):
        assert QueryType.ADDRESS.value == "address"
        assert QueryType.LATLNG.value == "latlng"

    def test_unknown_query_type_rejected(self):
        with pytest.raises(ValueError):
            QueryType("postcode")


class TestParsePayload:

    def test_parses_results(self, la_payload):
        response = parse_payload(json.dumps(la_payload))

        assert response.status == "OK"
        assert len(response.results) == 1
        result = response.results[0]
        assert result.formatted_address == "Los Angeles, CA, USA"
        assert result.geometry.location.lat == 34.0522342
        assert result.geometry.location.lng == -118.2436849
        assert result.geometry.location_type == "APPROXIMATE"

    def test_result_keeps_only_known_fields(self, la_payload):
        result = parse_payload(json.dumps(la_payload)).results[0]

        assert result.to_dict() == {
            "geometry": {
                "location": {"lat": 34.0522342, "lng": -118.2436849},
                "location_type": "APPROXIMATE",
            },
            "formatted_address": "Los Angeles, CA, USA",
        }

    def test_integer_coordinates_accepted(self):
        payload = {"results": [{"geometry": {"location": {"lat": 34, "lng": -118}}}], "status": "OK"}
        location = parse_payload(json.dumps(payload)).results[0].geometry.location

        assert (location.lat, location.lng) == (34.0, -118.0)

    def test_empty_results(self, empty_payload):
        response = parse_payload(json.dumps(empty_payload))

        assert response.results == []
        assert response.status == "ZERO_RESULTS"

    def test_malformed_json(self):
        with pytest.raises(PayloadError):
            parse_payload(b"<html>oops</html>")

    def test_not_utf8(self):
        with pytest.raises(PayloadError):
            parse_payload(b"\xff\xfe\x00")

    @pytest.mark.parametrize("payload", [
        [],
        {"results": "none"},
        {"results": [{"formatted_address": "no geometry"}]},
        {"results": [{"geometry": {"location": {"lat": "34", "lng": -118}}}]},
    ])
    def test_wrong_shape(self, payload):
        with pytest.raises(PayloadError):
            parse_payload(json.dumps(payload))

    def test_errors_share_a_base_class(self):
        assert issubclass(PayloadError, GeocodingError)
        assert issubclass(UpstreamError, GeocodingError)


class TestGeocodeOutcome:

    def test_from_response_with_results(self, la_payload):
        outcome = GeocodeOutcome.from_response(GeocodeResponse.from_dict(la_payload))

        assert outcome.kind is OutcomeKind.OK
        assert outcome.ok
        assert outcome.result.formatted_address == "Los Angeles, CA, USA"

    def test_from_response_without_results(self, empty_payload):
        outcome = GeocodeOutcome.from_response(GeocodeResponse.from_dict(empty_payload))

        assert outcome.kind is OutcomeKind.EMPTY
        assert outcome.result is None
        assert outcome.status == "ZERO_RESULTS"

    def test_failed(self):
        error = UpstreamError("down")
        outcome = GeocodeOutcome.failed(error)

        assert outcome.kind is OutcomeKind.ERROR
        assert outcome.error is error
        assert not outcome.ok


class TestFixtureGeocoder:

    def test_same_answer_for_any_query(self, write_payload, la_payload):
        geocoder = FixtureGeocoder(write_payload(la_payload))

        first = geocoder.lookup(QueryType.ADDRESS, "anything")
        second = geocoder.lookup(QueryType.ADDRESS, "other")
        reverse = geocoder.lookup(QueryType.LATLNG, "1,2")

        assert first.ok and second.ok and reverse.ok
        assert first.result == second.result == reverse.result

    def test_empty_fixture(self, write_payload, empty_payload):
        outcome = FixtureGeocoder(write_payload(empty_payload)).lookup(QueryType.ADDRESS, "x")
        assert outcome.kind is OutcomeKind.EMPTY

    def test_missing_fixture_is_an_error(self, tmp_path):
        outcome = FixtureGeocoder(tmp_path / "missing.json").lookup(QueryType.ADDRESS, "x")

        assert outcome.kind is OutcomeKind.ERROR
        assert isinstance(outcome.error, UpstreamError)

    def test_malformed_fixture_is_an_error(self, write_payload, caplog):
        outcome = FixtureGeocoder(write_payload("{not json")).lookup(QueryType.ADDRESS, "x")

        assert outcome.kind is OutcomeKind.ERROR
        assert isinstance(outcome.error, PayloadError)
        assert "failed" in caplog.text

    def test_fixture_is_reread_each_call(self, write_payload, la_payload, empty_payload):
        path = write_payload(la_payload)
        geocoder = FixtureGeocoder(path)
        assert geocoder.lookup(QueryType.ADDRESS, "x").ok

        path.write_text(json.dumps(empty_payload))
        assert geocoder.lookup(QueryType.ADDRESS, "x").kind is OutcomeKind.EMPTY


class TestLiveGeocoder:

    def test_build_url(self):
        url = live_geocoder().build_url(QueryType.ADDRESS, "Los Angeles")
        assert url == f"{PROVIDER_URL}?address=Los+Angeles&key=test-key"

    def test_build_reverse_url(self):
        url = live_geocoder().build_url(QueryType.LATLNG, "34.05,-118.24")
        assert url.startswith(f"{PROVIDER_URL}?latlng=34.05%2C-118.24&")

    @patch("geogateway.geocoding.client.requests.get")
    def test_lookup_success(self, mock_get, la_payload):
        mock_get.return_value = provider_response(la_payload)

        outcome = live_geocoder().lookup(QueryType.ADDRESS, "Los Angeles")

        assert outcome.ok
        assert outcome.result.formatted_address == "Los Angeles, CA, USA"
        mock_get.assert_called_once_with(
            f"{PROVIDER_URL}?address=Los+Angeles&key=test-key", timeout=3.0
        )

    @patch("geogateway.geocoding.client.requests.get")
    def test_logs_url_without_key(self, mock_get, la_payload, caplog):
        mock_get.return_value = provider_response(la_payload)

        with caplog.at_level("INFO", logger="geogateway.geocoding.client"):
            live_geocoder("very-secret").lookup(QueryType.ADDRESS, "Los Angeles")

        assert "About to call" in caplog.text
        assert "address=Los+Angeles" in caplog.text
        assert "very-secret" not in caplog.text

    @patch("geogateway.geocoding.client.requests.get")
    def test_zero_results(self, mock_get, empty_payload):
        mock_get.return_value = provider_response(empty_payload)

        outcome = live_geocoder().lookup(QueryType.ADDRESS, "Atlantis")

        assert outcome.kind is OutcomeKind.EMPTY
        assert outcome.status == "ZERO_RESULTS"

    @patch("geogateway.geocoding.client.requests.get")
    def test_non_200(self, mock_get):
        mock_get.return_value = provider_response(b"Service Unavailable", status_code=503)

        outcome = live_geocoder().lookup(QueryType.ADDRESS, "Los Angeles")

        assert outcome.kind is OutcomeKind.ERROR
        assert isinstance(outcome.error, UpstreamError)
        assert outcome.error.status_code == 503

    @patch("geogateway.geocoding.client.requests.get")
    def test_network_failure(self, mock_get):
        mock_get.side_effect = requests.exceptions.ConnectionError("unreachable")

        outcome = live_geocoder().lookup(QueryType.ADDRESS, "Los Angeles")

        assert outcome.kind is OutcomeKind.ERROR
        assert isinstance(outcome.error, UpstreamError)

    @patch("geogateway.geocoding.client.requests.get")
    def test_timeout(self, mock_get):
        mock_get.side_effect = requests.exceptions.Timeout()

        outcome = live_geocoder().lookup(QueryType.ADDRESS, "Los Angeles")

        assert "timed out" in str(outcome.error)

    @patch("geogateway.geocoding.client.requests.get")
    def test_provider_error_status(self, mock_get):
        mock_get.return_value = provider_response(
            {"results": [], "status": "REQUEST_DENIED", "error_message": "The provided API key is invalid."}
        )

        outcome = live_geocoder().lookup(QueryType.ADDRESS, "Los Angeles")

        assert outcome.kind is OutcomeKind.ERROR
        assert "REQUEST_DENIED" in str(outcome.error)

    @patch("geogateway.geocoding.client.requests.get")
    def test_geocode_raises_instead_of_returning_outcome(self, mock_get):
        mock_get.return_value = provider_response(b"garbage")

        with pytest.raises(PayloadError):
            live_geocoder().geocode(QueryType.ADDRESS, "Los Angeles")


class TestGeocoderFromConfig:

    def test_fixture_mode(self):
        geocoder = geocoder_from_config(GatewayConfig(fixture_path="/tmp/x.json"))

        assert isinstance(geocoder, FixtureGeocoder)
        assert str(geocoder.path) == "/tmp/x.json"

    def test_live_mode(self):
        config = GatewayConfig(geocode_mode="live", google_api_key="k", provider_timeout=4.0)
        geocoder = geocoder_from_config(config)

        assert isinstance(geocoder, LiveGeocoder)
        assert geocoder.api_key == "k"
        assert geocoder.base_url == PROVIDER_URL
        assert geocoder.timeout == 4.0
