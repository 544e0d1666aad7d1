"""
=============================================================================
HTTP STATUS CODES (RFC 7231)
=============================================================================

The status codes the gateway can answer with, plus their reason phrases.

    ┌────────┬───────────────────────────────────────────────────────────┐
    │  2xx   │ 200 OK            - Lookup or echo succeeded              │
    ├────────┼───────────────────────────────────────────────────────────┤
    │  4xx   │ 400 Bad Request   - Malformed request line or headers     │
    │        │ 404 Not Found     - No route, or provider found nothing   │
    │        │ 405 Not Allowed   - Route exists for another method       │
    │        │ 408 Timeout       - Client too slow to send the request   │
    │        │ 413 Too Large     - Request exceeds max_request_size      │
    ├────────┼───────────────────────────────────────────────────────────┤
    │  5xx   │ 500 Internal      - Handler raised                        │
    │        │ 502 Bad Gateway   - Geocoding provider failed             │
    │        │ 505 Version       - Not HTTP/1.0 or HTTP/1.1              │
    └────────┴───────────────────────────────────────────────────────────┘

=============================================================================
"""

from enum import IntEnum


class HTTPStatus(IntEnum):
    """
    HTTP status codes and reason phrases.

    Extends IntEnum, so codes compare equal to plain integers:

        >>> HTTPStatus.OK == 200
        True
        >>> HTTPStatus.BAD_GATEWAY.phrase
        'Bad Gateway'
    """

    OK = 200

    BAD_REQUEST = 400
    NOT_FOUND = 404
    METHOD_NOT_ALLOWED = 405
    REQUEST_TIMEOUT = 408
    PAYLOAD_TOO_LARGE = 413

    INTERNAL_SERVER_ERROR = 500
    BAD_GATEWAY = 502
    HTTP_VERSION_NOT_SUPPORTED = 505

    @property
    def phrase(self) -> str:
        """Reason phrase used in the status line (``HTTP/1.1 200 OK``)."""
        return _STATUS_PHRASES.get(self, "Unknown")


_STATUS_PHRASES = {
    HTTPStatus.OK: "OK",
    HTTPStatus.BAD_REQUEST: "Bad Request",
    HTTPStatus.NOT_FOUND: "Not Found",
    HTTPStatus.METHOD_NOT_ALLOWED: "Method Not Allowed",
    HTTPStatus.REQUEST_TIMEOUT: "Request Timeout",
    HTTPStatus.PAYLOAD_TOO_LARGE: "Payload Too Large",
    HTTPStatus.INTERNAL_SERVER_ERROR: "Internal Server Error",
    HTTPStatus.BAD_GATEWAY: "Bad Gateway",
    HTTPStatus.HTTP_VERSION_NOT_SUPPORTED: "HTTP Version Not Supported",
}
