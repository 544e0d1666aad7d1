"""
=============================================================================
HTTP RESPONSE BUILDING
=============================================================================

HTTPResponse is the value every handler returns; ResponseBuilder is the
fluent way to make one; the module-level helpers cover the responses the
gateway actually sends.

    Handler returns          to_bytes()              Connection sends
    HTTPResponse    ─────►   serializes    ─────►    raw bytes

        HTTP/1.1 200 OK\\r\\n
        Content-Type: application/json; charset=utf-8\\r\\n
        Content-Length: 27\\r\\n       ← auto-calculated
        Date: Sun, 18 Oct 2026 ...\\r\\n  ← auto-added
        Server: geogateway/1.0\\r\\n   ← auto-added
        \\r\\n
        {"formatted_address": ...}

=============================================================================
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, Dict, Any, Union
import json

from .status_codes import HTTPStatus


@dataclass
class HTTPResponse:
    """An HTTP response waiting to be serialized."""

    status: HTTPStatus = HTTPStatus.OK
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    version: str = "HTTP/1.1"

    @property
    def status_line(self) -> str:
        """``HTTP-VERSION SP STATUS-CODE SP REASON-PHRASE``"""
        return f"{self.version} {int(self.status)} {self.status.phrase}"

    def to_bytes(self, server_name: str = "geogateway/1.0", include_body: bool = True) -> bytes:
        """
        Serialize the response for ``socket.sendall()``.

        Content-Length, Date and Server are filled in unless the handler
        already set them. With ``include_body=False`` (answers to HEAD)
        the headers still describe the body but the body is not sent.
        """
        response_headers = dict(self.headers)

        if "Content-Length" not in response_headers:
            response_headers["Content-Length"] = str(len(self.body))

        if "Date" not in response_headers:
            response_headers["Date"] = format_http_date(datetime.now(timezone.utc))

        if "Server" not in response_headers:
            response_headers["Server"] = server_name

        lines = [self.status_line]
        for name, value in response_headers.items():
            lines.append(f"{name}: {value}")
        lines.append("")

        header_bytes = "\r\n".join(lines).encode("utf-8") + b"\r\n"
        if not include_body:
            return header_bytes
        return header_bytes + self.body


class ResponseBuilder:
    """
    Fluent builder for HTTP responses.

        response = (ResponseBuilder()
            .status(HTTPStatus.OK)
            .json({"lat": 34.05, "lng": -118.24})
            .build())
    """

    def __init__(self):
        self._status = HTTPStatus.OK
        self._headers: Dict[str, str] = {}
        self._body = b""

    def status(self, status: HTTPStatus) -> "ResponseBuilder":
        self._status = status
        return self

    def header(self, name: str, value: str) -> "ResponseBuilder":
        self._headers[name] = value
        return self

    def body(self, body: Union[str, bytes]) -> "ResponseBuilder":
        if isinstance(body, str):
            self._body = body.encode("utf-8")
        else:
            self._body = body
        return self

    def text(self, text: str, content_type: str = "text/plain; charset=utf-8") -> "ResponseBuilder":
        self._body = text.encode("utf-8")
        self._headers["Content-Type"] = content_type
        return self

    def json(self, data: Any) -> "ResponseBuilder":
        """Serialize ``data`` as the JSON body and set Content-Type."""
        self._body = json.dumps(data, ensure_ascii=False).encode("utf-8")
        self._headers["Content-Type"] = "application/json; charset=utf-8"
        return self

    def close_connection(self) -> "ResponseBuilder":
        """Ask the client to close the connection after this response."""
        self._headers["Connection"] = "close"
        return self

    def build(self) -> HTTPResponse:
        return HTTPResponse(
            status=self._status,
            headers=self._headers,
            body=self._body,
        )


def format_http_date(dt: datetime) -> str:
    """
    Format a datetime as an RFC 7231 HTTP-date.

    Example: ``Sun, 18 Oct 2026 12:00:00 GMT``. Always GMT.
    """
    days = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]
    months = ["Jan", "Feb", "Mar", "Apr", "May", "Jun",
              "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]

    return (
        f"{days[dt.weekday()]}, "
        f"{dt.day:02d} {months[dt.month - 1]} {dt.year} "
        f"{dt.hour:02d}:{dt.minute:02d}:{dt.second:02d} GMT"
    )


# =============================================================================
# CONVENIENCE FUNCTIONS
# =============================================================================

def ok(body: Union[str, bytes, dict, list] = "", content_type: Optional[str] = None) -> HTTPResponse:
    """
    200 OK. dict/list bodies become JSON, str bodies plain text.
    """
    builder = ResponseBuilder().status(HTTPStatus.OK)

    if isinstance(body, (dict, list)):
        builder.json(body)
    elif isinstance(body, str):
        builder.text(body, content_type or "text/plain; charset=utf-8")
    else:
        builder.body(body)
        if content_type:
            builder.header("Content-Type", content_type)

    return builder.build()


def error(http_status: HTTPStatus, message: str, **extra: Any) -> HTTPResponse:
    """
    JSON error body ``{"error": message, ...extra}`` with the given status.

    ``extra`` may carry its own ``status`` key, e.g. the provider status
    of an empty lookup.
    """
    return ResponseBuilder().status(http_status).json({"error": message, **extra}).build()


def not_found(message: str = "Not Found", **extra: Any) -> HTTPResponse:
    return error(HTTPStatus.NOT_FOUND, message, **extra)


def method_not_allowed(allowed_methods: list[str]) -> HTTPResponse:
    """
    405 Method Not Allowed with the ``Allow`` header RFC 7231 requires.
    """
    return (ResponseBuilder()
        .status(HTTPStatus.METHOD_NOT_ALLOWED)
        .header("Allow", ", ".join(allowed_methods))
        .json({"error": "Method Not Allowed", "allowed": allowed_methods})
        .build())


def bad_gateway(message: str = "Bad Gateway") -> HTTPResponse:
    """502 Bad Gateway, for failures of the upstream geocoding provider."""
    return error(HTTPStatus.BAD_GATEWAY, message)


def internal_error(message: str = "Internal Server Error") -> HTTPResponse:
    return error(HTTPStatus.INTERNAL_SERVER_ERROR, message)
