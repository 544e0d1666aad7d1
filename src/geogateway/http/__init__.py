"""
HTTP protocol layer: request parsing, response building, routing.
"""

from .request import HTTPRequest, RequestParser, HTTPParseError
from .response import (
    HTTPResponse,
    ResponseBuilder,
    ok,                  # 200 OK
    error,               # any status, JSON error body
    not_found,           # 404 Not Found
    method_not_allowed,  # 405 Method Not Allowed
    bad_gateway,         # 502 Bad Gateway
    internal_error,      # 500 Internal Server Error
)
from .router import Router, Route, RouteMatch
from .status_codes import HTTPStatus

__all__ = [
    "HTTPRequest",
    "RequestParser",
    "HTTPParseError",

    "HTTPResponse",
    "ResponseBuilder",

    "ok",
    "error",
    "not_found",
    "method_not_allowed",
    "bad_gateway",
    "internal_error",

    "Router",
    "Route",
    "RouteMatch",

    "HTTPStatus",
]
