"""
=============================================================================
LOGGING MIDDLEWARE
=============================================================================

Writes one access-log line per inbound request, before the request is
dispatched to the router:

    TEXT (default):
        2026-10-18 10:55:36 [INFO] geogateway.access: GET /geocode/Los%20Angeles

    JSON:
        {"request_id": "a1b2c3d4", "method": "GET",
         "uri": "/geocode/Los%20Angeles", "client_ip": "127.0.0.1"}

The line is emitted before ``next`` is called, so a request that later
crashes its handler or is cut off by shutdown is still on record.

=============================================================================
"""

import json
import uuid
import logging

from .base import Middleware, NextHandler
from ..http.request import HTTPRequest
from ..http.response import HTTPResponse


# Namespaced so the access log can be routed separately:
#   logging.getLogger("geogateway.access").addHandler(file_handler)
logger = logging.getLogger("geogateway.access")


class LoggingMiddleware(Middleware):
    """
    Request logging middleware.

    Exactly one line per request, recording method and request URI. Never
    short-circuits and never alters the request.

        pipeline.add(LoggingMiddleware())                   # text lines
        pipeline.add(LoggingMiddleware(log_format="json"))  # JSON lines
    """

    def __init__(
        self,
        log_format: str = "text",
        include_request_id: bool = False,
        log_level: int = logging.INFO,
    ):
        """
        Args:
            log_format: "text" or "json".
            include_request_id: Echo a generated X-Request-ID on the response.
            log_level: Level used for access lines.
        """
        if log_format not in ("text", "json"):
            raise ValueError(f"Unknown log format: {log_format}")

        self.log_format = log_format
        self.include_request_id = include_request_id
        self.log_level = log_level

    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        request_id = str(uuid.uuid4())[:8]

        if self.log_format == "json":
            logger.log(self.log_level, json.dumps({
                "request_id": request_id,
                "method": request.method,
                "uri": request.uri,
                "client_ip": request.client_address[0],
            }))
        else:
            logger.log(self.log_level, f"{request.method} {request.uri}")

        response = next(request)

        if self.include_request_id:
            response.headers["X-Request-ID"] = request_id

        return response
