"""
Request handlers for the gateway's routes.
"""

from .geo import GeoHandlers, LIVENESS_MESSAGE

__all__ = [
    "GeoHandlers",
    "LIVENESS_MESSAGE",
]
