"""Routes package for the model router HTTP API."""

from modelrouter.web.routes import routing, usage

__all__ = ["routing", "usage"]
