"""HTTP API for the model router.

Exposes the routing engine's query surface (route, simulate, estimate,
models, provider status) and the spend log (usage, budget, stats, export).
"""

from fastapi import FastAPI, Request

from modelrouter import __version__
from modelrouter.engine import RoutingEngine


def get_engine(request: Request) -> RoutingEngine:
    """The engine the application was created with."""
    return request.app.state.engine


def create_app(engine: RoutingEngine) -> FastAPI:
    """Build the FastAPI application around ``engine``."""
    from modelrouter.web.routes import routing, usage

    app = FastAPI(title="modelrouter", version=__version__)
    app.state.engine = engine
    app.include_router(routing.router)
    app.include_router(usage.router)
    return app


__all__ = ["create_app", "get_engine"]
