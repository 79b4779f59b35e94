"""Routing API routes: route, simulate, estimate, models, provider status."""

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field

from modelrouter.engine import RoutingEngine
from modelrouter.routing import RoutingContext, RoutingError
from modelrouter.web import get_engine

router = APIRouter()


# ── Request Models ─────────────────────────────────────

class RouteRequest(BaseModel):
    """Facts about a request to be routed."""
    prompt: str
    lang: str | None = None
    file_path: str | None = None
    file_size_kb: float | None = Field(None, ge=0)
    mode: str | None = None
    privacy_strict: bool = False
    metadata: dict[str, Any] = Field(default_factory=dict)
    expected_output_tokens: int | None = Field(None, ge=0)

    def to_context(self) -> RoutingContext:
        return RoutingContext(
            prompt=self.prompt,
            lang=self.lang,
            file_path=self.file_path,
            file_size_kb=self.file_size_kb,
            mode=self.mode,
            privacy_strict=self.privacy_strict,
            metadata=dict(self.metadata),
        )


class SimulateRequest(RouteRequest):
    """Route request plus the number of alternatives to report."""
    limit: int = Field(5, ge=0, le=50)


class EstimateRequest(BaseModel):
    """Prompt to price against candidate models."""
    prompt: str
    candidates: list[str] | None = None  # providerId:modelName refs
    expected_output_tokens: int | None = Field(None, ge=0)


# ── Routing ────────────────────────────────────────────

@router.post("/route")
async def route(req: RouteRequest, engine: RoutingEngine = Depends(get_engine)):
    """Pick a model for the request, with cost estimate and budget verdict."""
    try:
        decision = await engine.route(req.to_context(), req.expected_output_tokens)
    except RoutingError as e:
        raise HTTPException(
            status_code=409,
            detail={"reason": e.reason, "tried": e.tried, "context": e.context},
        )
    return decision.to_dict()


@router.post("/simulate")
async def simulate(req: SimulateRequest, engine: RoutingEngine = Depends(get_engine)):
    """Dry-run ranking of candidates; never checks provider availability."""
    return engine.simulate_route(req.to_context(), limit=req.limit).to_dict()


@router.post("/estimate")
async def estimate(req: EstimateRequest, engine: RoutingEngine = Depends(get_engine)):
    """Cost estimates, cheapest first. Unpriced models are left out."""
    try:
        estimates = engine.estimate_cost(
            req.prompt, req.candidates, req.expected_output_tokens)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {
        "estimates": [e.to_dict() for e in estimates],
        "cheapest": estimates[0].to_dict() if estimates else None,
    }


# ── Models & Providers ─────────────────────────────────

@router.get("/models")
async def list_models(
    capability: str | None = Query(None, description="Only models with this capability"),
    provider: str | None = Query(None, description="Only models of this provider"),
    engine: RoutingEngine = Depends(get_engine),
):
    """Configured models whose provider is registered."""
    models = engine.get_available_models(capability=capability, provider_id=provider)
    return {"models": [m.to_dict() for m in models]}


@router.get("/providers/status")
async def providers_status(
    provider: str | None = Query(None),
    engine: RoutingEngine = Depends(get_engine),
):
    """Availability of each registered provider."""
    statuses = await engine.provider_status(provider)
    if provider and not statuses:
        raise HTTPException(status_code=404, detail=f"Unknown provider: {provider}")
    return {"providers": statuses}
