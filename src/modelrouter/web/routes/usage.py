"""Spend and budget API routes."""

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field

from modelrouter.budget import BudgetManager, Operation
from modelrouter.engine import RoutingEngine
from modelrouter.web import get_engine

router = APIRouter()


class TransactionRequest(BaseModel):
    """A completed call to record."""
    provider: str
    model: str
    cost: float = Field(..., ge=0)
    input_tokens: int = Field(..., ge=0)
    output_tokens: int = Field(..., ge=0)
    operation: str = "chat"  # chat, completion, test


def _budget_manager(engine: RoutingEngine = Depends(get_engine)) -> BudgetManager:
    if engine.budget_manager is None:
        raise HTTPException(status_code=400, detail="No budget manager configured")
    return engine.budget_manager


@router.get("/usage")
async def usage(
    include_transactions: bool = Query(False),
    engine: RoutingEngine = Depends(get_engine),
    manager: BudgetManager = Depends(_budget_manager),
):
    """Current daily and monthly spend."""
    current = manager.get_budget_usage(
        engine.budget_config, include_transactions=include_transactions)
    return current.to_dict(include_transactions=include_transactions)


@router.get("/usage/budget")
async def budget_status(
    engine: RoutingEngine = Depends(get_engine),
    manager: BudgetManager = Depends(_budget_manager),
):
    """Spend against the active profile's limits."""
    if engine.budget_config is None:
        return {"configured": False, "usage": manager.get_budget_usage().to_dict()}
    status = manager.get_budget_status(engine.budget_config)
    status["configured"] = True
    status["budget"] = engine.budget_config.to_dict()
    return status


@router.get("/usage/warnings")
async def budget_warnings(engine: RoutingEngine = Depends(get_engine)):
    """Threshold warnings not yet reported in the current period."""
    try:
        return {"warnings": engine.get_budget_warnings()}
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.get("/usage/stats")
async def spending_stats(manager: BudgetManager = Depends(_budget_manager)):
    """Spend per provider, per model and per day."""
    return manager.get_spending_stats().to_dict()


@router.get("/usage/transactions")
async def transactions(
    limit: int = Query(20, ge=1, le=1000),
    manager: BudgetManager = Depends(_budget_manager),
):
    """Most recent transactions, oldest first."""
    return {"transactions": [t.to_dict() for t in manager.get_transactions(limit=limit)]}


@router.post("/usage/transactions")
async def record_transaction(
    req: TransactionRequest,
    engine: RoutingEngine = Depends(get_engine),
):
    """Append a completed call to the spend log."""
    try:
        operation = Operation(req.operation)
    except ValueError:
        raise HTTPException(
            status_code=400, detail=f"Invalid operation: {req.operation}")

    try:
        transaction = engine.record_transaction(
            req.provider, req.model, req.cost,
            req.input_tokens, req.output_tokens, operation,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"status": "ok", "transaction": transaction.to_dict()}


@router.get("/usage/export")
async def export_usage(manager: BudgetManager = Depends(_budget_manager)):
    """Export the full transaction log with a summary."""
    return manager.export_transactions()


@router.post("/usage/cleanup")
async def cleanup(
    keep_days: int = Query(30, ge=0),
    manager: BudgetManager = Depends(_budget_manager),
):
    """Delete transactions older than ``keep_days``."""
    removed = manager.cleanup_old_transactions(keep_days=keep_days)
    return {"status": "ok", "removed": removed}
