"""Routing engine - the query surface used by callers.

Ties together the pieces of a routing attempt:

    RoutingContext -> ModelRouter.route -> PriceCalculator.estimate_cost
        -> BudgetManager.check_budget -> RouteDecision (selected | blocked)

After the caller has made the model call it reports the measured usage
back with ``record_usage`` (or ``record_transaction``).
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Mapping

from modelrouter.budget import BudgetCheck, BudgetManager, BudgetUsage, CostTransaction, Operation
from modelrouter.config.loader import ConfigLoader
from modelrouter.config.models import BudgetConfig, ModelRef, ProfileConfig, RouterConfig
from modelrouter.price import CostEstimate, PriceCalculator, PricedModel, TokenUsage
from modelrouter.providers import Provider, providers_from_profile
from modelrouter.routing.router import AvailableModel, ModelRouter, RouteResult, RouteSimulation
from modelrouter.routing.scorer import RoutingContext

logger = logging.getLogger(__name__)


class DecisionStatus(str, Enum):
    """Outcome of a routing attempt that found a candidate."""
    SELECTED = "selected"
    BLOCKED = "blocked"  # Over budget with hard stop


@dataclass
class RouteDecision:
    """A routing result together with its cost estimate and budget verdict."""
    status: DecisionStatus
    result: RouteResult
    estimate: CostEstimate | None = None  # None when the model has no price
    budget: BudgetCheck | None = None  # None when the profile has no budget
    warnings: list[str] = field(default_factory=list)

    @property
    def allowed(self) -> bool:
        return self.status == DecisionStatus.SELECTED

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "route": self.result.to_dict(),
            "estimate": self.estimate.to_dict() if self.estimate else None,
            "budget": self.budget.to_dict() if self.budget else None,
            "warnings": list(self.warnings),
        }


class RoutingEngine:
    """Routes, prices and budgets requests for the active profile.

    Usage:
        engine = RoutingEngine.from_file("router.config.yaml", providers)
        decision = await engine.route(RoutingContext(prompt="fix the bug"))
        if decision.allowed:
            ...  # call decision.result.provider
            engine.record_usage(decision.result, TokenUsage(812, 230))
    """

    loader: ConfigLoader | None = None  # Set by from_file
    config_path: Path | None = None

    def __init__(
        self,
        config: RouterConfig,
        providers: Mapping[str, Provider] | None = None,
        budget_manager: BudgetManager | None = None,
        calculator: PriceCalculator | None = None,
        profile_name: str | None = None,
    ):
        self.calculator = calculator or PriceCalculator()
        self.budget_manager = budget_manager
        self._explicit_providers = dict(providers) if providers is not None else None
        self._profile_name = profile_name
        self._apply_config(config)

    @classmethod
    def from_file(
        cls,
        path: str | Path,
        providers: Mapping[str, Provider] | None = None,
        budget_manager: BudgetManager | None = None,
        loader: ConfigLoader | None = None,
        create: bool = False,
        **kwargs: Any,
    ) -> "RoutingEngine":
        """Build an engine from a config file.

        Args:
            path: YAML configuration file.
            providers: Provider clients by id. Defaults to config-backed
                StaticProviders that report themselves available.
            budget_manager: Spend log. None disables budget checks.
            loader: Shared ConfigLoader cache.
            create: Write a default config if ``path`` does not exist.
        """
        loader = loader or ConfigLoader()
        config = loader.load_or_create(path) if create else loader.load(path)
        engine = cls(config, providers=providers, budget_manager=budget_manager, **kwargs)
        engine.loader = loader
        engine.config_path = Path(path)
        return engine

    def _apply_config(self, config: RouterConfig) -> None:
        self.config = config
        self.profile: ProfileConfig = config.get_profile(self._profile_name)
        providers = (
            self._explicit_providers
            if self._explicit_providers is not None
            else providers_from_profile(self.profile)
        )
        self.router = ModelRouter(self.profile, providers)

    def reload(self, config: RouterConfig | None = None) -> RouterConfig:
        """Swap in a new configuration (re-read from disk if none given)."""
        if config is None:
            if self.loader is None or self.config_path is None:
                raise ValueError("Engine was not created from a file; pass a config")
            config = self.loader.load(self.config_path)
        self._apply_config(config)
        logger.info(f"Routing engine now using profile '{config.active_profile}'")
        return config

    @property
    def budget_config(self) -> BudgetConfig | None:
        return self.profile.budget

    # ─── Routing ──────────────────────────────────────────────────

    async def route(
        self,
        context: RoutingContext,
        expected_output_tokens: int | None = None,
    ) -> RouteDecision:
        """Select a model, estimate its cost and check the budget.

        Raises:
            RoutingError: no candidate resolved.
        """
        result = await self.router.route(context)
        estimate = self.calculator.estimate_cost(
            context.prompt, result.model, result.provider_id, expected_output_tokens)

        budget_check = None
        warnings: list[str] = []
        status = DecisionStatus.SELECTED

        if self.budget_manager is not None and self.budget_config is not None:
            budget_check = self.budget_manager.check_budget(
                estimate.total_cost if estimate else None, self.budget_config)
            if not budget_check.allowed:
                status = DecisionStatus.BLOCKED
                result.steps.append(f"Budget block: {budget_check.reason}")
            else:
                warnings = self.budget_manager.get_budget_warnings(self.budget_config)
                result.steps.extend(f"Warn: {w}" for w in warnings)

        if estimate is not None:
            result.steps.append(f"Estimated cost: ${estimate.total_cost:.4f}")
        else:
            result.steps.append("Estimated cost: unknown (model has no price)")
        result.reasoning = "; ".join(result.steps)

        return RouteDecision(
            status=status,
            result=result,
            estimate=estimate,
            budget=budget_check,
            warnings=warnings,
        )

    def simulate_route(self, context: RoutingContext, limit: int = 5) -> RouteSimulation:
        return self.router.simulate_route(context, limit=limit)

    def get_available_models(
        self,
        capability: str | None = None,
        provider_id: str | None = None,
    ) -> list[AvailableModel]:
        return self.router.get_available_models(capability=capability, provider_id=provider_id)

    async def provider_status(self, provider_id: str | None = None) -> list[dict[str, Any]]:
        """Availability of registered providers and their configured models."""
        statuses = []
        for pid, provider in self.router.providers.items():
            if provider_id and pid != provider_id:
                continue
            try:
                available = bool(await provider.is_available())
            except Exception as e:
                logger.warning(f"Availability check failed for provider '{pid}': {e}")
                available = False
            statuses.append({
                "provider": pid,
                "available": available,
                "models": [m.model_name for m in self.get_available_models(provider_id=pid)],
            })
        return statuses

    # ─── Pricing ──────────────────────────────────────────────────

    def estimate_cost(
        self,
        prompt: str,
        candidates: list[ModelRef | str] | None = None,
        expected_output_tokens: int | None = None,
    ) -> list[CostEstimate]:
        """Estimates for ``candidates`` (default: every model), cheapest first.

        Unpriced and unknown candidates are left out.
        """
        if candidates is None:
            priced = [
                PricedModel(m.config, m.provider_id) for m in self.get_available_models()
            ]
        else:
            priced = []
            for candidate in candidates:
                ref = ModelRef.parse(candidate) if isinstance(candidate, str) else candidate
                model = self.profile.find_model(ref)
                if model is not None:
                    priced.append(PricedModel(model, ref.provider_id))
        return self.calculator.compare_costs(prompt, priced, expected_output_tokens)

    # ─── Budget ───────────────────────────────────────────────────

    def _require_budget_manager(self) -> BudgetManager:
        if self.budget_manager is None:
            raise ValueError("No budget manager configured")
        return self.budget_manager

    def record_transaction(
        self,
        provider: str,
        model: str,
        cost: float,
        input_tokens: int,
        output_tokens: int,
        operation: Operation | str = Operation.CHAT,
    ) -> CostTransaction:
        return self._require_budget_manager().record_transaction(
            provider, model, cost, input_tokens, output_tokens, operation)

    def record_usage(
        self,
        result: RouteResult,
        usage: TokenUsage,
        operation: Operation | str = Operation.CHAT,
    ) -> CostTransaction:
        """Record the measured usage of a routed call.

        Models without a price are recorded at zero cost.
        """
        cost = 0.0
        if result.model.price is not None:
            cost = self.calculator.calculate_actual_cost(
                usage, result.model.price, result.model_name, result.provider_id,
            ).total_cost
        return self.record_transaction(
            result.provider_id, result.model_name, cost,
            usage.input_tokens, usage.output_tokens, operation,
        )

    def get_budget_usage(self) -> BudgetUsage:
        return self._require_budget_manager().get_budget_usage(self.budget_config)

    def get_budget_warnings(self, config: BudgetConfig | None = None) -> list[str]:
        config = config or self.budget_config
        if config is None:
            return []
        return self._require_budget_manager().get_budget_warnings(config)
