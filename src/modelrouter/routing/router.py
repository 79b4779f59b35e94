"""Rule-based model router.

Selects a provider:model pair for each request based on:
- Rule scores (from RuleScorer), ties broken by rule priority, then
  declaration order
- Each rule's ordered preference list (its fallback chain)
- Provider availability (asked of the provider collaborator)
- The profile's privacy policy (privacy-strict requests only go local)
- The profile's default preference list when no rule resolves
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Mapping

from modelrouter.config.models import ModelConfig, ModelRef, ProfileConfig, RoutingRule
from modelrouter.errors import RouterError
from modelrouter.providers import Provider
from modelrouter.routing.privacy import apply_privacy
from modelrouter.routing.scorer import RoutingContext, RuleScorer

logger = logging.getLogger(__name__)


class RoutingError(RouterError):
    """Raised when no provider:model candidate resolves."""

    def __init__(self, reason: str, tried: list[str] | None = None, context: str | None = None):
        super().__init__(reason)
        self.reason = reason
        self.tried = tried or []
        self.context = context


@dataclass
class ScoredRule:
    """A rule with its score for one request."""
    rule: RoutingRule
    score: int
    index: int  # Declaration order
    hits: dict[str, int] = field(default_factory=dict)

    @property
    def priority(self) -> int:
        return self.rule.action.priority


@dataclass
class RouteResult:
    """The outcome of a successful routing decision."""
    provider_id: str
    model_name: str
    model: ModelConfig
    provider: Provider
    score: int
    reasoning: str
    steps: list[str] = field(default_factory=list)
    rule: RoutingRule | None = None
    fallback: bool = False  # True if chosen from the profile default

    @property
    def ref(self) -> ModelRef:
        return ModelRef(self.provider_id, self.model_name)

    def to_dict(self) -> dict[str, Any]:
        return {
            "provider": self.provider_id,
            "model": self.model_name,
            "score": self.score,
            "rule": self.rule.id if self.rule else None,
            "fallback": self.fallback,
            "reasoning": self.reasoning,
            "steps": list(self.steps),
            "capabilities": list(self.model.caps),
        }


@dataclass
class Alternative:
    """A ranked candidate reported by simulate_route."""
    rule_id: str | None  # None for the profile default
    score: int
    ref: ModelRef
    configured: bool
    note: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "rule": self.rule_id,
            "score": self.score,
            "provider": self.ref.provider_id,
            "model": self.ref.model_name,
            "configured": self.configured,
            "note": self.note,
        }


@dataclass
class RouteSimulation:
    """Dry-run ranking: the candidate route() would try first, and the rest."""
    chosen: Alternative | None
    alternatives: list[Alternative]
    reasoning: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "chosen": self.chosen.to_dict() if self.chosen else None,
            "alternatives": [a.to_dict() for a in self.alternatives],
            "reasoning": self.reasoning,
        }


@dataclass
class AvailableModel:
    """A configured model whose provider is registered with the router."""
    provider_id: str
    model_name: str
    config: ModelConfig
    provider: Provider
    local: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "provider": self.provider_id,
            "model": self.model_name,
            "context": self.config.context,
            "capabilities": list(self.config.caps),
            "local": self.local,
            "has_price": self.config.price is not None,
            "price": self.config.price.to_dict() if self.config.price else None,
        }


class ModelRouter:
    """Routes requests to provider:model pairs under a profile's rules.

    Usage:
        router = ModelRouter(profile, providers)
        result = await router.route(RoutingContext(prompt="write a unit test"))
        # result.provider_id, result.model_name, result.reasoning
    """

    def __init__(
        self,
        profile: ProfileConfig,
        providers: Mapping[str, Provider],
        scorer: RuleScorer | None = None,
    ):
        self.profile = profile
        self.providers = dict(providers)
        self.scorer = scorer or RuleScorer()

    def ranked_rules(self, context: RoutingContext) -> list[ScoredRule]:
        """All rules, best first: score desc, priority desc, declaration order."""
        scored = []
        for index, rule in enumerate(self.profile.rules):
            hits = self.scorer.explain(rule, context)
            scored.append(ScoredRule(rule=rule, score=sum(hits.values()), index=index, hits=hits))
        scored.sort(key=lambda s: (-s.score, -s.priority, s.index))
        return scored

    async def route(self, context: RoutingContext) -> RouteResult:
        """Route a request to the best available model.

        Raises:
            RoutingError: no rule or default candidate resolved.
        """
        effective = apply_privacy(self.profile, context)
        ranked = [s for s in self.ranked_rules(effective) if s.score > 0]

        steps: list[str] = []
        tried: list[str] = []
        availability: dict[str, bool] = {}

        if effective.privacy_strict:
            steps.append("Privacy-strict: only local providers allowed")

        for scored in ranked:
            logger.debug(f"Rule '{scored.rule.id}' scored {scored.score}")
            steps.append(
                f"Matched rule '{scored.rule.id}' (score: {scored.score}; "
                f"{self.scorer.describe(scored.hits)})")
            for ref in scored.rule.action.prefer:
                rejection = await self._reject(ref, effective, availability)
                if rejection:
                    steps.append(f"Skipped {ref}: {rejection}")
                    tried.append(f"{ref} ({rejection})")
                    continue
                steps.append(f"Selected {ref}")
                return self._result(ref, steps, score=scored.score, rule=scored.rule)

        if not ranked:
            steps.append("No rule matched")
        steps.append("Used default fallback")

        for ref in self.profile.default.prefer:
            rejection = await self._reject(ref, effective, availability)
            if rejection:
                steps.append(f"Skipped {ref}: {rejection}")
                tried.append(f"{ref} ({rejection})")
                continue
            steps.append(f"Selected {ref}")
            return self._result(ref, steps, score=0, rule=None, fallback=True)

        logger.warning(f"No route available for request ({effective.summary()})")
        raise RoutingError("no route available", tried=tried, context=effective.summary())

    def simulate_route(self, context: RoutingContext, limit: int = 5) -> RouteSimulation:
        """Rank candidates the way route() would, without availability checks.

        Returns the first candidate that is configured and allowed by the
        privacy policy, plus up to ``limit`` next-best alternatives.
        """
        effective = apply_privacy(self.profile, context)
        ranked = [s for s in self.ranked_rules(effective) if s.score > 0]

        candidates: list[tuple[str | None, int, ModelRef]] = [
            (s.rule.id, s.score, ref) for s in ranked for ref in s.rule.action.prefer
        ]
        candidates += [(None, 0, ref) for ref in self.profile.default.prefer]

        steps = [f"Rule '{s.rule.id}' scored {s.score}" for s in ranked] or ["No rule matched"]
        chosen: Alternative | None = None
        alternatives: list[Alternative] = []

        for rule_id, score, ref in candidates:
            rejection = self._reject_static(ref, effective)
            alt = Alternative(
                rule_id=rule_id, score=score, ref=ref,
                configured=rejection is None, note=rejection,
            )
            if chosen is None and rejection is None:
                chosen = alt
                via = f"rule '{rule_id}'" if rule_id else "default fallback"
                steps.append(f"Would select {ref} via {via}")
            else:
                alternatives.append(alt)

        if chosen is None:
            steps.append("No candidate resolves")

        return RouteSimulation(
            chosen=chosen,
            alternatives=alternatives[:limit],
            reasoning="; ".join(steps),
        )

    def get_available_models(
        self,
        capability: str | None = None,
        provider_id: str | None = None,
    ) -> list[AvailableModel]:
        """Configured models whose provider is registered, in config order."""
        models = []
        for provider_config in self.profile.providers:
            if provider_id and provider_config.id != provider_id:
                continue
            provider = self.providers.get(provider_config.id)
            if provider is None:
                continue
            for model in provider_config.models:
                if capability and not model.has_cap(capability):
                    continue
                models.append(AvailableModel(
                    provider_id=provider_config.id,
                    model_name=model.name,
                    config=model,
                    provider=provider,
                    local=provider_config.is_local,
                ))
        return models

    def get_models_by_cap(self, capability: str) -> list[AvailableModel]:
        return self.get_available_models(capability=capability)

    def _reject_static(self, ref: ModelRef, context: RoutingContext) -> str | None:
        """Config-level checks: why ``ref`` cannot be used, or None."""
        provider_config = self.profile.get_provider(ref.provider_id)
        if provider_config is None:
            return "provider not configured"
        if provider_config.get_model(ref.model_name) is None:
            return "model not configured"
        if context.privacy_strict and not provider_config.is_local:
            return "privacy mode requires a local provider"
        return None

    async def _reject(
        self,
        ref: ModelRef,
        context: RoutingContext,
        availability: dict[str, bool],
    ) -> str | None:
        """Full candidate check, including the provider's own answers."""
        rejection = self._reject_static(ref, context)
        if rejection:
            return rejection

        provider = self.providers.get(ref.provider_id)
        if provider is None:
            return "provider not registered"
        if not provider.supports(ref.model_name):
            return "model not supported by provider"

        if ref.provider_id not in availability:
            availability[ref.provider_id] = await self._check_available(provider, ref.provider_id)
        if not availability[ref.provider_id]:
            return "provider not available"
        return None

    @staticmethod
    async def _check_available(provider: Provider, provider_id: str) -> bool:
        try:
            return bool(await provider.is_available())
        except Exception as e:
            logger.warning(f"Availability check failed for provider '{provider_id}': {e}")
            return False

    def _result(
        self,
        ref: ModelRef,
        steps: list[str],
        score: int,
        rule: RoutingRule | None,
        fallback: bool = False,
    ) -> RouteResult:
        model = self.profile.find_model(ref)
        logger.info(
            f"Routed to {ref} "
            f"({'default fallback' if fallback else f'rule {rule.id}'}, score {score})")
        return RouteResult(
            provider_id=ref.provider_id,
            model_name=ref.model_name,
            model=model,
            provider=self.providers[ref.provider_id],
            score=score,
            reasoning="; ".join(steps),
            steps=list(steps),
            rule=rule,
            fallback=fallback,
        )
