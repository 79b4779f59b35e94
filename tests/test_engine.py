"""Tests for the routing engine query surface."""

import asyncio

import pytest

from modelrouter.config import BudgetConfig, ModelRef, RoutingMode, default_config
from modelrouter.engine import DecisionStatus, RoutingEngine
from modelrouter.price import TokenUsage
from modelrouter.providers import providers_from_profile
from modelrouter.routing import RoutingContext, RoutingError


@pytest.fixture
def engine(budget_manager):
    return RoutingEngine(default_config(), budget_manager=budget_manager)


class TestRoute:
    """Routing decisions with estimates and budget verdicts."""

    def test_selected(self, engine):
        decision = asyncio.run(engine.route(RoutingContext(prompt="x" * 4000)))

        assert decision.status == DecisionStatus.SELECTED
        assert decision.allowed
        assert str(decision.result.ref) == "openai:gpt-4o-mini"
        assert decision.estimate.total_cost == pytest.approx(0.00039)
        assert decision.budget.allowed
        assert "Estimated cost: $0.0004" in decision.result.reasoning

    def test_blocked_by_hard_stop(self, engine):
        engine.record_transaction("openai", "gpt-4o-mini", 5.0, 0, 0)

        decision = asyncio.run(engine.route(RoutingContext(prompt="hello")))

        assert decision.status == DecisionStatus.BLOCKED
        assert not decision.allowed
        assert "Would exceed daily budget" in decision.budget.reason
        assert decision.to_dict()["status"] == "blocked"
        assert any(s.startswith("Budget block:") for s in decision.result.steps)

    def test_warnings_surface_once(self, engine):
        engine.record_transaction("openai", "gpt-4o-mini", 4.2, 0, 0)

        first = asyncio.run(engine.route(RoutingContext(prompt="hello")))
        second = asyncio.run(engine.route(RoutingContext(prompt="hello")))

        assert first.warnings == ["Daily budget 84.0% used ($4.20 of $5.00)"]
        assert second.warnings == []

    def test_unpriced_model(self, budget_manager):
        config = default_config()
        config.profile.mode = RoutingMode.LOCAL_ONLY
        engine = RoutingEngine(config, budget_manager=budget_manager)

        decision = asyncio.run(engine.route(RoutingContext(prompt="hello")))

        assert decision.result.provider_id == "ollama"
        assert decision.estimate is None
        assert decision.allowed
        assert "Estimated cost: unknown (model has no price)" in decision.result.steps

    def test_no_budget_manager(self):
        engine = RoutingEngine(default_config())
        decision = asyncio.run(engine.route(RoutingContext(prompt="hello")))
        assert decision.budget is None
        assert decision.allowed

    def test_routing_error_propagates(self, budget_manager):
        config = default_config()
        providers = providers_from_profile(config.profile, unavailable={"openai", "ollama"})
        engine = RoutingEngine(config, providers=providers, budget_manager=budget_manager)
        with pytest.raises(RoutingError):
            asyncio.run(engine.route(RoutingContext(prompt="hello")))


class TestQueries:
    """Simulation, estimates and listings."""

    def test_simulate(self, engine):
        simulation = engine.simulate_route(RoutingContext(prompt="refactor", mode="quality"))
        assert str(simulation.chosen.ref) == "openai:gpt-4o"
        assert simulation.chosen.rule_id == "code-quality"

    def test_estimate_all_models(self, engine):
        estimates = engine.estimate_cost("hello world")
        assert [e.model for e in estimates] == ["gpt-4o-mini", "gpt-4o"]

    def test_estimate_candidates(self, engine):
        estimates = engine.estimate_cost(
            "hello", ["openai:gpt-4o", ModelRef("ollama", "llama3.1:8b"), "openai:unknown"])
        assert [e.model for e in estimates] == ["gpt-4o"]

    def test_estimate_malformed_candidate(self, engine):
        with pytest.raises(ValueError):
            engine.estimate_cost("hello", ["gpt-4o"])

    def test_models(self, engine):
        assert len(engine.get_available_models()) == 3
        assert [m.model_name for m in engine.get_available_models(capability="quality")] == ["gpt-4o"]

    def test_provider_status(self, budget_manager):
        config = default_config()
        providers = providers_from_profile(config.profile, unavailable={"ollama"})
        engine = RoutingEngine(config, providers=providers)
        statuses = {s["provider"]: s for s in asyncio.run(engine.provider_status())}
        assert statuses["openai"]["available"]
        assert not statuses["ollama"]["available"]
        assert statuses["ollama"]["models"] == ["llama3.1:8b"]


class TestRecording:
    """Reporting measured usage."""

    def test_record_usage_prices_tokens(self, engine):
        decision = asyncio.run(engine.route(RoutingContext(prompt="hello")))
        transaction = engine.record_usage(decision.result, TokenUsage(1_000_000, 0))
        assert transaction.cost == pytest.approx(0.15)
        assert engine.get_budget_usage().daily_spent == pytest.approx(0.15)

    def test_record_usage_unpriced_is_free(self, budget_manager):
        config = default_config()
        config.profile.mode = RoutingMode.OFFLINE
        engine = RoutingEngine(config, budget_manager=budget_manager)
        decision = asyncio.run(engine.route(RoutingContext(prompt="hello")))
        assert engine.record_usage(decision.result, TokenUsage(500, 500)).cost == 0.0

    def test_budget_requires_manager(self):
        engine = RoutingEngine(default_config())
        with pytest.raises(ValueError, match="budget manager"):
            engine.get_budget_usage()

    def test_warnings_with_explicit_config(self, engine):
        engine.record_transaction("openai", "gpt-4o-mini", 1.0, 0, 0)
        assert engine.get_budget_warnings(BudgetConfig(daily_usd=1.0)) != []


class TestReload:
    """Swapping configurations."""

    def test_from_file_and_reload(self, config_file, loader, budget_manager):
        engine = RoutingEngine.from_file(config_file, budget_manager=budget_manager, loader=loader)
        assert engine.profile.mode == RoutingMode.AUTO

        config = default_config()
        config.profile.mode = RoutingMode.CHEAP
        loader.save(config, config_file)

        reloaded = engine.reload()
        assert reloaded.profile.mode == RoutingMode.CHEAP
        assert engine.profile.mode == RoutingMode.CHEAP

    def test_reload_with_config(self, engine):
        config = default_config()
        config.profile.rules = []
        engine.reload(config)
        assert engine.router.profile.rules == []

    def test_reload_without_file(self, engine):
        with pytest.raises(ValueError):
            engine.reload()

    def test_from_file_create(self, tmp_path):
        path = tmp_path / "router.config.yaml"
        engine = RoutingEngine.from_file(path, create=True)
        assert path.exists()
        assert engine.config_path == path
