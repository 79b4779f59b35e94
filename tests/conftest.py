"""Shared fixtures for modelrouter tests."""

from datetime import datetime, timedelta, timezone

import pytest

from modelrouter.budget import BudgetManager
from modelrouter.config import (
    BudgetConfig,
    ConfigLoader,
    ModelConfig,
    ModelPrice,
    ModelRef,
    PrivacyConfig,
    ProfileConfig,
    ProviderConfig,
    ProviderKind,
    RoutingDefault,
    RoutingMode,
    RoutingRule,
    RuleAction,
    RuleCondition,
)


class FixedClock:
    """Settable UTC clock for the budget manager."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


def openai_provider() -> ProviderConfig:
    return ProviderConfig(
        id="openai",
        kind=ProviderKind.OPENAI_COMPAT,
        base_url="https://api.openai.com/v1",
        api_key_ref="OPENAI_API_KEY",
        models=[
            ModelConfig("gpt-4o-mini", context=128_000, caps=["cheap", "tools"],
                        price=ModelPrice(0.15, 0.60, cached_input_per_mtok=0.08)),
            ModelConfig("gpt-4o", context=128_000, caps=["quality", "tools"],
                        price=ModelPrice(2.50, 10.00)),
        ],
    )


def ollama_provider() -> ProviderConfig:
    return ProviderConfig(
        id="ollama",
        kind=ProviderKind.OLLAMA,
        base_url="http://localhost:11434",
        models=[ModelConfig("llama3.1:8b", context=8192, caps=["local"])],
    )


def rule(rule_id: str, prefer: list[str], priority: int = 0, **condition) -> RoutingRule:
    """Build a rule from snake_case condition fields and ref strings."""
    return RoutingRule(
        id=rule_id,
        condition=RuleCondition(**condition),
        action=RuleAction(prefer=[ModelRef.parse(p) for p in prefer], priority=priority),
    )


@pytest.fixture
def make_profile():
    """Factory for profiles with an openai and an ollama provider."""

    def _make(
        rules: list[RoutingRule] | None = None,
        default: list[str] | None = None,
        mode: RoutingMode = RoutingMode.AUTO,
        budget: BudgetConfig | None = None,
        privacy: PrivacyConfig | None = None,
        providers: list[ProviderConfig] | None = None,
    ) -> ProfileConfig:
        return ProfileConfig(
            mode=mode,
            providers=providers if providers is not None else [openai_provider(), ollama_provider()],
            rules=rules or [],
            default=RoutingDefault(prefer=[
                ModelRef.parse(p)
                for p in (default if default is not None else ["openai:gpt-4o-mini"])
            ]),
            budget=budget,
            privacy=privacy,
        )

    return _make


@pytest.fixture
def make_rule():
    return rule


@pytest.fixture
def clock():
    return FixedClock(datetime(2026, 3, 15, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def budget_manager(tmp_path, clock):
    """BudgetManager on a temp database with a fixed clock."""
    return BudgetManager(db_path=tmp_path / "budget.db", clock=clock)


@pytest.fixture
def loader():
    return ConfigLoader()


@pytest.fixture
def config_file(tmp_path, loader):
    """A default router.config.yaml in a temp directory."""
    return loader.create_default(tmp_path / "router.config.yaml")


@pytest.fixture(autouse=True)
def isolated_home(tmp_path, monkeypatch):
    """Keep state and config lookups out of the real home directory."""
    monkeypatch.setenv("MODELROUTER_HOME", str(tmp_path / "home"))
    monkeypatch.delenv("MODELROUTER_CONFIG", raising=False)
