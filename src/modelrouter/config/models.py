"""Typed router configuration.

The YAML document uses camelCase keys (``inputPerMTok``, ``activeProfile``,
``then.prefer`` ...). These dataclasses hold the parsed values under
snake_case names; ``to_dict()`` turns them back into the document shape.
Objects are only built from documents that passed validation, see
``modelrouter.config.validator``.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ProviderKind(str, Enum):
    """Wire protocol spoken by a provider endpoint."""
    OPENAI_COMPAT = "openai-compat"
    OLLAMA = "ollama"


# Provider kinds that run on the user's machine
LOCAL_KINDS: frozenset[ProviderKind] = frozenset({ProviderKind.OLLAMA})


class RoutingMode(str, Enum):
    """Profile-wide routing mode."""
    AUTO = "auto"
    SPEED = "speed"
    QUALITY = "quality"
    CHEAP = "cheap"
    LOCAL_ONLY = "local-only"
    OFFLINE = "offline"
    PRIVACY_STRICT = "privacy-strict"


class Target(str, Enum):
    """Kind of request a rule routes."""
    CHAT = "chat"
    COMPLETION = "completion"


@dataclass(frozen=True)
class ModelRef:
    """A parsed ``providerId:modelName`` reference.

    Split at the first colon so model names keep their own tags
    (``ollama:llama3.1:8b`` -> provider ``ollama``, model ``llama3.1:8b``).
    """
    provider_id: str
    model_name: str

    @classmethod
    def parse(cls, value: str) -> "ModelRef":
        provider_id, sep, model_name = value.partition(":")
        provider_id = provider_id.strip()
        model_name = model_name.strip()
        if not sep or not provider_id or not model_name or any(c.isspace() for c in provider_id):
            raise ValueError(
                f"'{value}' is not in format 'providerId:modelName'")
        return cls(provider_id=provider_id, model_name=model_name)

    def __str__(self) -> str:
        return f"{self.provider_id}:{self.model_name}"


@dataclass
class ModelPrice:
    """USD per one million tokens."""
    input_per_mtok: float
    output_per_mtok: float
    cached_input_per_mtok: float | None = None

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "inputPerMTok": self.input_per_mtok,
            "outputPerMTok": self.output_per_mtok,
        }
        if self.cached_input_per_mtok is not None:
            d["cachedInputPerMTok"] = self.cached_input_per_mtok
        return d


@dataclass
class ModelConfig:
    """A model served by a provider."""
    name: str
    context: int | None = None
    caps: list[str] = field(default_factory=list)
    price: ModelPrice | None = None

    def has_cap(self, cap: str) -> bool:
        return cap in self.caps

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {"name": self.name}
        if self.context is not None:
            d["context"] = self.context
        if self.caps:
            d["caps"] = list(self.caps)
        if self.price is not None:
            d["price"] = self.price.to_dict()
        return d


@dataclass
class ProviderConfig:
    """An endpoint and the models it serves."""
    id: str
    kind: ProviderKind
    base_url: str
    models: list[ModelConfig]
    api_key_ref: str | None = None  # Name of the env var holding the key
    organization_id: str | None = None
    timeout: float | None = None
    max_retries: int | None = None
    default_headers: dict[str, str] = field(default_factory=dict)
    keep_alive: str | None = None  # Ollama only

    @property
    def is_local(self) -> bool:
        return self.kind in LOCAL_KINDS

    def get_model(self, name: str) -> ModelConfig | None:
        for model in self.models:
            if model.name == name:
                return model
        return None

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "id": self.id,
            "kind": self.kind.value,
            "baseUrl": self.base_url,
        }
        if self.api_key_ref:
            d["apiKeyRef"] = self.api_key_ref
        if self.organization_id:
            d["organizationId"] = self.organization_id
        if self.timeout is not None:
            d["timeout"] = self.timeout
        if self.max_retries is not None:
            d["maxRetries"] = self.max_retries
        if self.default_headers:
            d["defaultHeaders"] = dict(self.default_headers)
        if self.keep_alive:
            d["keepAlive"] = self.keep_alive
        d["models"] = [m.to_dict() for m in self.models]
        return d


@dataclass
class RuleCondition:
    """The ``if`` block of a routing rule. Every predicate is optional."""
    any_keyword: list[str] | None = None
    all_keywords: list[str] | None = None
    file_lang_in: list[str] | None = None
    file_path_matches: list[str] | None = None
    min_context_kb: float | None = None
    max_context_kb: float | None = None
    privacy_strict: bool | None = None
    mode: list[str] | None = None

    # document key -> attribute name
    FIELDS = {
        "anyKeyword": "any_keyword",
        "allKeywords": "all_keywords",
        "fileLangIn": "file_lang_in",
        "filePathMatches": "file_path_matches",
        "minContextKB": "min_context_kb",
        "maxContextKB": "max_context_kb",
        "privacyStrict": "privacy_strict",
        "mode": "mode",
    }

    @property
    def is_empty(self) -> bool:
        return all(getattr(self, attr) is None for attr in self.FIELDS.values())

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {}
        for key, attr in self.FIELDS.items():
            value = getattr(self, attr)
            if value is not None:
                d[key] = list(value) if isinstance(value, list) else value
        return d


@dataclass
class RuleAction:
    """The ``then`` block of a routing rule."""
    prefer: list[ModelRef]
    target: Target = Target.CHAT
    priority: int = 0

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "prefer": [str(ref) for ref in self.prefer],
            "target": self.target.value,
        }
        if self.priority:
            d["priority"] = self.priority
        return d


@dataclass
class RoutingRule:
    """A declarative condition/action pair."""
    id: str
    condition: RuleCondition
    action: RuleAction

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "if": self.condition.to_dict(),
            "then": self.action.to_dict(),
        }


@dataclass
class RoutingDefault:
    """Fallback chain used when no rule resolves."""
    prefer: list[ModelRef] = field(default_factory=list)
    target: Target = Target.CHAT

    def to_dict(self) -> dict[str, Any]:
        return {
            "prefer": [str(ref) for ref in self.prefer],
            "target": self.target.value,
        }


@dataclass
class BudgetConfig:
    """Spend limits for a profile."""
    daily_usd: float | None = None
    monthly_usd: float | None = None
    hard_stop: bool = False
    warning_threshold: float = 80.0  # Percent of a limit

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {}
        if self.daily_usd is not None:
            d["dailyUSD"] = self.daily_usd
        if self.monthly_usd is not None:
            d["monthlyUSD"] = self.monthly_usd
        d["hardStop"] = self.hard_stop
        d["warningThreshold"] = self.warning_threshold
        return d


@dataclass
class PrivacyConfig:
    """How much of a request may leave the machine."""
    redact_paths: list[str] = field(default_factory=list)
    strip_file_content_over_kb: float | None = None
    allow_external: bool = True
    anonymize_metadata: bool = False

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {}
        if self.redact_paths:
            d["redactPaths"] = list(self.redact_paths)
        if self.strip_file_content_over_kb is not None:
            d["stripFileContentOverKB"] = self.strip_file_content_over_kb
        d["allowExternal"] = self.allow_external
        if self.anonymize_metadata:
            d["anonymizeMetadata"] = self.anonymize_metadata
        return d


@dataclass
class ProfileConfig:
    """A complete, selectable routing setup."""
    mode: RoutingMode
    providers: list[ProviderConfig]
    rules: list[RoutingRule] = field(default_factory=list)
    default: RoutingDefault = field(default_factory=RoutingDefault)
    budget: BudgetConfig | None = None
    privacy: PrivacyConfig | None = None

    def get_provider(self, provider_id: str) -> ProviderConfig | None:
        for provider in self.providers:
            if provider.id == provider_id:
                return provider
        return None

    def find_model(self, ref: ModelRef) -> ModelConfig | None:
        provider = self.get_provider(ref.provider_id)
        if provider is None:
            return None
        return provider.get_model(ref.model_name)

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {"mode": self.mode.value}
        if self.budget is not None:
            d["budget"] = self.budget.to_dict()
        if self.privacy is not None:
            d["privacy"] = self.privacy.to_dict()
        d["providers"] = [p.to_dict() for p in self.providers]
        d["routing"] = {
            "rules": [r.to_dict() for r in self.rules],
            "default": self.default.to_dict(),
        }
        return d


@dataclass
class RouterConfig:
    """The whole configuration document."""
    version: int
    active_profile: str
    profiles: dict[str, ProfileConfig]

    @property
    def profile(self) -> ProfileConfig:
        """The active profile."""
        return self.profiles[self.active_profile]

    def get_profile(self, name: str | None = None) -> ProfileConfig:
        name = name or self.active_profile
        if name not in self.profiles:
            raise KeyError(f"Unknown profile: {name}")
        return self.profiles[name]

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "activeProfile": self.active_profile,
            "profiles": {name: p.to_dict() for name, p in self.profiles.items()},
        }


def default_config() -> RouterConfig:
    """Configuration written when no config file exists yet."""
    openai = ProviderConfig(
        id="openai",
        kind=ProviderKind.OPENAI_COMPAT,
        base_url="https://api.openai.com/v1",
        api_key_ref="OPENAI_API_KEY",
        models=[
            ModelConfig(
                name="gpt-4o-mini",
                context=128_000,
                caps=["cheap", "tools", "json"],
                price=ModelPrice(0.15, 0.60, cached_input_per_mtok=0.08),
            ),
            ModelConfig(
                name="gpt-4o",
                context=128_000,
                caps=["quality", "tools", "json", "long"],
                price=ModelPrice(2.50, 10.00, cached_input_per_mtok=1.25),
            ),
        ],
    )
    ollama = ProviderConfig(
        id="ollama",
        kind=ProviderKind.OLLAMA,
        base_url="http://localhost:11434",
        keep_alive="5m",
        models=[
            ModelConfig(name="llama3.1:8b", context=8192, caps=["local", "cheap"]),
        ],
    )
    rules = [
        RoutingRule(
            id="privacy-local",
            condition=RuleCondition(privacy_strict=True),
            action=RuleAction(prefer=[ModelRef("ollama", "llama3.1:8b")]),
        ),
        RoutingRule(
            id="code-quality",
            condition=RuleCondition(
                any_keyword=["refactor", "architecture", "debug"],
                mode=["quality"],
            ),
            action=RuleAction(
                prefer=[ModelRef("openai", "gpt-4o"),
                        ModelRef("openai", "gpt-4o-mini")],
            ),
        ),
        RoutingRule(
            id="large-context",
            condition=RuleCondition(min_context_kb=200),
            action=RuleAction(prefer=[ModelRef("openai", "gpt-4o")]),
        ),
    ]
    profile = ProfileConfig(
        mode=RoutingMode.AUTO,
        budget=BudgetConfig(daily_usd=5.0, hard_stop=True, warning_threshold=80),
        privacy=PrivacyConfig(
            redact_paths=["**/secrets/**", "**/.env*"],
            strip_file_content_over_kb=256,
            allow_external=True,
        ),
        providers=[openai, ollama],
        rules=rules,
        default=RoutingDefault(
            prefer=[ModelRef("openai", "gpt-4o-mini"),
                    ModelRef("ollama", "llama3.1:8b")],
        ),
    )
    return RouterConfig(version=1, active_profile="default", profiles={"default": profile})
