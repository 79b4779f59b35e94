"""Configuration validation and parsing.

Validation walks the raw document in a fixed order and collects every
structural violation instead of stopping at the first one:

    version -> activeProfile -> profiles (document order):
        mode -> budget -> privacy -> providers -> models -> price
        -> routing.default -> routing.rules

Each issue carries a dotted pointer into the document, e.g.
``profiles.default.providers[0].models[1].price.inputPerMTok``.
"""

from dataclasses import dataclass, field
from typing import Any

from modelrouter.config.models import (
    BudgetConfig,
    ModelConfig,
    ModelPrice,
    ModelRef,
    PrivacyConfig,
    ProfileConfig,
    ProviderConfig,
    ProviderKind,
    RouterConfig,
    RoutingDefault,
    RoutingMode,
    RoutingRule,
    RuleAction,
    RuleCondition,
    Target,
)
from modelrouter.errors import RouterError

VALID_MODES = [m.value for m in RoutingMode]
VALID_KINDS = [k.value for k in ProviderKind]
VALID_TARGETS = [t.value for t in Target]

_LIST_CONDITIONS = ("anyKeyword", "allKeywords", "fileLangIn", "filePathMatches", "mode")
_NUMBER_CONDITIONS = ("minContextKB", "maxContextKB")


@dataclass
class ConfigIssue:
    """A single structural problem in a configuration document."""
    path: str
    message: str

    def __str__(self) -> str:
        return f"{self.path}: {self.message}" if self.path else self.message


class ConfigError(RouterError):
    """Raised when a configuration is missing or structurally invalid.

    ``message``/``path`` describe the first issue found; ``issues`` holds
    all of them in traversal order.
    """

    def __init__(
        self,
        message: str,
        path: str | None = None,
        file: str | None = None,
        issues: list[ConfigIssue] | None = None,
    ):
        self.message = message
        self.path = path
        self.file = file
        self.issues = issues or []
        super().__init__(self._format())

    def _format(self) -> str:
        text = f"{self.path}: {self.message}" if self.path else self.message
        if len(self.issues) > 1:
            text += f" (and {len(self.issues) - 1} more issue(s))"
        return text


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _is_str_list(value: Any) -> bool:
    return isinstance(value, list) and all(isinstance(v, str) for v in value)


@dataclass
class ConfigValidator:
    """Collects issues for one raw configuration document."""
    issues: list[ConfigIssue] = field(default_factory=list)

    def error(self, path: str, message: str) -> None:
        self.issues.append(ConfigIssue(path=path, message=message))

    def validate(self, raw: Any) -> list[ConfigIssue]:
        if not isinstance(raw, dict):
            self.error("", "Configuration must be a mapping")
            return self.issues

        version = raw.get("version")
        if not isinstance(version, int) or isinstance(version, bool) or version < 1:
            self.error("version", "must be a positive integer")

        active = raw.get("activeProfile")
        if not isinstance(active, str) or not active:
            self.error("activeProfile", "must be a non-empty string")

        profiles = raw.get("profiles")
        if not isinstance(profiles, dict) or not profiles:
            self.error("profiles", "must be a non-empty mapping")
            return self.issues

        if isinstance(active, str) and active and active not in profiles:
            self.error("activeProfile", f"profile '{active}' not found in profiles")

        for name, profile in profiles.items():
            self._validate_profile(profile, f"profiles.{name}")

        return self.issues

    def _validate_profile(self, profile: Any, path: str) -> None:
        if not isinstance(profile, dict):
            self.error(path, "must be a mapping")
            return

        if profile.get("mode") not in VALID_MODES:
            self.error(f"{path}.mode", f"must be one of: {', '.join(VALID_MODES)}")

        if profile.get("budget") is not None:
            self._validate_budget(profile["budget"], f"{path}.budget")

        if profile.get("privacy") is not None:
            self._validate_privacy(profile["privacy"], f"{path}.privacy")

        providers = profile.get("providers")
        if not isinstance(providers, list) or not providers:
            self.error(f"{path}.providers", "must have at least one provider")
        else:
            seen: set[str] = set()
            for i, provider in enumerate(providers):
                ppath = f"{path}.providers[{i}]"
                self._validate_provider(provider, ppath)
                pid = provider.get("id") if isinstance(provider, dict) else None
                if isinstance(pid, str) and pid:
                    if pid in seen:
                        self.error(f"{ppath}.id", f"duplicate provider id '{pid}'")
                    seen.add(pid)

        routing = profile.get("routing")
        if not isinstance(routing, dict):
            self.error(f"{path}.routing", "must be a mapping with rules and default")
            return

        default = routing.get("default")
        if not isinstance(default, dict) or not isinstance(default.get("prefer"), list):
            self.error(f"{path}.routing.default", "must have a prefer list")
        else:
            self._validate_prefer(default["prefer"], f"{path}.routing.default.prefer")
            self._validate_target(default.get("target"), f"{path}.routing.default.target")

        rules = routing.get("rules", [])
        if not isinstance(rules, list):
            self.error(f"{path}.routing.rules", "must be a list")
            return
        for i, rule in enumerate(rules):
            self._validate_rule(rule, f"{path}.routing.rules[{i}]")

    def _validate_budget(self, budget: Any, path: str) -> None:
        if not isinstance(budget, dict):
            self.error(path, "must be a mapping")
            return
        for key in ("dailyUSD", "monthlyUSD"):
            value = budget.get(key)
            if value is not None and (not _is_number(value) or value < 0):
                self.error(f"{path}.{key}", "must be a non-negative number")
        if budget.get("hardStop") is not None and not isinstance(budget["hardStop"], bool):
            self.error(f"{path}.hardStop", "must be a boolean")
        threshold = budget.get("warningThreshold")
        if threshold is not None and (not _is_number(threshold) or not 0 < threshold <= 100):
            self.error(f"{path}.warningThreshold", "must be a number above 0 and at most 100")

    def _validate_privacy(self, privacy: Any, path: str) -> None:
        if not isinstance(privacy, dict):
            self.error(path, "must be a mapping")
            return
        if privacy.get("redactPaths") is not None and not _is_str_list(privacy["redactPaths"]):
            self.error(f"{path}.redactPaths", "must be a list of glob patterns")
        strip = privacy.get("stripFileContentOverKB")
        if strip is not None and (not _is_number(strip) or strip <= 0):
            self.error(f"{path}.stripFileContentOverKB", "must be a positive number")
        for key in ("allowExternal", "anonymizeMetadata"):
            if privacy.get(key) is not None and not isinstance(privacy[key], bool):
                self.error(f"{path}.{key}", "must be a boolean")

    def _validate_provider(self, provider: Any, path: str) -> None:
        if not isinstance(provider, dict):
            self.error(path, "must be a mapping")
            return

        if not isinstance(provider.get("id"), str) or not provider.get("id"):
            self.error(f"{path}.id", "must be a non-empty string")
        elif ":" in provider["id"]:
            self.error(f"{path}.id", "must not contain ':'")

        if provider.get("kind") not in VALID_KINDS:
            self.error(f"{path}.kind", f"must be one of: {', '.join(VALID_KINDS)}")

        if not isinstance(provider.get("baseUrl"), str) or not provider.get("baseUrl"):
            self.error(f"{path}.baseUrl", "must be a non-empty string")

        for key in ("apiKeyRef", "organizationId", "keepAlive"):
            if provider.get(key) is not None and not isinstance(provider[key], str):
                self.error(f"{path}.{key}", "must be a string")

        headers = provider.get("defaultHeaders")
        if headers is not None and not (
            isinstance(headers, dict)
            and all(isinstance(k, str) and isinstance(v, str) for k, v in headers.items())
        ):
            self.error(f"{path}.defaultHeaders", "must be a mapping of header names to strings")

        timeout = provider.get("timeout")
        if timeout is not None and (not _is_number(timeout) or timeout <= 0):
            self.error(f"{path}.timeout", "must be a positive number")

        retries = provider.get("maxRetries")
        if retries is not None and (not isinstance(retries, int) or isinstance(retries, bool) or retries < 0):
            self.error(f"{path}.maxRetries", "must be a non-negative integer")

        models = provider.get("models")
        if not isinstance(models, list) or not models:
            self.error(f"{path}.models", "must have at least one model")
            return
        for i, model in enumerate(models):
            self._validate_model(model, f"{path}.models[{i}]")

    def _validate_model(self, model: Any, path: str) -> None:
        if not isinstance(model, dict):
            self.error(path, "must be a mapping")
            return

        if not isinstance(model.get("name"), str) or not model.get("name"):
            self.error(f"{path}.name", "must be a non-empty string")

        context = model.get("context")
        if context is not None and (not isinstance(context, int) or isinstance(context, bool) or context <= 0):
            self.error(f"{path}.context", "must be a positive integer")

        if model.get("caps") is not None and not _is_str_list(model["caps"]):
            self.error(f"{path}.caps", "must be a list of strings")

        if model.get("price") is not None:
            self._validate_price(model["price"], f"{path}.price")

    def _validate_price(self, price: Any, path: str) -> None:
        if not isinstance(price, dict):
            self.error(path, "must be a mapping")
            return
        for key in ("inputPerMTok", "outputPerMTok"):
            value = price.get(key)
            if not _is_number(value) or value < 0:
                self.error(f"{path}.{key}", "must be a non-negative number")
        cached = price.get("cachedInputPerMTok")
        if cached is not None and (not _is_number(cached) or cached < 0):
            self.error(f"{path}.cachedInputPerMTok", "must be a non-negative number")

    def _validate_rule(self, rule: Any, path: str) -> None:
        if not isinstance(rule, dict):
            self.error(path, "must be a mapping")
            return

        if not isinstance(rule.get("id"), str) or not rule.get("id"):
            self.error(f"{path}.id", "must be a non-empty string")

        condition = rule.get("if")
        if not isinstance(condition, dict):
            self.error(f"{path}.if", "must be a mapping of conditions")
        else:
            self._validate_condition(condition, f"{path}.if")

        action = rule.get("then")
        if not isinstance(action, dict):
            self.error(f"{path}.then", "must be a mapping with prefer and target")
            return

        prefer = action.get("prefer")
        if not isinstance(prefer, list) or not prefer:
            self.error(f"{path}.then.prefer", "must be a non-empty list")
        else:
            self._validate_prefer(prefer, f"{path}.then.prefer")

        self._validate_target(action.get("target"), f"{path}.then.target")

        priority = action.get("priority")
        if priority is not None and (not isinstance(priority, int) or isinstance(priority, bool)):
            self.error(f"{path}.then.priority", "must be an integer")

    def _validate_condition(self, condition: dict, path: str) -> None:
        for key, value in condition.items():
            if key not in RuleCondition.FIELDS:
                self.error(f"{path}.{key}", "unknown condition")
            elif key in _LIST_CONDITIONS and not _is_str_list(value):
                self.error(f"{path}.{key}", "must be a list of strings")
            elif key in _NUMBER_CONDITIONS and (not _is_number(value) or value < 0):
                self.error(f"{path}.{key}", "must be a non-negative number")
            elif key == "privacyStrict" and not isinstance(value, bool):
                self.error(f"{path}.{key}", "must be a boolean")

        low, high = condition.get("minContextKB"), condition.get("maxContextKB")
        if _is_number(low) and _is_number(high) and low > high:
            self.error(f"{path}.minContextKB", "must not exceed maxContextKB")

    def _validate_prefer(self, prefer: list, path: str) -> None:
        for i, item in enumerate(prefer):
            if not isinstance(item, str):
                self.error(f"{path}[{i}]", "must be a 'providerId:modelName' string")
                continue
            try:
                ModelRef.parse(item)
            except ValueError as e:
                self.error(f"{path}[{i}]", str(e))

    def _validate_target(self, target: Any, path: str) -> None:
        if target is not None and target not in VALID_TARGETS:
            self.error(path, f"must be one of: {', '.join(VALID_TARGETS)}")


def validate_config(raw: Any, file: str | None = None) -> None:
    """Raise ConfigError listing every issue in ``raw``; return if valid."""
    issues = ConfigValidator().validate(raw)
    if issues:
        first = issues[0]
        raise ConfigError(first.message, path=first.path, file=file, issues=issues)


def parse_config(raw: Any, file: str | None = None) -> RouterConfig:
    """Validate a raw document and build the typed configuration."""
    validate_config(raw, file=file)
    return RouterConfig(
        version=raw["version"],
        active_profile=raw["activeProfile"],
        profiles={name: _parse_profile(p) for name, p in raw["profiles"].items()},
    )


def _parse_profile(raw: dict) -> ProfileConfig:
    routing = raw["routing"]
    default = routing["default"]
    budget = raw.get("budget")
    privacy = raw.get("privacy")
    return ProfileConfig(
        mode=RoutingMode(raw["mode"]),
        providers=[_parse_provider(p) for p in raw["providers"]],
        rules=[_parse_rule(r) for r in routing.get("rules", [])],
        default=RoutingDefault(
            prefer=[ModelRef.parse(p) for p in default["prefer"]],
            target=Target(default.get("target") or "chat"),
        ),
        budget=BudgetConfig(
            daily_usd=budget.get("dailyUSD"),
            monthly_usd=budget.get("monthlyUSD"),
            hard_stop=budget.get("hardStop", False),
            warning_threshold=budget.get("warningThreshold", 80.0),
        ) if budget is not None else None,
        privacy=PrivacyConfig(
            redact_paths=list(privacy.get("redactPaths") or []),
            strip_file_content_over_kb=privacy.get("stripFileContentOverKB"),
            allow_external=privacy.get("allowExternal", True),
            anonymize_metadata=privacy.get("anonymizeMetadata", False),
        ) if privacy is not None else None,
    )


def _parse_provider(raw: dict) -> ProviderConfig:
    return ProviderConfig(
        id=raw["id"],
        kind=ProviderKind(raw["kind"]),
        base_url=raw["baseUrl"],
        api_key_ref=raw.get("apiKeyRef"),
        organization_id=raw.get("organizationId"),
        timeout=raw.get("timeout"),
        max_retries=raw.get("maxRetries"),
        default_headers=dict(raw.get("defaultHeaders") or {}),
        keep_alive=raw.get("keepAlive"),
        models=[_parse_model(m) for m in raw["models"]],
    )


def _parse_model(raw: dict) -> ModelConfig:
    price = raw.get("price")
    return ModelConfig(
        name=raw["name"],
        context=raw.get("context"),
        caps=list(raw.get("caps") or []),
        price=ModelPrice(
            input_per_mtok=float(price["inputPerMTok"]),
            output_per_mtok=float(price["outputPerMTok"]),
            cached_input_per_mtok=(
                float(price["cachedInputPerMTok"])
                if price.get("cachedInputPerMTok") is not None else None
            ),
        ) if price is not None else None,
    )


def _parse_rule(raw: dict) -> RoutingRule:
    condition = RuleCondition(**{
        attr: raw["if"][key]
        for key, attr in RuleCondition.FIELDS.items()
        if raw["if"].get(key) is not None
    })
    action = raw["then"]
    return RoutingRule(
        id=raw["id"],
        condition=condition,
        action=RuleAction(
            prefer=[ModelRef.parse(p) for p in action["prefer"]],
            target=Target(action.get("target") or "chat"),
            priority=action.get("priority") or 0,
        ),
    )
