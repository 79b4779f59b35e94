"""Router configuration: typed model, validation and YAML loading."""

from modelrouter.config.loader import (
    ConfigLoader,
    ConfigWatcher,
    default_config_path,
    state_dir,
)
from modelrouter.config.models import (
    LOCAL_KINDS,
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
    default_config,
)
from modelrouter.config.validator import ConfigError, ConfigIssue, parse_config, validate_config

__all__ = [
    "LOCAL_KINDS",
    "BudgetConfig",
    "ConfigError",
    "ConfigIssue",
    "ConfigLoader",
    "ConfigWatcher",
    "ModelConfig",
    "ModelPrice",
    "ModelRef",
    "PrivacyConfig",
    "ProfileConfig",
    "ProviderConfig",
    "ProviderKind",
    "RouterConfig",
    "RoutingDefault",
    "RoutingMode",
    "RoutingRule",
    "RuleAction",
    "RuleCondition",
    "Target",
    "default_config",
    "default_config_path",
    "parse_config",
    "state_dir",
    "validate_config",
]
