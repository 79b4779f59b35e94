"""Tests for config validation, parsing and the loader cache."""

import asyncio
import os

import pytest
import yaml

from modelrouter.config import (
    ConfigError,
    ConfigLoader,
    ModelRef,
    ProviderKind,
    RoutingMode,
    Target,
    default_config,
    default_config_path,
    parse_config,
    state_dir,
    validate_config,
)


def minimal_doc() -> dict:
    return {
        "version": 1,
        "activeProfile": "default",
        "profiles": {
            "default": {
                "mode": "auto",
                "providers": [{
                    "id": "openai",
                    "kind": "openai-compat",
                    "baseUrl": "https://api.openai.com/v1",
                    "models": [{
                        "name": "gpt-4o-mini",
                        "price": {"inputPerMTok": 0.15, "outputPerMTok": 0.60},
                    }],
                }],
                "routing": {
                    "rules": [{
                        "id": "tests",
                        "if": {"anyKeyword": ["test"]},
                        "then": {"prefer": ["openai:gpt-4o-mini"]},
                    }],
                    "default": {"prefer": ["openai:gpt-4o-mini"]},
                },
            }
        },
    }


# ═══════════════════════════════════════════════════════════════
# ModelRef
# ═══════════════════════════════════════════════════════════════

class TestModelRef:
    """providerId:modelName references."""

    def test_parse(self):
        ref = ModelRef.parse("openai:gpt-4o")
        assert ref.provider_id == "openai"
        assert ref.model_name == "gpt-4o"
        assert str(ref) == "openai:gpt-4o"

    def test_model_name_keeps_its_colons(self):
        """Ollama tags contain colons; only the first one separates."""
        ref = ModelRef.parse("ollama:llama3.1:8b")
        assert ref.provider_id == "ollama"
        assert ref.model_name == "llama3.1:8b"

    @pytest.mark.parametrize("value", ["gpt-4o", "openai:", ":gpt-4o", ""])
    def test_malformed(self, value):
        with pytest.raises(ValueError, match="providerId:modelName"):
            ModelRef.parse(value)


# ═══════════════════════════════════════════════════════════════
# Validation
# ═══════════════════════════════════════════════════════════════

class TestValidation:
    """Structural validation with precise issue paths."""

    def test_minimal_document_is_valid(self):
        validate_config(minimal_doc())

    def test_not_a_mapping(self):
        with pytest.raises(ConfigError, match="must be a mapping"):
            validate_config(["not", "a", "mapping"])

    def test_missing_active_profile(self):
        doc = minimal_doc()
        doc["activeProfile"] = "work"
        with pytest.raises(ConfigError) as exc:
            validate_config(doc)
        assert exc.value.path == "activeProfile"
        assert "work" in exc.value.message

    def test_negative_price_path(self):
        doc = minimal_doc()
        doc["profiles"]["default"]["providers"][0]["models"][0]["price"]["inputPerMTok"] = -1
        with pytest.raises(ConfigError) as exc:
            validate_config(doc)
        assert exc.value.path == "profiles.default.providers[0].models[0].price.inputPerMTok"

    def test_bad_prefer_ref_path(self):
        doc = minimal_doc()
        doc["profiles"]["default"]["routing"]["rules"][0]["then"]["prefer"] = [
            "openai:gpt-4o-mini", "no-colon"]
        with pytest.raises(ConfigError) as exc:
            validate_config(doc)
        assert exc.value.path == "profiles.default.routing.rules[0].then.prefer[1]"

    def test_all_issues_collected_in_order(self):
        """Every violation is reported, in traversal order."""
        doc = minimal_doc()
        profile = doc["profiles"]["default"]
        profile["mode"] = "turbo"
        profile["providers"][0]["kind"] = "grpc"
        profile["routing"]["rules"][0]["if"]["maxContextKB"] = "big"

        with pytest.raises(ConfigError) as exc:
            validate_config(doc, file="router.config.yaml")

        paths = [issue.path for issue in exc.value.issues]
        assert paths == [
            "profiles.default.mode",
            "profiles.default.providers[0].kind",
            "profiles.default.routing.rules[0].if.maxContextKB",
        ]
        assert exc.value.path == "profiles.default.mode"
        assert exc.value.file == "router.config.yaml"
        assert "and 2 more issue(s)" in str(exc.value)

    def test_unknown_condition_key(self):
        doc = minimal_doc()
        doc["profiles"]["default"]["routing"]["rules"][0]["if"]["anyKeywords"] = ["x"]
        with pytest.raises(ConfigError, match="unknown condition"):
            validate_config(doc)

    def test_min_above_max_context(self):
        doc = minimal_doc()
        doc["profiles"]["default"]["routing"]["rules"][0]["if"].update(
            {"minContextKB": 500, "maxContextKB": 100})
        with pytest.raises(ConfigError) as exc:
            validate_config(doc)
        assert exc.value.path.endswith("if.minContextKB")

    def test_duplicate_provider_id(self):
        doc = minimal_doc()
        providers = doc["profiles"]["default"]["providers"]
        providers.append(dict(providers[0]))
        with pytest.raises(ConfigError) as exc:
            validate_config(doc)
        assert exc.value.path == "profiles.default.providers[1].id"

    def test_empty_providers(self):
        doc = minimal_doc()
        doc["profiles"]["default"]["providers"] = []
        with pytest.raises(ConfigError, match="at least one provider"):
            validate_config(doc)

    @pytest.mark.parametrize("headers", [["x-api"], "abc", 5, {"x-api": 1}])
    def test_malformed_default_headers(self, headers):
        doc = minimal_doc()
        doc["profiles"]["default"]["providers"][0]["defaultHeaders"] = headers
        with pytest.raises(ConfigError) as exc:
            parse_config(doc)
        assert exc.value.path == "profiles.default.providers[0].defaultHeaders"

    @pytest.mark.parametrize("key", ["organizationId", "keepAlive"])
    def test_provider_string_fields(self, key):
        doc = minimal_doc()
        doc["profiles"]["default"]["providers"][0][key] = 30
        with pytest.raises(ConfigError) as exc:
            parse_config(doc)
        assert exc.value.path == f"profiles.default.providers[0].{key}"

    def test_provider_optional_fields_parse(self):
        doc = minimal_doc()
        doc["profiles"]["default"]["providers"][0].update({
            "defaultHeaders": {"x-team": "router"},
            "organizationId": "org-1",
            "keepAlive": "5m",
        })
        provider = parse_config(doc).profile.providers[0]
        assert provider.default_headers == {"x-team": "router"}
        assert provider.organization_id == "org-1"
        assert provider.keep_alive == "5m"

    def test_zero_warning_threshold_rejected(self):
        doc = minimal_doc()
        doc["profiles"]["default"]["budget"] = {"dailyUSD": 5, "warningThreshold": 0}
        with pytest.raises(ConfigError) as exc:
            validate_config(doc)
        assert exc.value.path == "profiles.default.budget.warningThreshold"

    def test_boolean_version_rejected(self):
        doc = minimal_doc()
        doc["version"] = True
        with pytest.raises(ConfigError) as exc:
            validate_config(doc)
        assert exc.value.path == "version"


class TestParsing:
    """Typed objects built from valid documents."""

    def test_parse_minimal(self):
        config = parse_config(minimal_doc())
        profile = config.profile
        assert profile.mode == RoutingMode.AUTO
        assert profile.providers[0].kind == ProviderKind.OPENAI_COMPAT
        assert profile.rules[0].condition.any_keyword == ["test"]
        assert profile.rules[0].action.target == Target.CHAT
        assert profile.rules[0].action.priority == 0
        assert profile.default.prefer == [ModelRef("openai", "gpt-4o-mini")]
        assert profile.budget is None

    def test_price_and_lookup(self):
        profile = parse_config(minimal_doc()).profile
        model = profile.find_model(ModelRef("openai", "gpt-4o-mini"))
        assert model.price.input_per_mtok == 0.15
        assert model.price.cached_input_per_mtok is None
        assert profile.find_model(ModelRef("openai", "nope")) is None

    def test_unknown_profile(self):
        config = parse_config(minimal_doc())
        with pytest.raises(KeyError):
            config.get_profile("work")

    def test_default_config_round_trips(self):
        """The default configuration serializes to a valid document."""
        config = parse_config(default_config().to_dict())
        assert config.to_dict() == default_config().to_dict()
        ollama = config.profile.get_provider("ollama")
        assert ollama.is_local
        assert ollama.get_model("llama3.1:8b") is not None


# ═══════════════════════════════════════════════════════════════
# Loader
# ═══════════════════════════════════════════════════════════════

class TestConfigLoader:
    """Path-keyed, mtime-checked cache."""

    def test_missing_file(self, tmp_path, loader):
        with pytest.raises(ConfigError, match="not found"):
            loader.load(tmp_path / "missing.yaml")

    def test_yaml_error(self, tmp_path, loader):
        path = tmp_path / "bad.yaml"
        path.write_text("profiles: [unclosed\n")
        with pytest.raises(ConfigError, match="Failed to parse"):
            loader.load(path)

    def test_invalid_document_reports_file(self, tmp_path, loader):
        path = tmp_path / "invalid.yaml"
        path.write_text(yaml.safe_dump({"version": 1}))
        with pytest.raises(ConfigError) as exc:
            loader.load(path)
        assert exc.value.file == str(path.resolve())

    def test_cache_reuse(self, config_file, loader):
        """Unchanged file: second load returns the cached object."""
        first = loader.load(config_file)
        second = loader.load(config_file)
        assert first is second
        assert loader.parse_count == 1
        assert loader.is_cached(config_file)

    def test_reload_after_change(self, config_file, loader):
        first = loader.load(config_file)
        stat = os.stat(config_file)
        os.utime(config_file, ns=(stat.st_atime_ns, stat.st_mtime_ns + 1_000_000_000))
        second = loader.load(config_file)
        assert first is not second
        assert loader.parse_count == 2

    def test_invalidate(self, config_file, loader):
        loader.load(config_file)
        loader.invalidate(config_file)
        assert not loader.is_cached(config_file)
        loader.load(config_file)
        assert loader.parse_count == 2

        loader.invalidate()
        assert not loader.is_cached(config_file)

    def test_separate_loaders_do_not_share(self, config_file):
        a, b = ConfigLoader(), ConfigLoader()
        assert a.load(config_file) is not b.load(config_file)

    def test_load_or_create(self, tmp_path, loader):
        path = tmp_path / "nested" / "router.config.yaml"
        config = loader.load_or_create(path)
        assert path.exists()
        assert config.active_profile == "default"

    def test_save_then_load(self, tmp_path, loader):
        config = default_config()
        config.profile.mode = RoutingMode.CHEAP
        path = loader.save(config, tmp_path / "saved.yaml")
        assert loader.load(path).profile.mode == RoutingMode.CHEAP

    def test_env_paths(self, tmp_path, monkeypatch):
        monkeypatch.setenv("MODELROUTER_CONFIG", str(tmp_path / "custom.yaml"))
        monkeypatch.setenv("MODELROUTER_HOME", str(tmp_path / "state"))
        assert default_config_path() == tmp_path / "custom.yaml"
        assert state_dir() == tmp_path / "state"


class TestConfigWatcher:
    """Polling reload on modification."""

    def _touch(self, path):
        stat = os.stat(path)
        os.utime(path, ns=(stat.st_atime_ns, stat.st_mtime_ns + 1_000_000_000))

    def test_check_without_change(self, config_file, loader):
        seen = []
        watcher = loader.watch(config_file, seen.append)
        assert watcher.check() is False
        assert seen == []

    def test_check_after_change(self, config_file, loader):
        seen = []
        watcher = loader.watch(config_file, seen.append)
        self._touch(config_file)
        assert watcher.check() is True
        assert len(seen) == 1
        assert seen[0].active_profile == "default"

    def test_invalid_reload_keeps_callback_quiet(self, config_file, loader):
        seen = []
        watcher = loader.watch(config_file, seen.append)
        config_file.write_text("version: 0\n")
        self._touch(config_file)
        assert watcher.check() is False
        assert seen == []

    def test_start_and_stop(self, config_file, loader):
        async def run():
            watcher = loader.watch(config_file, lambda c: None, interval=0.01)
            watcher.start()
            assert watcher.running
            await asyncio.sleep(0.03)
            await watcher.stop()
            assert not watcher.running

        asyncio.run(run())
