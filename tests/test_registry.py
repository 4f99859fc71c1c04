"""Tests for quorum.providers.registry: TOML config loading."""

from pathlib import Path

import pytest

from quorum.errors import ConfigError
from quorum.providers.registry import (
    load_engine_config,
    load_participants,
    load_providers,
    load_rules,
)
from quorum.schemas.config import StorageBackend
from quorum.schemas.providers import ProviderConfig
from quorum.schemas.task import TaskDomain

# Path to the real config files shipped with the package
_CONFIG_DIR = Path(__file__).parent.parent / "quorum" / "config"


def _write(tmp_path: Path, name: str, text: str) -> Path:
    path = tmp_path / name
    path.write_text(text, encoding="utf-8")
    return path


class TestLoadProviders:
    def test_loads_real_config(self):
        registry = load_providers(_CONFIG_DIR / "providers.toml")
        for key in ("claude-sonnet", "claude-haiku", "gpt-4o", "gpt-4o-mini",
                    "gemini-pro", "deepseek"):
            assert key in registry, f"Missing provider: {key}"

    def test_default_path_is_bundled(self):
        assert load_providers().keys() == load_providers(_CONFIG_DIR / "providers.toml").keys()

    def test_entry_types(self):
        registry = load_providers(_CONFIG_DIR / "providers.toml")
        for key, cfg in registry.items():
            assert isinstance(cfg, ProviderConfig), f"{key} is not ProviderConfig"
            assert cfg.provider_id == key
            assert cfg.model != ""
            assert cfg.capabilities
            assert 0.0 <= cfg.benchmark.quality <= 1.0

    def test_benchmarks_loaded(self):
        registry = load_providers(_CONFIG_DIR / "providers.toml")
        sonnet = registry["claude-sonnet"]
        assert sonnet.benchmark.quality == 0.92
        assert sonnet.benchmark.latency_ms == 6000
        assert TaskDomain.SOFTWARE in sonnet.specializations

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError, match="Provider registry not found"):
            load_providers(tmp_path / "nope.toml")

    def test_invalid_toml(self, tmp_path):
        path = _write(tmp_path, "providers.toml", "[providers\nbroken")
        with pytest.raises(ConfigError, match="Invalid TOML"):
            load_providers(path)

    def test_missing_section(self, tmp_path):
        path = _write(tmp_path, "providers.toml", "[other]\nx = 1\n")
        with pytest.raises(ValueError, match=r"No \[providers\] section"):
            load_providers(path)

    def test_invalid_entry(self, tmp_path):
        path = _write(
            tmp_path, "providers.toml",
            '[providers.bad]\nmodel = "x/y"\ndisplay_name = "Bad"\n'
            "benchmark = { quality = 1.5 }\n",
        )
        with pytest.raises(ConfigError, match="Invalid provider 'bad'"):
            load_providers(path)


class TestLoadRules:
    def test_loads_real_config_in_declaration_order(self):
        providers = load_providers(_CONFIG_DIR / "providers.toml")
        rules = load_rules(_CONFIG_DIR / "rules.toml", providers)
        names = [r.name for r in rules]
        assert names[0] == "software"
        assert names[-1] == "catch-all"
        assert "budget-software" in names

    def test_real_rules_thresholds(self):
        rules = {r.name: r for r in load_rules(_CONFIG_DIR / "rules.toml")}
        assert rules["software"].thresholds.min_quality == 0.7
        assert rules["software"].fallbacks == ("gpt-4o", "deepseek")
        assert rules["conversation"].thresholds.max_latency_ms == 4000
        assert rules["catch-all"].domains == ("*",)

    def test_duplicate_name(self, tmp_path):
        path = _write(
            tmp_path, "rules.toml",
            '[[rules]]\nname = "a"\ndomains = ["software"]\nprimary = "p1"\n'
            '[[rules]]\nname = "a"\ndomains = ["content"]\nprimary = "p1"\n',
        )
        with pytest.raises(ConfigError, match="Duplicate rule name 'a'"):
            load_rules(path)

    def test_unknown_provider(self, tmp_path):
        path = _write(
            tmp_path, "rules.toml",
            '[[rules]]\nname = "a"\ndomains = ["software"]\nprimary = "p1"\n'
            'fallbacks = ["ghost"]\n',
        )
        providers = {
            "p1": ProviderConfig(provider_id="p1", model="x/p1", display_name="P1"),
        }
        with pytest.raises(ConfigError, match="unknown provider 'ghost'"):
            load_rules(path, providers)
        # Without a registry the reference is not checked
        assert load_rules(path)[0].fallbacks == ("ghost",)

    def test_unknown_domain(self, tmp_path):
        path = _write(
            tmp_path, "rules.toml",
            '[[rules]]\nname = "a"\ndomains = ["gardening"]\nprimary = "p1"\n',
        )
        with pytest.raises(ConfigError, match="Invalid rule"):
            load_rules(path)

    def test_no_rules(self, tmp_path):
        path = _write(tmp_path, "rules.toml", "# empty\n")
        with pytest.raises(ConfigError, match="No \\[\\[rules\\]\\] entries"):
            load_rules(path)


class TestLoadParticipants:
    def test_loads_real_config(self):
        pool = load_participants(_CONFIG_DIR / "committee.toml")
        assert len(pool) == 5
        assert pool["the-coordinator"].coordinator
        assert sum(p.coordinator for p in pool.values()) == 1
        assert pool["the-architect"].personality.traits

    def test_requires_single_coordinator(self, tmp_path):
        path = _write(
            tmp_path, "committee.toml",
            '[participants.a]\nname = "A"\nrole = "r"\n'
            '[participants.b]\nname = "B"\nrole = "r"\n',
        )
        with pytest.raises(ConfigError, match="found 0"):
            load_participants(path)

    def test_rejects_two_coordinators(self, tmp_path):
        path = _write(
            tmp_path, "committee.toml",
            '[participants.a]\nname = "A"\nrole = "r"\ncoordinator = true\n'
            '[participants.b]\nname = "B"\nrole = "r"\ncoordinator = true\n',
        )
        with pytest.raises(ConfigError, match="found 2"):
            load_participants(path)

    def test_invalid_personality(self, tmp_path):
        path = _write(
            tmp_path, "committee.toml",
            '[participants.a]\nname = "A"\nrole = "r"\ncoordinator = true\n'
            '[participants.a.personality]\ncommunication_style = "shouty"\n',
        )
        with pytest.raises(ConfigError, match="Invalid participant 'a'"):
            load_participants(path)


class TestLoadEngineConfig:
    def test_loads_real_config(self):
        config = load_engine_config(_CONFIG_DIR / "defaults.toml")
        assert config.routing.default_provider == "gpt-4o-mini"
        assert config.routing.learning_rate == 0.1
        assert config.consensus.max_rounds == 3
        assert config.consensus.threshold == 0.8
        assert config.storage.backend == StorageBackend.SQLITE

    def test_empty_file_uses_defaults(self, tmp_path):
        config = load_engine_config(_write(tmp_path, "defaults.toml", ""))
        assert config.routing.exploration_rate == 0.1
        assert config.consensus.round_timeout == 120.0
        assert config.storage.backend == StorageBackend.MEMORY

    def test_invalid_bounds(self, tmp_path):
        path = _write(
            tmp_path, "defaults.toml",
            "[consensus]\nmin_participants = 6\nmax_participants = 3\n",
        )
        with pytest.raises(ConfigError, match="Invalid engine config"):
            load_engine_config(path)

    def test_resolver_settings_projection(self, tmp_path):
        path = _write(
            tmp_path, "defaults.toml",
            "[routing]\nexploration_rate = 0.25\ntop_k = 2\n",
        )
        settings = load_engine_config(path).routing.resolver_settings()
        assert settings.exploration_rate == 0.25
        assert settings.top_k == 2
        assert settings.preference_bonus == 0.1
