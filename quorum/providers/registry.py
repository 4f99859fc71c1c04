"""Provider registry and TOML configuration loaders.

Loads the provider registry from providers.toml, the routing rule table
from rules.toml, the consensus participant pool from committee.toml,
and engine defaults from defaults.toml.
"""

from __future__ import annotations

import tomllib
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from quorum.errors import ConfigError
from quorum.schemas.config import EngineConfig
from quorum.schemas.consensus import Participant
from quorum.schemas.providers import ProviderConfig
from quorum.schemas.routing import RoutingRule

# Default config directory relative to the quorum package
_CONFIG_DIR = Path(__file__).parent.parent / "config"


def _read_toml(path: Path, kind: str) -> dict[str, Any]:
    if not path.exists():
        raise FileNotFoundError(f"{kind} not found: {path}")
    with open(path, "rb") as f:
        try:
            return tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ConfigError(f"Invalid TOML in {path}: {e}") from e


def load_providers(config_path: Path | None = None) -> dict[str, ProviderConfig]:
    """Load the provider registry from a TOML file.

    Args:
        config_path: Path to providers.toml. Defaults to the bundled file.

    Returns:
        Dictionary mapping provider ids to ProviderConfig instances.

    Raises:
        FileNotFoundError: If the config file does not exist.
        ValueError: If the TOML structure is invalid.
    """
    path = config_path or _CONFIG_DIR / "providers.toml"
    raw = _read_toml(path, "Provider registry")

    section = raw.get("providers")
    if not section or not isinstance(section, dict):
        raise ConfigError(f"No [providers] section found in {path}")

    registry: dict[str, ProviderConfig] = {}
    for key, entry in section.items():
        if not isinstance(entry, dict):
            continue
        try:
            registry[key] = ProviderConfig(provider_id=key, **entry)
        except ValidationError as e:
            raise ConfigError(f"Invalid provider '{key}' in {path}: {e}") from e

    return registry


def load_rules(
    config_path: Path | None = None,
    providers: dict[str, ProviderConfig] | None = None,
) -> list[RoutingRule]:
    """Load the routing rule table in declaration order.

    When ``providers`` is given, every primary and fallback must name a
    registered provider.

    Raises:
        FileNotFoundError: If the config file does not exist.
        ValueError: If the TOML structure or a rule is invalid.
    """
    path = config_path or _CONFIG_DIR / "rules.toml"
    raw = _read_toml(path, "Rule table")

    entries = raw.get("rules")
    if not isinstance(entries, list):
        raise ConfigError(f"No [[rules]] entries found in {path}")

    rules: list[RoutingRule] = []
    seen: set[str] = set()
    for entry in entries:
        try:
            rule = RoutingRule(**entry)
        except (TypeError, ValidationError) as e:
            raise ConfigError(f"Invalid rule in {path}: {e}") from e
        if rule.name in seen:
            raise ConfigError(f"Duplicate rule name '{rule.name}' in {path}")
        seen.add(rule.name)
        if providers is not None:
            for provider in (rule.primary, *rule.fallbacks):
                if provider not in providers:
                    raise ConfigError(
                        f"Rule '{rule.name}' references unknown provider '{provider}'"
                    )
        rules.append(rule)

    return rules


def load_participants(config_path: Path | None = None) -> dict[str, Participant]:
    """Load the consensus participant pool.

    Exactly one participant must carry the coordinator flag.

    Raises:
        FileNotFoundError: If the config file does not exist.
        ValueError: If the TOML structure is invalid.
    """
    path = config_path or _CONFIG_DIR / "committee.toml"
    raw = _read_toml(path, "Committee config")

    section = raw.get("participants")
    if not section or not isinstance(section, dict):
        raise ConfigError(f"No [participants] section found in {path}")

    pool: dict[str, Participant] = {}
    for key, entry in section.items():
        if not isinstance(entry, dict):
            continue
        try:
            pool[key] = Participant(participant_id=key, **entry)
        except ValidationError as e:
            raise ConfigError(f"Invalid participant '{key}' in {path}: {e}") from e

    coordinators = [p.participant_id for p in pool.values() if p.coordinator]
    if len(coordinators) != 1:
        raise ConfigError(
            f"Expected exactly one coordinator in {path}, found {len(coordinators)}"
        )
    return pool


def load_engine_config(config_path: Path | None = None) -> EngineConfig:
    """Load engine defaults from defaults.toml.

    Raises:
        FileNotFoundError: If the config file does not exist.
        ValueError: If a section fails validation.
    """
    path = config_path or _CONFIG_DIR / "defaults.toml"
    raw = _read_toml(path, "Engine config")

    try:
        return EngineConfig(
            routing=raw.get("routing", {}),
            consensus=raw.get("consensus", {}),
            storage=raw.get("storage", {}),
        )
    except ValidationError as e:
        raise ConfigError(f"Invalid engine config in {path}: {e}") from e
