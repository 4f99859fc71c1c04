"""API key loading for provider calls.

Keys are read with this priority:
  1. Environment variables (already set in the shell)
  2. ~/.quorum/keys.env
  3. .env in the current directory
Later sources never overwrite earlier ones.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from quorum.schemas.providers import ProviderConfig

logger = logging.getLogger(__name__)

QUORUM_HOME = Path.home() / ".quorum"
KEYS_FILE = QUORUM_HOME / "keys.env"


def load_keys_env(extra: list[Path] | None = None) -> None:
    """Load keys.env files into os.environ without overwriting existing vars."""
    files = [KEYS_FILE, Path.cwd() / ".env", *(extra or [])]
    for env_file in files:
        if env_file.is_file():
            _load_env_file(env_file)


def _load_env_file(path: Path) -> None:
    """Parse a KEY=VALUE file and set vars that aren't already set."""
    try:
        for line in path.read_text(encoding="utf-8").splitlines():
            line = line.strip()
            if not line or line.startswith("#") or "=" not in line:
                continue
            key, _, value = line.partition("=")
            key = key.strip().removeprefix("export ").strip()
            value = value.strip().strip("'\"")
            if key and not os.environ.get(key):
                os.environ[key] = value
                logger.debug("Loaded %s from %s", key, path)
    except OSError:
        logger.debug("Could not read %s", path)


def key_status(providers: dict[str, ProviderConfig]) -> dict[str, bool]:
    """Provider id → whether its API key variable is set.

    Providers that declare no key variable (local endpoints) count as set.
    """
    return {
        pid: (not cfg.api_key_env) or bool(os.environ.get(cfg.api_key_env))
        for pid, cfg in providers.items()
    }
