"""
Runtime configuration for GitSee.

Settings are read from environment variables (optionally loaded from a .env
file by run.py). Every value has a default so the service starts with no
configuration at all.
"""

import logging
import os
import tempfile
from dataclasses import dataclass
from typing import Mapping, Optional

logger = logging.getLogger(__name__)


def _read_float(env: Mapping[str, str], name: str, default: Optional[float]) -> Optional[float]:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning(f"Invalid {name} value: {raw}, using default {default}")
        return default


def _read_int(env: Mapping[str, str], name: str, default: int, minimum: int = 0) -> int:
    value = _read_float(env, name, float(default))
    try:
        result = int(value)
    except (ValueError, OverflowError):
        logger.warning(f"Invalid {name} value: {env.get(name)}, using default {default}")
        return default
    if result < minimum:
        logger.warning(f"{name} must be at least {minimum}, using default {default}")
        return default
    return result


@dataclass
class GitSeeSettings:
    """Configuration for a GitSee process"""
    base_path: str = os.path.join(tempfile.gettempdir(), "gitsee")
    data_dir: str = "./data/repos"
    github_token: Optional[str] = None
    cache_ttl_seconds: float = 300.0
    staleness_hours: float = 24.0
    max_steps: int = 25
    heartbeat_seconds: float = 30.0
    subscriber_wait_seconds: float = 10.0
    checkout_max_age_hours: Optional[float] = None
    purge_after_hours: Optional[float] = None
    llm_provider: str = "anthropic"
    llm_model_id: Optional[str] = None
    llm_api_key: Optional[str] = None
    host: str = "127.0.0.1"
    port: int = 8000

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "GitSeeSettings":
        """
        Build settings from environment variables.

        Args:
            env: Mapping to read from (defaults to os.environ)

        Returns:
            GitSeeSettings instance
        """
        env = os.environ if env is None else env
        defaults = cls()

        return cls(
            base_path=env.get("GITSEE_BASE_PATH") or defaults.base_path,
            data_dir=env.get("GITSEE_DATA_DIR") or defaults.data_dir,
            github_token=env.get("GITHUB_TOKEN") or None,
            cache_ttl_seconds=_read_float(env, "GITSEE_CACHE_TTL", defaults.cache_ttl_seconds),
            staleness_hours=_read_float(env, "GITSEE_STALENESS_HOURS", defaults.staleness_hours),
            max_steps=_read_int(env, "GITSEE_MAX_STEPS", defaults.max_steps, minimum=1),
            heartbeat_seconds=_read_float(env, "GITSEE_HEARTBEAT_SECONDS", defaults.heartbeat_seconds),
            subscriber_wait_seconds=_read_float(
                env, "GITSEE_SUBSCRIBER_WAIT_SECONDS", defaults.subscriber_wait_seconds
            ),
            checkout_max_age_hours=_read_float(env, "GITSEE_CHECKOUT_MAX_AGE_HOURS", None),
            purge_after_hours=_read_float(env, "GITSEE_PURGE_AFTER_HOURS", None),
            llm_provider=(env.get("LLM_PROVIDER") or defaults.llm_provider).lower(),
            llm_model_id=env.get("LLM_MODEL_ID") or None,
            llm_api_key=env.get("LLM_API_KEY") or None,
            host=env.get("GITSEE_HOST") or defaults.host,
            port=_read_int(env, "GITSEE_PORT", defaults.port),
        )
