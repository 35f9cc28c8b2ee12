"""
================================================================================
Gismis v1.0 - Configuration
================================================================================
Environment-driven settings for the aggregation engine.

Values come from the process environment (a local .env file is loaded by the
package on import). Everything has a sane default so the engine runs with no
configuration at all; only TMDB needs a token to be enabled.
================================================================================
"""

import os
from dataclasses import dataclass, field
from typing import Mapping, Optional

from .errors import ConfigError


TRUTHY = ('1', 'true', 'yes', 'on')


@dataclass(frozen=True)
class AggregatorConfig:
    """Timeout and cache TTLs owned by one DataAggregator."""
    per_source_timeout: float = 30.0   # seconds, per adapter call
    list_ttl: int = 3600               # 1 hour
    search_ttl: int = 600              # 10 minutes
    schedule_ttl: int = 1800           # 30 minutes

    def __post_init__(self):
        for name in ('per_source_timeout', 'list_ttl', 'search_ttl', 'schedule_ttl'):
            value = getattr(self, name)
            if value <= 0:
                raise ValueError(f"{name} must be positive, got {value}")


@dataclass(frozen=True)
class Settings:
    """Process-wide settings read from the environment."""
    aggregator: AggregatorConfig = field(default_factory=AggregatorConfig)
    request_timeout: float = 25.0
    enable_jikan: bool = True
    tmdb_api_token: str = ""
    redis_url: str = ""
    log_level: str = "INFO"
    log_file: str = ""
    debug_logging: bool = False

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """
        Build settings from environment variables.

        Args:
            environ: Mapping to read from (defaults to os.environ)

        Returns:
            Settings instance

        Raises:
            ConfigError: If a numeric variable cannot be parsed or is not positive
        """
        env = os.environ if environ is None else environ

        aggregator = AggregatorConfig(
            per_source_timeout=_number(env, 'GISMIS_SOURCE_TIMEOUT', 30.0, float),
            list_ttl=_number(env, 'GISMIS_LIST_TTL', 3600, int),
            search_ttl=_number(env, 'GISMIS_SEARCH_TTL', 600, int),
            schedule_ttl=_number(env, 'GISMIS_SCHEDULE_TTL', 1800, int),
        )

        return cls(
            aggregator=aggregator,
            request_timeout=_number(env, 'GISMIS_REQUEST_TIMEOUT', 25.0, float),
            enable_jikan=env.get('GISMIS_ENABLE_JIKAN', 'true').strip().lower() in TRUTHY,
            tmdb_api_token=env.get('TMDB_API_TOKEN', '').strip(),
            redis_url=env.get('REDIS_URL', '').strip(),
            log_level=env.get('LOG_LEVEL', 'INFO').strip().upper() or 'INFO',
            log_file=env.get('LOG_FILE', '').strip(),
            debug_logging=env.get('DEBUG_LOGGING', 'false').strip().lower() in TRUTHY,
        )


def _number(env: Mapping[str, str], name: str, default, cast):
    raw = env.get(name, '').strip()
    if not raw:
        return default
    try:
        value = cast(raw)
    except ValueError:
        raise ConfigError(name, raw, f"expected {cast.__name__}") from None
    if value <= 0:
        raise ConfigError(name, raw, "must be positive")
    return value
