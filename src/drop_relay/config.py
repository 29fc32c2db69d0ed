"""
Relay configuration loaded from environment variables.

Environment Variables:
    WEBHOOK_URL                      Webhook endpoint (required unless dry run)
    PLAYER_NAME                      Local player's name (default: Player)
    ACCOUNT_HASH                     Local player's account hash
    LOG_LEVEL                        Logging level (DEBUG/INFO/WARNING/ERROR)
    DRY_RUN                          Set to "true" to log payloads instead of posting
    GROUP_CONFIGS_PATH               JSON file with the service's group configs
    SEND_UNQUALIFIED                 Send events no group wants, untracked (default: true)
    WEBHOOK_TIMEOUT_SECONDS          Per-attempt HTTP timeout (default: 30)
    RETRY_ENABLED                    Queue failed deliveries for retry (default: true)
    RETRY_QUEUE_CAPACITY             Retry queue bound (default: 500)
    RETRY_MAX_ATTEMPTS               Retries per submission (default: 5)
    RETRY_MAX_AGE_SECONDS            Queued submissions expire after (default: 86400)
    RETRY_DRAIN_INTERVAL_SECONDS     Retry drain loop period (default: 10)
    CORRELATOR_FLUSH_WINDOW_SECONDS  Deferred kill flush (default: 15)
    CORRELATOR_SETTLE_TICKS          Quiet ticks before a kill is emitted (default: 2)
    SCREENSHOT_DROP_VALUE            Drops above this value carry a screenshot (default: 250000)
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Mapping, Optional

from drop_relay import __version__
from drop_relay.core.correlator import CorrelatorConfig
from drop_relay.delivery.client import WebhookClientConfig
from drop_relay.delivery.failures import RetryConfig
from drop_relay.errors import ConfigError
from drop_relay.routing.models import ScreenshotPolicy
from drop_relay.routing.router import RouterConfig

logger = logging.getLogger(__name__)

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


def _get_int(env: Mapping[str, str], name: str, default: int, minimum: int = 0) -> int:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}")
    if value < minimum:
        raise ConfigError(f"{name} must be >= {minimum}, got {value}")
    return value


def _get_float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got {raw!r}")
    if value <= 0:
        raise ConfigError(f"{name} must be positive, got {value}")
    return value


def _get_bool(env: Mapping[str, str], name: str, default: bool) -> bool:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    lowered = raw.strip().lower()
    if lowered in ("true", "1", "yes"):
        return True
    if lowered in ("false", "0", "no"):
        return False
    raise ConfigError(f"{name} must be true or false, got {raw!r}")


@dataclass
class RelayConfig:
    """Complete relay configuration."""

    # Identity
    player_name: str = "Player"
    account_hash: Optional[str] = None

    # Delivery
    webhook_url: str = ""
    dry_run: bool = False
    log_level: str = "INFO"

    # Routing
    group_configs_path: Optional[str] = None
    send_unqualified: bool = True

    # Components
    client: WebhookClientConfig = field(default_factory=WebhookClientConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)
    correlator: CorrelatorConfig = field(default_factory=CorrelatorConfig)
    screenshots: ScreenshotPolicy = field(default_factory=ScreenshotPolicy)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "RelayConfig":
        """
        Load configuration from environment variables.

        Args:
            environ: Mapping to read instead of os.environ

        Raises:
            ConfigError: If a value cannot be parsed or is out of range
        """
        env = os.environ if environ is None else environ

        log_level = env.get("LOG_LEVEL", "INFO").upper()
        if log_level not in LOG_LEVELS:
            raise ConfigError(f"LOG_LEVEL must be one of {', '.join(LOG_LEVELS)}, got {log_level!r}")

        webhook_url = env.get("WEBHOOK_URL", "")

        config = cls(
            player_name=env.get("PLAYER_NAME", "Player"),
            account_hash=env.get("ACCOUNT_HASH") or None,
            webhook_url=webhook_url,
            dry_run=_get_bool(env, "DRY_RUN", False),
            log_level=log_level,
            group_configs_path=env.get("GROUP_CONFIGS_PATH") or None,
            send_unqualified=_get_bool(env, "SEND_UNQUALIFIED", True),
            client=WebhookClientConfig(
                url=webhook_url,
                timeout_seconds=_get_float(env, "WEBHOOK_TIMEOUT_SECONDS", 30.0),
            ),
            retry=RetryConfig(
                enabled=_get_bool(env, "RETRY_ENABLED", True),
                queue_capacity=_get_int(env, "RETRY_QUEUE_CAPACITY", 500),
                max_attempts=_get_int(env, "RETRY_MAX_ATTEMPTS", 5),
                max_age_seconds=_get_float(env, "RETRY_MAX_AGE_SECONDS", 24 * 3600),
                drain_interval_seconds=_get_float(env, "RETRY_DRAIN_INTERVAL_SECONDS", 10.0),
            ),
            correlator=CorrelatorConfig(
                flush_window_seconds=_get_float(env, "CORRELATOR_FLUSH_WINDOW_SECONDS", 15.0),
                settle_ticks=_get_int(env, "CORRELATOR_SETTLE_TICKS", 2, minimum=1),
            ),
            screenshots=ScreenshotPolicy(
                drop_value=_get_int(env, "SCREENSHOT_DROP_VALUE", 250_000),
            ),
        )

        if config.webhook_url and not config.webhook_url.startswith(("http://", "https://")):
            raise ConfigError(f"WEBHOOK_URL must be an http(s) URL, got {config.webhook_url!r}")

        return config

    def router_config(self) -> RouterConfig:
        """Router settings derived from this config."""
        return RouterConfig(
            account_hash=self.account_hash,
            plugin_version=__version__,
            use_groups=self.group_configs_path is not None,
            send_unqualified=self.send_unqualified,
        )

    def validate(self) -> None:
        """
        Check that the relay can run with this config.

        Raises:
            ConfigError: If a live run has no webhook URL
        """
        if not self.dry_run and not self.webhook_url:
            raise ConfigError("WEBHOOK_URL is required unless DRY_RUN is set")
