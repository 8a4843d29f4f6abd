"""
Runtime settings for the hexswarm client.

Defaults live as module constants; ``Settings.from_env`` lets the
environment override them and the CLI scripts override both with flags.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Mapping

from rich.logging import RichHandler

DEFAULT_HOST = "localhost"
DEFAULT_PORT = 4003
RECONNECT_DELAY = 3.0        # seconds between reconnect attempts (fixed, no backoff)
HISTORY_LIMIT = 100          # events requested via get_history on every connect
MAX_ACTIVITY = 500           # client-side event history bound

ENV_PREFIX = "HEXSWARM_"


class ConfigError(ValueError):
    """Raised when an environment override cannot be parsed."""


def _env_number(env: Mapping[str, str], name: str, default, cast):
    raw = env.get(ENV_PREFIX + name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = cast(raw)
    except ValueError:
        raise ConfigError(f"{ENV_PREFIX}{name}={raw!r} is not a valid {cast.__name__}") from None
    if value < 0:
        raise ConfigError(f"{ENV_PREFIX}{name} must be non-negative, got {raw!r}")
    return value


@dataclass
class Settings:
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    reconnect_delay: float = RECONNECT_DELAY
    history_limit: int = HISTORY_LIMIT
    debug: bool = False

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> "Settings":
        env = os.environ if env is None else env
        return cls(
            host=env.get(ENV_PREFIX + "HOST") or DEFAULT_HOST,
            port=_env_number(env, "PORT", DEFAULT_PORT, int),
            reconnect_delay=_env_number(env, "RECONNECT_DELAY", RECONNECT_DELAY, float),
            history_limit=_env_number(env, "HISTORY_LIMIT", HISTORY_LIMIT, int),
            debug=env.get(ENV_PREFIX + "DEBUG", "").lower() in ("1", "true", "yes", "on"),
        )

    @property
    def ws_url(self) -> str:
        return f"ws://{self.host}:{self.port}"

    @property
    def http_url(self) -> str:
        return f"http://{self.host}:{self.port}"


def configure_logging(
    debug: bool = False,
    log_file: str | None = None,
    console=None,
    level: int | None = None,
):
    """Route library logging through Rich, or to ``log_file`` when given."""
    if level is None:
        level = logging.DEBUG if debug else logging.INFO
    if log_file:
        handler: logging.Handler = logging.FileHandler(log_file)
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)-7s %(name)s: %(message)s"))
    else:
        handler = RichHandler(console=console, show_path=False, rich_tracebacks=debug)
    logging.basicConfig(level=level, handlers=[handler], force=True)
    # aiohttp is chatty at DEBUG about every frame
    logging.getLogger("aiohttp").setLevel(logging.INFO if debug else logging.WARNING)
