"""Configuration for mailpilot.

Values are read from the environment on every access so tests and long
running servers pick up changes without a restart.
"""

import logging
import os
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from mailpilot.cdp.views import TargetMatchRule

logger = logging.getLogger(__name__)


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning(f"Ignoring invalid {name}={raw!r}, using {default}")
        return default


def _env_int(name: str, default: int) -> int:
    return int(_env_float(name, default))


class Config:
    """Environment backed settings, re-read on every access."""

    _instance: "Config | None" = None

    def __new__(cls) -> "Config":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    @property
    def LOGGING_LEVEL(self) -> str:
        return os.getenv("MAILPILOT_LOGGING_LEVEL", "info").lower()

    @property
    def CDP_LOGGING_LEVEL(self) -> str:
        return os.getenv("CDP_LOGGING_LEVEL", "WARNING").upper()

    @property
    def CDP_HOST(self) -> str:
        return os.getenv("MAILPILOT_CDP_HOST", "127.0.0.1")

    @property
    def CDP_PORT(self) -> int:
        return _env_int("MAILPILOT_CDP_PORT", 9333)

    @property
    def TARGET_URL_PATTERN(self) -> str:
        return os.getenv("MAILPILOT_TARGET_URL_PATTERN", r"mail\.superhuman\.com")

    @property
    def TARGET_EXCLUDE_PATTERN(self) -> str:
        return os.getenv("MAILPILOT_TARGET_EXCLUDE_PATTERN", "background_page")

    @property
    def COMMAND_TIMEOUT(self) -> float:
        return _env_float("MAILPILOT_COMMAND_TIMEOUT", 30.0)

    @property
    def POLL_ATTEMPTS(self) -> int:
        return _env_int("MAILPILOT_POLL_ATTEMPTS", 10)

    @property
    def POLL_INTERVAL(self) -> float:
        return _env_float("MAILPILOT_POLL_INTERVAL", 0.2)

    @property
    def WRITE_RETRIES(self) -> int:
        return _env_int("MAILPILOT_WRITE_RETRIES", 3)

    @property
    def TRIGGER_RETRIES(self) -> int:
        return _env_int("MAILPILOT_TRIGGER_RETRIES", 3)

    @property
    def TRIGGER_BACKOFF(self) -> float:
        return _env_float("MAILPILOT_TRIGGER_BACKOFF", 0.5)

    @property
    def API_HOST(self) -> str:
        return os.getenv("MAILPILOT_API_HOST", "127.0.0.1")

    @property
    def API_PORT(self) -> int:
        return _env_int("MAILPILOT_API_PORT", 8765)

    def host_endpoint(self, port: int | None = None) -> str:
        return f"http://{self.CDP_HOST}:{port or self.CDP_PORT}"

    def match_rule(self) -> "TargetMatchRule":
        from mailpilot.cdp.views import TargetMatchRule

        return TargetMatchRule(
            url_pattern=self.TARGET_URL_PATTERN,
            exclude_pattern=self.TARGET_EXCLUDE_PATTERN or None,
        )


CONFIG = Config()
