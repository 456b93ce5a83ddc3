"""Runtime settings loaded from the environment or a .env file."""

import logging
import os
from dataclasses import dataclass, field
from typing import Callable, Mapping, Optional, TypeVar

from dotenv import load_dotenv

from .exceptions import ConfigurationError
from .models import Thresholds
from .route_provider import DEFAULT_SCRAPER_URL

logger = logging.getLogger(__name__)

ENV_PREFIX = "TRAINALARM_"
DEFAULT_CACHE_PATH = "~/.trainalarm/cached-route.json"

T = TypeVar("T")


def _parse_bool(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in ("1", "true", "yes", "on"):
        return True
    if lowered in ("0", "false", "no", "off", ""):
        return False
    raise ValueError(f"not a boolean: {value!r}")


@dataclass
class Settings:
    """Settings for a tracking session."""
    scraper_url: str = DEFAULT_SCRAPER_URL
    request_timeout: float = 15.0
    demo_mode: bool = False
    cache_path: Optional[str] = DEFAULT_CACHE_PATH
    speed_multiplier: float = 200.0
    thresholds: Thresholds = field(default_factory=Thresholds)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None, dotenv: bool = True) -> "Settings":
        """
        Build settings from ``TRAINALARM_*`` variables.

        Args:
            environ: Mapping to read instead of ``os.environ``.
            dotenv: Load a ``.env`` file into the process environment first.

        Raises:
            ConfigurationError: If a variable cannot be parsed.
        """
        if environ is None:
            if dotenv:
                load_dotenv()
            environ = os.environ

        def get(name: str, parse: Callable[[str], T], default: T) -> T:
            raw = environ.get(ENV_PREFIX + name)
            if raw is None:
                return default
            try:
                return parse(raw)
            except ValueError as e:
                raise ConfigurationError(f"Invalid value for {ENV_PREFIX}{name}: {e}")

        defaults = Thresholds()
        thresholds = Thresholds(
            approach_km=get("APPROACH_KM", float, defaults.approach_km),
            pre_alert_km=get("PRE_ALERT_KM", float, defaults.pre_alert_km),
            alarm_km=get("ALARM_KM", float, defaults.alarm_km),
            snooze_ms=get("SNOOZE_MS", int, defaults.snooze_ms),
            debounce_samples=get("DEBOUNCE_SAMPLES", int, defaults.debounce_samples),
        )
        try:
            thresholds.validate()
        except ValueError as e:
            raise ConfigurationError(str(e))

        settings = cls(
            scraper_url=get("SCRAPER_URL", str, DEFAULT_SCRAPER_URL),
            request_timeout=get("REQUEST_TIMEOUT", float, 15.0),
            demo_mode=get("DEMO_MODE", _parse_bool, False),
            cache_path=get("CACHE_PATH", str, DEFAULT_CACHE_PATH) or None,
            speed_multiplier=get("SPEED_MULTIPLIER", float, 200.0),
            thresholds=thresholds,
        )
        if settings.speed_multiplier <= 0:
            raise ConfigurationError(f"{ENV_PREFIX}SPEED_MULTIPLIER must be positive")

        logger.debug(f"Loaded settings: {settings}")
        return settings
