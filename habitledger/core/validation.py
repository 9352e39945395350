"""
Environment validation utilities.

Ensures the service fails fast on misconfiguration while
remaining bypassable for tests via SKIP_ENV_VALIDATION.
"""

import os
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from habitledger.core.config import settings
from habitledger.features.obligations.store import InMemoryFriendGraph

KNOWN_ENVS = {"development", "test", "production"}


class EnvValidationError(RuntimeError):
    """Raised when environment validation fails."""


def _is_valid_timezone(name: str) -> bool:
    try:
        ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        return False
    return True


def validate_env(env: Optional[str] = None, settings_obj=None) -> bool:
    """Validate environment configuration.

    Args:
        env: Override environment name (defaults to settings.ENV)
        settings_obj: Override settings object (defaults to habitledger.core.config.settings)

    Returns:
        True if validation passes.

    Raises:
        EnvValidationError when a rule is violated.
    """
    if os.getenv("SKIP_ENV_VALIDATION") == "1":
        return True

    cfg = settings_obj or settings
    mode = (env or getattr(cfg, "ENV", "development") or "development").lower()

    if mode not in KNOWN_ENVS:
        raise EnvValidationError(f"ENV must be one of {sorted(KNOWN_ENVS)}, got {mode!r}")

    tz_name = getattr(cfg, "REFERENCE_TIMEZONE", None)
    if not tz_name or not _is_valid_timezone(tz_name):
        raise EnvValidationError(f"REFERENCE_TIMEZONE is not a known timezone: {tz_name!r}")

    threshold = getattr(cfg, "CHALLENGE_PASS_THRESHOLD", None)
    if threshold is None or not 0 <= float(threshold) <= 100:
        raise EnvValidationError("CHALLENGE_PASS_THRESHOLD must be between 0 and 100")

    try:
        InMemoryFriendGraph.parse_edges(getattr(cfg, "FRIEND_EDGES", ""))
    except ValueError as exc:
        raise EnvValidationError(f"FRIEND_EDGES: {exc}") from None

    return True
