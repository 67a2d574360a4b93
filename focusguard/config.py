"""Agent configuration read from the environment."""

import os

from pydantic import BaseModel, Field

DEFAULT_API_BASE_URL = "http://127.0.0.1:8000/api/v1"


class Settings(BaseModel):
    """Runtime settings for the tracking agent."""

    api_base_url: str = DEFAULT_API_BASE_URL
    user_id: int = Field(default=1, ge=1)
    default_category_id: int = Field(default=1, ge=1)
    origin: str = "default"
    double_edged_category_ids: frozenset[int] = frozenset({4})
    http_timeout_seconds: float = Field(default=10.0, gt=0)
    fetch_metadata: bool = True
    log_level: str = "INFO"


def _get_float(env_var: str, default: float) -> float:
    """Read a positive float from environment with safe fallback."""
    raw = os.getenv(env_var)
    if raw is None:
        return default
    try:
        value = float(raw)
    except ValueError:
        return default
    if value <= 0:
        return default
    return value


def _get_int(env_var: str, default: int) -> int:
    """Read a positive integer from environment with safe fallback."""
    raw = os.getenv(env_var)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError:
        return default
    if value <= 0:
        return default
    return value


def _get_bool(env_var: str, default: bool) -> bool:
    """Read a boolean flag from environment with safe fallback."""
    raw = os.getenv(env_var)
    if raw is None:
        return default
    lowered = raw.strip().lower()
    if lowered in {"1", "true", "yes", "on"}:
        return True
    if lowered in {"0", "false", "no", "off"}:
        return False
    return default


def _get_int_set(env_var: str, default: frozenset[int]) -> frozenset[int]:
    """Read a comma-separated set of integers; any bad entry keeps the default."""
    raw = os.getenv(env_var)
    if raw is None or not raw.strip():
        return default
    try:
        return frozenset(int(part) for part in raw.split(",") if part.strip())
    except ValueError:
        return default


def load_settings() -> Settings:
    """Build settings from ``FOCUSGUARD_*`` environment variables."""
    defaults = Settings()
    return Settings(
        api_base_url=os.getenv("FOCUSGUARD_API_BASE_URL", defaults.api_base_url).rstrip("/"),
        user_id=_get_int("FOCUSGUARD_USER_ID", defaults.user_id),
        default_category_id=_get_int(
            "FOCUSGUARD_DEFAULT_CATEGORY_ID", defaults.default_category_id
        ),
        origin=os.getenv("FOCUSGUARD_ORIGIN", defaults.origin),
        double_edged_category_ids=_get_int_set(
            "FOCUSGUARD_DOUBLE_EDGED_CATEGORY_IDS", defaults.double_edged_category_ids
        ),
        http_timeout_seconds=_get_float(
            "FOCUSGUARD_HTTP_TIMEOUT_SECONDS", defaults.http_timeout_seconds
        ),
        fetch_metadata=_get_bool("FOCUSGUARD_FETCH_METADATA", defaults.fetch_metadata),
        log_level=os.getenv("FOCUSGUARD_LOG_LEVEL", defaults.log_level).upper(),
    )
