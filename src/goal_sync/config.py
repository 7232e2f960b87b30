"""Configuration loading for goal-sync.

Reads settings from environment variables (with .env support via python-dotenv)
and validates that all required values are present.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv

GOOGLE_TOKEN_URI = "https://oauth2.googleapis.com/token"

PUSH_POLICIES: tuple[str, ...] = ("create_always", "create_or_update_by_record")


class ConfigError(Exception):
    """Raised when required configuration is missing or invalid."""


@dataclass(frozen=True)
class Settings:
    """Deployment settings loaded from environment variables.

    Attributes:
        database_url: SQLAlchemy URL of the planning/sync database.
        google_client_id: OAuth client id used for token refresh.  Empty
            when the deployment has not configured Google.
        google_client_secret: OAuth client secret paired with the id.
        token_uri: Google OAuth token endpoint.
        timezone: IANA timezone used to render and read event times.
        push_policy: ``"create_always"`` or ``"create_or_update_by_record"``.
        log_level: Logging level (default ``"INFO"``).
    """

    database_url: str
    google_client_id: str = ""
    google_client_secret: str = ""
    token_uri: str = GOOGLE_TOKEN_URI
    timezone: str = "UTC"
    push_policy: str = "create_always"
    log_level: str = "INFO"

    @property
    def has_google_client(self) -> bool:
        """Whether both OAuth client credentials are configured."""
        return bool(self.google_client_id and self.google_client_secret)

    def __repr__(self) -> str:
        return (
            f"Settings(database_url={self.database_url!r}, "
            f"google_client_id={self.google_client_id!r}, "
            f"google_client_secret='***', "
            f"token_uri={self.token_uri!r}, "
            f"timezone={self.timezone!r}, "
            f"push_policy={self.push_policy!r}, "
            f"log_level={self.log_level!r})"
        )


def load_settings() -> Settings:
    """Load and validate settings from environment variables.

    Calls :func:`dotenv.load_dotenv` so a ``.env`` file in the project root
    is picked up automatically.

    Google client credentials are optional here: a deployment without them
    can still push and pull for users whose access tokens are fresh, and
    fails with ``AuthError`` only when a refresh is needed.

    Returns:
        A validated :class:`Settings` instance.

    Raises:
        ConfigError: If ``DATABASE_URL`` is missing, or ``TIMEZONE`` or
            ``PUSH_POLICY`` holds an unknown value.
    """
    load_dotenv()

    required = {
        "DATABASE_URL": "database_url",
    }

    values: dict[str, str] = {}
    missing: list[str] = []

    for env_var, field_name in required.items():
        raw = os.environ.get(env_var, "")
        if not raw.strip():
            missing.append(env_var)
        else:
            values[field_name] = raw.strip()

    if missing:
        names = ", ".join(missing)
        raise ConfigError(f"Missing required environment variables: {names}")

    optional = {
        "GOOGLE_CLIENT_ID": "google_client_id",
        "GOOGLE_CLIENT_SECRET": "google_client_secret",
        "GOOGLE_TOKEN_URI": "token_uri",
        "TIMEZONE": "timezone",
        "PUSH_POLICY": "push_policy",
        "LOG_LEVEL": "log_level",
    }
    for env_var, field_name in optional.items():
        raw = os.environ.get(env_var, "").strip()
        if raw:
            values[field_name] = raw

    timezone = values.get("timezone", "UTC")
    try:
        ZoneInfo(timezone)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ConfigError(f"Unknown TIMEZONE: {timezone!r}") from exc

    push_policy = values.get("push_policy", "create_always")
    if push_policy not in PUSH_POLICIES:
        allowed = ", ".join(PUSH_POLICIES)
        raise ConfigError(f"Invalid PUSH_POLICY {push_policy!r} (expected one of: {allowed})")

    return Settings(**values)
