"""
Application configuration.

Centralizes environment variables, constants, and settings
using dataclasses for type safety and immutability.
"""

import os
from dataclasses import dataclass, field
from urllib.parse import quote


def _env_int(name: str, default: int) -> int:
    """Read an integer environment variable, falling back on blank values."""
    raw = os.environ.get(name, "").strip()
    return int(raw) if raw else default


@dataclass(frozen=True)
class AutomationSettings:
    """Remote browser-automation service settings."""

    base_url: str = field(
        default_factory=lambda: (
            os.environ.get("AUTOMATION_URL") or os.environ.get("BROWSERLESS_URL", "")
        ).strip()
    )
    token: str = field(
        default_factory=lambda: (
            os.environ.get("AUTOMATION_TOKEN") or os.environ.get("BROWSERLESS_TOKEN", "")
        ).strip()
    )
    task: str = field(
        default_factory=lambda: os.environ.get("AUTOMATION_TASK", "book-slot")
    )
    recovery_task: str = field(
        default_factory=lambda: os.environ.get("AUTOMATION_RECOVERY_TASK", "dismiss-obstruction")
    )

    @property
    def is_configured(self) -> bool:
        """Check if the automation service is configured."""
        return bool(self.base_url)

    @property
    def endpoint_url(self) -> str:
        """Get the endpoint URL, with the token appended when needed."""
        if not self.base_url:
            return ""
        if self.token and "token=" not in self.base_url:
            join = "&" if "?" in self.base_url else "?"
            return f"{self.base_url}{join}token={quote(self.token, safe='')}"
        return self.base_url


@dataclass(frozen=True)
class RetrySettings:
    """Retry and timeout defaults for automation calls."""

    per_attempt_timeout_ms: int = field(
        default_factory=lambda: _env_int("BROWSERLESS_PER_ATTEMPT_TIMEOUT_MS", 180_000)
    )
    overall_timeout_ms: int = field(
        default_factory=lambda: _env_int("BROWSERLESS_OVERALL_TIMEOUT_MS", 540_000)
    )
    max_attempts: int = field(
        default_factory=lambda: _env_int("BROWSERLESS_MAX_ATTEMPTS", 3)
    )
    backoff_base_ms: int = field(
        default_factory=lambda: _env_int("BACKOFF_BASE_MS", 1_000)
    )
    backoff_max_ms: int = field(
        default_factory=lambda: _env_int("BACKOFF_MAX_MS", 8_000)
    )


@dataclass(frozen=True)
class CredentialsSettings:
    """Credentials for the third-party booking site."""

    username: str = field(
        default_factory=lambda: os.environ.get("SITE_USERNAME", "")
    )
    password: str = field(
        default_factory=lambda: os.environ.get("SITE_PASSWORD", "")
    )

    @property
    def is_configured(self) -> bool:
        """Check if both credentials are present."""
        return bool(self.username and self.password)


@dataclass(frozen=True)
class AuthSettings:
    """Inbound request authentication settings."""

    # Empty means the /book endpoint is open
    api_key: str = field(
        default_factory=lambda: os.environ.get("API_KEY", "")
    )


@dataclass(frozen=True)
class BookingDefaults:
    """Fallback values for booking rule fields missing from a request."""

    target_day: str = field(
        default_factory=lambda: os.environ.get("DEFAULT_TARGET_DAY", "Wednesday")
    )
    window_start: str = field(
        default_factory=lambda: os.environ.get("DEFAULT_WINDOW_START", "17:00")
    )
    window_end: str = field(
        default_factory=lambda: os.environ.get("DEFAULT_WINDOW_END", "21:00")
    )
    time_zone: str = field(
        default_factory=lambda: os.environ.get("DEFAULT_TIME_ZONE", "America/Toronto")
    )
    target_url: str = field(
        default_factory=lambda: os.environ.get(
            "DEFAULT_TARGET_URL",
            "https://app.amilia.com/store/en/ville-de-quebec1/shop/activities/6112282"
            "?scrollToCalendar=true&view=month",
        )
    )
    target_url_pattern: str = field(
        default_factory=lambda: os.environ.get(
            "TARGET_URL_PATTERN",
            r"^https://app\.amilia\.com/store/[a-z]{2}/[\w.-]+/shop/activities/\d+(?:[/?#].*)?$",
        )
    )
    poll_budget_seconds: int = field(
        default_factory=lambda: _env_int("DEFAULT_POLL_SECONDS", 540)
    )
    poll_interval_ms: int = field(
        default_factory=lambda: _env_int("DEFAULT_POLL_INTERVAL_MS", 2_500)
    )
    actor_name: str = field(
        default_factory=lambda: os.environ.get("DEFAULT_ACTOR_NAME", "")
    )
    actor_address: str = field(
        default_factory=lambda: os.environ.get("DEFAULT_ACTOR_ADDRESS", "")
    )


@dataclass(frozen=True)
class SessionCacheSettings:
    """Session artifact cache settings."""

    ttl_seconds: int = field(
        default_factory=lambda: _env_int("SESSION_TTL_SECONDS", 1_800)
    )


@dataclass(frozen=True)
class Settings:
    """Main application settings."""

    automation: AutomationSettings = field(default_factory=AutomationSettings)
    retry: RetrySettings = field(default_factory=RetrySettings)
    credentials: CredentialsSettings = field(default_factory=CredentialsSettings)
    auth: AuthSettings = field(default_factory=AuthSettings)
    booking: BookingDefaults = field(default_factory=BookingDefaults)
    session_cache: SessionCacheSettings = field(default_factory=SessionCacheSettings)
    port: int = field(default_factory=lambda: _env_int("PORT", 8080))
    environment: str = field(
        default_factory=lambda: os.environ.get("ENVIRONMENT", "development")
    )


# Singleton settings instance
settings = Settings()
