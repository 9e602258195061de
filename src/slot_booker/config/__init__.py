"""Configuration package."""

from slot_booker.config.settings import (
    AuthSettings,
    AutomationSettings,
    BookingDefaults,
    CredentialsSettings,
    RetrySettings,
    SessionCacheSettings,
    Settings,
    settings,
)

__all__ = [
    "AuthSettings",
    "AutomationSettings",
    "BookingDefaults",
    "CredentialsSettings",
    "RetrySettings",
    "SessionCacheSettings",
    "Settings",
    "settings",
]
