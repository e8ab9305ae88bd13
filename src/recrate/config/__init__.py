"""Configuration module for recrate."""

from .settings import (
    DailyChallengeSettings,
    DatabaseSettings,
    DiscogsSettings,
    MusicBrainzSettings,
    QueueSettings,
    Settings,
    get_settings,
)

__all__ = [
    "DailyChallengeSettings",
    "DatabaseSettings",
    "DiscogsSettings",
    "MusicBrainzSettings",
    "QueueSettings",
    "Settings",
    "get_settings",
]
