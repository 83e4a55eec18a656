"""Configuration management for chatguard."""

from chatguard.config.settings import (
    GuardSettings,
    StoreConfig,
    AbuseConfig,
    LLMConfig,
    PreflightConfig,
    OTelConfig,
    DisplayEntry,
)

__all__ = [
    "GuardSettings",
    "StoreConfig",
    "AbuseConfig",
    "LLMConfig",
    "PreflightConfig",
    "OTelConfig",
    "DisplayEntry",
]
