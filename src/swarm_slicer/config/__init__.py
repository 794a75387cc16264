"""Configuration package."""

from .dispatch_config import (
    ConcurrencyConfig,
    RetryConfig,
    TimeoutConfig,
    FallbackConfig,
    ErrorHandlingConfig,
    MultipassConfig,
    PriorityWeights,
    MatchingConfig,
    DispatchConfig,
    get_dispatch_preset,
    validate_dispatch_config,
    validate_injection_config,
    ensure_valid_config,
)
from .settings import SwarmSlicerSettings, get_settings

__all__ = [
    "ConcurrencyConfig",
    "RetryConfig",
    "TimeoutConfig",
    "FallbackConfig",
    "ErrorHandlingConfig",
    "MultipassConfig",
    "PriorityWeights",
    "MatchingConfig",
    "DispatchConfig",
    "get_dispatch_preset",
    "validate_dispatch_config",
    "validate_injection_config",
    "ensure_valid_config",
    "SwarmSlicerSettings",
    "get_settings",
]
