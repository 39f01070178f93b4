"""Desired-state manifest configuration."""

from .models import (
    ParameterConfig,
    ParameterGroupConfig,
    DataStorageConfig,
    ECPUPerSecondConfig,
    CacheUsageLimitsConfig,
    ServerlessCacheConfig,
    AutoScalingConfigurationConfig,
    ManifestConfig,
)
from .parser import Config, ConfigValidationError

__all__ = [
    "ParameterConfig",
    "ParameterGroupConfig",
    "DataStorageConfig",
    "ECPUPerSecondConfig",
    "CacheUsageLimitsConfig",
    "ServerlessCacheConfig",
    "AutoScalingConfigurationConfig",
    "ManifestConfig",
    "Config",
    "ConfigValidationError",
]
