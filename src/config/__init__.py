"""
Configuration management module.

Loads configuration from YAML files and provides easy access.
"""

from .loader import ConfigLoader, get_app_config, get_config_loader, reload_config
from .settings import (
    AppConfig,
    MarketStructureConfig,
    OrderFlowConfig,
    RiskEngineConfig,
    SystemConfig,
    VolumeProfileConfig,
)

__all__ = [
    'ConfigLoader',
    'get_app_config',
    'get_config_loader',
    'reload_config',
    'AppConfig',
    'SystemConfig',
    'VolumeProfileConfig',
    'OrderFlowConfig',
    'MarketStructureConfig',
    'RiskEngineConfig',
]
