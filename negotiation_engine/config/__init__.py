"""Configuration module for the Price Negotiation Engine."""

from .engine_config import (
    ENGINE_CONFIG,
    EngineSettings,
    PricingConfig,
    LifetimeConfig,
    MessagingConfig,
    SchedulerConfig,
    StorageConfig,
    get_engine_settings,
)

__all__ = [
    'ENGINE_CONFIG',
    'EngineSettings',
    'PricingConfig',
    'LifetimeConfig',
    'MessagingConfig',
    'SchedulerConfig',
    'StorageConfig',
    'get_engine_settings',
]
