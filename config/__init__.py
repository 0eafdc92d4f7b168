"""Configuration module for ScorePad Cloud."""

from .settings import (
    get_config,
    reset_config,
    ScorePadConfig,
    CloudConfig,
)

__all__ = [
    "get_config",
    "reset_config",
    "ScorePadConfig",
    "CloudConfig",
]
