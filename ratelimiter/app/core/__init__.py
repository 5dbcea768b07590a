"""Core utilities for the rate limiter application."""

from ratelimiter.app.core.config import Settings, settings
from ratelimiter.app.core.logging import get_logger, setup_logging

__all__ = [
    "Settings",
    "settings",
    "get_logger",
    "setup_logging",
]
