"""Custom exceptions for configuration management."""

from tasaveer.errors import TasaveerError


class ConfigError(TasaveerError):
    """Raised when configuration data cannot be processed."""
