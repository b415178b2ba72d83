"""Errors for settings and invocation parameters."""

from __future__ import annotations


class ConfigurationError(RuntimeError):
    """A setting or parameter is invalid; nothing has been written yet."""
