"""Structured warning classes for the :mod:`restsim` package."""
from __future__ import annotations


class RestSimWarning(UserWarning):
    """Base warning class for restsim."""


class PhysicsWarning(RestSimWarning):
    """Physics selection that is valid but probably not what was meant."""


class ConfigurationWarning(RestSimWarning):
    """Configuration values that are ignored or fall back to defaults."""


__all__ = [
    "RestSimWarning",
    "PhysicsWarning",
    "ConfigurationWarning",
]
