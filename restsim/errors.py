"""Custom exceptions for the :mod:`restsim` package."""
from __future__ import annotations


class RestSimError(Exception):
    """Base exception for simulation run errors."""


class ConfigurationError(RestSimError, ValueError):
    """Invalid or inaccessible configuration input."""


class SelectionConflictError(ConfigurationError):
    """Mutually exclusive physics modules were requested together."""


class LifecycleError(RestSimError, RuntimeError):
    """Illegal run-lifecycle transition or late mutation of frozen state."""


class KernelError(RestSimError, RuntimeError):
    """The simulation kernel rejected a request."""


class OutputWriteError(KernelError):
    """Run output could not be created, written or read back."""


class GeometryWriteError(OutputWriteError):
    """The resolved geometry could not be archived with the run output."""


__all__ = [
    "RestSimError",
    "ConfigurationError",
    "SelectionConflictError",
    "LifecycleError",
    "KernelError",
    "OutputWriteError",
    "GeometryWriteError",
]
