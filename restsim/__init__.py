"""Core package for particle-transport simulation runs."""
from . import constants
from .errors import RestSimError

__all__ = ["constants", "RestSimError"]
