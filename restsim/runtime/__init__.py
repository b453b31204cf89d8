"""Runtime helpers used by the run orchestrator."""

from .progress import ProgressReporter
from .helpers import format_exception_short, log_stage

__all__ = [
    "ProgressReporter",
    "format_exception_short",
    "log_stage",
]
