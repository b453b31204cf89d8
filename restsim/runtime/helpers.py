"""Shared helper functions for run orchestration."""
from __future__ import annotations


def format_exception_short(exc: BaseException) -> str:
    """Return a concise exception string."""

    name = exc.__class__.__name__
    return f"{name}: {exc}"


def log_stage(logger_obj, label: str, *, extra: dict | None = None) -> None:
    """Lightweight stage logger wrapper."""

    if logger_obj is None:
        return
    if extra:
        logger_obj.info("stage=%s %s", label, extra)
    else:
        logger_obj.info("stage=%s", label)


__all__ = ["format_exception_short", "log_stage"]
