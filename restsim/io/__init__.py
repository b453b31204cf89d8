"""Output persistence for simulation runs."""

from .writer import EventStreamWriter, summarize_events, write_geometry, write_summary

__all__ = ["EventStreamWriter", "summarize_events", "write_geometry", "write_summary"]
