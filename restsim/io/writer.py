"""Output helper utilities.

A run writes a directory bundle: stored events are streamed to
``events.parquet`` with :mod:`pyarrow`, run metadata goes to
``metadata.json``, and the resolved geometry is archived in its own named
section file.  All functions ensure destination directories exist.
"""
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import pandas as pd
import pyarrow as pa
import pyarrow.parquet as pq

from .. import constants
from ..errors import GeometryWriteError, OutputWriteError

logger = logging.getLogger(__name__)

_WRITE_ERRORS = (OSError, pa.ArrowException)

EVENTS_FILENAME = "events.parquet"
METADATA_FILENAME = "metadata.json"

EVENT_SCHEMA = pa.schema(
    [
        pa.field("event_id", pa.int64()),
        pa.field("worker", pa.string()),
        pa.field("primary_particle", pa.string()),
        pa.field("primary_energy_keV", pa.float64()),
        pa.field("energy_deposit_keV", pa.float64()),
        pa.field("n_hits", pa.int64()),
    ]
)


def _ensure_parent(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


class EventStreamWriter:
    """Buffered Parquet writer for stored events.

    Rows are flushed as a row group every ``flush_every`` entries and on
    :meth:`close`; closing always leaves a readable file, even with zero rows.
    """

    def __init__(self, path: Path, *, flush_every: int = 1000, compression: str = "snappy") -> None:
        self.path = Path(path)
        self.flush_every = max(int(flush_every), 1)
        self._buffer: List[Dict[str, Any]] = []
        self._entries = 0
        try:
            _ensure_parent(self.path)
            self._writer: Optional[pq.ParquetWriter] = pq.ParquetWriter(
                str(self.path), EVENT_SCHEMA, compression=compression
            )
        except _WRITE_ERRORS as exc:
            raise OutputWriteError(f"Unable to open event stream {self.path}: {exc}") from exc

    @property
    def entries(self) -> int:
        return self._entries

    @property
    def closed(self) -> bool:
        return self._writer is None

    def append(self, row: Mapping[str, Any]) -> None:
        if self._writer is None:
            raise ValueError(f"Event stream {self.path} is already closed")
        self._buffer.append(dict(row))
        self._entries += 1
        if len(self._buffer) >= self.flush_every:
            self.flush()

    def flush(self) -> None:
        if self._writer is None or not self._buffer:
            return
        try:
            table = pa.Table.from_pylist(self._buffer, schema=EVENT_SCHEMA)
            self._writer.write_table(table)
        except _WRITE_ERRORS as exc:
            raise OutputWriteError(f"Unable to write events to {self.path}: {exc}") from exc
        self._buffer.clear()

    def close(self) -> None:
        if self._writer is None:
            return
        writer, self._writer = self._writer, None
        try:
            if self._buffer:
                writer.write_table(pa.Table.from_pylist(self._buffer, schema=EVENT_SCHEMA))
                self._buffer.clear()
            writer.close()
        except _WRITE_ERRORS as exc:
            raise OutputWriteError(f"Unable to close event stream {self.path}: {exc}") from exc
        logger.debug("Closed event stream %s (%d entries)", self.path, self._entries)

    def __enter__(self) -> "EventStreamWriter":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()


def write_summary(summary: Mapping[str, Any], path: Path) -> None:
    """Write a summary dictionary as indented JSON."""

    try:
        _ensure_parent(path)
        with path.open("w", encoding="utf-8") as fh:
            json.dump(summary, fh, indent=2, sort_keys=True, default=str)
    except OSError as exc:
        raise OutputWriteError(f"Unable to write {path}: {exc}") from exc


def write_geometry(geometry: Any, output_dir: Path, section: str = constants.GEOMETRY_SECTION) -> Path:
    """Archive the resolved geometry under ``section`` in the output bundle."""

    path = Path(output_dir) / f"{section}.json"
    logger.info("Writing geometry into '%s'", path)
    if geometry is None:
        raise GeometryWriteError(f"Unable to write geometry into {path}: no geometry was resolved")
    try:
        write_summary({"section": section, **geometry.to_section()}, path)
    except (OutputWriteError, TypeError, AttributeError) as exc:
        raise GeometryWriteError(f"Unable to write geometry into {path}: {exc}") from exc
    return path


def summarize_events(path: Path) -> Dict[str, Any]:
    """Return entry count and energy-deposit statistics of an event file."""

    try:
        df = pd.read_parquet(path)
    except _WRITE_ERRORS as exc:
        raise OutputWriteError(f"Unable to read back event stream {path}: {exc}") from exc
    if df.empty:
        return {"entries": 0, "energy_deposit_total_keV": 0.0, "energy_deposit_mean_keV": None, "hits_total": 0}
    return {
        "entries": int(len(df)),
        "energy_deposit_total_keV": float(df["energy_deposit_keV"].sum()),
        "energy_deposit_mean_keV": float(df["energy_deposit_keV"].mean()),
        "hits_total": int(df["n_hits"].sum()),
    }


__all__ = [
    "EVENTS_FILENAME",
    "METADATA_FILENAME",
    "EVENT_SCHEMA",
    "EventStreamWriter",
    "write_summary",
    "write_geometry",
    "summarize_events",
]
