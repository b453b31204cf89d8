"""Runtime provenance helpers.

This module gathers lightweight metadata needed to reproduce a run from the
archived output: package versions, interpreter, git commit and digests of the
input files. Collectors never raise; a value that cannot be determined is
recorded as ``None``.
"""

from __future__ import annotations

import datetime as dt
import hashlib
import platform
import subprocess
import sys
from importlib import metadata
from pathlib import Path
from typing import Any, Iterable, Sequence

_DEFAULT_PACKAGE_DISTS: tuple[str, ...] = (
    "numpy",
    "pandas",
    "pyarrow",
    "pydantic",
    "ruamel.yaml",
)


def utc_timestamp_iso(timestamp: float | None = None) -> str:
    """Return an ISO-8601 UTC stamp for ``timestamp`` (seconds) or now."""

    if timestamp is None:
        moment = dt.datetime.now(dt.timezone.utc)
    else:
        moment = dt.datetime.fromtimestamp(timestamp, tz=dt.timezone.utc)
    stamp = moment.replace(microsecond=0).isoformat()
    return stamp.replace("+00:00", "Z")


def _safe_package_version(dist_name: str) -> str | None:
    try:
        return metadata.version(dist_name)
    except metadata.PackageNotFoundError:
        return None


def _safe_git_commit(repo_root: Path | None = None) -> str | None:
    root = repo_root
    if root is None:
        root = Path(__file__).resolve().parents[1]
    try:
        commit = subprocess.check_output(
            ["git", "rev-parse", "HEAD"],
            cwd=root,
            text=True,
            stderr=subprocess.DEVNULL,
        ).strip()
    except (OSError, subprocess.CalledProcessError):
        return None
    return commit or None


def safe_sha256(
    path: Path,
    *,
    max_bytes: int | None = None,
    chunk_bytes: int = 1024 * 1024,
) -> str | None:
    try:
        size_bytes = path.stat().st_size
    except OSError:
        return None
    if max_bytes is not None and size_bytes > max_bytes:
        return None
    hasher = hashlib.sha256()
    try:
        with path.open("rb") as fh:
            for chunk in iter(lambda: fh.read(chunk_bytes), b""):
                hasher.update(chunk)
    except OSError:
        return None
    return hasher.hexdigest()


def gather_runtime_provenance(
    *,
    input_files: Iterable[str | Path | None] = (),
    package_dists: Sequence[str] | None = None,
    max_input_file_bytes: int = 50 * 1024 * 1024,
) -> dict[str, Any]:
    """Return a JSON-serialisable runtime provenance snapshot."""

    packages: dict[str, str | None] = {}
    for dist in package_dists or _DEFAULT_PACKAGE_DISTS:
        packages[dist] = _safe_package_version(dist)

    input_rows: list[dict[str, Any]] = []
    seen: set[str] = set()
    for item in input_files:
        if not item:
            continue
        path = Path(item).expanduser().resolve()
        key = str(path)
        if key in seen:
            continue
        seen.add(key)
        exists = path.exists()
        input_rows.append(
            {
                "path": key,
                "exists": exists,
                "size_bytes": path.stat().st_size if exists else None,
                "sha256": safe_sha256(path, max_bytes=max_input_file_bytes) if exists else None,
            }
        )

    return {
        "timestamp_utc": utc_timestamp_iso(),
        "argv": list(sys.argv),
        "python": {
            "version": platform.python_version(),
            "executable": sys.executable,
        },
        "platform": {
            "system": platform.system(),
            "release": platform.release(),
            "machine": platform.machine(),
        },
        "packages": packages,
        "git_commit": _safe_git_commit(),
        "input_files": input_rows,
    }


__all__ = ["utc_timestamp_iso", "safe_sha256", "gather_runtime_provenance"]
