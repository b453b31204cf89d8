"""Helper utilities for loading and normalising configuration inputs."""
from __future__ import annotations

import logging
import os
import warnings
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from pydantic import ValidationError

from .errors import ConfigurationError
from .schema import Config

logger = logging.getLogger(__name__)


def check_file_accessible(path: Path) -> bool:
    """Return True when ``path`` is an existing, readable regular file."""

    candidate = Path(path)
    return candidate.is_file() and os.access(candidate, os.R_OK)


def parse_override_value(raw: str) -> Any:
    """Parse a CLI override value into a Python object."""

    text = raw.strip()
    lower = text.lower()
    if lower in {"true", "false"}:
        return lower == "true"
    if lower in {"none", "null"}:
        return None
    try:
        return int(text)
    except ValueError:
        try:
            return float(text)
        except ValueError:
            pass
    if (text.startswith('"') and text.endswith('"')) or (text.startswith("'") and text.endswith("'")):
        return text[1:-1]
    return text


def apply_overrides_dict(payload: Dict[str, Any], overrides: Sequence[str]) -> Dict[str, Any]:
    """Apply dotted-path overrides to a configuration dictionary."""

    if not overrides:
        return payload
    for item in overrides:
        key, sep, value_str = item.partition("=")
        if not sep:
            raise ConfigurationError(f"Invalid override '{item}'; expected path=value")
        parts = [segment for segment in key.strip().split(".") if segment]
        if not parts:
            raise ConfigurationError(f"Invalid override '{item}'; empty path")
        target: Any = payload
        for segment in parts[:-1]:
            if segment not in target or target[segment] is None:
                target[segment] = {}
            target = target[segment]
            if not isinstance(target, dict):
                raise ConfigurationError(
                    f"Cannot traverse into non-mapping for override '{item}' at '{segment}'"
                )
        target[parts[-1]] = parse_override_value(value_str)
    return payload


def read_overrides_file(path: Path) -> List[str]:
    """Return ``PATH=VALUE`` lines from ``path``, skipping blanks and comments."""

    if not check_file_accessible(Path(path)):
        raise ConfigurationError(f"Overrides file {path} not found, please check file name.")
    overrides: List[str] = []
    with Path(path).open("r", encoding="utf-8") as fh:
        for line in fh:
            text = line.strip()
            if not text or text.startswith("#"):
                continue
            overrides.append(text)
    return overrides


def load_config(path: Path, overrides: Optional[Sequence[str]] = None) -> Config:
    """Load a YAML configuration file into a :class:`Config` instance.

    Raises :class:`ConfigurationError` when the file is missing, unreadable,
    malformed, or fails schema validation.
    """

    from ruamel.yaml import YAML
    from ruamel.yaml.error import YAMLError

    source_path = Path(path).resolve()
    if not check_file_accessible(source_path):
        raise ConfigurationError(f"Input configuration file {source_path} not found, please check file name.")
    yaml = YAML(typ="safe")
    try:
        with source_path.open("r", encoding="utf-8") as fh:
            data = yaml.load(fh)
    except YAMLError as exc:
        raise ConfigurationError(f"Cannot parse configuration file {source_path}: {exc}") from exc
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Configuration root in {source_path} must be a mapping")
    if overrides:
        data = apply_overrides_dict(data, overrides)
    try:
        cfg = Config(**data)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid configuration in {source_path}:\n{exc}") from exc
    logger.debug("load_config: loaded %s", source_path)
    return cfg


def configure_logging(level: int, suppress_warnings: bool = False) -> None:
    """Configure root logging and optionally silence Python warnings."""

    logging.basicConfig(level=level)
    root = logging.getLogger()
    root.setLevel(level)
    if suppress_warnings:
        warnings.filterwarnings("ignore")
    logging.captureWarnings(True)


__all__ = [
    "check_file_accessible",
    "parse_override_value",
    "apply_overrides_dict",
    "read_overrides_file",
    "load_config",
    "configure_logging",
]
