"""Loading of the detector geometry description.

Only the information the run needs is extracted from the GDML file: its
version reference, the referenced materials definition, and the name of the
world volume.  The file content itself is kept verbatim so it can be archived
alongside the run output.
"""
from __future__ import annotations

import hashlib
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from .config_utils import check_file_accessible
from .errors import ConfigurationError

logger = logging.getLogger(__name__)

_GDML_VERSION_RE = re.compile(r"<gdml\b[^>]*\bversion\s*=\s*\"([^\"]*)\"", re.IGNORECASE)
_MATERIALS_ENTITY_RE = re.compile(r"<!ENTITY\s+materials\s+SYSTEM\s+\"([^\"]+)\"", re.IGNORECASE)
_WORLD_RE = re.compile(r"<world\s+ref\s*=\s*\"([^\"]+)\"", re.IGNORECASE)


@dataclass(frozen=True)
class GeometryDescription:
    path: Path
    content: str
    sha256: str
    gdml_reference: str
    materials_reference: Optional[str]
    world_volume: str

    def to_section(self) -> Dict[str, Any]:
        """Return the payload archived under the geometry section of the output."""

        return {
            "filename": str(self.path),
            "sha256": self.sha256,
            "gdml_reference": self.gdml_reference,
            "materials_reference": self.materials_reference,
            "world_volume": self.world_volume,
            "gdml": self.content,
        }


def load_geometry(path: Path) -> GeometryDescription:
    """Read a GDML file and extract its references."""

    source = Path(path)
    if not check_file_accessible(source):
        raise ConfigurationError(f"Geometry file {source} not found, please check file name.")
    content = source.read_text(encoding="utf-8")
    version_match = _GDML_VERSION_RE.search(content)
    materials_match = _MATERIALS_ENTITY_RE.search(content)
    world_match = _WORLD_RE.search(content)
    geometry = GeometryDescription(
        path=source.resolve(),
        content=content,
        sha256=hashlib.sha256(content.encode("utf-8")).hexdigest(),
        gdml_reference=version_match.group(1) if version_match else "unknown",
        materials_reference=materials_match.group(1) if materials_match else None,
        world_volume=world_match.group(1) if world_match else "World",
    )
    logger.info(
        "Loaded geometry %s (gdml=%s, materials=%s)",
        geometry.path,
        geometry.gdml_reference,
        geometry.materials_reference,
    )
    return geometry


__all__ = ["GeometryDescription", "load_geometry"]
