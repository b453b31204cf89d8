"""Configuration schema for simulation runs.

This module defines Pydantic models that mirror the structure of the YAML
configuration files consumed by :mod:`restsim.run`.  The physics section keeps
the external syntax of the configuration (a list of module names, each with
free-form ``key: value`` string options); typed interpretation of those
options happens in :mod:`restsim.physics.registry`.
"""
from __future__ import annotations

from enum import IntEnum
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from . import constants
from .errors import ConfigurationError


class VerboseLevel(IntEnum):
    """Output verbosity thresholds for physics diagnostics."""

    SILENT = 0
    ESSENTIAL = 1
    INFO = 2
    DEBUG = 3
    EXTREME = 4


def _stringify_option(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


class PhysicsListRequest(BaseModel):
    """A single requested physics module and its raw options."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1, description="Physics module name, e.g. 'G4EmLivermorePhysics'")
    options: Dict[str, str] = Field(default_factory=dict)

    @field_validator("name", mode="before")
    def _strip_name(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip()
        return value

    @field_validator("options", mode="before")
    def _stringify_options(cls, value: Any) -> Any:
        """YAML turns ``pixe: true`` into a bool; options stay strings at this boundary."""

        if value is None:
            return {}
        if not isinstance(value, dict):
            return value
        return {str(key): _stringify_option(val) for key, val in value.items()}

    def option(self, key: str, default: Optional[str] = None) -> Optional[str]:
        """Return the raw option string for ``key`` or ``default``."""

        return self.options.get(key, default)


class ProductionCuts(BaseModel):
    """Per-species production cuts [mm] and the global energy window [keV]."""

    gamma_mm: float = Field(0.01, description="Cut length for gamma [mm]")
    electron_mm: float = Field(1.0, description="Cut length for e- [mm]")
    positron_mm: float = Field(1.0, description="Cut length for e+ [mm]")
    muon_mm: float = Field(1.0, description="Cut length for mu+ and mu- [mm]")
    neutron_mm: float = Field(1.0, description="Cut length for neutron [mm]")
    min_energy_keV: float = Field(1.0, gt=0.0, description="Lower edge of the production-cut energy window [keV]")
    max_energy_keV: float = Field(1.0e6, gt=0.0, description="Upper edge of the production-cut energy window [keV]")

    @model_validator(mode="after")
    def _check_window(self) -> "ProductionCuts":
        if self.min_energy_keV > self.max_energy_keV:
            raise ConfigurationError(
                f"physics.cuts.min_energy_keV ({self.min_energy_keV}) must not exceed "
                f"max_energy_keV ({self.max_energy_keV})"
            )
        return self


class PhysicsSection(BaseModel):
    """Requested physics modules, cuts and step-limiting rules."""

    lists: List[PhysicsListRequest] = Field(default_factory=list)
    cuts: ProductionCuts = Field(default_factory=ProductionCuts)
    ion_step_list: List[str] = Field(
        default_factory=list,
        description="Canonical ion names (e.g. 'F20', 'Ne20') that receive a step limiter.",
    )
    verbose_level: VerboseLevel = VerboseLevel.ESSENTIAL

    @field_validator("verbose_level", mode="before")
    def _parse_verbose_level(cls, value: Any) -> Any:
        if isinstance(value, str):
            key = value.strip().upper()
            if key.isdigit():
                return int(key)
            try:
                return VerboseLevel[key]
            except KeyError as exc:
                raise ConfigurationError(
                    f"Unknown physics.verbose_level={value!r}; expected one of "
                    f"{', '.join(level.name.lower() for level in VerboseLevel)}"
                ) from exc
        return value


class RunSection(BaseModel):
    """Run-level settings as written in the configuration file."""

    title: str = "restsim run"
    run_tag: Optional[str] = None
    events: int = Field(0, description="Number of primaries; 0 enters an interactive session")
    desired_entries: int = Field(0, ge=0, description="Stop once this many events were stored (0 disables)")
    time_limit_seconds: float = Field(0.0, ge=0.0, description="Wall-clock limit for batch runs (0 disables)")
    threads: int = Field(0, ge=0, description="Worker threads; 0 selects the serial kernel")
    seed: Optional[int] = Field(None, ge=0)


class GeometrySection(BaseModel):
    """Location of the detector geometry description."""

    gdml_file: Optional[Path] = None


class GeneratorSection(BaseModel):
    """Primary generator settings handed to the kernel."""

    particle: str = "gamma"
    energy_keV: float = Field(1000.0, gt=0.0)


class IO(BaseModel):
    """Output location and console behaviour."""

    output: str = Field(
        "out/{run_tag}",
        description="Output directory; '{run_tag}' is replaced by the resolved run tag.",
    )
    progress: bool = False
    quiet: bool = False


class Config(BaseModel):
    """Top-level configuration object."""

    run: RunSection = Field(default_factory=RunSection)
    geometry: GeometrySection = Field(default_factory=GeometrySection)
    generator: GeneratorSection = Field(default_factory=GeneratorSection)
    physics: PhysicsSection = Field(default_factory=PhysicsSection)
    io: IO = Field(default_factory=IO)


class RunParameters(BaseModel):
    """Resolved run parameters; immutable once the run starts."""

    model_config = ConfigDict(frozen=True)

    events: int = Field(..., ge=0, le=constants.MAX_PRIMARIES)
    desired_entries: int = Field(0, ge=0)
    time_limit_seconds: float = Field(0.0, ge=0.0)
    threads: int = Field(0, ge=0)
    output: Path
    geometry: Optional[Path] = None
    seed: int = Field(0, ge=0)

    @property
    def interactive(self) -> bool:
        return self.events == 0

    @property
    def serial(self) -> bool:
        return self.threads == 0


__all__ = [
    "VerboseLevel",
    "PhysicsListRequest",
    "ProductionCuts",
    "PhysicsSection",
    "RunSection",
    "GeometrySection",
    "GeneratorSection",
    "IO",
    "Config",
    "RunParameters",
]
