"""Closed registry of the physics modules that can be requested by name.

Configuration files name modules with free-form strings and attach string
options.  This module maps each known name to a :class:`ModuleSpec` tagged
with its :class:`ModuleKind`, and turns the raw option strings into typed
option models.
"""
from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict

from ..schema import PhysicsListRequest


class ModuleKind(str, enum.Enum):
    ELECTROMAGNETIC = "electromagnetic"
    DECAY = "decay"
    RADIOACTIVE_DECAY = "radioactive_decay"
    RADIOACTIVE_DECAY_PROCESS = "radioactive_decay_process"
    HADRONIC = "hadronic"


_LEPTONS = ("e-", "e+", "mu-", "mu+", "nu_e", "anti_nu_e", "nu_mu", "anti_nu_mu")
_LIGHT_IONS = ("deuteron", "triton", "He3", "alpha", "GenericIon")
_MESONS = ("pi+", "pi-", "pi0", "kaon+", "kaon-", "kaon0L", "kaon0S")
_BARYONS = ("proton", "anti_proton", "neutron", "anti_neutron", "lambda", "sigma+", "sigma-")

EM_PARTICLES: Tuple[str, ...] = ("gamma",) + _LEPTONS + ("proton", "anti_proton", "pi+", "pi-") + _LIGHT_IONS
DECAY_PARTICLES: Tuple[str, ...] = ("gamma",) + _LEPTONS + _MESONS + _BARYONS + _LIGHT_IONS
RADIOACTIVE_DECAY_PARTICLES: Tuple[str, ...] = ("gamma", "e-", "e+", "nu_e", "anti_nu_e", "alpha", "GenericIon")
HADRONIC_PARTICLES: Tuple[str, ...] = _MESONS + _BARYONS + _LIGHT_IONS


@dataclass(frozen=True)
class ModuleSpec:
    name: str
    kind: ModuleKind
    particles: Tuple[str, ...] = ()


# Electromagnetic candidates in resolution priority order.
EM_PRIORITY: Tuple[str, ...] = (
    "G4EmLivermorePhysics",
    "G4EmPenelopePhysics",
    "G4EmStandardPhysics_option3",
    "G4EmStandardPhysics_option4",
)

DECAY_MODULE = "G4DecayPhysics"
RADIOACTIVE_DECAY_MODULE = "G4RadioactiveDecayPhysics"
RADIOACTIVE_DECAY_PROCESS = "G4RadioactiveDecay"

HADRONIC_MODULES: Tuple[str, ...] = (
    "G4HadronPhysicsQGSP_BIC_HP",
    "G4IonBinaryCascadePhysics",
    "G4HadronElasticPhysicsHP",
    "G4NeutronTrackingCut",
    "G4EmExtraPhysics",
)


def _build_registry() -> Dict[str, ModuleSpec]:
    specs: List[ModuleSpec] = [ModuleSpec(name, ModuleKind.ELECTROMAGNETIC, EM_PARTICLES) for name in EM_PRIORITY]
    specs.append(ModuleSpec(DECAY_MODULE, ModuleKind.DECAY, DECAY_PARTICLES))
    specs.append(ModuleSpec(RADIOACTIVE_DECAY_MODULE, ModuleKind.RADIOACTIVE_DECAY, RADIOACTIVE_DECAY_PARTICLES))
    specs.append(ModuleSpec(RADIOACTIVE_DECAY_PROCESS, ModuleKind.RADIOACTIVE_DECAY_PROCESS))
    specs.extend(ModuleSpec(name, ModuleKind.HADRONIC, HADRONIC_PARTICLES) for name in HADRONIC_MODULES)
    return {spec.name: spec for spec in specs}


MODULES: Dict[str, ModuleSpec] = _build_registry()


def lookup(name: str) -> Optional[ModuleSpec]:
    return MODULES.get(name)


def parse_bool_option(raw: Optional[str], default: bool) -> bool:
    """Case-insensitive ``"true"``/``"false"``; anything else yields ``default``."""

    if raw is None:
        return default
    lowered = raw.strip().lower()
    if lowered == "true":
        return True
    if lowered == "false":
        return False
    return default


def parse_strict_bool_option(raw: Optional[str]) -> Optional[bool]:
    """Exactly ``"true"`` or ``"false"``; ``None`` for anything else."""

    if raw == "true":
        return True
    if raw == "false":
        return False
    return None


def _emit(value: bool) -> str:
    return "true" if value else "false"


class EmOptions(BaseModel):
    """Electromagnetic sub-options: fluorescence, Auger emission and PIXE."""

    model_config = ConfigDict(frozen=True)

    fluo: bool = True
    auger: bool = True
    pixe: bool = False

    @classmethod
    def from_request(cls, request: Optional[PhysicsListRequest]) -> "EmOptions":
        defaults = cls()
        if request is None:
            return defaults
        return cls(
            fluo=parse_bool_option(request.option("fluo"), defaults.fluo),
            auger=parse_bool_option(request.option("auger"), defaults.auger),
            pixe=parse_bool_option(request.option("pixe"), defaults.pixe),
        )

    def commands(self) -> List[str]:
        """Live kernel commands that apply these options."""

        return [
            f"/process/em/fluo {_emit(self.fluo)}",
            f"/process/em/auger {_emit(self.auger)}",
            f"/process/em/pixe {_emit(self.pixe)}",
        ]


class RadioactiveDecayOptions(BaseModel):
    """Internal conversion (ICM) and atomic rearrangement (ARM) switches.

    ``None`` means the option was absent or not exactly ``"true"``/``"false"``
    and the kernel default applies.  The raw strings are kept for diagnostics.
    """

    model_config = ConfigDict(frozen=True)

    icm: Optional[bool] = None
    arm: Optional[bool] = None
    icm_raw: Optional[str] = None
    arm_raw: Optional[str] = None

    @classmethod
    def from_request(cls, request: Optional[PhysicsListRequest]) -> "RadioactiveDecayOptions":
        if request is None:
            return cls()
        icm_raw = request.option("ICM")
        arm_raw = request.option("ARM")
        return cls(
            icm=parse_strict_bool_option(icm_raw),
            arm=parse_strict_bool_option(arm_raw),
            icm_raw=icm_raw,
            arm_raw=arm_raw,
        )


@dataclass(frozen=True)
class PhysicsModule:
    """A selected physics module bound to the request that named it."""

    spec: ModuleSpec
    request: PhysicsListRequest

    @property
    def name(self) -> str:
        return self.spec.name

    @property
    def kind(self) -> ModuleKind:
        return self.spec.kind

    def construct_particle(self, kernel) -> None:
        kernel.construct_particles(self.spec.particles)

    def construct_process(self, kernel) -> None:
        kernel.construct_physics(self.spec.name)


__all__ = [
    "ModuleKind",
    "ModuleSpec",
    "EM_PRIORITY",
    "DECAY_MODULE",
    "RADIOACTIVE_DECAY_MODULE",
    "RADIOACTIVE_DECAY_PROCESS",
    "HADRONIC_MODULES",
    "MODULES",
    "lookup",
    "parse_bool_option",
    "parse_strict_bool_option",
    "EmOptions",
    "RadioactiveDecayOptions",
    "PhysicsModule",
]
