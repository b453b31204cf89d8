"""Abstract interface of the simulation kernel.

The kernel owns the particle table, the per-particle process managers, the
production-cuts table and the live command interface.  Physics assembly and
run orchestration only talk to the kernel through the methods declared here.
"""
from __future__ import annotations

import enum
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional

from .. import constants
from ..errors import KernelError


class RunManagerType(enum.Enum):
    SERIAL = "serial"
    MULTI_THREADED = "mt"


def ion_name(z: int, a: int) -> str:
    """Return the canonical ground-state ion name for (Z, A), e.g. ``Ne20``."""

    if z < 1 or z >= len(constants.ELEMENT_SYMBOLS):
        raise KernelError(f"No element symbol known for Z={z}")
    if a < z:
        raise KernelError(f"Mass number A={a} is smaller than Z={z}")
    return f"{constants.ELEMENT_SYMBOLS[z]}{a}"


@dataclass
class ParticleDefinition:
    """Particle species known to the kernel together with its process list."""

    name: str
    atomic_number: int = 0
    mass_number: int = 0
    processes: List[str] = field(default_factory=list)


@dataclass
class RadioactiveDecayProcess:
    """Kernel-side radioactive-decay process.

    ``icm`` and ``arm`` stay ``None`` until explicitly set, meaning the kernel
    default applies.
    """

    threshold_for_very_long_decay_time_ns: Optional[float] = None
    icm: Optional[bool] = None
    arm: Optional[bool] = None

    def set_threshold_for_very_long_decay_time(self, value_ns: float) -> None:
        self.threshold_for_very_long_decay_time_ns = float(value_ns)

    def set_icm(self, enabled: bool) -> None:
        self.icm = bool(enabled)

    def set_arm(self, enabled: bool) -> None:
        self.arm = bool(enabled)


@dataclass(frozen=True)
class PrimaryVertex:
    particle: str
    energy_keV: float


@dataclass(frozen=True)
class EventRecord:
    """Outcome of one simulated event as handed back to the run controller."""

    event_id: int
    worker: str
    primary_particle: str
    primary_energy_keV: float
    energy_deposit_keV: float
    n_hits: int

    @property
    def stored(self) -> bool:
        """Events without any energy deposit are not written to the output."""

        return self.energy_deposit_keV > 0.0

    def as_row(self) -> Dict[str, Any]:
        return {
            "event_id": self.event_id,
            "worker": self.worker,
            "primary_particle": self.primary_particle,
            "primary_energy_keV": self.primary_energy_keV,
            "energy_deposit_keV": self.energy_deposit_keV,
            "n_hits": self.n_hits,
        }


StopPredicate = Callable[[], bool]
EventCallback = Callable[[EventRecord], None]
CommandReader = Callable[[], str]


class SimulationKernel(ABC):
    """Particle/process registration hooks plus run control."""

    version: str = "unknown"

    def __init__(self, run_manager_type: RunManagerType = RunManagerType.SERIAL) -> None:
        self.run_manager_type = run_manager_type

    @property
    def serial(self) -> bool:
        return self.run_manager_type is RunManagerType.SERIAL

    def ion_name(self, z: int, a: int) -> str:
        return ion_name(z, a)

    # -- particle and process registration ---------------------------------

    @abstractmethod
    def construct_particles(self, names: Iterable[str]) -> None:
        """Make the named particle species known to the particle table."""

    @abstractmethod
    def particles(self) -> Iterator[ParticleDefinition]:
        """Iterate over every known particle species."""

    @abstractmethod
    def find_particle(self, name: str) -> Optional[ParticleDefinition]:
        ...

    @abstractmethod
    def get_ion(self, z: int, a: int) -> ParticleDefinition:
        """Return the ground-state ion (Z, A), creating it when needed."""

    @abstractmethod
    def add_transportation(self) -> None:
        ...

    @abstractmethod
    def construct_physics(self, module_name: str) -> None:
        """Run the process construction of a physics module."""

    @abstractmethod
    def add_discrete_process(self, particle: ParticleDefinition, label: str) -> None:
        ...

    @abstractmethod
    def create_radioactive_decay(self) -> RadioactiveDecayProcess:
        ...

    @abstractmethod
    def define_unit(self, name: str, symbol: str, category: str, value: float) -> None:
        ...

    # -- production cuts ------------------------------------------------------

    @abstractmethod
    def set_production_energy_range(self, low: float, high: float) -> None:
        ...

    @abstractmethod
    def set_default_cut_value(self, value_mm: float) -> None:
        ...

    @abstractmethod
    def set_cut_value(self, value_mm: float, particle_name: str) -> None:
        ...

    # -- run control ------------------------------------------------------------

    @abstractmethod
    def apply_command(self, command: str) -> None:
        """Execute a live command string such as ``/run/beamOn 10``."""

    @abstractmethod
    def set_number_of_threads(self, threads: int) -> None:
        ...

    @abstractmethod
    def set_random_seed(self, seed: int) -> None:
        ...

    @abstractmethod
    def set_detector_construction(self, detector: Any) -> None:
        ...

    @abstractmethod
    def set_physics_list(self, physics_list: Any) -> None:
        ...

    @abstractmethod
    def set_action_initialization(self, actions: Any) -> None:
        ...

    @abstractmethod
    def bind_run_control(self, should_stop: StopPredicate, on_event: EventCallback) -> None:
        """Install the stop predicate checked at event boundaries and the event sink."""

    @abstractmethod
    def initialize(self) -> None:
        ...

    @abstractmethod
    def session_start(self, read_command: CommandReader) -> None:
        """Run an interactive session until ``exit``, end of input or a stop request."""

    @abstractmethod
    def shutdown(self) -> None:
        ...


__all__ = [
    "RunManagerType",
    "ion_name",
    "ParticleDefinition",
    "RadioactiveDecayProcess",
    "PrimaryVertex",
    "EventRecord",
    "StopPredicate",
    "EventCallback",
    "CommandReader",
    "SimulationKernel",
]
