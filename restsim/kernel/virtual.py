"""In-process reference kernel.

``VirtualKernel`` implements :class:`SimulationKernel` without any transport
physics: it keeps the particle table, process lists, cuts and command state
exactly as a real kernel would receive them, and produces synthetic events so
that the run lifecycle can be exercised end to end.  Each event draws from its
own ``numpy`` generator seeded with ``(seed, event_id)``, so results do not
depend on the worker that processed them.
"""
from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple

import numpy as np

from ..errors import KernelError
from .base import (
    CommandReader,
    EventCallback,
    EventRecord,
    ParticleDefinition,
    RadioactiveDecayProcess,
    RunManagerType,
    SimulationKernel,
    StopPredicate,
)

logger = logging.getLogger(__name__)

KERNEL_VERSION = "virtual-1.0"
STORE_PROBABILITY = 0.6
MEAN_HITS = 3.0
_EM_FLAGS = ("fluo", "auger", "pixe")


def _parse_flag(text: str) -> bool:
    lowered = text.strip().lower()
    if lowered in {"true", "1", "on"}:
        return True
    if lowered in {"false", "0", "off"}:
        return False
    raise KernelError(f"Expected a boolean parameter, got {text!r}")


class VirtualKernel(SimulationKernel):
    """Reference kernel used for tests and dry runs."""

    version = KERNEL_VERSION

    def __init__(self, run_manager_type: RunManagerType = RunManagerType.SERIAL) -> None:
        super().__init__(run_manager_type)
        self.threads = 0
        self.seed = 0
        self._particles: Dict[str, ParticleDefinition] = {}
        self.physics_constructors: List[str] = []
        self.transportation = False
        self.radioactive_decays: List[RadioactiveDecayProcess] = []
        self.units: Dict[str, Tuple[str, str, float]] = {}
        self.energy_range: Optional[Tuple[float, float]] = None
        self.default_cut_mm: Optional[float] = None
        self.cuts_mm: Dict[str, float] = {}
        self.em_parameters: Dict[str, bool] = {}
        self.tracking_verbose = 1
        self.command_history: List[str] = []
        self.detector: Any = None
        self.physics_list: Any = None
        self.actions: Any = None
        self.world_volume: Optional[str] = None
        self.initialized = False
        self.events_processed = 0
        self._should_stop: Optional[StopPredicate] = None
        self._on_event: Optional[EventCallback] = None
        self._generator: Any = None
        self._executor: Optional[ThreadPoolExecutor] = None
        self._shut_down = False

    # -- particle and process registration ---------------------------------

    def construct_particles(self, names: Iterable[str]) -> None:
        for name in names:
            self._particles.setdefault(name, ParticleDefinition(name=name))

    def particles(self) -> Iterator[ParticleDefinition]:
        return iter(list(self._particles.values()))

    def find_particle(self, name: str) -> Optional[ParticleDefinition]:
        return self._particles.get(name)

    def get_ion(self, z: int, a: int) -> ParticleDefinition:
        name = self.ion_name(z, a)
        particle = self._particles.get(name)
        if particle is None:
            particle = ParticleDefinition(name=name, atomic_number=z, mass_number=a)
            if self.transportation:
                particle.processes.append("Transportation")
            self._particles[name] = particle
        return particle

    def add_transportation(self) -> None:
        self.transportation = True
        for particle in self._particles.values():
            if "Transportation" not in particle.processes:
                particle.processes.append("Transportation")

    def construct_physics(self, module_name: str) -> None:
        self.physics_constructors.append(module_name)

    def add_discrete_process(self, particle: ParticleDefinition, label: str) -> None:
        registered = self._particles.get(particle.name)
        if registered is None:
            raise KernelError(f"Particle '{particle.name}' is not in the particle table")
        registered.processes.append(label)

    def create_radioactive_decay(self) -> RadioactiveDecayProcess:
        process = RadioactiveDecayProcess()
        self.radioactive_decays.append(process)
        return process

    def define_unit(self, name: str, symbol: str, category: str, value: float) -> None:
        self.units[name] = (symbol, category, float(value))

    # -- production cuts ------------------------------------------------------

    def set_production_energy_range(self, low: float, high: float) -> None:
        self.energy_range = (float(low), float(high))

    def set_default_cut_value(self, value_mm: float) -> None:
        self.default_cut_mm = float(value_mm)
        for name in self._particles:
            self.cuts_mm[name] = self.default_cut_mm

    def set_cut_value(self, value_mm: float, particle_name: str) -> None:
        self.cuts_mm[particle_name] = float(value_mm)

    # -- commands ---------------------------------------------------------------

    def apply_command(self, command: str) -> None:
        text = command.strip()
        self.command_history.append(text)
        path, _, argument = text.partition(" ")
        argument = argument.strip()
        if path.startswith("/process/em/") and path.rsplit("/", 1)[-1] in _EM_FLAGS:
            self.em_parameters[path.rsplit("/", 1)[-1]] = _parse_flag(argument)
        elif path == "/tracking/verbose":
            self.tracking_verbose = int(argument or 0)
        elif path == "/run/initialize":
            if not self.initialized:
                self.initialize()
        elif path == "/run/beamOn":
            try:
                n_events = int(argument or 1)
            except ValueError as exc:
                raise KernelError(f"Invalid event count in '{text}'") from exc
            self.beam_on(n_events)
        else:
            raise KernelError(f"Command not found: '{text}'")

    # -- run control ------------------------------------------------------------

    def set_number_of_threads(self, threads: int) -> None:
        if self.serial:
            raise KernelError("The serial run manager does not accept a thread count")
        if threads < 1:
            raise KernelError(f"Invalid number of threads: {threads}")
        self.threads = int(threads)

    def set_random_seed(self, seed: int) -> None:
        self.seed = int(seed)

    def set_detector_construction(self, detector: Any) -> None:
        self.detector = detector

    def set_physics_list(self, physics_list: Any) -> None:
        self.physics_list = physics_list

    def set_action_initialization(self, actions: Any) -> None:
        self.actions = actions

    def bind_run_control(self, should_stop: StopPredicate, on_event: EventCallback) -> None:
        self._should_stop = should_stop
        self._on_event = on_event

    def initialize(self) -> None:
        if self.initialized:
            return
        missing = [
            label
            for label, value in (
                ("detector construction", self.detector),
                ("physics list", self.physics_list),
                ("action initialization", self.actions),
            )
            if value is None
        ]
        if missing:
            raise KernelError(f"Kernel initialization is missing: {', '.join(missing)}")
        self.world_volume = self.detector.construct()
        self.physics_list.construct_particle(self)
        self.physics_list.construct_process(self)
        self.physics_list.set_cuts(self)
        self._generator = self.actions.build()
        if not self.serial:
            self._executor = ThreadPoolExecutor(max_workers=self.threads, thread_name_prefix="worker")
        self.initialized = True
        logger.info(
            "Kernel initialized (%s, %d particles, %d physics constructors)",
            self.run_manager_type.value,
            len(self._particles),
            len(self.physics_constructors),
        )

    def beam_on(self, n_events: int) -> int:
        """Process up to ``n_events``; the stop predicate is checked at event boundaries."""

        if not self.initialized:
            raise KernelError("beamOn requested before kernel initialization")
        if n_events < 0:
            raise KernelError(f"Invalid number of events: {n_events}")
        processed = 0
        if self._executor is None:
            for _ in range(n_events):
                if self._stop_requested():
                    break
                self._deliver(self._simulate_event(self.events_processed))
                processed += 1
            return processed
        wave = max(self.threads, 1)
        for start in range(0, n_events, wave):
            if self._stop_requested():
                break
            first = self.events_processed
            count = min(wave, n_events - start)
            records = list(self._executor.map(self._simulate_event, range(first, first + count)))
            for record in records:
                self._deliver(record)
                processed += 1
        return processed

    def session_start(self, read_command: CommandReader) -> None:
        logger.info("Interactive session started; type 'exit' to leave")
        while not self._stop_requested():
            try:
                line = read_command()
            except EOFError:
                break
            if self._stop_requested():
                break
            text = line.strip()
            if not text or text.startswith("#"):
                continue
            if text in {"exit", "quit"}:
                break
            try:
                self.apply_command(text)
            except KernelError as exc:
                logger.warning("%s", exc)
        logger.info("Interactive session ended")

    def shutdown(self) -> None:
        if self._shut_down:
            return
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None
        self._shut_down = True

    # -- internals --------------------------------------------------------------

    def _stop_requested(self) -> bool:
        return bool(self._should_stop is not None and self._should_stop())

    def _deliver(self, record: EventRecord) -> None:
        self.events_processed += 1
        if self._on_event is not None:
            self._on_event(record)

    def _simulate_event(self, event_id: int) -> EventRecord:
        rng = np.random.default_rng([self.seed, event_id])
        vertex = self._generator.generate(rng)
        deposit = 0.0
        n_hits = 0
        if rng.random() < STORE_PROBABILITY:
            deposit = float(vertex.energy_keV * rng.uniform(0.0, 1.0))
            n_hits = int(rng.poisson(MEAN_HITS)) + 1
        return EventRecord(
            event_id=event_id,
            worker=threading.current_thread().name,
            primary_particle=vertex.particle,
            primary_energy_keV=vertex.energy_keV,
            energy_deposit_keV=deposit,
            n_hits=n_hits,
        )


def create_kernel(threads: int) -> SimulationKernel:
    """Serial kernel when ``threads`` is 0, otherwise a multi-threaded one."""

    if threads < 0:
        raise KernelError(f"Invalid number of threads: {threads}")
    if threads == 0:
        logger.info("Using serial run manager")
        return VirtualKernel(RunManagerType.SERIAL)
    logger.info("Using MT run manager with %d threads", threads)
    kernel = VirtualKernel(RunManagerType.MULTI_THREADED)
    kernel.set_number_of_threads(threads)
    return kernel


__all__ = ["KERNEL_VERSION", "VirtualKernel", "create_kernel"]
