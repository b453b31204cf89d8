"""Run orchestration for particle-transport simulations.

This module owns the lifecycle of one simulation job and coordinates the
collaborators that do the actual work.

Lifecycle
---------
```
Idle ─► Configuring ─► Initializing ─► Running ─┬─► Finalizing ─► Completed
                                                 └─► Interrupted ─┘
(any non-terminal state) ─► Failed
```

1. **Configuring**: configuration file access, schema validation, run
   parameters, physics selection and geometry loading.  All configuration
   errors surface here, before any kernel resource is allocated.
2. **Initializing**: kernel construction (serial or multi-threaded), user
   initializations, kernel initialization.  The physics setup is frozen.
3. **Running**: a batch of ``events`` primaries, or an interactive session
   when ``events == 0``.  The only blocking phase.
4. **Interrupted**: a stop was requested while running (SIGINT).  The event
   in flight completes; no further events are scheduled.
5. **Finalizing**: kernel teardown, output closed, geometry archived,
   metadata written and printed.

Cancellation is cooperative: the signal handler installed by
:func:`interrupt_handler` only sets a :class:`threading.Event`, which the
kernel polls at event and command boundaries.
"""
from __future__ import annotations

import enum
import logging
import random
import signal
import threading
import time
from contextlib import contextmanager
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence

from pydantic import ValidationError

from . import constants
from .config_utils import check_file_accessible, load_config
from .errors import ConfigurationError, LifecycleError, OutputWriteError
from .geometry import GeometryDescription, load_geometry
from .io.writer import EVENTS_FILENAME, METADATA_FILENAME, EventStreamWriter, summarize_events, write_geometry, write_summary
from .kernel.base import CommandReader, EventRecord, SimulationKernel
from .kernel.initializations import ActionInitialization, DetectorConstruction
from .kernel.virtual import create_kernel
from .physics.physics_list import PhysicsList
from .physics.selector import PhysicsSetup, select_physics
from .provenance import gather_runtime_provenance, utc_timestamp_iso
from .runtime import ProgressReporter, format_exception_short, log_stage
from .schema import Config, RunParameters

logger = logging.getLogger(__name__)

KernelFactory = Callable[[int], SimulationKernel]


class RunLifecycleState(str, enum.Enum):
    IDLE = "Idle"
    CONFIGURING = "Configuring"
    INITIALIZING = "Initializing"
    RUNNING = "Running"
    INTERRUPTED = "Interrupted"
    FINALIZING = "Finalizing"
    COMPLETED = "Completed"
    FAILED = "Failed"


_S = RunLifecycleState
_TRANSITIONS: Dict[RunLifecycleState, frozenset] = {
    _S.IDLE: frozenset({_S.CONFIGURING, _S.FAILED}),
    _S.CONFIGURING: frozenset({_S.INITIALIZING, _S.FAILED}),
    _S.INITIALIZING: frozenset({_S.RUNNING, _S.FAILED}),
    _S.RUNNING: frozenset({_S.INTERRUPTED, _S.FINALIZING, _S.FAILED}),
    _S.INTERRUPTED: frozenset({_S.FINALIZING, _S.FAILED}),
    _S.FINALIZING: frozenset({_S.COMPLETED, _S.FAILED}),
    _S.COMPLETED: frozenset(),
    _S.FAILED: frozenset(),
}

STOP_USER = "user"
STOP_DESIRED_ENTRIES = "desired_entries"
STOP_TIME_LIMIT = "time_limit"


@dataclass
class RunRequest:
    """What the caller asked for; ``None`` fields fall back to the configuration."""

    config_path: Path
    overrides: Sequence[str] = ()
    events: Optional[int] = None
    desired_entries: Optional[int] = None
    time_limit_seconds: Optional[float] = None
    threads: Optional[int] = None
    output: Optional[str] = None
    geometry: Optional[Path] = None
    seed: Optional[int] = None
    progress: Optional[bool] = None


@dataclass
class RunMetadata:
    """Run-level metadata printed at start and end and archived with the output."""

    title: str
    run_tag: str
    config_file: str
    geometry_file: str
    gdml_reference: str
    materials_reference: Optional[str]
    seed: int
    events_requested: int
    desired_entries: int
    time_limit_seconds: float
    threads: int
    physics: Dict[str, Any]
    run_type: str = constants.RUN_TYPE
    kernel_version: Optional[str] = None
    start_timestamp: Optional[float] = None
    end_timestamp: Optional[float] = None
    events_processed: int = 0
    entries_stored: int = 0
    interrupted: bool = False
    stop_reason: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        payload = asdict(self)
        payload["start_time_utc"] = utc_timestamp_iso(self.start_timestamp) if self.start_timestamp else None
        payload["end_time_utc"] = utc_timestamp_iso(self.end_timestamp) if self.end_timestamp else None
        return payload


@dataclass
class RunResult:
    state: RunLifecycleState
    events_processed: int
    entries_stored: int
    output_dir: Path
    elapsed_seconds: float
    stop_reason: Optional[str]
    metadata: RunMetadata
    history: List[RunLifecycleState] = field(default_factory=list)

    @property
    def interrupted(self) -> bool:
        return RunLifecycleState.INTERRUPTED in self.history


def _stdin_reader() -> str:
    return input("restsim> ")


def _sanitize_tag(tag: str) -> str:
    return "_".join(tag.split()) or "run"


def format_metadata(title: str, payload: Dict[str, Any]) -> str:
    """Render ``payload`` as an aligned block for the log."""

    width = max((len(key) for key in payload), default=0)
    lines = [f"====== {title} ======"]
    for key, value in payload.items():
        lines.append(f"  {key.ljust(width)} : {value}")
    return "\n".join(lines)


class RunOrchestrator:
    """Drive one simulation job through its lifecycle."""

    def __init__(
        self,
        request: RunRequest,
        *,
        kernel_factory: Optional[KernelFactory] = None,
        command_reader: Optional[CommandReader] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.request = request
        self._kernel_factory = kernel_factory
        self._command_reader = command_reader
        self._clock = clock
        self._stop_event = threading.Event()
        self._state = RunLifecycleState.IDLE
        self.history: List[RunLifecycleState] = [RunLifecycleState.IDLE]
        self.config: Optional[Config] = None
        self.params: Optional[RunParameters] = None
        self.setup: Optional[PhysicsSetup] = None
        self.geometry: Optional[GeometryDescription] = None
        self.metadata: Optional[RunMetadata] = None
        self.kernel: Optional[SimulationKernel] = None
        self.physics_list: Optional[PhysicsList] = None
        self._writer: Optional[EventStreamWriter] = None
        self._progress: Optional[ProgressReporter] = None
        self._events_processed = 0
        self._stop_reason: Optional[str] = None
        self._run_started: Optional[float] = None

    @property
    def state(self) -> RunLifecycleState:
        return self._state

    @property
    def stop_requested(self) -> bool:
        return self._stop_event.is_set()

    @property
    def events_processed(self) -> int:
        return self._events_processed

    def request_stop(self) -> None:
        """Ask the running job to stop at the next event or command boundary."""

        self._stop_event.set()

    def run(self) -> RunResult:
        """Execute the full lifecycle; errors leave the orchestrator in ``Failed``."""

        if self._state is not RunLifecycleState.IDLE:
            raise LifecycleError(f"RunOrchestrator already used (state={self._state.value})")
        try:
            self._configure()
            self._initialize()
            self._execute()
            return self._finalize()
        except BaseException as exc:
            self._abort(exc)
            raise

    # -- transitions ------------------------------------------------------------

    def _transition(self, target: RunLifecycleState, **extra: Any) -> None:
        if target not in _TRANSITIONS[self._state]:
            raise LifecycleError(f"Illegal lifecycle transition {self._state.value} -> {target.value}")
        log_stage(logger, target.value, extra=extra or None)
        self._state = target
        self.history.append(target)

    def _abort(self, exc: BaseException) -> None:
        logger.error("Run failed in state %s: %s", self._state.value, format_exception_short(exc))
        if self._writer is not None:
            try:
                self._writer.close()
            except OutputWriteError as close_exc:
                logger.error("%s", close_exc)
        if self.kernel is not None:
            self.kernel.shutdown()
        if self._state not in (RunLifecycleState.COMPLETED, RunLifecycleState.FAILED):
            self._transition(RunLifecycleState.FAILED)

    # -- Configuring ------------------------------------------------------------

    def _configure(self) -> None:
        self._transition(RunLifecycleState.CONFIGURING)
        config_path = Path(self.request.config_path)
        if not check_file_accessible(config_path):
            raise ConfigurationError(
                f"Input configuration file {config_path.resolve()} not found, please check file name."
            )
        logger.info("Current working directory: %s", Path.cwd())
        self.config = load_config(config_path, overrides=list(self.request.overrides))
        config_dir = config_path.resolve().parent
        run_tag = self._resolve_run_tag()
        self.params = self._resolve_parameters(config_dir, run_tag)

        physics = self.config.physics
        self.setup = select_physics(physics.lists, physics.verbose_level)
        self.geometry = load_geometry(self.params.geometry)

        self.metadata = RunMetadata(
            title=self.config.run.title,
            run_tag=run_tag,
            config_file=str(config_path.resolve()),
            geometry_file=str(self.geometry.path),
            gdml_reference=self.geometry.gdml_reference,
            materials_reference=self.geometry.materials_reference,
            seed=self.params.seed,
            events_requested=self.params.events,
            desired_entries=self.params.desired_entries,
            time_limit_seconds=self.params.time_limit_seconds,
            threads=self.params.threads,
            physics=self.setup.describe(),
        )
        logger.info("%s", format_metadata("Run metadata", self.metadata.to_dict()))

    def _resolve_run_tag(self) -> str:
        run = self.config.run
        tag = run.run_tag
        if tag is None or tag.strip() in {"", "Null"}:
            return run.title
        return tag

    def _resolve_parameters(self, config_dir: Path, run_tag: str) -> RunParameters:
        run = self.config.run
        request = self.request

        def pick(override: Any, configured: Any) -> Any:
            return configured if override is None else override

        events = pick(request.events, run.events)
        if events < 0:
            raise ConfigurationError(f'"events" parameter value ({events}) is not valid.')

        seed = pick(request.seed, run.seed)
        if seed is None:
            seed = random.SystemRandom().randrange(1, 2**31)
            logger.info("No seed configured; drew seed %d", seed)

        geometry = pick(request.geometry, self.config.geometry.gdml_file)
        if geometry is None:
            raise ConfigurationError("No geometry file configured; set geometry.gdml_file or pass --geometry")
        geometry = Path(geometry)
        if not geometry.is_absolute():
            geometry = config_dir / geometry

        output_template = str(pick(request.output, self.config.io.output))
        output = Path(output_template.replace("{run_tag}", _sanitize_tag(run_tag)))

        try:
            return RunParameters(
                events=events,
                desired_entries=pick(request.desired_entries, run.desired_entries),
                time_limit_seconds=pick(request.time_limit_seconds, run.time_limit_seconds),
                threads=pick(request.threads, run.threads),
                output=output,
                geometry=geometry,
                seed=seed,
            )
        except ValidationError as exc:
            raise ConfigurationError(f"Invalid run parameters:\n{exc}") from exc

    # -- Initializing -----------------------------------------------------------

    def _initialize(self) -> None:
        self._transition(RunLifecycleState.INITIALIZING, threads=self.params.threads)
        factory = self._kernel_factory if self._kernel_factory is not None else create_kernel
        kernel = factory(self.params.threads)
        self.kernel = kernel
        kernel.set_random_seed(self.params.seed)
        self.physics_list = PhysicsList(self.config.physics, self.setup)
        kernel.set_detector_construction(DetectorConstruction(self.geometry))
        kernel.set_physics_list(self.physics_list)
        kernel.set_action_initialization(ActionInitialization(self.config.generator))
        kernel.bind_run_control(self._should_stop, self._record_event)
        self.setup.freeze()
        kernel.initialize()
        self.metadata.kernel_version = kernel.version

    # -- Running ----------------------------------------------------------------

    def _execute(self) -> None:
        self._transition(RunLifecycleState.RUNNING, events=self.params.events)
        self._writer = EventStreamWriter(self.params.output / EVENTS_FILENAME)
        self._run_started = time.monotonic()
        self.metadata.start_timestamp = self._clock()
        logger.info("Number of events: %d", self.params.events)
        if not self.params.interactive:
            progress_enabled = self.request.progress if self.request.progress is not None else self.config.io.progress
            self._progress = ProgressReporter(self.params.events, enabled=progress_enabled)
            self.kernel.apply_command("/tracking/verbose 0")
            self.kernel.apply_command("/run/initialize")
            self.kernel.apply_command(f"/run/beamOn {self.params.events}")
        else:
            logger.info("Entering interactive mode..")
            self.kernel.session_start(self._command_reader or _stdin_reader)
        if self._stop_event.is_set():
            self._stop_reason = STOP_USER
            self._transition(RunLifecycleState.INTERRUPTED, events_processed=self._events_processed)

    def _should_stop(self) -> bool:
        if self._stop_event.is_set():
            if self._stop_reason != STOP_USER:
                self._stop_reason = STOP_USER
                logger.warning("Stopping Run! Program was manually stopped by user (CTRL+C)!")
            return True
        if self.params.interactive:
            return False
        if self.params.desired_entries and self._writer.entries >= self.params.desired_entries:
            if self._stop_reason is None:
                self._stop_reason = STOP_DESIRED_ENTRIES
                logger.info("Desired number of entries (%d) reached", self.params.desired_entries)
            return True
        if self.params.time_limit_seconds:
            elapsed = time.monotonic() - self._run_started
            if elapsed >= self.params.time_limit_seconds:
                if self._stop_reason is None:
                    self._stop_reason = STOP_TIME_LIMIT
                    logger.info("Time limit of %.1f s reached", self.params.time_limit_seconds)
                return True
        return False

    def _record_event(self, record: EventRecord) -> None:
        self._events_processed += 1
        if record.stored:
            self._writer.append(record.as_row())
        if self._progress is not None:
            self._progress.update(self._events_processed, self._writer.entries)

    # -- Finalizing -------------------------------------------------------------

    def _finalize(self) -> RunResult:
        self._transition(RunLifecycleState.FINALIZING)
        if self._progress is not None:
            self._progress.finish(self._events_processed, self._writer.entries)
        self.kernel.shutdown()
        self.metadata.end_timestamp = self._clock()
        elapsed = time.monotonic() - self._run_started
        self._writer.close()

        output_dir = self.params.output
        write_geometry(self.geometry, output_dir)
        event_summary = summarize_events(output_dir / EVENTS_FILENAME)

        self.metadata.events_processed = self._events_processed
        self.metadata.entries_stored = self._writer.entries
        self.metadata.interrupted = RunLifecycleState.INTERRUPTED in self.history
        self.metadata.stop_reason = self._stop_reason
        payload = self.metadata.to_dict()
        payload["elapsed_seconds"] = elapsed
        payload["events"] = event_summary
        payload["provenance"] = gather_runtime_provenance(
            input_files=[self.metadata.config_file, self.metadata.geometry_file]
        )
        write_summary(payload, output_dir / METADATA_FILENAME)

        logger.info("%s", format_metadata("Run metadata", self.metadata.to_dict()))
        logger.info("%s", format_metadata("Event summary", event_summary))
        self._transition(RunLifecycleState.COMPLETED)
        logger.info("============== Generated file: %s ==============", output_dir.resolve())
        logger.info("Elapsed time: %.3f seconds", elapsed)
        return RunResult(
            state=self._state,
            events_processed=self._events_processed,
            entries_stored=self._writer.entries,
            output_dir=output_dir,
            elapsed_seconds=elapsed,
            stop_reason=self._stop_reason,
            metadata=self.metadata,
            history=list(self.history),
        )


@contextmanager
def interrupt_handler(orchestrator: RunOrchestrator, signum: int = signal.SIGINT) -> Iterator[RunOrchestrator]:
    """Route ``signum`` to :meth:`RunOrchestrator.request_stop` for the duration of the block."""

    if threading.current_thread() is not threading.main_thread():
        logger.debug("interrupt_handler: not on the main thread; signal routing skipped")
        yield orchestrator
        return

    def _handle(received: int, frame: Any) -> None:
        orchestrator.request_stop()

    previous = signal.signal(signum, _handle)
    try:
        yield orchestrator
    finally:
        signal.signal(signum, previous)


__all__ = [
    "RunLifecycleState",
    "RunRequest",
    "RunMetadata",
    "RunResult",
    "RunOrchestrator",
    "format_metadata",
    "interrupt_handler",
]
