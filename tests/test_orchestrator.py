import json
import logging
import signal
from pathlib import Path
from typing import Any, Dict, List

import pandas as pd
import pytest

from restsim import orchestrator as orchestrator_module
from restsim import run
from restsim.errors import ConfigurationError, LifecycleError, OutputWriteError, SelectionConflictError
from restsim.io.writer import EVENTS_FILENAME, METADATA_FILENAME
from restsim.kernel import RunManagerType, VirtualKernel, create_kernel
from restsim.orchestrator import RunLifecycleState, RunOrchestrator, RunRequest, interrupt_handler

S = RunLifecycleState
BATCH_HISTORY = [S.IDLE, S.CONFIGURING, S.INITIALIZING, S.RUNNING, S.FINALIZING, S.COMPLETED]


class _FactorySpy:
    def __init__(self) -> None:
        self.calls: List[int] = []

    def __call__(self, threads: int):
        self.calls.append(threads)
        return create_kernel(threads)


def _metadata(output_dir: Path) -> Dict[str, Any]:
    return json.loads((output_dir / METADATA_FILENAME).read_text(encoding="utf-8"))


def test_batch_run_processes_all_events(write_config) -> None:
    orchestrator = RunOrchestrator(RunRequest(config_path=write_config()))
    result = orchestrator.run()

    assert result.state is S.COMPLETED
    assert result.history == BATCH_HISTORY
    assert result.events_processed == 1000
    assert not result.interrupted
    assert result.output_dir.name == "test_run"
    assert orchestrator.kernel.events_processed == 1000
    assert "/run/beamOn 1000" in orchestrator.kernel.command_history
    assert orchestrator.setup.frozen

    df = pd.read_parquet(result.output_dir / EVENTS_FILENAME)
    assert len(df) == result.entries_stored
    assert df["event_id"].is_monotonic_increasing
    assert (df["energy_deposit_keV"] > 0).all()

    metadata = _metadata(result.output_dir)
    assert metadata["run_type"] == "restsim"
    assert metadata["run_tag"] == "test run"
    assert metadata["seed"] == 12345
    assert metadata["events_processed"] == 1000
    assert metadata["interrupted"] is False
    assert metadata["kernel_version"] == VirtualKernel.version
    assert metadata["physics"]["electromagnetic"] == "G4EmLivermorePhysics"
    assert metadata["physics"]["em_options"]["pixe"] is True
    assert metadata["events"]["entries"] == result.entries_stored
    assert metadata["provenance"]["packages"]["pydantic"]


def test_physics_wired_through_initialization(write_config) -> None:
    orchestrator = RunOrchestrator(RunRequest(config_path=write_config(), events=10))
    orchestrator.run()
    kernel = orchestrator.kernel
    assert kernel.physics_constructors == [
        "G4EmLivermorePhysics",
        "G4DecayPhysics",
        "G4RadioactiveDecayPhysics",
        "G4HadronElasticPhysicsHP",
    ]
    assert kernel.em_parameters["pixe"] is True
    assert "ionStep" in kernel.find_particle("Ne20").processes
    assert "ionStep" in kernel.find_particle("F20").processes
    assert kernel.radioactive_decays[0].icm is True


def test_geometry_section_written(write_config) -> None:
    result = RunOrchestrator(RunRequest(config_path=write_config(), events=5)).run()
    payload = json.loads((result.output_dir / "Geometry.json").read_text(encoding="utf-8"))
    assert payload["section"] == "Geometry"
    assert payload["gdml_reference"] == "1.0"
    assert payload["materials_reference"] == "materials.xml"
    assert payload["world_volume"] == "World"


def test_interactive_session_never_starts_batch(write_config) -> None:
    commands = iter(["/tracking/verbose 2", "/process/em/pixe false", "exit"])
    orchestrator = RunOrchestrator(
        RunRequest(config_path=write_config(), events=0),
        command_reader=lambda: next(commands),
    )
    result = orchestrator.run()
    kernel = orchestrator.kernel
    assert result.state is S.COMPLETED
    assert result.events_processed == 0
    assert not any(command.startswith("/run/beamOn") for command in kernel.command_history)
    assert kernel.tracking_verbose == 2
    assert kernel.em_parameters["pixe"] is False
    assert pd.read_parquet(result.output_dir / EVENTS_FILENAME).empty


class _StoppingKernel(VirtualKernel):
    stop_after = 100

    def __init__(self, request_stop) -> None:
        super().__init__(RunManagerType.SERIAL)
        self._request_stop = request_stop

    def _deliver(self, record) -> None:
        super()._deliver(record)
        if self.events_processed == self.stop_after:
            self._request_stop()


def test_cancellation_finalizes_partial_output(write_config) -> None:
    holder: Dict[str, RunOrchestrator] = {}
    orchestrator = RunOrchestrator(
        RunRequest(config_path=write_config()),
        kernel_factory=lambda threads: _StoppingKernel(holder["orchestrator"].request_stop),
    )
    holder["orchestrator"] = orchestrator
    result = orchestrator.run()

    assert result.events_processed == _StoppingKernel.stop_after < 1000
    assert result.interrupted
    assert result.history[-3:] == [S.INTERRUPTED, S.FINALIZING, S.COMPLETED]
    assert result.stop_reason == "user"
    df = pd.read_parquet(result.output_dir / EVENTS_FILENAME)
    assert len(df) == result.entries_stored
    metadata = _metadata(result.output_dir)
    assert metadata["interrupted"] is True
    assert metadata["events_processed"] == _StoppingKernel.stop_after


def test_desired_entries_stop_without_interruption(write_config) -> None:
    result = RunOrchestrator(RunRequest(config_path=write_config(), desired_entries=10)).run()
    assert result.entries_stored == 10
    assert result.events_processed < 1000
    assert result.history == BATCH_HISTORY
    assert result.stop_reason == "desired_entries"


def test_multithreaded_run(write_config) -> None:
    serial = RunOrchestrator(RunRequest(config_path=write_config(), events=200, output=None)).run()
    mt_orchestrator = RunOrchestrator(
        RunRequest(config_path=write_config(), events=200, threads=4, output=str(serial.output_dir) + "_mt")
    )
    mt = mt_orchestrator.run()
    assert mt_orchestrator.kernel.run_manager_type is RunManagerType.MULTI_THREADED
    assert mt.events_processed == 200
    serial_df = pd.read_parquet(serial.output_dir / EVENTS_FILENAME)
    mt_df = pd.read_parquet(mt.output_dir / EVENTS_FILENAME)
    assert mt_df["event_id"].tolist() == serial_df["event_id"].tolist()
    assert mt_df["energy_deposit_keV"].tolist() == serial_df["energy_deposit_keV"].tolist()


def test_negative_events_fail_before_kernel(write_config, tmp_path: Path) -> None:
    spy = _FactorySpy()
    orchestrator = RunOrchestrator(RunRequest(config_path=write_config(), events=-5), kernel_factory=spy)
    with pytest.raises(ConfigurationError, match="not valid"):
        orchestrator.run()
    assert spy.calls == []
    assert orchestrator.state is S.FAILED
    assert orchestrator.history == [S.IDLE, S.CONFIGURING, S.FAILED]
    assert not (tmp_path / "out").exists()


def test_em_conflict_fails_before_kernel(write_config, tmp_path: Path) -> None:
    path = write_config(
        physics={"lists": [{"name": "G4EmLivermorePhysics"}, {"name": "G4EmStandardPhysics_option4"}]}
    )
    spy = _FactorySpy()
    orchestrator = RunOrchestrator(RunRequest(config_path=path), kernel_factory=spy)
    with pytest.raises(SelectionConflictError):
        orchestrator.run()
    assert spy.calls == []
    assert orchestrator.state is S.FAILED
    assert not (tmp_path / "out").exists()


def test_missing_geometry_fails_in_configuring(write_config) -> None:
    spy = _FactorySpy()
    path = write_config(geometry={"gdml_file": "nowhere.gdml"})
    orchestrator = RunOrchestrator(RunRequest(config_path=path), kernel_factory=spy)
    with pytest.raises(ConfigurationError, match="Geometry file"):
        orchestrator.run()
    assert spy.calls == []


def test_illegal_transition_and_reuse(write_config) -> None:
    orchestrator = RunOrchestrator(RunRequest(config_path=write_config(), events=3))
    with pytest.raises(LifecycleError):
        orchestrator._transition(S.RUNNING)
    orchestrator.run()
    with pytest.raises(LifecycleError):
        orchestrator.run()


def test_interrupt_handler_routes_sigint_to_stop(write_config) -> None:
    orchestrator = RunOrchestrator(RunRequest(config_path=write_config()))
    previous = signal.getsignal(signal.SIGINT)
    with interrupt_handler(orchestrator):
        handler = signal.getsignal(signal.SIGINT)
        assert handler is not previous
        handler(signal.SIGINT, None)
    assert orchestrator.stop_requested
    assert orchestrator.state is S.IDLE
    assert signal.getsignal(signal.SIGINT) is previous


def test_main_missing_config_returns_one(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    spy = _FactorySpy()
    monkeypatch.setattr(orchestrator_module, "create_kernel", spy)
    assert run.main(["--config", str(tmp_path / "missing.yaml")]) == 1
    assert spy.calls == []


def test_main_runs_batch_with_cli_overrides(write_config, tmp_path: Path) -> None:
    path = write_config()
    output = tmp_path / "cli_out"
    exit_code = run.main(
        [
            "--config",
            str(path),
            "--events",
            "20",
            "--seed",
            "3",
            "--output",
            str(output),
            "--override",
            "physics.cuts.gamma_mm=0.5",
            "--quiet",
        ]
    )
    assert exit_code == 0
    metadata = _metadata(output)
    assert metadata["events_processed"] == 20
    assert metadata["seed"] == 3


def test_stop_while_reading_command_skips_it(write_config) -> None:
    holder: Dict[str, RunOrchestrator] = {}

    def reader() -> str:
        holder["orchestrator"].request_stop()
        return "/tracking/verbose 7"

    orchestrator = RunOrchestrator(RunRequest(config_path=write_config(), events=0), command_reader=reader)
    holder["orchestrator"] = orchestrator
    result = orchestrator.run()
    assert result.interrupted
    assert result.history[-3:] == [S.INTERRUPTED, S.FINALIZING, S.COMPLETED]
    assert "/tracking/verbose 7" not in orchestrator.kernel.command_history
    assert orchestrator.kernel.tracking_verbose != 7


def test_unwritable_output_fails_in_running(write_config, tmp_path: Path) -> None:
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory", encoding="utf-8")
    orchestrator = RunOrchestrator(RunRequest(config_path=write_config(), events=5, output=str(blocker / "sub")))
    with pytest.raises(OutputWriteError, match="Unable to open event stream"):
        orchestrator.run()
    assert orchestrator.history[-2:] == [S.RUNNING, S.FAILED]
    assert orchestrator.kernel.events_processed == 0


def test_main_unwritable_output_returns_one(write_config, tmp_path: Path) -> None:
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory", encoding="utf-8")
    path = write_config()
    assert run.main(["--config", str(path), "--events", "5", "--output", str(blocker / "sub")]) == 1


def test_orchestrator_leaves_root_logger_level(write_config) -> None:
    root = logging.getLogger()
    before = root.level
    RunOrchestrator(RunRequest(config_path=write_config(io={"quiet": True}), events=2)).run()
    assert root.level == before


def test_main_applies_quiet_from_config(write_config) -> None:
    root = logging.getLogger()
    before = root.level
    try:
        path = write_config(io={"quiet": True})
        assert run.main(["--config", str(path), "--events", "2"]) == 0
        assert root.level == logging.WARNING
    finally:
        root.setLevel(before)
