import json
from pathlib import Path

import pandas as pd
import pytest

from restsim.errors import ConfigurationError, GeometryWriteError, OutputWriteError
from restsim.geometry import load_geometry
from restsim.io.writer import EventStreamWriter, summarize_events, write_geometry, write_summary


def _row(event_id: int, deposit: float) -> dict:
    return {
        "event_id": event_id,
        "worker": "MainThread",
        "primary_particle": "gamma",
        "primary_energy_keV": 100.0,
        "energy_deposit_keV": deposit,
        "n_hits": 2,
    }


def test_load_geometry_extracts_references(gdml_file: Path) -> None:
    geometry = load_geometry(gdml_file)
    assert geometry.gdml_reference == "1.0"
    assert geometry.materials_reference == "materials.xml"
    assert geometry.world_volume == "World"
    assert len(geometry.sha256) == 64


def test_load_geometry_missing_file(tmp_path: Path) -> None:
    with pytest.raises(ConfigurationError, match="Geometry file"):
        load_geometry(tmp_path / "absent.gdml")


def test_write_geometry_section(gdml_file: Path, tmp_path: Path) -> None:
    geometry = load_geometry(gdml_file)
    path = write_geometry(geometry, tmp_path / "bundle")
    assert path.name == "Geometry.json"
    payload = json.loads(path.read_text(encoding="utf-8"))
    assert payload["section"] == "Geometry"
    assert payload["world_volume"] == "World"
    assert payload["gdml"] == geometry.content


def test_write_geometry_without_geometry_fails(tmp_path: Path) -> None:
    with pytest.raises(GeometryWriteError):
        write_geometry(None, tmp_path)


def test_event_stream_flushes_in_row_groups(tmp_path: Path) -> None:
    path = tmp_path / "events" / "events.parquet"
    with EventStreamWriter(path, flush_every=2) as writer:
        for event_id in range(5):
            writer.append(_row(event_id, 10.0 * (event_id + 1)))
        assert writer.entries == 5
    assert writer.closed
    df = pd.read_parquet(path)
    assert df["event_id"].tolist() == [0, 1, 2, 3, 4]
    summary = summarize_events(path)
    assert summary["entries"] == 5
    assert summary["energy_deposit_total_keV"] == pytest.approx(150.0)
    assert summary["hits_total"] == 10


def test_empty_event_stream_is_readable(tmp_path: Path) -> None:
    path = tmp_path / "events.parquet"
    writer = EventStreamWriter(path)
    writer.close()
    writer.close()
    assert pd.read_parquet(path).empty
    assert summarize_events(path)["entries"] == 0
    with pytest.raises(ValueError, match="already closed"):
        writer.append(_row(0, 1.0))


def test_write_summary_is_sorted_json(tmp_path: Path) -> None:
    path = tmp_path / "nested" / "metadata.json"
    write_summary({"b": 1, "a": Path("x")}, path)
    text = path.read_text(encoding="utf-8")
    assert text.index('"a"') < text.index('"b"')
    assert json.loads(text)["a"] == "x"


def test_event_stream_under_regular_file_fails(tmp_path: Path) -> None:
    blocker = tmp_path / "blocker"
    blocker.write_text("x", encoding="utf-8")
    with pytest.raises(OutputWriteError, match="Unable to open event stream"):
        EventStreamWriter(blocker / "sub" / "events.parquet")
    with pytest.raises(OutputWriteError):
        write_summary({"a": 1}, blocker / "metadata.json")


def test_geometry_write_failure_is_output_error(gdml_file: Path, tmp_path: Path) -> None:
    blocker = tmp_path / "blocker"
    blocker.write_text("x", encoding="utf-8")
    with pytest.raises(GeometryWriteError) as excinfo:
        write_geometry(load_geometry(gdml_file), blocker / "bundle")
    assert isinstance(excinfo.value, OutputWriteError)
