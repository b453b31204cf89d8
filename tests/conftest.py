from __future__ import annotations

import sys
from pathlib import Path
from typing import Any, Callable, Dict

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

GDML_TEXT = """<?xml version="1.0" encoding="UTF-8"?>
<!DOCTYPE gdml [
<!ENTITY materials SYSTEM "materials.xml">
]>
<gdml xmlns:xsi="http://www.w3.org/2001/XMLSchema-instance" version="1.0">
  &materials;
  <solids>
    <box name="WorldBox" x="1000" y="1000" z="1000" lunit="mm"/>
  </solids>
  <structure>
    <volume name="World">
      <materialref ref="G4_AIR"/>
      <solidref ref="WorldBox"/>
    </volume>
  </structure>
  <setup name="Default" version="1.0">
    <world ref="World"/>
  </setup>
</gdml>
"""


def _merge(base: Dict[str, Any], updates: Dict[str, Any]) -> Dict[str, Any]:
    merged = dict(base)
    for key, value in updates.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


@pytest.fixture
def gdml_file(tmp_path: Path) -> Path:
    path = tmp_path / "setup.gdml"
    path.write_text(GDML_TEXT, encoding="utf-8")
    return path


@pytest.fixture
def base_config(tmp_path: Path) -> Dict[str, Any]:
    return {
        "run": {"title": "test run", "events": 1000, "seed": 12345, "threads": 0},
        "geometry": {"gdml_file": "setup.gdml"},
        "generator": {"particle": "gamma", "energy_keV": 661.7},
        "physics": {
            "lists": [
                {"name": "G4EmLivermorePhysics", "options": {"pixe": True}},
                {"name": "G4DecayPhysics"},
                {"name": "G4RadioactiveDecayPhysics"},
                {"name": "G4RadioactiveDecay", "options": {"ICM": "true", "ARM": "true"}},
                {"name": "G4HadronElasticPhysicsHP"},
            ],
            "ion_step_list": ["F20", "Ne20"],
        },
        "io": {"output": str(tmp_path / "out" / "{run_tag}")},
    }


@pytest.fixture
def write_config(tmp_path: Path, gdml_file: Path, base_config: Dict[str, Any]) -> Callable[..., Path]:
    """Return a factory writing ``base_config`` merged with section updates to YAML."""

    from ruamel.yaml import YAML

    def _write(name: str = "config.yaml", **sections: Any) -> Path:
        payload = _merge(base_config, sections)
        path = tmp_path / name
        yaml = YAML(typ="safe")
        yaml.default_flow_style = False
        with path.open("w", encoding="utf-8") as fh:
            yaml.dump(payload, fh)
        return path

    return _write
