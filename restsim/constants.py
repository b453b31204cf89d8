"""Fixed constants for physics assembly and run control.

Lengths are expressed in millimetres, energies in keV and times in
nanoseconds, matching the internal unit system of the simulation kernel.
"""
from __future__ import annotations

from typing import Dict, Tuple

# Kernel unit system
MM: float = 1.0
KEV: float = 1.0e-3  # kernel energy unit is MeV
NANOSECOND: float = 1.0
SECOND: float = 1.0e9 * NANOSECOND

# Default production cut applied to every particle before per-species overrides (mm)
DEFAULT_CUT_MM: float = 0.1

# Threshold above which radioactive decays are treated as "very long" (ns)
DECAY_TIME_THRESHOLD_NS: float = 1.0 * NANOSECOND

# Ion step-limiter scan: Z in [1, ION_SCAN_Z_MAX], A in [2Z, 3Z]
ION_SCAN_Z_MIN: int = 1
ION_SCAN_Z_MAX: int = 40
ION_SCAN_A_FACTORS: Tuple[int, int] = (2, 3)
ION_STEP_LABEL: str = "ionStep"

# Lepton species receiving their own step limiter, keyed to the process label
LEPTON_STEP_LABELS: Dict[str, str] = {
    "e-": "e-Step",
    "e+": "e+Step",
    "mu-": "mu-Step",
    "mu+": "mu+Step",
}

# Upper bound on the number of primaries a single run may request
MAX_PRIMARIES: int = 2_147_483_647

RUN_TYPE: str = "restsim"
GEOMETRY_SECTION: str = "Geometry"

# Element symbols indexed by atomic number (index 0 unused)
ELEMENT_SYMBOLS: Tuple[str, ...] = (
    "",
    "H", "He", "Li", "Be", "B", "C", "N", "O", "F", "Ne",
    "Na", "Mg", "Al", "Si", "P", "S", "Cl", "Ar", "K", "Ca",
    "Sc", "Ti", "V", "Cr", "Mn", "Fe", "Co", "Ni", "Cu", "Zn",
    "Ga", "Ge", "As", "Se", "Br", "Kr", "Rb", "Sr", "Y", "Zr",
)

# Extra time units registered with the kernel unit table (value in ns)
_MINUTE = 60.0 * SECOND
_HOUR = 60.0 * _MINUTE
_DAY = 24.0 * _HOUR
TIME_UNITS: Tuple[Tuple[str, str, float], ...] = (
    ("minute", "min", _MINUTE),
    ("hour", "h", _HOUR),
    ("day", "d", _DAY),
    ("year", "y", 365.0 * _DAY),
)

__all__ = [
    "MM",
    "KEV",
    "NANOSECOND",
    "SECOND",
    "DEFAULT_CUT_MM",
    "DECAY_TIME_THRESHOLD_NS",
    "ION_SCAN_Z_MIN",
    "ION_SCAN_Z_MAX",
    "ION_SCAN_A_FACTORS",
    "ION_STEP_LABEL",
    "LEPTON_STEP_LABELS",
    "MAX_PRIMARIES",
    "RUN_TYPE",
    "GEOMETRY_SECTION",
    "ELEMENT_SYMBOLS",
    "TIME_UNITS",
]
