"""Production-cut policy."""
from __future__ import annotations

import logging
from typing import Dict, Optional

from .. import constants
from ..kernel.base import SimulationKernel
from ..schema import ProductionCuts

logger = logging.getLogger(__name__)


class CutManager:
    """Apply the energy window, the default cut and the per-species cuts.

    Values are handed to the kernel as configured; the kernel clamps or
    rejects cuts outside the energy window.
    """

    def __init__(self, cuts: ProductionCuts, default_cut_mm: float = constants.DEFAULT_CUT_MM) -> None:
        self.cuts = cuts
        self.default_cut_mm = float(default_cut_mm)

    def per_species(self) -> Dict[str, float]:
        return {
            "gamma": self.cuts.gamma_mm,
            "e-": self.cuts.electron_mm,
            "e+": self.cuts.positron_mm,
            "mu+": self.cuts.muon_mm,
            "mu-": self.cuts.muon_mm,
            "neutron": self.cuts.neutron_mm,
        }

    def apply(self, kernel: Optional[SimulationKernel]) -> Dict[str, float]:
        if kernel is None:
            return {}
        kernel.set_production_energy_range(
            self.cuts.min_energy_keV * constants.KEV,
            self.cuts.max_energy_keV * constants.KEV,
        )
        kernel.set_default_cut_value(self.default_cut_mm * constants.MM)
        applied = self.per_species()
        for particle_name, value in applied.items():
            kernel.set_cut_value(value * constants.MM, particle_name)
        logger.debug("Production cuts applied: %s", applied)
        return applied


__all__ = ["CutManager"]
