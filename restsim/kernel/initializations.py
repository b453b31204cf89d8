"""User initializations registered with the kernel besides the physics list."""
from __future__ import annotations

import logging
from typing import Optional

import numpy as np

from ..geometry import GeometryDescription
from ..schema import GeneratorSection
from .base import PrimaryVertex

logger = logging.getLogger(__name__)


class DetectorConstruction:
    """Hands the resolved geometry description to the kernel."""

    def __init__(self, geometry: GeometryDescription) -> None:
        self.geometry = geometry
        self.world_volume: Optional[str] = None

    def construct(self) -> str:
        self.world_volume = self.geometry.world_volume
        logger.info("DetectorConstruction: world volume '%s' from %s", self.world_volume, self.geometry.path)
        return self.world_volume


class PrimaryGeneratorAction:
    """Monoenergetic point source."""

    def __init__(self, generator: GeneratorSection) -> None:
        self.particle = generator.particle
        self.energy_keV = float(generator.energy_keV)

    def generate(self, rng: np.random.Generator) -> PrimaryVertex:
        _ = rng
        return PrimaryVertex(particle=self.particle, energy_keV=self.energy_keV)


class ActionInitialization:
    """Builds the per-worker user actions."""

    def __init__(self, generator: GeneratorSection) -> None:
        self.generator = generator

    def build(self) -> PrimaryGeneratorAction:
        return PrimaryGeneratorAction(self.generator)


__all__ = ["DetectorConstruction", "PrimaryGeneratorAction", "ActionInitialization"]
