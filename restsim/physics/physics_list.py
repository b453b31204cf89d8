"""Kernel-facing physics list combining selection, composition and cuts."""
from __future__ import annotations

from typing import Optional

from .. import constants
from ..kernel.base import SimulationKernel
from ..schema import PhysicsSection
from .composer import CompositionReport, ProcessComposer
from .cuts import CutManager
from .selector import PhysicsSetup, select_physics


class PhysicsList:
    """User initialization called back by the kernel during ``initialize()``."""

    def __init__(self, physics: PhysicsSection, setup: Optional[PhysicsSetup] = None) -> None:
        self.physics = physics
        self.setup = setup if setup is not None else select_physics(physics.lists, physics.verbose_level)
        self.composer = ProcessComposer(
            self.setup,
            ion_step_list=physics.ion_step_list,
            verbose_level=physics.verbose_level,
        )
        self.cut_manager = CutManager(physics.cuts)
        self.report: Optional[CompositionReport] = None

    def construct_particle(self, kernel: SimulationKernel) -> None:
        for name, symbol, value in constants.TIME_UNITS:
            kernel.define_unit(name, symbol, "Time", value)
        self.composer.construct_particles(kernel)

    def construct_process(self, kernel: SimulationKernel) -> None:
        self.report = self.composer.construct_processes(kernel)

    def set_cuts(self, kernel: SimulationKernel) -> None:
        self.cut_manager.apply(kernel)


__all__ = ["PhysicsList"]
