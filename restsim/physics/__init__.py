"""Physics module selection, process composition and production cuts."""

from .composer import CompositionReport, ProcessComposer, scan_ion_step_targets
from .cuts import CutManager
from .physics_list import PhysicsList
from .registry import EmOptions, ModuleKind, PhysicsModule, RadioactiveDecayOptions
from .selector import PhysicsSetup, select_physics

__all__ = [
    "CompositionReport",
    "ProcessComposer",
    "scan_ion_step_targets",
    "CutManager",
    "PhysicsList",
    "EmOptions",
    "ModuleKind",
    "PhysicsModule",
    "RadioactiveDecayOptions",
    "PhysicsSetup",
    "select_physics",
]
