"""Simulation kernel interface and the in-process reference kernel."""

from .base import (
    EventRecord,
    ParticleDefinition,
    PrimaryVertex,
    RadioactiveDecayProcess,
    RunManagerType,
    SimulationKernel,
    ion_name,
)
from .virtual import KERNEL_VERSION, VirtualKernel, create_kernel

__all__ = [
    "EventRecord",
    "ParticleDefinition",
    "PrimaryVertex",
    "RadioactiveDecayProcess",
    "RunManagerType",
    "SimulationKernel",
    "ion_name",
    "KERNEL_VERSION",
    "VirtualKernel",
    "create_kernel",
]
