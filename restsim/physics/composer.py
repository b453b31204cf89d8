"""Wiring of selected physics modules into the simulation kernel.

The composer performs particle construction and process construction for a
:class:`~restsim.physics.selector.PhysicsSetup`, in a fixed order:

1. transportation,
2. electromagnetic module and its sub-options,
3. decay module,
4. radioactive-decay module and the dedicated radioactive-decay process,
5. hadronic modules in registration order,
6. per-species step limiters for ``e-``, ``e+``, ``mu-`` and ``mu+``,
7. a shared step limiter for every configured ion found by the bounded
   (Z, A) scan.

Nothing in here blocks; every step is a one-shot registration.
"""
from __future__ import annotations

import logging
import warnings
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence, Tuple

from .. import constants
from ..kernel.base import RadioactiveDecayProcess, SimulationKernel, ion_name
from ..schema import VerboseLevel
from ..warnings import ConfigurationWarning
from .registry import EmOptions, RadioactiveDecayOptions
from .selector import PhysicsSetup

logger = logging.getLogger(__name__)

IonTarget = Tuple[int, int, str]


@dataclass
class CompositionReport:
    """What process construction registered with the kernel."""

    transportation: bool = False
    constructed: List[str] = field(default_factory=list)
    em_commands: List[str] = field(default_factory=list)
    radioactive_decay: Optional[RadioactiveDecayProcess] = None
    lepton_limiters: List[Tuple[str, str]] = field(default_factory=list)
    ion_limiters: List[IonTarget] = field(default_factory=list)


def scan_ion_step_targets(
    ion_step_list: Sequence[str],
    name_of: Callable[[int, int], str] = ion_name,
) -> List[IonTarget]:
    """Return (Z, A, name) for every scanned ion whose name is in ``ion_step_list``.

    The scan covers Z in [1, 40] and A in [2Z, 3Z] regardless of the list
    length; each matching (Z, A) appears once.
    """

    wanted = set(ion_step_list)
    if not wanted:
        return []
    low, high = constants.ION_SCAN_A_FACTORS
    targets: List[IonTarget] = []
    for z in range(constants.ION_SCAN_Z_MIN, constants.ION_SCAN_Z_MAX + 1):
        for a in range(low * z, high * z + 1):
            name = name_of(z, a)
            if name in wanted:
                targets.append((z, a, name))
    return targets


def apply_em_options(kernel: SimulationKernel, options: EmOptions, module_name: str) -> List[str]:
    """Send the EM sub-option commands for ``options`` to the kernel."""

    commands = options.commands()
    for command in commands:
        logger.info("Setting EM option '%s' for physics list '%s'", command, module_name)
        kernel.apply_command(command)
    return commands


def configure_radioactive_decay(
    kernel: SimulationKernel,
    options: RadioactiveDecayOptions,
    verbose_level: VerboseLevel = VerboseLevel.ESSENTIAL,
) -> RadioactiveDecayProcess:
    """Create the radioactive-decay process and apply its threshold and ICM/ARM switches."""

    process = kernel.create_radioactive_decay()
    process.set_threshold_for_very_long_decay_time(constants.DECAY_TIME_THRESHOLD_NS)
    for label, value, setter in (
        ("ICM", options.icm, process.set_icm),
        ("ARM", options.arm, process.set_arm),
    ):
        if value is not None:
            setter(value)
        elif verbose_level >= VerboseLevel.ESSENTIAL:
            warnings.warn(
                f"PhysicsList 'G4RadioactiveDecay' option '{label}' not defined",
                ConfigurationWarning,
                stacklevel=2,
            )
    return process


class ProcessComposer:
    """Construct particles and processes for a selected physics setup."""

    def __init__(
        self,
        setup: PhysicsSetup,
        *,
        ion_step_list: Sequence[str] = (),
        verbose_level: VerboseLevel = VerboseLevel.ESSENTIAL,
    ) -> None:
        self.setup = setup
        self.ion_step_list = tuple(ion_step_list)
        self.verbose_level = verbose_level

    def construct_particles(self, kernel: Optional[SimulationKernel]) -> None:
        if kernel is None:
            return
        kernel.construct_particles(("geantino",))
        for module in self.setup.modules():
            module.construct_particle(kernel)

    def construct_processes(self, kernel: Optional[SimulationKernel]) -> CompositionReport:
        report = CompositionReport()
        if kernel is None:
            return report
        kernel.add_transportation()
        report.transportation = True

        em = self.setup.electromagnetic
        if em is not None:
            em.construct_process(kernel)
            report.constructed.append(em.name)
            report.em_commands = apply_em_options(kernel, self.setup.em_options, em.name)

        if self.setup.decay is not None:
            self.setup.decay.construct_process(kernel)
            report.constructed.append(self.setup.decay.name)

        if self.setup.radioactive_decay is not None:
            self.setup.radioactive_decay.construct_process(kernel)
            report.constructed.append(self.setup.radioactive_decay.name)
            report.radioactive_decay = configure_radioactive_decay(
                kernel, self.setup.radioactive_decay_options, self.verbose_level
            )

        for module in self.setup.hadronic:
            module.construct_process(kernel)
            report.constructed.append(module.name)

        report.lepton_limiters = self.attach_lepton_step_limiters(kernel)
        report.ion_limiters = self.attach_ion_step_limiters(kernel)
        return report

    def attach_lepton_step_limiters(self, kernel: SimulationKernel) -> List[Tuple[str, str]]:
        """One limiter per lepton species, each with its own label."""

        attached: List[Tuple[str, str]] = []
        if self.setup.electromagnetic is None:
            return attached
        for particle in kernel.particles():
            label = constants.LEPTON_STEP_LABELS.get(particle.name)
            if label is None:
                continue
            kernel.add_discrete_process(particle, label)
            attached.append((particle.name, label))
        return attached

    def attach_ion_step_limiters(self, kernel: SimulationKernel) -> List[IonTarget]:
        targets = scan_ion_step_targets(self.ion_step_list, kernel.ion_name)
        for z, a, name in targets:
            particle = kernel.get_ion(z, a)
            logger.info("Found ion: %s Z %d A %d", name, z, a)
            kernel.add_discrete_process(particle, constants.ION_STEP_LABEL)
        unmatched = set(self.ion_step_list) - {name for _, _, name in targets}
        if unmatched:
            logger.debug("Ion step list entries outside the scanned range: %s", sorted(unmatched))
        return targets


__all__ = [
    "CompositionReport",
    "scan_ion_step_targets",
    "apply_em_options",
    "configure_radioactive_decay",
    "ProcessComposer",
]
