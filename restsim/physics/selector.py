"""Selection of concrete physics modules from the requested names."""
from __future__ import annotations

import logging
import warnings
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple

from ..errors import LifecycleError, SelectionConflictError
from ..schema import PhysicsListRequest, VerboseLevel
from ..warnings import ConfigurationWarning, PhysicsWarning
from . import registry
from .registry import EmOptions, ModuleKind, PhysicsModule, RadioactiveDecayOptions

logger = logging.getLogger(__name__)


@dataclass
class PhysicsSetup:
    """Selected modules and their typed options.

    The setup may be edited while it is being assembled; once :meth:`freeze`
    has been called (at kernel initialization) any assignment raises
    :class:`LifecycleError`.
    """

    electromagnetic: Optional[PhysicsModule] = None
    decay: Optional[PhysicsModule] = None
    radioactive_decay: Optional[PhysicsModule] = None
    hadronic: Tuple[PhysicsModule, ...] = ()
    em_options: EmOptions = field(default_factory=EmOptions)
    radioactive_decay_options: RadioactiveDecayOptions = field(default_factory=RadioactiveDecayOptions)
    _frozen: bool = field(default=False, init=False, repr=False, compare=False)

    def __setattr__(self, name: str, value: Any) -> None:
        if getattr(self, "_frozen", False):
            raise LifecycleError(f"PhysicsSetup is frozen; cannot set '{name}' after kernel initialization started")
        object.__setattr__(self, name, value)

    def freeze(self) -> None:
        object.__setattr__(self, "_frozen", True)

    @property
    def frozen(self) -> bool:
        return self._frozen

    @property
    def em_name(self) -> Optional[str]:
        return self.electromagnetic.name if self.electromagnetic is not None else None

    def modules(self) -> Iterator[PhysicsModule]:
        """Yield the selected modules in particle-construction order."""

        for module in (self.decay, self.electromagnetic, self.radioactive_decay):
            if module is not None:
                yield module
        yield from self.hadronic

    def describe(self) -> Dict[str, Any]:
        return {
            "electromagnetic": self.em_name,
            "decay": self.decay.name if self.decay else None,
            "radioactive_decay": self.radioactive_decay.name if self.radioactive_decay else None,
            "hadronic": [module.name for module in self.hadronic],
            "em_options": self.em_options.model_dump(),
        }


def _index_requests(requests: Sequence[PhysicsListRequest]) -> Dict[str, PhysicsListRequest]:
    indexed: Dict[str, PhysicsListRequest] = {}
    for request in requests:
        if request.name in indexed:
            logger.debug("select_physics: duplicate request for %s ignored", request.name)
            continue
        if registry.lookup(request.name) is None:
            warnings.warn(
                f"Unknown physics module '{request.name}' requested; it is ignored.",
                ConfigurationWarning,
                stacklevel=3,
            )
            continue
        indexed[request.name] = request
    return indexed


def select_physics(
    requests: Sequence[PhysicsListRequest],
    verbose_level: VerboseLevel = VerboseLevel.ESSENTIAL,
) -> PhysicsSetup:
    """Resolve requested module names into a :class:`PhysicsSetup`.

    At most one electromagnetic module may be requested; a second distinct
    one raises :class:`SelectionConflictError` before anything touches the
    kernel.
    """

    indexed = _index_requests(requests)
    setup = PhysicsSetup()

    decay_request = indexed.get(registry.DECAY_MODULE)
    if decay_request is not None:
        setup.decay = PhysicsModule(registry.MODULES[registry.DECAY_MODULE], decay_request)
    elif verbose_level >= VerboseLevel.DEBUG:
        logger.info("PhysicsList: %s is not enabled", registry.DECAY_MODULE)

    rad_request = indexed.get(registry.RADIOACTIVE_DECAY_MODULE)
    process_request = indexed.get(registry.RADIOACTIVE_DECAY_PROCESS)
    if rad_request is not None:
        setup.radioactive_decay = PhysicsModule(registry.MODULES[registry.RADIOACTIVE_DECAY_MODULE], rad_request)
        source = process_request if process_request is not None else rad_request
        setup.radioactive_decay_options = RadioactiveDecayOptions.from_request(source)
    else:
        if verbose_level >= VerboseLevel.DEBUG:
            logger.info("PhysicsList: %s is not enabled", registry.RADIOACTIVE_DECAY_MODULE)
        if process_request is not None:
            warnings.warn(
                f"'{registry.RADIOACTIVE_DECAY_PROCESS}' options are ignored without "
                f"'{registry.RADIOACTIVE_DECAY_MODULE}'.",
                ConfigurationWarning,
                stacklevel=2,
            )

    em_requested = [name for name in registry.EM_PRIORITY if name in indexed]
    if len(em_requested) > 1:
        raise SelectionConflictError(
            "more than one electromagnetic physics module requested: " + ", ".join(em_requested)
        )
    if em_requested:
        em_request = indexed[em_requested[0]]
        setup.electromagnetic = PhysicsModule(registry.MODULES[em_requested[0]], em_request)
        setup.em_options = EmOptions.from_request(em_request)
    elif verbose_level >= VerboseLevel.ESSENTIAL:
        warnings.warn(
            "PhysicsList: No EM physics list has been enabled",
            PhysicsWarning,
            stacklevel=2,
        )

    hadronic: List[PhysicsModule] = [
        PhysicsModule(registry.MODULES[name], request)
        for name, request in indexed.items()
        if registry.MODULES[name].kind is ModuleKind.HADRONIC
    ]
    setup.hadronic = tuple(hadronic)
    logger.info("Number of hadronic physics lists added %d", len(setup.hadronic))
    return setup


__all__ = ["PhysicsSetup", "select_physics"]
