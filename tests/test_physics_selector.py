import warnings

import pytest

from restsim.errors import LifecycleError, SelectionConflictError
from restsim.physics import registry
from restsim.physics.registry import EmOptions, RadioactiveDecayOptions
from restsim.physics.selector import select_physics
from restsim.schema import PhysicsListRequest, VerboseLevel
from restsim.warnings import ConfigurationWarning, PhysicsWarning


def _req(name: str, **options: str) -> PhysicsListRequest:
    return PhysicsListRequest(name=name, options=options)


def test_two_em_modules_conflict() -> None:
    with pytest.raises(SelectionConflictError, match="more than one electromagnetic"):
        select_physics([_req("G4EmLivermorePhysics"), _req("G4EmPenelopePhysics")])


@pytest.mark.parametrize("name", registry.EM_PRIORITY)
def test_single_em_module_is_selected(name: str) -> None:
    setup = select_physics([_req(name), _req("G4DecayPhysics")])
    assert setup.em_name == name
    assert setup.decay is not None


def test_no_em_module_warns_exactly_once() -> None:
    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always")
        setup = select_physics([_req("G4DecayPhysics")])
    physics_warnings = [w for w in caught if issubclass(w.category, PhysicsWarning)]
    assert len(physics_warnings) == 1
    assert "No EM physics list has been enabled" in str(physics_warnings[0].message)
    assert setup.electromagnetic is None


def test_no_em_module_is_silent_below_essential() -> None:
    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always")
        select_physics([_req("G4DecayPhysics")], VerboseLevel.SILENT)
    assert not [w for w in caught if issubclass(w.category, PhysicsWarning)]


def test_hadronic_modules_keep_request_order() -> None:
    requested = ["G4NeutronTrackingCut", "G4HadronPhysicsQGSP_BIC_HP", "G4IonBinaryCascadePhysics"]
    setup = select_physics([_req("G4EmPenelopePhysics")] + [_req(name) for name in requested])
    assert [module.name for module in setup.hadronic] == requested
    assert all(module.kind is registry.ModuleKind.HADRONIC for module in setup.hadronic)


def test_modules_order_decay_em_radioactive_hadronic() -> None:
    setup = select_physics(
        [
            _req("G4EmExtraPhysics"),
            _req("G4RadioactiveDecayPhysics", ICM="true", ARM="true"),
            _req("G4EmStandardPhysics_option4"),
            _req("G4DecayPhysics"),
        ]
    )
    assert [module.name for module in setup.modules()] == [
        "G4DecayPhysics",
        "G4EmStandardPhysics_option4",
        "G4RadioactiveDecayPhysics",
        "G4EmExtraPhysics",
    ]


def test_unknown_module_is_ignored_with_warning() -> None:
    with pytest.warns(ConfigurationWarning, match="Unknown physics module 'G4FancyPhysics'"):
        setup = select_physics([_req("G4EmLivermorePhysics"), _req("G4FancyPhysics")])
    assert "G4FancyPhysics" not in [module.name for module in setup.modules()]


def test_duplicate_request_keeps_first() -> None:
    setup = select_physics(
        [_req("G4EmLivermorePhysics", pixe="true"), _req("G4EmLivermorePhysics", pixe="false")]
    )
    assert setup.em_name == "G4EmLivermorePhysics"
    assert setup.em_options.pixe is True


def test_em_options_defaults_and_parsing() -> None:
    assert EmOptions.from_request(None) == EmOptions(fluo=True, auger=True, pixe=False)
    options = EmOptions.from_request(_req("G4EmLivermorePhysics", fluo="FALSE", auger="maybe", pixe="True"))
    assert options.fluo is False
    assert options.auger is True
    assert options.pixe is True
    assert options.commands() == [
        "/process/em/fluo false",
        "/process/em/auger true",
        "/process/em/pixe true",
    ]


def test_radioactive_decay_options_require_exact_strings() -> None:
    options = RadioactiveDecayOptions.from_request(_req("G4RadioactiveDecay", ICM="True", ARM="false"))
    assert options.icm is None
    assert options.icm_raw == "True"
    assert options.arm is False


def test_radioactive_decay_process_options_take_precedence() -> None:
    setup = select_physics(
        [
            _req("G4EmLivermorePhysics"),
            _req("G4RadioactiveDecayPhysics", ICM="false", ARM="false"),
            _req("G4RadioactiveDecay", ICM="true", ARM="true"),
        ]
    )
    assert setup.radioactive_decay_options.icm is True
    assert setup.radioactive_decay_options.arm is True


def test_radioactive_decay_process_without_module_warns() -> None:
    with pytest.warns(ConfigurationWarning, match="ignored without 'G4RadioactiveDecayPhysics'"):
        setup = select_physics([_req("G4EmLivermorePhysics"), _req("G4RadioactiveDecay", ICM="true")])
    assert setup.radioactive_decay is None


def test_frozen_setup_rejects_mutation() -> None:
    setup = select_physics([_req("G4EmLivermorePhysics")])
    setup.hadronic = ()
    setup.freeze()
    assert setup.frozen
    with pytest.raises(LifecycleError):
        setup.hadronic = ()
    with pytest.raises(LifecycleError):
        setup.em_options = EmOptions(pixe=True)
