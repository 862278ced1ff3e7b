import numpy as np
import pytest

from deckstate import (
    Component,
    DryGasPVT,
    FluidPhase,
    LiveOilPVT,
    MissingKeywordError,
    ValidationError,
    WaterPVT,
    build_fluid_system,
)


@pytest.fixture
def fluid_system(deck):
    return build_fluid_system(deck)


def test_saturated_oil_curves(fluid_system):
    assert fluid_system.gas_dissolution_factor(100.0e5) == pytest.approx(50.0)
    assert fluid_system.gas_dissolution_factor(150.0e5) == pytest.approx(75.0)
    assert fluid_system.formation_volume_factor(FluidPhase.OIL, 150.0e5) == pytest.approx(1.3)
    assert fluid_system.viscosity(FluidPhase.OIL, 100.0e5) == pytest.approx(0.8e-3)


def test_bubble_point_pressure_of_dissolved_gas(fluid_system):
    oil = fluid_system.oil
    assert oil.bubble_point_pressure(50.0) == pytest.approx(100.0e5)
    assert oil.bubble_point_pressure(75.0) == pytest.approx(150.0e5)
    np.testing.assert_allclose(
        oil.bubble_point_pressure(np.array([0.0, 100.0])), [1.0e5, 200.0e5]
    )
    # Consistent with the saturated dissolved gas curve
    assert fluid_system.gas_dissolution_factor(oil.bubble_point_pressure(75.0)) == pytest.approx(75.0)


def test_dissolved_gas_is_never_negative(fluid_system):
    assert fluid_system.gas_dissolution_factor(0.0) == 0.0


def test_saturated_curves_extrapolate_linearly(fluid_system):
    assert fluid_system.gas_dissolution_factor(300.0e5) == pytest.approx(150.0)
    np.testing.assert_allclose(
        fluid_system.formation_volume_factor(
            FluidPhase.OIL, np.array([250.0e5, 300.0e5])
        ),
        [1.5, 1.6],
    )


def test_undersaturated_oil_follows_the_record_branch(fluid_system):
    bo = fluid_system.formation_volume_factor(FluidPhase.OIL, 200.0e5, dissolved_gas=50.0)
    assert bo == pytest.approx(1.18)


def test_undersaturated_oil_between_records(fluid_system):
    # Rs = 75 lies halfway between the records at 50 and 100, both with relative
    # branches decreasing over 100 bar
    bo = fluid_system.oil.formation_volume_factor(250.0e5, dissolved_gas=75.0)
    relative = 0.5 * (1.18 / 1.20) + 0.5 * (1.37 / 1.40)
    assert bo == pytest.approx(1.3 * relative)


def test_saturated_cells_ignore_the_branch(fluid_system):
    pressures = np.array([100.0e5, 200.0e5])
    bo = fluid_system.oil.formation_volume_factor(pressures, dissolved_gas=np.array([80.0, 50.0]))
    np.testing.assert_allclose(bo, [1.2, 1.18])


def test_water_formation_volume_factor():
    water = WaterPVT(
        reference_pressure=1.0e5,
        reference_volume_factor=1.02,
        compressibility=4.0e-10,
        reference_viscosity=5.0e-4,
        viscosibility=float("nan"),
    )
    x = 4.0e-10 * (200.0e5 - 1.0e5)
    assert water.formation_volume_factor(200.0e5) == pytest.approx(
        1.02 / (1.0 + x + x * x / 2.0)
    )
    assert water.formation_volume_factor(1.0e5) == pytest.approx(1.02)
    assert water.viscosibility == 0.0
    assert water.viscosity(300.0e5) == pytest.approx(5.0e-4)


def test_gas_formation_volume_factor(fluid_system):
    assert fluid_system.formation_volume_factor(FluidPhase.GAS, 150.0e5) == pytest.approx(0.0075)
    assert fluid_system.viscosity(FluidPhase.GAS, 150.0e5) == pytest.approx(1.75e-5)


def test_volume_factors_stay_positive():
    gas = DryGasPVT(
        pressures=np.array([1.0e5, 2.0e5]),
        volume_factors=np.array([0.5, 0.1]),
        viscosities=np.array([1.0e-5, 1.0e-5]),
    )
    assert gas.formation_volume_factor(10.0e5) > 0.0


def test_densities_use_surface_density_over_volume_factor(fluid_system):
    assert fluid_system.surface_densities[FluidPhase.OIL] == 800.0
    assert fluid_system.surface_densities[FluidPhase.WATER] == 1000.0
    assert fluid_system.surface_densities[FluidPhase.GAS] == 1.0
    assert fluid_system.density(FluidPhase.OIL, 100.0e5) == pytest.approx(800.0 / 1.2)
    assert fluid_system.density(FluidPhase.WATER, 50.0e5) == pytest.approx(1000.0)
    assert fluid_system.density(FluidPhase.GAS, 100.0e5) == pytest.approx(100.0)


def test_reference_volume_factors_are_normalised(fluid_system):
    assert fluid_system.reference_volume_factors == {
        FluidPhase.WATER: 1.0,
        FluidPhase.OIL: 1.0,
        FluidPhase.GAS: 1.0,
    }


def test_molar_masses(fluid_system):
    assert fluid_system.molar_mass(Component.WATER) == pytest.approx(18e-3)
    assert fluid_system.molar_mass(Component.OIL) == pytest.approx(175e-3)
    assert fluid_system.molar_mass(Component.GAS) == pytest.approx(24e-3)


@pytest.mark.parametrize("keyword", ["PVTO", "PVTW", "PVDG", "DENSITY"])
def test_pvt_keywords_are_mandatory(make_deck, keyword):
    deck = make_deck(**{keyword: None})
    with pytest.raises(MissingKeywordError) as excinfo:
        build_fluid_system(deck)
    assert excinfo.value.keyword == keyword


def test_live_oil_needs_increasing_records():
    table = (
        np.array([50.0, 100.0e5, 1.2, 1.0e-3]),
        np.array([0.0, 1.0e5, 1.0, 1.0e-3]),
    )
    with pytest.raises(ValidationError):
        LiveOilPVT.from_table(table)


def test_live_oil_record_layout_is_checked():
    table = (
        np.array([0.0, 1.0e5, 1.0, 1.0e-3]),
        np.array([50.0, 100.0e5, 1.2]),
    )
    with pytest.raises(ValidationError):
        LiveOilPVT.from_table(table)
