import numpy as np
import pytest

from deckstate import (
    CartesianGrid,
    Component,
    Config,
    Constants,
    Deck,
    FluidPhase,
    IndexOutOfRangeError,
    MissingKeywordError,
    PhaseSaturations,
    ReservoirModel,
    build_reservoir_model,
    parse_deck,
    with_precision,
)


MODEL_DECK = """
RUNSPEC
METRIC
DIMENS
 2 2 1 /

GRID
ACTNUM
 1 1 1 0 /
PERMX
 100 200 400 800 /
NTG
 4*1.0 /
PORO
 4*0.25 /
MULTX
 0.5 3*1.0 /

PROPS
SWOF
 0.2 0.0 1.0 0.0
 0.5 0.3 0.4 0.1
 1.0 1.0 0.0 0.0 /
SGOF
 0.0 0.0 1.0 0.0
 0.3 0.2 0.4 0.05
 0.8 1.0 0.0 0.1 /
PVTO
  0.0   1.0  1.00 1.0 /
 50.0 100.0  1.20 0.8
      200.0  1.18 0.9 /
100.0 200.0  1.40 0.6
      300.0  1.37 0.7 /
/
PVTW
 1.0 1.0 4.0E-5 0.5 0.0 /
PVDG
   1.0 0.9   0.010
 100.0 0.01  0.015
 200.0 0.005 0.020 /
DENSITY
 800 1000 1 /

SOLUTION
SWAT
 0.3 0.2 0.2 0.2 /
SGAS
 0.2 0.0 0.0 0.0 /
PRESSURE
 4*100 /
RS
 4*0 /
END
"""


@pytest.fixture
def model() -> ReservoirModel:
    return build_reservoir_model(parse_deck(MODEL_DECK))


def test_model_from_deck_text(model):
    assert model.num_active_cells == 3
    assert model.porosity(0) == pytest.approx(0.25)
    assert model.material_law(2).connate_water_saturation == pytest.approx(0.2)
    assert model.fluid_system.reference_volume_factors[FluidPhase.GAS] == 1.0


def test_model_cell_permeabilities_are_converted_to_si(model):
    md = Constants().MD_TO_M2
    np.testing.assert_allclose(model.intrinsic_permeability(1), np.eye(3) * 200.0 * md)


def test_model_face_permeabilities(model):
    md = Constants().MD_TO_M2
    # Cells 0 and 1 are x-neighbours, MULTX of cell 0 scales its tensor
    k0, k1 = 0.5 * 100.0 * md, 200.0 * md
    np.testing.assert_allclose(
        model.face_permeability(1, 0), np.eye(3) * 2.0 * k0 * k1 / (k0 + k1)
    )
    # Cells 0 and 2 are y-neighbours, MULTX does not apply
    k0, k2 = 100.0 * md, 400.0 * md
    np.testing.assert_allclose(
        model.face_permeability(0, 2), np.eye(3) * 2.0 * k0 * k2 / (k0 + k2)
    )
    # The fourth cell is inactive
    assert len(model.face_permeabilities) == 2
    with pytest.raises(KeyError):
        model.face_permeability(1, 2)


def test_model_initial_states(model):
    state = model.initial_state(0)
    assert state.saturation(FluidPhase.OIL) == pytest.approx(0.5)
    assert state.pressure(FluidPhase.WATER) == pytest.approx(100.0e5)
    assert state.mole_fraction(FluidPhase.WATER, Component.WATER) == 1.0
    assert 0.0 < state.mole_fraction(FluidPhase.OIL, Component.GAS) < 1.0


def test_model_material_law_evaluation(model):
    state = model.initial_state(0)
    evaluation = model.material_law(0).evaluate(
        PhaseSaturations.from_array(state.saturations)
    )
    assert evaluation.relative_permeabilities["water"] == pytest.approx(0.1)
    # Pcow of 0.1 bar at Sw = 0.5, interpolated to Sw = 0.3
    assert evaluation.capillary_pressures["oil_water"] == pytest.approx(0.1e5 / 3.0)


def test_model_accessors_check_bounds(model):
    with pytest.raises(IndexOutOfRangeError):
        model.porosity(3)
    with pytest.raises(IndexOutOfRangeError):
        model.intrinsic_permeability(-1)


def test_model_from_mapping_with_explicit_grid(deck):
    grid = CartesianGrid(dimensions=(3, 1, 1))
    model = build_reservoir_model(deck, grid=grid, config=Config(temperature=330.0))
    assert model.grid is grid
    assert model.initial_states.temperature == pytest.approx([330.0] * 3)
    assert model.cell_permeabilities.shape == (3, 3, 3)


def test_model_needs_a_grid():
    deck = Deck.from_mapping(arrays={"PORO": [0.2]})
    with pytest.raises(MissingKeywordError, match="DIMENS"):
        build_reservoir_model(deck)


def test_model_build_fails_as_a_whole(make_deck):
    with pytest.raises(MissingKeywordError, match="SGOF"):
        build_reservoir_model(make_deck(sgof=None))


def test_model_honours_precision(deck):
    with with_precision(np.float32):
        model = build_reservoir_model(deck)
    assert model.cell_permeabilities.dtype == np.float32
    assert model.porosities.dtype == np.float32
    assert model.initial_states.saturations.dtype == np.float32
