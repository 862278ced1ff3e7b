"""Assembled reservoir model: material parameters, PVT and initial condition."""

import logging
import typing

import attrs
import numpy as np
import numpy.typing as npt

from deckstate.config import Config
from deckstate.deck import Deck
from deckstate.errors import IndexOutOfRangeError, MissingKeywordError
from deckstate.grids import CartesianGrid, GridTopology
from deckstate.materials import EclipseDefaultThreePhaseLaw
from deckstate.permeability import (
    FacePermeabilities,
    build_cell_permeabilities,
    build_cell_porosities,
    build_face_permeabilities,
)
from deckstate.pvt import BlackOilFluidSystem, build_fluid_system
from deckstate.satfunc import SaturationFunctions, build_saturation_functions
from deckstate.states import FluidState, InitialFluidStates, build_initial_states
from deckstate.types import ActiveIndex, PermeabilityTensor

logger = logging.getLogger(__name__)

__all__ = ["ReservoirModel", "build_reservoir_model", "grid_from_deck"]


@attrs.frozen
class ReservoirModel:
    """
    Static description of a black-oil reservoir, ready for a flow simulator.

    Built once from a deck and read-only afterwards.
    """

    grid: GridTopology
    porosities: npt.NDArray[np.floating]
    """Effective porosity of each active cell."""
    cell_permeabilities: npt.NDArray[np.floating]
    """Intrinsic permeability tensor (m²) of each active cell, shape `(n, 3, 3)`."""
    face_permeabilities: FacePermeabilities
    saturation_functions: SaturationFunctions
    fluid_system: BlackOilFluidSystem
    initial_states: InitialFluidStates
    config: Config = attrs.field(factory=Config)

    @property
    def num_active_cells(self) -> int:
        return self.grid.num_active_cells

    def _check_active(self, active_index: ActiveIndex) -> None:
        if not 0 <= active_index < self.num_active_cells:
            raise IndexOutOfRangeError(
                f"Active index {active_index} outside [0, {self.num_active_cells})"
            )

    def porosity(self, active_index: ActiveIndex) -> float:
        self._check_active(active_index)
        return float(self.porosities[active_index])

    def intrinsic_permeability(self, active_index: ActiveIndex) -> PermeabilityTensor:
        self._check_active(active_index)
        return self.cell_permeabilities[active_index]

    def face_permeability(
        self, first: ActiveIndex, second: ActiveIndex
    ) -> PermeabilityTensor:
        """Averaged permeability tensor of the face between two adjacent cells."""
        return self.face_permeabilities.get(first, second)

    def material_law(self, active_index: ActiveIndex) -> EclipseDefaultThreePhaseLaw:
        return self.saturation_functions.material_law(active_index)

    def initial_state(self, active_index: ActiveIndex) -> FluidState:
        return self.initial_states.state(active_index)


def grid_from_deck(deck: Deck) -> CartesianGrid:
    """
    Build a structured grid from the deck's DIMENS and optional ACTNUM.

    :raises MissingKeywordError: If the deck has no dimensions.
    """
    if deck.dimensions is None:
        raise MissingKeywordError("DIMENS", reason="no grid topology was given")
    return CartesianGrid.from_actnum(deck.dimensions, deck.get_optional_array("ACTNUM"))


def build_reservoir_model(
    deck: Deck,
    grid: typing.Optional[GridTopology] = None,
    config: typing.Optional[Config] = None,
) -> ReservoirModel:
    """
    Build the reservoir model of a deck.

    Stages run in order: PVT, material parameters (porosity, permeabilities,
    saturation functions), then the initial condition. Any failure aborts the
    whole build.

    :param deck: The parsed deck.
    :param grid: Grid topology, defaults to a `CartesianGrid` built from the deck.
    :param config: Initialization configuration.
    :return: The assembled model.
    """
    config = config or Config()
    grid = grid if grid is not None else grid_from_deck(deck)
    logger.info(f"Building reservoir model for {grid.num_active_cells} active cells")

    with config.constants():
        fluid_system = build_fluid_system(deck, molar_masses=config.molar_masses)

        porosities = build_cell_porosities(deck, grid)
        cell_permeabilities = build_cell_permeabilities(deck, grid)
        face_permeabilities = build_face_permeabilities(deck, grid, cell_permeabilities)
        saturation_functions = build_saturation_functions(deck, grid)
        logger.info(
            f"Material parameters ready: {len(face_permeabilities)} faces, "
            f"{saturation_functions.num_regions} saturation regions"
        )

        initial_states = build_initial_states(deck, grid, fluid_system, config=config)

    return ReservoirModel(
        grid=grid,
        porosities=porosities,
        cell_permeabilities=cell_permeabilities,
        face_permeabilities=face_permeabilities,
        saturation_functions=saturation_functions,
        fluid_system=fluid_system,
        initial_states=initial_states,
        config=config,
    )
