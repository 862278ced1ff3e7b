"""Initial thermodynamic state of every active cell."""

import logging
import typing

import attrs
import numpy as np
import numpy.typing as npt

from deckstate._precision import get_dtype
from deckstate.config import Config
from deckstate.deck import Deck
from deckstate.errors import IndexOutOfRangeError, ValidationError
from deckstate.grids import GridTopology, cartesian_indices
from deckstate.pvt import BlackOilFluidSystem
from deckstate.types import ActiveIndex, Component, FloatOrArray, FluidPhase

logger = logging.getLogger(__name__)

__all__ = [
    "FluidState",
    "InitialFluidStates",
    "dissolved_gas_mole_fraction",
    "build_initial_states",
]


@attrs.frozen
class FluidState:
    """Thermodynamic state of one cell."""

    temperature: float
    """Temperature (K)."""
    saturations: npt.NDArray[np.floating]
    """Saturation of each phase, ordered (water, oil, gas)."""
    pressures: npt.NDArray[np.floating]
    """Pressure of each phase (Pa)."""
    mole_fractions: npt.NDArray[np.floating]
    """`mole_fractions[phase, component]`."""

    def saturation(self, phase: FluidPhase) -> float:
        return float(self.saturations[phase])

    def pressure(self, phase: FluidPhase) -> float:
        return float(self.pressures[phase])

    def mole_fraction(self, phase: FluidPhase, component: Component) -> float:
        return float(self.mole_fractions[phase, component])


@attrs.frozen
class InitialFluidStates:
    """
    Initial fluid states of all active cells, stored as arrays.

    The first axis of every array is the active cell index.
    """

    temperature: npt.NDArray[np.floating]
    """Shape `(n,)`."""
    saturations: npt.NDArray[np.floating]
    """Shape `(n, 3)`, phases ordered (water, oil, gas)."""
    pressures: npt.NDArray[np.floating]
    """Shape `(n, 3)`."""
    mole_fractions: npt.NDArray[np.floating]
    """Shape `(n, 3, 3)`, indexed `[cell, phase, component]`."""

    def __attrs_post_init__(self) -> None:
        n = self.temperature.shape[0]
        expected = {
            "saturations": (n, 3),
            "pressures": (n, 3),
            "mole_fractions": (n, 3, 3),
        }
        for name, shape in expected.items():
            if getattr(self, name).shape != shape:
                raise ValidationError(
                    f"`{name}` must have shape {shape}, got {getattr(self, name).shape}"
                )

    @property
    def num_cells(self) -> int:
        return int(self.temperature.shape[0])

    def state(self, active_index: ActiveIndex) -> FluidState:
        """Initial state of one active cell."""
        if not 0 <= active_index < self.num_cells:
            raise IndexOutOfRangeError(
                f"Active index {active_index} outside [0, {self.num_cells})"
            )
        return FluidState(
            temperature=float(self.temperature[active_index]),
            saturations=self.saturations[active_index],
            pressures=self.pressures[active_index],
            mole_fractions=self.mole_fractions[active_index],
        )


def dissolved_gas_mole_fraction(
    dissolved_gas: FloatOrArray,
    oil_volume_factor: FloatOrArray,
    oil_surface_density: float,
    gas_surface_density: float,
    oil_molar_mass: float,
    gas_molar_mass: float,
) -> FloatOrArray:
    """
    Mole fraction of the gas component in the oil phase.

    The mass fraction `X_oG = Rs * rho_gs / rho_o`, with `rho_o = rho_os / Bo`,
    is converted to a mole fraction as
    `x_oG = X_oG * M_O / ((M_O - M_G) * X_oG + M_G)`.

    :param dissolved_gas: Dissolved gas-oil ratio Rs (sm³/sm³).
    :param oil_volume_factor: Oil formation volume factor Bo (rm³/sm³).
    :param oil_surface_density: Oil surface density (kg/m³).
    :param gas_surface_density: Gas surface density (kg/m³).
    :param oil_molar_mass: Molar mass of the oil component (kg/mol).
    :param gas_molar_mass: Molar mass of the gas component (kg/mol).
    :return: `x_oG`, in [0, 1].
    """
    oil_density = oil_surface_density / np.asarray(oil_volume_factor)
    mass_fraction = np.asarray(dissolved_gas) * gas_surface_density / oil_density
    if np.any((mass_fraction < 0.0) | (mass_fraction > 1.0)):
        raise ValidationError(
            "Dissolved gas mass fraction in oil must lie in [0, 1], "
            f"got values in [{np.min(mass_fraction)}, {np.max(mass_fraction)}]"
        )
    return (mass_fraction * oil_molar_mass) / (
        (oil_molar_mass - gas_molar_mass) * mass_fraction + gas_molar_mass
    )


def _cell_values(
    deck: Deck, keyword: str, cartesian: npt.NDArray[np.int64], reason: str
) -> np.ndarray:
    values = deck.get_array(keyword, reason=reason)
    if cartesian.size and cartesian.max() >= values.size:
        raise IndexOutOfRangeError(
            f"Cartesian index {int(cartesian.max())} is outside the {values.size} "
            f"values of keyword '{keyword}'"
        )
    return values[cartesian].astype(np.float64)


def build_initial_states(
    deck: Deck,
    grid: GridTopology,
    fluid_system: BlackOilFluidSystem,
    config: typing.Optional[Config] = None,
) -> InitialFluidStates:
    """
    Build the initial fluid state of every active cell from SWAT, SGAS, PRESSURE and RS.

    The oil pressure is used for every phase. Water and gas phases are pure, the oil
    phase holds the gas dissolved at the cell pressure.

    :param deck: Deck holding the initial state arrays.
    :param grid: Grid topology mapping active cells to cartesian cells.
    :param fluid_system: PVT model whose dissolved gas, volume factors, surface
        densities and molar masses give the oil phase composition.
    :param config: Initialization configuration.
    :return: The initial fluid states.
    :raises MissingKeywordError: If SWAT, SGAS, PRESSURE or RS is absent.
    :raises ValidationError: If `1 - Sw - Sg` leaves `[0, 1]` beyond the tolerance.
    """
    config = config or Config()
    cartesian = cartesian_indices(grid)
    water_saturation = _cell_values(deck, "SWAT", cartesian, "initial water saturation")
    gas_saturation = _cell_values(deck, "SGAS", cartesian, "initial gas saturation")
    oil_pressure = _cell_values(deck, "PRESSURE", cartesian, "initial oil pressure")
    deck_dissolved_gas = _cell_values(deck, "RS", cartesian, "initial dissolved gas")

    oil_saturation = 1.0 - water_saturation - gas_saturation
    tolerance = config.saturation_tolerance
    inconsistent = (oil_saturation < -tolerance) | (oil_saturation > 1.0 + tolerance)
    for values in (water_saturation, gas_saturation):
        inconsistent |= (values < -tolerance) | (values > 1.0 + tolerance)
    if np.any(inconsistent):
        active = int(np.flatnonzero(inconsistent)[0])
        raise ValidationError(
            f"Inconsistent initial saturations in {int(inconsistent.sum())} cells, "
            f"e.g. active cell {active}: Sw={water_saturation[active]}, "
            f"Sg={gas_saturation[active]}, So={oil_saturation[active]}"
        )

    num_cells = cartesian.size
    saturations = np.empty((num_cells, 3), dtype=np.float64)
    saturations[:, FluidPhase.WATER] = water_saturation
    saturations[:, FluidPhase.OIL] = oil_saturation
    saturations[:, FluidPhase.GAS] = gas_saturation

    pressures = np.repeat(oil_pressure[:, np.newaxis], 3, axis=1)

    saturated_dissolved_gas = fluid_system.gas_dissolution_factor(oil_pressure)
    if config.cap_dissolved_gas_by_deck:
        dissolved_gas = np.minimum(deck_dissolved_gas, saturated_dissolved_gas)
        oil_volume_factor = fluid_system.formation_volume_factor(
            FluidPhase.OIL, oil_pressure, dissolved_gas
        )
    else:
        dissolved_gas = saturated_dissolved_gas
        oil_volume_factor = fluid_system.formation_volume_factor(
            FluidPhase.OIL, oil_pressure
        )

    gas_in_oil = dissolved_gas_mole_fraction(
        dissolved_gas=dissolved_gas,
        oil_volume_factor=oil_volume_factor,
        oil_surface_density=fluid_system.surface_densities[FluidPhase.OIL],
        gas_surface_density=fluid_system.surface_densities[FluidPhase.GAS],
        oil_molar_mass=fluid_system.molar_mass(Component.OIL),
        gas_molar_mass=fluid_system.molar_mass(Component.GAS),
    )

    mole_fractions = np.zeros((num_cells, 3, 3), dtype=np.float64)
    mole_fractions[:, FluidPhase.WATER, Component.WATER] = 1.0
    mole_fractions[:, FluidPhase.GAS, Component.GAS] = 1.0
    mole_fractions[:, FluidPhase.OIL, Component.GAS] = gas_in_oil
    mole_fractions[:, FluidPhase.OIL, Component.OIL] = 1.0 - gas_in_oil

    dtype = get_dtype()
    logger.info(
        f"Initialized fluid states for {num_cells} cells at T={config.temperature} K"
    )
    return InitialFluidStates(
        temperature=np.full(num_cells, config.temperature, dtype=dtype),
        saturations=saturations.astype(dtype),
        pressures=pressures.astype(dtype),
        mole_fractions=mole_fractions.astype(dtype),
    )
