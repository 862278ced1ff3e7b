"""Per-region saturation functions built from SWOF/SGOF and SATNUM."""

import logging
import typing

import attrs
import numpy as np
import numpy.typing as npt

from deckstate.deck import Deck
from deckstate.errors import (
    IndexOutOfRangeError,
    TableCountMismatchError,
    ValidationError,
)
from deckstate.grids import GridTopology, cartesian_indices
from deckstate.materials import EclipseDefaultThreePhaseLaw, PiecewiseLinearTwoPhaseLaw
from deckstate.types import ActiveIndex, FluidPhase, RegionIndex

logger = logging.getLogger(__name__)

__all__ = [
    "build_saturation_function_tables",
    "build_region_indices",
    "build_saturation_functions",
    "SaturationFunctions",
]

_SATURATION_TABLE_COLUMNS = 4


def _table_columns(
    keyword: str, region: int, records: typing.Sequence[np.ndarray]
) -> np.ndarray:
    values = np.concatenate(records) if records else np.empty(0)
    if values.size == 0 or values.size % _SATURATION_TABLE_COLUMNS:
        raise ValidationError(
            f"Table {region + 1} of keyword '{keyword}' must hold rows of "
            f"{_SATURATION_TABLE_COLUMNS} columns, got {values.size} values"
        )
    columns = values.reshape(-1, _SATURATION_TABLE_COLUMNS)
    if np.isnan(columns).any():
        raise ValidationError(
            f"Table {region + 1} of keyword '{keyword}' contains defaulted items"
        )
    return columns


def build_saturation_function_tables(
    deck: Deck,
) -> typing.Tuple[EclipseDefaultThreePhaseLaw, ...]:
    """
    Build one three-phase law per saturation region.

    SWOF rows are `(Sw, krw, krow, Pcow)`, SGOF rows are `(Sg, krg, krog, Pcgo)`.
    The gas-oil law is sampled against the oil saturation `So = 1 - Sg`.

    :param deck: Deck holding SWOF and SGOF.
    :return: Laws indexed by 0-based region.
    :raises MissingKeywordError: If SWOF or SGOF is absent.
    :raises TableCountMismatchError: If SWOF and SGOF define different numbers of tables.
    """
    swof = deck.get_tables("SWOF", reason="oil-water saturation functions")
    sgof = deck.get_tables("SGOF", reason="gas-oil saturation functions")
    if len(swof) != len(sgof):
        raise TableCountMismatchError(
            f"SWOF defines {len(swof)} tables but SGOF defines {len(sgof)}"
        )

    laws = []
    for region, (swof_table, sgof_table) in enumerate(zip(swof, sgof)):
        oil_water = _table_columns("SWOF", region, swof_table)
        gas_oil = _table_columns("SGOF", region, sgof_table)
        oil_water_law = PiecewiseLinearTwoPhaseLaw(
            wetting_phase=FluidPhase.WATER,
            non_wetting_phase=FluidPhase.OIL,
            wetting_phase_saturation=oil_water[:, 0],
            wetting_phase_relative_permeability=oil_water[:, 1],
            non_wetting_phase_relative_permeability=oil_water[:, 2],
            capillary_pressure=oil_water[:, 3],
        )
        gas_oil_law = PiecewiseLinearTwoPhaseLaw(
            wetting_phase=FluidPhase.OIL,
            non_wetting_phase=FluidPhase.GAS,
            wetting_phase_saturation=1.0 - gas_oil[:, 0],
            wetting_phase_relative_permeability=gas_oil[:, 2],
            non_wetting_phase_relative_permeability=gas_oil[:, 1],
            capillary_pressure=gas_oil[:, 3],
        )
        laws.append(
            EclipseDefaultThreePhaseLaw(
                oil_water_law=oil_water_law, gas_oil_law=gas_oil_law
            )
        )

    logger.debug(f"Built {len(laws)} saturation function regions")
    return tuple(laws)


def build_region_indices(
    deck: Deck, grid: GridTopology, num_regions: int
) -> npt.NDArray[np.int64]:
    """
    Resolve the 0-based saturation region of every active cell.

    SATNUM holds 1-based region numbers. Without SATNUM every cell belongs to
    region 0.

    :param deck: Deck holding the optional SATNUM array.
    :param grid: Grid topology mapping active cells to cartesian cells.
    :param num_regions: Number of saturation tables.
    :return: Integer array of length `num_active_cells`.
    :raises IndexOutOfRangeError: If a SATNUM value reached by an active cell lies
        outside `[1, num_regions]`.
    """
    satnum = deck.get_optional_array("SATNUM")
    if satnum is None:
        logger.debug("SATNUM not given, all cells use saturation region 1")
        return np.zeros(grid.num_active_cells, dtype=np.int64)

    cartesian = cartesian_indices(grid)
    if cartesian.size and cartesian.max() >= satnum.size:
        raise IndexOutOfRangeError(
            f"Cartesian index {int(cartesian.max())} is outside the {satnum.size} "
            "values of keyword 'SATNUM'"
        )
    regions = satnum[cartesian].astype(np.int64) - 1
    invalid = (regions < 0) | (regions >= num_regions)
    if np.any(invalid):
        active = int(np.flatnonzero(invalid)[0])
        raise IndexOutOfRangeError(
            f"SATNUM value {int(regions[active]) + 1} of active cell {active} is "
            f"outside [1, {num_regions}]"
        )
    return regions


@attrs.frozen
class SaturationFunctions:
    """Per-region material laws together with the region of every active cell."""

    laws: typing.Tuple[EclipseDefaultThreePhaseLaw, ...] = attrs.field(converter=tuple)
    region_indices: npt.NDArray[np.int64]

    def __attrs_post_init__(self) -> None:
        if not self.laws:
            raise ValidationError("At least one saturation region is required")
        if self.region_indices.size and (
            self.region_indices.min() < 0
            or self.region_indices.max() >= len(self.laws)
        ):
            raise IndexOutOfRangeError(
                f"Region indices must lie in [0, {len(self.laws)})"
            )

    @property
    def num_regions(self) -> int:
        return len(self.laws)

    def region_index(self, active_index: ActiveIndex) -> RegionIndex:
        if not 0 <= active_index < self.region_indices.size:
            raise IndexOutOfRangeError(
                f"Active index {active_index} outside [0, {self.region_indices.size})"
            )
        return RegionIndex(int(self.region_indices[active_index]))

    def material_law(self, active_index: ActiveIndex) -> EclipseDefaultThreePhaseLaw:
        """Composed three-phase law of the saturation region of an active cell."""
        return self.laws[self.region_index(active_index)]


def build_saturation_functions(deck: Deck, grid: GridTopology) -> SaturationFunctions:
    laws = build_saturation_function_tables(deck)
    regions = build_region_indices(deck, grid, num_regions=len(laws))
    return SaturationFunctions(laws=laws, region_indices=regions)
