"""
Black-oil PVT model built from PVTO, PVTW, PVDG and DENSITY.

All pressures are in Pa, viscosities in Pa·s and densities in kg/m³.
"""

import logging
import typing

import attrs
import numpy as np
import numpy.typing as npt
from scipy.interpolate import interp1d  # type: ignore[import-untyped]

from deckstate.config import default_molar_masses
from deckstate.constants import c
from deckstate.deck import Deck, KeywordTable
from deckstate.errors import ValidationError
from deckstate.types import Component, FloatOrArray, FluidPhase

logger = logging.getLogger(__name__)

__all__ = [
    "LiveOilPVT",
    "WaterPVT",
    "DryGasPVT",
    "BlackOilFluidSystem",
    "build_fluid_system",
]


def _linear_interpolator(x: np.ndarray, y: np.ndarray) -> typing.Callable:
    """Piecewise linear interpolator with linear extrapolation at both ends."""
    if x.size == 1:
        constant = float(y[0])
        return lambda values: np.full_like(np.asarray(values, dtype=np.float64), constant)
    return interp1d(
        x=x,
        y=y,
        kind="linear",
        bounds_error=False,
        fill_value="extrapolate",  # type: ignore
        assume_sorted=True,
    )


def _result(values: np.ndarray, like: FloatOrArray) -> FloatOrArray:
    return values if np.ndim(like) else float(values)


def _positive_floor(values: np.ndarray) -> np.ndarray:
    return np.maximum(values, c.MIN_FORMATION_VOLUME_FACTOR)


def _check_increasing(values: np.ndarray, what: str, strict: bool = True) -> None:
    steps = np.diff(values)
    if np.any(steps <= 0 if strict else steps < 0):
        raise ValidationError(f"{what} must be monotonically increasing")


@attrs.frozen
class LiveOilPVT:
    """
    Live oil PVT table (PVTO).

    The saturated curve gives the dissolved gas-oil ratio, formation volume factor
    and viscosity at the bubble point. Each record may carry an undersaturated branch
    at constant Rs, stored relative to its bubble point as
    `(p - p_b, Bo / Bo_b)`. Records without a branch borrow the one of the
    nearest record that has it.
    """

    dissolved_gas: npt.NDArray[np.float64]
    """Rs of each record (sm³/sm³), increasing."""
    bubble_point_pressures: npt.NDArray[np.float64]
    """Bubble point pressure of each record (Pa), increasing."""
    saturated_volume_factors: npt.NDArray[np.float64]
    """Oil formation volume factor at the bubble point of each record (rm³/sm³)."""
    saturated_viscosities: npt.NDArray[np.float64]
    """Oil viscosity at the bubble point of each record (Pa·s)."""
    undersaturated_branches: typing.Tuple[
        typing.Tuple[npt.NDArray[np.float64], npt.NDArray[np.float64]], ...
    ]
    """Per record `(pressure_offsets, relative_volume_factors)`, both starting at (0, 1)."""

    _rs_of_pressure: typing.Callable = attrs.field(init=False, repr=False)
    _bo_of_pressure: typing.Callable = attrs.field(init=False, repr=False)
    _mu_of_pressure: typing.Callable = attrs.field(init=False, repr=False)
    _pb_of_rs: typing.Callable = attrs.field(init=False, repr=False)
    _bo_of_rs: typing.Callable = attrs.field(init=False, repr=False)
    _branch_interpolators: typing.Tuple[typing.Callable, ...] = attrs.field(
        init=False, repr=False
    )

    def __attrs_post_init__(self) -> None:
        num_records = self.dissolved_gas.size
        if num_records < 2:
            raise ValidationError(
                "Live oil PVT needs at least 2 saturated records to interpolate"
            )
        if len(self.undersaturated_branches) != num_records:
            raise ValidationError(
                f"Expected {num_records} undersaturated branches, "
                f"got {len(self.undersaturated_branches)}"
            )
        _check_increasing(self.dissolved_gas, "PVTO dissolved gas-oil ratios")
        _check_increasing(self.bubble_point_pressures, "PVTO bubble point pressures")

        object.__setattr__(
            self,
            "_rs_of_pressure",
            _linear_interpolator(self.bubble_point_pressures, self.dissolved_gas),
        )
        object.__setattr__(
            self,
            "_bo_of_pressure",
            _linear_interpolator(
                self.bubble_point_pressures, self.saturated_volume_factors
            ),
        )
        object.__setattr__(
            self,
            "_mu_of_pressure",
            _linear_interpolator(self.bubble_point_pressures, self.saturated_viscosities),
        )
        object.__setattr__(
            self,
            "_pb_of_rs",
            _linear_interpolator(self.dissolved_gas, self.bubble_point_pressures),
        )
        object.__setattr__(
            self,
            "_bo_of_rs",
            _linear_interpolator(self.dissolved_gas, self.saturated_volume_factors),
        )
        object.__setattr__(
            self,
            "_branch_interpolators",
            tuple(
                _linear_interpolator(offsets, factors)
                for offsets, factors in self.undersaturated_branches
            ),
        )

    @classmethod
    def from_table(cls, table: KeywordTable) -> "LiveOilPVT":
        """
        Build from one PVTO table.

        Each record is `Rs p_1 Bo_1 mu_1 [p_2 Bo_2 mu_2 ...]`, the first row being
        the saturated point and further rows the undersaturated branch.

        :param table: Records of one PVTO table, in SI units.
        """
        dissolved_gas, pressures, volume_factors, viscosities = [], [], [], []
        branches: typing.List[typing.Optional[typing.Tuple[np.ndarray, np.ndarray]]] = []
        for number, record in enumerate(table, start=1):
            if record.size < 4 or (record.size - 1) % 3:
                raise ValidationError(
                    f"PVTO record {number} must be `Rs` followed by (p, Bo, mu) rows, "
                    f"got {record.size} values"
                )
            if np.isnan(record).any():
                raise ValidationError(f"PVTO record {number} contains defaulted items")
            rows = record[1:].reshape(-1, 3)
            dissolved_gas.append(record[0])
            pressures.append(rows[0, 0])
            volume_factors.append(rows[0, 1])
            viscosities.append(rows[0, 2])
            if rows.shape[0] > 1:
                _check_increasing(
                    rows[:, 0], f"Undersaturated pressures of PVTO record {number}"
                )
                branches.append((rows[:, 0] - rows[0, 0], rows[:, 1] / rows[0, 1]))
            else:
                branches.append(None)

        return cls(
            dissolved_gas=np.asarray(dissolved_gas, dtype=np.float64),
            bubble_point_pressures=np.asarray(pressures, dtype=np.float64),
            saturated_volume_factors=np.asarray(volume_factors, dtype=np.float64),
            saturated_viscosities=np.asarray(viscosities, dtype=np.float64),
            undersaturated_branches=_fill_missing_branches(branches),
        )

    def saturated_gas_dissolution_factor(self, pressure: FloatOrArray) -> FloatOrArray:
        """Rs of oil saturated with gas at `pressure`, never negative."""
        values = np.maximum(self._rs_of_pressure(np.asarray(pressure, dtype=np.float64)), 0.0)
        return _result(values, pressure)

    def saturated_formation_volume_factor(self, pressure: FloatOrArray) -> FloatOrArray:
        values = _positive_floor(
            self._bo_of_pressure(np.asarray(pressure, dtype=np.float64))
        )
        return _result(values, pressure)

    def bubble_point_pressure(self, dissolved_gas: FloatOrArray) -> FloatOrArray:
        values = self._pb_of_rs(np.asarray(dissolved_gas, dtype=np.float64))
        return _result(values, dissolved_gas)

    def formation_volume_factor(
        self,
        pressure: FloatOrArray,
        dissolved_gas: typing.Optional[FloatOrArray] = None,
    ) -> FloatOrArray:
        """
        Oil formation volume factor.

        Without `dissolved_gas` the oil is taken as saturated at `pressure`. Otherwise
        cells with Rs below the saturated value follow the undersaturated branches,
        interpolated linearly in Rs between the two bracketing records.

        :param pressure: Oil pressure (Pa).
        :param dissolved_gas: Optional dissolved gas-oil ratio (sm³/sm³).
        :return: Bo (rm³/sm³).
        """
        if dissolved_gas is None:
            return self.saturated_formation_volume_factor(pressure)

        shape = np.broadcast_shapes(np.shape(pressure), np.shape(dissolved_gas))
        p, rs = (
            np.broadcast_to(np.asarray(values, dtype=np.float64), shape).ravel()
            for values in (pressure, dissolved_gas)
        )
        saturated = self.saturated_formation_volume_factor(p)
        undersaturated_mask = rs < self.saturated_gas_dissolution_factor(p)

        result = np.array(saturated, dtype=np.float64)
        if np.any(undersaturated_mask):
            rs_u = rs[undersaturated_mask]
            offsets = np.maximum(p[undersaturated_mask] - self._pb_of_rs(rs_u), 0.0)
            bubble_point_bo = self._bo_of_rs(rs_u)

            upper = np.clip(
                np.searchsorted(self.dissolved_gas, rs_u), 1, self.dissolved_gas.size - 1
            )
            lower = upper - 1
            span = self.dissolved_gas[upper] - self.dissolved_gas[lower]
            weight = np.clip((rs_u - self.dissolved_gas[lower]) / span, 0.0, 1.0)
            relative = np.stack(
                [branch(offsets) for branch in self._branch_interpolators]
            )
            columns = np.arange(offsets.size)
            factor = (1.0 - weight) * relative[lower, columns] + weight * relative[
                upper, columns
            ]
            result[undersaturated_mask] = _positive_floor(bubble_point_bo * factor)

        return result.reshape(shape) if shape else float(result[0])

    def viscosity(self, pressure: FloatOrArray) -> FloatOrArray:
        """Saturated oil viscosity at `pressure`."""
        values = _positive_floor(
            self._mu_of_pressure(np.asarray(pressure, dtype=np.float64))
        )
        return _result(values, pressure)


def _fill_missing_branches(
    branches: typing.Sequence[typing.Optional[typing.Tuple[np.ndarray, np.ndarray]]],
) -> typing.Tuple[typing.Tuple[np.ndarray, np.ndarray], ...]:
    known = [index for index, branch in enumerate(branches) if branch is not None]
    if not known:
        logger.debug("PVTO has no undersaturated data, Bo is constant above Pb")
        flat = (np.zeros(1), np.ones(1))
        return tuple(flat for _ in branches)

    filled = []
    for index, branch in enumerate(branches):
        if branch is None:
            nearest = min(known, key=lambda k: (abs(k - index), -k))
            branch = branches[nearest]
        filled.append(typing.cast(typing.Tuple[np.ndarray, np.ndarray], branch))
    return tuple(filled)


@attrs.frozen
class WaterPVT:
    """
    Constant compressibility water (PVTW).

    `Bw(p) = Bw_ref / (1 + X + X²/2)` with `X = cw (p - p_ref)`, and
    `mu_w(p) = mu_ref / (1 + Y + Y²/2)` with `Y = -cv (p - p_ref)`.
    """

    reference_pressure: float
    reference_volume_factor: float = attrs.field(validator=attrs.validators.gt(0))
    compressibility: float
    """cw (1/Pa)"""
    reference_viscosity: float = attrs.field(validator=attrs.validators.gt(0))
    viscosibility: float = attrs.field(
        default=0.0, converter=lambda v: 0.0 if np.isnan(v) else float(v)
    )
    """cv (1/Pa). Defaulted (NaN) means zero."""

    @classmethod
    def from_table(cls, table: KeywordTable) -> "WaterPVT":
        record = table[0]
        if record.size < 4:
            raise ValidationError(
                f"PVTW expects at least 4 items (p_ref, Bw, cw, mu_w), got {record.size}"
            )
        if np.isnan(record[:4]).any():
            raise ValidationError("PVTW contains defaulted items")
        return cls(
            reference_pressure=float(record[0]),
            reference_volume_factor=float(record[1]),
            compressibility=float(record[2]),
            reference_viscosity=float(record[3]),
            viscosibility=float(record[4]) if record.size > 4 else 0.0,
        )

    def formation_volume_factor(self, pressure: FloatOrArray) -> FloatOrArray:
        x = self.compressibility * (np.asarray(pressure, dtype=np.float64) - self.reference_pressure)
        values = _positive_floor(
            self.reference_volume_factor / (1.0 + x + 0.5 * x * x)
        )
        return _result(values, pressure)

    def viscosity(self, pressure: FloatOrArray) -> FloatOrArray:
        y = -self.viscosibility * (
            np.asarray(pressure, dtype=np.float64) - self.reference_pressure
        )
        values = self.reference_viscosity / (1.0 + y + 0.5 * y * y)
        return _result(values, pressure)


@attrs.frozen
class DryGasPVT:
    """Dry gas table (PVDG): Bg and viscosity against pressure."""

    pressures: npt.NDArray[np.float64]
    volume_factors: npt.NDArray[np.float64]
    viscosities: npt.NDArray[np.float64]
    _bg_of_pressure: typing.Callable = attrs.field(init=False, repr=False)
    _mu_of_pressure: typing.Callable = attrs.field(init=False, repr=False)

    def __attrs_post_init__(self) -> None:
        if self.pressures.size < 2:
            raise ValidationError("PVDG needs at least 2 rows to interpolate")
        _check_increasing(self.pressures, "PVDG pressures")
        object.__setattr__(
            self,
            "_bg_of_pressure",
            _linear_interpolator(self.pressures, self.volume_factors),
        )
        object.__setattr__(
            self,
            "_mu_of_pressure",
            _linear_interpolator(self.pressures, self.viscosities),
        )

    @classmethod
    def from_table(cls, table: KeywordTable) -> "DryGasPVT":
        values = np.concatenate(table)
        if values.size % 3:
            raise ValidationError(
                f"PVDG rows must hold 3 items (p, Bg, mu_g), got {values.size} values"
            )
        if np.isnan(values).any():
            raise ValidationError("PVDG contains defaulted items")
        rows = values.reshape(-1, 3)
        return cls(
            pressures=rows[:, 0].copy(),
            volume_factors=rows[:, 1].copy(),
            viscosities=rows[:, 2].copy(),
        )

    def formation_volume_factor(self, pressure: FloatOrArray) -> FloatOrArray:
        values = _positive_floor(
            self._bg_of_pressure(np.asarray(pressure, dtype=np.float64))
        )
        return _result(values, pressure)

    def viscosity(self, pressure: FloatOrArray) -> FloatOrArray:
        values = _positive_floor(
            self._mu_of_pressure(np.asarray(pressure, dtype=np.float64))
        )
        return _result(values, pressure)


@attrs.frozen
class BlackOilFluidSystem:
    """
    Pressure dependent black-oil fluid properties.

    Every phase is normalised to a reference volume factor of 1.0, so surface
    densities are the phase densities at the reference point.
    """

    oil: LiveOilPVT
    water: WaterPVT
    gas: DryGasPVT
    surface_densities: typing.Mapping[FluidPhase, float]
    """Density of each phase at surface conditions (kg/m³)."""
    molar_masses: typing.Mapping[Component, float] = attrs.field(
        factory=default_molar_masses
    )
    """Molar mass of each component (kg/mol)."""

    def __attrs_post_init__(self) -> None:
        missing = set(FluidPhase) - set(self.surface_densities)
        if missing:
            raise ValidationError(
                f"Surface densities are missing for phases {sorted(p.name for p in missing)}"
            )
        if any(density <= 0.0 for density in self.surface_densities.values()):
            raise ValidationError("Surface densities must be strictly positive")

    @property
    def reference_volume_factors(self) -> typing.Dict[FluidPhase, float]:
        return {phase: 1.0 for phase in FluidPhase}

    def formation_volume_factor(
        self,
        phase: FluidPhase,
        pressure: FloatOrArray,
        dissolved_gas: typing.Optional[FloatOrArray] = None,
    ) -> FloatOrArray:
        """
        Formation volume factor of `phase` at `pressure`.

        :param phase: The fluid phase.
        :param pressure: Phase pressure (Pa).
        :param dissolved_gas: Optional Rs of the oil phase, ignored for water and gas.
        """
        if phase == FluidPhase.OIL:
            return self.oil.formation_volume_factor(pressure, dissolved_gas)
        if phase == FluidPhase.WATER:
            return self.water.formation_volume_factor(pressure)
        return self.gas.formation_volume_factor(pressure)

    def density(
        self,
        phase: FluidPhase,
        pressure: FloatOrArray,
        dissolved_gas: typing.Optional[FloatOrArray] = None,
    ) -> FloatOrArray:
        """Reservoir density `surface_density / B` of `phase` (kg/m³)."""
        volume_factor = self.formation_volume_factor(phase, pressure, dissolved_gas)
        return self.surface_densities[phase] / volume_factor

    def viscosity(self, phase: FluidPhase, pressure: FloatOrArray) -> FloatOrArray:
        if phase == FluidPhase.OIL:
            return self.oil.viscosity(pressure)
        if phase == FluidPhase.WATER:
            return self.water.viscosity(pressure)
        return self.gas.viscosity(pressure)

    def gas_dissolution_factor(self, pressure: FloatOrArray) -> FloatOrArray:
        """Rs of gas saturated oil at `pressure` (sm³/sm³)."""
        return self.oil.saturated_gas_dissolution_factor(pressure)

    def molar_mass(self, component: Component) -> float:
        return self.molar_masses[component]


def build_fluid_system(
    deck: Deck,
    molar_masses: typing.Optional[typing.Mapping[Component, float]] = None,
) -> BlackOilFluidSystem:
    """
    Build the black-oil fluid system of a deck.

    Only the first table of each PVT keyword is used.

    :param deck: Deck holding PVTO, PVTW, PVDG and DENSITY.
    :param molar_masses: Optional component molar masses, defaults to the constants.
    :return: The fluid system.
    :raises MissingKeywordError: If any of the PVT keywords is absent.
    """
    oil = LiveOilPVT.from_table(deck.get_tables("PVTO", reason="live oil PVT")[0])
    water = WaterPVT.from_table(deck.get_tables("PVTW", reason="water PVT")[0])
    gas = DryGasPVT.from_table(deck.get_tables("PVDG", reason="dry gas PVT")[0])

    density_record = deck.get_tables("DENSITY", reason="surface densities")[0][0]
    if density_record.size < 3 or np.isnan(density_record[:3]).any():
        raise ValidationError("DENSITY expects 3 items (oil, water, gas)")
    surface_densities = {
        FluidPhase.OIL: float(density_record[0]),
        FluidPhase.WATER: float(density_record[1]),
        FluidPhase.GAS: float(density_record[2]),
    }
    fluid_system = BlackOilFluidSystem(
        oil=oil,
        water=water,
        gas=gas,
        surface_densities=surface_densities,
        molar_masses=dict(molar_masses) if molar_masses else default_molar_masses(),
    )
    logger.info(
        f"Initialized black-oil PVT with {oil.dissolved_gas.size} saturated oil "
        f"records and {gas.pressures.size} gas rows"
    )
    return fluid_system
