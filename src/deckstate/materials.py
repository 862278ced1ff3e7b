"""Tabulated saturation functions: two-phase laws and their three-phase composition."""

import typing

import attrs
import numpy as np
import numpy.typing as npt

from deckstate.errors import ValidationError
from deckstate.types import (
    CapillaryPressures,
    FloatOrArray,
    FluidPhase,
    RelativePermeabilities,
)


__all__ = [
    "PhaseSaturations",
    "LawEvaluation",
    "MaterialLaw",
    "PiecewiseLinearTwoPhaseLaw",
    "EclipseDefaultThreePhaseLaw",
    "eclipse_default_oil_relative_permeability",
]


class PhaseSaturations(typing.NamedTuple):
    """Saturation of each phase, as scalars or equally shaped arrays."""

    water: FloatOrArray
    oil: FloatOrArray
    gas: FloatOrArray

    @classmethod
    def from_array(cls, saturations: npt.ArrayLike) -> "PhaseSaturations":
        """
        Build from an array whose last axis is ordered (water, oil, gas).

        :param saturations: Array of shape `(..., 3)`.
        """
        values = np.asarray(saturations, dtype=np.float64)
        return cls(
            water=values[..., FluidPhase.WATER],
            oil=values[..., FluidPhase.OIL],
            gas=values[..., FluidPhase.GAS],
        )


@attrs.frozen
class LawEvaluation:
    """Relative permeabilities and capillary pressures at one saturation state."""

    relative_permeabilities: RelativePermeabilities
    capillary_pressures: CapillaryPressures


@typing.runtime_checkable
class MaterialLaw(typing.Protocol):
    """Anything that maps phase saturations to kr and Pc values."""

    def evaluate(self, saturations: PhaseSaturations) -> LawEvaluation: ...


@attrs.frozen
class PiecewiseLinearTwoPhaseLaw:
    """
    Two-phase saturation function table.

    Holds relative permeabilities of both phases and the capillary pressure
    `Pc = P_non-wetting - P_wetting` against the saturation of the wetting phase.
    Values are interpolated linearly between samples and held constant outside
    the sampled range.

    Samples given with decreasing saturations are reversed on construction.

    Example:
    - Oil-Water system (SWOF): water is wetting, oil is non-wetting
    - Gas-Oil system (SGOF): oil is wetting, gas is non-wetting
    """

    wetting_phase: FluidPhase
    """The wetting fluid phase, water for an oil-water law and oil for a gas-oil law."""
    non_wetting_phase: FluidPhase
    """The non-wetting fluid phase, oil for an oil-water law and gas for a gas-oil law."""
    wetting_phase_saturation: npt.NDArray[np.floating] = attrs.field(
        converter=lambda values: np.asarray(values, dtype=np.float64)
    )
    """Saturation samples of the wetting phase."""
    wetting_phase_relative_permeability: npt.NDArray[np.floating] = attrs.field(
        converter=lambda values: np.asarray(values, dtype=np.float64)
    )
    non_wetting_phase_relative_permeability: npt.NDArray[np.floating] = attrs.field(
        converter=lambda values: np.asarray(values, dtype=np.float64)
    )
    capillary_pressure: npt.NDArray[np.floating] = attrs.field(
        converter=lambda values: np.asarray(values, dtype=np.float64)
    )
    """Capillary pressure samples (Pa)."""

    def __attrs_post_init__(self) -> None:
        if self.wetting_phase == self.non_wetting_phase:
            raise ValidationError(
                "Wetting and non-wetting phases of a two-phase law must differ"
            )
        num_samples = len(self.wetting_phase_saturation)
        for name in (
            "wetting_phase_relative_permeability",
            "non_wetting_phase_relative_permeability",
            "capillary_pressure",
        ):
            if len(getattr(self, name)) != num_samples:
                raise ValidationError(
                    f"Saturation and `{name}` arrays must have same length. "
                    f"Got {num_samples} vs {len(getattr(self, name))}"
                )
        if num_samples < 2:
            raise ValidationError("At least 2 points required for interpolation")

        steps = np.diff(self.wetting_phase_saturation)
        if np.all(steps <= 0) and np.any(steps < 0):
            for name in (
                "wetting_phase_saturation",
                "wetting_phase_relative_permeability",
                "non_wetting_phase_relative_permeability",
                "capillary_pressure",
            ):
                object.__setattr__(self, name, getattr(self, name)[::-1].copy())
        elif not np.all(steps >= 0):
            raise ValidationError("Wetting phase saturation must be monotonic")

    @property
    def minimum_wetting_phase_saturation(self) -> float:
        return float(self.wetting_phase_saturation[0])

    def _interpolate(
        self, wetting_phase_saturation: FloatOrArray, values: np.ndarray
    ) -> FloatOrArray:
        return np.interp(
            wetting_phase_saturation,
            self.wetting_phase_saturation,
            values,
            left=values[0],
            right=values[-1],
        )

    def get_wetting_phase_relative_permeability(
        self, wetting_phase_saturation: FloatOrArray
    ) -> FloatOrArray:
        return self._interpolate(
            wetting_phase_saturation, self.wetting_phase_relative_permeability
        )

    def get_non_wetting_phase_relative_permeability(
        self, wetting_phase_saturation: FloatOrArray
    ) -> FloatOrArray:
        return self._interpolate(
            wetting_phase_saturation, self.non_wetting_phase_relative_permeability
        )

    def get_capillary_pressure(
        self, wetting_phase_saturation: FloatOrArray
    ) -> FloatOrArray:
        return self._interpolate(wetting_phase_saturation, self.capillary_pressure)

    def evaluate(self, saturations: PhaseSaturations) -> LawEvaluation:
        """
        Evaluate the law at the wetting phase saturation of `saturations`.

        Phases outside the pair get zero relative permeability, and the capillary
        pressure of the other phase pair is zero.

        :param saturations: Phase saturations.
        :return: Relative permeabilities and capillary pressures.
        """
        wetting_saturation = saturations[self.wetting_phase]
        zero = np.zeros_like(wetting_saturation, dtype=np.float64)
        kr = {phase: zero for phase in FluidPhase}
        kr[self.wetting_phase] = self.get_wetting_phase_relative_permeability(
            wetting_saturation
        )
        kr[self.non_wetting_phase] = self.get_non_wetting_phase_relative_permeability(
            wetting_saturation
        )
        pc = self.get_capillary_pressure(wetting_saturation)
        is_gas_oil = FluidPhase.GAS in (self.wetting_phase, self.non_wetting_phase)
        return LawEvaluation(
            relative_permeabilities=RelativePermeabilities(
                water=kr[FluidPhase.WATER],
                oil=kr[FluidPhase.OIL],
                gas=kr[FluidPhase.GAS],
            ),
            capillary_pressures=CapillaryPressures(
                oil_water=zero if is_gas_oil else pc,
                gas_oil=pc if is_gas_oil else zero,
            ),
        )


def eclipse_default_oil_relative_permeability(
    kro_w: FloatOrArray,
    kro_g: FloatOrArray,
    water_saturation: FloatOrArray,
    gas_saturation: FloatOrArray,
    connate_water_saturation: float,
) -> FloatOrArray:
    """
    ECLIPSE default three-phase oil relative permeability.

    kro = (Sg * kro_g + (Sw - Swco) * kro_w) / (Sg + Sw - Swco)

    where `kro_w` is the oil-water value at `Sw + Sg` and `kro_g` the gas-oil
    value at `So = 1 - Sg`. Falls back to `kro_w` when the weights vanish.

    :param kro_w: Oil relative permeability from the oil-water law.
    :param kro_g: Oil relative permeability from the gas-oil law.
    :param water_saturation: Water saturation.
    :param gas_saturation: Gas saturation.
    :param connate_water_saturation: Lowest water saturation of the oil-water law.
    :return: Three-phase oil relative permeability.
    """
    water_weight = np.maximum(
        np.asarray(water_saturation) - connate_water_saturation, 0.0
    )
    gas_weight = np.maximum(np.asarray(gas_saturation), 0.0)
    denominator = water_weight + gas_weight
    safe_denominator = np.where(denominator > 1e-12, denominator, 1.0)
    mixed = (gas_weight * kro_g + water_weight * kro_w) / safe_denominator
    result = np.where(denominator > 1e-12, mixed, kro_w)
    return result if result.ndim else float(result)


@attrs.frozen
class EclipseDefaultThreePhaseLaw:
    """
    Three-phase law composed of an oil-water and a gas-oil two-phase law.

    Oil is the wetting phase of the gas-oil law, so both laws share it as their
    common abscissa. Oil relative permeability follows the ECLIPSE default model.
    """

    oil_water_law: PiecewiseLinearTwoPhaseLaw
    """Oil-water law, wetting phase water (SWOF)."""
    gas_oil_law: PiecewiseLinearTwoPhaseLaw
    """Gas-oil law, wetting phase oil (SGOF, sampled against So = 1 - Sg)."""

    def __attrs_post_init__(self) -> None:
        if (self.oil_water_law.wetting_phase, self.oil_water_law.non_wetting_phase) != (
            FluidPhase.WATER,
            FluidPhase.OIL,
        ):
            raise ValidationError(
                "`oil_water_law` must have water as wetting and oil as non-wetting phase"
            )
        if (self.gas_oil_law.wetting_phase, self.gas_oil_law.non_wetting_phase) != (
            FluidPhase.OIL,
            FluidPhase.GAS,
        ):
            raise ValidationError(
                "`gas_oil_law` must have oil as wetting and gas as non-wetting phase"
            )

    @property
    def connate_water_saturation(self) -> float:
        return self.oil_water_law.minimum_wetting_phase_saturation

    def evaluate(self, saturations: PhaseSaturations) -> LawEvaluation:
        water_saturation = saturations.water
        gas_saturation = saturations.gas
        oil_saturation_go = 1.0 - np.asarray(gas_saturation)

        kro_w = self.oil_water_law.get_non_wetting_phase_relative_permeability(
            np.asarray(water_saturation) + np.asarray(gas_saturation)
        )
        kro_g = self.gas_oil_law.get_wetting_phase_relative_permeability(
            oil_saturation_go
        )
        return LawEvaluation(
            relative_permeabilities=RelativePermeabilities(
                water=self.oil_water_law.get_wetting_phase_relative_permeability(
                    water_saturation
                ),
                oil=eclipse_default_oil_relative_permeability(
                    kro_w=kro_w,
                    kro_g=kro_g,
                    water_saturation=water_saturation,
                    gas_saturation=gas_saturation,
                    connate_water_saturation=self.connate_water_saturation,
                ),
                gas=self.gas_oil_law.get_non_wetting_phase_relative_permeability(
                    oil_saturation_go
                ),
            ),
            capillary_pressures=CapillaryPressures(
                oil_water=self.oil_water_law.get_capillary_pressure(water_saturation),
                gas_oil=self.gas_oil_law.get_capillary_pressure(oil_saturation_go),
            ),
        )
