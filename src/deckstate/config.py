import typing

import attrs

from deckstate.constants import Constants, c
from deckstate.errors import ValidationError
from deckstate.types import Component

__all__ = ["Config", "default_molar_masses"]


def default_molar_masses(
    constants: typing.Optional[Constants] = None,
) -> typing.Dict[Component, float]:
    """
    Default component molar masses (kg/mol).

    :param constants: Constants to read the masses from, defaults to the global constants.
    """
    source = constants if constants is not None else c
    return {
        Component.WATER: source.MOLAR_MASS_WATER,
        Component.OIL: source.MOLAR_MASS_OIL,
        Component.GAS: source.MOLAR_MASS_GAS,
    }


def _validate_molar_masses(
    instance: typing.Any,
    attribute: "attrs.Attribute[typing.Any]",
    value: typing.Mapping[Component, float],
) -> None:
    missing = set(Component) - set(value)
    if missing:
        raise ValidationError(
            f"`{attribute.name}` is missing components: {sorted(m.name for m in missing)}"
        )
    if any(mass <= 0.0 for mass in value.values()):
        raise ValidationError(f"`{attribute.name}` must be strictly positive")


@attrs.frozen
class Config:
    """Model initialization configuration and parameters."""

    constants: Constants = attrs.field(factory=Constants)
    """Physical and conversion constants used during initialization."""
    temperature: float = attrs.field(
        default=attrs.Factory(
            lambda self: self.constants.DEFAULT_RESERVOIR_TEMPERATURE, takes_self=True
        ),
        validator=attrs.validators.gt(0),
    )
    """Uniform reservoir temperature (K). The black-oil model is isothermal."""
    saturation_tolerance: float = attrs.field(
        default=1e-6,
        validator=attrs.validators.and_(
            attrs.validators.ge(0), attrs.validators.le(1e-2)
        ),
    )
    """
    Tolerance on the derived oil saturation `1 - Sw - Sg`.

    Cells whose oil saturation falls outside `[-tol, 1 + tol]` are rejected.
    Saturations are never clamped.
    """
    molar_masses: typing.Mapping[Component, float] = attrs.field(
        default=attrs.Factory(
            lambda self: default_molar_masses(self.constants), takes_self=True
        ),
        validator=_validate_molar_masses,
    )
    """
    Molar mass (kg/mol) of each black-oil pseudo-component, handed to the fluid
    system built by `build_reservoir_model`.
    """
    cap_dissolved_gas_by_deck: bool = False
    """
    Whether the per-cell RS array limits the dissolved gas of the initial oil phase.

    When False (default) the oil phase is assumed saturated and Rs is taken from the
    PVT model at the cell pressure. When True, `Rs = min(RS, Rs_sat(p))` and the oil
    formation volume factor is evaluated on the undersaturated branch.
    """
