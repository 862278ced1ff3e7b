"""Physical constants, unit conversion factors and black-oil defaults"""

from contextvars import ContextVar
import typing

import attrs


__all__ = ["Constant", "Constants", "c", "ConstantsContext", "get_constant"]


@attrs.frozen(slots=True)
class Constant:
    """
    A constant value with an optional description and unit.
    """

    value: typing.Any
    """The actual value of the constant."""

    description: typing.Optional[str] = None
    """Optional description of what this constant represents."""

    unit: typing.Optional[str] = None
    """Optional unit of measurement for this constant."""

    def __str__(self) -> str:
        return f"{self.value}{self.unit or ''}"


DEFAULT_CONSTANTS: typing.Dict[str, typing.Union[typing.Any, Constant]] = {
    # Reservoir conditions
    "DEFAULT_RESERVOIR_TEMPERATURE": Constant(
        value=293.15,
        description="Uniform reservoir temperature assumed by the black-oil model",
        unit="K",
    ),
    # Component molar masses
    "MOLAR_MASS_WATER": Constant(
        value=18e-3, description="Molar mass of the water component", unit="kg/mol"
    ),
    "MOLAR_MASS_OIL": Constant(
        value=175e-3,
        description="Molar mass of the (heavy) oil component",
        unit="kg/mol",
    ),
    "MOLAR_MASS_GAS": Constant(
        value=24e-3,
        description="Molar mass of the (light) gas component",
        unit="kg/mol",
    ),
    # Unit conversions (METRIC deck units to SI)
    "BAR_TO_PA": Constant(
        value=1e5, description="Conversion factor from bar to Pascal", unit="Pa/bar"
    ),
    "MD_TO_M2": Constant(
        value=9.869233e-16,
        description="Conversion factor from millidarcies to square meters",
        unit="m²/mD",
    ),
    "CP_TO_PA_S": Constant(
        value=0.001,
        description="Conversion factor from centipoise to Pascal-seconds",
        unit="Pa·s/cP",
    ),
    "PER_BAR_TO_PER_PA": Constant(
        value=1e-5,
        description="Conversion factor for compressibilities from 1/bar to 1/Pa",
        unit="bar/Pa",
    ),
    # Numerical floors
    "MIN_FORMATION_VOLUME_FACTOR": Constant(
        value=1e-12,
        description="Lower clamp for interpolated/extrapolated formation volume factors",
        unit="fraction",
    ),
}


class Constants:
    """
    Store of physical constants and conversion factors.

    Use attribute access for the value, and `get_constant` for the `Constant` object.
    """

    __slots__ = ("_store",)

    def __init__(self) -> None:
        object.__setattr__(self, "_store", {})
        for name, value in DEFAULT_CONSTANTS.items():
            self[name] = value

    def __getattr__(self, name: str) -> typing.Any:
        if name.startswith("_"):
            return object.__getattribute__(self, name)
        try:
            return self._store[name].value
        except KeyError:
            raise AttributeError(
                f"'{type(self).__name__}' object has no attribute '{name}'"
            ) from None

    def __setattr__(self, name: str, value: typing.Any) -> None:
        if name.startswith("_"):
            object.__setattr__(self, name, value)
        else:
            self[name] = value

    def __setitem__(self, name: str, value: typing.Any) -> None:
        self._store[name] = value if isinstance(value, Constant) else Constant(value)

    def __call__(self) -> "ConstantsContext":
        """
        Create a context manager that temporarily makes this instance the one
        served by the global proxy `deckstate.c`.
        """
        return ConstantsContext(self)


_constants_context: ContextVar[Constants] = ContextVar(
    "constants_context", default=Constants()
)


class ConstantsContext:
    """Context manager for temporary global `Constants` overrides."""

    def __init__(self, constants: Constants) -> None:
        self._new_constants = constants
        self._token = None

    def __enter__(self) -> Constants:
        self._token = _constants_context.set(self._new_constants)
        return self._new_constants

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        if self._token is not None:
            _constants_context.reset(self._token)


class _ConstantsProxy:
    """Proxy to the current context's `Constants` instance."""

    @property
    def _constants(self) -> Constants:
        return _constants_context.get()

    def __getattr__(self, name: str) -> typing.Any:
        return getattr(self._constants, name)


c = _ConstantsProxy()
"""Global proxy to access physical constants and conversion factors."""


def get_constant(name: str) -> typing.Optional[Constant]:
    """
    Get a `Constant` object by name from the global constants.

    :param name: Name of the constant
    :return: `Constant` object or None if not found
    """
    return c._constants._store.get(name)
