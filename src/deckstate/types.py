import enum
import typing

import numpy as np
import numpy.typing as npt
from typing_extensions import TypeAlias, TypedDict


__all__ = [
    "CartesianIndex",
    "ActiveIndex",
    "RegionIndex",
    "FaceKey",
    "ThreeDimensions",
    "FloatOrArray",
    "FluidPhase",
    "Component",
    "FaceDirection",
    "Axis",
    "RelativePermeabilities",
    "CapillaryPressures",
    "PermeabilityTensor",
]

CartesianIndex = typing.NewType("CartesianIndex", int)
"""Position of a cell in the uncompressed structured grid (deck order)."""
ActiveIndex = typing.NewType("ActiveIndex", int)
"""Dense, compressed index of a cell taking part in the simulation."""
RegionIndex = typing.NewType("RegionIndex", int)
"""0-based saturation-function region (SATNUM - 1)."""
FaceKey = typing.NewType("FaceKey", int)
"""Canonical key of an unordered active-cell pair: `min * num_active_cells + max`."""

ThreeDimensions: TypeAlias = typing.Tuple[int, int, int]
"""3D cartesian dimensions (nx, ny, nz)"""

FloatOrArray = typing.Union[float, npt.NDArray[np.floating]]

PermeabilityTensor: TypeAlias = npt.NDArray[np.floating]
"""A 3x3 intrinsic permeability tensor (m²)."""


class FluidPhase(enum.IntEnum):
    """Fluid phases of the black-oil model, in storage order."""

    WATER = 0
    OIL = 1
    GAS = 2


class Component(enum.IntEnum):
    """Pseudo-components of the black-oil model, in storage order."""

    WATER = 0
    OIL = 1
    GAS = 2


class Axis(enum.IntEnum):
    """Cartesian axes, doubling as the diagonal position in a permeability tensor."""

    X = 0
    Y = 1
    Z = 2


class FaceDirection(enum.IntEnum):
    """
    Local face of a hexahedral cell, numbered like the faces of a reference cube.

    Even values face the negative side of their axis, odd values the positive side.
    """

    X_MINUS = 0
    X_PLUS = 1
    Y_MINUS = 2
    Y_PLUS = 3
    Z_MINUS = 4
    Z_PLUS = 5

    @property
    def axis(self) -> Axis:
        return Axis(self.value // 2)

    @property
    def is_positive(self) -> bool:
        return bool(self.value % 2)

    @property
    def opposite(self) -> "FaceDirection":
        return FaceDirection(self.value ^ 1)


class RelativePermeabilities(TypedDict):
    """Dictionary holding relative permeabilities for the three phases."""

    water: FloatOrArray
    oil: FloatOrArray
    gas: FloatOrArray


class CapillaryPressures(TypedDict):
    """Dictionary containing capillary pressures for the two phase pairs."""

    oil_water: FloatOrArray  # Pcow = Po - Pw
    gas_oil: FloatOrArray  # Pcgo = Pg - Po
