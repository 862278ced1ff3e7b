"""Grid topology contract and a structured cartesian implementation."""

import logging
import typing

import attrs
import numpy as np
import numpy.typing as npt

from deckstate.errors import IndexOutOfRangeError, ValidationError
from deckstate.types import (
    ActiveIndex,
    CartesianIndex,
    FaceDirection,
    FaceKey,
    ThreeDimensions,
)

logger = logging.getLogger(__name__)

__all__ = [
    "InteriorFace",
    "GridTopology",
    "CartesianGrid",
    "face_key",
    "cartesian_indices",
]


class InteriorFace(typing.NamedTuple):
    """An intersection between two active cells, as seen from the inside cell."""

    inside: ActiveIndex
    outside: ActiveIndex
    direction: FaceDirection
    """Local face of the inside cell that contains the intersection."""


@typing.runtime_checkable
class GridTopology(typing.Protocol):
    """
    Grid topology and geometry provider.

    Maps active (compressed) cells onto the cartesian (uncompressed) grid and walks
    the interior faces.
    """

    @property
    def num_active_cells(self) -> int: ...

    @property
    def cartesian_dimensions(self) -> ThreeDimensions: ...

    @property
    def num_cartesian_cells(self) -> int: ...

    def cartesian_index(self, active_index: ActiveIndex) -> CartesianIndex: ...

    def interior_faces(self) -> typing.Iterator[InteriorFace]: ...


def face_key(
    first: ActiveIndex, second: ActiveIndex, num_active_cells: int
) -> FaceKey:
    """
    Canonical key of the unordered active cell pair `(first, second)`.

    :param first: Active index of one cell.
    :param second: Active index of the other cell.
    :param num_active_cells: Number of active cells of the grid.
    :return: `min * num_active_cells + max`
    """
    low, high = (first, second) if first <= second else (second, first)
    return FaceKey(int(low) * num_active_cells + int(high))


def cartesian_indices(grid: GridTopology) -> npt.NDArray[np.int64]:
    """
    Cartesian index of every active cell, in active order.

    :param grid: The grid topology.
    :return: Integer array of length `grid.num_active_cells`.
    :raises IndexOutOfRangeError: If any mapped index lies outside the cartesian grid.
    """
    num_cartesian_cells = grid.num_cartesian_cells
    indices = np.fromiter(
        (
            grid.cartesian_index(ActiveIndex(active))
            for active in range(grid.num_active_cells)
        ),
        dtype=np.int64,
        count=grid.num_active_cells,
    )
    invalid = (indices < 0) | (indices >= num_cartesian_cells)
    if np.any(invalid):
        active = int(np.flatnonzero(invalid)[0])
        raise IndexOutOfRangeError(
            f"Active cell {active} maps to cartesian index {indices[active]}, "
            f"outside [0, {num_cartesian_cells})"
        )
    return indices


_NEIGHBOUR_OFFSETS: typing.Tuple[typing.Tuple[FaceDirection, int, int, int], ...] = (
    (FaceDirection.X_MINUS, -1, 0, 0),
    (FaceDirection.X_PLUS, 1, 0, 0),
    (FaceDirection.Y_MINUS, 0, -1, 0),
    (FaceDirection.Y_PLUS, 0, 1, 0),
    (FaceDirection.Z_MINUS, 0, 0, -1),
    (FaceDirection.Z_PLUS, 0, 0, 1),
)


@attrs.frozen
class CartesianGrid:
    """
    Structured `nx * ny * nz` grid with an optional active-cell mask (ACTNUM).

    Cartesian indices follow deck order `i + nx * j + nx * ny * k`. Active cells are
    numbered densely in increasing cartesian order.
    """

    dimensions: ThreeDimensions = attrs.field(converter=tuple)
    """Number of cells in x, y and z."""
    active_mask: typing.Optional[npt.NDArray[np.bool_]] = attrs.field(
        default=None,
        converter=attrs.converters.optional(
            lambda mask: np.asarray(mask, dtype=bool).ravel()
        ),
    )
    """Flat per-cartesian-cell mask, True for active cells. None means all active."""
    _active_to_cartesian: npt.NDArray[np.int64] = attrs.field(init=False)
    _cartesian_to_active: npt.NDArray[np.int64] = attrs.field(init=False)

    def __attrs_post_init__(self) -> None:
        if len(self.dimensions) != 3 or any(int(n) < 1 for n in self.dimensions):
            raise ValidationError(
                f"Grid dimensions must be three positive integers, got {self.dimensions}"
            )
        num_cartesian_cells = int(np.prod(self.dimensions))
        mask = self.active_mask
        if mask is None:
            mask = np.ones(num_cartesian_cells, dtype=bool)
        elif mask.size != num_cartesian_cells:
            raise ValidationError(
                f"Active mask has {mask.size} entries but the grid has "
                f"{num_cartesian_cells} cartesian cells"
            )

        active_to_cartesian = np.flatnonzero(mask).astype(np.int64)
        cartesian_to_active = np.full(num_cartesian_cells, -1, dtype=np.int64)
        cartesian_to_active[active_to_cartesian] = np.arange(
            active_to_cartesian.size, dtype=np.int64
        )
        object.__setattr__(self, "_active_to_cartesian", active_to_cartesian)
        object.__setattr__(self, "_cartesian_to_active", cartesian_to_active)
        logger.debug(
            f"Cartesian grid {self.dimensions}: {active_to_cartesian.size} of "
            f"{num_cartesian_cells} cells active"
        )

    @classmethod
    def from_actnum(
        cls, dimensions: ThreeDimensions, actnum: typing.Optional[npt.ArrayLike] = None
    ) -> "CartesianGrid":
        mask = None if actnum is None else np.asarray(actnum) != 0
        return cls(dimensions=dimensions, active_mask=mask)

    @property
    def num_active_cells(self) -> int:
        return int(self._active_to_cartesian.size)

    @property
    def cartesian_dimensions(self) -> ThreeDimensions:
        nx, ny, nz = self.dimensions
        return int(nx), int(ny), int(nz)

    @property
    def num_cartesian_cells(self) -> int:
        return int(self._cartesian_to_active.size)

    def cartesian_index(self, active_index: ActiveIndex) -> CartesianIndex:
        if not 0 <= active_index < self.num_active_cells:
            raise IndexOutOfRangeError(
                f"Active index {active_index} outside [0, {self.num_active_cells})"
            )
        return CartesianIndex(int(self._active_to_cartesian[active_index]))

    def active_index(self, cartesian_index: CartesianIndex) -> typing.Optional[ActiveIndex]:
        """Active index of a cartesian cell, or None if the cell is inactive."""
        if not 0 <= cartesian_index < self.num_cartesian_cells:
            raise IndexOutOfRangeError(
                f"Cartesian index {cartesian_index} outside [0, {self.num_cartesian_cells})"
            )
        active = int(self._cartesian_to_active[cartesian_index])
        return None if active < 0 else ActiveIndex(active)

    def ijk(self, cartesian_index: CartesianIndex) -> ThreeDimensions:
        nx, ny, _ = self.cartesian_dimensions
        i = cartesian_index % nx
        j = (cartesian_index // nx) % ny
        k = cartesian_index // (nx * ny)
        return int(i), int(j), int(k)

    def interior_faces(self) -> typing.Iterator[InteriorFace]:
        """
        Walk the faces of every active cell, skipping boundary faces.

        Each interior face is visited twice, once from each of its cells.
        """
        nx, ny, nz = self.cartesian_dimensions
        for inside in range(self.num_active_cells):
            i, j, k = self.ijk(CartesianIndex(int(self._active_to_cartesian[inside])))
            for direction, di, dj, dk in _NEIGHBOUR_OFFSETS:
                ni, nj, nk = i + di, j + dj, k + dk
                if not (0 <= ni < nx and 0 <= nj < ny and 0 <= nk < nz):
                    continue
                outside = self._cartesian_to_active[ni + nx * nj + nx * ny * nk]
                if outside < 0:
                    continue
                yield InteriorFace(
                    inside=ActiveIndex(inside),
                    outside=ActiveIndex(int(outside)),
                    direction=direction,
                )
