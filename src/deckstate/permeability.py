"""Intrinsic permeability of cells and faces, and cell porosity."""

import logging
import typing

import attrs
import numba
import numpy as np
import numpy.typing as npt

from deckstate._precision import get_dtype
from deckstate.deck import Deck
from deckstate.errors import IndexOutOfRangeError, ValidationError
from deckstate.grids import GridTopology, InteriorFace, cartesian_indices, face_key
from deckstate.types import ActiveIndex, Axis, FaceKey, PermeabilityTensor

logger = logging.getLogger(__name__)

__all__ = [
    "harmonic_average",
    "build_cell_permeabilities",
    "build_cell_porosities",
    "FaceMultipliers",
    "FacePermeabilities",
    "build_face_permeabilities",
]


@numba.vectorize(cache=True)
def harmonic_average(x, y):
    """
    Harmonic average `2xy / (x + y)` of two values.

    Returns zero when `x * y <= 0`, so a non-positive value on either side closes
    the connection.
    """
    if x * y <= 0.0:
        return 0.0
    return (2.0 * x * y) / (x + y)


def _cell_values(
    values: np.ndarray, cartesian: npt.NDArray[np.int64], keyword: str
) -> np.ndarray:
    """Gather per-active-cell values of a per-cartesian-cell deck array."""
    if cartesian.size and cartesian.max() >= values.size:
        raise IndexOutOfRangeError(
            f"Cartesian index {int(cartesian.max())} is outside the {values.size} "
            f"values of keyword '{keyword}'"
        )
    return values[cartesian]


def build_cell_permeabilities(
    deck: Deck, grid: GridTopology
) -> npt.NDArray[np.floating]:
    """
    Build the diagonal intrinsic permeability tensor (m²) of every active cell.

    PERMX is mandatory, PERMY and PERMZ default to PERMX. When NTG is present it
    scales the X and Y entries, never Z.

    :param deck: Deck holding the grid properties.
    :param grid: Grid topology mapping active cells to cartesian cells.
    :return: Array of shape `(num_active_cells, 3, 3)`.
    :raises MissingKeywordError: If PERMX is absent.
    :raises IndexOutOfRangeError: If an active cell maps outside the deck arrays.
    """
    permx = deck.get_array("PERMX", reason="intrinsic permeability")
    permy = deck.get_optional_array("PERMY")
    permz = deck.get_optional_array("PERMZ")
    ntg = deck.get_optional_array("NTG")
    if permy is None:
        logger.debug("PERMY not given, defaulting to PERMX")
        permy = permx
    if permz is None:
        logger.debug("PERMZ not given, defaulting to PERMX")
        permz = permx

    cartesian = cartesian_indices(grid)
    diagonal = np.empty((cartesian.size, 3), dtype=np.float64)
    diagonal[:, Axis.X] = _cell_values(permx, cartesian, "PERMX")
    diagonal[:, Axis.Y] = _cell_values(permy, cartesian, "PERMY")
    diagonal[:, Axis.Z] = _cell_values(permz, cartesian, "PERMZ")
    if ntg is not None:
        net_to_gross = _cell_values(ntg, cartesian, "NTG")
        diagonal[:, Axis.X] *= net_to_gross
        diagonal[:, Axis.Y] *= net_to_gross

    tensors = np.zeros((cartesian.size, 3, 3), dtype=get_dtype())
    axes = np.arange(3)
    tensors[:, axes, axes] = diagonal
    logger.debug(f"Built intrinsic permeability tensors for {cartesian.size} cells")
    return tensors


def build_cell_porosities(deck: Deck, grid: GridTopology) -> npt.NDArray[np.floating]:
    """
    Build the effective porosity of every active cell.

    PORO is mandatory, and is multiplied by NTG and by the pore volume
    multiplier MULTPV where those are present.

    :param deck: Deck holding the grid properties.
    :param grid: Grid topology mapping active cells to cartesian cells.
    :return: Array of length `num_active_cells`.
    :raises MissingKeywordError: If PORO is absent.
    """
    cartesian = cartesian_indices(grid)
    porosity = _cell_values(
        deck.get_array("PORO", reason="cell porosity"), cartesian, "PORO"
    ).astype(np.float64)
    for keyword in ("NTG", "MULTPV"):
        values = deck.get_optional_array(keyword)
        if values is not None:
            porosity = porosity * _cell_values(values, cartesian, keyword)

    if np.any(porosity < 0.0):
        raise ValidationError("Effective porosity must be non-negative for every cell")
    return porosity.astype(get_dtype())


_MULTIPLIER_KEYWORDS: typing.Dict[Axis, typing.Tuple[str, str]] = {
    Axis.X: ("MULTX", "MULTX-"),
    Axis.Y: ("MULTY", "MULTY-"),
    Axis.Z: ("MULTZ", "MULTZ-"),
}


@attrs.frozen
class FaceMultipliers:
    """
    Directional transmissibility multipliers, per active cell.

    `positive[axis]` holds MULTX/MULTY/MULTZ and `negative[axis]` holds
    MULTX-/MULTY-/MULTZ-. Absent keywords default to 1.0.
    """

    positive: npt.NDArray[np.float64]
    """Array of shape `(num_active_cells, 3)`."""
    negative: npt.NDArray[np.float64]
    """Array of shape `(num_active_cells, 3)`."""

    @classmethod
    def from_deck(cls, deck: Deck, grid: GridTopology) -> "FaceMultipliers":
        cartesian = cartesian_indices(grid)
        positive = np.ones((cartesian.size, 3), dtype=np.float64)
        negative = np.ones((cartesian.size, 3), dtype=np.float64)
        for axis, (positive_keyword, negative_keyword) in _MULTIPLIER_KEYWORDS.items():
            values = deck.get_optional_array(positive_keyword)
            if values is not None:
                positive[:, axis] = _cell_values(values, cartesian, positive_keyword)
            values = deck.get_optional_array(negative_keyword)
            if values is not None:
                negative[:, axis] = _cell_values(values, cartesian, negative_keyword)
        return cls(positive=positive, negative=negative)

    def for_face(self, face: InteriorFace) -> typing.Tuple[float, float]:
        """
        Multipliers applied to the inside and the outside tensor of a face.

        On a positive face the inside cell contributes its positive multiplier and
        the outside cell its negative one. A negative face swaps the roles.

        :return: `(inside_multiplier, outside_multiplier)`
        """
        axis = face.direction.axis
        if face.direction.is_positive:
            return (
                float(self.positive[face.inside, axis]),
                float(self.negative[face.outside, axis]),
            )
        return (
            float(self.negative[face.inside, axis]),
            float(self.positive[face.outside, axis]),
        )


@attrs.define
class FacePermeabilities:
    """
    Harmonically averaged permeability tensors of interior faces.

    Keys are canonical (unordered) active cell pairs, so each face is stored once
    however many times, and from whichever side, it is added.
    """

    num_active_cells: int
    _tensors: typing.Dict[FaceKey, PermeabilityTensor] = attrs.field(
        factory=dict, init=False
    )

    def add_face(
        self,
        face: InteriorFace,
        inside_tensor: PermeabilityTensor,
        outside_tensor: PermeabilityTensor,
        inside_multiplier: float = 1.0,
        outside_multiplier: float = 1.0,
    ) -> bool:
        """
        Compute and store the permeability of `face` unless it is already known.

        :param face: The interior face, as seen from its inside cell.
        :param inside_tensor: Intrinsic permeability of the inside cell.
        :param outside_tensor: Intrinsic permeability of the outside cell.
        :param inside_multiplier: Multiplier scaling the whole inside tensor.
        :param outside_multiplier: Multiplier scaling the whole outside tensor.
        :return: True if the face was added, False if it was already present.
        """
        key = face_key(face.inside, face.outside, self.num_active_cells)
        if key in self._tensors:
            return False

        averaged = harmonic_average(
            np.asarray(inside_tensor, dtype=np.float64) * inside_multiplier,
            np.asarray(outside_tensor, dtype=np.float64) * outside_multiplier,
        )
        averaged = averaged.astype(get_dtype())
        averaged.setflags(write=False)
        self._tensors[key] = averaged
        return True

    def get(self, first: ActiveIndex, second: ActiveIndex) -> PermeabilityTensor:
        """
        Permeability tensor of the face shared by two active cells, in either order.

        :raises KeyError: If the cells share no stored face.
        """
        key = face_key(first, second, self.num_active_cells)
        try:
            return self._tensors[key]
        except KeyError:
            raise KeyError(
                f"No interior face between active cells {first} and {second}"
            ) from None

    def __contains__(self, pair: typing.Tuple[ActiveIndex, ActiveIndex]) -> bool:
        first, second = pair
        return face_key(first, second, self.num_active_cells) in self._tensors

    def __len__(self) -> int:
        return len(self._tensors)

    def keys(self) -> typing.KeysView[FaceKey]:
        return self._tensors.keys()

    def items(self) -> typing.ItemsView[FaceKey, PermeabilityTensor]:
        return self._tensors.items()


def build_face_permeabilities(
    deck: Deck,
    grid: GridTopology,
    cell_permeabilities: npt.NDArray[np.floating],
) -> FacePermeabilities:
    """
    Average the cell permeabilities onto every interior face of the grid.

    Faces are visited from both sides, the first visit computes the tensor and
    later visits are ignored.

    :param deck: Deck holding the optional directional multipliers.
    :param grid: Grid topology providing the interior faces.
    :param cell_permeabilities: Output of `build_cell_permeabilities`.
    :return: The face permeability store.
    """
    num_active_cells = grid.num_active_cells
    if cell_permeabilities.shape != (num_active_cells, 3, 3):
        raise ValidationError(
            f"Expected cell permeabilities of shape ({num_active_cells}, 3, 3), "
            f"got {cell_permeabilities.shape}"
        )

    multipliers = FaceMultipliers.from_deck(deck, grid)
    faces = FacePermeabilities(num_active_cells=num_active_cells)
    for face in grid.interior_faces():
        inside_multiplier, outside_multiplier = multipliers.for_face(face)
        faces.add_face(
            face,
            cell_permeabilities[face.inside],
            cell_permeabilities[face.outside],
            inside_multiplier=inside_multiplier,
            outside_multiplier=outside_multiplier,
        )

    closed = sum(1 for _, tensor in faces.items() if not np.any(tensor))
    if closed:
        logger.warning(f"{closed} interior faces have zero permeability")
    logger.info(f"Computed permeability for {len(faces)} interior faces")
    return faces
