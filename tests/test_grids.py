import pytest

from deckstate import (
    CartesianGrid,
    FaceDirection,
    GridTopology,
    IndexOutOfRangeError,
    ValidationError,
    cartesian_indices,
    face_key,
)


def test_face_key_is_order_independent():
    assert face_key(3, 7, 10) == face_key(7, 3, 10) == 37
    assert face_key(0, 0, 5) == 0


def test_cartesian_grid_satisfies_topology_protocol():
    assert isinstance(CartesianGrid(dimensions=(2, 2, 1)), GridTopology)


def test_natural_ordering_without_active_mask():
    grid = CartesianGrid(dimensions=(2, 3, 2))
    assert grid.num_active_cells == grid.num_cartesian_cells == 12
    assert grid.cartesian_index(5) == 5
    assert grid.ijk(1 + 2 * 1 + 6 * 1) == (1, 1, 1)


def test_active_mask_compresses_cells():
    grid = CartesianGrid.from_actnum((4, 1, 1), [1, 0, 1, 1])
    assert grid.num_active_cells == 3
    assert grid.num_cartesian_cells == 4
    assert [grid.cartesian_index(a) for a in range(3)] == [0, 2, 3]
    assert grid.active_index(1) is None
    assert grid.active_index(2) == 1
    assert cartesian_indices(grid).tolist() == [0, 2, 3]


def test_interior_faces_are_visited_from_both_sides():
    grid = CartesianGrid(dimensions=(3, 1, 1))
    faces = list(grid.interior_faces())
    assert len(faces) == 4
    assert (0, 1, FaceDirection.X_PLUS) in faces
    assert (1, 0, FaceDirection.X_MINUS) in faces
    assert (1, 2, FaceDirection.X_PLUS) in faces
    assert (2, 1, FaceDirection.X_MINUS) in faces


def test_inactive_cells_close_their_faces():
    grid = CartesianGrid.from_actnum((3, 1, 1), [1, 0, 1])
    assert list(grid.interior_faces()) == []


def test_vertical_faces_use_z_directions():
    grid = CartesianGrid(dimensions=(1, 1, 2))
    faces = list(grid.interior_faces())
    assert faces == [(0, 1, FaceDirection.Z_PLUS), (1, 0, FaceDirection.Z_MINUS)]


def test_face_direction_properties():
    assert FaceDirection.Y_PLUS.opposite == FaceDirection.Y_MINUS
    assert FaceDirection.Z_MINUS.axis == 2
    assert FaceDirection.X_PLUS.is_positive
    assert not FaceDirection.X_MINUS.is_positive


def test_out_of_range_active_index():
    grid = CartesianGrid(dimensions=(2, 1, 1))
    with pytest.raises(IndexOutOfRangeError):
        grid.cartesian_index(2)
    with pytest.raises(IndexError):
        grid.cartesian_index(-1)


class _BrokenGrid:
    """A topology whose mapping points past the cartesian grid."""

    num_active_cells = 2
    cartesian_dimensions = (2, 1, 1)
    num_cartesian_cells = 2

    def cartesian_index(self, active_index):
        return active_index + 1

    def interior_faces(self):
        return iter(())


def test_cartesian_indices_checks_bounds():
    with pytest.raises(IndexOutOfRangeError):
        cartesian_indices(_BrokenGrid())


def test_invalid_dimensions_and_mask():
    with pytest.raises(ValidationError):
        CartesianGrid(dimensions=(0, 1, 1))
    with pytest.raises(ValidationError):
        CartesianGrid.from_actnum((2, 1, 1), [1, 1, 1])
