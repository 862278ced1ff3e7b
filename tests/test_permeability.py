import numpy as np
import pytest

from deckstate import (
    CartesianGrid,
    FaceDirection,
    FacePermeabilities,
    InteriorFace,
    MissingKeywordError,
    build_cell_permeabilities,
    build_cell_porosities,
    build_face_permeabilities,
    harmonic_average,
)


def test_harmonic_average_values():
    assert harmonic_average(2.0, 8.0) == pytest.approx(3.2)
    assert harmonic_average(5.0, 5.0) == pytest.approx(5.0)


@pytest.mark.parametrize("a", [0.0, 1.0, 7.5, 1e-13])
def test_harmonic_average_with_zero_is_zero(a):
    assert harmonic_average(a, 0.0) == 0.0
    assert harmonic_average(0.0, a) == 0.0


def test_harmonic_average_with_negative_is_zero():
    assert harmonic_average(-1.0, 4.0) == 0.0


def test_harmonic_average_is_symmetric():
    rng = np.random.default_rng(42)
    a = rng.uniform(0.0, 10.0, size=50)
    b = rng.uniform(0.0, 10.0, size=50)
    np.testing.assert_allclose(harmonic_average(a, b), harmonic_average(b, a))


def test_permx_only_gives_isotropic_tensors(deck, grid):
    tensors = build_cell_permeabilities(deck, grid)
    assert tensors.shape == (3, 3, 3)
    for cell, permx in enumerate([1.0e-13, 2.0e-13, 4.0e-13]):
        np.testing.assert_allclose(tensors[cell], np.eye(3) * permx)


def test_permy_and_permz_are_used_when_given(make_deck, grid):
    deck = make_deck(permy=np.full(3, 5.0e-14), permz=np.full(3, 1.0e-14))
    tensor = build_cell_permeabilities(deck, grid)[0]
    np.testing.assert_allclose(np.diag(tensor), [1.0e-13, 5.0e-14, 1.0e-14])


def test_unit_net_to_gross_changes_nothing(make_deck, grid):
    plain = build_cell_permeabilities(make_deck(), grid)
    with_ntg = build_cell_permeabilities(make_deck(ntg=np.ones(3)), grid)
    np.testing.assert_array_equal(plain, with_ntg)


def test_net_to_gross_scales_horizontal_entries_only(make_deck, grid):
    deck = make_deck(ntg=np.array([0.5, 0.5, 0.5]), permz=np.full(3, 1.0e-14))
    tensor = build_cell_permeabilities(deck, grid)[0]
    np.testing.assert_allclose(np.diag(tensor), [0.5e-13, 0.5e-13, 1.0e-14])


def test_missing_permx(make_deck, grid):
    with pytest.raises(MissingKeywordError, match="PERMX"):
        build_cell_permeabilities(make_deck(permx=None), grid)


def test_porosity_is_scaled_by_ntg_and_pore_volume_multiplier(make_deck, grid):
    deck = make_deck(ntg=np.array([1.0, 0.5, 1.0]), multpv=np.array([1.0, 1.0, 2.0]))
    porosity = build_cell_porosities(deck, grid)
    np.testing.assert_allclose(porosity, [0.2, 0.125, 0.6])


def test_missing_porosity(make_deck, grid):
    with pytest.raises(MissingKeywordError, match="PORO"):
        build_cell_porosities(make_deck(poro=None), grid)


def test_face_store_computes_each_pair_once():
    faces = FacePermeabilities(num_active_cells=2)
    inside = np.eye(3) * 2.0
    outside = np.eye(3) * 8.0

    assert faces.add_face(InteriorFace(0, 1, FaceDirection.X_PLUS), inside, outside)
    first = faces.get(0, 1)
    assert not faces.add_face(InteriorFace(1, 0, FaceDirection.X_MINUS), outside, inside)
    assert not faces.add_face(
        InteriorFace(0, 1, FaceDirection.X_PLUS), inside * 100.0, outside
    )

    assert len(faces) == 1
    assert faces.get(1, 0) is first
    np.testing.assert_allclose(first, np.eye(3) * 3.2)


def test_face_store_is_order_independent():
    inside = np.diag([1.0, 2.0, 3.0])
    outside = np.diag([4.0, 5.0, 6.0])
    forward = FacePermeabilities(num_active_cells=2)
    forward.add_face(InteriorFace(0, 1, FaceDirection.Y_PLUS), inside, outside)
    backward = FacePermeabilities(num_active_cells=2)
    backward.add_face(InteriorFace(1, 0, FaceDirection.Y_MINUS), outside, inside)
    np.testing.assert_allclose(forward.get(0, 1), backward.get(0, 1))


def test_face_store_lookup_of_unknown_pair():
    faces = FacePermeabilities(num_active_cells=3)
    assert (0, 2) not in faces
    with pytest.raises(KeyError):
        faces.get(0, 2)


def test_build_face_permeabilities_averages_neighbours(deck, grid):
    cells = build_cell_permeabilities(deck, grid)
    faces = build_face_permeabilities(deck, grid, cells)
    assert len(faces) == 2
    assert (1, 0) in faces
    assert (0, 2) not in faces
    expected = 2.0 * 1.0e-13 * 2.0e-13 / 3.0e-13
    np.testing.assert_allclose(faces.get(1, 0), np.eye(3) * expected)


def test_directional_multipliers_scale_whole_tensors(make_deck):
    grid = CartesianGrid(dimensions=(2, 1, 1))
    deck = make_deck(
        dimensions=(2, 1, 1),
        permx=np.array([100.0, 100.0]),
        poro=None,
        swat=None,
        sgas=None,
        pressure=None,
        rs=None,
        multx=np.array([0.5, 1.0]),
    )
    cells = build_cell_permeabilities(deck, grid)
    faces = build_face_permeabilities(deck, grid, cells)
    expected = 2.0 * 50.0 * 100.0 / 150.0
    np.testing.assert_allclose(faces.get(0, 1), np.eye(3) * expected)


def test_negative_multiplier_of_the_outside_cell(make_deck):
    grid = CartesianGrid(dimensions=(2, 1, 1))
    deck = make_deck(
        dimensions=(2, 1, 1),
        permx=np.array([100.0, 100.0]),
        poro=None,
        swat=None,
        sgas=None,
        pressure=None,
        rs=None,
        multx_minus=np.array([1.0, 0.0]),
    )
    cells = build_cell_permeabilities(deck, grid)
    faces = build_face_permeabilities(deck, grid, cells)
    np.testing.assert_array_equal(faces.get(0, 1), np.zeros((3, 3)))


def test_multipliers_on_other_axes_leave_x_faces_alone(make_deck):
    grid = CartesianGrid(dimensions=(2, 1, 1))
    deck = make_deck(
        dimensions=(2, 1, 1),
        permx=np.array([100.0, 100.0]),
        poro=None,
        swat=None,
        sgas=None,
        pressure=None,
        rs=None,
        multy=np.array([0.0, 0.0]),
        multz_minus=np.array([0.0, 0.0]),
    )
    cells = build_cell_permeabilities(deck, grid)
    faces = build_face_permeabilities(deck, grid, cells)
    np.testing.assert_allclose(faces.get(0, 1), np.eye(3) * 100.0)
