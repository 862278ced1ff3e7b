import typing

import numpy as np
import pytest

from deckstate import CartesianGrid, Deck


def _records(*rows: typing.Sequence[float]) -> typing.Tuple[np.ndarray, ...]:
    return tuple(np.asarray(row, dtype=np.float64) for row in rows)


SWOF_TABLE = _records(
    [0.2, 0.0, 1.0, 2.0e4, 0.5, 0.3, 0.4, 1.0e4, 1.0, 1.0, 0.0, 0.0],
)
SGOF_TABLE = _records(
    [0.0, 0.0, 1.0, 0.0, 0.3, 0.2, 0.4, 5.0e3, 0.8, 1.0, 0.0, 1.0e4],
)
PVTO_TABLE = _records(
    [0.0, 1.0e5, 1.00, 1.0e-3],
    [50.0, 100.0e5, 1.20, 0.8e-3, 200.0e5, 1.18, 0.9e-3],
    [100.0, 200.0e5, 1.40, 0.6e-3, 300.0e5, 1.37, 0.7e-3],
)
PVTW_TABLE = _records([1.0e5, 1.0, 0.0, 5.0e-4, 0.0])
PVDG_TABLE = _records(
    [1.0e5, 0.9, 1.0e-5, 100.0e5, 0.01, 1.5e-5, 200.0e5, 0.005, 2.0e-5],
)
DENSITY_TABLE = _records([800.0, 1000.0, 1.0])


def default_arrays() -> typing.Dict[str, np.ndarray]:
    """Arrays of a 3 x 1 x 1 deck, in SI units."""
    return {
        "PERMX": np.array([1.0e-13, 2.0e-13, 4.0e-13]),
        "PORO": np.array([0.2, 0.25, 0.3]),
        "SWAT": np.array([0.3, 0.2, 0.1]),
        "SGAS": np.array([0.2, 0.0, 0.0]),
        "PRESSURE": np.array([100.0e5, 100.0e5, 1.0e5]),
        "RS": np.zeros(3),
    }


def default_tables() -> typing.Dict[str, typing.Tuple[typing.Tuple[np.ndarray, ...], ...]]:
    return {
        "SWOF": (SWOF_TABLE,),
        "SGOF": (SGOF_TABLE,),
        "PVTO": (PVTO_TABLE,),
        "PVTW": (PVTW_TABLE,),
        "PVDG": (PVDG_TABLE,),
        "DENSITY": (DENSITY_TABLE,),
    }


@pytest.fixture
def make_deck() -> typing.Callable[..., Deck]:
    """
    Factory for small in-memory decks.

    Keyword arguments override arrays or tables by keyword, a value of None
    removes the keyword.
    """

    def factory(dimensions=(3, 1, 1), **overrides: typing.Any) -> Deck:
        arrays: typing.Dict[str, typing.Any] = default_arrays()
        tables: typing.Dict[str, typing.Any] = default_tables()
        for keyword, value in overrides.items():
            keyword = keyword.upper().replace("_MINUS", "-")
            target = tables if keyword in tables else arrays
            if value is None:
                target.pop(keyword, None)
            else:
                target[keyword] = value
        return Deck.from_mapping(arrays=arrays, tables=tables, dimensions=dimensions)

    return factory


@pytest.fixture
def deck(make_deck) -> Deck:
    return make_deck()


@pytest.fixture
def grid() -> CartesianGrid:
    return CartesianGrid(dimensions=(3, 1, 1))


@pytest.fixture
def swof_table() -> typing.Tuple[np.ndarray, ...]:
    return SWOF_TABLE


@pytest.fixture
def sgof_table() -> typing.Tuple[np.ndarray, ...]:
    return SGOF_TABLE
