from contextlib import contextmanager
from contextvars import ContextVar

import numpy as np
import numpy.typing as npt


__all__ = ["get_dtype", "set_dtype", "with_precision"]

_deckstate_dtype: ContextVar[npt.DTypeLike] = ContextVar(
    "_deckstate_dtype", default=np.float64
)


def get_dtype() -> npt.DTypeLike:
    """
    Get the floating point type used for assembled cell and face arrays.

    :return: The current data type.
    """
    return _deckstate_dtype.get()


def set_dtype(dtype: npt.DTypeLike) -> None:
    """
    Set the floating point type for the current context.

    :param dtype: The data type to use.
    """
    _deckstate_dtype.set(dtype)


@contextmanager
def with_precision(dtype: npt.DTypeLike):
    """
    Temporarily assemble arrays with `dtype`.

    Deck arrays are always read as float64; only the assembled outputs are cast.

    :param dtype: The data type to set within the context.
    """
    token = _deckstate_dtype.set(dtype)
    try:
        yield
    finally:
        _deckstate_dtype.reset(token)
