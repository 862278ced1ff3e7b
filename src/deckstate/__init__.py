"""
*deckstate*

Material parameters, black-oil PVT and initial fluid state of a reservoir model,
built from an ECLIPSE-style grid property deck.
"""

from ._precision import *  # noqa
from .errors import *  # noqa
from .constants import *  # noqa
from .types import *  # noqa
from .config import *  # noqa
from .deck import *  # noqa
from .grids import *  # noqa
from .permeability import *  # noqa
from .materials import *  # noqa
from .satfunc import *  # noqa
from .pvt import *  # noqa
from .states import *  # noqa
from .models import *  # noqa
