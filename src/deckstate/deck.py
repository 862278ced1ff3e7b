"""
Grid property and keyword-table access for ECLIPSE-style decks.

Every per-cell array held by a `Deck` is indexed by cartesian (uncompressed) cell
index in natural deck order `i + nx * j + nx * ny * k`. Values are stored in SI
units.
"""

import logging
import os
from pathlib import Path
import re
import typing

import attrs
import numpy as np
import numpy.typing as npt
from typing_extensions import Self

from deckstate.constants import c
from deckstate.errors import DeckParseError, MissingKeywordError, ValidationError
from deckstate.types import ThreeDimensions

logger = logging.getLogger(__name__)

__all__ = [
    "Deck",
    "KeywordTables",
    "read_deck",
    "parse_deck",
    "GRID_PROPERTY_KEYWORDS",
    "INTEGER_GRID_PROPERTY_KEYWORDS",
    "TABLE_KEYWORDS",
]

KeywordRecord = npt.NDArray[np.float64]
"""The numbers of one `/`-terminated record."""
KeywordTable = typing.Tuple[KeywordRecord, ...]
"""One table (e.g. one saturation or PVT region) of a keyword."""
KeywordTables = typing.Tuple[KeywordTable, ...]
"""All tables of a keyword, in region order."""

GRID_PROPERTY_KEYWORDS = frozenset(
    {
        "PERMX",
        "PERMY",
        "PERMZ",
        "NTG",
        "PORO",
        "MULTPV",
        "MULTX",
        "MULTX-",
        "MULTY",
        "MULTY-",
        "MULTZ",
        "MULTZ-",
        "SWAT",
        "SGAS",
        "PRESSURE",
        "RS",
    }
)
"""Keywords holding one floating point value per cartesian cell."""
INTEGER_GRID_PROPERTY_KEYWORDS = frozenset({"SATNUM", "ACTNUM"})
"""Keywords holding one integer value per cartesian cell."""
_SINGLE_RECORD_TABLE_KEYWORDS = frozenset({"SWOF", "SGOF", "PVDG", "PVTW", "DENSITY"})
_MULTI_RECORD_TABLE_KEYWORDS = frozenset({"PVTO"})
TABLE_KEYWORDS = _SINGLE_RECORD_TABLE_KEYWORDS | _MULTI_RECORD_TABLE_KEYWORDS
"""Keywords holding tabulated data, one table per region."""
_UNSUPPORTED_UNIT_KEYWORDS = frozenset({"FIELD", "LAB", "PVT-M"})


def _as_readonly(array: npt.ArrayLike, dtype: npt.DTypeLike) -> np.ndarray:
    result = np.array(array, dtype=dtype, copy=True).ravel()
    result.setflags(write=False)
    return result


def _convert_tables(
    tables: typing.Mapping[str, typing.Iterable[typing.Iterable[npt.ArrayLike]]],
) -> typing.Dict[str, KeywordTables]:
    converted = {}
    for keyword, keyword_tables in tables.items():
        converted[keyword.upper()] = tuple(
            tuple(_as_readonly(record, np.float64) for record in table)
            for table in keyword_tables
        )
    return converted


@attrs.frozen
class Deck:
    """
    Immutable, already-parsed deck data.

    Holds named per-cartesian-cell arrays and named keyword tables. Presence checks
    are keyword-existence checks.
    """

    arrays: typing.Mapping[str, np.ndarray] = attrs.field(factory=dict)
    """Per-cartesian-cell arrays keyed by upper-case keyword."""
    tables: typing.Mapping[str, KeywordTables] = attrs.field(factory=dict)
    """Keyword tables keyed by upper-case keyword (tables -> records -> numbers)."""
    dimensions: typing.Optional[ThreeDimensions] = None
    """Cartesian grid dimensions (nx, ny, nz), when known (DIMENS)."""

    def __attrs_post_init__(self) -> None:
        if self.dimensions is None:
            return
        if len(self.dimensions) != 3 or any(n < 1 for n in self.dimensions):
            raise ValidationError(
                f"Deck dimensions must be three positive integers, got {self.dimensions}"
            )
        expected = self.num_cartesian_cells
        for keyword, values in self.arrays.items():
            if values.size != expected:
                raise ValidationError(
                    f"Keyword '{keyword}' has {values.size} values but the grid "
                    f"has {expected} cartesian cells"
                )

    @classmethod
    def from_mapping(
        cls,
        arrays: typing.Optional[typing.Mapping[str, npt.ArrayLike]] = None,
        tables: typing.Optional[
            typing.Mapping[str, typing.Iterable[typing.Iterable[npt.ArrayLike]]]
        ] = None,
        dimensions: typing.Optional[ThreeDimensions] = None,
    ) -> Self:
        """
        Build a deck from in-memory arrays and tables (already in SI units).

        :param arrays: Per-cartesian-cell arrays keyed by keyword.
        :param tables: Keyword tables, given as tables -> records -> numbers.
        :param dimensions: Optional cartesian dimensions used to validate array sizes.
        :return: A new `Deck`.
        """
        converted_arrays = {}
        for keyword, values in (arrays or {}).items():
            keyword = keyword.upper()
            dtype = (
                np.int64 if keyword in INTEGER_GRID_PROPERTY_KEYWORDS else np.float64
            )
            converted_arrays[keyword] = _as_readonly(values, dtype)
        return cls(
            arrays=converted_arrays,
            tables=_convert_tables(tables or {}),
            dimensions=tuple(dimensions) if dimensions is not None else None,  # type: ignore[arg-type]
        )

    @property
    def num_cartesian_cells(self) -> typing.Optional[int]:
        if self.dimensions is None:
            return None
        nx, ny, nz = self.dimensions
        return nx * ny * nz

    def has_keyword(self, keyword: str) -> bool:
        keyword = keyword.upper()
        return keyword in self.arrays or keyword in self.tables

    def get_array(self, keyword: str, reason: typing.Optional[str] = None) -> np.ndarray:
        """
        Get a mandatory per-cartesian-cell array.

        :param keyword: Keyword name, e.g. 'PERMX'.
        :param reason: Optional context added to the error message.
        :return: Read-only flat array indexed by cartesian cell index.
        :raises MissingKeywordError: If the keyword is absent.
        """
        try:
            return self.arrays[keyword.upper()]
        except KeyError:
            raise MissingKeywordError(keyword.upper(), reason) from None

    def get_optional_array(self, keyword: str) -> typing.Optional[np.ndarray]:
        return self.arrays.get(keyword.upper())

    def get_tables(self, keyword: str, reason: typing.Optional[str] = None) -> KeywordTables:
        """
        Get all tables of a mandatory table keyword.

        :param keyword: Keyword name, e.g. 'SWOF'.
        :param reason: Optional context added to the error message.
        :return: Tables of the keyword in region order.
        :raises MissingKeywordError: If the keyword is absent or holds no table.
        """
        tables = self.tables.get(keyword.upper())
        if not tables:
            raise MissingKeywordError(keyword.upper(), reason)
        return tables

    def num_tables(self, keyword: str) -> int:
        return len(self.get_tables(keyword))


###########################
# ECLIPSE keyword reader #
###########################

_TOKEN_PATTERN = re.compile(r"'[^']*'|\"[^\"]*\"|/|[^\s/]+")
_REPEAT_PATTERN = re.compile(r"^(\d+)\*(.*)$")


class _Token(typing.NamedTuple):
    text: str
    in_column_one: bool
    """Whether the token starts its line, the only place a keyword may appear."""


def _tokenize(text: str) -> typing.List[_Token]:
    """
    Split deck text into tokens.

    `--` starts a comment, and anything after a record terminator `/` on the same
    line is ignored.
    """
    tokens: typing.List[_Token] = []
    for raw_line in text.splitlines():
        line = raw_line.split("--", 1)[0]
        for match in _TOKEN_PATTERN.finditer(line):
            token = match.group()
            tokens.append(_Token(token, in_column_one=match.start() == 0))
            if token == "/":
                break
    return tokens


def _is_number_token(token: str) -> bool:
    match = _REPEAT_PATTERN.match(token)
    if match is not None:
        token = match.group(2)
        if not token:
            return True
    try:
        float(token.replace("D", "E").replace("d", "e"))
    except ValueError:
        return False
    return True


def _expand_token(token: str) -> typing.List[float]:
    match = _REPEAT_PATTERN.match(token)
    if match is None:
        return [float(token.replace("D", "E").replace("d", "e"))]
    count = int(match.group(1))
    value = match.group(2)
    # A bare `N*` defaults N items
    number = float(value.replace("D", "E").replace("d", "e")) if value else np.nan
    return [number] * count


def _read_record(
    tokens: typing.Sequence[_Token], position: int, keyword: str
) -> typing.Tuple[typing.List[float], int]:
    values: typing.List[float] = []
    while position < len(tokens):
        token = tokens[position].text
        position += 1
        if token == "/":
            return values, position
        if not _is_number_token(token):
            raise DeckParseError(
                f"Unexpected token '{token}' in a record of keyword '{keyword}'"
            )
        values.extend(_expand_token(token))
    raise DeckParseError(f"Record of keyword '{keyword}' is not terminated by '/'")


def _at_number(tokens: typing.Sequence[_Token], position: int) -> bool:
    if position >= len(tokens):
        return False
    token = tokens[position].text
    return token == "/" or _is_number_token(token)


def _column_scales(keyword: str, record_length: int) -> np.ndarray:
    """Per-item factors converting a METRIC record of `keyword` to SI."""
    bar = c.BAR_TO_PA
    cp = c.CP_TO_PA_S
    per_bar = c.PER_BAR_TO_PER_PA
    if keyword in ("SWOF", "SGOF"):
        pattern, offset = [1.0, 1.0, 1.0, bar], 0
    elif keyword == "PVDG":
        pattern, offset = [bar, 1.0, cp], 0
    elif keyword == "PVTW":
        pattern, offset = [bar, 1.0, per_bar, cp, per_bar], 0
    elif keyword == "PVTO":
        # Rs followed by repeated (pressure, Bo, viscosity) rows
        pattern, offset = [bar, 1.0, cp], 1
    else:
        return np.ones(record_length)

    scales = np.ones(record_length)
    for position in range(offset, record_length):
        scales[position] = pattern[(position - offset) % len(pattern)]
    return scales


def _grid_scale(keyword: str) -> float:
    if keyword.startswith("PERM"):
        return c.MD_TO_M2
    if keyword == "PRESSURE":
        return c.BAR_TO_PA
    return 1.0


def parse_deck(text: str) -> Deck:
    """
    Parse ECLIPSE-style deck text into a `Deck`.

    Keywords are recognised in column one only. The keywords consumed by this
    package are interpreted, all others are skipped together with their records.
    Values are read in METRIC units and converted to SI.

    :param text: Deck text.
    :return: A new `Deck`.
    :raises DeckParseError: If a consumed keyword is malformed or the deck uses an
        unsupported unit system.
    """
    tokens = _tokenize(text)
    arrays: typing.Dict[str, np.ndarray] = {}
    tables: typing.Dict[str, typing.List[typing.List[np.ndarray]]] = {}
    dimensions: typing.Optional[ThreeDimensions] = None
    skipped: typing.Set[str] = set()

    position = 0
    while position < len(tokens):
        token = tokens[position]
        keyword = token.text.upper()
        position += 1
        if not token.in_column_one:
            # Record items of a skipped keyword, such as report mnemonics
            continue

        if keyword in _UNSUPPORTED_UNIT_KEYWORDS:
            raise DeckParseError(
                f"Unit system '{keyword}' is not supported, only METRIC decks can be read"
            )

        if keyword == "DIMENS":
            values, position = _read_record(tokens, position, keyword)
            if len(values) != 3:
                raise DeckParseError(f"DIMENS expects 3 items, got {len(values)}")
            dimensions = typing.cast(ThreeDimensions, tuple(int(v) for v in values))

        elif keyword in GRID_PROPERTY_KEYWORDS or keyword in INTEGER_GRID_PROPERTY_KEYWORDS:
            values, position = _read_record(tokens, position, keyword)
            data = np.asarray(values, dtype=np.float64)
            if np.isnan(data).any():
                raise DeckParseError(f"Keyword '{keyword}' contains defaulted items")
            if keyword in INTEGER_GRID_PROPERTY_KEYWORDS:
                arrays[keyword] = data.astype(np.int64)
            else:
                arrays[keyword] = data * _grid_scale(keyword)

        elif keyword in _SINGLE_RECORD_TABLE_KEYWORDS:
            keyword_tables = tables.setdefault(keyword, [])
            while _at_number(tokens, position):
                values, position = _read_record(tokens, position, keyword)
                if not values:
                    continue
                record = np.asarray(values, dtype=np.float64)
                keyword_tables.append([record * _column_scales(keyword, record.size)])

        elif keyword in _MULTI_RECORD_TABLE_KEYWORDS:
            keyword_tables = tables.setdefault(keyword, [])
            table: typing.List[np.ndarray] = []
            while _at_number(tokens, position):
                values, position = _read_record(tokens, position, keyword)
                if not values:
                    if table:
                        keyword_tables.append(table)
                    table = []
                    continue
                record = np.asarray(values, dtype=np.float64)
                table.append(record * _column_scales(keyword, record.size))
            if table:
                keyword_tables.append(table)

        elif re.fullmatch(r"[A-Z][A-Z0-9_+-]{0,7}", keyword) and keyword not in skipped:
            skipped.add(keyword)
            logger.debug(f"Skipping unsupported deck keyword '{keyword}'")

    logger.debug(
        f"Parsed deck: {len(arrays)} grid arrays, {len(tables)} table keywords, "
        f"dimensions={dimensions}"
    )
    return Deck.from_mapping(arrays=arrays, tables=tables, dimensions=dimensions)


def read_deck(path: typing.Union[str, os.PathLike]) -> Deck:
    """
    Read and parse an ECLIPSE-style deck file.

    :param path: Path to the deck file.
    :return: A new `Deck`.
    """
    deck_path = Path(path)
    if not deck_path.exists():
        raise FileNotFoundError(f"Deck file '{deck_path}' does not exist")
    logger.info(f"Reading deck '{deck_path}'")
    return parse_deck(deck_path.read_text(encoding="utf-8"))
