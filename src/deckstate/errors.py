import typing

__all__ = [
    "DeckStateError",
    "ValidationError",
    "MissingKeywordError",
    "TableCountMismatchError",
    "IndexOutOfRangeError",
    "DeckParseError",
]


class DeckStateError(Exception):
    """Base class for all deckstate-related errors."""

    pass


class ValidationError(DeckStateError, ValueError):
    """Raised when deck data fails validation checks."""

    pass


class MissingKeywordError(ValidationError, KeyError):
    """Raised when a mandatory deck keyword is absent."""

    def __init__(self, keyword: str, reason: typing.Optional[str] = None) -> None:
        self.keyword = keyword
        message = f"The deck is missing the mandatory '{keyword}' keyword"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)

    def __str__(self) -> str:
        # `KeyError` would otherwise repr() the message
        return str(self.args[0])


class TableCountMismatchError(ValidationError):
    """Raised when related per-region keywords define different numbers of tables."""

    pass


class IndexOutOfRangeError(ValidationError, IndexError):
    """Raised when a region or cartesian index lies outside its declared bounds."""

    pass


class DeckParseError(DeckStateError):
    """Raised when deck text cannot be tokenized into keywords and records."""

    pass
