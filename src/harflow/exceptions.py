"""Custom exceptions for harflow package."""


class HarflowError(Exception):
    """Base exception class for all harflow errors."""


class InvalidInputError(HarflowError):
    """Raised when the archive, an entry, or a URL cannot be translated.

    Attributes:
        entry_index: Zero-based archive index of the offending entry, if any.
    """

    def __init__(self, message: str, entry_index: int | None = None) -> None:
        super().__init__(message)
        self.entry_index = entry_index


class HARParseError(InvalidInputError):
    """Raised when HAR content cannot be parsed."""


class CorruptDataError(HarflowError):
    """Raised when a body claimed to be JSON fails to parse.

    Never fatal for a translation: the body is kept verbatim.
    """


class InternalError(HarflowError):
    """Raised when an internal invariant is violated (indicates a bug)."""
