"""Custom exception hierarchy for Opsin."""


class OpsinError(Exception):
    """Base exception for all Opsin errors."""


class CubeParseError(OpsinError):
    """Invalid or corrupted .cube file contents."""


class MissingSizeError(CubeParseError):
    """LUT_3D_SIZE was never declared, or declared as zero."""


class SizeMismatchError(CubeParseError):
    """Number of data lines does not equal size^3."""

    def __init__(self, expected: int, found: int):
        super().__init__(
            f"LUT data size mismatch. Expected {expected} entries, found {found}"
        )
        self.expected = expected
        self.found = found


class MalformedNumberError(CubeParseError):
    """A numeric token could not be parsed as a finite number."""

    def __init__(self, line_number: int, token: str, reason: str = "not a valid number"):
        super().__init__(f"Line {line_number}: {token!r} is {reason}")
        self.line_number = line_number
        self.token = token


class TableError(OpsinError):
    """Errors related to the precomputed lookup table."""


class CorruptTableError(TableError):
    """Precomputed table has the wrong length or an unreadable header."""


class GenerationCancelledError(OpsinError):
    """Table generation was cancelled by the caller."""


class InternalInvariantError(OpsinError):
    """A clamped grid index escaped its bounds. Indicates a bug."""


class ConfigError(OpsinError):
    """Invalid settings file."""
