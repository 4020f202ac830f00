"""
Exception types raised while reading DUN/TIL/MIN data and compositing.

I/O problems are left to the builtin OSError family.  Everything that is
wrong with the *content* of a file derives from :class:`FormatError`, and
frame sets that cannot be decoded raise :class:`ResourceError`.
"""


class FormatError(ValueError):
    """Malformed or truncated level data."""


class HeaderError(FormatError):
    """DUN header is missing or shorter than its two dimension fields."""


class SquareIndexError(FormatError):
    """A square id in the DUN square plane has no entry in the TIL table."""

    def __init__(self, square_num, square_count):
        self.square_num = square_num
        self.square_count = square_count
        super(SquareIndexError, self).__init__(
            "Square index {} out of range (table has {} squares)".format(
                square_num, square_count))


class TruncatedDataError(FormatError):
    """The stream ended inside a plane."""

    def __init__(self, plane, col, row):
        self.plane = plane
        self.col = col
        self.row = row
        super(TruncatedDataError, self).__init__(
            "Unexpected end of data in {} plane at ({}, {})".format(
                plane, col, row))


class LevelNameError(FormatError):
    """A DUN file lives in a directory that maps to no known level."""


class GridBoundsError(FormatError):
    """A square or cell would be written outside the 112x112 dungeon grid."""


class TableFormatError(FormatError):
    """A TIL or MIN table could not be loaded or has the wrong size."""


class ResourceError(RuntimeError):
    """A frame set or arch overlay set failed to decode."""
