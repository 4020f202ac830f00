"""
TIL (square table) reader.

A TIL file is a flat array of squares.  Each square groups the four pillars
that make up one 2x2 block of the dungeon grid:

    pillarNumTop     uint16
    pillarNumRight   uint16
    pillarNumLeft    uint16
    pillarNumBottom  uint16

All integers are unsigned 16-bit little-endian.  One table exists per level
(``l1.til``, ``l2.til``, ..., ``town.til``).
"""

import struct
import logging
from collections import namedtuple

from .errors import TableFormatError

log = logging.getLogger(__name__)

_SQUARE_STRUCT = struct.Struct('<4H')
SQUARE_SIZE = _SQUARE_STRUCT.size  # 8 bytes


Square = namedtuple('Square', ['top', 'right', 'left', 'bottom'])
Square.__doc__ = "Four pillar indices of one square, in quadrant order."


def parse_til(data):
    """
    Parse the contents of a TIL file.

    Args:
        data: Raw TIL bytes.

    Returns:
        list: :class:`Square` entries, indexed by square number.

    Raises:
        TableFormatError: If *data* is empty or not a whole number of squares.
    """
    if not data:
        raise TableFormatError("Empty square table")
    if len(data) % SQUARE_SIZE != 0:
        raise TableFormatError(
            "Square table size {} is not a multiple of {}".format(
                len(data), SQUARE_SIZE))

    squares = [Square(*fields) for fields in _SQUARE_STRUCT.iter_unpack(data)]
    log.debug("Parsed %d squares", len(squares))
    return squares


def resolve_square_table(level_name, archive):
    """
    Load and parse ``<level_name>.til`` from *archive*.

    Args:
        level_name: Short level code, e.g. ``"l1"`` or ``"town"``.
        archive:    Object exposing ``load(name) -> bytes``.

    Returns:
        list: :class:`Square` entries.

    Raises:
        TableFormatError: If the table cannot be read or is malformed.
    """
    til_name = "{}.til".format(level_name)
    try:
        data = archive.load(til_name)
    except OSError as e:
        raise TableFormatError(
            "Unable to load square table {}: {}".format(til_name, e))
    return parse_til(data)
