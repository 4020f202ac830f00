"""
DUN (dungeon layout) parser.

DUN files arrange the squares of a level's TIL table into a dungeon.  All
integers are unsigned 16-bit little-endian:

    dunQWidth        uint16
    dunQHeight       uint16
    squareNumsPlus1  [dunQHeight][dunQWidth]uint16     (0 = no square)
    // dunWidth  = 2*dunQWidth
    // dunHeight = 2*dunQHeight
    unknown          [dunHeight][dunWidth]uint16       (optional)
    dunMonsterIDs    [dunHeight][dunWidth]uint16       (optional)
    dunObjectIDs     [dunHeight][dunWidth]uint16       (optional)
    transparencies   [dunHeight][dunWidth]uint16       (optional)

Squares are placed as follows:

    1) Start at (colStart, rowStart).
    2) Place a square; it covers two cols and two rows.
    3) Advance col by two, dunQWidth times.
    4) Advance row by two, dunQHeight times.

The four trailing planes are stored one value per cell, row-major.  Some
DUN files stop right after the square plane (or after any complete plane);
that is not an error.  A stream that ends anywhere inside a plane is.

See :func:`dungeon_mapper.compositor.get_pillar_rect` for how (col, row)
maps onto the screen.
"""

import posixpath
import struct
import logging

from .errors import (GridBoundsError, HeaderError, LevelNameError,
                     SquareIndexError, TruncatedDataError)

log = logging.getLogger(__name__)

try:
    import numpy as np
except ImportError:
    raise ImportError(
        "NumPy is required for DUN parsing.  Install with: pip install numpy"
    )

# Maximum number of cols and rows in a dungeon map.
COL_MAX = 112
ROW_MAX = 112

_HEADER = struct.Struct('<2H')

# Trailing per-cell planes, in file order, with the cell attribute each fills.
_CELL_PLANES = (
    ('unknown', 'unknown'),
    ('monster', 'monster_id'),
    ('object', 'object_id'),
    ('transparency', 'transparency'),
)

# Directory of a DUN file inside the archive -> level code.
_LEVEL_DIRS = {
    'levels/l1data/': 'l1',
    'levels/l2data/': 'l2',
    'levels/l3data/': 'l3',
    'levels/l4data/': 'l4',
    'levels/towndata/': 'town',
}


class DungeonCell(object):
    """
    Attributes of one (col, row) cell.

    Every attribute is ``None`` until a parse pass writes it; ``None`` means
    "not placed" and is distinct from a stored zero.
    """

    __slots__ = ('pillar_num', 'unknown', 'monster_id', 'object_id',
                 'transparency')

    def __init__(self):
        self.pillar_num = None
        self.unknown = None
        self.monster_id = None
        self.object_id = None
        self.transparency = None

    def is_empty(self):
        return all(getattr(self, name) is None for name in self.__slots__)

    def __repr__(self):
        fields = ["{}={}".format(name, getattr(self, name))
                  for name in self.__slots__
                  if getattr(self, name) is not None]
        return "DungeonCell({})".format(", ".join(fields))


class DungeonGrid(object):
    """
    Fixed 112x112 grid of :class:`DungeonCell`, indexed ``grid[col, row]``.

    Attributes:
        col_start, row_start: Offset at which the DUN data was placed.
        width, height:        Size of the placed region in cells.
    """

    def __init__(self, col_start=0, row_start=0, width=0, height=0):
        self.col_start = col_start
        self.row_start = row_start
        self.width = width
        self.height = height
        self._cells = [[DungeonCell() for _ in range(ROW_MAX)]
                       for _ in range(COL_MAX)]

    def cell(self, col, row):
        """
        Return the cell at (*col*, *row*).

        Raises:
            GridBoundsError: If the coordinate is outside the grid.
        """
        if not (0 <= col < COL_MAX and 0 <= row < ROW_MAX):
            raise GridBoundsError(
                "Cell ({}, {}) outside the {}x{} dungeon grid".format(
                    col, row, COL_MAX, ROW_MAX))
        return self._cells[col][row]

    def __getitem__(self, key):
        col, row = key
        return self.cell(col, row)

    def place_square(self, col, row, square):
        """Expand *square* into the 2x2 block whose top cell is (col, row)."""
        self.cell(col, row).pillar_num = square.top
        self.cell(col + 1, row).pillar_num = square.right
        self.cell(col, row + 1).pillar_num = square.left
        self.cell(col + 1, row + 1).pillar_num = square.bottom

    def extent(self):
        """Return ``(col_count, row_count)`` covering the placed region."""
        return (self.col_start + self.width, self.row_start + self.height)

    def pillar_cells(self, col_count=COL_MAX, row_count=ROW_MAX):
        """
        Yield ``(col, row, pillar_num)`` for every cell with a pillar.

        Cells are visited row by row, and left to right (ascending col)
        within a row.
        """
        for row in range(min(row_count, ROW_MAX)):
            for col in range(min(col_count, COL_MAX)):
                pillar_num = self._cells[col][row].pillar_num
                if pillar_num is not None:
                    yield col, row, pillar_num

    def pillar_count(self):
        return sum(1 for _ in self.pillar_cells())


def _check_region(col_start, row_start, width, height):
    if col_start < 0 or row_start < 0:
        raise GridBoundsError(
            "Negative grid offset ({}, {})".format(col_start, row_start))
    if col_start + width > COL_MAX or row_start + height > ROW_MAX:
        raise GridBoundsError(
            "Region {}x{} at ({}, {}) exceeds the {}x{} dungeon grid".format(
                width, height, col_start, row_start, COL_MAX, ROW_MAX))


def _lookup_square(squares, square_num_plus1):
    square_num = square_num_plus1 - 1
    if square_num >= len(squares):
        raise SquareIndexError(square_num, len(squares))
    return squares[square_num]


def parse_dun(data, squares, col_start=0, row_start=0):
    """
    Parse a complete DUN stream into a new :class:`DungeonGrid`.

    Args:
        data:       Raw DUN bytes.
        squares:    Square table of the level (see :mod:`til_reader`).
        col_start:  Column at which the first square is placed.
        row_start:  Row at which the first square is placed.

    Returns:
        DungeonGrid

    Raises:
        HeaderError:        If the 4-byte header is incomplete.
        SquareIndexError:   If a square id has no TIL entry.
        TruncatedDataError: If the stream ends inside a plane.
        GridBoundsError:    If the layout does not fit the 112x112 grid.
    """
    if len(data) < _HEADER.size:
        raise HeaderError(
            "DUN header needs {} bytes, got {}".format(_HEADER.size, len(data)))

    quad_width, quad_height = _HEADER.unpack_from(data, 0)
    dun_width = 2 * quad_width
    dun_height = 2 * quad_height
    log.debug("DUN %dx%d squares at (%d, %d)",
              quad_width, quad_height, col_start, row_start)

    _check_region(col_start, row_start, dun_width, dun_height)
    grid = DungeonGrid(col_start, row_start, dun_width, dun_height)

    # squareNumsPlus1.
    offset = _HEADER.size
    square_count = quad_width * quad_height
    available = (len(data) - offset) // 2
    if available < square_count:
        raise TruncatedDataError(
            'square',
            col_start + 2 * (available % quad_width),
            row_start + 2 * (available // quad_width))

    square_ids = np.frombuffer(data, dtype='<u2', count=square_count,
                               offset=offset)
    offset += 2 * square_count

    placed = 0
    k = 0
    row = row_start
    for _ in range(quad_height):
        col = col_start
        for _ in range(quad_width):
            square_num_plus1 = int(square_ids[k])
            if square_num_plus1 != 0:
                grid.place_square(col, row,
                                  _lookup_square(squares, square_num_plus1))
                placed += 1
            col += 2
            k += 1
        row += 2
    log.debug("Placed %d of %d squares", placed, square_count)

    # Per-cell planes, row-major.
    cell_count = dun_width * dun_height
    for plane, attr in _CELL_PLANES:
        remaining = len(data) - offset
        if remaining == 0:
            log.debug("DUN data ends before the %s plane", plane)
            return grid
        if remaining < 2 * cell_count:
            k = remaining // 2
            raise TruncatedDataError(plane,
                                     col_start + k % dun_width,
                                     row_start + k // dun_width)

        values = np.frombuffer(data, dtype='<u2', count=cell_count,
                               offset=offset).reshape(dun_height, dun_width)
        offset += 2 * cell_count
        for i in range(dun_height):
            for j in range(dun_width):
                setattr(grid.cell(col_start + j, row_start + i), attr,
                        int(values[i, j]))

    if offset < len(data):
        log.debug("Ignoring %d trailing bytes", len(data) - offset)
    return grid


def parse_dun_mini(data, col_count, row_count, squares):
    """
    Parse a headerless, fixed-size square layout.

    The buffer holds one uint8 square-id-plus-1 per square, column-major
    (all rows of the first column, then the next column).  Squares are
    placed from the grid origin.

    Args:
        data:      Raw bytes, at least ``col_count * row_count`` long.
        col_count: Number of square columns.
        row_count: Number of square rows.
        squares:   Square table of the level.

    Returns:
        DungeonGrid covering ``2*col_count`` x ``2*row_count`` cells.
    """
    _check_region(0, 0, 2 * col_count, 2 * row_count)
    square_count = col_count * row_count
    if len(data) < square_count:
        k = len(data)
        raise TruncatedDataError('square', 2 * (k // row_count),
                                 2 * (k % row_count))

    grid = DungeonGrid(0, 0, 2 * col_count, 2 * row_count)
    k = 0
    col = 0
    for _ in range(col_count):
        row = 0
        for _ in range(row_count):
            square_num_plus1 = data[k]
            if square_num_plus1 != 0:
                grid.place_square(col, row,
                                  _lookup_square(squares, square_num_plus1))
            row += 2
            k += 1
        col += 2
    return grid


def parse_pillar_plane(data):
    """
    Parse a dense 112x112 plane of uint32 pillar-id-plus-1 values.

    Values are stored column-major and place pillars directly, without a
    square table.  Zero leaves a cell empty.

    Returns:
        DungeonGrid covering the whole 112x112 map.
    """
    cell_count = COL_MAX * ROW_MAX
    available = len(data) // 4
    if available < cell_count:
        raise TruncatedDataError('pillar', available // ROW_MAX,
                                 available % ROW_MAX)

    values = np.frombuffer(data, dtype='<u4', count=cell_count)
    values = values.reshape(COL_MAX, ROW_MAX)
    grid = DungeonGrid(0, 0, COL_MAX, ROW_MAX)
    for col, row in zip(*np.nonzero(values)):
        grid.cell(int(col), int(row)).pillar_num = int(values[col, row]) - 1
    return grid


def get_level_name(relative_path):
    """
    Return the level code of a DUN file from its path inside the archive.

    Example::

        get_level_name("levels/l2data/foo.dun")  -> "l2"

    Raises:
        LevelNameError: If the file is not in a known level directory.
    """
    dun_dir, _ = posixpath.split(relative_path.replace("\\", "/").lower())
    level_name = _LEVEL_DIRS.get(dun_dir + "/")
    if level_name is None:
        raise LevelNameError("Invalid DUN directory ({}/)".format(dun_dir))
    return level_name
