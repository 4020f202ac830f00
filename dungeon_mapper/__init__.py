"""
Dungeon Mapper - isometric renderer for DUN dungeon layouts

Reads the DUN layout of a dungeon level together with the level's square
(TIL) and pillar (MIN) tables, and composites the result into a single
isometric image, including the arch overlays of level 1.

Archive extraction and CEL frame decoding are done by external tools; see
:mod:`dungeon_mapper.archive` and :mod:`dungeon_mapper.frames` for the
interfaces consumed here.
"""

from .errors import (FormatError, HeaderError, SquareIndexError,
                     TruncatedDataError, LevelNameError, GridBoundsError,
                     TableFormatError, ResourceError)
from .archive import ExtractedArchive
from .til_reader import Square, parse_til, resolve_square_table
from .min_reader import Pillar, parse_min, resolve_pillar_table
from .dun_parser import (DungeonCell, DungeonGrid, parse_dun, parse_dun_mini,
                         parse_pillar_plane, get_level_name)
from .dun_config import DunConfig
from .frames import PngFrameDecoder
from .compositor import (ArchOverlayCache, composite, get_arch_id,
                         get_canvas_size, get_pillar_rect)
from .dump_pipeline import dump_dungeon, dump_mini_dungeon, dump_all


def render_dungeon(dun_data, squares, pillars, level_frames, col_start=0,
                   row_start=0, arches=None):
    """
    Parse DUN bytes and composite them in one call.

    Args:
        dun_data:     Raw DUN file contents.
        squares:      Square table of the level (:func:`parse_til`).
        pillars:      Pillar table of the level (:func:`parse_min`).
        level_frames: Decoded level frames, indexed by frame number.
        col_start:    Column offset of the layout in the 112x112 grid.
        row_start:    Row offset of the layout in the 112x112 grid.
        arches:       :class:`ArchOverlayCache` for level 1 layouts.  The
                      tables carry no level name, so without it no arch
                      overlays are drawn.

    Returns:
        Pillow RGBA Image.
    """
    grid = parse_dun(dun_data, squares, col_start, row_start)
    col_count, row_count = grid.extent()
    return composite(grid, col_count, row_count, pillars, level_frames, arches)
