"""
Isometric compositor.

Turns a parsed :class:`~dungeon_mapper.dun_parser.DungeonGrid` into a single
Pillow image by painting every pillar at its projected screen rectangle.

Map coordinate system::

                     (0, 0)

                       /\\
                    r /\\/\\ c
                   o /\\/\\/\\ o
                  w /\\/\\/\\/\\ l
                   /\\/\\/\\/\\/\\
        (0, 111)   \\/\\/\\/\\/\\/   (111, 0)
                    \\/\\/\\/\\/
                     \\/\\/\\/
                      \\/\\/
                       \\/

                   (111, 111)

Increasing col moves a pillar right and down, increasing row moves it left
and down.  Pillars are painted row by row and left to right within a row,
so a pillar always covers the parts of the pillars behind it.
"""

import threading
import logging

from .errors import FormatError, ResourceError, TableFormatError
from .min_reader import BLOCK_HEIGHT, BLOCK_WIDTH, PILLAR_WIDTH

log = logging.getLogger(__name__)

try:
    from PIL import Image
except ImportError:
    raise ImportError(
        "Pillow is required for dungeon compositing.  "
        "Install with: pip install Pillow"
    )

# ---------------------------------------------------------------------------
# Arch overlays (level 1)
# ---------------------------------------------------------------------------

ARCH_IMAGE_NAME = 'l1s.cel'
ARCH_PALETTE_PATH = 'levels/l1data/l1.pal'

# Arch ids: frame numbers in l1s.cel.
ARCH_SW = 0
ARCH_SE = 1
ARCH_SE_BROKEN = 2
ARCH_SW_BROKEN2 = 3
ARCH_SW2 = 4
ARCH_SW_BROKEN = 5
ARCH_SW_DOOR = 6
ARCH_SE_DOOR = 7

# Pillars carrying the floor shadow of an arch.
PILLARS_FLOOR_SHADOW_ARCH_SW = (11, 70, 210, 320, 340, 417)
PILLARS_FLOOR_SHADOW_ARCH_SE = (10, 248, 324, 330, 343, 420)
PILLAR_FLOOR_SHADOW_ARCH_SW2 = 258
PILLAR_FLOOR_SHADOW_ARCH_SW_BROKEN2 = 254

_ARCH_BY_PILLAR = {}
_ARCH_BY_PILLAR.update((p, ARCH_SW) for p in PILLARS_FLOOR_SHADOW_ARCH_SW)
_ARCH_BY_PILLAR.update((p, ARCH_SE) for p in PILLARS_FLOOR_SHADOW_ARCH_SE)
_ARCH_BY_PILLAR[PILLAR_FLOOR_SHADOW_ARCH_SW2] = ARCH_SW2
_ARCH_BY_PILLAR[PILLAR_FLOOR_SHADOW_ARCH_SW_BROKEN2] = ARCH_SW_BROKEN2


def get_arch_id(pillar_num):
    """Return the arch overlay for *pillar_num*, or None if it has none."""
    return _ARCH_BY_PILLAR.get(pillar_num)


class ArchOverlayCache(object):
    """
    Lazily decoded arch overlay frames, shared by all composites of a job.

    The frames are decoded on the first :meth:`get` and reused afterwards.
    Decoding runs at most once even when several threads ask at the same
    time.  Call :meth:`load` up front to fail fast before any rendering.
    """

    def __init__(self, decoder, image_name=ARCH_IMAGE_NAME,
                 palette_path=ARCH_PALETTE_PATH):
        self.decoder = decoder
        self.image_name = image_name
        self.palette_path = palette_path
        self._frames = None
        self._lock = threading.Lock()

    def load(self):
        """
        Decode the overlay frames if that has not happened yet.

        Returns:
            list: The decoded overlay frames.

        Raises:
            ResourceError: If decoding fails or yields no frames.
        """
        with self._lock:
            if self._frames is None:
                try:
                    frames = self.decoder.decode_all(self.image_name,
                                                     self.palette_path)
                except ResourceError:
                    raise
                except (OSError, ValueError) as e:
                    raise ResourceError(
                        "Unable to decode arch overlays {}: {}".format(
                            self.image_name, e))
                if not frames:
                    raise ResourceError(
                        "Arch overlay set {} is empty".format(self.image_name))
                self._frames = [f if f.mode == 'RGBA' else f.convert('RGBA')
                                for f in frames]
                log.info("Decoded %d arch overlays from %s",
                         len(self._frames), self.image_name)
            return self._frames

    def is_loaded(self):
        return self._frames is not None

    def get(self, arch_id):
        """
        Return the overlay image for *arch_id*.

        Raises:
            ResourceError: If the overlay set has no frame *arch_id*.
        """
        frames = self.load()
        if arch_id >= len(frames):
            raise ResourceError(
                "Arch overlay {} missing ({} decoded)".format(
                    arch_id, len(frames)))
        return frames[arch_id]


# ---------------------------------------------------------------------------
# Projection
# ---------------------------------------------------------------------------

def get_canvas_size(col_count, row_count, pillar_height):
    """
    Return the ``(width, height)`` of the composite canvas.

    The canvas is sized for a square map of ``max(col_count, row_count)``
    cells a side, so non-square maps get more room than they need.
    """
    max_count = max(col_count, row_count)
    map_width = 2 * max_count * BLOCK_WIDTH
    map_height = (2 * max_count * (BLOCK_HEIGHT // 2)
                  + (pillar_height - BLOCK_HEIGHT))
    return (map_width, map_height)


def get_pillar_rect(col, row, map_width, pillar_height):
    """
    Return the screen rectangle of the pillar at (*col*, *row*).

    Returns:
        tuple: ``(min_x, min_y, max_x, max_y)``, max exclusive.
    """
    min_x = map_width // 2 - BLOCK_WIDTH - row * BLOCK_WIDTH + col * BLOCK_WIDTH
    min_y = row * (BLOCK_HEIGHT // 2) + col * (BLOCK_HEIGHT // 2)
    max_x = min_x + PILLAR_WIDTH
    max_y = min_y + pillar_height
    return (min_x, min_y, max_x, max_y)


def _draw_over(dst, src, rect):
    """Alpha-composite *src* into *dst*, clipped to *rect*."""
    min_x, min_y, max_x, max_y = rect
    if src.mode != 'RGBA':
        src = src.convert('RGBA')
    if src.size != (max_x - min_x, max_y - min_y):
        src = src.crop((0, 0, max_x - min_x, max_y - min_y))
    dst.alpha_composite(src, dest=(min_x, min_y))


# ---------------------------------------------------------------------------
# Compositing
# ---------------------------------------------------------------------------

def composite(grid, col_count, row_count, pillars, level_frames, arches=None):
    """
    Render the dungeon grid as one isometric image.

    Only cells with ``col < col_count`` and ``row < row_count`` are drawn.
    Pillars are painted in ascending row order, and in ascending col order
    within a row; each pillar is alpha-composited over what is already
    there, followed by its arch overlay if it has one.

    Args:
        grid:         Parsed :class:`DungeonGrid`.
        col_count:    Number of cols to draw.
        row_count:    Number of rows to draw.
        pillars:      Pillar table; every pillar exposes ``height()`` and
                      ``rasterize(frames)``.
        level_frames: Decoded level frames passed to ``rasterize``.
        arches:       Optional :class:`ArchOverlayCache`; without it no arch
                      overlays are drawn.

    Returns:
        Pillow RGBA Image.

    Raises:
        TableFormatError: If *pillars* is empty.
        FormatError:      If a cell references a pillar outside *pillars*.
    """
    if not pillars:
        raise TableFormatError("Empty pillar table")

    pillar_height = pillars[0].height()
    map_width, map_height = get_canvas_size(col_count, row_count,
                                            pillar_height)
    dst = Image.new('RGBA', (map_width, map_height), (0, 0, 0, 0))
    log.debug("Canvas %dx%d for %dx%d cells",
              map_width, map_height, col_count, row_count)

    rasters = {}
    drawn = 0
    arches_drawn = 0
    for col, row, pillar_num in grid.pillar_cells(col_count, row_count):
        if not 0 <= pillar_num < len(pillars):
            raise FormatError(
                "Cell ({}, {}) references pillar {} (table has {})".format(
                    col, row, pillar_num, len(pillars)))

        src = rasters.get(pillar_num)
        if src is None:
            src = pillars[pillar_num].rasterize(level_frames)
            rasters[pillar_num] = src

        rect = get_pillar_rect(col, row, map_width, pillar_height)
        _draw_over(dst, src, rect)
        drawn += 1

        if arches is not None:
            arch_id = get_arch_id(pillar_num)
            if arch_id is not None:
                _draw_over(dst, arches.get(arch_id), rect)
                arches_drawn += 1

    log.debug("Drew %d pillars (%d distinct), %d arch overlays",
              drawn, len(rasters), arches_drawn)
    return dst
