"""
MIN (pillar table) reader.

A MIN file is a flat array of pillars.  A pillar is a column of 32x32
blocks, two blocks wide, stacked from the top of the pillar downwards:

    blocks  [blockCount]uint16

    bits  0-11  frameNumPlus1  (0 = empty block)
    bits 12-14  frame type     (encoding used by the CEL frame)

Levels 1-3 use 10 blocks per pillar (64x160 pixels); level 4 and the town
use 16 blocks per pillar (64x256 pixels).

Decoding the CEL frames themselves is done elsewhere; :meth:`Pillar.rasterize`
only arranges already decoded frames.
"""

import struct
import logging

from .errors import ResourceError, TableFormatError

log = logging.getLogger(__name__)

try:
    from PIL import Image
except ImportError:
    raise ImportError(
        "Pillow is required for pillar rasterization.  "
        "Install with: pip install Pillow"
    )

# Block and pillar dimensions in pixels.
BLOCK_WIDTH = 32
BLOCK_HEIGHT = 32
PILLAR_WIDTH = 2 * BLOCK_WIDTH

# Blocks per pillar, by level code.
BLOCKS_PER_PILLAR = {
    'l1': 10,
    'l2': 10,
    'l3': 10,
    'l4': 16,
    'town': 16,
}

_FRAME_NUM_MASK = 0x0FFF
_FRAME_TYPE_MASK = 0x7000
_FRAME_TYPE_SHIFT = 12


class Block(object):
    """One 32x32 block of a pillar."""

    __slots__ = ('frame_num_plus1', 'frame_type')

    def __init__(self, raw):
        self.frame_num_plus1 = raw & _FRAME_NUM_MASK
        self.frame_type = (raw & _FRAME_TYPE_MASK) >> _FRAME_TYPE_SHIFT

    def is_empty(self):
        return self.frame_num_plus1 == 0


class Pillar(object):
    """
    A renderable pillar: a two-column stack of blocks.

    Attributes:
        blocks: List of :class:`Block`, row-major from the top-left block.
    """

    __slots__ = ('blocks',)

    def __init__(self, blocks):
        self.blocks = list(blocks)

    def height(self):
        """Pixel height of the pillar."""
        return (len(self.blocks) // 2) * BLOCK_HEIGHT

    def rasterize(self, frames):
        """
        Compose the pillar from decoded level frames.

        Block *i* is drawn at ``((i % 2) * 32, (i // 2) * 32)``.  Frames are
        alpha-composited so transparent frame pixels leave the pillar
        transparent.

        Args:
            frames: Sequence of Pillow images, indexed by frame number.

        Returns:
            Pillow RGBA Image of size ``(PILLAR_WIDTH, height())``.

        Raises:
            ResourceError: If a block references a frame outside *frames*.
        """
        img = Image.new('RGBA', (PILLAR_WIDTH, self.height()), (0, 0, 0, 0))
        for i, block in enumerate(self.blocks):
            if block.is_empty():
                continue
            frame_num = block.frame_num_plus1 - 1
            if frame_num >= len(frames):
                raise ResourceError(
                    "Pillar block references frame {} but only {} frames "
                    "are decoded".format(frame_num, len(frames)))
            frame = frames[frame_num]
            if frame.mode != 'RGBA':
                frame = frame.convert('RGBA')
            frame = frame.crop((0, 0, BLOCK_WIDTH, BLOCK_HEIGHT))
            x = (i % 2) * BLOCK_WIDTH
            y = (i // 2) * BLOCK_HEIGHT
            img.alpha_composite(frame, dest=(x, y))
        return img


def parse_min(data, level_name):
    """
    Parse the contents of a MIN file.

    Args:
        data:       Raw MIN bytes.
        level_name: Short level code; selects the number of blocks per pillar.

    Returns:
        list: :class:`Pillar` entries, indexed by pillar number.

    Raises:
        TableFormatError: On an unknown level or a size mismatch.
    """
    block_count = BLOCKS_PER_PILLAR.get(level_name)
    if block_count is None:
        raise TableFormatError(
            "No pillar layout known for level {!r}".format(level_name))

    record = struct.Struct('<{}H'.format(block_count))
    if not data or len(data) % record.size != 0:
        raise TableFormatError(
            "Pillar table size {} is not a multiple of {}".format(
                len(data), record.size))

    pillars = [Pillar(Block(raw) for raw in fields)
               for fields in record.iter_unpack(data)]
    log.debug("Parsed %d pillars (%d blocks each) for %s",
              len(pillars), block_count, level_name)
    return pillars


def resolve_pillar_table(level_name, archive):
    """
    Load and parse ``<level_name>.min`` from *archive*.

    Raises:
        TableFormatError: If the table cannot be read or is malformed.
    """
    min_name = "{}.min".format(level_name)
    try:
        data = archive.load(min_name)
    except OSError as e:
        raise TableFormatError(
            "Unable to load pillar table {}: {}".format(min_name, e))
    return parse_min(data, level_name)
