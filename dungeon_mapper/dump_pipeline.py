"""
Dungeon dump pipeline.

Ties the readers and the compositor together: resolve a DUN file in the
archive, load its level tables, parse the layout, and write one PNG per
palette the level's frames are available in.

Output layout (relative to *output_dir*)::

    <dun stem>.png                       one palette
    <dun stem>/<dun stem>_<pal>.png      several palettes
"""

import os
import posixpath
import logging

from .compositor import ArchOverlayCache, composite
from .dun_config import DunConfig
from .dun_parser import get_level_name, parse_dun, parse_dun_mini
from .min_reader import resolve_pillar_table
from .til_reader import resolve_square_table

log = logging.getLogger(__name__)

# Mini dumps are always drawn with the level 1 tables.
MINI_LEVEL_NAME = 'l1'
MINI_COL_COUNT = 40
MINI_ROW_COUNT = 40

# Levels whose pillar numbering matches the arch overlay table.
ARCH_LEVELS = ('l1',)


def _stem(path):
    return posixpath.splitext(posixpath.basename(path.replace("\\", "/")))[0]


def _output_path(output_dir, dungeon_name, palette_path, palette_count):
    """
    Return the PNG path for one palette variant.

    Raises:
        ValueError: If the path would escape *output_dir*.
    """
    root = os.path.abspath(output_dir)
    if palette_count > 1:
        filename = "{}_{}.png".format(dungeon_name, _stem(palette_path))
        path = os.path.join(root, dungeon_name, filename)
    else:
        path = os.path.join(root, "{}.png".format(dungeon_name))

    path = os.path.abspath(path)
    if os.path.commonpath([root, path]) != root:
        raise ValueError(
            "Output path {} escapes dump directory {}".format(path, root))
    return path


def _render_variants(dungeon_name, grid, col_count, row_count, level_name,
                     pillars, decoder, output_dir, arches):
    """
    Composite *grid* once per palette and save each variant as PNG.

    Level 1 layouts always get their arch overlays; a cache is created
    from *decoder* when the caller did not pass one.  An empty layout
    writes nothing.
    """
    if col_count == 0 or row_count == 0:
        log.info("Skipping %s: empty %dx%d layout", dungeon_name,
                 col_count, row_count)
        return []

    image_name = "{}.cel".format(level_name)
    palette_paths = decoder.palettes(image_name)
    if level_name not in ARCH_LEVELS:
        arches = None
    elif arches is None:
        arches = ArchOverlayCache(decoder)

    written = []
    for palette_path in palette_paths:
        if len(palette_paths) > 1:
            log.debug("Using palette %s", palette_path)
        level_frames = decoder.decode_all(image_name, palette_path)
        img = composite(grid, col_count, row_count, pillars, level_frames,
                        arches)

        path = _output_path(output_dir, dungeon_name, palette_path,
                            len(palette_paths))
        os.makedirs(os.path.dirname(path), exist_ok=True)
        log.info("Creating image: %s", os.path.basename(path))
        img.save(path, 'PNG')
        written.append(path)
    return written


def dump_dungeon(dun_name, archive, decoder, output_dir, config=None,
                 arches=None):
    """
    Render one DUN file to PNG.

    Args:
        dun_name:   DUN name or relative path inside *archive*.
        archive:    :class:`~dungeon_mapper.archive.ExtractedArchive` (or any
                    object with ``load`` and ``resolve_relative_path``).
        decoder:    Frame decoder (see :mod:`dungeon_mapper.frames`).
        output_dir: Dump directory.
        config:     Optional :class:`DunConfig` with placement offsets.
        arches:     Optional :class:`ArchOverlayCache` shared across jobs;
                    level 1 files get a fresh one when omitted.

    Returns:
        list: Paths of the PNG files written.

    Raises:
        FormatError:   If the DUN file or its tables are malformed.
        ResourceError: If frames cannot be decoded.
        OSError:       If a file cannot be read or written.
    """
    if config is None:
        config = DunConfig()

    rel_path = archive.resolve_relative_path(dun_name)
    level_name = get_level_name(rel_path)
    col_start, row_start = config.get_start(rel_path)

    squares = resolve_square_table(level_name, archive)
    grid = parse_dun(archive.load(rel_path), squares, col_start, row_start)
    pillars = resolve_pillar_table(level_name, archive)
    log.info("Parsed %s: level %s, %d pillars placed",
             rel_path, level_name, grid.pillar_count())

    col_count, row_count = grid.extent()
    return _render_variants(_stem(rel_path), grid, col_count, row_count,
                            level_name, pillars, decoder, output_dir, arches)


def dump_mini_dungeon(dungeon_name, data, archive, decoder, output_dir,
                      col_count=MINI_COL_COUNT, row_count=MINI_ROW_COUNT,
                      arches=None):
    """
    Render a headerless fixed-size square layout to PNG.

    *data* holds ``col_count * row_count`` uint8 square ids (see
    :func:`~dungeon_mapper.dun_parser.parse_dun_mini`); it is drawn with the
    level 1 tables.

    Returns:
        list: Paths of the PNG files written.
    """
    squares = resolve_square_table(MINI_LEVEL_NAME, archive)
    grid = parse_dun_mini(data, col_count, row_count, squares)
    pillars = resolve_pillar_table(MINI_LEVEL_NAME, archive)
    log.info("Parsed mini dungeon %s: %d pillars placed",
             dungeon_name, grid.pillar_count())

    return _render_variants(dungeon_name, grid, 2 * col_count, 2 * row_count,
                            MINI_LEVEL_NAME, pillars, decoder, output_dir,
                            arches)


def _needs_arches(dun_names, archive):
    for dun_name in dun_names:
        try:
            level_name = get_level_name(archive.resolve_relative_path(dun_name))
        except (ValueError, OSError):
            # Reported when the file itself is dumped.
            continue
        if level_name in ARCH_LEVELS:
            return True
    return False


def dump_all(dun_names, archive, decoder, output_dir, config=None,
             arches=None):
    """
    Render several DUN files, continuing past files that fail.

    When *arches* is not given, one :class:`ArchOverlayCache` is created
    for the whole batch.  If any file belongs to a level with arch
    overlays, the overlays are decoded before the first file is rendered,
    and a failure to decode them aborts the batch.

    Returns:
        dict: {
            'dumped': {dun_name: [png paths], ...},
            'failed': [(dun_name, error message), ...],
        }

    Raises:
        ResourceError: If the arch overlays are needed but cannot be decoded.
    """
    if config is None:
        config = DunConfig()
    if arches is None:
        arches = ArchOverlayCache(decoder)
    if not arches.is_loaded() and _needs_arches(dun_names, archive):
        arches.load()

    results = {'dumped': {}, 'failed': []}
    for dun_name in dun_names:
        try:
            results['dumped'][dun_name] = dump_dungeon(
                dun_name, archive, decoder, output_dir, config, arches)
        except (ValueError, RuntimeError, OSError) as e:
            log.exception("Failed to dump %s", dun_name)
            results['failed'].append((dun_name, str(e)))

    log.info("Dumped %d/%d dungeons to %s",
             len(results['dumped']), len(dun_names), output_dir)
    return results
