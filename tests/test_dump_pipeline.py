"""
End-to-end tests for the dump pipeline.

Builds a small extracted archive (TIL, MIN, DUN files) and a directory of
pre-decoded PNG frames in a temp directory, then renders it to PNG.
"""

import os
import sys
import json
import struct
import shutil
import tempfile
import traceback

# Ensure the project root is on the path
PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, PROJECT_ROOT)

import numpy as np
from PIL import Image

from dungeon_mapper import render_dungeon
from dungeon_mapper.archive import ExtractedArchive
from dungeon_mapper.compositor import ARCH_SE, ArchOverlayCache
from dungeon_mapper.dump_pipeline import (_output_path, dump_all,
                                          dump_dungeon, dump_mini_dungeon)
from dungeon_mapper.errors import LevelNameError, ResourceError
from dungeon_mapper.frames import PngFrameDecoder
from dungeon_mapper.min_reader import parse_min
from dungeon_mapper.til_reader import parse_til


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

_RED = (255, 0, 0, 255)
_BLUE = (0, 0, 255, 255)


def _expect_raises(exc_type, fn, *args):
    try:
        fn(*args)
    except exc_type as e:
        return e
    raise AssertionError("{} not raised".format(exc_type.__name__))


def _write(root, rel_path, data):
    path = os.path.join(root, *rel_path.split('/'))
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, 'wb') as f:
        f.write(data)


def _til_bytes():
    # Square 0 uses the arch pillar 10 as its top quadrant.
    return struct.pack('<8H', 10, 1, 2, 3, 4, 5, 6, 7)


def _min_bytes(level_name, count):
    blocks = 10 if level_name != 'town' else 16
    raw = []
    for _ in range(count):
        raw.extend([1] + [0] * (blocks - 1))  # top-left block: frame 0
    return struct.pack('<{}H'.format(len(raw)), *raw)


def _save_frames(frames_dir, image_stem, palette_stem, frames):
    pal_dir = os.path.join(frames_dir, image_stem, palette_stem)
    os.makedirs(pal_dir, exist_ok=True)
    for i, frame in enumerate(frames):
        frame.save(os.path.join(pal_dir, '{:04d}.png'.format(i)))


def _build_fixture():
    """Return (root, archive, decoder) for a two-level test archive."""
    root = tempfile.mkdtemp(prefix="dm_dump_")
    extract_dir = os.path.join(root, 'mpqdump')
    frames_dir = os.path.join(root, 'frames')

    _write(extract_dir, 'levels/l1data/l1.til', _til_bytes())
    _write(extract_dir, 'levels/l1data/l1.min', _min_bytes('l1', 11))
    _write(extract_dir, 'levels/l2data/l2.til', _til_bytes())
    _write(extract_dir, 'levels/l2data/l2.min', _min_bytes('l2', 11))
    # 1x1 square layout, square id 1; trailing planes omitted.
    _write(extract_dir, 'levels/l1data/vile1.dun', struct.pack('<3H', 1, 1, 1))
    _write(extract_dir, 'levels/l2data/blind1.dun',
           struct.pack('<3H', 1, 1, 1) + struct.pack('<4H', 0, 0, 0, 0))
    _write(extract_dir, 'levels/l2data/broken.dun',
           struct.pack('<3H', 1, 1, 1) + b'\x05\x00')
    _write(extract_dir, 'levels/misc/odd.dun', struct.pack('<3H', 1, 1, 1))

    red = Image.new('RGBA', (32, 32), _RED)
    _save_frames(frames_dir, 'l1', 'l1', [red])
    _save_frames(frames_dir, 'l2', 'l2', [red])
    _save_frames(frames_dir, 'l2', 'l2_2', [red])

    arches = [Image.new('RGBA', (64, 160), (0, 0, 0, 0)) for _ in range(8)]
    arches[ARCH_SE].paste(Image.new('RGBA', (32, 32), _BLUE), (32, 0))
    _save_frames(frames_dir, 'l1s', 'l1', arches)

    return (root, ExtractedArchive(extract_dir), PngFrameDecoder(frames_dir))


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------

def test_dump_single_palette_with_arches():
    root, archive, decoder = _build_fixture()
    try:
        out_dir = os.path.join(root, 'out')
        arches = ArchOverlayCache(decoder)
        written = dump_dungeon('vile1.dun', archive, decoder, out_dir,
                               arches=arches)
        assert written == [os.path.join(os.path.abspath(out_dir), 'vile1.png')]

        arr = np.asarray(Image.open(written[0]).convert('RGBA'))
        # 2x2 cells -> 128 px wide; pillar (0, 0) at x 32..96, y 0..160.
        assert arr.shape == (64 + 128, 128, 4)
        assert tuple(arr[5, 40]) == _RED       # top-left block of pillar 10
        assert tuple(arr[5, 70]) == _BLUE      # arch overlay of pillar 10
    finally:
        shutil.rmtree(root)


def test_dump_level_1_draws_arches_without_cache():
    root, archive, decoder = _build_fixture()
    try:
        written = dump_dungeon('vile1.dun', archive, decoder,
                               os.path.join(root, 'out'))
        arr = np.asarray(Image.open(written[0]).convert('RGBA'))
        assert tuple(arr[5, 40]) == _RED
        assert tuple(arr[5, 70]) == _BLUE
    finally:
        shutil.rmtree(root)


def test_dump_mini_draws_arches_without_cache():
    root, archive, decoder = _build_fixture()
    try:
        data = bytes([1, 0, 0, 0])
        written = dump_mini_dungeon('mini', data, archive, decoder,
                                    os.path.join(root, 'out'),
                                    col_count=2, row_count=2)
        arr = np.asarray(Image.open(written[0]).convert('RGBA'))
        # 4x4 cells -> 256 px wide; pillar (0, 0) at x 96..160, y 0..160.
        assert tuple(arr[5, 100]) == _RED
        assert tuple(arr[5, 140]) == _BLUE
    finally:
        shutil.rmtree(root)


def test_dump_empty_layout_writes_nothing():
    root, archive, decoder = _build_fixture()
    try:
        _write(archive.extract_dir, 'levels/l2data/empty.dun',
               struct.pack('<2H', 0, 0))
        archive = ExtractedArchive(archive.extract_dir)
        out_dir = os.path.join(root, 'out')

        results = dump_all(['empty.dun', 'blind1.dun'], archive, decoder,
                           out_dir)
        assert results['failed'] == []
        assert results['dumped']['empty.dun'] == []
        assert len(results['dumped']['blind1.dun']) == 2
        assert not os.path.exists(os.path.join(out_dir, 'empty.png'))
        assert not os.path.exists(os.path.join(out_dir, 'empty'))
    finally:
        shutil.rmtree(root)


def test_dump_several_palettes():
    root, archive, decoder = _build_fixture()
    try:
        out_dir = os.path.join(root, 'out')
        written = dump_dungeon('levels/l2data/blind1.dun', archive, decoder,
                               out_dir)
        names = sorted(os.path.relpath(p, out_dir) for p in written)
        assert names == [os.path.join('blind1', 'blind1_l2.png'),
                         os.path.join('blind1', 'blind1_l2_2.png')]
        for path in written:
            assert os.path.isfile(path)
    finally:
        shutil.rmtree(root)


def test_dump_unknown_level_directory():
    root, archive, decoder = _build_fixture()
    try:
        _expect_raises(LevelNameError, dump_dungeon, 'odd.dun', archive,
                       decoder, os.path.join(root, 'out'))
    finally:
        shutil.rmtree(root)


def test_dump_all_continues_after_failures():
    root, archive, decoder = _build_fixture()
    try:
        out_dir = os.path.join(root, 'out')
        results = dump_all(['vile1.dun', 'broken.dun', 'odd.dun',
                            'missing.dun', 'blind1.dun'],
                           archive, decoder, out_dir)
        assert sorted(results['dumped']) == ['blind1.dun', 'vile1.dun']
        failed = [name for name, _ in results['failed']]
        assert failed == ['broken.dun', 'odd.dun', 'missing.dun']
    finally:
        shutil.rmtree(root)


def test_dump_all_needs_arch_overlays_for_level_1():
    root, archive, decoder = _build_fixture()
    try:
        shutil.rmtree(os.path.join(decoder.frames_dir, 'l1s'))
        _expect_raises(ResourceError, dump_all, ['vile1.dun'], archive,
                       decoder, os.path.join(root, 'out'))
        # Level 2 never uses them.
        results = dump_all(['blind1.dun'], archive, decoder,
                           os.path.join(root, 'out'))
        assert list(results['dumped']) == ['blind1.dun']
    finally:
        shutil.rmtree(root)


def test_dump_mini():
    root, archive, decoder = _build_fixture()
    try:
        out_dir = os.path.join(root, 'out')
        data = bytes([1, 0, 0, 0])
        written = dump_mini_dungeon('mini', data, archive, decoder, out_dir,
                                    col_count=2, row_count=2)
        assert len(written) == 1
        img = Image.open(written[0])
        assert img.size == (256, 128 + 128)
    finally:
        shutil.rmtree(root)


def test_output_path_stays_in_dump_dir():
    root = tempfile.mkdtemp(prefix="dm_out_")
    try:
        _expect_raises(ValueError, _output_path, root, '../escape', 'l1.pal', 1)
        path = _output_path(root, 'ok', 'levels/l1data/l1_3.pal', 2)
        assert path == os.path.join(os.path.abspath(root), 'ok', 'ok_l1_3.png')
    finally:
        shutil.rmtree(root)


def test_render_dungeon_helper():
    squares = parse_til(_til_bytes())
    pillars = parse_min(_min_bytes('l1', 11), 'l1')
    frames = [Image.new('RGBA', (32, 32), _RED)]
    img = render_dungeon(struct.pack('<3H', 1, 1, 1), squares, pillars,
                         frames, col_start=1, row_start=0)
    # Extent is 3x2 cells; the canvas is sized for 3x3.
    assert img.size == (192, 96 + 128)
    arr = np.asarray(img)
    # Pillar at (1, 0): x = 96 - 32 + 32 = 96, y = 16.
    assert tuple(arr[20, 100]) == _RED


# ---------------------------------------------------------------------------
# Runner
# ---------------------------------------------------------------------------

_PASSED = 0
_FAILED = 0


def _test(name, fn):
    """Run a test function, track pass/fail."""
    global _PASSED, _FAILED
    try:
        fn()
        _PASSED += 1
        print("  PASS  {}".format(name))
    except Exception as e:
        _FAILED += 1
        print("  FAIL  {} -- {}".format(name, e))
        traceback.print_exc()


def main():
    for name, fn in sorted(globals().items()):
        if name.startswith('test_') and callable(fn):
            _test(name, fn)
    print("\nResults: {} passed, {} failed".format(_PASSED, _FAILED))
    return 0 if _FAILED == 0 else 1


if __name__ == '__main__':
    sys.exit(main())
