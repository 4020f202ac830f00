#!/usr/bin/env python
"""
Render DUN dungeon layouts as isometric PNG images.

Reads from an extracted game archive and from CEL frames that have already
been decoded to PNG (see dungeon_mapper.frames for the expected layout).

Usage:
  python dun_dump.py dun <name.dun>... --extract-dir mpqdump/ --frames-dir frames/
  python dun_dump.py dun -a --extract-dir mpqdump/ --frames-dir frames/
  python dun_dump.py mini <file>... --extract-dir mpqdump/ --frames-dir frames/
"""

import os
import sys
import argparse
import logging

# Ensure the project root is on the path
PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, PROJECT_ROOT)

from dungeon_mapper import (ArchOverlayCache, DunConfig, ExtractedArchive,
                            PngFrameDecoder, dump_all, dump_mini_dungeon)
from dungeon_mapper.dump_pipeline import MINI_COL_COUNT, MINI_ROW_COUNT


def _open_sources(args):
    if args.path_map:
        archive = ExtractedArchive.from_json(args.extract_dir, args.path_map)
    else:
        archive = ExtractedArchive(args.extract_dir)
    decoder = PngFrameDecoder(args.frames_dir)
    return archive, decoder


def _cmd_dun(args):
    archive, decoder = _open_sources(args)
    config = DunConfig.load(args.config) if args.config else DunConfig()

    if args.all:
        dun_names = archive.names('.dun')
    else:
        dun_names = args.names
    if not dun_names:
        print("No DUN files given (use -a to dump all).")
        return 1

    results = dump_all(dun_names, archive, decoder, args.output, config)
    print("\n{} dumped, {} failed".format(
        len(results['dumped']), len(results['failed'])))
    for dun_name, err in results['failed']:
        print("  {} -- {}".format(dun_name, err))
    return 0 if not results['failed'] else 1


def _cmd_mini(args):
    archive, decoder = _open_sources(args)
    arches = ArchOverlayCache(decoder)
    arches.load()

    failed = 0
    for file_path in args.files:
        with open(file_path, 'rb') as f:
            data = f.read()
        name = os.path.splitext(os.path.basename(file_path))[0]
        try:
            written = dump_mini_dungeon(name, data, archive, decoder,
                                        args.output, args.width, args.height,
                                        arches)
        except (ValueError, RuntimeError, OSError) as e:
            logging.getLogger(__name__).error("%s: %s", file_path, e)
            failed += 1
            continue
        for path in written:
            print("{} -> {}".format(file_path, path))
    return 0 if failed == 0 else 1


def main():
    parser = argparse.ArgumentParser(
        description='Render DUN dungeon layouts as isometric PNG images')
    parser.add_argument('-v', '--verbose', action='store_true',
                        help='Enable debug logging')
    subparsers = parser.add_subparsers(dest='command')

    def add_source_args(p):
        p.add_argument('--extract-dir', default='mpqdump/',
                       help='Path to an extracted archive (default: mpqdump/)')
        p.add_argument('--path-map',
                       help='JSON file mapping names to relative paths')
        p.add_argument('--frames-dir', default='frames/',
                       help='Directory of pre-decoded PNG frames')
        p.add_argument('-o', '--output', default='_dump_/_dungeons_/',
                       help='Dump directory')

    # -- dun -----------------------------------------------------------
    p_dun = subparsers.add_parser('dun', help='Dump DUN files from the archive')
    p_dun.add_argument('names', nargs='*', help='DUN names or relative paths')
    p_dun.add_argument('-a', '--all', action='store_true',
                       help='Dump every .dun file in the archive')
    p_dun.add_argument('--config',
                       help='JSON file with per-DUN col_start/row_start')
    add_source_args(p_dun)

    # -- mini ----------------------------------------------------------
    p_mini = subparsers.add_parser(
        'mini', help='Dump headerless fixed-size square layouts')
    p_mini.add_argument('files', nargs='+', help='Raw layout files')
    p_mini.add_argument('--width', type=int, default=MINI_COL_COUNT,
                        help='Square columns (default: 40)')
    p_mini.add_argument('--height', type=int, default=MINI_ROW_COUNT,
                        help='Square rows (default: 40)')
    add_source_args(p_mini)

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(levelname)s %(name)s: %(message)s')

    if args.command == 'dun':
        return _cmd_dun(args)
    elif args.command == 'mini':
        return _cmd_mini(args)

    parser.print_help()
    return 1


if __name__ == '__main__':
    sys.exit(main())
