"""
Read access to an extracted game archive.

The archive itself is unpacked by external tools; this module only maps
short file names (``"l1.til"``) to their location inside the extracted
tree (``"levels/l1data/l1.til"``) and reads them.

Relative paths handed out by :meth:`ExtractedArchive.resolve_relative_path`
use forward slashes and lower-case names, which is what
:func:`dungeon_mapper.dun_parser.get_level_name` expects.  The on-disk
spelling is kept separately so lookups work on case-sensitive filesystems.
"""

import json
import os
import logging

log = logging.getLogger(__name__)


def _normalise(path):
    """Lower-case *path* and convert backslashes to forward slashes."""
    return path.replace("\\", "/").lower()


class ExtractedArchive(object):
    """
    Name -> path resolution over an extracted archive directory.

    The directory is scanned once at construction time.  Every file is
    registered under its lower-cased base name and under its lower-cased
    relative path; when two files share a base name the first one in sorted
    order wins.  An explicit *path_map* (name -> relative path) extends and
    overrides the scan.
    """

    def __init__(self, extract_dir, path_map=None):
        """
        Args:
            extract_dir: Root of the extracted archive.
            path_map:    Optional dict of name -> relative path overrides.

        Raises:
            FileNotFoundError: If *extract_dir* does not exist.
        """
        if not os.path.isdir(extract_dir):
            raise FileNotFoundError(
                "Archive directory not found: {}".format(extract_dir))

        self.extract_dir = os.path.abspath(extract_dir)
        # lower-case name or relative path -> on-disk relative path
        self._disk_paths = {}

        for dirpath, dirnames, filenames in os.walk(self.extract_dir):
            dirnames.sort()
            for filename in sorted(filenames):
                rel = os.path.relpath(os.path.join(dirpath, filename),
                                      self.extract_dir)
                rel = rel.replace(os.sep, "/")
                key = filename.lower()
                seen = self._disk_paths.get(key)
                self._disk_paths[_normalise(rel)] = rel
                if seen is not None:
                    log.debug("Duplicate name %s: keeping %s, ignoring %s",
                              key, seen, rel)
                    continue
                self._disk_paths[key] = rel

        if path_map:
            for name, rel in path_map.items():
                rel = rel.replace("\\", "/")
                self._disk_paths[_normalise(name)] = self._disk_paths.get(
                    _normalise(rel), rel)

        log.info("Archive %s: %d entries indexed", self.extract_dir,
                 len(self._disk_paths))

    @classmethod
    def from_json(cls, extract_dir, map_path):
        """Create an archive whose path overrides come from a JSON file."""
        with open(map_path, 'r') as f:
            path_map = json.load(f)
        return cls(extract_dir, path_map)

    def names(self, extension=None):
        """
        Return the relative paths of all files in the archive, sorted.

        Args:
            extension: Optional suffix filter such as ``".dun"``.
        """
        paths = set(_normalise(rel) for rel in self._disk_paths.values())
        if extension:
            paths = set(p for p in paths if p.endswith(extension.lower()))
        return sorted(paths)

    def _disk_path(self, name):
        # Relative paths must match exactly; bare names hit the base-name
        # entries.
        rel = self._disk_paths.get(_normalise(name))
        if rel is None:
            raise FileNotFoundError(
                "Unable to locate {} in archive {}".format(
                    name, self.extract_dir))
        return rel

    def resolve_relative_path(self, name):
        """
        Return the lower-case relative path of *name* inside the archive.

        *name* may be a base name (``"l1.dun"``) or a relative path
        (``"levels/l1data/l1.dun"``).  A relative path is never resolved by
        its base name alone, so it cannot land in another level directory.

        Raises:
            FileNotFoundError: If *name* is unknown.
        """
        return _normalise(self._disk_path(name))

    def resolve_path(self, name):
        """Return the absolute on-disk path of *name*."""
        rel = self._disk_path(name)
        return os.path.join(self.extract_dir, rel.replace("/", os.sep))

    def load(self, name):
        """
        Read the full contents of *name*.

        Raises:
            FileNotFoundError: If *name* is unknown.
            OSError:           If the file cannot be read.
        """
        path = self.resolve_path(name)
        with open(path, 'rb') as f:
            data = f.read()
        log.debug("Loaded %s (%d bytes)", path, len(data))
        return data
