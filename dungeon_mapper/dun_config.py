"""
Per-DUN placement configuration.

Most DUN files are drawn from the origin of the 112x112 grid.  Some are
pieces of a larger map and must be placed at an offset; the town, for
example, is assembled from four sector files.  Offsets are given in cells.

JSON override file layout::

    {
        "levels/towndata/sector1s.dun": {"col_start": 46, "row_start": 46},
        "l1.dun": {"col_start": 16, "row_start": 16}
    }

Keys may be relative archive paths or bare file names.
"""

import json
import posixpath
import logging

log = logging.getLogger(__name__)

_DEFAULT_OFFSETS = {
    'levels/towndata/sector1s.dun': (46, 46),
    'levels/towndata/sector2s.dun': (46, 0),
    'levels/towndata/sector3s.dun': (0, 46),
    'levels/towndata/sector4s.dun': (0, 0),
}


def _key(name):
    return name.replace("\\", "/").lower()


class DunConfig(object):
    """Lookup of (col_start, row_start) by DUN name."""

    def __init__(self, offsets=None, use_defaults=True):
        """
        Args:
            offsets:      Optional dict of name -> (col_start, row_start).
            use_defaults: Include the built-in town sector offsets.
        """
        self._offsets = {}
        if use_defaults:
            self._offsets.update(_DEFAULT_OFFSETS)
        if offsets:
            for name, (col_start, row_start) in offsets.items():
                self._offsets[_key(name)] = (int(col_start), int(row_start))

    @classmethod
    def load(cls, filepath, use_defaults=True):
        """
        Load offsets from a JSON file.

        Raises:
            ValueError: If an entry lacks ``col_start`` or ``row_start``.
        """
        with open(filepath, 'r') as f:
            data = json.load(f)

        offsets = {}
        for name, entry in data.items():
            try:
                offsets[name] = (entry['col_start'], entry['row_start'])
            except (KeyError, TypeError):
                raise ValueError(
                    "Config entry {!r} in {} needs col_start and "
                    "row_start".format(name, filepath))
        log.info("Loaded %d DUN offsets from %s", len(offsets), filepath)
        return cls(offsets, use_defaults)

    def get_start(self, dun_name):
        """
        Return ``(col_start, row_start)`` for *dun_name*.

        The full relative path is tried first, then the bare file name.
        Unknown files start at ``(0, 0)``.
        """
        key = _key(dun_name)
        if key in self._offsets:
            return self._offsets[key]
        return self._offsets.get(posixpath.basename(key), (0, 0))

    def get_col_start(self, dun_name):
        return self.get_start(dun_name)[0]

    def get_row_start(self, dun_name):
        return self.get_start(dun_name)[1]
