"""
Frame set decoding seam.

The compositor never decodes CEL data itself.  It asks a *frame decoder*
for the palettes an image can be rendered with and for the decoded frames
of one (image, palette) pair.  Any object with these two methods works::

    palettes(image_name)              -> list of palette paths
    decode_all(image_name, palette)   -> list of Pillow images

:class:`PngFrameDecoder` serves frames that an external CEL decoder has
already written out as PNG files:

    <frames_dir>/<image stem>/<palette stem>/0000.png
    <frames_dir>/<image stem>/<palette stem>/0001.png
    ...

An optional ``<frames_dir>/<image stem>/palettes.json`` lists the full
palette paths (e.g. ``["levels/l1data/l1.pal"]``); without it the palette
stems found on disk are used.
"""

import json
import os
import posixpath
import re
import logging

from .errors import ResourceError

log = logging.getLogger(__name__)

try:
    from PIL import Image
except ImportError:
    raise ImportError(
        "Pillow is required for frame decoding.  "
        "Install with: pip install Pillow"
    )

_FRAME_RE = re.compile(r'^(\d+)\.png$', re.IGNORECASE)


def _stem(path):
    return posixpath.splitext(posixpath.basename(path.replace("\\", "/")))[0]


class PngFrameDecoder(object):
    """Frame decoder backed by pre-decoded PNG frames on disk."""

    def __init__(self, frames_dir):
        if not os.path.isdir(frames_dir):
            raise FileNotFoundError(
                "Frames directory not found: {}".format(frames_dir))
        self.frames_dir = frames_dir

    def _image_dir(self, image_name):
        return os.path.join(self.frames_dir, _stem(image_name))

    def palettes(self, image_name):
        """
        Return the palette paths *image_name* has frames for.

        Raises:
            ResourceError: If no frames exist for *image_name*.
        """
        image_dir = self._image_dir(image_name)
        if not os.path.isdir(image_dir):
            raise ResourceError(
                "No decoded frames for {} in {}".format(
                    image_name, self.frames_dir))

        listing = os.path.join(image_dir, 'palettes.json')
        if os.path.isfile(listing):
            with open(listing, 'r') as f:
                return list(json.load(f))

        return sorted(entry for entry in os.listdir(image_dir)
                      if os.path.isdir(os.path.join(image_dir, entry)))

    def decode_all(self, image_name, palette_path):
        """
        Load every frame of *image_name* rendered with *palette_path*.

        Frames are returned in frame-number order.

        Raises:
            ResourceError: If the frame directory is missing, empty, or has
                           a gap in its frame numbering.
        """
        pal_dir = os.path.join(self._image_dir(image_name), _stem(palette_path))
        if not os.path.isdir(pal_dir):
            raise ResourceError(
                "No frames for {} with palette {}".format(
                    image_name, palette_path))

        numbered = []
        for filename in os.listdir(pal_dir):
            match = _FRAME_RE.match(filename)
            if match:
                numbered.append((int(match.group(1)), filename))
        numbered.sort()

        if not numbered:
            raise ResourceError("Frame directory {} is empty".format(pal_dir))
        for expected, (frame_num, filename) in enumerate(numbered):
            if frame_num != expected:
                raise ResourceError(
                    "Missing frame {} in {}".format(expected, pal_dir))

        frames = []
        for _, filename in numbered:
            path = os.path.join(pal_dir, filename)
            try:
                with Image.open(path) as img:
                    frames.append(img.convert('RGBA'))
            except OSError as e:
                raise ResourceError(
                    "Unable to decode frame {}: {}".format(path, e))

        log.debug("Decoded %d frames for %s (%s)",
                  len(frames), image_name, palette_path)
        return frames
