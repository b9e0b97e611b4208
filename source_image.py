"""
Source images and the row-major pixel job stream.
"""

import os
import re
import logging
from io import BytesIO
from collections import namedtuple

import numpy as np
import requests
from PIL import Image

from palette import quantize_pixels

logger = logging.getLogger(__name__)

PixelJob = namedtuple("PixelJob", ["x", "y", "color_id"])


class Cursor(namedtuple("Cursor", ["x", "y"])):
    """Position (column x, row y) of the next pixel to attempt

    Cursor(0, height) is the terminal sentinel: the queue is exhausted.
    """
    __slots__ = ()

    def advance(self, width):
        """Position right after this one in row-major order"""
        if self.x + 1 < width:
            return Cursor(self.x + 1, self.y)
        return Cursor(0, self.y + 1)

    def is_done(self, height):
        return self.y >= height

    @classmethod
    def start(cls):
        return cls(0, 0)

    @classmethod
    def end(cls, height):
        return cls(0, height)


class SourceImage:
    """Immutable RGBA image, pixels stored as an HxWx4 uint8 array"""

    def __init__(self, pixels, name="image"):
        pixels = np.asarray(pixels, dtype=np.uint8)
        if pixels.ndim != 3 or pixels.shape[2] != 4:
            raise ValueError(f"Expected HxWx4 RGBA pixels, got shape {pixels.shape}")
        pixels = pixels.copy()
        pixels.flags.writeable = False
        self.pixels = pixels
        self.name = name

    @property
    def width(self):
        return self.pixels.shape[1]

    @property
    def height(self):
        return self.pixels.shape[0]

    @property
    def size(self):
        return self.width, self.height

    def __repr__(self):
        return f"SourceImage({self.name!r}, {self.width}x{self.height})"

    @classmethod
    def from_pil(cls, image, name="image"):
        if image.mode != "RGBA":
            image = image.convert("RGBA")
        return cls(np.array(image), name=name)

    @classmethod
    def load(cls, source):
        """Load an image from a file path, an http(s) URL or a BytesIO object"""
        if isinstance(source, BytesIO):
            return cls.from_pil(Image.open(source), name="image_from_bytes")

        if not isinstance(source, str):
            raise TypeError("Unsupported source type. Must be a file path, URL, or BytesIO object.")

        if re.match(r'^https?://', source):
            headers = {
                'User-Agent': 'Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/124.0 Safari/537.36',
                'Accept': 'image/webp,image/apng,image/*,*/*;q=0.8',
            }
            try:
                response = requests.get(source, headers=headers, timeout=10)
            except requests.RequestException as e:
                raise ConnectionError(f"Network error while fetching image: {e}")

            if response.status_code != 200:
                raise ConnectionError(f"Failed to download image. Status code: {response.status_code}")

            content_type = response.headers.get('Content-Type', '')
            if not content_type.startswith('image/'):
                raise ValueError(f"URL does not point to an image. Content-Type: {content_type}")

            name = os.path.basename(source) or "image_from_url"
            return cls.from_pil(Image.open(BytesIO(response.content)), name=name)

        if not os.path.isfile(source):
            raise FileNotFoundError(f"Image file not found: {source}")

        with Image.open(source) as image:
            return cls.from_pil(image, name=os.path.basename(source))

    def to_pil(self):
        return Image.fromarray(np.array(self.pixels))

    def resize(self, width, height):
        """Return a new SourceImage resized to width x height"""
        if width < 1 or height < 1:
            raise ValueError(f"Invalid target size {width}x{height}")
        resized = self.to_pil().resize((int(width), int(height)), Image.LANCZOS)
        logger.info(f"Resized image to {width}x{height}")
        return SourceImage.from_pil(resized, name=self.name)

    def scale(self, factor):
        """Resize by a multiplier, keeping at least one pixel per side"""
        width = max(1, int(self.width * factor))
        height = max(1, int(self.height * factor))
        return self.resize(width, height)


def iter_jobs(color_map, cursor=None):
    """Yield PixelJobs in row-major order starting at cursor (inclusive)

    color_map is the HxW array from quantize_pixels; -1 entries are skipped.
    """
    height, width = color_map.shape[:2]
    cursor = cursor or Cursor.start()
    if cursor.is_done(height) or width == 0:
        return

    start = cursor.y * width + cursor.x
    flat = color_map.ravel()
    for index in np.flatnonzero(flat[start:] >= 0):
        position = start + int(index)
        y, x = divmod(position, width)
        yield PixelJob(x, y, int(flat[position]))


def next_job(color_map, cursor):
    """First job at or after cursor, or None when the image is exhausted"""
    return next(iter_jobs(color_map, cursor), None)


def count_jobs(color_map):
    """Number of paintable pixels in a quantized color map"""
    return int(np.count_nonzero(np.asarray(color_map) >= 0))


def build_color_map(image, palette):
    """Quantize a SourceImage against the palette"""
    color_map = quantize_pixels(image.pixels, palette)
    logger.info(f"Quantized {image!r}: {count_jobs(color_map)} paintable pixels")
    return color_map
