"""
Palette quantization - maps image pixels onto the server color palette.

A pixel is painted only if it is opaque enough and not near-white
background. Paintable pixels are mapped to the palette entry at the smallest
Euclidean RGB distance; on a tie the entry met first in palette order wins.
"""

import os
import json
import logging
from collections import namedtuple

import numpy as np

logger = logging.getLogger(__name__)

# Pixels with alpha below this value are transparent and never painted
TRANSPARENCY_THRESHOLD = 100

# Pixels with all of r, g, b at or above this value are background
WHITE_THRESHOLD = 245

# Rows quantized per numpy batch, keeps the distance matrix small
QUANTIZE_ROWS_PER_BATCH = 64

PaletteEntry = namedtuple("PaletteEntry", ["id", "rgb"])


def is_paintable(pixel):
    """Check a (r, g, b, a) sample against the paintability predicate"""
    r, g, b, a = pixel
    if a < TRANSPARENCY_THRESHOLD:
        return False
    if r >= WHITE_THRESHOLD and g >= WHITE_THRESHOLD and b >= WHITE_THRESHOLD:
        return False
    return True


def color_distance(color1, color2):
    """Euclidean distance between two RGB colors"""
    r1, g1, b1 = color1[0], color1[1], color1[2]
    r2, g2, b2 = color2[0], color2[1], color2[2]
    return ((r2 - r1) ** 2 + (g2 - g1) ** 2 + (b2 - b1) ** 2) ** 0.5


def find_closest_color(rgb, palette):
    """Return the id of the palette entry closest to rgb

    Linear scan; a later entry replaces the current best only when strictly
    closer, so ties resolve to the first entry in palette order.

    Returns:
        int or None: palette id, or None if the palette is empty
    """
    closest_id = None
    min_distance = float('inf')

    for entry in palette:
        distance = color_distance(rgb, entry.rgb)
        if distance < min_distance:
            min_distance = distance
            closest_id = entry.id

    return closest_id


def quantize_pixel(pixel, palette):
    """Quantize one (r, g, b, a) sample, None means skip"""
    if not palette or not is_paintable(pixel):
        return None
    return find_closest_color(pixel[:3], palette)


def paintable_mask(pixels):
    """Boolean HxW mask of paintable pixels for an HxWx4 RGBA array"""
    pixels = np.asarray(pixels)
    opaque = pixels[..., 3] >= TRANSPARENCY_THRESHOLD
    white = np.all(pixels[..., :3] >= WHITE_THRESHOLD, axis=-1)
    return opaque & ~white


def quantize_pixels(pixels, palette):
    """Quantize a whole HxWx4 RGBA array

    Returns:
        numpy.ndarray: HxW int32 array of palette ids, -1 where the pixel
        is skipped (also everywhere when the palette is empty)
    """
    pixels = np.asarray(pixels)
    height, width = pixels.shape[:2]
    result = np.full((height, width), -1, dtype=np.int32)
    if not palette or height == 0 or width == 0:
        return result

    ids = np.array([entry.id for entry in palette], dtype=np.int32)
    colors = np.array([entry.rgb for entry in palette], dtype=np.int32)
    mask = paintable_mask(pixels)

    for start in range(0, height, QUANTIZE_ROWS_PER_BATCH):
        stop = min(start + QUANTIZE_ROWS_PER_BATCH, height)
        rgb = pixels[start:stop, :, :3].astype(np.int32)
        # (rows, width, palette) squared distances; argmin keeps the first minimum
        diff = rgb[:, :, None, :] - colors[None, None, :, :]
        distances = np.einsum('ijkl,ijkl->ijk', diff, diff)
        nearest = ids[np.argmin(distances, axis=-1)]
        result[start:stop] = np.where(mask[start:stop], nearest, -1)

    return result


def parse_palette(entries):
    """Build a palette from color-picker entries

    Each entry is a dict with "id", "rgb" and an optional "locked" flag.
    Locked entries are not available to this account and are dropped.
    """
    palette = []
    seen = set()
    for entry in entries:
        if entry.get("locked"):
            continue
        color_id = int(entry["id"])
        if color_id in seen:
            continue
        rgb = tuple(int(c) for c in entry.get("rgb") or (0, 0, 0))[:3]
        if len(rgb) < 3:
            rgb = (0, 0, 0)
        seen.add(color_id)
        palette.append(PaletteEntry(color_id, rgb))
    logger.info(f"Captured palette with {len(palette)} available colors")
    return palette


def load_palette(palette_path):
    """Load a palette from a JSON or CSV file

    JSON: [{"id": 1, "rgb": [0, 0, 0]}, ...]
    CSV: one "id,r,g,b" row per color
    """
    ext = os.path.splitext(palette_path)[1].lower()

    if ext == '.json':
        with open(palette_path, 'r') as f:
            return parse_palette(json.load(f))
    elif ext == '.csv':
        entries = []
        with open(palette_path, 'r') as f:
            for line in f:
                parts = line.strip().split(',')
                if len(parts) >= 4 and parts[0].strip().isdigit():
                    entries.append({
                        "id": int(parts[0]),
                        "rgb": [int(parts[1]), int(parts[2]), int(parts[3])],
                    })
        return parse_palette(entries)
    else:
        raise ValueError(f"Unsupported palette file format: {ext}")
