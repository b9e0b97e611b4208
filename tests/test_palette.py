#!/usr/bin/env python3
"""Tests for palette quantization and palette loading.

Run with: pytest tests/test_palette.py -v
"""

import json

import numpy as np
import pytest

from conftest import PALETTE
from palette import (
    PaletteEntry,
    find_closest_color,
    is_paintable,
    load_palette,
    paintable_mask,
    parse_palette,
    quantize_pixel,
    quantize_pixels,
)

BLACK_WHITE = [PaletteEntry(1, (0, 0, 0)), PaletteEntry(2, (255, 255, 255))]


class TestPaintability:
    """Transparent and near-white pixels are skipped."""

    def test_dark_pixel_quantizes_to_black(self):
        assert quantize_pixel((10, 10, 10, 255), BLACK_WHITE) == 1

    def test_low_alpha_is_skipped(self):
        assert quantize_pixel((0, 0, 0, 50), BLACK_WHITE) is None

    def test_threshold_edges(self):
        assert is_paintable((0, 0, 0, 100))
        assert not is_paintable((0, 0, 0, 99))
        assert not is_paintable((245, 245, 245, 255))
        assert is_paintable((244, 245, 245, 255))

    def test_mask_matches_predicate(self):
        pixels = np.array([[
            (10, 10, 10, 255), (0, 0, 0, 50), (250, 250, 250, 255), (250, 10, 250, 255),
        ]], dtype=np.uint8)
        expected = [is_paintable(tuple(p)) for p in pixels[0]]
        assert paintable_mask(pixels)[0].tolist() == expected


class TestClosestColor:
    """Nearest palette entry by Euclidean RGB distance."""

    def test_deterministic(self):
        results = {find_closest_color((200, 30, 40), PALETTE) for _ in range(5)}
        assert results == {2}

    def test_tie_goes_to_first_entry(self):
        palette = [PaletteEntry(7, (0, 0, 0)), PaletteEntry(3, (20, 0, 0))]
        assert find_closest_color((10, 0, 0), palette) == 7
        assert find_closest_color((10, 0, 0), list(reversed(palette))) == 3

    def test_empty_palette(self):
        assert find_closest_color((1, 2, 3), []) is None
        assert quantize_pixel((1, 2, 3, 255), []) is None


class TestQuantizePixels:
    """Vectorized quantization agrees with the per-pixel path."""

    def test_matches_scalar_quantization(self):
        rng = np.random.RandomState(7)
        pixels = rng.randint(0, 256, size=(9, 13, 4)).astype(np.uint8)
        palette = [PaletteEntry(i, tuple(rng.randint(0, 256, size=3))) for i in range(1, 6)]

        color_map = quantize_pixels(pixels, palette)

        for y in range(pixels.shape[0]):
            for x in range(pixels.shape[1]):
                expected = quantize_pixel(tuple(int(c) for c in pixels[y, x]), palette)
                assert color_map[y, x] == (-1 if expected is None else expected)

    def test_ties_resolve_like_scalar(self):
        palette = [PaletteEntry(7, (0, 0, 0)), PaletteEntry(3, (20, 0, 0))]
        pixels = np.array([[(10, 0, 0, 255)]], dtype=np.uint8)
        assert quantize_pixels(pixels, palette)[0, 0] == 7

    def test_empty_palette_skips_everything(self):
        pixels = np.zeros((2, 2, 4), dtype=np.uint8)
        pixels[..., 3] = 255
        assert (quantize_pixels(pixels, []) == -1).all()


class TestPaletteLoading:
    """Palettes from the color picker and from files."""

    def test_locked_entries_dropped(self):
        palette = parse_palette([
            {"id": 1, "rgb": [0, 0, 0]},
            {"id": 2, "rgb": [60, 60, 60], "locked": True},
            {"id": 3, "rgb": [255, 0, 0], "locked": False},
            {"id": 3, "rgb": [1, 1, 1]},
        ])
        assert palette == [PaletteEntry(1, (0, 0, 0)), PaletteEntry(3, (255, 0, 0))]

    def test_load_json(self, tmp_path):
        path = tmp_path / "palette.json"
        path.write_text(json.dumps([{"id": 5, "rgb": [1, 2, 3]}, {"id": 6, "rgb": [4, 5, 6]}]))
        assert load_palette(str(path)) == [PaletteEntry(5, (1, 2, 3)), PaletteEntry(6, (4, 5, 6))]

    def test_load_csv_skips_header(self, tmp_path):
        path = tmp_path / "palette.csv"
        path.write_text("id,r,g,b\n1,0,0,0\n2,255,255,255\n")
        assert load_palette(str(path)) == BLACK_WHITE

    def test_unsupported_format(self, tmp_path):
        path = tmp_path / "palette.txt"
        path.write_text("1 0 0 0")
        with pytest.raises(ValueError):
            load_palette(str(path))
