"""
Token and placement-anchor capture from observed paint traffic.

The engine never requests a token itself. It learns one only by watching
paint requests made by anyone: the engine, the host page, or a person
painting by hand in the same browser session.
"""

import logging
from collections import namedtuple

from wplace_api import PAINT_URL_PATTERN, HTTP_FORBIDDEN, is_paint_exchange

logger = logging.getLogger(__name__)


class PlacementAnchor(namedtuple("PlacementAnchor", ["region_x", "region_y", "origin_x", "origin_y"])):
    """Maps local image (0, 0) to a server region and intra-region offset"""
    __slots__ = ()

    def locate(self, x, y):
        """Intra-region coordinates for local pixel (x, y)"""
        return self.origin_x + x, self.origin_y + y

    @classmethod
    def parse(cls, text):
        """Parse "regionX,regionY,originX,originY" """
        parts = [int(p) for p in str(text).replace(" ", "").split(",")]
        if len(parts) != 4:
            raise ValueError(f"Anchor needs 4 comma separated integers, got {text!r}")
        return cls(*parts)


class AuthToken:
    """Ephemeral authorization token, lifetime of one process run"""

    def __init__(self, value=None):
        self.value = value

    @property
    def present(self):
        return bool(self.value)

    def set(self, value):
        self.value = value

    def clear(self):
        self.value = None

    def __repr__(self):
        return f"AuthToken({'present' if self.present else 'absent'})"


class TokenCapture:
    """Transport observer caching the token carried by paint requests

    Listeners registered with add_listener() are called with the new token
    every time one is captured.
    """

    pattern = PAINT_URL_PATTERN

    def __init__(self, token, status=None):
        self.token = token
        self.status = status
        self._listeners = []

    def add_listener(self, callback):
        self._listeners.append(callback)

    def attach(self, transport):
        transport.add_observer(self.pattern, self)
        return self

    def __call__(self, exchange):
        if not is_paint_exchange(exchange):
            return
        # A rejected exchange proves its token is stale
        if exchange.status == HTTP_FORBIDDEN:
            return

        payload = exchange.request_json()
        value = payload.get("t") if payload else None
        if not value or not isinstance(value, str):
            return

        is_new = value != self.token.value
        self.token.set(value)
        if not is_new:
            return

        logger.info("Token captured")
        if self.status:
            self.status.emit("token_captured", "success")
        for listener in list(self._listeners):
            listener(value)


class AnchorCapture:
    """Transport observer establishing the placement anchor

    Armed once; the first successful paint seen afterwards fixes the anchor
    and disarms the observer.
    """

    pattern = PAINT_URL_PATTERN

    def __init__(self, on_anchor=None, status=None):
        self.on_anchor = on_anchor
        self.status = status
        self.armed = False
        self.anchor = None

    def attach(self, transport):
        transport.add_observer(self.pattern, self)
        return self

    def arm(self):
        self.armed = True
        self.anchor = None
        if self.status:
            self.status.emit("select_position", "default")

    def disarm(self):
        self.armed = False

    def __call__(self, exchange):
        if not self.armed or not is_paint_exchange(exchange):
            return
        if not isinstance(exchange.payload, dict) or exchange.payload.get("painted") != 1:
            return

        match = PAINT_URL_PATTERN.search(exchange.url)
        payload = exchange.request_json()
        coords = payload.get("coords") if payload else None
        if not match or not isinstance(coords, list) or len(coords) < 2:
            return

        self.anchor = PlacementAnchor(int(match.group(1)), int(match.group(2)), int(coords[0]), int(coords[1]))
        self.armed = False
        logger.info(f"Placement anchor captured: {self.anchor}")
        if self.status:
            self.status.emit(
                "position_set", "success",
                region_x=self.anchor.region_x, region_y=self.anchor.region_y,
                x=self.anchor.origin_x, y=self.anchor.origin_y,
            )
        if self.on_anchor:
            self.on_anchor(self.anchor)
