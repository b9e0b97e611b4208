"""Shared fakes for the painting engine tests.

Time is simulated: FakeScheduler advances a virtual clock on sleep() and
runs callbacks registered with call_at() when their time is reached.
"""

import sys
import json
from pathlib import Path
from collections import namedtuple
from unittest.mock import MagicMock

import numpy as np
import pytest

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from charges import ChargeInfo, ChargeLedger, RateLimiter
from paint_queue import PaintQueue, RunContext
from palette import PaletteEntry
from recovery import RecoveryOrchestrator, RecoveryUI
from scheduler import Scheduler
from source_image import SourceImage
from status import StatusReporter
from token_capture import AuthToken, PlacementAnchor, TokenCapture
from wplace_api import Exchange, PaintResult, Transport

PALETTE = [PaletteEntry(1, (0, 0, 0)), PaletteEntry(2, (255, 0, 0))]
ANCHOR = PlacementAnchor(100, 200, 0, 0)
PAINT_URL = "https://backend.wplace.live/s0/pixel/100/200"

PaintCall = namedtuple("PaintCall", ["region_x", "region_y", "x", "y", "color_id", "token"])


def charges(count, max_charges=80, cooldown_ms=30000):
    return ChargeInfo(count, max_charges, cooldown_ms, "tester", 1)


def make_image(width, height, color=(0, 0, 0, 255)):
    pixels = np.zeros((height, width, 4), dtype=np.uint8)
    pixels[:, :] = color
    return SourceImage(pixels, name=f"test_{width}x{height}")


def paint_exchange(token, coords=(0, 0), status=200, url=PAINT_URL, painted=1):
    body = json.dumps({"coords": list(coords), "colors": [0], "t": token})
    return Exchange("POST", url, body, status, {"painted": painted})


class FakeScheduler(Scheduler):
    def __init__(self):
        self.time = 0.0
        self.sleeps = []
        self._timers = []

    def now(self):
        return self.time

    def call_at(self, when, callback):
        """Run callback once the virtual clock reaches when"""
        self._timers.append((when, callback))
        self._timers.sort(key=lambda timer: timer[0])

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        target = self.time + max(0, seconds)
        while self._timers and self._timers[0][0] <= target:
            when, callback = self._timers.pop(0)
            self.time = max(self.time, when)
            callback()
        self.time = target


class FakeClient:
    """Scripted painting client

    paint_results are returned in order, PAINTED once exhausted. The last
    charge answer repeats forever.
    """

    def __init__(self, paint_results=None, charge_answers=None):
        self.paint_results = list(paint_results or [])
        self.charge_answers = list(charge_answers or [charges(80)])
        self.paint_calls = []
        self.charge_queries = 0
        self.on_paint = None

    def paint_pixel(self, region_x, region_y, x, y, color_id, token):
        self.paint_calls.append(PaintCall(region_x, region_y, x, y, color_id, token))
        if self.on_paint:
            self.on_paint(x, y)
        if self.paint_results:
            result = self.paint_results.pop(0)
            if isinstance(result, Exception):
                raise result
            return result
        return PaintResult.PAINTED

    def get_charges(self):
        self.charge_queries += 1
        if len(self.charge_answers) > 1:
            return self.charge_answers.pop(0)
        return self.charge_answers[0]


class FakeRecoveryUI(RecoveryUI):
    """Records the interaction; on_confirm simulates the page painting"""

    def __init__(self, on_confirm=None, missing=(), broken=()):
        self.calls = []
        self.on_confirm = on_confirm
        self.missing = set(missing)
        self.broken = set(broken)

    def _record(self, name):
        self.calls.append(name)
        if name in self.broken:
            raise RuntimeError(f"{name} exploded")
        return name not in self.missing

    def trigger_primary_action(self):
        return self._record("trigger_primary_action")

    def wait_ready(self):
        return self._record("wait_ready")

    def select_neutral_option(self):
        return self._record("select_neutral_option")

    def focus_surface(self):
        return self._record("focus_surface")

    def simulate_confirm(self):
        return self._record("simulate_confirm")

    def trigger_confirm(self):
        found = self._record("trigger_confirm")
        if found and self.on_confirm:
            self.on_confirm()
        return found


class RecordingStatus(StatusReporter):
    def __init__(self, language="en"):
        super().__init__(language)
        self.events = []
        self.add_listener(self.events.append)

    def keys(self):
        return [event.key for event in self.events]

    def params(self, key):
        return [event.params for event in self.events if event.key == key]


class PaintHarness:
    """Queue wired to fakes, with a transport for observed page traffic"""

    def __init__(self, image, palette=PALETTE, anchor=ANCHOR, token="token-1",
                 paint_results=None, charge_answers=None, auto_recovery=True, recovery_token=None):
        self.scheduler = FakeScheduler()
        self.status = RecordingStatus()
        self.client = FakeClient(paint_results, charge_answers)
        self.transport = Transport(session=MagicMock())
        self.token = AuthToken(token)
        self.token_capture = TokenCapture(self.token, self.status).attach(self.transport)
        self.ledger = ChargeLedger()
        self.limiter = RateLimiter(self.ledger, self.client, self.scheduler, self.status)
        self.limiter.refresh()

        on_confirm = None
        if recovery_token:
            on_confirm = lambda: self.transport.notify(paint_exchange(recovery_token))
        self.ui = FakeRecoveryUI(on_confirm=on_confirm)
        self.recovery = RecoveryOrchestrator(
            self.token, self.limiter, self.ui, self.scheduler, self.status, auto_recovery=auto_recovery
        )
        self.context = RunContext(image, palette, anchor, self.ledger, self.token)
        self.queue = PaintQueue(self.context, self.client, self.limiter, self.recovery, self.scheduler, self.status)

    def painted_positions(self):
        return [(call.x, call.y) for call in self.client.paint_calls]


@pytest.fixture
def scheduler():
    return FakeScheduler()


@pytest.fixture
def status():
    return RecordingStatus()


@pytest.fixture
def transport():
    return Transport(session=MagicMock())
