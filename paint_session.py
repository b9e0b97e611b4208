"""
AutoPaint - wires the painting engine together for one process run.

Owns the shared token, charge ledger, transport observers and the paint
queue, and exposes the operations the presentation layer triggers: load or
replace the image, capture palette and position, paint, stop.
"""

import logging

import numpy as np

from app_logging import error_handler
from charges import ChargeLedger, RateLimiter
from errors import PreconditionError
from paint_queue import PaintQueue, QueueState, RunContext
from palette import load_palette, paintable_mask, parse_palette, PaletteEntry
from recovery import RecoveryOrchestrator, TOKEN_POLL_INTERVAL
from scheduler import SystemScheduler
from settings import Settings
from source_image import SourceImage
from status import StatusReporter
from token_capture import AnchorCapture, AuthToken, PlacementAnchor, TokenCapture
from wplace_api import Transport, WPlaceClient

logger = logging.getLogger(__name__)

ANCHOR_CAPTURE_TIMEOUT = 120


class AutoPaint:
    def __init__(self, settings=None, transport=None, scheduler=None, ui=None, status=None):
        self.settings = settings or Settings()
        self.status = status or StatusReporter(self.settings.language)
        self.scheduler = scheduler or SystemScheduler()
        self.transport = transport or Transport()
        self.client = WPlaceClient(self.transport, self.settings.backend_url)
        self.ui = ui

        self.token = AuthToken()
        self.ledger = ChargeLedger()
        self.limiter = RateLimiter(self.ledger, self.client, self.scheduler, self.status)

        self.token_capture = TokenCapture(self.token, self.status).attach(self.transport)
        self.token_capture.add_listener(self._on_token)
        self.anchor_capture = AnchorCapture(self._on_anchor, self.status).attach(self.transport)

        self.image = None
        self.palette = []
        self.anchor = None
        self.queue = None
        self._resume_requested = False
        self._stopped = False

        if self.settings.anchor:
            self.set_anchor(PlacementAnchor.parse(self.settings.anchor))

    @property
    def running(self):
        return self.queue is not None and self.queue.state == QueueState.RUNNING

    # Image ------------------------------------------------------------

    @error_handler
    def load_image(self, source):
        """Load image from file path, URL, or BytesIO object

        Returns:
            SourceImage or None if loading failed
        """
        image = SourceImage.load(source)
        resolution = float(self.settings.resolution or 1.0)
        if resolution != 1.0:
            image = image.scale(resolution)
        self.set_image(image)
        return image

    def set_image(self, image):
        """Use image for painting; replaces any previous image and its progress"""
        self.image = image
        if self.queue is not None:
            # Applied by the queue at its next iteration
            self.queue.replace_image(image)
        else:
            total = int(np.count_nonzero(paintable_mask(image.pixels)))
            self.status.emit("image_loaded", "success", width=image.width, height=image.height, total=total)

    @error_handler
    def resize_image(self, width, height):
        if self.image is None:
            raise ValueError("No image loaded to resize")
        image = self.image.resize(width, height)
        self.set_image(image)
        return image

    # Palette ----------------------------------------------------------

    def set_palette(self, palette):
        """Use palette entries (PaletteEntry or color-picker dicts)

        A new palette discards the progress of a paused or failed run, the
        quantized colors of the old one no longer apply.
        """
        if self.running:
            raise RuntimeError("Palette cannot change while painting")
        palette = list(palette or [])
        if palette and not isinstance(palette[0], PaletteEntry):
            palette = parse_palette(palette)
        if not palette:
            self.status.emit("no_colors", "error")
            return False
        self.palette = palette
        self.queue = None
        self.status.emit("colors_found", "success", count=len(palette))
        return True

    @error_handler
    def load_palette(self, palette_path):
        return self.set_palette(load_palette(palette_path))

    # Placement anchor -------------------------------------------------

    def set_anchor(self, anchor):
        if self.running:
            raise RuntimeError("Placement anchor cannot change while painting")
        self.anchor = anchor
        # Progress belongs to the old position
        self.queue = None

    def _on_anchor(self, anchor):
        self.set_anchor(anchor)

    def capture_anchor(self, timeout=ANCHOR_CAPTURE_TIMEOUT):
        """Wait for the reference pixel to be painted by hand

        Returns:
            PlacementAnchor or None on timeout
        """
        self.anchor_capture.arm()
        captured = self.scheduler.wait_until(
            lambda: self.anchor_capture.anchor is not None or self._stopped,
            timeout, TOKEN_POLL_INTERVAL,
        )
        self.anchor_capture.disarm()
        if not captured or self.anchor_capture.anchor is None:
            self.status.emit("position_timeout", "error")
            return None
        return self.anchor

    # Painting ---------------------------------------------------------

    def refresh_charges(self):
        return self.limiter.refresh()

    def build_queue(self):
        context = RunContext(self.image, self.palette, self.anchor, self.ledger, self.token)
        recovery = RecoveryOrchestrator(
            self.token, self.limiter, self.ui, self.scheduler, self.status,
            auto_recovery=bool(self.settings.auto_recovery) and self.ui is not None,
        )
        return PaintQueue(context, self.client, self.limiter, recovery, self.scheduler, self.status)

    def paint(self, wait_for_manual=True):
        """Run the queue until it completes, is stopped or fails

        When recovery needs the operator and wait_for_manual is set, waits
        for a token to be captured from manual painting and resumes.

        Returns:
            QueueState
        """
        self._stopped = False
        if self.queue is None:
            self.queue = self.build_queue()
        # Stops from here on are kept across resume passes
        self.queue.clear_stop()
        if self._can_start():
            self.refresh_charges()

        while True:
            self._resume_requested = False
            state = self.queue.run()
            if state != QueueState.FAILED or not self.queue.context.awaiting_token:
                return state
            if not wait_for_manual or not self._wait_for_resume():
                return state
            logger.info("Token observed, resuming queue")

    def _can_start(self):
        try:
            self.queue.check_preconditions()
        except PreconditionError:
            # run() reports it without touching the network
            return False
        return True

    def _wait_for_resume(self):
        while not (self._resume_requested or self._stopped):
            self.scheduler.sleep(TOKEN_POLL_INTERVAL)
        return self._resume_requested and not self._stopped

    def _on_token(self, token):
        if self.queue is not None and self.queue.context.awaiting_token:
            self._resume_requested = True

    def stop(self):
        """Stop signal from the operator"""
        self._stopped = True
        if self.queue is not None:
            self.queue.stop()

    def progress(self):
        """(painted, total) for the current run"""
        if self.queue is None:
            return 0, 0
        return self.queue.context.painted, self.queue.context.total
