"""
Resumable paint queue.

Walks the quantized image in row-major order from a stored cursor and drives
one pixel per iteration through the rate limiter and the painting client.
A stop signal is observed once per iteration; resuming continues at the
stored cursor without rescanning finished pixels.
"""

import logging
import threading
from enum import Enum

from errors import PreconditionError, UnrecoverableError
from recovery import RecoveryResult
from source_image import Cursor, build_color_map, count_jobs, next_job
from wplace_api import PaintResult

logger = logging.getLogger(__name__)

# Emit a progress status and reconcile charges every N confirmed paints
PROGRESS_INTERVAL = 10

# Pause before retrying a pixel after a transient failure
TRANSIENT_RETRY_DELAY = 1.0


class QueueState(Enum):
    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_STATES = (QueueState.PAUSED, QueueState.COMPLETED, QueueState.FAILED)


class RunContext:
    """All mutable state of one painting run

    Token and ledger are shared process-wide; image, cursor and counters
    belong to this context and are replaced with it on image change.
    """

    def __init__(self, image, palette, anchor, ledger, token):
        self.image = image
        self.palette = list(palette or [])
        self.anchor = anchor
        self.ledger = ledger
        self.token = token
        self.cursor = Cursor.start()
        self.painted = 0
        self.awaiting_token = False
        if image is not None:
            self.color_map = build_color_map(image, self.palette)
            self.total = count_jobs(self.color_map)
        else:
            self.color_map = None
            self.total = 0

    def __repr__(self):
        return (f"RunContext(image={self.image!r}, anchor={self.anchor}, cursor={tuple(self.cursor)}, "
                f"painted={self.painted}/{self.total}, token={self.token!r})")

    @property
    def remaining(self):
        return max(0, self.total - self.painted)

    def replace_image(self, image):
        """Fresh context for a new image: progress is discarded"""
        return RunContext(image, self.palette, self.anchor, self.ledger, self.token)


class PaintQueue:
    def __init__(self, context, client, limiter, recovery, scheduler, status=None,
                 progress_interval=PROGRESS_INTERVAL, retry_delay=TRANSIENT_RETRY_DELAY):
        self.context = context
        self.client = client
        self.limiter = limiter
        self.recovery = recovery
        self.scheduler = scheduler
        self.status = status
        self.progress_interval = progress_interval
        self.retry_delay = retry_delay
        self.state = QueueState.IDLE
        self._stop = threading.Event()
        self._pending_image = None

    def _emit(self, key, type="default", **params):
        if self.status:
            self.status.emit(key, type, **params)

    def stop(self):
        """External stop signal, honored at the next iteration boundary"""
        self._stop.set()

    def stop_requested(self):
        return self._stop.is_set()

    def clear_stop(self):
        """Forget an earlier stop signal, called by whoever starts the run"""
        self._stop.clear()

    def replace_image(self, image):
        """Swap the image at the next iteration boundary"""
        self._pending_image = image

    def check_preconditions(self):
        """Raise PreconditionError unless the run can start"""
        context = self.context
        if context.image is None and self._pending_image is None:
            raise PreconditionError("missing_image")
        if not context.palette:
            raise PreconditionError("missing_palette")
        if context.anchor is None:
            raise PreconditionError("missing_anchor")

    def run(self):
        """Paint until completed, stopped or failed

        Returns:
            QueueState: PAUSED, COMPLETED or FAILED
        """
        self._apply_pending_image()
        try:
            self.check_preconditions()
        except PreconditionError as e:
            logger.error(f"Cannot start painting: {e}")
            self._emit("precondition", "error", reason=str(e))
            self.state = QueueState.FAILED
            return self.state

        context = self.context
        context.awaiting_token = False
        if context.cursor == Cursor.start():
            self._emit("start_painting", "success",
                       region_x=context.anchor.region_x, region_y=context.anchor.region_y)
        else:
            self._emit("resuming", x=context.cursor.x, y=context.cursor.y)

        self.state = QueueState.RUNNING
        logger.info(f"Queue running: {context!r}")
        while self.state == QueueState.RUNNING:
            try:
                self._iterate()
            except UnrecoverableError as e:
                logger.error(f"Painting cannot continue: {e}")
                self.context.awaiting_token = True
                self.state = QueueState.FAILED
            except Exception as e:
                # Same pixel is retried on the next pass
                logger.exception(f"Error in paint iteration: {e}")
                self._emit("paint_loop_error", "error")
                # A charge may have been spent before the error
                self.limiter.refresh()
                self.scheduler.sleep(self.retry_delay)

        logger.info(f"Queue finished in state {self.state.value}: {self.context!r}")
        return self.state

    def _apply_pending_image(self):
        image, self._pending_image = self._pending_image, None
        if image is None:
            return False
        self.context = self.context.replace_image(image)
        self._emit("image_replaced", width=image.width, height=image.height, total=self.context.total)
        return True

    def _iterate(self):
        self._apply_pending_image()
        context = self.context

        if self.stop_requested():
            self.state = QueueState.PAUSED
            self._emit("painting_stopped", "warning")
            return

        job = next_job(context.color_map, context.cursor)
        if job is None:
            context.cursor = Cursor.end(context.image.height)
            self.state = QueueState.COMPLETED
            self._emit("painting_complete", "success", painted=context.painted)
            return
        context.cursor = Cursor(job.x, job.y)

        if not context.token.present:
            self._recover()
            return

        if not self.limiter.acquire(self.stop_requested):
            return

        x, y = context.anchor.locate(job.x, job.y)
        result = self.client.paint_pixel(
            context.anchor.region_x, context.anchor.region_y, x, y, job.color_id, context.token.value
        )

        if result == PaintResult.PAINTED:
            context.painted += 1
            context.cursor = context.cursor.advance(context.image.width)
            if context.painted % self.progress_interval == 0:
                self.limiter.refresh()
                self._emit("progress", painted=context.painted, total=context.total,
                           charges=context.ledger.count)
        elif result == PaintResult.UNAUTHORIZED:
            self._recover()
        else:
            self._emit("paint_failed", "warning", x=job.x, y=job.y)
            self.limiter.refresh()
            self.scheduler.sleep(self.retry_delay)

    def _recover(self):
        """Hand over to recovery; the cursor stays on the failed pixel"""
        result = self.recovery.recover(self.stop_requested)
        if result == RecoveryResult.MANUAL:
            raise UnrecoverableError("no authorization token, paint a pixel manually to continue")
