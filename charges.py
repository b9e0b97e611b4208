"""
Charge ledger and rate limiter.

The server grants a pool of charges; each paint spends one and the pool
regenerates on a cooldown. Local state is only trusted between a refresh()
and the next decrement: replenishment always comes from a fresh query.
"""

import math
import logging
from collections import namedtuple

logger = logging.getLogger(__name__)

COOLDOWN_DEFAULT_MS = 31000
MIN_COOLDOWN_MS = 1000
DEFAULT_MAX_CHARGES = 80


class ChargeInfo(namedtuple("ChargeInfo", ["count", "max", "cooldown_ms", "name", "level"])):
    """Answer of the charge query; name and level are display-only"""
    __slots__ = ()

    @classmethod
    def from_payload(cls, data):
        """Parse the /me response body, None if it carries no charges"""
        if not isinstance(data, dict) or not isinstance(data.get("charges"), dict):
            return None
        charges = data["charges"]
        level = data.get("level")
        return cls(
            count=int(math.floor(charges.get("count") or 0)),
            max=int(math.floor(charges.get("max") or DEFAULT_MAX_CHARGES)),
            cooldown_ms=charges.get("cooldownMs") or COOLDOWN_DEFAULT_MS,
            name=data.get("name"),
            level=int(math.floor(level)) if level is not None else None,
        )


class ChargeLedger:
    """Local view of the account's charges, 0 <= count <= max"""

    def __init__(self, count=0, max_charges=DEFAULT_MAX_CHARGES, cooldown_ms=COOLDOWN_DEFAULT_MS):
        self.max = max(0, int(max_charges))
        self.count = min(max(0, int(count)), self.max)
        self.cooldown_ms = cooldown_ms
        self.name = None
        self.level = None

    def __repr__(self):
        return f"ChargeLedger(count={self.count}, max={self.max}, cooldown_ms={self.cooldown_ms})"

    def update(self, info):
        """Overwrite local state with an authoritative ChargeInfo"""
        self.max = max(0, info.max)
        self.count = min(max(0, info.count), self.max)
        self.cooldown_ms = info.cooldown_ms
        self.name = info.name
        self.level = info.level

    def consume(self):
        if self.count < 1:
            raise ValueError("No charge available to consume")
        self.count -= 1


class RateLimiter:
    """Gates paint attempts on the charge ledger

    Single owner per run: this is a sequencing primitive, not a semaphore.
    """

    def __init__(self, ledger, client, scheduler, status=None):
        self.ledger = ledger
        self.client = client
        self.scheduler = scheduler
        self.status = status

    def refresh(self):
        """Re-query charges from the server

        Returns:
            bool: True if the ledger was updated, False if the query failed
        """
        info = self.client.get_charges()
        if info is None:
            logger.warning(f"Charge query failed, keeping {self.ledger!r}")
            return False
        self.ledger.update(info)
        logger.debug(f"Charges refreshed: {self.ledger!r}")
        return True

    def wait_seconds(self):
        """Current advertised cooldown, bounded below"""
        cooldown_ms = self.ledger.cooldown_ms or COOLDOWN_DEFAULT_MS
        return max(cooldown_ms, MIN_COOLDOWN_MS) / 1000.0

    def acquire(self, should_stop=None):
        """Block until a charge is available, then spend it

        Each wait uses the cooldown reported by the latest refresh. The
        stop predicate is checked after every completed wait.

        Returns:
            bool: True once a charge was taken, False if stopped first
        """
        while self.ledger.count < 1:
            wait = self.wait_seconds()
            logger.info(f"No charges. Waiting {wait:.0f}s")
            if self.status:
                self.status.emit("no_charges", "warning", seconds=int(math.ceil(wait)))
            self.scheduler.sleep(wait)
            self.refresh()
            if should_stop and should_stop():
                return False

        self.ledger.consume()
        return True
