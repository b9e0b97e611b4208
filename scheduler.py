"""
Suspension points for the single-threaded run loop.

Every wait in the engine (cooldown sleep, charge polling, token polling,
UI probe delays) goes through a Scheduler so tests can run on simulated time.
"""

import time


class Scheduler:
    """Cooperative clock: all waits yield through sleep()"""

    def now(self):
        """Current time in seconds (monotonic)"""
        raise NotImplementedError

    def sleep(self, seconds):
        raise NotImplementedError

    def wait_until(self, predicate, timeout, interval=0.5):
        """Suspend until predicate() is true or timeout seconds pass

        Returns:
            bool: True if the predicate became true, False on timeout
        """
        deadline = self.now() + timeout
        while True:
            if predicate():
                return True
            remaining = deadline - self.now()
            if remaining <= 0:
                return False
            self.sleep(min(interval, remaining))


class SystemScheduler(Scheduler):
    """Scheduler backed by the real clock"""

    def now(self):
        return time.monotonic()

    def sleep(self, seconds):
        if seconds > 0:
            time.sleep(seconds)
