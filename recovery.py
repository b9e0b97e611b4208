"""
Token recovery after the server rejects a paint as unauthorized.

The orchestrator replays the few UI interactions a person would do to make
the host page paint once more, and waits for the Token Capture observer to
see the fresh token in that traffic. It only talks to the page through the
RecoveryUI capability interface.
"""

import logging
from enum import Enum

logger = logging.getLogger(__name__)

RECOVERY_MIN_CHARGES = 2
CHARGE_CHECK_INTERVAL = 60
TOKEN_CAPTURE_WAIT = 20
TOKEN_POLL_INTERVAL = 0.5
UI_STEP_DELAY = 0.5


class RecoveryUI:
    """Interactions needed to make the host page request a fresh token

    Every method is a best-effort probe and returns False when the control
    it needs is missing. The sequence assumes the page shows exactly one
    frontmost confirmation control at each step; if the page changes shape
    the probes miss silently and recovery ends waiting for a token.
    """

    def trigger_primary_action(self):
        """Invoke the main Paint control"""
        raise NotImplementedError

    def wait_ready(self):
        """Wait for the Paint control to become enabled"""
        raise NotImplementedError

    def select_neutral_option(self):
        """Pick the no-op (transparent) color"""
        raise NotImplementedError

    def focus_surface(self):
        """Focus the drawing canvas"""
        raise NotImplementedError

    def simulate_confirm(self):
        """Send the confirmation key press to the canvas"""
        raise NotImplementedError

    def trigger_confirm(self):
        """Invoke the confirmation control"""
        raise NotImplementedError


class RecoveryResult(Enum):
    RECOVERED = "recovered"
    STOPPED = "stopped"
    MANUAL = "manual"


class RecoveryOrchestrator:
    def __init__(self, token, limiter, ui, scheduler, status=None, auto_recovery=True,
                 min_charges=RECOVERY_MIN_CHARGES, charge_check_interval=CHARGE_CHECK_INTERVAL,
                 token_wait=TOKEN_CAPTURE_WAIT, step_delay=UI_STEP_DELAY):
        self.token = token
        self.limiter = limiter
        self.ui = ui
        self.scheduler = scheduler
        self.status = status
        self.auto_recovery = auto_recovery
        self.min_charges = min_charges
        self.charge_check_interval = charge_check_interval
        self.token_wait = token_wait
        self.step_delay = step_delay

    def _emit(self, key, type="default", **params):
        if self.status:
            self.status.emit(key, type, **params)

    def recover(self, should_stop=None):
        """Obtain a new token

        Returns:
            RecoveryResult: RECOVERED once a token is present again, STOPPED
            if the stop signal was seen while waiting, MANUAL if the
            operator has to act
        """
        should_stop = should_stop or (lambda: False)
        self.token.clear()
        # The rejected paint may or may not have spent a charge
        self.limiter.refresh()

        if not self.auto_recovery:
            self._emit("manual_action_required", "error", reason="auto_recovery_disabled")
            return RecoveryResult.MANUAL

        self._emit("token_expired", "warning")

        result = self._wait_for_charges(should_stop)
        if result is not None:
            return result

        self._run_interaction()
        if should_stop() and not self.token.present:
            return RecoveryResult.STOPPED

        self._emit("waiting_token")
        self.scheduler.wait_until(lambda: self.token.present or should_stop(), self.token_wait, TOKEN_POLL_INTERVAL)
        if self.token.present:
            logger.info("Token recovered")
            return RecoveryResult.RECOVERED
        if should_stop():
            return RecoveryResult.STOPPED

        self._emit("manual_action_required", "error", reason="token_not_captured")
        return RecoveryResult.MANUAL

    def _wait_for_charges(self, should_stop):
        """Poll until enough charges exist for a recovery attempt

        Returns None to continue recovery, or a final RecoveryResult.
        """
        ledger = self.limiter.ledger
        if ledger.count >= self.min_charges:
            return None

        self._emit("waiting_charges", "warning", minimum=self.min_charges)
        while ledger.count < self.min_charges:
            self.scheduler.sleep(self.charge_check_interval)
            self.limiter.refresh()
            # Someone painted by hand meanwhile
            if self.token.present:
                return RecoveryResult.RECOVERED
            if should_stop():
                return RecoveryResult.STOPPED
        return None

    def _run_interaction(self):
        self._step("trigger_primary_action", self.ui.trigger_primary_action)
        self._step("wait_ready", self.ui.wait_ready, delay=False)

        self._emit("selecting_neutral")
        self._step("select_neutral_option", self.ui.select_neutral_option)

        self._step("focus_surface", self.ui.focus_surface, delay=False)
        self._step("simulate_confirm", self.ui.simulate_confirm)

        self._emit("confirming_paint")
        self._step("trigger_confirm", self.ui.trigger_confirm, delay=False)

    def _step(self, name, action, delay=True):
        try:
            found = action()
        except Exception as e:
            logger.warning(f"Recovery step {name} raised: {e}")
            found = False
        if found is False:
            logger.debug(f"Recovery step {name} skipped, control not found")
        if delay:
            self.scheduler.sleep(self.step_delay)
        return found
