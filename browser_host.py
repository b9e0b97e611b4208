"""
Host page adapter over a Playwright-driven browser.

The canvas site runs in a real browser window. Paint traffic the page makes
(including pixels painted by hand) is forwarded to the Transport observers,
the color picker provides the palette, and the recovery interactions are
performed on the page. The requests session borrows the browser cookies so
engine paints share the same account session.
"""

import time
import logging

from playwright.sync_api import sync_playwright, Error as PlaywrightError, TimeoutError as PlaywrightTimeoutError

from recovery import RecoveryUI
from scheduler import Scheduler
from wplace_api import Exchange, PAINT_URL_PATTERN, SITE_URL

logger = logging.getLogger(__name__)

MAIN_BUTTON_SELECTOR = 'button.btn.btn-primary.btn-lg, button.btn.btn-primary.sm\\:btn-xl'
FALLBACK_BUTTON_SELECTOR = 'button.btn-primary'
NEUTRAL_COLOR_SELECTOR = 'button#color-0'
CANVAS_SELECTOR = 'canvas'
PALETTE_SELECTOR = '[id^="color-"]'

MAIN_BUTTON_WAIT = 15
MAIN_BUTTON_ENABLE_WAIT = 30
NEUTRAL_COLOR_WAIT = 5
CANVAS_WAIT = 10
CONFIRM_BUTTON_WAIT = 10
PROBE_INTERVAL = 0.3

# Class fragments marking a button as busy or disabled
LOADING_FLAGS = (
    'disabled', 'loading', 'is-loading', 'btn-loading', 'btn--loading',
    'btn-disabled', 'opacity-50', 'spinner', 'busy', 'is-busy', 'is-disabled',
)

# Color picker buttons: id "color-<n>", background color, lock icon when unavailable
EXTRACT_PALETTE_JS = """
elements => elements.map(el => {
  const rgb = (el.style.backgroundColor.match(/\\d+/g) || ['0', '0', '0']).map(Number);
  return {
    id: parseInt(el.id.replace('color-', ''), 10),
    rgb: rgb.slice(0, 3),
    locked: !!el.querySelector('svg')
  };
}).filter(entry => !Number.isNaN(entry.id))
"""


class BrowserHost:
    def __init__(self, transport, site_url=SITE_URL, user_data_dir=None, headless=False):
        self.transport = transport
        self.site_url = site_url
        self.user_data_dir = user_data_dir
        self.headless = headless
        self._playwright = None
        self._browser = None
        self.context = None
        self.page = None

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def open(self):
        """Launch the browser and open the canvas site"""
        self._playwright = sync_playwright().start()
        chromium = self._playwright.chromium
        if self.user_data_dir:
            # Persistent profile keeps the login between runs
            self.context = chromium.launch_persistent_context(self.user_data_dir, headless=self.headless)
            self.page = self.context.pages[0] if self.context.pages else self.context.new_page()
        else:
            self._browser = chromium.launch(headless=self.headless)
            self.context = self._browser.new_context()
            self.page = self.context.new_page()

        self.page.on("response", self._on_response)
        logger.info(f"Opening {self.site_url}")
        self.page.goto(self.site_url)
        return self.page

    def close(self):
        for closer in (self.context, self._browser):
            if closer is None:
                continue
            try:
                closer.close()
            except PlaywrightError as e:
                logger.debug(f"Error closing browser: {e}")
        if self._playwright is not None:
            self._playwright.stop()
        self._playwright = self._browser = self.context = self.page = None

    def _on_response(self, response):
        request = response.request
        if request.method != "POST" or not PAINT_URL_PATTERN.search(request.url):
            return
        try:
            payload = response.json()
        except (PlaywrightError, ValueError):
            payload = None
        logger.debug(f"Page paint request {request.url} -> HTTP {response.status}")
        self.transport.notify(Exchange("POST", request.url, request.post_data, response.status, payload))

    def sync_session(self):
        """Copy browser cookies and user agent into the requests session"""
        session = self.transport.session
        for cookie in self.context.cookies():
            session.cookies.set(cookie["name"], cookie["value"], domain=cookie.get("domain"), path=cookie.get("path", "/"))
        session.headers["User-Agent"] = self.page.evaluate("() => navigator.userAgent")
        session.headers["Origin"] = self.site_url
        session.headers["Referer"] = self.site_url.rstrip("/") + "/"
        logger.debug("Browser session copied to HTTP client")

    def extract_palette(self):
        """Color picker entries as dicts with id, rgb and locked"""
        return self.page.eval_on_selector_all(PALETTE_SELECTOR, EXTRACT_PALETTE_JS)

    def scheduler(self):
        return PageScheduler(self.page)

    def recovery_ui(self):
        return PageRecoveryUI(self.page)


class PageScheduler(Scheduler):
    """Sleeps through the page so browser events keep being dispatched"""

    def __init__(self, page):
        self.page = page

    def now(self):
        return time.monotonic()

    def sleep(self, seconds):
        if seconds > 0:
            self.page.wait_for_timeout(seconds * 1000)


class PageRecoveryUI(RecoveryUI):
    def __init__(self, page):
        self.page = page

    def _is_clickable(self, locator):
        try:
            if not locator.is_visible() or not locator.is_enabled():
                return False
            if locator.get_attribute("aria-disabled") == "true":
                return False
            classes = (locator.get_attribute("class") or "").lower()
            return not any(flag in classes for flag in LOADING_FLAGS)
        except PlaywrightError:
            return False

    def _wait_clickable(self, locator, timeout):
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            if locator.count() and self._is_clickable(locator):
                return True
            self.page.wait_for_timeout(PROBE_INTERVAL * 1000)
        return False

    def _click(self, locator):
        try:
            locator.click(timeout=5000)
            return True
        except PlaywrightError as e:
            logger.debug(f"Click failed, dispatching event instead: {e}")
        try:
            locator.dispatch_event("click")
            return True
        except PlaywrightError as e:
            logger.warning(f"Could not click {locator}: {e}")
            return False

    def _main_button(self):
        return self.page.locator(MAIN_BUTTON_SELECTOR).first

    def trigger_primary_action(self):
        button = self._main_button()
        try:
            button.wait_for(state="visible", timeout=MAIN_BUTTON_WAIT * 1000)
        except PlaywrightTimeoutError:
            fallback = self.page.locator(FALLBACK_BUTTON_SELECTOR)
            if not fallback.count():
                return False
            button = fallback.last
        return self._click(button)

    def wait_ready(self):
        return self._wait_clickable(self._main_button(), MAIN_BUTTON_ENABLE_WAIT)

    def select_neutral_option(self):
        button = self.page.locator(NEUTRAL_COLOR_SELECTOR).first
        if not self._wait_clickable(button, NEUTRAL_COLOR_WAIT):
            return False
        return self._click(button)

    def focus_surface(self):
        canvas = self.page.locator(CANVAS_SELECTOR).first
        try:
            canvas.wait_for(state="attached", timeout=CANVAS_WAIT * 1000)
            canvas.evaluate("el => { el.setAttribute('tabindex', '0'); el.focus(); }")
            box = canvas.bounding_box()
        except PlaywrightError as e:
            logger.debug(f"Canvas interaction error: {e}")
            return False
        if box:
            self.page.mouse.move(box["x"] + box["width"] / 2, box["y"] + box["height"] / 2)
        return True

    def simulate_confirm(self):
        try:
            self.page.keyboard.press("Space")
            return True
        except PlaywrightError as e:
            logger.debug(f"Key press failed: {e}")
            return False

    def trigger_confirm(self):
        button = self._main_button()
        if not self._wait_clickable(button, CONFIRM_BUTTON_WAIT):
            return False
        return self._click(button)
