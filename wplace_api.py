"""
HTTP access to the canvas backend.

Transport wraps a requests.Session and lets observers subscribe to endpoint
patterns. Every exchange made through the session, and every exchange the
host browser reports through notify(), is handed to matching observers.
"""

import re
import json
import logging
from enum import Enum
from collections import namedtuple

import requests

from charges import ChargeInfo

logger = logging.getLogger(__name__)

BACKEND_URL = "https://backend.wplace.live"
SITE_URL = "https://wplace.live"

# Region and coordinates live in the URL path: /s0/pixel/{regionX}/{regionY}
PAINT_URL_PATTERN = re.compile(r"/s\d+/pixel/(\d+)/(\d+)")

REQUEST_TIMEOUT = 15
HTTP_FORBIDDEN = 403

DEFAULT_HEADERS = {
    "User-Agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/124.0 Safari/537.36",
    "Accept": "*/*",
}


class Exchange(namedtuple("Exchange", ["method", "url", "body", "status", "payload"])):
    """One observed request/response pair

    body is the raw request body text, payload the decoded JSON response
    (None when absent or not JSON), status the HTTP status code.
    """
    __slots__ = ()

    def request_json(self):
        """Decoded request body, None if it is not a JSON object"""
        if not self.body or not isinstance(self.body, str):
            return None
        try:
            data = json.loads(self.body)
        except ValueError:
            return None
        return data if isinstance(data, dict) else None


def is_paint_exchange(exchange):
    return exchange.method.upper() == "POST" and PAINT_URL_PATTERN.search(exchange.url) is not None


class PaintResult(Enum):
    PAINTED = "painted"
    UNAUTHORIZED = "unauthorized"
    FAILED = "failed"


class Transport:
    """requests.Session with endpoint observers"""

    def __init__(self, session=None, timeout=REQUEST_TIMEOUT):
        self.session = session or requests.Session()
        self.timeout = timeout
        self._observers = []
        if session is None:
            self.session.headers.update(DEFAULT_HEADERS)

    def add_observer(self, pattern, callback):
        """Call callback(exchange) for every exchange whose URL matches pattern"""
        if isinstance(pattern, str):
            pattern = re.compile(pattern)
        self._observers.append((pattern, callback))

    def remove_observer(self, callback):
        self._observers = [(p, cb) for p, cb in self._observers if cb != callback]

    def notify(self, exchange):
        """Deliver an exchange to matching observers

        Also the entry point for traffic the host page made on its own.
        Observers never block or alter traffic: their errors are logged only.
        """
        for pattern, callback in list(self._observers):
            if not pattern.search(exchange.url):
                continue
            try:
                callback(exchange)
            except Exception as e:
                logger.warning(f"Observer {getattr(callback, '__name__', callback)!r} failed: {e}")

    def request(self, method, url, data=None, headers=None):
        """Send a request and report it to observers

        Raises:
            requests.RequestException: on network failure
        """
        response = self.session.request(method, url, data=data, headers=headers, timeout=self.timeout)
        try:
            payload = response.json()
        except ValueError:
            payload = None
        self.notify(Exchange(method.upper(), url, data, response.status_code, payload))
        return response, payload


class WPlaceClient:
    """Paint and charge calls against the backend"""

    def __init__(self, transport, base_url=BACKEND_URL):
        self.transport = transport
        self.base_url = base_url.rstrip("/")

    def paint_url(self, region_x, region_y):
        return f"{self.base_url}/s0/pixel/{region_x}/{region_y}"

    def paint_pixel(self, region_x, region_y, x, y, color_id, token):
        """Submit one pixel

        Returns:
            PaintResult: PAINTED when the server reports one pixel placed,
            UNAUTHORIZED on HTTP 403, FAILED on anything else
        """
        body = json.dumps({"coords": [x, y], "colors": [color_id], "t": token})
        headers = {"Content-Type": "text/plain;charset=UTF-8"}
        try:
            response, payload = self.transport.request(
                "POST", self.paint_url(region_x, region_y), data=body, headers=headers
            )
        except requests.RequestException as e:
            logger.warning(f"Paint request for ({x}, {y}) failed: {e}")
            return PaintResult.FAILED

        if response.status_code == HTTP_FORBIDDEN:
            logger.error("403 Forbidden. Token might be invalid or expired.")
            return PaintResult.UNAUTHORIZED

        if not response.ok:
            logger.warning(f"Paint request for ({x}, {y}) returned HTTP {response.status_code}")
            return PaintResult.FAILED

        if isinstance(payload, dict) and payload.get("painted") == 1:
            return PaintResult.PAINTED

        logger.warning(f"Paint request for ({x}, {y}) not confirmed: {payload!r}")
        return PaintResult.FAILED

    def get_charges(self):
        """Query charges and account info, None on any failure"""
        try:
            response, payload = self.transport.request("GET", f"{self.base_url}/me")
        except requests.RequestException as e:
            logger.warning(f"Charge query failed: {e}")
            return None

        if not response.ok:
            logger.warning(f"Charge query returned HTTP {response.status_code}")
            return None

        return ChargeInfo.from_payload(payload)
