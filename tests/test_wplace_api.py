#!/usr/bin/env python3
"""Tests for the backend client and the observable transport.

Run with: pytest tests/test_wplace_api.py -v
"""

import json
from unittest.mock import MagicMock

import requests

from charges import ChargeInfo
from wplace_api import Exchange, PaintResult, Transport, WPlaceClient, is_paint_exchange


def make_response(status, payload=None):
    response = MagicMock()
    response.status_code = status
    response.ok = status < 400
    if payload is None:
        response.json.side_effect = ValueError("No JSON")
    else:
        response.json.return_value = payload
    return response


def make_client(*responses):
    session = MagicMock()
    session.request.side_effect = list(responses)
    transport = Transport(session=session)
    return WPlaceClient(transport, "https://backend.example"), transport, session


class TestPaintPixel:
    """Outcome classification of a paint request."""

    def test_painted(self):
        client, _, session = make_client(make_response(200, {"painted": 1}))

        result = client.paint_pixel(3, 4, 10, 20, 5, "tok")

        assert result == PaintResult.PAINTED
        method, url = session.request.call_args[0]
        kwargs = session.request.call_args[1]
        assert (method, url) == ("POST", "https://backend.example/s0/pixel/3/4")
        assert json.loads(kwargs["data"]) == {"coords": [10, 20], "colors": [5], "t": "tok"}
        assert kwargs["headers"]["Content-Type"] == "text/plain;charset=UTF-8"

    def test_forbidden_is_unauthorized(self):
        client, _, _ = make_client(make_response(403, {"error": "Forbidden"}))
        assert client.paint_pixel(0, 0, 0, 0, 1, "tok") == PaintResult.UNAUTHORIZED

    def test_server_error_is_transient(self):
        client, _, _ = make_client(make_response(500, {"error": "oops"}))
        assert client.paint_pixel(0, 0, 0, 0, 1, "tok") == PaintResult.FAILED

    def test_unconfirmed_paint_is_transient(self):
        client, _, _ = make_client(make_response(200, {"painted": 0}))
        assert client.paint_pixel(0, 0, 0, 0, 1, "tok") == PaintResult.FAILED

    def test_non_json_body_is_transient(self):
        client, _, _ = make_client(make_response(200))
        assert client.paint_pixel(0, 0, 0, 0, 1, "tok") == PaintResult.FAILED

    def test_network_error_is_transient(self):
        client, _, _ = make_client(requests.ConnectionError("boom"))
        assert client.paint_pixel(0, 0, 0, 0, 1, "tok") == PaintResult.FAILED


class TestGetCharges:
    def test_parses_account_info(self):
        payload = {"name": "painter", "level": 2, "charges": {"count": 4.5, "max": 60, "cooldownMs": 30000}}
        client, _, session = make_client(make_response(200, payload))

        assert client.get_charges() == ChargeInfo(4, 60, 30000, "painter", 2)
        assert session.request.call_args[0] == ("GET", "https://backend.example/me")

    def test_http_error(self):
        client, _, _ = make_client(make_response(401, {"error": "Unauthorized"}))
        assert client.get_charges() is None

    def test_network_error(self):
        client, _, _ = make_client(requests.Timeout("slow"))
        assert client.get_charges() is None


class TestTransportObservers:
    """Observers see every matching exchange and never break traffic."""

    def test_observer_receives_exchange(self):
        client, transport, _ = make_client(make_response(200, {"painted": 1}))
        seen = []
        transport.add_observer(r"/pixel/", seen.append)

        client.paint_pixel(1, 2, 3, 4, 5, "tok")

        assert len(seen) == 1
        exchange = seen[0]
        assert exchange.status == 200
        assert exchange.payload == {"painted": 1}
        assert exchange.request_json()["t"] == "tok"
        assert is_paint_exchange(exchange)

    def test_non_matching_observer_not_called(self):
        client, transport, _ = make_client(make_response(200, {"charges": {}}))
        seen = []
        transport.add_observer(r"/pixel/", seen.append)

        client.get_charges()

        assert seen == []

    def test_failing_observer_is_tolerated(self):
        client, transport, _ = make_client(make_response(200, {"painted": 1}))
        seen = []
        transport.add_observer(r"/pixel/", MagicMock(side_effect=RuntimeError("bad observer")))
        transport.add_observer(r"/pixel/", seen.append)

        assert client.paint_pixel(1, 2, 3, 4, 5, "tok") == PaintResult.PAINTED
        assert len(seen) == 1

    def test_removed_observer(self):
        transport = Transport(session=MagicMock())
        seen = []
        transport.add_observer(r"/pixel/", seen.append)
        transport.remove_observer(seen.append)

        transport.notify(Exchange("POST", "https://x/s0/pixel/1/1", "{}", 200, None))

        assert seen == []

    def test_request_json_rejects_garbage(self):
        assert Exchange("POST", "u", "not json", 200, None).request_json() is None
        assert Exchange("POST", "u", "[1, 2]", 200, None).request_json() is None
        assert Exchange("POST", "u", None, 200, None).request_json() is None
