import pytest
import requests

import gst_lookup
from gst_lookup import fetch_gst_details, gst_state_code, pan_from_gstin, state_label_from_gst


class FakeResponse:
    def __init__(self, payload, status=200):
        self.payload = payload
        self.status = status

    def raise_for_status(self):
        if self.status >= 400:
            raise requests.HTTPError(f"{self.status} Server Error")

    def json(self):
        return self.payload


@pytest.fixture
def api_key(monkeypatch):
    monkeypatch.setenv("APPYFLOW_KEY_SECRET", "test-key")


def test_gstin_helpers():
    assert gst_state_code("29ABCDE1234F1Z5") == "29"
    assert gst_state_code("X9") == ""
    assert gst_state_code(None) == ""
    assert state_label_from_gst("36ABCDE1234F1Z5") == "TS"
    assert state_label_from_gst("37ABCDE1234F1Z5") == "AP"
    assert state_label_from_gst("99ABCDE1234F1Z5") == "99"
    assert pan_from_gstin("29abcde1234f1z5") == "ABCDE1234F"


def test_lookup_without_key_is_reported():
    res = fetch_gst_details("29ABCDE1234F1Z5")
    assert res["ok"] is False
    assert "key" in res["error"].lower()


def test_lookup_success(monkeypatch, api_key):
    calls = []

    def fake_get(url, params=None, timeout=None):
        calls.append((url, params, timeout))
        return FakeResponse({"taxpayerInfo": {
            "tradeNam": "Blue Leaf Exports",
            "panNo": "ABCDE1234F",
            "pradr": {"addr": {"bno": "4", "st": "Tea Board Road", "city": "Kolkata", "pncd": "700001"}},
        }})

    monkeypatch.setattr(gst_lookup.requests, "get", fake_get)
    res = fetch_gst_details(" 19abcde1234f1z5 ")
    assert res == {"ok": True, "name": "Blue Leaf Exports", "address": "4, Tea Board Road, Kolkata, 700001",
                   "gstin": "19ABCDE1234F1Z5", "pan": "ABCDE1234F", "state_code": "19"}
    assert calls[0][1] == {"key_secret": "test-key", "gstNo": "19ABCDE1234F1Z5"}


def test_lookup_api_error_message(monkeypatch, api_key):
    monkeypatch.setattr(gst_lookup.requests, "get",
                        lambda *a, **kw: FakeResponse({"error": True, "message": "Invalid GSTIN"}))
    assert fetch_gst_details("29ABCDE1234F1Z5") == {"ok": False, "error": "Invalid GSTIN"}


@pytest.mark.parametrize("response", [
    FakeResponse({}, status=503),
    requests.ConnectionError("offline"),
])
def test_lookup_network_failures_are_reported(monkeypatch, api_key, response):
    def fake_get(*args, **kwargs):
        if isinstance(response, Exception):
            raise response
        return response

    monkeypatch.setattr(gst_lookup.requests, "get", fake_get)
    res = fetch_gst_details("29ABCDE1234F1Z5")
    assert res["ok"] is False
    assert res["error"].startswith("Request failed")


def test_empty_gstin():
    assert fetch_gst_details("  ") == {"ok": False, "error": "Empty GSTIN"}
