import io
from email.message import Message
from urllib.error import HTTPError, URLError

import pytest

from services import udise_client
from services.udise_client import build_target_url


def auth_header(t):
    return {"Authorization": f"Bearer {t}"}


class _FakeResponse:
    def __init__(self, status, body, content_type="application/json"):
        self.status = status
        self._body = body
        self.headers = {"Content-Type": content_type}

    def read(self):
        return self._body

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False


@pytest.fixture()
def captured(monkeypatch):
    calls = []

    def _set(result):
        def fake_urlopen(req, timeout=None):
            calls.append(req)
            if isinstance(result, Exception):
                raise result
            return result

        monkeypatch.setattr(udise_client, "urlopen", fake_urlopen)
        return calls

    return _set


def test_build_target_url():
    base = udise_client.UDISE_API_BASE
    assert build_target_url("/school/by-region") == f"{base}/school/by-region"
    assert build_target_url("master/state", "year=10") == f"{base}/master/state?year=10"


def test_proxy_requires_auth(client):
    r = client.get("/api/udise/master/state")
    assert r.status_code == 401


def test_proxy_forwards_get_with_query(client, user_token, captured):
    calls = captured(_FakeResponse(200, b'{"data": [1, 2]}'))

    r = client.get("/api/udise/master/state?year=10", headers=auth_header(user_token))

    assert r.status_code == 200
    assert r.json() == {"data": [1, 2]}
    assert calls[0].get_method() == "GET"
    assert calls[0].full_url.endswith("/master/state?year=10")
    assert calls[0].data is None


def test_proxy_forwards_post_body(client, user_token, captured):
    calls = captured(_FakeResponse(201, b'{"ok": true}'))

    headers = {**auth_header(user_token), "Content-Type": "application/json"}
    r = client.post("/api/udise/school/search", content=b'{"udise":"123"}', headers=headers)

    assert r.status_code == 201
    assert calls[0].get_method() == "POST"
    assert calls[0].data == b'{"udise":"123"}'
    assert calls[0].get_header("Content-type") == "application/json"


def test_proxy_relays_upstream_error_verbatim(client, user_token, captured):
    headers = Message()
    headers["Content-Type"] = "application/json"
    error = HTTPError("http://upstream", 404, "Not Found", headers, io.BytesIO(b'{"error": "no school"}'))
    captured(error)

    r = client.get("/api/udise/school/999", headers=auth_header(user_token))

    assert r.status_code == 404
    assert r.json() == {"error": "no school"}


def test_proxy_transport_failure_is_500(client, user_token, captured):
    captured(URLError("connection refused"))

    r = client.get("/api/udise/master/state", headers=auth_header(user_token))

    assert r.status_code == 500
    body = r.json()
    assert body["message"] == "Internal Server Error"
    assert "connection refused" in body["error"]
