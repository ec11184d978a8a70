"""Shared fixtures: a minimal aiohttp-like session so the engine client (and
every tool built on it) runs without network access."""
import json

import pytest

from docplanner.integrations.engine_client import EngineClient, TokenAuth

ENGINE_URL = "http://engine.test"


class FakeResp:
    """aiohttp-like response; the client only reads `status`, `content_type`
    and the raw body from `read()`."""

    def __init__(self, status=200, json_payload=None, text_payload="", body=None, content_type=None):
        self.status = status
        if body is None:
            if json_payload is not None:
                body = json.dumps(json_payload).encode()
                content_type = content_type or "application/json"
            else:
                body = text_payload.encode()
                if text_payload:
                    content_type = content_type or "text/plain"
        self._body = body
        self.content_type = content_type or "application/octet-stream"

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False

    async def json(self):
        return json.loads(self._body)

    async def text(self):
        return self._body.decode()

    async def read(self):
        return self._body


class FakeSession:
    """Routes `request(method, url)` by "METHOD /path-suffix" keys.

    The longest matching suffix wins. A list value is consumed one response
    per call. Unrouted requests answer 404 so tests notice unexpected calls.
    """

    def __init__(self, responses=None):
        self._responses = dict(responses or {})
        self.calls = []
        self.closed = False

    def _resp_for(self, method, url):
        best = None
        for key in self._responses:
            key_method, suffix = key.split(" ", 1)
            if key_method == method and url.endswith(suffix):
                if best is None or len(suffix) > len(best.split(" ", 1)[1]):
                    best = key
        if best is None:
            return FakeResp(status=404, json_payload={"message": f"no route for {method} {url}"})
        value = self._responses[best]
        if isinstance(value, list):
            return value.pop(0) if len(value) > 1 else value[0]
        return value

    def request(self, method, url, **kwargs):
        self.calls.append((method, url[len(ENGINE_URL):] if url.startswith(ENGINE_URL) else url, kwargs))
        return self._resp_for(method, url)

    def paths(self, method=None):
        return [path for m, path, _ in self.calls if method is None or m == method]

    def bodies(self, method, suffix):
        return [kw.get("json") for m, path, kw in self.calls if m == method and path.endswith(suffix)]

    async def close(self):
        self.closed = True


def ok(payload=None, status=200):
    return FakeResp(status=status, json_payload=payload if payload is not None else {})


def empty(status=200, content_type="application/json"):
    """Success with no body at all, as DELETE and /redact often answer."""
    return FakeResp(status=status, body=b"", content_type=content_type)


def data(payload, status=200):
    """Engine-style `{"data": ...}` envelope."""
    return FakeResp(status=status, json_payload={"data": payload})


@pytest.fixture
def make_engine():
    def _make(responses=None):
        session = FakeSession(responses)
        engine = EngineClient(auth=TokenAuth("test-token"), session=session, base_url=ENGINE_URL)
        return engine, session
    return _make
