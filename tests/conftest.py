"""
Shared fixtures: a fake prediction backend served through httpx.MockTransport
and a fake clock whose sleep() advances time instantly.
"""

import base64
import json
from typing import Any, List, Tuple, Union

import httpx
import pytest

from backend.replicate_client import ReplicateClient
from config.settings import Settings

TEST_TOKEN = "r8_test_token_123"
UPLOADED_URL = "https://replicate.delivery/uploads/input.png"
OUTPUT_URL = "https://out/y.png"
PNG_BYTES = b"\x89PNG\r\n\x1a\nnot-really-a-png"
PNG_DATA_URL = "data:image/png;base64," + base64.b64encode(PNG_BYTES).decode("ascii")

ResponseSpec = Union[Tuple[int, Any], Exception]


def _build_response(spec: ResponseSpec, request: httpx.Request) -> httpx.Response:
    if isinstance(spec, Exception):
        raise spec
    status_code, body = spec
    if isinstance(body, str):
        return httpx.Response(status_code, text=body, request=request)
    return httpx.Response(status_code, json=body, request=request)


class FakeBackend:
    """
    Minimal Replicate look-alike.

    `statuses` is consumed in order for GET /predictions/{id}; the last entry
    repeats once the list is down to one.
    """

    def __init__(self):
        self.requests: List[httpx.Request] = []
        self.upload: ResponseSpec = (201, {"id": "file-1", "urls": {"get": UPLOADED_URL}})
        self.create: ResponseSpec = (201, {"id": "pred-1", "status": "starting"})
        self.statuses: List[ResponseSpec] = [
            (200, {"id": "pred-1", "status": "processing"}),
            (200, {"id": "pred-1", "status": "succeeded", "output": [OUTPUT_URL]}),
        ]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if request.method == "POST" and path.endswith("/files"):
            return _build_response(self.upload, request)
        if request.method == "POST" and path.endswith("/predictions"):
            return _build_response(self.create, request)
        if request.method == "GET" and "/predictions/" in path:
            spec = self.statuses.pop(0) if len(self.statuses) > 1 else self.statuses[0]
            return _build_response(spec, request)
        return httpx.Response(404, json={"detail": "not found"}, request=request)

    def http_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))

    def calls(self, kind: str) -> List[httpx.Request]:
        if kind == "upload":
            return [r for r in self.requests if r.method == "POST" and r.url.path.endswith("/files")]
        if kind == "create":
            return [r for r in self.requests if r.method == "POST" and r.url.path.endswith("/predictions")]
        if kind == "status":
            return [r for r in self.requests if r.method == "GET" and "/predictions/" in r.url.path]
        raise ValueError(kind)

    def created_payload(self) -> dict:
        return json.loads(self.calls("create")[0].content)


class FakeClock:
    def __init__(self):
        self.now = 0.0
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def settings():
    return Settings(
        REPLICATE_API_TOKEN=TEST_TOKEN,
        ALLOWED_ORIGINS=[],
        REPLICATE_API_BASE="https://api.replicate.com/v1",
        REPLICATE_MODEL="black-forest-labs/flux-kontext-pro",
        REPLICATE_MODEL_VERSION=None,
        AUTH_SCHEME="Token",
        POLL_INTERVAL=1.5,
        POLL_TIMEOUT=120.0,
        EXTRA_INPUT={},
        INPUT_FIELD_MAP={},
    )


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def client(settings, backend):
    return ReplicateClient(settings, http=backend.http_client())
