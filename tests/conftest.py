"""
Shared pytest fixtures for the video translation client tests.

No test touches the network or really sleeps:
- HTTP is faked by patching ``src.api_client.retry.requests.request`` with
  :class:`FakeVideoTranslationService` (or a ``side_effect`` list of
  responses built by :func:`make_response`).
- Time is faked with :class:`FakeClock`, whose ``sleep`` advances ``now``.
"""

from __future__ import annotations

import json
import re
from urllib.parse import unquote, urlsplit

import pytest
import requests

from src.api_client.config import OPERATION_ID_HEADER, ServiceConfig, build_base_url
from src.api_client.executor import ApiResult


TEST_ENDPOINT = "https://eastus.api.cognitive.microsoft.com"
TEST_KEY = "test-subscription-key"

RESULT_URLS = {
    "translatedVideoFileUrl": "https://storage.example/out/video.mp4?sig=1",
    "sourceLocaleSubtitleWebvttFileUrl": "https://storage.example/out/source.vtt?sig=2",
    "targetLocaleSubtitleWebvttFileUrl": "https://storage.example/out/target.vtt?sig=3",
    "metadataJsonWebvttFileUrl": "https://storage.example/out/metadata.vtt?sig=4",
}


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------

def make_response(
    status_code: int = 200,
    body: dict | None = None,
    text: str | None = None,
    headers: dict | None = None,
) -> requests.Response:
    """Build a real ``requests.Response`` with an in-memory body."""
    if text is None:
        text = json.dumps(body) if body is not None else ""
    response = requests.Response()
    response.status_code = status_code
    response._content = text.encode("utf-8")
    response._content_consumed = True
    response.encoding = "utf-8"
    response.headers.update(headers or {})
    return response


def ok(payload: dict | None = None, status_code: int = 200) -> ApiResult:
    return ApiResult.success(payload or {}, status_code)


def err(message: str = "Connection failed", status_code: int | None = None) -> ApiResult:
    return ApiResult.failure(message, status_code)


def status_result(status: str) -> ApiResult:
    return ok({"id": "op", "status": status})


class FakeClock:
    """Monotonic clock whose ``sleep`` advances time instantly."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class FakeVideoTranslationService:
    """
    In-memory stand-in for the vendor API, used as ``requests.request``.

    Each submission (translation or iteration PUT) consumes the next entry
    of ``operation_scripts``: the statuses returned by successive
    ``GET /operations/{id}`` calls.  The special entry ``"connection_error"``
    raises ``requests.ConnectionError`` for that status call; the last
    status repeats once a script is exhausted.
    """

    _ROUTE = re.compile(r"/videotranslation/(?P<path>.+)$")

    def __init__(self, operation_scripts: list[list[str]] | None = None) -> None:
        self.operation_scripts = list(operation_scripts or [])
        self.operations: dict[str, list[str]] = {}
        self.translations: dict[str, dict] = {}
        self.iterations: dict[tuple[str, str], dict] = {}
        self.calls: list[tuple[str, str]] = []
        self.fail_submission: dict[str, tuple[int, dict]] = {}
        self.iteration_status = "Succeeded"

    def __call__(self, method, url, headers=None, params=None, data=None, timeout=None, stream=False):
        path = unquote(self._ROUTE.search(urlsplit(url).path).group("path"))
        self.calls.append((method, path))
        parts = path.split("/")
        body = json.loads(data) if data else {}

        if method == "PUT":
            kind = "iteration" if len(parts) == 4 else "translation"
            if kind in self.fail_submission:
                status_code, error_body = self.fail_submission[kind]
                return make_response(status_code, error_body)
            script = self.operation_scripts.pop(0) if self.operation_scripts else ["Succeeded"]
            self.operations[headers[OPERATION_ID_HEADER]] = list(script)
            if kind == "translation":
                self.translations[parts[1]] = {"id": parts[1], "status": "NotStarted", **body}
                return make_response(201, self.translations[parts[1]])
            self.iterations[(parts[1], parts[3])] = {"id": parts[3], "status": "NotStarted", **body}
            return make_response(201, self.iterations[(parts[1], parts[3])])

        if method == "GET" and parts[0] == "operations":
            script = self.operations.get(parts[1])
            if script is None:
                return make_response(404, {"error": {"code": "NotFound", "message": "No such operation"}})
            status = script.pop(0) if len(script) > 1 else script[0]
            if status == "connection_error":
                raise requests.ConnectionError("connection refused")
            return make_response(200, {"id": parts[1], "status": status})

        if method == "GET" and len(parts) == 2:
            translation = self.translations.get(parts[1])
            if translation is None:
                return make_response(404, {"error": {"code": "NotFound", "message": f"Translation {parts[1]} not found"}})
            return make_response(200, {**translation, "status": "Succeeded"})

        if method == "GET" and len(parts) == 4:
            iteration = self.iterations.get((parts[1], parts[3]))
            if iteration is None:
                return make_response(404, {"message": "Iteration not found"})
            return make_response(200, {**iteration, "status": self.iteration_status, "result": RESULT_URLS})

        return make_response(400, text=f"Unsupported call {method} {path}")

    def called(self, method: str, prefix: str) -> int:
        return sum(1 for m, p in self.calls if m == method and p.startswith(prefix))


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def service_config():
    """Configuration with no transport retries and no backoff delay."""
    return ServiceConfig(
        endpoint=TEST_ENDPOINT,
        subscription_key=TEST_KEY,
        region="eastus",
        api_version="2024-05-20-preview",
        base_url=build_base_url(TEST_ENDPOINT),
        max_retries=0,
        retry_base_delay=0,
    )


@pytest.fixture
def retrying_config(service_config):
    """Same as ``service_config`` but with the default 3 retries."""
    return ServiceConfig(
        endpoint=service_config.endpoint,
        subscription_key=service_config.subscription_key,
        region=service_config.region,
        api_version=service_config.api_version,
        base_url=service_config.base_url,
        max_retries=3,
        retry_base_delay=2,
    )


@pytest.fixture
def fake_clock():
    return FakeClock()
