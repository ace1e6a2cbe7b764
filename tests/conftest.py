from typing import Iterable

import httpx
import pytest
from fastapi.testclient import TestClient

from proxyharness.api.client import ProxyApiClient
from services.proxy.app.core.config import ProcessConfig
from services.proxy.app.main import create_app

UPSTREAM_URL = "http://upstream.test/post"


class SequenceRandom:
    """
    Deterministic stand-in for random.Random: replays the given samples in
    order and fails loudly if a test draws more than it planned for.
    """

    def __init__(self, samples: Iterable[float]):
        self._samples = list(samples)
        self.draws = 0

    def random(self) -> float:
        if self.draws >= len(self._samples):
            raise AssertionError(f"unexpected random draw #{self.draws + 1}")
        value = self._samples[self.draws]
        self.draws += 1
        return value


class MockUpstream:
    """
    In-process upstream built on httpx.MockTransport. Records every request
    it receives so tests can assert on forwarded bytes and call counts.
    """

    def __init__(self, *, status_code: int = 200, body: bytes = b'{"result": "mocked"}', exc: Exception | None = None):
        self.status_code = status_code
        self.body = body
        self.exc = exc
        self.requests: list[httpx.Request] = []

    @property
    def call_count(self) -> int:
        return len(self.requests)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.exc is not None:
            raise self.exc
        return httpx.Response(self.status_code, content=self.body, headers={"content-type": "application/json"})

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))


class RecordingSleep:
    def __init__(self):
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture
def upstream():
    return MockUpstream()


@pytest.fixture
def recorded_sleep():
    return RecordingSleep()


@pytest.fixture
def process_config():
    # never fail unless a test asks for it
    return ProcessConfig(target_url=UPSTREAM_URL, success_probability=1.0, upstream_timeout_s=2.0)


@pytest.fixture
def make_proxy(upstream, recorded_sleep, process_config):
    """
    Factory yielding a TestClient for a proxy app wired to the mock upstream.
    Every TestClient it opens is closed on teardown.
    """
    opened = []

    def _make(*, process: ProcessConfig | None = None, rng=None, sleep=None) -> TestClient:
        app = create_app(
            process or process_config,
            rng=rng,
            sleep=sleep or recorded_sleep,
            client=upstream.client(),
        )
        tc = TestClient(app)
        tc.__enter__()
        opened.append(tc)
        return tc

    yield _make
    for tc in opened:
        tc.__exit__(None, None, None)


@pytest.fixture
def proxy(make_proxy):
    return make_proxy()


@pytest.fixture
def proxy_api(proxy):
    return ProxyApiClient(http=proxy)


@pytest.fixture
def sequence_random():
    return SequenceRandom
