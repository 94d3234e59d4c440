import httpx
import pytest

from spoqen.middleware.rate_limiter import RateLimitConfig, RateLimiter


class FakeClock:
    """Epoch-millisecond clock advanced by hand."""

    def __init__(self, start_ms: float = 1_700_000_000_000):
        self.now = start_ms

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> None:
        self.now += ms


class RecordingSleep:
    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


class FakeVapi:
    """
    Scripted Vapi list-calls endpoint for httpx.MockTransport.

    Each scripted step is either an httpx.Response, an exception instance to
    raise, or a dict rendered as a 200 JSON page.
    """

    def __init__(self, steps: list):
        self.steps = list(steps)
        self.requests: list[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if not self.steps:
            raise AssertionError("Unexpected extra request to Vapi")

        step = self.steps.pop(0)
        if isinstance(step, Exception):
            raise step
        if isinstance(step, httpx.Response):
            return step
        return httpx.Response(200, json=step)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def recording_sleep():
    return RecordingSleep()


@pytest.fixture
def make_limiter(fake_clock):
    def _make(max_requests: int = 5, window_ms: int = 1000, key_prefix: str = "test") -> RateLimiter:
        config = RateLimitConfig(window_ms=window_ms, max_requests=max_requests, key_prefix=key_prefix)
        return RateLimiter(config, clock=fake_clock)

    return _make


@pytest.fixture
def fake_vapi_factory():
    return FakeVapi
