import typing as tp

import anyio
import httpx
import pytest

from shuttle import BaseClock


class MockClock(BaseClock):
    def __init__(self, now: float = 1_704_067_200_000) -> None:
        self.current = now

    def now(self) -> float:
        return self.current

    def advance(self, milliseconds: float) -> None:
        self.current += milliseconds


class Recorder:
    """Records the requests a mock handler sees and how many of them overlap."""

    def __init__(self) -> None:
        self.requests: tp.List[httpx.Request] = []
        self.active = 0
        self.peak = 0

    @property
    def calls(self) -> int:
        return len(self.requests)

    @property
    def paths(self) -> tp.List[str]:
        return [request.url.path for request in self.requests]

    async def enter(self, request: httpx.Request, delay: float = 0) -> None:
        self.requests.append(request)
        self.active += 1
        self.peak = max(self.peak, self.active)
        try:
            await anyio.sleep(delay)
        finally:
            self.active -= 1


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def clock() -> MockClock:
    return MockClock()


@pytest.fixture
def recorder() -> Recorder:
    return Recorder()
