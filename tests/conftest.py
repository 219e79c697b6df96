"""Pytest configuration and fixtures."""

import asyncio
import json
from collections import deque
from typing import AsyncGenerator, Callable

import pytest

from research_stream.config import BackoffPolicy, StreamClientConfig
from research_stream.stream.manager import SessionConnectionManager
from research_stream.transport import (
    NORMAL_CLOSURE,
    StaticCredentialSource,
    Transport,
    TransportClosed,
    TransportError,
)


def build_frame(output: str, is_complete: bool = False, step: int = 0, session_id: str = "s1") -> str:
    """Build an inbound frame as the backend sends it."""
    return json.dumps(
        {
            "session_id": session_id,
            "output": output,
            "step": step,
            "is_complete": is_complete,
            "timestamp": "2024-01-01T00:00:00+00:00",
        }
    )


async def wait_for_condition(condition: Callable[[], bool], timeout: float = 1.0) -> None:
    """Yield to the loop until ``condition`` holds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not condition():
        if loop.time() > deadline:
            raise AssertionError("Condition not met in time")
        await asyncio.sleep(0.001)


class FakeTransport(Transport):
    """Scripted in-memory transport."""

    def __init__(self, network: "FakeNetwork"):
        self.network = network
        self.url: str | None = None
        self.is_open = False
        self.sent: list[str] = []
        self.inbound: asyncio.Queue = asyncio.Queue()
        self.closed_with: tuple[int, str] | None = None
        self.aborted = False
        self.send_error: TransportError | None = None

    async def open(self, url: str) -> None:
        self.url = url
        if self.network.gate is not None:
            await self.network.gate.wait()
        if self.network.hang:
            await asyncio.Event().wait()
        if self.network.failures:
            error = self.network.failures.popleft()
            if error is not None:
                raise error
        self.is_open = True

    async def send(self, data: str) -> None:
        if self.send_error is not None:
            raise self.send_error
        if not self.is_open:
            raise TransportClosed(1006, "Not open")
        self.sent.append(data)

    async def recv(self) -> str:
        item = await self.inbound.get()
        if isinstance(item, TransportClosed):
            self.is_open = False
            raise item
        return item

    async def close(self, code: int = NORMAL_CLOSURE, reason: str = "") -> None:
        self.closed_with = (code, reason)
        self.is_open = False

    async def abort(self) -> None:
        self.aborted = True
        self.is_open = False

    # Server side

    def feed(self, raw: str) -> None:
        self.inbound.put_nowait(raw)

    def server_close(self, code: int, reason: str = "") -> None:
        self.inbound.put_nowait(TransportClosed(code, reason))


class FakeNetwork:
    """Hands out FakeTransports and scripts how their opens behave.

    Attributes:
        gate: When set, every open waits on this event first
        hang: Opens never complete
        failures: Per-open outcomes, consumed in order (None means success)
    """

    def __init__(self):
        self.transports: list[FakeTransport] = []
        self.gate: asyncio.Event | None = None
        self.hang = False
        self.failures: deque[TransportError | None] = deque()

    def factory(self) -> FakeTransport:
        transport = FakeTransport(self)
        self.transports.append(transport)
        return transport

    def fail_next(self, *errors: TransportError | None) -> None:
        self.failures.extend(errors)

    @property
    def latest(self) -> FakeTransport:
        return self.transports[-1]


class RecordingSleep:
    """Stand-in for asyncio.sleep that records delays.

    Returns at once unless ``hold`` is set, in which case it waits for
    ``release()``.
    """

    def __init__(self):
        self.delays: list[float] = []
        self.hold = False
        self._released = asyncio.Event()

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        if self.hold:
            await self._released.wait()
        else:
            await asyncio.sleep(0)

    def release(self) -> None:
        self._released.set()


@pytest.fixture
def network() -> FakeNetwork:
    return FakeNetwork()


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def config() -> StreamClientConfig:
    return StreamClientConfig(
        api_base_url="http://localhost:8000",
        connect_timeout=1.0,
        idle_timeout=None,
        backoff=BackoffPolicy(initial_delay=1.0, multiplier=2.0, max_attempts=3),
    )


@pytest.fixture
def credentials() -> StaticCredentialSource:
    return StaticCredentialSource("test-token")


@pytest.fixture
async def manager(config, credentials, network, sleep) -> AsyncGenerator[SessionConnectionManager, None]:
    """Connection manager wired to the fake network. Disconnected on teardown."""
    manager = SessionConnectionManager(
        config=config,
        credentials=credentials,
        transport_factory=network.factory,
        sleep=sleep,
    )
    yield manager
    await manager.disconnect()


@pytest.fixture
def frame() -> Callable[..., str]:
    return build_frame


@pytest.fixture
def wait_until() -> Callable:
    return wait_for_condition
