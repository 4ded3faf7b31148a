"""Pytest configuration and fixtures.

The fakes below stand in for the Gemini backends: a live session fed from an
asyncio.Queue and a refinement backend with scripted failures. The scheduler
fixture never waits; every requested delay is recorded in its ``history``.
"""

import asyncio

import pytest

from smartrec.backends.base import LiveSession, RefinementBackend, TranscriptionBackend
from smartrec.backends.types import TranscriptEvent
from smartrec.errors import EnrichmentError, TransportError
from smartrec.models import TranscriptionSegment, new_id
from smartrec.scheduler import Scheduler
from smartrec.state import RecorderState, RecordingClock

_END = object()


async def instant_sleep(_seconds: float) -> None:
    await asyncio.sleep(0)


async def wait_until(predicate, attempts: int = 500) -> None:
    """Yield to the event loop until ``predicate()`` is true."""
    for _ in range(attempts):
        if predicate():
            return
        await asyncio.sleep(0)
    raise AssertionError("condition not reached")


class FakeClock:
    """Manually advanced time source for RecordingClock."""

    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class FakeLiveSession(LiveSession):
    def __init__(self):
        self.frames: list[bytes] = []
        self.closed = False
        self.fail_send = False
        self._events: asyncio.Queue = asyncio.Queue()

    def push(self, event: TranscriptEvent) -> None:
        self._events.put_nowait(event)

    def fail(self, error: Exception | None = None) -> None:
        self._events.put_nowait(error or TransportError("connection reset"))

    def end(self) -> None:
        self._events.put_nowait(_END)

    async def send_audio(self, pcm16: bytes) -> None:
        if self.fail_send:
            raise TransportError("send failed")
        self.frames.append(pcm16)

    async def events(self):
        while True:
            item = await self._events.get()
            if item is _END:
                return
            if isinstance(item, Exception):
                raise item
            yield item

    async def close(self) -> None:
        self.closed = True


class FakeTranscriptionBackend(TranscriptionBackend):
    """Fails the first ``failures`` connects, then hands out FakeLiveSessions.

    ``gates`` maps a 1-based connect number to an event that call waits on.
    """

    def __init__(self, failures: int = 0):
        self.failures = failures
        self.connect_calls = 0
        self.references_seen = []
        self.sessions: list[FakeLiveSession] = []
        self.gates: dict[int, asyncio.Event] = {}

    async def connect(self, references=None) -> LiveSession:
        self.connect_calls += 1
        attempt = self.connect_calls
        self.references_seen.append(references)
        if attempt in self.gates:
            await self.gates[attempt].wait()
        if attempt <= self.failures:
            raise TransportError(f"connect failed ({attempt})")
        session = FakeLiveSession()
        self.sessions.append(session)
        return session


class FakeRefinementBackend(RefinementBackend):
    """Records calls; fails the first ``failures`` calls of each kind."""

    def __init__(self, failures: int = 0, polish_suffix: str = " (polished)"):
        self.failures = failures
        self.polish_suffix = polish_suffix
        self.polish_calls: list[tuple[str, list, list]] = []
        self.translate_calls: list[str] = []
        self.gate: asyncio.Event | None = None
        self.in_flight = 0
        self.max_in_flight = 0

    async def _enter(self, attempt: int) -> None:
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.gate is not None:
                await self.gate.wait()
            if attempt <= self.failures:
                raise EnrichmentError(f"quota exceeded ({attempt})")
        finally:
            self.in_flight -= 1

    async def polish(self, text, context=None, references=None):
        self.polish_calls.append((text, list(context or []), list(references or [])))
        await self._enter(len(self.polish_calls))
        return text + self.polish_suffix

    async def translate(self, text):
        self.translate_calls.append(text)
        await self._enter(len(self.translate_calls))
        return f"[en] {text}"


def make_segment(text: str = "hello world", start: int = 0, end: int = 1, **kwargs):
    return TranscriptionSegment(id=new_id(), start_time=start, end_time=end, text=text, **kwargs)


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def state(fake_clock):
    return RecorderState(clock=RecordingClock(now=fake_clock))


@pytest.fixture
def scheduler():
    return Scheduler(sleep=instant_sleep)


@pytest.fixture
def refinement_backend():
    return FakeRefinementBackend()


@pytest.fixture
def transcription_backend():
    return FakeTranscriptionBackend()
