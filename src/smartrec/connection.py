"""
Live connection to the transcription source.

ConnectionManager owns both ends of the duplex channel:
    - send side: an outbound audio queue drained into LiveSession.send_audio
    - receive side: LiveSession.events() routed into the Segmenter

One pump task runs the sender and receiver for the current session. When
either fails (or the remote side closes) the session is torn down and a
reconnect is scheduled on the Scheduler:

    retry 1: 1s, retry 2: 2s, retry 3: 4s, retry 4: 8s  (capped at 15s)
    failure 5 in a row: status -> ERROR (terminal until a new start)

A successful open resets the retry counter. Reconnects only happen while the
recorder is RECORDING or PAUSED; once stopped, failures are ignored. Every
start() and stop() begins a new generation, and an open that completes for an
older generation closes its session instead of adopting it.

While PAUSED, audio frames are dropped at send_audio() but the session and
reconnect logic keep running.
"""

import asyncio
import contextlib
import logging
import os
from collections.abc import Callable
from typing import Protocol

from smartrec.backends.base import LiveSession, TranscriptionBackend
from smartrec.models import RecorderStatus
from smartrec.scheduler import ScheduledTask, Scheduler
from smartrec.segmenter import Segmenter
from smartrec.state import RecorderState

logger = logging.getLogger(__name__)

MAX_CONNECT_RETRIES = int(os.getenv("MAX_CONNECT_RETRIES", "5"))
RECONNECT_BASE_MS = float(os.getenv("RECONNECT_BASE_MS", "1000"))
RECONNECT_MAX_MS = float(os.getenv("RECONNECT_MAX_MS", "15000"))
AUDIO_QUEUE_MAXSIZE = int(os.getenv("AUDIO_QUEUE_MAXSIZE", "100"))

ErrorCallback = Callable[[Exception], None]


class CaptureHandle(Protocol):
    """An audio capture resource released when the connection stops."""

    def close(self) -> None: ...


def reconnect_delay_ms(attempt: int) -> float:
    """Delay before reconnect number ``attempt`` (1-based)."""
    return min(RECONNECT_MAX_MS, 2 ** (attempt - 1) * RECONNECT_BASE_MS)


class ConnectionManager:
    """
    Holds a resilient live session and feeds it audio.

    Attributes:
        state: Shared recorder state (status is read and, on exhaustion, set to ERROR)
        backend: Transcription backend opening live sessions
        segmenter: Receives transcript deltas and turn-complete signals
        scheduler: Source of reconnect timers
        retry_count: Consecutive failed opens/sessions since the last good open
        dropped_frames: Audio frames discarded because the send queue was full
    """

    def __init__(
        self,
        state: RecorderState,
        backend: TranscriptionBackend,
        segmenter: Segmenter,
        scheduler: Scheduler | None = None,
        on_error: ErrorCallback | None = None,
    ) -> None:
        self.state = state
        self.backend = backend
        self.segmenter = segmenter
        self.scheduler = scheduler or Scheduler()
        self.on_error = on_error
        self.retry_count = 0
        self.dropped_frames = 0
        self.last_error: Exception | None = None
        self._session: LiveSession | None = None
        self._pump: asyncio.Task | None = None
        self._reconnect: ScheduledTask | None = None
        self._audio: asyncio.Queue[bytes] = asyncio.Queue(maxsize=AUDIO_QUEUE_MAXSIZE)
        self._capture: CaptureHandle | None = None
        self._stopped = True
        self._generation = 0

    @property
    def connected(self) -> bool:
        return self._session is not None

    @property
    def reconnect_pending(self) -> bool:
        return self._reconnect is not None and not self._reconnect.done

    def attach_capture(self, capture: CaptureHandle) -> None:
        self._capture = capture

    async def start(self) -> None:
        """Open the live session (failures go through the reconnect path)."""
        self._stopped = False
        self._generation += 1
        self.retry_count = 0
        self.last_error = None
        self._audio = asyncio.Queue(maxsize=AUDIO_QUEUE_MAXSIZE)
        await self._open()

    def send_audio(self, frame: bytes) -> bool:
        """Queue one PCM16 frame for the remote source. Returns False if not forwarded."""
        if self.state.status != RecorderStatus.RECORDING or self._session is None:
            return False
        if self._audio.full():
            self._audio.get_nowait()
            self.dropped_frames += 1
        self._audio.put_nowait(frame)
        return True

    async def stop(self) -> None:
        """Release capture and session, then flush the segmenter."""
        self._stopped = True
        self._generation += 1
        if self._reconnect is not None:
            self._reconnect.cancel()
            self._reconnect = None
        if self._pump is not None and self._pump is not asyncio.current_task():
            self._pump.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._pump
        self._pump = None
        await self._close_session()
        if self._capture is not None:
            try:
                self._capture.close()
            except Exception as e:
                logger.warning("Error releasing audio capture: %s", e)
            self._capture = None
        self.segmenter.finalize()

    async def _open(self) -> None:
        self._reconnect = None
        if self._stopped:
            return
        generation = self._generation
        try:
            session = await self.backend.connect(self.state.references)
        except Exception as e:
            if generation != self._generation:
                return
            logger.warning("Live session open failed: %s", e)
            self._handle_transport_error(e)
            return

        # A stop (and maybe a new start) happened while connecting
        if self._stopped or generation != self._generation:
            await session.close()
            return

        self._session = session
        self.retry_count = 0
        logger.info("Live session connected")
        self._pump = asyncio.create_task(self._run_session(session), name="live-pump")

    async def _run_session(self, session: LiveSession) -> None:
        sender = asyncio.create_task(self._send_loop(session), name="live-send")
        receiver = asyncio.create_task(self._receive_loop(session), name="live-receive")
        try:
            done, _ = await asyncio.wait({sender, receiver}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (sender, receiver):
                task.cancel()
            for task in (sender, receiver):
                with contextlib.suppress(asyncio.CancelledError, Exception):
                    await task

        error = next((t.exception() for t in done if not t.cancelled() and t.exception()), None)
        await self._close_session()
        if self._stopped:
            return
        if error is None:
            error = ConnectionError("live session ended")
        logger.warning("Live session lost: %s", error)
        self._handle_transport_error(error)

    async def _send_loop(self, session: LiveSession) -> None:
        while True:
            frame = await self._audio.get()
            await session.send_audio(frame)

    async def _receive_loop(self, session: LiveSession) -> None:
        async for event in session.events():
            if event.text:
                self.segmenter.add_delta(event.text)
            if event.turn_complete:
                self.segmenter.finalize()

    async def _close_session(self) -> None:
        session, self._session = self._session, None
        if session is not None:
            try:
                await session.close()
            except Exception as e:
                logger.debug("Error closing live session: %s", e)

    def _handle_transport_error(self, error: Exception) -> None:
        self.last_error = error
        if self._stopped or not self.state.is_active:
            return

        self.retry_count += 1
        if self.retry_count >= MAX_CONNECT_RETRIES:
            logger.error("Live connection failed %d times, giving up: %s", self.retry_count, error)
            self.state.status = RecorderStatus.ERROR
            if self.on_error:
                self.on_error(error)
            return

        delay = reconnect_delay_ms(self.retry_count)
        logger.warning("Reconnecting in %.0fms (attempt %d)", delay, self.retry_count)
        self._reconnect = self.scheduler.call_later(delay, self._open, name="reconnect")
