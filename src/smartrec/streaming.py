"""
WebSocket streaming handler for live recording.

Each WebSocket connection drives one Recorder. The browser captures
microphone audio and sends it as binary PCM16 frames (16 kHz mono); control
messages arrive as JSON text frames.

Message protocol:
    Client -> Server:
        - {"type": "start", "bilingual": false}
        - Binary PCM16 audio frames (16kHz mono)
        - {"type": "pause"} / {"type": "resume"} / {"type": "stop"}
        - {"type": "bilingual", "enabled": true}
        - {"type": "view", "session_id": "..." | null}

    Server -> Client:
        - {"type": "status", "status": "RECORDING", "elapsed": 12, "bilingual": false}
        - {"type": "partial", "text": "..."}
        - {"type": "segments", "session_id": null, "segments": [...]}
        - {"type": "session_saved", "session_id": "...", "title": "..."}
        - {"type": "error", "message": "..."}

A publisher task compares the recorder state every TICK_SEC and only sends
messages whose content changed since the last send.
"""

import asyncio
import contextlib
import json
import logging
import os
from weakref import WeakSet

from fastapi import WebSocket

from smartrec.recorder import Recorder
from smartrec.state import SessionStore

logger = logging.getLogger(__name__)

TICK_SEC = float(os.getenv("TICK_SEC", "0.5"))

_recorders: WeakSet[Recorder] = WeakSet()


def get_metrics() -> dict:
    """Aggregate queue and connection counters across connected recorders."""
    recorders = list(_recorders)
    totals = {
        "recorders": len(recorders),
        "connected": sum(1 for r in recorders if r.connection.connected),
        "dropped_frames": sum(r.connection.dropped_frames for r in recorders),
        "completed": 0,
        "failed": 0,
        "dropped": 0,
        "discarded": 0,
        "skipped": 0,
        "pending": 0,
    }
    for recorder in recorders:
        queue_metrics = recorder.queue.metrics()
        for key in ("completed", "failed", "dropped", "discarded", "skipped", "pending"):
            totals[key] += queue_metrics[key]
    return totals


def build_messages(recorder: Recorder) -> list[dict]:
    snapshot = recorder.snapshot()
    return [
        {
            "type": "status",
            "status": snapshot["status"],
            "elapsed": snapshot["elapsed"],
            "bilingual": snapshot["bilingual"],
        },
        {"type": "partial", "text": snapshot["partial"]},
        {
            "type": "segments",
            "session_id": snapshot["session_id"],
            "segments": snapshot["segments"],
        },
    ]


async def handle_control(recorder: Recorder, websocket: WebSocket, data: dict) -> None:
    msg_type = data.get("type")
    if msg_type == "start":
        if "bilingual" in data:
            recorder.set_bilingual(bool(data["bilingual"]))
        await recorder.start()
    elif msg_type == "pause":
        recorder.pause()
    elif msg_type == "resume":
        recorder.resume()
    elif msg_type == "stop":
        session = await recorder.stop()
        if session is not None:
            await websocket.send_text(
                json.dumps({"type": "session_saved", "session_id": session.id, "title": session.title})
            )
    elif msg_type == "bilingual":
        recorder.set_bilingual(bool(data.get("enabled")))
    elif msg_type == "view":
        if not recorder.view_session(data.get("session_id")):
            await websocket.send_text(json.dumps({"type": "error", "message": "Unknown session"}))
    else:
        logger.debug("Ignoring message type %r", msg_type)


async def handle_websocket(websocket: WebSocket, store: SessionStore) -> None:
    """
    Main WebSocket handler for a recording client.

    Lifecycle:
        1. Accept and create a Recorder bound to the shared session store
        2. Start the publisher task (status/partial/segments every TICK_SEC)
        3. Route binary frames to the recorder and JSON frames to handle_control
        4. On disconnect stop the recording (archiving it) and close the recorder
    """
    await websocket.accept()

    def on_error(error: Exception) -> None:
        logger.error("Recording failed: %s", error)

    recorder = Recorder(store=store, on_error=on_error)
    _recorders.add(recorder)
    running = True

    async def publish_loop():
        last_sent: dict[str, str] = {}
        while running:
            for message in build_messages(recorder):
                encoded = json.dumps(message, ensure_ascii=False)
                if last_sent.get(message["type"]) == encoded:
                    continue
                await websocket.send_text(encoded)
                last_sent[message["type"]] = encoded
            await asyncio.sleep(TICK_SEC)

    publisher = asyncio.create_task(publish_loop())

    try:
        frames_received = 0
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                logger.info("WebSocket disconnect after %d audio frames", frames_received)
                break

            if message.get("bytes") is not None:
                frames_received += 1
                recorder.push_audio(message["bytes"])
            elif message.get("text") is not None:
                try:
                    data = json.loads(message["text"])
                except json.JSONDecodeError:
                    logger.warning("Ignoring malformed control message")
                    continue
                await handle_control(recorder, websocket, data)
    except Exception as e:
        logger.exception("WebSocket error: %s", e)
    finally:
        running = False
        publisher.cancel()
        with contextlib.suppress(asyncio.CancelledError, Exception):
            await publisher
        await recorder.close()
        _recorders.discard(recorder)
