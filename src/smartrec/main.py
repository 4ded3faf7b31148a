"""
FastAPI application for SmartRec live lecture transcription.

Endpoints:
    GET  /health              - Health check
    GET  /metrics             - Enrichment queue and connection counters
    GET  /sessions            - Archived recordings, newest first (without segments)
    GET  /sessions/{id}       - One archived recording with its segments
    GET  /sessions/{id}/text  - Plain-text export of a recording
    WS   /ws                  - Real-time recording WebSocket

Startup:
    The lifespan handler loads a .env file, configures logging and opens the
    session store (SESSIONS_PATH, in-memory when unset). Backends are created
    lazily on the first recording so the API starts without credentials.
"""

from contextlib import asynccontextmanager
from functools import lru_cache

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException, WebSocket
from fastapi.responses import PlainTextResponse

from smartrec.log import setup_logging
from smartrec.recorder import format_transcript
from smartrec.state import SessionStore
from smartrec.streaming import get_metrics, handle_websocket


@lru_cache(maxsize=1)
def get_store() -> SessionStore:
    return SessionStore.from_env()


@asynccontextmanager
async def lifespan(_app: FastAPI):
    load_dotenv()
    logger = setup_logging()
    store = get_store()
    logger.info("SmartRec ready (%d archived sessions)", len(store.list()))
    yield


app = FastAPI(
    title="SmartRec",
    description="Live lecture transcription with polishing and translation",
    lifespan=lifespan,
)


@app.get("/health")
async def health():
    return {"status": "ok"}


@app.get("/metrics")
async def metrics():
    return get_metrics()


@app.get("/sessions")
async def list_sessions():
    return [
        {
            "id": s.id,
            "title": s.title,
            "date": s.date,
            "duration": s.duration,
            "segment_count": len(s.segments),
        }
        for s in get_store().list()
    ]


@app.get("/sessions/{session_id}")
async def get_session(session_id: str):
    session = get_store().get(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Session not found")
    return session.to_dict()


@app.get("/sessions/{session_id}/text", response_class=PlainTextResponse)
async def get_session_text(session_id: str):
    session = get_store().get(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Session not found")
    return format_transcript(session.segments)


@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    await handle_websocket(websocket, get_store())
