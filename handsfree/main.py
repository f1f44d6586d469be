"""
FastAPI app: hands-free interpreter sessions.

HTTP API:
- POST   /api/sessions                              create session (languages)
- GET    /api/sessions/{id}                         state, analytics, live stats
- DELETE /api/sessions/{id}                         close session, final snapshot
- POST   /api/sessions/{id}/enroll                  enroll a voice print from base64 PCM
- POST   /api/sessions/{id}/voiceprints             import serialized voice prints
- GET    /api/sessions/{id}/voiceprints             export voice prints
- DELETE /api/sessions/{id}/voiceprints/{owner_id}  remove a voice print
- GET    /health

WebSocket /ws/sessions/{id}: client sends binary PCM 16-bit mono 16kHz and JSON
engine chunks; server pushes session events as JSON (see websocket_manager).
"""
from __future__ import annotations

import base64
import binascii
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, WebSocket, WebSocketDisconnect

from handsfree.audio.receiver import pcm_bytes_to_float32
from handsfree.config import get_settings
from handsfree.errors import (
    AudioDeviceUnavailable,
    EnrollmentQualityTooLow,
    SessionNotFound,
    SessionStateError,
)
from handsfree.logging_setup import setup_logging
from handsfree.schemas.session import (
    CreateSessionRequest,
    EnrollRequest,
    EnrollResponse,
    ImportVoicePrintsRequest,
    ImportVoicePrintsResponse,
    SessionDetailResponse,
    SessionResponse,
    VoicePrintPayload,
)
from handsfree.session import ConversationSession
from handsfree.session_store import (
    close_all_sessions,
    close_session,
    create_session,
    get_session,
    get_snapshot,
    require_session,
)
from handsfree.speech.models import Role
from handsfree.translation.orchestrator import create_translation_backend
from handsfree.websocket_manager import WebSocketManager

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    settings = get_settings()
    logger.info(
        "Starting hands-free interpreter (translation=%s, vad=%s)",
        settings.TRANSLATION_BACKEND,
        settings.VAD_BACKEND,
    )
    yield
    await close_all_sessions()


app = FastAPI(
    title="Hands-free Interpreter",
    description="Speaker routing, voice-print matching and translation orchestration for live bilingual conversations",
    lifespan=lifespan,
)


def _session_or_404(session_id: str) -> ConversationSession:
    try:
        return require_session(session_id)
    except SessionNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))


def _session_response(session: ConversationSession) -> SessionResponse:
    return SessionResponse(
        session_id=session.session_id,
        lifecycle=session.lifecycle.value,
        employee_language=session.state.employee_language,
        customer_language=session.state.customer_language,
        websocket_url=f"/ws/sessions/{session.session_id}",
    )


@app.post("/api/sessions", response_model=SessionResponse)
async def create_session_route(request: CreateSessionRequest) -> SessionResponse:
    session = create_session(request.employee_language, request.customer_language)
    return _session_response(session)


@app.get("/api/sessions/{session_id}", response_model=SessionDetailResponse)
async def get_session_detail(session_id: str) -> SessionDetailResponse:
    session = get_session(session_id)
    if session is not None:
        snapshot = session.snapshot()
        return SessionDetailResponse(
            session_id=session_id,
            lifecycle=session.lifecycle.value,
            state=snapshot.state,
            analytics=snapshot.analytics,
            stats=session.stats(),
        )
    snapshot = get_snapshot(session_id)
    if snapshot is None:
        raise HTTPException(status_code=404, detail=f"Session not found: {session_id}")
    return SessionDetailResponse(
        session_id=session_id,
        lifecycle="disposed",
        state=snapshot.state,
        analytics=snapshot.analytics,
    )


@app.delete("/api/sessions/{session_id}", response_model=SessionDetailResponse)
async def delete_session(session_id: str) -> SessionDetailResponse:
    try:
        snapshot = await close_session(session_id)
    except SessionNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    return SessionDetailResponse(
        session_id=session_id,
        lifecycle="disposed",
        state=snapshot.state,
        analytics=snapshot.analytics,
    )


@app.post("/api/sessions/{session_id}/enroll", response_model=EnrollResponse)
async def enroll(session_id: str, request: EnrollRequest) -> EnrollResponse:
    """
    Enroll a voice print. 422 when the sample quality is too low (caller should
    record again), 409 when the session is already closed.
    """
    session = _session_or_404(session_id)
    try:
        pcm = base64.b64decode(request.audio_base64, validate=True)
    except (binascii.Error, ValueError):
        raise HTTPException(status_code=400, detail="audio_base64 is not valid base64")
    if len(pcm) % 2:
        pcm = pcm[:-1]
    try:
        voice_print = session.enroll(pcm_bytes_to_float32(pcm), owner_id=request.owner_id, role=Role(request.role))
    except EnrollmentQualityTooLow as e:
        raise HTTPException(
            status_code=422,
            detail={"message": str(e), "error_type": type(e).__name__, "quality": e.quality},
        )
    except SessionStateError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return EnrollResponse(
        voice_print_id=voice_print.id,
        owner_id=voice_print.owner_id,
        quality=voice_print.confidence,
        duration_ms=float(voice_print.metadata.get("duration_ms", 0.0)),
    )


@app.post("/api/sessions/{session_id}/voiceprints", response_model=ImportVoicePrintsResponse)
async def import_voice_prints(session_id: str, request: ImportVoicePrintsRequest) -> ImportVoicePrintsResponse:
    session = _session_or_404(session_id)
    imported = session.matcher.import_voice_prints([vp.model_dump() for vp in request.voice_prints])
    for voice_print in session.matcher.voice_prints():
        if voice_print.role is Role.EMPLOYEE and session.state.employee_voice_print is None:
            session.state.employee_voice_print = voice_print
    return ImportVoicePrintsResponse(imported=imported, total=len(session.matcher))


@app.get("/api/sessions/{session_id}/voiceprints", response_model=list[VoicePrintPayload])
async def export_voice_prints(session_id: str) -> list[VoicePrintPayload]:
    session = _session_or_404(session_id)
    return [VoicePrintPayload(**item) for item in session.matcher.export_voice_prints()]


@app.delete("/api/sessions/{session_id}/voiceprints/{owner_id}")
async def remove_voice_print(session_id: str, owner_id: str) -> dict:
    session = _session_or_404(session_id)
    if not session.remove_voice_print(owner_id):
        raise HTTPException(status_code=404, detail=f"No voice print for {owner_id}")
    return {"removed": owner_id}


@app.websocket("/ws/sessions/{session_id}")
async def websocket_session(websocket: WebSocket, session_id: str) -> None:
    """
    WebSocket: client sends raw PCM 16-bit mono 16kHz (binary) and engine chunks (JSON text).
    Server sends session events as JSON.
    """
    session = get_session(session_id)
    if session is None:
        await websocket.close(code=4404)
        return
    await websocket.accept()
    manager = WebSocketManager(websocket, session)
    try:
        await manager.run()
    except WebSocketDisconnect:
        pass
    except AudioDeviceUnavailable as e:
        logger.error("Session %s closed: %s", session_id, e)
        try:
            await websocket.close(code=1011)
        except Exception:
            pass
    except Exception:
        logger.exception("WebSocket session %s failed", session_id)
        try:
            await websocket.close()
        except Exception:
            pass


@app.get("/health")
async def health() -> dict:
    """Probe the configured translation backend with one short request."""
    settings = get_settings()
    backend = create_translation_backend(settings.TRANSLATION_BACKEND)
    try:
        translation = await backend.health_check()
    finally:
        await backend.aclose()
    return {
        "status": "ok" if translation["status"] == "healthy" else "degraded",
        "translation_backend": settings.TRANSLATION_BACKEND,
        "translation": translation,
        "vad_backend": settings.VAD_BACKEND,
    }
