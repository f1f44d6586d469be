"""
Schemas for the session HTTP API.

Audio in JSON bodies is base64 of PCM 16-bit mono at SAMPLE_RATE, same format the
WebSocket takes as binary frames.
"""
from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field


class CreateSessionRequest(BaseModel):
    """Request body for POST /api/sessions."""

    employee_language: str | None = Field(None, description="Employee language code (default DEFAULT_EMPLOYEE_LANGUAGE)")
    customer_language: str | None = Field(None, description="Customer language code (default DEFAULT_CUSTOMER_LANGUAGE)")


class SessionResponse(BaseModel):
    session_id: str = Field(..., description="Use for all follow-up calls and the WebSocket URL")
    lifecycle: str = Field(..., description="init | active | disposed")
    employee_language: str
    customer_language: str
    websocket_url: str = Field(..., description="Relative URL of the session WebSocket")


class EnrollRequest(BaseModel):
    """Request body for POST /api/sessions/{id}/enroll."""

    audio_base64: str = Field(..., description="Base64 PCM 16-bit mono, ~6 seconds of speech")
    owner_id: str = Field("employee", description="Voice print owner id")
    role: Literal["employee", "customer"] = Field("employee", description="Role of the enrolled speaker")


class EnrollResponse(BaseModel):
    voice_print_id: str
    owner_id: str
    quality: float = Field(..., description="Enrollment quality score 0..1")
    duration_ms: float


class VoicePrintPayload(BaseModel):
    """Serialized voice print (import/export)."""

    id: str
    owner_id: str
    features: list[float] = Field(..., description="Normalized band energies (128 values)")
    confidence: float = Field(..., ge=0.0, le=1.0)
    created_at: int | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class ImportVoicePrintsRequest(BaseModel):
    voice_prints: list[VoicePrintPayload]


class ImportVoicePrintsResponse(BaseModel):
    imported: int
    total: int


class SessionDetailResponse(BaseModel):
    session_id: str
    lifecycle: str
    state: dict[str, Any]
    analytics: dict[str, Any]
    stats: dict[str, Any] | None = Field(None, description="Live statistics; null once the session is closed")
