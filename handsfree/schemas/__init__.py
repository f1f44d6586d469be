"""Pydantic schemas for API request/response."""
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

__all__ = [
    "CreateSessionRequest",
    "EnrollRequest",
    "EnrollResponse",
    "ImportVoicePrintsRequest",
    "ImportVoicePrintsResponse",
    "SessionDetailResponse",
    "SessionResponse",
    "VoicePrintPayload",
]
