"""Pydantic request/response schemas and ceremony records."""

from passkey_server.schemas.ceremony import (
    CeremonyOptions,
    CeremonyType,
    PendingChallenge,
    Rejected,
    RelyingParty,
    StoredCredential,
    UserAccount,
    Verified,
)
from passkey_server.schemas.webauthn import (
    CeremonyOptionRequest,
    CeremonyResultRequest,
    ErrorResponse,
    HealthResponse,
    VerificationResponse,
)

__all__ = [
    "CeremonyOptions",
    "CeremonyType",
    "PendingChallenge",
    "Rejected",
    "RelyingParty",
    "StoredCredential",
    "UserAccount",
    "Verified",
    "CeremonyOptionRequest",
    "CeremonyResultRequest",
    "ErrorResponse",
    "HealthResponse",
    "VerificationResponse",
]
