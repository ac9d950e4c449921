"""Service layer: stores, verifier and ceremony orchestrators."""

from passkey_server.services.challenge_store import (
    ChallengeStore,
    MemoryChallengeStore,
    SQLChallengeStore,
)
from passkey_server.services.credential_registry import (
    CredentialRegistry,
    MemoryCredentialRegistry,
    SQLCredentialRegistry,
)
from passkey_server.services.verifier import PyWebAuthnVerifier, WebAuthnVerifier
from passkey_server.services.webauthn_service import (
    AuthenticationService,
    RegistrationService,
    WebAuthnService,
)

__all__ = [
    "ChallengeStore",
    "MemoryChallengeStore",
    "SQLChallengeStore",
    "CredentialRegistry",
    "MemoryCredentialRegistry",
    "SQLCredentialRegistry",
    "WebAuthnVerifier",
    "PyWebAuthnVerifier",
    "RegistrationService",
    "AuthenticationService",
    "WebAuthnService",
]
