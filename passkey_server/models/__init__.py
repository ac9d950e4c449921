"""Database models for the passkey ceremony server."""

from passkey_server.models.user import User
from passkey_server.models.webauthn_credential import WebAuthnCredential
from passkey_server.models.webauthn_challenge import WebAuthnChallenge

__all__ = ["User", "WebAuthnCredential", "WebAuthnChallenge"]
