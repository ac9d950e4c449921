"""Plain data records passed between stores, the verifier and the ceremony services."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Union


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CeremonyType(str, Enum):
    """Kind of ceremony a challenge was issued for."""

    REGISTRATION = "registration"
    AUTHENTICATION = "authentication"


@dataclass
class RelyingParty:
    """Relying party parameters handed to the verifier on every ceremony."""

    rp_id: str
    rp_name: str
    origins: List[str]
    registration_user_verification: str = "discouraged"
    authentication_user_verification: str = "preferred"
    resident_key: str = "discouraged"
    require_user_verification: bool = False
    timeout_ms: int = 60000


@dataclass(frozen=True)
class CredentialDescriptor:
    """Credential reference used in exclude and allow lists."""

    credential_id: bytes
    transports: List[str] = field(default_factory=list)


@dataclass
class StoredCredential:
    """One registered authenticator enrollment."""

    credential_id: bytes
    public_key: bytes
    sign_count: int = 0
    transports: List[str] = field(default_factory=list)
    created_at: datetime = field(default_factory=utcnow)
    last_used_at: Optional[datetime] = None

    def descriptor(self) -> CredentialDescriptor:
        return CredentialDescriptor(
            credential_id=self.credential_id, transports=list(self.transports)
        )


@dataclass
class UserAccount:
    """Identity record; the username doubles as the user id."""

    id: str
    username: str
    credentials: List[StoredCredential] = field(default_factory=list)

    @classmethod
    def empty(cls, username: str) -> "UserAccount":
        return cls(id=username, username=username)

    @property
    def user_handle(self) -> bytes:
        """WebAuthn user handle sent to the authenticator."""
        return self.id.encode("utf-8")

    def descriptors(self) -> List[CredentialDescriptor]:
        return [credential.descriptor() for credential in self.credentials]

    def find_credential(self, credential_id: bytes) -> Optional[StoredCredential]:
        for credential in self.credentials:
            if credential.credential_id == credential_id:
                return credential
        return None


@dataclass
class PendingChallenge:
    """A single-use challenge waiting for its ceremony result."""

    username: str
    value: bytes
    ceremony: CeremonyType
    expires_at: datetime

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return (now or utcnow()) >= self.expires_at


@dataclass
class CeremonyOptions:
    """Options generated by the verifier.

    ``public_key`` is the JSON-ready options document returned verbatim to
    the client; ``challenge`` is the raw value that must be stored.
    """

    challenge: bytes
    public_key: Dict[str, Any]


@dataclass
class RegistrationVerification:
    """Verifier verdict for an attestation response."""

    verified: bool
    credential_id: Optional[bytes] = None
    public_key: Optional[bytes] = None
    sign_count: int = 0
    error: Optional[str] = None


@dataclass
class AuthenticationVerification:
    """Verifier verdict for an assertion response."""

    verified: bool
    new_sign_count: int = 0
    error: Optional[str] = None


@dataclass(frozen=True)
class Verified:
    """Successful ceremony outcome."""

    credential_id: bytes
    sign_count: int
    verified: bool = field(default=True, init=False)

    def to_response(self) -> Dict[str, Any]:
        return {"verified": True}


@dataclass(frozen=True)
class Rejected:
    """Failed ceremony outcome; not a fault of the server."""

    reason: str
    verified: bool = field(default=False, init=False)

    def to_response(self) -> Dict[str, Any]:
        return {"verified": False, "error": self.reason}


CeremonyResult = Union[Verified, Rejected]
