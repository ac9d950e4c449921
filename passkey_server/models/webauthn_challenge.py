"""WebAuthn challenge model for storing pending ceremony challenges."""

from datetime import timezone

from sqlalchemy import Column, DateTime, LargeBinary, String
from sqlalchemy.sql import func

from passkey_server.database import Base
from passkey_server.schemas.ceremony import CeremonyType, PendingChallenge


class WebAuthnChallenge(Base):
    """
    WebAuthn challenge model.

    One row per username; issuing a new challenge replaces the previous one.
    """

    __tablename__ = "webauthn_challenges"

    username = Column(
        String(255),
        primary_key=True,
        doc="Username associated with challenge"
    )

    challenge = Column(
        LargeBinary,
        nullable=False,
        doc="Raw challenge bytes"
    )

    challenge_type = Column(
        String(20),
        nullable=False,
        doc="Type of challenge (registration or authentication)"
    )

    expires_at = Column(
        DateTime(timezone=True),
        nullable=False,
        index=True,
        doc="Challenge expiration time"
    )

    created_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
        doc="Challenge creation timestamp"
    )

    def __repr__(self) -> str:
        """String representation of challenge."""
        return f"<WebAuthnChallenge(username={self.username!r}, type='{self.challenge_type}')>"

    def to_record(self) -> PendingChallenge:
        expires_at = self.expires_at
        # SQLite hands back naive datetimes
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        return PendingChallenge(
            username=self.username,
            value=self.challenge,
            ceremony=CeremonyType(self.challenge_type),
            expires_at=expires_at,
        )
