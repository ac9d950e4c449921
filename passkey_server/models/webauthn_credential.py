"""WebAuthn credential model for storing user authenticator credentials."""

import uuid
from typing import List

from sqlalchemy import (
    Column,
    DateTime,
    ForeignKey,
    Integer,
    LargeBinary,
    String,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from passkey_server.database import Base


class WebAuthnCredential(Base):
    """
    WebAuthn credential model for storing authenticator credentials.

    Holds the public key produced during registration and the signature
    counter advanced by each authentication.
    """

    __tablename__ = "webauthn_credentials"

    id = Column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
        doc="Unique credential record identifier"
    )

    user_id = Column(
        String(255),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
        doc="Reference to the user who owns this credential"
    )

    # Registration order within the user's list
    position = Column(Integer, nullable=False, default=0)

    credential_id = Column(
        LargeBinary,
        unique=True,
        nullable=False,
        index=True,
        doc="WebAuthn credential ID (binary)"
    )

    public_key = Column(
        LargeBinary,
        nullable=False,
        doc="Public key for verifying assertions (COSE encoded)"
    )

    sign_count = Column(
        Integer,
        default=0,
        nullable=False,
        doc="Signature counter for replay and clone detection"
    )

    transports = Column(
        String(255),
        nullable=True,
        doc="Transport hints (comma-separated)"
    )

    created_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
        doc="Credential registration timestamp"
    )

    last_used_at = Column(
        DateTime(timezone=True),
        nullable=True,
        doc="Timestamp of last successful authentication"
    )

    # Relationships
    user = relationship("User", back_populates="credentials")

    def __repr__(self) -> str:
        """String representation of credential."""
        return f"<WebAuthnCredential(id={self.id}, user_id={self.user_id!r})>"

    @property
    def transports_list(self) -> List[str]:
        """Get transports as a list."""
        if not self.transports:
            return []
        return [t.strip() for t in self.transports.split(",") if t.strip()]

    @transports_list.setter
    def transports_list(self, transports: List[str]) -> None:
        """Set transports from a list."""
        self.transports = ",".join(transports) if transports else None
