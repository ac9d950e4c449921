"""User model for the passkey ceremony server."""

from sqlalchemy import Column, DateTime, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from passkey_server.database import Base


class User(Base):
    """
    User model for storing relying party identities.

    The username is the sole lookup key and doubles as the user id.
    """

    __tablename__ = "users"

    id = Column(
        String(255),
        primary_key=True,
        doc="User identifier (equal to the username)"
    )

    username = Column(
        String(255),
        unique=True,
        nullable=False,
        index=True,
        doc="Unique username for the user"
    )

    created_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
        doc="Account creation timestamp"
    )

    # Relationships
    credentials = relationship(
        "WebAuthnCredential",
        back_populates="user",
        order_by="WebAuthnCredential.position",
        cascade="all, delete-orphan",
        doc="Registered credentials in registration order"
    )

    def __repr__(self) -> str:
        """String representation of user."""
        return f"<User(id={self.id!r})>"
