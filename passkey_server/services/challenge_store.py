"""
Challenge storage for pending ceremonies.

A challenge is keyed by username, single-use, and expires after a fixed TTL.
``consume`` always removes the entry it returns, so a challenge can never be
accepted twice regardless of how the ceremony ends.
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Callable, Dict

from sqlalchemy import delete
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from passkey_server.models.webauthn_challenge import WebAuthnChallenge
from passkey_server.schemas.ceremony import CeremonyType, PendingChallenge, utcnow
from passkey_server.services.exceptions import NoPendingChallenge, StoreUnavailable

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 300


class ChallengeStore(ABC):
    """Abstract base class for challenge stores."""

    def __init__(
        self,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.ttl = timedelta(seconds=ttl_seconds)
        self._clock = clock

    def _new_challenge(
        self, username: str, value: bytes, ceremony: CeremonyType
    ) -> PendingChallenge:
        return PendingChallenge(
            username=username,
            value=value,
            ceremony=ceremony,
            expires_at=self._clock() + self.ttl,
        )

    @abstractmethod
    async def issue(
        self, username: str, value: bytes, ceremony: CeremonyType
    ) -> PendingChallenge:
        """Store the pending challenge for a user, replacing any previous one."""

    @abstractmethod
    async def consume(self, username: str) -> PendingChallenge:
        """Remove and return the pending challenge.

        Raises:
            NoPendingChallenge: If none exists or it has expired
        """

    @abstractmethod
    async def purge_expired(self) -> int:
        """Delete expired challenges and return how many were removed."""


class MemoryChallengeStore(ChallengeStore):
    """In-process challenge store.

    Operations never yield to the event loop, so each one is atomic with
    respect to other coroutines.
    """

    def __init__(self, ttl_seconds: int = DEFAULT_TTL_SECONDS, clock=utcnow):
        super().__init__(ttl_seconds, clock)
        self._challenges: Dict[str, PendingChallenge] = {}

    async def issue(self, username, value, ceremony):
        challenge = self._new_challenge(username, value, ceremony)
        self._challenges[username] = challenge
        return challenge

    async def consume(self, username):
        challenge = self._challenges.pop(username, None)
        if challenge is None:
            raise NoPendingChallenge()
        if challenge.is_expired(self._clock()):
            logger.info(f"Discarded expired challenge for {username!r}")
            raise NoPendingChallenge("Challenge expired")
        return challenge

    async def purge_expired(self):
        now = self._clock()
        expired = [
            username
            for username, challenge in self._challenges.items()
            if challenge.is_expired(now)
        ]
        for username in expired:
            del self._challenges[username]
        return len(expired)


class SQLChallengeStore(ChallengeStore):
    """Challenge store backed by the ``webauthn_challenges`` table."""

    def __init__(
        self,
        session_factory: async_sessionmaker,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        clock=utcnow,
    ):
        super().__init__(ttl_seconds, clock)
        self.session_factory = session_factory

    async def issue(self, username, value, ceremony):
        challenge = self._new_challenge(username, value, ceremony)
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    await session.merge(
                        WebAuthnChallenge(
                            username=username,
                            challenge=value,
                            challenge_type=ceremony.value,
                            expires_at=challenge.expires_at,
                        )
                    )
        except SQLAlchemyError as e:
            logger.error(f"Failed to store challenge for {username!r}: {e}", exc_info=True)
            raise StoreUnavailable("Challenge store unavailable") from e
        return challenge

    async def consume(self, username):
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    row = await session.get(WebAuthnChallenge, username)
                    if row is None:
                        raise NoPendingChallenge()
                    challenge = row.to_record()
                    # Delete by value so a concurrent consumer of the same row loses
                    result = await session.execute(
                        delete(WebAuthnChallenge).where(
                            WebAuthnChallenge.username == username,
                            WebAuthnChallenge.challenge == challenge.value,
                        )
                    )
                    if result.rowcount != 1:
                        raise NoPendingChallenge()
        except SQLAlchemyError as e:
            logger.error(f"Failed to consume challenge for {username!r}: {e}", exc_info=True)
            raise StoreUnavailable("Challenge store unavailable") from e

        if challenge.is_expired(self._clock()):
            logger.info(f"Discarded expired challenge for {username!r}")
            raise NoPendingChallenge("Challenge expired")
        return challenge

    async def purge_expired(self):
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    result = await session.execute(
                        delete(WebAuthnChallenge).where(
                            WebAuthnChallenge.expires_at <= self._clock()
                        )
                    )
        except SQLAlchemyError as e:
            logger.error(f"Failed to purge expired challenges: {e}", exc_info=True)
            raise StoreUnavailable("Challenge store unavailable") from e
        return result.rowcount or 0

