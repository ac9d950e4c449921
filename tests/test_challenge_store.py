"""Tests for the challenge stores."""

import pytest

from passkey_server.schemas.ceremony import CeremonyType
from passkey_server.database import close_db, create_engine, create_session_factory
from passkey_server.services.challenge_store import SQLChallengeStore
from passkey_server.services.exceptions import (
    ChallengeNotFound,
    NoPendingChallenge,
    StoreUnavailable,
)


class TestChallengeStore:
    """Behaviour shared by the memory and SQL challenge stores."""

    async def test_consume_returns_issued_challenge(self, challenge_store):
        """Should hand back the value and ceremony that were issued."""
        await challenge_store.issue("alice", b"nonce-1", CeremonyType.REGISTRATION)

        challenge = await challenge_store.consume("alice")

        assert challenge.username == "alice"
        assert challenge.value == b"nonce-1"
        assert challenge.ceremony is CeremonyType.REGISTRATION

    async def test_consume_is_single_use(self, challenge_store):
        """A second consume of the same challenge must fail."""
        await challenge_store.issue("alice", b"nonce-1", CeremonyType.AUTHENTICATION)
        await challenge_store.consume("alice")

        with pytest.raises(NoPendingChallenge):
            await challenge_store.consume("alice")

    async def test_consume_without_issue_fails(self, challenge_store):
        with pytest.raises(NoPendingChallenge, match="Challenge not found"):
            await challenge_store.consume("nobody")

    async def test_issue_overwrites_previous_challenge(self, challenge_store):
        """Only the most recently issued challenge is consumable."""
        await challenge_store.issue("carol", b"first", CeremonyType.REGISTRATION)
        await challenge_store.issue("carol", b"second", CeremonyType.REGISTRATION)

        challenge = await challenge_store.consume("carol")

        assert challenge.value == b"second"
        with pytest.raises(NoPendingChallenge):
            await challenge_store.consume("carol")

    async def test_challenges_are_scoped_by_username(self, challenge_store):
        await challenge_store.issue("alice", b"a", CeremonyType.REGISTRATION)
        await challenge_store.issue("bob", b"b", CeremonyType.REGISTRATION)

        assert (await challenge_store.consume("bob")).value == b"b"
        assert (await challenge_store.consume("alice")).value == b"a"

    async def test_expired_challenge_is_rejected_and_removed(self, challenge_store, clock):
        """An expired challenge is unusable and does not linger."""
        await challenge_store.issue("alice", b"nonce", CeremonyType.REGISTRATION)
        clock.advance(301)

        with pytest.raises(NoPendingChallenge, match="expired"):
            await challenge_store.consume("alice")
        with pytest.raises(NoPendingChallenge, match="not found"):
            await challenge_store.consume("alice")

    async def test_challenge_valid_until_ttl(self, challenge_store, clock):
        await challenge_store.issue("alice", b"nonce", CeremonyType.REGISTRATION)
        clock.advance(299)

        assert (await challenge_store.consume("alice")).value == b"nonce"

    async def test_expires_at_follows_ttl(self, challenge_store, clock):
        challenge = await challenge_store.issue("alice", b"nonce", CeremonyType.REGISTRATION)

        assert (challenge.expires_at - clock()).total_seconds() == 300

    async def test_purge_expired_removes_only_expired(self, challenge_store, clock):
        await challenge_store.issue("old", b"1", CeremonyType.REGISTRATION)
        clock.advance(200)
        await challenge_store.issue("fresh", b"2", CeremonyType.AUTHENTICATION)
        clock.advance(150)

        removed = await challenge_store.purge_expired()

        assert removed == 1
        assert (await challenge_store.consume("fresh")).value == b"2"
        with pytest.raises(NoPendingChallenge):
            await challenge_store.consume("old")

    async def test_purge_with_nothing_expired(self, challenge_store):
        await challenge_store.issue("alice", b"1", CeremonyType.REGISTRATION)

        assert await challenge_store.purge_expired() == 0


def test_challenge_not_found_alias():
    assert ChallengeNotFound is NoPendingChallenge


async def test_sql_store_failures_are_store_unavailable(settings):
    """Every SQL operation reports database faults as StoreUnavailable."""
    engine = create_engine(settings)
    # Tables were never created, so every statement fails
    store = SQLChallengeStore(create_session_factory(engine))
    try:
        with pytest.raises(StoreUnavailable):
            await store.issue("alice", b"nonce", CeremonyType.REGISTRATION)
        with pytest.raises(StoreUnavailable):
            await store.consume("alice")
        with pytest.raises(StoreUnavailable):
            await store.purge_expired()
    finally:
        await close_db(engine)
