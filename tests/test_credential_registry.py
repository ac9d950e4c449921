"""Tests for the credential registries."""

import pytest

from passkey_server.schemas.ceremony import StoredCredential
from passkey_server.services.exceptions import (
    CounterRegression,
    CredentialNotFound,
    DuplicateCredential,
    UnknownUser,
    UserNotFound,
)


def make_credential(credential_id: bytes = b"cred-1", sign_count: int = 0, transports=None):
    return StoredCredential(
        credential_id=credential_id,
        public_key=b"public-key:" + credential_id,
        sign_count=sign_count,
        transports=transports if transports is not None else ["usb", "nfc"],
    )


class TestCredentialRegistry:
    """Behaviour shared by the memory and SQL registries."""

    async def test_get_user_unknown_returns_none(self, registry):
        assert await registry.get_user("alice") is None

    async def test_get_or_create_creates_empty_user(self, registry):
        user = await registry.get_or_create("alice")

        assert user.id == "alice"
        assert user.username == "alice"
        assert user.credentials == []
        assert user.user_handle == b"alice"

    async def test_get_or_create_returns_existing_user(self, registry):
        await registry.get_or_create("alice")
        await registry.add_credential("alice", make_credential())

        user = await registry.get_or_create("alice")

        assert len(user.credentials) == 1

    async def test_add_credential_requires_user(self, registry):
        with pytest.raises(UnknownUser):
            await registry.add_credential("ghost", make_credential())

    async def test_unknown_user_is_user_not_found(self):
        assert issubclass(UnknownUser, UserNotFound)

    async def test_credentials_keep_registration_order(self, registry):
        await registry.get_or_create("alice")
        for credential_id in (b"c1", b"c2", b"c3"):
            await registry.add_credential("alice", make_credential(credential_id))

        user = await registry.get_user("alice")

        assert [c.credential_id for c in user.credentials] == [b"c1", b"c2", b"c3"]

    async def test_find_credential_round_trips_fields(self, registry):
        await registry.get_or_create("alice")
        await registry.add_credential("alice", make_credential(sign_count=7))

        credential = await registry.find_credential("alice", b"cred-1")

        assert credential.public_key == b"public-key:cred-1"
        assert credential.sign_count == 7
        assert credential.transports == ["usb", "nfc"]

    async def test_find_credential_is_scoped_to_user(self, registry):
        """A credential belonging to one user is invisible to another."""
        await registry.get_or_create("alice")
        await registry.get_or_create("bob")
        await registry.add_credential("alice", make_credential(b"alice-key"))

        assert await registry.find_credential("bob", b"alice-key") is None
        assert await registry.find_credential("ghost", b"alice-key") is None

    async def test_update_counter_advances(self, registry):
        await registry.get_or_create("alice")
        await registry.add_credential("alice", make_credential(sign_count=1))

        updated = await registry.update_counter("alice", b"cred-1", 5)

        assert updated.sign_count == 5
        assert updated.last_used_at is not None
        assert (await registry.find_credential("alice", b"cred-1")).sign_count == 5

    async def test_update_counter_rejects_regression(self, registry):
        await registry.get_or_create("alice")
        await registry.add_credential("alice", make_credential(sign_count=10))

        with pytest.raises(CounterRegression) as excinfo:
            await registry.update_counter("alice", b"cred-1", 9)

        assert excinfo.value.stored == 10
        assert excinfo.value.reported == 9
        assert (await registry.find_credential("alice", b"cred-1")).sign_count == 10

    async def test_update_counter_unknown_credential(self, registry):
        await registry.get_or_create("alice")

        with pytest.raises(CredentialNotFound):
            await registry.update_counter("alice", b"missing", 1)

    async def test_transports_may_be_empty(self, registry):
        await registry.get_or_create("alice")
        await registry.add_credential("alice", make_credential(transports=[]))

        credential = await registry.find_credential("alice", b"cred-1")

        assert credential.transports == []

    async def test_register_credential_creates_user(self, registry):
        user = await registry.register_credential("alice", make_credential())

        assert user.username == "alice"
        assert [c.credential_id for c in user.credentials] == [b"cred-1"]
        assert (await registry.get_user("alice")).credentials[0].public_key == b"public-key:cred-1"

    async def test_register_credential_appends_for_existing_user(self, registry):
        await registry.register_credential("alice", make_credential(b"c1"))

        user = await registry.register_credential("alice", make_credential(b"c2"))

        assert [c.credential_id for c in user.credentials] == [b"c1", b"c2"]

    async def test_credential_id_is_unique_across_users(self, registry):
        await registry.register_credential("alice", make_credential(b"shared"))

        with pytest.raises(DuplicateCredential, match="Credential already registered"):
            await registry.register_credential("mallory", make_credential(b"shared"))

        assert await registry.find_credential("mallory", b"shared") is None

    async def test_failed_registration_leaves_no_user(self, registry):
        """A user is only stored together with a credential."""
        await registry.register_credential("alice", make_credential(b"shared"))

        with pytest.raises(DuplicateCredential):
            await registry.register_credential("mallory", make_credential(b"shared"))

        assert await registry.get_user("mallory") is None

    async def test_add_credential_duplicate_is_rejected(self, registry):
        """The stored uniqueness guard reports a duplicate, not a store failure."""
        await registry.get_or_create("alice")
        await registry.get_or_create("bob")
        await registry.add_credential("alice", make_credential(b"shared"))

        with pytest.raises(DuplicateCredential):
            await registry.add_credential("bob", make_credential(b"shared"))
        with pytest.raises(DuplicateCredential):
            await registry.add_credential("alice", make_credential(b"shared"))

        assert len((await registry.get_user("alice")).credentials) == 1
        assert (await registry.get_user("bob")).credentials == []
