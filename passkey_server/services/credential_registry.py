"""
Credential registry: per-user identity and registered credentials.

The registry owns User and Credential records exclusively. Credentials are
created once, have only their signature counter mutated afterwards, and are
never deleted.
"""

import logging
from abc import ABC, abstractmethod
from typing import Dict, Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker
from sqlalchemy.orm import selectinload

from passkey_server.models.user import User
from passkey_server.models.webauthn_credential import WebAuthnCredential
from passkey_server.schemas.ceremony import StoredCredential, UserAccount, utcnow
from passkey_server.services.exceptions import (
    CounterRegression,
    CredentialNotFound,
    DuplicateCredential,
    StoreUnavailable,
    UnknownUser,
)

logger = logging.getLogger(__name__)


def _regression(stored: int, reported: int) -> CounterRegression:
    return CounterRegression(
        stored,
        reported,
        f"Signature counter would move backward from {stored} to {reported}",
    )


class CredentialRegistry(ABC):
    """Abstract base class for credential registries."""

    @abstractmethod
    async def get_user(self, username: str) -> Optional[UserAccount]:
        """Return the user with their credentials, or None if unknown."""

    @abstractmethod
    async def get_or_create(self, username: str) -> UserAccount:
        """Return the existing user or create an empty one."""

    @abstractmethod
    async def add_credential(self, username: str, credential: StoredCredential) -> None:
        """
        Append a credential to the user's list.

        Raises:
            UnknownUser: If the user does not exist
            DuplicateCredential: If any user already owns the credential id
        """

    @abstractmethod
    async def register_credential(
        self, username: str, credential: StoredCredential
    ) -> UserAccount:
        """
        Create the user if needed and append the credential, all or nothing.

        A failed registration never leaves an empty user behind.

        Raises:
            DuplicateCredential: If any user already owns the credential id
        """

    @abstractmethod
    async def find_credential(
        self, username: str, credential_id: bytes
    ) -> Optional[StoredCredential]:
        """Look up a credential within one user's list."""

    @abstractmethod
    async def update_counter(
        self, username: str, credential_id: bytes, new_count: int
    ) -> StoredCredential:
        """
        Overwrite a credential's signature counter.

        Raises:
            CredentialNotFound: If the user has no such credential
            CounterRegression: If ``new_count`` is below the stored counter
        """


class MemoryCredentialRegistry(CredentialRegistry):
    """In-process registry used by tests and the ``memory`` storage backend."""

    def __init__(self):
        self._users: Dict[str, UserAccount] = {}

    async def get_user(self, username):
        return self._users.get(username)

    async def get_or_create(self, username):
        user = self._users.get(username)
        if user is None:
            user = UserAccount.empty(username)
            self._users[username] = user
            logger.info(f"Created user {username!r}")
        return user

    def _check_unregistered(self, credential_id: bytes) -> None:
        for user in self._users.values():
            if user.find_credential(credential_id) is not None:
                raise DuplicateCredential()

    async def add_credential(self, username, credential):
        user = self._users.get(username)
        if user is None:
            raise UnknownUser(f"Unknown user: {username}")
        self._check_unregistered(credential.credential_id)
        user.credentials.append(credential)

    async def register_credential(self, username, credential):
        self._check_unregistered(credential.credential_id)
        user = await self.get_or_create(username)
        user.credentials.append(credential)
        return user

    async def find_credential(self, username, credential_id):
        user = self._users.get(username)
        if user is None:
            return None
        return user.find_credential(credential_id)

    async def update_counter(self, username, credential_id, new_count):
        credential = await self.find_credential(username, credential_id)
        if credential is None:
            raise CredentialNotFound()
        if new_count < credential.sign_count:
            raise _regression(credential.sign_count, new_count)
        credential.sign_count = new_count
        credential.last_used_at = utcnow()
        return credential


def _to_credential(row: WebAuthnCredential) -> StoredCredential:
    return StoredCredential(
        credential_id=row.credential_id,
        public_key=row.public_key,
        sign_count=row.sign_count,
        transports=row.transports_list,
        created_at=row.created_at,
        last_used_at=row.last_used_at,
    )


def _to_account(row: User) -> UserAccount:
    return UserAccount(
        id=row.id,
        username=row.username,
        credentials=[_to_credential(credential) for credential in row.credentials],
    )


class SQLCredentialRegistry(CredentialRegistry):
    """Registry backed by the ``users`` and ``webauthn_credentials`` tables."""

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def _load_user(self, session, username: str) -> Optional[User]:
        stmt = (
            select(User)
            .options(selectinload(User.credentials))
            .where(User.username == username)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_user(self, username):
        try:
            async with self.session_factory() as session:
                user = await self._load_user(session, username)
                return _to_account(user) if user else None
        except SQLAlchemyError as e:
            logger.error(f"Failed to load user {username!r}: {e}", exc_info=True)
            raise StoreUnavailable("Credential registry unavailable") from e

    async def get_or_create(self, username):
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    user = await self._load_user(session, username)
                    if user is None:
                        user = User(id=username, username=username, credentials=[])
                        session.add(user)
                        logger.info(f"Created user {username!r}")
                    account = _to_account(user)
        except IntegrityError as e:
            # Lost a creation race; the row exists now
            account = await self.get_user(username)
            if account is None:
                raise StoreUnavailable("Credential registry unavailable") from e
        except SQLAlchemyError as e:
            logger.error(f"Failed to create user {username!r}: {e}", exc_info=True)
            raise StoreUnavailable("Credential registry unavailable") from e
        return account

    async def _insert_credential(self, session, username: str, credential: StoredCredential):
        count = await session.scalar(
            select(func.count(WebAuthnCredential.id)).where(
                WebAuthnCredential.user_id == username
            )
        )
        row = WebAuthnCredential(
            user_id=username,
            position=count or 0,
            credential_id=credential.credential_id,
            public_key=credential.public_key,
            sign_count=credential.sign_count,
            created_at=credential.created_at,
        )
        row.transports_list = credential.transports
        session.add(row)

    async def _is_registered(self, credential_id: bytes) -> bool:
        async with self.session_factory() as session:
            owner = await session.scalar(
                select(WebAuthnCredential.user_id).where(
                    WebAuthnCredential.credential_id == credential_id
                )
            )
            return owner is not None

    async def add_credential(self, username, credential):
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    user = await session.get(User, username)
                    if user is None:
                        raise UnknownUser(f"Unknown user: {username}")
                    await self._insert_credential(session, username, credential)
        except IntegrityError as e:
            # The unique credential_id column is the cross-process guard
            logger.warning(f"Credential already registered, rejected for {username!r}")
            raise DuplicateCredential() from e
        except SQLAlchemyError as e:
            logger.error(f"Failed to add credential for {username!r}: {e}", exc_info=True)
            raise StoreUnavailable("Credential registry unavailable") from e

    async def register_credential(self, username, credential):
        # Second attempt covers losing a user creation race to another process
        for attempt in range(2):
            try:
                async with self.session_factory() as session:
                    async with session.begin():
                        user = await session.get(User, username)
                        if user is None:
                            session.add(User(id=username, username=username))
                            logger.info(f"Created user {username!r}")
                        await self._insert_credential(session, username, credential)
                break
            except IntegrityError as e:
                try:
                    registered = await self._is_registered(credential.credential_id)
                except SQLAlchemyError as lookup_error:
                    raise StoreUnavailable("Credential registry unavailable") from lookup_error
                if registered:
                    raise DuplicateCredential() from e
                if attempt:
                    logger.error(f"Failed to register credential for {username!r}: {e}")
                    raise StoreUnavailable("Credential registry unavailable") from e
            except SQLAlchemyError as e:
                logger.error(
                    f"Failed to register credential for {username!r}: {e}", exc_info=True
                )
                raise StoreUnavailable("Credential registry unavailable") from e
        return await self.get_user(username)

    async def find_credential(self, username, credential_id):
        try:
            async with self.session_factory() as session:
                result = await session.execute(
                    select(WebAuthnCredential).where(
                        WebAuthnCredential.user_id == username,
                        WebAuthnCredential.credential_id == credential_id,
                    )
                )
                row = result.scalar_one_or_none()
                return _to_credential(row) if row else None
        except SQLAlchemyError as e:
            logger.error(f"Failed to look up credential for {username!r}: {e}", exc_info=True)
            raise StoreUnavailable("Credential registry unavailable") from e

    async def update_counter(self, username, credential_id, new_count):
        used_at = utcnow()
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    # Conditional update keeps the counter monotonic across processes
                    result = await session.execute(
                        update(WebAuthnCredential)
                        .where(
                            WebAuthnCredential.user_id == username,
                            WebAuthnCredential.credential_id == credential_id,
                            WebAuthnCredential.sign_count <= new_count,
                        )
                        .values(sign_count=new_count, last_used_at=used_at)
                    )
                    if result.rowcount != 1:
                        stored = await session.scalar(
                            select(WebAuthnCredential.sign_count).where(
                                WebAuthnCredential.user_id == username,
                                WebAuthnCredential.credential_id == credential_id,
                            )
                        )
                        if stored is None:
                            raise CredentialNotFound()
                        raise _regression(stored, new_count)
        except SQLAlchemyError as e:
            logger.error(f"Failed to update counter for {username!r}: {e}", exc_info=True)
            raise StoreUnavailable("Credential registry unavailable") from e
        return await self.find_credential(username, credential_id)
