"""
Ceremony orchestration for WebAuthn registration and authentication.

The services hold no state of their own: they coordinate the credential
registry, the challenge store and the external verifier. Every step for a
username runs under that username's lock, so a begin/complete pair for one
user is never interleaved with another step for the same user.
"""

import logging
from typing import Any, Dict, List, Optional

from webauthn.helpers import base64url_to_bytes

from passkey_server.schemas.ceremony import (
    CeremonyOptions,
    CeremonyResult,
    CeremonyType,
    PendingChallenge,
    Rejected,
    RelyingParty,
    StoredCredential,
    UserAccount,
    Verified,
)
from passkey_server.services.challenge_store import ChallengeStore
from passkey_server.services.credential_registry import CredentialRegistry
from passkey_server.services.exceptions import (
    CounterRegression,
    CredentialNotFound,
    DuplicateCredential,
    NoPendingChallenge,
    UserNotFound,
    ValidationError,
)
from passkey_server.services.locks import KeyedLock
from passkey_server.services.verifier import WebAuthnVerifier

logger = logging.getLogger(__name__)


def _require_username(username: Optional[str]) -> str:
    if not isinstance(username, str) or not username.strip():
        raise ValidationError("Username is required")
    return username


def _require_inputs(username: Optional[str], response: Optional[Dict[str, Any]]) -> str:
    if (
        not isinstance(username, str)
        or not username.strip()
        or not isinstance(response, dict)
        or not response
    ):
        raise ValidationError("Username and credential are required")
    return username


def _transports(response: Dict[str, Any]) -> List[str]:
    """Transport hints reported by the client; advisory only."""
    inner = response.get("response")
    transports = inner.get("transports") if isinstance(inner, dict) else None
    if not isinstance(transports, list):
        return []
    return [t for t in transports if isinstance(t, str)]


def check_counter(stored: int, reported: int) -> None:
    """
    Enforce signature counter progression.

    Authenticators that do not implement a counter report zero forever; that
    is accepted. Otherwise the reported counter must be strictly greater than
    the stored one.

    Raises:
        CounterRegression: If the counter did not advance
    """
    if (stored or reported) and reported <= stored:
        raise CounterRegression(stored, reported)


class CeremonyService:
    """Shared plumbing for both ceremony orchestrators."""

    ceremony: CeremonyType

    def __init__(
        self,
        registry: CredentialRegistry,
        challenges: ChallengeStore,
        verifier: WebAuthnVerifier,
        relying_party: RelyingParty,
        locks: Optional[KeyedLock] = None,
    ):
        self.registry = registry
        self.challenges = challenges
        self.verifier = verifier
        self.rp = relying_party
        self.locks = locks or KeyedLock()

    async def _issue(self, username: str, options: CeremonyOptions) -> None:
        await self.challenges.issue(username, options.challenge, self.ceremony)

    async def _consume(self, username: str) -> PendingChallenge:
        """Consume the user's challenge, which must belong to this ceremony."""
        challenge = await self.challenges.consume(username)
        if challenge.ceremony != self.ceremony:
            logger.info(
                f"Discarded {challenge.ceremony.value} challenge presented "
                f"for {self.ceremony.value}: {username!r}"
            )
            raise NoPendingChallenge()
        return challenge


class RegistrationService(CeremonyService):
    """Drives the enroll-a-new-credential ceremony."""

    ceremony = CeremonyType.REGISTRATION

    async def begin_registration(self, username: Optional[str]) -> CeremonyOptions:
        """
        Start a registration ceremony.

        Args:
            username: Username to enroll a credential for

        Returns:
            CeremonyOptions: Attestation options for the client

        Raises:
            ValidationError: If the username is missing
        """
        username = _require_username(username)

        async with self.locks.hold(username):
            user = await self.registry.get_user(username) or UserAccount.empty(username)
            # Existing credentials are excluded so an authenticator is not enrolled twice
            options = await self.verifier.generate_registration_options(
                self.rp, user, user.descriptors()
            )
            await self._issue(username, options)

        logger.info(
            f"Registration options issued for {username!r} "
            f"({len(user.credentials)} excluded credentials)"
        )
        return options

    async def complete_registration(
        self, username: Optional[str], response: Optional[Dict[str, Any]]
    ) -> CeremonyResult:
        """
        Finish a registration ceremony.

        Args:
            username: Username the options were issued for
            response: Attestation response produced by the authenticator

        Returns:
            Verified if the credential was stored, Rejected otherwise

        Raises:
            ValidationError: If the username or response is missing
            NoPendingChallenge: If no registration challenge is outstanding
        """
        username = _require_inputs(username, response)

        async with self.locks.hold(username):
            challenge = await self._consume(username)

            try:
                verification = await self.verifier.verify_registration_response(
                    self.rp, response, challenge.value
                )
            except Exception as e:
                logger.warning(f"Registration verification raised for {username!r}: {e}")
                return Rejected(str(e) or "Registration failed")

            if not verification.verified:
                logger.info(f"Registration rejected for {username!r}: {verification.error}")
                return Rejected(verification.error or "Registration failed")

            credential = StoredCredential(
                credential_id=verification.credential_id,
                public_key=verification.public_key,
                sign_count=verification.sign_count,
                transports=_transports(response),
            )
            # Creates the user together with its first credential
            try:
                await self.registry.register_credential(username, credential)
            except DuplicateCredential as e:
                logger.warning(f"Credential already registered, rejected for {username!r}")
                return Rejected(e.message)

        logger.info(f"Credential registered for {username!r}")
        return Verified(credential.credential_id, credential.sign_count)


class AuthenticationService(CeremonyService):
    """Drives the prove-possession ceremony for a known user."""

    ceremony = CeremonyType.AUTHENTICATION

    async def _require_user(self, username: str) -> UserAccount:
        user = await self.registry.get_user(username)
        if user is None:
            raise UserNotFound()
        return user

    async def begin_authentication(self, username: Optional[str]) -> CeremonyOptions:
        """
        Start an authentication ceremony.

        Raises:
            ValidationError: If the username is missing
            UserNotFound: If the user never registered
        """
        username = _require_username(username)

        async with self.locks.hold(username):
            user = await self._require_user(username)
            options = await self.verifier.generate_authentication_options(
                self.rp, user.descriptors()
            )
            await self._issue(username, options)

        logger.info(f"Authentication options issued for {username!r}")
        return options

    async def complete_authentication(
        self, username: Optional[str], response: Optional[Dict[str, Any]]
    ) -> CeremonyResult:
        """
        Finish an authentication ceremony.

        Args:
            username: Username the options were issued for
            response: Assertion response produced by the authenticator

        Returns:
            Verified with the new counter, or Rejected

        Raises:
            ValidationError: If the username or response is missing
            UserNotFound: If the user never registered
            NoPendingChallenge: If no authentication challenge is outstanding
            CredentialNotFound: If the response names a credential this user does not own
        """
        username = _require_inputs(username, response)
        raw_id = response.get("id")
        if not isinstance(raw_id, str) or not raw_id:
            raise ValidationError("Credential id is required")

        async with self.locks.hold(username):
            await self._require_user(username)
            challenge = await self._consume(username)

            try:
                credential_id = base64url_to_bytes(raw_id)
            except ValueError:
                raise CredentialNotFound() from None
            # Scoped to this user so one user's ceremony cannot use another's credential
            credential = await self.registry.find_credential(username, credential_id)
            if credential is None:
                raise CredentialNotFound()

            try:
                verification = await self.verifier.verify_authentication_response(
                    self.rp, response, challenge.value, credential
                )
            except Exception as e:
                logger.warning(f"Authentication verification raised for {username!r}: {e}")
                return Rejected(str(e) or "Authentication failed")

            if not verification.verified:
                logger.info(f"Authentication rejected for {username!r}: {verification.error}")
                return Rejected(verification.error or "Authentication failed")

            try:
                check_counter(credential.sign_count, verification.new_sign_count)
                await self.registry.update_counter(
                    username, credential_id, verification.new_sign_count
                )
            except CounterRegression as e:
                logger.warning(
                    f"Possible cloned authenticator for {username!r}: {e.message}"
                )
                return Rejected(e.message)

        logger.info(f"Authentication verified for {username!r}")
        return Verified(credential_id, verification.new_sign_count)


class WebAuthnService:
    """Both orchestrators wired over the same stores and lock table."""

    def __init__(
        self,
        registry: CredentialRegistry,
        challenges: ChallengeStore,
        verifier: WebAuthnVerifier,
        relying_party: RelyingParty,
    ):
        self.registry = registry
        self.challenges = challenges
        self.verifier = verifier
        # Challenges are keyed by username across both ceremonies
        self.locks = KeyedLock()
        self.registration = RegistrationService(
            registry, challenges, verifier, relying_party, self.locks
        )
        self.authentication = AuthenticationService(
            registry, challenges, verifier, relying_party, self.locks
        )
