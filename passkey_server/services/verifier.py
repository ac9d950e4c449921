"""
External WebAuthn verifier.

The ceremony services treat the cryptographic engine as an opaque capability
with four operations. ``PyWebAuthnVerifier`` implements it with the
``webauthn`` (py_webauthn) library.
"""

import json
import logging
import secrets
from abc import ABC, abstractmethod
from typing import Any, Dict, List

from fastapi.concurrency import run_in_threadpool
from webauthn import (
    generate_authentication_options,
    generate_registration_options,
    verify_authentication_response,
    verify_registration_response,
)
from webauthn.helpers import options_to_json
from webauthn.helpers.structs import (
    AttestationConveyancePreference,
    AuthenticatorSelectionCriteria,
    AuthenticatorTransport,
    PublicKeyCredentialDescriptor,
    ResidentKeyRequirement,
    UserVerificationRequirement,
)

from passkey_server.schemas.ceremony import (
    AuthenticationVerification,
    CeremonyOptions,
    CredentialDescriptor,
    RegistrationVerification,
    RelyingParty,
    StoredCredential,
    UserAccount,
)

logger = logging.getLogger(__name__)

CHALLENGE_BYTES = 32

_KNOWN_TRANSPORTS = {transport.value for transport in AuthenticatorTransport}


class WebAuthnVerifier(ABC):
    """Capability interface for the cryptographic side of a ceremony."""

    @abstractmethod
    async def generate_registration_options(
        self,
        rp: RelyingParty,
        user: UserAccount,
        exclude: List[CredentialDescriptor],
    ) -> CeremonyOptions:
        """Produce attestation options with a fresh challenge."""

    @abstractmethod
    async def verify_registration_response(
        self,
        rp: RelyingParty,
        response: Dict[str, Any],
        expected_challenge: bytes,
    ) -> RegistrationVerification:
        """Verify an attestation response against the expected challenge."""

    @abstractmethod
    async def generate_authentication_options(
        self,
        rp: RelyingParty,
        allow: List[CredentialDescriptor],
    ) -> CeremonyOptions:
        """Produce assertion options with a fresh challenge."""

    @abstractmethod
    async def verify_authentication_response(
        self,
        rp: RelyingParty,
        response: Dict[str, Any],
        expected_challenge: bytes,
        credential: StoredCredential,
    ) -> AuthenticationVerification:
        """Verify an assertion response signed by ``credential``."""


def _descriptors(credentials: List[CredentialDescriptor]) -> List[PublicKeyCredentialDescriptor]:
    descriptors = []
    for credential in credentials:
        transports = [
            AuthenticatorTransport(t) for t in credential.transports if t in _KNOWN_TRANSPORTS
        ]
        descriptors.append(
            PublicKeyCredentialDescriptor(
                id=credential.credential_id,
                transports=transports or None,
            )
        )
    return descriptors


class PyWebAuthnVerifier(WebAuthnVerifier):
    """Verifier backed by py_webauthn.

    Verification is CPU bound and runs in the threadpool. Library exceptions
    become negative verdicts carrying the exception message.
    """

    def __init__(self, challenge_bytes: int = CHALLENGE_BYTES):
        self.challenge_bytes = challenge_bytes

    def _challenge(self) -> bytes:
        return secrets.token_bytes(self.challenge_bytes)

    async def generate_registration_options(self, rp, user, exclude):
        options = generate_registration_options(
            rp_id=rp.rp_id,
            rp_name=rp.rp_name,
            user_id=user.user_handle,
            user_name=user.username,
            user_display_name=user.username,
            challenge=self._challenge(),
            timeout=rp.timeout_ms,
            attestation=AttestationConveyancePreference.NONE,
            authenticator_selection=AuthenticatorSelectionCriteria(
                resident_key=ResidentKeyRequirement(rp.resident_key),
                require_resident_key=rp.resident_key == "required",
                user_verification=UserVerificationRequirement(
                    rp.registration_user_verification
                ),
            ),
            exclude_credentials=_descriptors(exclude),
        )
        return CeremonyOptions(
            challenge=options.challenge,
            public_key=json.loads(options_to_json(options)),
        )

    async def verify_registration_response(self, rp, response, expected_challenge):
        try:
            verification = await run_in_threadpool(
                verify_registration_response,
                credential=response,
                expected_challenge=expected_challenge,
                expected_rp_id=rp.rp_id,
                expected_origin=rp.origins,
                require_user_verification=rp.require_user_verification,
            )
        except Exception as e:
            logger.warning(f"Registration verification failed: {e}")
            return RegistrationVerification(verified=False, error=str(e) or type(e).__name__)

        return RegistrationVerification(
            verified=True,
            credential_id=verification.credential_id,
            public_key=verification.credential_public_key,
            sign_count=verification.sign_count,
        )

    async def generate_authentication_options(self, rp, allow):
        options = generate_authentication_options(
            rp_id=rp.rp_id,
            challenge=self._challenge(),
            timeout=rp.timeout_ms,
            allow_credentials=_descriptors(allow),
            user_verification=UserVerificationRequirement(
                rp.authentication_user_verification
            ),
        )
        return CeremonyOptions(
            challenge=options.challenge,
            public_key=json.loads(options_to_json(options)),
        )

    async def verify_authentication_response(
        self, rp, response, expected_challenge, credential
    ):
        try:
            verification = await run_in_threadpool(
                verify_authentication_response,
                credential=response,
                expected_challenge=expected_challenge,
                expected_rp_id=rp.rp_id,
                expected_origin=rp.origins,
                credential_public_key=credential.public_key,
                credential_current_sign_count=credential.sign_count,
                require_user_verification=rp.require_user_verification,
            )
        except Exception as e:
            logger.warning(f"Authentication verification failed: {e}")
            return AuthenticationVerification(verified=False, error=str(e) or type(e).__name__)

        return AuthenticationVerification(
            verified=True, new_sign_count=verification.new_sign_count
        )
