"""Authentication (assertion) ceremony endpoints."""

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from passkey_server.api.deps import get_webauthn_service, verdict_response
from passkey_server.schemas.webauthn import (
    CeremonyOptionRequest,
    CeremonyResultRequest,
    ErrorResponse,
    VerificationResponse,
)
from passkey_server.services.webauthn_service import WebAuthnService

router = APIRouter()


@router.post(
    "/option",
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def assertion_option(
    payload: CeremonyOptionRequest,
    service: WebAuthnService = Depends(get_webauthn_service),
) -> JSONResponse:
    """
    Begin an authentication ceremony.

    Returns the PublicKeyCredentialRequestOptions the client passes to
    navigator.credentials.get(), restricted to the user's credentials.
    """
    options = await service.authentication.begin_authentication(payload.username)
    return JSONResponse(content=options.public_key)


@router.post(
    "/result",
    response_model=VerificationResponse,
    responses={400: {"model": VerificationResponse}, 404: {"model": ErrorResponse}},
)
async def assertion_result(
    payload: CeremonyResultRequest,
    service: WebAuthnService = Depends(get_webauthn_service),
) -> JSONResponse:
    """
    Complete an authentication ceremony.

    Verifies the assertion against the stored public key and advances the
    credential's signature counter.
    """
    result = await service.authentication.complete_authentication(
        payload.username, payload.credential
    )
    return verdict_response(result)
