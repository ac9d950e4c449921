"""Registration (attestation) ceremony endpoints."""

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


@router.post("/option", responses={400: {"model": ErrorResponse}})
async def attestation_option(
    payload: CeremonyOptionRequest,
    service: WebAuthnService = Depends(get_webauthn_service),
) -> JSONResponse:
    """
    Begin a registration ceremony.

    Returns the PublicKeyCredentialCreationOptions the client passes to
    navigator.credentials.create(). Credentials the user already owns are
    listed in excludeCredentials.
    """
    options = await service.registration.begin_registration(payload.username)
    return JSONResponse(content=options.public_key)


@router.post(
    "/result",
    response_model=VerificationResponse,
    responses={400: {"model": VerificationResponse}},
)
async def attestation_result(
    payload: CeremonyResultRequest,
    service: WebAuthnService = Depends(get_webauthn_service),
) -> JSONResponse:
    """
    Complete a registration ceremony.

    Consumes the pending challenge, verifies the attestation and stores the
    new credential.
    """
    result = await service.registration.complete_registration(
        payload.username, payload.credential
    )
    return verdict_response(result)
