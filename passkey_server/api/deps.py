"""Shared dependencies for the ceremony endpoints."""

from fastapi import Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.util import get_remote_address

from passkey_server.config import Settings
from passkey_server.schemas.ceremony import CeremonyResult
from passkey_server.services.webauthn_service import WebAuthnService


def create_limiter(settings: Settings) -> Limiter:
    """
    Build the rate limiter for one application.

    The configured limit applies per client address to every route that is
    not exempted; SlowAPIMiddleware enforces it through ``app.state.limiter``.
    """
    return Limiter(
        key_func=get_remote_address,
        default_limits=[settings.rate_limit],
        enabled=settings.rate_limit_enabled,
    )


def get_webauthn_service(request: Request) -> WebAuthnService:
    """Dependency returning the application's ceremony services."""
    return request.app.state.webauthn


def verdict_response(result: CeremonyResult) -> JSONResponse:
    """Render a ceremony outcome; rejections are reported as 400."""
    return JSONResponse(
        status_code=200 if result.verified else 400,
        content=result.to_response(),
    )
