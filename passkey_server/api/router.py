"""Main API router."""

from fastapi import APIRouter

from passkey_server.api.endpoints import assertion, attestation

api_router = APIRouter()

# Include sub-routers
api_router.include_router(attestation.router, prefix="/attestation", tags=["Registration"])
api_router.include_router(assertion.router, prefix="/assertion", tags=["Authentication"])
