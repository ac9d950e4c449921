"""Request and response schemas for the ceremony endpoints."""

from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class CeremonyOptionRequest(BaseModel):
    """Schema for requesting attestation or assertion options."""

    username: Optional[str] = Field(None, description="Username the ceremony is for")


class CeremonyResultRequest(BaseModel):
    """Schema for submitting an attestation or assertion result."""

    username: Optional[str] = Field(None, description="Username the options were issued for")
    credential: Optional[Dict[str, Any]] = Field(
        None, description="PublicKeyCredential produced by the authenticator"
    )


class VerificationResponse(BaseModel):
    """Schema for a ceremony verdict."""

    verified: bool = Field(..., description="Whether the ceremony succeeded")
    error: Optional[str] = Field(None, description="Reason the ceremony was rejected")


class ErrorResponse(BaseModel):
    """Schema for ceremony errors."""

    error: str = Field(..., description="Error message")


class HealthResponse(BaseModel):
    """Schema for the health check."""

    status: str
    service: str
    version: str
    environment: str
    storage_backend: str
