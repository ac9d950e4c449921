"""Application configuration settings for the passkey ceremony server."""

from functools import lru_cache
from typing import List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

_REQUIREMENT_LEVELS = ("required", "preferred", "discouraged")


class Settings(BaseSettings):
    """
    Passkey server settings with validation and defaults.

    Every value can be set through an environment variable with the
    PASSKEY_ prefix (e.g. PASSKEY_RP_ID=example.com).
    """

    # Relying Party Configuration
    rp_id: str = Field(
        default="localhost",
        description="Relying Party ID, must match the client's effective domain"
    )
    rp_name: str = Field(default="Passkey Demo", description="Relying Party display name")
    rp_origins: List[str] = Field(
        default=["http://localhost:4200"],
        description="Origins accepted in client data during verification"
    )

    # Ceremony Configuration
    registration_user_verification: str = Field(
        default="discouraged",
        description="User verification requirement for registration"
    )
    authentication_user_verification: str = Field(
        default="preferred",
        description="User verification requirement for authentication"
    )
    resident_key: str = Field(
        default="discouraged", description="Resident key requirement"
    )
    require_user_verification: bool = Field(
        default=False,
        description="Reject responses whose authenticator did not verify the user"
    )
    ceremony_timeout_ms: int = Field(
        default=60000, description="Client-side ceremony timeout in milliseconds"
    )

    # Challenge Configuration
    challenge_ttl_seconds: int = Field(
        default=300, description="Lifetime of an unconsumed challenge"
    )
    challenge_cleanup_interval: int = Field(
        default=60, description="Interval between expired challenge sweeps in seconds"
    )
    enable_background_tasks: bool = Field(
        default=True, description="Run background maintenance tasks"
    )

    # Storage Configuration
    storage_backend: str = Field(
        default="sql", description="Credential and challenge storage (sql or memory)"
    )
    database_url: str = Field(
        default="sqlite+aiosqlite:///./passkeys.db",
        description="Database connection URL"
    )

    # CORS Configuration
    allowed_origins: List[str] = Field(default=["*"], description="Allowed CORS origins")
    allowed_methods: List[str] = Field(
        default=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        description="Allowed HTTP methods"
    )
    allowed_headers: List[str] = Field(default=["*"], description="Allowed headers")

    # Rate Limiting
    rate_limit_enabled: bool = Field(
        default=True, description="Enable rate limiting on ceremony endpoints"
    )
    rate_limit: str = Field(
        default="30/minute", description="Ceremony endpoint rate limit per client"
    )

    # Environment Configuration
    environment: str = Field(default="development", description="Environment name")
    debug: bool = Field(default=False, description="Debug mode")
    log_level: str = Field(default="INFO", description="Logging level")

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Validate environment value."""
        allowed = ["development", "staging", "production"]
        if v.lower() not in allowed:
            raise ValueError(f"Environment must be one of: {allowed}")
        return v.lower()

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        allowed = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in allowed:
            raise ValueError(f"Log level must be one of: {allowed}")
        return v.upper()

    @field_validator(
        "registration_user_verification",
        "authentication_user_verification",
        "resident_key",
    )
    @classmethod
    def validate_requirement(cls, v: str) -> str:
        if v.lower() not in _REQUIREMENT_LEVELS:
            raise ValueError(f"Requirement must be one of: {list(_REQUIREMENT_LEVELS)}")
        return v.lower()

    @field_validator("storage_backend")
    @classmethod
    def validate_storage_backend(cls, v: str) -> str:
        if v.lower() not in ("sql", "memory"):
            raise ValueError("Storage backend must be 'sql' or 'memory'")
        return v.lower()

    @field_validator("rp_origins")
    @classmethod
    def validate_origins(cls, v: List[str]) -> List[str]:
        """Validate origin URL format."""
        if not v:
            raise ValueError("At least one origin must be specified")
        for origin in v:
            if not origin.startswith(("http://", "https://")):
                raise ValueError("Origin must start with http:// or https://")
        return [origin.rstrip("/") for origin in v]

    @field_validator("challenge_ttl_seconds", "challenge_cleanup_interval")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("Interval must be positive")
        return v

    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.environment == "production"

    def get_relying_party_config(self) -> dict:
        """Get the relying party settings used by the ceremony services."""
        return {
            "rp_id": self.rp_id,
            "rp_name": self.rp_name,
            "origins": list(self.rp_origins),
            "registration_user_verification": self.registration_user_verification,
            "authentication_user_verification": self.authentication_user_verification,
            "resident_key": self.resident_key,
            "require_user_verification": self.require_user_verification,
            "timeout_ms": self.ceremony_timeout_ms,
        }

    class Config:
        env_prefix = "PASSKEY_"
        env_file = ".env"
        case_sensitive = False


@lru_cache()
def get_settings() -> Settings:
    """Get the process-wide settings instance."""
    return Settings()
