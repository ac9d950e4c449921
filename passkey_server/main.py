"""Main FastAPI application for the passkey ceremony server."""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from passkey_server import __version__
from passkey_server.api.deps import create_limiter
from passkey_server.api.router import api_router
from passkey_server.config import Settings, get_settings
from passkey_server.database import close_db, create_engine, create_session_factory, init_db
from passkey_server.middleware import RequestLoggingMiddleware
from passkey_server.schemas.ceremony import RelyingParty
from passkey_server.schemas.webauthn import HealthResponse
from passkey_server.services.challenge_store import (
    ChallengeStore,
    MemoryChallengeStore,
    SQLChallengeStore,
)
from passkey_server.services.credential_registry import (
    CredentialRegistry,
    MemoryCredentialRegistry,
    SQLCredentialRegistry,
)
from passkey_server.services.exceptions import (
    CeremonyError,
    StoreUnavailable,
    VerificationFailed,
)
from passkey_server.services.verifier import PyWebAuthnVerifier, WebAuthnVerifier
from passkey_server.services.webauthn_service import WebAuthnService
from passkey_server.tasks.scheduler import BackgroundTaskScheduler

logger = logging.getLogger(__name__)


def configure_logging(settings: Settings) -> None:
    """Configure logging from settings."""
    logging.basicConfig(
        level=getattr(logging, settings.log_level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan manager.

    Creates database tables when the SQL backend is in use and runs the
    challenge cleanup scheduler.
    """
    settings: Settings = app.state.settings
    logger.info("Starting passkey ceremony server...")

    scheduler: Optional[BackgroundTaskScheduler] = None
    try:
        if app.state.engine is not None:
            await init_db(app.state.engine)
            logger.info("Database initialized successfully")

        if settings.enable_background_tasks:
            scheduler = BackgroundTaskScheduler(
                challenges=app.state.webauthn.challenges,
                cleanup_interval=settings.challenge_cleanup_interval,
            )
            scheduler.start()
        app.state.scheduler = scheduler

        yield

    except Exception as e:
        logger.error(f"Failed to initialize application: {e}")
        raise

    finally:
        logger.info("Shutting down passkey ceremony server...")
        if scheduler is not None:
            await scheduler.stop()
        if app.state.engine is not None:
            await close_db(app.state.engine)
            logger.info("Database connections closed")


def _build_stores(settings: Settings, app: FastAPI):
    """Create the configured registry and challenge store."""
    if settings.storage_backend == "memory":
        app.state.engine = None
        return (
            MemoryCredentialRegistry(),
            MemoryChallengeStore(ttl_seconds=settings.challenge_ttl_seconds),
        )

    engine = create_engine(settings)
    session_factory = create_session_factory(engine)
    app.state.engine = engine
    return (
        SQLCredentialRegistry(session_factory),
        SQLChallengeStore(session_factory, ttl_seconds=settings.challenge_ttl_seconds),
    )


def create_app(
    settings: Optional[Settings] = None,
    registry: Optional[CredentialRegistry] = None,
    challenges: Optional[ChallengeStore] = None,
    verifier: Optional[WebAuthnVerifier] = None,
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        settings: Settings to use (process settings if omitted)
        registry: Credential registry overriding the configured backend
        challenges: Challenge store overriding the configured backend
        verifier: Verifier overriding py_webauthn

    Returns:
        FastAPI: Configured application
    """
    settings = settings or get_settings()
    configure_logging(settings)

    app = FastAPI(
        title="Passkey Ceremony Server",
        description="WebAuthn registration and authentication ceremonies",
        version=__version__,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        openapi_url="/openapi.json" if settings.debug else None,
        lifespan=lifespan,
    )
    app.state.settings = settings

    if registry is None or challenges is None:
        default_registry, default_challenges = _build_stores(settings, app)
        registry = registry or default_registry
        challenges = challenges or default_challenges
    else:
        app.state.engine = None

    app.state.webauthn = WebAuthnService(
        registry=registry,
        challenges=challenges,
        verifier=verifier or PyWebAuthnVerifier(),
        relying_party=RelyingParty(**settings.get_relying_party_config()),
    )

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_methods=settings.allowed_methods,
        allow_headers=settings.allowed_headers,
    )

    # Rate limiting, one limiter per application
    app.state.limiter = create_limiter(settings)
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.add_middleware(SlowAPIMiddleware)
    app.add_middleware(RequestLoggingMiddleware)

    _register_exception_handlers(app)
    _register_routes(app)
    return app


def _register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(CeremonyError)
    async def ceremony_exception_handler(request: Request, exc: CeremonyError) -> JSONResponse:
        """Convert ceremony errors into structured responses."""
        content = {"error": exc.message}
        if isinstance(exc, VerificationFailed):
            content = {"verified": False, "error": exc.message}
        return JSONResponse(status_code=exc.status_code, content=content)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        """Malformed bodies are reported like missing fields."""
        return JSONResponse(status_code=400, content={"error": "Invalid request body"})

    @app.exception_handler(StoreUnavailable)
    async def store_exception_handler(request: Request, exc: StoreUnavailable) -> JSONResponse:
        """Backing store failures are infrastructure faults."""
        logger.error(f"Store unavailable during {request.url.path}: {exc}")
        return JSONResponse(status_code=503, content={"error": "Service unavailable"})

    # Global exception handler
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Global exception handler for unhandled errors."""
        logger.error(f"Unhandled exception: {exc}", exc_info=True)

        if app.state.settings.debug:
            return JSONResponse(
                status_code=500,
                content={
                    "error": "Internal server error",
                    "detail": str(exc),
                    "type": type(exc).__name__,
                }
            )

        return JSONResponse(status_code=500, content={"error": "Internal server error"})


def _register_routes(app: FastAPI) -> None:
    limiter = app.state.limiter

    @app.get("/", tags=["Root"], response_class=PlainTextResponse)
    @limiter.exempt
    async def root() -> str:
        """Root endpoint."""
        return "Passkey Demo Server"

    @app.get("/health", tags=["Health"], response_model=HealthResponse)
    @limiter.exempt
    async def health_check() -> dict:
        """Health check endpoint."""
        settings: Settings = app.state.settings
        return {
            "status": "healthy",
            "service": "passkey-server",
            "version": __version__,
            "environment": settings.environment,
            "storage_backend": settings.storage_backend,
        }

    app.include_router(api_router)


app = create_app()
