"""FastAPI application factory"""
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from filauth.api import health, miners, rate_limits, signers, tokens, users
from filauth.client.verifier import EngineVerifier
from filauth.config import VERSION, Settings, settings as default_settings
from filauth.errors import AuthError
from filauth.middleware.auth_mux import AuthMux
from filauth.middleware.monitoring import DeadlineMiddleware, MonitoringMiddleware
from filauth.middleware.rate_limit import build_limiter
from filauth.services.auth_service import AuthService
from filauth.services.bootstrap import ensure_default_admin
from filauth.services.credentials import CredentialEngine
from filauth.storage import open_store
from filauth.storage.store import Store
from filauth.utils.address import set_network
from filauth.utils.jwt_utils import load_or_create_secret
from filauth.utils.logger import logger, setup_logging


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def create_app(
    settings: Optional[Settings] = None,
    store: Optional[Store] = None,
    secret: Optional[bytes] = None,
) -> FastAPI:
    """
    Build the auth service application

    Args:
        settings: Configuration; the process-wide settings when omitted.
        store:    Store handle; opened (and migrated) from settings when omitted,
                  in which case the app closes it on shutdown.
        secret:   Signing secret; loaded or generated from settings when omitted.
    """
    settings = settings or default_settings
    setup_logging(settings.LOG_LEVEL, settings.LOG_FORMAT)
    set_network(settings.NETWORK)

    owns_store = store is None
    if store is None:
        store = open_store(settings)
    if secret is None:
        secret = load_or_create_secret(settings)

    engine = CredentialEngine(store, secret)
    service = AuthService(store, engine)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan handler"""
        app.state.admin_token = ensure_default_admin(service, settings.token_path)
        logger.info("filauth starting up", extra={
            "action": "startup",
            "path": str(settings.repo_path),
        })
        yield
        logger.info("filauth shutting down", extra={"action": "shutdown"})
        if owns_store:
            store.close()

    app = FastAPI(
        title="filauth",
        description="Credential and account authority for Filecoin services",
        version=VERSION,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.store = store
    app.state.engine = engine
    app.state.service = service

    # ===== Middleware Setup =====
    # Added innermost first: monitoring -> deadline -> verification -> throttling -> routes

    app.state.limiter = build_limiter(settings)
    if settings.RATE_LIMIT_ENABLED:
        app.add_middleware(SlowAPIMiddleware)

    app.add_middleware(
        AuthMux,
        verifiers=[EngineVerifier(engine)],
        trust_handles=health.TRUSTED_PATHS,
    )
    app.add_middleware(DeadlineMiddleware, timeout=settings.request_timeout)
    app.add_middleware(MonitoringMiddleware)

    # ===== Route Setup =====

    app.include_router(health.router)
    app.include_router(tokens.router)
    app.include_router(users.router)
    app.include_router(rate_limits.router)
    app.include_router(miners.router)
    app.include_router(signers.router)

    # ===== Error Handlers =====

    @app.exception_handler(AuthError)
    async def auth_error_handler(request: Request, exc: AuthError):
        if exc.status_code >= 500:
            logger.error(
                f"Request failed: {exc.message}",
                extra={"path": request.url.path, "method": request.method, "error": exc.kind},
            )
        return _error(exc.status_code, exc.message)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        errors = "; ".join(
            f"{'.'.join(str(loc) for loc in err.get('loc', ()))}: {err.get('msg', '')}"
            for err in exc.errors()
        )
        return _error(400, errors or "bad request")

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return _error(exc.status_code, str(exc.detail))

    @app.exception_handler(RateLimitExceeded)
    def rate_limit_handler(request: Request, exc: RateLimitExceeded):
        """Handle rate limit exceeded errors"""
        logger.warning(
            "Rate limit exceeded",
            extra={
                "path": request.url.path,
                "method": request.method,
                "ip": request.client.host if request.client else "unknown",
            },
        )
        return _error(429, f"rate limit exceeded: {exc.detail}")

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Global exception handler for uncaught errors"""
        logger.error(
            f"Unhandled exception: {str(exc)}",
            extra={"path": request.url.path, "method": request.method},
            exc_info=True,
        )
        return _error(500, "internal server error")

    return app
