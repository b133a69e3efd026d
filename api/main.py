"""
api/main.py -- FastAPI application entry point for the storefront backend.

Run with:      uvicorn asgi:app --reload

Middleware stack (outermost to innermost):
  1. log_requests          -- one log line per request with latency
  2. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  3. CORSMiddleware        -- adds CORS headers for the storefront frontend
  4. SlowAPIMiddleware     -- enforces default per-IP rate limits

Lifespan builds every auth component once and parks it on app.state.
Startup fails (and the process exits) if SECRET_KEY is missing in
production -- Settings raises before any request is served.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.exceptions import HTTPException

from api.errors import describe
from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.auth import router as auth_router
from api.routes.v1.catalog import router as catalog_router
from api.routes.v1.password import router as password_router
from auth.cookies import CookieSessionTransport
from auth.errors import AuthError, TokenExpired
from auth.gate import SessionGate
from auth.passwords import PasswordHasher
from auth.recovery import PasswordRecoveryService
from auth.reset_tokens import ResetTokenGenerator
from auth.service import AuthService
from auth.store import UserStore
from auth.tokens import SessionTokenCodec
from core.config import Settings, get_settings
from mail.dispatcher import SmtpEmailDispatcher

API_VERSION = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("storefront.api")

_settings = get_settings()


# ---------------------------------------------------------------------------
# Component wiring
# ---------------------------------------------------------------------------


def build_components(app: FastAPI, settings: Settings, store: UserStore, dispatcher) -> None:
    """Construct the auth components around a store and dispatcher and attach them to app.state.

    Shared by the real lifespan and the test lifespan so both wire the same
    graph. The signing secret is handed to the codec here, explicitly.
    """
    hasher = PasswordHasher(rounds=settings.bcrypt_rounds)
    codec = SessionTokenCodec(settings.secret_key, lifetime=settings.token_lifetime)
    transport = CookieSessionTransport(secure=settings.is_production, max_age=settings.cookie_max_age_seconds)

    app.state.user_store = store
    app.state.cookie_transport = transport
    app.state.session_gate = SessionGate.default(codec, transport)
    app.state.auth_service = AuthService(store, hasher, codec)
    app.state.recovery_service = PasswordRecoveryService(
        store,
        hasher,
        ResetTokenGenerator(),
        dispatcher,
        frontend_url=settings.frontend_url,
    )


# ---------------------------------------------------------------------------
# Lifespan -- modern startup / shutdown pattern (replaces @app.on_event)
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Open the credential store and build the auth components; dispose on shutdown."""
    logger.info("Storefront API starting up (environment=%s)", _settings.environment)
    store = UserStore(db_url=_settings.database_url)
    dispatcher = SmtpEmailDispatcher(
        host=_settings.smtp_host,
        port=_settings.smtp_port,
        username=_settings.smtp_username,
        password=_settings.smtp_password,
        from_address=_settings.mail_from,
        starttls=_settings.smtp_starttls,
    )
    if not _settings.smtp_host:
        logger.warning("SMTP_HOST not set -- password reset emails will fail")
    build_components(app, _settings, store, dispatcher)
    logger.info("Auth initialized (token lifetime=%s)", _settings.token_lifetime)

    yield

    app.state.user_store.close()
    logger.info("Storefront API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Storefront API",
    description="Accounts, sessions and password recovery for the storefront.",
    version=API_VERSION,
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# Middleware stack
#
# add_middleware() wraps the current stack, so the LAST one registered is the
# outermost. Register innermost-first: SlowAPI -> CORS -> TrustedHost.
# ---------------------------------------------------------------------------

app.add_middleware(SlowAPIMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)

app.add_middleware(TrustedHostMiddleware, allowed_hosts=_settings.allowed_hosts)

# SlowAPI looks for app.state.limiter by convention.
app.state.limiter = limiter


# ---------------------------------------------------------------------------
# Request logging middleware
# ---------------------------------------------------------------------------


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    client_host = request.client.host if request.client else "unknown"
    try:
        response = await call_next(request)
    except Exception:
        # An unhandled error still gets its access line; ServerErrorMiddleware
        # turns it into the 500 the client sees.
        ms = (time.perf_counter() - start) * 1000
        logger.exception("%s %s %d %.1fms %s", request.method, request.url.path, 500, ms, client_host)
        raise
    ms = (time.perf_counter() - start) * 1000
    logger.info(
        "%s %s %d %.1fms %s",
        request.method,
        request.url.path,
        response.status_code,
        ms,
        client_host,
    )
    return response


# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(auth_router, prefix="/api/v1", tags=["Auth"])
app.include_router(password_router, prefix="/api/v1", tags=["Password recovery"])
app.include_router(catalog_router, prefix="/api/v1", tags=["Catalog"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so API clients can parse
# errors uniformly without inspecting status codes to choose a schema.
# ---------------------------------------------------------------------------


@app.exception_handler(AuthError)
async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    """Translate the auth taxonomy through api/errors.ERROR_TABLE.

    The exception's own text goes to the log, never to the client. When a
    session expired and the browser sent the cookie, the response also clears
    it (same attributes as when it was set) so the client stops replaying it.
    """
    status, message, headers = describe(exc)
    logger.info("%s %s -> %d %s: %s", request.method, request.url.path, status, exc.code, exc)
    response = JSONResponse(
        status_code=status,
        content=ErrorResponse(error=ErrorDetail(code=exc.code, message=message)).model_dump(),
        headers=headers,
    )
    transport: CookieSessionTransport | None = getattr(request.app.state, "cookie_transport", None)
    if isinstance(exc, TokenExpired) and transport is not None and transport.read(request):
        transport.clear(response)
    return response


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 with a structured error when a per-IP rate limit is exceeded."""
    retry_after = int(getattr(exc, "retry_after", 60))
    response = JSONResponse(
        status_code=429,
        content=ErrorResponse(
            error=ErrorDetail(
                code="too_many_requests",
                message="Too many requests. Please try again later.",
                detail=str(exc.detail),
            )
        ).model_dump(),
    )
    response.headers["Retry-After"] = str(retry_after)
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 422 with structured error when request body or query params fail validation.

    Only field locations and messages are echoed -- never the submitted input,
    which may be a password.
    """
    issues = "; ".join(
        f"{'.'.join(str(p) for p in err.get('loc', ()) if p != 'body')}: {err.get('msg', '')}" for err in exc.errors()
    )
    return JSONResponse(
        status_code=422,
        content=ErrorResponse(
            error=ErrorDetail(
                code="validation_error",
                message="Request validation failed.",
                detail=issues,
            )
        ).model_dump(),
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Unknown paths, wrong methods and other framework-raised HTTP errors."""
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error=ErrorDetail(
                code=f"http_{exc.status_code}",
                message=str(exc.detail),
            )
        ).model_dump(),
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors (store down, bcrypt failure, ...).

    The raw exception goes to the server log only, never to the response body.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content=ErrorResponse(
            error=ErrorDetail(
                code="internal_error",
                message="An unexpected error occurred.",
            )
        ).model_dump(),
    )


# ---------------------------------------------------------------------------
# Health endpoint
#
# Defined directly in main.py so it is reachable regardless of router
# registration state.
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", include_in_schema=True, tags=["Health"])
async def health() -> HealthResponse:
    """Return API liveness and current version."""
    return HealthResponse(version=API_VERSION)
