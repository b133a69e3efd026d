"""
api/routes/v1/auth.py -- Registration, login and session endpoints.

Routes:
  POST  /api/v1/auth/register   -- create account; sets session cookie; 201
  POST  /api/v1/auth/login      -- password login; sets session cookie
  POST  /api/v1/auth/logout     -- clears session cookie (requires auth)
  GET   /api/v1/auth/me         -- identity from the session token (requires auth)
  GET   /api/v1/auth/session    -- token issue/expiry details (requires auth)
  GET   /api/v1/auth/users      -- list public user views (requires auth)
  PATCH /api/v1/auth/password   -- change own password (requires auth)

Security:
  [H2] POST /login is rate-limited per IP (LOGIN_RATE_LIMIT).
  [C1] AuthService.login_user() equalizes timing -- never inline the lookup
       and bcrypt check here.
  [M5] Cache-Control: no-store on every response that carries a token.
  Errors leave the handlers as AuthError subclasses; api/main.py maps them.
"""

from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.limiter import limiter
from api.models import (
    AuthResponse,
    ChangePasswordRequest,
    LoginRequest,
    MeResponse,
    MessageResponse,
    RegisterRequest,
    SessionInfoResponse,
    UserListResponse,
    UserResponse,
)
from auth.cookies import CookieSessionTransport
from auth.dependencies import get_auth_service, get_cookie_transport, get_current_identity
from auth.models import AuthResult, SessionClaims, UserProfile
from auth.service import AuthService
from core.config import get_settings

_settings = get_settings()

# Auth policy:
# - POST  /auth/register: public
# - POST  /auth/login:    public, rate-limited [H2]
# - everything else:      requires a valid session (get_current_identity)
router = APIRouter()


def _auth_response(result: AuthResult, message: str, status_code: int, transport: CookieSessionTransport) -> JSONResponse:
    resp = JSONResponse(
        status_code=status_code,
        content=AuthResponse(
            message=message,
            user=UserResponse.from_public(result.user),
            token=result.token,
        ).model_dump(),
    )
    transport.attach(resp, result.token)
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/register", response_model=AuthResponse, status_code=201)
async def register(
    request: Request,
    body: RegisterRequest,
    service: AuthService = Depends(get_auth_service),
    transport: CookieSessionTransport = Depends(get_cookie_transport),
) -> JSONResponse:
    """Create an account and sign the new user in immediately."""
    profile = UserProfile(name=body.name, postal_code=body.postal_code, phone=body.phone)
    result = await service.register_user(body.email, body.password, profile)
    return _auth_response(result, "User created successfully.", 201, transport)


@router.post("/auth/login", response_model=AuthResponse)
@limiter.limit(_settings.login_rate_limit)  # [H2]
async def login(
    request: Request,
    body: LoginRequest,
    service: AuthService = Depends(get_auth_service),
    transport: CookieSessionTransport = Depends(get_cookie_transport),
) -> JSONResponse:
    """Authenticate with email and password; set the session cookie.

    Wrong email and wrong password produce the same 401 body.
    """
    result = await service.login_user(body.email, body.password)
    return _auth_response(result, "Logged in successfully.", 200, transport)


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/logout", response_model=MessageResponse)
async def logout(
    identity: SessionClaims = Depends(get_current_identity),
    transport: CookieSessionTransport = Depends(get_cookie_transport),
) -> JSONResponse:
    """Clear the session cookie.

    The token itself stays valid until its exp -- there is no revocation
    list -- but the browser no longer sends it.
    """
    resp = JSONResponse(content=MessageResponse(message="Logged out successfully.").model_dump())
    transport.clear(resp)
    return resp


@router.get("/auth/me", response_model=MeResponse)
async def me(identity: SessionClaims = Depends(get_current_identity)) -> MeResponse:
    """Return the identity carried by the verified token. No database lookup."""
    return MeResponse(user_id=identity.subject_id, email=identity.subject_email)


@router.get("/auth/session", response_model=SessionInfoResponse)
async def session_info(identity: SessionClaims = Depends(get_current_identity)) -> SessionInfoResponse:
    """Report when the current token was issued and how long it has left."""
    remaining = int((identity.expires_at - datetime.now(timezone.utc)).total_seconds())
    return SessionInfoResponse(
        user_id=identity.subject_id,
        email=identity.subject_email,
        issued_at=identity.issued_at.isoformat(),
        expires_at=identity.expires_at.isoformat(),
        expires_in_seconds=max(remaining, 0),
    )


@router.get("/auth/users", response_model=UserListResponse)
async def list_users(
    identity: SessionClaims = Depends(get_current_identity),
    service: AuthService = Depends(get_auth_service),
) -> UserListResponse:
    users = service.list_users()
    return UserListResponse(total=len(users), users=[UserResponse.from_public(u) for u in users])


@router.patch("/auth/password", response_model=MessageResponse)
async def change_password(
    body: ChangePasswordRequest,
    identity: SessionClaims = Depends(get_current_identity),
    service: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    """Change the signed-in user's password. The current password is required."""
    await service.change_password(identity.subject_id, body.current_password, body.new_password)
    return MessageResponse(message="Password updated successfully.")
