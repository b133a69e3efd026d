"""
auth/dependencies.py -- FastAPI Depends() helpers for session checks.

try_get_current_identity() is the soft variant (returns None on failure).
get_current_identity() raises the gate's TokenMissing / TokenExpired /
TokenInvalid; the exception handler in api/main.py turns those into 401s.

Both store the verified identity on request.state.identity so middleware
and handlers further down can read it without re-verifying.

Also provides accessors for the service objects the lifespan puts on
app.state, so routes declare what they need instead of reaching into
request.app.state themselves.

Layer rule: auth/dependencies.py may import from fastapi (Request) because it
is part of the FastAPI dependency injection system. No imports from api/.
"""

from __future__ import annotations

from fastapi import Request

from auth.cookies import CookieSessionTransport
from auth.gate import SessionGate
from auth.models import SessionClaims
from auth.recovery import PasswordRecoveryService
from auth.service import AuthService


def get_session_gate(request: Request) -> SessionGate:
    return request.app.state.session_gate


def get_cookie_transport(request: Request) -> CookieSessionTransport:
    return request.app.state.cookie_transport


def get_auth_service(request: Request) -> AuthService:
    return request.app.state.auth_service


def get_recovery_service(request: Request) -> PasswordRecoveryService:
    return request.app.state.recovery_service


def try_get_current_identity(request: Request) -> SessionClaims | None:
    """Return the verified identity, or None for anonymous/invalid requests. Never raises."""
    identity = get_session_gate(request).authenticate_optional(request)
    request.state.identity = identity
    return identity


def get_current_identity(request: Request) -> SessionClaims:
    """Require a valid session.

    Use as a FastAPI dependency:
        @router.get("/protected")
        async def route(identity: SessionClaims = Depends(get_current_identity)): ...
    """
    identity = get_session_gate(request).authenticate(request)
    request.state.identity = identity
    return identity
