"""
api/routes/v1/catalog.py -- Storefront routes that do not require a session.

Routes:
  GET /api/v1/catalog/greeting -- personalised when signed in, generic otherwise

Uses try_get_current_identity(): an expired or forged token is treated as
anonymous instead of failing the request.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends

from api.models import GreetingResponse
from auth.dependencies import try_get_current_identity
from auth.models import SessionClaims

router = APIRouter()


@router.get("/catalog/greeting", response_model=GreetingResponse)
async def greeting(identity: Optional[SessionClaims] = Depends(try_get_current_identity)) -> GreetingResponse:
    if identity is None:
        return GreetingResponse(authenticated=False, message="Welcome! Sign in to see your orders.")
    return GreetingResponse(authenticated=True, message=f"Welcome back, {identity.subject_email}!")
