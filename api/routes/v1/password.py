"""
api/routes/v1/password.py -- Password recovery endpoints.

Routes:
  POST /api/v1/password/forgot  -- email a single-use reset link
  POST /api/v1/password/reset   -- set a new password with that link's token

Security:
  [H4] /forgot is rate-limited per IP (PASSWORD_RESET_RATE_LIMIT, 3 per 15
       minutes by default). Independently, PasswordRecoveryService allows one
       live token per account and answers RateLimited (429) otherwise.
  [E1] /forgot answers the same message whether or not the email exists.
"""

from fastapi import APIRouter, Depends, Request

from api.limiter import limiter
from api.models import ForgotPasswordRequest, MessageResponse, ResetPasswordRequest
from auth.dependencies import get_recovery_service
from auth.recovery import PasswordRecoveryService
from core.config import get_settings

_settings = get_settings()

# Auth policy: both endpoints are public -- the reset token is the credential.
router = APIRouter()


@router.post("/password/forgot", response_model=MessageResponse)
@limiter.limit(_settings.password_reset_rate_limit)  # [H4]
async def forgot_password(
    request: Request,
    body: ForgotPasswordRequest,
    service: PasswordRecoveryService = Depends(get_recovery_service),
) -> MessageResponse:
    message = await service.request_password_reset(body.email)
    return MessageResponse(message=message)


@router.post("/password/reset", response_model=MessageResponse)
async def reset_password(
    body: ResetPasswordRequest,
    service: PasswordRecoveryService = Depends(get_recovery_service),
) -> MessageResponse:
    message = await service.reset_password(body.token, body.new_password)
    return MessageResponse(message=message)
