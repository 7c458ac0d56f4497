"""
api/routes/v1/password.py -- Password change, admin reset and policy helpers.

Routes:
  POST /api/v1/password/change    -- requires auth and the current password
  POST /api/v1/password/reset     -- admin override (403 for non-admins)
  POST /api/v1/password/validate  -- public policy check, nothing is stored
  POST /api/v1/password/generate  -- requires auth; random policy-compliant password

The admin check for /reset lives in AuthOrchestrator.reset_password so the
role is re-read from the store rather than trusted from the token.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from api.models import (
    ChangePasswordRequest,
    GeneratePasswordRequest,
    GeneratedPasswordResponse,
    MessageResponse,
    PasswordCheckRequest,
    PasswordCheckResponse,
    ResetPasswordRequest,
)
from auth.dependencies import get_current_claims, get_orchestrator
from auth.models import PasswordContext, TokenClaims
from auth.orchestrator import AuthOrchestrator
from auth.passwords import generate_secure_password, score

router = APIRouter()


@router.post("/password/change", response_model=MessageResponse)
def change_password(
    body: ChangePasswordRequest,
    claims: TokenClaims = Depends(get_current_claims),
    auth: AuthOrchestrator = Depends(get_orchestrator),
) -> MessageResponse:
    auth.change_password(claims.identity_id, body.current_password, body.new_password)
    return MessageResponse(message="Password changed.")


@router.post("/password/reset", response_model=MessageResponse)
def reset_password(
    body: ResetPasswordRequest,
    claims: TokenClaims = Depends(get_current_claims),
    auth: AuthOrchestrator = Depends(get_orchestrator),
) -> MessageResponse:
    auth.reset_password(body.identity_id, body.new_password, admin_identity_id=claims.identity_id)
    return MessageResponse(message="Password reset.")


@router.post("/password/validate", response_model=PasswordCheckResponse)
def validate_password(
    body: PasswordCheckRequest,
    auth: AuthOrchestrator = Depends(get_orchestrator),
) -> PasswordCheckResponse:
    result = auth.passwords.validate_complexity(body.password, PasswordContext(email=body.email, name=body.name))
    return PasswordCheckResponse(
        is_valid=result.is_valid,
        errors=result.errors,
        strength=result.strength,
        score=score(body.password),
    )


@router.post("/password/generate", response_model=GeneratedPasswordResponse)
def generate_password(
    body: GeneratePasswordRequest,
    claims: TokenClaims = Depends(get_current_claims),
    auth: AuthOrchestrator = Depends(get_orchestrator),
) -> GeneratedPasswordResponse:
    password = generate_secure_password(body.length)
    result = auth.passwords.validate_complexity(password)
    return GeneratedPasswordResponse(password=password, strength=result.strength, score=score(password))
