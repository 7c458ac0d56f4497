"""
api/routes/v1/auth.py -- Registration, login, token refresh and logout.

Routes:
  POST /api/v1/auth/register   -- create a reader identity
  POST /api/v1/auth/login      -- password login; refresh + session cookies
  POST /api/v1/auth/refresh    -- exchange the refresh cookie for a new pair
  POST /api/v1/auth/logout     -- revoke tokens, end session, clear cookies
  GET  /api/v1/auth/me         -- current identity (requires auth)

Security:
  [C1] Unknown email and wrong password produce the same 401 body.
  [M5] Cache-Control: no-store on every response that carries a token.
  Refresh and session tokens are only ever sent as httpOnly, samesite=strict
  cookies; the access token is returned in the body for the Authorization
  header.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response

from api.models import IdentityResponse, LoginRequest, LoginResponse, MessageResponse, RegisterRequest, TokenResponse
from auth.dependencies import (
    REFRESH_COOKIE,
    SESSION_COOKIE,
    get_bearer_token,
    get_current_claims,
    get_current_identity,
    get_orchestrator,
)
from auth.errors import InvalidToken
from auth.models import DeviceInfo, Identity, TokenClaims
from auth.orchestrator import AuthOrchestrator
from core.config import Settings

# Auth policy:
# - POST /auth/register, /auth/login, /auth/refresh: public
# - POST /auth/logout, GET /auth/me: requires a valid access token
router = APIRouter()


def _identity_response(identity: Identity) -> IdentityResponse:
    return IdentityResponse(
        id=identity.id,
        email=identity.email,
        name=identity.name,
        role=identity.role,
        created_at=identity.created_at,
    )


def _set_token_cookies(response: Response, settings: Settings, refresh_token: str, session_token: str | None = None) -> None:
    """Write refresh (and optionally session) tokens as httpOnly cookies.

    httponly=True: JS cannot read them (XSS mitigation).
    samesite="strict": never sent on cross-site requests (CSRF mitigation).
    max_age follows the server-side lifetimes so cookie and record expire together.
    """
    response.set_cookie(
        REFRESH_COOKIE,
        value=refresh_token,
        httponly=True,
        samesite="strict",
        secure=settings.secure_cookies,
        max_age=settings.refresh_token_ttl_days * 86400,
    )
    if session_token is not None:
        response.set_cookie(
            SESSION_COOKIE,
            value=session_token,
            httponly=True,
            samesite="strict",
            secure=settings.secure_cookies,
            max_age=settings.session_ttl_days * 86400,
        )


def clear_token_cookies(response: Response) -> None:
    response.delete_cookie(REFRESH_COOKIE)
    response.delete_cookie(SESSION_COOKIE)


@router.post("/auth/register", response_model=IdentityResponse, status_code=201)
def register(body: RegisterRequest, auth: AuthOrchestrator = Depends(get_orchestrator)) -> IdentityResponse:
    """Self-registration always creates a reader. Roles are granted out of band."""
    identity = auth.register(body.email, body.password, name=body.name)
    return _identity_response(identity)


@router.post("/auth/login", response_model=LoginResponse)
def login(
    request: Request,
    response: Response,
    body: LoginRequest,
    auth: AuthOrchestrator = Depends(get_orchestrator),
) -> LoginResponse:
    settings: Settings = request.app.state.settings
    device = DeviceInfo(
        user_agent=request.headers.get("User-Agent"),
        ip_address=request.client.host if request.client else None,
    )
    result = auth.login(body.email, body.password, device)
    _set_token_cookies(response, settings, result.refresh_token, result.session_token)
    response.headers["Cache-Control"] = "no-store"  # [M5]
    return LoginResponse(
        access_token=result.access_token,
        expires_in=settings.access_token_ttl_minutes * 60,
        identity=_identity_response(result.identity),
    )


@router.post("/auth/refresh", response_model=TokenResponse)
def refresh(
    request: Request,
    response: Response,
    auth: AuthOrchestrator = Depends(get_orchestrator),
) -> TokenResponse:
    settings: Settings = request.app.state.settings
    refresh_token = request.cookies.get(REFRESH_COOKIE)
    if not refresh_token:
        raise InvalidToken()
    pair = auth.refresh_session(refresh_token, session_token=request.cookies.get(SESSION_COOKIE))
    if pair is None:
        raise InvalidToken()
    _set_token_cookies(response, settings, pair.refresh)
    response.headers["Cache-Control"] = "no-store"  # [M5]
    return TokenResponse(access_token=pair.access, expires_in=settings.access_token_ttl_minutes * 60)


@router.post("/auth/logout", response_model=MessageResponse)
def logout(
    request: Request,
    response: Response,
    claims: TokenClaims = Depends(get_current_claims),
    auth: AuthOrchestrator = Depends(get_orchestrator),
) -> MessageResponse:
    auth.logout(
        get_bearer_token(request),
        refresh_token=request.cookies.get(REFRESH_COOKIE),
        session_token=request.cookies.get(SESSION_COOKIE),
    )
    clear_token_cookies(response)
    return MessageResponse(message="Logged out.")


@router.get("/auth/me", response_model=IdentityResponse)
def me(identity: Identity = Depends(get_current_identity)) -> IdentityResponse:
    return _identity_response(identity)
