"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

The access token is read from the Authorization: Bearer header only. Refresh
and session tokens travel as httpOnly cookies and are read by the routes that
need them (refresh, logout, session management), never here.

get_current_claims() runs the per-request flow: signature/expiry/kind check,
then the revocation lookup. Failures raise auth.errors.InvalidToken, which the
exception handler in api/main.py turns into a 401.

Layer rule: this is the one auth/ module allowed to import fastapi, because it
is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from fastapi import Request

from auth.errors import InvalidToken
from auth.models import Identity, TokenClaims
from auth.orchestrator import AuthOrchestrator

ACCESS_HEADER_PREFIX = "Bearer "
REFRESH_COOKIE = "refresh_token"
SESSION_COOKIE = "session_token"


def get_orchestrator(request: Request) -> AuthOrchestrator:
    return request.app.state.auth


def get_bearer_token(request: Request) -> str:
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith(ACCESS_HEADER_PREFIX):
        raise InvalidToken("Authentication required.")
    token = auth_header[len(ACCESS_HEADER_PREFIX) :].strip()
    if not token:
        raise InvalidToken("Authentication required.")
    return token


def get_current_claims(request: Request) -> TokenClaims:
    """Require a valid, unrevoked access token.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(claims: TokenClaims = Depends(get_current_claims)): ...
    """
    return get_orchestrator(request).authenticate(get_bearer_token(request))


def get_current_identity(request: Request) -> Identity:
    """Resolve the access token to its identity. A vanished identity fails closed (401)."""
    claims = get_current_claims(request)
    return get_orchestrator(request).get_identity(claims.identity_id)
