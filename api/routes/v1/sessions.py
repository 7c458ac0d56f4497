"""
api/routes/v1/sessions.py -- Multi-device session management.

Routes:
  GET    /api/v1/sessions             -- active sessions of the caller
  DELETE /api/v1/sessions/others      -- log out every other device
  DELETE /api/v1/sessions/all         -- log out everywhere (clears cookies)
  DELETE /api/v1/sessions/{id}        -- end one of the caller's sessions

"Is this my current session" is decided here by comparing each row's token
with the session cookie. The core only knows the except_token parameter.

IDOR guard: DELETE /sessions/{id} only looks among the caller's own sessions,
so a foreign session id is indistinguishable from a missing one (404).
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request, Response

from api.models import SessionListResponse, SessionResponse, TerminatedResponse
from api.routes.v1.auth import clear_token_cookies
from auth.dependencies import SESSION_COOKIE, get_current_claims, get_orchestrator
from auth.models import TokenClaims
from auth.orchestrator import AuthOrchestrator

router = APIRouter()


@router.get("/sessions", response_model=SessionListResponse)
def list_sessions(
    request: Request,
    claims: TokenClaims = Depends(get_current_claims),
    auth: AuthOrchestrator = Depends(get_orchestrator),
) -> SessionListResponse:
    current = request.cookies.get(SESSION_COOKIE)
    if current:
        auth.sessions.validate(current)
    sessions = auth.sessions.list_active_for_identity(claims.identity_id)
    rows = [
        SessionResponse(
            id=s.id,
            device_fingerprint=s.device_fingerprint,
            ip_address=s.ip_address,
            user_agent=s.user_agent,
            last_activity_at=s.last_activity_at,
            created_at=s.created_at,
            expires_at=s.expires_at,
            is_current=current is not None and s.session_token == current,
        )
        for s in sessions
    ]
    return SessionListResponse(sessions=rows, total=len(rows))


@router.delete("/sessions/others", response_model=TerminatedResponse)
def terminate_other_sessions(
    request: Request,
    claims: TokenClaims = Depends(get_current_claims),
    auth: AuthOrchestrator = Depends(get_orchestrator),
) -> TerminatedResponse:
    count = auth.logout_everywhere(claims.identity_id, except_token=request.cookies.get(SESSION_COOKIE))
    return TerminatedResponse(terminated_count=count, message=f"Terminated {count} other sessions.")


@router.delete("/sessions/all", response_model=TerminatedResponse)
def terminate_all_sessions(
    response: Response,
    claims: TokenClaims = Depends(get_current_claims),
    auth: AuthOrchestrator = Depends(get_orchestrator),
) -> TerminatedResponse:
    count = auth.logout_everywhere(claims.identity_id)
    clear_token_cookies(response)
    return TerminatedResponse(terminated_count=count, message=f"Terminated all {count} sessions. Please log in again.")


@router.delete("/sessions/{session_id}", response_model=TerminatedResponse)
def terminate_session(
    session_id: int,
    claims: TokenClaims = Depends(get_current_claims),
    auth: AuthOrchestrator = Depends(get_orchestrator),
) -> TerminatedResponse:
    target = next(
        (s for s in auth.sessions.list_active_for_identity(claims.identity_id) if s.id == session_id),
        None,
    )
    if target is None:
        raise HTTPException(
            status_code=404,
            detail={"code": "session_not_found", "message": "Session not found."},
        )
    terminated = auth.sessions.terminate(target.session_token)
    return TerminatedResponse(terminated_count=int(terminated), message="Session terminated.")
