"""
Settings API - the caller's sessions and preferences.
"""
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from ..services.session_service import Preferences, Session
from .deps import require_session, service_error
from .state import Services, get_services

router = APIRouter(prefix="/api/auth", tags=["settings"])


class SessionResponse(BaseModel):
    jti: str
    email: str
    ip_address: Optional[str]
    user_agent: Optional[str]
    created_at: Optional[str]
    last_used_at: Optional[str]
    current: bool


@router.get("/sessions", response_model=list[SessionResponse])
async def list_sessions(
    services: Services = Depends(get_services),
    session: Session = Depends(require_session),
):
    """Active sessions of the caller, most recently used first."""
    return [
        SessionResponse(
            jti=s.jti,
            email=s.email,
            ip_address=s.ip_address,
            user_agent=s.user_agent,
            created_at=s.created_at,
            last_used_at=s.last_used_at,
            current=s.jti == session.jti,
        )
        for s in services.sessions.list_user_sessions(session.user_id)
    ]


@router.delete("/sessions/{jti}")
async def revoke_session(
    jti: str,
    services: Services = Depends(get_services),
    session: Session = Depends(require_session),
):
    if not services.sessions.revoke(jti, session.user_id):
        raise HTTPException(status_code=404, detail="Session not found")
    return {"success": True}


@router.post("/sessions/revoke-all")
async def revoke_other_sessions(
    services: Services = Depends(get_services),
    session: Session = Depends(require_session),
):
    """Sign out everywhere except the current session."""
    count = services.sessions.revoke_all(session.user_id, exclude_jti=session.jti)
    return {"success": True, "revoked": count}


@router.get("/preferences/me")
async def get_preferences(
    services: Services = Depends(get_services),
    session: Session = Depends(require_session),
):
    return {"preferences": services.sessions.get_preferences(session.user_id)}


@router.put("/preferences/me")
async def save_preferences(
    prefs: Preferences,
    services: Services = Depends(get_services),
    session: Session = Depends(require_session),
):
    try:
        saved = services.sessions.save_preferences(session.user_id, prefs.model_dump(exclude_none=True))
    except ValueError as e:
        raise service_error(e)
    return {"success": True, "preferences": saved}
