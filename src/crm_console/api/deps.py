"""
Request dependencies: the current session and service error translation.
"""
from typing import Optional

from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from ..services.base import RecordNotFound, ValidationFailed
from ..services.session_service import Session
from .state import Services, get_services

bearer_scheme = HTTPBearer(auto_error=False)


def optional_session(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    services: Services = Depends(get_services),
) -> Optional[Session]:
    """The caller's session when a valid bearer token is sent, else None."""
    if credentials is None:
        return None
    session = services.sessions.get_session(credentials.credentials)
    if session is None or session.revoked:
        return None
    services.sessions.touch(session.jti)
    request.state.session = session
    return session


def require_session(session: Optional[Session] = Depends(optional_session)) -> Session:
    if session is None:
        raise HTTPException(
            status_code=401,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return session


def service_error(e: ValueError) -> HTTPException:
    """Map a service-layer ValueError onto an HTTP error."""
    if isinstance(e, RecordNotFound):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, ValidationFailed):
        return HTTPException(status_code=400, detail={"errors": e.errors})
    return HTTPException(status_code=400, detail=str(e))
