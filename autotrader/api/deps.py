"""Shared API dependencies."""

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from autotrader.engine.components import Components, get_components
from autotrader.engine.scheduler import SchedulerOrchestrator, get_orchestrator
from autotrader.services.auth import decode_access_token

bearer_scheme = HTTPBearer()


def get_current_user_id(
    credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme),
) -> int:
    """Validate JWT and return the user id it was issued for."""
    user_id = decode_access_token(credentials.credentials)
    if user_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
        )
    return user_id


def components() -> Components:
    return get_components()


def orchestrator() -> SchedulerOrchestrator:
    return get_orchestrator()
