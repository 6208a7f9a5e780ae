from __future__ import annotations

import logging
from contextvars import ContextVar
from typing import AsyncIterator, Callable, Optional

from fastapi import Depends, HTTPException, Request, Security, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from labreview.container import ServiceContainer
from labreview.domain.models.user import AuthState, Role
from labreview.errors import AuthError, PersistenceError
from labreview.services.auth.session_manager import AuthSessionManager

logger = logging.getLogger(__name__)

# Bearer token issued by /auth/login. Missing credentials are not an error
# here; routes decide whether they need an identity.
_bearer = HTTPBearer(auto_error=False)

# Stable identifier for the current caller ("user:<id>"), used by the audit
# logger. Never holds the raw access token.
_current_subject: ContextVar[Optional[str]] = ContextVar("current_subject", default=None)


def get_current_subject() -> Optional[str]:
    """Return the current subject identifier, if any."""

    return _current_subject.get()


def get_container(request: Request) -> ServiceContainer:
    return request.app.state.container


async def get_access_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Security(_bearer),
) -> Optional[str]:
    if credentials is None:
        return None
    return credentials.credentials


async def get_auth_session(
    container: ServiceContainer = Depends(get_container),
    access_token: Optional[str] = Depends(get_access_token),
) -> AsyncIterator[AuthSessionManager]:
    """Yield an AuthSessionManager bound to the caller's token.

    The manager is started before the route runs and closed afterwards.
    """

    manager = container.auth_session(access_token)
    try:
        try:
            await manager.start()
        except (PersistenceError, AuthError) as exc:
            logger.error("Could not resolve the current session: %s", exc.message)
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail="Authentication backend unavailable",
            ) from exc

        identity = manager.state.identity
        _current_subject.set(f"user:{identity.id}" if identity is not None else None)
        yield manager
    finally:
        await manager.close()


async def get_current_state(manager: AuthSessionManager = Depends(get_auth_session)) -> AuthState:
    """Resolved auth state of an authenticated caller; 401 otherwise."""

    state = manager.state
    if state.identity is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return state


def require_role(role: Role) -> Callable[..., AuthState]:
    """Build a dependency that admits only callers with ``role``.

    Callers without any profile, or with the other role, get 403.
    """

    async def _require(state: AuthState = Depends(get_current_state)) -> AuthState:
        if state.role == role:
            return state
        if state.role == Role.NONE:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="No doctor or patient profile for this account",
            )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Only {role.value} accounts can access this resource",
        )

    return _require
