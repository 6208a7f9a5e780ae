from __future__ import annotations

from datetime import date
from typing import Any, Dict, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, EmailStr, Field

from labreview.container import ServiceContainer
from labreview.domain.models.user import AuthState, Identity, Role
from labreview.errors import AuthError, LabReviewError
from labreview.security import get_auth_session, get_container, get_current_state
from labreview.services.auth.session_manager import AuthSessionManager

router = APIRouter(prefix="/auth", tags=["auth"])


class RegisterRequest(BaseModel):
    email: EmailStr
    password: str
    role: Literal["doctor", "patient"]
    name: str = Field(min_length=1)
    phone: Optional[str] = None
    # Doctor profile fields.
    specialty: Optional[str] = None
    license_number: Optional[str] = None
    clinic_name: Optional[str] = None
    # Patient profile fields.
    birth_date: Optional[date] = None
    gender: Optional[str] = None

    def profile_fields(self) -> Dict[str, Any]:
        if self.role == Role.DOCTOR.value:
            keys = ("name", "phone", "specialty", "license_number", "clinic_name")
        else:
            keys = ("name", "phone", "birth_date", "gender")
        return {key: getattr(self, key) for key in keys if getattr(self, key) is not None}


class LoginRequest(BaseModel):
    email: str
    password: str


class SessionResponse(BaseModel):
    access_token: Optional[str] = None
    token_type: str = "bearer"
    user: Optional[Identity] = None
    role: Role = Role.NONE
    profile_id: Optional[str] = None


def _session_response(manager: AuthSessionManager) -> SessionResponse:
    state = manager.state
    return SessionResponse(
        access_token=manager.access_token,
        user=state.identity,
        role=state.role,
        profile_id=state.profile_id,
    )


@router.post("/register", response_model=SessionResponse, status_code=status.HTTP_201_CREATED)
async def register(
    payload: RegisterRequest,
    container: ServiceContainer = Depends(get_container),
) -> SessionResponse:
    async with container.auth_session() as manager:
        error = await manager.sign_up(payload.email, payload.password, Role(payload.role), payload.profile_fields())
        if isinstance(error, AuthError):
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=error.message)
        if isinstance(error, LabReviewError):
            # The identity exists but its profile could not be written.
            raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=error.message)
        await manager.wait_until_settled()
        response = _session_response(manager)

    container.audit.log_event(
        action="register",
        resource_type="session",
        resource_id=response.user.id if response.user is not None else None,
        subject=f"user:{response.user.id}" if response.user is not None else None,
        extra={"role": payload.role},
    )
    return response


@router.post("/login", response_model=SessionResponse)
async def login(
    payload: LoginRequest,
    container: ServiceContainer = Depends(get_container),
) -> SessionResponse:
    async with container.auth_session() as manager:
        error = await manager.sign_in(payload.email, payload.password)
        if error is not None:
            container.audit.log_event(action="login", resource_type="session", outcome="failure")
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail=error.message,
                headers={"WWW-Authenticate": "Bearer"},
            )
        await manager.wait_until_settled()
        response = _session_response(manager)

    container.audit.log_event(
        action="login",
        resource_type="session",
        resource_id=response.user.id if response.user is not None else None,
        subject=f"user:{response.user.id}" if response.user is not None else None,
        extra={"role": response.role.value},
    )
    return response


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
async def logout(
    state: AuthState = Depends(get_current_state),
    manager: AuthSessionManager = Depends(get_auth_session),
    container: ServiceContainer = Depends(get_container),
) -> None:
    await manager.sign_out()
    container.audit.log_event(action="logout", resource_type="session", resource_id=state.identity.id)


@router.get("/me", response_model=AuthState)
async def me(state: AuthState = Depends(get_current_state)) -> AuthState:
    return state
