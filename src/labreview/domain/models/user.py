from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel


class Role(str, Enum):
    """Domain role of an identity, derived from profile-table membership."""

    DOCTOR = "doctor"
    PATIENT = "patient"
    NONE = "none"


class Identity(BaseModel):
    """Authenticated principal as reported by the session store.

    Email is kept as a plain string because hosted auth providers may hand back
    addresses that stricter validators reject.
    """

    id: str
    email: str


class RoleResolution(BaseModel):
    role: Role = Role.NONE
    # Matches the identity id for doctor/patient, None when role is NONE.
    profile_id: Optional[str] = None


class AuthState(BaseModel):
    identity: Optional[Identity] = None
    role: Role = Role.NONE
    profile_id: Optional[str] = None
    loading: bool = False
