from __future__ import annotations

from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, EmailStr


class DoctorProfile(BaseModel):
    # Same value as the identity id issued by the session store.
    id: str
    email: EmailStr
    name: str
    specialty: Optional[str] = None
    license_number: Optional[str] = None
    clinic_name: Optional[str] = None
    phone: Optional[str] = None
    created_at: datetime


class PatientProfile(BaseModel):
    id: str
    email: EmailStr
    name: str
    birth_date: Optional[date] = None
    gender: Optional[str] = None
    phone: Optional[str] = None
    created_at: datetime
