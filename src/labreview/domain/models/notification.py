from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel


class NotificationUserType(str, Enum):
    DOCTOR = "doctor"
    PATIENT = "patient"


class Notification(BaseModel):
    id: str
    user_id: str
    user_type: NotificationUserType
    message: str
    # Free-form category, e.g. "report_ready" or "analysis_received".
    type: str
    read: bool = False
    related_analysis_id: Optional[str] = None
    created_at: datetime
