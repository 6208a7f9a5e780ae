from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel


class AnalysisStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    APPROVED = "approved"
    REJECTED = "rejected"


class Analysis(BaseModel):
    """One uploaded lab-report submission and its processing status.

    Created by the process-pdf function with status PENDING and moved to
    APPROVED only by the approval transaction that also approves its report.
    """

    id: str
    patient_id: str
    doctor_id: Optional[str] = None
    pdf_url: Optional[str] = None
    pdf_filename: Optional[str] = None
    extracted_text: Optional[str] = None
    status: AnalysisStatus = AnalysisStatus.PENDING
    uploaded_at: datetime
    reviewed_at: Optional[datetime] = None
    created_at: datetime
