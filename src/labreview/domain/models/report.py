from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel

from labreview.domain.models.analysis import Analysis


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class Report(BaseModel):
    """AI-drafted, doctor-reviewed interpretation of an analysis (1:1)."""

    id: str
    analysis_id: str
    ai_analysis: Optional[str] = None
    doctor_notes: Optional[str] = None
    recommendations: Optional[str] = None
    risk_level: Optional[RiskLevel] = None
    approved_by_doctor: bool = False
    model_used: Optional[str] = None
    report_pdf_url: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class ApprovalOutcome(BaseModel):
    report: Report
    analysis: Analysis
    # False when the report had already been approved (idempotent re-approval).
    newly_approved: bool
