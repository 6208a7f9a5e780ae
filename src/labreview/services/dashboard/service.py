from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel

from labreview.domain.models.analysis import Analysis, AnalysisStatus
from labreview.domain.models.report import Report, RiskLevel
from labreview.errors import RecordNotFoundError
from labreview.infra.db.repositories import Repositories

RISK_TREND_POINTS = 5

RISK_SCORES: Dict[Optional[RiskLevel], int] = {
    RiskLevel.LOW: 1,
    RiskLevel.MEDIUM: 2,
    RiskLevel.HIGH: 3,
    None: 0,
}


class AnalysisFilter(str, Enum):
    ALL = "all"
    PENDING = "pending"
    APPROVED = "approved"


class DoctorDashboardEntry(BaseModel):
    analysis: Analysis
    report: Optional[Report] = None
    patient_name: Optional[str] = None
    patient_email: Optional[str] = None


class DoctorDashboard(BaseModel):
    filter: AnalysisFilter
    entries: List[DoctorDashboardEntry]


class PatientAnalysisEntry(BaseModel):
    analysis: Analysis
    report: Optional[Report] = None


class PatientCounts(BaseModel):
    total: int = 0
    pending: int = 0
    approved: int = 0


class RiskTrendPoint(BaseModel):
    analysis_id: str
    uploaded_at: datetime
    risk_level: Optional[RiskLevel] = None
    score: int


class PatientDashboard(BaseModel):
    entries: List[PatientAnalysisEntry]
    counts: PatientCounts
    risk_trend: List[RiskTrendPoint]


class PatientReportView(BaseModel):
    analysis: Analysis
    report: Report


class DashboardService:
    """Read models for the doctor and patient dashboards.

    All methods are synchronous; API routes call them via the threadpool.
    """

    def __init__(self, repositories: Repositories) -> None:
        self._repos = repositories

    def doctor_dashboard(self, analysis_filter: AnalysisFilter = AnalysisFilter.PENDING) -> DoctorDashboard:
        if analysis_filter == AnalysisFilter.ALL:
            status = None
        elif analysis_filter == AnalysisFilter.PENDING:
            status = AnalysisStatus.PENDING
        elif analysis_filter == AnalysisFilter.APPROVED:
            status = AnalysisStatus.APPROVED
        else:
            raise ValueError(f"Unhandled filter: {analysis_filter!r}")

        entries: List[DoctorDashboardEntry] = []
        for analysis in self._repos.analyses.list_by_filters(status=status):
            patient = self._repos.patients.get(analysis.patient_id)
            entries.append(
                DoctorDashboardEntry(
                    analysis=analysis,
                    report=self._repos.reports.get_by_analysis(analysis.id),
                    patient_name=patient.name if patient is not None else None,
                    patient_email=patient.email if patient is not None else None,
                )
            )
        return DoctorDashboard(filter=analysis_filter, entries=entries)

    def patient_dashboard(self, patient_id: str) -> PatientDashboard:
        analyses = self._repos.analyses.list_by_filters(patient_id=patient_id)
        entries = [
            PatientAnalysisEntry(analysis=a, report=self._repos.reports.get_by_analysis(a.id))
            for a in analyses
        ]
        counts = PatientCounts(
            total=len(analyses),
            pending=sum(1 for a in analyses if a.status == AnalysisStatus.PENDING),
            approved=sum(1 for a in analyses if a.status == AnalysisStatus.APPROVED),
        )

        # Entries are newest first; the trend reads oldest to newest.
        approved = [e for e in entries if e.analysis.status == AnalysisStatus.APPROVED][:RISK_TREND_POINTS]
        trend = []
        for entry in reversed(approved):
            risk = entry.report.risk_level if entry.report is not None else None
            trend.append(
                RiskTrendPoint(
                    analysis_id=entry.analysis.id,
                    uploaded_at=entry.analysis.uploaded_at,
                    risk_level=risk,
                    score=RISK_SCORES[risk],
                )
            )
        return PatientDashboard(entries=entries, counts=counts, risk_trend=trend)

    def patient_report(self, patient_id: str, analysis_id: str) -> PatientReportView:
        """Return an approved report to the patient who owns it.

        Anything else (unknown id, another patient's analysis, report not yet
        approved) is reported as RecordNotFoundError.
        """

        analysis = self._repos.analyses.get(analysis_id)
        if analysis is None or analysis.patient_id != patient_id:
            raise RecordNotFoundError("Report not found")
        report = self._repos.reports.get_by_analysis(analysis.id)
        if report is None or not report.approved_by_doctor:
            raise RecordNotFoundError("Report not found")
        return PatientReportView(analysis=analysis, report=report)
