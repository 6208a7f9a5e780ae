from __future__ import annotations

from datetime import datetime
from threading import RLock
from typing import Dict, Iterable, List, Optional

from labreview.domain.models.analysis import Analysis, AnalysisStatus
from labreview.domain.models.notification import Notification
from labreview.domain.models.profiles import DoctorProfile, PatientProfile
from labreview.domain.models.report import ApprovalOutcome, Report, RiskLevel
from labreview.errors import DuplicateRecordError, RecordNotFoundError
from labreview.infra.db.repositories import (
    AnalysisRepository,
    DoctorRepository,
    NotificationRepository,
    PatientRepository,
    ReportRepository,
    Repositories,
    ReviewRepository,
)


class InMemoryTables:
    """Process-local rows for every workflow table.

    Intended for tests and local development. All repositories built over the
    same instance share one lock, which is what lets ``approve_analysis`` update
    two tables atomically. Rows are copied on the way in and out so callers
    never hold a reference to stored state.
    """

    def __init__(self) -> None:
        self.lock = RLock()
        self.doctors: Dict[str, DoctorProfile] = {}
        self.patients: Dict[str, PatientProfile] = {}
        self.analyses: Dict[str, Analysis] = {}
        self.reports: Dict[str, Report] = {}
        self.notifications: Dict[str, Notification] = {}


class InMemoryDoctorRepository(DoctorRepository):
    def __init__(self, tables: InMemoryTables) -> None:
        self._tables = tables

    def get(self, doctor_id: str) -> Optional[DoctorProfile]:
        with self._tables.lock:
            profile = self._tables.doctors.get(doctor_id)
            return profile.model_copy(deep=True) if profile is not None else None

    def insert(self, profile: DoctorProfile) -> None:
        with self._tables.lock:
            if profile.id in self._tables.doctors:
                raise DuplicateRecordError(f"Doctor profile {profile.id} already exists")
            self._tables.doctors[profile.id] = profile.model_copy(deep=True)


class InMemoryPatientRepository(PatientRepository):
    def __init__(self, tables: InMemoryTables) -> None:
        self._tables = tables

    def get(self, patient_id: str) -> Optional[PatientProfile]:
        with self._tables.lock:
            profile = self._tables.patients.get(patient_id)
            return profile.model_copy(deep=True) if profile is not None else None

    def insert(self, profile: PatientProfile) -> None:
        with self._tables.lock:
            if profile.id in self._tables.patients:
                raise DuplicateRecordError(f"Patient profile {profile.id} already exists")
            self._tables.patients[profile.id] = profile.model_copy(deep=True)


class InMemoryAnalysisRepository(AnalysisRepository):
    def __init__(self, tables: InMemoryTables) -> None:
        self._tables = tables

    def get(self, analysis_id: str) -> Optional[Analysis]:
        with self._tables.lock:
            analysis = self._tables.analyses.get(analysis_id)
            return analysis.model_copy(deep=True) if analysis is not None else None

    def list_by_filters(
        self,
        *,
        patient_id: Optional[str] = None,
        status: Optional[AnalysisStatus] = None,
    ) -> List[Analysis]:
        results: List[Analysis] = []
        with self._tables.lock:
            for analysis in self._tables.analyses.values():
                if patient_id is not None and analysis.patient_id != patient_id:
                    continue
                if status is not None and analysis.status != status:
                    continue
                results.append(analysis.model_copy(deep=True))
        results.sort(key=lambda a: a.uploaded_at, reverse=True)
        return results

    def save(self, analysis: Analysis) -> None:
        with self._tables.lock:
            self._tables.analyses[analysis.id] = analysis.model_copy(deep=True)

    def transition_status(
        self,
        analysis_id: str,
        status: AnalysisStatus,
        *,
        from_statuses: Iterable[AnalysisStatus],
        extracted_text: Optional[str] = None,
    ) -> bool:
        with self._tables.lock:
            analysis = self._tables.analyses.get(analysis_id)
            if analysis is None or analysis.status not in set(from_statuses):
                return False
            updates = {"status": status}
            if extracted_text is not None:
                updates["extracted_text"] = extracted_text
            self._tables.analyses[analysis_id] = analysis.model_copy(update=updates, deep=True)
            return True


class InMemoryReportRepository(ReportRepository):
    def __init__(self, tables: InMemoryTables) -> None:
        self._tables = tables

    def get(self, report_id: str) -> Optional[Report]:
        with self._tables.lock:
            report = self._tables.reports.get(report_id)
            return report.model_copy(deep=True) if report is not None else None

    def get_by_analysis(self, analysis_id: str) -> Optional[Report]:
        with self._tables.lock:
            for report in self._tables.reports.values():
                if report.analysis_id == analysis_id:
                    return report.model_copy(deep=True)
        return None

    def save(self, report: Report) -> None:
        with self._tables.lock:
            for existing in self._tables.reports.values():
                if existing.analysis_id == report.analysis_id and existing.id != report.id:
                    raise DuplicateRecordError(f"Analysis {report.analysis_id} already has a report")
            self._tables.reports[report.id] = report.model_copy(deep=True)


class InMemoryNotificationRepository(NotificationRepository):
    def __init__(self, tables: InMemoryTables) -> None:
        self._tables = tables

    def get(self, notification_id: str) -> Optional[Notification]:
        with self._tables.lock:
            notification = self._tables.notifications.get(notification_id)
            return notification.model_copy(deep=True) if notification is not None else None

    def list_for_user(self, user_id: str, *, unread_only: bool = False) -> List[Notification]:
        with self._tables.lock:
            results = [
                n.model_copy(deep=True)
                for n in self._tables.notifications.values()
                if n.user_id == user_id and not (unread_only and n.read)
            ]
        results.sort(key=lambda n: n.created_at, reverse=True)
        return results

    def save(self, notification: Notification) -> None:
        with self._tables.lock:
            self._tables.notifications[notification.id] = notification.model_copy(deep=True)


class InMemoryReviewRepository(ReviewRepository):
    def __init__(self, tables: InMemoryTables) -> None:
        self._tables = tables

    def approve_analysis(
        self,
        *,
        report_id: str,
        doctor_notes: str,
        recommendations: str,
        risk_level: RiskLevel,
        doctor_id: Optional[str],
        reviewed_at: datetime,
    ) -> ApprovalOutcome:
        with self._tables.lock:
            stored_report = self._tables.reports.get(report_id)
            if stored_report is None:
                raise RecordNotFoundError(f"Report {report_id} not found")
            stored_analysis = self._tables.analyses.get(stored_report.analysis_id)
            if stored_analysis is None:
                raise RecordNotFoundError(f"Analysis {stored_report.analysis_id} not found")

            # Build both updated rows before touching the tables.
            newly_approved = not stored_report.approved_by_doctor
            report = stored_report.model_copy(
                update={
                    "doctor_notes": doctor_notes,
                    "recommendations": recommendations,
                    "risk_level": risk_level,
                    "approved_by_doctor": True,
                    "updated_at": reviewed_at,
                },
                deep=True,
            )
            analysis = stored_analysis.model_copy(
                update={
                    "status": AnalysisStatus.APPROVED,
                    "reviewed_at": stored_analysis.reviewed_at or reviewed_at,
                    "doctor_id": doctor_id or stored_analysis.doctor_id,
                },
                deep=True,
            )

            self._tables.reports[report.id] = report
            self._tables.analyses[analysis.id] = analysis
            return ApprovalOutcome(
                report=report.model_copy(deep=True),
                analysis=analysis.model_copy(deep=True),
                newly_approved=newly_approved,
            )


def build_inmemory_repositories(tables: Optional[InMemoryTables] = None) -> Repositories:
    tables = tables or InMemoryTables()
    return Repositories(
        doctors=InMemoryDoctorRepository(tables),
        patients=InMemoryPatientRepository(tables),
        analyses=InMemoryAnalysisRepository(tables),
        reports=InMemoryReportRepository(tables),
        notifications=InMemoryNotificationRepository(tables),
        reviews=InMemoryReviewRepository(tables),
    )
