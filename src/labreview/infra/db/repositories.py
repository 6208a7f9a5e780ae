from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, List, Optional

from labreview.domain.models.analysis import Analysis, AnalysisStatus
from labreview.domain.models.notification import Notification
from labreview.domain.models.profiles import DoctorProfile, PatientProfile
from labreview.domain.models.report import ApprovalOutcome, Report, RiskLevel


class DoctorRepository(ABC):
    @abstractmethod
    def get(self, doctor_id: str) -> Optional[DoctorProfile]:
        raise NotImplementedError

    @abstractmethod
    def insert(self, profile: DoctorProfile) -> None:
        """Insert a new profile; raises DuplicateRecordError if the id exists."""
        raise NotImplementedError


class PatientRepository(ABC):
    @abstractmethod
    def get(self, patient_id: str) -> Optional[PatientProfile]:
        raise NotImplementedError

    @abstractmethod
    def insert(self, profile: PatientProfile) -> None:
        raise NotImplementedError


class AnalysisRepository(ABC):
    @abstractmethod
    def get(self, analysis_id: str) -> Optional[Analysis]:
        raise NotImplementedError

    @abstractmethod
    def list_by_filters(
        self,
        *,
        patient_id: Optional[str] = None,
        status: Optional[AnalysisStatus] = None,
    ) -> List[Analysis]:
        """Return matching analyses, most recently uploaded first."""
        raise NotImplementedError

    @abstractmethod
    def save(self, analysis: Analysis) -> None:
        raise NotImplementedError

    @abstractmethod
    def transition_status(
        self,
        analysis_id: str,
        status: AnalysisStatus,
        *,
        from_statuses: Iterable[AnalysisStatus],
        extracted_text: Optional[str] = None,
    ) -> bool:
        """Move an analysis to ``status`` only if it is in one of ``from_statuses``.

        The check and the write are atomic. ``extracted_text`` is stored with
        the new status when given. Returns False (and writes nothing) when the
        analysis is missing or has moved on.
        """
        raise NotImplementedError


class ReportRepository(ABC):
    @abstractmethod
    def get(self, report_id: str) -> Optional[Report]:
        raise NotImplementedError

    @abstractmethod
    def get_by_analysis(self, analysis_id: str) -> Optional[Report]:
        raise NotImplementedError

    @abstractmethod
    def save(self, report: Report) -> None:
        raise NotImplementedError


class NotificationRepository(ABC):
    @abstractmethod
    def get(self, notification_id: str) -> Optional[Notification]:
        raise NotImplementedError

    @abstractmethod
    def list_for_user(self, user_id: str, *, unread_only: bool = False) -> List[Notification]:
        """Return the user's notifications, newest first."""
        raise NotImplementedError

    @abstractmethod
    def save(self, notification: Notification) -> None:
        raise NotImplementedError


class ReviewRepository(ABC):
    @abstractmethod
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
        """Approve a report and its analysis in one atomic step.

        Writes the doctor's fields, sets ``approved_by_doctor`` and moves the
        analysis to APPROVED. Either both rows change or neither does.
        Re-approving an approved report rewrites the doctor's fields but keeps
        the first ``reviewed_at``. Raises RecordNotFoundError when the
        report or its analysis does not exist.
        """
        raise NotImplementedError


@dataclass
class Repositories:
    doctors: DoctorRepository
    patients: PatientRepository
    analyses: AnalysisRepository
    reports: ReportRepository
    notifications: NotificationRepository
    reviews: ReviewRepository
