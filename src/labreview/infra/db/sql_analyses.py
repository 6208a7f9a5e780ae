from __future__ import annotations

from datetime import datetime
from typing import Iterable, List, Optional

from sqlalchemy.exc import IntegrityError

from labreview.domain.models.analysis import Analysis, AnalysisStatus
from labreview.domain.models.notification import Notification
from labreview.domain.models.report import ApprovalOutcome, Report, RiskLevel
from labreview.errors import DuplicateRecordError, RecordNotFoundError
from labreview.infra.db.models import AnalysisORM, NotificationORM, ReportORM
from labreview.infra.db.repositories import (
    AnalysisRepository,
    NotificationRepository,
    ReportRepository,
    ReviewRepository,
)
from labreview.infra.db.session import SessionFactory, session_scope


class SqlAnalysisRepository(AnalysisRepository):
    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    def get(self, analysis_id: str) -> Optional[Analysis]:
        with session_scope(self._session_factory) as session:
            orm = session.get(AnalysisORM, analysis_id)
            return orm.to_domain() if orm is not None else None

    def list_by_filters(
        self,
        *,
        patient_id: Optional[str] = None,
        status: Optional[AnalysisStatus] = None,
    ) -> List[Analysis]:
        with session_scope(self._session_factory) as session:
            query = session.query(AnalysisORM)
            if patient_id is not None:
                query = query.filter(AnalysisORM.patient_id == patient_id)
            if status is not None:
                query = query.filter(AnalysisORM.status == status.value)
            query = query.order_by(AnalysisORM.uploaded_at.desc())
            return [orm.to_domain() for orm in query.all()]

    def save(self, analysis: Analysis) -> None:
        with session_scope(self._session_factory) as session:
            existing = session.get(AnalysisORM, analysis.id)
            if existing is None:
                session.add(AnalysisORM.from_domain(analysis))
            else:
                existing.update_from_domain(analysis)
            session.commit()

    def transition_status(
        self,
        analysis_id: str,
        status: AnalysisStatus,
        *,
        from_statuses: Iterable[AnalysisStatus],
        extracted_text: Optional[str] = None,
    ) -> bool:
        with session_scope(self._session_factory) as session:
            with session.begin():
                analysis = (
                    session.query(AnalysisORM)
                    .filter(AnalysisORM.id == analysis_id)
                    .with_for_update()
                    .one_or_none()
                )
                if analysis is None or analysis.status not in {s.value for s in from_statuses}:
                    return False
                analysis.status = status.value
                if extracted_text is not None:
                    analysis.extracted_text = extracted_text
            return True


class SqlReportRepository(ReportRepository):
    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    def get(self, report_id: str) -> Optional[Report]:
        with session_scope(self._session_factory) as session:
            orm = session.get(ReportORM, report_id)
            return orm.to_domain() if orm is not None else None

    def get_by_analysis(self, analysis_id: str) -> Optional[Report]:
        with session_scope(self._session_factory) as session:
            orm = session.query(ReportORM).filter(ReportORM.analysis_id == analysis_id).one_or_none()
            return orm.to_domain() if orm is not None else None

    def save(self, report: Report) -> None:
        with session_scope(self._session_factory) as session:
            existing = session.get(ReportORM, report.id)
            if existing is None:
                session.add(ReportORM.from_domain(report))
            else:
                existing.update_from_domain(report)
            try:
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                raise DuplicateRecordError(f"Analysis {report.analysis_id} already has a report") from exc


class SqlNotificationRepository(NotificationRepository):
    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    def get(self, notification_id: str) -> Optional[Notification]:
        with session_scope(self._session_factory) as session:
            orm = session.get(NotificationORM, notification_id)
            return orm.to_domain() if orm is not None else None

    def list_for_user(self, user_id: str, *, unread_only: bool = False) -> List[Notification]:
        with session_scope(self._session_factory) as session:
            query = session.query(NotificationORM).filter(NotificationORM.user_id == user_id)
            if unread_only:
                query = query.filter(NotificationORM.read.is_(False))
            query = query.order_by(NotificationORM.created_at.desc())
            return [orm.to_domain() for orm in query.all()]

    def save(self, notification: Notification) -> None:
        with session_scope(self._session_factory) as session:
            existing = session.get(NotificationORM, notification.id)
            if existing is None:
                session.add(NotificationORM.from_domain(notification))
            else:
                existing.read = notification.read
                existing.message = notification.message
                existing.type = notification.type
            session.commit()


class SqlReviewRepository(ReviewRepository):
    """Approval transaction over the reports and analyses tables."""

    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

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
        with session_scope(self._session_factory) as session:
            with session.begin():
                report = (
                    session.query(ReportORM)
                    .filter(ReportORM.id == report_id)
                    .with_for_update()
                    .one_or_none()
                )
                if report is None:
                    raise RecordNotFoundError(f"Report {report_id} not found")
                analysis = (
                    session.query(AnalysisORM)
                    .filter(AnalysisORM.id == report.analysis_id)
                    .with_for_update()
                    .one_or_none()
                )
                if analysis is None:
                    raise RecordNotFoundError(f"Analysis {report.analysis_id} not found")

                newly_approved = not report.approved_by_doctor
                report.doctor_notes = doctor_notes
                report.recommendations = recommendations
                report.risk_level = risk_level.value
                report.approved_by_doctor = True
                report.updated_at = reviewed_at

                analysis.status = AnalysisStatus.APPROVED.value
                if analysis.reviewed_at is None:
                    analysis.reviewed_at = reviewed_at
                if doctor_id is not None:
                    analysis.doctor_id = doctor_id

            return ApprovalOutcome(
                report=report.to_domain(),
                analysis=analysis.to_domain(),
                newly_approved=newly_approved,
            )
