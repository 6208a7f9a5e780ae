from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import Boolean, Date, DateTime, ForeignKey, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from labreview.domain.models.analysis import Analysis, AnalysisStatus
from labreview.domain.models.notification import Notification, NotificationUserType
from labreview.domain.models.profiles import DoctorProfile, PatientProfile
from labreview.domain.models.report import Report, RiskLevel


class Base(DeclarativeBase):
    pass


class DoctorORM(Base):
    __tablename__ = "doctors"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    email: Mapped[str] = mapped_column(String, nullable=False)
    name: Mapped[str] = mapped_column(String, nullable=False)
    specialty: Mapped[str | None] = mapped_column(String, nullable=True)
    license_number: Mapped[str | None] = mapped_column(String, nullable=True)
    clinic_name: Mapped[str | None] = mapped_column(String, nullable=True)
    phone: Mapped[str | None] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    @classmethod
    def from_domain(cls, profile: DoctorProfile) -> "DoctorORM":
        return cls(**profile.model_dump())

    def to_domain(self) -> DoctorProfile:
        return DoctorProfile(
            id=self.id,
            email=self.email,
            name=self.name,
            specialty=self.specialty,
            license_number=self.license_number,
            clinic_name=self.clinic_name,
            phone=self.phone,
            created_at=self.created_at,
        )


class PatientORM(Base):
    __tablename__ = "patients"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    email: Mapped[str] = mapped_column(String, nullable=False)
    name: Mapped[str] = mapped_column(String, nullable=False)
    birth_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    gender: Mapped[str | None] = mapped_column(String, nullable=True)
    phone: Mapped[str | None] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    @classmethod
    def from_domain(cls, profile: PatientProfile) -> "PatientORM":
        return cls(**profile.model_dump())

    def to_domain(self) -> PatientProfile:
        return PatientProfile(
            id=self.id,
            email=self.email,
            name=self.name,
            birth_date=self.birth_date,
            gender=self.gender,
            phone=self.phone,
            created_at=self.created_at,
        )


class AnalysisORM(Base):
    __tablename__ = "analyses"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    patient_id: Mapped[str] = mapped_column(String(36), ForeignKey("patients.id"), nullable=False, index=True)
    doctor_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    pdf_url: Mapped[str | None] = mapped_column(String, nullable=True)
    pdf_filename: Mapped[str | None] = mapped_column(String, nullable=True)
    extracted_text: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String, nullable=False, index=True)
    uploaded_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    @classmethod
    def from_domain(cls, analysis: Analysis) -> "AnalysisORM":
        orm = cls()
        orm.update_from_domain(analysis)
        return orm

    def update_from_domain(self, analysis: Analysis) -> None:
        self.id = analysis.id
        self.patient_id = analysis.patient_id
        self.doctor_id = analysis.doctor_id
        self.pdf_url = analysis.pdf_url
        self.pdf_filename = analysis.pdf_filename
        self.extracted_text = analysis.extracted_text
        self.status = analysis.status.value
        self.uploaded_at = analysis.uploaded_at
        self.reviewed_at = analysis.reviewed_at
        self.created_at = analysis.created_at

    def to_domain(self) -> Analysis:
        return Analysis(
            id=self.id,
            patient_id=self.patient_id,
            doctor_id=self.doctor_id,
            pdf_url=self.pdf_url,
            pdf_filename=self.pdf_filename,
            extracted_text=self.extracted_text,
            status=AnalysisStatus(self.status),
            uploaded_at=self.uploaded_at,
            reviewed_at=self.reviewed_at,
            created_at=self.created_at,
        )


class ReportORM(Base):
    __tablename__ = "reports"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    # unique=True enforces the 1:1 relation with analyses.
    analysis_id: Mapped[str] = mapped_column(String(36), ForeignKey("analyses.id"), nullable=False, unique=True)
    ai_analysis: Mapped[str | None] = mapped_column(Text, nullable=True)
    doctor_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    recommendations: Mapped[str | None] = mapped_column(Text, nullable=True)
    risk_level: Mapped[str | None] = mapped_column(String, nullable=True)
    approved_by_doctor: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    model_used: Mapped[str | None] = mapped_column(String, nullable=True)
    report_pdf_url: Mapped[str | None] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    @classmethod
    def from_domain(cls, report: Report) -> "ReportORM":
        orm = cls()
        orm.update_from_domain(report)
        return orm

    def update_from_domain(self, report: Report) -> None:
        self.id = report.id
        self.analysis_id = report.analysis_id
        self.ai_analysis = report.ai_analysis
        self.doctor_notes = report.doctor_notes
        self.recommendations = report.recommendations
        self.risk_level = report.risk_level.value if report.risk_level else None
        self.approved_by_doctor = report.approved_by_doctor
        self.model_used = report.model_used
        self.report_pdf_url = report.report_pdf_url
        self.created_at = report.created_at
        self.updated_at = report.updated_at

    def to_domain(self) -> Report:
        return Report(
            id=self.id,
            analysis_id=self.analysis_id,
            ai_analysis=self.ai_analysis,
            doctor_notes=self.doctor_notes,
            recommendations=self.recommendations,
            risk_level=RiskLevel(self.risk_level) if self.risk_level else None,
            approved_by_doctor=self.approved_by_doctor,
            model_used=self.model_used,
            report_pdf_url=self.report_pdf_url,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )


class NotificationORM(Base):
    __tablename__ = "notifications"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    user_type: Mapped[str] = mapped_column(String, nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    type: Mapped[str] = mapped_column(String, nullable=False)
    read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    related_analysis_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    @classmethod
    def from_domain(cls, notification: Notification) -> "NotificationORM":
        data = notification.model_dump()
        data["user_type"] = notification.user_type.value
        return cls(**data)

    def to_domain(self) -> Notification:
        return Notification(
            id=self.id,
            user_id=self.user_id,
            user_type=NotificationUserType(self.user_type),
            message=self.message,
            type=self.type,
            read=self.read,
            related_analysis_id=self.related_analysis_id,
            created_at=self.created_at,
        )
