from datetime import date, datetime, timezone
from typing import Optional

from labreview.domain.models.analysis import Analysis, AnalysisStatus
from labreview.domain.models.profiles import DoctorProfile, PatientProfile
from labreview.domain.models.report import Report


def make_patient(patient_id: str = "p1", *, birth_date: Optional[date] = date(2000, 6, 15)) -> PatientProfile:
    return PatientProfile(
        id=patient_id,
        email=f"{patient_id}@example.com",
        name=f"Patient {patient_id}",
        birth_date=birth_date,
        gender="female",
        created_at=datetime.now(timezone.utc),
    )


def make_doctor(doctor_id: str = "d1") -> DoctorProfile:
    return DoctorProfile(
        id=doctor_id,
        email=f"{doctor_id}@example.com",
        name=f"Dr. {doctor_id}",
        specialty="Internal medicine",
        created_at=datetime.now(timezone.utc),
    )


def make_analysis(
    analysis_id: str,
    patient_id: str = "p1",
    *,
    status: AnalysisStatus = AnalysisStatus.PENDING,
    uploaded_at: Optional[datetime] = None,
) -> Analysis:
    uploaded_at = uploaded_at or datetime.now(timezone.utc)
    return Analysis(
        id=analysis_id,
        patient_id=patient_id,
        pdf_filename=f"{analysis_id}.pdf",
        status=status,
        uploaded_at=uploaded_at,
        created_at=uploaded_at,
    )


def make_report(report_id: str, analysis_id: str, **fields) -> Report:
    now = datetime.now(timezone.utc)
    data = {"ai_analysis": "Draft interpretation", "created_at": now, "updated_at": now}
    data.update(fields)
    return Report(id=report_id, analysis_id=analysis_id, **data)
