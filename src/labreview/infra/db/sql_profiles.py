from __future__ import annotations

from typing import Optional

from sqlalchemy.exc import IntegrityError

from labreview.domain.models.profiles import DoctorProfile, PatientProfile
from labreview.errors import DuplicateRecordError
from labreview.infra.db.models import DoctorORM, PatientORM
from labreview.infra.db.repositories import DoctorRepository, PatientRepository
from labreview.infra.db.session import SessionFactory, session_scope


class SqlDoctorRepository(DoctorRepository):
    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    def get(self, doctor_id: str) -> Optional[DoctorProfile]:
        with session_scope(self._session_factory) as session:
            orm = session.get(DoctorORM, doctor_id)
            return orm.to_domain() if orm is not None else None

    def insert(self, profile: DoctorProfile) -> None:
        with session_scope(self._session_factory) as session:
            session.add(DoctorORM.from_domain(profile))
            try:
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                raise DuplicateRecordError(f"Doctor profile {profile.id} already exists") from exc


class SqlPatientRepository(PatientRepository):
    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    def get(self, patient_id: str) -> Optional[PatientProfile]:
        with session_scope(self._session_factory) as session:
            orm = session.get(PatientORM, patient_id)
            return orm.to_domain() if orm is not None else None

    def insert(self, profile: PatientProfile) -> None:
        with session_scope(self._session_factory) as session:
            session.add(PatientORM.from_domain(profile))
            try:
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                raise DuplicateRecordError(f"Patient profile {profile.id} already exists") from exc
