from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pydantic import ValidationError

from labreview.domain.models.profiles import DoctorProfile, PatientProfile
from labreview.domain.models.user import Identity, Role, RoleResolution
from labreview.errors import PersistenceError, ProfileInsertError
from labreview.infra.db.repositories import DoctorRepository, PatientRepository

logger = logging.getLogger(__name__)


class RoleResolver:
    """Derive an identity's role from doctor/patient profile membership.

    The doctor table is checked first, so an id present in both tables
    resolves to DOCTOR. Lookup failures propagate to the caller.
    """

    def __init__(self, doctors: DoctorRepository, patients: PatientRepository) -> None:
        self._doctors = doctors
        self._patients = patients

    def resolve_role(self, identity_id: str) -> RoleResolution:
        doctor = self._doctors.get(identity_id)
        if doctor is not None:
            return RoleResolution(role=Role.DOCTOR, profile_id=doctor.id)
        patient = self._patients.get(identity_id)
        if patient is not None:
            return RoleResolution(role=Role.PATIENT, profile_id=patient.id)
        return RoleResolution(role=Role.NONE, profile_id=None)


class ProfileRegistrar:
    def __init__(self, doctors: DoctorRepository, patients: PatientRepository) -> None:
        self._doctors = doctors
        self._patients = patients

    def create_profile(
        self,
        role: Role,
        identity: Identity,
        fields: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Insert the profile row for a freshly created identity.

        The identity id is the primary key and the identity email is used
        unless ``fields`` supplies one. Raises ProfileInsertError when the row
        is invalid or cannot be written.
        """

        data: Dict[str, Any] = {"email": identity.email, **(fields or {})}
        data["id"] = identity.id
        data["created_at"] = datetime.now(timezone.utc)
        try:
            if role == Role.DOCTOR:
                self._doctors.insert(DoctorProfile.model_validate(data))
            elif role == Role.PATIENT:
                self._patients.insert(PatientProfile.model_validate(data))
            elif role == Role.NONE:
                raise ProfileInsertError("A profile needs a doctor or patient role")
            else:
                raise ValueError(f"Unhandled role: {role!r}")
        except ValidationError as exc:
            fields_in_error = sorted({str(err["loc"][0]) for err in exc.errors() if err.get("loc")})
            raise ProfileInsertError(f"Invalid profile fields: {', '.join(fields_in_error)}") from exc
        except PersistenceError as exc:
            raise ProfileInsertError(exc.message) from exc
