import pytest

from labreview.domain.models.user import Identity, Role
from labreview.errors import PersistenceError, ProfileInsertError
from labreview.infra.db.repositories import DoctorRepository
from labreview.services.auth.profiles import ProfileRegistrar, RoleResolver

from factories import make_doctor, make_patient


def test_resolves_patient_only_identity(repositories):
    repositories.patients.insert(make_patient("u1"))
    resolver = RoleResolver(repositories.doctors, repositories.patients)

    resolution = resolver.resolve_role("u1")

    assert resolution.role == Role.PATIENT
    assert resolution.profile_id == "u1"


def test_resolves_doctor(repositories):
    repositories.doctors.insert(make_doctor("d1"))
    resolver = RoleResolver(repositories.doctors, repositories.patients)

    resolution = resolver.resolve_role("d1")

    assert resolution.role == Role.DOCTOR
    assert resolution.profile_id == "d1"


def test_unknown_identity_has_no_role(repositories):
    resolver = RoleResolver(repositories.doctors, repositories.patients)

    resolution = resolver.resolve_role("nobody")

    assert resolution.role == Role.NONE
    assert resolution.profile_id is None


def test_identity_in_both_tables_resolves_to_doctor(repositories):
    repositories.doctors.insert(make_doctor("both"))
    repositories.patients.insert(make_patient("both"))
    resolver = RoleResolver(repositories.doctors, repositories.patients)

    assert resolver.resolve_role("both").role == Role.DOCTOR


class _FailingDoctors(DoctorRepository):
    def get(self, doctor_id):
        raise PersistenceError("database offline")

    def insert(self, profile):
        raise PersistenceError("database offline")


def test_lookup_failure_propagates(repositories):
    resolver = RoleResolver(_FailingDoctors(), repositories.patients)

    with pytest.raises(PersistenceError):
        resolver.resolve_role("u1")


def test_registrar_uses_identity_id_and_merges_fields(repositories):
    registrar = ProfileRegistrar(repositories.doctors, repositories.patients)
    identity = Identity(id="id-7", email="dr@example.com")

    registrar.create_profile(Role.DOCTOR, identity, {"name": "Dr. X", "specialty": "Endocrinology"})

    profile = repositories.doctors.get("id-7")
    assert profile is not None
    assert profile.email == "dr@example.com"
    assert profile.name == "Dr. X"
    assert profile.specialty == "Endocrinology"
    assert repositories.patients.get("id-7") is None


def test_registrar_rejects_missing_name(repositories):
    registrar = ProfileRegistrar(repositories.doctors, repositories.patients)
    identity = Identity(id="id-8", email="p@example.com")

    with pytest.raises(ProfileInsertError) as excinfo:
        registrar.create_profile(Role.PATIENT, identity, {})

    assert "name" in excinfo.value.message


def test_registrar_wraps_duplicate_insert(repositories):
    repositories.patients.insert(make_patient("dup"))
    registrar = ProfileRegistrar(repositories.doctors, repositories.patients)
    identity = Identity(id="dup", email="dup@example.com")

    with pytest.raises(ProfileInsertError):
        registrar.create_profile(Role.PATIENT, identity, {"name": "Again"})
