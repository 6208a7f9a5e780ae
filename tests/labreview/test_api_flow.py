from fastapi import status


async def _register(client, email, role, **fields):
    payload = {"email": email, "password": "pw123456", "role": role, "name": fields.pop("name", "Someone")}
    payload.update(fields)
    response = await client.post("/api/v1/auth/register", json=payload)
    assert response.status_code == status.HTTP_201_CREATED, response.text
    return response.json()


def _auth(session):
    return {"Authorization": f"Bearer {session['access_token']}"}


async def _upload(client, patient, content=b"Glucose 95 mg/dL\nTSH 3.2 mIU/L"):
    return await client.post(
        "/api/v1/patient/analyses",
        files={"file": ("labs.pdf", content, "application/pdf")},
        headers=_auth(patient),
    )


async def test_register_returns_session_with_resolved_role(client):
    session = await _register(client, "doc@example.com", "doctor", name="Dr. X", specialty="Endocrinology")

    assert session["role"] == "doctor"
    assert session["profile_id"] == session["user"]["id"]
    me = await client.get("/api/v1/auth/me", headers=_auth(session))
    assert me.status_code == status.HTTP_200_OK
    assert me.json()["role"] == "doctor"


async def test_duplicate_registration_and_bad_login(client):
    await _register(client, "pat@example.com", "patient", name="Ana")

    duplicate = await client.post(
        "/api/v1/auth/register",
        json={"email": "pat@example.com", "password": "pw123456", "role": "patient", "name": "Ana"},
    )
    assert duplicate.status_code == status.HTTP_400_BAD_REQUEST
    assert duplicate.json()["detail"] == "User already registered"

    bad_login = await client.post("/api/v1/auth/login", json={"email": "pat@example.com", "password": "nope-nope"})
    assert bad_login.status_code == status.HTTP_401_UNAUTHORIZED
    assert bad_login.json()["detail"] == "Invalid login credentials"


async def test_malformed_email_is_rejected_before_an_identity_exists(client):
    credentials = {"email": "not-an-email", "password": "pw123456"}

    register = await client.post("/api/v1/auth/register", json={**credentials, "role": "patient", "name": "Ana"})
    assert register.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

    login = await client.post("/api/v1/auth/login", json=credentials)
    assert login.status_code == status.HTTP_401_UNAUTHORIZED


async def test_login_logout_round_trip(client):
    await _register(client, "pat@example.com", "patient", name="Ana", birth_date="2000-06-15")

    login = await client.post("/api/v1/auth/login", json={"email": "PAT@example.com", "password": "pw123456"})
    assert login.status_code == status.HTTP_200_OK
    session = login.json()
    assert session["role"] == "patient"

    logout = await client.post("/api/v1/auth/logout", headers=_auth(session))
    assert logout.status_code == status.HTTP_204_NO_CONTENT
    after = await client.get("/api/v1/auth/me", headers=_auth(session))
    assert after.status_code == status.HTTP_401_UNAUTHORIZED


async def test_routes_enforce_authentication_and_role(client):
    patient = await _register(client, "pat@example.com", "patient", name="Ana")
    doctor = await _register(client, "doc@example.com", "doctor", name="Dr. X")

    assert (await client.get("/api/v1/dashboard")).status_code == status.HTTP_401_UNAUTHORIZED
    assert (await client.get("/api/v1/doctor/analysis/A1")).status_code == status.HTTP_401_UNAUTHORIZED
    assert (
        await client.get("/api/v1/doctor/analysis/A1", headers=_auth(patient))
    ).status_code == status.HTTP_403_FORBIDDEN
    assert (
        await client.get("/api/v1/patient/report/A1", headers=_auth(doctor))
    ).status_code == status.HTTP_403_FORBIDDEN
    assert (
        await client.get("/api/v1/doctor/analysis/A1", headers=_auth(doctor))
    ).status_code == status.HTTP_404_NOT_FOUND


async def test_identity_without_profile_is_forbidden(client, container):
    identity = container.identity_directory.create_identity("ghost@example.com", "pw123456")
    token = container.identity_directory.issue_token(identity)

    response = await client.get("/api/v1/dashboard", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == status.HTTP_403_FORBIDDEN
    assert response.json()["detail"] == "No doctor or patient profile for this account"


async def test_upload_review_approve_and_view_report(client, container):
    patient = await _register(client, "pat@example.com", "patient", name="Ana", birth_date="2000-06-15", gender="female")
    doctor = await _register(client, "doc@example.com", "doctor", name="Dr. X")

    upload = await _upload(client, patient)
    assert upload.status_code == status.HTTP_202_ACCEPTED, upload.text
    analysis_id = upload.json()["analysisId"]
    await container.invoker.wait_for_background_tasks()

    pending = await client.get("/api/v1/dashboard", headers=_auth(doctor))
    assert pending.status_code == status.HTTP_200_OK
    entries = pending.json()["doctor"]["entries"]
    assert [e["analysis"]["id"] for e in entries] == [analysis_id]
    assert entries[0]["patient_name"] == "Ana"

    # Not visible to the patient until approved.
    early = await client.get(f"/api/v1/patient/report/{analysis_id}", headers=_auth(patient))
    assert early.status_code == status.HTTP_404_NOT_FOUND

    review = await client.get(f"/api/v1/doctor/analysis/{analysis_id}", headers=_auth(doctor))
    assert review.status_code == status.HTTP_200_OK
    assert review.json()["state"] == "loaded"
    assert review.json()["risk_level"] == "medium"

    rejected = await client.post(
        f"/api/v1/doctor/analysis/{analysis_id}/approve",
        json={"doctor_notes": "", "recommendations": "Retest", "risk_level": "low"},
        headers=_auth(doctor),
    )
    assert rejected.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

    approved = await client.post(
        f"/api/v1/doctor/analysis/{analysis_id}/approve",
        json={"doctor_notes": "Glucose slightly high", "recommendations": "Retest in 3 months", "risk_level": "low"},
        headers=_auth(doctor),
    )
    assert approved.status_code == status.HTTP_200_OK, approved.text
    assert approved.json()["review"]["state"] == "approved"

    reloaded = await client.get(f"/api/v1/doctor/analysis/{analysis_id}", headers=_auth(doctor))
    body = reloaded.json()
    assert body["analysis"]["status"] == "approved"
    assert body["analysis"]["doctor_id"] == doctor["user"]["id"]
    assert body["report"]["approved_by_doctor"] is True

    report = await client.get(f"/api/v1/patient/report/{analysis_id}", headers=_auth(patient))
    assert report.status_code == status.HTTP_200_OK
    assert report.json()["report"]["doctor_notes"] == "Glucose slightly high"

    dashboard = await client.get("/api/v1/dashboard", headers=_auth(patient))
    patient_view = dashboard.json()["patient"]
    assert patient_view["counts"] == {"total": 1, "pending": 0, "approved": 1}
    assert [p["score"] for p in patient_view["risk_trend"]] == [1]

    notifications = await client.get("/api/v1/notifications", params={"unread_only": True}, headers=_auth(patient))
    kinds = [n["type"] for n in notifications.json()]
    assert kinds == ["report_ready", "analysis_received"]

    ready_id = notifications.json()[0]["id"]
    assert (
        await client.post(f"/api/v1/notifications/{ready_id}/read", headers=_auth(doctor))
    ).status_code == status.HTTP_404_NOT_FOUND
    marked = await client.post(f"/api/v1/notifications/{ready_id}/read", headers=_auth(patient))
    assert marked.json()["read"] is True


async def test_upload_rejects_non_pdf(client):
    patient = await _register(client, "pat@example.com", "patient", name="Ana")

    response = await client.post(
        "/api/v1/patient/analyses",
        files={"file": ("scan.png", b"\x89PNG", "image/png")},
        headers=_auth(patient),
    )

    assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
    assert response.json()["detail"] == "Only PDF files are accepted"


async def test_functional_panel_for_doctor(client, container):
    patient = await _register(client, "pat@example.com", "patient", name="Ana")
    doctor = await _register(client, "doc@example.com", "doctor", name="Dr. X")
    analysis_id = (await _upload(client, patient)).json()["analysisId"]
    await container.invoker.wait_for_background_tasks()

    response = await client.get(
        f"/api/v1/doctor/functional/{analysis_id}",
        params={"category": "thyroid"},
        headers=_auth(doctor),
    )

    assert response.status_code == status.HTTP_200_OK
    payload = response.json()
    assert [b["biomarker"] for b in payload["biomarkers"]] == ["TSH"]
    assert payload["counts"]["total"] == 6
    assert payload["report"]["model_used"] == "demo-interpreter"
