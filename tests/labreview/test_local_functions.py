import base64
from datetime import datetime, timezone
from pathlib import Path

import pytest

from labreview.domain.models.analysis import AnalysisStatus
from labreview.domain.models.report import RiskLevel
from labreview.errors import PersistenceError, RemoteFunctionError
from labreview.services.interpretation.backends import InterpretationDraft

from factories import make_analysis, make_doctor, make_patient, make_report


def _pdf_body(content=b"Hemoglobin 13.5 g/dL\nFerritin 40 ng/mL", patient_id="p1"):
    return {
        "pdfData": "data:application/pdf;base64," + base64.b64encode(content).decode(),
        "fileName": "labs.pdf",
        "patientId": patient_id,
        "patientName": "Ana",
        "patientAge": 23,
        "patientGender": "female",
    }


async def test_process_pdf_creates_pending_analysis_and_draft_report(container, repositories):
    repositories.patients.insert(make_patient("p1"))

    result = await container.invoker.invoke("process-pdf", _pdf_body())
    await container.invoker.wait_for_background_tasks()

    analysis = repositories.analyses.get(result["analysisId"])
    assert result["success"] is True
    assert analysis.status == AnalysisStatus.PENDING
    assert analysis.pdf_filename == "labs.pdf"
    assert "Ferritin" in analysis.extracted_text
    assert Path(analysis.pdf_url).read_bytes().startswith(b"Hemoglobin")

    report = repositories.reports.get_by_analysis(analysis.id)
    assert report is not None
    assert report.approved_by_doctor is False
    assert report.model_used == "demo-interpreter"
    assert "2 line(s)" in report.ai_analysis

    kinds = [n.type for n in repositories.notifications.list_for_user("p1")]
    assert kinds == ["analysis_received"]


async def test_process_pdf_rejects_unknown_patient(container):
    with pytest.raises(RemoteFunctionError, match="Patient not found"):
        await container.invoker.invoke("process-pdf", _pdf_body(patient_id="ghost"))


@pytest.mark.parametrize("pdf_data", ["not-a-data-url", "data:application/pdf;base64,@@@", "data:application/pdf;base64,"])
async def test_process_pdf_rejects_bad_payload(container, repositories, pdf_data):
    repositories.patients.insert(make_patient("p1"))
    body = _pdf_body()
    body["pdfData"] = pdf_data

    with pytest.raises(RemoteFunctionError):
        await container.invoker.invoke("process-pdf", body)
    assert repositories.analyses.list_by_filters(patient_id="p1") == []


class _ExplodingInterpreter:
    def interpret(self, text, patient):
        raise RuntimeError("model unavailable")


async def test_interpretation_failure_leaves_analysis_pending_without_report(container, repositories, caplog):
    repositories.patients.insert(make_patient("p1"))
    container.invoker._interpreter = _ExplodingInterpreter()

    result = await container.invoker.invoke("process-pdf", _pdf_body())
    await container.invoker.wait_for_background_tasks()

    assert repositories.analyses.get(result["analysisId"]).status == AnalysisStatus.PENDING
    assert repositories.reports.get_by_analysis(result["analysisId"]) is None
    assert "AI processing failed" in caplog.text


def _seed_review(repositories):
    repositories.patients.insert(make_patient("p1"))
    repositories.analyses.save(make_analysis("A1", "p1"))
    repositories.reports.save(make_report("R1", "A1"))


def _approval_body(**overrides):
    body = {"reportId": "R1", "doctorNotes": "Notes", "recommendations": "Recs", "riskLevel": "high"}
    body.update(overrides)
    return body


async def test_generate_report_approves_report_and_analysis_together(container, repositories):
    _seed_review(repositories)

    result = await container.invoker.invoke("generate-report", _approval_body())

    assert result == {"success": True, "reportId": "R1", "analysisId": "A1", "status": "approved"}
    report = repositories.reports.get("R1")
    analysis = repositories.analyses.get("A1")
    assert report.approved_by_doctor is True
    assert report.doctor_notes == "Notes"
    assert report.risk_level.value == "high"
    assert analysis.status == AnalysisStatus.APPROVED
    assert analysis.reviewed_at is not None


async def test_generate_report_is_idempotent(container, repositories):
    _seed_review(repositories)

    await container.invoker.invoke("generate-report", _approval_body())
    first_reviewed_at = repositories.analyses.get("A1").reviewed_at
    await container.invoker.invoke("generate-report", _approval_body(doctorNotes="Updated"))

    assert repositories.analyses.get("A1").reviewed_at == first_reviewed_at
    assert repositories.reports.get("R1").doctor_notes == "Updated"
    ready = [n for n in repositories.notifications.list_for_user("p1") if n.type == "report_ready"]
    assert len(ready) == 1
    assert ready[0].related_analysis_id == "A1"


async def test_generate_report_records_calling_doctor(container, repositories):
    _seed_review(repositories)
    identity = container.identity_directory.create_identity("doc@example.com", "pw123456")
    repositories.doctors.insert(make_doctor(identity.id))
    token = container.identity_directory.issue_token(identity)

    await container.invoker.invoke("generate-report", _approval_body(), access_token=token)

    assert repositories.analyses.get("A1").doctor_id == identity.id


async def test_generate_report_refuses_non_doctor_caller(container, repositories):
    _seed_review(repositories)
    identity = container.identity_directory.create_identity("pat@example.com", "pw123456")
    token = container.identity_directory.issue_token(identity)

    with pytest.raises(RemoteFunctionError, match="Only doctors"):
        await container.invoker.invoke("generate-report", _approval_body(), access_token=token)
    assert repositories.reports.get("R1").approved_by_doctor is False


async def test_generate_report_unknown_report_and_bad_body(container):
    with pytest.raises(RemoteFunctionError):
        await container.invoker.invoke("generate-report", _approval_body(reportId="missing"))
    with pytest.raises(RemoteFunctionError):
        await container.invoker.invoke("generate-report", _approval_body(riskLevel="extreme"))
    with pytest.raises(RemoteFunctionError, match="Unknown function"):
        await container.invoker.invoke("delete-everything", {})


def test_demo_interpretation_draft_shape():
    from labreview.services.interpretation.backends import DemoInterpretationBackend, PatientContext

    draft = DemoInterpretationBackend().interpret("a\n\nb\n", PatientContext(name="Ana", age=23, gender="female"))
    assert isinstance(draft, InterpretationDraft)
    assert draft.model == "demo-interpreter"
    assert "age 23" in draft.text


def _approve_right_after_draft(repositories, *, fail_after=False):
    save_report = repositories.reports.save

    def save_then_approve(report):
        save_report(report)
        repositories.reviews.approve_analysis(
            report_id=report.id,
            doctor_notes="Notes",
            recommendations="Recs",
            risk_level=RiskLevel.LOW,
            doctor_id=None,
            reviewed_at=datetime.now(timezone.utc),
        )
        if fail_after:
            raise PersistenceError("connection dropped")

    repositories.reports.save = save_then_approve


@pytest.mark.parametrize("fail_after", [False, True])
async def test_background_processing_never_undoes_an_approval(container, repositories, fail_after):
    repositories.patients.insert(make_patient("p1"))
    _approve_right_after_draft(repositories, fail_after=fail_after)

    result = await container.invoker.invoke("process-pdf", _pdf_body())
    await container.invoker.wait_for_background_tasks()

    analysis = repositories.analyses.get(result["analysisId"])
    report = repositories.reports.get_by_analysis(analysis.id)
    assert report.approved_by_doctor is True
    assert analysis.status == AnalysisStatus.APPROVED
    assert "Ferritin" in analysis.extracted_text
