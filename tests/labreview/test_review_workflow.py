import asyncio
import threading

import pytest

from labreview.domain.models.analysis import AnalysisStatus
from labreview.domain.models.report import RiskLevel
from labreview.errors import ApprovalFailedError, PersistenceError, RemoteFunctionError, ReviewValidationError
from labreview.infra.db.repositories import AnalysisRepository
from labreview.services.review.service import ReviewState, ReviewWorkflowController

from factories import make_analysis, make_patient, make_report


class RecordingInvoker:
    def __init__(self, error=None):
        self.calls = []
        self._error = error

    async def invoke(self, name, body, *, access_token=None):
        self.calls.append((name, body, access_token))
        if self._error is not None:
            raise self._error
        return {"success": True}

    async def aclose(self):
        return None


def _seed(repositories, *, report_fields=None):
    repositories.patients.insert(make_patient("p1"))
    repositories.analyses.save(make_analysis("A1", "p1"))
    repositories.reports.save(make_report("R1", "A1", **(report_fields or {})))


async def test_load_missing_analysis_is_not_found(repositories):
    controller = ReviewWorkflowController(repositories, RecordingInvoker())

    assert await controller.load("A1") == ReviewState.NOT_FOUND
    assert controller.analysis is None


async def test_load_without_report_is_not_found(repositories):
    repositories.analyses.save(make_analysis("A2", "p1"))
    controller = ReviewWorkflowController(repositories, RecordingInvoker())

    assert await controller.load("A2") == ReviewState.NOT_FOUND


async def test_load_seeds_editable_fields_with_defaults(repositories):
    _seed(repositories)
    controller = ReviewWorkflowController(repositories, RecordingInvoker())

    assert await controller.load("A1") == ReviewState.LOADED
    assert controller.patient.id == "p1"
    assert controller.doctor_notes == ""
    assert controller.recommendations == ""
    assert controller.risk_level == RiskLevel.MEDIUM


async def test_load_seeds_editable_fields_from_report(repositories):
    _seed(repositories, report_fields={"doctor_notes": "n", "recommendations": "r", "risk_level": RiskLevel.HIGH})
    controller = ReviewWorkflowController(repositories, RecordingInvoker())

    await controller.load("A1")

    assert (controller.doctor_notes, controller.recommendations, controller.risk_level) == ("n", "r", RiskLevel.HIGH)


class _BrokenAnalyses(AnalysisRepository):
    def get(self, analysis_id):
        raise PersistenceError("read failed")

    def list_by_filters(self, *, patient_id=None, status=None):
        raise PersistenceError("read failed")

    def save(self, analysis):
        raise PersistenceError("write failed")


async def test_load_failure_sets_error_state(repositories):
    repositories.analyses = _BrokenAnalyses()
    controller = ReviewWorkflowController(repositories, RecordingInvoker())

    assert await controller.load("A1") == ReviewState.ERROR
    assert controller.last_error == "read failed"


@pytest.mark.parametrize(
    "notes, recommendations",
    [("", "Retest in 3 months"), ("Looks fine", ""), ("   ", "Retest"), ("", "")],
)
async def test_approve_requires_notes_and_recommendations(repositories, notes, recommendations):
    _seed(repositories)
    invoker = RecordingInvoker()
    controller = ReviewWorkflowController(repositories, invoker)
    await controller.load("A1")
    controller.edit(doctor_notes=notes, recommendations=recommendations)

    with pytest.raises(ReviewValidationError):
        await controller.approve()

    assert invoker.calls == []
    assert controller.state == ReviewState.REVIEWING


async def test_approve_before_load_is_rejected(repositories):
    invoker = RecordingInvoker()
    controller = ReviewWorkflowController(repositories, invoker)

    with pytest.raises(ReviewValidationError):
        await controller.approve()
    assert invoker.calls == []


async def test_approve_without_a_report_is_rejected(repositories):
    invoker = RecordingInvoker()
    controller = ReviewWorkflowController(repositories, invoker)
    controller.state = ReviewState.REVIEWING
    controller.doctor_notes = "Notes"
    controller.recommendations = "Recs"

    with pytest.raises(ReviewValidationError, match="No report loaded"):
        await controller.approve()
    assert invoker.calls == []


async def test_approve_sends_generate_report_body(repositories):
    _seed(repositories)
    invoker = RecordingInvoker()
    controller = ReviewWorkflowController(repositories, invoker, access_token="tok")
    await controller.load("A1")
    controller.edit(doctor_notes="Mild anemia", recommendations="Iron panel", risk_level=RiskLevel.LOW)

    await controller.approve()

    assert controller.state == ReviewState.APPROVED
    assert invoker.calls == [
        (
            "generate-report",
            {"reportId": "R1", "doctorNotes": "Mild anemia", "recommendations": "Iron panel", "riskLevel": "low"},
            "tok",
        )
    ]


async def test_failed_approval_returns_to_reviewing_without_local_changes(repositories):
    _seed(repositories)
    invoker = RecordingInvoker(error=RemoteFunctionError("function crashed"))
    controller = ReviewWorkflowController(repositories, invoker)
    await controller.load("A1")
    controller.edit(doctor_notes="Notes", recommendations="Recs")

    with pytest.raises(ApprovalFailedError):
        await controller.approve()

    assert controller.state == ReviewState.REVIEWING
    assert controller.last_error == "function crashed"
    assert controller.doctor_notes == "Notes"
    assert repositories.reports.get("R1").approved_by_doctor is False
    assert repositories.analyses.get("A1").status == AnalysisStatus.PENDING


async def test_approve_then_reload_shows_approved(repositories, container):
    _seed(repositories)
    controller = container.review_controller()
    await controller.load("A1")
    controller.edit(doctor_notes="Normal ranges", recommendations="Annual check-up", risk_level=RiskLevel.LOW)

    await controller.approve()

    reloaded = container.review_controller()
    assert await reloaded.load("A1") == ReviewState.LOADED
    assert reloaded.analysis.status == AnalysisStatus.APPROVED
    assert reloaded.analysis.reviewed_at is not None
    assert reloaded.report.approved_by_doctor is True
    assert reloaded.doctor_notes == "Normal ranges"
    assert reloaded.risk_level == RiskLevel.LOW


class _GatedAnalyses(AnalysisRepository):
    """Analysis repository whose first read blocks until released."""

    def __init__(self, inner, gate):
        self._inner = inner
        self._gate = gate
        self.reads = 0

    def get(self, analysis_id):
        self.reads += 1
        if self.reads == 1:
            self._gate.wait(timeout=5)
        return self._inner.get(analysis_id)

    def list_by_filters(self, *, patient_id=None, status=None):
        return self._inner.list_by_filters(patient_id=patient_id, status=status)

    def save(self, analysis):
        self._inner.save(analysis)


async def test_newer_load_wins_over_slow_earlier_load(repositories):
    _seed(repositories)
    gate = threading.Event()
    repositories.analyses = _GatedAnalyses(repositories.analyses, gate)
    controller = ReviewWorkflowController(repositories, RecordingInvoker())

    first = asyncio.create_task(controller.load("missing"))
    await asyncio.sleep(0.05)
    second = await controller.load("A1")
    gate.set()
    await first

    assert second == ReviewState.LOADED
    assert controller.state == ReviewState.LOADED
    assert controller.analysis.id == "A1"
