from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel
from starlette.concurrency import run_in_threadpool

from labreview.domain.models.analysis import Analysis
from labreview.domain.models.profiles import PatientProfile
from labreview.domain.models.report import Report, RiskLevel
from labreview.errors import (
    ApprovalFailedError,
    PersistenceError,
    RemoteFunctionError,
    ReviewValidationError,
)
from labreview.infra.db.repositories import Repositories
from labreview.infra.functions.invoker import GENERATE_REPORT, FunctionInvoker

logger = logging.getLogger(__name__)


class ReviewState(str, Enum):
    LOADING = "loading"
    NOT_FOUND = "not_found"
    ERROR = "error"
    LOADED = "loaded"
    REVIEWING = "reviewing"
    SUBMITTING = "submitting"
    APPROVED = "approved"


class ReviewView(BaseModel):
    """Snapshot of the review screen: loaded records plus the doctor's edits."""

    state: ReviewState
    analysis: Optional[Analysis] = None
    report: Optional[Report] = None
    patient: Optional[PatientProfile] = None
    doctor_notes: str = ""
    recommendations: str = ""
    risk_level: RiskLevel = RiskLevel.MEDIUM
    last_error: Optional[str] = None


class ReviewWorkflowController:
    """Load an analysis for review, collect the doctor's edits and approve it.

    States: loading -> not_found | error | loaded; loaded -> reviewing ->
    submitting -> approved, or back to reviewing when approval fails. Only
    the most recent ``load`` may write state.
    """

    def __init__(
        self,
        repositories: Repositories,
        invoker: FunctionInvoker,
        *,
        access_token: Optional[str] = None,
    ) -> None:
        self._repos = repositories
        self._invoker = invoker
        self._access_token = access_token
        self._generation = 0
        self._load_task: Optional[asyncio.Task] = None

        self.state = ReviewState.LOADING
        self.analysis: Optional[Analysis] = None
        self.report: Optional[Report] = None
        self.patient: Optional[PatientProfile] = None
        self.doctor_notes = ""
        self.recommendations = ""
        self.risk_level = RiskLevel.MEDIUM
        self.last_error: Optional[str] = None

    def view(self) -> ReviewView:
        return ReviewView(
            state=self.state,
            analysis=self.analysis,
            report=self.report,
            patient=self.patient,
            doctor_notes=self.doctor_notes,
            recommendations=self.recommendations,
            risk_level=self.risk_level,
            last_error=self.last_error,
        )

    async def load(self, analysis_id: str) -> ReviewState:
        self._generation += 1
        generation = self._generation
        if self._load_task is not None and not self._load_task.done():
            self._load_task.cancel()

        self.state = ReviewState.LOADING
        self.analysis = None
        self.report = None
        self.patient = None
        self.last_error = None

        task = asyncio.get_running_loop().create_task(self._fetch(analysis_id))
        self._load_task = task
        try:
            analysis, report, patient = await task
        except asyncio.CancelledError:
            if generation != self._generation:
                # Superseded by a newer load; that load owns the state.
                return self.state
            raise
        except PersistenceError as exc:
            if generation == self._generation:
                logger.error("Failed to load analysis %s: %s", analysis_id, exc.message)
                self.state = ReviewState.ERROR
                self.last_error = exc.message
            return self.state

        if generation != self._generation:
            return self.state
        if analysis is None or report is None:
            self.state = ReviewState.NOT_FOUND
            return self.state

        self.analysis = analysis
        self.report = report
        self.patient = patient
        self.doctor_notes = report.doctor_notes or ""
        self.recommendations = report.recommendations or ""
        self.risk_level = report.risk_level or RiskLevel.MEDIUM
        self.state = ReviewState.LOADED
        return self.state

    async def _fetch(self, analysis_id: str):
        analysis = await run_in_threadpool(self._repos.analyses.get, analysis_id)
        if analysis is None:
            return None, None, None
        report = await run_in_threadpool(self._repos.reports.get_by_analysis, analysis.id)
        patient = await run_in_threadpool(self._repos.patients.get, analysis.patient_id)
        return analysis, report, patient

    def edit(
        self,
        *,
        doctor_notes: Optional[str] = None,
        recommendations: Optional[str] = None,
        risk_level: Optional[RiskLevel] = None,
    ) -> None:
        if self.state not in (ReviewState.LOADED, ReviewState.REVIEWING):
            raise ReviewValidationError(f"Cannot edit a review in state '{self.state.value}'")
        if doctor_notes is not None:
            self.doctor_notes = doctor_notes
        if recommendations is not None:
            self.recommendations = recommendations
        if risk_level is not None:
            self.risk_level = risk_level
        self.state = ReviewState.REVIEWING

    async def approve(self) -> Dict[str, Any]:
        """Submit the doctor's review through ``generate-report``.

        Validation happens before any call. On failure the edits are kept,
        the state returns to reviewing and ApprovalFailedError is raised.
        """

        if self.state not in (ReviewState.LOADED, ReviewState.REVIEWING):
            raise ReviewValidationError(f"Cannot approve a review in state '{self.state.value}'")
        if not self.doctor_notes.strip() or not self.recommendations.strip():
            raise ReviewValidationError("Doctor notes and recommendations are required")
        if self.report is None:
            raise ReviewValidationError("No report loaded for this review")

        body = {
            "reportId": self.report.id,
            "doctorNotes": self.doctor_notes,
            "recommendations": self.recommendations,
            "riskLevel": self.risk_level.value,
        }
        self.state = ReviewState.SUBMITTING
        self.last_error = None
        try:
            result = await self._invoker.invoke(GENERATE_REPORT, body, access_token=self._access_token)
        except RemoteFunctionError as exc:
            self.last_error = exc.message
            self.state = ReviewState.REVIEWING
            raise ApprovalFailedError(exc.message) from exc
        else:
            self.state = ReviewState.APPROVED
            return result
        finally:
            if self.state == ReviewState.SUBMITTING:
                self.state = ReviewState.REVIEWING
