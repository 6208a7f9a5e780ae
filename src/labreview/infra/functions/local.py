from __future__ import annotations

import asyncio
import base64
import binascii
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Optional, Set
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from starlette.concurrency import run_in_threadpool

from labreview.domain.models.analysis import Analysis, AnalysisStatus
from labreview.domain.models.notification import Notification, NotificationUserType
from labreview.domain.models.report import Report, RiskLevel
from labreview.domain.models.user import Identity
from labreview.errors import LabReviewError, RemoteFunctionError
from labreview.infra.db.repositories import Repositories
from labreview.infra.functions.invoker import GENERATE_REPORT, PROCESS_PDF
from labreview.infra.storage.pdf import PdfStorageBackend
from labreview.services.audit.service import AuditService
from labreview.services.interpretation.backends import (
    InterpretationBackend,
    PatientContext,
    PdfTextExtractor,
)

logger = logging.getLogger(__name__)

PDF_DATA_URL_PREFIX = "data:application/pdf;base64,"

IdentityLookup = Callable[[str], Awaitable[Optional[Identity]]]


class GenerateReportRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    report_id: str = Field(alias="reportId", min_length=1)
    doctor_notes: str = Field(alias="doctorNotes")
    recommendations: str
    risk_level: RiskLevel = Field(alias="riskLevel")


class ProcessPdfRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    pdf_data: str = Field(alias="pdfData")
    file_name: str = Field(alias="fileName", min_length=1)
    patient_id: str = Field(alias="patientId", min_length=1)
    patient_name: str = Field(default="Patient", alias="patientName")
    patient_age: int = Field(default=0, alias="patientAge", ge=0)
    patient_gender: str = Field(default="unknown", alias="patientGender")


def decode_pdf_data_url(data_url: str) -> bytes:
    if not data_url.startswith(PDF_DATA_URL_PREFIX):
        raise RemoteFunctionError("pdfData must be a base64 PDF data URL")
    try:
        content = base64.b64decode(data_url[len(PDF_DATA_URL_PREFIX):], validate=True)
    except (binascii.Error, ValueError) as exc:
        raise RemoteFunctionError("pdfData is not valid base64") from exc
    if not content:
        raise RemoteFunctionError("pdfData is empty")
    return content


class LocalFunctionInvoker:
    """Runs ``generate-report`` and ``process-pdf`` in-process.

    Mirrors the hosted functions' contract: request bodies use the same
    camelCase keys, results come back as plain dicts, and every failure is
    raised as RemoteFunctionError. AI processing after an upload runs as a
    background task owned by this invoker.
    """

    def __init__(
        self,
        repositories: Repositories,
        *,
        storage: PdfStorageBackend,
        extractor: PdfTextExtractor,
        interpreter: InterpretationBackend,
        audit: AuditService,
        identity_for_token: Optional[IdentityLookup] = None,
    ) -> None:
        self._repos = repositories
        self._storage = storage
        self._extractor = extractor
        self._interpreter = interpreter
        self._audit = audit
        self._identity_for_token = identity_for_token
        self._tasks: Set[asyncio.Task] = set()

    async def invoke(
        self,
        name: str,
        body: Dict[str, Any],
        *,
        access_token: Optional[str] = None,
    ) -> Dict[str, Any]:
        try:
            if name == GENERATE_REPORT:
                return await self._generate_report(GenerateReportRequest.model_validate(body), access_token)
            if name == PROCESS_PDF:
                return await self._process_pdf(ProcessPdfRequest.model_validate(body))
        except ValidationError as exc:
            raise RemoteFunctionError(f"Invalid request body for '{name}': {exc.error_count()} error(s)") from exc
        except RemoteFunctionError:
            raise
        except LabReviewError as exc:
            raise RemoteFunctionError(exc.message) from exc
        raise RemoteFunctionError(f"Unknown function '{name}'")

    async def _caller_doctor_id(self, access_token: Optional[str]) -> Optional[str]:
        if access_token is None or self._identity_for_token is None:
            return None
        identity = await self._identity_for_token(access_token)
        if identity is None:
            raise RemoteFunctionError("Invalid access token")
        doctor = await run_in_threadpool(self._repos.doctors.get, identity.id)
        if doctor is None:
            raise RemoteFunctionError("Only doctors can approve reports")
        return doctor.id

    async def _generate_report(self, request: GenerateReportRequest, access_token: Optional[str]) -> Dict[str, Any]:
        doctor_id = await self._caller_doctor_id(access_token)
        outcome = await run_in_threadpool(
            self._repos.reviews.approve_analysis,
            report_id=request.report_id,
            doctor_notes=request.doctor_notes,
            recommendations=request.recommendations,
            risk_level=request.risk_level,
            doctor_id=doctor_id,
            reviewed_at=datetime.now(timezone.utc),
        )
        if outcome.newly_approved:
            notification = Notification(
                id=str(uuid4()),
                user_id=outcome.analysis.patient_id,
                user_type=NotificationUserType.PATIENT,
                message="Your lab report has been reviewed and is ready to view.",
                type="report_ready",
                related_analysis_id=outcome.analysis.id,
                created_at=datetime.now(timezone.utc),
            )
            await run_in_threadpool(self._repos.notifications.save, notification)

        self._audit.log_event(
            action="approve",
            resource_type="report",
            resource_id=outcome.report.id,
            extra={"analysis_id": outcome.analysis.id, "newly_approved": outcome.newly_approved},
        )
        return {
            "success": True,
            "reportId": outcome.report.id,
            "analysisId": outcome.analysis.id,
            "status": outcome.analysis.status.value,
        }

    async def _process_pdf(self, request: ProcessPdfRequest) -> Dict[str, Any]:
        content = decode_pdf_data_url(request.pdf_data)
        patient = await run_in_threadpool(self._repos.patients.get, request.patient_id)
        if patient is None:
            raise RemoteFunctionError("Patient not found")

        analysis_id = str(uuid4())
        pdf_url = await run_in_threadpool(
            self._storage.save_file, content, name=f"{patient.id}/{analysis_id}.pdf"
        )
        now = datetime.now(timezone.utc)
        analysis = Analysis(
            id=analysis_id,
            patient_id=patient.id,
            pdf_url=pdf_url,
            pdf_filename=request.file_name,
            status=AnalysisStatus.PENDING,
            uploaded_at=now,
            created_at=now,
        )
        try:
            await run_in_threadpool(self._repos.analyses.save, analysis)
        except LabReviewError:
            self._storage.delete_file(pdf_url)
            raise

        await run_in_threadpool(
            self._repos.notifications.save,
            Notification(
                id=str(uuid4()),
                user_id=patient.id,
                user_type=NotificationUserType.PATIENT,
                message="Your lab report was received and is being processed.",
                type="analysis_received",
                related_analysis_id=analysis_id,
                created_at=now,
            ),
        )

        context = PatientContext(name=request.patient_name, age=request.patient_age, gender=request.patient_gender)
        task = asyncio.create_task(self._interpret(analysis_id, content, context))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

        self._audit.log_event(
            action="upload",
            resource_type="analysis",
            resource_id=analysis_id,
            extra={"size_bytes": len(content)},
        )
        return {"success": True, "analysisId": analysis_id, "status": analysis.status.value}

    async def _transition(
        self,
        analysis_id: str,
        status: AnalysisStatus,
        from_status: AnalysisStatus,
        extracted_text: Optional[str] = None,
    ) -> bool:
        return await run_in_threadpool(
            self._repos.analyses.transition_status,
            analysis_id,
            status,
            from_statuses=(from_status,),
            extracted_text=extracted_text,
        )

    async def _interpret(self, analysis_id: str, content: bytes, patient: PatientContext) -> None:
        try:
            if not await self._transition(analysis_id, AnalysisStatus.PROCESSING, AnalysisStatus.PENDING):
                logger.info("Analysis %s left pending before processing; skipping", analysis_id)
                return
            text = await run_in_threadpool(self._extractor.extract_text, content)
            draft = await run_in_threadpool(self._interpreter.interpret, text, patient)
            # Status first: once the report exists a doctor may approve it.
            if not await self._transition(
                analysis_id, AnalysisStatus.PENDING, AnalysisStatus.PROCESSING, extracted_text=text
            ):
                logger.warning("Analysis %s changed status during processing; draft discarded", analysis_id)
                return
            now = datetime.now(timezone.utc)
            report = Report(
                id=str(uuid4()),
                analysis_id=analysis_id,
                ai_analysis=draft.text,
                approved_by_doctor=False,
                model_used=draft.model,
                created_at=now,
                updated_at=now,
            )
            await run_in_threadpool(self._repos.reports.save, report)
            logger.info("Drafted report %s for analysis %s", report.id, analysis_id)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("AI processing failed for analysis %s", analysis_id)
            try:
                await self._transition(analysis_id, AnalysisStatus.PENDING, AnalysisStatus.PROCESSING)
            except LabReviewError:
                logger.exception("Could not reset analysis %s to pending", analysis_id)

    async def wait_for_background_tasks(self) -> None:
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def aclose(self) -> None:
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
