from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile, status
from starlette.concurrency import run_in_threadpool

from labreview.container import ServiceContainer
from labreview.domain.models.user import AuthState, Role
from labreview.errors import RecordNotFoundError, UploadFailedError, UploadRejectedError
from labreview.security import get_access_token, get_container, require_role
from labreview.services.dashboard.service import PatientReportView

router = APIRouter(prefix="/patient", tags=["patient"])

require_patient = require_role(Role.PATIENT)


@router.get("/report/{analysis_id}", response_model=PatientReportView)
async def get_patient_report(
    analysis_id: str,
    state: AuthState = Depends(require_patient),
    container: ServiceContainer = Depends(get_container),
) -> PatientReportView:
    try:
        view = await run_in_threadpool(container.dashboards.patient_report, state.profile_id, analysis_id)
    except RecordNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=exc.message) from exc
    container.audit.log_event(action="view_report", resource_type="report", resource_id=view.report.id)
    return view


@router.post("/analyses", status_code=status.HTTP_202_ACCEPTED)
async def upload_analysis(
    file: UploadFile = File(...),
    state: AuthState = Depends(require_patient),
    container: ServiceContainer = Depends(get_container),
    access_token: Optional[str] = Depends(get_access_token),
) -> Dict[str, Any]:
    """Upload a lab-report PDF for AI processing and doctor review."""

    content = await file.read()
    controller = container.upload_controller(access_token)
    try:
        return await controller.upload(
            content,
            file.filename or "",
            state.profile_id,
            content_type=file.content_type,
        )
    except UploadRejectedError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=exc.message) from exc
    except UploadFailedError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=exc.message) from exc
