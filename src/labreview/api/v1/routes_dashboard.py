from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel
from starlette.concurrency import run_in_threadpool

from labreview.container import ServiceContainer
from labreview.domain.models.user import AuthState, Role
from labreview.security import get_container, get_current_state
from labreview.services.dashboard.service import AnalysisFilter, DoctorDashboard, PatientDashboard

router = APIRouter(prefix="/dashboard", tags=["dashboard"])


class DashboardResponse(BaseModel):
    role: Role
    doctor: Optional[DoctorDashboard] = None
    patient: Optional[PatientDashboard] = None


@router.get("", response_model=DashboardResponse)
async def get_dashboard(
    analysis_filter: AnalysisFilter = Query(default=AnalysisFilter.PENDING, alias="filter"),
    state: AuthState = Depends(get_current_state),
    container: ServiceContainer = Depends(get_container),
) -> DashboardResponse:
    """Role-dispatched dashboard.

    ``filter`` only applies to the doctor view.
    """

    if state.role == Role.DOCTOR:
        doctor = await run_in_threadpool(container.dashboards.doctor_dashboard, analysis_filter)
        return DashboardResponse(role=state.role, doctor=doctor)
    if state.role == Role.PATIENT:
        patient = await run_in_threadpool(container.dashboards.patient_dashboard, state.profile_id)
        return DashboardResponse(role=state.role, patient=patient)
    if state.role == Role.NONE:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="No doctor or patient profile for this account",
        )
    raise ValueError(f"Unhandled role: {state.role!r}")
