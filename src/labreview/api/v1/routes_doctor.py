from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel
from starlette.concurrency import run_in_threadpool

from labreview.container import ServiceContainer
from labreview.domain.models.report import RiskLevel
from labreview.domain.models.user import Role
from labreview.errors import ApprovalFailedError, RecordNotFoundError, ReviewValidationError
from labreview.security import get_access_token, get_container, require_role
from labreview.services.biomarkers.panel import CategoryFilter, FunctionalPanelView
from labreview.services.review.service import ReviewState, ReviewView, ReviewWorkflowController

router = APIRouter(
    prefix="/doctor",
    tags=["doctor"],
    dependencies=[Depends(require_role(Role.DOCTOR))],
)


class ApproveRequest(BaseModel):
    doctor_notes: str
    recommendations: str
    risk_level: RiskLevel = RiskLevel.MEDIUM


class ApproveResponse(BaseModel):
    review: ReviewView
    result: Dict[str, Any]


async def _load_review(controller: ReviewWorkflowController, analysis_id: str) -> None:
    result = await controller.load(analysis_id)
    if result == ReviewState.NOT_FOUND:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Analysis not found")
    if result == ReviewState.ERROR:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Could not load analysis")


@router.get("/analysis/{analysis_id}", response_model=ReviewView)
async def get_analysis_review(
    analysis_id: str,
    container: ServiceContainer = Depends(get_container),
    access_token: Optional[str] = Depends(get_access_token),
) -> ReviewView:
    controller = container.review_controller(access_token)
    await _load_review(controller, analysis_id)
    container.audit.log_event(action="view_review", resource_type="analysis", resource_id=analysis_id)
    return controller.view()


@router.post("/analysis/{analysis_id}/approve", response_model=ApproveResponse)
async def approve_analysis(
    analysis_id: str,
    payload: ApproveRequest,
    container: ServiceContainer = Depends(get_container),
    access_token: Optional[str] = Depends(get_access_token),
) -> ApproveResponse:
    controller = container.review_controller(access_token)
    await _load_review(controller, analysis_id)
    try:
        controller.edit(
            doctor_notes=payload.doctor_notes,
            recommendations=payload.recommendations,
            risk_level=payload.risk_level,
        )
        result = await controller.approve()
    except ReviewValidationError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=exc.message) from exc
    except ApprovalFailedError as exc:
        container.audit.log_event(
            action="approve",
            resource_type="analysis",
            resource_id=analysis_id,
            outcome="failure",
        )
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=exc.message) from exc
    return ApproveResponse(review=controller.view(), result=result)


@router.get("/functional/{analysis_id}", response_model=FunctionalPanelView)
async def get_functional_panel(
    analysis_id: str,
    category: CategoryFilter = Query(default=CategoryFilter.ALL),
    container: ServiceContainer = Depends(get_container),
) -> FunctionalPanelView:
    try:
        view = await run_in_threadpool(container.functional_panel.functional_panel, analysis_id, category)
    except RecordNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=exc.message) from exc
    container.audit.log_event(
        action="view_functional_panel",
        resource_type="analysis",
        resource_id=analysis_id,
        extra={"category": category.value},
    )
    return view
