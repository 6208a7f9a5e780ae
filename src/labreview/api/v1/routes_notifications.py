from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query, status
from starlette.concurrency import run_in_threadpool

from labreview.container import ServiceContainer
from labreview.domain.models.notification import Notification
from labreview.domain.models.user import AuthState
from labreview.errors import RecordNotFoundError
from labreview.security import get_container, get_current_state

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("", response_model=List[Notification])
async def list_notifications(
    unread_only: bool = Query(default=False),
    state: AuthState = Depends(get_current_state),
    container: ServiceContainer = Depends(get_container),
) -> List[Notification]:
    return await run_in_threadpool(
        container.notifications.list_for_user, state.identity.id, unread_only=unread_only
    )


@router.post("/{notification_id}/read", response_model=Notification)
async def mark_notification_read(
    notification_id: str,
    state: AuthState = Depends(get_current_state),
    container: ServiceContainer = Depends(get_container),
) -> Notification:
    try:
        return await run_in_threadpool(container.notifications.mark_read, state.identity.id, notification_id)
    except RecordNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=exc.message) from exc
