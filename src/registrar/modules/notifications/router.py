"""
Notifications Router

Endpoints for the signed-in user's notifications and the real-time socket.

Endpoints:
- GET /notifications - List own notifications
- GET /notifications/unread-count - Unread count
- POST /notifications/{id}/read - Mark one as read
- POST /notifications/read-all - Mark all as read
- WS /notifications/ws?token=... - Real-time delivery
"""

import logging

from fastapi import (
    APIRouter,
    Depends,
    HTTPException,
    Query,
    Request,
    WebSocket,
    status,
)
from sqlalchemy.ext.asyncio import AsyncSession

from registrar.core.auth import CurrentUser, get_current_user, user_from_token
from registrar.core.database import get_db

from . import repository
from .dispatcher import NotificationDispatcher
from .schemas import MarkReadResponse, NotificationListResponse, NotificationResponse

logger = logging.getLogger(__name__)

router = APIRouter()


def get_notification_dispatcher(request: Request) -> NotificationDispatcher:
    """FastAPI dependency wiring the dispatcher to the app's connection registry."""
    return NotificationDispatcher(getattr(request.app.state, "connection_registry", None))


@router.get("", response_model=NotificationListResponse)
async def list_notifications(
    unread_only: bool = Query(False),
    skip: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
) -> NotificationListResponse:
    notifications, total = await repository.list_for_user(
        db, user.id, unread_only=unread_only, skip=skip, limit=limit
    )
    unread = await repository.count_unread(db, user.id)
    return NotificationListResponse(
        notifications=[NotificationResponse.model_validate(n) for n in notifications],
        total=total,
        unread_count=unread,
        skip=skip,
        limit=limit,
    )


@router.get("/unread-count")
async def unread_count(
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
) -> dict[str, int]:
    return {"unread_count": await repository.count_unread(db, user.id)}


@router.post("/{notification_id}/read", response_model=MarkReadResponse)
async def mark_read(
    notification_id: int,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
) -> MarkReadResponse:
    if not await repository.mark_as_read(db, notification_id, user.id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"error": "NOT_FOUND", "message": "Notification not found"},
        )
    return MarkReadResponse(updated=1)


@router.post("/read-all", response_model=MarkReadResponse)
async def mark_all_read(
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
) -> MarkReadResponse:
    return MarkReadResponse(updated=await repository.mark_all_as_read(db, user.id))


@router.websocket("/ws")
async def notifications_socket(websocket: WebSocket, token: str = Query(...)) -> None:
    """Authenticate with ?token= and receive ``newNotification`` events."""
    try:
        user = user_from_token(token)
    except HTTPException:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    registry = websocket.app.state.connection_registry
    await registry.serve(user.id, websocket)
