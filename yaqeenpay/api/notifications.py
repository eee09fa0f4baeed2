# yaqeenpay/api/notifications.py

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from yaqeenpay.core.database import get_db
from yaqeenpay.core.core_auth import get_current_user
from yaqeenpay.models.notification import Notification
from yaqeenpay.models.user import User
from yaqeenpay.schemas.marketplace import NotificationPreferencesUpdate
from yaqeenpay.services.notifications import NotificationService, \
    NotificationPreferenceService
from yaqeenpay.api.utils import handle_operation_errors, create_success_response

router = APIRouter()


def _to_dict(notification: Notification):
    return {
        "id": notification.id,
        "type": notification.notification_type,
        "title": notification.title,
        "message": notification.message,
        "reference_type": notification.reference_type,
        "reference_id": notification.reference_id,
        "is_read": notification.is_read,
        "read_at": notification.read_at.isoformat() if notification.read_at else None,
        "created_at": notification.created_at.isoformat() if notification.created_at else None
    }


@router.get("")
@handle_operation_errors("list notifications")
async def list_notifications(
        unread_only: bool = False,
        limit: int = Query(20, ge=1, le=100),
        offset: int = Query(0, ge=0),
        db: Session = Depends(get_db),
        current_user: User = Depends(get_current_user)
):
    result = NotificationService.list_for_user(db, current_user.id,
                                               unread_only, limit, offset)
    return create_success_response("notifications", {
        "items": [_to_dict(n) for n in result["items"]],
        "total": result["total"],
        "limit": limit,
        "offset": offset
    }, current_user.id)


@router.get("/unread-count")
@handle_operation_errors("count unread notifications")
async def unread_count(
        db: Session = Depends(get_db),
        current_user: User = Depends(get_current_user)
):
    return create_success_response(
        "unread_count",
        {"count": NotificationService.unread_count(db, current_user.id)},
        current_user.id)


@router.post("/read-all")
@handle_operation_errors("mark all notifications read")
async def mark_all_read(
        db: Session = Depends(get_db),
        current_user: User = Depends(get_current_user)
):
    updated = NotificationService.mark_all_read(db, current_user.id)
    return create_success_response("notifications_read", {"updated": updated},
                                   current_user.id)


@router.get("/preferences")
@handle_operation_errors("get notification preferences")
async def get_preferences(
        db: Session = Depends(get_db),
        current_user: User = Depends(get_current_user)
):
    return create_success_response(
        "notification_preferences",
        NotificationPreferenceService.get(db, current_user.id),
        current_user.id)


@router.put("/preferences")
@handle_operation_errors("update notification preferences")
async def update_preferences(
        payload: NotificationPreferencesUpdate,
        db: Session = Depends(get_db),
        current_user: User = Depends(get_current_user)
):
    preferences = NotificationPreferenceService.update(
        db, current_user.id,
        in_app_enabled=payload.in_app_enabled,
        email_enabled=payload.email_enabled,
        sms_enabled=payload.sms_enabled,
        types=payload.types
    )
    return create_success_response("notification_preferences_updated",
                                   preferences, current_user.id)


@router.post("/{notification_id}/read")
@handle_operation_errors("mark notification read")
async def mark_read(
        notification_id: int,
        db: Session = Depends(get_db),
        current_user: User = Depends(get_current_user)
):
    notification = NotificationService.mark_read(db, current_user.id,
                                                 notification_id)
    return create_success_response("notification_read",
                                   _to_dict(notification), current_user.id)
