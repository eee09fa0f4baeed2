# yaqeenpay/services/notifications.py

import json
import logging
from datetime import datetime
from typing import Optional, Dict, Any
from sqlalchemy.orm import Session
from yaqeenpay.core.exceptions import NotFoundError, ValidationError
from yaqeenpay.models.notification import Notification, \
    NotificationPreference

logger = logging.getLogger(__name__)


class NotificationService:

    @staticmethod
    def create(db: Session, user_id: int, notification_type: str, title: str,
               message: str, reference_type: Optional[str] = None,
               reference_id: Optional[Any] = None) -> Notification:
        notification = Notification(
            user_id=user_id,
            notification_type=notification_type,
            title=title,
            message=message,
            reference_type=reference_type,
            reference_id=str(reference_id) if reference_id is not None else None,
            is_read=False
        )
        db.add(notification)
        db.flush()
        return notification

    @staticmethod
    def list_for_user(db: Session, user_id: int, unread_only: bool = False,
                      limit: int = 20, offset: int = 0) -> Dict[str, Any]:
        query = db.query(Notification).filter(Notification.user_id == user_id)
        if unread_only:
            query = query.filter(Notification.is_read.is_(False))
        total = query.count()
        items = query.order_by(Notification.created_at.desc(),
                               Notification.id.desc()).offset(offset).limit(
            limit).all()
        return {"items": items, "total": total}

    @staticmethod
    def unread_count(db: Session, user_id: int) -> int:
        return db.query(Notification).filter(
            Notification.user_id == user_id,
            Notification.is_read.is_(False)
        ).count()

    @staticmethod
    def mark_read(db: Session, user_id: int, notification_id: int) -> Notification:
        notification = db.query(Notification).filter(
            Notification.id == notification_id,
            Notification.user_id == user_id
        ).first()
        if not notification:
            raise NotFoundError("Notification not found")
        if not notification.is_read:
            notification.is_read = True
            notification.read_at = datetime.utcnow()
            db.commit()
        return notification

    @staticmethod
    def mark_all_read(db: Session, user_id: int) -> int:
        updated = db.query(Notification).filter(
            Notification.user_id == user_id,
            Notification.is_read.is_(False)
        ).update({"is_read": True, "read_at": datetime.utcnow()},
                 synchronize_session=False)
        db.commit()
        logger.info(f"Marked {updated} notifications read for user {user_id}")
        return updated


# topic -> default switch for users without a preference row
DEFAULT_TYPE_PREFERENCES = {
    "order": True,
    "dispute": True,
    "wallet": True,
    "system": True,
    "promotion": False,
}

CHANNELS = ("in_app", "email", "sms")


def topic_for(message_type: str) -> str:
    if message_type.startswith("Dispute"):
        return "dispute"
    if message_type.startswith("Order"):
        return "order"
    if message_type.startswith(("Withdrawal", "TopUp")):
        return "wallet"
    return "system"


class NotificationPreferenceService:

    @staticmethod
    def to_dict(preference: Optional[NotificationPreference]) -> Dict[str, Any]:
        types = dict(DEFAULT_TYPE_PREFERENCES)
        if preference is None:
            return {"in_app_enabled": True, "email_enabled": True,
                    "sms_enabled": False, "types": types}
        types.update(preference.types_dict)
        return {
            "in_app_enabled": preference.in_app_enabled,
            "email_enabled": preference.email_enabled,
            "sms_enabled": preference.sms_enabled,
            "types": types
        }

    @staticmethod
    def get(db: Session, user_id: int) -> Dict[str, Any]:
        preference = db.query(NotificationPreference).filter(
            NotificationPreference.user_id == user_id).first()
        return NotificationPreferenceService.to_dict(preference)

    @staticmethod
    def update(db: Session, user_id: int,
               in_app_enabled: Optional[bool] = None,
               email_enabled: Optional[bool] = None,
               sms_enabled: Optional[bool] = None,
               types: Optional[Dict[str, bool]] = None) -> Dict[str, Any]:
        """Partial update; fields left as None keep their current value"""
        if types:
            unknown = sorted(set(types) - set(DEFAULT_TYPE_PREFERENCES))
            if unknown:
                raise ValidationError(
                    f"Unknown notification types: {', '.join(unknown)}")

        preference = db.query(NotificationPreference).filter(
            NotificationPreference.user_id == user_id).first()
        if preference is None:
            preference = NotificationPreference(
                user_id=user_id, in_app_enabled=True, email_enabled=True,
                sms_enabled=False, type_preferences="{}")
            db.add(preference)

        if in_app_enabled is not None:
            preference.in_app_enabled = in_app_enabled
        if email_enabled is not None:
            preference.email_enabled = email_enabled
        if sms_enabled is not None:
            preference.sms_enabled = sms_enabled
        if types:
            merged = preference.types_dict
            merged.update(types)
            preference.type_preferences = json.dumps(merged, sort_keys=True)

        db.commit()
        db.refresh(preference)
        logger.info(f"Notification preferences updated for user {user_id}")
        return NotificationPreferenceService.to_dict(preference)

    @staticmethod
    def allows(db: Session, user_id: int, channel: str,
               message_type: str) -> bool:
        if channel not in CHANNELS:
            raise ValueError(f"Unknown notification channel {channel}")
        preferences = NotificationPreferenceService.get(db, user_id)
        if not preferences[f"{channel}_enabled"]:
            return False
        return preferences["types"].get(topic_for(message_type), True)
