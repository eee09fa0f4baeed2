# yaqeenpay/models/notification.py

import json
from datetime import datetime
from typing import Any, Dict
from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, \
    Text
from yaqeenpay.core.database import Base


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False,
                     index=True)
    notification_type = Column(String(64), nullable=False)
    title = Column(String(200), nullable=False)
    message = Column(Text, nullable=False)
    reference_type = Column(String(50), nullable=True)
    reference_id = Column(String(64), nullable=True)
    is_read = Column(Boolean, default=False, nullable=False, index=True)
    read_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class OutboxMessage(Base):
    __tablename__ = "outbox_messages"

    id = Column(Integer, primary_key=True, index=True)
    message_type = Column(String(64), nullable=False, index=True)
    payload = Column(Text, nullable=False)
    occurred_on = Column(DateTime, default=datetime.utcnow, nullable=False,
                         index=True)
    processed_on = Column(DateTime, nullable=True, index=True)
    error = Column(Text, nullable=True)
    retry_count = Column(Integer, default=0, nullable=False)

    @property
    def payload_dict(self) -> Dict[str, Any]:
        return json.loads(self.payload) if self.payload else {}


class NotificationPreference(Base):
    """Per-user delivery channels and topic switches; no row means defaults"""
    __tablename__ = "notification_preferences"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), unique=True,
                     nullable=False)
    in_app_enabled = Column(Boolean, default=True, nullable=False)
    email_enabled = Column(Boolean, default=True, nullable=False)
    sms_enabled = Column(Boolean, default=False, nullable=False)
    # JSON object of topic -> enabled
    type_preferences = Column(Text, nullable=False, default="{}")

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow,
                        onupdate=datetime.utcnow, nullable=False)

    @property
    def types_dict(self) -> Dict[str, bool]:
        return json.loads(self.type_preferences) if self.type_preferences else {}
