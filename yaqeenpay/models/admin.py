# yaqeenpay/models/admin.py

import enum
from datetime import datetime
from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, \
    Enum, Text
from sqlalchemy.sql import func
from yaqeenpay.core.database import Base


class SettingDataTypeEnum(enum.Enum):
    string = "string"
    int = "int"
    decimal = "decimal"
    bool = "bool"
    json = "json"


class SettingCategoryEnum(enum.Enum):
    general = "general"
    payment = "payment"
    escrow = "escrow"
    withdrawal = "withdrawal"
    security = "security"
    notification = "notification"


class AdminSystemSetting(Base):
    __tablename__ = "admin_system_settings"

    id = Column(Integer, primary_key=True, index=True)
    setting_key = Column(String(100), unique=True, index=True, nullable=False)
    setting_value = Column(Text, nullable=False)
    data_type = Column(Enum(SettingDataTypeEnum),
                       default=SettingDataTypeEnum.string, nullable=False)
    category = Column(Enum(SettingCategoryEnum),
                      default=SettingCategoryEnum.general, nullable=False)
    description = Column(Text, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    is_sensitive = Column(Boolean, default=False, nullable=False)
    default_value = Column(Text, nullable=True)
    modified_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, nullable=True)


class AdminSettingsAudit(Base):
    __tablename__ = "admin_settings_audit"

    id = Column(Integer, primary_key=True, index=True)
    setting_key = Column(String(100), nullable=False, index=True)
    category = Column(Enum(SettingCategoryEnum), nullable=False)
    old_value = Column(Text, nullable=True)
    new_value = Column(Text, nullable=True)
    change_type = Column(String(20), nullable=False)
    changed_by_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    changed_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    ip_address = Column(String(64), nullable=True)
    user_agent = Column(String(255), nullable=True)
    notes = Column(Text, nullable=True)


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True)
    admin_id = Column(Integer, ForeignKey("users.id"), nullable=False,
                      index=True)
    action = Column(String(100), nullable=False, index=True)
    entity_type = Column(String(50), nullable=True)
    entity_id = Column(String(64), nullable=True)
    details = Column(Text, nullable=True)  # JSON

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
