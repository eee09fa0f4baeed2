# yaqeenpay/services/admin_settings.py

import json
import logging
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional
from sqlalchemy.orm import Session
from yaqeenpay.core.exceptions import ValidationError, NotFoundError
from yaqeenpay.models.admin import AdminSystemSetting, AdminSettingsAudit, \
    SettingDataTypeEnum, SettingCategoryEnum

logger = logging.getLogger(__name__)

MASK = "***MASKED***"

CATEGORY_DESCRIPTIONS = {
    SettingCategoryEnum.general: "General platform behaviour",
    SettingCategoryEnum.payment: "Top-up channels and payment limits",
    SettingCategoryEnum.escrow: "Escrow fees and order timings",
    SettingCategoryEnum.withdrawal: "Withdrawal limits and fees",
    SettingCategoryEnum.security: "Authentication and security",
    SettingCategoryEnum.notification: "Notification delivery",
}


class AdminSettingsService:
    """Runtime settings managed by admins, with an audit trail"""

    @staticmethod
    def validate_value(value: str, data_type: SettingDataTypeEnum) -> List[str]:
        errors = []
        if data_type == SettingDataTypeEnum.int:
            try:
                int(value)
            except ValueError:
                errors.append("Value must be a valid integer.")
        elif data_type == SettingDataTypeEnum.decimal:
            try:
                if not Decimal(value).is_finite():
                    errors.append("Value must be a finite decimal number.")
            except InvalidOperation:
                errors.append("Value must be a valid decimal number.")
        elif data_type == SettingDataTypeEnum.bool:
            if value.strip().lower() not in ("true", "false"):
                errors.append("Value must be true or false.")
        elif data_type == SettingDataTypeEnum.json:
            try:
                json.loads(value)
            except ValueError:
                errors.append("Value must be valid JSON.")
        return errors

    @staticmethod
    def parse_value(value: str, data_type: SettingDataTypeEnum) -> Any:
        if data_type == SettingDataTypeEnum.int:
            return int(value)
        if data_type == SettingDataTypeEnum.decimal:
            return Decimal(value)
        if data_type == SettingDataTypeEnum.bool:
            return value.strip().lower() == "true"
        if data_type == SettingDataTypeEnum.json:
            return json.loads(value)
        return value

    @staticmethod
    def to_dict(setting: AdminSystemSetting) -> Dict[str, Any]:
        return {
            "id": setting.id,
            "setting_key": setting.setting_key,
            "setting_value": MASK if setting.is_sensitive else setting.setting_value,
            "data_type": setting.data_type.value,
            "category": setting.category.value,
            "description": setting.description,
            "is_active": setting.is_active,
            "is_sensitive": setting.is_sensitive,
            "default_value": setting.default_value,
            "modified_by_id": setting.modified_by_id,
            "created_at": setting.created_at.isoformat() if setting.created_at else None,
            "updated_at": setting.updated_at.isoformat() if setting.updated_at else None
        }

    @staticmethod
    def _audit(db: Session, setting: AdminSystemSetting, change_type: str,
               old_value: Optional[str], new_value: Optional[str],
               admin_id: int, ip_address: Optional[str],
               user_agent: Optional[str], notes: Optional[str]) -> None:
        db.add(AdminSettingsAudit(
            setting_key=setting.setting_key,
            category=setting.category,
            old_value=MASK if setting.is_sensitive and old_value is not None else old_value,
            new_value=MASK if setting.is_sensitive else new_value,
            change_type=change_type,
            changed_by_id=admin_id,
            ip_address=ip_address,
            user_agent=(user_agent or "")[:255] or None,
            notes=notes
        ))

    @staticmethod
    def create(
            db: Session,
            admin_id: int,
            setting_key: str,
            setting_value: str,
            data_type: SettingDataTypeEnum = SettingDataTypeEnum.string,
            category: SettingCategoryEnum = SettingCategoryEnum.general,
            description: Optional[str] = None,
            is_sensitive: bool = False,
            default_value: Optional[str] = None,
            ip_address: Optional[str] = None,
            user_agent: Optional[str] = None,
            notes: Optional[str] = None
    ) -> AdminSystemSetting:
        existing = db.query(AdminSystemSetting).filter(
            AdminSystemSetting.setting_key == setting_key).first()
        if existing:
            raise ValidationError(
                f"Setting with key '{setting_key}' already exists.")

        errors = AdminSettingsService.validate_value(setting_value, data_type)
        if errors:
            raise ValidationError("Invalid setting value. " + " ".join(errors))

        setting = AdminSystemSetting(
            setting_key=setting_key,
            setting_value=setting_value,
            data_type=data_type,
            category=category,
            description=description,
            is_active=True,
            is_sensitive=is_sensitive,
            default_value=default_value,
            modified_by_id=admin_id
        )
        db.add(setting)
        db.flush()
        AdminSettingsService._audit(db, setting, "Created", None,
                                    setting_value, admin_id, ip_address,
                                    user_agent, notes)
        db.commit()
        db.refresh(setting)

        logger.info(f"Admin setting created: {setting_key} by user {admin_id}")
        return setting

    @staticmethod
    def update(
            db: Session,
            admin_id: int,
            setting_key: str,
            setting_value: str,
            notes: Optional[str] = None,
            is_active: Optional[bool] = None,
            ip_address: Optional[str] = None,
            user_agent: Optional[str] = None
    ) -> AdminSystemSetting:
        setting = db.query(AdminSystemSetting).filter(
            AdminSystemSetting.setting_key == setting_key).first()
        if not setting:
            raise NotFoundError(f"Setting with key '{setting_key}' not found.")

        errors = AdminSettingsService.validate_value(setting_value,
                                                     setting.data_type)
        if errors:
            raise ValidationError("Invalid setting value. " + " ".join(errors))

        old_value = setting.setting_value
        setting.setting_value = setting_value
        setting.updated_at = datetime.utcnow()
        setting.modified_by_id = admin_id
        if is_active is not None:
            setting.is_active = is_active

        AdminSettingsService._audit(db, setting, "Updated", old_value,
                                    setting_value, admin_id, ip_address,
                                    user_agent, notes)
        db.commit()
        db.refresh(setting)

        logger.info(f"Admin setting updated: {setting_key} by user {admin_id}")
        return setting

    @staticmethod
    def list_grouped(db: Session) -> List[Dict[str, Any]]:
        settings_rows = db.query(AdminSystemSetting).order_by(
            AdminSystemSetting.category, AdminSystemSetting.setting_key).all()

        groups = []
        for category in SettingCategoryEnum:
            items = [AdminSettingsService.to_dict(s) for s in settings_rows
                     if s.category == category]
            if not items:
                continue
            groups.append({
                "category": category.value,
                "category_name": category.value.title(),
                "category_description": CATEGORY_DESCRIPTIONS[category],
                "settings": items
            })
        return groups

    @staticmethod
    def get_value(db: Session, setting_key: str, default: Any = None) -> Any:
        """Typed value of an active setting, or default"""
        setting = db.query(AdminSystemSetting).filter(
            AdminSystemSetting.setting_key == setting_key,
            AdminSystemSetting.is_active.is_(True)
        ).first()
        if not setting:
            return default
        try:
            return AdminSettingsService.parse_value(setting.setting_value,
                                                    setting.data_type)
        except (ValueError, InvalidOperation) as e:
            logger.error(f"Stored setting {setting_key} is unreadable: {e}")
            return default

    @staticmethod
    def audit_trail(db: Session, setting_key: Optional[str] = None,
                    limit: int = 100) -> List[AdminSettingsAudit]:
        query = db.query(AdminSettingsAudit)
        if setting_key:
            query = query.filter(AdminSettingsAudit.setting_key == setting_key)
        return query.order_by(AdminSettingsAudit.changed_at.desc(),
                              AdminSettingsAudit.id.desc()).limit(limit).all()
