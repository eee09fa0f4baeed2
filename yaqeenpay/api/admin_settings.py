# yaqeenpay/api/admin_settings.py

from typing import Optional
from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session
from yaqeenpay.core.database import get_db
from yaqeenpay.core.core_auth import get_current_admin_user
from yaqeenpay.models.admin import AdminSettingsAudit
from yaqeenpay.models.user import User
from yaqeenpay.schemas.admin import SettingCreate, SettingUpdate
from yaqeenpay.services.admin_settings import AdminSettingsService
from yaqeenpay.api.utils import handle_operation_errors, \
    create_success_response, client_ip, log_admin_operation

router = APIRouter()


def _audit_to_dict(entry: AdminSettingsAudit):
    return {
        "id": entry.id,
        "setting_key": entry.setting_key,
        "category": entry.category.value,
        "old_value": entry.old_value,
        "new_value": entry.new_value,
        "change_type": entry.change_type,
        "changed_by_id": entry.changed_by_id,
        "changed_at": entry.changed_at.isoformat() if entry.changed_at else None,
        "ip_address": entry.ip_address,
        "notes": entry.notes
    }


@router.get("")
@handle_operation_errors("list settings")
async def list_settings(
        db: Session = Depends(get_db),
        current_user: User = Depends(get_current_admin_user)
):
    """Settings grouped by category; sensitive values are masked"""
    return create_success_response("admin_settings",
                                   AdminSettingsService.list_grouped(db),
                                   current_user.id)


@router.post("", status_code=status.HTTP_201_CREATED)
@handle_operation_errors("create setting")
async def create_setting(
        payload: SettingCreate,
        request: Request,
        db: Session = Depends(get_db),
        current_user: User = Depends(get_current_admin_user)
):
    setting = AdminSettingsService.create(
        db, current_user.id,
        setting_key=payload.setting_key,
        setting_value=payload.setting_value,
        data_type=payload.data_type,
        category=payload.category,
        description=payload.description,
        is_sensitive=payload.is_sensitive,
        default_value=payload.default_value,
        ip_address=client_ip(request),
        user_agent=request.headers.get("user-agent"),
        notes=payload.notes
    )
    log_admin_operation("create_setting", current_user.id, {
        "setting_key": setting.setting_key,
        "category": setting.category.value,
        "is_sensitive": setting.is_sensitive
    }, db, entity_type="admin_setting", entity_id=setting.setting_key)
    return create_success_response("setting_created",
                                   AdminSettingsService.to_dict(setting),
                                   current_user.id)


@router.put("/{setting_key}")
@handle_operation_errors("update setting")
async def update_setting(
        setting_key: str,
        payload: SettingUpdate,
        request: Request,
        db: Session = Depends(get_db),
        current_user: User = Depends(get_current_admin_user)
):
    setting = AdminSettingsService.update(
        db, current_user.id, setting_key,
        setting_value=payload.setting_value,
        notes=payload.notes,
        is_active=payload.is_active,
        ip_address=client_ip(request),
        user_agent=request.headers.get("user-agent")
    )
    log_admin_operation("update_setting", current_user.id, {
        "setting_key": setting.setting_key,
        "is_active": setting.is_active,
        "notes": payload.notes
    }, db, entity_type="admin_setting", entity_id=setting.setting_key)
    return create_success_response("setting_updated",
                                   AdminSettingsService.to_dict(setting),
                                   current_user.id)


@router.get("/audit")
@handle_operation_errors("get settings audit")
async def settings_audit(
        setting_key: Optional[str] = None,
        limit: int = Query(100, ge=1, le=500),
        db: Session = Depends(get_db),
        current_user: User = Depends(get_current_admin_user)
):
    entries = AdminSettingsService.audit_trail(db, setting_key, limit)
    return create_success_response("settings_audit",
                                   [_audit_to_dict(e) for e in entries],
                                   current_user.id)
