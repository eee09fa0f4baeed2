# tests/test_admin_settings.py

import pytest
from decimal import Decimal
from fastapi.testclient import TestClient
from yaqeenpay.core.exceptions import NotFoundError, ValidationError
from yaqeenpay.models.admin import AdminSettingsAudit, AuditLog, \
    SettingCategoryEnum, SettingDataTypeEnum
from yaqeenpay.services.admin_settings import AdminSettingsService, MASK


class TestAdminSettingsService:
    """Test runtime settings"""

    def test_create_and_typed_value(self, db, admin_user):
        """Test values are stored as text and read back typed"""
        AdminSettingsService.create(db, admin_user.id, "escrow.fee_rate",
                                    "0.04", SettingDataTypeEnum.decimal,
                                    SettingCategoryEnum.escrow)
        assert AdminSettingsService.get_value(db, "escrow.fee_rate") == \
            Decimal("0.04")
        assert AdminSettingsService.get_value(db, "missing", 7) == 7

    def test_duplicate_key(self, db, admin_user):
        """Test keys are unique"""
        AdminSettingsService.create(db, admin_user.id, "general.motd", "Hi")
        with pytest.raises(ValidationError):
            AdminSettingsService.create(db, admin_user.id, "general.motd", "Yo")

    @pytest.mark.parametrize("data_type,value", [
        (SettingDataTypeEnum.int, "ten"),
        (SettingDataTypeEnum.decimal, "1,5"),
        (SettingDataTypeEnum.decimal, "NaN"),
        (SettingDataTypeEnum.decimal, "Infinity"),
        (SettingDataTypeEnum.bool, "yes"),
        (SettingDataTypeEnum.json, "{bad"),
    ])
    def test_invalid_values(self, db, admin_user, data_type, value):
        """Test values must match their data type"""
        with pytest.raises(ValidationError):
            AdminSettingsService.create(db, admin_user.id, "some.key", value,
                                        data_type)

    def test_update_writes_audit(self, db, admin_user):
        """Test every change is audited"""
        AdminSettingsService.create(db, admin_user.id, "withdrawal.enabled",
                                    "true", SettingDataTypeEnum.bool,
                                    SettingCategoryEnum.withdrawal)
        AdminSettingsService.update(db, admin_user.id, "withdrawal.enabled",
                                    "false", notes="Maintenance")

        assert AdminSettingsService.get_value(db, "withdrawal.enabled") is False
        trail = AdminSettingsService.audit_trail(db, "withdrawal.enabled")
        assert [e.change_type for e in trail] == ["Updated", "Created"]
        assert trail[0].old_value == "true"
        assert trail[0].notes == "Maintenance"

    def test_update_missing(self, db, admin_user):
        """Test updating an unknown key"""
        with pytest.raises(NotFoundError):
            AdminSettingsService.update(db, admin_user.id, "nope", "1")

    def test_inactive_setting_uses_default(self, db, admin_user):
        """Test deactivated settings fall back to the default"""
        AdminSettingsService.create(db, admin_user.id, "escrow.fee_rate",
                                    "0.10", SettingDataTypeEnum.decimal,
                                    SettingCategoryEnum.escrow)
        AdminSettingsService.update(db, admin_user.id, "escrow.fee_rate",
                                    "0.10", is_active=False)
        assert AdminSettingsService.get_value(db, "escrow.fee_rate",
                                              "fallback") == "fallback"

    def test_sensitive_values_masked(self, db, admin_user):
        """Test sensitive values never leave the service or the audit"""
        setting = AdminSettingsService.create(
            db, admin_user.id, "notification.sms_token", "s3cret",
            category=SettingCategoryEnum.notification, is_sensitive=True)

        assert AdminSettingsService.to_dict(setting)["setting_value"] == MASK
        entry = db.query(AdminSettingsAudit).first()
        assert entry.new_value == MASK
        assert AdminSettingsService.get_value(
            db, "notification.sms_token") == "s3cret"


class TestAdminSettingsAPI:
    """Test settings endpoints"""

    def test_requires_admin(self, client: TestClient, buyer_headers):
        """Test regular users cannot read settings"""
        response = client.get("/api/admin/settings", headers=buyer_headers)
        assert response.status_code == 403

    def test_create_list_update_audit(self, client: TestClient,
                                      admin_headers):
        """Test the settings round through the API"""
        response = client.post("/api/admin/settings", json={
            "setting_key": "escrow.fee_rate",
            "setting_value": "0.05",
            "data_type": "decimal",
            "category": "escrow",
            "description": "Platform fee on released escrow"
        }, headers=admin_headers)
        assert response.status_code == 201

        groups = client.get("/api/admin/settings",
                            headers=admin_headers).json()["data"]
        assert [g["category"] for g in groups] == ["escrow"]
        assert groups[0]["settings"][0]["setting_value"] == "0.05"

        response = client.put("/api/admin/settings/escrow.fee_rate", json={
            "setting_value": "0.06",
            "notes": "Promo over"
        }, headers=admin_headers)
        assert response.status_code == 200
        assert response.json()["data"]["setting_value"] == "0.06"

        audit = client.get("/api/admin/settings/audit",
                           params={"setting_key": "escrow.fee_rate"},
                           headers=admin_headers).json()["data"]
        assert len(audit) == 2
        assert audit[0]["new_value"] == "0.06"

    def test_invalid_value_rejected(self, client: TestClient, admin_headers):
        """Test a bad typed value gets a 400"""
        response = client.post("/api/admin/settings", json={
            "setting_key": "payment.max_topup",
            "setting_value": "lots",
            "data_type": "int"
        }, headers=admin_headers)
        assert response.status_code == 400

    def test_changes_written_to_admin_audit_log(self, client: TestClient, db,
                                                admin_user, admin_headers):
        """Test create and update each leave an admin audit entry"""
        client.post("/api/admin/settings", json={
            "setting_key": "notification.sms_token",
            "setting_value": "s3cret",
            "category": "notification",
            "is_sensitive": True
        }, headers=admin_headers)
        client.put("/api/admin/settings/notification.sms_token", json={
            "setting_value": "rotated"
        }, headers=admin_headers)

        entries = db.query(AuditLog).filter(
            AuditLog.entity_type == "admin_setting").order_by(
            AuditLog.id).all()
        assert [e.action for e in entries] == ["create_setting",
                                               "update_setting"]
        assert entries[0].admin_id == admin_user.id
        assert entries[0].entity_id == "notification.sms_token"
        assert "s3cret" not in entries[0].details
        assert "rotated" not in entries[1].details
