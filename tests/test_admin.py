# tests/test_admin.py

import pytest
from decimal import Decimal
from fastapi.testclient import TestClient
from yaqeenpay.core.exceptions import InsufficientFundsError, ValidationError
from yaqeenpay.models.admin import AuditLog
from yaqeenpay.models.user import KycStatusEnum, UserRoleEnum
from yaqeenpay.services.admin_service import AdminService
from yaqeenpay.services.ledger_service import LedgerService
from yaqeenpay.services.wallet_service import WalletService


class TestAdminService:
    """Test back-office operations"""

    def test_deactivate_and_activate(self, db, admin_user, buyer):
        """Test toggling a user's active flag"""
        user = AdminService.user_action(db, admin_user, buyer.id,
                                        "deactivate")
        assert user.is_active is False
        user = AdminService.user_action(db, admin_user, buyer.id, "activate")
        assert user.is_active is True

    def test_admin_cannot_deactivate_self(self, db, admin_user):
        """Test admins cannot lock themselves out"""
        with pytest.raises(ValidationError):
            AdminService.user_action(db, admin_user, admin_user.id,
                                     "deactivate")

    def test_change_role(self, db, admin_user, buyer):
        """Test promoting a user to admin sets the admin flag"""
        user = AdminService.user_action(db, admin_user, buyer.id,
                                        "changerole", UserRoleEnum.admin)
        assert user.role == UserRoleEnum.admin
        assert user.is_admin is True

    def test_unknown_action(self, db, admin_user, buyer):
        """Test unknown actions are rejected"""
        with pytest.raises(ValidationError):
            AdminService.user_action(db, admin_user, buyer.id, "delete")

    def test_adjust_wallet_credit_and_debit(self, db, admin_user, buyer):
        """Test manual corrections keep the ledger balanced"""
        AdminService.adjust_wallet(db, admin_user, buyer.id, "300.00",
                                   "credit", "Goodwill credit")
        result = AdminService.adjust_wallet(db, admin_user, buyer.id,
                                            "100.00", "debit",
                                            "Duplicate correction")

        assert result["balance"] == Decimal("200.00")
        assert LedgerService.reconcile_user(db, buyer.id)["balanced"] is True
        assert LedgerService.trial_balance(db)["balanced"] is True

    def test_adjust_wallet_debit_beyond_balance(self, db, admin_user, buyer):
        """Test debits cannot overdraw a wallet"""
        with pytest.raises(InsufficientFundsError):
            AdminService.adjust_wallet(db, admin_user, buyer.id, "1.00",
                                       "debit", "Overdraw")
        assert WalletService.get_wallet(db, buyer.id).balance == Decimal(
            "0.00")

    def test_stats(self, db, admin_user, buyer, seller, fund_wallet):
        """Test system statistics"""
        fund_wallet(buyer, "1000.00")
        stats = AdminService.stats(db)

        assert stats["users"]["total"] == 3
        assert stats["users"]["by_role"]["seller"] == 1
        assert stats["orders"]["total"] == 0
        assert stats["escrow_held"] == Decimal("0.00")
        assert stats["pending"]["top_ups"] == 0


class TestAdminAPI:
    """Test admin endpoints"""

    def test_requires_admin(self, client: TestClient, buyer_headers):
        """Test admin routes reject regular users"""
        response = client.get("/api/admin/users", headers=buyer_headers)
        assert response.status_code == 403
        assert response.json()["success"] is False

    def test_list_users_with_filters(self, client: TestClient, admin_headers,
                                     buyer, seller):
        """Test user listing filters"""
        data = client.get("/api/admin/users", params={"role": "seller"},
                          headers=admin_headers).json()["data"]
        assert data["total_count"] == 1
        assert data["items"][0]["username"] == "seller"

        data = client.get("/api/admin/users", params={"search": "buy"},
                          headers=admin_headers).json()["data"]
        assert [u["username"] for u in data["items"]] == ["buyer"]

    def test_user_action_is_audited(self, client: TestClient, db,
                                    admin_user, admin_headers, buyer):
        """Test user actions write an audit log entry"""
        response = client.post("/api/admin/users/action", json={
            "user_id": buyer.id,
            "action": "deactivate"
        }, headers=admin_headers)
        assert response.status_code == 200
        assert response.json()["data"]["is_active"] is False

        entry = db.query(AuditLog).filter(
            AuditLog.action == "user_action").first()
        assert entry.admin_id == admin_user.id
        assert entry.entity_id == str(buyer.id)

        logs = client.get("/api/admin/audit/logs",
                          headers=admin_headers).json()["data"]
        assert logs["items"][0]["details"]["action"] == "deactivate"

    def test_self_deactivation_refused(self, client: TestClient, admin_user,
                                       admin_headers):
        """Test the self guard over HTTP"""
        response = client.post("/api/admin/users/action", json={
            "user_id": admin_user.id,
            "action": "deactivate"
        }, headers=admin_headers)
        assert response.status_code == 400

    def test_ledger_adjust_and_reports(self, client: TestClient, buyer,
                                       admin_headers):
        """Test adjustment, trial balance and reconciliation endpoints"""
        response = client.post("/api/admin/ledger/adjust", json={
            "user_id": buyer.id,
            "amount": "750.00",
            "direction": "credit",
            "reason": "Bank deposit matched manually"
        }, headers=admin_headers)
        assert response.status_code == 200
        assert response.json()["data"]["balance"] == 750

        trial = client.get("/api/admin/ledger/trial-balance",
                           headers=admin_headers).json()["data"]
        assert trial["balanced"] is True
        assert trial["accounts"]["external_clearing"] == -750

        reconcile = client.get(f"/api/admin/ledger/reconcile/{buyer.id}",
                               headers=admin_headers).json()["data"]
        assert reconcile["balanced"] is True

    def test_ledger_adjust_bad_direction(self, client: TestClient, buyer,
                                         admin_headers):
        """Test direction must be credit or debit"""
        response = client.post("/api/admin/ledger/adjust", json={
            "user_id": buyer.id,
            "amount": "10.00",
            "direction": "sideways",
            "reason": "Testing"
        }, headers=admin_headers)
        assert response.status_code == 422
        assert response.json()["success"] is False

    def test_kyc_review(self, client: TestClient, db, buyer, buyer_headers,
                        admin_headers):
        """Test a submitted document is verified by an admin"""
        response = client.post("/api/users/kyc-documents", json={
            "document_type": "cnic",
            "document_url": "https://files/cnic-front.jpg",
            "document_number": "35202-1234567-1"
        }, headers=buyer_headers)
        assert response.status_code == 201
        document = response.json()["data"]

        pending = client.get("/api/admin/kyc/pending",
                             headers=admin_headers).json()["data"]
        assert [d["id"] for d in pending] == [document["id"]]

        response = client.post("/api/admin/kyc/verify", json={
            "document_id": document["id"],
            "status": "verified"
        }, headers=admin_headers)
        assert response.status_code == 200
        db.refresh(buyer)
        assert buyer.kyc_status == KycStatusEnum.verified

    def test_kyc_rejection(self, client: TestClient, db, buyer, buyer_headers,
                           admin_headers):
        """Test a rejected document marks the user rejected"""
        document = client.post("/api/users/kyc-documents", json={
            "document_type": "passport",
            "document_url": "https://files/passport.jpg"
        }, headers=buyer_headers).json()["data"]

        client.post("/api/admin/kyc/verify", json={
            "document_id": document["id"],
            "status": "rejected",
            "reason": "Blurry scan"
        }, headers=admin_headers)

        data = client.get("/api/users/kyc-documents",
                          headers=buyer_headers).json()["data"]
        assert data["kyc_status"] == "rejected"
        assert data["documents"][0]["rejection_reason"] == "Blurry scan"

    def test_seller_approval_sets_role(self, client: TestClient, db, buyer,
                                       buyer_headers, admin_headers):
        """Test approving a business profile makes the user a seller"""
        response = client.post("/api/users/seller-profile", json={
            "business_name": "Lahore Leather Co",
            "business_type": "retail"
        }, headers=buyer_headers)
        assert response.status_code == 200
        profile = response.json()["data"]
        assert profile["verification_status"] == "pending"

        response = client.post("/api/admin/sellers/review", json={
            "profile_id": profile["id"],
            "approve": True
        }, headers=admin_headers)
        assert response.status_code == 200
        assert response.json()["data"]["verification_status"] == "verified"
        db.refresh(buyer)
        assert buyer.role == UserRoleEnum.seller

    def test_seller_rejection_needs_reason(self, client: TestClient, buyer,
                                           buyer_headers, admin_headers):
        """Test a rejection must say why"""
        profile = client.post("/api/users/seller-profile", json={
            "business_name": "Shop"
        }, headers=buyer_headers).json()["data"]

        response = client.post("/api/admin/sellers/review", json={
            "profile_id": profile["id"],
            "approve": False
        }, headers=admin_headers)
        assert response.status_code == 400

    def test_stats_endpoint(self, client: TestClient, admin_headers):
        """Test the stats endpoint responds"""
        response = client.get("/api/admin/stats", headers=admin_headers)
        assert response.status_code == 200
        assert response.json()["data"]["users"]["total"] == 1
