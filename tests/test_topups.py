# tests/test_topups.py

import pytest
from datetime import datetime, timedelta
from decimal import Decimal
from fastapi.testclient import TestClient
from yaqeenpay.core.config import settings
from yaqeenpay.core.exceptions import ValidationError, InvalidStateError, \
    PermissionDeniedError
from yaqeenpay.models.notification import OutboxMessage
from yaqeenpay.models.topup import TopUp, TopUpChannelEnum, TopUpStatusEnum, \
    TopupLockStatusEnum, WalletTopupLock
from yaqeenpay.services.ledger_service import LedgerService
from yaqeenpay.services.topup_service import TopUpService, TopupLockService
from yaqeenpay.services.wallet_service import WalletService


class TestTopUpService:
    """Test manual wallet top-ups"""

    def test_confirm_credits_wallet_once(self, db, buyer):
        """Test confirming twice credits the wallet once"""
        top_up = TopUpService.initiate(db, buyer, "1000.00",
                                       TopUpChannelEnum.easypaisa, "EP-1")
        TopUpService.confirm(db, top_up.id)
        TopUpService.confirm(db, top_up.id)

        wallet = WalletService.get_wallet(db, buyer.id)
        assert wallet.balance == Decimal("1000.00")
        assert len(wallet.transactions) == 1
        assert LedgerService.reconcile_user(db, buyer.id)["balanced"] is True

    def test_confirm_emits_notification_event(self, db, buyer):
        """Test a confirmed top-up queues an outbox message"""
        top_up = TopUpService.initiate(db, buyer, "500.00",
                                       TopUpChannelEnum.jazzcash)
        TopUpService.confirm(db, top_up.id)

        message = db.query(OutboxMessage).first()
        assert message is not None
        assert message.message_type == "TopUpConfirmed"
        assert message.payload_dict["user_id"] == buyer.id

    def test_repeated_reference_returns_existing(self, db, buyer):
        """Test the same user and reference is idempotent"""
        first = TopUpService.initiate(db, buyer, "1000.00",
                                      TopUpChannelEnum.jazzcash, "JC-42")
        second = TopUpService.initiate(db, buyer, "1000.00",
                                       TopUpChannelEnum.jazzcash, " JC-42 ")
        assert first.id == second.id
        assert db.query(TopUp).count() == 1

    def test_reference_of_other_user_rejected(self, db, buyer, seller):
        """Test another user's reference cannot be reused"""
        TopUpService.initiate(db, buyer, "1000.00",
                              TopUpChannelEnum.jazzcash, "JC-77")
        with pytest.raises(ValidationError):
            TopUpService.initiate(db, seller, "1000.00",
                                  TopUpChannelEnum.jazzcash, "JC-77")

    def test_amount_limits(self, db, buyer):
        """Test amounts outside the configured range are refused"""
        with pytest.raises(ValidationError):
            TopUpService.initiate(db, buyer, "99.99",
                                  TopUpChannelEnum.jazzcash)
        with pytest.raises(ValidationError):
            TopUpService.initiate(db, buyer, "500000.01",
                                  TopUpChannelEnum.jazzcash)

    def test_cancel_only_initiated(self, db, buyer, fund_wallet):
        """Test confirmed top-ups cannot be cancelled"""
        top_up = fund_wallet(buyer, "200.00")
        with pytest.raises(InvalidStateError):
            TopUpService.cancel(db, top_up.id, buyer)

    def test_cancel_by_other_user(self, db, buyer, seller):
        """Test users can only cancel their own top-ups"""
        top_up = TopUpService.initiate(db, buyer, "200.00",
                                       TopUpChannelEnum.jazzcash)
        with pytest.raises(PermissionDeniedError):
            TopUpService.cancel(db, top_up.id, seller)

    def test_failed_top_up_cannot_be_confirmed(self, db, buyer):
        """Test a failed top-up stays failed"""
        top_up = TopUpService.initiate(db, buyer, "200.00",
                                       TopUpChannelEnum.bank_transfer)
        TopUpService.fail(db, top_up.id, "not received")
        with pytest.raises(InvalidStateError):
            TopUpService.confirm(db, top_up.id)


class TestTopupLockService:
    """Test amount-matched QR top-up locks"""

    def test_lock_reference_format(self, db, buyer):
        """Test lock reference and expiry window"""
        now = datetime(2024, 5, 1, 12, 0, 0)
        lock = TopupLockService.create_lock(db, buyer, "1000.00", now=now)

        assert lock.transaction_reference.startswith("WTU20240501120000")
        assert len(lock.transaction_reference) == len("WTU20240501120000") + 4
        assert lock.expires_at - lock.locked_at <= timedelta(minutes=2)
        assert lock.status == TopupLockStatusEnum.locked

    def test_amount_bumped_when_held_by_other_user(self, db, buyer, seller):
        """Test a second user gets the next whole amount"""
        now = datetime.utcnow()
        first = TopupLockService.create_lock(db, buyer, "1000.00", now=now)
        second = TopupLockService.create_lock(db, seller, "1000.00", now=now)

        assert first.amount == Decimal("1000.00")
        assert second.amount == Decimal("1001.00")

    def test_bump_cannot_exceed_maximum(self, db, buyer, seller):
        """Test a bumped amount still has to respect the top-up limit"""
        now = datetime.utcnow()
        TopupLockService.create_lock(db, seller, "500000.00", now=now)

        with pytest.raises(ValidationError):
            TopupLockService.create_lock(db, buyer, "500000.00", now=now)
        assert db.query(WalletTopupLock).filter(
            WalletTopupLock.user_id == buyer.id).count() == 0

    def test_new_lock_expires_own_previous_lock(self, db, buyer):
        """Test a user holds at most one active lock"""
        now = datetime.utcnow()
        first = TopupLockService.create_lock(db, buyer, "1000.00", now=now)
        second = TopupLockService.create_lock(db, buyer, "1000.00", now=now)
        db.refresh(first)

        assert first.status == TopupLockStatusEnum.expired
        assert second.amount == Decimal("1000.00")
        assert db.query(WalletTopupLock).filter(
            WalletTopupLock.status == TopupLockStatusEnum.locked).count() == 1

    def test_verify_and_complete(self, db, buyer):
        """Test a matching payment completes the lock and credits once"""
        lock = TopupLockService.create_lock(db, buyer, "750.00")
        top_up = TopupLockService.verify_and_complete(
            db, lock.transaction_reference, "750.00")

        assert top_up.status == TopUpStatusEnum.confirmed
        assert top_up.channel == TopUpChannelEnum.qr
        db.refresh(lock)
        assert lock.status == TopupLockStatusEnum.completed
        assert lock.top_up_id == top_up.id

        again = TopupLockService.verify_and_complete(
            db, lock.transaction_reference, "750.00")
        assert again is None
        assert WalletService.get_wallet(db, buyer.id).balance == Decimal(
            "750.00")

    def test_expired_lock_not_matched(self, db, buyer):
        """Test payments after expiry are not matched"""
        past = datetime.utcnow() - timedelta(minutes=10)
        lock = TopupLockService.create_lock(db, buyer, "600.00", now=past)

        assert TopupLockService.verify_and_complete(
            db, lock.transaction_reference, "600.00") is None

    def test_cleanup_expired(self, db, buyer):
        """Test stale locks are expired by cleanup"""
        past = datetime.utcnow() - timedelta(minutes=10)
        TopupLockService.create_lock(db, buyer, "600.00", now=past)

        assert TopupLockService.cleanup_expired(db) == 1


class TestTopUpAPI:
    """Test top-up endpoints"""

    def test_initiate_and_report_paid(self, client: TestClient, buyer_headers):
        """Test user flow up to pending confirmation"""
        response = client.post("/api/wallets/top-up", json={
            "amount": "2500.00",
            "channel": "jazzcash"
        }, headers=buyer_headers)
        assert response.status_code == 200
        top_up = response.json()["data"]
        assert top_up["status"] == "initiated"

        response = client.post(f"/api/wallets/top-up/{top_up['id']}/confirm",
                               json={"external_reference": "JC-9001"},
                               headers=buyer_headers)
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["status"] == "pending_confirmation"
        assert data["external_reference"] == "JC-9001"

    def test_qr_channel_rejected(self, client: TestClient, buyer_headers):
        """Test QR top-ups must go through a lock"""
        response = client.post("/api/wallets/top-up", json={
            "amount": "1000.00",
            "channel": "qr"
        }, headers=buyer_headers)
        assert response.status_code == 422

    def test_submit_proof(self, client: TestClient, buyer_headers):
        """Test proof moves the top-up to pending confirmation"""
        top_up = client.post("/api/wallets/top-up", json={
            "amount": "1000.00",
            "channel": "bank_transfer"
        }, headers=buyer_headers).json()["data"]

        response = client.post(f"/api/wallets/top-up/{top_up['id']}/proof",
                               json={"file_url": "https://files/receipt.png"},
                               headers=buyer_headers)
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["status"] == "pending_confirmation"
        assert len(data["proofs"]) == 1

    def test_admin_review_paid(self, client: TestClient, buyer, buyer_headers,
                               admin_headers):
        """Test admin marking a top-up paid credits the wallet"""
        top_up = client.post("/api/wallets/top-up", json={
            "amount": "1200.00",
            "channel": "easypaisa"
        }, headers=buyer_headers).json()["data"]

        response = client.post("/api/admin/topups/review", json={
            "top_up_id": top_up["id"],
            "status": "paid"
        }, headers=admin_headers)
        assert response.status_code == 200
        assert response.json()["data"]["status"] == "confirmed"

        balance = client.get("/api/wallets/balance",
                             headers=buyer_headers).json()["data"]
        assert balance["balance"] == 1200

    def test_admin_review_requires_admin(self, client: TestClient,
                                         buyer_headers):
        """Test non-admins cannot review top-ups"""
        response = client.post("/api/admin/topups/review", json={
            "top_up_id": 1,
            "status": "paid"
        }, headers=buyer_headers)
        assert response.status_code == 403

    def test_lock_endpoint(self, client: TestClient, buyer_headers):
        """Test creating and reading a lock"""
        response = client.post("/api/wallets/topup-lock",
                               json={"amount": "1500"},
                               headers=buyer_headers)
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["amount_adjusted"] is False
        assert data["transaction_reference"].startswith("WTU")

        response = client.get(
            f"/api/wallets/topup-lock/{data['transaction_reference']}",
            headers=buyer_headers)
        assert response.json()["data"]["status"] == "locked"


class TestBankSmsWebhook:
    """Test the bank SMS webhook"""

    def test_rejects_missing_secret(self, client: TestClient):
        """Test webhook requires the shared secret"""
        response = client.post("/api/webhooks/bank-sms",
                               json={"amount": "1000.00"})
        assert response.status_code == 401
        assert response.json()["message"] == "Invalid webhook secret"

    def test_rejects_wrong_secret(self, client: TestClient):
        """Test webhook with a wrong secret"""
        response = client.post("/api/webhooks/bank-sms",
                               json={"amount": "1000.00"},
                               headers={"X-Webhook-Secret": "nope"})
        assert response.status_code == 401

    def test_matching_sms_credits_wallet(self, client: TestClient, db, buyer,
                                         buyer_headers):
        """Test a matching bank SMS completes the lock"""
        lock = client.post("/api/wallets/topup-lock", json={"amount": "900"},
                           headers=buyer_headers).json()["data"]

        response = client.post("/api/webhooks/bank-sms", json={
            "sender": "8558",
            "message": "PKR 900.00 received",
            "amount": "900.00",
            "reference": lock["transaction_reference"]
        }, headers={"X-Webhook-Secret": settings.WEBHOOK_SECRET})
        assert response.status_code == 200
        body = response.json()
        assert body["message"] == "Payment matched"
        assert body["data"]["processed"] is True

        balance = client.get("/api/wallets/balance",
                             headers=buyer_headers).json()["data"]
        assert balance["balance"] == 900

    def test_unmatched_sms_is_recorded(self, client: TestClient, db):
        """Test an unmatched SMS is stored unprocessed"""
        response = client.post("/api/webhooks/bank-sms", json={
            "sender": "8558",
            "amount": "321.00"
        }, headers={"X-Webhook-Secret": settings.WEBHOOK_SECRET})
        assert response.status_code == 200
        body = response.json()
        assert body["message"] == "No matching lock"
        assert body["data"]["processed"] is False
