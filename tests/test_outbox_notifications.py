# tests/test_outbox_notifications.py

import httpx
import pytest
from fastapi.testclient import TestClient
from yaqeenpay.core.config import settings
from yaqeenpay.core.exceptions import ValidationError
from yaqeenpay.models.notification import Notification, OutboxMessage
from yaqeenpay.services.notifications import NotificationService, \
    NotificationPreferenceService
from yaqeenpay.services.outbox import OutboxService, OutboxDispatcher, \
    PREFERENCE_SKIP


class FakeResponse:
    def __init__(self, status_code=200):
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            request = httpx.Request("POST", "http://sms.test/send")
            raise httpx.HTTPStatusError(
                "gateway error", request=request,
                response=httpx.Response(self.status_code, request=request))


class TestOutboxDispatcher:
    """Test outbox delivery"""

    def test_notification_delivered(self, db, buyer, fund_wallet):
        """Test a domain event becomes an in-app notification"""
        fund_wallet(buyer, "1000.00")

        stats = OutboxDispatcher.dispatch_pending(db)
        assert stats["processed"] == 1

        notification = db.query(Notification).filter(
            Notification.user_id == buyer.id).first()
        assert notification.title == "Wallet topped up"
        assert "PKR 1,000.00" in notification.message
        assert notification.is_read is False

        message = db.query(OutboxMessage).first()
        assert message.processed_on is not None
        assert message.error is None

    def test_processed_messages_not_redelivered(self, db, buyer, fund_wallet):
        """Test each message is delivered once"""
        fund_wallet(buyer, "1000.00")
        OutboxDispatcher.dispatch_pending(db)

        assert OutboxDispatcher.dispatch_pending(db)["processed"] == 0
        assert db.query(Notification).count() == 1

    def test_sms_skipped_without_gateway(self, db, monkeypatch):
        """Test SMS messages are marked skipped when no gateway is set"""
        monkeypatch.setattr(settings, "SMS_GATEWAY_URL", None)
        OutboxService.enqueue(db, "sms", {"phone_number": "03001234567",
                                          "message": "Your code is 1234"})
        db.commit()

        stats = OutboxDispatcher.dispatch_pending(db)
        assert stats["skipped"] == 1
        message = db.query(OutboxMessage).first()
        assert message.processed_on is not None
        assert message.error.startswith("Skipped")

    def test_sms_sent_through_gateway(self, db, monkeypatch):
        """Test SMS messages are posted to the gateway"""
        calls = []

        def fake_post(url, json=None, headers=None, timeout=None):
            calls.append({"url": url, "json": json, "headers": headers})
            return FakeResponse()

        monkeypatch.setattr(settings, "SMS_GATEWAY_URL", "http://sms.test/send")
        monkeypatch.setattr(settings, "SMS_GATEWAY_TOKEN", "token-1")
        monkeypatch.setattr(httpx, "post", fake_post)
        OutboxService.enqueue(db, "sms", {"phone_number": "03001234567",
                                          "message": "Order shipped"})
        db.commit()

        stats = OutboxDispatcher.dispatch_pending(db)
        assert stats["processed"] == 1
        assert calls[0]["url"] == "http://sms.test/send"
        assert calls[0]["json"] == {"to": "03001234567",
                                    "message": "Order shipped"}
        assert calls[0]["headers"]["Authorization"] == "Bearer token-1"

    def test_gateway_failure_is_retried(self, db, monkeypatch):
        """Test a failed send stays pending with a retry count"""
        monkeypatch.setattr(settings, "SMS_GATEWAY_URL", "http://sms.test/send")
        monkeypatch.setattr(httpx, "post",
                            lambda *args, **kwargs: FakeResponse(503))
        OutboxService.enqueue(db, "sms", {"phone_number": "03001234567",
                                          "message": "Hello"})
        db.commit()

        stats = OutboxDispatcher.dispatch_pending(db)
        assert stats["failed"] == 1
        message = db.query(OutboxMessage).first()
        assert message.processed_on is None
        assert message.retry_count == 1
        assert "gateway error" in message.error

    def test_retry_limit(self, db, monkeypatch):
        """Test messages past the retry limit are left alone"""
        message = OutboxService.enqueue(db, "OrderPaid", {})
        message.retry_count = settings.OUTBOX_MAX_RETRIES
        db.commit()

        stats = OutboxDispatcher.dispatch_pending(db)
        assert stats == {"processed": 0, "failed": 0, "skipped": 0}

    def test_missing_user_fails(self, db):
        """Test a notification without a user id is recorded as failed"""
        OutboxService.enqueue(db, "OrderPaid", {"amount": "10.00"})
        db.commit()

        stats = OutboxDispatcher.dispatch_pending(db)
        assert stats["failed"] == 1
        assert db.query(OutboxMessage).first().retry_count == 1

    def test_unsupported_type_skipped(self, db):
        """Test unknown message types are closed as skipped"""
        OutboxService.enqueue(db, "SomethingElse", {"user_id": 1})
        db.commit()

        stats = OutboxDispatcher.dispatch_pending(db)
        assert stats["skipped"] == 1
        assert db.query(OutboxMessage).first().error == \
            "Skipped: unsupported type"

    def test_in_app_disabled_by_preferences(self, db, buyer, fund_wallet):
        """Test muted topics are closed without a notification"""
        NotificationPreferenceService.update(db, buyer.id,
                                             types={"wallet": False})
        fund_wallet(buyer, "1000.00")

        stats = OutboxDispatcher.dispatch_pending(db)
        assert stats["skipped"] == 1
        assert db.query(Notification).count() == 0
        message = db.query(OutboxMessage).first()
        assert message.processed_on is not None
        assert message.error == PREFERENCE_SKIP

    def test_sms_needs_opt_in(self, db, buyer, monkeypatch):
        """Test SMS to a user is only sent once they enable the channel"""
        calls = []
        monkeypatch.setattr(settings, "SMS_GATEWAY_URL", "http://sms.test/send")
        monkeypatch.setattr(httpx, "post", lambda *args, **kwargs:
                            calls.append(kwargs) or FakeResponse())

        OutboxService.enqueue(db, "sms", {"user_id": buyer.id,
                                          "phone_number": "03001234567",
                                          "message": "Order shipped"})
        db.commit()
        assert OutboxDispatcher.dispatch_pending(db)["skipped"] == 1
        assert calls == []

        NotificationPreferenceService.update(db, buyer.id, sms_enabled=True)
        OutboxService.enqueue(db, "sms", {"user_id": buyer.id,
                                          "phone_number": "03001234567",
                                          "message": "Order delivered"})
        db.commit()
        assert OutboxDispatcher.dispatch_pending(db)["processed"] == 1
        assert len(calls) == 1


class TestNotificationPreferences:
    """Test notification preference storage"""

    def test_defaults_without_row(self, db, buyer):
        """Test users start with in-app and email on, SMS off"""
        preferences = NotificationPreferenceService.get(db, buyer.id)
        assert preferences["in_app_enabled"] is True
        assert preferences["sms_enabled"] is False
        assert preferences["types"]["promotion"] is False
        assert preferences["types"]["order"] is True

    def test_partial_update_keeps_other_fields(self, db, buyer):
        """Test unset fields and topics keep their values"""
        NotificationPreferenceService.update(db, buyer.id,
                                             email_enabled=False,
                                             types={"order": False})
        preferences = NotificationPreferenceService.update(
            db, buyer.id, types={"promotion": True})

        assert preferences["email_enabled"] is False
        assert preferences["types"]["order"] is False
        assert preferences["types"]["promotion"] is True
        assert NotificationPreferenceService.allows(
            db, buyer.id, "in_app", "OrderShipped") is False
        assert NotificationPreferenceService.allows(
            db, buyer.id, "in_app", "DisputeOpened") is True

    def test_unknown_topic_rejected(self, db, buyer):
        """Test only known topics can be switched"""
        with pytest.raises(ValidationError):
            NotificationPreferenceService.update(db, buyer.id,
                                                 types={"lottery": True})


class TestNotificationsAPI:
    """Test notification endpoints"""

    def _seed(self, db, user, count=3):
        for i in range(count):
            NotificationService.create(db, user.id, "OrderPaid",
                                       "Order paid", f"Order {i} paid")
        db.commit()

    def test_list_and_unread_count(self, client: TestClient, db, buyer,
                                   buyer_headers):
        """Test listing with limit and unread count"""
        self._seed(db, buyer)

        data = client.get("/api/notifications", params={"limit": 2},
                          headers=buyer_headers).json()["data"]
        assert data["total"] == 3
        assert len(data["items"]) == 2

        count = client.get("/api/notifications/unread-count",
                           headers=buyer_headers).json()["data"]["count"]
        assert count == 3

    def test_mark_read(self, client: TestClient, db, buyer, buyer_headers):
        """Test marking one notification read"""
        self._seed(db, buyer, 1)
        notification = db.query(Notification).first()

        response = client.post(
            f"/api/notifications/{notification.id}/read",
            headers=buyer_headers)
        assert response.status_code == 200
        assert response.json()["data"]["is_read"] is True

        unread = client.get("/api/notifications",
                            params={"unread_only": True},
                            headers=buyer_headers).json()["data"]
        assert unread["total"] == 0

    def test_mark_all_read(self, client: TestClient, db, buyer,
                           buyer_headers):
        """Test marking all notifications read"""
        self._seed(db, buyer)

        response = client.post("/api/notifications/read-all",
                               headers=buyer_headers)
        assert response.json()["data"]["updated"] == 3

    def test_cannot_read_other_users_notification(self, client: TestClient,
                                                  db, seller, buyer_headers):
        """Test notifications are private"""
        self._seed(db, seller, 1)
        notification = db.query(Notification).first()

        response = client.post(
            f"/api/notifications/{notification.id}/read",
            headers=buyer_headers)
        assert response.status_code == 404

    def test_preferences_endpoints(self, client: TestClient, buyer_headers):
        """Test reading and updating preferences through the API"""
        data = client.get("/api/notifications/preferences",
                          headers=buyer_headers).json()["data"]
        assert data["sms_enabled"] is False

        response = client.put("/api/notifications/preferences", json={
            "sms_enabled": True,
            "types": {"promotion": True}
        }, headers=buyer_headers)
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["sms_enabled"] is True
        assert data["types"]["promotion"] is True

        response = client.put("/api/notifications/preferences", json={
            "types": {"lottery": True}
        }, headers=buyer_headers)
        assert response.status_code == 400
