# tests/test_integration.py

import pytest
from fastapi.testclient import TestClient
from yaqeenpay.services.outbox import OutboxDispatcher


def register_and_login(client: TestClient, username: str, role: str) -> dict:
    response = client.post("/api/auth/register", json={
        "username": username,
        "password": f"{username}pass123",
        "email": f"{username}@example.com",
        "full_name": username.title(),
        "role": role
    })
    assert response.status_code == 201

    response = client.post("/api/auth/login", data={
        "username": username,
        "password": f"{username}pass123"
    })
    assert response.status_code == 200
    token = response.json()["data"]["access_token"]
    return {"Authorization": f"Bearer {token}"}


@pytest.mark.integration
class TestMarketplaceFlow:
    """Test a complete purchase from top-up to payout"""

    def test_top_up_buy_rate_and_withdraw(self, client: TestClient, db,
                                          admin_headers):
        """Test register -> top up -> order -> release -> rate -> withdraw"""
        buyer_headers = register_and_login(client, "amna", "buyer")
        seller_headers = register_and_login(client, "bilal", "seller")
        seller_id = client.get("/api/auth/me",
                               headers=seller_headers).json()["data"]["id"]

        # Buyer tops up and an admin confirms the payment
        top_up = client.post("/api/wallets/top-up", json={
            "amount": "5000.00",
            "channel": "jazzcash",
            "external_reference": "JC-INT-1"
        }, headers=buyer_headers).json()["data"]
        client.post(f"/api/wallets/top-up/{top_up['id']}/confirm",
                    headers=buyer_headers)
        response = client.post("/api/admin/topups/review", json={
            "top_up_id": top_up["id"],
            "status": "paid"
        }, headers=admin_headers)
        assert response.json()["data"]["status"] == "confirmed"

        # Order goes through escrow
        order = client.post("/api/orders", json={
            "title": "Hand-knotted carpet",
            "seller_id": seller_id,
            "amount": "2000.00"
        }, headers=buyer_headers).json()["data"]
        order_id = order["id"]

        response = client.post(f"/api/orders/{order_id}/pay",
                               headers=buyer_headers)
        assert response.json()["data"]["status"] == "awaiting_shipment"
        balance = client.get("/api/wallets/balance",
                             headers=buyer_headers).json()["data"]
        assert balance["frozen_balance"] == 2000

        client.post(f"/api/orders/{order_id}/ship", json={
            "courier": "TCS",
            "tracking_number": "TCS-990011"
        }, headers=seller_headers)
        client.post(f"/api/orders/{order_id}/deliver",
                    headers=seller_headers)
        response = client.post(f"/api/orders/{order_id}/complete",
                               headers=buyer_headers)
        assert response.status_code == 200
        assert response.json()["data"]["status"] == "completed"

        seller_balance = client.get("/api/wallets/balance",
                                    headers=seller_headers).json()["data"]
        assert seller_balance["balance"] == 1900

        # Both parties rate each other
        response = client.post("/api/ratings", json={
            "order_id": order_id,
            "score": 5,
            "comment": "Exactly as pictured"
        }, headers=buyer_headers)
        assert response.status_code == 201

        # Seller withdraws and an admin settles the payout
        withdrawal = client.post("/api/withdrawals", json={
            "amount": "1000.00",
            "channel": "easypaisa",
            "account_number": "03451234567",
            "account_title": "Bilal"
        }, headers=seller_headers).json()["data"]
        response = client.post(
            f"/api/admin/withdrawals/{withdrawal['id']}/approve",
            json={"channel_reference": "EP-PAYOUT-9"}, headers=admin_headers)
        assert response.json()["data"]["status"] == "settled"

        # Books balance and both users get notified
        trial = client.get("/api/admin/ledger/trial-balance",
                           headers=admin_headers).json()["data"]
        assert trial["balanced"] is True
        assert trial["accounts"]["platform_fee_revenue"] == 100
        assert trial["accounts"]["escrow_holding"] == 0

        assert OutboxDispatcher.dispatch_pending(db)["processed"] > 0
        for headers in (buyer_headers, seller_headers):
            unread = client.get("/api/notifications/unread-count",
                                headers=headers).json()["data"]["count"]
            assert unread > 0
