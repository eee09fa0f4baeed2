# tests/test_escrow_orders.py

import pytest
from datetime import datetime, timedelta
from decimal import Decimal
from fastapi.testclient import TestClient
from yaqeenpay.core.exceptions import InvalidStateError, \
    PermissionDeniedError, ValidationError, InsufficientFundsError
from yaqeenpay.models.admin import AdminSystemSetting, SettingDataTypeEnum, \
    SettingCategoryEnum
from yaqeenpay.models.dispute import Dispute
from yaqeenpay.models.escrow import EscrowStatusEnum
from yaqeenpay.models.ledger import LedgerAccount, LedgerAccountTypeEnum
from yaqeenpay.models.order import OrderStatusEnum
from yaqeenpay.services.escrow_service import EscrowService
from yaqeenpay.services.ledger_service import LedgerService
from yaqeenpay.services.order_service import OrderService
from yaqeenpay.services.order_workflow import OrderWorkflow
from yaqeenpay.services.wallet_service import WalletService


@pytest.fixture
def new_order(db, buyer, seller):
    def _new_order(amount="1000.00"):
        return OrderService.create_order(db, buyer, "Vintage camera",
                                         amount=amount, seller_id=seller.id)
    return _new_order


@pytest.fixture
def paid_order(db, buyer, fund_wallet, new_order):
    fund_wallet(buyer, "5000.00")
    order = new_order()
    return OrderService.pay_for_order(db, order.id, buyer)


class TestOrderWorkflow:
    """Test order status transitions"""

    def test_ship_requires_payment(self, db, seller, new_order):
        """Test an unpaid order cannot be shipped"""
        order = new_order()
        with pytest.raises(InvalidStateError):
            OrderService.mark_shipped(db, order.id, seller, "TCS", "TRK123")

    def test_order_code_format(self, new_order):
        """Test order codes carry the date"""
        order = new_order()
        assert order.code.startswith(
            f"ORD-{datetime.utcnow().strftime('%Y%m%d')}-")
        assert order.status == OrderStatusEnum.created
        assert order.escrow.status == EscrowStatusEnum.created

    def test_cannot_buy_from_self(self, db, seller):
        """Test sellers cannot order from themselves"""
        with pytest.raises(ValidationError):
            OrderService.create_order(db, seller, "Own item", amount="100",
                                      seller_id=seller.id)

    def test_can_reports_allowed_operations(self, new_order):
        """Test transition table lookups"""
        order = new_order()
        assert OrderWorkflow.can(order, "confirm_payment") is True
        assert OrderWorkflow.can(order, "mark_shipped") is False


class TestEscrowFlow:
    """Test money movement through escrow"""

    def test_payment_freezes_buyer_funds(self, db, buyer, paid_order):
        """Test paying freezes the order amount"""
        wallet = WalletService.get_wallet(db, buyer.id)

        assert paid_order.status == OrderStatusEnum.awaiting_shipment
        assert paid_order.is_amount_frozen is True
        assert wallet.balance == Decimal("5000.00")
        assert wallet.frozen_balance == Decimal("1000.00")
        assert LedgerService.reconcile_user(db, buyer.id)["balanced"] is True

    def test_payment_requires_funds(self, db, buyer, new_order):
        """Test paying with an empty wallet fails and leaves the order"""
        order = new_order()
        with pytest.raises(InsufficientFundsError):
            OrderService.pay_for_order(db, order.id, buyer)
        db.refresh(order)
        assert order.status == OrderStatusEnum.created

    def test_only_buyer_pays(self, db, seller, new_order):
        """Test the seller cannot pay the order"""
        order = new_order()
        with pytest.raises(PermissionDeniedError):
            OrderService.pay_for_order(db, order.id, seller)

    def test_full_flow_releases_with_fee(self, db, buyer, seller, paid_order):
        """Test ship, deliver and confirm release amount minus the fee"""
        OrderService.mark_shipped(db, paid_order.id, seller, "TCS", "TRK123")
        OrderService.mark_delivered(db, paid_order.id, seller)
        order = OrderService.confirm_delivery(db, paid_order.id, buyer)

        assert order.status == OrderStatusEnum.completed
        assert order.is_amount_frozen is False
        assert order.escrow.status == EscrowStatusEnum.completed
        assert order.escrow.fee_amount == Decimal("50.00")
        assert order.escrow.seller_amount == Decimal("950.00")

        buyer_wallet = WalletService.get_wallet(db, buyer.id)
        seller_wallet = WalletService.get_wallet(db, seller.id)
        assert buyer_wallet.balance == Decimal("4000.00")
        assert buyer_wallet.frozen_balance == Decimal("0.00")
        assert seller_wallet.balance == Decimal("950.00")

        trial = LedgerService.trial_balance(db)
        assert trial["balanced"] is True
        assert trial["accounts"]["escrow_holding"] == Decimal("0.00")
        assert trial["accounts"]["platform_fee_revenue"] == Decimal("50.00")
        assert LedgerService.reconcile_user(db, buyer.id)["balanced"] is True
        assert LedgerService.reconcile_user(db, seller.id)["balanced"] is True

    def test_no_double_release(self, db, buyer, seller, paid_order):
        """Test a completed order cannot be released again"""
        OrderService.mark_shipped(db, paid_order.id, seller, "TCS", "TRK123")
        OrderService.confirm_delivery(db, paid_order.id, buyer)

        with pytest.raises(InvalidStateError):
            OrderService.confirm_delivery(db, paid_order.id, buyer)
        escrow = EscrowService.get_for_order(db, paid_order.id)
        with pytest.raises(InvalidStateError):
            EscrowService.release(db, escrow)
        db.rollback()
        assert WalletService.get_wallet(db, seller.id).balance == Decimal(
            "950.00")

    def test_fee_rate_setting_override(self, db, buyer, seller, fund_wallet,
                                       new_order):
        """Test the admin fee rate setting applies to new escrows"""
        db.add(AdminSystemSetting(setting_key="escrow.fee_rate",
                                  setting_value="0.10",
                                  data_type=SettingDataTypeEnum.decimal,
                                  category=SettingCategoryEnum.escrow,
                                  is_active=True))
        db.commit()
        fund_wallet(buyer, "1000.00")
        order = new_order("1000.00")
        OrderService.pay_for_order(db, order.id, buyer)
        OrderService.mark_shipped(db, order.id, seller, "TCS", "TRK9")
        order = OrderService.confirm_delivery(db, order.id, buyer)

        assert order.escrow.fee_amount == Decimal("100.00")
        assert order.escrow.seller_amount == Decimal("900.00")

    def test_non_finite_fee_setting_ignored(self, db, buyer, new_order):
        """Test an unusable fee rate setting falls back to the default"""
        db.add(AdminSystemSetting(setting_key="escrow.fee_rate",
                                  setting_value="NaN",
                                  data_type=SettingDataTypeEnum.decimal,
                                  category=SettingCategoryEnum.escrow,
                                  is_active=True))
        db.commit()

        order = new_order("1000.00")
        assert order.escrow.fee_rate == Decimal("0.05")

    def test_release_credits_seller_side_account(self, db, buyer, make_user,
                                                 fund_wallet):
        """Test a seller without the seller role is paid into seller_wallet"""
        maker = make_user("maker")
        fund_wallet(buyer, "1000.00")
        order = OrderService.create_order(db, buyer, "Clay pot",
                                          amount="1000.00",
                                          seller_id=maker.id)
        OrderService.pay_for_order(db, order.id, buyer)
        OrderService.mark_shipped(db, order.id, maker, "TCS", "TRK7")
        OrderService.confirm_delivery(db, order.id, buyer)

        accounts = {a.account_type: a.balance for a in db.query(
            LedgerAccount).filter(LedgerAccount.user_id == maker.id)}
        assert accounts == {LedgerAccountTypeEnum.seller_wallet:
                            Decimal("950.00")}
        assert LedgerService.reconcile_user(db, maker.id)["balanced"] is True

    def test_cancel_paid_order_refunds(self, db, buyer, paid_order):
        """Test cancelling before shipment unfreezes the funds"""
        order = OrderService.cancel_order(db, paid_order.id, buyer)

        assert order.status == OrderStatusEnum.cancelled
        assert order.escrow.status == EscrowStatusEnum.refunded
        wallet = WalletService.get_wallet(db, buyer.id)
        assert wallet.frozen_balance == Decimal("0.00")
        assert wallet.available_balance == Decimal("5000.00")
        assert LedgerService.trial_balance(db)["accounts"][
            "escrow_holding"] == Decimal("0.00")

    def test_cancel_after_shipping_refused(self, db, buyer, seller,
                                           paid_order):
        """Test shipped orders cannot be cancelled"""
        OrderService.mark_shipped(db, paid_order.id, seller, "TCS", "TRK1")
        with pytest.raises(InvalidStateError):
            OrderService.cancel_order(db, paid_order.id, buyer)

    def test_reject_unpaid_order(self, db, buyer, new_order):
        """Test rejecting before payment cancels the escrow"""
        order = new_order()
        result = OrderService.reject_order(db, order.id, buyer, "Changed mind")

        assert result["requires_admin_review"] is False
        assert result["order"].status == OrderStatusEnum.rejected
        assert result["order"].escrow.status == EscrowStatusEnum.cancelled

    def test_reject_shipped_order_opens_dispute(self, db, buyer, seller,
                                                paid_order):
        """Test rejecting a shipped order goes to admin review"""
        OrderService.mark_shipped(db, paid_order.id, seller, "TCS", "TRK1")
        result = OrderService.reject_order(db, paid_order.id, buyer,
                                           "Item damaged")

        assert result["requires_admin_review"] is True
        assert result["order"].status == OrderStatusEnum.disputed
        assert result["order"].escrow.status == EscrowStatusEnum.disputed
        assert db.query(Dispute).count() == 1
        wallet = WalletService.get_wallet(db, buyer.id)
        assert wallet.frozen_balance == Decimal("1000.00")

    def test_reject_awaiting_shipment_opens_dispute(self, db, buyer,
                                                    paid_order):
        """Test a paid order awaiting shipment also goes to admin review"""
        result = OrderService.reject_order(db, paid_order.id, buyer,
                                           "Seller is not responding")

        assert result["requires_admin_review"] is True
        assert result["order"].status == OrderStatusEnum.disputed
        assert result["dispute"].reason == "Order rejected by buyer"
        assert WalletService.get_wallet(db, buyer.id).frozen_balance == \
            Decimal("1000.00")

    def test_reject_completed_order_refused(self, db, buyer, seller,
                                            paid_order):
        """Test a completed order can no longer be rejected"""
        OrderService.mark_shipped(db, paid_order.id, seller, "TCS", "TRK1")
        OrderService.confirm_delivery(db, paid_order.id, buyer)
        with pytest.raises(InvalidStateError):
            OrderService.reject_order(db, paid_order.id, buyer, "Too late")

    def test_auto_complete_expired(self, db, buyer, seller, paid_order):
        """Test orders past the decision window are released"""
        OrderService.mark_shipped(db, paid_order.id, seller, "TCS", "TRK1")
        OrderService.mark_delivered(db, paid_order.id, seller)

        assert OrderService.auto_complete_expired(db) == 0
        later = datetime.utcnow() + timedelta(hours=49)
        assert OrderService.auto_complete_expired(db, now=later) == 1

        order = OrderService.get_order(db, paid_order.id, buyer)
        assert order.status == OrderStatusEnum.completed
        assert WalletService.get_wallet(db, seller.id).balance == Decimal(
            "950.00")


class TestOrdersAPI:
    """Test order endpoints"""

    def test_create_and_pay(self, client: TestClient, buyer, seller,
                            buyer_headers, fund_wallet):
        """Test creating and paying an order over HTTP"""
        fund_wallet(buyer, "3000.00")
        response = client.post("/api/orders", json={
            "title": "Wireless headphones",
            "seller_id": seller.id,
            "amount": "1500.00"
        }, headers=buyer_headers)
        assert response.status_code == 201
        order = response.json()["data"]
        assert order["status"] == "created"
        assert order["escrow"]["status"] == "created"

        response = client.post(f"/api/orders/{order['id']}/pay",
                               headers=buyer_headers)
        assert response.status_code == 200
        assert response.json()["data"]["status"] == "awaiting_shipment"

    def test_order_needs_seller_or_product(self, client: TestClient,
                                           buyer_headers):
        """Test an order without seller or product is rejected"""
        response = client.post("/api/orders", json={"title": "Mystery box"},
                               headers=buyer_headers)
        assert response.status_code == 400

    def test_invalid_transition_is_conflict(self, client: TestClient, seller,
                                            seller_headers, new_order):
        """Test shipping an unpaid order returns 409"""
        order = new_order()
        response = client.post(f"/api/orders/{order.id}/ship", json={
            "courier": "TCS",
            "tracking_number": "TRK1"
        }, headers=seller_headers)
        assert response.status_code == 409
        assert response.json()["success"] is False

    def test_outsider_cannot_view_order(self, client: TestClient, make_user,
                                        headers_for, new_order):
        """Test only parties and admins see an order"""
        order = new_order()
        outsider = make_user("outsider")
        response = client.get(f"/api/orders/{order.id}",
                              headers=headers_for(outsider))
        assert response.status_code == 403

    def test_buyer_and_seller_lists(self, client: TestClient, buyer_headers,
                                    seller_headers, new_order):
        """Test role-specific order lists"""
        new_order()
        new_order("200.00")

        buyer_orders = client.get("/api/orders/buyer",
                                  headers=buyer_headers).json()["data"]
        seller_orders = client.get("/api/orders/seller",
                                   headers=seller_headers).json()["data"]
        empty = client.get("/api/orders/seller",
                           headers=buyer_headers).json()["data"]

        assert buyer_orders["total_count"] == 2
        assert seller_orders["total_count"] == 2
        assert empty["total_count"] == 0

    def test_reject_response(self, client: TestClient, db, seller,
                             buyer_headers, paid_order):
        """Test reject endpoint reports admin review"""
        OrderService.mark_shipped(db, paid_order.id, seller, "TCS", "TRK1")

        response = client.post(f"/api/orders/{paid_order.id}/reject",
                               json={"reason": "Wrong colour"},
                               headers=buyer_headers)
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["requires_admin_review"] is True
        assert data["order"]["status"] == "disputed"
        assert data["dispute"]["status"] == "open"
