# tests/test_disputes.py

import pytest
from decimal import Decimal
from fastapi.testclient import TestClient
from yaqeenpay.core.exceptions import InvalidStateError, \
    PermissionDeniedError, ValidationError
from yaqeenpay.models.dispute import Dispute, DisputeResolutionEnum, \
    DisputeStatusEnum
from yaqeenpay.models.escrow import EscrowStatusEnum
from yaqeenpay.models.order import OrderStatusEnum
from yaqeenpay.services.dispute_service import DisputeService
from yaqeenpay.services.ledger_service import LedgerService
from yaqeenpay.services.order_service import OrderService
from yaqeenpay.services.wallet_service import WalletService


@pytest.fixture
def shipped_order(db, buyer, seller, fund_wallet):
    fund_wallet(buyer, "5000.00")
    order = OrderService.create_order(db, buyer, "Leather jacket",
                                      amount="1000.00", seller_id=seller.id)
    OrderService.pay_for_order(db, order.id, buyer)
    return OrderService.mark_shipped(db, order.id, seller, "Leopards",
                                     "LP-778899")


@pytest.fixture
def open_dispute(db, buyer, shipped_order):
    return DisputeService.create_dispute(db, shipped_order.id, buyer,
                                         "Item not as described",
                                         "Colour differs",
                                         ["https://files/photo1.jpg"])


class TestDisputeService:
    """Test dispute lifecycle"""

    def test_open_dispute_holds_escrow(self, db, open_dispute, shipped_order):
        """Test opening a dispute marks order and escrow disputed"""
        db.refresh(shipped_order)
        assert open_dispute.status == DisputeStatusEnum.open
        assert open_dispute.evidence_list == ["https://files/photo1.jpg"]
        assert shipped_order.status == OrderStatusEnum.disputed
        assert shipped_order.escrow.status == EscrowStatusEnum.disputed

    def test_one_active_dispute_per_order(self, db, seller, open_dispute,
                                          shipped_order):
        """Test a second active dispute is refused"""
        with pytest.raises(InvalidStateError):
            DisputeService.create_dispute(db, shipped_order.id, seller,
                                          "Buyer unreachable")

    def test_outsider_cannot_dispute(self, db, make_user, shipped_order):
        """Test only parties can open a dispute"""
        outsider = make_user("outsider")
        with pytest.raises(PermissionDeniedError):
            DisputeService.create_dispute(db, shipped_order.id, outsider,
                                          "Not mine")

    def test_unpaid_order_cannot_be_disputed(self, db, buyer, seller):
        """Test unpaid orders have nothing to dispute"""
        order = OrderService.create_order(db, buyer, "Desk lamp",
                                          amount="300.00",
                                          seller_id=seller.id)
        with pytest.raises(InvalidStateError):
            DisputeService.create_dispute(db, order.id, buyer, "Too slow")

    def test_settled_order_cannot_be_disputed_again(self, db, buyer, seller,
                                                    admin_user, open_dispute,
                                                    shipped_order):
        """Test an order refunded to the buyer cannot be reopened"""
        DisputeService.resolve(db, open_dispute.id, admin_user,
                               DisputeResolutionEnum.in_favor_of_buyer)

        with pytest.raises(InvalidStateError):
            DisputeService.create_dispute(db, shipped_order.id, seller,
                                          "Buyer kept the item")

        db.refresh(shipped_order)
        assert shipped_order.status == OrderStatusEnum.rejected
        assert shipped_order.escrow.status == EscrowStatusEnum.refunded

    def test_rejected_unpaid_order_cannot_be_disputed(self, db, buyer,
                                                      seller):
        """Test an order rejected before payment has nothing to dispute"""
        order = OrderService.create_order(db, buyer, "Desk lamp",
                                          amount="300.00",
                                          seller_id=seller.id)
        OrderService.reject_order(db, order.id, buyer, "Changed mind")

        with pytest.raises(InvalidStateError):
            DisputeService.create_dispute(db, order.id, seller,
                                          "Buyer backed out")

        db.refresh(order)
        assert order.status == OrderStatusEnum.rejected
        assert order.escrow.status == EscrowStatusEnum.cancelled
        assert db.query(Dispute).count() == 0

    def test_escalate_by_raiser_only(self, db, seller, buyer, open_dispute):
        """Test only the raiser escalates, and only once"""
        with pytest.raises(PermissionDeniedError):
            DisputeService.escalate(db, open_dispute.id, seller)

        dispute = DisputeService.escalate(db, open_dispute.id, buyer)
        assert dispute.status == DisputeStatusEnum.escalated
        assert dispute.escalated_at is not None

        with pytest.raises(InvalidStateError):
            DisputeService.escalate(db, open_dispute.id, buyer)

    def test_add_evidence(self, db, seller, open_dispute):
        """Test parties append evidence"""
        dispute = DisputeService.add_evidence(
            db, open_dispute.id, seller, ["https://files/receipt.pdf", " "])
        assert dispute.evidence_list == ["https://files/photo1.jpg",
                                         "https://files/receipt.pdf"]

    def test_resolve_in_favor_of_buyer(self, db, buyer, seller, admin_user,
                                       open_dispute, shipped_order):
        """Test buyer win refunds the full amount"""
        dispute = DisputeService.resolve(
            db, open_dispute.id, admin_user,
            DisputeResolutionEnum.in_favor_of_buyer, "Seller sent wrong item")

        assert dispute.status == DisputeStatusEnum.resolved
        assert dispute.resolved_by_id == admin_user.id
        db.refresh(shipped_order)
        assert shipped_order.status == OrderStatusEnum.rejected
        assert shipped_order.escrow.status == EscrowStatusEnum.refunded

        wallet = WalletService.get_wallet(db, buyer.id)
        assert wallet.balance == Decimal("5000.00")
        assert wallet.frozen_balance == Decimal("0.00")
        assert WalletService.get_wallet(db, seller.id).balance == Decimal(
            "0.00")
        assert LedgerService.trial_balance(db)["balanced"] is True

    def test_resolve_in_favor_of_seller(self, db, buyer, seller, admin_user,
                                        open_dispute, shipped_order):
        """Test seller win releases the escrow minus the fee"""
        DisputeService.resolve(db, open_dispute.id, admin_user,
                               DisputeResolutionEnum.in_favor_of_seller)

        db.refresh(shipped_order)
        assert shipped_order.status == OrderStatusEnum.completed
        assert shipped_order.escrow.status == EscrowStatusEnum.completed
        assert WalletService.get_wallet(db, seller.id).balance == Decimal(
            "950.00")
        assert WalletService.get_wallet(db, buyer.id).balance == Decimal(
            "4000.00")

    def test_resolve_compromise(self, db, buyer, seller, admin_user,
                                open_dispute, shipped_order):
        """Test a split refunds part and releases the rest with its fee"""
        DisputeService.resolve(db, open_dispute.id, admin_user,
                               DisputeResolutionEnum.compromise,
                               buyer_refund_amount="400.00")

        db.refresh(shipped_order)
        escrow = shipped_order.escrow
        assert shipped_order.status == OrderStatusEnum.dispute_resolved
        assert escrow.status == EscrowStatusEnum.completed
        assert escrow.refunded_amount == Decimal("400.00")
        assert escrow.fee_amount == Decimal("30.00")
        assert escrow.seller_amount == Decimal("570.00")

        buyer_wallet = WalletService.get_wallet(db, buyer.id)
        assert buyer_wallet.balance == Decimal("4400.00")
        assert buyer_wallet.frozen_balance == Decimal("0.00")
        assert WalletService.get_wallet(db, seller.id).balance == Decimal(
            "570.00")

        trial = LedgerService.trial_balance(db)
        assert trial["balanced"] is True
        assert trial["accounts"]["escrow_holding"] == Decimal("0.00")
        assert trial["accounts"]["platform_fee_revenue"] == Decimal("30.00")

    def test_compromise_refund_bounds(self, db, admin_user, open_dispute):
        """Test a split refund must be strictly inside the amount"""
        with pytest.raises(ValidationError):
            DisputeService.resolve(db, open_dispute.id, admin_user,
                                   DisputeResolutionEnum.compromise,
                                   buyer_refund_amount="1000.00")
        db.refresh(open_dispute)
        assert open_dispute.status == DisputeStatusEnum.open

    def test_resolve_twice(self, db, admin_user, open_dispute):
        """Test a resolved dispute cannot be resolved again"""
        DisputeService.resolve(db, open_dispute.id, admin_user,
                               DisputeResolutionEnum.in_favor_of_buyer)
        with pytest.raises(InvalidStateError):
            DisputeService.resolve(db, open_dispute.id, admin_user,
                                   DisputeResolutionEnum.in_favor_of_seller)

    def test_admin_notes_append(self, db, admin_user, open_dispute):
        """Test notes are appended with a stamp"""
        DisputeService.add_admin_notes(db, open_dispute.id, admin_user,
                                       "Asked seller for invoice")
        dispute = DisputeService.add_admin_notes(db, open_dispute.id,
                                                 admin_user, "Invoice received")
        lines = dispute.admin_notes.split("\n")
        assert len(lines) == 2
        assert lines[0].endswith("Asked seller for invoice")
        assert f"admin {admin_user.id}" in lines[1]


class TestDisputesAPI:
    """Test dispute endpoints"""

    def test_open_from_order(self, client: TestClient, buyer_headers,
                             shipped_order):
        """Test opening a dispute through the order endpoint"""
        response = client.post(f"/api/orders/{shipped_order.id}/dispute",
                               json={"reason": "Never arrived"},
                               headers=buyer_headers)
        assert response.status_code == 201
        assert response.json()["data"]["status"] == "open"

    def test_user_disputes_list(self, client: TestClient, seller_headers,
                                open_dispute):
        """Test parties see their disputes"""
        response = client.get("/api/disputes/user", headers=seller_headers)
        assert response.status_code == 200
        assert response.json()["data"]["total_count"] == 1

    def test_admin_list_requires_admin(self, client: TestClient,
                                       buyer_headers, admin_headers,
                                       open_dispute):
        """Test the full dispute list is admin only"""
        assert client.get("/api/disputes",
                          headers=buyer_headers).status_code == 403
        response = client.get("/api/disputes", params={"status": "open"},
                              headers=admin_headers)
        assert response.json()["data"]["total_count"] == 1

    def test_compromise_needs_amount(self, client: TestClient, admin_headers,
                                     open_dispute):
        """Test compromise without an amount fails validation"""
        response = client.post(f"/api/disputes/{open_dispute.id}/resolve",
                               json={"resolution": "compromise"},
                               headers=admin_headers)
        assert response.status_code == 422

    def test_resolve_records_audit(self, client: TestClient, admin_headers,
                                   open_dispute):
        """Test resolving over HTTP writes an audit log"""
        response = client.post(f"/api/disputes/{open_dispute.id}/resolve",
                               json={"resolution": "in_favor_of_seller",
                                     "notes": "Tracking shows delivery"},
                               headers=admin_headers)
        assert response.status_code == 200
        assert response.json()["data"]["resolution"] == "in_favor_of_seller"

        logs = client.get("/api/admin/audit/logs",
                          params={"action": "resolve_dispute"},
                          headers=admin_headers).json()["data"]
        assert logs["total_count"] == 1
