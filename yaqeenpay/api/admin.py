# yaqeenpay/api/admin.py

import json
import logging
from typing import Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from yaqeenpay.core.database import get_db
from yaqeenpay.core.core_auth import get_current_admin_user
from yaqeenpay.models.admin import AuditLog
from yaqeenpay.models.order import Order, OrderStatusEnum
from yaqeenpay.models.topup import TopUpStatusEnum, TopupLockStatusEnum, \
    WalletTopupLock, BankSmsPayment
from yaqeenpay.models.user import User, UserRoleEnum
from yaqeenpay.models.withdrawal import WithdrawalStatusEnum
from yaqeenpay.schemas.admin import TopUpReviewRequest, UserActionRequest, \
    KycVerifyRequest, SellerReviewRequest, LedgerAdjustRequest
from yaqeenpay.schemas.withdrawal import WithdrawalApproveRequest, \
    WithdrawalReasonRequest
from yaqeenpay.services.admin_service import AdminService
from yaqeenpay.services.kyc_service import KycService
from yaqeenpay.services.ledger_service import LedgerService
from yaqeenpay.services.order_service import OrderService
from yaqeenpay.services.topup_service import TopUpService, TopupLockService
from yaqeenpay.services.withdrawal_service import WithdrawalService
from yaqeenpay.api.utils import (
    handle_operation_errors,
    create_success_response,
    log_admin_operation,
    paginate
)

logger = logging.getLogger(__name__)

router = APIRouter()


# Top-up management
@router.get("/topups")
@handle_operation_errors("get all top-ups")
async def get_all_topups(
        topup_status: Optional[TopUpStatusEnum] = Query(None, alias="status"),
        page: int = Query(1, ge=1),
        page_size: int = Query(50, ge=1, le=200),
        db: Session = Depends(get_db),
        current_user: User = Depends(get_current_admin_user)
):
    result = paginate(TopUpService.list_all(db, topup_status), page, page_size)
    result["items"] = [TopUpService.to_dict(t) for t in result["items"]]
    return create_success_response("all_topups", result, current_user.id)


@router.post("/topups/review")
@handle_operation_errors("review top-up")
async def review_topup(
        payload: TopUpReviewRequest,
        db: Session = Depends(get_db),
        current_user: User = Depends(get_current_admin_user)
):
    """Mark a top-up paid (credits the wallet) or failed/rejected"""
    top_up = TopUpService.review(db, payload.top_up_id, payload.status,
                                 payload.notes)
    log_admin_operation("review_topup", current_user.id, {
        "top_up_id": payload.top_up_id,
        "status": payload.status.value,
        "notes": payload.notes
    }, db, entity_type="top_up", entity_id=payload.top_up_id)
    return create_success_response("topup_reviewed",
                                   TopUpService.to_dict(top_up),
                                   current_user.id,
                                   f"Top-up {top_up.id} is {top_up.status.value}")


# User management
@router.get("/users")
@handle_operation_errors("get all users")
async def get_all_users(
        role: Optional[UserRoleEnum] = None,
        is_active: Optional[bool] = None,
        search: Optional[str] = None,
        page: int = Query(1, ge=1),
        page_size: int = Query(50, ge=1, le=200),
        db: Session = Depends(get_db),
        current_user: User = Depends(get_current_admin_user)
):
    query = db.query(User)
    if role:
        query = query.filter(User.role == role)
    if is_active is not None:
        query = query.filter(User.is_active.is_(is_active))
    if search:
        pattern = f"%{search}%"
        query = query.filter(
            User.username.ilike(pattern) | User.email.ilike(pattern))

    result = paginate(query.order_by(User.id), page, page_size)
    result["items"] = [AdminService.user_to_dict(u) for u in result["items"]]
    return create_success_response("all_users", result, current_user.id)


@router.post("/users/action")
@handle_operation_errors("perform user action")
async def user_action(
        payload: UserActionRequest,
        db: Session = Depends(get_db),
        current_user: User = Depends(get_current_admin_user)
):
    user = AdminService.user_action(db, current_user, payload.user_id,
                                    payload.action, payload.role)
    log_admin_operation("user_action", current_user.id, {
        "user_id": payload.user_id,
        "action": payload.action,
        "role": payload.role.value if payload.role else None
    }, db, entity_type="user", entity_id=payload.user_id)
    return create_success_response("user_action",
                                   AdminService.user_to_dict(user),
                                   current_user.id)


# KYC and sellers
@router.get("/kyc/pending")
@handle_operation_errors("get pending kyc documents")
async def pending_kyc(
        db: Session = Depends(get_db),
        current_user: User = Depends(get_current_admin_user)
):
    documents = KycService.pending_documents(db)
    return create_success_response(
        "pending_kyc", [KycService.document_to_dict(d) for d in documents],
        current_user.id)


@router.post("/kyc/verify")
@handle_operation_errors("verify kyc document")
async def verify_kyc(
        payload: KycVerifyRequest,
        db: Session = Depends(get_db),
        current_user: User = Depends(get_current_admin_user)
):
    document = KycService.verify_document(db, current_user,
                                          payload.document_id, payload.status,
                                          payload.reason)
    log_admin_operation("verify_kyc", current_user.id, {
        "document_id": payload.document_id,
        "status": payload.status.value,
        "reason": payload.reason
    }, db, entity_type="kyc_document", entity_id=payload.document_id)
    return create_success_response("kyc_verified",
                                   KycService.document_to_dict(document),
                                   current_user.id)


@router.get("/sellers/pending")
@handle_operation_errors("get pending seller profiles")
async def pending_sellers(
        db: Session = Depends(get_db),
        current_user: User = Depends(get_current_admin_user)
):
    profiles = KycService.pending_profiles(db)
    return create_success_response(
        "pending_sellers", [KycService.profile_to_dict(p) for p in profiles],
        current_user.id)


@router.post("/sellers/review")
@handle_operation_errors("review seller profile")
async def review_seller(
        payload: SellerReviewRequest,
        db: Session = Depends(get_db),
        current_user: User = Depends(get_current_admin_user)
):
    profile = KycService.verify_business_profile(db, current_user,
                                                 payload.profile_id,
                                                 payload.approve,
                                                 payload.reason)
    log_admin_operation("review_seller", current_user.id, {
        "profile_id": payload.profile_id,
        "approve": payload.approve,
        "reason": payload.reason
    }, db, entity_type="business_profile", entity_id=payload.profile_id)
    return create_success_response("seller_reviewed",
                                   KycService.profile_to_dict(profile),
                                   current_user.id)


# Withdrawal management
@router.get("/withdrawals")
@handle_operation_errors("get all withdrawals")
async def get_all_withdrawals(
        withdrawal_status: Optional[WithdrawalStatusEnum] = Query(
            None, alias="status"),
        page: int = Query(1, ge=1),
        page_size: int = Query(50, ge=1, le=200),
        db: Session = Depends(get_db),
        current_user: User = Depends(get_current_admin_user)
):
    result = paginate(WithdrawalService.list_all(db, withdrawal_status), page,
                      page_size)
    result["items"] = [WithdrawalService.to_dict(w) for w in result["items"]]
    return create_success_response("all_withdrawals", result, current_user.id)


@router.get("/withdrawals/stats")
@handle_operation_errors("get withdrawal stats")
async def withdrawal_stats(
        db: Session = Depends(get_db),
        current_user: User = Depends(get_current_admin_user)
):
    return create_success_response("withdrawal_stats",
                                   WithdrawalService.stats(db),
                                   current_user.id)


@router.post("/withdrawals/{withdrawal_id}/approve")
@handle_operation_errors("approve withdrawal")
async def approve_withdrawal(
        withdrawal_id: int,
        payload: Optional[WithdrawalApproveRequest] = None,
        db: Session = Depends(get_db),
        current_user: User = Depends(get_current_admin_user)
):
    payload = payload or WithdrawalApproveRequest()
    withdrawal = WithdrawalService.approve(db, withdrawal_id, current_user,
                                           payload.channel_reference,
                                           payload.settle)
    log_admin_operation("approve_withdrawal", current_user.id, {
        "withdrawal_id": withdrawal_id,
        "reference": withdrawal.reference,
        "amount": withdrawal.amount,
        "settle": payload.settle
    }, db, entity_type="withdrawal", entity_id=withdrawal_id)
    return create_success_response("withdrawal_approved",
                                   WithdrawalService.to_dict(withdrawal),
                                   current_user.id)


@router.post("/withdrawals/{withdrawal_id}/fail")
@handle_operation_errors("fail withdrawal")
async def fail_withdrawal(
        withdrawal_id: int,
        payload: WithdrawalReasonRequest,
        db: Session = Depends(get_db),
        current_user: User = Depends(get_current_admin_user)
):
    withdrawal = WithdrawalService.fail(db, withdrawal_id, current_user,
                                        payload.reason)
    log_admin_operation("fail_withdrawal", current_user.id, {
        "withdrawal_id": withdrawal_id,
        "reason": payload.reason
    }, db, entity_type="withdrawal", entity_id=withdrawal_id)
    return create_success_response("withdrawal_failed",
                                   WithdrawalService.to_dict(withdrawal),
                                   current_user.id,
                                   "Withdrawal failed and funds returned")


@router.post("/withdrawals/{withdrawal_id}/reverse")
@handle_operation_errors("reverse withdrawal")
async def reverse_withdrawal(
        withdrawal_id: int,
        payload: WithdrawalReasonRequest,
        db: Session = Depends(get_db),
        current_user: User = Depends(get_current_admin_user)
):
    withdrawal = WithdrawalService.reverse(db, withdrawal_id, current_user,
                                           payload.reason)
    log_admin_operation("reverse_withdrawal", current_user.id, {
        "withdrawal_id": withdrawal_id,
        "reason": payload.reason
    }, db, entity_type="withdrawal", entity_id=withdrawal_id)
    return create_success_response("withdrawal_reversed",
                                   WithdrawalService.to_dict(withdrawal),
                                   current_user.id,
                                   "Withdrawal reversed and funds returned")


# Ledger
@router.post("/ledger/adjust")
@handle_operation_errors("adjust wallet")
async def adjust_wallet(
        payload: LedgerAdjustRequest,
        db: Session = Depends(get_db),
        current_user: User = Depends(get_current_admin_user)
):
    """Manual wallet correction, posted against external clearing"""
    result = AdminService.adjust_wallet(db, current_user, payload.user_id,
                                        payload.amount, payload.direction,
                                        payload.reason)
    log_admin_operation("ledger_adjust", current_user.id, {
        "user_id": payload.user_id,
        "amount": payload.amount,
        "direction": payload.direction,
        "reason": payload.reason
    }, db, entity_type="user", entity_id=payload.user_id)
    return create_success_response("wallet_adjusted", result, current_user.id)


@router.get("/ledger/trial-balance")
@handle_operation_errors("get trial balance")
async def trial_balance(
        currency: Optional[str] = None,
        db: Session = Depends(get_db),
        current_user: User = Depends(get_current_admin_user)
):
    return create_success_response("trial_balance",
                                   LedgerService.trial_balance(db, currency),
                                   current_user.id)


@router.get("/ledger/reconcile/{user_id}")
@handle_operation_errors("reconcile user ledger")
async def reconcile_user(
        user_id: int,
        db: Session = Depends(get_db),
        current_user: User = Depends(get_current_admin_user)
):
    return create_success_response("ledger_reconciliation",
                                   LedgerService.reconcile_user(db, user_id),
                                   current_user.id)


# Reporting
@router.get("/stats")
@handle_operation_errors("get system stats")
async def get_system_stats(
        db: Session = Depends(get_db),
        current_user: User = Depends(get_current_admin_user)
):
    return create_success_response("system_stats", AdminService.stats(db),
                                   current_user.id)


@router.get("/orders")
@handle_operation_errors("get all orders")
async def get_all_orders(
        order_status: Optional[OrderStatusEnum] = Query(None, alias="status"),
        page: int = Query(1, ge=1),
        page_size: int = Query(50, ge=1, le=200),
        db: Session = Depends(get_db),
        current_user: User = Depends(get_current_admin_user)
):
    query = db.query(Order)
    if order_status:
        query = query.filter(Order.status == order_status)
    result = paginate(query.order_by(Order.created_at.desc(), Order.id.desc()),
                      page, page_size)
    result["items"] = [OrderService.to_dict(o) for o in result["items"]]
    return create_success_response("all_orders", result, current_user.id)


@router.get("/audit/logs")
@handle_operation_errors("get audit logs")
async def get_audit_logs(
        action: Optional[str] = None,
        admin_id: Optional[int] = None,
        page: int = Query(1, ge=1),
        page_size: int = Query(50, ge=1, le=200),
        db: Session = Depends(get_db),
        current_user: User = Depends(get_current_admin_user)
):
    query = db.query(AuditLog)
    if action:
        query = query.filter(AuditLog.action == action)
    if admin_id:
        query = query.filter(AuditLog.admin_id == admin_id)

    result = paginate(query.order_by(AuditLog.created_at.desc(),
                                     AuditLog.id.desc()), page, page_size)
    result["items"] = [{
        "id": entry.id,
        "admin_id": entry.admin_id,
        "action": entry.action,
        "entity_type": entry.entity_type,
        "entity_id": entry.entity_id,
        "details": json.loads(entry.details) if entry.details else {},
        "created_at": entry.created_at.isoformat()
    } for entry in result["items"]]
    return create_success_response("audit_logs", result, current_user.id)


@router.get("/wallet-topup-locks")
@handle_operation_errors("get top-up locks")
async def get_topup_locks(
        lock_status: Optional[TopupLockStatusEnum] = Query(None,
                                                           alias="status"),
        page: int = Query(1, ge=1),
        page_size: int = Query(50, ge=1, le=200),
        db: Session = Depends(get_db),
        current_user: User = Depends(get_current_admin_user)
):
    query = db.query(WalletTopupLock)
    if lock_status:
        query = query.filter(WalletTopupLock.status == lock_status)
    result = paginate(query.order_by(WalletTopupLock.locked_at.desc(),
                                     WalletTopupLock.id.desc()),
                      page, page_size)
    result["items"] = [TopupLockService.to_dict(l) for l in result["items"]]
    return create_success_response("topup_locks", result, current_user.id)


@router.get("/bank-sms-payments")
@handle_operation_errors("get bank sms payments")
async def get_bank_sms_payments(
        processed: Optional[bool] = None,
        page: int = Query(1, ge=1),
        page_size: int = Query(50, ge=1, le=200),
        db: Session = Depends(get_db),
        current_user: User = Depends(get_current_admin_user)
):
    query = db.query(BankSmsPayment)
    if processed is not None:
        query = query.filter(BankSmsPayment.processed.is_(processed))
    result = paginate(query.order_by(BankSmsPayment.created_at.desc(),
                                     BankSmsPayment.id.desc()),
                      page, page_size)
    result["items"] = [TopupLockService.sms_to_dict(p)
                       for p in result["items"]]
    return create_success_response("bank_sms_payments", result,
                                   current_user.id)
