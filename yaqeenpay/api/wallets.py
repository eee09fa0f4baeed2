# yaqeenpay/api/wallets.py

import logging
from typing import Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from yaqeenpay.core.database import get_db
from yaqeenpay.core.core_auth import get_current_user
from yaqeenpay.models.user import User
from yaqeenpay.models.wallet import WalletTransaction, WalletTransactionTypeEnum
from yaqeenpay.schemas.wallet import WalletBalanceResponse, \
    WalletTransactionResponse, TopUpRequest, TopUpProofRequest, \
    TopUpMarkPaidRequest, TopupLockRequest
from yaqeenpay.services.topup_service import TopUpService, TopupLockService
from yaqeenpay.services.wallet_service import WalletService
from yaqeenpay.api.utils import handle_operation_errors, \
    create_success_response, paginate

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/balance")
@handle_operation_errors("get wallet balance")
async def get_balance(
        db: Session = Depends(get_db),
        current_user: User = Depends(get_current_user)
):
    """Balance, frozen and available amounts of the current user's wallet"""
    wallet = WalletService.get_or_create_wallet(db, current_user.id)
    db.commit()

    return create_success_response("wallet_balance", WalletBalanceResponse(
        wallet_id=wallet.id,
        balance=wallet.balance,
        frozen_balance=wallet.frozen_balance,
        available_balance=wallet.available_balance,
        currency=wallet.currency,
        is_active=wallet.is_active
    ).model_dump(), current_user.id)


@router.get("/summary")
@handle_operation_errors("get wallet summary")
async def get_summary(
        db: Session = Depends(get_db),
        current_user: User = Depends(get_current_user)
):
    wallet = WalletService.get_or_create_wallet(db, current_user.id)
    db.commit()
    return create_success_response(
        "wallet_summary", WalletService.get_summary(db, wallet),
        current_user.id)


@router.get("/transactions")
@handle_operation_errors("get wallet transactions")
async def get_transactions(
        page: int = Query(1, ge=1),
        page_size: int = Query(20, ge=1, le=100),
        transaction_type: Optional[WalletTransactionTypeEnum] = None,
        db: Session = Depends(get_db),
        current_user: User = Depends(get_current_user)
):
    """Paginated wallet history, newest first"""
    wallet = WalletService.get_or_create_wallet(db, current_user.id)
    query = db.query(WalletTransaction).filter(
        WalletTransaction.wallet_id == wallet.id)
    if transaction_type:
        query = query.filter(
            WalletTransaction.transaction_type == transaction_type)
    result = paginate(query.order_by(WalletTransaction.id.desc()), page,
                      page_size)
    result["items"] = [WalletTransactionResponse.model_validate(t).model_dump()
                       for t in result["items"]]
    return create_success_response("wallet_transactions", result,
                                   current_user.id)


# Top-ups
@router.post("/top-up")
@handle_operation_errors("initiate top-up")
async def initiate_top_up(
        payload: TopUpRequest,
        db: Session = Depends(get_db),
        current_user: User = Depends(get_current_user)
):
    top_up = TopUpService.initiate(db, current_user, payload.amount,
                                   payload.channel,
                                   payload.external_reference,
                                   payload.currency)
    return create_success_response("top_up_initiated",
                                   TopUpService.to_dict(top_up),
                                   current_user.id,
                                   "Top-up initiated")


@router.get("/top-ups")
@handle_operation_errors("list top-ups")
async def list_top_ups(
        page: int = Query(1, ge=1),
        page_size: int = Query(20, ge=1, le=100),
        db: Session = Depends(get_db),
        current_user: User = Depends(get_current_user)
):
    result = paginate(TopUpService.list_for_user(db, current_user.id), page,
                      page_size)
    result["items"] = [TopUpService.to_dict(t) for t in result["items"]]
    return create_success_response("top_ups", result, current_user.id)


@router.post("/top-up/{top_up_id}/proof")
@handle_operation_errors("submit top-up proof")
async def submit_top_up_proof(
        top_up_id: int,
        payload: TopUpProofRequest,
        db: Session = Depends(get_db),
        current_user: User = Depends(get_current_user)
):
    top_up = TopUpService.submit_proof(db, top_up_id, current_user,
                                       payload.file_url, payload.notes)
    return create_success_response("top_up_proof_submitted",
                                   TopUpService.to_dict(top_up),
                                   current_user.id)


@router.post("/top-up/{top_up_id}/confirm")
@handle_operation_errors("confirm top-up payment")
async def mark_top_up_paid(
        top_up_id: int,
        payload: Optional[TopUpMarkPaidRequest] = None,
        db: Session = Depends(get_db),
        current_user: User = Depends(get_current_user)
):
    """The user reports the payment as made; an admin confirms it later"""
    top_up = TopUpService.mark_pending_confirmation(
        db, top_up_id, current_user,
        payload.external_reference if payload else None)
    return create_success_response("top_up_pending_confirmation",
                                   TopUpService.to_dict(top_up),
                                   current_user.id,
                                   "Payment submitted for confirmation")


@router.post("/top-up/{top_up_id}/cancel")
@handle_operation_errors("cancel top-up")
async def cancel_top_up(
        top_up_id: int,
        db: Session = Depends(get_db),
        current_user: User = Depends(get_current_user)
):
    top_up = TopUpService.cancel(db, top_up_id, current_user)
    return create_success_response("top_up_cancelled",
                                   TopUpService.to_dict(top_up),
                                   current_user.id)


# QR top-up locks
@router.post("/topup-lock")
@handle_operation_errors("create top-up lock")
async def create_topup_lock(
        payload: TopupLockRequest,
        db: Session = Depends(get_db),
        current_user: User = Depends(get_current_user)
):
    """Reserve an exact amount to pay by QR; the amount may be bumped when
    another user holds it"""
    lock = TopupLockService.create_lock(db, current_user, payload.amount)
    data = TopupLockService.to_dict(lock)
    data["amount_adjusted"] = lock.amount != payload.amount
    return create_success_response(
        "topup_lock_created", data, current_user.id,
        f"Pay exactly {lock.amount} {lock.currency} before {lock.expires_at.isoformat()}")


@router.post("/topup-lock/{reference}/paid")
@handle_operation_errors("mark top-up lock paid")
async def mark_topup_lock_paid(
        reference: str,
        db: Session = Depends(get_db),
        current_user: User = Depends(get_current_user)
):
    lock = TopupLockService.mark_payment_initiated(db, current_user, reference)
    return create_success_response("topup_lock_payment_initiated",
                                   TopupLockService.to_dict(lock),
                                   current_user.id)


@router.get("/topup-lock/{reference}")
@handle_operation_errors("get top-up lock")
async def get_topup_lock(
        reference: str,
        db: Session = Depends(get_db),
        current_user: User = Depends(get_current_user)
):
    lock = TopupLockService.get_lock(db, reference, current_user)
    return create_success_response("topup_lock",
                                   TopupLockService.to_dict(lock),
                                   current_user.id)
