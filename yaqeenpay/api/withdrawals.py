# yaqeenpay/api/withdrawals.py

import logging
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from yaqeenpay.core.config import settings
from yaqeenpay.core.database import get_db
from yaqeenpay.core.core_auth import get_current_user
from yaqeenpay.core.money import format_currency_amount
from yaqeenpay.models.user import User
from yaqeenpay.schemas.withdrawal import WithdrawalRequest
from yaqeenpay.services.withdrawal_service import WithdrawalService
from yaqeenpay.api.utils import handle_operation_errors, \
    create_success_response, paginate

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED)
@handle_operation_errors("request withdrawal")
async def request_withdrawal(
        payload: WithdrawalRequest,
        db: Session = Depends(get_db),
        current_user: User = Depends(get_current_user)
):
    """Request a payout; amount and fee leave the wallet immediately"""
    withdrawal = WithdrawalService.request(
        db, current_user,
        amount=payload.amount,
        channel=payload.channel,
        account_number=payload.account_number,
        account_title=payload.account_title,
        bank_name=payload.bank_name
    )

    logger.info(
        f"Withdrawal created: ID={withdrawal.id}, user={current_user.id}, amount={withdrawal.amount}, fee={withdrawal.fee_amount}")

    return create_success_response(
        "withdrawal_requested", WithdrawalService.to_dict(withdrawal),
        current_user.id,
        f"Withdrawal of {format_currency_amount(withdrawal.amount, withdrawal.currency)} submitted for review")


@router.get("")
@handle_operation_errors("get user withdrawals")
async def get_user_withdrawals(
        page: int = Query(1, ge=1),
        page_size: int = Query(20, ge=1, le=100),
        db: Session = Depends(get_db),
        current_user: User = Depends(get_current_user)
):
    """Get user's withdrawal history"""
    result = paginate(WithdrawalService.list_for_user(db, current_user.id),
                      page, page_size)
    result["items"] = [WithdrawalService.to_dict(w) for w in result["items"]]
    result["limits"] = {
        "min_amount": settings.MIN_WITHDRAWAL_AMOUNT,
        "max_amount": settings.MAX_WITHDRAWAL_AMOUNT
    }
    return create_success_response("user_withdrawals", result,
                                   current_user.id)


@router.get("/{withdrawal_id}")
@handle_operation_errors("get withdrawal")
async def get_withdrawal(
        withdrawal_id: int,
        db: Session = Depends(get_db),
        current_user: User = Depends(get_current_user)
):
    withdrawal = WithdrawalService.get(db, withdrawal_id, current_user)
    return create_success_response("withdrawal",
                                   WithdrawalService.to_dict(withdrawal),
                                   current_user.id)
