# yaqeenpay/api/webhooks.py

import hmac
import logging
from typing import Optional
from fastapi import APIRouter, Depends, Header, HTTPException, status
from sqlalchemy.orm import Session
from yaqeenpay.core.config import settings
from yaqeenpay.core.database import get_db
from yaqeenpay.schemas.wallet import BankSmsWebhook
from yaqeenpay.services.topup_service import TopupLockService
from yaqeenpay.api.utils import handle_operation_errors, create_success_response

logger = logging.getLogger(__name__)

router = APIRouter()


def verify_webhook_secret(
        x_webhook_secret: Optional[str] = Header(None)
) -> None:
    if not x_webhook_secret or not hmac.compare_digest(
            x_webhook_secret, settings.WEBHOOK_SECRET):
        logger.warning("Rejected bank SMS webhook with invalid secret")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED,
                            detail="Invalid webhook secret")


@router.post("/bank-sms", dependencies=[Depends(verify_webhook_secret)])
@handle_operation_errors("process bank sms webhook")
async def bank_sms_webhook(
        payload: BankSmsWebhook,
        db: Session = Depends(get_db)
):
    """Incoming bank credit SMS; completes the matching top-up lock"""
    payment = TopupLockService.process_bank_sms(db, payload.sender,
                                                payload.message,
                                                payload.amount,
                                                payload.reference)
    return create_success_response(
        "bank_sms_processed", TopupLockService.sms_to_dict(payment),
        message="Payment matched" if payment.processed else "No matching lock")


@router.get("/health")
async def webhook_health():
    """Webhook endpoint health check"""
    return {
        "status": "healthy",
        "service": "webhook_handler",
        "endpoints": [
            "/webhooks/bank-sms"
        ]
    }
