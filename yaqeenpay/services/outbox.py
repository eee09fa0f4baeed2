# yaqeenpay/services/outbox.py

import asyncio
import json
import logging
from datetime import datetime
from typing import Any, Dict, Optional
import httpx
from sqlalchemy.orm import Session
from yaqeenpay.core.config import settings
from yaqeenpay.core.database import SessionLocal
from yaqeenpay.core.money import format_currency_amount
from yaqeenpay.models.notification import OutboxMessage
from yaqeenpay.services.notifications import NotificationService, \
    NotificationPreferenceService

logger = logging.getLogger(__name__)

SMS_MESSAGE_TYPE = "sms"
PREFERENCE_SKIP = "Skipped: disabled by preferences"

# message type -> notification title
NOTIFICATION_TITLES = {
    "WithdrawalInitiated": "Withdrawal requested",
    "WithdrawalPendingApproval": "Withdrawal pending approval",
    "WithdrawalSettled": "Withdrawal completed",
    "WithdrawalFailed": "Withdrawal failed",
    "WithdrawalReversed": "Withdrawal reversed",
    "TopUpConfirmed": "Wallet topped up",
    "OrderPaid": "Order paid",
    "OrderShipped": "Order shipped",
    "OrderDelivered": "Order delivered",
    "OrderCompleted": "Order completed",
    "OrderCancelled": "Order cancelled",
    "DisputeOpened": "Dispute opened",
    "DisputeResolved": "Dispute resolved",
}


class OutboxService:
    """Writes domain events in the same transaction as the state change"""

    @staticmethod
    def enqueue(db: Session, message_type: str,
                payload: Dict[str, Any]) -> OutboxMessage:
        message = OutboxMessage(
            message_type=message_type,
            payload=json.dumps(payload, default=str),
            occurred_on=datetime.utcnow(),
            retry_count=0
        )
        db.add(message)
        db.flush()
        logger.debug(f"Outbox message {message.id} queued: {message_type}")
        return message

    @staticmethod
    def notify(db: Session, message_type: str, user_id: int,
               message: Optional[str] = None, **extra) -> OutboxMessage:
        payload = {"user_id": user_id}
        if message:
            payload["message"] = message
        payload.update(extra)
        return OutboxService.enqueue(db, message_type, payload)


class OutboxDispatcher:
    """Delivers unprocessed outbox messages in occurrence order"""

    @staticmethod
    def _default_message(message_type: str, payload: Dict[str, Any]) -> str:
        amount = payload.get("amount")
        reference = payload.get("reference") or payload.get("order_code")
        text = NOTIFICATION_TITLES[message_type]
        if amount is not None:
            text = f"{text}: {format_currency_amount(amount, payload.get('currency', settings.DEFAULT_CURRENCY))}"
        if reference:
            text = f"{text} (ref {reference})"
        return text

    @staticmethod
    def _handle_notification(db: Session,
                             message: OutboxMessage) -> Optional[str]:
        payload = message.payload_dict
        user_id = payload.get("user_id")
        if user_id is None:
            raise ValueError("Notification payload has no user_id")
        if not NotificationPreferenceService.allows(
                db, int(user_id), "in_app", message.message_type):
            return PREFERENCE_SKIP

        NotificationService.create(
            db,
            user_id=int(user_id),
            notification_type=message.message_type,
            title=NOTIFICATION_TITLES[message.message_type],
            message=payload.get("message") or OutboxDispatcher._default_message(
                message.message_type, payload),
            reference_type=payload.get("reference_type"),
            reference_id=payload.get("reference_id")
        )
        return None

    @staticmethod
    def _handle_sms(db: Session, message: OutboxMessage) -> Optional[str]:
        """Send through the SMS gateway; returns a skip reason when there is
        no gateway or the recipient opted out"""
        if not settings.SMS_GATEWAY_URL:
            return "Skipped: sms gateway not configured"

        payload = message.payload_dict
        user_id = payload.get("user_id")
        if user_id is not None and not NotificationPreferenceService.allows(
                db, int(user_id), "sms", message.message_type):
            return PREFERENCE_SKIP

        headers = {}
        if settings.SMS_GATEWAY_TOKEN:
            headers["Authorization"] = f"Bearer {settings.SMS_GATEWAY_TOKEN}"

        response = httpx.post(
            settings.SMS_GATEWAY_URL,
            json={"to": payload.get("phone_number"),
                  "message": payload.get("message")},
            headers=headers,
            timeout=settings.SMS_GATEWAY_TIMEOUT
        )
        response.raise_for_status()
        return None

    @staticmethod
    def dispatch_pending(db: Session,
                         batch_size: Optional[int] = None) -> Dict[str, int]:
        batch_size = batch_size or settings.OUTBOX_BATCH_SIZE
        messages = db.query(OutboxMessage).filter(
            OutboxMessage.processed_on.is_(None),
            OutboxMessage.retry_count < settings.OUTBOX_MAX_RETRIES
        ).order_by(OutboxMessage.occurred_on, OutboxMessage.id).limit(
            batch_size).all()

        stats = {"processed": 0, "failed": 0, "skipped": 0}

        for message in messages:
            try:
                if message.message_type in NOTIFICATION_TITLES:
                    skip_reason = OutboxDispatcher._handle_notification(
                        db, message)
                    message.error = skip_reason
                    stats["skipped" if skip_reason else "processed"] += 1
                elif message.message_type == SMS_MESSAGE_TYPE:
                    skip_reason = OutboxDispatcher._handle_sms(db, message)
                    message.error = skip_reason
                    stats["skipped" if skip_reason else "processed"] += 1
                else:
                    message.error = "Skipped: unsupported type"
                    stats["skipped"] += 1
                    logger.warning(
                        f"Outbox message {message.id} has unsupported type {message.message_type}")

                message.processed_on = datetime.utcnow()
                db.commit()
            except Exception as e:
                db.rollback()
                message.error = str(e)[:1000]
                message.retry_count = (message.retry_count or 0) + 1
                db.commit()
                stats["failed"] += 1
                logger.error(
                    f"Outbox message {message.id} ({message.message_type}) failed: {e}")

        if messages:
            logger.info(f"Outbox dispatch: {stats}")
        return stats


async def run_outbox_dispatcher() -> None:
    """Background loop; each cycle uses its own session"""
    logger.info(
        f"Outbox dispatcher started (interval={settings.OUTBOX_INTERVAL_SECONDS}s, batch={settings.OUTBOX_BATCH_SIZE})")

    def _cycle():
        db = SessionLocal()
        try:
            return OutboxDispatcher.dispatch_pending(db)
        finally:
            db.close()

    while True:
        try:
            await asyncio.to_thread(_cycle)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Outbox dispatcher cycle failed: {e}", exc_info=True)
        await asyncio.sleep(settings.OUTBOX_INTERVAL_SECONDS)
