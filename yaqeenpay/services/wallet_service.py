# yaqeenpay/services/wallet_service.py

import logging
from decimal import Decimal
from typing import Optional, Dict, Any
from sqlalchemy import func
from sqlalchemy.orm import Session
from yaqeenpay.core.config import settings
from yaqeenpay.core.exceptions import InsufficientFundsError, \
    InvalidStateError, NotFoundError, CurrencyMismatchError
from yaqeenpay.core.money import Money
from yaqeenpay.models.wallet import Wallet, WalletTransaction, \
    WalletTransactionTypeEnum

logger = logging.getLogger(__name__)


class WalletService:
    """Balance and frozen-balance movements on user wallets.

    Every mutation appends a WalletTransaction and only flushes; the caller
    owns the surrounding transaction.
    """

    @staticmethod
    def get_or_create_wallet(
            db: Session,
            user_id: int,
            currency: Optional[str] = None,
            lock: bool = False
    ) -> Wallet:
        query = db.query(Wallet).filter(Wallet.user_id == user_id)
        if lock:
            query = query.with_for_update()
        wallet = query.first()
        if wallet:
            return wallet

        wallet = Wallet(
            user_id=user_id,
            balance=Decimal("0.00"),
            frozen_balance=Decimal("0.00"),
            currency=(currency or settings.DEFAULT_CURRENCY).upper(),
            is_active=True
        )
        db.add(wallet)
        db.flush()
        logger.info(f"Wallet {wallet.id} created for user {user_id}")
        return wallet

    @staticmethod
    def get_wallet(db: Session, user_id: int, lock: bool = False) -> Wallet:
        query = db.query(Wallet).filter(Wallet.user_id == user_id)
        if lock:
            query = query.with_for_update()
        wallet = query.first()
        if not wallet:
            raise NotFoundError(f"Wallet for user {user_id} not found")
        return wallet

    @staticmethod
    def _prepare(wallet: Wallet, amount) -> Money:
        if not wallet.is_active:
            raise InvalidStateError("Wallet is not active")
        money = amount if isinstance(amount, Money) else Money(
            amount, wallet.currency)
        if money.currency != wallet.currency:
            raise CurrencyMismatchError(
                f"Wallet currency is {wallet.currency}, got {money.currency}")
        return money.ensure_positive()

    @staticmethod
    def _record(
            db: Session,
            wallet: Wallet,
            transaction_type: WalletTransactionTypeEnum,
            money: Money,
            reason: Optional[str],
            reference_id: Optional[Any],
            reference_type: Optional[str]
    ) -> WalletTransaction:
        transaction = WalletTransaction(
            wallet_id=wallet.id,
            transaction_type=transaction_type,
            amount=money.amount,
            currency=money.currency,
            balance_after=wallet.balance,
            frozen_after=wallet.frozen_balance,
            reason=reason,
            reference_id=str(reference_id) if reference_id is not None else None,
            reference_type=reference_type
        )
        db.add(transaction)
        db.flush()
        return transaction

    @staticmethod
    def credit(db: Session, wallet: Wallet, amount, reason: str = None,
               reference_id=None, reference_type: str = None) -> WalletTransaction:
        money = WalletService._prepare(wallet, amount)
        wallet.balance = wallet.balance + money.amount
        logger.info(f"Wallet {wallet.id} credited {money.amount} {money.currency}: {reason}")
        return WalletService._record(db, wallet, WalletTransactionTypeEnum.credit,
                                     money, reason, reference_id, reference_type)

    @staticmethod
    def debit(db: Session, wallet: Wallet, amount, reason: str = None,
              reference_id=None, reference_type: str = None) -> WalletTransaction:
        money = WalletService._prepare(wallet, amount)
        if wallet.available_balance < money.amount:
            raise InsufficientFundsError(
                f"Insufficient balance. Required: {money.amount}, available: {wallet.available_balance}")
        wallet.balance = wallet.balance - money.amount
        logger.info(f"Wallet {wallet.id} debited {money.amount} {money.currency}: {reason}")
        return WalletService._record(db, wallet, WalletTransactionTypeEnum.debit,
                                     money, reason, reference_id, reference_type)

    @staticmethod
    def freeze(db: Session, wallet: Wallet, amount, reason: str = None,
               reference_id=None, reference_type: str = None) -> WalletTransaction:
        money = WalletService._prepare(wallet, amount)
        if wallet.available_balance < money.amount:
            raise InsufficientFundsError(
                f"Insufficient available balance to freeze {money.amount}, available: {wallet.available_balance}")
        wallet.frozen_balance = wallet.frozen_balance + money.amount
        logger.info(f"Wallet {wallet.id} froze {money.amount} {money.currency}")
        return WalletService._record(db, wallet, WalletTransactionTypeEnum.freeze,
                                     money, reason, reference_id, reference_type)

    @staticmethod
    def unfreeze(db: Session, wallet: Wallet, amount, reason: str = None,
                 reference_id=None, reference_type: str = None) -> WalletTransaction:
        money = WalletService._prepare(wallet, amount)
        if wallet.frozen_balance < money.amount:
            raise InsufficientFundsError(
                f"Cannot unfreeze {money.amount}, frozen: {wallet.frozen_balance}")
        wallet.frozen_balance = wallet.frozen_balance - money.amount
        logger.info(f"Wallet {wallet.id} unfroze {money.amount} {money.currency}")
        return WalletService._record(db, wallet, WalletTransactionTypeEnum.unfreeze,
                                     money, reason, reference_id, reference_type)

    @staticmethod
    def transfer_frozen_to_debit(db: Session, wallet: Wallet, amount,
                                 reason: str = None, reference_id=None,
                                 reference_type: str = None) -> WalletTransaction:
        money = WalletService._prepare(wallet, amount)
        if wallet.frozen_balance < money.amount:
            raise InsufficientFundsError(
                f"Cannot debit {money.amount} from frozen funds, frozen: {wallet.frozen_balance}")
        wallet.frozen_balance = wallet.frozen_balance - money.amount
        wallet.balance = wallet.balance - money.amount
        logger.info(f"Wallet {wallet.id} debited {money.amount} {money.currency} from frozen funds")
        return WalletService._record(db, wallet,
                                     WalletTransactionTypeEnum.frozen_to_debit,
                                     money, reason, reference_id, reference_type)

    @staticmethod
    def get_summary(db: Session, wallet: Wallet) -> Dict[str, Any]:
        """Totals per transaction type for a wallet"""
        rows = db.query(
            WalletTransaction.transaction_type,
            func.count(WalletTransaction.id),
            func.coalesce(func.sum(WalletTransaction.amount), 0)
        ).filter(
            WalletTransaction.wallet_id == wallet.id
        ).group_by(WalletTransaction.transaction_type).all()

        totals = {t.value: {"count": 0, "total": Decimal("0.00")}
                  for t in WalletTransactionTypeEnum}
        for transaction_type, count, total in rows:
            totals[transaction_type.value] = {
                "count": count,
                "total": Decimal(str(total))
            }

        return {
            "wallet_id": wallet.id,
            "currency": wallet.currency,
            "balance": wallet.balance,
            "frozen_balance": wallet.frozen_balance,
            "available_balance": wallet.available_balance,
            "total_credited": totals["credit"]["total"],
            "total_debited": totals["debit"]["total"] + totals["frozen_to_debit"]["total"],
            "by_type": totals
        }
