# yaqeenpay/services/ledger_service.py

import logging
import uuid
from decimal import Decimal
from typing import Optional, Dict, Any
from sqlalchemy import func
from sqlalchemy.orm import Session
from yaqeenpay.core.config import settings
from yaqeenpay.core.exceptions import ValidationError, CurrencyMismatchError
from yaqeenpay.core.money import to_decimal, normalize_currency
from yaqeenpay.models.ledger import LedgerAccount, LedgerEntry, \
    LedgerAccountTypeEnum, LedgerReferenceTypeEnum
from yaqeenpay.models.user import User, UserRoleEnum
from yaqeenpay.models.wallet import Wallet

logger = logging.getLogger(__name__)


class LedgerService:
    """Double-entry ledger. Each entry moves an amount from the debit account
    to the credit account, so the balances of all accounts sum to zero."""

    WALLET_ACCOUNT_TYPES = [
        LedgerAccountTypeEnum.buyer_wallet,
        LedgerAccountTypeEnum.seller_wallet
    ]

    @staticmethod
    def new_correlation_id() -> str:
        return uuid.uuid4().hex

    @staticmethod
    def _account_code(account_type: LedgerAccountTypeEnum,
                      user_id: Optional[int], currency: str) -> str:
        if user_id is None:
            return f"{account_type.value.upper()}-{currency}"
        return f"{account_type.value.upper()}-{user_id}-{currency}"

    @staticmethod
    def get_or_create_account(
            db: Session,
            account_type: LedgerAccountTypeEnum,
            user_id: Optional[int] = None,
            currency: Optional[str] = None
    ) -> LedgerAccount:
        currency = normalize_currency(currency)
        code = LedgerService._account_code(account_type, user_id, currency)

        account = db.query(LedgerAccount).filter(
            LedgerAccount.code == code).first()
        if account:
            return account

        name = account_type.value.replace("_", " ").title()
        if user_id is not None:
            name = f"{name} #{user_id}"

        account = LedgerAccount(
            code=code,
            name=name,
            account_type=account_type,
            user_id=user_id,
            currency=currency,
            balance=Decimal("0.00")
        )
        db.add(account)
        db.flush()
        logger.debug(f"Ledger account {code} created")
        return account

    @staticmethod
    def system_account(db: Session, account_type: LedgerAccountTypeEnum,
                       currency: Optional[str] = None) -> LedgerAccount:
        return LedgerService.get_or_create_account(db, account_type, None,
                                                   currency)

    @staticmethod
    def user_account(db: Session, user: User, currency: Optional[str] = None,
                     side: Optional[LedgerAccountTypeEnum] = None
                     ) -> LedgerAccount:
        """Wallet account of a user. Order flows pass the user's side of the
        order; other flows fall back to the user's role."""
        if side is None:
            side = LedgerAccountTypeEnum.seller_wallet \
                if user.role == UserRoleEnum.seller \
                else LedgerAccountTypeEnum.buyer_wallet
        if side not in LedgerService.WALLET_ACCOUNT_TYPES:
            raise ValidationError(f"{side.value} is not a wallet account")
        return LedgerService.get_or_create_account(db, side, user.id,
                                                   currency)

    @staticmethod
    def post_entry(
            db: Session,
            debit_account: LedgerAccount,
            credit_account: LedgerAccount,
            amount,
            reference_type: LedgerReferenceTypeEnum,
            reference_id: Optional[Any] = None,
            correlation_id: Optional[str] = None,
            description: Optional[str] = None
    ) -> LedgerEntry:
        amount = to_decimal(amount)
        if amount <= 0:
            raise ValidationError("Ledger entry amount must be positive")
        if debit_account.id == credit_account.id:
            raise ValidationError(
                "Ledger entry needs two different accounts")
        if debit_account.currency != credit_account.currency:
            raise CurrencyMismatchError(
                f"Cannot post between {debit_account.currency} and {credit_account.currency} accounts")

        debit_account.balance = debit_account.balance - amount
        credit_account.balance = credit_account.balance + amount

        entry = LedgerEntry(
            debit_account_id=debit_account.id,
            credit_account_id=credit_account.id,
            amount=amount,
            currency=debit_account.currency,
            reference_type=reference_type,
            reference_id=str(reference_id) if reference_id is not None else None,
            correlation_id=correlation_id,
            description=description
        )
        db.add(entry)
        db.flush()

        logger.info(
            f"Ledger {reference_type.value}: {debit_account.code} -> {credit_account.code} {amount}")
        return entry

    @staticmethod
    def reconcile_user(db: Session, user_id: int) -> Dict[str, Any]:
        """Compare a user's wallet ledger accounts with the wallet's
        available balance"""
        wallet = db.query(Wallet).filter(Wallet.user_id == user_id).first()
        wallet_available = wallet.available_balance if wallet else Decimal(
            "0.00")

        ledger_total = db.query(
            func.coalesce(func.sum(LedgerAccount.balance), 0)
        ).filter(
            LedgerAccount.user_id == user_id,
            LedgerAccount.account_type.in_(LedgerService.WALLET_ACCOUNT_TYPES)
        ).scalar()
        ledger_total = to_decimal(ledger_total)

        difference = ledger_total - to_decimal(wallet_available)
        if difference != 0:
            logger.warning(
                f"Ledger mismatch for user {user_id}: ledger={ledger_total}, wallet={wallet_available}")

        return {
            "user_id": user_id,
            "ledger_total": ledger_total,
            "wallet_available": to_decimal(wallet_available),
            "difference": difference,
            "balanced": difference == 0
        }

    @staticmethod
    def trial_balance(db: Session, currency: Optional[str] = None) -> Dict[
        str, Any]:
        currency = normalize_currency(currency or settings.DEFAULT_CURRENCY)
        rows = db.query(
            LedgerAccount.account_type,
            func.coalesce(func.sum(LedgerAccount.balance), 0)
        ).filter(
            LedgerAccount.currency == currency
        ).group_by(LedgerAccount.account_type).all()

        by_type = {t.value: Decimal("0.00") for t in LedgerAccountTypeEnum}
        for account_type, total in rows:
            by_type[account_type.value] = to_decimal(total)

        total = sum(by_type.values(), Decimal("0.00"))
        return {
            "currency": currency,
            "accounts": by_type,
            "total": total,
            "balanced": total == 0
        }
