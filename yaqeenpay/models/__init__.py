# yaqeenpay/models/__init__.py

from .user import User, RefreshToken, UserRoleEnum, KycStatusEnum
from .wallet import Wallet, WalletTransaction, WalletTransactionTypeEnum
from .ledger import (
    LedgerAccount,
    LedgerEntry,
    LedgerAccountTypeEnum,
    LedgerReferenceTypeEnum
)
from .catalog import Category, Product, ProductReview
from .order import Order, OrderItem, OrderStatusEnum
from .cart import CartItem, WishlistItem
from .escrow import Escrow, EscrowStatusEnum
from .dispute import Dispute, DisputeStatusEnum, DisputeResolutionEnum
from .topup import (
    TopUp,
    TopUpProof,
    WalletTopupLock,
    BankSmsPayment,
    TopUpChannelEnum,
    TopUpStatusEnum,
    TopUpReviewStatusEnum,
    TopupLockStatusEnum
)
from .withdrawal import Withdrawal, WithdrawalChannelEnum, WithdrawalStatusEnum
from .kyc import (
    KycDocument,
    BusinessProfile,
    KycDocumentTypeEnum,
    VerificationStatusEnum
)
from .notification import Notification, OutboxMessage, NotificationPreference
from .admin import (
    AdminSystemSetting,
    AdminSettingsAudit,
    AuditLog,
    SettingDataTypeEnum,
    SettingCategoryEnum
)
from .rating import Rating

__all__ = [
    "User",
    "RefreshToken",
    "UserRoleEnum",
    "KycStatusEnum",
    "Wallet",
    "WalletTransaction",
    "WalletTransactionTypeEnum",
    "LedgerAccount",
    "LedgerEntry",
    "LedgerAccountTypeEnum",
    "LedgerReferenceTypeEnum",
    "Category",
    "Product",
    "ProductReview",
    "Order",
    "OrderItem",
    "OrderStatusEnum",
    "CartItem",
    "WishlistItem",
    "Escrow",
    "EscrowStatusEnum",
    "Dispute",
    "DisputeStatusEnum",
    "DisputeResolutionEnum",
    "TopUp",
    "TopUpProof",
    "WalletTopupLock",
    "BankSmsPayment",
    "TopUpChannelEnum",
    "TopUpStatusEnum",
    "TopUpReviewStatusEnum",
    "TopupLockStatusEnum",
    "Withdrawal",
    "WithdrawalChannelEnum",
    "WithdrawalStatusEnum",
    "KycDocument",
    "BusinessProfile",
    "KycDocumentTypeEnum",
    "VerificationStatusEnum",
    "Notification",
    "OutboxMessage",
    "NotificationPreference",
    "AdminSystemSetting",
    "AdminSettingsAudit",
    "AuditLog",
    "SettingDataTypeEnum",
    "SettingCategoryEnum",
    "Rating"
]
