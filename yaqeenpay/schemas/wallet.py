# yaqeenpay/schemas/wallet.py

from decimal import Decimal
from pydantic import BaseModel, Field, validator
from typing import Optional
from yaqeenpay.models.topup import TopUpChannelEnum
from yaqeenpay.models.wallet import WalletTransactionTypeEnum


class WalletBalanceResponse(BaseModel):
    wallet_id: int
    balance: Decimal
    frozen_balance: Decimal
    available_balance: Decimal
    currency: str
    is_active: bool


class WalletTransactionResponse(BaseModel):
    id: int
    transaction_type: WalletTransactionTypeEnum
    amount: Decimal
    currency: str
    balance_after: Decimal
    frozen_after: Decimal
    reason: Optional[str]
    reference_id: Optional[str]
    reference_type: Optional[str]

    class Config:
        from_attributes = True


class TopUpRequest(BaseModel):
    amount: Decimal = Field(..., gt=0, description="Top-up amount")
    channel: TopUpChannelEnum
    external_reference: Optional[str] = Field(None, max_length=100)
    currency: Optional[str] = Field(None, min_length=3, max_length=3)

    @validator('channel')
    def validate_channel(cls, v):
        if v == TopUpChannelEnum.qr:
            raise ValueError('QR top-ups go through a top-up lock')
        return v


class TopUpProofRequest(BaseModel):
    file_url: str = Field(..., min_length=5, max_length=500)
    notes: Optional[str] = None


class TopUpMarkPaidRequest(BaseModel):
    external_reference: Optional[str] = Field(None, max_length=100)


class TopupLockRequest(BaseModel):
    amount: Decimal = Field(..., gt=0)


class BankSmsWebhook(BaseModel):
    sender: Optional[str] = Field(None, max_length=64)
    message: Optional[str] = None
    amount: Decimal = Field(..., gt=0)
    reference: Optional[str] = Field(None, max_length=100)

    @validator('reference')
    def strip_reference(cls, v):
        if v is None:
            return v
        return v.strip() or None
