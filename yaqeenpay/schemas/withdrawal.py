# yaqeenpay/schemas/withdrawal.py

from decimal import Decimal
from pydantic import BaseModel, Field, validator
from typing import Optional
from yaqeenpay.models.withdrawal import WithdrawalChannelEnum


class WithdrawalRequest(BaseModel):
    amount: Decimal = Field(..., gt=0, description="Withdrawal amount")
    channel: WithdrawalChannelEnum
    account_number: str = Field(..., min_length=5, max_length=64)
    account_title: Optional[str] = Field(None, max_length=200)
    bank_name: Optional[str] = Field(None, max_length=100)

    @validator('account_number')
    def validate_account_number(cls, v):
        v = v.replace(" ", "").replace("-", "")
        if not v.isalnum():
            raise ValueError('Account number may only contain letters and digits')
        return v


class WithdrawalApproveRequest(BaseModel):
    channel_reference: Optional[str] = Field(None, max_length=100)
    settle: bool = True


class WithdrawalReasonRequest(BaseModel):
    reason: str = Field(..., min_length=3)
