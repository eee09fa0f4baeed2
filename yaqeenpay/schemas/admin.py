# yaqeenpay/schemas/admin.py

from decimal import Decimal
from pydantic import BaseModel, Field, validator
from typing import Optional
from yaqeenpay.models.admin import SettingDataTypeEnum, SettingCategoryEnum
from yaqeenpay.models.kyc import VerificationStatusEnum
from yaqeenpay.models.topup import TopUpReviewStatusEnum
from yaqeenpay.models.user import UserRoleEnum


class TopUpReviewRequest(BaseModel):
    top_up_id: int
    status: TopUpReviewStatusEnum
    notes: Optional[str] = None


class UserActionRequest(BaseModel):
    user_id: int
    action: str
    role: Optional[UserRoleEnum] = None

    @validator('action')
    def validate_action(cls, v):
        v = v.lower()
        if v not in ('activate', 'deactivate', 'changerole'):
            raise ValueError('Action must be activate, deactivate or changerole')
        return v


class KycVerifyRequest(BaseModel):
    document_id: int
    status: VerificationStatusEnum
    reason: Optional[str] = None


class SellerReviewRequest(BaseModel):
    profile_id: int
    approve: bool
    reason: Optional[str] = None


class LedgerAdjustRequest(BaseModel):
    user_id: int
    amount: Decimal = Field(..., gt=0)
    direction: str
    reason: str = Field(..., min_length=3)

    @validator('direction')
    def validate_direction(cls, v):
        v = v.lower()
        if v not in ('credit', 'debit'):
            raise ValueError('Direction must be credit or debit')
        return v


class SettingCreate(BaseModel):
    setting_key: str = Field(..., min_length=2, max_length=100)
    setting_value: str
    data_type: SettingDataTypeEnum = SettingDataTypeEnum.string
    category: SettingCategoryEnum = SettingCategoryEnum.general
    description: Optional[str] = None
    is_sensitive: bool = False
    default_value: Optional[str] = None
    notes: Optional[str] = None


class SettingUpdate(BaseModel):
    setting_value: str
    notes: Optional[str] = None
    is_active: Optional[bool] = None
