# yaqeenpay/schemas/user.py

from pydantic import BaseModel, EmailStr, Field, validator
from typing import Optional
from datetime import datetime
from yaqeenpay.models.user import UserRoleEnum, KycStatusEnum


class UserBase(BaseModel):
    username: str = Field(..., min_length=3, max_length=50)
    email: Optional[EmailStr] = None
    full_name: Optional[str] = None
    phone_number: Optional[str] = Field(None, max_length=32)


class UserCreate(UserBase):
    password: str = Field(..., min_length=8, max_length=100)
    role: UserRoleEnum = UserRoleEnum.buyer

    @validator('password')
    def validate_password(cls, v):
        if len(v) < 8:
            raise ValueError('Password must be at least 8 characters')
        if v.isalpha() or v.isdigit():
            raise ValueError('Password must mix letters and numbers')
        return v

    @validator('role')
    def validate_role(cls, v):
        if v == UserRoleEnum.admin:
            raise ValueError('Cannot self-register as admin')
        return v


class UserUpdate(BaseModel):
    email: Optional[EmailStr] = None
    full_name: Optional[str] = None
    phone_number: Optional[str] = Field(None, max_length=32)


class UserResponse(UserBase):
    id: int
    role: UserRoleEnum
    is_active: bool
    is_admin: bool
    kyc_status: KycStatusEnum
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class RefreshRequest(BaseModel):
    refresh_token: str = Field(..., min_length=10)


class PasswordChange(BaseModel):
    current_password: str
    new_password: str = Field(..., min_length=8)

    @validator('new_password')
    def validate_new_password(cls, v):
        if len(v) < 8:
            raise ValueError('New password must be at least 8 characters')
        return v
