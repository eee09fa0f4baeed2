# yaqeenpay/schemas/marketplace.py

from decimal import Decimal
from pydantic import BaseModel, Field
from typing import Dict, List, Optional
from yaqeenpay.models.kyc import KycDocumentTypeEnum


class RatingCreate(BaseModel):
    order_id: int
    score: int = Field(..., ge=1, le=5)
    comment: Optional[str] = Field(None, max_length=1000)
    category: str = "overall"


class RatingUpdate(BaseModel):
    score: Optional[int] = Field(None, ge=1, le=5)
    comment: Optional[str] = Field(None, max_length=1000)


class CategoryCreate(BaseModel):
    name: str = Field(..., min_length=2, max_length=100)
    description: Optional[str] = None


class ProductCreate(BaseModel):
    name: str = Field(..., min_length=2, max_length=200)
    description: Optional[str] = None
    price: Decimal = Field(..., gt=0)
    category_id: Optional[int] = None
    stock_quantity: int = Field(0, ge=0)
    currency: Optional[str] = Field(None, min_length=3, max_length=3)


class ProductUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=2, max_length=200)
    description: Optional[str] = None
    price: Optional[Decimal] = Field(None, gt=0)
    category_id: Optional[int] = None
    stock_quantity: Optional[int] = Field(None, ge=0)
    is_active: Optional[bool] = None


class ProductReviewCreate(BaseModel):
    rating: int = Field(..., ge=1, le=5)
    comment: Optional[str] = Field(None, max_length=1000)


class KycDocumentCreate(BaseModel):
    document_type: KycDocumentTypeEnum
    document_url: str = Field(..., min_length=5, max_length=500)
    document_number: Optional[str] = Field(None, max_length=64)


class BusinessProfileRequest(BaseModel):
    business_name: str = Field(..., min_length=2, max_length=200)
    business_type: Optional[str] = Field(None, max_length=100)
    business_category: Optional[str] = Field(None, max_length=100)
    description: Optional[str] = None
    website: Optional[str] = Field(None, max_length=255)
    phone_number: Optional[str] = Field(None, max_length=32)


class CartItemAdd(BaseModel):
    product_id: int
    quantity: int = Field(1, ge=1)


class CartItemUpdate(BaseModel):
    quantity: int = Field(..., ge=0)


class CheckoutRequest(BaseModel):
    cart_item_ids: Optional[List[int]] = None
    delivery_address: Optional[str] = Field(None, max_length=500)
    delivery_notes: Optional[str] = Field(None, max_length=1000)


class WishlistAdd(BaseModel):
    product_id: int


class NotificationPreferencesUpdate(BaseModel):
    in_app_enabled: Optional[bool] = None
    email_enabled: Optional[bool] = None
    sms_enabled: Optional[bool] = None
    types: Optional[Dict[str, bool]] = None
