# yaqeenpay/schemas/order.py

from decimal import Decimal
from pydantic import BaseModel, Field, validator
from typing import List, Optional
from yaqeenpay.models.dispute import DisputeResolutionEnum


class OrderCreate(BaseModel):
    title: str = Field(..., min_length=3, max_length=200)
    description: Optional[str] = None
    seller_id: Optional[int] = None
    amount: Optional[Decimal] = Field(None, gt=0)
    product_id: Optional[int] = None
    quantity: int = Field(1, ge=1, le=1000)
    currency: Optional[str] = Field(None, min_length=3, max_length=3)


class ShipRequest(BaseModel):
    courier: str = Field(..., min_length=2, max_length=100)
    tracking_number: str = Field(..., min_length=3, max_length=100)
    shipping_proof: Optional[str] = Field(None, max_length=500)


class DeliverRequest(BaseModel):
    notes: Optional[str] = None


class RejectRequest(BaseModel):
    reason: str = Field(..., min_length=3)


class DisputeCreate(BaseModel):
    reason: str = Field(..., min_length=3, max_length=200)
    description: Optional[str] = None
    evidence: List[str] = []


class EvidenceRequest(BaseModel):
    urls: List[str] = Field(..., min_length=1)


class AdminNotesRequest(BaseModel):
    notes: str = Field(..., min_length=1)


class DisputeResolveRequest(BaseModel):
    resolution: DisputeResolutionEnum
    notes: Optional[str] = None
    buyer_refund_amount: Optional[Decimal] = Field(None, gt=0)

    @validator('buyer_refund_amount', always=True)
    def validate_refund(cls, v, values):
        if values.get('resolution') == DisputeResolutionEnum.compromise and v is None:
            raise ValueError('Compromise needs a buyer refund amount')
        return v
