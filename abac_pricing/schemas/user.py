from decimal import Decimal
from datetime import datetime
from pydantic import BaseModel, Field
from typing import Optional


class TokenData(BaseModel):
    user_id: Optional[str] = None
    role: Optional[str] = None
    business_id: Optional[str] = None


class UserPricingAttributesUpdate(BaseModel):
    role: str = Field(min_length=1)
    max_discount_percent: Optional[Decimal] = Field(default=None, ge=0, le=100)
    can_override: Optional[bool] = None


class UserPricingAttributesResponse(UserPricingAttributesUpdate):
    user_id: str
    business_id: str
    updated_at: datetime

    class Config:
        from_attributes = True
