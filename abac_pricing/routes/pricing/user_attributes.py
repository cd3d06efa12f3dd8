from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from abac_pricing.database.connection import get_db
from abac_pricing.dependencies.auth import require_admin
from abac_pricing.schemas.user import UserPricingAttributesResponse, UserPricingAttributesUpdate
from abac_pricing.services.pricing_engine.context import ActingUser
from abac_pricing.services.pricing_service.pricing_service import (
    get_user_attributes,
    upsert_user_attributes,
)

router = APIRouter(prefix="/pricing-attributes", tags=["Pricing Attributes"])


@router.get("/{user_id}", response_model=UserPricingAttributesResponse)
def get_attributes(user_id: str, user: ActingUser = Depends(require_admin), db: Session = Depends(get_db)):
    row = get_user_attributes(db, user.tenant_id, user_id)
    if not row:
        raise HTTPException(status_code=404, detail="No pricing attributes for user")
    return row


@router.put("/{user_id}", response_model=UserPricingAttributesResponse)
def put_attributes(
    user_id: str,
    data: UserPricingAttributesUpdate,
    user: ActingUser = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return upsert_user_attributes(db, user.tenant_id, user_id, data)
