from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from abac_pricing.database.connection import get_db
from abac_pricing.dependencies.auth import require_auth
from abac_pricing.middleware.metrics import app_metrics
from abac_pricing.schemas.evaluation import EvaluatePricingRequest, EvaluatePricingResponse
from abac_pricing.services.pricing_engine.context import ActingUser
from abac_pricing.services.pricing_service.evaluate_price import evaluate_price

router = APIRouter(tags=["Pricing & Evaluation"])


@router.post("/pricing-rules/evaluate", response_model=EvaluatePricingResponse)
async def evaluate_pricing(
    payload: EvaluatePricingRequest,
    request: Request,
    user: ActingUser = Depends(require_auth),
    db: Session = Depends(get_db),
):
    """
    Evaluate pricing rules for a service/package and apply the acting user's
    discount policy.

    1. Matching rules folded by priority (overrides last)
    2. Discount capped to the user's limit unless they can override
    3. Approval flagged whenever the discount exceeds the limit
    """
    metrics = app_metrics(request)
    return await evaluate_price(db, user, payload, metrics=metrics)
