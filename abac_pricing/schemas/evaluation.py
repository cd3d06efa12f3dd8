from decimal import Decimal
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel


# ---------- Request ----------

class EvaluatePricingRequest(BaseModel):
    customer_category_id: Optional[str] = None
    service_id: Optional[str] = None
    package_id: Optional[str] = None
    customer_id: Optional[str] = None
    base_price: Decimal
    quantity: int = 1
    currency: Optional[str] = None
    current_time: Optional[datetime] = None


# ---------- Response ----------

class AppliedRuleResponse(BaseModel):
    rule_id: str
    rule_name: str
    rule_type: str
    adjustment_type: str
    adjustment_value: Decimal
    new_price: Decimal


class AdjustmentResponse(BaseModel):
    type: str  # pricing_rule / abac_discount_cap
    rule_id: Optional[str] = None
    rule_name: Optional[str] = None
    adjustment_type: Optional[str] = None
    value: Decimal
    amount: Decimal


class AbacContextResponse(BaseModel):
    can_override: bool
    user_restrictions: bool
    user_discount_limit: Decimal
    abac_failed: bool


class EvaluationSummary(BaseModel):
    total_discount: Decimal
    total_discount_percentage: Decimal
    requires_approval: bool


class EvaluatePricingResponse(BaseModel):
    original_price: Decimal
    rule_derived_price: Decimal
    base_price_after_abac: Decimal
    final_price: Decimal
    quantity: int
    currency: str
    total_amount: Decimal
    adjustments: List[AdjustmentResponse]
    applied_rules: List[AppliedRuleResponse]
    abac_context: AbacContextResponse
    summary: EvaluationSummary
    evaluated_at: datetime
    calculated_in_ms: float
    warning: Optional[str] = None
