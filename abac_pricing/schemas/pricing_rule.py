from decimal import Decimal
from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import datetime

from abac_pricing.enums.pricing import AdjustmentType, RuleType, TargetEntity


class RuleConditionsSchema(BaseModel):
    customer_category_id: Optional[str] = None
    min_quantity: Optional[int] = None
    max_quantity: Optional[int] = None
    day_of_week: Optional[List[int]] = None
    time_of_day_start: Optional[str] = None
    time_of_day_end: Optional[str] = None
    package_id: Optional[str] = None


class PricingRuleBase(BaseModel):
    name: str = Field(max_length=100)
    description: Optional[str] = Field(default="", max_length=500)
    rule_type: RuleType
    conditions: RuleConditionsSchema = RuleConditionsSchema()
    adjustment_type: AdjustmentType
    adjustment_value: Decimal
    target_entity: TargetEntity
    target_id: Optional[str] = None
    priority: int = Field(default=50, ge=1, le=100)
    is_active: bool = True
    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None


class PricingRuleCreate(PricingRuleBase):
    pass


class PricingRuleUpdate(BaseModel):
    name: Optional[str] = Field(default=None, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    rule_type: Optional[RuleType] = None
    conditions: Optional[RuleConditionsSchema] = None
    adjustment_type: Optional[AdjustmentType] = None
    adjustment_value: Optional[Decimal] = None
    target_entity: Optional[TargetEntity] = None
    target_id: Optional[str] = None
    priority: Optional[int] = Field(default=None, ge=1, le=100)
    is_active: Optional[bool] = None
    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None


class PricingRuleResponse(PricingRuleBase):
    id: str
    business_id: str
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class PricingRuleStats(BaseModel):
    total_rules: int
    active_rules: int
    inactive_rules: int
    customer_category_rules: int
    quantity_rules: int
    time_based_rules: int
    bundle_rules: int


class BulkStatusRequest(BaseModel):
    rule_ids: List[str] = Field(min_length=1)
    is_active: bool


class BulkStatusResponse(BaseModel):
    updated: int


class DuplicateRuleRequest(BaseModel):
    name: str = Field(max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    is_active: bool = False


# ---------- Rule test harness ----------

class RuleTestCase(BaseModel):
    base_price: Decimal
    quantity: int = 1
    customer_category_id: Optional[str] = None
    service_id: Optional[str] = None
    package_id: Optional[str] = None
    customer_id: Optional[str] = None
    current_time: Optional[datetime] = None
    expected_price: Decimal


class RuleTestRequest(BaseModel):
    test_cases: List[RuleTestCase] = Field(min_length=1)


class RuleTestCaseResult(BaseModel):
    matched: bool
    actual_price: Decimal
    expected_price: Decimal
    passed: bool


class RuleTestResponse(BaseModel):
    rule_id: str
    results: List[RuleTestCaseResult]
    all_passed: bool
