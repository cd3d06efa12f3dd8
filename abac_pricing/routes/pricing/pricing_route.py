from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from abac_pricing.database.connection import get_db
from abac_pricing.dependencies.auth import require_auth, require_admin
from abac_pricing.enums.pricing import RuleType, TargetEntity
from abac_pricing.schemas.pricing_rule import (
    BulkStatusRequest,
    BulkStatusResponse,
    DuplicateRuleRequest,
    PricingRuleCreate,
    PricingRuleResponse,
    PricingRuleStats,
    PricingRuleUpdate,
    RuleTestRequest,
    RuleTestResponse,
)
from abac_pricing.services.pricing_engine.context import ActingUser
from abac_pricing.services.pricing_service.pricing_service import (
    bulk_update_status,
    create_pricing_rule,
    delete_pricing_rule,
    duplicate_pricing_rule,
    get_pricing_rule,
    get_pricing_rules,
    get_pricing_stats,
    set_pricing_rule_status,
    update_pricing_rule,
)
from abac_pricing.services.pricing_service.rule_tester import run_rule_tests


router = APIRouter(prefix="/pricing-rules", tags=["Pricing Rules"])


@router.post("/", response_model=PricingRuleResponse, status_code=201)
def create_rule(
    rule: PricingRuleCreate,
    user: ActingUser = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return create_pricing_rule(db, user.tenant_id, rule, user_id=user.user_id)


@router.get("/", response_model=list[PricingRuleResponse])
def list_rules(
    is_active: Optional[bool] = None,
    rule_type: Optional[RuleType] = None,
    target_entity: Optional[TargetEntity] = None,
    user: ActingUser = Depends(require_auth),
    db: Session = Depends(get_db),
):
    return get_pricing_rules(
        db,
        user.tenant_id,
        is_active=is_active,
        rule_type=rule_type.value if rule_type else None,
        target_entity=target_entity.value if target_entity else None,
    )


@router.get("/stats", response_model=PricingRuleStats)
def rule_stats(user: ActingUser = Depends(require_admin), db: Session = Depends(get_db)):
    return get_pricing_stats(db, user.tenant_id)


@router.post("/bulk-status", response_model=BulkStatusResponse)
def bulk_status(
    request: BulkStatusRequest,
    user: ActingUser = Depends(require_admin),
    db: Session = Depends(get_db),
):
    updated = bulk_update_status(db, user.tenant_id, request.rule_ids, request.is_active)
    return {"updated": updated}


@router.get("/{rule_id}", response_model=PricingRuleResponse)
def get_rule(rule_id: str, user: ActingUser = Depends(require_auth), db: Session = Depends(get_db)):
    rule = get_pricing_rule(db, user.tenant_id, rule_id)
    if not rule:
        raise HTTPException(status_code=404, detail="Rule not found")
    return rule


@router.put("/{rule_id}", response_model=PricingRuleResponse)
def update_rule(
    rule_id: str,
    rule: PricingRuleUpdate,
    user: ActingUser = Depends(require_admin),
    db: Session = Depends(get_db),
):
    updated = update_pricing_rule(db, user.tenant_id, rule_id, rule)
    if not updated:
        raise HTTPException(status_code=404, detail="Rule not found")
    return updated


@router.delete("/{rule_id}", response_model=PricingRuleResponse)
def delete_rule(rule_id: str, user: ActingUser = Depends(require_admin), db: Session = Depends(get_db)):
    rule = delete_pricing_rule(db, user.tenant_id, rule_id)
    if not rule:
        raise HTTPException(status_code=404, detail="Rule not found")
    return rule


@router.post("/{rule_id}/activate", response_model=PricingRuleResponse)
def activate_rule(rule_id: str, user: ActingUser = Depends(require_admin), db: Session = Depends(get_db)):
    rule = set_pricing_rule_status(db, user.tenant_id, rule_id, True)
    if not rule:
        raise HTTPException(status_code=404, detail="Rule not found")
    return rule


@router.post("/{rule_id}/deactivate", response_model=PricingRuleResponse)
def deactivate_rule(rule_id: str, user: ActingUser = Depends(require_admin), db: Session = Depends(get_db)):
    rule = set_pricing_rule_status(db, user.tenant_id, rule_id, False)
    if not rule:
        raise HTTPException(status_code=404, detail="Rule not found")
    return rule


@router.post("/{rule_id}/duplicate", response_model=PricingRuleResponse, status_code=201)
def duplicate_rule(
    rule_id: str,
    request: DuplicateRuleRequest,
    user: ActingUser = Depends(require_admin),
    db: Session = Depends(get_db),
):
    rule = duplicate_pricing_rule(db, user.tenant_id, rule_id, request, user_id=user.user_id)
    if not rule:
        raise HTTPException(status_code=404, detail="Rule not found")
    return rule


@router.post("/{rule_id}/test", response_model=RuleTestResponse)
def test_rule(
    rule_id: str,
    request: RuleTestRequest,
    user: ActingUser = Depends(require_admin),
    db: Session = Depends(get_db),
):
    rule = get_pricing_rule(db, user.tenant_id, rule_id)
    if not rule:
        raise HTTPException(status_code=404, detail="Rule not found")
    return run_rule_tests(rule, request.test_cases)
