import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from abac_pricing.enums.pricing import RuleType
from abac_pricing.models.pricing_rule import PricingRule, new_rule_id
from abac_pricing.models.user_attribute import UserPricingAttribute
from abac_pricing.schemas.pricing_rule import (
    DuplicateRuleRequest,
    PricingRuleCreate,
    PricingRuleUpdate,
)
from abac_pricing.schemas.user import UserPricingAttributesUpdate
from abac_pricing.services.pricing_engine.abac import UserAttributes
from abac_pricing.services.pricing_engine.rules import RuleDefinition

logger = logging.getLogger(__name__)

_RULE_FIELDS = (
    "name", "description", "rule_type", "conditions", "adjustment_type",
    "adjustment_value", "target_entity", "target_id", "priority", "is_active",
    "valid_from", "valid_until",
)

# columns that cannot be cleared by an update
_REQUIRED_FIELDS = (
    "name", "rule_type", "conditions", "adjustment_type", "adjustment_value",
    "target_entity", "priority", "is_active",
)


def _to_utc_naive(value: Optional[datetime]) -> Optional[datetime]:
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def _rule_values(data: Dict[str, Any]) -> Dict[str, Any]:
    """Normalise schema output into column values."""
    values = {k: v for k, v in data.items() if v is not None or k not in _REQUIRED_FIELDS}
    if values.get("conditions") is not None:
        values["conditions"] = {k: v for k, v in values["conditions"].items() if v is not None}
    for key in ("rule_type", "adjustment_type", "target_entity"):
        if values.get(key) is not None:
            values[key] = getattr(values[key], "value", values[key])
    for key in ("valid_from", "valid_until"):
        if key in values:
            values[key] = _to_utc_naive(values[key])
    return values


def _validate(rule_id: str, values: Dict[str, Any]) -> RuleDefinition:
    # same checks the engine runs when loading rules
    return RuleDefinition.from_record({"id": rule_id, **values})


def create_pricing_rule(db: Session, business_id: str, rule: PricingRuleCreate, user_id: Optional[str] = None):
    values = _rule_values(rule.model_dump())
    rule_id = new_rule_id()
    _validate(rule_id, values)

    db_rule = PricingRule(id=rule_id, business_id=business_id, created_by=user_id, **values)
    db.add(db_rule)
    db.commit()
    db.refresh(db_rule)
    logger.info("Pricing rule created: business=%s user=%s rule=%s name=%s",
                business_id, user_id, db_rule.id, db_rule.name)
    return db_rule


def get_pricing_rules(
    db: Session,
    business_id: str,
    is_active: Optional[bool] = None,
    rule_type: Optional[str] = None,
    target_entity: Optional[str] = None,
    skip: int = 0,
    limit: int = 100,
):
    query = db.query(PricingRule).filter(PricingRule.business_id == business_id)
    if is_active is not None:
        query = query.filter(PricingRule.is_active == is_active)
    if rule_type is not None:
        query = query.filter(PricingRule.rule_type == rule_type)
    if target_entity is not None:
        query = query.filter(PricingRule.target_entity == target_entity)
    return (
        query.order_by(PricingRule.priority.desc(), PricingRule.created_at.desc())
        .offset(skip)
        .limit(limit)
        .all()
    )


def get_pricing_rule(db: Session, business_id: str, rule_id: str):
    return (
        db.query(PricingRule)
        .filter(PricingRule.id == rule_id, PricingRule.business_id == business_id)
        .first()
    )


def update_pricing_rule(db: Session, business_id: str, rule_id: str, rule_update: PricingRuleUpdate):
    db_rule = get_pricing_rule(db, business_id, rule_id)
    if not db_rule:
        return None

    changes = _rule_values(rule_update.model_dump(exclude_unset=True))
    merged = {field: getattr(db_rule, field) for field in _RULE_FIELDS}
    merged.update(changes)
    _validate(rule_id, merged)

    for key, value in changes.items():
        setattr(db_rule, key, value)

    db.commit()
    db.refresh(db_rule)
    logger.info("Pricing rule updated: business=%s rule=%s fields=%s",
                business_id, rule_id, sorted(changes))
    return db_rule


def delete_pricing_rule(db: Session, business_id: str, rule_id: str):
    db_rule = get_pricing_rule(db, business_id, rule_id)
    if not db_rule:
        return None
    db.delete(db_rule)
    db.commit()
    logger.info("Pricing rule deleted: business=%s rule=%s name=%s", business_id, rule_id, db_rule.name)
    return db_rule


def set_pricing_rule_status(db: Session, business_id: str, rule_id: str, is_active: bool):
    db_rule = get_pricing_rule(db, business_id, rule_id)
    if not db_rule:
        return None
    db_rule.is_active = is_active
    db.commit()
    db.refresh(db_rule)
    return db_rule


def bulk_update_status(db: Session, business_id: str, rule_ids: List[str], is_active: bool) -> int:
    updated = (
        db.query(PricingRule)
        .filter(PricingRule.business_id == business_id, PricingRule.id.in_(rule_ids))
        .update({PricingRule.is_active: is_active}, synchronize_session=False)
    )
    db.commit()
    logger.info("Bulk status update: business=%s is_active=%s updated=%d", business_id, is_active, updated)
    return updated


def duplicate_pricing_rule(
    db: Session,
    business_id: str,
    rule_id: str,
    data: DuplicateRuleRequest,
    user_id: Optional[str] = None,
):
    source = get_pricing_rule(db, business_id, rule_id)
    if not source:
        return None

    values = {field: getattr(source, field) for field in _RULE_FIELDS}
    values["conditions"] = dict(source.conditions or {})
    values["name"] = data.name
    values["is_active"] = data.is_active
    if data.description is not None:
        values["description"] = data.description

    copy = PricingRule(business_id=business_id, created_by=user_id, **values)
    db.add(copy)
    db.commit()
    db.refresh(copy)
    return copy


def get_pricing_stats(db: Session, business_id: str) -> Dict[str, int]:
    rows = (
        db.query(PricingRule.rule_type, PricingRule.is_active, func.count())
        .filter(PricingRule.business_id == business_id)
        .group_by(PricingRule.rule_type, PricingRule.is_active)
        .all()
    )

    stats = {
        "total_rules": 0,
        "active_rules": 0,
        "inactive_rules": 0,
    }
    by_type = {rule_type.value: 0 for rule_type in RuleType}
    for rule_type, is_active, count in rows:
        stats["total_rules"] += count
        if is_active:
            stats["active_rules"] += count
        else:
            stats["inactive_rules"] += count
        if rule_type in by_type:
            by_type[rule_type] += count

    for rule_type, count in by_type.items():
        stats[f"{rule_type}_rules"] = count
    return stats


# ---------- USER PRICING ATTRIBUTES ----------

def get_user_attributes(db: Session, business_id: str, user_id: str):
    return (
        db.query(UserPricingAttribute)
        .filter(
            UserPricingAttribute.business_id == business_id,
            UserPricingAttribute.user_id == user_id,
        )
        .first()
    )


def upsert_user_attributes(db: Session, business_id: str, user_id: str, data: UserPricingAttributesUpdate):
    # reject anything the policy evaluator would refuse later
    UserAttributes.from_mapping(data.model_dump())

    row = get_user_attributes(db, business_id, user_id)
    if row is None:
        row = UserPricingAttribute(business_id=business_id, user_id=user_id)
        db.add(row)

    row.role = data.role
    row.max_discount_percent = data.max_discount_percent
    row.can_override = data.can_override

    db.commit()
    db.refresh(row)
    logger.info("Pricing attributes set: business=%s user=%s role=%s limit=%s override=%s",
                business_id, user_id, row.role, row.max_discount_percent, row.can_override)
    return row
