"""
Condition matching: does a rule apply to the current evaluation context?

Pure functions only; nothing here reads the clock or the database. The
caller decides which timezone `context.current_time` is expressed in.
"""

from datetime import datetime

from abac_pricing.core.errors import InvalidRuleDefinition
from abac_pricing.enums.pricing import TargetEntity
from abac_pricing.services.pricing_engine.context import EvaluationContext
from abac_pricing.services.pricing_engine.rules import (
    BundleCondition,
    CustomerCategoryCondition,
    QuantityCondition,
    RuleDefinition,
    TimeWindowCondition,
)


def matches(rule: RuleDefinition, context: EvaluationContext) -> bool:
    if not rule.is_active:
        return False
    if not _within_validity(rule, context.current_time):
        return False
    if not _target_matches(rule, context):
        return False
    return condition_matches(rule, context)


def condition_matches(rule: RuleDefinition, context: EvaluationContext) -> bool:
    condition = rule.condition

    # ---- 1) Customer category ----
    if isinstance(condition, CustomerCategoryCondition):
        return condition.customer_category_id == context.customer_category_id

    # ---- 2) Quantity ----
    if isinstance(condition, QuantityCondition):
        if context.quantity < condition.min_quantity:
            return False
        if condition.max_quantity is not None and context.quantity > condition.max_quantity:
            return False
        return True

    # ---- 3) Time based ----
    if isinstance(condition, TimeWindowCondition):
        return _time_window_matches(condition, context.current_time)

    # ---- 4) Bundle ----
    if isinstance(condition, BundleCondition):
        return condition.package_id == context.package_id

    raise InvalidRuleDefinition(
        f"Pricing rule {rule.id}: no matcher for condition {type(condition).__name__}",
        {"rule_id": rule.id},
    )


def day_of_week(moment: datetime) -> int:
    """0 = Sunday ... 6 = Saturday."""
    return (moment.weekday() + 1) % 7


def _time_window_matches(condition: TimeWindowCondition, now: datetime) -> bool:
    if condition.day_of_week and day_of_week(now) not in condition.day_of_week:
        return False

    start = condition.time_of_day_start
    end = condition.time_of_day_end
    if start is None or end is None:
        return True

    current = now.time()
    if condition.crosses_midnight:
        # e.g. 22:00 -> 02:00
        return current >= start or current < end
    return start <= current < end


def _within_validity(rule: RuleDefinition, now: datetime) -> bool:
    if rule.valid_from is not None and now < rule.valid_from:
        return False
    if rule.valid_until is not None and now > rule.valid_until:
        return False
    return True


def _target_matches(rule: RuleDefinition, context: EvaluationContext) -> bool:
    # no target_id: applies to every instance of the entity type
    if rule.target_id is None:
        return True

    if rule.target_entity is TargetEntity.service:
        return rule.target_id == context.service_id
    if rule.target_entity is TargetEntity.package:
        return rule.target_id == context.package_id
    if rule.target_entity is TargetEntity.customer:
        return rule.target_id == context.customer_id
    return False
