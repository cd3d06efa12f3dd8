from dataclasses import dataclass
from decimal import Decimal
from typing import Tuple

from abac_pricing.core.errors import InvalidAmount, InvalidRuleDefinition
from abac_pricing.enums.pricing import AdjustmentType, RuleType
from abac_pricing.services.pricing_engine.money import Money
from abac_pricing.services.pricing_engine.rules import RuleDefinition


@dataclass(frozen=True)
class AppliedAdjustment:
    """Audit record of one rule's effect on the price."""

    rule_id: str
    rule_name: str
    rule_type: RuleType
    adjustment_type: AdjustmentType
    adjustment_value: Decimal
    price_before: Money
    new_price: Money

    @property
    def amount(self) -> Money:
        """Signed change this rule made (negative for a discount)."""
        return self.new_price.subtract(self.price_before)


def apply_adjustment(current_price: Money, rule: RuleDefinition) -> Tuple[Money, AppliedAdjustment]:
    """
    Apply a single rule's adjustment to `current_price`.

    percentage: price - price * value / 100   (100, 20 -> 80)
    fixed:      price - value                 (100, 15 -> 85)
    override:   value                         (100, 60 -> 60)

    Discounts never take the price below zero.
    """
    if rule.adjustment_type is AdjustmentType.percentage:
        discount = current_price.multiply_by_percentage(rule.adjustment_value)
        new_price = current_price.subtract(discount).clamp_nonnegative()

    elif rule.adjustment_type is AdjustmentType.fixed:
        new_price = current_price.subtract(_rule_amount(rule, current_price.currency)).clamp_nonnegative()

    elif rule.adjustment_type is AdjustmentType.override:
        new_price = _rule_amount(rule, current_price.currency)

    else:
        raise InvalidRuleDefinition(
            f"Pricing rule {rule.id}: unsupported adjustment_type {rule.adjustment_type!r}",
            {"rule_id": rule.id},
        )

    applied = AppliedAdjustment(
        rule_id=rule.id,
        rule_name=rule.name,
        rule_type=rule.rule_type,
        adjustment_type=rule.adjustment_type,
        adjustment_value=rule.adjustment_value,
        price_before=current_price,
        new_price=new_price,
    )
    return new_price, applied


def _rule_amount(rule: RuleDefinition, currency: str) -> Money:
    try:
        return Money.from_decimal(rule.adjustment_value, currency)
    except InvalidAmount as exc:
        raise InvalidRuleDefinition(
            f"Pricing rule {rule.id}: {exc.message}",
            {"rule_id": rule.id},
        )
