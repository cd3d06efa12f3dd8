from typing import Any, Dict, List

from abac_pricing.core.config import settings
from abac_pricing.core.errors import InvalidRequest
from abac_pricing.models.pricing_rule import PricingRule
from abac_pricing.schemas.pricing_rule import RuleTestCase
from abac_pricing.services.pricing_engine.adjustments import apply_adjustment
from abac_pricing.services.pricing_engine.context import EvaluationContext
from abac_pricing.services.pricing_engine.matcher import matches
from abac_pricing.services.pricing_engine.money import Money
from abac_pricing.services.pricing_engine.rules import RuleDefinition
from abac_pricing.services.pricing_service.evaluate_price import business_time


def run_rule_tests(db_rule: PricingRule, test_cases: List[RuleTestCase]) -> Dict[str, Any]:
    """
    Run one stored rule against sample inputs, without the discount policy.

    A case passes when the rule's resulting unit price equals `expected_price`
    (the base price when the rule does not match).
    """
    rule = RuleDefinition.from_record(db_rule)
    currency = settings.DEFAULT_CURRENCY

    results = []
    for case in test_cases:
        if case.quantity <= 0:
            raise InvalidRequest("quantity must be positive", {"field": "quantity"})
        base_price = Money.from_decimal(case.base_price, currency)
        expected = Money.from_decimal(case.expected_price, currency)
        context = EvaluationContext(
            quantity=case.quantity,
            current_time=business_time(case.current_time),
            customer_category_id=case.customer_category_id,
            service_id=case.service_id,
            package_id=case.package_id,
            customer_id=case.customer_id,
        )

        matched = matches(rule, context)
        actual = apply_adjustment(base_price, rule)[0] if matched else base_price

        results.append(
            {
                "matched": matched,
                "actual_price": actual.amount,
                "expected_price": expected.amount,
                "passed": actual == expected,
            }
        )

    return {
        "rule_id": rule.id,
        "results": results,
        "all_passed": all(r["passed"] for r in results),
    }
