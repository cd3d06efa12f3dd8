import logging
from datetime import datetime, timezone
from time import perf_counter
from typing import Any, Dict, List, Optional
from zoneinfo import ZoneInfo

from sqlalchemy.orm import Session

from abac_pricing.core.config import settings
from abac_pricing.schemas.evaluation import EvaluatePricingRequest
from abac_pricing.services.pricing_engine.context import ActingUser, EvaluationRequest
from abac_pricing.services.pricing_engine.evaluator import EvaluationResult, PricingEvaluator
from abac_pricing.services.pricing_engine.money import Money
from abac_pricing.services.pricing_service.repository import SqlRuleRepository, SqlUserAttributeProvider

logger = logging.getLogger(__name__)

ABAC_FAILED_WARNING = "ABAC evaluation failed, using conservative fallback policy"


def business_time(moment: Optional[datetime] = None) -> datetime:
    """`moment` (default: now) in the configured business timezone; naive input is UTC."""
    if moment is None:
        moment = datetime.now(timezone.utc)
    elif moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(ZoneInfo(settings.BUSINESS_TIMEZONE))


def build_evaluation_request(actor: ActingUser, payload: EvaluatePricingRequest) -> EvaluationRequest:
    currency = (payload.currency or settings.DEFAULT_CURRENCY).upper()
    return EvaluationRequest(
        tenant_id=actor.tenant_id,
        base_price=Money.from_decimal(payload.base_price, currency),
        quantity=payload.quantity,
        current_time=business_time(payload.current_time),
        customer_category_id=payload.customer_category_id,
        service_id=payload.service_id,
        package_id=payload.package_id,
        customer_id=payload.customer_id,
    )


async def evaluate_price(
    db: Session,
    actor: ActingUser,
    payload: EvaluatePricingRequest,
    metrics: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """
    Evaluate pricing rules plus the discount policy for the acting user.

    Returns the response body of `POST /pricing-rules/evaluate`.
    """
    request = build_evaluation_request(actor, payload)
    evaluator = PricingEvaluator(
        rule_repository=SqlRuleRepository(db),
        attribute_provider=SqlUserAttributeProvider(db),
    )

    # ---- measure calculation time ----
    start = perf_counter()
    result = await evaluator.evaluate(request, actor)
    duration_ms = (perf_counter() - start) * 1000.0

    if duration_ms > settings.SLOW_EVALUATION_MS:
        logger.warning(
            "Pricing evaluation for tenant %s took %.2f ms (quantity=%s, rules_applied=%d)",
            actor.tenant_id, duration_ms, request.quantity, len(result.applied_rules),
        )

    if metrics is not None:
        metrics["evaluations"] = metrics.get("evaluations", 0) + 1
        if result.requires_approval:
            metrics["approvals_required"] = metrics.get("approvals_required", 0) + 1
        if result.abac_failed:
            metrics["abac_failures"] = metrics.get("abac_failures", 0) + 1

    return serialize_result(result, duration_ms)


def serialize_result(result: EvaluationResult, duration_ms: float = 0.0) -> Dict[str, Any]:
    applied_rules = [
        {
            "rule_id": step.rule_id,
            "rule_name": step.rule_name,
            "rule_type": step.rule_type.value,
            "adjustment_type": step.adjustment_type.value,
            "adjustment_value": step.adjustment_value,
            "new_price": step.new_price.amount,
        }
        for step in result.applied_rules
    ]

    adjustments: List[Dict[str, Any]] = [
        {
            "type": "pricing_rule",
            "rule_id": step.rule_id,
            "rule_name": step.rule_name,
            "adjustment_type": step.adjustment_type.value,
            "value": step.adjustment_value,
            "amount": step.amount.amount,
        }
        for step in result.applied_rules
    ]
    if result.abac.discount_capped:
        adjustments.append(
            {
                "type": "abac_discount_cap",
                "value": result.abac.user_discount_limit,
                "amount": result.final_price.subtract(result.rule_derived_price).amount,
            }
        )

    response = {
        "original_price": result.original_price.amount,
        "rule_derived_price": result.rule_derived_price.amount,
        "base_price_after_abac": result.final_price.amount,
        "final_price": result.final_price.amount,
        "quantity": result.quantity,
        "currency": result.final_price.currency,
        "total_amount": result.total_amount.amount,
        "adjustments": adjustments,
        "applied_rules": applied_rules,
        "abac_context": {
            "can_override": result.abac.can_override,
            "user_restrictions": result.abac.user_restrictions,
            "user_discount_limit": result.abac.user_discount_limit,
            "abac_failed": result.abac_failed,
        },
        "summary": {
            "total_discount": result.total_discount.amount,
            "total_discount_percentage": result.total_discount_percentage,
            "requires_approval": result.requires_approval,
        },
        "evaluated_at": result.evaluated_at,
        "calculated_in_ms": duration_ms,
    }
    if result.abac_failed:
        response["warning"] = ABAC_FAILED_WARNING
    return response
