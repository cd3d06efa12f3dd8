"""
Pricing evaluation orchestrator.

One evaluation:

1. read the tenant's rules once (the snapshot used for the whole request)
2. keep the rules whose conditions match
3. fold non-override rules by (priority, id) ascending, starting at base price
4. apply the strongest matching override last, replacing the folded price
5. let the ABAC policy cap the discount / flag approval
6. assemble the result

The only suspension points are the rule read and the attribute read;
everything between them is synchronous and touches no shared state.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, List, Optional, Sequence, Tuple

from abac_pricing.core.errors import (
    DependencyUnavailable,
    InvalidPolicyContext,
    InvalidRequest,
    PricingEngineError,
)
from abac_pricing.services.pricing_engine.abac import AbacOutcome, AbacPolicyEvaluator, UserAttributes
from abac_pricing.services.pricing_engine.adjustments import AppliedAdjustment, apply_adjustment
from abac_pricing.services.pricing_engine.context import ActingUser, EvaluationContext, EvaluationRequest
from abac_pricing.services.pricing_engine.interfaces import RuleRepository, UserAttributeProvider
from abac_pricing.services.pricing_engine.matcher import matches
from abac_pricing.services.pricing_engine.money import Money
from abac_pricing.services.pricing_engine.rules import RuleDefinition

logger = logging.getLogger(__name__)

_PERCENT_PLACES = Decimal("0.01")


@dataclass(frozen=True)
class EvaluationResult:
    original_price: Money
    rule_derived_price: Money
    final_price: Money
    quantity: int
    applied_rules: Tuple[AppliedAdjustment, ...]
    abac: AbacOutcome
    evaluated_at: datetime

    @property
    def total_amount(self) -> Money:
        return self.final_price.multiply(self.quantity)

    @property
    def total_discount(self) -> Money:
        return self.original_price.subtract(self.final_price)

    @property
    def total_discount_percentage(self) -> Decimal:
        pct = self.total_discount.percentage_of(self.original_price)
        return pct.quantize(_PERCENT_PLACES, rounding=ROUND_HALF_UP)

    @property
    def requires_approval(self) -> bool:
        return self.abac.requires_approval

    @property
    def abac_failed(self) -> bool:
        return self.abac.abac_failed


# ===================== PURE STEPS =====================


def select_rules(
    rules: Iterable[RuleDefinition],
    context: EvaluationContext,
) -> Tuple[List[RuleDefinition], Optional[RuleDefinition]]:
    """
    Return (non-override rules in fold order, winning override or None).

    Fold order is priority ascending, then rule id. Among overrides the highest
    priority wins; equal priorities fall back to the highest id.
    """
    matched = [rule for rule in rules if matches(rule, context)]

    non_override = sorted(
        (rule for rule in matched if not rule.is_override),
        key=lambda r: (r.priority, r.id),
    )
    overrides = [rule for rule in matched if rule.is_override]
    winner = max(overrides, key=lambda r: (r.priority, r.id)) if overrides else None
    return non_override, winner


def fold_rules(
    base_price: Money,
    rules: Sequence[RuleDefinition],
    override: Optional[RuleDefinition] = None,
) -> Tuple[Money, List[AppliedAdjustment]]:
    price = base_price
    applied: List[AppliedAdjustment] = []

    for rule in rules:
        price, record = apply_adjustment(price, rule)
        applied.append(record)

    if override is not None:
        price, record = apply_adjustment(price, override)
        applied.append(record)

    return price, applied


# ===================== ORCHESTRATOR =====================


class PricingEvaluator:
    def __init__(
        self,
        rule_repository: RuleRepository,
        attribute_provider: Optional[UserAttributeProvider] = None,
        policy: Optional[AbacPolicyEvaluator] = None,
    ):
        self._rules = rule_repository
        self._attributes = attribute_provider
        self._policy = policy or AbacPolicyEvaluator()

    async def evaluate(self, request: EvaluationRequest, actor: ActingUser) -> EvaluationResult:
        request.validate()
        if actor.tenant_id != request.tenant_id:
            raise InvalidRequest("Acting user does not belong to the requested tenant")

        logger.info(
            "Evaluating pricing: tenant=%s user=%s base_price=%s quantity=%s",
            request.tenant_id, actor.user_id, request.base_price, request.quantity,
        )

        rules = await self._load_rules(request.tenant_id)
        attributes, abac_failed = await self._load_attributes(actor)

        result = self.evaluate_snapshot(request, rules, attributes, abac_failed)

        logger.info(
            "Pricing evaluated: tenant=%s user=%s rules_applied=%d final_price=%s "
            "requires_approval=%s abac_failed=%s",
            request.tenant_id, actor.user_id, len(result.applied_rules),
            result.final_price, result.requires_approval, result.abac_failed,
        )
        return result

    def evaluate_snapshot(
        self,
        request: EvaluationRequest,
        rules: Sequence[RuleDefinition],
        attributes: UserAttributes,
        abac_failed: bool = False,
    ) -> EvaluationResult:
        """Synchronous part of an evaluation over an already-loaded rule snapshot."""
        request.validate()
        context = EvaluationContext.from_request(request)

        ordered, override = select_rules(rules, context)
        derived_price, applied = fold_rules(request.base_price, ordered, override)

        outcome = self._policy.evaluate(
            attributes,
            original_price=request.base_price,
            rule_derived_price=derived_price,
            abac_failed=abac_failed,
        )

        return EvaluationResult(
            original_price=request.base_price,
            rule_derived_price=derived_price,
            final_price=outcome.final_price,
            quantity=request.quantity,
            applied_rules=tuple(applied),
            abac=outcome,
            evaluated_at=request.current_time,
        )

    async def _load_rules(self, tenant_id: str) -> Tuple[RuleDefinition, ...]:
        try:
            rules = await self._rules.find_applicable(tenant_id)
        except PricingEngineError:
            raise
        except Exception as exc:
            logger.error("Rule repository failed for tenant=%s: %s", tenant_id, exc)
            raise DependencyUnavailable("Pricing rules are unavailable") from exc
        return tuple(rules)

    async def _load_attributes(self, actor: ActingUser) -> Tuple[UserAttributes, bool]:
        if self._attributes is None:
            return UserAttributes.from_mapping(None, fallback_role=actor.role), False

        try:
            data = await self._attributes.get(actor.tenant_id, actor.user_id)
        except InvalidPolicyContext:
            raise
        except Exception:
            logger.warning(
                "User attribute lookup failed for user=%s, using conservative policy",
                actor.user_id,
                exc_info=True,
            )
            return UserAttributes.conservative(actor.role), True

        return UserAttributes.from_mapping(data, fallback_role=actor.role), False
