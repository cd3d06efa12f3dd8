from decimal import Decimal

import pytest

from abac_pricing.core.errors import DependencyUnavailable, InvalidPolicyContext, InvalidRequest
from abac_pricing.services.pricing_engine.context import ActingUser, EvaluationContext, EvaluationRequest
from abac_pricing.services.pricing_engine.evaluator import PricingEvaluator, select_rules
from abac_pricing.services.pricing_engine.money import Money

TENANT = "biz-1"


class FakeRuleRepository:
    def __init__(self, rules=(), error=None):
        self.rules = tuple(rules)
        self.error = error
        self.calls = 0

    async def find_applicable(self, tenant_id, target_entity=None, target_id=None):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.rules


class FakeAttributeProvider:
    def __init__(self, attributes=None, error=None):
        self.attributes = attributes
        self.error = error

    async def get(self, tenant_id, user_id):
        if self.error is not None:
            raise self.error
        return self.attributes


def usd(value):
    return Money.from_decimal(value, "USD")


@pytest.fixture()
def actor():
    return ActingUser(user_id="user-1", tenant_id=TENANT, role="staff")


@pytest.fixture()
def request_factory(now):
    def _make(**overrides):
        values = {
            "tenant_id": TENANT,
            "base_price": usd("100.00"),
            "quantity": 1,
            "current_time": now,
            "service_id": "svc-1",
        }
        values.update(overrides)
        return EvaluationRequest(**values)

    return _make


def staff(limit, can_override=False):
    return FakeAttributeProvider({"role": "staff", "max_discount_percent": Decimal(limit), "can_override": can_override})


@pytest.mark.asyncio
async def test_discount_within_user_limit(make_rule, actor, request_factory):
    evaluator = PricingEvaluator(
        FakeRuleRepository([make_rule(adjustment_value="20")]),
        staff(25),
    )
    result = await evaluator.evaluate(request_factory(), actor)

    assert result.rule_derived_price == usd("80.00")
    assert result.final_price == usd("80.00")
    assert result.requires_approval is False
    assert result.abac_failed is False
    assert result.total_discount == usd("20.00")
    assert result.total_discount_percentage == Decimal("20.00")


@pytest.mark.asyncio
async def test_discount_over_user_limit_is_capped(make_rule, actor, request_factory):
    evaluator = PricingEvaluator(
        FakeRuleRepository([make_rule(adjustment_value="20")]),
        staff(10),
    )
    result = await evaluator.evaluate(request_factory(), actor)

    assert result.rule_derived_price == usd("80.00")
    assert result.final_price == usd("90.00")
    assert result.requires_approval is True
    assert result.abac.discount_capped is True


@pytest.mark.asyncio
async def test_override_replaces_folded_price_regardless_of_priority(make_rule, actor, request_factory):
    rules = [
        make_rule(id="pct", adjustment_value="10", priority=50),
        make_rule(id="ovr", adjustment_type="override", adjustment_value="60", priority=10),
    ]
    evaluator = PricingEvaluator(FakeRuleRepository(rules), staff(50))
    result = await evaluator.evaluate(request_factory(), actor)

    assert result.rule_derived_price == usd("60.00")
    assert [a.rule_id for a in result.applied_rules] == ["pct", "ovr"]
    assert result.applied_rules[0].new_price == usd("90.00")
    assert result.applied_rules[1].price_before == usd("90.00")


@pytest.mark.asyncio
async def test_rules_fold_in_priority_then_id_order(make_rule, actor, request_factory):
    rules = [
        make_rule(id="b", adjustment_type="fixed", adjustment_value="10", priority=20),
        make_rule(id="a", adjustment_value="10", priority=20),
        make_rule(id="c", adjustment_value="50", priority=5),
    ]
    evaluator = PricingEvaluator(FakeRuleRepository(rules), staff(100))
    result = await evaluator.evaluate(request_factory(), actor)

    assert [a.rule_id for a in result.applied_rules] == ["c", "a", "b"]
    # 100 -> 50 -> 45 -> 35
    assert result.final_price == usd("35.00")


@pytest.mark.asyncio
async def test_result_independent_of_repository_order(make_rule, actor, request_factory):
    rules = [
        make_rule(id="x", adjustment_value="15", priority=30),
        make_rule(id="y", adjustment_type="fixed", adjustment_value="3.33", priority=30),
        make_rule(id="z", adjustment_value="7", priority=60),
    ]
    forward = await PricingEvaluator(FakeRuleRepository(rules), staff(100)).evaluate(request_factory(), actor)
    backward = await PricingEvaluator(FakeRuleRepository(reversed(rules)), staff(100)).evaluate(request_factory(), actor)

    assert forward.final_price == backward.final_price
    assert forward.applied_rules == backward.applied_rules


def test_highest_priority_override_wins(make_rule, now):
    rules = [
        make_rule(id="low", adjustment_type="override", adjustment_value="70", priority=10),
        make_rule(id="high", adjustment_type="override", adjustment_value="80", priority=90),
        make_rule(id="tie", adjustment_type="override", adjustment_value="75", priority=10),
    ]
    context = EvaluationContext(quantity=1, current_time=now)
    ordered, winner = select_rules(rules, context)

    assert ordered == []
    assert winner.id == "high"


@pytest.mark.asyncio
async def test_no_matching_rules_keeps_base_price(make_rule, actor, request_factory):
    rule = make_rule(conditions={"min_quantity": 10})
    evaluator = PricingEvaluator(FakeRuleRepository([rule]), staff(20))
    result = await evaluator.evaluate(request_factory(quantity=3), actor)

    assert result.applied_rules == ()
    assert result.final_price == usd("100.00")
    assert result.total_amount == usd("300.00")
    assert result.requires_approval is False


@pytest.mark.asyncio
async def test_total_amount_uses_unit_price(make_rule, actor, request_factory):
    evaluator = PricingEvaluator(FakeRuleRepository([make_rule(adjustment_value="10")]), staff(20))
    result = await evaluator.evaluate(request_factory(base_price=usd("19.99"), quantity=3), actor)

    assert result.final_price == usd("17.99")
    assert result.total_amount == usd("53.97")


@pytest.mark.asyncio
async def test_attribute_lookup_failure_falls_back_to_conservative_policy(make_rule, actor, request_factory):
    evaluator = PricingEvaluator(
        FakeRuleRepository([make_rule(adjustment_value="20")]),
        FakeAttributeProvider(error=ConnectionError("attribute store down")),
    )
    result = await evaluator.evaluate(request_factory(), actor)

    assert result.abac_failed is True
    assert result.abac.user_discount_limit == Decimal(0)
    assert result.abac.can_override is False
    assert result.final_price == usd("100.00")
    assert result.rule_derived_price == usd("80.00")
    assert result.requires_approval is True


@pytest.mark.asyncio
async def test_malformed_attributes_are_rejected(make_rule, actor, request_factory):
    evaluator = PricingEvaluator(
        FakeRuleRepository([make_rule()]),
        FakeAttributeProvider({"role": "staff", "max_discount_percent": "plenty"}),
    )
    with pytest.raises(InvalidPolicyContext):
        await evaluator.evaluate(request_factory(), actor)


@pytest.mark.asyncio
async def test_missing_attributes_use_role_defaults(make_rule, request_factory):
    owner = ActingUser(user_id="owner-1", tenant_id=TENANT, role="owner")
    evaluator = PricingEvaluator(
        FakeRuleRepository([make_rule(adjustment_value="40")]),
        FakeAttributeProvider(None),
    )
    result = await evaluator.evaluate(request_factory(), owner)

    assert result.abac.user_discount_limit == Decimal(50)
    assert result.final_price == usd("60.00")
    assert result.requires_approval is False


@pytest.mark.asyncio
async def test_repository_failure_is_dependency_unavailable(actor, request_factory):
    evaluator = PricingEvaluator(FakeRuleRepository(error=RuntimeError("db gone")), staff(20))
    with pytest.raises(DependencyUnavailable):
        await evaluator.evaluate(request_factory(), actor)


@pytest.mark.asyncio
@pytest.mark.parametrize("quantity", [0, -1, True])
async def test_invalid_quantity_is_rejected_before_any_read(actor, request_factory, quantity):
    repository = FakeRuleRepository()
    evaluator = PricingEvaluator(repository, staff(20))
    with pytest.raises(InvalidRequest):
        await evaluator.evaluate(request_factory(quantity=quantity), actor)
    assert repository.calls == 0


@pytest.mark.asyncio
async def test_naive_current_time_is_rejected(actor, request_factory, now):
    evaluator = PricingEvaluator(FakeRuleRepository(), staff(20))
    with pytest.raises(InvalidRequest):
        await evaluator.evaluate(request_factory(current_time=now.replace(tzinfo=None)), actor)


@pytest.mark.asyncio
async def test_tenant_mismatch_is_rejected(actor, request_factory):
    evaluator = PricingEvaluator(FakeRuleRepository(), staff(20))
    with pytest.raises(InvalidRequest):
        await evaluator.evaluate(request_factory(tenant_id="other-biz"), actor)


@pytest.mark.asyncio
async def test_rules_are_read_once_per_evaluation(make_rule, actor, request_factory):
    repository = FakeRuleRepository([make_rule(id="a"), make_rule(id="b", priority=20)])
    evaluator = PricingEvaluator(repository, staff(50))
    await evaluator.evaluate(request_factory(), actor)
    assert repository.calls == 1


@pytest.mark.asyncio
async def test_without_provider_role_defaults_apply(make_rule, actor, request_factory):
    evaluator = PricingEvaluator(FakeRuleRepository([make_rule(adjustment_value="25")]))
    result = await evaluator.evaluate(request_factory(), actor)

    assert result.abac.user_discount_limit == Decimal(20)
    assert result.final_price == usd("80.00")
    assert result.requires_approval is True
    assert result.evaluated_at == request_factory().current_time
