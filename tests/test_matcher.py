from datetime import datetime, timedelta, timezone

import pytest

from abac_pricing.services.pricing_engine.context import EvaluationContext
from abac_pricing.services.pricing_engine.matcher import day_of_week, matches


def _context(now, **overrides):
    values = {
        "quantity": 1,
        "current_time": now,
        "customer_category_id": "vip",
        "service_id": "svc-1",
        "package_id": None,
        "customer_id": "cust-1",
    }
    values.update(overrides)
    return EvaluationContext(**values)


def test_day_of_week_counts_from_sunday(now):
    assert day_of_week(now) == 1  # Monday
    assert day_of_week(now - timedelta(days=1)) == 0


def test_customer_category(make_rule, now):
    rule = make_rule(rule_type="customer_category", conditions={"customer_category_id": "vip"})
    assert matches(rule, _context(now))
    assert not matches(rule, _context(now, customer_category_id="retail"))
    assert not matches(rule, _context(now, customer_category_id=None))


@pytest.mark.parametrize(
    "quantity, expected",
    [(4, False), (5, True), (7, True), (10, True), (11, False)],
)
def test_quantity_bounds_are_inclusive(make_rule, now, quantity, expected):
    rule = make_rule(conditions={"min_quantity": 5, "max_quantity": 10})
    assert matches(rule, _context(now, quantity=quantity)) is expected


def test_quantity_without_upper_bound(make_rule, now):
    rule = make_rule(conditions={"min_quantity": 5})
    assert matches(rule, _context(now, quantity=500))


def test_bundle(make_rule, now):
    rule = make_rule(rule_type="bundle", conditions={"package_id": "pkg-1"})
    assert matches(rule, _context(now, package_id="pkg-1"))
    assert not matches(rule, _context(now, package_id="pkg-2"))
    assert not matches(rule, _context(now))


def test_time_based_day_set(make_rule, now):
    weekdays = make_rule(rule_type="time_based", conditions={"day_of_week": [1, 2, 3, 4, 5]})
    weekend = make_rule(rule_type="time_based", conditions={"day_of_week": [0, 6]})
    assert matches(weekdays, _context(now))
    assert not matches(weekend, _context(now))


def test_time_window_is_half_open(make_rule, now):
    rule = make_rule(
        rule_type="time_based",
        conditions={"time_of_day_start": "09:00", "time_of_day_end": "14:30"},
    )
    assert matches(rule, _context(now.replace(hour=9, minute=0)))
    assert matches(rule, _context(now.replace(hour=14, minute=29)))
    assert not matches(rule, _context(now))  # 14:30 is outside
    assert not matches(rule, _context(now.replace(hour=8, minute=59)))


def test_time_window_crossing_midnight(make_rule, now):
    rule = make_rule(
        rule_type="time_based",
        conditions={"time_of_day_start": "22:00", "time_of_day_end": "02:00"},
    )
    assert matches(rule, _context(now.replace(hour=23, minute=15)))
    assert matches(rule, _context(now.replace(hour=1, minute=59)))
    assert not matches(rule, _context(now.replace(hour=2, minute=0)))
    assert not matches(rule, _context(now))


def test_time_window_uses_the_context_timezone(make_rule):
    rule = make_rule(
        rule_type="time_based",
        conditions={"time_of_day_start": "09:00", "time_of_day_end": "17:00"},
    )
    # 07:30 UTC is 09:30 at UTC+2
    plus_two = timezone(timedelta(hours=2))
    moment = datetime(2026, 10, 19, 7, 30, tzinfo=timezone.utc)
    assert not matches(rule, _context(moment))
    assert matches(rule, _context(moment.astimezone(plus_two)))


def test_inactive_rule_never_matches(make_rule, now):
    assert not matches(make_rule(is_active=False), _context(now))


def test_validity_window(make_rule, now):
    expired = make_rule(valid_until=now - timedelta(days=1))
    upcoming = make_rule(valid_from=now + timedelta(hours=1))
    current = make_rule(valid_from=now - timedelta(days=1), valid_until=now + timedelta(days=1))
    boundary = make_rule(valid_from=now, valid_until=now)

    assert not matches(expired, _context(now))
    assert not matches(upcoming, _context(now))
    assert matches(current, _context(now))
    assert matches(boundary, _context(now))


@pytest.mark.parametrize(
    "target_entity, target_id, expected",
    [
        ("service", None, True),
        ("service", "svc-1", True),
        ("service", "svc-2", False),
        ("package", None, True),
        ("package", "pkg-1", False),
        ("customer", "cust-1", True),
        ("customer", "cust-9", False),
    ],
)
def test_target_entity(make_rule, now, target_entity, target_id, expected):
    rule = make_rule(target_entity=target_entity, target_id=target_id)
    assert matches(rule, _context(now)) is expected
