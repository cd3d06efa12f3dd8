"""
Rule definitions.

A `RuleDefinition` is the engine's immutable, validated view of one stored
pricing rule. Records coming out of the repository (ORM rows or plain
mappings) go through `RuleDefinition.from_record`, which rejects malformed
configuration with `InvalidRuleDefinition` instead of letting a bad rule be
silently skipped later during matching.

Each rule carries exactly one condition variant, selected by `rule_type`:

    customer_category -> CustomerCategoryCondition
    quantity          -> QuantityCondition
    time_based        -> TimeWindowCondition
    bundle            -> BundleCondition
"""

import re
from dataclasses import dataclass
from datetime import date, datetime, time, timezone
from decimal import Decimal
from typing import Any, FrozenSet, Mapping, Optional, Union

from abac_pricing.core.config import settings
from abac_pricing.core.errors import InvalidAmount, InvalidRuleDefinition
from abac_pricing.enums.pricing import AdjustmentType, RuleType, TargetEntity
from abac_pricing.services.pricing_engine.money import minor_unit_exponent, to_decimal

_TIME_OF_DAY = re.compile(r"^([0-1]?[0-9]|2[0-3]):([0-5][0-9])$")

MIN_PRIORITY = 1
MAX_PRIORITY = 100


# ===================== CONDITION VARIANTS =====================


@dataclass(frozen=True)
class CustomerCategoryCondition:
    customer_category_id: str


@dataclass(frozen=True)
class QuantityCondition:
    min_quantity: int = 1
    max_quantity: Optional[int] = None


@dataclass(frozen=True)
class TimeWindowCondition:
    # 0 = Sunday ... 6 = Saturday; empty means every day
    day_of_week: FrozenSet[int] = frozenset()
    time_of_day_start: Optional[time] = None
    time_of_day_end: Optional[time] = None

    @property
    def crosses_midnight(self) -> bool:
        if self.time_of_day_start is None or self.time_of_day_end is None:
            return False
        return self.time_of_day_end < self.time_of_day_start


@dataclass(frozen=True)
class BundleCondition:
    package_id: str


RuleCondition = Union[
    CustomerCategoryCondition,
    QuantityCondition,
    TimeWindowCondition,
    BundleCondition,
]

_CONDITION_KEYS = {
    RuleType.customer_category: {"customer_category_id"},
    RuleType.quantity: {"min_quantity", "max_quantity"},
    RuleType.time_based: {"day_of_week", "time_of_day_start", "time_of_day_end"},
    RuleType.bundle: {"package_id"},
}


# ===================== RULE DEFINITION =====================


@dataclass(frozen=True)
class RuleDefinition:
    id: str
    name: str
    rule_type: RuleType
    condition: RuleCondition
    adjustment_type: AdjustmentType
    adjustment_value: Decimal
    target_entity: TargetEntity
    target_id: Optional[str] = None
    priority: int = 50
    is_active: bool = True
    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None
    description: str = ""

    @property
    def is_override(self) -> bool:
        return self.adjustment_type is AdjustmentType.override

    @classmethod
    def from_record(cls, record: Any, currency: Optional[str] = None) -> "RuleDefinition":
        """
        Build a validated rule from a repository record.

        `record` may be a mapping or any object exposing the rule columns as
        attributes (e.g. a `PricingRule` ORM row). Fixed and override amounts
        must be representable in `currency` (default: DEFAULT_CURRENCY).
        """
        rule_id = _get(record, "id")
        if rule_id is None or str(rule_id).strip() == "":
            raise InvalidRuleDefinition("Pricing rule is missing an id")
        rule_id = str(rule_id)

        name = _get(record, "name")
        if not name or not str(name).strip():
            raise _invalid(rule_id, "name is required")

        rule_type = _parse_enum(RuleType, _get(record, "rule_type"), rule_id, "rule_type")
        adjustment_type = _parse_enum(
            AdjustmentType, _get(record, "adjustment_type"), rule_id, "adjustment_type"
        )
        target_entity = _parse_enum(
            TargetEntity, _get(record, "target_entity"), rule_id, "target_entity"
        )

        condition = _parse_condition(rule_type, _get(record, "conditions") or {}, rule_id)
        adjustment_value = _parse_adjustment_value(
            adjustment_type, _get(record, "adjustment_value"), rule_id,
            currency or settings.DEFAULT_CURRENCY,
        )

        priority = _get(record, "priority")
        if priority is None:
            priority = 50
        if isinstance(priority, bool) or not isinstance(priority, int):
            raise _invalid(rule_id, f"priority must be an integer, got {priority!r}")
        if not MIN_PRIORITY <= priority <= MAX_PRIORITY:
            raise _invalid(rule_id, f"priority must be between {MIN_PRIORITY} and {MAX_PRIORITY}")

        is_active = _get(record, "is_active")
        if is_active is None:
            is_active = True
        if not isinstance(is_active, bool):
            raise _invalid(rule_id, "is_active must be a boolean")

        valid_from = _parse_bound(_get(record, "valid_from"), rule_id, "valid_from", end_of_day=False)
        valid_until = _parse_bound(_get(record, "valid_until"), rule_id, "valid_until", end_of_day=True)
        if valid_from and valid_until and valid_from > valid_until:
            raise _invalid(rule_id, "valid_from must not be after valid_until")

        target_id = _get(record, "target_id")

        return cls(
            id=rule_id,
            name=str(name),
            description=str(_get(record, "description") or ""),
            rule_type=rule_type,
            condition=condition,
            adjustment_type=adjustment_type,
            adjustment_value=adjustment_value,
            target_entity=target_entity,
            target_id=str(target_id) if target_id not in (None, "") else None,
            priority=priority,
            is_active=is_active,
            valid_from=valid_from,
            valid_until=valid_until,
        )


# ===================== PARSING HELPERS =====================


def _get(record: Any, key: str) -> Any:
    if isinstance(record, Mapping):
        return record.get(key)
    return getattr(record, key, None)


def _invalid(rule_id: str, reason: str) -> InvalidRuleDefinition:
    return InvalidRuleDefinition(
        f"Pricing rule {rule_id}: {reason}",
        {"rule_id": rule_id},
    )


def _parse_enum(enum_cls, value, rule_id: str, field: str):
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(member.value for member in enum_cls)
        raise _invalid(rule_id, f"unknown {field} {value!r} (expected one of: {allowed})")


def _parse_condition(rule_type: RuleType, conditions: Mapping, rule_id: str) -> RuleCondition:
    if not isinstance(conditions, Mapping):
        raise _invalid(rule_id, "conditions must be an object")

    # absent values are treated as not supplied
    present = {k: v for k, v in conditions.items() if v is not None}
    unexpected = set(present) - _CONDITION_KEYS[rule_type]
    if unexpected:
        raise _invalid(
            rule_id,
            f"conditions for a {rule_type.value} rule cannot contain: {', '.join(sorted(unexpected))}",
        )

    if rule_type is RuleType.customer_category:
        category_id = present.get("customer_category_id")
        if not category_id:
            raise _invalid(rule_id, "customer_category rule requires customer_category_id")
        return CustomerCategoryCondition(customer_category_id=str(category_id))

    if rule_type is RuleType.quantity:
        if not present:
            raise _invalid(rule_id, "quantity rule requires min_quantity or max_quantity")
        min_q = _parse_quantity(present.get("min_quantity", 1), rule_id, "min_quantity")
        max_q = present.get("max_quantity")
        if max_q is not None:
            max_q = _parse_quantity(max_q, rule_id, "max_quantity")
            if max_q < min_q:
                raise _invalid(rule_id, "max_quantity must not be less than min_quantity")
        return QuantityCondition(min_quantity=min_q, max_quantity=max_q)

    if rule_type is RuleType.time_based:
        days = present.get("day_of_week") or []
        if not isinstance(days, (list, tuple, set, frozenset)):
            raise _invalid(rule_id, "day_of_week must be a list of integers 0-6")
        for day in days:
            if isinstance(day, bool) or not isinstance(day, int) or not 0 <= day <= 6:
                raise _invalid(rule_id, f"day_of_week contains invalid day {day!r}")

        start = present.get("time_of_day_start")
        end = present.get("time_of_day_end")
        if (start is None) != (end is None):
            raise _invalid(rule_id, "time_of_day_start and time_of_day_end must be given together")
        start_t = _parse_time(start, rule_id, "time_of_day_start") if start is not None else None
        end_t = _parse_time(end, rule_id, "time_of_day_end") if end is not None else None
        if start_t is not None and start_t == end_t:
            raise _invalid(rule_id, "time_of_day_start and time_of_day_end must differ")
        if not days and start_t is None:
            raise _invalid(rule_id, "time_based rule requires day_of_week or a time-of-day window")
        return TimeWindowCondition(
            day_of_week=frozenset(days),
            time_of_day_start=start_t,
            time_of_day_end=end_t,
        )

    if rule_type is RuleType.bundle:
        package_id = present.get("package_id")
        if not package_id:
            raise _invalid(rule_id, "bundle rule requires package_id")
        return BundleCondition(package_id=str(package_id))

    raise _invalid(rule_id, f"unsupported rule_type {rule_type!r}")


def _parse_quantity(value, rule_id: str, field: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise _invalid(rule_id, f"{field} must be a non-negative integer")
    return value


def _parse_time(value, rule_id: str, field: str) -> time:
    if isinstance(value, time):
        return value
    match = _TIME_OF_DAY.match(str(value))
    if not match:
        raise _invalid(rule_id, f"{field} must be HH:MM, got {value!r}")
    return time(int(match.group(1)), int(match.group(2)))


def _parse_adjustment_value(adjustment_type: AdjustmentType, value, rule_id: str, currency: str) -> Decimal:
    if value is None:
        raise _invalid(rule_id, "adjustment_value is required")
    try:
        amount = to_decimal(value, field="adjustment_value")
    except InvalidAmount as exc:
        raise _invalid(rule_id, exc.message)

    if amount < 0:
        raise _invalid(rule_id, "adjustment_value must not be negative")
    if adjustment_type is AdjustmentType.percentage and amount > 100:
        raise _invalid(rule_id, "percentage adjustment_value must be between 0 and 100")
    if adjustment_type is not AdjustmentType.percentage:
        places = minor_unit_exponent(currency.upper())
        if amount != amount.quantize(Decimal(1).scaleb(-places)):
            raise _invalid(
                rule_id,
                f"{adjustment_type.value} adjustment_value {amount} has more than "
                f"{places} decimal places for {currency}",
            )
    return amount


def _parse_bound(value, rule_id: str, field: str, end_of_day: bool) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, str):
        try:
            value = date.fromisoformat(value) if len(value) == 10 else datetime.fromisoformat(value)
        except ValueError:
            raise _invalid(rule_id, f"{field} is not an ISO date/datetime: {value!r}")
    if isinstance(value, datetime):
        if value.tzinfo is None:
            # stored timestamps are UTC
            value = value.replace(tzinfo=timezone.utc)
        return value
    if isinstance(value, date):
        return datetime.combine(value, time.max if end_of_day else time.min, tzinfo=timezone.utc)
    raise _invalid(rule_id, f"{field} must be a date or datetime")
