"""
Attribute-based discount policy.

The policy answers two questions about a rule-derived price: how far is the
acting user allowed to discount, and does this price need a manager's
approval? Attributes are facts handed in by the caller; this module never
looks anything up.

Outcomes, with `limit` the user's discount ceiling in percent:

    discount <= limit                   -> price unchanged, no approval
    discount >  limit, no override      -> capped at limit, approval required
    discount >  limit, can override     -> price unchanged, approval required
"""

import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_FLOOR
from typing import Any, Mapping, Optional, Tuple

from abac_pricing.core.errors import InvalidPolicyContext
from abac_pricing.enums.user_roles import UserRole
from abac_pricing.services.pricing_engine.money import Money

logger = logging.getLogger(__name__)

# role -> (max_discount_percent, can_override), used when an attribute is absent
ROLE_DEFAULTS = {
    UserRole.owner.value: (Decimal(50), True),
    UserRole.admin.value: (Decimal(50), True),
    UserRole.manager.value: (Decimal(30), False),
    UserRole.staff.value: (Decimal(20), False),
}
UNKNOWN_ROLE_DEFAULT: Tuple[Decimal, bool] = (Decimal(20), False)


@dataclass(frozen=True)
class UserAttributes:
    role: str
    max_discount_percent: Decimal
    can_override: bool

    @classmethod
    def conservative(cls, role: str = "") -> "UserAttributes":
        """Fail-closed policy: no discount authority, no override."""
        return cls(role=role, max_discount_percent=Decimal(0), can_override=False)

    @classmethod
    def from_mapping(cls, data: Optional[Mapping[str, Any]], fallback_role: Optional[str] = None) -> "UserAttributes":
        """
        Validate provider output, filling absent attributes from role defaults.

        Raises InvalidPolicyContext when a supplied attribute is malformed.
        """
        data = data or {}
        if not isinstance(data, Mapping):
            raise InvalidPolicyContext("User attributes must be a mapping")

        role = data.get("role") or fallback_role
        if not isinstance(role, str) or not role.strip():
            raise InvalidPolicyContext("User attributes are missing a role")
        role = role.strip().lower()

        default_limit, default_override = ROLE_DEFAULTS.get(role, UNKNOWN_ROLE_DEFAULT)

        limit = data.get("max_discount_percent")
        if limit is None:
            limit = default_limit
        else:
            limit = _parse_limit(limit)

        can_override = data.get("can_override")
        if can_override is None:
            can_override = default_override
        elif not isinstance(can_override, bool):
            raise InvalidPolicyContext(
                f"can_override must be a boolean, got {can_override!r}",
                {"field": "can_override"},
            )

        return cls(role=role, max_discount_percent=limit, can_override=can_override)


def _parse_limit(value: Any) -> Decimal:
    if isinstance(value, bool):
        raise InvalidPolicyContext("max_discount_percent must be numeric", {"field": "max_discount_percent"})
    try:
        limit = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise InvalidPolicyContext(
            f"max_discount_percent must be numeric, got {value!r}",
            {"field": "max_discount_percent"},
        )
    if not limit.is_finite() or limit < 0 or limit > 100:
        raise InvalidPolicyContext(
            "max_discount_percent must be between 0 and 100",
            {"field": "max_discount_percent"},
        )
    return limit


@dataclass(frozen=True)
class AbacOutcome:
    final_price: Money
    rule_derived_price: Money
    user_discount_limit: Decimal
    can_override: bool
    requires_approval: bool
    discount_capped: bool
    abac_failed: bool = False

    @property
    def user_restrictions(self) -> bool:
        return not self.can_override


class AbacPolicyEvaluator:
    def evaluate(
        self,
        attributes: UserAttributes,
        original_price: Money,
        rule_derived_price: Money,
        abac_failed: bool = False,
    ) -> AbacOutcome:
        limit = attributes.max_discount_percent
        discount = original_price.subtract(rule_derived_price)

        # discount / original * 100 > limit, kept in integers to stay exact
        exceeds_limit = (
            not original_price.is_zero
            and Decimal(discount.minor_units) * 100 > limit * Decimal(original_price.minor_units)
        )

        final_price = rule_derived_price
        capped = False
        if exceeds_limit and not attributes.can_override:
            # floor the allowed discount so the cap never exceeds the limit
            allowed = original_price.multiply_by_percentage(limit, rounding=ROUND_FLOOR)
            final_price = original_price.subtract(allowed)
            capped = True
            logger.info(
                "Discount capped by policy: role=%s limit=%s%% derived=%s capped=%s",
                attributes.role, limit, rule_derived_price, final_price,
            )

        return AbacOutcome(
            final_price=final_price,
            rule_derived_price=rule_derived_price,
            user_discount_limit=limit,
            can_override=attributes.can_override,
            requires_approval=exceeds_limit,
            discount_capped=capped,
            abac_failed=abac_failed,
        )
