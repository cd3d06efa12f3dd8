from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from abac_pricing.core.errors import InvalidRequest
from abac_pricing.services.pricing_engine.money import Money


@dataclass(frozen=True)
class ActingUser:
    """The authenticated user on whose behalf a price is evaluated."""

    user_id: str
    tenant_id: str
    role: str


@dataclass(frozen=True)
class EvaluationRequest:
    tenant_id: str
    base_price: Money
    quantity: int
    current_time: datetime
    customer_category_id: Optional[str] = None
    service_id: Optional[str] = None
    package_id: Optional[str] = None
    customer_id: Optional[str] = None

    def validate(self) -> None:
        """Reject caller errors before any rule is looked at."""
        if not self.tenant_id:
            raise InvalidRequest("tenant_id is required")
        if not isinstance(self.base_price, Money):
            raise InvalidRequest(
                "base_price must be a Money value", {"field": "base_price"}
            )
        if self.base_price.is_negative:
            raise InvalidRequest("base_price must not be negative", {"field": "base_price"})
        if isinstance(self.quantity, bool) or not isinstance(self.quantity, int):
            raise InvalidRequest("quantity must be an integer", {"field": "quantity"})
        if self.quantity <= 0:
            raise InvalidRequest("quantity must be positive", {"field": "quantity"})
        if not isinstance(self.current_time, datetime) or self.current_time.tzinfo is None:
            raise InvalidRequest(
                "current_time must be a timezone-aware datetime", {"field": "current_time"}
            )


@dataclass(frozen=True)
class EvaluationContext:
    """Facts a rule is matched against. Built once per evaluation."""

    quantity: int
    current_time: datetime
    customer_category_id: Optional[str] = None
    service_id: Optional[str] = None
    package_id: Optional[str] = None
    customer_id: Optional[str] = None

    @classmethod
    def from_request(cls, request: EvaluationRequest) -> "EvaluationContext":
        return cls(
            quantity=request.quantity,
            current_time=request.current_time,
            customer_category_id=request.customer_category_id,
            service_id=request.service_id,
            package_id=request.package_id,
            customer_id=request.customer_id,
        )
