from typing import Any, Mapping, Optional, Protocol, Sequence

from abac_pricing.enums.pricing import TargetEntity
from abac_pricing.services.pricing_engine.rules import RuleDefinition


class RuleRepository(Protocol):
    async def find_applicable(
        self,
        tenant_id: str,
        target_entity: Optional[TargetEntity] = None,
        target_id: Optional[str] = None,
    ) -> Sequence[RuleDefinition]:
        """
        Rules of a tenant, already validated. Without `target_entity` every
        rule of the tenant is returned. Must raise DependencyUnavailable when
        the store cannot be read.
        """
        ...


class UserAttributeProvider(Protocol):
    async def get(self, tenant_id: str, user_id: str) -> Optional[Mapping[str, Any]]:
        """
        `{role, max_discount_percent, can_override}` for a user, or None when
        nothing is stored. May fail; callers fall back to a conservative policy.
        """
        ...
