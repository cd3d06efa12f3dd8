"""
SQLAlchemy-backed implementations of the engine's rule repository and
user attribute provider.

Both run their (blocking) queries in Starlette's thread pool so the async
evaluation path never blocks the event loop.
"""

import logging
from typing import Any, Dict, Optional, Tuple

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from abac_pricing.core.errors import DependencyUnavailable, InvalidRuleDefinition
from abac_pricing.enums.pricing import TargetEntity
from abac_pricing.models.pricing_rule import PricingRule
from abac_pricing.models.user_attribute import UserPricingAttribute
from abac_pricing.services.pricing_engine.rules import RuleDefinition

logger = logging.getLogger(__name__)


class SqlRuleRepository:
    def __init__(self, db: Session):
        self.db = db

    async def find_applicable(
        self,
        tenant_id: str,
        target_entity: Optional[TargetEntity] = None,
        target_id: Optional[str] = None,
    ) -> Tuple[RuleDefinition, ...]:
        rows = await run_in_threadpool(self._query_rules, tenant_id, target_entity, target_id)

        rules = []
        for row in rows:
            try:
                rules.append(RuleDefinition.from_record(row))
            except InvalidRuleDefinition as exc:
                logger.error("Rejected pricing rule %s for tenant %s: %s", row.id, tenant_id, exc.message)
                raise
        return tuple(rules)

    def _query_rules(self, tenant_id, target_entity, target_id):
        try:
            query = self.db.query(PricingRule).filter(PricingRule.business_id == tenant_id)
            if target_entity is not None:
                query = query.filter(PricingRule.target_entity == TargetEntity(target_entity).value)
                if target_id is not None:
                    query = query.filter(
                        or_(PricingRule.target_id.is_(None), PricingRule.target_id == target_id)
                    )
            return query.all()
        except SQLAlchemyError as exc:
            raise DependencyUnavailable(
                "Pricing rule store is unavailable", {"tenant_id": tenant_id}
            ) from exc


class SqlUserAttributeProvider:
    def __init__(self, db: Session):
        self.db = db

    async def get(self, tenant_id: str, user_id: str) -> Optional[Dict[str, Any]]:
        return await run_in_threadpool(self._query_attributes, tenant_id, user_id)

    def _query_attributes(self, tenant_id: str, user_id: str) -> Optional[Dict[str, Any]]:
        try:
            row = (
                self.db.query(UserPricingAttribute)
                .filter(
                    UserPricingAttribute.business_id == tenant_id,
                    UserPricingAttribute.user_id == user_id,
                )
                .first()
            )
        except SQLAlchemyError as exc:
            raise DependencyUnavailable("User attribute store is unavailable") from exc

        if row is None:
            return None
        return {
            "role": row.role,
            "max_discount_percent": row.max_discount_percent,
            "can_override": row.can_override,
        }
