import datetime
import uuid

from sqlalchemy import Column, String, Numeric, JSON, Boolean, DateTime, Integer

from abac_pricing.database.connection import Base


def new_rule_id() -> str:
    return str(uuid.uuid4())


class PricingRule(Base):
    __tablename__ = "pricing_rules"

    id = Column(String, primary_key=True, index=True, default=new_rule_id)
    business_id = Column(String, nullable=False, index=True)
    name = Column(String(100), nullable=False)
    description = Column(String(500), default="")
    rule_type = Column(String, nullable=False)  # customer_category, quantity, time_based, bundle
    conditions = Column(JSON, default=dict)
    adjustment_type = Column(String, nullable=False)  # percentage, fixed, override
    adjustment_value = Column(Numeric(12, 4), nullable=False)
    target_entity = Column(String, nullable=False)  # service, package, customer
    target_id = Column(String, nullable=True)
    priority = Column(Integer, default=50)
    is_active = Column(Boolean, default=True)
    valid_from = Column(DateTime)
    valid_until = Column(DateTime)
    created_by = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.datetime.utcnow, onupdate=datetime.datetime.utcnow)
