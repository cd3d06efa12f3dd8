from datetime import datetime

from sqlalchemy import Column, Integer, String, Numeric, Boolean, DateTime, UniqueConstraint

from abac_pricing.database.connection import Base


class UserPricingAttribute(Base):
    __tablename__ = "user_pricing_attributes"
    __table_args__ = (UniqueConstraint("business_id", "user_id", name="uq_user_pricing_attributes"),)

    id = Column(Integer, primary_key=True, index=True)
    business_id = Column(String, nullable=False, index=True)
    user_id = Column(String, nullable=False, index=True)
    role = Column(String, nullable=False)
    # NULL means "use the role default"
    max_discount_percent = Column(Numeric(5, 2), nullable=True)
    can_override = Column(Boolean, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
