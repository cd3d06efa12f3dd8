import os

os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

import pytest
from datetime import datetime, timezone
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from abac_pricing.database.connection import Base
from abac_pricing.models.pricing_rule import PricingRule  # noqa: F401
from abac_pricing.models.user_attribute import UserPricingAttribute  # noqa: F401
from abac_pricing.services.pricing_engine.rules import RuleDefinition

TEST_DB_URL = "sqlite:///:memory:"

# Monday 19 Oct 2026, 14:30 UTC
NOW = datetime(2026, 10, 19, 14, 30, tzinfo=timezone.utc)

engine = create_engine(
    TEST_DB_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

@pytest.fixture(scope="session", autouse=True)
def create_test_database():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def db():
    connection = engine.connect()
    trans = connection.begin()
    session = TestingSessionLocal(bind=connection)
    try:
        yield session
    finally:
        session.close()
        trans.rollback()
        connection.close()


@pytest.fixture()
def now():
    return NOW


@pytest.fixture()
def make_rule():
    """Factory for validated rule definitions with sensible defaults."""

    def _make(**overrides) -> RuleDefinition:
        record = {
            "id": "rule-1",
            "name": "Test rule",
            "rule_type": "quantity",
            "conditions": {"min_quantity": 1},
            "adjustment_type": "percentage",
            "adjustment_value": "10",
            "target_entity": "service",
            "target_id": None,
            "priority": 50,
            "is_active": True,
        }
        record.update(overrides)
        return RuleDefinition.from_record(record)

    return _make
