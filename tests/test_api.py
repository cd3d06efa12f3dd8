from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from abac_pricing.core.security import create_access_token
from abac_pricing.database.connection import get_db
from abac_pricing.main import app

BUSINESS = "biz-api"


def auth(role="owner", user_id="owner-1", business_id=BUSINESS):
    claims = {"sub": user_id}
    if role is not None:
        claims["role"] = role
    if business_id is not None:
        claims["business_id"] = business_id
    return {"Authorization": f"Bearer {create_access_token(claims)}"}


RULE = {
    "name": "Bulk 20% off",
    "rule_type": "quantity",
    "conditions": {"min_quantity": 5},
    "adjustment_type": "percentage",
    "adjustment_value": "20",
    "target_entity": "service",
}


@pytest.fixture()
def client(db):
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


def test_health_is_public(client):
    res = client.get("/health")
    assert res.status_code == 200
    assert res.json()["db_ok"] is True


def test_missing_token_is_rejected(client):
    assert client.get("/pricing-rules/").status_code == 401


def test_token_without_business_is_rejected(client):
    res = client.get("/pricing-rules/", headers=auth(business_id=None))
    assert res.status_code == 401


def test_token_without_role_is_rejected(client):
    res = client.post(
        "/pricing-rules/evaluate",
        json={"base_price": "100.00"},
        headers=auth(role=None, user_id="staff-1"),
    )
    assert res.status_code == 401


def test_unknown_role_gets_default_discount_limit(client):
    res = client.post(
        "/pricing-rules/evaluate",
        json={"base_price": "100.00"},
        headers=auth(role="contractor", user_id="temp-1"),
    )
    assert res.status_code == 200
    assert Decimal(res.json()["abac_context"]["user_discount_limit"]) == Decimal(20)


def test_staff_cannot_manage_rules(client):
    res = client.post("/pricing-rules/", json=RULE, headers=auth(role="staff", user_id="staff-1"))
    assert res.status_code == 403


def test_rule_crud_roundtrip(client):
    res = client.post("/pricing-rules/", json=RULE, headers=auth())
    assert res.status_code == 201
    rule = res.json()
    assert rule["business_id"] == BUSINESS
    assert rule["priority"] == 50

    res = client.put(f"/pricing-rules/{rule['id']}", json={"priority": 70}, headers=auth())
    assert res.status_code == 200
    assert res.json()["priority"] == 70

    res = client.post(f"/pricing-rules/{rule['id']}/deactivate", headers=auth())
    assert res.json()["is_active"] is False

    res = client.get("/pricing-rules/stats", headers=auth())
    assert res.json()["inactive_rules"] == 1

    assert client.get(f"/pricing-rules/{rule['id']}", headers=auth(business_id="other-biz")).status_code == 404

    assert client.delete(f"/pricing-rules/{rule['id']}", headers=auth()).status_code == 200
    assert client.get(f"/pricing-rules/{rule['id']}", headers=auth()).status_code == 404


def test_malformed_rule_returns_error_body(client):
    bad = dict(RULE, conditions={"min_quantity": 5, "day_of_week": [1]})
    res = client.post("/pricing-rules/", json=bad, headers=auth())

    assert res.status_code == 422
    body = res.json()
    assert body["code"] == "INVALID_RULE_DEFINITION"
    assert "day_of_week" in body["message"]


def test_evaluate_caps_discount_for_staff(client):
    client.post("/pricing-rules/", json=RULE, headers=auth())
    client.put(
        "/pricing-attributes/staff-1",
        json={"role": "staff", "max_discount_percent": "10"},
        headers=auth(),
    )

    res = client.post(
        "/pricing-rules/evaluate",
        json={"service_id": "svc-1", "base_price": "100.00", "quantity": 5},
        headers=auth(role="staff", user_id="staff-1"),
    )
    assert res.status_code == 200
    body = res.json()
    assert Decimal(body["rule_derived_price"]) == Decimal("80.00")
    assert Decimal(body["final_price"]) == Decimal("90.00")
    assert Decimal(body["total_amount"]) == Decimal("450.00")
    assert body["currency"] == "USD"
    assert body["summary"]["requires_approval"] is True
    assert body["abac_context"]["abac_failed"] is False
    assert body["warning"] is None

    metrics = client.get("/metrics", headers=auth()).json()
    assert metrics["evaluations"] == 1
    assert metrics["approvals_required"] == 1
    assert metrics["total_rules"] == 1


@pytest.mark.parametrize(
    "payload, code",
    [
        ({"base_price": "100.00", "quantity": 0}, "INVALID_REQUEST"),
        ({"base_price": "-1.00"}, "INVALID_AMOUNT"),
        ({"base_price": "10.001"}, "INVALID_AMOUNT"),
        ({"base_price": "10", "currency": "EURO"}, "INVALID_AMOUNT"),
    ],
)
def test_evaluate_rejects_bad_input(client, payload, code):
    res = client.post("/pricing-rules/evaluate", json=payload, headers=auth(role="staff"))
    assert res.status_code == 400
    assert res.json()["code"] == code


def test_pricing_attributes_lookup(client):
    assert client.get("/pricing-attributes/nobody", headers=auth()).status_code == 404

    res = client.put(
        "/pricing-attributes/mgr-1",
        json={"role": "manager", "can_override": True},
        headers=auth(),
    )
    assert res.status_code == 200
    assert res.json()["max_discount_percent"] is None

    res = client.get("/pricing-attributes/mgr-1", headers=auth())
    assert res.json()["role"] == "manager"
    assert res.json()["can_override"] is True


def test_clearing_required_fields_leaves_rule_intact(client):
    rule = client.post("/pricing-rules/", json=RULE, headers=auth()).json()

    res = client.put(
        f"/pricing-rules/{rule['id']}",
        json={"priority": None, "is_active": None, "name": "Renamed"},
        headers=auth(),
    )
    assert res.status_code == 200
    assert res.json()["priority"] == 50
    assert res.json()["is_active"] is True
    assert res.json()["name"] == "Renamed"

    listed = client.get("/pricing-rules/", headers=auth())
    assert listed.status_code == 200
    assert [r["id"] for r in listed.json()] == [rule["id"]]


def test_sub_cent_fixed_amount_is_rejected_on_create(client):
    bad = dict(RULE, adjustment_type="fixed", adjustment_value="1.005")
    res = client.post("/pricing-rules/", json=bad, headers=auth())

    assert res.status_code == 422
    assert res.json()["code"] == "INVALID_RULE_DEFINITION"
    assert client.get("/pricing-rules/", headers=auth()).json() == []
