from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Request
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from abac_pricing.database.connection import get_db
from abac_pricing.dependencies.auth import require_admin
from abac_pricing.middleware.metrics import app_metrics
from abac_pricing.models.pricing_rule import PricingRule
from abac_pricing.schemas.system import HealthCheckResponse, SystemMetricsResponse
from abac_pricing.services.pricing_engine.context import ActingUser

router = APIRouter(tags=["System"])


def _uptime(request: Request, now: datetime) -> float:
    start_time = getattr(request.app.state, "start_time", now)
    return (now - start_time).total_seconds()


@router.get("/health", response_model=HealthCheckResponse)
def health_check(request: Request, db: Session = Depends(get_db)):
    """Public liveness probe with a SELECT 1 against the rule store."""
    now = datetime.now(timezone.utc)

    db_ok = True
    extra = {}
    try:
        db.execute(select(1))
    except SQLAlchemyError as e:
        db_ok = False
        extra["db_error"] = str(e)

    return HealthCheckResponse(
        status="ok" if db_ok else "degraded",
        now=now,
        uptime_seconds=_uptime(request, now),
        db_ok=db_ok,
        extra=extra or None,
    )


@router.get("/metrics", response_model=SystemMetricsResponse)
def system_metrics(
    request: Request,
    user: ActingUser = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """
    Request and evaluation counters since startup, plus the caller's rule counts.
    """
    now = datetime.now(timezone.utc)

    metrics = app_metrics(request)
    requests_count = int(metrics.get("requests", 0))
    total_response_ms = float(metrics.get("total_response_ms", 0.0))
    avg_response_ms = (total_response_ms / requests_count) if requests_count > 0 else None

    evaluations = int(metrics.get("evaluations", 0))
    approvals_required = int(metrics.get("approvals_required", 0))
    approval_rate = (approvals_required / evaluations) * 100.0 if evaluations > 0 else None

    rules = db.query(PricingRule).filter(PricingRule.business_id == user.tenant_id)
    total_rules = rules.with_entities(func.count(PricingRule.id)).scalar() or 0
    active_rules = (
        rules.filter(PricingRule.is_active.is_(True)).with_entities(func.count(PricingRule.id)).scalar() or 0
    )

    return SystemMetricsResponse(
        uptime_seconds=_uptime(request, now),
        now=now,
        requests_count=requests_count,
        avg_response_ms=avg_response_ms,
        evaluations=evaluations,
        approvals_required=approvals_required,
        abac_failures=int(metrics.get("abac_failures", 0)),
        approval_rate=approval_rate,
        active_rules=int(active_rules),
        total_rules=int(total_rules),
    )
