import time
from typing import Any, Dict

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request


def new_metrics() -> Dict[str, Any]:
    return {
        "requests": 0,
        "total_response_ms": 0.0,
        "evaluations": 0,
        "approvals_required": 0,
        "abac_failures": 0,
    }


def app_metrics(request: Request) -> Dict[str, Any]:
    """Counters on app.state, created on first use when startup has not run."""
    metrics = getattr(request.app.state, "metrics", None)
    if metrics is None:
        metrics = request.app.state.metrics = new_metrics()
    return metrics


class MetricsMiddleware(BaseHTTPMiddleware):
    """
    Request count and cumulative latency for GET /metrics.

    Pricing counters live in the same dict and are bumped by the evaluation
    use case. Single-process only.
    """

    async def dispatch(self, request: Request, call_next):
        metrics = app_metrics(request)

        started = time.perf_counter()
        response = await call_next(request)

        metrics["requests"] += 1
        metrics["total_response_ms"] += (time.perf_counter() - started) * 1000.0
        return response
