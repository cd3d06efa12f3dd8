from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from abac_pricing.core.config import settings
from abac_pricing.core.errors import PricingEngineError
from abac_pricing.core.logging import configure_logging
from abac_pricing.middleware.metrics import MetricsMiddleware, new_metrics
from abac_pricing.routes import system
from abac_pricing.database.connection import Base, engine
from abac_pricing.models.pricing_rule import PricingRule  # noqa: F401
from abac_pricing.models.user_attribute import UserPricingAttribute  # noqa: F401
from abac_pricing.routes.pricing.evaluate_price import router as evaluate_price_router
from abac_pricing.routes.pricing.pricing_route import router as pricing_router
from abac_pricing.routes.pricing.user_attributes import router as user_attributes_router


configure_logging(settings.LOG_LEVEL)

Base.metadata.create_all(bind=engine)

app = FastAPI(title="Pricing Rule Evaluation & Discount Policy Service")

app.add_middleware(MetricsMiddleware)


@app.exception_handler(PricingEngineError)
async def pricing_error_handler(request: Request, exc: PricingEngineError):
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_response().model_dump(),
    )


app.include_router(evaluate_price_router)
app.include_router(pricing_router)
app.include_router(user_attributes_router)
app.include_router(system.router)


@app.on_event("startup")
async def startup_event():
    app.state.start_time = datetime.now(timezone.utc)
    app.state.metrics = new_metrics()
