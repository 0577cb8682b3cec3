#main.py
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from app.workers import dispatch
from db import close_pool
from middleware import RequestContextMiddleware
from services.observability import RequestIdFilter
from routes.admin_applications import router as admin_applications_router
from routes.admin_fraud import router as admin_fraud_router
from routes.admin_orders import router as admin_orders_router
from routes.admin_partners import router as admin_partners_router
from routes.admin_payouts import router as admin_payouts_router
from routes.app_settings import router as settings_router
from routes.creator import router as creator_router
from routes.health import router as health_router
from routes.metrics import router as metrics_router
from routes.orders import router as orders_router
from routes.webhooks import router as webhooks_router
from settings import settings, validate_env_settings


logging.basicConfig(
    level=getattr(logging, (settings.LOG_LEVEL or "INFO").upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s request_id=%(request_id)s %(message)s",
)
for _handler in logging.getLogger().handlers:
    _handler.addFilter(RequestIdFilter())
logger = logging.getLogger("settlement.app")


@asynccontextmanager
async def lifespan(_app: FastAPI):
    validate_env_settings()
    logger.info("startup env=%s store=%s gateway=%s", settings.ENV, settings.STORE_BACKEND, settings.GATEWAY_MODE)
    yield
    dispatch.shutdown(wait_for_tasks=True)
    if settings.STORE_BACKEND == "postgres":
        close_pool()


app = FastAPI(title="Referral Settlement API", version="1.0.0", lifespan=lifespan)
app.add_middleware(RequestContextMiddleware)

# -----------------------------
# ROUTERS
# -----------------------------

app.include_router(webhooks_router)
app.include_router(orders_router)
app.include_router(creator_router)
app.include_router(admin_payouts_router)
app.include_router(admin_partners_router)
app.include_router(admin_applications_router)
app.include_router(admin_fraud_router)
app.include_router(admin_orders_router)
app.include_router(settings_router)
app.include_router(health_router)
app.include_router(metrics_router)


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("unhandled_error path=%s", request.url.path, exc_info=exc)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"},
    )
