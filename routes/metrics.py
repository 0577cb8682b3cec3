from fastapi import APIRouter
from fastapi.responses import Response

from services.metrics import render_prometheus
from settings import settings

router = APIRouter(tags=["metrics"])

PROMETHEUS_CONTENT_TYPE = "text/plain; version=0.0.4"


@router.get("/metrics")
def metrics():
    info = (
        "# TYPE settlement_build_info gauge\n"
        f'settlement_build_info{{env="{settings.ENV}",gateway_mode="{settings.GATEWAY_MODE}",'
        f'store_backend="{settings.STORE_BACKEND}"}} 1\n'
    )
    return Response(content=info + render_prometheus(), media_type=PROMETHEUS_CONTENT_TYPE)
