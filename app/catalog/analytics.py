# app/catalog/analytics.py
from __future__ import annotations

import logging

from app.orders.model import Order


logger = logging.getLogger("settlement.catalog")


def record_sales(store, order: Order) -> int:
    """Bump sold count and revenue per line item. Failures are per item and never raised."""
    applied = 0
    for item in order.items:
        try:
            store.increment_product_sales(
                item.product_id,
                quantity=item.quantity,
                revenue_cents=item.line_total_cents,
            )
            applied += 1
        except Exception:
            logger.exception("sales_analytics_failed order_id=%s product_id=%s", order.id, item.product_id)
    return applied
