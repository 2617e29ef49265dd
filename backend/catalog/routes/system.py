# backend/catalog/routes/system.py
"""
System health endpoint.

Checks database connectivity and reports how many products each stock
source currently owns, which is handy right after a bulk sync.
"""

import time
from flask import Blueprint, current_app
from sqlalchemy import func

from ..extensions import db
from ..models import DirectPricing, Product, StockBatch
from ..time_utils import to_utc_z, utcnow

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    """
    Check database connectivity and basic operations.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        product_count = db.session.query(Product).count()
        batch_count = db.session.query(StockBatch).count()
        pricing_count = db.session.query(DirectPricing).filter_by(is_active=True).count()
        by_source = dict(
            db.session.query(Product.stock_source, func.count(Product.id))
            .group_by(Product.stock_source)
            .all()
        )

        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "products": product_count,
                "stock_batches": batch_count,
                "active_direct_pricing": pricing_count,
                "products_by_stock_source": by_source,
            }
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error"
        }


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: database reachable
    - 503: database check failed
    """
    database_health = check_database_health()
    http_status = 200 if database_health["status"] == "healthy" else 503

    return {
        "status": database_health["status"],
        "timestamp": to_utc_z(utcnow()),
        "checks": {"database": database_health},
    }, http_status
