# Overview: Service-layer operations for stock reconciliation; keeps Product.stock in step with batches or the warehouse override.

"""
Stock reconciliation invariants (authoritative)

Two sources may own a product's stock:
- STOCK_BATCHES: stock == SUM(good_quantity + refurbished_quantity) over the
  product's active batches (AVAILABLE, PARTIALLY_ALLOCATED, RECEIVED).
- WAREHOUSE_MANUAL: warehouse staff pinned the figures by hand; stock ==
  warehouse_stock.final_stock and batch syncs never overwrite it.

Write rules:
- recompute_from_batches() flushes but never commits. Callers own the
  transaction, which lets disable_override_and_sync() run both of its steps
  in one commit.
- sync_after_batch_write() is the post-commit hook batch writes call. It
  commits on its own and swallows failures, so a failed sync never undoes a
  batch write that already succeeded.
- The before_flush guard re-applies validate_override_record() to every
  product (or warehouse row) in the flush, so no write path can leave an
  enabled override out of step with Product.stock.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import reduce

from sqlalchemy import event
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..extensions import db
from ..models import Product, StockBatch, User, WarehouseStock
from ..models.records import (
    BatchDerived,
    OVERRIDE_QUANTITY_FIELDS,
    STOCK_SOURCE_BATCHES,
    STOCK_SOURCE_MANUAL,
    StockTotals,
)
from ..models.stock import ACTIVE_BATCH_STATUSES
from ..time_utils import utcnow
from ..validation import NotFoundError
from .activity_service import log_activity
from .concurrency import StorageError, lock_for_update, run_with_retry


logger = logging.getLogger(__name__)


SYNC_STATUS_SYNCED = "SYNCED"
SYNC_STATUS_OVERRIDE_ACTIVE = "OVERRIDE_ACTIVE"
SYNC_STATUS_PRODUCT_MISSING = "PRODUCT_MISSING"


@dataclass(frozen=True)
class SyncResult:
    status: str
    product_id: int
    stock: int | None = None
    totals: StockTotals | None = None

    @property
    def synced(self) -> bool:
        return self.status == SYNC_STATUS_SYNCED


def _get_product(product_id: int, *, lock: bool = False) -> Product | None:
    query = db.session.query(Product).filter_by(id=product_id)
    if lock:
        query = lock_for_update(query)
    return query.first()


def _active_batches(product_id: int) -> list[StockBatch]:
    return (
        db.session.query(StockBatch)
        .filter(StockBatch.product_id == product_id)
        .filter(StockBatch.status.in_(ACTIVE_BATCH_STATUSES))
        .order_by(StockBatch.id.asc())
        .all()
    )


def compute_batch_totals(product_id: int) -> StockTotals:
    """Fold a product's active batches into one StockTotals (missing quantities count as 0)."""
    return reduce(lambda totals, batch: totals.add_batch(batch), _active_batches(product_id), StockTotals())


def recompute_from_batches(product_id: int, *, lock: bool = False) -> SyncResult:
    """
    Recompute a product's stock from its active batches.

    - Missing product: no-op, PRODUCT_MISSING.
    - Override enabled: no write, OVERRIDE_ACTIVE.
    - Otherwise: stock = good + refurbished, stock_source = STOCK_BATCHES and
      the totals land on the warehouse row with enabled=False.

    Flushes the single product update; the caller commits.
    """
    product = _get_product(product_id, lock=lock)
    if product is None:
        logger.info("Stock sync skipped: product %s not found", product_id)
        return SyncResult(status=SYNC_STATUS_PRODUCT_MISSING, product_id=product_id)

    if product.override_enabled:
        logger.info("Product %s has warehouse override enabled, skipping sync", product_id)
        return SyncResult(
            status=SYNC_STATUS_OVERRIDE_ACTIVE,
            product_id=product_id,
            stock=product.stock,
        )

    totals = compute_batch_totals(product_id)
    now = utcnow()

    product.ensure_warehouse_stock().apply_batch_derived(BatchDerived.from_totals(totals, last_updated=now))
    product.stock = totals.final_stock
    product.stock_source = STOCK_SOURCE_BATCHES
    product.updated_at = now
    db.session.flush()

    logger.info("Product %s stock synced from batches: %s units", product_id, totals.final_stock)
    return SyncResult(
        status=SYNC_STATUS_SYNCED,
        product_id=product_id,
        stock=totals.final_stock,
        totals=totals,
    )


def sync_after_batch_write(product_id: int) -> SyncResult | None:
    """
    Post-commit hook for batch writes. Never raises.

    Returns None when the sync failed; the failure is logged and the session
    rolled back so the caller can keep using it.
    """
    try:
        result = recompute_from_batches(product_id)
        db.session.commit()
        return result
    except Exception:
        db.session.rollback()
        logger.exception("Error syncing product %s stock from batches", product_id)
        return None


def validate_override_record(product: Product) -> None:
    """
    Normalize an enabled override before it is persisted.

    Missing quantities become 0, a missing last_updated becomes now, and the
    product's stock is pinned to final_stock. Does nothing when the override
    is off.
    """
    ws = product.warehouse_stock
    if ws is None or not ws.enabled:
        return

    for field in OVERRIDE_QUANTITY_FIELDS:
        if getattr(ws, field) is None:
            setattr(ws, field, 0)
    if ws.last_updated is None:
        ws.last_updated = utcnow()

    ws.source = STOCK_SOURCE_MANUAL
    if product.stock != ws.final_stock:
        product.stock = ws.final_stock
    if product.stock_source != STOCK_SOURCE_MANUAL:
        product.stock_source = STOCK_SOURCE_MANUAL


def _guard_overrides_before_flush(session, flush_context, instances):
    products = set()
    with session.no_autoflush:
        for obj in list(session.new) + list(session.dirty):
            if obj in session.deleted:
                continue
            if isinstance(obj, Product):
                products.add(obj)
            elif isinstance(obj, WarehouseStock) and obj.product is not None:
                products.add(obj.product)
        for product in products:
            validate_override_record(product)


def register_stock_guards() -> None:
    """Install the override guard on every ORM session (idempotent)."""
    if not event.contains(Session, "before_flush", _guard_overrides_before_flush):
        event.listen(Session, "before_flush", _guard_overrides_before_flush)


def force_sync_product(product_id: int) -> dict:
    product = _get_product(product_id)
    if product is None:
        raise NotFoundError("Product not found")

    if product.override_enabled:
        logger.info("Product %s has manual override, skipping sync", product_id)
        return {
            "synced": False,
            "reason": "Manual override enabled",
            "currentStock": product.warehouse_stock.final_stock,
        }

    try:
        result = recompute_from_batches(product_id)
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        raise StorageError(f"Failed to sync product {product_id}") from e

    return {
        "synced": True,
        "reason": "Synced from stock batches",
        "currentStock": result.stock,
    }


def disable_override_and_sync(product_id: int, actor: User | None = None) -> dict:
    """
    Turn the warehouse override off and recompute from batches.

    Both steps commit together under a row lock; on a concurrency conflict
    the whole unit is retried, so readers never see the override disabled
    with stale stock.
    """
    def _op():
        product = _get_product(product_id, lock=True)
        if product is None:
            raise NotFoundError("Product not found")

        previous = product.effective_stock
        product.ensure_warehouse_stock().enabled = False
        product.stock_source = STOCK_SOURCE_BATCHES
        result = recompute_from_batches(product_id)
        log_activity(
            "WAREHOUSE_OVERRIDE_DISABLED",
            actor=actor,
            product=product,
            changes={"finalStock": {"from": previous, "to": result.stock}},
            notes="Warehouse manual override disabled, synced from stock batches",
        )
        db.session.commit()
        return result

    try:
        result = run_with_retry(_op, label=f"disable override for product {product_id}")
    except SQLAlchemyError as e:
        db.session.rollback()
        raise StorageError(f"Failed to disable warehouse override for product {product_id}") from e

    logger.info("Warehouse override disabled for product %s; stock now %s", product_id, result.stock)
    return {
        "success": True,
        "message": "Warehouse override disabled and stock synced",
        "newStock": result.stock,
        "source": STOCK_SOURCE_BATCHES,
    }


def validate_stock_consistency(product_id: int) -> dict:
    """
    Audit one product without changing it.

    Override on: the quality breakdown must add up to stock on arrival, the
    online/offline split must fit in final stock, and stock must equal final
    stock. Override off: stock must equal the active batch total.
    """
    product = _get_product(product_id)
    if product is None:
        raise NotFoundError("Product not found")

    issues = []

    if product.override_enabled:
        ws = product.warehouse_stock
        total_processed = (
            (ws.damaged_qty or 0)
            + (ws.expired_qty or 0)
            + (ws.refurbished_qty or 0)
            + (ws.final_stock or 0)
        )
        if total_processed != (ws.stock_on_arrival or 0):
            issues.append(
                f"Quality breakdown doesn't match stock on arrival: {total_processed} vs {ws.stock_on_arrival}"
            )

        total_distribution = (ws.online_stock or 0) + (ws.offline_stock or 0)
        if total_distribution > (ws.final_stock or 0):
            issues.append(f"Distribution exceeds final stock: {total_distribution} vs {ws.final_stock}")

        if product.stock != ws.final_stock:
            issues.append(
                f"Main stock field doesn't match warehouse finalStock: {product.stock} vs {ws.final_stock}"
            )
    else:
        batch_total = compute_batch_totals(product_id).final_stock
        if (product.stock or 0) != batch_total:
            issues.append(f"Product stock doesn't match batch totals: {product.stock} vs {batch_total}")

    return {
        "productId": product_id,
        "isConsistent": not issues,
        "issues": issues,
        "currentStock": product.stock,
        "stockSource": product.stock_source,
        "warehouseManaged": product.override_enabled,
    }


def validate_multiple_products_stock(product_ids) -> dict:
    """Check products one at a time; a failed check is reported as inconsistent, not raised."""
    results = []
    for product_id in product_ids:
        try:
            results.append(validate_stock_consistency(product_id))
        except Exception as e:
            logger.warning("Stock validation failed for product %s: %s", product_id, e)
            results.append({
                "productId": product_id,
                "isConsistent": False,
                "issues": [f"Validation error: {e}"],
                "error": True,
            })

    inconsistent = [r for r in results if not r["isConsistent"]]
    return {
        "totalChecked": len(results),
        "consistent": len(results) - len(inconsistent),
        "inconsistent": len(inconsistent),
        "results": inconsistent,
    }


def sync_all_from_batches(actor: User | None = None) -> dict:
    """
    Resync every product that is not under a warehouse override.

    Each product commits on its own; one failure is logged and counted but
    does not stop the run.
    """
    product_ids = [
        pid for (pid,) in (
            db.session.query(Product.id)
            .outerjoin(WarehouseStock, WarehouseStock.product_id == Product.id)
            .filter(db.or_(WarehouseStock.id.is_(None), WarehouseStock.enabled.is_(False)))
            .order_by(Product.id.asc())
            .all()
        )
    ]

    synced = 0
    errors = 0
    for product_id in product_ids:
        try:
            result = recompute_from_batches(product_id)
            db.session.commit()
            if result.synced:
                synced += 1
        except SQLAlchemyError:
            db.session.rollback()
            errors += 1
            logger.exception("Error syncing product %s from batches", product_id)

    logger.info("Bulk stock sync finished: %s synced, %s errors", synced, errors)
    try:
        log_activity(
            "BULK_STOCK_SYNC",
            actor=actor,
            target_name="Stock Synchronization",
            notes=f"Synced {synced} products, {errors} errors",
        )
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        raise StorageError("Stock synced but the activity entry could not be saved") from e

    return {
        "totalProducts": len(product_ids),
        "syncedCount": synced,
        "errorCount": errors,
    }
