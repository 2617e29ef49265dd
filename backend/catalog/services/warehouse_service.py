# Overview: Service-layer operations for the warehouse override; manual stock entry, physical counts and stock reports.

from __future__ import annotations

import logging

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import Product, User
from ..models.records import (
    ManualOverride,
    OVERRIDE_QUANTITY_FIELDS,
    STOCK_SOURCE_BATCHES,
    STOCK_SOURCE_MANUAL,
)
from ..time_utils import utcnow
from ..validation import NotFoundError, ValidationError, validate_warehouse_quantities
from .activity_service import log_activity
from .concurrency import StorageError, lock_for_update, run_with_retry
from .stock_sync_service import validate_override_record


logger = logging.getLogger(__name__)

ACTIVITY_FIELD_NAMES = {
    "stock_on_arrival": "stockOnArrival",
    "damaged_qty": "damagedQty",
    "expired_qty": "expiredQty",
    "refurbished_qty": "refurbishedQty",
    "final_stock": "finalStock",
    "online_stock": "onlineStock",
    "offline_stock": "offlineStock",
}


def _coerce_quantity(value, field: str) -> int:
    if value is None or value == "":
        return 0
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a whole number")
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            pass
    raise ValidationError(f"{field} must be a whole number")


def _locked_product(product_id: int) -> Product:
    product = lock_for_update(db.session.query(Product).filter_by(id=product_id)).first()
    if product is None:
        raise NotFoundError("Product not found")
    return product


def _current_figures(product: Product) -> dict:
    ws = product.warehouse_stock
    figures = {f: (getattr(ws, f) or 0) if ws is not None else 0 for f in OVERRIDE_QUANTITY_FIELDS}
    figures["final_stock"] = product.effective_stock
    return figures


def _figure_changes(before: dict, after: dict) -> dict:
    return {
        ACTIVITY_FIELD_NAMES[f]: {"from": before[f], "to": after[f]}
        for f in OVERRIDE_QUANTITY_FIELDS
        if before[f] != after[f]
    }


def update_warehouse_stock(
    product_id: int,
    fields: dict,
    actor: User | None = None,
    *,
    activity: str = "STOCK_UPDATE",
) -> Product:
    """
    Enable the warehouse override for a product with manually entered figures.

    All rule violations are collected and raised together as one
    ValidationError. The stock-on-arrival breakdown is not enforced here;
    validate_stock_consistency reports it afterwards. The change is written
    to the activity log as `activity` with the figures that moved.
    """
    fields = fields or {}
    values = {f: _coerce_quantity(fields.get(f), f) for f in OVERRIDE_QUANTITY_FIELDS}

    errors = validate_warehouse_quantities(values)
    if errors:
        raise ValidationError("Stock validation failed", errors=errors)

    actor_id = actor.id if actor else None
    record = ManualOverride(
        **values,
        notes=(fields.get("notes") or "").strip(),
        last_updated=utcnow(),
    )

    def _op():
        product = _locked_product(product_id)
        before = _current_figures(product)
        product.ensure_warehouse_stock().apply_manual_override(record, updated_by_user_id=actor_id)
        product.updated_by_user_id = actor_id
        validate_override_record(product)
        log_activity(
            activity,
            actor=actor,
            product=product,
            changes=_figure_changes(before, values),
            notes=record.notes or "Manual stock update",
        )
        db.session.commit()
        return product

    try:
        product = run_with_retry(_op, label=f"warehouse update for product {product_id}")
    except SQLAlchemyError as e:
        db.session.rollback()
        raise StorageError("Failed to update warehouse stock") from e

    logger.info("Product %s warehouse stock manually updated: %s units", product_id, record.final_stock)
    return product


def reconcile_stock(product_id: int, actual_count, actor: User | None = None) -> dict:
    """
    Record a physical count: the override is enabled with final_stock set to
    the counted quantity. Other override figures are left as they were.
    """
    if actual_count is None or (isinstance(actual_count, str) and not actual_count.strip()):
        raise ValidationError("Product ID and actual count are required")
    actual_count = _coerce_quantity(actual_count, "actual_count")
    if actual_count < 0:
        raise ValidationError("actual_count cannot be negative")

    actor_id = actor.id if actor else None

    def _op():
        product = _locked_product(product_id)
        previous = product.effective_stock

        ws = product.ensure_warehouse_stock()
        current = ws.as_record()
        values = {f: getattr(current, f) for f in OVERRIDE_QUANTITY_FIELDS}
        values["final_stock"] = actual_count
        ws.apply_manual_override(
            ManualOverride(
                **values,
                notes=ws.notes if ws.enabled else "",
                last_updated=utcnow(),
            ),
            updated_by_user_id=actor_id,
        )
        product.updated_by_user_id = actor_id
        validate_override_record(product)
        difference = actual_count - previous
        log_activity(
            "STOCK_RECONCILIATION",
            actor=actor,
            product=product,
            changes={"finalStock": {"from": previous, "to": actual_count}},
            notes=f"Stock reconciliation: {difference:+d} units",
        )
        db.session.commit()
        return previous

    try:
        previous = run_with_retry(_op, label=f"reconcile for product {product_id}")
    except SQLAlchemyError as e:
        db.session.rollback()
        raise StorageError("Failed to reconcile stock") from e

    difference = actual_count - previous
    logger.info("Stock reconciliation for product %s: %+d units", product_id, difference)
    return {
        "productId": product_id,
        "previousStock": previous,
        "newStock": actual_count,
        "difference": difference,
    }


def bulk_update_warehouse_stock(updates, actor: User | None = None) -> dict:
    """
    Apply update_warehouse_stock to each {"productId": ..., <figures>} item.

    Items succeed or fail independently: a missing product or invalid
    figures are reported in errors and the rest of the list still runs.
    StorageError is not caught and stops the run.
    """
    if not isinstance(updates, list) or not updates:
        raise ValidationError("Updates array is required")

    results = []
    errors = []
    for item in updates:
        product_id = item.get("productId") if isinstance(item, dict) else None
        if not isinstance(product_id, int) or isinstance(product_id, bool):
            errors.append(f"Invalid product ID: {product_id!r}")
            results.append({"productId": product_id, "success": False, "error": "Product ID is required"})
            continue

        try:
            update_warehouse_stock(product_id, item, actor, activity="BULK_STOCK_UPDATE")
        except NotFoundError:
            db.session.rollback()
            errors.append(f"Product not found: {product_id}")
            results.append({"productId": product_id, "success": False, "error": "Product not found"})
        except ValidationError as e:
            db.session.rollback()
            detail = "; ".join(e.errors) if e.errors else str(e)
            errors.append(f"Error updating {product_id}: {detail}")
            results.append({"productId": product_id, "success": False, "error": detail})
        else:
            results.append({"productId": product_id, "success": True})

    successful = sum(1 for r in results if r["success"])
    logger.info("Bulk warehouse update: %s succeeded, %s failed", successful, len(results) - successful)
    return {
        "successful": successful,
        "failed": len(results) - successful,
        "results": results,
        "errors": errors,
    }


def _effective_figures(product: Product) -> dict:
    ws = product.warehouse_stock
    if ws is None:
        return {
            "final_stock": product.stock or 0,
            "online_stock": 0,
            "offline_stock": 0,
            "damaged_qty": 0,
            "refurbished_qty": 0,
            "expired_qty": 0,
            "source": product.stock_source,
        }
    record = ws.as_record()
    return {
        "final_stock": product.effective_stock,
        "online_stock": record.online_stock,
        "offline_stock": record.offline_stock,
        "damaged_qty": record.damaged_qty,
        "refurbished_qty": record.refurbished_qty,
        "expired_qty": record.expired_qty,
        "source": record.source,
    }


def _thresholds() -> tuple[int, int]:
    cfg = current_app.config
    return int(cfg.get("CRITICAL_STOCK_THRESHOLD", 5)), int(cfg.get("LOW_STOCK_THRESHOLD", 10))


def get_stock_summary() -> dict:
    _, low = _thresholds()
    stats = {
        "totalProducts": 0,
        "totalStock": 0,
        "onlineStock": 0,
        "offlineStock": 0,
        "lowStockItems": 0,
        "outOfStockItems": 0,
        "damagedItems": 0,
        "refurbishedItems": 0,
        "expiredItems": 0,
        "manualOverrideCount": 0,
        "stockBatchCount": 0,
    }

    for product in db.session.query(Product).order_by(Product.id.asc()).all():
        figures = _effective_figures(product)
        final_stock = figures["final_stock"]

        stats["totalProducts"] += 1
        stats["totalStock"] += final_stock
        stats["onlineStock"] += figures["online_stock"]
        stats["offlineStock"] += figures["offline_stock"]
        stats["damagedItems"] += figures["damaged_qty"]
        stats["refurbishedItems"] += figures["refurbished_qty"]
        stats["expiredItems"] += figures["expired_qty"]

        if figures["source"] == STOCK_SOURCE_MANUAL:
            stats["manualOverrideCount"] += 1
        elif figures["source"] == STOCK_SOURCE_BATCHES:
            stats["stockBatchCount"] += 1

        if final_stock == 0:
            stats["outOfStockItems"] += 1
        elif final_stock <= low:
            stats["lowStockItems"] += 1

    return stats


def get_low_stock_alerts() -> dict:
    critical, low = _thresholds()
    out_of_stock, critical_stock, low_stock = [], [], []

    for product in db.session.query(Product).order_by(Product.id.asc()).all():
        stock = product.effective_stock
        entry = product.to_dict()
        entry["effectiveStock"] = stock

        if stock == 0:
            out_of_stock.append(entry)
        elif stock <= critical:
            critical_stock.append(entry)
        elif stock <= low:
            low_stock.append(entry)

    return {
        "lowStock": low_stock,
        "criticalStock": critical_stock,
        "outOfStock": out_of_stock,
        "thresholds": {"low": low, "critical": critical},
    }
