# Overview: Service-layer operations for stock batches; every committed write triggers a stock resync for the owning product.

"""
Stock batch writes (authoritative)

- Each write commits first, then calls the after_write hook once per affected
  product. The default hook is stock_sync_service.sync_after_batch_write,
  which never raises: a failed resync is logged and the batch write stands.
- update_batch() that moves a batch to another product resyncs both the old
  and the new product.
- bulk_update_batches() does not resync unless the caller passes resync=True;
  otherwise products are picked up by `flask stock sync-all`.
- available_quantity and total_cost are recomputed on every write.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Callable, Iterable

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..extensions import db
from ..models import BatchMovement, Product, StockBatch, User
from ..models.stock import BATCH_STATUSES
from ..time_utils import utcnow
from ..validation import (
    ConflictError,
    ModelValidationPolicy,
    NotFoundError,
    ValidationError,
    enforce_rules_stock_batch,
    validate_payload,
)
from .concurrency import StorageError, lock_for_update, run_with_retry
from .stock_sync_service import sync_after_batch_write


logger = logging.getLogger(__name__)

AfterWriteHook = Callable[[int], object]

# Statuses get_expiring_batches reports on (RECEIVED stock is not yet sellable)
EXPIRY_WATCH_STATUSES = ("AVAILABLE", "PARTIALLY_ALLOCATED")

STOCK_BATCH_POLICY = ModelValidationPolicy(
    writable_fields={
        "batch_number",
        "product_id",
        "supplier_name",
        "purchase_order_ref",
        "original_quantity",
        "current_quantity",
        "reserved_quantity",
        "quality_status",
        "quality_notes",
        "good_quantity",
        "refurbished_quantity",
        "damaged_quantity",
        "online_stock",
        "offline_stock",
        "status",
        "unit_cost",
        "currency",
        "received_date",
        "expiry_date",
        "notes",
    },
    required_on_create={"product_id", "original_quantity"},
)

# Bulk updates may not move batches between products or rename them
BULK_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields=STOCK_BATCH_POLICY.writable_fields - {"batch_number", "product_id"},
)


def _run_hook(after_write: AfterWriteHook | None, product_ids: Iterable[int]) -> None:
    if after_write is None:
        return
    for product_id in dict.fromkeys(product_ids):
        after_write(product_id)


def _commit(message: str) -> None:
    try:
        db.session.commit()
    except IntegrityError as e:
        db.session.rollback()
        raise ConflictError(message) from e
    except SQLAlchemyError as e:
        db.session.rollback()
        raise StorageError(message) from e


def _require_product(product_id: int) -> Product:
    product = db.session.query(Product).filter_by(id=product_id).first()
    if product is None:
        raise NotFoundError("Product not found")
    return product


def generate_batch_number(now=None) -> str:
    """Next SB-YYYYMMDD-NNNN number for the given day (sequence restarts daily)."""
    now = now or utcnow()
    prefix = f"SB-{now:%Y%m%d}-"
    last = (
        db.session.query(StockBatch.batch_number)
        .filter(StockBatch.batch_number.like(f"{prefix}%"))
        .order_by(StockBatch.batch_number.desc())
        .first()
    )
    seq = 1
    if last:
        try:
            seq = int(last[0][len(prefix):]) + 1
        except ValueError:
            seq = 1
    return f"{prefix}{seq:04d}"


def get_batch(batch_id: int) -> StockBatch:
    batch = db.session.query(StockBatch).filter_by(id=batch_id).first()
    if batch is None:
        raise NotFoundError("Stock batch not found")
    return batch


def list_batches(*, product_id: int | None = None, status: str | None = None) -> list[StockBatch]:
    query = db.session.query(StockBatch)
    if product_id is not None:
        query = query.filter(StockBatch.product_id == product_id)
    if status is not None:
        if status not in BATCH_STATUSES:
            raise ValidationError(f"status must be one of: {', '.join(BATCH_STATUSES)}")
        query = query.filter(StockBatch.status == status)
    return query.order_by(StockBatch.received_date.desc(), StockBatch.id.desc()).all()


def create_batch(
    fields: dict,
    actor: User | None = None,
    *,
    after_write: AfterWriteHook | None = sync_after_batch_write,
) -> StockBatch:
    """
    Receive a new batch.

    current_quantity defaults to original_quantity. A RECEIVED movement is
    recorded with the batch.
    """
    patch = validate_payload(model=StockBatch, payload=fields, policy=STOCK_BATCH_POLICY, partial=False)
    enforce_rules_stock_batch(patch)
    _require_product(patch["product_id"])

    actor_id = actor.id if actor else None
    batch = StockBatch(**patch)
    if not batch.batch_number:
        batch.batch_number = generate_batch_number()
    if batch.current_quantity is None:
        batch.current_quantity = batch.original_quantity
    if batch.reserved_quantity is None:
        batch.reserved_quantity = 0
    batch.created_by_user_id = actor_id
    batch.updated_by_user_id = actor_id
    batch.recalculate_derived()
    batch.movements.append(BatchMovement(
        type="RECEIVED",
        quantity=batch.original_quantity,
        reason="Batch received",
        performed_by_user_id=actor_id,
    ))

    db.session.add(batch)
    _commit("Batch number already exists")

    logger.info("Stock batch %s created for product %s", batch.batch_number, batch.product_id)
    _run_hook(after_write, [batch.product_id])
    return batch


def update_batch(
    batch_id: int,
    fields: dict,
    actor: User | None = None,
    *,
    after_write: AfterWriteHook | None = sync_after_batch_write,
) -> StockBatch:
    patch = validate_payload(model=StockBatch, payload=fields, policy=STOCK_BATCH_POLICY, partial=True)
    enforce_rules_stock_batch(patch)

    batch = get_batch(batch_id)
    previous_product_id = batch.product_id
    if "product_id" in patch and patch["product_id"] != previous_product_id:
        _require_product(patch["product_id"])

    for key, value in patch.items():
        setattr(batch, key, value)
    batch.updated_by_user_id = actor.id if actor else None
    batch.recalculate_derived()
    _commit("Batch number already exists")

    _run_hook(after_write, [previous_product_id, batch.product_id])
    return batch


def delete_batch(
    batch_id: int,
    *,
    after_write: AfterWriteHook | None = sync_after_batch_write,
) -> int:
    """Physically delete a batch; returns the product id that was resynced."""
    batch = get_batch(batch_id)
    product_id = batch.product_id
    db.session.delete(batch)
    _commit("Failed to delete stock batch")

    logger.info("Stock batch %s deleted (product %s)", batch_id, product_id)
    _run_hook(after_write, [product_id])
    return product_id


def bulk_update_batches(
    batch_ids: list[int],
    fields: dict,
    actor: User | None = None,
    *,
    resync: bool = False,
    after_write: AfterWriteHook | None = sync_after_batch_write,
) -> dict:
    """
    Apply the same field changes to many batches in one commit.

    No resync happens unless resync=True, in which case each distinct
    affected product is resynced once.
    """
    if not batch_ids:
        raise ValidationError("batch_ids is required")
    patch = validate_payload(model=StockBatch, payload=fields, policy=BULK_UPDATE_POLICY, partial=True)
    if not patch:
        raise ValidationError("No fields to update")
    enforce_rules_stock_batch(patch)

    actor_id = actor.id if actor else None
    batches = db.session.query(StockBatch).filter(StockBatch.id.in_(batch_ids)).all()
    for batch in batches:
        for key, value in patch.items():
            setattr(batch, key, value)
        batch.updated_by_user_id = actor_id
        batch.recalculate_derived()
    _commit("Failed to update stock batches")

    affected = sorted({b.product_id for b in batches})
    logger.info("Bulk stock batch update completed, affected: %s batches", len(batches))
    if resync:
        _run_hook(after_write, affected)

    return {
        "modifiedCount": len(batches),
        "affectedProductIds": affected,
        "resynced": bool(resync and after_write is not None),
    }


def allocate_stock(
    batch_id: int,
    quantity,
    actor: User | None = None,
    reason: str = "",
    *,
    after_write: AfterWriteHook | None = sync_after_batch_write,
) -> StockBatch:
    """
    Reserve quantity from a batch.

    INVARIANTS:
    - quantity must not exceed available_quantity.
    - status becomes ALLOCATED once reserved >= current, else PARTIALLY_ALLOCATED.
    """
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise ValidationError("quantity must be a positive integer")

    actor_id = actor.id if actor else None

    def _op():
        batch = lock_for_update(db.session.query(StockBatch).filter_by(id=batch_id)).first()
        if batch is None:
            raise NotFoundError("Stock batch not found")

        batch.recalculate_derived()
        if quantity > batch.available_quantity:
            raise ValidationError("Insufficient available stock")

        batch.reserved_quantity = (batch.reserved_quantity or 0) + quantity
        batch.movements.append(BatchMovement(
            type="ALLOCATED",
            quantity=quantity,
            reason=reason or "",
            performed_by_user_id=actor_id,
        ))
        if batch.reserved_quantity >= (batch.current_quantity or 0):
            batch.status = "ALLOCATED"
        else:
            batch.status = "PARTIALLY_ALLOCATED"
        batch.updated_by_user_id = actor_id
        batch.recalculate_derived()
        db.session.commit()
        return batch

    try:
        batch = run_with_retry(_op, label=f"allocation on batch {batch_id}")
    except (NotFoundError, ValidationError):
        db.session.rollback()
        raise
    except SQLAlchemyError as e:
        db.session.rollback()
        raise StorageError("Failed to allocate stock") from e

    _run_hook(after_write, [batch.product_id])
    return batch


def get_expiring_batches(days: int = 30) -> list[StockBatch]:
    """Sellable batches with stock left that expire between now and the end of the window."""
    if days < 0:
        raise ValidationError("days must be >= 0")
    now = utcnow()
    horizon = now + timedelta(days=days)
    return (
        db.session.query(StockBatch)
        .filter(StockBatch.expiry_date.isnot(None))
        .filter(StockBatch.expiry_date >= now)
        .filter(StockBatch.expiry_date <= horizon)
        .filter(StockBatch.status.in_(EXPIRY_WATCH_STATUSES))
        .filter(StockBatch.current_quantity > 0)
        .order_by(StockBatch.expiry_date.asc())
        .all()
    )
