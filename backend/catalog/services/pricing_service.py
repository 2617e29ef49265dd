# Overview: Service-layer operations for direct pricing; per-tier prices with attribution and an append-only history.

"""
Direct pricing ledger invariants (authoritative)

- At most one DirectPricing row per product. A deactivated record is
  reactivated by find_or_create_pricing() rather than duplicated, so its
  history carries on.
- price_history only grows. Every single-tier or bulk update appends exactly
  one entry whose prices field is the full tier snapshot after the change.
- Single-tier updates record previous and new values; bulk entries record
  neither (both NULL) and use price_type "bulk".
- Product tier columns mirror the ledger; sync_product_prices() copies the
  applied tiers after each ledger write.
"""

from __future__ import annotations

import logging

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..extensions import db
from ..models import DirectPricing, PriceHistoryEntry, Product
from ..models.pricing import (
    BULK_PRICE_TYPE,
    PRICE_TIER_COLUMNS,
    PRICE_TIERS,
    UPDATE_SOURCE_ADMIN,
    UPDATE_SOURCE_BULK,
    UPDATE_SOURCE_DIRECT,
)
from ..time_utils import start_of_day, to_utc_z, utcnow
from ..validation import NotFoundError, ValidationError, enforce_rules_price
from .concurrency import StorageError


logger = logging.getLogger(__name__)


class InvalidPriceTierError(ValidationError):
    """Raised when a price update names a tier outside PRICE_TIERS."""

    def __init__(self, tier):
        super().__init__(f"Invalid price type: {tier}. Must be one of: {', '.join(PRICE_TIERS)}")
        self.tier = tier


def _commit(message: str) -> None:
    try:
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        raise StorageError(message) from e


def _require_product(product_id: int) -> Product:
    product = db.session.query(Product).filter_by(id=product_id).first()
    if product is None:
        raise NotFoundError("Product not found")
    return product


def _append_history(
    record: DirectPricing,
    *,
    price_type: str,
    actor_id: int | None,
    notes: str,
    update_source: str,
    previous_value=None,
    new_value=None,
    at=None,
) -> PriceHistoryEntry:
    entry = PriceHistoryEntry(
        prices=dict(record.direct_prices),
        price_type=price_type,
        previous_value=previous_value,
        new_value=new_value,
        updated_by_user_id=actor_id,
        updated_at=at or utcnow(),
        notes=notes,
        update_source=update_source,
    )
    record.price_history.append(entry)
    return entry


def get_pricing(product_id: int) -> DirectPricing | None:
    """Active pricing record for a product, or None."""
    return (
        db.session.query(DirectPricing)
        .filter_by(product_id=product_id, is_active=True)
        .first()
    )


def find_or_create_pricing(product_id: int, actor_id: int) -> DirectPricing:
    """
    Return the product's active pricing record, creating it if needed.

    New records start at zero prices and are auto-approved by the creator.
    A concurrent create that wins the unique constraint is picked up by
    re-reading.
    """
    _require_product(product_id)

    record = db.session.query(DirectPricing).filter_by(product_id=product_id).first()
    if record is not None:
        if not record.is_active:
            record.is_active = True
            record.last_updated_by_user_id = actor_id
            record.last_updated_at = utcnow()
            _commit("Failed to reactivate direct pricing")
        return record

    now = utcnow()
    record = DirectPricing(
        product_id=product_id,
        last_updated_by_user_id=actor_id,
        last_updated_at=now,
        is_approved=True,
        approved_by_user_id=actor_id,
        approved_at=now,
    )
    for column in PRICE_TIER_COLUMNS.values():
        setattr(record, column, 0)
    db.session.add(record)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        record = db.session.query(DirectPricing).filter_by(product_id=product_id).first()
        if record is None:
            raise
        return record
    except SQLAlchemyError as e:
        db.session.rollback()
        raise StorageError("Failed to create direct pricing") from e

    logger.info("Direct pricing created for product %s by user %s", product_id, actor_id)
    return record


def update_specific_price(record: DirectPricing, tier: str, value, actor_id: int, notes: str = "") -> DirectPricing:
    """
    Set one tier, record who changed it and append a DIRECT_ENTRY history entry.

    Raises InvalidPriceTierError for an unknown tier.
    """
    if tier not in PRICE_TIER_COLUMNS:
        raise InvalidPriceTierError(tier)
    value = enforce_rules_price(value, tier)

    now = utcnow()
    previous = record.get_price(tier)
    record.set_price(tier, value)

    attribution = record.tier_update_for(tier)
    attribution.updated_by_user_id = actor_id
    attribution.updated_at = now

    _append_history(
        record,
        price_type=tier,
        actor_id=actor_id,
        notes=notes,
        update_source=UPDATE_SOURCE_DIRECT,
        previous_value=previous,
        new_value=value,
        at=now,
    )
    record.last_updated_by_user_id = actor_id
    record.last_updated_at = now
    _commit("Failed to update price")

    logger.info("Direct price %s for product %s: %s -> %s", tier, record.product_id, previous, value)
    return record


def bulk_update_prices(record: DirectPricing, updates: dict, actor_id: int, notes: str = "") -> dict:
    """
    Apply several tiers at once. Unknown keys and None values are skipped.

    Exactly one "bulk" history entry is appended, even when nothing applied.
    Returns the tiers that were applied.
    """
    updates = updates or {}
    applied = {}
    for tier, raw in updates.items():
        if tier not in PRICE_TIER_COLUMNS or raw is None:
            continue
        applied[tier] = enforce_rules_price(raw, tier)

    now = utcnow()
    for tier, value in applied.items():
        record.set_price(tier, value)
        attribution = record.tier_update_for(tier)
        attribution.updated_by_user_id = actor_id
        attribution.updated_at = now

    _append_history(
        record,
        price_type=BULK_PRICE_TYPE,
        actor_id=actor_id,
        notes=notes,
        update_source=UPDATE_SOURCE_BULK,
        at=now,
    )
    record.last_updated_by_user_id = actor_id
    record.last_updated_at = now
    _commit("Failed to update prices")

    logger.info("Direct prices bulk-updated for product %s: %s", record.product_id, sorted(applied))
    return applied


def sync_product_prices(product: Product, prices: dict, actor_id: int | None = None) -> None:
    """Mirror applied tier prices onto the product's own price columns."""
    for tier, value in (prices or {}).items():
        column = PRICE_TIER_COLUMNS.get(tier)
        if column is not None and value is not None:
            setattr(product, column, value)
    if actor_id is not None:
        product.updated_by_user_id = actor_id
    _commit("Failed to update product prices")


def set_single_price(product_id: int, tier: str, value, actor_id: int, notes: str = "") -> dict:
    """Find-or-create the record, update one tier and mirror it onto the product."""
    if tier not in PRICE_TIER_COLUMNS:
        raise InvalidPriceTierError(tier)
    value = enforce_rules_price(value, tier)
    product = _require_product(product_id)
    record = find_or_create_pricing(product_id, actor_id)
    update_specific_price(record, tier, value, actor_id, notes or f"Updated {tier}")
    sync_product_prices(product, {tier: record.get_price(tier)}, actor_id)

    entry = record.latest_update
    return {
        "productId": product_id,
        "priceType": tier,
        "previousPrice": entry.previous_value,
        "newPrice": entry.new_value,
        "updatedBy": actor_id,
        "directPricing": record.to_dict(),
    }


def set_prices(product_id: int, prices: dict, actor_id: int, notes: str = "") -> dict:
    """
    Find-or-create the record and apply several tiers.

    At least one recognized tier with a price above zero is required.
    """
    if not isinstance(prices, dict) or not prices:
        raise ValidationError("Prices object is required")
    recognized = {t: enforce_rules_price(v, t) for t, v in prices.items() if t in PRICE_TIER_COLUMNS and v is not None}
    if not any(v > 0 for v in recognized.values()):
        raise ValidationError("At least one valid price greater than 0 is required")

    product = _require_product(product_id)
    record = find_or_create_pricing(product_id, actor_id)
    applied = bulk_update_prices(record, prices, actor_id, notes or "Direct price update")
    if notes:
        record.notes = notes
        _commit("Failed to update pricing notes")
    sync_product_prices(product, applied, actor_id)

    return {
        "directPricing": record.to_dict(),
        "updatedPrices": applied,
        "productName": product.name,
        "productSku": product.sku,
    }


def deactivate_pricing(product_id: int, actor_id: int) -> dict:
    """Soft-delete the active record, leaving an ADMIN_OVERRIDE entry in its history."""
    record = get_pricing(product_id)
    if record is None:
        raise NotFoundError("Direct pricing not found for this product")

    now = utcnow()
    record.is_active = False
    record.last_updated_by_user_id = actor_id
    record.last_updated_at = now
    _append_history(
        record,
        price_type=BULK_PRICE_TYPE,
        actor_id=actor_id,
        notes="Direct pricing deactivated",
        update_source=UPDATE_SOURCE_ADMIN,
        at=now,
    )
    _commit("Failed to deactivate direct pricing")

    logger.info("Direct pricing deactivated for product %s by user %s", product_id, actor_id)
    return {"productId": product_id, "deletedAt": to_utc_z(now), "deletedBy": actor_id}


def get_price_history(product_id: int, limit: int = 50) -> dict:
    record = get_pricing(product_id)
    if record is None:
        raise NotFoundError("Direct pricing not found for this product")
    if limit < 1:
        raise ValidationError("limit must be >= 1")

    entries = sorted(record.price_history, key=lambda e: (e.updated_at, e.id), reverse=True)
    product = record.product
    return {
        "product": {"id": product.id, "name": product.name, "sku": product.sku},
        "currentPrices": record.direct_prices,
        "history": [e.to_dict() for e in entries[:limit]],
        "totalHistoryEntries": len(record.price_history),
    }


def get_pricing_stats() -> dict:
    """Active record count, per-tier averages, today's updates and the ten most recent records."""
    active = db.session.query(DirectPricing).filter(DirectPricing.is_active.is_(True))
    averages = db.session.query(
        func.count(DirectPricing.id),
        *[func.avg(getattr(DirectPricing, col)) for col in PRICE_TIER_COLUMNS.values()],
    ).filter(DirectPricing.is_active.is_(True)).one()

    today = start_of_day(utcnow())
    updates_today = active.filter(DirectPricing.last_updated_at >= today).count()

    stats = {"totalProducts": averages[0] or 0}
    for tier, avg in zip(PRICE_TIERS, averages[1:]):
        stats[f"average_{tier}"] = round(float(avg), 2) if avg is not None else 0
    stats["totalUpdatesToday"] = updates_today

    recent = active.order_by(DirectPricing.last_updated_at.desc()).limit(10).all()
    return {
        "stats": stats,
        "recentActivity": [
            {
                "productId": r.product_id,
                "productName": r.product.name if r.product else None,
                "directPrices": r.direct_prices,
                "lastUpdatedBy": r.last_updated_by_user_id,
                "lastUpdatedAt": to_utc_z(r.last_updated_at),
            }
            for r in recent
        ],
    }
