# Overview: Warehouse activity log; records who changed which product's stock, and reads the log back.

from __future__ import annotations

from ..extensions import db
from ..models import Product, User, WarehouseActivity
from ..models.warehouse import ACTIVITY_ACTIONS
from ..validation import ValidationError


DEFAULT_ACTIVITY_LIMIT = 50
MAX_ACTIVITY_LIMIT = 500


def log_activity(
    action: str,
    *,
    actor: User | None = None,
    product: Product | None = None,
    changes: dict | None = None,
    notes: str = "",
    target_name: str | None = None,
) -> WarehouseActivity:
    """
    Add one activity entry to the current session.

    The caller commits: the entry belongs to the same transaction as the
    stock change it describes, so a rolled-back change leaves no entry.
    Without a product the entry targets the whole system.
    """
    if action not in ACTIVITY_ACTIONS:
        raise ValueError(f"Unknown warehouse activity: {action}")

    entry = WarehouseActivity(
        user_id=actor.id if actor else None,
        action=action,
        changes=changes or None,
        notes=notes,
    )
    if product is not None:
        entry.target_type = "PRODUCT"
        entry.target_id = product.id
        entry.target_name = product.name
        entry.target_sku = product.sku
    else:
        entry.target_type = "SYSTEM"
        entry.target_name = target_name
    db.session.add(entry)
    return entry


def get_activity_log(
    *,
    product_id: int | None = None,
    action: str | None = None,
    user_id: int | None = None,
    limit: int = DEFAULT_ACTIVITY_LIMIT,
) -> list[WarehouseActivity]:
    """Newest entries first, optionally narrowed to one product, action or user."""
    if action is not None and action not in ACTIVITY_ACTIONS:
        raise ValidationError(f"Unknown activity action: {action}")
    if limit < 1:
        raise ValidationError("limit must be at least 1")

    query = db.session.query(WarehouseActivity)
    if product_id is not None:
        query = query.filter(WarehouseActivity.target_id == product_id)
    if action is not None:
        query = query.filter(WarehouseActivity.action == action)
    if user_id is not None:
        query = query.filter(WarehouseActivity.user_id == user_id)

    return (
        query.order_by(WarehouseActivity.created_at.desc(), WarehouseActivity.id.desc())
        .limit(min(limit, MAX_ACTIVITY_LIMIT))
        .all()
    )
