from __future__ import annotations

from ..extensions import db
from ..time_utils import days_until, to_utc_z, utcnow


BATCH_STATUSES = (
    "RECEIVED",
    "IN_QUALITY_CHECK",
    "AVAILABLE",
    "PARTIALLY_ALLOCATED",
    "ALLOCATED",
    "EXPIRED",
    "DAMAGED",
    "DISPOSED",
)

# Only these statuses contribute to a product's aggregate stock
ACTIVE_BATCH_STATUSES = ("AVAILABLE", "PARTIALLY_ALLOCATED", "RECEIVED")

QUALITY_STATUSES = ("PENDING", "PASSED", "FAILED", "REFURBISHED")

MOVEMENT_TYPES = (
    "RECEIVED",
    "QUALITY_CHECK",
    "ALLOCATED",
    "MOVED",
    "ADJUSTED",
    "EXPIRED",
    "DAMAGED",
)


class StockBatch(db.Model):
    """
    One discrete inventory receipt for a product.

    LIFECYCLE:
    - Created on receipt (status RECEIVED by default).
    - Mutated on quality check, allocation and adjustment.
    - Retired by a status transition (EXPIRED, DAMAGED, DISPOSED, ALLOCATED);
      physical deletion is allowed and triggers a stock resync.

    Batch writes go through stock_batch_service so the owning product's stock
    is resynced after every successful commit.
    """
    __tablename__ = "stock_batches"
    __table_args__ = (
        db.UniqueConstraint("batch_number", name="uq_stock_batches_batch_number"),
        db.Index("ix_stock_batches_product_status", "product_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    batch_number = db.Column(db.String(32), nullable=False)

    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    supplier_name = db.Column(db.String(255), nullable=True)
    purchase_order_ref = db.Column(db.String(64), nullable=True)

    original_quantity = db.Column(db.Integer, nullable=False, default=0)
    current_quantity = db.Column(db.Integer, nullable=False, default=0)
    reserved_quantity = db.Column(db.Integer, nullable=False, default=0)
    available_quantity = db.Column(db.Integer, nullable=False, default=0)

    quality_status = db.Column(db.String(16), nullable=False, default="PENDING")
    quality_notes = db.Column(db.Text, nullable=True)

    good_quantity = db.Column(db.Integer, nullable=False, default=0)
    refurbished_quantity = db.Column(db.Integer, nullable=False, default=0)
    damaged_quantity = db.Column(db.Integer, nullable=False, default=0)

    online_stock = db.Column(db.Integer, nullable=False, default=0)
    offline_stock = db.Column(db.Integer, nullable=False, default=0)

    status = db.Column(db.String(32), nullable=False, default="RECEIVED", index=True)

    unit_cost = db.Column(db.Numeric(12, 2, asdecimal=False), nullable=False, default=0)
    total_cost = db.Column(db.Numeric(14, 2, asdecimal=False), nullable=False, default=0)
    currency = db.Column(db.String(3), nullable=False, default="USD")

    received_date = db.Column(db.DateTime, nullable=False, default=utcnow)
    expiry_date = db.Column(db.DateTime, nullable=True, index=True)

    notes = db.Column(db.Text, nullable=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    updated_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    product = db.relationship("Product", backref=db.backref("stock_batches", lazy=True))
    movements = db.relationship(
        "BatchMovement",
        back_populates="batch",
        order_by="BatchMovement.id",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<StockBatch id={self.id} batch_number={self.batch_number!r} product_id={self.product_id} status={self.status}>"

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_BATCH_STATUSES

    @property
    def is_expired(self) -> bool:
        return self.expiry_date is not None and utcnow() > self.expiry_date

    @property
    def days_until_expiry(self) -> int | None:
        return days_until(self.expiry_date)

    def recalculate_derived(self) -> None:
        """Keep available_quantity and total_cost in step with their inputs."""
        self.available_quantity = (self.current_quantity or 0) - (self.reserved_quantity or 0)
        if self.unit_cost and self.original_quantity:
            self.total_cost = self.unit_cost * self.original_quantity

    def to_dict(self, *, include_movements: bool = False) -> dict:
        data = {
            "id": self.id,
            "batch_number": self.batch_number,
            "product_id": self.product_id,
            "supplier_name": self.supplier_name,
            "purchase_order_ref": self.purchase_order_ref,
            "original_quantity": self.original_quantity,
            "current_quantity": self.current_quantity,
            "reserved_quantity": self.reserved_quantity,
            "available_quantity": self.available_quantity,
            "quality_status": self.quality_status,
            "quality_notes": self.quality_notes,
            "good_quantity": self.good_quantity,
            "refurbished_quantity": self.refurbished_quantity,
            "damaged_quantity": self.damaged_quantity,
            "online_stock": self.online_stock,
            "offline_stock": self.offline_stock,
            "status": self.status,
            "unit_cost": self.unit_cost,
            "total_cost": self.total_cost,
            "currency": self.currency,
            "received_date": to_utc_z(self.received_date),
            "expiry_date": to_utc_z(self.expiry_date),
            "days_until_expiry": self.days_until_expiry,
            "notes": self.notes,
            "created_by_user_id": self.created_by_user_id,
            "updated_by_user_id": self.updated_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_movements:
            data["movements"] = [m.to_dict() for m in self.movements]
        return data


class BatchMovement(db.Model):
    """Append-only movement history for a stock batch."""
    __tablename__ = "stock_batch_movements"

    id = db.Column(db.Integer, primary_key=True)
    batch_id = db.Column(db.Integer, db.ForeignKey("stock_batches.id"), nullable=False, index=True)

    type = db.Column(db.String(32), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    from_location = db.Column(db.String(64), nullable=True)
    to_location = db.Column(db.String(64), nullable=True)
    reason = db.Column(db.String(255), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    performed_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    occurred_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    batch = db.relationship("StockBatch", back_populates="movements")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "batch_id": self.batch_id,
            "type": self.type,
            "quantity": self.quantity,
            "from_location": self.from_location,
            "to_location": self.to_location,
            "reason": self.reason,
            "notes": self.notes,
            "performed_by_user_id": self.performed_by_user_id,
            "occurred_at": to_utc_z(self.occurred_at),
        }
