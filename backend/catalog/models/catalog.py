from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow
from .records import (
    BatchDerived,
    ManualOverride,
    OVERRIDE_QUANTITY_FIELDS,
    STOCK_SOURCE_BATCHES,
    STOCK_SOURCE_DEFAULT,
    STOCK_SOURCE_MANUAL,
    WarehouseStockRecord,
)


USER_SUB_ROLES = ("MD", "DIRECTOR", "IT", "ACCOUNTANT", "WAREHOUSE", "MANAGER", "STAFF")


class User(db.Model):
    """
    Actor identity for attribution.

    Every stock and price change records who made it. The core never interprets
    the user beyond its id; sub_role is only consulted by the route decorators.
    """
    __tablename__ = "users"
    __table_args__ = (
        db.UniqueConstraint("username", name="uq_users_username"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(64), nullable=False)
    email = db.Column(db.String(255), nullable=False)
    name = db.Column(db.String(255), nullable=True)
    sub_role = db.Column(db.String(32), nullable=False, default="STAFF")
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<User id={self.id} username={self.username!r} sub_role={self.sub_role}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "username": self.username,
            "email": self.email,
            "name": self.name,
            "sub_role": self.sub_role,
            "is_active": self.is_active,
        }


class Product(db.Model):
    """
    Catalog product, host entity for both the stock and the pricing subsystems.

    STOCK FIELDS:
    - stock is the authoritative displayed quantity.
    - stock_source records which subsystem last set it.
    - warehouse_stock (optional one-to-one) carries either a manual override
      or the last batch-derived totals; see WarehouseStock.as_record().

    PRICE FIELDS:
    The five tier columns mirror the product's DirectPricing record so
    storefront reads do not need the ledger.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("sku", name="uq_products_sku"),
        db.Index("ix_products_stock_source", "stock_source"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    sku = db.Column(db.String(64), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    stock = db.Column(db.Integer, nullable=False, default=0)
    stock_source = db.Column(db.String(32), nullable=False, default=STOCK_SOURCE_DEFAULT)

    sale_price = db.Column(db.Numeric(12, 2, asdecimal=False), nullable=False, default=0)
    btb_price = db.Column(db.Numeric(12, 2, asdecimal=False), nullable=False, default=0)
    btc_price = db.Column(db.Numeric(12, 2, asdecimal=False), nullable=False, default=0)
    price_3weeks_delivery = db.Column(db.Numeric(12, 2, asdecimal=False), nullable=False, default=0)
    price_5weeks_delivery = db.Column(db.Numeric(12, 2, asdecimal=False), nullable=False, default=0)

    updated_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    warehouse_stock = db.relationship(
        "WarehouseStock",
        back_populates="product",
        uselist=False,
        cascade="all, delete-orphan",
    )
    updated_by = db.relationship("User", foreign_keys=[updated_by_user_id])

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} stock={self.stock} source={self.stock_source}>"

    @property
    def override_enabled(self) -> bool:
        return bool(self.warehouse_stock is not None and self.warehouse_stock.enabled)

    @property
    def effective_stock(self) -> int:
        if self.override_enabled:
            return self.warehouse_stock.final_stock or 0
        return self.stock or 0

    def stock_status_for(self, *, critical: int = 5, low: int = 10) -> str:
        stock = self.effective_stock
        if stock == 0:
            return "OUT_OF_STOCK"
        if stock <= critical:
            return "CRITICAL_STOCK"
        if stock <= low:
            return "LOW_STOCK"
        return "IN_STOCK"

    @property
    def stock_status(self) -> str:
        return self.stock_status_for()

    def ensure_warehouse_stock(self) -> "WarehouseStock":
        if self.warehouse_stock is None:
            self.warehouse_stock = WarehouseStock(enabled=False)
        return self.warehouse_stock

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sku": self.sku,
            "name": self.name,
            "is_active": self.is_active,
            "stock": self.stock,
            "stock_source": self.stock_source,
            "effective_stock": self.effective_stock,
            "stock_status": self.stock_status,
            "warehouse_stock": self.warehouse_stock.to_dict() if self.warehouse_stock else None,
            "prices": {
                "salePrice": self.sale_price,
                "btbPrice": self.btb_price,
                "btcPrice": self.btc_price,
                "price3weeksDelivery": self.price_3weeks_delivery,
                "price5weeksDelivery": self.price_5weeks_delivery,
            },
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class WarehouseStock(db.Model):
    """
    Warehouse stock figures for one product.

    The columns hold either a ManualOverride (enabled=True,
    source=WAREHOUSE_MANUAL) or BatchDerived totals (enabled=False,
    source=STOCK_BATCHES). Write through apply_manual_override() or
    apply_batch_derived(); read through as_record().
    """
    __tablename__ = "warehouse_stocks"

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, unique=True)

    enabled = db.Column(db.Boolean, nullable=False, default=False, index=True)

    stock_on_arrival = db.Column(db.Integer, nullable=True, default=0)
    damaged_qty = db.Column(db.Integer, nullable=True, default=0)
    expired_qty = db.Column(db.Integer, nullable=True, default=0)
    refurbished_qty = db.Column(db.Integer, nullable=True, default=0)
    final_stock = db.Column(db.Integer, nullable=True, default=0)
    online_stock = db.Column(db.Integer, nullable=True, default=0)
    offline_stock = db.Column(db.Integer, nullable=True, default=0)

    notes = db.Column(db.Text, nullable=True, default="")
    last_updated = db.Column(db.DateTime, nullable=True, index=True)
    source = db.Column(db.String(32), nullable=True)
    updated_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    product = db.relationship("Product", back_populates="warehouse_stock")

    def __repr__(self) -> str:
        return f"<WarehouseStock product_id={self.product_id} enabled={self.enabled} final={self.final_stock}>"

    def as_record(self) -> WarehouseStockRecord:
        values = {f: getattr(self, f) or 0 for f in OVERRIDE_QUANTITY_FIELDS}
        if self.enabled:
            return ManualOverride(**values, notes=self.notes or "", last_updated=self.last_updated)
        return BatchDerived(**values, last_updated=self.last_updated)

    def apply_manual_override(self, record: ManualOverride, *, updated_by_user_id: int | None = None) -> None:
        for f in OVERRIDE_QUANTITY_FIELDS:
            setattr(self, f, getattr(record, f))
        self.enabled = True
        self.notes = record.notes
        self.last_updated = record.last_updated or utcnow()
        self.source = STOCK_SOURCE_MANUAL
        self.updated_by_user_id = updated_by_user_id

    def apply_batch_derived(self, record: BatchDerived) -> None:
        for f in OVERRIDE_QUANTITY_FIELDS:
            setattr(self, f, getattr(record, f))
        self.enabled = False
        self.notes = "Auto-synced from stock batches"
        self.last_updated = record.last_updated or utcnow()
        self.source = STOCK_SOURCE_BATCHES

    def to_dict(self) -> dict:
        return {
            "enabled": self.enabled,
            "stock_on_arrival": self.stock_on_arrival,
            "damaged_qty": self.damaged_qty,
            "expired_qty": self.expired_qty,
            "refurbished_qty": self.refurbished_qty,
            "final_stock": self.final_stock,
            "online_stock": self.online_stock,
            "offline_stock": self.offline_stock,
            "notes": self.notes,
            "last_updated": to_utc_z(self.last_updated),
            "source": self.source,
            "updated_by_user_id": self.updated_by_user_id,
        }
