from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


# Tier name -> column on DirectPricing (and on Product, which mirrors them)
PRICE_TIER_COLUMNS = {
    "salePrice": "sale_price",
    "btbPrice": "btb_price",
    "btcPrice": "btc_price",
    "price3weeksDelivery": "price_3weeks_delivery",
    "price5weeksDelivery": "price_5weeks_delivery",
}
PRICE_TIERS = tuple(PRICE_TIER_COLUMNS)

BULK_PRICE_TYPE = "bulk"

UPDATE_SOURCE_DIRECT = "DIRECT_ENTRY"
UPDATE_SOURCE_BULK = "BULK_UPDATE"
UPDATE_SOURCE_ADMIN = "ADMIN_OVERRIDE"
UPDATE_SOURCES = (UPDATE_SOURCE_DIRECT, UPDATE_SOURCE_BULK, UPDATE_SOURCE_ADMIN)

PRICING_SOURCES = ("DIRECT_PRICING", "CONFIG_BASED")


class DirectPricing(db.Model):
    """
    Current tier prices for one product plus the audit trail of how they got there.

    INVARIANTS:
    - At most one row per product (unique product_id); deactivation is soft.
    - price_history is append-only. Every single-tier or bulk update appends
      exactly one entry holding a full snapshot of all tiers after the change.
    - Records are auto-approved on creation.
    """
    __tablename__ = "direct_pricing"
    __table_args__ = (
        db.UniqueConstraint("product_id", name="uq_direct_pricing_product"),
        db.Index("ix_direct_pricing_active_updated", "is_active", "last_updated_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)

    sale_price = db.Column(db.Numeric(12, 2, asdecimal=False), nullable=False, default=0)
    btb_price = db.Column(db.Numeric(12, 2, asdecimal=False), nullable=False, default=0)
    btc_price = db.Column(db.Numeric(12, 2, asdecimal=False), nullable=False, default=0)
    price_3weeks_delivery = db.Column(db.Numeric(12, 2, asdecimal=False), nullable=False, default=0)
    price_5weeks_delivery = db.Column(db.Numeric(12, 2, asdecimal=False), nullable=False, default=0)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)
    notes = db.Column(db.Text, nullable=True, default="")

    last_updated_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    last_updated_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    is_approved = db.Column(db.Boolean, nullable=False, default=True)
    approved_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    approved_at = db.Column(db.DateTime, nullable=True, default=utcnow)

    pricing_source = db.Column(db.String(32), nullable=False, default="DIRECT_PRICING")
    override_config_pricing = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    product = db.relationship("Product", backref=db.backref("direct_pricing", uselist=False))
    last_updated_by = db.relationship("User", foreign_keys=[last_updated_by_user_id])
    approved_by = db.relationship("User", foreign_keys=[approved_by_user_id])

    tier_updates = db.relationship(
        "PriceTierUpdate",
        back_populates="pricing",
        cascade="all, delete-orphan",
    )
    price_history = db.relationship(
        "PriceHistoryEntry",
        back_populates="pricing",
        order_by="PriceHistoryEntry.id",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<DirectPricing id={self.id} product_id={self.product_id} active={self.is_active}>"

    @property
    def direct_prices(self) -> dict:
        return {tier: getattr(self, col) or 0 for tier, col in PRICE_TIER_COLUMNS.items()}

    def get_price(self, tier: str):
        return getattr(self, PRICE_TIER_COLUMNS[tier]) or 0

    def set_price(self, tier: str, value) -> None:
        setattr(self, PRICE_TIER_COLUMNS[tier], value)

    @property
    def price_updated_by(self) -> dict:
        return {
            u.price_type: {"updatedBy": u.updated_by_user_id, "updatedAt": u.updated_at}
            for u in self.tier_updates
        }

    def tier_update_for(self, tier: str) -> "PriceTierUpdate":
        for u in self.tier_updates:
            if u.price_type == tier:
                return u
        u = PriceTierUpdate(price_type=tier)
        self.tier_updates.append(u)
        return u

    @property
    def has_prices(self) -> bool:
        return any(v and v > 0 for v in self.direct_prices.values())

    @property
    def latest_update(self) -> "PriceHistoryEntry | None":
        return self.price_history[-1] if self.price_history else None

    def to_dict(self, *, include_history: bool = False) -> dict:
        data = {
            "id": self.id,
            "product_id": self.product_id,
            "direct_prices": self.direct_prices,
            "price_updated_by": {
                tier: {"updatedBy": v["updatedBy"], "updatedAt": to_utc_z(v["updatedAt"])}
                for tier, v in self.price_updated_by.items()
            },
            "is_active": self.is_active,
            "notes": self.notes,
            "last_updated_by": self.last_updated_by_user_id,
            "last_updated_at": to_utc_z(self.last_updated_at),
            "is_approved": self.is_approved,
            "approved_by": self.approved_by_user_id,
            "approved_at": to_utc_z(self.approved_at),
            "pricing_source": self.pricing_source,
            "override_config_pricing": self.override_config_pricing,
            "has_prices": self.has_prices,
            "history_count": len(self.price_history),
            "latest_update": self.latest_update.to_dict() if self.latest_update else None,
        }
        if include_history:
            data["price_history"] = [e.to_dict() for e in self.price_history]
        return data


class PriceTierUpdate(db.Model):
    """Who last changed one tier of a pricing record, and when."""
    __tablename__ = "direct_pricing_tier_updates"
    __table_args__ = (
        db.UniqueConstraint("pricing_id", "price_type", name="uq_direct_pricing_tier_updates"),
    )

    id = db.Column(db.Integer, primary_key=True)
    pricing_id = db.Column(db.Integer, db.ForeignKey("direct_pricing.id"), nullable=False, index=True)
    price_type = db.Column(db.String(32), nullable=False)
    updated_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    updated_at = db.Column(db.DateTime, nullable=True)

    pricing = db.relationship("DirectPricing", back_populates="tier_updates")


class PriceHistoryEntry(db.Model):
    """
    Append-only price change record.

    prices is the full tier snapshot after the change. Bulk entries carry no
    single before/after scalar (previous_value and new_value are NULL).
    """
    __tablename__ = "direct_pricing_history"

    id = db.Column(db.Integer, primary_key=True)
    pricing_id = db.Column(db.Integer, db.ForeignKey("direct_pricing.id"), nullable=False, index=True)

    prices = db.Column(db.JSON, nullable=False)
    price_type = db.Column(db.String(32), nullable=False)
    previous_value = db.Column(db.Numeric(12, 2, asdecimal=False), nullable=True)
    new_value = db.Column(db.Numeric(12, 2, asdecimal=False), nullable=True)

    updated_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)
    notes = db.Column(db.Text, nullable=True)
    update_source = db.Column(db.String(32), nullable=False, default=UPDATE_SOURCE_DIRECT)

    pricing = db.relationship("DirectPricing", back_populates="price_history")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "prices": self.prices,
            "price_type": self.price_type,
            "previous_value": self.previous_value,
            "new_value": self.new_value,
            "updated_by": self.updated_by_user_id,
            "updated_at": to_utc_z(self.updated_at),
            "notes": self.notes,
            "update_source": self.update_source,
        }
