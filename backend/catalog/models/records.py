"""
Value types for warehouse stock figures.

A product's warehouse_stock row holds one of two shapes:

- ManualOverride: figures typed in by warehouse staff. While enabled, the
  product's stock is pinned to final_stock and batch syncs leave it alone.
- BatchDerived: totals folded from active stock batches by the sync engine,
  kept visible on the row with enabled=False.

WarehouseStock.as_record() picks the variant from the enabled/source flags so
callers never have to guess which meaning the columns currently carry.
"""
from __future__ import annotations

from dataclasses import dataclass, asdict
from datetime import datetime
from typing import Union


STOCK_SOURCE_BATCHES = "STOCK_BATCHES"
STOCK_SOURCE_MANUAL = "WAREHOUSE_MANUAL"
STOCK_SOURCE_DEFAULT = "PRODUCT_DEFAULT"
STOCK_SOURCES = (STOCK_SOURCE_MANUAL, STOCK_SOURCE_BATCHES, STOCK_SOURCE_DEFAULT)

# Numeric subfields every override record must carry
OVERRIDE_QUANTITY_FIELDS = (
    "stock_on_arrival",
    "damaged_qty",
    "expired_qty",
    "refurbished_qty",
    "final_stock",
    "online_stock",
    "offline_stock",
)


@dataclass(frozen=True)
class StockTotals:
    """Sums over a product's active batches."""
    stock_on_arrival: int = 0
    good_quantity: int = 0
    refurbished_quantity: int = 0
    damaged_quantity: int = 0
    expired_quantity: int = 0
    online_stock: int = 0
    offline_stock: int = 0

    @property
    def final_stock(self) -> int:
        return self.good_quantity + self.refurbished_quantity

    def add_batch(self, batch) -> "StockTotals":
        return StockTotals(
            stock_on_arrival=self.stock_on_arrival + (batch.original_quantity or 0),
            good_quantity=self.good_quantity + (batch.good_quantity or 0),
            refurbished_quantity=self.refurbished_quantity + (batch.refurbished_quantity or 0),
            damaged_quantity=self.damaged_quantity + (batch.damaged_quantity or 0),
            # Batches do not track expiry losses separately
            expired_quantity=self.expired_quantity,
            online_stock=self.online_stock + (batch.online_stock or 0),
            offline_stock=self.offline_stock + (batch.offline_stock or 0),
        )

    def to_dict(self) -> dict:
        data = asdict(self)
        data["final_stock"] = self.final_stock
        return data


@dataclass(frozen=True)
class ManualOverride:
    stock_on_arrival: int
    damaged_qty: int
    expired_qty: int
    refurbished_qty: int
    final_stock: int
    online_stock: int
    offline_stock: int
    notes: str = ""
    last_updated: datetime | None = None

    source = STOCK_SOURCE_MANUAL
    enabled = True


@dataclass(frozen=True)
class BatchDerived:
    stock_on_arrival: int
    damaged_qty: int
    expired_qty: int
    refurbished_qty: int
    final_stock: int
    online_stock: int
    offline_stock: int
    last_updated: datetime | None = None

    source = STOCK_SOURCE_BATCHES
    enabled = False

    @classmethod
    def from_totals(cls, totals: StockTotals, last_updated: datetime | None = None) -> "BatchDerived":
        return cls(
            stock_on_arrival=totals.stock_on_arrival,
            damaged_qty=totals.damaged_quantity,
            expired_qty=totals.expired_quantity,
            refurbished_qty=totals.refurbished_quantity,
            final_stock=totals.final_stock,
            online_stock=totals.online_stock,
            offline_stock=totals.offline_stock,
            last_updated=last_updated,
        )


WarehouseStockRecord = Union[ManualOverride, BatchDerived]
