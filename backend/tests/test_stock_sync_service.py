"""
Stock reconciliation engine tests.

Verifies:
- Batch-derived stock follows active batches and is idempotent
- An enabled warehouse override is never overwritten by a sync
- The override guard pins Product.stock to final_stock on every flush
- Consistency audits report each problem with both numbers
"""

import pytest
from sqlalchemy.exc import SQLAlchemyError

from catalog.models import WarehouseActivity, WarehouseStock
from catalog.models.records import ManualOverride, STOCK_SOURCE_BATCHES, STOCK_SOURCE_MANUAL
from catalog.services import stock_sync_service
from catalog.services.stock_sync_service import (
    SYNC_STATUS_OVERRIDE_ACTIVE,
    SYNC_STATUS_PRODUCT_MISSING,
    SYNC_STATUS_SYNCED,
    disable_override_and_sync,
    force_sync_product,
    recompute_from_batches,
    sync_after_batch_write,
    sync_all_from_batches,
    validate_multiple_products_stock,
    validate_stock_consistency,
)
from catalog.services.concurrency import StorageError
from catalog.validation import NotFoundError


def _enable_override(db_session, product, *, final_stock=50, stock_on_arrival=None, **fields):
    values = {
        "stock_on_arrival": final_stock if stock_on_arrival is None else stock_on_arrival,
        "damaged_qty": 0,
        "expired_qty": 0,
        "refurbished_qty": 0,
        "final_stock": final_stock,
        "online_stock": 0,
        "offline_stock": 0,
    }
    values.update(fields)
    product.ensure_warehouse_stock().apply_manual_override(ManualOverride(**values, notes="Counted by hand"))
    db_session.commit()
    return product


# =============================================================================
# RECOMPUTE FROM BATCHES
# =============================================================================


class TestRecomputeFromBatches:

    def test_stock_is_sum_of_good_and_refurbished_over_active_batches(self, db_session, make_product, make_batch):
        product = make_product()
        make_batch(product, good=10, refurbished=2, status="AVAILABLE")
        make_batch(product, good=3, status="RECEIVED")
        make_batch(product, good=100, status="DISPOSED")
        make_batch(product, good=40, status="EXPIRED")

        result = recompute_from_batches(product.id)
        db_session.commit()

        assert result.status == SYNC_STATUS_SYNCED
        assert result.stock == 15
        assert product.stock == 15
        assert product.stock_source == STOCK_SOURCE_BATCHES

    def test_single_available_batch(self, db_session, make_product, make_batch):
        product = make_product()
        make_batch(product, good=10, refurbished=2, status="AVAILABLE")

        recompute_from_batches(product.id)
        db_session.commit()

        assert product.stock == 12
        assert product.stock_source == STOCK_SOURCE_BATCHES

    def test_no_active_batches_gives_zero(self, db_session, make_product, make_batch):
        product = make_product(stock=33)
        make_batch(product, good=10, status="ALLOCATED")

        result = recompute_from_batches(product.id)
        db_session.commit()

        assert result.stock == 0
        assert product.stock == 0

    def test_totals_are_written_to_warehouse_row_with_override_off(self, db_session, make_product, make_batch):
        product = make_product()
        make_batch(product, good=10, refurbished=2, damaged_quantity=3, online_stock=4, offline_stock=5)
        make_batch(product, good=1, status="PARTIALLY_ALLOCATED")

        recompute_from_batches(product.id)
        db_session.commit()

        ws = product.warehouse_stock
        assert ws.enabled is False
        assert ws.source == STOCK_SOURCE_BATCHES
        assert ws.notes == "Auto-synced from stock batches"
        assert ws.stock_on_arrival == 16
        assert ws.damaged_qty == 3
        assert ws.refurbished_qty == 2
        assert ws.expired_qty == 0
        assert ws.final_stock == 13
        assert ws.online_stock == 4
        assert ws.offline_stock == 5
        assert ws.last_updated is not None

    def test_missing_product_is_a_no_op(self, db_session):
        result = recompute_from_batches(424242)

        assert result.status == SYNC_STATUS_PRODUCT_MISSING
        assert result.stock is None

    def test_is_idempotent(self, db_session, make_product, make_batch):
        product = make_product()
        make_batch(product, good=7, refurbished=1, online_stock=2)

        recompute_from_batches(product.id)
        db_session.commit()
        first = {k: v for k, v in product.warehouse_stock.to_dict().items() if k != "last_updated"}
        first_stock = product.stock

        recompute_from_batches(product.id)
        db_session.commit()
        second = {k: v for k, v in product.warehouse_stock.to_dict().items() if k != "last_updated"}

        assert product.stock == first_stock == 8
        assert second == first

    def test_override_enabled_leaves_stock_and_warehouse_row_alone(self, db_session, make_product, make_batch):
        product = make_product()
        _enable_override(db_session, product, final_stock=50, online_stock=20)
        before = product.warehouse_stock.to_dict()
        make_batch(product, good=10, refurbished=2)

        result = recompute_from_batches(product.id)
        db_session.commit()

        assert result.status == SYNC_STATUS_OVERRIDE_ACTIVE
        assert product.stock == 50
        assert product.stock_source == STOCK_SOURCE_MANUAL
        assert product.warehouse_stock.to_dict() == before


# =============================================================================
# POST-WRITE TRIGGER
# =============================================================================


class TestSyncAfterBatchWrite:

    def test_commits_the_sync(self, db_session, make_product, make_batch):
        product = make_product()
        make_batch(product, good=4)

        result = sync_after_batch_write(product.id)

        assert result.synced
        db_session.expire_all()
        assert product.stock == 4

    def test_failures_are_logged_and_swallowed(self, db_session, make_product, monkeypatch, caplog):
        product = make_product(stock=9)

        def boom(product_id, **kwargs):
            raise RuntimeError("database went away")

        monkeypatch.setattr(stock_sync_service, "recompute_from_batches", boom)

        assert sync_after_batch_write(product.id) is None
        assert "Error syncing product" in caplog.text
        db_session.expire_all()
        assert product.stock == 9


# =============================================================================
# OVERRIDE GUARD
# =============================================================================


class TestOverrideGuard:

    def test_stock_is_pinned_to_final_stock_on_flush(self, db_session, make_product):
        product = make_product(stock=3)
        product.warehouse_stock = WarehouseStock(enabled=True, final_stock=7, damaged_qty=None)
        db_session.commit()

        assert product.stock == 7
        assert product.stock_source == STOCK_SOURCE_MANUAL
        ws = product.warehouse_stock
        assert ws.source == STOCK_SOURCE_MANUAL
        assert ws.damaged_qty == 0
        assert ws.last_updated is not None

    def test_direct_stock_write_is_corrected_while_override_enabled(self, db_session, make_product):
        product = make_product()
        _enable_override(db_session, product, final_stock=20)

        product.stock = 999
        db_session.commit()

        assert product.stock == 20

    def test_guard_ignores_products_without_override(self, db_session, make_product):
        product = make_product(stock=5)
        product.stock = 6
        db_session.commit()

        assert product.stock == 6
        assert product.stock_source == "PRODUCT_DEFAULT"


# =============================================================================
# FORCE SYNC / DISABLE OVERRIDE
# =============================================================================


class TestForceSync:

    def test_missing_product_raises(self, db_session):
        with pytest.raises(NotFoundError):
            force_sync_product(999)

    def test_skips_when_override_enabled(self, db_session, make_product, make_batch):
        product = make_product()
        _enable_override(db_session, product, final_stock=50)
        make_batch(product, good=10, refurbished=2)

        result = force_sync_product(product.id)

        assert result == {"synced": False, "reason": "Manual override enabled", "currentStock": 50}

    def test_syncs_from_batches(self, db_session, make_product, make_batch):
        product = make_product()
        make_batch(product, good=10, refurbished=2)

        result = force_sync_product(product.id)

        assert result == {"synced": True, "reason": "Synced from stock batches", "currentStock": 12}


class TestDisableOverrideAndSync:

    def test_restores_batch_derived_stock(self, db_session, make_product, make_batch):
        product = make_product()
        make_batch(product, good=10, refurbished=2)
        _enable_override(db_session, product, final_stock=50)
        assert product.stock == 50

        result = disable_override_and_sync(product.id)

        assert result["success"] is True
        assert result["message"] == "Warehouse override disabled and stock synced"
        assert result["newStock"] == 12
        assert result["source"] == STOCK_SOURCE_BATCHES
        db_session.expire_all()
        assert product.stock == 12
        assert product.stock_source == STOCK_SOURCE_BATCHES
        assert product.warehouse_stock.enabled is False

    def test_missing_product_raises(self, db_session):
        with pytest.raises(NotFoundError):
            disable_override_and_sync(999)

    def test_failed_recompute_leaves_override_enabled(self, db_session, make_product, make_batch, monkeypatch):
        product = make_product()
        make_batch(product, good=10)
        _enable_override(db_session, product, final_stock=50)

        def boom(product_id, **kwargs):
            raise SQLAlchemyError("disk I/O error")

        monkeypatch.setattr(stock_sync_service, "recompute_from_batches", boom)

        with pytest.raises(StorageError):
            disable_override_and_sync(product.id)

        db_session.expire_all()
        assert product.warehouse_stock.enabled is True
        assert product.stock == 50
        assert product.stock_source == STOCK_SOURCE_MANUAL
        assert db_session.query(WarehouseActivity).count() == 0


# =============================================================================
# CONSISTENCY AUDITS
# =============================================================================


class TestValidateStockConsistency:

    def test_fresh_product_is_consistent(self, db_session, make_product):
        product = make_product()

        result = validate_stock_consistency(product.id)

        assert result["isConsistent"] is True
        assert result["issues"] == []
        assert result["warehouseManaged"] is False
        assert result["productId"] == product.id

    def test_broken_quality_breakdown_reports_both_numbers(self, db_session, make_product):
        product = make_product()
        _enable_override(
            db_session, product,
            final_stock=50, stock_on_arrival=100, damaged_qty=5, online_stock=10, offline_stock=10,
        )

        result = validate_stock_consistency(product.id)

        assert result["isConsistent"] is False
        assert result["warehouseManaged"] is True
        assert len(result["issues"]) == 1
        assert "55" in result["issues"][0]
        assert "100" in result["issues"][0]

    def test_distribution_exceeding_final_stock(self, db_session, make_product):
        product = make_product()
        _enable_override(db_session, product, final_stock=50, online_stock=40, offline_stock=20)

        result = validate_stock_consistency(product.id)

        assert result["issues"] == ["Distribution exceeds final stock: 60 vs 50"]

    def test_unsynced_batches_are_reported(self, db_session, make_product, make_batch):
        product = make_product()
        make_batch(product, good=10, refurbished=2)

        result = validate_stock_consistency(product.id)

        assert result["issues"] == ["Product stock doesn't match batch totals: 0 vs 12"]

    def test_missing_product_raises(self, db_session):
        with pytest.raises(NotFoundError):
            validate_stock_consistency(999)


class TestValidateMultipleProducts:

    def test_returns_only_inconsistent_results(self, db_session, make_product, make_batch):
        ok = make_product()
        drifted = make_product()
        make_batch(drifted, good=5)

        result = validate_multiple_products_stock([ok.id, drifted.id, 9999])

        assert result["totalChecked"] == 3
        assert result["consistent"] == 1
        assert result["inconsistent"] == 2
        assert [r["productId"] for r in result["results"]] == [drifted.id, 9999]

        missing = result["results"][1]
        assert missing["error"] is True
        assert missing["isConsistent"] is False
        assert missing["issues"] == ["Validation error: Product not found"]


class TestSyncAll:

    def test_resyncs_every_product_without_override(self, db_session, make_product, make_batch):
        a = make_product()
        b = make_product()
        manual = make_product()
        make_batch(a, good=3)
        make_batch(b, good=4, refurbished=1)
        _enable_override(db_session, manual, final_stock=50)
        make_batch(manual, good=1)

        result = sync_all_from_batches()

        assert result == {"totalProducts": 2, "syncedCount": 2, "errorCount": 0}
        entry = db_session.query(WarehouseActivity).one()
        assert entry.action == "BULK_STOCK_SYNC"
        assert entry.target_type == "SYSTEM"
        assert entry.notes == "Synced 2 products, 0 errors"
        db_session.expire_all()
        assert a.stock == 3
        assert b.stock == 5
        assert manual.stock == 50
