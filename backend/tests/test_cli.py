"""
CLI command tests (flask users / flask stock).
"""

from catalog.models import User
from catalog.services.warehouse_service import reconcile_stock


class TestStockCommands:

    def test_sync_all(self, app, db_session, make_product, make_batch):
        product = make_product()
        make_batch(product, good=6)

        result = app.test_cli_runner().invoke(args=["stock", "sync-all"])

        assert result.exit_code == 0
        assert "Synced 1/1 products (0 errors)" in result.output
        db_session.expire_all()
        assert product.stock == 6

    def test_sync_unknown_product(self, app, db_session):
        result = app.test_cli_runner().invoke(args=["stock", "sync", "999"])

        assert result.exit_code != 0
        assert "Product not found" in result.output

    def test_validate_fails_on_drift(self, app, db_session, make_product, make_batch):
        ok = make_product()
        drifted = make_product()
        make_batch(drifted, good=2)

        result = app.test_cli_runner().invoke(args=["stock", "validate"])

        assert result.exit_code == 1
        assert "Checked 2: 1 consistent, 1 inconsistent" in result.output
        assert f"FAIL Product {drifted.id}" in result.output
        assert f"FAIL Product {ok.id}" not in result.output

    def test_activity_lists_latest_changes(self, app, db_session, make_product, warehouse_user):
        product = make_product(sku="CLI-1")
        reconcile_stock(product.id, 4, warehouse_user)

        result = app.test_cli_runner().invoke(args=["stock", "activity", "--product", str(product.id)])

        assert result.exit_code == 0
        assert "STOCK_RECONCILIATION CLI-1 by warehouse" in result.output

    def test_activity_when_empty(self, app, db_session):
        result = app.test_cli_runner().invoke(args=["stock", "activity"])

        assert result.exit_code == 0
        assert "No warehouse activity recorded" in result.output


class TestUserCommands:

    def test_create_and_list(self, app, db_session):
        runner = app.test_cli_runner()

        created = runner.invoke(args=[
            "users", "create", "--username", "wh1", "--email", "wh1@example.com", "--role", "WAREHOUSE",
        ])
        listed = runner.invoke(args=["users", "list"])

        assert created.exit_code == 0
        assert db_session.query(User).filter_by(username="wh1", sub_role="WAREHOUSE").count() == 1
        assert "wh1@example.com" in listed.output

    def test_duplicate_username(self, app, db_session, staff_user):
        result = app.test_cli_runner().invoke(args=[
            "users", "create", "--username", staff_user.username, "--email", "x@example.com",
        ])

        assert result.exit_code != 0
        assert "already exists" in result.output
