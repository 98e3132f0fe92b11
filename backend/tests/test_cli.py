"""Flask CLI commands."""

from datetime import datetime

import pytest

from retail_ledger.services import inventory_service, sales_service


@pytest.fixture
def runner(app):
    return app.test_cli_runner()


class TestCatalogCommands:
    def test_create_and_list_stores(self, runner, db_session):
        result = runner.invoke(args=["stores", "create", "--name", "Harbor", "--location", "Pier 4"])
        assert "PASS Created store: Harbor" in result.output

        result = runner.invoke(args=["stores", "list"])
        assert "Harbor" in result.output

    def test_duplicate_store_fails(self, runner, store):
        result = runner.invoke(args=["stores", "create", "--name", "Downtown", "--location", "X"])

        assert result.output.startswith("FAIL")

    def test_create_and_list_items(self, runner, db_session):
        result = runner.invoke(
            args=["items", "create", "--name", "Lamp", "--category", "Lighting", "--price-cents", "4599"]
        )
        assert "PASS Created item: Lamp" in result.output

        result = runner.invoke(args=["items", "list", "--category", "Lighting"])
        assert "Lamp" in result.output

    def test_init_stores(self, runner, item, store, other_store):
        result = runner.invoke(args=["items", "init-stores", str(item.id)])

        assert "PASS Initialized item" in result.output
        assert "in 2 store(s)" in result.output


class TestStockCommands:
    def test_add_remove_show(self, runner, item, store):
        result = runner.invoke(args=["stock", "add", str(item.id), str(store.id), "12"])
        assert "quantity=12" in result.output

        result = runner.invoke(args=["stock", "remove", str(item.id), str(store.id), "4"])
        assert "quantity=8" in result.output

        result = runner.invoke(args=["stock", "show", str(item.id), str(store.id)])
        assert "available=8" in result.output

    def test_reserve_release_transfer(self, runner, item, store, other_store):
        runner.invoke(args=["stock", "add", str(item.id), str(store.id), "10"])

        result = runner.invoke(args=["stock", "reserve", str(item.id), str(store.id), "3"])
        assert "reserved=3" in result.output

        result = runner.invoke(args=["stock", "release", str(item.id), str(store.id), "1"])
        assert "reserved=2" in result.output

        result = runner.invoke(args=["stock", "transfer", str(item.id), str(store.id), str(other_store.id), "5"])
        assert f"store={other_store.id} quantity=5" in result.output
        assert inventory_service.get_stock(item.id, store.id) == 5

    def test_over_removal_reports_failure(self, runner, item, store):
        runner.invoke(args=["stock", "add", str(item.id), str(store.id), "1"])

        result = runner.invoke(args=["stock", "remove", str(item.id), str(store.id), "2"])

        assert result.output.startswith("FAIL Insufficient stock")
        assert inventory_service.get_stock(item.id, store.id) == 1

    def test_zero_quantity_reports_failure(self, runner, item, store):
        result = runner.invoke(args=["stock", "add", str(item.id), str(store.id), "0"])

        assert result.output.startswith("FAIL")

    def test_show_never_stocked(self, runner, item, store):
        result = runner.invoke(args=["stock", "show", str(item.id), str(store.id)])

        assert "(no record)" in result.output

    def test_low_stock(self, runner, item, other_item, store):
        inventory_service.add_stock(item.id, store.id, 2)
        inventory_service.add_stock(other_item.id, store.id, 50)

        result = runner.invoke(args=["stock", "low", "--store-id", str(store.id)])
        assert f"item={item.id}" in result.output
        assert f"item={other_item.id}" not in result.output

        result = runner.invoke(args=["stock", "low", "--store-id", str(store.id), "--threshold", "60"])
        assert f"item={other_item.id}" in result.output

    def test_threshold_needs_store(self, runner, db_session):
        result = runner.invoke(args=["stock", "low", "--threshold", "5"])

        assert result.output.startswith("FAIL")


class TestSalesReport:
    def test_report(self, runner, item, store):
        inventory_service.add_stock(item.id, store.id, 5)
        sales_service.process_sale(
            store.id, [{"item_id": item.id, "quantity": 2}], "CASH", sold_at=datetime(2026, 1, 15, 9, 30)
        )

        result = runner.invoke(
            args=["sales", "report", "--store-id", str(store.id), "--start", "2026-01-01", "--end", "2026-01-31T23:59:59"]
        )

        assert "transactions=1" in result.output
        assert "total_cents=2000" in result.output

    def test_bad_dates(self, runner, store):
        result = runner.invoke(
            args=["sales", "report", "--store-id", str(store.id), "--start", "yesterday", "--end", "today"]
        )

        assert result.output.startswith("FAIL")


class TestSystemCommands:
    def test_init_db_is_idempotent(self, runner, db_session):
        result = runner.invoke(args=["system", "init-db"])

        assert "PASS" in result.output

    def test_reset_db_requires_confirmation(self, runner, store):
        result = runner.invoke(args=["system", "reset-db"], input="n\n")

        assert result.exit_code != 0
        assert "Downtown" in runner.invoke(args=["stores", "list"]).output
