"""
Concurrency tests for the inventory ledger.

Verifies:
- Concurrent removals never oversell and never go negative
- Concurrent sales on one item serialize
- Opposite-direction transfers complete without deadlock
- Retry policy and lock ordering
"""

import threading

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from retail_ledger.extensions import db
from retail_ledger.services import catalog_service, inventory_service, sales_service
from retail_ledger.services.concurrency import (
    StockLockRegistry,
    run_locked,
    run_with_retry,
    stock_key,
)
from retail_ledger.services.errors import (
    ConcurrencyConflictError,
    InsufficientStockError,
    InvalidQuantityError,
)


WORKERS = 10


def _run_threads(app, target, count):
    """Run target(index) on count threads, each inside its own app context."""
    results = []
    errors = []
    lock = threading.Lock()
    barrier = threading.Barrier(count)

    def worker(index):
        with app.app_context():
            try:
                barrier.wait()
                outcome = target(index)
                with lock:
                    results.append(outcome)
            except Exception as exc:
                with lock:
                    errors.append(exc)
            finally:
                db.session.remove()

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(count)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    return results, errors


@pytest.fixture
def seeded(threaded_app):
    with threaded_app.app_context():
        store = catalog_service.create_store("Concurrency Store", "Test Lane")
        other = catalog_service.create_store("Overflow Store", "Side Lane")
        item = catalog_service.create_item("Concurrent Widget", "Tools", 1000)
        ids = {"store": store.id, "other": other.id, "item": item.id}
    return ids


# =============================================================================
# THREADED LEDGER OPERATIONS
# =============================================================================


class TestConcurrentRemovals:
    def test_all_single_unit_removals_succeed(self, threaded_app, seeded):
        with threaded_app.app_context():
            inventory_service.add_stock(seeded["item"], seeded["store"], WORKERS)

        results, errors = _run_threads(
            threaded_app,
            lambda _: inventory_service.remove_stock(seeded["item"], seeded["store"], 1).id,
            WORKERS,
        )

        assert errors == []
        assert len(results) == WORKERS
        with threaded_app.app_context():
            assert inventory_service.get_stock(seeded["item"], seeded["store"]) == 0

    def test_one_extra_removal_fails(self, threaded_app, seeded):
        with threaded_app.app_context():
            inventory_service.add_stock(seeded["item"], seeded["store"], WORKERS)

        results, errors = _run_threads(
            threaded_app,
            lambda _: inventory_service.remove_stock(seeded["item"], seeded["store"], 1).id,
            WORKERS + 1,
        )

        assert len(results) == WORKERS
        assert len(errors) == 1
        assert isinstance(errors[0], InsufficientStockError)
        with threaded_app.app_context():
            assert inventory_service.get_stock(seeded["item"], seeded["store"]) == 0


class TestConcurrentSales:
    def test_sales_do_not_oversell(self, threaded_app, seeded):
        with threaded_app.app_context():
            inventory_service.add_stock(seeded["item"], seeded["store"], 10)

        def sell(_):
            sale = sales_service.process_sale(
                seeded["store"], [{"item_id": seeded["item"], "quantity": 3}], "CASH"
            )
            return sale.id

        results, errors = _run_threads(threaded_app, sell, 4)

        assert len(results) == 3
        assert len(errors) == 1
        assert isinstance(errors[0], InsufficientStockError)
        with threaded_app.app_context():
            assert inventory_service.get_stock(seeded["item"], seeded["store"]) == 1
            assert len(sales_service.list_sales(seeded["store"])) == 3


class TestConcurrentTransfers:
    def test_opposite_transfers_conserve_stock(self, threaded_app, seeded):
        with threaded_app.app_context():
            inventory_service.add_stock(seeded["item"], seeded["store"], 50)
            inventory_service.add_stock(seeded["item"], seeded["other"], 50)

        def transfer(index):
            if index % 2:
                return inventory_service.transfer_stock(seeded["item"], seeded["store"], seeded["other"], 1)[0].id
            return inventory_service.transfer_stock(seeded["item"], seeded["other"], seeded["store"], 1)[0].id

        results, errors = _run_threads(threaded_app, transfer, WORKERS)

        assert errors == []
        assert len(results) == WORKERS
        with threaded_app.app_context():
            total = (
                inventory_service.get_stock(seeded["item"], seeded["store"])
                + inventory_service.get_stock(seeded["item"], seeded["other"])
            )
            assert total == 100


# =============================================================================
# RETRY POLICY
# =============================================================================


class TestRunWithRetry:
    def test_retries_stale_data_then_succeeds(self, app):
        calls = []

        def flaky():
            calls.append(1)
            if len(calls) < 3:
                raise StaleDataError("version mismatch")
            return "done"

        assert run_with_retry(flaky, attempts=3, backoff_base=0) == "done"
        assert len(calls) == 3

    def test_exhausted_retries_raise_conflict(self, app):
        def always_locked():
            raise OperationalError("UPDATE stock_records", {}, Exception("database is locked"))

        with pytest.raises(ConcurrencyConflictError) as excinfo:
            run_with_retry(always_locked, attempts=2, backoff_base=0)

        assert excinfo.value.details["attempts"] == 2
        assert excinfo.value.details["cause"] == "OperationalError"

    def test_business_errors_are_not_retried(self, app):
        calls = []

        def reject():
            calls.append(1)
            raise InvalidQuantityError("quantity must be positive")

        with pytest.raises(InvalidQuantityError):
            run_with_retry(reject, attempts=3, backoff_base=0)
        assert len(calls) == 1

    def test_run_locked_rolls_back_on_failure(self, item, store, db_session):
        inventory_service.add_stock(item.id, store.id, 5)

        def partial_write():
            record = inventory_service.get_stock_record(item.id, store.id)
            record.quantity = 0
            raise InvalidQuantityError("abort after write")

        with pytest.raises(InvalidQuantityError):
            run_locked([stock_key(item.id, store.id)], partial_write)

        assert inventory_service.get_stock(item.id, store.id) == 5


class TestStockLockRegistry:
    def test_keys_are_acquired_in_global_order(self):
        registry = StockLockRegistry()

        with registry.hold([(2, 1), (1, 5), (1, 2), (2, 1)]) as ordered:
            assert ordered == [(1, 2), (1, 5), (2, 1)]

    def test_locks_are_reentrant(self):
        registry = StockLockRegistry()

        with registry.hold([(1, 1)]):
            with registry.hold([(1, 1), (1, 2)]) as ordered:
                assert ordered == [(1, 1), (1, 2)]

    def test_stock_key_orders_by_store_first(self):
        assert stock_key(item_id=9, store_id=1) < stock_key(item_id=1, store_id=2)
