# Overview: Service-layer operations for inventory; the only writer of StockRecord rows.

# backend/retail_ledger/services/inventory_service.py

from __future__ import annotations

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import StockRecord
from .catalog_service import list_stores, require_item, require_store
from .concurrency import lock_for_update, run_locked, stock_key
from .errors import (
    ConcurrencyConflictError,
    InsufficientStockError,
    InvalidQuantityError,
    InvalidReservationError,
    InvalidStockLevelError,
    InvalidTransferError,
)
from .movement_service import (
    MOVEMENT_ADD,
    MOVEMENT_INITIALIZE,
    MOVEMENT_LEVELS,
    MOVEMENT_RELEASE,
    MOVEMENT_REMOVE,
    MOVEMENT_RESERVE,
    MOVEMENT_TRANSFER_IN,
    MOVEMENT_TRANSFER_OUT,
    record_movement,
)
"""
Inventory Ledger Invariants (authoritative)

Stock model:
- One StockRecord per (item_id, store_id); looked up through the unique
  composite index, never by scanning.
- A missing record means zero stock. Records are created lazily on the first
  inbound movement (quantity 0, configured default levels) and never deleted.

Business invariants:
- quantity >= 0 and 0 <= reserved_quantity <= quantity at every commit.
- available_quantity = quantity - reserved_quantity.
- remove / reserve may never take more than available_quantity.
- Every quantity argument must be a positive integer; zero and negative
  values are rejected, never treated as a no-op.

Concurrency:
- Each mutation holds the in-process lock for its (store, item) key from the
  first read through the commit, and reads rows with SELECT ... FOR UPDATE.
- Multi-key operations acquire keys in ascending (store_id, item_id) order.
- A failed operation rolls back before releasing its locks.

Audit:
- Each mutation appends a StockMovement in the same DB transaction.
"""


def _require_quantity(quantity, *, field: str = "quantity") -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise InvalidQuantityError(f"{field} must be an integer", details={field: quantity})
    if quantity <= 0:
        raise InvalidQuantityError(f"{field} must be positive", details={field: quantity})
    return quantity


def _record_query(item_id: int, store_id: int):
    return db.session.query(StockRecord).filter_by(item_id=item_id, store_id=store_id)


def _get_record_locked(item_id: int, store_id: int) -> StockRecord | None:
    return lock_for_update(_record_query(item_id, store_id)).first()


def _get_or_create_record_locked(item_id: int, store_id: int) -> StockRecord:
    record = _get_record_locked(item_id, store_id)
    if record is not None:
        return record

    require_item(item_id)
    require_store(store_id)

    record = StockRecord(
        item_id=item_id,
        store_id=store_id,
        quantity=0,
        reserved_quantity=0,
        min_stock_level=current_app.config.get("DEFAULT_MIN_STOCK_LEVEL", 5),
        max_stock_level=current_app.config.get("DEFAULT_MAX_STOCK_LEVEL", 100),
    )
    db.session.add(record)
    try:
        db.session.flush()
    except IntegrityError as exc:
        # Another process inserted the same (item, store) first; retry re-reads it.
        raise ConcurrencyConflictError(
            "Stock record was created concurrently",
            details={"item_id": item_id, "store_id": store_id},
        ) from exc
    return record


def _insufficient(item_id: int, store_id: int, requested: int, available: int, action: str) -> InsufficientStockError:
    current_app.logger.warning(
        "Rejected %s: item=%s store=%s requested=%s available=%s",
        action, item_id, store_id, requested, available,
    )
    return InsufficientStockError(
        f"Insufficient stock for item {item_id} in store {store_id}. "
        f"Available: {available}, requested: {requested}",
        details={
            "item_id": item_id,
            "store_id": store_id,
            "requested_quantity": requested,
            "available_quantity": available,
        },
    )


# =============================================================================
# LOCKED PRIMITIVES
# Caller must hold the stock lock for the key and owns the commit.
# =============================================================================

def add_stock_locked(
    item_id: int,
    store_id: int,
    quantity: int,
    *,
    movement_type: str = MOVEMENT_ADD,
    sale_id: int | None = None,
    note: str | None = None,
) -> StockRecord:
    record = _get_or_create_record_locked(item_id, store_id)
    record.quantity += quantity
    record_movement(
        item_id=item_id,
        store_id=store_id,
        movement_type=movement_type,
        quantity_delta=quantity,
        sale_id=sale_id,
        note=note,
    )
    return record


def remove_stock_locked(
    item_id: int,
    store_id: int,
    quantity: int,
    *,
    movement_type: str = MOVEMENT_REMOVE,
    sale_id: int | None = None,
    note: str | None = None,
) -> StockRecord:
    record = _get_record_locked(item_id, store_id)
    if record is None:
        require_item(item_id)
        require_store(store_id)
        raise _insufficient(item_id, store_id, quantity, 0, "removal")

    available = record.available_quantity
    if quantity > available:
        raise _insufficient(item_id, store_id, quantity, available, "removal")

    record.quantity -= quantity
    record_movement(
        item_id=item_id,
        store_id=store_id,
        movement_type=movement_type,
        quantity_delta=-quantity,
        sale_id=sale_id,
        note=note,
    )
    return record


def available_locked(item_id: int, store_id: int) -> int:
    record = _get_record_locked(item_id, store_id)
    return record.available_quantity if record is not None else 0


# =============================================================================
# STOCK MUTATIONS
# =============================================================================

def add_stock(item_id: int, store_id: int, quantity: int, *, note: str | None = None) -> StockRecord:
    """
    Add stock (e.g., when receiving a shipment).

    Creates the record with quantity 0 and default levels when the pair has
    never been stocked.
    """
    _require_quantity(quantity)

    def _op():
        record = add_stock_locked(item_id, store_id, quantity, note=note)
        new_quantity = record.quantity
        db.session.commit()
        current_app.logger.info(
            "Stock added: item=%s store=%s qty=%s on_hand=%s", item_id, store_id, quantity, new_quantity
        )
        return record

    return run_locked([stock_key(item_id, store_id)], _op)


def remove_stock(item_id: int, store_id: int, quantity: int, *, note: str | None = None) -> StockRecord:
    """
    Remove stock (shrinkage, damage, manual correction).

    Reserved units are protected: only available_quantity can be removed.
    """
    _require_quantity(quantity)

    def _op():
        record = remove_stock_locked(item_id, store_id, quantity, note=note)
        new_quantity = record.quantity
        db.session.commit()
        current_app.logger.info(
            "Stock removed: item=%s store=%s qty=%s on_hand=%s", item_id, store_id, quantity, new_quantity
        )
        return record

    return run_locked([stock_key(item_id, store_id)], _op)


def reserve_stock(item_id: int, store_id: int, quantity: int, *, note: str | None = None) -> StockRecord:
    """
    Hold stock for a pending sale without removing it from on-hand.

    Shrinks available_quantity only; quantity is unchanged.
    """
    _require_quantity(quantity)

    def _op():
        record = _get_record_locked(item_id, store_id)
        if record is None:
            require_item(item_id)
            require_store(store_id)
            raise _insufficient(item_id, store_id, quantity, 0, "reservation")

        available = record.available_quantity
        if quantity > available:
            raise _insufficient(item_id, store_id, quantity, available, "reservation")

        record.reserved_quantity += quantity
        record_movement(
            item_id=item_id,
            store_id=store_id,
            movement_type=MOVEMENT_RESERVE,
            reserved_delta=quantity,
            note=note,
        )
        reserved = record.reserved_quantity
        db.session.commit()
        current_app.logger.info(
            "Stock reserved: item=%s store=%s qty=%s reserved=%s", item_id, store_id, quantity, reserved
        )
        return record

    return run_locked([stock_key(item_id, store_id)], _op)


def release_reservation(item_id: int, store_id: int, quantity: int, *, note: str | None = None) -> StockRecord:
    """Give reserved units back to available stock."""
    _require_quantity(quantity)

    def _op():
        record = _get_record_locked(item_id, store_id)
        reserved = record.reserved_quantity if record is not None else 0
        if record is None:
            require_item(item_id)
            require_store(store_id)
        if quantity > reserved:
            current_app.logger.warning(
                "Rejected release: item=%s store=%s requested=%s reserved=%s",
                item_id, store_id, quantity, reserved,
            )
            raise InvalidReservationError(
                f"Cannot release {quantity} units; only {reserved} reserved",
                details={
                    "item_id": item_id,
                    "store_id": store_id,
                    "requested_quantity": quantity,
                    "reserved_quantity": reserved,
                },
            )

        record.reserved_quantity -= quantity
        record_movement(
            item_id=item_id,
            store_id=store_id,
            movement_type=MOVEMENT_RELEASE,
            reserved_delta=-quantity,
            note=note,
        )
        db.session.commit()
        current_app.logger.info("Reservation released: item=%s store=%s qty=%s", item_id, store_id, quantity)
        return record

    return run_locked([stock_key(item_id, store_id)], _op)


def transfer_stock(
    item_id: int,
    from_store_id: int,
    to_store_id: int,
    quantity: int,
    *,
    note: str | None = None,
) -> tuple[StockRecord, StockRecord]:
    """
    Move stock between stores as one unit of work.

    Both keys are locked in global order and both writes share one DB
    transaction: if the source cannot cover the quantity nothing changes.

    Returns:
        (source_record, destination_record)
    """
    _require_quantity(quantity)
    if from_store_id == to_store_id:
        raise InvalidTransferError(
            "Cannot transfer to the same store",
            details={"store_id": from_store_id},
        )

    def _op():
        require_store(to_store_id)
        source = remove_stock_locked(
            item_id, from_store_id, quantity,
            movement_type=MOVEMENT_TRANSFER_OUT,
            note=note or f"Transfer to store {to_store_id}",
        )
        destination = add_stock_locked(
            item_id, to_store_id, quantity,
            movement_type=MOVEMENT_TRANSFER_IN,
            note=note or f"Transfer from store {from_store_id}",
        )
        db.session.commit()
        current_app.logger.info(
            "Stock transferred: item=%s from=%s to=%s qty=%s", item_id, from_store_id, to_store_id, quantity
        )
        return source, destination

    return run_locked(
        [stock_key(item_id, from_store_id), stock_key(item_id, to_store_id)],
        _op,
    )


def update_stock_levels(
    item_id: int,
    store_id: int,
    *,
    min_stock_level: int | None = None,
    max_stock_level: int | None = None,
) -> StockRecord:
    """Change the alerting thresholds for one record (creating it if needed)."""
    for field, value in (("min_stock_level", min_stock_level), ("max_stock_level", max_stock_level)):
        if value is None:
            continue
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            raise InvalidStockLevelError(f"{field} must be a non-negative integer", details={field: value})

    def _op():
        record = _get_or_create_record_locked(item_id, store_id)
        new_min = record.min_stock_level if min_stock_level is None else min_stock_level
        new_max = record.max_stock_level if max_stock_level is None else max_stock_level
        if new_min > new_max:
            raise InvalidStockLevelError(
                "min_stock_level cannot exceed max_stock_level",
                details={"min_stock_level": new_min, "max_stock_level": new_max},
            )

        record.min_stock_level = new_min
        record.max_stock_level = new_max
        record_movement(
            item_id=item_id,
            store_id=store_id,
            movement_type=MOVEMENT_LEVELS,
            note=f"min={new_min} max={new_max}",
        )
        db.session.commit()
        return record

    return run_locked([stock_key(item_id, store_id)], _op)


def initialize_item_in_all_stores(item_id: int) -> list[StockRecord]:
    """
    Create a zero-quantity record for the item in every store that lacks one.

    Safe to call repeatedly (idempotent). Returns only the records created.
    """
    require_item(item_id)
    store_ids = [store.id for store in list_stores()]

    def _op():
        created = []
        for store_id in store_ids:
            if _get_record_locked(item_id, store_id) is not None:
                continue
            record = _get_or_create_record_locked(item_id, store_id)
            record_movement(
                item_id=item_id,
                store_id=store_id,
                movement_type=MOVEMENT_INITIALIZE,
                note="Initialized with zero stock",
            )
            created.append(record)
        db.session.commit()
        if created:
            current_app.logger.info("Item %s initialized in %d store(s)", item_id, len(created))
        return created

    return run_locked([stock_key(item_id, store_id) for store_id in store_ids], _op)


# =============================================================================
# READS
# =============================================================================

def get_stock_record(item_id: int, store_id: int) -> StockRecord | None:
    return _record_query(item_id, store_id).populate_existing().first()


def get_stock(item_id: int, store_id: int) -> int:
    """On-hand quantity; zero when the pair has never been stocked."""
    record = get_stock_record(item_id, store_id)
    return record.quantity if record is not None else 0


def get_available(item_id: int, store_id: int) -> int:
    """quantity - reserved_quantity; zero when the pair has never been stocked."""
    record = get_stock_record(item_id, store_id)
    return record.available_quantity if record is not None else 0


def list_store_inventory(store_id: int) -> list[StockRecord]:
    return (
        db.session.query(StockRecord)
        .filter_by(store_id=store_id)
        .order_by(StockRecord.item_id.asc())
        .populate_existing()
        .all()
    )


def list_item_inventory(item_id: int) -> list[StockRecord]:
    return (
        db.session.query(StockRecord)
        .filter_by(item_id=item_id)
        .order_by(StockRecord.store_id.asc())
        .populate_existing()
        .all()
    )


def list_low_stock(store_id: int, threshold: int) -> list[StockRecord]:
    """
    Records in the store with quantity strictly below threshold.

    This is the caller-supplied threshold query; see list_below_min_level
    for the per-record min_stock_level flag.
    """
    if isinstance(threshold, bool) or not isinstance(threshold, int):
        raise InvalidStockLevelError("threshold must be an integer", details={"threshold": threshold})
    return (
        db.session.query(StockRecord)
        .filter(StockRecord.store_id == store_id, StockRecord.quantity < threshold)
        .order_by(StockRecord.quantity.asc(), StockRecord.item_id.asc())
        .populate_existing()
        .all()
    )


def list_below_min_level(store_id: int | None = None) -> list[StockRecord]:
    """Records flagged is_low_stock (quantity <= min_stock_level), one store or all."""
    query = db.session.query(StockRecord).filter(StockRecord.quantity <= StockRecord.min_stock_level)
    if store_id is not None:
        query = query.filter(StockRecord.store_id == store_id)
    return query.order_by(StockRecord.store_id.asc(), StockRecord.item_id.asc()).populate_existing().all()


def list_overstocked(store_id: int) -> list[StockRecord]:
    return (
        db.session.query(StockRecord)
        .filter(StockRecord.store_id == store_id, StockRecord.quantity >= StockRecord.max_stock_level)
        .order_by(StockRecord.item_id.asc())
        .populate_existing()
        .all()
    )
