# Overview: Service-layer operations for the stock movement journal.

from __future__ import annotations

from typing import Optional
from datetime import datetime

from ..extensions import db
from ..models import StockMovement
"""
Stock Movement Journal Invariants (authoritative)

- Append-only log of StockRecord mutations.
- No business logic in the journal itself; the ledger validates first.
- Movements are written inside the same DB transaction as the change they
  record, so a rolled-back operation leaves no movement behind.
- occurred_at is business time; created_at is system time (DB default).
"""

MOVEMENT_ADD = "ADD"
MOVEMENT_REMOVE = "REMOVE"
MOVEMENT_RESERVE = "RESERVE"
MOVEMENT_RELEASE = "RELEASE"
MOVEMENT_TRANSFER_OUT = "TRANSFER_OUT"
MOVEMENT_TRANSFER_IN = "TRANSFER_IN"
MOVEMENT_SALE = "SALE"
MOVEMENT_REFUND = "REFUND"
MOVEMENT_INITIALIZE = "INITIALIZE"
MOVEMENT_LEVELS = "LEVELS"


def record_movement(
    *,
    item_id: int,
    store_id: int,
    movement_type: str,
    quantity_delta: int = 0,
    reserved_delta: int = 0,
    sale_id: int | None = None,
    note: str | None = None,
    occurred_at: Optional[datetime] = None,
) -> StockMovement:
    """
    Append a movement row to the current session without committing.

    The caller owns the transaction.
    """
    movement = StockMovement(
        item_id=item_id,
        store_id=store_id,
        movement_type=movement_type,
        quantity_delta=quantity_delta,
        reserved_delta=reserved_delta,
        sale_id=sale_id,
        note=note,
    )
    if occurred_at is not None:
        movement.occurred_at = occurred_at
    db.session.add(movement)
    return movement


def list_movements(
    item_id: int,
    store_id: int,
    *,
    movement_type: str | None = None,
    limit: int | None = None,
) -> list[StockMovement]:
    query = db.session.query(StockMovement).filter_by(item_id=item_id, store_id=store_id)
    if movement_type is not None:
        query = query.filter(StockMovement.movement_type == movement_type)
    query = query.order_by(StockMovement.id.asc())
    if limit is not None:
        query = query.limit(limit)
    return query.all()


def list_sale_movements(sale_id: int) -> list[StockMovement]:
    return (
        db.session.query(StockMovement)
        .filter_by(sale_id=sale_id)
        .order_by(StockMovement.id.asc())
        .all()
    )
