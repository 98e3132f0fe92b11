"""
Sale Transaction Engine - validate-then-commit sale processing and refunds

WHY: A multi-line sale must either deduct every line or nothing at all.
All stock keys touched by the sale are locked (in global order) before the
first read, every line is validated, and only then are deductions applied
and the sale persisted, all in one DB transaction.

REFUNDS: Refunds restore stock through the ledger and always credit the
full unit price of the refunded units; line discounts are not prorated.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from datetime import datetime

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import Item, PaymentMethod, Sale, SaleLine
from retail_ledger.time_utils import to_utc_naive, utcnow
from .catalog_service import get_item, require_store
from .concurrency import lock_for_update, run_locked, stock_key
from .errors import (
    InsufficientStockError,
    InvalidQuantityError,
    InvalidRefundQuantityError,
    InvalidSaleError,
    ItemNotFoundError,
    LineNotFoundError,
    NotAuthorizedError,
    SaleNotFoundError,
)
from .inventory_service import add_stock_locked, available_locked, remove_stock_locked
from .movement_service import MOVEMENT_REFUND, MOVEMENT_SALE


def _parse_payment_method(value) -> PaymentMethod:
    if isinstance(value, PaymentMethod):
        return value
    try:
        return PaymentMethod(str(value).strip().upper())
    except ValueError:
        raise InvalidSaleError(
            f"Unknown payment method {value!r}",
            details={"allowed": [m.value for m in PaymentMethod]},
        ) from None


def _normalize_lines(lines: Sequence[Mapping]) -> list[dict]:
    if not lines:
        raise InvalidSaleError("Cannot process a sale with no lines")

    normalized = []
    for number, raw in enumerate(lines, start=1):
        item_id = raw.get("item_id")
        quantity = raw.get("quantity")
        discount_cents = raw.get("discount_cents") or 0

        if isinstance(item_id, bool) or not isinstance(item_id, int):
            raise InvalidSaleError(f"Line {number}: item_id must be an integer", details={"line": number})
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
            raise InvalidQuantityError(
                f"Line {number}: quantity must be a positive integer",
                details={"line": number, "quantity": quantity},
            )
        if isinstance(discount_cents, bool) or not isinstance(discount_cents, int) or discount_cents < 0:
            raise InvalidSaleError(
                f"Line {number}: discount_cents must be a non-negative integer",
                details={"line": number, "discount_cents": discount_cents},
            )

        normalized.append({"item_id": item_id, "quantity": quantity, "discount_cents": discount_cents})
    return normalized


def _resolve_items(lines: list[dict]) -> dict[int, Item]:
    items: dict[int, Item] = {}
    for line in lines:
        item_id = line["item_id"]
        if item_id in items:
            continue
        item = get_item(item_id)
        if item is None:
            raise ItemNotFoundError(f"Item not found: {item_id}", details={"item_id": item_id})
        items[item_id] = item

    for number, line in enumerate(lines, start=1):
        gross = items[line["item_id"]].price_cents * line["quantity"]
        if line["discount_cents"] > gross:
            raise InvalidSaleError(
                f"Line {number}: discount exceeds line amount",
                details={"line": number, "discount_cents": line["discount_cents"], "gross_cents": gross},
            )
    return items


def _validate_available(store_id: int, lines: list[dict], items: dict[int, Item]) -> None:
    requested: dict[int, int] = {}
    for line in lines:
        requested[line["item_id"]] = requested.get(line["item_id"], 0) + line["quantity"]

    insufficient = []
    for item_id, qty in requested.items():
        available = available_locked(item_id, store_id)
        if available < qty:
            insufficient.append({
                "item_id": item_id,
                "name": items[item_id].name,
                "requested_quantity": qty,
                "available_quantity": available,
            })

    if insufficient:
        names = ", ".join(entry["name"] for entry in insufficient)
        current_app.logger.warning("Sale rejected in store %s: insufficient stock for %s", store_id, names)
        raise InsufficientStockError(
            f"Insufficient stock for item(s): {names}",
            details={"store_id": store_id, "items": insufficient},
        )


def process_sale(
    store_id: int,
    lines: Sequence[Mapping],
    payment_method: PaymentMethod | str,
    *,
    customer_email: str | None = None,
    customer_phone: str | None = None,
    sold_at: datetime | None = None,
) -> Sale:
    """
    Validate and commit a multi-line sale.

    Args:
        store_id: Already-authorized store the sale belongs to
        lines: Sequence of {"item_id", "quantity", optional "discount_cents"}
        payment_method: PaymentMethod or its name
        customer_email / customer_phone: Optional customer contact
        sold_at: Business time of the sale (defaults to now, UTC)

    Returns:
        The persisted Sale with its lines

    Raises:
        StoreNotFoundError, ItemNotFoundError, InsufficientStockError,
        InvalidQuantityError, InvalidSaleError
    """
    method = _parse_payment_method(payment_method)
    normalized = _normalize_lines(lines)
    sale_date = to_utc_naive(sold_at) if sold_at is not None else utcnow()
    keys = [stock_key(line["item_id"], store_id) for line in normalized]

    def _op():
        require_store(store_id)
        items = _resolve_items(normalized)

        # Phase 1: validate every line before touching stock
        _validate_available(store_id, normalized, items)

        # Phase 2: deduct and build the document
        sale = Sale(
            store_id=store_id,
            sale_date=sale_date,
            payment_method=method.value,
            customer_email=customer_email,
            customer_phone=customer_phone,
            total_amount_cents=0,
        )
        db.session.add(sale)
        db.session.flush()  # assigns sale.id for the movement journal

        total = 0
        for line in normalized:
            item = items[line["item_id"]]
            remove_stock_locked(
                item.id, store_id, line["quantity"],
                movement_type=MOVEMENT_SALE,
                sale_id=sale.id,
                note=f"Sale {sale.id}",
            )
            sale_line = SaleLine(
                item_id=item.id,
                quantity=line["quantity"],
                unit_price_cents=item.price_cents,
                discount_cents=line["discount_cents"],
            )
            sale_line.recalculate_total()
            sale.lines.append(sale_line)
            total += sale_line.line_total_cents

        sale.total_amount_cents = total
        sale_id = sale.id
        db.session.commit()
        current_app.logger.info(
            "Sale %s committed: store=%s lines=%d total_cents=%s", sale_id, store_id, len(normalized), total
        )
        return sale

    return run_locked(keys, _op)


def process_refund(sale_id: int, item_id: int, quantity: int, *, store_id: int) -> Sale:
    """
    Refund part or all of one sale line.

    Restores the stock, shrinks or removes the line and reduces the sale
    total by unit_price_cents * quantity. The line discount is not prorated:
    a full refund of a discounted line credits more than the line total.

    The discount <= gross cap is checked only when the sale is created. A
    partial refund keeps the whole discount on the remaining units, so the
    line total (and the sale total) can go negative.
    """
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise InvalidQuantityError("Refund quantity must be a positive integer", details={"quantity": quantity})

    sale = db.session.get(Sale, sale_id)
    if sale is None:
        raise SaleNotFoundError(f"Sale {sale_id} not found", details={"sale_id": sale_id})
    sale_store_id = sale.store_id

    def _op():
        locked = lock_for_update(db.session.query(Sale).filter_by(id=sale_id)).first()
        if locked is None:
            raise SaleNotFoundError(f"Sale {sale_id} not found", details={"sale_id": sale_id})
        if locked.store_id != store_id:
            current_app.logger.warning("Refund of sale %s refused for store %s", sale_id, store_id)
            raise NotAuthorizedError(
                "Sale belongs to a different store",
                details={"sale_id": sale_id, "store_id": store_id},
            )

        line = locked.line_for_item(item_id)
        if line is None:
            raise LineNotFoundError(
                f"Item {item_id} not found in sale {sale_id}",
                details={"sale_id": sale_id, "item_id": item_id},
            )
        if quantity > line.quantity:
            raise InvalidRefundQuantityError(
                "Refund quantity cannot exceed sold quantity",
                details={"sale_id": sale_id, "item_id": item_id, "sold_quantity": line.quantity, "requested_quantity": quantity},
            )

        add_stock_locked(
            item_id, locked.store_id, quantity,
            movement_type=MOVEMENT_REFUND,
            sale_id=sale_id,
            note=f"Refund on sale {sale_id}",
        )

        refund_cents = line.unit_price_cents * quantity
        if quantity == line.quantity:
            locked.lines.remove(line)
        else:
            line.quantity -= quantity
            line.recalculate_total()

        locked.total_amount_cents -= refund_cents
        db.session.commit()
        current_app.logger.info(
            "Refund on sale %s: item=%s qty=%s refunded_cents=%s", sale_id, item_id, quantity, refund_cents
        )
        return locked

    # The stock key depends on the sale's store, which never changes after creation.
    return run_locked([stock_key(item_id, sale_store_id)], _op)


# =============================================================================
# READS AND ANALYTICS
# =============================================================================

def get_sale(sale_id: int, store_id: int | None = None) -> Sale:
    sale = db.session.query(Sale).filter_by(id=sale_id).populate_existing().first()
    if sale is None:
        raise SaleNotFoundError(f"Sale {sale_id} not found", details={"sale_id": sale_id})
    if store_id is not None and sale.store_id != store_id:
        raise NotAuthorizedError(
            "Sale belongs to a different store",
            details={"sale_id": sale_id, "store_id": store_id},
        )
    return sale


def list_sales(store_id: int) -> list[Sale]:
    return (
        db.session.query(Sale)
        .filter_by(store_id=store_id)
        .order_by(Sale.sale_date.asc(), Sale.id.asc())
        .all()
    )


def _date_filter(query, store_id: int, start: datetime, end: datetime):
    # Bounds may mix aware and naive values; compare only after normalizing.
    start = to_utc_naive(start)
    end = to_utc_naive(end)
    if start > end:
        raise InvalidSaleError("start must not be after end", details={"start": str(start), "end": str(end)})
    return query.filter(
        Sale.store_id == store_id,
        Sale.sale_date >= start,
        Sale.sale_date <= end,
    )


def list_sales_by_date_range(store_id: int, start: datetime, end: datetime) -> list[Sale]:
    """Sales with start <= sale_date <= end (inclusive on both ends)."""
    query = _date_filter(db.session.query(Sale), store_id, start, end)
    return query.order_by(Sale.sale_date.asc(), Sale.id.asc()).all()


def total_sales_amount(store_id: int, start: datetime, end: datetime) -> int:
    """Sum of total_amount_cents over the range; 0 when there are no sales."""
    query = _date_filter(
        db.session.query(func.coalesce(func.sum(Sale.total_amount_cents), 0)),
        store_id, start, end,
    )
    return int(query.scalar() or 0)


def transaction_count(store_id: int, start: datetime, end: datetime) -> int:
    query = _date_filter(db.session.query(func.count(Sale.id)), store_id, start, end)
    return int(query.scalar() or 0)
