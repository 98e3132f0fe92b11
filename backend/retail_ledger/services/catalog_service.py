# backend/retail_ledger/services/catalog_service.py
"""
Catalog and store directory.

The ledger and the sale engine only read from here (get_item, require_item,
store_exists, require_store). The create/update helpers exist for
bootstrap, the CLI and tests; SKU/UPC values are stored as given.
"""
from __future__ import annotations

from ..extensions import db
from ..models import Item, Store
from .concurrency import lock_for_update, run_with_retry
from .errors import InvalidCatalogEntryError, ItemNotFoundError, StoreNotFoundError


def _require_price(price_cents) -> int:
    if isinstance(price_cents, bool) or not isinstance(price_cents, int):
        raise InvalidCatalogEntryError("price_cents must be an integer")
    if price_cents < 0:
        raise InvalidCatalogEntryError("price_cents must be at least 0")
    return price_cents


# =============================================================================
# STORES
# =============================================================================

def create_store(
    name: str,
    location: str,
    *,
    address: str | None = None,
    phone: str | None = None,
    manager: str | None = None,
) -> Store:
    def _op():
        if not name or not name.strip():
            raise InvalidCatalogEntryError("Store name is required")
        if not location or not location.strip():
            raise InvalidCatalogEntryError("Store location is required")

        existing = db.session.query(Store).filter_by(name=name.strip()).first()
        if existing:
            raise InvalidCatalogEntryError(f"Store {name!r} already exists")

        store = Store(
            name=name.strip(),
            location=location.strip(),
            address=address,
            phone=phone,
            manager=manager,
        )
        db.session.add(store)
        db.session.commit()
        return store

    return run_with_retry(_op)


def get_store(store_id: int) -> Store | None:
    return db.session.get(Store, store_id)


def store_exists(store_id: int) -> bool:
    return db.session.query(Store.id).filter_by(id=store_id).first() is not None


def require_store(store_id: int) -> Store:
    store = get_store(store_id)
    if store is None:
        raise StoreNotFoundError(f"Store {store_id} not found", details={"store_id": store_id})
    return store


def list_stores() -> list[Store]:
    return db.session.query(Store).order_by(Store.id.asc()).all()


# =============================================================================
# ITEMS
# =============================================================================

def create_item(
    name: str,
    category: str,
    price_cents: int,
    *,
    sku: str | None = None,
    upc: str | None = None,
    brand: str | None = None,
    variant: str | None = None,
    description: str | None = None,
) -> Item:
    def _op():
        if not name or not name.strip():
            raise InvalidCatalogEntryError("Item name is required")
        if not category or not category.strip():
            raise InvalidCatalogEntryError("Item category is required")
        _require_price(price_cents)

        if sku is not None:
            duplicate = db.session.query(Item.id).filter_by(sku=sku).first()
            if duplicate:
                raise InvalidCatalogEntryError(f"SKU {sku!r} already exists", details={"sku": sku})

        item = Item(
            name=name.strip(),
            category=category.strip(),
            price_cents=price_cents,
            sku=sku,
            upc=upc,
            brand=brand,
            variant=variant,
            description=description,
        )
        db.session.add(item)
        db.session.commit()
        return item

    return run_with_retry(_op)


def get_item(item_id: int) -> Item | None:
    return db.session.get(Item, item_id)


def require_item(item_id: int) -> Item:
    item = get_item(item_id)
    if item is None:
        raise ItemNotFoundError(f"Item {item_id} not found", details={"item_id": item_id})
    return item


def list_items(category: str | None = None) -> list[Item]:
    query = db.session.query(Item)
    if category:
        query = query.filter(Item.category == category)
    return query.order_by(Item.name.asc(), Item.id.asc()).all()


def update_item_price(item_id: int, price_cents: int) -> Item:
    """Change the catalog price; existing sale lines keep their snapshot."""
    def _op():
        _require_price(price_cents)
        item = lock_for_update(db.session.query(Item).filter_by(id=item_id)).first()
        if item is None:
            raise ItemNotFoundError(f"Item {item_id} not found", details={"item_id": item_id})
        item.price_cents = price_cents
        db.session.commit()
        return item

    return run_with_retry(_op)
