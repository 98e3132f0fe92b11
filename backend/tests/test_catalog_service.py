"""Catalog and store directory helpers."""

import pytest

from retail_ledger.services import catalog_service
from retail_ledger.services.errors import (
    InvalidCatalogEntryError,
    ItemNotFoundError,
    StoreNotFoundError,
)


class TestStores:
    def test_create_and_lookup(self, db_session):
        store = catalog_service.create_store(" Harbor ", "Pier 4", manager="Sam")

        assert store.name == "Harbor"
        assert catalog_service.store_exists(store.id)
        assert catalog_service.require_store(store.id).manager == "Sam"
        assert store.to_dict()["location"] == "Pier 4"

    def test_duplicate_name_rejected(self, store):
        with pytest.raises(InvalidCatalogEntryError):
            catalog_service.create_store("Downtown", "Elsewhere")

    @pytest.mark.parametrize("name,location", [("", "Somewhere"), ("  ", "Somewhere"), ("Name", "")])
    def test_required_fields(self, db_session, name, location):
        with pytest.raises(InvalidCatalogEntryError):
            catalog_service.create_store(name, location)

    def test_unknown_store(self, db_session):
        assert not catalog_service.store_exists(9999)
        assert catalog_service.get_store(9999) is None
        with pytest.raises(StoreNotFoundError):
            catalog_service.require_store(9999)

    def test_list_stores_in_id_order(self, store, other_store):
        assert [s.id for s in catalog_service.list_stores()] == [store.id, other_store.id]


class TestItems:
    def test_create_keeps_identifiers_opaque(self, db_session):
        item = catalog_service.create_item(
            "Lamp", "Lighting", 4599, sku="lamp/42 blue", upc="000123", brand="Lumen"
        )

        assert item.sku == "lamp/42 blue"
        assert item.upc == "000123"
        assert catalog_service.require_item(item.id).price_cents == 4599

    def test_duplicate_sku_rejected(self, item):
        with pytest.raises(InvalidCatalogEntryError):
            catalog_service.create_item("Other", "Tools", 100, sku="WID-001")

    @pytest.mark.parametrize("price_cents", [-1, 9.99, True, "100"])
    def test_invalid_price(self, db_session, price_cents):
        with pytest.raises(InvalidCatalogEntryError):
            catalog_service.create_item("Bad", "Tools", price_cents)

    def test_free_item_allowed(self, db_session):
        assert catalog_service.create_item("Sticker", "Promo", 0).price_cents == 0

    def test_list_items_by_category(self, item, other_item, db_session):
        catalog_service.create_item("Bulb", "Lighting", 300)

        assert [i.name for i in catalog_service.list_items(category="Tools")] == ["Gadget", "Widget"]
        assert len(catalog_service.list_items()) == 3

    def test_update_price(self, item):
        updated = catalog_service.update_item_price(item.id, 1250)

        assert updated.price_cents == 1250
        assert catalog_service.get_item(item.id).price_cents == 1250

    def test_unknown_item(self, db_session):
        assert catalog_service.get_item(9999) is None
        with pytest.raises(ItemNotFoundError):
            catalog_service.require_item(9999)
        with pytest.raises(ItemNotFoundError):
            catalog_service.update_item_price(9999, 100)
