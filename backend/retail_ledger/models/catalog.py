from __future__ import annotations

from ..extensions import db
from retail_ledger.time_utils import to_utc_z

class Store(db.Model):
    """
    Physical store in the directory.

    The ledger only needs existence checks against this table; everything
    else here is descriptive data for reports and the CLI.
    """
    __tablename__ = "stores"
    __table_args__ = (
        db.UniqueConstraint("name", name="uq_stores_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    location = db.Column(db.String(255), nullable=False)
    address = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(32), nullable=True)
    manager = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<Store id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "location": self.location,
            "address": self.address,
            "phone": self.phone,
            "manager": self.manager,
            "created_at": to_utc_z(self.created_at),
        }

class Item(db.Model):
    """
    Catalog item master data.

    SKU and UPC are opaque identifiers supplied by whoever creates the item;
    nothing in the ledger parses them. Sale lines snapshot price_cents at
    sale time, so later price changes never rewrite history.
    """
    __tablename__ = "items"
    __table_args__ = (
        db.Index("ix_items_category_name", "category", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    category = db.Column(db.String(128), nullable=False)

    # Authoritative storage in cents
    price_cents = db.Column(db.Integer, nullable=False)

    sku = db.Column(db.String(50), nullable=True, unique=True)
    upc = db.Column(db.String(20), nullable=True)
    brand = db.Column(db.String(100), nullable=True)
    variant = db.Column(db.String(50), nullable=True)
    description = db.Column(db.String(500), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Item id={self.id} name={self.name!r} price_cents={self.price_cents}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "category": self.category,
            "price_cents": self.price_cents,
            "sku": self.sku,
            "upc": self.upc,
            "brand": self.brand,
            "variant": self.variant,
            "description": self.description,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
