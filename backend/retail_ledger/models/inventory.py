from __future__ import annotations

from ..extensions import db
from retail_ledger.time_utils import to_utc_z, utcnow

class StockRecord(db.Model):
    """
    On-hand stock of one item at one store.

    OWNERSHIP: services/inventory_service.py is the only writer. Everything
    else reads through it.

    Invariants (enforced by the ledger, backed by CHECK constraints):
    - quantity >= 0
    - 0 <= reserved_quantity <= quantity

    LOOKUP PATTERN:
    - StockRecord.query.filter_by(item_id=X, store_id=Y) hits the unique
      composite index; there is never more than one row per pair.
    """
    __tablename__ = "stock_records"
    __table_args__ = (
        db.UniqueConstraint("item_id", "store_id", name="uq_stock_records_item_store"),
        db.Index("ix_stock_records_store_quantity", "store_id", "quantity"),
        db.CheckConstraint("quantity >= 0", name="ck_stock_records_quantity_nonneg"),
        db.CheckConstraint(
            "reserved_quantity >= 0 AND reserved_quantity <= quantity",
            name="ck_stock_records_reserved_bounds",
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    item_id = db.Column(db.Integer, db.ForeignKey("items.id"), nullable=False, index=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False, default=0)
    reserved_quantity = db.Column(db.Integer, nullable=False, default=0)
    min_stock_level = db.Column(db.Integer, nullable=False, default=5)
    max_stock_level = db.Column(db.Integer, nullable=False, default=100)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    item = db.relationship("Item")
    store = db.relationship("Store")
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def available_quantity(self) -> int:
        return self.quantity - self.reserved_quantity

    @property
    def is_low_stock(self) -> bool:
        return self.quantity <= self.min_stock_level

    @property
    def is_overstocked(self) -> bool:
        return self.quantity >= self.max_stock_level

    @property
    def is_out_of_stock(self) -> bool:
        return self.available_quantity <= 0

    def __repr__(self) -> str:
        return (
            f"<StockRecord item_id={self.item_id} store_id={self.store_id} "
            f"quantity={self.quantity} reserved={self.reserved_quantity}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "item_id": self.item_id,
            "store_id": self.store_id,
            "quantity": self.quantity,
            "reserved_quantity": self.reserved_quantity,
            "available_quantity": self.available_quantity,
            "min_stock_level": self.min_stock_level,
            "max_stock_level": self.max_stock_level,
            "is_low_stock": self.is_low_stock,
            "is_overstocked": self.is_overstocked,
            "is_out_of_stock": self.is_out_of_stock,
            "version_id": self.version_id,
            "updated_at": to_utc_z(self.updated_at),
        }

class StockMovement(db.Model):
    """
    Append-only journal of ledger mutations.

    - Written in the same DB transaction as the StockRecord change it records.
    - Never updated or deleted.
    - occurred_at is business time; created_at is system time (DB default).
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.Index("ix_stock_movements_item_store_occurred", "item_id", "store_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    item_id = db.Column(db.Integer, db.ForeignKey("items.id"), nullable=False)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False)

    # ADD, REMOVE, RESERVE, RELEASE, TRANSFER_OUT, TRANSFER_IN, SALE, REFUND, INITIALIZE, LEVELS
    movement_type = db.Column(db.String(32), nullable=False, index=True)

    quantity_delta = db.Column(db.Integer, nullable=False, default=0)
    reserved_delta = db.Column(db.Integer, nullable=False, default=0)

    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=True, index=True)
    note = db.Column(db.String(255), nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "item_id": self.item_id,
            "store_id": self.store_id,
            "movement_type": self.movement_type,
            "quantity_delta": self.quantity_delta,
            "reserved_delta": self.reserved_delta,
            "sale_id": self.sale_id,
            "note": self.note,
            "occurred_at": to_utc_z(self.occurred_at),
        }
