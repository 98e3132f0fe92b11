from __future__ import annotations

from enum import Enum

from ..extensions import db
from retail_ledger.time_utils import to_utc_z, utcnow


class PaymentMethod(str, Enum):
    CASH = "CASH"
    CARD = "CARD"
    MOBILE_PAYMENT = "MOBILE_PAYMENT"
    BANK_TRANSFER = "BANK_TRANSFER"


class Sale(db.Model):
    """
    A committed point-of-sale transaction at one store.

    Created in a single DB transaction together with the stock deductions
    for every line. Identity, store and sale_date never change afterwards;
    lines and total_amount_cents change only through refunds.
    """
    __tablename__ = "sales"
    __table_args__ = (
        # Analytics filter by store and date range
        db.Index("ix_sales_store_sale_date", "store_id", "sale_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)

    sale_date = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    # Sum of line totals, reduced by refunds (all amounts in cents)
    total_amount_cents = db.Column(db.Integer, nullable=False, default=0)

    payment_method = db.Column(db.String(32), nullable=False)
    customer_email = db.Column(db.String(255), nullable=True)
    customer_phone = db.Column(db.String(32), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    store = db.relationship("Store", backref=db.backref("sales", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def line_for_item(self, item_id: int) -> "SaleLine | None":
        for line in self.lines:
            if line.item_id == item_id:
                return line
        return None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "store_id": self.store_id,
            "sale_date": to_utc_z(self.sale_date),
            "total_amount_cents": self.total_amount_cents,
            "payment_method": self.payment_method,
            "customer_email": self.customer_email,
            "customer_phone": self.customer_phone,
            "lines": [line.to_dict() for line in self.lines],
            "version_id": self.version_id,
        }

class SaleLine(db.Model):
    """Individual line items on a sale; unit price is a snapshot of the catalog price."""
    __tablename__ = "sale_lines"
    __table_args__ = (
        db.CheckConstraint("quantity >= 1", name="ck_sale_lines_quantity_positive"),
        db.CheckConstraint("discount_cents >= 0", name="ck_sale_lines_discount_nonneg"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    item_id = db.Column(db.Integer, db.ForeignKey("items.id"), nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    line_total_cents = db.Column(db.Integer, nullable=False)

    sale = db.relationship(
        "Sale",
        backref=db.backref(
            "lines",
            lazy=True,
            cascade="all, delete-orphan",
            order_by="SaleLine.id",
        ),
    )
    item = db.relationship("Item")

    def recalculate_total(self) -> int:
        self.line_total_cents = self.quantity * self.unit_price_cents - (self.discount_cents or 0)
        return self.line_total_cents

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "item_id": self.item_id,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "discount_cents": self.discount_cents,
            "line_total_cents": self.line_total_cents,
        }
