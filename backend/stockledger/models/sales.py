from __future__ import annotations

from ..extensions import db
from ..time_utils import utcnow, to_utc_z

SALE_STATUS_ACTIVE = "ACTIVE"
SALE_STATUS_VOIDED = "VOIDED"

PAYMENT_CASH = "CASH"
PAYMENT_CARD = "CARD"
PAYMENT_MOBILE = "MOBILE"
PAYMENT_METHODS = (PAYMENT_CASH, PAYMENT_CARD, PAYMENT_MOBILE)


class Sale(db.Model):
    """
    A completed point-of-sale transaction.

    LIFECYCLE: ACTIVE -> VOIDED (terminal). Voiding keeps the row, stamps the
    void audit fields and writes a VoidedSale record with the original total.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.Index("ix_sales_store_status_created", "store_id", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    actor_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    status = db.Column(db.String(16), nullable=False, default=SALE_STATUS_ACTIVE, index=True)
    payment_method = db.Column(db.String(16), nullable=False, default=PAYMENT_CASH)

    # Sum of line totals, in cents
    total_cents = db.Column(db.Integer, nullable=False, default=0)

    customer_name = db.Column(db.String(255), nullable=True)
    customer_email = db.Column(db.String(255), nullable=True)
    customer_phone = db.Column(db.String(32), nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)

    # Void audit trail
    voided_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    voided_at = db.Column(db.DateTime, nullable=True)
    void_reason = db.Column(db.String(255), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    items = db.relationship("SaleItem", back_populates="sale", order_by="SaleItem.id")
    store = db.relationship("Store")
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_voided(self) -> bool:
        return self.status == SALE_STATUS_VOIDED

    def to_dict(self, include_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "store_id": self.store_id,
            "actor_id": self.actor_id,
            "status": self.status,
            "payment_method": self.payment_method,
            "total_cents": self.total_cents,
            "customer_name": self.customer_name,
            "customer_email": self.customer_email,
            "customer_phone": self.customer_phone,
            "created_at": to_utc_z(self.created_at),
            "voided_by_user_id": self.voided_by_user_id,
            "voided_at": to_utc_z(self.voided_at),
            "void_reason": self.void_reason,
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class SaleItem(db.Model):
    """Individual line items on a sale."""
    __tablename__ = "sale_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    line_total_cents = db.Column(db.Integer, nullable=False)

    # Ledger entry written when the line was sold
    history_entry_id = db.Column(db.Integer, db.ForeignKey("inventory_history.id"), nullable=True)

    sale = db.relationship("Sale", back_populates="items")
    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "line_total_cents": self.line_total_cents,
            "history_entry_id": self.history_entry_id,
        }


class VoidedSale(db.Model):
    """Audit row for a voided sale; one per sale."""
    __tablename__ = "voided_sales"
    __table_args__ = (
        db.UniqueConstraint("sale_id", name="uq_voided_sales_sale"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False)
    actor_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    reason = db.Column(db.String(255), nullable=False)
    original_total_cents = db.Column(db.Integer, nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    sale = db.relationship("Sale", backref=db.backref("voided_record", uselist=False))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "actor_id": self.actor_id,
            "reason": self.reason,
            "original_total_cents": self.original_total_cents,
            "created_at": to_utc_z(self.created_at),
        }
