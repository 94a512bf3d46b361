from __future__ import annotations

from sqlalchemy import event

from ..errors import LedgerImmutableError
from ..extensions import db
from ..time_utils import utcnow, to_utc_z

CHANGE_PURCHASE = "PURCHASE"
CHANGE_SALE = "SALE"
CHANGE_TRANSFER_OUT = "TRANSFER_OUT"
CHANGE_TRANSFER_IN = "TRANSFER_IN"
CHANGE_ADJUSTMENT = "ADJUSTMENT"
CHANGE_RETURN = "RETURN"
CHANGE_DAMAGE = "DAMAGE"

CHANGE_TYPES = (
    CHANGE_PURCHASE,
    CHANGE_SALE,
    CHANGE_TRANSFER_OUT,
    CHANGE_TRANSFER_IN,
    CHANGE_ADJUSTMENT,
    CHANGE_RETURN,
    CHANGE_DAMAGE,
)

# Change types a manual adjustment may use; the rest belong to sales and transfers.
MANUAL_CHANGE_TYPES = (CHANGE_PURCHASE, CHANGE_RETURN, CHANGE_DAMAGE, CHANGE_ADJUSTMENT)

DEFAULT_REORDER_LEVEL = 10
DEFAULT_OPTIMAL_LEVEL = 50


class InventoryRecord(db.Model):
    """
    Current stock of one product in one store ("SKU-in-store").

    INVARIANTS:
    - (product_id, store_id) is unique.
    - quantity >= 0 at all times (CHECK constraint + service guard).
    - quantity is assigned only by ledger_service.record_change(), which appends
      the matching InventoryHistoryEntry in the same unit of work.

    CONCURRENCY:
    version_id is a SQLAlchemy version counter. An UPDATE issued from a stale read
    matches zero rows and raises StaleDataError instead of overwriting.
    """
    __tablename__ = "inventory_records"
    __table_args__ = (
        db.UniqueConstraint("product_id", "store_id", name="uq_inventory_product_store"),
        db.CheckConstraint("quantity >= 0", name="ck_inventory_quantity_non_negative"),
        db.Index("ix_inventory_store_quantity", "store_id", "quantity"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False, default=0)
    reorder_level = db.Column(db.Integer, nullable=True, default=DEFAULT_REORDER_LEVEL)
    optimal_level = db.Column(db.Integer, nullable=True, default=DEFAULT_OPTIMAL_LEVEL)

    # Store-specific price override; falls back to Product.base_price_cents
    store_price_cents = db.Column(db.Integer, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    product = db.relationship("Product")
    store = db.relationship("Store")
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return (
            f"<InventoryRecord id={self.id} product_id={self.product_id} "
            f"store_id={self.store_id} quantity={self.quantity}>"
        )

    @property
    def effective_price_cents(self) -> int:
        if self.store_price_cents is not None:
            return self.store_price_cents
        return self.product.base_price_cents

    @property
    def needs_restock(self) -> bool:
        return self.reorder_level is not None and self.quantity <= self.reorder_level

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "store_id": self.store_id,
            "quantity": self.quantity,
            "reorder_level": self.reorder_level,
            "optimal_level": self.optimal_level,
            "store_price_cents": self.store_price_cents,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class InventoryHistoryEntry(db.Model):
    """
    One immutable ledger line per InventoryRecord mutation.

    - new_quantity = previous_quantity + quantity_change (CHECK constraint).
    - Append-only: the ORM refuses UPDATE and DELETE (listeners below).
    - reference_id/reference_type link entries that describe one logical event,
      e.g. both sides of a transfer or every line of a sale.
    """
    __tablename__ = "inventory_history"
    __table_args__ = (
        db.CheckConstraint(
            "new_quantity = previous_quantity + quantity_change",
            name="ck_invhist_quantity_arithmetic",
        ),
        db.Index("ix_invhist_inventory_created", "inventory_id", "created_at", "id"),
        db.Index("ix_invhist_reference", "reference_type", "reference_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    inventory_id = db.Column(db.Integer, db.ForeignKey("inventory_records.id"), nullable=False, index=True)

    change_type = db.Column(db.String(16), nullable=False, index=True)
    quantity_change = db.Column(db.Integer, nullable=False)
    previous_quantity = db.Column(db.Integer, nullable=False)
    new_quantity = db.Column(db.Integer, nullable=False)

    reference_id = db.Column(db.String(64), nullable=True)
    reference_type = db.Column(db.String(32), nullable=True)
    notes = db.Column(db.String(255), nullable=True)

    actor_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)

    inventory = db.relationship("InventoryRecord")
    actor = db.relationship("User")

    def __repr__(self) -> str:
        return (
            f"<InventoryHistoryEntry id={self.id} inventory_id={self.inventory_id} "
            f"{self.change_type} {self.previous_quantity}->{self.new_quantity}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "inventory_id": self.inventory_id,
            "change_type": self.change_type,
            "quantity_change": self.quantity_change,
            "previous_quantity": self.previous_quantity,
            "new_quantity": self.new_quantity,
            "reference_id": self.reference_id,
            "reference_type": self.reference_type,
            "notes": self.notes,
            "actor_id": self.actor_id,
            "created_at": to_utc_z(self.created_at),
        }


@event.listens_for(InventoryHistoryEntry, "before_update")
def _prevent_history_update(mapper, connection, target):
    raise LedgerImmutableError(
        "Inventory history entries are append-only and cannot be modified",
        {"entry_id": target.id},
    )


@event.listens_for(InventoryHistoryEntry, "before_delete")
def _prevent_history_delete(mapper, connection, target):
    raise LedgerImmutableError(
        "Inventory history entries are append-only and cannot be deleted",
        {"entry_id": target.id},
    )
