from __future__ import annotations

from ..extensions import db
from ..time_utils import utcnow, to_utc_z

TRANSFER_STATUS_PENDING = "PENDING"
TRANSFER_STATUS_COMPLETED = "COMPLETED"
TRANSFER_STATUS_CANCELLED = "CANCELLED"
TRANSFER_STATUS_REJECTED = "REJECTED"

TRANSFER_STATUSES = (
    TRANSFER_STATUS_PENDING,
    TRANSFER_STATUS_COMPLETED,
    TRANSFER_STATUS_CANCELLED,
    TRANSFER_STATUS_REJECTED,
)


class ProductTransfer(db.Model):
    """
    Movement of one product between two stores.

    LIFECYCLE: PENDING -> COMPLETED | CANCELLED | REJECTED (all terminal).
    Stock moves only on completion; both ledger entries (TRANSFER_OUT at the
    source, TRANSFER_IN at the destination) carry reference_id = str(id).
    """
    __tablename__ = "product_transfers"
    __table_args__ = (
        db.Index("ix_transfers_from_status", "from_store_id", "status"),
        db.Index("ix_transfers_to_status", "to_store_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    from_store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False)
    to_store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False)
    from_inventory_id = db.Column(db.Integer, db.ForeignKey("inventory_records.id"), nullable=False)
    to_inventory_id = db.Column(db.Integer, db.ForeignKey("inventory_records.id"), nullable=True)

    quantity = db.Column(db.Integer, nullable=False)
    status = db.Column(db.String(16), nullable=False, default=TRANSFER_STATUS_PENDING, index=True)
    reason = db.Column(db.String(255), nullable=True)
    notes = db.Column(db.String(255), nullable=True)

    initiated_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    completed_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    completed_at = db.Column(db.DateTime, nullable=True)
    closed_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    closed_at = db.Column(db.DateTime, nullable=True)
    close_reason = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def reference_id(self) -> str:
        return str(self.id)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "from_store_id": self.from_store_id,
            "to_store_id": self.to_store_id,
            "from_inventory_id": self.from_inventory_id,
            "to_inventory_id": self.to_inventory_id,
            "quantity": self.quantity,
            "status": self.status,
            "reason": self.reason,
            "notes": self.notes,
            "initiated_by_user_id": self.initiated_by_user_id,
            "completed_by_user_id": self.completed_by_user_id,
            "completed_at": to_utc_z(self.completed_at),
            "closed_by_user_id": self.closed_by_user_id,
            "closed_at": to_utc_z(self.closed_at),
            "close_reason": self.close_reason,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
