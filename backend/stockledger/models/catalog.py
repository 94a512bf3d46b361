from __future__ import annotations

from ..extensions import db
from ..time_utils import utcnow, to_utc_z

PRODUCT_TYPE_TIRE = "TIRE"
PRODUCT_TYPE_BALE = "BALE"

GRADES = ("A", "B", "C")
TIRE_CATEGORIES = ("NEW", "SECOND_HAND")
TIRE_USAGES = ("FOUR_BY_FOUR", "REGULAR", "TRUCK")


class Store(db.Model):
    """A physical store that holds stock."""
    __tablename__ = "stores"
    __table_args__ = (
        db.UniqueConstraint("name", name="uq_stores_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    location = db.Column(db.String(255), nullable=True)
    phone_number = db.Column(db.String(32), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    is_main_store = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    def __repr__(self) -> str:
        return f"<Store id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "location": self.location,
            "phone_number": self.phone_number,
            "email": self.email,
            "is_main_store": self.is_main_store,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Product(db.Model):
    """
    Catalog product, shared by every store.

    VARIANTS:
    Product is a tagged variant over TireProduct and BaleProduct (joined-table
    inheritance on the `type` discriminator). Each variant table carries only
    its own fields, and any query against Product returns the resolved
    subclass instance.

    Store-scoped attributes (quantity, price override, reorder thresholds)
    live on InventoryRecord, never here.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_type_name", "type", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    type = db.Column(db.String(16), nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False)

    # Authoritative storage in cents
    base_price_cents = db.Column(db.Integer, nullable=False)
    grade = db.Column(db.String(1), nullable=False, default="A")

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    __mapper_args__ = {"polymorphic_on": type}

    def __repr__(self) -> str:
        return f"<{type(self).__name__} id={self.id} name={self.name!r}>"

    def variant_attributes(self) -> dict:
        return {}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.type,
            "name": self.name,
            "base_price_cents": self.base_price_cents,
            "grade": self.grade,
            "attributes": self.variant_attributes(),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class TireProduct(Product):
    __tablename__ = "tire_products"

    id = db.Column(db.Integer, db.ForeignKey("products.id"), primary_key=True)
    tire_category = db.Column(db.String(16), nullable=False, default="NEW")
    tire_usage = db.Column(db.String(16), nullable=False, default="REGULAR")
    tire_size = db.Column(db.String(32), nullable=True)
    load_index = db.Column(db.String(16), nullable=True)
    speed_rating = db.Column(db.String(8), nullable=True)
    warranty_period = db.Column(db.String(32), nullable=True)

    __mapper_args__ = {"polymorphic_identity": PRODUCT_TYPE_TIRE}

    def variant_attributes(self) -> dict:
        return {
            "tire_category": self.tire_category,
            "tire_usage": self.tire_usage,
            "tire_size": self.tire_size,
            "load_index": self.load_index,
            "speed_rating": self.speed_rating,
            "warranty_period": self.warranty_period,
        }


class BaleProduct(Product):
    __tablename__ = "bale_products"

    id = db.Column(db.Integer, db.ForeignKey("products.id"), primary_key=True)
    bale_weight_kg = db.Column(db.Float, nullable=True)
    bale_category = db.Column(db.String(64), nullable=True)
    origin_country = db.Column(db.String(64), nullable=True)
    import_date = db.Column(db.DateTime, nullable=True)

    __mapper_args__ = {"polymorphic_identity": PRODUCT_TYPE_BALE}

    def variant_attributes(self) -> dict:
        return {
            "bale_weight_kg": self.bale_weight_kg,
            "bale_category": self.bale_category,
            "origin_country": self.origin_country,
            "import_date": to_utc_z(self.import_date),
        }
