from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


class Product(db.Model):
    """
    Sellable catalog item.

    Two stock regimes:
    - requires_imei_serial = False: availability is the ``stock`` counter.
    - requires_imei_serial = True: availability is the number of AVAILABLE
      SerializedUnit rows; ``stock`` is not touched by sales.
    """
    __tablename__ = "products"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    barcode = db.Column(db.String(64), nullable=True, index=True)

    sale_price_cents = db.Column(db.Integer, nullable=False, default=0)
    purchase_price_cents = db.Column(db.Integer, nullable=False, default=0)
    stock = db.Column(db.Integer, nullable=False, default=0)

    has_imei_serial = db.Column(db.Boolean, nullable=False, default=False)
    imei_serial_type = db.Column(db.String(8), nullable=True)  # IMEI, SERIAL, BOTH
    requires_imei_serial = db.Column(db.Boolean, nullable=False, default=False)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "barcode": self.barcode,
            "sale_price_cents": self.sale_price_cents,
            "purchase_price_cents": self.purchase_price_cents,
            "stock": self.stock,
            "has_imei_serial": self.has_imei_serial,
            "imei_serial_type": self.imei_serial_type,
            "requires_imei_serial": self.requires_imei_serial,
            "is_active": self.is_active,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class SerializedUnit(db.Model):
    """
    One physical, individually identified item (phone, tablet...).

    LIFECYCLE:
    - AVAILABLE: sellable
    - RESERVED: held by an in-flight sale (reservation_token, reserved_until)
    - SOLD: consumed by a sale (sale_id, sale_item_id, sold_at)

    IMEI and serial numbers are globally unique across all products.
    """
    __tablename__ = "product_serial_units"
    __table_args__ = (
        db.Index("ix_serial_units_product_status", "product_id", "status"),
        db.Index("ix_serial_units_reserved_until", "status", "reserved_until"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    imei_number = db.Column(db.String(15), nullable=True, unique=True)
    serial_number = db.Column(db.String(50), nullable=True, unique=True)

    status = db.Column(db.String(16), nullable=False, default="AVAILABLE", index=True)  # AVAILABLE, RESERVED, SOLD

    reservation_token = db.Column(db.String(64), nullable=True, index=True)
    reserved_until = db.Column(db.DateTime(timezone=True), nullable=True)

    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=True, index=True)
    sale_item_id = db.Column(db.Integer, db.ForeignKey("sale_items.id"), nullable=True)
    sold_at = db.Column(db.DateTime(timezone=True), nullable=True)

    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    product = db.relationship("Product", backref=db.backref("serial_units", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "imei_number": self.imei_number,
            "serial_number": self.serial_number,
            "status": self.status,
            "reserved_until": to_utc_z(self.reserved_until),
            "sale_id": self.sale_id,
            "sale_item_id": self.sale_item_id,
            "sold_at": to_utc_z(self.sold_at),
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
        }
