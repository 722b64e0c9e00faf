from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


class CashRegister(db.Model):
    """
    One cash-drawer session for one user.

    LIFECYCLE:
    - OPEN: accepts movements and cash sales
    - CLOSED: counted, discrepancy recorded; irreversible

    At most one OPEN register per user, enforced by a partial unique index.
    total_sales_cents is a cache refreshed from SALE movements.
    """
    __tablename__ = "cash_registers"
    __table_args__ = (
        db.Index(
            "uq_cash_registers_open_user",
            "user_id",
            unique=True,
            sqlite_where=db.text("status = 'OPEN'"),
            postgresql_where=db.text("status = 'OPEN'"),
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    status = db.Column(db.String(16), nullable=False, default="OPEN", index=True)  # OPEN, CLOSED

    opening_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    total_sales_cents = db.Column(db.Integer, nullable=False, default=0)
    expected_closing_amount_cents = db.Column(db.Integer, nullable=True)
    actual_closing_amount_cents = db.Column(db.Integer, nullable=True)
    discrepancy_cents = db.Column(db.Integer, nullable=True)
    discrepancy_reason = db.Column(db.Text, nullable=True)

    notes = db.Column(db.Text, nullable=True)
    session_notes = db.Column(db.Text, nullable=True)

    opened_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    closed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    closed_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    last_movement_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    user = db.relationship("User", foreign_keys=[user_id], backref=db.backref("cash_registers", lazy=True))

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "status": self.status,
            "opening_amount_cents": self.opening_amount_cents,
            "total_sales_cents": self.total_sales_cents,
            "expected_closing_amount_cents": self.expected_closing_amount_cents,
            "actual_closing_amount_cents": self.actual_closing_amount_cents,
            "discrepancy_cents": self.discrepancy_cents,
            "discrepancy_reason": self.discrepancy_reason,
            "notes": self.notes,
            "session_notes": self.session_notes,
            "opened_at": to_utc_z(self.opened_at),
            "closed_at": to_utc_z(self.closed_at),
            "closed_by_user_id": self.closed_by_user_id,
            "last_movement_at": to_utc_z(self.last_movement_at),
            "version_id": self.version_id,
        }


class CashMovement(db.Model):
    """
    Append-only cash ledger line.

    TYPES:
    - OPENING: mirrors opening_amount_cents (informational)
    - INCOME / EXPENSE: manual movements, user-deletable while OPEN
    - SALE: cash sale or installment payment; negative for reversals
    - CLOSING: counted amount at close (informational)
    """
    __tablename__ = "cash_movements"
    __table_args__ = (
        db.Index("ix_cash_movements_register_type", "cash_register_id", "type"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    cash_register_id = db.Column(db.Integer, db.ForeignKey("cash_registers.id"), nullable=False, index=True)

    type = db.Column(db.String(16), nullable=False)  # OPENING, INCOME, EXPENSE, SALE, CLOSING
    category = db.Column(db.String(64), nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)
    description = db.Column(db.Text, nullable=False)

    reference_id = db.Column(db.String(64), nullable=True, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    cash_register = db.relationship(
        "CashRegister",
        backref=db.backref("movements", lazy=True, order_by="CashMovement.id"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "cash_register_id": self.cash_register_id,
            "type": self.type,
            "category": self.category,
            "amount_cents": self.amount_cents,
            "description": self.description,
            "reference_id": self.reference_id,
            "user_id": self.user_id,
            "created_at": to_utc_z(self.created_at),
        }


class CashRegisterSale(db.Model):
    """Link between a cash sale and the register session that took the cash."""
    __tablename__ = "cash_register_sales"
    __table_args__ = (
        db.UniqueConstraint("cash_register_id", "sale_id", name="uq_cash_register_sales_register_sale"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    cash_register_id = db.Column(db.Integer, db.ForeignKey("cash_registers.id"), nullable=False, index=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)

    payment_method = db.Column(db.String(32), nullable=False, default="CASH")
    amount_received_cents = db.Column(db.Integer, nullable=False)
    change_given_cents = db.Column(db.Integer, nullable=False, default=0)
    discount_applied_cents = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "cash_register_id": self.cash_register_id,
            "sale_id": self.sale_id,
            "payment_method": self.payment_method,
            "amount_received_cents": self.amount_received_cents,
            "change_given_cents": self.change_given_cents,
            "discount_applied_cents": self.discount_applied_cents,
            "created_at": to_utc_z(self.created_at),
        }
