from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


class AuditEvent(db.Model):
    """
    Append-only audit trail.

    Written inside the same transaction as the change it records. Rows are
    never updated or deleted, and sale_id / cash_register_id are plain
    integers (not foreign keys) so that the trail survives sale deletion.
    """
    __tablename__ = "audit_events"
    __table_args__ = (
        db.Index("ix_audit_events_entity", "entity_type", "entity_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    event_type = db.Column(db.String(64), nullable=False, index=True)
    entity_type = db.Column(db.String(64), nullable=False)
    entity_id = db.Column(db.Integer, nullable=True)

    actor_user_id = db.Column(db.Integer, nullable=True)
    sale_id = db.Column(db.Integer, nullable=True, index=True)
    cash_register_id = db.Column(db.Integer, nullable=True)

    note = db.Column(db.Text, nullable=True)
    payload = db.Column(db.Text, nullable=True)  # JSON

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "event_type": self.event_type,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "actor_user_id": self.actor_user_id,
            "sale_id": self.sale_id,
            "cash_register_id": self.cash_register_id,
            "note": self.note,
            "payload": self.payload,
            "occurred_at": to_utc_z(self.occurred_at),
        }
