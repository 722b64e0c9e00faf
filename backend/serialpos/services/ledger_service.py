# Overview: Append-only audit trail writer.

from __future__ import annotations

import json
from datetime import datetime
from typing import Optional

from ..extensions import db
from ..models import AuditEvent
from ..time_utils import utcnow

"""
Audit trail invariants

- Append-only: no updates or deletes of existing events.
- Events are written inside the same DB transaction as the change they record;
  the caller commits.
- Payloads are JSON documents so deleted entities can still be reconstructed.
"""


def append_audit_event(
    *,
    event_type: str,
    entity_type: str,
    entity_id: int | None,
    actor_user_id: int | None = None,
    sale_id: int | None = None,
    cash_register_id: int | None = None,
    note: Optional[str] = None,
    payload: dict | None = None,
    occurred_at: Optional[datetime] = None,
) -> AuditEvent:
    ev = AuditEvent(
        event_type=event_type,
        entity_type=entity_type,
        entity_id=entity_id,
        actor_user_id=actor_user_id,
        sale_id=sale_id,
        cash_register_id=cash_register_id,
        note=note,
        payload=json.dumps(payload, sort_keys=True, default=str) if payload is not None else None,
        occurred_at=occurred_at or utcnow(),
    )
    db.session.add(ev)
    return ev


def list_events(*, sale_id: int | None = None, event_type: str | None = None, limit: int = 100) -> list[AuditEvent]:
    q = db.session.query(AuditEvent)
    if sale_id is not None:
        q = q.filter(AuditEvent.sale_id == sale_id)
    if event_type:
        q = q.filter(AuditEvent.event_type == event_type)
    return q.order_by(AuditEvent.id.desc()).limit(limit).all()
