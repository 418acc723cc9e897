from __future__ import annotations

import json
from typing import Any

from sqlalchemy.orm import Session

from app.db.models.security_audit import AuditLog


def audit(
    db: Session,
    *,
    actor: str,
    action: str,
    entity_type: str,
    entity_id: str | None = None,
    payload: dict | None = None,
) -> AuditLog:
    """Write an append-only audit record inside the caller's unit of work.

    Keep payload JSON-serializable; Decimals and dates are stored as strings.
    """
    safe_payload: dict[str, Any] = json.loads(json.dumps(payload or {}, default=str))
    row = AuditLog(
        actor=actor or "system",
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        payload=safe_payload,
    )
    db.add(row)
    db.flush()
    return row
