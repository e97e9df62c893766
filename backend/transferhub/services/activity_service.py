# Overview: Writes to the organization-wide activity feed shared with the rest of the application.

from __future__ import annotations

from typing import Any, Optional

from ..extensions import db
from ..models import ActivityLog


def log_activity(
    *,
    user_id: int,
    action: str,
    entity_type: str | None = None,
    entity_id: int | None = None,
    details: Optional[dict[str, Any]] = None,
    ip_address: str | None = None,
) -> ActivityLog:
    entry = ActivityLog(
        user_id=user_id,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        details=details,
        ip_address=ip_address,
    )
    db.session.add(entry)
    db.session.flush()
    return entry
