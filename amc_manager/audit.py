"""
amc_manager/audit.py

Audit trail for contracts, purchase orders and user accounts.

Each mutation adds one AuditLog row with:
- the acting user (id + email snapshot, kept even if the account is renamed later)
- the entity type/id and the action name
- JSON snapshots of the row before and after the change
- the client IP when the change came from an HTTP request

IMPORTANT:
- log_action() only ADDS the entry to the session. The route owns the transaction:
  db.session.flush() -> log_action(...) -> db.session.commit()
"""

from __future__ import annotations

import json
from typing import Any, Dict, Optional

from flask import has_request_context, request
from flask_login import current_user

from .extensions import db
from .models import AuditLog

# Never copied into snapshots
_SECRET_COLUMNS = frozenset({"password_hash", "reset_token_hash"})


def _snapshot_value(value: Any) -> Optional[str]:
    # Decimal / date / datetime all have a stable str()
    return None if value is None else str(value)


def serialize_model(instance: Any) -> Dict[str, Optional[str]]:
    """Column values of a model instance as strings; relationships and secrets are left out."""
    return {
        column.name: _snapshot_value(getattr(instance, column.name))
        for column in instance.__table__.columns
        if column.name not in _SECRET_COLUMNS
    }


def _current_actor():
    if has_request_context() and current_user.is_authenticated:
        return current_user._get_current_object()
    return None


def log_action(
    entity: Any,
    action: str,
    *,
    before: Optional[Dict[str, Any]] = None,
    after: Optional[Dict[str, Any]] = None,
    actor: Any = None,
) -> AuditLog:
    """
    Add an AuditLog entry for entity to the current session.

    entity must already have an id (flush first). actor defaults to the
    logged-in user; pass it explicitly where nobody is logged in yet
    (register, reset-password). CLI jobs log with no actor.
    """
    if getattr(entity, "id", None) is None:
        raise ValueError(f"Cannot audit {entity!r} before it has been flushed.")

    if actor is None:
        actor = _current_actor()

    entry = AuditLog(
        user_id=actor.id if actor is not None else None,
        email_snapshot=actor.email if actor is not None else None,
        entity_type=type(entity).__name__,
        entity_id=int(entity.id),
        action=action,
        before_data=json.dumps(before, ensure_ascii=False) if before else None,
        after_data=json.dumps(after, ensure_ascii=False) if after else None,
        # As Flask sees it; behind a reverse proxy this needs ProxyFix
        ip_address=request.remote_addr if has_request_context() else None,
    )
    db.session.add(entry)
    return entry
