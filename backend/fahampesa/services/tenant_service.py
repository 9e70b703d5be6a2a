"""
Tenant scoping helpers.

Every entity carries a user_id (the tenant). Services resolve client-supplied
ids through require_owned so that:
1. a missing row raises NotFoundError (404)
2. a row owned by another tenant raises AccessDeniedError (403) and is logged

USAGE:
    branch = require_owned(Branch, branch_id, user_id)
    branch = require_owned(Branch, branch_id, user_id, lock=True)
"""

from __future__ import annotations

from flask import current_app

from ..errors import AccessDeniedError, NotFoundError, ValidationError
from ..extensions import db
from .concurrency import lock_for_update


def require_owned(model, entity_id, user_id: str, *, lock: bool = False, label: str | None = None):
    """
    Load model row by id and verify it belongs to user_id.

    lock=True issues SELECT ... FOR UPDATE so status checks made on the
    returned row hold until the surrounding transaction commits.
    """
    label = label or model.__name__
    if entity_id is None:
        raise ValidationError(f"{label} id is required")

    query = db.session.query(model).filter_by(id=entity_id)
    if lock:
        query = lock_for_update(query)
    entity = query.first()

    if entity is None:
        raise NotFoundError(f"{label} {entity_id} not found")

    if entity.user_id != user_id:
        _log_cross_tenant_attempt(label, entity_id, user_id)
        raise AccessDeniedError(f"Access denied to {label} {entity_id}")

    return entity


def _log_cross_tenant_attempt(label: str, entity_id, user_id: str) -> None:
    current_app.logger.warning(
        "Cross-tenant access attempt: tenant=%s entity=%s id=%s", user_id, label, entity_id
    )
