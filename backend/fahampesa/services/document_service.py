# Overview: Sequential, human-readable document numbers (PREFIX-YYYY-NNN) per tenant.

from __future__ import annotations

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..errors import ValidationError
from ..extensions import db
from ..models import DocumentSequence
from ..time_utils import utcnow


def next_document_number(
    *,
    user_id: str,
    document_type: str,
    prefix: str,
    pad: int = 3,
    period: str | None = None,
) -> str:
    """
    Atomically allocate the next document number for a tenant/type/year.

    Runs inside the caller's transaction: the number is only consumed if the
    document that uses it commits. The UPDATE takes a row lock on the
    sequence, so concurrent allocations serialize. A first-use race on the
    INSERT is resolved inside a savepoint.
    """
    if not user_id:
        raise ValidationError("user_id is required")
    if not document_type:
        raise ValidationError("document_type is required")

    period = period or str(utcnow().year)

    stmt = (
        update(DocumentSequence)
        .where(
            DocumentSequence.user_id == user_id,
            DocumentSequence.document_type == document_type,
            DocumentSequence.period == period,
        )
        .values(next_number=DocumentSequence.next_number + 1)
        .execution_options(synchronize_session=False)
    )

    if not db.session.execute(stmt).rowcount:
        try:
            with db.session.begin_nested():
                db.session.add(DocumentSequence(
                    user_id=user_id, document_type=document_type, period=period, next_number=2,
                ))
            return f"{prefix}-{period}-{1:0{pad}d}"
        except IntegrityError:
            # Another transaction created the row first
            db.session.execute(stmt)

    current = (
        db.session.query(DocumentSequence.next_number)
        .filter_by(user_id=user_id, document_type=document_type, period=period)
        .scalar()
    )
    return f"{prefix}-{period}-{current - 1:0{pad}d}"
