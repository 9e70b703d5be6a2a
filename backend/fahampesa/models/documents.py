from __future__ import annotations

from ..extensions import db


class DocumentSequence(db.Model):
    """
    Per-tenant, per-document-type, per-year counter.

    Backs human-readable numbers such as TR-2026-001 and PO-2026-014.
    Allocation is an atomic UPDATE ... SET next_number = next_number + 1.
    """
    __tablename__ = "document_sequences"
    __table_args__ = (
        db.UniqueConstraint("user_id", "document_type", "period", name="uq_document_sequences_scope"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(128), nullable=False, index=True)
    document_type = db.Column(db.String(32), nullable=False)
    period = db.Column(db.String(8), nullable=False)
    next_number = db.Column(db.Integer, nullable=False, default=1)

    def __repr__(self) -> str:
        return (
            f"<DocumentSequence user_id={self.user_id!r} type={self.document_type} "
            f"period={self.period} next={self.next_number}>"
        )
