from __future__ import annotations

from ..extensions import db


class DocumentSequence(db.Model):
    """
    Per-(type, day) counter used to allocate document codes.

    next_number is the number handed out by the next allocation.
    """
    __tablename__ = "document_sequences"
    __table_args__ = (
        db.UniqueConstraint("document_type", "period", name="uq_document_sequences_type_period"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    document_type = db.Column(db.String(32), nullable=False)
    # yymmdd of the business date the codes belong to
    period = db.Column(db.String(8), nullable=False)
    next_number = db.Column(db.Integer, nullable=False, default=1)
