# Overview: Service-layer operations for document numbering; encapsulates business logic and database work.

from __future__ import annotations

from sqlalchemy import update

from ..extensions import db
from ..models import DocumentSequence


def next_document_number(*, document_type: str, prefix: str, pad: int = 6) -> str:
    """
    Allocate the next number for a document type, e.g. S-000001.

    Does not commit: the counter row stays locked by the UPDATE until the
    caller's transaction ends, so concurrent callers queue behind it.

    Two callers creating the very first counter row race on the unique
    document_type; the loser raises IntegrityError and is expected to
    retry its whole transaction (see run_in_transaction's retry_on).
    """
    stmt = (
        update(DocumentSequence)
        .where(DocumentSequence.document_type == document_type)
        .values(next_number=DocumentSequence.next_number + 1)
    )

    result = db.session.execute(stmt)
    if result.rowcount:
        current = (
            db.session.query(DocumentSequence.next_number)
            .filter_by(document_type=document_type)
            .scalar()
        )
        number = current - 1
    else:
        db.session.add(DocumentSequence(document_type=document_type, next_number=2))
        db.session.flush()
        number = 1

    return f"{prefix}-{number:0{pad}d}"
