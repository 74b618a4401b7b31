from __future__ import annotations

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from factoring import models

FACTOR_OPERATION_DOC_TYPE = "factor_operation"


def next_document_number(
    db: Session,
    *,
    company_id: str,
    doc_type: str,
    max_retries: int = 5,
) -> int:
    """Allocate the next 1-based sequence number for ``doc_type`` in a company.

    The counter row is locked for the rest of the caller's transaction, so two
    concurrent allocations for the same company serialize on it. Callers
    control commit/rollback.
    """

    dialect_name = getattr(getattr(db, "bind", None), "dialect", None)
    dialect_name = getattr(dialect_name, "name", None)

    # SQLite doesn't support FOR UPDATE or reliable savepoints; it serializes writers anyway.
    locks_rows = bool(dialect_name) and str(dialect_name).lower() not in {"sqlite"}

    for _ in range(max_retries):
        q = db.query(models.DocumentSequence).filter(
            models.DocumentSequence.company_id == str(company_id),
            models.DocumentSequence.doc_type == str(doc_type),
        )

        if locks_rows:
            q = q.with_for_update()

        row = q.first()

        if row is None:
            row = models.DocumentSequence(
                company_id=str(company_id),
                doc_type=str(doc_type),
                last_seq=0,
            )
            if not locks_rows:
                db.add(row)
                db.flush()
            else:
                nested = db.begin_nested()
                db.add(row)
                try:
                    db.flush()
                except IntegrityError:
                    # Another transaction created the counter first; lock theirs.
                    nested.rollback()
                    continue
                nested.commit()

        row.last_seq = int(row.last_seq or 0) + 1
        db.add(row)
        db.flush()
        return int(row.last_seq)

    raise RuntimeError(
        f"Could not allocate document number for company_id={company_id} doc_type={doc_type}"
    )
