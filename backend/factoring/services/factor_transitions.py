from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable

from sqlalchemy.orm import Session

from factoring import models
from factoring.models import FactorOperationStatus


@dataclass(frozen=True)
class TransitionResult:
    updated: bool
    rowcount: int


def atomic_transition_operation_status(
    *,
    db: Session,
    company_id: str,
    operation_id: str,
    to_status: FactorOperationStatus,
    allowed_from: Iterable[FactorOperationStatus],
    updates: dict[str, Any] | None = None,
) -> TransitionResult:
    """Apply a factor operation status change with an atomic DB guard.

    A single conditional UPDATE keeps out-of-order transitions from being
    persisted even when two requests race on the same operation:

        UPDATE factor_operations
        SET status = :to_status, ...
        WHERE id = :operation_id AND company_id = :company_id
          AND status IN (:allowed_from)

    Callers control commit/rollback and must re-read the row afterwards.
    """

    update_values: dict[str, Any] = {"status": to_status}
    if updates:
        update_values.update(updates)

    rowcount = (
        db.query(models.FactorOperation)
        .filter(models.FactorOperation.id == str(operation_id))
        .filter(models.FactorOperation.company_id == str(company_id))
        .filter(models.FactorOperation.status.in_(set(allowed_from)))
        .update(update_values, synchronize_session=False)
    )

    return TransitionResult(updated=rowcount > 0, rowcount=int(rowcount or 0))
