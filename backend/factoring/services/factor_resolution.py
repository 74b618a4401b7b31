from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any, Optional

from factoring.models import FactorItemAction, FactorResponseStatus

ACCEPTED_RESPONSE_STATUSES = frozenset(
    {FactorResponseStatus.accepted, FactorResponseStatus.adjusted}
)
ADJUSTMENT_RESPONSE_STATUSES = frozenset(
    {FactorResponseStatus.rejected, FactorResponseStatus.adjusted}
)


def is_response_accepted(status: FactorResponseStatus | str) -> bool:
    return FactorResponseStatus(status) in ACCEPTED_RESPONSE_STATUSES


@dataclass(frozen=True)
class EffectiveTerms:
    amount: Decimal
    due_date: Optional[date]


def _first(*values: Any) -> Any:
    for value in values:
        if value is not None:
            return value
    return None


def resolve_effective_terms(item: Any, response: Any | None = None) -> EffectiveTerms:
    """Resolve the amount and due date that a factor answer settles an item on.

    Precedence: the response's adjusted values, then its accepted amount, then
    what was previously stored on the item, then the attach-time snapshot (or
    the proposed date). A ``due_date_change`` item never falls back to its
    original due date, so ``due_date`` is ``None`` when nothing new was agreed.
    """

    amount = _first(
        getattr(response, "adjusted_amount", None),
        getattr(response, "accepted_amount", None),
        item.final_amount,
        item.amount_snapshot,
    )

    due_date_candidates = [
        getattr(response, "adjusted_due_date", None),
        item.final_due_date,
        item.proposed_due_date,
    ]
    if FactorItemAction(item.action_type) != FactorItemAction.due_date_change:
        due_date_candidates.append(item.due_date_snapshot)

    return EffectiveTerms(
        amount=Decimal(str(amount)),
        due_date=_first(*due_date_candidates),
    )
