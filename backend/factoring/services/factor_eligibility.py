from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from factoring.models import (
    FactorCustodyStatus,
    FactorItemAction,
    FactorOperationStatus,
    InstallmentStatus,
)

EDITABLE_STATUSES = frozenset({FactorOperationStatus.draft, FactorOperationStatus.in_adjustment})

OPEN_INSTALLMENT_STATUSES = frozenset(
    {InstallmentStatus.OPEN, InstallmentStatus.PARTIAL, InstallmentStatus.OVERDUE}
)


@dataclass(frozen=True)
class EligibilityResult:
    ok: bool
    reason: str | None = None

    @classmethod
    def allowed(cls) -> "EligibilityResult":
        return cls(ok=True)

    @classmethod
    def rejected(cls, reason: str) -> "EligibilityResult":
        return cls(ok=False, reason=reason)


def can_edit_factor_operation(status: FactorOperationStatus | str) -> bool:
    """Items and metadata may only change while in draft or in adjustment."""

    return FactorOperationStatus(status) in EDITABLE_STATUSES


def validate_factor_item_eligibility(
    *,
    action_type: FactorItemAction | str,
    installment_status: InstallmentStatus | str,
    custody_status: FactorCustodyStatus | str | None,
    amount_open: Decimal | float | int | None,
    proposed_due_date: date | None = None,
    due_date_snapshot: date | None = None,
) -> EligibilityResult:
    action = FactorItemAction(action_type)
    custody = FactorCustodyStatus(custody_status or FactorCustodyStatus.own)

    if InstallmentStatus(installment_status) not in OPEN_INSTALLMENT_STATUSES:
        return EligibilityResult.rejected("Parcela não está em aberto")

    if amount_open is None or Decimal(str(amount_open)) <= 0:
        return EligibilityResult.rejected("Parcela sem saldo em aberto")

    if action == FactorItemAction.discount and custody != FactorCustodyStatus.own:
        return EligibilityResult.rejected("Parcela já está com factor ou recomprada")

    if action == FactorItemAction.buyback and custody != FactorCustodyStatus.with_factor:
        return EligibilityResult.rejected("Recompra exige parcela em custódia do factor")

    if action == FactorItemAction.due_date_change:
        if proposed_due_date is None:
            return EligibilityResult.rejected("Alteração de vencimento exige nova data")
        if due_date_snapshot is not None and proposed_due_date <= due_date_snapshot:
            return EligibilityResult.rejected(
                "Nova data de vencimento deve ser posterior ao vencimento atual"
            )

    return EligibilityResult.allowed()
