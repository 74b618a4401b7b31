from datetime import date
from decimal import Decimal
from types import SimpleNamespace

import pytest

from factoring.models import (
    FactorCustodyStatus,
    FactorItemAction,
    FactorOperationStatus,
    FactorResponseStatus,
    InstallmentStatus,
)
from factoring.services.factor_eligibility import (
    can_edit_factor_operation,
    validate_factor_item_eligibility,
)
from factoring.services.factor_resolution import is_response_accepted, resolve_effective_terms


def _check(action, *, custody=FactorCustodyStatus.own, status=InstallmentStatus.OPEN, amount="100", **kw):
    return validate_factor_item_eligibility(
        action_type=action,
        installment_status=status,
        custody_status=custody,
        amount_open=Decimal(amount),
        **kw,
    )


@pytest.mark.parametrize(
    "status,editable",
    [
        (FactorOperationStatus.draft, True),
        (FactorOperationStatus.in_adjustment, True),
        (FactorOperationStatus.sent_to_factor, False),
        (FactorOperationStatus.completed, False),
        (FactorOperationStatus.cancelled, False),
    ],
)
def test_only_draft_and_adjustment_are_editable(status, editable):
    assert can_edit_factor_operation(status) is editable


def test_discount_requires_own_custody():
    assert _check(FactorItemAction.discount).ok
    result = _check(FactorItemAction.discount, custody=FactorCustodyStatus.with_factor)
    assert not result.ok
    assert "factor" in result.reason


def test_missing_custody_counts_as_own():
    assert _check(FactorItemAction.discount, custody=None).ok


def test_buyback_requires_installment_with_factor():
    assert _check(FactorItemAction.buyback, custody=FactorCustodyStatus.with_factor).ok
    assert not _check(FactorItemAction.buyback, custody=FactorCustodyStatus.own).ok
    assert not _check(FactorItemAction.buyback, custody=FactorCustodyStatus.repurchased).ok


@pytest.mark.parametrize("status", [InstallmentStatus.PAID, InstallmentStatus.CANCELLED])
def test_closed_installments_are_not_eligible(status):
    assert not _check(FactorItemAction.discount, status=status).ok


def test_installment_without_open_balance_is_not_eligible():
    assert not _check(FactorItemAction.discount, amount="0").ok


def test_due_date_change_needs_a_later_date():
    current = date(2026, 3, 10)
    assert not _check(FactorItemAction.due_date_change, due_date_snapshot=current).ok
    assert not _check(
        FactorItemAction.due_date_change, proposed_due_date=current, due_date_snapshot=current
    ).ok
    assert _check(
        FactorItemAction.due_date_change,
        proposed_due_date=date(2026, 4, 10),
        due_date_snapshot=current,
    ).ok


def _item(action=FactorItemAction.discount, **overrides):
    values = {
        "action_type": action,
        "amount_snapshot": Decimal("1000.00"),
        "due_date_snapshot": date(2026, 1, 31),
        "proposed_due_date": None,
        "final_amount": None,
        "final_due_date": None,
    }
    values.update(overrides)
    return SimpleNamespace(**values)


def _response(**values):
    base = {"accepted_amount": None, "adjusted_amount": None, "adjusted_due_date": None}
    base.update(values)
    return SimpleNamespace(**base)


def test_adjusted_values_take_precedence():
    terms = resolve_effective_terms(
        _item(final_amount=Decimal("990")),
        _response(accepted_amount=Decimal("980"), adjusted_amount=Decimal("950"), adjusted_due_date=date(2026, 2, 5)),
    )
    assert terms.amount == Decimal("950")
    assert terms.due_date == date(2026, 2, 5)


def test_accepted_amount_then_stored_final_then_snapshot():
    assert resolve_effective_terms(_item(), _response(accepted_amount=Decimal("980"))).amount == Decimal("980")
    assert resolve_effective_terms(_item(final_amount=Decimal("990")), _response()).amount == Decimal("990")
    terms = resolve_effective_terms(_item(), None)
    assert terms.amount == Decimal("1000.00")
    assert terms.due_date == date(2026, 1, 31)


def test_due_date_change_never_falls_back_to_original_due_date():
    item = _item(FactorItemAction.due_date_change)
    assert resolve_effective_terms(item, _response()).due_date is None

    item = _item(FactorItemAction.due_date_change, proposed_due_date=date(2026, 3, 1))
    assert resolve_effective_terms(item, _response()).due_date == date(2026, 3, 1)


def test_accepted_statuses():
    assert is_response_accepted(FactorResponseStatus.accepted)
    assert is_response_accepted("adjusted")
    assert not is_response_accepted(FactorResponseStatus.rejected)
    assert not is_response_accepted(FactorResponseStatus.pending)
