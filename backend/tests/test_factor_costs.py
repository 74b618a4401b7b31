from datetime import date
from decimal import Decimal

import pytest

from factoring.services.factor_costs import (
    FactorRates,
    aggregate_operation_totals,
    calculate_discount_costs,
    compute_days_to_maturity,
    sum_response_costs,
    to_money,
)

REFERENCE_RATES = FactorRates(
    interest_rate=Decimal("2"),
    fee_rate=Decimal("1"),
    iof_rate=Decimal("0.38"),
    grace_days=5,
)


def test_discount_costs_for_reference_rate_card():
    breakdown = calculate_discount_costs(
        base_amount=Decimal("1000.00"),
        issue_date=date(2026, 1, 1),
        due_date=date(2026, 1, 31),
        rates=REFERENCE_RATES,
    )

    assert breakdown.days_to_maturity == 30
    assert breakdown.billable_days == 25
    assert to_money(breakdown.interest_amount) == Decimal("16.67")
    assert to_money(breakdown.fee_amount) == Decimal("10.00")
    assert to_money(breakdown.iof_amount) == Decimal("95.00")
    assert breakdown.other_cost_amount == Decimal("0")

    totals = aggregate_operation_totals([Decimal("1000.00")], [breakdown])
    assert totals.gross_amount == Decimal("1000.00")
    assert totals.costs_amount == Decimal("121.67")
    assert totals.net_amount == Decimal("878.33")
    assert totals.net_amount == totals.gross_amount - totals.costs_amount


def test_costs_are_not_rounded_before_aggregation():
    rates = FactorRates(fee_rate=Decimal("0.005"))
    b = calculate_discount_costs(
        base_amount=Decimal("100"),
        issue_date=date(2026, 1, 1),
        due_date=date(2026, 1, 2),
        rates=rates,
    )
    assert b.fee_amount == Decimal("0.005")

    totals = aggregate_operation_totals([Decimal("100"), Decimal("100")], [b, b])
    # Per-item rounding would give 0.01 + 0.01.
    assert totals.fee_amount == Decimal("0.01")
    assert totals.costs_amount == Decimal("0.01")


def test_grace_period_longer_than_term_means_no_interest():
    b = calculate_discount_costs(
        base_amount=500,
        issue_date=date(2026, 1, 1),
        due_date=date(2026, 1, 4),
        rates=REFERENCE_RATES,
    )
    assert b.days_to_maturity == 3
    assert b.billable_days == 0
    assert b.interest_amount == 0
    assert b.iof_amount == 0
    assert to_money(b.fee_amount) == Decimal("5.00")


def test_due_date_before_issue_date_floors_days_at_zero():
    assert compute_days_to_maturity(date(2026, 2, 1), date(2026, 1, 1)) == 0


def test_non_discount_items_contribute_only_gross():
    totals = aggregate_operation_totals([Decimal("250.10"), Decimal("100")], [None, None])
    assert totals.gross_amount == Decimal("350.10")
    assert totals.costs_amount == Decimal("0.00")
    assert totals.net_amount == Decimal("350.10")


@pytest.mark.parametrize("bad", [Decimal("-1"), "abc", Decimal("NaN"), None])
def test_invalid_base_amount_is_rejected(bad):
    with pytest.raises(ValueError):
        calculate_discount_costs(
            base_amount=bad,
            issue_date=date(2026, 1, 1),
            due_date=date(2026, 1, 31),
            rates=REFERENCE_RATES,
        )


def test_rates_from_factor_and_snapshot_dict():
    class _Factor:
        default_interest_rate = Decimal("2.5")
        default_fee_rate = Decimal("1")
        default_iof_rate = Decimal("0.0041")
        default_other_cost_rate = Decimal("0")
        default_grace_days = 3

    rates = FactorRates.from_factor(_Factor())
    assert rates.as_dict() == {
        "interest_rate": "2.5",
        "fee_rate": "1",
        "iof_rate": "0.0041",
        "other_cost_rate": "0",
        "grace_days": 3,
    }


def test_sum_response_costs_skips_missing_components():
    total = sum_response_costs(
        fee_amount=Decimal("10.005"),
        interest_amount=None,
        iof_amount=Decimal("1.2"),
        other_cost_amount=0,
    )
    assert total == Decimal("11.21")
