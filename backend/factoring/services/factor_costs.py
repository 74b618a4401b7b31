from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Iterable

CENT = Decimal("0.01")
HUNDRED = Decimal("100")
# Monthly interest rates are prorated over a 30-day commercial month.
DAYS_PER_MONTH = Decimal("30")


def to_money(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def _as_decimal(value: Any, field_name: str) -> Decimal:
    try:
        d = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        raise ValueError(f"Invalid {field_name}: expected non-negative finite number")
    if not d.is_finite() or d < 0:
        raise ValueError(f"Invalid {field_name}: expected non-negative finite number")
    return d


@dataclass(frozen=True)
class FactorRates:
    """Rate card copied from the factor defaults. Rates are percentages."""

    interest_rate: Decimal = Decimal("0")
    fee_rate: Decimal = Decimal("0")
    iof_rate: Decimal = Decimal("0")
    other_cost_rate: Decimal = Decimal("0")
    grace_days: int = 0

    @classmethod
    def from_factor(cls, factor: Any) -> "FactorRates":
        return cls(
            interest_rate=_as_decimal(factor.default_interest_rate, "interest_rate"),
            fee_rate=_as_decimal(factor.default_fee_rate, "fee_rate"),
            iof_rate=_as_decimal(factor.default_iof_rate, "iof_rate"),
            other_cost_rate=_as_decimal(factor.default_other_cost_rate, "other_cost_rate"),
            grace_days=int(_as_decimal(factor.default_grace_days, "grace_days")),
        )

    def as_dict(self) -> dict[str, Any]:
        return {
            "interest_rate": str(self.interest_rate),
            "fee_rate": str(self.fee_rate),
            "iof_rate": str(self.iof_rate),
            "other_cost_rate": str(self.other_cost_rate),
            "grace_days": self.grace_days,
        }


@dataclass(frozen=True)
class DiscountCostBreakdown:
    days_to_maturity: int
    billable_days: int
    interest_amount: Decimal
    fee_amount: Decimal
    iof_amount: Decimal
    other_cost_amount: Decimal

    @property
    def total_cost_amount(self) -> Decimal:
        return self.interest_amount + self.fee_amount + self.iof_amount + self.other_cost_amount

    def as_display_dict(self, base_amount: Decimal) -> dict[str, Any]:
        """Cent-rounded view stored in version snapshots."""

        total = to_money(self.total_cost_amount)
        return {
            "days_to_maturity": self.days_to_maturity,
            "billable_days": self.billable_days,
            "interest_amount": str(to_money(self.interest_amount)),
            "fee_amount": str(to_money(self.fee_amount)),
            "iof_amount": str(to_money(self.iof_amount)),
            "other_cost_amount": str(to_money(self.other_cost_amount)),
            "total_cost_amount": str(total),
            "net_amount": str(to_money(base_amount) - total),
        }


def compute_days_to_maturity(issue_date: date, due_date: date) -> int:
    return max(0, (due_date - issue_date).days)


def calculate_discount_costs(
    *,
    base_amount: Decimal | float | int,
    issue_date: date,
    due_date: date,
    rates: FactorRates,
) -> DiscountCostBreakdown:
    """Estimate the cost of discounting one installment.

    Interest is the monthly rate prorated per day and IOF accrues per day,
    both over the days left after the grace period. Fee and other costs are
    flat percentages of the base. Values are kept unrounded here; rounding
    happens once, in ``aggregate_operation_totals``.
    """

    base = _as_decimal(base_amount, "base_amount")
    interest_rate = _as_decimal(rates.interest_rate, "interest_rate")
    fee_rate = _as_decimal(rates.fee_rate, "fee_rate")
    iof_rate = _as_decimal(rates.iof_rate, "iof_rate")
    other_cost_rate = _as_decimal(rates.other_cost_rate, "other_cost_rate")
    grace_days = int(_as_decimal(rates.grace_days, "grace_days"))

    days_to_maturity = compute_days_to_maturity(issue_date, due_date)
    billable_days = max(0, days_to_maturity - grace_days)
    days = Decimal(billable_days)

    return DiscountCostBreakdown(
        days_to_maturity=days_to_maturity,
        billable_days=billable_days,
        interest_amount=base * (interest_rate / HUNDRED) / DAYS_PER_MONTH * days,
        fee_amount=base * (fee_rate / HUNDRED),
        iof_amount=base * (iof_rate / HUNDRED) * days,
        other_cost_amount=base * (other_cost_rate / HUNDRED),
    )


@dataclass(frozen=True)
class OperationTotals:
    gross_amount: Decimal
    interest_amount: Decimal
    fee_amount: Decimal
    iof_amount: Decimal
    other_cost_amount: Decimal
    costs_amount: Decimal
    net_amount: Decimal

    def as_dict(self) -> dict[str, str]:
        return {
            "gross_amount": str(self.gross_amount),
            "interest_amount": str(self.interest_amount),
            "fee_amount": str(self.fee_amount),
            "iof_amount": str(self.iof_amount),
            "other_cost_amount": str(self.other_cost_amount),
            "costs_amount": str(self.costs_amount),
            "net_amount": str(self.net_amount),
        }


def aggregate_operation_totals(
    base_amounts: Iterable[Decimal | float | int],
    breakdowns: Iterable[DiscountCostBreakdown | None],
) -> OperationTotals:
    """Sum item amounts and cost components, rounding to cents only here.

    ``net_amount`` is always exactly ``gross_amount - costs_amount``.
    """

    gross = sum((_as_decimal(v, "base_amount") for v in base_amounts), Decimal("0"))
    interest = fee = iof = other = Decimal("0")
    for breakdown in breakdowns:
        if breakdown is None:
            continue
        interest += breakdown.interest_amount
        fee += breakdown.fee_amount
        iof += breakdown.iof_amount
        other += breakdown.other_cost_amount

    gross_amount = to_money(gross)
    costs_amount = to_money(interest + fee + iof + other)
    return OperationTotals(
        gross_amount=gross_amount,
        interest_amount=to_money(interest),
        fee_amount=to_money(fee),
        iof_amount=to_money(iof),
        other_cost_amount=to_money(other),
        costs_amount=costs_amount,
        net_amount=gross_amount - costs_amount,
    )


def sum_response_costs(
    *,
    fee_amount: Decimal | float | int | None,
    interest_amount: Decimal | float | int | None,
    iof_amount: Decimal | float | int | None,
    other_cost_amount: Decimal | float | int | None,
) -> Decimal:
    total = Decimal("0")
    for name, value in (
        ("fee_amount", fee_amount),
        ("interest_amount", interest_amount),
        ("iof_amount", iof_amount),
        ("other_cost_amount", other_cost_amount),
    ):
        if value is not None:
            total += _as_decimal(value, name)
    return to_money(total)
