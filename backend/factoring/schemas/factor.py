from __future__ import annotations

from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from factoring import models
from factoring.schemas.factor_records import (
    EligibleInstallmentRecord,
    FactorOperationItemRecord,
    FactorOperationRecord,
    FactorOperationResponseRecord,
    FactorOperationVersionRecord,
    FactorPostingRecord,
    FactorRecord,
    IsoDate,
    OperationListItemRecord,
    UuidStr,
)


class _Input(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)


class FactorCreate(_Input):
    name: str = Field(..., min_length=2, max_length=120)
    code: Optional[str] = Field(default=None, max_length=40)
    organization_id: Optional[UuidStr] = None
    default_interest_rate: Decimal = Field(default=Decimal("0"), ge=0, le=100)
    default_fee_rate: Decimal = Field(default=Decimal("0"), ge=0, le=100)
    default_iof_rate: Decimal = Field(default=Decimal("0"), ge=0, le=100)
    default_other_cost_rate: Decimal = Field(default=Decimal("0"), ge=0, le=100)
    default_grace_days: int = Field(default=0, ge=0, le=365)
    default_auto_settle_buyback: bool = False
    is_active: bool = True
    notes: Optional[str] = Field(default=None, max_length=1000)


class FactorOperationCreate(_Input):
    factor_id: UuidStr
    issue_date: IsoDate
    expected_settlement_date: Optional[IsoDate] = None
    settlement_account_id: Optional[UuidStr] = None
    reference: Optional[str] = Field(default=None, min_length=1, max_length=80)
    notes: Optional[str] = Field(default=None, max_length=1000)


class FactorOperationUpdate(_Input):
    """Patch for an editable operation. Anything not listed here is rejected."""

    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    reference: Optional[str] = Field(default=None, min_length=1, max_length=80)
    expected_settlement_date: Optional[IsoDate] = None
    settlement_account_id: Optional[UuidStr] = None
    notes: Optional[str] = Field(default=None, max_length=1000)


class FactorOperationItemCreate(_Input):
    action_type: models.FactorItemAction
    ar_installment_id: UuidStr
    proposed_due_date: Optional[IsoDate] = None
    # None falls back to the factor's default_auto_settle_buyback.
    buyback_settle_now: Optional[bool] = None
    notes: Optional[str] = Field(default=None, max_length=500)


class FactorResponseInput(_Input):
    operation_item_id: UuidStr
    response_status: models.FactorResponseStatus
    response_code: Optional[str] = Field(default=None, max_length=40)
    response_message: Optional[str] = Field(default=None, max_length=1000)
    accepted_amount: Optional[Decimal] = Field(default=None, ge=0)
    adjusted_amount: Optional[Decimal] = Field(default=None, ge=0)
    adjusted_due_date: Optional[IsoDate] = None
    fee_amount: Decimal = Field(default=Decimal("0"), ge=0)
    interest_amount: Decimal = Field(default=Decimal("0"), ge=0)
    iof_amount: Decimal = Field(default=Decimal("0"), ge=0)
    other_cost_amount: Decimal = Field(default=Decimal("0"), ge=0)

    @model_validator(mode="after")
    def _adjusted_needs_terms(self) -> "FactorResponseInput":
        if (
            self.response_status == models.FactorResponseStatus.adjusted
            and self.adjusted_amount is None
            and self.adjusted_due_date is None
        ):
            raise ValueError("adjusted response requires adjusted_amount or adjusted_due_date")
        return self


class FactorResponsesApply(_Input):
    version_id: UuidStr
    responses: list[FactorResponseInput] = Field(..., min_length=1)


class FactorOperationConclude(_Input):
    settlement_date: Optional[IsoDate] = None
    notes: Optional[str] = Field(default=None, max_length=1000)


class FactorOperationCancel(_Input):
    reason: str = Field(..., min_length=3, max_length=500)


class OperationListFilters(_Input):
    status: Optional[models.FactorOperationStatus] = None
    factor_id: Optional[UuidStr] = None
    search: Optional[str] = Field(default=None, max_length=80)
    limit: int = Field(default=100, ge=1, le=500)


class PostingPreviewRead(BaseModel):
    discount_amount: Decimal
    buyback_amount: Decimal
    cost_amount: Decimal


class FactorOperationDetailRead(BaseModel):
    operation: FactorOperationRecord
    factor: FactorRecord
    items: list[FactorOperationItemRecord]
    versions: list[FactorOperationVersionRecord]
    responses: list[FactorOperationResponseRecord]
    postings: list[FactorPostingRecord]
    posting_preview: PostingPreviewRead


class FactorOperationListRead(BaseModel):
    items: list[OperationListItemRecord]


class FactorListRead(BaseModel):
    items: list[FactorRecord]


class EligibleInstallmentListRead(BaseModel):
    items: list[EligibleInstallmentRecord]


class FactorVersionResultRead(BaseModel):
    operation: FactorOperationRecord
    version: FactorOperationVersionRecord


class FactorResponsesResultRead(BaseModel):
    operation: FactorOperationRecord
    responses: list[FactorOperationResponseRecord]


class FactorConcludeResultRead(BaseModel):
    operation: FactorOperationRecord
    postings: list[FactorPostingRecord]
    idempotent: bool = False
    ap_title_id: Optional[str] = None


def item_snapshot(item: FactorOperationItemRecord, estimated_costs: Optional[dict[str, Any]]) -> dict[str, Any]:
    """Serialize an item the way it is frozen inside a version snapshot."""

    data = item.model_dump(mode="json", exclude={"created_at", "updated_at", "created_by"})
    data["estimated_costs"] = estimated_costs
    return data

