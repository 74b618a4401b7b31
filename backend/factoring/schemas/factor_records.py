"""Row shapes for the factor tables.

Every row the repository reads is parsed into one of these records before it
reaches the service, so malformed storage data fails at the boundary.
"""

from __future__ import annotations

import re
import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Optional

from pydantic import AfterValidator, AliasChoices, BaseModel, BeforeValidator, ConfigDict, Field
from typing_extensions import Annotated

from factoring.models import (
    FactorCustodyStatus,
    FactorItemAction,
    FactorOperationStatus,
    FactorPostingType,
    FactorResponseStatus,
    InstallmentStatus,
)

_ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def _check_uuid(value: str) -> str:
    try:
        uuid.UUID(str(value))
    except ValueError:
        raise ValueError("must be a UUID")
    return str(value)


def _check_iso_date(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str) and _ISO_DATE_RE.match(value.strip()):
        return value.strip()
    raise ValueError("must be a date formatted as YYYY-MM-DD")


UuidStr = Annotated[str, AfterValidator(_check_uuid)]
IsoDate = Annotated[date, BeforeValidator(_check_iso_date)]


class _Record(BaseModel):
    model_config = ConfigDict(from_attributes=True, extra="ignore")


class FactorRecord(_Record):
    id: UuidStr
    company_id: UuidStr
    organization_id: Optional[UuidStr] = None
    name: str
    code: Optional[str] = None
    default_interest_rate: Decimal
    default_fee_rate: Decimal
    default_iof_rate: Decimal
    default_other_cost_rate: Decimal
    default_grace_days: int
    default_auto_settle_buyback: bool
    is_active: bool
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    created_by: Optional[UuidStr] = None


class FactorOperationRecord(_Record):
    id: UuidStr
    company_id: UuidStr
    factor_id: UuidStr
    operation_number: int
    reference: Optional[str] = None
    issue_date: IsoDate
    expected_settlement_date: Optional[IsoDate] = None
    settlement_account_id: Optional[UuidStr] = None
    status: FactorOperationStatus
    gross_amount: Decimal
    costs_amount: Decimal
    net_amount: Decimal
    version_counter: int
    current_version_id: Optional[UuidStr] = None
    sent_at: Optional[datetime] = None
    sent_by: Optional[UuidStr] = None
    last_response_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    completed_by: Optional[UuidStr] = None
    cancelled_at: Optional[datetime] = None
    cancelled_by: Optional[UuidStr] = None
    cancel_reason: Optional[str] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    created_by: Optional[UuidStr] = None


class FactorMiniRecord(_Record):
    id: UuidStr
    name: str


class OperationListItemRecord(FactorOperationRecord):
    factor: Optional[FactorMiniRecord] = None


class FactorOperationItemRecord(_Record):
    id: UuidStr
    company_id: UuidStr
    operation_id: UuidStr
    line_no: int = Field(gt=0)
    action_type: FactorItemAction
    ar_installment_id: UuidStr
    ar_title_id: UuidStr
    sales_document_id: Optional[UuidStr] = None
    customer_id: Optional[UuidStr] = None
    installment_number_snapshot: int = Field(gt=0)
    due_date_snapshot: IsoDate
    amount_snapshot: Decimal
    proposed_due_date: Optional[IsoDate] = None
    buyback_settle_now: bool
    status: FactorResponseStatus
    final_amount: Optional[Decimal] = None
    final_due_date: Optional[IsoDate] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    created_by: Optional[UuidStr] = None


class FactorOperationVersionRecord(_Record):
    id: UuidStr
    company_id: UuidStr
    operation_id: UuidStr
    version_number: int = Field(gt=0)
    source_status: FactorOperationStatus
    total_items: int
    gross_amount: Decimal
    costs_amount: Decimal
    net_amount: Decimal
    snapshot_json: dict[str, Any]
    created_at: Optional[datetime] = None
    created_by: Optional[UuidStr] = None


class FactorOperationResponseRecord(_Record):
    id: UuidStr
    company_id: UuidStr
    operation_id: UuidStr
    version_id: UuidStr
    operation_item_id: UuidStr
    response_status: FactorResponseStatus
    response_code: Optional[str] = None
    response_message: Optional[str] = None
    accepted_amount: Optional[Decimal] = None
    adjusted_amount: Optional[Decimal] = None
    adjusted_due_date: Optional[IsoDate] = None
    fee_amount: Decimal
    interest_amount: Decimal
    iof_amount: Decimal
    other_cost_amount: Decimal
    total_cost_amount: Decimal
    imported_at: Optional[datetime] = None
    processed_by: Optional[UuidStr] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class FactorPostingRecord(_Record):
    id: UuidStr
    company_id: UuidStr
    operation_id: UuidStr
    posting_type: FactorPostingType
    posting_key: str
    amount: Decimal
    ar_title_id: Optional[UuidStr] = None
    ap_title_id: Optional[UuidStr] = None
    metadata: dict[str, Any] = Field(
        default_factory=dict, validation_alias=AliasChoices("metadata_json", "metadata")
    )
    created_at: Optional[datetime] = None
    created_by: Optional[UuidStr] = None


class ArTitleRecord(_Record):
    id: UuidStr
    company_id: UuidStr
    customer_id: Optional[UuidStr] = None
    sales_document_id: Optional[UuidStr] = None
    document_number: Optional[str] = None


class EligibleInstallmentRecord(_Record):
    id: UuidStr
    company_id: UuidStr
    ar_title_id: UuidStr
    installment_number: int = Field(gt=0)
    due_date: IsoDate
    amount_open: Decimal
    status: InstallmentStatus
    factor_custody_status: FactorCustodyStatus = FactorCustodyStatus.own
    factor_id: Optional[UuidStr] = None
    ar_title: ArTitleRecord
