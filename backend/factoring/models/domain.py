# ruff: noqa: E501
import uuid
from datetime import date, datetime
from decimal import Decimal
from enum import Enum as PyEnum

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from factoring.database import Base


def _uuid_str() -> str:
    return str(uuid.uuid4())


class FactorOperationStatus(str, PyEnum):
    draft = "draft"
    sent_to_factor = "sent_to_factor"
    in_adjustment = "in_adjustment"
    completed = "completed"
    cancelled = "cancelled"


class FactorItemAction(str, PyEnum):
    discount = "discount"
    buyback = "buyback"
    due_date_change = "due_date_change"


class FactorResponseStatus(str, PyEnum):
    pending = "pending"
    accepted = "accepted"
    rejected = "rejected"
    adjusted = "adjusted"


class FactorCustodyStatus(str, PyEnum):
    own = "own"
    with_factor = "with_factor"
    repurchased = "repurchased"


class FactorPostingType(str, PyEnum):
    ar_discount_settlement = "ar_discount_settlement"
    ap_buyback = "ap_buyback"
    ap_buyback_settlement = "ap_buyback_settlement"
    ap_factor_cost = "ap_factor_cost"


class InstallmentStatus(str, PyEnum):
    OPEN = "OPEN"
    PARTIAL = "PARTIAL"
    OVERDUE = "OVERDUE"
    PAID = "PAID"
    CANCELLED = "CANCELLED"
    SETTLED = "SETTLED"


MONEY = Numeric(14, 2)
RATE = Numeric(9, 4)


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    company_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    user_id: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)
    action: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    entity_type: Mapped[str] = mapped_column(String(64), nullable=False)
    entity_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    details: Mapped[dict | None] = mapped_column(JSON)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class DocumentSequence(Base):
    """Per-company counters for sequential document numbers."""

    __tablename__ = "document_sequences"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    company_id: Mapped[str] = mapped_column(String(36), nullable=False)
    doc_type: Mapped[str] = mapped_column(String(32), nullable=False)
    last_seq: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    __table_args__ = (
        UniqueConstraint("company_id", "doc_type", name="uq_document_sequences_company_doc_type"),
    )


# ---------------------------------------------------------------------------
# Receivable / payable ledger (owned by the finance module, written here only
# through the factor repository).
# ---------------------------------------------------------------------------


class ArTitle(Base):
    __tablename__ = "ar_titles"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid_str)
    company_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    customer_id: Mapped[str | None] = mapped_column(String(36))
    sales_document_id: Mapped[str | None] = mapped_column(String(36))
    document_number: Mapped[str | None] = mapped_column(String(64), index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    installments = relationship("ArInstallment", back_populates="ar_title")


class ArInstallment(Base):
    __tablename__ = "ar_installments"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid_str)
    company_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    ar_title_id: Mapped[str] = mapped_column(ForeignKey("ar_titles.id"), nullable=False, index=True)
    installment_number: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    due_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    amount_open: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0"))
    status: Mapped[InstallmentStatus] = mapped_column(
        Enum(InstallmentStatus, native_enum=False, length=16),
        nullable=False,
        default=InstallmentStatus.OPEN,
        index=True,
    )
    factor_custody_status: Mapped[FactorCustodyStatus] = mapped_column(
        Enum(FactorCustodyStatus, native_enum=False, length=16),
        nullable=False,
        default=FactorCustodyStatus.own,
        index=True,
    )
    factor_id: Mapped[str | None] = mapped_column(ForeignKey("factors.id"), nullable=True)
    factor_operation_item_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    factor_assigned_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    factor_released_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    ar_title = relationship("ArTitle", back_populates="installments", lazy="joined")


class ApTitle(Base):
    __tablename__ = "ap_titles"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid_str)
    company_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    supplier_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    date_issued: Mapped[date] = mapped_column(Date, nullable=False)
    amount_total: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    amount_paid: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0"))
    amount_open: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="OPEN")
    document_number: Mapped[str | None] = mapped_column(String(64), index=True)
    description: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class ApInstallment(Base):
    __tablename__ = "ap_installments"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid_str)
    company_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    ap_title_id: Mapped[str] = mapped_column(ForeignKey("ap_titles.id"), nullable=False, index=True)
    installment_number: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    due_date: Mapped[date] = mapped_column(Date, nullable=False)
    amount_original: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    amount_paid: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0"))
    amount_open: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="OPEN")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


# ---------------------------------------------------------------------------
# Factor operations
# ---------------------------------------------------------------------------


class Factor(Base):
    __tablename__ = "factors"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid_str)
    company_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    # Counterparty organization used as supplier of the factoring cost payable.
    organization_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    code: Mapped[str | None] = mapped_column(String(40))
    default_interest_rate: Mapped[Decimal] = mapped_column(RATE, nullable=False, default=Decimal("0"))
    default_fee_rate: Mapped[Decimal] = mapped_column(RATE, nullable=False, default=Decimal("0"))
    default_iof_rate: Mapped[Decimal] = mapped_column(RATE, nullable=False, default=Decimal("0"))
    default_other_cost_rate: Mapped[Decimal] = mapped_column(RATE, nullable=False, default=Decimal("0"))
    default_grace_days: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    default_auto_settle_buyback: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, index=True)
    notes: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )
    created_by: Mapped[str | None] = mapped_column(String(36))


class FactorOperation(Base):
    __tablename__ = "factor_operations"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid_str)
    company_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    factor_id: Mapped[str] = mapped_column(ForeignKey("factors.id"), nullable=False, index=True)
    operation_number: Mapped[int] = mapped_column(Integer, nullable=False)
    reference: Mapped[str | None] = mapped_column(String(80), index=True)
    issue_date: Mapped[date] = mapped_column(Date, nullable=False)
    expected_settlement_date: Mapped[date | None] = mapped_column(Date)
    settlement_account_id: Mapped[str | None] = mapped_column(String(36))
    status: Mapped[FactorOperationStatus] = mapped_column(
        Enum(FactorOperationStatus, native_enum=False, length=32),
        nullable=False,
        default=FactorOperationStatus.draft,
        index=True,
    )
    gross_amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0"))
    costs_amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0"))
    net_amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0"))
    version_counter: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    current_version_id: Mapped[str | None] = mapped_column(String(36))
    sent_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    sent_by: Mapped[str | None] = mapped_column(String(36))
    last_response_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    completed_by: Mapped[str | None] = mapped_column(String(36))
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    cancelled_by: Mapped[str | None] = mapped_column(String(36))
    cancel_reason: Mapped[str | None] = mapped_column(Text)
    notes: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), index=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )
    created_by: Mapped[str | None] = mapped_column(String(36))

    factor = relationship("Factor", lazy="joined")

    __table_args__ = (
        UniqueConstraint("company_id", "operation_number", name="uq_factor_operations_company_number"),
    )


class FactorOperationItem(Base):
    __tablename__ = "factor_operation_items"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid_str)
    company_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    operation_id: Mapped[str] = mapped_column(ForeignKey("factor_operations.id"), nullable=False, index=True)
    line_no: Mapped[int] = mapped_column(Integer, nullable=False)
    action_type: Mapped[FactorItemAction] = mapped_column(
        Enum(FactorItemAction, native_enum=False, length=32), nullable=False
    )
    ar_installment_id: Mapped[str] = mapped_column(ForeignKey("ar_installments.id"), nullable=False, index=True)
    ar_title_id: Mapped[str] = mapped_column(ForeignKey("ar_titles.id"), nullable=False)
    sales_document_id: Mapped[str | None] = mapped_column(String(36))
    customer_id: Mapped[str | None] = mapped_column(String(36))
    installment_number_snapshot: Mapped[int] = mapped_column(Integer, nullable=False)
    due_date_snapshot: Mapped[date] = mapped_column(Date, nullable=False)
    amount_snapshot: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    proposed_due_date: Mapped[date | None] = mapped_column(Date)
    buyback_settle_now: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    status: Mapped[FactorResponseStatus] = mapped_column(
        Enum(FactorResponseStatus, native_enum=False, length=16),
        nullable=False,
        default=FactorResponseStatus.pending,
    )
    final_amount: Mapped[Decimal | None] = mapped_column(MONEY)
    final_due_date: Mapped[date | None] = mapped_column(Date)
    notes: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )
    created_by: Mapped[str | None] = mapped_column(String(36))

    __table_args__ = (
        UniqueConstraint("operation_id", "line_no", name="uq_factor_items_operation_line"),
    )


class FactorOperationVersion(Base):
    __tablename__ = "factor_operation_versions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid_str)
    company_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    operation_id: Mapped[str] = mapped_column(ForeignKey("factor_operations.id"), nullable=False, index=True)
    version_number: Mapped[int] = mapped_column(Integer, nullable=False)
    source_status: Mapped[FactorOperationStatus] = mapped_column(
        Enum(FactorOperationStatus, native_enum=False, length=32), nullable=False
    )
    total_items: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    gross_amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    costs_amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    net_amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    snapshot_json: Mapped[dict] = mapped_column(JSON, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    created_by: Mapped[str | None] = mapped_column(String(36))

    __table_args__ = (
        UniqueConstraint("operation_id", "version_number", name="uq_factor_versions_operation_number"),
    )


class FactorOperationResponse(Base):
    __tablename__ = "factor_operation_responses"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid_str)
    company_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    operation_id: Mapped[str] = mapped_column(ForeignKey("factor_operations.id"), nullable=False, index=True)
    version_id: Mapped[str] = mapped_column(ForeignKey("factor_operation_versions.id"), nullable=False)
    # Items can be removed from an editable operation, so no FK here.
    operation_item_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    response_status: Mapped[FactorResponseStatus] = mapped_column(
        Enum(FactorResponseStatus, native_enum=False, length=16), nullable=False
    )
    response_code: Mapped[str | None] = mapped_column(String(40))
    response_message: Mapped[str | None] = mapped_column(Text)
    accepted_amount: Mapped[Decimal | None] = mapped_column(MONEY)
    adjusted_amount: Mapped[Decimal | None] = mapped_column(MONEY)
    adjusted_due_date: Mapped[date | None] = mapped_column(Date)
    fee_amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0"))
    interest_amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0"))
    iof_amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0"))
    other_cost_amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0"))
    total_cost_amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0"))
    imported_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    processed_by: Mapped[str | None] = mapped_column(String(36))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        UniqueConstraint("version_id", "operation_item_id", name="uq_factor_responses_version_item"),
    )


class FactorOperationPosting(Base):
    __tablename__ = "factor_operation_postings"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid_str)
    company_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    operation_id: Mapped[str] = mapped_column(ForeignKey("factor_operations.id"), nullable=False, index=True)
    posting_type: Mapped[FactorPostingType] = mapped_column(
        Enum(FactorPostingType, native_enum=False, length=32), nullable=False
    )
    posting_key: Mapped[str] = mapped_column(String(128), nullable=False)
    amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    ar_title_id: Mapped[str | None] = mapped_column(String(36))
    ap_title_id: Mapped[str | None] = mapped_column(String(36))
    metadata_json: Mapped[dict | None] = mapped_column("metadata", JSON)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    created_by: Mapped[str | None] = mapped_column(String(36))

    __table_args__ = (
        UniqueConstraint("operation_id", "posting_key", name="uq_factor_postings_operation_key"),
    )
