"""factor operations and the ledger tables they touch

Revision ID: 20261018_0001_factor_operations
Revises:
Create Date: 2026-10-18
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261018_0001_factor_operations"
down_revision = None
branch_labels = None
depends_on = None

MONEY = sa.Numeric(14, 2)
RATE = sa.Numeric(9, 4)


def _uuid_pk() -> sa.Column:
    return sa.Column("id", sa.String(length=36), primary_key=True)


def _company() -> sa.Column:
    return sa.Column("company_id", sa.String(length=36), nullable=False)


def _ts(name: str, *, nullable: bool = True) -> sa.Column:
    return sa.Column(name, sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=nullable)


def upgrade() -> None:
    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        _company(),
        sa.Column("user_id", sa.String(length=36), nullable=True),
        sa.Column("action", sa.String(length=128), nullable=False),
        sa.Column("entity_type", sa.String(length=64), nullable=False),
        sa.Column("entity_id", sa.String(length=64), nullable=False),
        sa.Column("details", sa.JSON(), nullable=True),
        _ts("created_at"),
    )
    op.create_index("ix_audit_logs_company_id", "audit_logs", ["company_id"])
    op.create_index("ix_audit_logs_user_id", "audit_logs", ["user_id"])
    op.create_index("ix_audit_logs_action", "audit_logs", ["action"])
    op.create_index("ix_audit_logs_entity_id", "audit_logs", ["entity_id"])

    op.create_table(
        "document_sequences",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        _company(),
        sa.Column("doc_type", sa.String(length=32), nullable=False),
        sa.Column("last_seq", sa.Integer(), nullable=False, server_default="0"),
        _ts("updated_at", nullable=False),
        sa.UniqueConstraint("company_id", "doc_type", name="uq_document_sequences_company_doc_type"),
    )

    op.create_table(
        "ar_titles",
        _uuid_pk(),
        _company(),
        sa.Column("customer_id", sa.String(length=36), nullable=True),
        sa.Column("sales_document_id", sa.String(length=36), nullable=True),
        sa.Column("document_number", sa.String(length=64), nullable=True),
        _ts("created_at"),
    )
    op.create_index("ix_ar_titles_company_id", "ar_titles", ["company_id"])
    op.create_index("ix_ar_titles_document_number", "ar_titles", ["document_number"])

    op.create_table(
        "factors",
        _uuid_pk(),
        _company(),
        sa.Column("organization_id", sa.String(length=36), nullable=True),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("code", sa.String(length=40), nullable=True),
        sa.Column("default_interest_rate", RATE, nullable=False, server_default="0"),
        sa.Column("default_fee_rate", RATE, nullable=False, server_default="0"),
        sa.Column("default_iof_rate", RATE, nullable=False, server_default="0"),
        sa.Column("default_other_cost_rate", RATE, nullable=False, server_default="0"),
        sa.Column("default_grace_days", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("default_auto_settle_buyback", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("notes", sa.Text(), nullable=True),
        _ts("created_at"),
        _ts("updated_at"),
        sa.Column("created_by", sa.String(length=36), nullable=True),
    )
    op.create_index("ix_factors_company_id", "factors", ["company_id"])
    op.create_index("ix_factors_is_active", "factors", ["is_active"])

    op.create_table(
        "ar_installments",
        _uuid_pk(),
        _company(),
        sa.Column("ar_title_id", sa.String(length=36), sa.ForeignKey("ar_titles.id"), nullable=False),
        sa.Column("installment_number", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("due_date", sa.Date(), nullable=False),
        sa.Column("amount_open", MONEY, nullable=False, server_default="0"),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="OPEN"),
        sa.Column("factor_custody_status", sa.String(length=16), nullable=False, server_default="own"),
        sa.Column("factor_id", sa.String(length=36), sa.ForeignKey("factors.id"), nullable=True),
        sa.Column("factor_operation_item_id", sa.String(length=36), nullable=True),
        sa.Column("factor_assigned_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("factor_released_at", sa.DateTime(timezone=True), nullable=True),
        _ts("updated_at"),
    )
    op.create_index("ix_ar_installments_company_id", "ar_installments", ["company_id"])
    op.create_index("ix_ar_installments_ar_title_id", "ar_installments", ["ar_title_id"])
    op.create_index("ix_ar_installments_due_date", "ar_installments", ["due_date"])
    op.create_index("ix_ar_installments_status", "ar_installments", ["status"])
    op.create_index(
        "ix_ar_installments_factor_custody_status", "ar_installments", ["factor_custody_status"]
    )

    op.create_table(
        "ap_titles",
        _uuid_pk(),
        _company(),
        sa.Column("supplier_id", sa.String(length=36), nullable=False),
        sa.Column("date_issued", sa.Date(), nullable=False),
        sa.Column("amount_total", MONEY, nullable=False),
        sa.Column("amount_paid", MONEY, nullable=False, server_default="0"),
        sa.Column("amount_open", MONEY, nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="OPEN"),
        sa.Column("document_number", sa.String(length=64), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        _ts("created_at"),
    )
    op.create_index("ix_ap_titles_company_id", "ap_titles", ["company_id"])
    op.create_index("ix_ap_titles_supplier_id", "ap_titles", ["supplier_id"])
    op.create_index("ix_ap_titles_document_number", "ap_titles", ["document_number"])

    op.create_table(
        "ap_installments",
        _uuid_pk(),
        _company(),
        sa.Column("ap_title_id", sa.String(length=36), sa.ForeignKey("ap_titles.id"), nullable=False),
        sa.Column("installment_number", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("due_date", sa.Date(), nullable=False),
        sa.Column("amount_original", MONEY, nullable=False),
        sa.Column("amount_paid", MONEY, nullable=False, server_default="0"),
        sa.Column("amount_open", MONEY, nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="OPEN"),
        _ts("created_at"),
    )
    op.create_index("ix_ap_installments_company_id", "ap_installments", ["company_id"])
    op.create_index("ix_ap_installments_ap_title_id", "ap_installments", ["ap_title_id"])

    op.create_table(
        "factor_operations",
        _uuid_pk(),
        _company(),
        sa.Column("factor_id", sa.String(length=36), sa.ForeignKey("factors.id"), nullable=False),
        sa.Column("operation_number", sa.Integer(), nullable=False),
        sa.Column("reference", sa.String(length=80), nullable=True),
        sa.Column("issue_date", sa.Date(), nullable=False),
        sa.Column("expected_settlement_date", sa.Date(), nullable=True),
        sa.Column("settlement_account_id", sa.String(length=36), nullable=True),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="draft"),
        sa.Column("gross_amount", MONEY, nullable=False, server_default="0"),
        sa.Column("costs_amount", MONEY, nullable=False, server_default="0"),
        sa.Column("net_amount", MONEY, nullable=False, server_default="0"),
        sa.Column("version_counter", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("current_version_id", sa.String(length=36), nullable=True),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("sent_by", sa.String(length=36), nullable=True),
        sa.Column("last_response_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_by", sa.String(length=36), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_by", sa.String(length=36), nullable=True),
        sa.Column("cancel_reason", sa.Text(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        _ts("created_at"),
        _ts("updated_at"),
        sa.Column("created_by", sa.String(length=36), nullable=True),
        sa.UniqueConstraint("company_id", "operation_number", name="uq_factor_operations_company_number"),
    )
    op.create_index("ix_factor_operations_company_id", "factor_operations", ["company_id"])
    op.create_index("ix_factor_operations_factor_id", "factor_operations", ["factor_id"])
    op.create_index("ix_factor_operations_reference", "factor_operations", ["reference"])
    op.create_index("ix_factor_operations_status", "factor_operations", ["status"])
    op.create_index("ix_factor_operations_created_at", "factor_operations", ["created_at"])

    op.create_table(
        "factor_operation_items",
        _uuid_pk(),
        _company(),
        sa.Column(
            "operation_id", sa.String(length=36), sa.ForeignKey("factor_operations.id"), nullable=False
        ),
        sa.Column("line_no", sa.Integer(), nullable=False),
        sa.Column("action_type", sa.String(length=32), nullable=False),
        sa.Column(
            "ar_installment_id", sa.String(length=36), sa.ForeignKey("ar_installments.id"), nullable=False
        ),
        sa.Column("ar_title_id", sa.String(length=36), sa.ForeignKey("ar_titles.id"), nullable=False),
        sa.Column("sales_document_id", sa.String(length=36), nullable=True),
        sa.Column("customer_id", sa.String(length=36), nullable=True),
        sa.Column("installment_number_snapshot", sa.Integer(), nullable=False),
        sa.Column("due_date_snapshot", sa.Date(), nullable=False),
        sa.Column("amount_snapshot", MONEY, nullable=False),
        sa.Column("proposed_due_date", sa.Date(), nullable=True),
        sa.Column("buyback_settle_now", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="pending"),
        sa.Column("final_amount", MONEY, nullable=True),
        sa.Column("final_due_date", sa.Date(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        _ts("created_at"),
        _ts("updated_at"),
        sa.Column("created_by", sa.String(length=36), nullable=True),
        sa.UniqueConstraint("operation_id", "line_no", name="uq_factor_items_operation_line"),
    )
    op.create_index("ix_factor_operation_items_company_id", "factor_operation_items", ["company_id"])
    op.create_index("ix_factor_operation_items_operation_id", "factor_operation_items", ["operation_id"])
    op.create_index(
        "ix_factor_operation_items_ar_installment_id", "factor_operation_items", ["ar_installment_id"]
    )

    op.create_table(
        "factor_operation_versions",
        _uuid_pk(),
        _company(),
        sa.Column(
            "operation_id", sa.String(length=36), sa.ForeignKey("factor_operations.id"), nullable=False
        ),
        sa.Column("version_number", sa.Integer(), nullable=False),
        sa.Column("source_status", sa.String(length=32), nullable=False),
        sa.Column("total_items", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("gross_amount", MONEY, nullable=False),
        sa.Column("costs_amount", MONEY, nullable=False),
        sa.Column("net_amount", MONEY, nullable=False),
        sa.Column("snapshot_json", sa.JSON(), nullable=False),
        _ts("created_at"),
        sa.Column("created_by", sa.String(length=36), nullable=True),
        sa.UniqueConstraint("operation_id", "version_number", name="uq_factor_versions_operation_number"),
    )
    op.create_index("ix_factor_operation_versions_company_id", "factor_operation_versions", ["company_id"])
    op.create_index(
        "ix_factor_operation_versions_operation_id", "factor_operation_versions", ["operation_id"]
    )

    op.create_table(
        "factor_operation_responses",
        _uuid_pk(),
        _company(),
        sa.Column(
            "operation_id", sa.String(length=36), sa.ForeignKey("factor_operations.id"), nullable=False
        ),
        sa.Column(
            "version_id", sa.String(length=36), sa.ForeignKey("factor_operation_versions.id"), nullable=False
        ),
        sa.Column("operation_item_id", sa.String(length=36), nullable=False),
        sa.Column("response_status", sa.String(length=16), nullable=False),
        sa.Column("response_code", sa.String(length=40), nullable=True),
        sa.Column("response_message", sa.Text(), nullable=True),
        sa.Column("accepted_amount", MONEY, nullable=True),
        sa.Column("adjusted_amount", MONEY, nullable=True),
        sa.Column("adjusted_due_date", sa.Date(), nullable=True),
        sa.Column("fee_amount", MONEY, nullable=False, server_default="0"),
        sa.Column("interest_amount", MONEY, nullable=False, server_default="0"),
        sa.Column("iof_amount", MONEY, nullable=False, server_default="0"),
        sa.Column("other_cost_amount", MONEY, nullable=False, server_default="0"),
        sa.Column("total_cost_amount", MONEY, nullable=False, server_default="0"),
        _ts("imported_at"),
        sa.Column("processed_by", sa.String(length=36), nullable=True),
        _ts("created_at"),
        _ts("updated_at"),
        sa.UniqueConstraint("version_id", "operation_item_id", name="uq_factor_responses_version_item"),
    )
    op.create_index(
        "ix_factor_operation_responses_company_id", "factor_operation_responses", ["company_id"]
    )
    op.create_index(
        "ix_factor_operation_responses_operation_id", "factor_operation_responses", ["operation_id"]
    )
    op.create_index(
        "ix_factor_operation_responses_operation_item_id",
        "factor_operation_responses",
        ["operation_item_id"],
    )

    op.create_table(
        "factor_operation_postings",
        _uuid_pk(),
        _company(),
        sa.Column(
            "operation_id", sa.String(length=36), sa.ForeignKey("factor_operations.id"), nullable=False
        ),
        sa.Column("posting_type", sa.String(length=32), nullable=False),
        sa.Column("posting_key", sa.String(length=128), nullable=False),
        sa.Column("amount", MONEY, nullable=False),
        sa.Column("ar_title_id", sa.String(length=36), nullable=True),
        sa.Column("ap_title_id", sa.String(length=36), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=True),
        _ts("created_at"),
        sa.Column("created_by", sa.String(length=36), nullable=True),
        sa.UniqueConstraint("operation_id", "posting_key", name="uq_factor_postings_operation_key"),
    )
    op.create_index("ix_factor_operation_postings_company_id", "factor_operation_postings", ["company_id"])
    op.create_index(
        "ix_factor_operation_postings_operation_id", "factor_operation_postings", ["operation_id"]
    )


def downgrade() -> None:
    for table in (
        "factor_operation_postings",
        "factor_operation_responses",
        "factor_operation_versions",
        "factor_operation_items",
        "factor_operations",
        "ap_installments",
        "ap_titles",
        "ar_installments",
        "factors",
        "ar_titles",
        "document_sequences",
        "audit_logs",
    ):
        op.drop_table(table)
