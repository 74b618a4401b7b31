from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import date
from decimal import Decimal
from typing import Any, Iterable, Iterator, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from factoring import models
from factoring.models import FactorCustodyStatus, FactorOperationStatus
from factoring.schemas.factor_records import (
    EligibleInstallmentRecord,
    FactorOperationItemRecord,
    FactorOperationRecord,
    FactorOperationResponseRecord,
    FactorOperationVersionRecord,
    FactorPostingRecord,
    FactorRecord,
    OperationListItemRecord,
)
from factoring.services.audit import audit_event
from factoring.services.document_numbering import FACTOR_OPERATION_DOC_TYPE, next_document_number
from factoring.services.factor_eligibility import OPEN_INSTALLMENT_STATUSES
from factoring.services.factor_errors import DuplicatePostingError, RecordNotFoundError, RepositoryError
from factoring.services.factor_transitions import atomic_transition_operation_status

logger = logging.getLogger("factoring.factor_repository")

INSTALLMENT_LIST_LIMIT = 300

# Ledger fields the factor lifecycle is allowed to touch on a receivable installment.
INSTALLMENT_PATCHABLE_FIELDS = frozenset(
    {
        "due_date",
        "factor_custody_status",
        "factor_id",
        "factor_operation_item_id",
        "factor_assigned_at",
        "factor_released_at",
    }
)

OPERATION_PATCHABLE_FIELDS = frozenset(
    {
        "reference",
        "expected_settlement_date",
        "settlement_account_id",
        "notes",
        "version_counter",
        "current_version_id",
        "gross_amount",
        "costs_amount",
        "net_amount",
        "last_response_at",
    }
)

ITEM_PATCHABLE_FIELDS = frozenset({"status", "final_amount", "final_due_date"})


class FactorRepository:
    """Storage access for factor operations, scoped by company on every call.

    Methods only flush; the caller owns the transaction.
    """

    def __init__(self, db: Session):
        self.db = db

    @property
    def locks_rows(self) -> bool:
        dialect = getattr(getattr(self.db, "bind", None), "dialect", None)
        name = str(getattr(dialect, "name", "") or "").lower()
        return bool(name) and name != "sqlite"

    @contextmanager
    def _storage(self, action: str) -> Iterator[None]:
        try:
            yield
        except SQLAlchemyError as exc:
            logger.error("factor_repository_error", extra={"action": action, "error": str(exc)})
            raise RepositoryError(f"Failed to {action}: {exc}") from exc

    # ------------------------------------------------------------------
    # Factors
    # ------------------------------------------------------------------

    def list_factors(self, company_id: str, *, active_only: bool = True) -> list[FactorRecord]:
        with self._storage("list factors"):
            q = self.db.query(models.Factor).filter(models.Factor.company_id == company_id)
            if active_only:
                q = q.filter(models.Factor.is_active.is_(True))
            rows = q.order_by(models.Factor.name.asc()).all()
        return [FactorRecord.model_validate(r) for r in rows]

    def get_factor(self, company_id: str, factor_id: str) -> Optional[FactorRecord]:
        with self._storage("load factor"):
            row = (
                self.db.query(models.Factor)
                .filter(models.Factor.company_id == company_id, models.Factor.id == factor_id)
                .first()
            )
        return FactorRecord.model_validate(row) if row is not None else None

    def create_factor(self, company_id: str, values: dict[str, Any], *, created_by: Optional[str]) -> FactorRecord:
        with self._storage("create factor"):
            row = models.Factor(company_id=company_id, created_by=created_by, **values)
            self.db.add(row)
            self.db.flush()
            return FactorRecord.model_validate(row)

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def next_operation_number(self, company_id: str) -> int:
        with self._storage("allocate operation number"):
            return next_document_number(self.db, company_id=company_id, doc_type=FACTOR_OPERATION_DOC_TYPE)

    def create_operation(self, company_id: str, values: dict[str, Any]) -> FactorOperationRecord:
        with self._storage("create operation"):
            row = models.FactorOperation(company_id=company_id, **values)
            self.db.add(row)
            self.db.flush()
            return FactorOperationRecord.model_validate(row)

    def _operation_row(self, company_id: str, operation_id: str, *, for_update: bool = False):
        q = self.db.query(models.FactorOperation).filter(
            models.FactorOperation.company_id == company_id,
            models.FactorOperation.id == operation_id,
        )
        if for_update and self.locks_rows:
            q = q.with_for_update(of=models.FactorOperation)
        return q.populate_existing().first()

    def get_operation(
        self, company_id: str, operation_id: str, *, for_update: bool = False
    ) -> Optional[FactorOperationRecord]:
        with self._storage("load operation"):
            row = self._operation_row(company_id, operation_id, for_update=for_update)
        return FactorOperationRecord.model_validate(row) if row is not None else None

    def list_operations(
        self,
        company_id: str,
        *,
        status: Optional[FactorOperationStatus] = None,
        factor_id: Optional[str] = None,
        search: Optional[str] = None,
        limit: int = 100,
    ) -> list[OperationListItemRecord]:
        with self._storage("list operations"):
            q = self.db.query(models.FactorOperation).filter(models.FactorOperation.company_id == company_id)
            if status is not None:
                q = q.filter(models.FactorOperation.status == status)
            if factor_id:
                q = q.filter(models.FactorOperation.factor_id == factor_id)
            if search:
                q = q.filter(models.FactorOperation.reference.ilike(f"%{search}%"))
            rows = q.order_by(models.FactorOperation.operation_number.desc()).limit(int(limit)).all()
        return [OperationListItemRecord.model_validate(r) for r in rows]

    def update_operation(self, company_id: str, operation_id: str, values: dict[str, Any]) -> FactorOperationRecord:
        unknown = set(values) - OPERATION_PATCHABLE_FIELDS
        if unknown:
            raise ValueError(f"Operation fields not patchable: {sorted(unknown)}")

        with self._storage("update operation"):
            row = self._operation_row(company_id, operation_id)
            if row is None:
                raise RecordNotFoundError("factor_operation", operation_id)
            for key, value in values.items():
                setattr(row, key, value)
            self.db.flush()
            return FactorOperationRecord.model_validate(row)

    def transition_operation_status(
        self,
        company_id: str,
        operation_id: str,
        *,
        to_status: FactorOperationStatus,
        allowed_from: Iterable[FactorOperationStatus],
        updates: dict[str, Any] | None = None,
    ) -> Optional[FactorOperationRecord]:
        """Conditionally move the operation to ``to_status``.

        Returns the reloaded operation, or ``None`` when the row was no longer
        in one of ``allowed_from`` (someone else moved it first).
        """

        with self._storage("update operation status"):
            result = atomic_transition_operation_status(
                db=self.db,
                company_id=company_id,
                operation_id=operation_id,
                to_status=to_status,
                allowed_from=allowed_from,
                updates=updates,
            )
            if not result.updated:
                return None
            row = self._operation_row(company_id, operation_id)
        return FactorOperationRecord.model_validate(row)

    # ------------------------------------------------------------------
    # Items
    # ------------------------------------------------------------------

    def list_items(self, company_id: str, operation_id: str) -> list[FactorOperationItemRecord]:
        with self._storage("list operation items"):
            rows = (
                self.db.query(models.FactorOperationItem)
                .filter(
                    models.FactorOperationItem.company_id == company_id,
                    models.FactorOperationItem.operation_id == operation_id,
                )
                .order_by(models.FactorOperationItem.line_no.asc())
                .all()
            )
        return [FactorOperationItemRecord.model_validate(r) for r in rows]

    def find_item_for_installment(
        self, company_id: str, operation_id: str, installment_id: str
    ) -> Optional[FactorOperationItemRecord]:
        with self._storage("load operation item"):
            row = (
                self.db.query(models.FactorOperationItem)
                .filter(
                    models.FactorOperationItem.company_id == company_id,
                    models.FactorOperationItem.operation_id == operation_id,
                    models.FactorOperationItem.ar_installment_id == installment_id,
                )
                .first()
            )
        return FactorOperationItemRecord.model_validate(row) if row is not None else None

    def next_line_no(self, company_id: str, operation_id: str) -> int:
        with self._storage("allocate item line number"):
            current = (
                self.db.query(func.max(models.FactorOperationItem.line_no))
                .filter(
                    models.FactorOperationItem.company_id == company_id,
                    models.FactorOperationItem.operation_id == operation_id,
                )
                .scalar()
            )
        return int(current or 0) + 1

    def insert_item(self, company_id: str, values: dict[str, Any]) -> FactorOperationItemRecord:
        with self._storage("add operation item"):
            row = models.FactorOperationItem(company_id=company_id, **values)
            self.db.add(row)
            self.db.flush()
            return FactorOperationItemRecord.model_validate(row)

    def update_item(self, company_id: str, item_id: str, values: dict[str, Any]) -> FactorOperationItemRecord:
        unknown = set(values) - ITEM_PATCHABLE_FIELDS
        if unknown:
            raise ValueError(f"Item fields not patchable: {sorted(unknown)}")

        with self._storage("update operation item"):
            row = (
                self.db.query(models.FactorOperationItem)
                .filter(
                    models.FactorOperationItem.company_id == company_id,
                    models.FactorOperationItem.id == item_id,
                )
                .first()
            )
            if row is None:
                raise RecordNotFoundError("factor_operation_item", item_id)
            for key, value in values.items():
                setattr(row, key, value)
            self.db.flush()
            return FactorOperationItemRecord.model_validate(row)

    def delete_item(self, company_id: str, operation_id: str, item_id: str) -> Optional[FactorOperationItemRecord]:
        with self._storage("remove operation item"):
            row = (
                self.db.query(models.FactorOperationItem)
                .filter(
                    models.FactorOperationItem.company_id == company_id,
                    models.FactorOperationItem.operation_id == operation_id,
                    models.FactorOperationItem.id == item_id,
                )
                .first()
            )
            if row is None:
                return None
            removed = FactorOperationItemRecord.model_validate(row)
            self.db.delete(row)
            self.db.flush()
        return removed

    # ------------------------------------------------------------------
    # Versions and responses
    # ------------------------------------------------------------------

    def list_versions(self, company_id: str, operation_id: str) -> list[FactorOperationVersionRecord]:
        with self._storage("list operation versions"):
            rows = (
                self.db.query(models.FactorOperationVersion)
                .filter(
                    models.FactorOperationVersion.company_id == company_id,
                    models.FactorOperationVersion.operation_id == operation_id,
                )
                .order_by(models.FactorOperationVersion.version_number.desc())
                .all()
            )
        return [FactorOperationVersionRecord.model_validate(r) for r in rows]

    def get_version(
        self, company_id: str, operation_id: str, version_id: str
    ) -> Optional[FactorOperationVersionRecord]:
        with self._storage("load operation version"):
            row = (
                self.db.query(models.FactorOperationVersion)
                .filter(
                    models.FactorOperationVersion.company_id == company_id,
                    models.FactorOperationVersion.operation_id == operation_id,
                    models.FactorOperationVersion.id == version_id,
                )
                .first()
            )
        return FactorOperationVersionRecord.model_validate(row) if row is not None else None

    def insert_version(self, company_id: str, values: dict[str, Any]) -> FactorOperationVersionRecord:
        with self._storage("create operation version"):
            row = models.FactorOperationVersion(company_id=company_id, **values)
            self.db.add(row)
            self.db.flush()
            return FactorOperationVersionRecord.model_validate(row)

    def list_responses(self, company_id: str, operation_id: str) -> list[FactorOperationResponseRecord]:
        with self._storage("list operation responses"):
            rows = (
                self.db.query(models.FactorOperationResponse)
                .filter(
                    models.FactorOperationResponse.company_id == company_id,
                    models.FactorOperationResponse.operation_id == operation_id,
                )
                .order_by(models.FactorOperationResponse.imported_at.desc())
                .all()
            )
        return [FactorOperationResponseRecord.model_validate(r) for r in rows]

    def upsert_response(self, company_id: str, values: dict[str, Any]) -> FactorOperationResponseRecord:
        """Insert or replace the response keyed by ``(version_id, operation_item_id)``."""

        with self._storage("save operation response"):
            row = (
                self.db.query(models.FactorOperationResponse)
                .filter(
                    models.FactorOperationResponse.company_id == company_id,
                    models.FactorOperationResponse.version_id == values["version_id"],
                    models.FactorOperationResponse.operation_item_id == values["operation_item_id"],
                )
                .first()
            )
            if row is None:
                row = models.FactorOperationResponse(company_id=company_id, **values)
                self.db.add(row)
            else:
                for key, value in values.items():
                    setattr(row, key, value)
            self.db.flush()
            return FactorOperationResponseRecord.model_validate(row)

    # ------------------------------------------------------------------
    # Postings
    # ------------------------------------------------------------------

    def list_postings(self, company_id: str, operation_id: str) -> list[FactorPostingRecord]:
        with self._storage("list operation postings"):
            rows = (
                self.db.query(models.FactorOperationPosting)
                .filter(
                    models.FactorOperationPosting.company_id == company_id,
                    models.FactorOperationPosting.operation_id == operation_id,
                )
                .order_by(models.FactorOperationPosting.posting_key.asc())
                .all()
            )
        return [FactorPostingRecord.model_validate(r) for r in rows]

    def get_posting(self, company_id: str, operation_id: str, posting_key: str) -> Optional[FactorPostingRecord]:
        with self._storage("load operation posting"):
            row = (
                self.db.query(models.FactorOperationPosting)
                .filter(
                    models.FactorOperationPosting.company_id == company_id,
                    models.FactorOperationPosting.operation_id == operation_id,
                    models.FactorOperationPosting.posting_key == posting_key,
                )
                .first()
            )
        return FactorPostingRecord.model_validate(row) if row is not None else None

    def insert_posting(
        self,
        company_id: str,
        *,
        operation_id: str,
        posting_type: models.FactorPostingType,
        posting_key: str,
        amount: Decimal,
        ar_title_id: Optional[str] = None,
        ap_title_id: Optional[str] = None,
        metadata: dict[str, Any] | None = None,
        created_by: Optional[str] = None,
    ) -> FactorPostingRecord:
        """Register a posting; a key collision raises ``DuplicatePostingError``."""

        with self._storage("register posting"):
            row = models.FactorOperationPosting(
                company_id=company_id,
                operation_id=operation_id,
                posting_type=posting_type,
                posting_key=posting_key,
                amount=amount,
                ar_title_id=ar_title_id,
                ap_title_id=ap_title_id,
                metadata_json=metadata or {},
                created_by=created_by,
            )
            self.db.add(row)
            try:
                self.db.flush()
            except IntegrityError as exc:
                logger.warning(
                    "factor_posting_conflict",
                    extra={"operation_id": operation_id, "posting_key": posting_key},
                )
                raise DuplicatePostingError(operation_id, posting_key) from exc
            return FactorPostingRecord.model_validate(row)

    # ------------------------------------------------------------------
    # Receivable ledger
    # ------------------------------------------------------------------

    def _installment_query(self, company_id: str):
        return self.db.query(models.ArInstallment).filter(models.ArInstallment.company_id == company_id)

    def get_installment(
        self, company_id: str, installment_id: str, *, for_update: bool = False
    ) -> Optional[EligibleInstallmentRecord]:
        with self._storage("load installment"):
            q = self._installment_query(company_id).filter(models.ArInstallment.id == installment_id)
            if for_update and self.locks_rows:
                q = q.with_for_update(of=models.ArInstallment)
            row = q.first()
        return EligibleInstallmentRecord.model_validate(row) if row is not None else None

    def list_open_installments(
        self, company_id: str, *, search: Optional[str] = None, limit: int = INSTALLMENT_LIST_LIMIT
    ) -> list[EligibleInstallmentRecord]:
        with self._storage("list open installments"):
            q = self._installment_query(company_id).filter(
                models.ArInstallment.status.in_(set(OPEN_INSTALLMENT_STATUSES)),
                models.ArInstallment.amount_open > 0,
            )
            if search:
                q = q.join(models.ArTitle, models.ArTitle.id == models.ArInstallment.ar_title_id).filter(
                    models.ArTitle.document_number.ilike(f"%{search}%")
                )
            rows = (
                q.order_by(models.ArInstallment.due_date.asc(), models.ArInstallment.installment_number.asc())
                .limit(int(limit))
                .all()
            )
        return [EligibleInstallmentRecord.model_validate(r) for r in rows]

    def list_installments_with_factor(
        self, company_id: str, *, factor_id: Optional[str] = None, limit: int = INSTALLMENT_LIST_LIMIT
    ) -> list[EligibleInstallmentRecord]:
        with self._storage("list installments with factor"):
            q = self._installment_query(company_id).filter(
                models.ArInstallment.factor_custody_status == FactorCustodyStatus.with_factor,
                models.ArInstallment.status.in_(set(OPEN_INSTALLMENT_STATUSES)),
            )
            if factor_id:
                q = q.filter(models.ArInstallment.factor_id == factor_id)
            rows = q.order_by(models.ArInstallment.due_date.asc()).limit(int(limit)).all()
        return [EligibleInstallmentRecord.model_validate(r) for r in rows]

    def update_installment(
        self, company_id: str, installment_id: str, patch: dict[str, Any]
    ) -> EligibleInstallmentRecord:
        unknown = set(patch) - INSTALLMENT_PATCHABLE_FIELDS
        if unknown:
            raise ValueError(f"Installment fields not patchable: {sorted(unknown)}")

        with self._storage("update installment"):
            row = self._installment_query(company_id).filter(models.ArInstallment.id == installment_id).first()
            if row is None:
                raise RecordNotFoundError("ar_installment", installment_id)
            for key, value in patch.items():
                setattr(row, key, value)
            self.db.flush()
            return EligibleInstallmentRecord.model_validate(row)

    # ------------------------------------------------------------------
    # Payable ledger
    # ------------------------------------------------------------------

    def create_ap_title(
        self,
        company_id: str,
        *,
        supplier_id: str,
        amount_total: Decimal,
        issue_date: date,
        document_number: str,
        description: str,
    ) -> str:
        with self._storage("create payable title"):
            row = models.ApTitle(
                company_id=company_id,
                supplier_id=supplier_id,
                date_issued=issue_date,
                amount_total=amount_total,
                amount_paid=Decimal("0"),
                amount_open=amount_total,
                status="OPEN",
                document_number=document_number,
                description=description,
            )
            self.db.add(row)
            self.db.flush()
            return str(row.id)

    def create_ap_installment(
        self,
        company_id: str,
        *,
        ap_title_id: str,
        amount: Decimal,
        due_date: date,
        installment_number: int = 1,
    ) -> str:
        with self._storage("create payable installment"):
            row = models.ApInstallment(
                company_id=company_id,
                ap_title_id=ap_title_id,
                installment_number=installment_number,
                due_date=due_date,
                amount_original=amount,
                amount_paid=Decimal("0"),
                amount_open=amount,
                status="OPEN",
            )
            self.db.add(row)
            self.db.flush()
            return str(row.id)

    # ------------------------------------------------------------------
    # Audit
    # ------------------------------------------------------------------

    def insert_audit_log(
        self,
        company_id: str,
        *,
        user_id: Optional[str],
        action: str,
        entity_type: str,
        entity_id: str,
        details: dict[str, Any] | None = None,
    ) -> int:
        with self._storage("write audit log"):
            return audit_event(
                self.db,
                company_id=company_id,
                user_id=user_id,
                action=action,
                entity_type=entity_type,
                entity_id=entity_id,
                details=details,
            )