from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Iterator, Optional

from sqlalchemy.orm import Session

from factoring.models import (
    FactorCustodyStatus,
    FactorItemAction,
    FactorOperationStatus,
    FactorPostingType,
    FactorResponseStatus,
)
from factoring.schemas.factor import (
    EligibleInstallmentListRead,
    FactorConcludeResultRead,
    FactorCreate,
    FactorListRead,
    FactorOperationCancel,
    FactorOperationConclude,
    FactorOperationCreate,
    FactorOperationDetailRead,
    FactorOperationItemCreate,
    FactorOperationListRead,
    FactorOperationUpdate,
    FactorResponsesApply,
    FactorResponsesResultRead,
    FactorVersionResultRead,
    OperationListFilters,
    PostingPreviewRead,
    item_snapshot,
)
from factoring.schemas.factor_records import (
    FactorOperationItemRecord,
    FactorOperationRecord,
    FactorOperationResponseRecord,
    FactorOperationVersionRecord,
    FactorRecord,
)
from factoring.services.factor_costs import (
    FactorRates,
    aggregate_operation_totals,
    calculate_discount_costs,
    sum_response_costs,
    to_money,
)
from factoring.services.factor_eligibility import (
    can_edit_factor_operation,
    validate_factor_item_eligibility,
)
from factoring.services.factor_errors import DuplicatePostingError, FactorServiceError
from factoring.services.factor_repository import FactorRepository
from factoring.services.factor_resolution import (
    ADJUSTMENT_RESPONSE_STATUSES,
    is_response_accepted,
    resolve_effective_terms,
)
from factoring.services.factor_state_machine import assert_factor_operation_transition

logger = logging.getLogger("factoring.factor_service")

S = FactorOperationStatus

RESPONSE_STATUSES = frozenset({S.sent_to_factor, S.in_adjustment})
OPERATION_ENTITY = "factor_operations"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def latest_response_by_item(
    responses: list[FactorOperationResponseRecord],
    versions: list[FactorOperationVersionRecord],
) -> dict[str, FactorOperationResponseRecord]:
    """Pick, for each item, the answer given to the most recent version.

    An item that was not answered in the latest round keeps its previous
    answer. A ``pending`` answer still counts as an answer; it only carries
    no ledger effect.
    """

    version_numbers = {v.id: v.version_number for v in versions}
    chosen: dict[str, FactorOperationResponseRecord] = {}
    for response in responses:
        current = chosen.get(response.operation_item_id)
        if current is None or version_numbers.get(response.version_id, 0) > version_numbers.get(
            current.version_id, 0
        ):
            chosen[response.operation_item_id] = response
    return chosen


class FactorService:
    """Factor operation lifecycle for one company/user context.

    Every public method that writes is one unit of work: it commits on success
    and rolls back on any error, so a failed call leaves no partial state.
    """

    def __init__(
        self,
        db: Session,
        company_id: str,
        user_id: Optional[str],
        repository: FactorRepository | None = None,
    ):
        self.db = db
        self.company_id = str(company_id)
        self.user_id = str(user_id) if user_id is not None else None
        self.repository = repository or FactorRepository(db)

    @contextmanager
    def _unit_of_work(self, action: str, **context: Any) -> Iterator[None]:
        log_extra = {"company_id": self.company_id, "action": action, **context}
        try:
            yield
            self.db.commit()
        except FactorServiceError as exc:
            self.db.rollback()
            logger.warning(
                "factor_call_rejected",
                extra={**log_extra, "code": exc.code, "status": exc.status},
            )
            raise
        except DuplicatePostingError as exc:
            self.db.rollback()
            logger.warning("factor_posting_conflict", extra={**log_extra, "posting_key": exc.posting_key})
            raise FactorServiceError(
                "Lançamento já registrado por outra requisição",
                "POSTING_CONFLICT",
                409,
                details={"posting_key": exc.posting_key},
            ) from exc
        except Exception:
            self.db.rollback()
            raise

    def _audit(self, action: str, entity_type: str, entity_id: str, details: dict[str, Any]) -> None:
        self.repository.insert_audit_log(
            self.company_id,
            user_id=self.user_id,
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            details=details,
        )

    def _load_operation(self, operation_id: str, *, for_update: bool = False) -> FactorOperationRecord:
        operation = self.repository.get_operation(self.company_id, operation_id, for_update=for_update)
        if operation is None:
            raise FactorServiceError("Operação não encontrada", "OPERATION_NOT_FOUND", 404)
        return operation

    def _load_factor(self, factor_id: str) -> FactorRecord:
        factor = self.repository.get_factor(self.company_id, factor_id)
        if factor is None:
            raise FactorServiceError("Factor não encontrado", "FACTOR_NOT_FOUND", 404)
        return factor

    def _require_editable(self, operation: FactorOperationRecord) -> None:
        if not can_edit_factor_operation(operation.status):
            raise FactorServiceError(
                "Operação não pode ser editada neste status",
                "OPERATION_NOT_EDITABLE",
                409,
                details={"status": operation.status.value},
            )

    def _transition(
        self,
        operation: FactorOperationRecord,
        to_status: FactorOperationStatus,
        updates: dict[str, Any] | None = None,
    ) -> FactorOperationRecord:
        assert_factor_operation_transition(operation.status, to_status)
        updated = self.repository.transition_operation_status(
            self.company_id,
            operation.id,
            to_status=to_status,
            allowed_from={operation.status},
            updates=updates,
        )
        if updated is None:
            raise FactorServiceError(
                "Status da operação foi alterado por outra requisição",
                "OPERATION_STATUS_CONFLICT",
                409,
                details={"expected_status": operation.status.value, "to_status": to_status.value},
            )
        logger.info(
            "factor_operation_status_changed",
            extra={
                "company_id": self.company_id,
                "operation_id": operation.id,
                "from_status": operation.status.value,
                "to_status": to_status.value,
            },
        )
        return updated

    # ------------------------------------------------------------------
    # Factors
    # ------------------------------------------------------------------

    def create_factor(self, payload: FactorCreate) -> FactorRecord:
        with self._unit_of_work("create_factor"):
            factor = self.repository.create_factor(
                self.company_id, payload.model_dump(), created_by=self.user_id
            )
            self._audit("factor_created", "factors", factor.id, {"name": factor.name, "code": factor.code})
        return factor

    def list_factors(self) -> FactorListRead:
        return FactorListRead(items=self.repository.list_factors(self.company_id))

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def create_operation(self, payload: FactorOperationCreate) -> FactorOperationRecord:
        with self._unit_of_work("create_operation", factor_id=payload.factor_id):
            factor = self._load_factor(payload.factor_id)
            if not factor.is_active:
                raise FactorServiceError("Factor inativo", "FACTOR_INACTIVE", 422)

            number = self.repository.next_operation_number(self.company_id)
            operation = self.repository.create_operation(
                self.company_id,
                {
                    "factor_id": factor.id,
                    "operation_number": number,
                    "reference": payload.reference,
                    "issue_date": payload.issue_date,
                    "expected_settlement_date": payload.expected_settlement_date,
                    "settlement_account_id": payload.settlement_account_id,
                    "notes": payload.notes,
                    "status": S.draft,
                    "gross_amount": Decimal("0"),
                    "costs_amount": Decimal("0"),
                    "net_amount": Decimal("0"),
                    "version_counter": 0,
                    "created_by": self.user_id,
                },
            )
            self._audit(
                "factor_operation_created",
                OPERATION_ENTITY,
                operation.id,
                {"operation_number": number, "factor_id": factor.id},
            )
        logger.info(
            "factor_operation_created",
            extra={"company_id": self.company_id, "operation_id": operation.id, "operation_number": number},
        )
        return operation

    def list_operations(self, filters: OperationListFilters | None = None) -> FactorOperationListRead:
        filters = filters or OperationListFilters()
        rows = self.repository.list_operations(
            self.company_id,
            status=filters.status,
            factor_id=filters.factor_id,
            search=filters.search,
            limit=filters.limit,
        )
        return FactorOperationListRead(items=rows)

    def get_operation_detail(self, operation_id: str) -> FactorOperationDetailRead:
        operation = self._load_operation(operation_id)
        factor = self._load_factor(operation.factor_id)
        items = self.repository.list_items(self.company_id, operation.id)
        versions = self.repository.list_versions(self.company_id, operation.id)
        responses = self.repository.list_responses(self.company_id, operation.id)
        postings = self.repository.list_postings(self.company_id, operation.id)

        return FactorOperationDetailRead(
            operation=operation,
            factor=factor,
            items=items,
            versions=versions,
            responses=responses,
            postings=postings,
            posting_preview=self._posting_preview(items, latest_response_by_item(responses, versions)),
        )

    @staticmethod
    def _posting_preview(
        items: list[FactorOperationItemRecord],
        responses: dict[str, FactorOperationResponseRecord],
    ) -> PostingPreviewRead:
        discount = buyback = cost = Decimal("0")
        for item in items:
            response = responses.get(item.id)
            if response is None or not is_response_accepted(response.response_status):
                continue
            terms = resolve_effective_terms(item, response)
            # Buyback costs are settled with the repurchase, outside the discount preview.
            if item.action_type == FactorItemAction.discount:
                discount += terms.amount
                cost += response.total_cost_amount
            elif item.action_type == FactorItemAction.buyback:
                buyback += terms.amount
        return PostingPreviewRead(
            discount_amount=to_money(discount),
            buyback_amount=to_money(buyback),
            cost_amount=to_money(cost),
        )

    def update_operation(self, operation_id: str, payload: FactorOperationUpdate) -> FactorOperationRecord:
        with self._unit_of_work("update_operation", operation_id=operation_id):
            operation = self._load_operation(operation_id, for_update=True)
            self._require_editable(operation)
            patch = payload.model_dump(exclude_unset=True)
            if not patch:
                return operation
            operation = self.repository.update_operation(self.company_id, operation.id, patch)
            self._audit(
                "factor_operation_updated",
                OPERATION_ENTITY,
                operation.id,
                {"fields": sorted(patch)},
            )
        return operation

    # ------------------------------------------------------------------
    # Items
    # ------------------------------------------------------------------

    def add_operation_item(self, operation_id: str, payload: FactorOperationItemCreate) -> FactorOperationItemRecord:
        with self._unit_of_work("add_operation_item", operation_id=operation_id):
            operation = self._load_operation(operation_id, for_update=True)
            self._require_editable(operation)

            installment = self.repository.get_installment(
                self.company_id, payload.ar_installment_id, for_update=True
            )
            if installment is None:
                raise FactorServiceError("Parcela não encontrada", "INSTALLMENT_NOT_FOUND", 404)

            if self.repository.find_item_for_installment(self.company_id, operation.id, installment.id):
                raise FactorServiceError(
                    "Parcela já incluída nesta operação",
                    "ITEM_ALREADY_IN_OPERATION",
                    409,
                    details={"ar_installment_id": installment.id},
                )

            eligibility = validate_factor_item_eligibility(
                action_type=payload.action_type,
                installment_status=installment.status,
                custody_status=installment.factor_custody_status,
                amount_open=installment.amount_open,
                proposed_due_date=payload.proposed_due_date,
                due_date_snapshot=installment.due_date,
            )
            if not eligibility.ok:
                raise FactorServiceError(
                    eligibility.reason or "Parcela não elegível",
                    "ITEM_NOT_ELIGIBLE",
                    422,
                    details={"ar_installment_id": installment.id},
                )

            settle_now = payload.buyback_settle_now
            if settle_now is None:
                factor = self._load_factor(operation.factor_id)
                settle_now = factor.default_auto_settle_buyback
            if payload.action_type != FactorItemAction.buyback:
                settle_now = False

            item = self.repository.insert_item(
                self.company_id,
                {
                    "operation_id": operation.id,
                    "line_no": self.repository.next_line_no(self.company_id, operation.id),
                    "action_type": payload.action_type,
                    "ar_installment_id": installment.id,
                    "ar_title_id": installment.ar_title_id,
                    "sales_document_id": installment.ar_title.sales_document_id,
                    "customer_id": installment.ar_title.customer_id,
                    "installment_number_snapshot": installment.installment_number,
                    "due_date_snapshot": installment.due_date,
                    "amount_snapshot": to_money(installment.amount_open),
                    "proposed_due_date": payload.proposed_due_date,
                    "buyback_settle_now": settle_now,
                    "status": FactorResponseStatus.pending,
                    "notes": payload.notes,
                    "created_by": self.user_id,
                },
            )
            self._audit(
                "factor_item_added",
                OPERATION_ENTITY,
                operation.id,
                {
                    "item_id": item.id,
                    "line_no": item.line_no,
                    "action_type": item.action_type.value,
                    "ar_installment_id": item.ar_installment_id,
                },
            )
        return item

    def remove_operation_item(self, operation_id: str, item_id: str) -> FactorOperationItemRecord:
        with self._unit_of_work("remove_operation_item", operation_id=operation_id, item_id=item_id):
            operation = self._load_operation(operation_id, for_update=True)
            self._require_editable(operation)
            removed = self.repository.delete_item(self.company_id, operation.id, item_id)
            if removed is None:
                raise FactorServiceError("Item não pertence à operação", "ITEM_NOT_IN_OPERATION", 404)
            self._audit(
                "factor_item_removed",
                OPERATION_ENTITY,
                operation.id,
                {"item_id": removed.id, "line_no": removed.line_no},
            )
        return removed

    def list_eligible_installments(self, search: Optional[str] = None) -> EligibleInstallmentListRead:
        return EligibleInstallmentListRead(
            items=self.repository.list_open_installments(self.company_id, search=search or None)
        )

    def list_installments_with_factor(self, factor_id: Optional[str] = None) -> EligibleInstallmentListRead:
        return EligibleInstallmentListRead(
            items=self.repository.list_installments_with_factor(self.company_id, factor_id=factor_id)
        )

    # ------------------------------------------------------------------
    # Versions
    # ------------------------------------------------------------------

    def create_version(self, operation_id: str) -> FactorVersionResultRead:
        with self._unit_of_work("create_version", operation_id=operation_id):
            operation = self._load_operation(operation_id, for_update=True)
            operation, version = self._create_version(operation)
        return FactorVersionResultRead(operation=operation, version=version)

    def _create_version(
        self, operation: FactorOperationRecord
    ) -> tuple[FactorOperationRecord, FactorOperationVersionRecord]:
        if not can_edit_factor_operation(operation.status):
            raise FactorServiceError(
                "Somente operações em rascunho/ajuste podem gerar versão",
                "OPERATION_VERSION_INVALID_STATUS",
                409,
            )

        items = self.repository.list_items(self.company_id, operation.id)
        if not items:
            raise FactorServiceError("Operação sem itens", "OPERATION_EMPTY", 422)

        factor = self._load_factor(operation.factor_id)
        rates = FactorRates.from_factor(factor)

        breakdowns = []
        serialized_items = []
        for item in items:
            breakdown = None
            if item.action_type == FactorItemAction.discount:
                breakdown = calculate_discount_costs(
                    base_amount=item.amount_snapshot,
                    issue_date=operation.issue_date,
                    due_date=item.due_date_snapshot,
                    rates=rates,
                )
            breakdowns.append(breakdown)
            serialized_items.append(
                item_snapshot(item, breakdown.as_display_dict(item.amount_snapshot) if breakdown else None)
            )

        totals = aggregate_operation_totals([item.amount_snapshot for item in items], breakdowns)
        version_number = operation.version_counter + 1
        generated_at = _utc_now()

        version = self.repository.insert_version(
            self.company_id,
            {
                "operation_id": operation.id,
                "version_number": version_number,
                "source_status": operation.status,
                "total_items": len(items),
                "gross_amount": totals.gross_amount,
                "costs_amount": totals.costs_amount,
                "net_amount": totals.net_amount,
                "snapshot_json": {
                    "generated_at": generated_at.isoformat(),
                    "operation": {
                        "id": operation.id,
                        "operation_number": operation.operation_number,
                        "issue_date": operation.issue_date.isoformat(),
                        "reference": operation.reference,
                    },
                    "factor": {"id": factor.id, "name": factor.name},
                    "rates": rates.as_dict(),
                    "items": serialized_items,
                    "totals": totals.as_dict(),
                },
                "created_by": self.user_id,
            },
        )

        operation = self.repository.update_operation(
            self.company_id,
            operation.id,
            {
                "version_counter": version_number,
                "current_version_id": version.id,
                "gross_amount": totals.gross_amount,
                "costs_amount": totals.costs_amount,
                "net_amount": totals.net_amount,
            },
        )
        self._audit(
            "factor_version_created",
            OPERATION_ENTITY,
            operation.id,
            {
                "version_id": version.id,
                "version_number": version_number,
                "gross_amount": str(totals.gross_amount),
                "costs_amount": str(totals.costs_amount),
                "net_amount": str(totals.net_amount),
            },
        )
        logger.info(
            "factor_version_created",
            extra={
                "company_id": self.company_id,
                "operation_id": operation.id,
                "version_number": version_number,
                "total_items": len(items),
            },
        )
        return operation, version

    def send_to_factor(self, operation_id: str) -> FactorVersionResultRead:
        with self._unit_of_work("send_to_factor", operation_id=operation_id):
            operation = self._load_operation(operation_id, for_update=True)
            operation, version = self._create_version(operation)
            operation = self._transition(
                operation,
                S.sent_to_factor,
                {"sent_at": _utc_now(), "sent_by": self.user_id},
            )
            self._audit(
                "factor_operation_sent",
                OPERATION_ENTITY,
                operation.id,
                {"version_id": version.id, "version_number": version.version_number},
            )
        return FactorVersionResultRead(operation=operation, version=version)

    # ------------------------------------------------------------------
    # Responses
    # ------------------------------------------------------------------

    def apply_responses(self, operation_id: str, payload: FactorResponsesApply) -> FactorResponsesResultRead:
        with self._unit_of_work("apply_responses", operation_id=operation_id):
            operation = self._load_operation(operation_id, for_update=True)
            if operation.status not in RESPONSE_STATUSES:
                raise FactorServiceError(
                    "Somente operações enviadas/em ajuste aceitam retorno",
                    "OPERATION_RESPONSE_INVALID_STATUS",
                    409,
                )

            version = self.repository.get_version(self.company_id, operation.id, payload.version_id)
            if version is None:
                raise FactorServiceError("Versão não encontrada", "VERSION_NOT_FOUND", 404)

            items = {item.id: item for item in self.repository.list_items(self.company_id, operation.id)}
            unknown = [r.operation_item_id for r in payload.responses if r.operation_item_id not in items]
            if unknown:
                raise FactorServiceError(
                    "Item não pertence à operação",
                    "ITEM_NOT_IN_OPERATION",
                    422,
                    details={"operation_item_ids": unknown},
                )

            now = _utc_now()
            saved: list[FactorOperationResponseRecord] = []
            for entry in payload.responses:
                response = self.repository.upsert_response(
                    self.company_id,
                    {
                        "operation_id": operation.id,
                        "version_id": version.id,
                        "operation_item_id": entry.operation_item_id,
                        "response_status": entry.response_status,
                        "response_code": entry.response_code,
                        "response_message": entry.response_message,
                        "accepted_amount": entry.accepted_amount,
                        "adjusted_amount": entry.adjusted_amount,
                        "adjusted_due_date": entry.adjusted_due_date,
                        "fee_amount": to_money(entry.fee_amount),
                        "interest_amount": to_money(entry.interest_amount),
                        "iof_amount": to_money(entry.iof_amount),
                        "other_cost_amount": to_money(entry.other_cost_amount),
                        "total_cost_amount": sum_response_costs(
                            fee_amount=entry.fee_amount,
                            interest_amount=entry.interest_amount,
                            iof_amount=entry.iof_amount,
                            other_cost_amount=entry.other_cost_amount,
                        ),
                        "imported_at": now,
                        "processed_by": self.user_id,
                    },
                )
                saved.append(response)

                item = items[entry.operation_item_id]
                terms = resolve_effective_terms(item, response)
                items[item.id] = self.repository.update_item(
                    self.company_id,
                    item.id,
                    {
                        "status": response.response_status,
                        "final_amount": to_money(terms.amount),
                        "final_due_date": terms.due_date,
                    },
                )

            # Only the answers imported in this call decide the next status.
            needs_adjustment = any(r.response_status in ADJUSTMENT_RESPONSE_STATUSES for r in saved)
            target = S.in_adjustment if needs_adjustment else S.sent_to_factor
            if target == operation.status:
                operation = self.repository.update_operation(
                    self.company_id, operation.id, {"last_response_at": now}
                )
            else:
                operation = self._transition(operation, target, {"last_response_at": now})

            self._audit(
                "factor_response_applied",
                OPERATION_ENTITY,
                operation.id,
                {
                    "version_id": version.id,
                    "response_count": len(saved),
                    "status": operation.status.value,
                },
            )
        return FactorResponsesResultRead(operation=operation, responses=saved)

    # ------------------------------------------------------------------
    # Conclusion and cancellation
    # ------------------------------------------------------------------

    def conclude_operation(
        self, operation_id: str, payload: FactorOperationConclude | None = None
    ) -> FactorConcludeResultRead:
        payload = payload or FactorOperationConclude()
        ap_title_id: Optional[str] = None

        with self._unit_of_work("conclude_operation", operation_id=operation_id):
            operation = self._load_operation(operation_id, for_update=True)

            if operation.status == S.completed:
                postings = self.repository.list_postings(self.company_id, operation.id)
                logger.info(
                    "factor_operation_conclude_idempotent",
                    extra={"company_id": self.company_id, "operation_id": operation.id},
                )
                return FactorConcludeResultRead(operation=operation, postings=postings, idempotent=True)

            if operation.status not in RESPONSE_STATUSES:
                raise FactorServiceError(
                    "Somente operações enviadas/em ajuste podem ser concluídas",
                    "OPERATION_CONCLUDE_INVALID_STATUS",
                    409,
                )

            if not operation.current_version_id:
                raise FactorServiceError(
                    "Operação sem versão enviada não pode ser concluída",
                    "MISSING_VERSION",
                    422,
                )

            factor = self._load_factor(operation.factor_id)
            items = self.repository.list_items(self.company_id, operation.id)
            responses = latest_response_by_item(
                self.repository.list_responses(self.company_id, operation.id),
                self.repository.list_versions(self.company_id, operation.id),
            )

            missing = [item.id for item in items if item.id not in responses]
            if missing:
                raise FactorServiceError(
                    "Existem itens sem retorno aplicado",
                    "MISSING_ITEM_RESPONSE",
                    422,
                    details={"operation_item_ids": missing},
                )

            accepted = []
            for item in items:
                response = responses[item.id]
                if not is_response_accepted(response.response_status):
                    continue
                terms = resolve_effective_terms(item, response)
                if item.action_type == FactorItemAction.due_date_change and terms.due_date is None:
                    raise FactorServiceError(
                        "Item de alteração de vencimento sem data final",
                        "MISSING_FINAL_DUE_DATE",
                        422,
                        details={"operation_item_id": item.id},
                    )
                accepted.append((item, response, terms))

            now = _utc_now()
            total_costs = Decimal("0")
            for item, response, terms in accepted:
                total_costs += response.total_cost_amount
                self._apply_item_effects(operation, item, terms.amount, terms.due_date, now)

            total_costs = to_money(total_costs)
            if total_costs > 0 and factor.organization_id:
                ap_title_id = self._register_cost_payable(operation, factor, total_costs, payload)

            operation = self._transition(
                operation,
                S.completed,
                {
                    "completed_at": now,
                    "completed_by": self.user_id,
                    "notes": payload.notes if payload.notes is not None else operation.notes,
                },
            )
            self._audit(
                "factor_operation_completed",
                OPERATION_ENTITY,
                operation.id,
                {
                    "operation_number": operation.operation_number,
                    "total_costs": str(total_costs),
                    "item_count": len(items),
                },
            )
            postings = self.repository.list_postings(self.company_id, operation.id)

        return FactorConcludeResultRead(
            operation=operation, postings=postings, idempotent=False, ap_title_id=ap_title_id
        )

    def _ensure_posting(self, operation: FactorOperationRecord, posting_key: str, **values: Any) -> None:
        if self.repository.get_posting(self.company_id, operation.id, posting_key) is not None:
            return
        self.repository.insert_posting(
            self.company_id,
            operation_id=operation.id,
            posting_key=posting_key,
            created_by=self.user_id,
            **values,
        )

    def _apply_item_effects(
        self,
        operation: FactorOperationRecord,
        item: FactorOperationItemRecord,
        amount: Decimal,
        due_date: Optional[date],
        now: datetime,
    ) -> None:
        if item.action_type == FactorItemAction.discount:
            self.repository.update_installment(
                self.company_id,
                item.ar_installment_id,
                {
                    "factor_custody_status": FactorCustodyStatus.with_factor,
                    "factor_id": operation.factor_id,
                    "factor_operation_item_id": item.id,
                    "factor_assigned_at": now,
                },
            )
            self._ensure_posting(
                operation,
                f"discount:{item.id}",
                posting_type=FactorPostingType.ar_discount_settlement,
                amount=to_money(amount),
                ar_title_id=item.ar_title_id,
                metadata={"operation_item_id": item.id, "action_type": item.action_type.value},
            )
        elif item.action_type == FactorItemAction.buyback:
            self.repository.update_installment(
                self.company_id,
                item.ar_installment_id,
                {
                    "factor_custody_status": FactorCustodyStatus.repurchased,
                    "factor_operation_item_id": item.id,
                    "factor_released_at": now,
                },
            )
            self._ensure_posting(
                operation,
                f"buyback:{item.id}",
                posting_type=FactorPostingType.ap_buyback,
                amount=to_money(amount),
                ar_title_id=item.ar_title_id,
                metadata={"operation_item_id": item.id, "settle_now": item.buyback_settle_now},
            )
        elif item.action_type == FactorItemAction.due_date_change:
            self.repository.update_installment(
                self.company_id,
                item.ar_installment_id,
                {"due_date": due_date, "factor_operation_item_id": item.id},
            )

    def _register_cost_payable(
        self,
        operation: FactorOperationRecord,
        factor: FactorRecord,
        total_costs: Decimal,
        payload: FactorOperationConclude,
    ) -> Optional[str]:
        posting_key = f"cost:{operation.id}"
        existing = self.repository.get_posting(self.company_id, operation.id, posting_key)
        if existing is not None:
            return existing.ap_title_id

        settlement_date = payload.settlement_date or operation.issue_date
        ap_title_id = self.repository.create_ap_title(
            self.company_id,
            supplier_id=factor.organization_id,
            amount_total=total_costs,
            issue_date=settlement_date,
            document_number=f"FACTOR-{operation.operation_number}",
            description=f"Custos operação factor #{operation.operation_number}",
        )
        self.repository.create_ap_installment(
            self.company_id,
            ap_title_id=ap_title_id,
            amount=total_costs,
            due_date=settlement_date,
        )
        self.repository.insert_posting(
            self.company_id,
            operation_id=operation.id,
            posting_type=FactorPostingType.ap_factor_cost,
            posting_key=posting_key,
            amount=total_costs,
            ap_title_id=ap_title_id,
            metadata={"operation_number": operation.operation_number},
            created_by=self.user_id,
        )
        return ap_title_id

    def cancel_operation(self, operation_id: str, payload: FactorOperationCancel) -> FactorOperationRecord:
        with self._unit_of_work("cancel_operation", operation_id=operation_id):
            operation = self._load_operation(operation_id, for_update=True)
            operation = self._transition(
                operation,
                S.cancelled,
                {
                    "cancelled_at": _utc_now(),
                    "cancelled_by": self.user_id,
                    "cancel_reason": payload.reason,
                },
            )
            self._audit("factor_operation_cancelled", OPERATION_ENTITY, operation.id, {"reason": payload.reason})
        return operation
