from datetime import date
from decimal import Decimal

import pytest

from conftest import COMPANY_ID, OTHER_COMPANY_ID
from factoring import models
from factoring.models import FactorOperationStatus, FactorPostingType
from factoring.services.document_numbering import FACTOR_OPERATION_DOC_TYPE, next_document_number
from factoring.services.factor_errors import DuplicatePostingError
from factoring.services.factor_repository import FactorRepository
from factoring.services.factor_transitions import atomic_transition_operation_status


def _seed_operation(db, factor, *, status=FactorOperationStatus.draft, number=1):
    op = models.FactorOperation(
        company_id=COMPANY_ID,
        factor_id=factor.id,
        operation_number=number,
        issue_date=date(2026, 1, 1),
        status=status,
    )
    db.add(op)
    db.commit()
    db.refresh(op)
    return op


def test_document_numbers_are_sequential_per_company_and_type(db_session):
    numbers = [
        next_document_number(db_session, company_id=COMPANY_ID, doc_type=FACTOR_OPERATION_DOC_TYPE)
        for _ in range(3)
    ]
    assert numbers == [1, 2, 3]
    assert next_document_number(db_session, company_id=OTHER_COMPANY_ID, doc_type=FACTOR_OPERATION_DOC_TYPE) == 1
    assert next_document_number(db_session, company_id=COMPANY_ID, doc_type="other_doc") == 1
    db_session.commit()

    row = (
        db_session.query(models.DocumentSequence)
        .filter_by(company_id=COMPANY_ID, doc_type=FACTOR_OPERATION_DOC_TYPE)
        .one()
    )
    assert row.last_seq == 3


def test_sqlite_session_does_not_lock_rows(db_session):
    assert FactorRepository(db_session).locks_rows is False


def test_installment_patch_is_allow_listed(db_session, seed_installment):
    inst = seed_installment()
    repo = FactorRepository(db_session)

    with pytest.raises(ValueError, match="amount_open"):
        repo.update_installment(COMPANY_ID, inst.id, {"amount_open": Decimal("0")})

    patched = repo.update_installment(COMPANY_ID, inst.id, {"due_date": date(2026, 5, 1)})
    assert patched.due_date == date(2026, 5, 1)


def test_operation_and_item_patches_are_allow_listed(db_session, seed_factor):
    op = _seed_operation(db_session, seed_factor())
    repo = FactorRepository(db_session)

    with pytest.raises(ValueError, match="status"):
        repo.update_operation(COMPANY_ID, op.id, {"status": FactorOperationStatus.completed})
    with pytest.raises(ValueError, match="amount_snapshot"):
        repo.update_item(COMPANY_ID, op.id, {"amount_snapshot": Decimal("1")})


def test_duplicate_posting_key_is_rejected(db_session, seed_factor):
    op = _seed_operation(db_session, seed_factor())
    repo = FactorRepository(db_session)

    first = repo.insert_posting(
        COMPANY_ID,
        operation_id=op.id,
        posting_type=FactorPostingType.ap_factor_cost,
        posting_key=f"cost:{op.id}",
        amount=Decimal("12.34"),
        metadata={"operation_number": 1},
    )
    db_session.commit()
    assert first.metadata == {"operation_number": 1}

    with pytest.raises(DuplicatePostingError) as exc:
        repo.insert_posting(
            COMPANY_ID,
            operation_id=op.id,
            posting_type=FactorPostingType.ap_factor_cost,
            posting_key=f"cost:{op.id}",
            amount=Decimal("12.34"),
        )
    db_session.rollback()

    assert exc.value.posting_key == f"cost:{op.id}"
    assert [p.id for p in repo.list_postings(COMPANY_ID, op.id)] == [first.id]


def test_atomic_transition_only_moves_from_allowed_status(db_session, seed_factor):
    op = _seed_operation(db_session, seed_factor(), status=FactorOperationStatus.completed)

    result = atomic_transition_operation_status(
        db=db_session,
        company_id=COMPANY_ID,
        operation_id=op.id,
        to_status=FactorOperationStatus.cancelled,
        allowed_from={FactorOperationStatus.draft, FactorOperationStatus.sent_to_factor},
    )
    assert result.updated is False
    assert result.rowcount == 0

    repo = FactorRepository(db_session)
    assert repo.get_operation(COMPANY_ID, op.id).status == FactorOperationStatus.completed


def test_transition_is_scoped_by_company(db_session, seed_factor):
    op = _seed_operation(db_session, seed_factor())
    repo = FactorRepository(db_session)

    assert (
        repo.transition_operation_status(
            OTHER_COMPANY_ID,
            op.id,
            to_status=FactorOperationStatus.cancelled,
            allowed_from={FactorOperationStatus.draft},
        )
        is None
    )

    moved = repo.transition_operation_status(
        COMPANY_ID,
        op.id,
        to_status=FactorOperationStatus.cancelled,
        allowed_from={FactorOperationStatus.draft},
        updates={"cancel_reason": "teste"},
    )
    assert moved.status == FactorOperationStatus.cancelled
    assert moved.cancel_reason == "teste"


def test_list_operations_filters(db_session, seed_factor):
    factor = seed_factor()
    other_factor = seed_factor(name="Factor Beta")
    _seed_operation(db_session, factor, number=1)
    second = _seed_operation(db_session, factor, status=FactorOperationStatus.cancelled, number=2)
    third = _seed_operation(db_session, other_factor, number=3)
    repo = FactorRepository(db_session)

    assert [o.operation_number for o in repo.list_operations(COMPANY_ID)] == [3, 2, 1]
    assert [o.id for o in repo.list_operations(COMPANY_ID, status=FactorOperationStatus.cancelled)] == [second.id]
    listed = repo.list_operations(COMPANY_ID, factor_id=other_factor.id)
    assert [o.id for o in listed] == [third.id]
    assert listed[0].factor.name == "Factor Beta"
    assert repo.list_operations(COMPANY_ID, limit=1)[0].id == third.id
    assert repo.list_operations(OTHER_COMPANY_ID) == []


def test_audit_rows_are_written_in_the_callers_transaction(db_session):
    repo = FactorRepository(db_session)
    log_id = repo.insert_audit_log(
        COMPANY_ID,
        user_id=None,
        action="factor_created",
        entity_type="factors",
        entity_id="f-1",
        details={"name": "Factor Alfa"},
    )
    assert log_id > 0
    db_session.rollback()
    assert db_session.query(models.AuditLog).count() == 0
