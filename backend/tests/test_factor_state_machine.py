import itertools

import pytest

from factoring.models import FactorOperationStatus as S
from factoring.services.factor_errors import FactorServiceError
from factoring.services.factor_state_machine import (
    ALLOWED_TRANSITIONS,
    TERMINAL_STATUSES,
    allowed_sources,
    assert_factor_operation_transition,
    can_transition,
)

EXPECTED_EDGES = {
    (S.draft, S.sent_to_factor),
    (S.draft, S.cancelled),
    (S.sent_to_factor, S.in_adjustment),
    (S.sent_to_factor, S.completed),
    (S.sent_to_factor, S.cancelled),
    (S.in_adjustment, S.sent_to_factor),
    (S.in_adjustment, S.completed),
    (S.in_adjustment, S.cancelled),
}


def test_transition_table_covers_every_status():
    assert set(ALLOWED_TRANSITIONS) == set(S)


@pytest.mark.parametrize("from_status,to_status", list(itertools.product(S, S)))
def test_can_transition_matches_edge_list(from_status, to_status):
    assert can_transition(from_status, to_status) is ((from_status, to_status) in EXPECTED_EDGES)


def test_terminal_statuses_have_no_exits():
    assert TERMINAL_STATUSES == {S.completed, S.cancelled}
    for status in TERMINAL_STATUSES:
        for target in S:
            assert not can_transition(status, target)


def test_allowed_sources_for_completed():
    assert allowed_sources(S.completed) == {S.sent_to_factor, S.in_adjustment}
    assert allowed_sources(S.draft) == frozenset()


def test_accepts_plain_string_statuses():
    assert can_transition("draft", "sent_to_factor")
    assert not can_transition("completed", "draft")


def test_assert_transition_raises_conflict_with_details():
    with pytest.raises(FactorServiceError) as exc:
        assert_factor_operation_transition(S.completed, S.cancelled)

    err = exc.value
    assert err.status == 409
    assert err.code == "INVALID_STATUS_TRANSITION"
    assert err.details == {"from_status": "completed", "to_status": "cancelled"}


def test_assert_transition_allows_legal_edge():
    assert assert_factor_operation_transition(S.in_adjustment, S.sent_to_factor) is None
