from __future__ import annotations

from factoring.models import FactorOperationStatus
from factoring.services.factor_errors import FactorServiceError

S = FactorOperationStatus

# Single source of truth for legal operation status edges.
ALLOWED_TRANSITIONS: dict[FactorOperationStatus, frozenset[FactorOperationStatus]] = {
    S.draft: frozenset({S.sent_to_factor, S.cancelled}),
    S.sent_to_factor: frozenset({S.in_adjustment, S.completed, S.cancelled}),
    S.in_adjustment: frozenset({S.sent_to_factor, S.completed, S.cancelled}),
    S.completed: frozenset(),
    S.cancelled: frozenset(),
}

TERMINAL_STATUSES = frozenset(s for s, targets in ALLOWED_TRANSITIONS.items() if not targets)


def can_transition(from_status: FactorOperationStatus | str, to_status: FactorOperationStatus | str) -> bool:
    return S(to_status) in ALLOWED_TRANSITIONS[S(from_status)]


def allowed_sources(to_status: FactorOperationStatus | str) -> frozenset[FactorOperationStatus]:
    """Statuses from which ``to_status`` may be reached."""

    target = S(to_status)
    return frozenset(s for s, targets in ALLOWED_TRANSITIONS.items() if target in targets)


def assert_factor_operation_transition(
    from_status: FactorOperationStatus | str,
    to_status: FactorOperationStatus | str,
) -> None:
    """Raise when ``from_status -> to_status`` is not a legal edge.

    Only authorizes; persisting the new status is the caller's job.
    """

    if can_transition(from_status, to_status):
        return

    raise FactorServiceError(
        f"Transição de status inválida: {S(from_status).value} -> {S(to_status).value}",
        "INVALID_STATUS_TRANSITION",
        409,
        details={"from_status": S(from_status).value, "to_status": S(to_status).value},
    )
