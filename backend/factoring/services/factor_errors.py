from __future__ import annotations

from typing import Any


class FactorServiceError(Exception):
    """Business error raised by the factor lifecycle.

    ``code`` is machine readable and ``status`` follows HTTP semantics
    (409 illegal state, 422 validation, 404 not found) so callers can branch
    without matching on the message.
    """

    def __init__(
        self,
        message: str,
        code: str,
        status: int,
        *,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.status = status
        self.details = details

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"detail": self.message, "code": self.code}
        if self.details:
            payload["details"] = self.details
        return payload


class RepositoryError(RuntimeError):
    """Low-level storage failure, always prefixed with the failed action."""


class RecordNotFoundError(LookupError):
    def __init__(self, entity: str, entity_id: str) -> None:
        super().__init__(f"{entity} not found")
        self.entity = entity
        self.entity_id = entity_id


class DuplicatePostingError(RepositoryError):
    def __init__(self, operation_id: str, posting_key: str) -> None:
        super().__init__(
            f"Failed to register posting: key {posting_key} already exists for operation {operation_id}"
        )
        self.operation_id = operation_id
        self.posting_key = posting_key
