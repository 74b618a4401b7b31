from factoring.models.domain import (
    ApInstallment,
    ApTitle,
    ArInstallment,
    ArTitle,
    AuditLog,
    DocumentSequence,
    Factor,
    FactorCustodyStatus,
    FactorItemAction,
    FactorOperation,
    FactorOperationItem,
    FactorOperationPosting,
    FactorOperationResponse,
    FactorOperationStatus,
    FactorOperationVersion,
    FactorPostingType,
    FactorResponseStatus,
    InstallmentStatus,
)

__all__ = [
    "ApInstallment",
    "ApTitle",
    "ArInstallment",
    "ArTitle",
    "AuditLog",
    "DocumentSequence",
    "Factor",
    "FactorCustodyStatus",
    "FactorItemAction",
    "FactorOperation",
    "FactorOperationItem",
    "FactorOperationPosting",
    "FactorOperationResponse",
    "FactorOperationStatus",
    "FactorOperationVersion",
    "FactorPostingType",
    "FactorResponseStatus",
    "InstallmentStatus",
]
