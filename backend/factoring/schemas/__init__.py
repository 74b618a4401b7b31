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
    FactorResponseInput,
    FactorResponsesApply,
    FactorResponsesResultRead,
    FactorVersionResultRead,
    OperationListFilters,
    PostingPreviewRead,
)
from factoring.schemas.factor_records import (
    ArTitleRecord,
    EligibleInstallmentRecord,
    FactorMiniRecord,
    FactorOperationItemRecord,
    FactorOperationRecord,
    FactorOperationResponseRecord,
    FactorOperationVersionRecord,
    FactorPostingRecord,
    FactorRecord,
    OperationListItemRecord,
)

__all__ = [
    "ArTitleRecord",
    "EligibleInstallmentListRead",
    "EligibleInstallmentRecord",
    "FactorConcludeResultRead",
    "FactorCreate",
    "FactorListRead",
    "FactorMiniRecord",
    "FactorOperationCancel",
    "FactorOperationConclude",
    "FactorOperationCreate",
    "FactorOperationDetailRead",
    "FactorOperationItemCreate",
    "FactorOperationItemRecord",
    "FactorOperationListRead",
    "FactorOperationRecord",
    "FactorOperationResponseRecord",
    "FactorOperationUpdate",
    "FactorOperationVersionRecord",
    "FactorPostingRecord",
    "FactorRecord",
    "FactorResponseInput",
    "FactorResponsesApply",
    "FactorResponsesResultRead",
    "FactorVersionResultRead",
    "OperationListFilters",
    "OperationListItemRecord",
    "PostingPreviewRead",
]
