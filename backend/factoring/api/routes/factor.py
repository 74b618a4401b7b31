from __future__ import annotations

import uuid
from typing import Optional

from fastapi import APIRouter, Body, Depends, Query, Response, status

from factoring.api.deps import get_factor_service
from factoring.models import FactorOperationStatus
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
)
from factoring.schemas.factor_records import (
    FactorOperationItemRecord,
    FactorOperationRecord,
    FactorRecord,
)
from factoring.services.factor_package import build_operation_package, package_filename
from factoring.services.factor_service import FactorService

router = APIRouter(prefix="/finance/factor", tags=["factor"])

_SERVICE_DEP = Depends(get_factor_service)


@router.get("/factors", response_model=FactorListRead)
def list_factors(service: FactorService = _SERVICE_DEP):
    return service.list_factors()


@router.post("/factors", response_model=FactorRecord, status_code=status.HTTP_201_CREATED)
def create_factor(payload: FactorCreate, service: FactorService = _SERVICE_DEP):
    return service.create_factor(payload)


@router.get("/operations", response_model=FactorOperationListRead)
def list_operations(
    status_filter: Optional[FactorOperationStatus] = Query(None, alias="status"),
    factor_id: Optional[uuid.UUID] = Query(None, alias="factorId"),
    search: Optional[str] = Query(None, max_length=80),
    limit: int = Query(100, ge=1, le=500),
    service: FactorService = _SERVICE_DEP,
):
    filters = OperationListFilters(
        status=status_filter,
        factor_id=str(factor_id) if factor_id else None,
        search=search or None,
        limit=limit,
    )
    return service.list_operations(filters)


@router.post("/operations", response_model=FactorOperationRecord, status_code=status.HTTP_201_CREATED)
def create_operation(payload: FactorOperationCreate, service: FactorService = _SERVICE_DEP):
    return service.create_operation(payload)


@router.get("/operations/{operation_id}", response_model=FactorOperationDetailRead)
def get_operation(operation_id: uuid.UUID, service: FactorService = _SERVICE_DEP):
    return service.get_operation_detail(str(operation_id))


@router.patch("/operations/{operation_id}", response_model=FactorOperationRecord)
def update_operation(
    operation_id: uuid.UUID,
    payload: FactorOperationUpdate,
    service: FactorService = _SERVICE_DEP,
):
    return service.update_operation(str(operation_id), payload)


@router.post(
    "/operations/{operation_id}/items",
    response_model=FactorOperationItemRecord,
    status_code=status.HTTP_201_CREATED,
)
def add_operation_item(
    operation_id: uuid.UUID,
    payload: FactorOperationItemCreate,
    service: FactorService = _SERVICE_DEP,
):
    return service.add_operation_item(str(operation_id), payload)


@router.delete("/operations/{operation_id}/items/{item_id}", response_model=FactorOperationItemRecord)
def remove_operation_item(
    operation_id: uuid.UUID,
    item_id: uuid.UUID,
    service: FactorService = _SERVICE_DEP,
):
    return service.remove_operation_item(str(operation_id), str(item_id))


@router.post(
    "/operations/{operation_id}/versions",
    response_model=FactorVersionResultRead,
    status_code=status.HTTP_201_CREATED,
)
def create_version(operation_id: uuid.UUID, service: FactorService = _SERVICE_DEP):
    return service.create_version(str(operation_id))


@router.post("/operations/{operation_id}/send", response_model=FactorVersionResultRead)
def send_to_factor(operation_id: uuid.UUID, service: FactorService = _SERVICE_DEP):
    return service.send_to_factor(str(operation_id))


@router.post("/operations/{operation_id}/responses", response_model=FactorResponsesResultRead)
def apply_responses(
    operation_id: uuid.UUID,
    payload: FactorResponsesApply,
    service: FactorService = _SERVICE_DEP,
):
    return service.apply_responses(str(operation_id), payload)


@router.post("/operations/{operation_id}/conclude", response_model=FactorConcludeResultRead)
def conclude_operation(
    operation_id: uuid.UUID,
    payload: Optional[FactorOperationConclude] = Body(default=None),
    service: FactorService = _SERVICE_DEP,
):
    return service.conclude_operation(str(operation_id), payload)


@router.post("/operations/{operation_id}/cancel", response_model=FactorOperationRecord)
def cancel_operation(
    operation_id: uuid.UUID,
    payload: FactorOperationCancel,
    service: FactorService = _SERVICE_DEP,
):
    return service.cancel_operation(str(operation_id), payload)


@router.get("/operations/{operation_id}/downloads/package-zip")
def download_operation_package(operation_id: uuid.UUID, service: FactorService = _SERVICE_DEP):
    detail = service.get_operation_detail(str(operation_id))
    return Response(
        content=build_operation_package(detail),
        media_type="application/zip",
        headers={
            "Content-Disposition": f'attachment; filename="{package_filename(detail)}"',
            "Cache-Control": "no-store",
        },
    )


@router.get("/installments/open", response_model=EligibleInstallmentListRead)
def list_open_installments(
    q: Optional[str] = Query(None, max_length=80),
    service: FactorService = _SERVICE_DEP,
):
    return service.list_eligible_installments(search=q)


@router.get("/installments/with-factor", response_model=EligibleInstallmentListRead)
def list_installments_with_factor(
    factor_id: Optional[uuid.UUID] = Query(None, alias="factorId"),
    service: FactorService = _SERVICE_DEP,
):
    return service.list_installments_with_factor(str(factor_id) if factor_id else None)
