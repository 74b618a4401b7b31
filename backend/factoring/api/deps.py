import uuid
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from factoring.database import get_db
from factoring.services.factor_service import FactorService

_DB_DEP = Depends(get_db)


@dataclass(frozen=True)
class FactorContext:
    company_id: str
    user_id: Optional[str]


def _parse_uuid_header(raw: Optional[str], header_name: str) -> Optional[str]:
    if raw is None or not str(raw).strip():
        return None
    try:
        return str(uuid.UUID(str(raw).strip()))
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"{header_name} must be a UUID",
        )


def get_factor_context(
    x_company_id: Optional[str] = Header(default=None, alias="X-Company-ID"),
    x_user_id: Optional[str] = Header(default=None, alias="X-User-ID"),
) -> FactorContext:
    """Company/user context resolved by the gateway in front of this service.

    Authentication happens upstream; this only refuses requests that arrive
    without a company scope.
    """

    company_id = _parse_uuid_header(x_company_id, "X-Company-ID")
    if not company_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing company context")
    return FactorContext(company_id=company_id, user_id=_parse_uuid_header(x_user_id, "X-User-ID"))


_CONTEXT_DEP = Depends(get_factor_context)


def get_factor_service(db: Session = _DB_DEP, context: FactorContext = _CONTEXT_DEP) -> FactorService:
    return FactorService(db, context.company_id, context.user_id)
