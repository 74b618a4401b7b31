from factoring.services.audit import audit_event
from factoring.services.factor_errors import FactorServiceError, RepositoryError
from factoring.services.factor_repository import FactorRepository
from factoring.services.factor_service import FactorService

__all__ = [
    "audit_event",
    "FactorRepository",
    "FactorService",
    "FactorServiceError",
    "RepositoryError",
]
