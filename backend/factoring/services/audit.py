import logging
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from factoring import models

logger = logging.getLogger("factoring.audit")


def audit_event(
    db: Session,
    *,
    company_id: str,
    user_id: Optional[str],
    action: str,
    entity_type: str,
    entity_id: str,
    details: Dict[str, Any] | None = None,
) -> int:
    """Append an audit row inside the caller's transaction.

    The row commits or rolls back together with the change it describes, so a
    failed write here aborts the whole unit of work. Returns the audit log id.
    """

    log = models.AuditLog(
        company_id=str(company_id),
        user_id=str(user_id) if user_id is not None else None,
        action=action,
        entity_type=entity_type,
        entity_id=str(entity_id),
        details=details or {},
    )
    db.add(log)
    db.flush()
    logger.debug(
        "audit_event",
        extra={"action": action, "entity_type": entity_type, "entity_id": str(entity_id)},
    )
    return int(log.id)
