from typing import List
from fastapi import APIRouter, Depends, Query

from app.core.audit import AuditLogger
from app.core.dependencies import get_current_user, get_audit_logger
from app.core.errors import ServiceError, ErrorCode
from app.db.schema import User, UserRole
from app.models.verification import AuditLogRead

router = APIRouter()


@router.get(
    "/",
    response_model=List[AuditLogRead],
    summary="Recent Audit Entries",
    description="Admin-only view of the latest audit trail entries."
)
def list_audit_logs(
    limit: int = Query(default=25, ge=1, le=200),
    current_user: User = Depends(get_current_user),
    audit: AuditLogger = Depends(get_audit_logger)
):
    if current_user.role != UserRole.ADMIN:
        raise ServiceError(ErrorCode.FORBIDDEN, "Only admins can read the audit trail.")
    return audit.list_recent(limit)
