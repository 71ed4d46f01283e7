"""Common module — shared utilities for LeaveDesk."""

from leavedesk.common.audit import AuditTrail, create_audit_entry, utcnow
from leavedesk.common.constants import (
    ACTIVE_LEAVE_STATUSES,
    BLOCK_EMPLOYEE_ID,
    REFUSAL_STATUS_CODES,
    ApprovalOutcome,
    BlockType,
    DateStatus,
    EndSegment,
    LeaveKind,
    LeaveStatus,
    RefusalKind,
    StartSegment,
    SwapState,
    UserRole,
)
from leavedesk.common.exceptions import (
    AppException,
    ForbiddenException,
    NotFoundException,
    ValidationException,
    register_exception_handlers,
)

__all__ = [
    # Audit
    "AuditTrail",
    "create_audit_entry",
    "utcnow",
    # Constants / Enums
    "ACTIVE_LEAVE_STATUSES",
    "BLOCK_EMPLOYEE_ID",
    "REFUSAL_STATUS_CODES",
    "ApprovalOutcome",
    "BlockType",
    "DateStatus",
    "EndSegment",
    "LeaveKind",
    "LeaveStatus",
    "RefusalKind",
    "StartSegment",
    "SwapState",
    "UserRole",
    # Exceptions
    "AppException",
    "ForbiddenException",
    "NotFoundException",
    "ValidationException",
    "register_exception_handlers",
]
