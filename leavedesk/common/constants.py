"""Enums and constants for LeaveDesk — matching the database ENUM types."""

from __future__ import annotations

import enum


# ── Auth / Roles ────────────────────────────────────────────────────

class UserRole(str, enum.Enum):
    employee = "employee"
    manager = "manager"
    admin = "admin"


# ── Leave ───────────────────────────────────────────────────────────

class LeaveStatus(str, enum.Enum):
    pending = "pending"
    approved = "approved"
    rejected = "rejected"


class LeaveKind(str, enum.Enum):
    """Requested leave type: paid draws on the monthly quota, regular does not."""

    paid = "paid"
    regular = "regular"


class StartSegment(str, enum.Enum):
    shift_start = "shift_start"
    shift_middle = "shift_middle"
    full_day = "full_day"


class EndSegment(str, enum.Enum):
    shift_middle = "shift_middle"
    shift_end = "shift_end"
    full_day = "full_day"


class BlockType(str, enum.Enum):
    holiday = "holiday"
    important = "important"


class DateStatus(str, enum.Enum):
    available = "available"
    blocked = "blocked"
    booked = "booked"


class SwapState(str, enum.Enum):
    no_swap = "no_swap"
    swap_requested = "swap_requested"
    swap_accepted = "swap_accepted"
    rejected_by_booker = "rejected_by_booker"
    booker_did_not_respond = "booker_did_not_respond"
    swapped = "swapped"
    rejected_by_admin = "rejected_by_admin"


class LeaveListView(str, enum.Enum):
    """Admin listing views over every employee's leaves."""

    future = "future"
    past = "past"
    acknowledged = "acknowledged"


class LeaveTypeFilter(str, enum.Enum):
    paid = "paid"
    regular = "regular"
    uninformed = "uninformed"


class ApprovalOutcome(str, enum.Enum):
    approved = "approved"
    approved_as_unpaid_over_quota = "approved_as_unpaid_over_quota"
    rejected = "rejected"


class RefusalKind(str, enum.Enum):
    date_blocked = "date_blocked"
    date_booked = "date_booked"
    paid_not_available = "paid_not_available"
    conflict = "conflict"
    not_pending = "not_pending"
    no_swap = "no_swap"
    already_responded = "already_responded"
    not_booker = "not_booker"
    not_found_or_not_uninformed = "not_found_or_not_uninformed"


# HTTP status per refusal; apply-time refusals are ordinary UI outcomes.
REFUSAL_STATUS_CODES: dict[RefusalKind, int] = {
    RefusalKind.date_blocked: 200,
    RefusalKind.date_booked: 200,
    RefusalKind.paid_not_available: 200,
    RefusalKind.conflict: 200,
    RefusalKind.not_pending: 400,
    RefusalKind.no_swap: 400,
    RefusalKind.already_responded: 400,
    RefusalKind.not_booker: 403,
    RefusalKind.not_found_or_not_uninformed: 404,
}


# ── Ledger constants ────────────────────────────────────────────────

BLOCK_EMPLOYEE_ID = 0                 # employee_id of synthetic block rows
HOLIDAY_PREFIX = "HOLIDAY"
IMPORTANT_EVENT_PREFIX = "IMPORTANT_EVENT"
UNINFORMED_DEFAULT_REASON = "Uninformed leave"

ACTIVE_LEAVE_STATUSES = (LeaveStatus.pending, LeaveStatus.approved)

DEFAULT_UNINFORMED_PENALTY_TEXT = (
    "Each uninformed leave day reduces paid leave quotas in future months "
    "until all such days have been deducted. No leaves this month are paid "
    "out in cash."
)
