"""Leave Pydantic v2 schemas — request / response validation.

Naming conventions:
  - *Create / *Request  → request bodies (write)
  - *Out                → response bodies (read)
  - LeaveRefusal        → expected policy outcome, returned instead of raised
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from leavedesk.common.constants import (
    ApprovalOutcome,
    BlockType,
    DateStatus,
    EndSegment,
    LeaveKind,
    LeaveStatus,
    RefusalKind,
    StartSegment,
    SwapState,
)


def count_leave_days(
    start: date,
    end: date,
    start_segment: StartSegment = StartSegment.full_day,
    end_segment: EndSegment = EndSegment.full_day,
) -> Decimal:
    """Days covered by a segmented range; a part-shift boundary counts 0.5.

    On a single day, ``shift_start → shift_middle`` and ``shift_middle →
    shift_end`` are half days; every other combination is a full day.
    """

    if start == end:
        if start_segment == StartSegment.full_day or end_segment == EndSegment.full_day:
            return Decimal("1")
        if (start_segment, end_segment) in (
            (StartSegment.shift_start, EndSegment.shift_middle),
            (StartSegment.shift_middle, EndSegment.shift_end),
        ):
            return Decimal("0.5")
        return Decimal("1")

    total = Decimal(max((end - start).days - 1, 0))
    total += Decimal("1") if start_segment == StartSegment.full_day else Decimal("0.5")
    total += Decimal("1") if end_segment == EndSegment.full_day else Decimal("0.5")
    return total


# ═════════════════════════════════════════════════════════════════════
# Request bodies
# ═════════════════════════════════════════════════════════════════════


class _DateRange(BaseModel):
    """Inclusive date range with shift segments; fills in ``days_requested``."""

    start_date: date
    end_date: date
    start_segment: StartSegment = StartSegment.full_day
    end_segment: EndSegment = EndSegment.full_day
    days_requested: Optional[Decimal] = Field(
        None, gt=0, max_digits=6, decimal_places=2,
        description="Trusted when supplied; computed from the range otherwise",
    )

    @model_validator(mode="after")
    def _check_range(self):
        if self.end_date < self.start_date:
            raise ValueError("end_date must be on or after start_date")
        if self.days_requested is None:
            self.days_requested = count_leave_days(
                self.start_date, self.end_date, self.start_segment, self.end_segment,
            )
        return self


class LeaveApplyRequest(_DateRange):
    """Payload for applying for leave."""

    leave_type: LeaveKind = LeaveKind.paid
    reason: Optional[str] = Field(None, max_length=1000)
    emergency_type: Optional[str] = Field(
        None, max_length=100,
        description="Required for paid leave on a date another employee holds",
    )
    requested_swap_with_leave_id: Optional[int] = None
    is_important_date_override: bool = False
    policy_reason_detail: Optional[str] = Field(None, max_length=2000)
    expected_return_date: Optional[date] = None

    @field_validator("emergency_type", "reason", "policy_reason_detail")
    @classmethod
    def _blank_to_none(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not v.strip():
            return None
        return v


class UpdateDatesRequest(_DateRange):
    """Move an existing leave to a new range (owner only)."""


class MarkUninformedRequest(_DateRange):
    employee_id: int = Field(..., gt=0)
    reason: Optional[str] = Field(None, max_length=1000)


class DecisionRequest(BaseModel):
    approve: bool
    reason: Optional[str] = Field(None, max_length=1000)


class AcknowledgeRequest(BaseModel):
    approve: bool


class RespondSwapRequest(BaseModel):
    accept: bool


class BlockedDatesCreate(BaseModel):
    """Mark one or more dates as a holiday (global) or important (per department)."""

    dates: list[date] = Field(..., min_length=1)
    type: BlockType = BlockType.important
    label: Optional[str] = Field(None, max_length=200)
    department_ids: list[int] = Field(
        default_factory=list,
        description="Important dates only; empty means all departments",
    )

    @model_validator(mode="after")
    def _holidays_are_global(self):
        if self.type == BlockType.holiday and self.department_ids:
            raise ValueError("holidays apply to all departments")
        return self


# ═════════════════════════════════════════════════════════════════════
# Refusal
# ═════════════════════════════════════════════════════════════════════


class LeaveRefusal(BaseModel):
    """A policy refusal: an expected outcome, not an error."""

    success: Literal[False] = False
    kind: RefusalKind
    message: str

    existing_leave_id: Optional[int] = None
    remaining_paid: Optional[Decimal] = None
    existing_employee_name: Optional[str] = None
    existing_start_date: Optional[date] = None
    existing_end_date: Optional[date] = None


# ═════════════════════════════════════════════════════════════════════
# Leave request
# ═════════════════════════════════════════════════════════════════════


class LeaveOut(BaseModel):
    """Full leave request representation."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    employee_id: int
    department_id: Optional[int] = None
    status: LeaveStatus
    reason: Optional[str] = None
    start_date: date
    end_date: date
    start_segment: StartSegment
    end_segment: EndSegment
    days_requested: Decimal
    is_paid: bool
    is_uninformed: bool
    emergency_type: Optional[str] = None
    requested_swap_with_leave_id: Optional[int] = None
    swap_responded_at: Optional[datetime] = None
    swap_accepted: Optional[bool] = None
    approved_via_swap: bool = False
    is_important_date_override: bool = False
    policy_reason_detail: Optional[str] = None
    expected_return_date: Optional[date] = None
    acknowledged_by: Optional[int] = None
    acknowledged_at: Optional[datetime] = None
    decision_by: Optional[int] = None
    decision_at: Optional[datetime] = None
    decision_reason: Optional[str] = None
    created_at: Optional[datetime] = None


class MyLeaveOut(LeaveOut):
    needs_acknowledgment: bool = False


class LeaveActionResult(BaseModel):
    """Successful apply / decide / acknowledge / date move."""

    success: Literal[True] = True
    leave: LeaveOut
    outcome: Optional[ApprovalOutcome] = None


class LeaveDeleteResult(BaseModel):
    success: Literal[True] = True
    id: int


class MyLeavesOut(BaseModel):
    pending: list[MyLeaveOut] = []
    approved: list[LeaveOut] = []
    rejected: list[LeaveOut] = []
    acknowledged: list[LeaveOut] = []


class LeaveListingOut(LeaveOut):
    """Leave row as shown in manager and admin listings."""

    employee_name: Optional[str] = None
    department_name: Optional[str] = None
    decision_by_name: Optional[str] = None
    acknowledged_by_name: Optional[str] = None


class DepartmentLeavesOut(BaseModel):
    pending: list[LeaveListingOut] = []
    approved: list[LeaveListingOut] = []
    rejected: list[LeaveListingOut] = []


# ═════════════════════════════════════════════════════════════════════
# Availability / calendar / blocked dates
# ═════════════════════════════════════════════════════════════════════


class BookedByOut(BaseModel):
    leave_id: int
    employee_id: int
    employee_name: Optional[str] = None


class DateAvailabilityOut(BaseModel):
    start_date: date
    end_date: date
    status: DateStatus
    blocked: bool
    available: bool
    booked_by: list[BookedByOut] = []


class BlockedDateOut(BaseModel):
    id: int
    date: date
    type: BlockType
    label: Optional[str] = None
    department_id: Optional[int] = None
    department_name: Optional[str] = None


class CalendarLeaveOut(BaseModel):
    id: int
    employee_id: int
    employee_name: Optional[str] = None
    start_date: date
    end_date: date
    start_segment: StartSegment
    end_segment: EndSegment
    is_uninformed: bool
    emergency_type: Optional[str] = None


class CalendarOut(BaseModel):
    leaves: list[CalendarLeaveOut] = []
    blocked_dates: list[BlockedDateOut] = []
    holidays: list[BlockedDateOut] = []
    important_dates: list[BlockedDateOut] = []


class BlockedDatesResult(BaseModel):
    success: Literal[True] = True
    dates: list[date]
    type: BlockType
    inserted: int
    label: Optional[str] = None


class UnmarkBlockedDateResult(BaseModel):
    success: Literal[True] = True
    date: date
    deleted: int


# ═════════════════════════════════════════════════════════════════════
# Swap negotiation
# ═════════════════════════════════════════════════════════════════════


class SwapResponseResult(BaseModel):
    success: Literal[True] = True
    leave_id: int
    swap_accepted: Optional[bool] = None


class SwapAsBookerOut(BaseModel):
    """Someone asked to take over dates of one of my leaves."""

    requesting_leave_id: int
    requester_id: int
    requester_name: Optional[str] = None
    start_date: date
    end_date: date
    emergency_type: Optional[str] = None
    my_leave_id: int
    my_start_date: date
    my_end_date: date
    state: SwapState


class SwapAsRequesterOut(BaseModel):
    leave_id: int
    start_date: date
    end_date: date
    booker_leave_id: Optional[int] = None
    booker_name: Optional[str] = None
    state: SwapState


class SwapRequestsOut(BaseModel):
    as_booker: list[SwapAsBookerOut] = []
    as_requester: list[SwapAsRequesterOut] = []


class AcknowledgementOut(BaseModel):
    """Pending leave waiting for an admin acknowledgment."""

    leave_id: int
    employee_id: int
    employee_name: Optional[str] = None
    start_date: date
    end_date: date
    emergency_type: Optional[str] = None
    reason: Optional[str] = None
    is_important_date_override: bool = False
    requested_swap_with_leave_id: Optional[int] = None
    policy_reason_detail: Optional[str] = None
    expected_return_date: Optional[date] = None
    booker_has_swapped: Optional[bool] = None
    booker_did_not_respond: bool = False
    swap_state: SwapState


class RejectedSwapNoticeOut(BaseModel):
    """A request on one of my leaves that was rejected by a manager or admin."""

    rejected_leave_id: int
    my_leave_id: int
    start_date: date
    end_date: date


class RejectedLeaveNoticeOut(BaseModel):
    leave_id: int
    start_date: date
    end_date: date
    decision_at: Optional[datetime] = None


class PendingActionsOut(BaseModel):
    swap_requests: list[SwapAsBookerOut] = []
    accepted_swap_targets: list[SwapAsBookerOut] = []
    rejected_swap_notifications: list[RejectedSwapNoticeOut] = []
    rejected_leave_notifications: list[RejectedLeaveNoticeOut] = []
    acknowledge_requests: list[AcknowledgementOut] = []


# ═════════════════════════════════════════════════════════════════════
# Report / policy
# ═════════════════════════════════════════════════════════════════════


class UninformedDetailOut(BaseModel):
    id: int
    start_date: date
    end_date: date
    days_requested: Decimal
    reason: Optional[str] = None
    decision_at: Optional[datetime] = None
    recorded_by_name: Optional[str] = None


class FutureDeductionOut(BaseModel):
    year: int
    month: int
    next_month_deduction: Decimal


class PaidDeductionOut(BaseModel):
    id: int
    start_date: date
    end_date: date
    days_requested: Decimal
    reason: Optional[str] = None
    emergency_type: Optional[str] = None


class ReportOut(BaseModel):
    """Balance report for one employee and quota month."""

    employee_id: int
    year: int
    month: int
    paid_quota: int
    paid_used: Decimal
    effective_quota: Decimal
    remaining_paid: Decimal
    next_month_deduction: Decimal
    uninformed_count: Decimal
    uninformed_details: list[UninformedDetailOut] = []
    future_deductions: list[FutureDeductionOut] = []
    total_future_deduction: Decimal = Decimal("0")
    leaves_taken_this_month: int = 0
    paid_leave_deductions: list[PaidDeductionOut] = []


class PolicyOut(BaseModel):
    monthly_paid_quota: int
    uninformed_penalty_text: str
    cashout_allowed: bool = False
