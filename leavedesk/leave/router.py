"""Leave router — apply, decisions, swaps, uninformed absences, blocked dates, reports.

All endpoints require authentication. Manager/admin endpoints enforce role checks.
Policy refusals are returned as ``{"success": false, "kind": ...}`` bodies with
the status code of their kind.
"""

from datetime import date
from typing import Optional, Union

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from leavedesk.auth.dependencies import CurrentUser, get_current_user, require_role
from leavedesk.common.audit import utcnow
from leavedesk.common.constants import (
    REFUSAL_STATUS_CODES,
    BlockType,
    LeaveListView,
    LeaveTypeFilter,
    UserRole,
)
from leavedesk.common.exceptions import ForbiddenException, ValidationException
from leavedesk.common.rate_limit import APPLY_LEAVE_LIMIT, limiter
from leavedesk.database import get_db
from leavedesk.leave.schemas import (
    AcknowledgeRequest,
    BlockedDatesCreate,
    BlockedDatesResult,
    CalendarOut,
    DateAvailabilityOut,
    DecisionRequest,
    DepartmentLeavesOut,
    LeaveActionResult,
    LeaveApplyRequest,
    LeaveDeleteResult,
    LeaveListingOut,
    LeaveRefusal,
    MarkUninformedRequest,
    MyLeavesOut,
    PendingActionsOut,
    PolicyOut,
    ReportOut,
    RespondSwapRequest,
    SwapRequestsOut,
    SwapResponseResult,
    UnmarkBlockedDateResult,
    UpdateDatesRequest,
)
from leavedesk.leave.service import LeaveService

router = APIRouter(prefix="", tags=["leave"])

_managers = require_role(UserRole.manager, UserRole.admin)
_admins = require_role(UserRole.admin)


def _respond(result: Union[LeaveRefusal, object]):
    """Render a refusal with its status code; pass successes through."""
    if isinstance(result, LeaveRefusal):
        return JSONResponse(
            status_code=REFUSAL_STATUS_CODES[result.kind],
            content=result.model_dump(mode="json"),
        )
    return result


def _check_range(start: date, end: date) -> None:
    if end < start:
        raise ValidationException({"end_date": ["end_date must be on or after start_date."]})


# ── POST /apply ─────────────────────────────────────────────────────

@router.post("/apply", response_model=LeaveActionResult, status_code=201)
@limiter.limit(APPLY_LEAVE_LIMIT)
async def apply_leave(
    request: Request,
    body: LeaveApplyRequest,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Apply for leave. Blocked, booked, quota and operator rules apply in that order."""
    return _respond(await LeaveService.apply_leave(db, user.employee_id, body))


# ── GET /my ─────────────────────────────────────────────────────────

@router.get("/my", response_model=MyLeavesOut)
async def my_leaves(
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """The caller's leaves grouped as pending / approved / rejected / acknowledged."""
    return await LeaveService.get_my_leaves(db, user.employee_id)


# ── GET /date-availability ──────────────────────────────────────────

@router.get("/date-availability", response_model=DateAvailabilityOut)
async def date_availability(
    start_date: date = Query(...),
    end_date: Optional[date] = Query(None),
    employee_id: Optional[int] = Query(None, gt=0),
    exclude_leave_id: Optional[int] = Query(None),
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Whether a range is blocked or booked, as seen by the caller.

    Managers and admins may pass ``employee_id`` to see the range as that
    employee does (their department's important dates, their own leaves excluded).
    """
    end = end_date or start_date
    _check_range(start_date, end)
    target = employee_id or user.employee_id
    if target != user.employee_id and not user.is_manager_or_admin:
        raise ForbiddenException("You can only check availability for yourself.")
    return await LeaveService.get_date_availability(
        db, start_date, end,
        employee_id=target,
        exclude_leave_id=exclude_leave_id,
    )


# ── GET /report ─────────────────────────────────────────────────────

@router.get("/report", response_model=ReportOut)
async def report(
    employee_id: Optional[int] = Query(None, gt=0),
    year: Optional[int] = Query(None, ge=2000, le=2100),
    month: Optional[int] = Query(None, ge=1, le=12),
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Monthly balance report. Employees may only read their own."""
    target = employee_id or user.employee_id
    if target != user.employee_id and not user.is_manager_or_admin:
        raise ForbiddenException("You can only view your own leave report.")
    today = utcnow().date()
    return await LeaveService.get_report(
        db, target, year or today.year, month or today.month,
    )


# ── GET /calendar ───────────────────────────────────────────────────

@router.get("/calendar", response_model=CalendarOut)
async def leave_calendar(
    start_date: date = Query(...),
    end_date: date = Query(...),
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    _check_range(start_date, end_date)
    return await LeaveService.get_calendar(db, start_date, end_date)


# ── GET /policy ─────────────────────────────────────────────────────

@router.get("/policy", response_model=PolicyOut)
async def leave_policy(
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await LeaveService.get_policy(db)


# ── GET /swap-requests ──────────────────────────────────────────────

@router.get("/swap-requests", response_model=SwapRequestsOut)
async def swap_requests(
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Swaps where the caller is the booker and swaps the caller requested."""
    return await LeaveService.get_swap_requests(db, user.employee_id)


# ── GET /pending-actions ────────────────────────────────────────────

@router.get("/pending-actions", response_model=PendingActionsOut)
async def pending_actions(
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Swap requests awaiting the caller; admins also get the acknowledgment queue."""
    return await LeaveService.get_pending_actions(db, user)


# ── GET /department ─────────────────────────────────────────────────

@router.get("/department", response_model=DepartmentLeavesOut)
async def department_leaves(
    department_id: Optional[int] = Query(None, gt=0),
    user: CurrentUser = Depends(_managers),
    db: AsyncSession = Depends(get_db),
):
    """Department leaves grouped by status; managers default to their own department."""
    return await LeaveService.get_department_leaves(db, user, department_id)


# ── GET /all ────────────────────────────────────────────────────────

@router.get("/all", response_model=list[LeaveListingOut])
async def all_leaves(
    filter: LeaveListView = Query(...),
    department_id: Optional[int] = Query(None, gt=0),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    type: Optional[LeaveTypeFilter] = Query(None),
    user: CurrentUser = Depends(_admins),
    db: AsyncSession = Depends(get_db),
):
    if start_date and end_date:
        _check_range(start_date, end_date)
    return await LeaveService.list_leaves(
        db, filter,
        department_id=department_id, start=start_date, end=end_date, leave_type=type,
    )


# ── GET /acknowledged-history ───────────────────────────────────────

@router.get("/acknowledged-history", response_model=list[LeaveListingOut])
async def acknowledged_history(
    department_id: Optional[int] = Query(None, gt=0),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    search: Optional[str] = Query(None, max_length=100),
    user: CurrentUser = Depends(_admins),
    db: AsyncSession = Depends(get_db),
):
    """Leaves settled through the acknowledgment queue, newest first."""
    if start_date and end_date:
        _check_range(start_date, end_date)
    return await LeaveService.get_acknowledged_history(
        db,
        department_id=department_id, start=start_date, end=end_date, employee_name=search,
    )


# ── POST /mark-uninformed ───────────────────────────────────────────

@router.post("/mark-uninformed", response_model=LeaveActionResult, status_code=201)
async def mark_uninformed(
    body: MarkUninformedRequest,
    user: CurrentUser = Depends(_managers),
    db: AsyncSession = Depends(get_db),
):
    """Record an uninformed absence and recompute future deductions."""
    return await LeaveService.mark_uninformed(db, user.employee_id, body)


# ── DELETE /uninformed/{id} ─────────────────────────────────────────

@router.delete("/uninformed/{leave_id}", response_model=LeaveDeleteResult)
async def delete_uninformed(
    leave_id: int,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return _respond(await LeaveService.delete_uninformed(db, leave_id, user))


# ── POST /blocked-dates ─────────────────────────────────────────────

@router.post("/blocked-dates", response_model=BlockedDatesResult, status_code=201)
async def mark_blocked_dates(
    body: BlockedDatesCreate,
    user: CurrentUser = Depends(_admins),
    db: AsyncSession = Depends(get_db),
):
    """Mark holidays (all departments) or important dates (per department)."""
    return await LeaveService.mark_blocked_dates(db, user.employee_id, body)


# ── DELETE /blocked-dates/{date} ────────────────────────────────────

@router.delete("/blocked-dates/{day}", response_model=UnmarkBlockedDateResult)
async def unmark_blocked_date(
    day: date,
    type: Optional[BlockType] = Query(None),
    label: Optional[str] = Query(None, max_length=200),
    department_id: Optional[int] = Query(None),
    user: CurrentUser = Depends(_admins),
    db: AsyncSession = Depends(get_db),
):
    return await LeaveService.unmark_blocked_date(
        db, user.employee_id, day,
        block_type=type, label=label, department_id=department_id,
    )


# ── DELETE /admin/{id} ──────────────────────────────────────────────

@router.delete("/admin/{leave_id}", response_model=LeaveDeleteResult)
async def admin_delete_leave(
    leave_id: int,
    user: CurrentUser = Depends(_admins),
    db: AsyncSession = Depends(get_db),
):
    """Hard-delete any employee leave and undo its ledger effects."""
    return await LeaveService.admin_delete(db, leave_id, user.employee_id)


# ── POST /{id}/decision ─────────────────────────────────────────────

@router.post("/{leave_id}/decision", response_model=LeaveActionResult)
async def decide_leave(
    leave_id: int,
    body: DecisionRequest,
    user: CurrentUser = Depends(_managers),
    db: AsyncSession = Depends(get_db),
):
    """Approve or reject a pending request."""
    return _respond(await LeaveService.decide(db, leave_id, user.employee_id, body))


# ── POST /{id}/acknowledge ──────────────────────────────────────────

@router.post("/{leave_id}/acknowledge", response_model=LeaveActionResult)
async def acknowledge_leave(
    leave_id: int,
    body: AcknowledgeRequest,
    user: CurrentUser = Depends(_admins),
    db: AsyncSession = Depends(get_db),
):
    return _respond(
        await LeaveService.acknowledge(db, leave_id, user.employee_id, body.approve)
    )


# ── POST /{id}/respond-swap ─────────────────────────────────────────

@router.post("/{leave_id}/respond-swap", response_model=SwapResponseResult)
async def respond_swap(
    leave_id: int,
    body: RespondSwapRequest,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """The booker accepts or rejects a swap request on their dates (once)."""
    return _respond(
        await LeaveService.respond_swap(db, leave_id, user.employee_id, body.accept)
    )


# ── POST /{id}/reject-swap-after-accept ─────────────────────────────

@router.post("/{leave_id}/reject-swap-after-accept", response_model=SwapResponseResult)
async def reject_swap_after_accept(
    leave_id: int,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return _respond(
        await LeaveService.reject_swap_after_accept(db, leave_id, user.employee_id)
    )


# ── PATCH /{id} ─────────────────────────────────────────────────────

@router.patch("/{leave_id}", response_model=LeaveActionResult)
async def update_leave_dates(
    leave_id: int,
    body: UpdateDatesRequest,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Move own leave; swap requesters it no longer overlaps are released."""
    return _respond(
        await LeaveService.update_dates(db, leave_id, user.employee_id, body)
    )


# ── DELETE /{id} ────────────────────────────────────────────────────

@router.delete("/{leave_id}", response_model=LeaveDeleteResult)
async def cancel_leave(
    leave_id: int,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Cancel own pending/approved leave that has not ended yet."""
    return await LeaveService.cancel(db, leave_id, user.employee_id)
